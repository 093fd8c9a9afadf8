"""
Roblox identity lookups.

Resolves usernames through the Roblox users API, reads the profile About
text used for verification, and checks a RoVer-style registry for an
already declared Discord-to-Roblox link.

Every lookup is attempted once. Failures are logged and returned as a
negative result (None or ""), never raised.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

import aiohttp

from src.settings import ServiceSettings

from .errors import TransportFailure
from .models import ExternalIdentity

logger = logging.getLogger(__name__)


class IdentityResolver:
    """
    Query-only client for the Roblox directory and the pre-link registry.

    The aiohttp session is owned by the caller (one per process).
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        services: ServiceSettings,
        guild_id: Optional[int] = None,
        directory_api_key: str = "",
        registry_api_key: str = "",
    ):
        self.session = session
        self.services = services
        self.guild_id = guild_id
        self._directory_headers = {"x-api-key": directory_api_key} if directory_api_key else {}
        self._registry_headers = (
            {"Authorization": f"Bearer {registry_api_key}"} if registry_api_key else {}
        )

    async def _request_json(
        self,
        method: str,
        url: str,
        headers: Dict[str, str],
        payload: Optional[Dict[str, Any]] = None,
    ) -> Optional[Dict[str, Any]]:
        """
        Perform one request and decode JSON.

        Returns None on 404. Raises TransportFailure on anything else that
        is not a 2xx JSON object.
        """
        try:
            if method == "POST":
                request = self.session.post(url, json=payload, headers=headers)
            else:
                request = self.session.get(url, headers=headers)

            async with request as response:
                if response.status == 404:
                    return None
                if response.status >= 400:
                    raise TransportFailure(f"{method} {url} returned {response.status}")
                data = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise TransportFailure(f"{method} {url} failed: {e}") from e

        if not isinstance(data, dict):
            raise TransportFailure(f"{method} {url} returned non-object JSON")
        return data

    async def resolve_by_name(self, name: str) -> Optional[ExternalIdentity]:
        """Look up a Roblox account by username."""
        url = f"{self.services.directory_base_url}/v1/usernames/users"
        payload = {"usernames": [name], "excludeBannedUsers": True}

        try:
            data = await self._request_json("POST", url, self._directory_headers, payload)
        except TransportFailure as e:
            logger.error(f"Username lookup failed for '{name}': {e}")
            return None

        entries = (data or {}).get("data") or []
        if not entries:
            logger.info(f"Roblox username '{name}' not found")
            return None

        entry = entries[0]
        try:
            external_id = int(entry["id"])
        except (KeyError, TypeError, ValueError):
            logger.error(f"Username lookup for '{name}' returned no usable id: {entry}")
            return None

        canonical = entry.get("name") or entry.get("username") or name
        return ExternalIdentity(external_id=external_id, name=canonical)

    async def _fetch_profile(self, external_id: int) -> Dict[str, Any]:
        url = f"{self.services.directory_base_url}/v1/users/{external_id}"
        try:
            return await self._request_json("GET", url, self._directory_headers) or {}
        except TransportFailure as e:
            logger.error(f"Profile fetch failed for {external_id}: {e}")
            return {}

    async def fetch_profile_field(self, external_id: int) -> str:
        """Return the profile About text, or "" on any failure."""
        profile = await self._fetch_profile(external_id)
        return str(profile.get("description") or "")

    async def fetch_pre_linked_identity(self, requester_id: int) -> Optional[ExternalIdentity]:
        """Check the registry for a Roblox account already tied to this Discord user."""
        url = self.services.registry_url_template.format(
            guild_id=self.guild_id or "", requester_id=requester_id
        )

        try:
            data = await self._request_json("GET", url, self._registry_headers)
        except TransportFailure as e:
            logger.warning(f"Registry lookup failed for {requester_id}: {e}")
            return None

        if not data:
            return None
        status = data.get("status")
        if status is not None and str(status).lower() != "ok":
            return None

        raw_id = data.get("robloxId") or data.get("externalId")
        if raw_id is None:
            return None
        try:
            external_id = int(raw_id)
        except (TypeError, ValueError):
            logger.warning(f"Registry returned malformed id for {requester_id}: {raw_id!r}")
            return None

        name = data.get("cachedUsername") or data.get("externalUsername")
        if not name:
            profile = await self._fetch_profile(external_id)
            name = profile.get("name")
        if not name:
            return None

        logger.info(f"Registry link found for {requester_id}: {name} ({external_id})")
        return ExternalIdentity(external_id=external_id, name=str(name))
