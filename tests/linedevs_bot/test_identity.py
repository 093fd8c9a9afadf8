"""
Tests for Roblox identity lookups against a fake HTTP session.
"""

import asyncio

import aiohttp

from src.linedevs_bot.identity import IdentityResolver
from src.linedevs_bot.models import ExternalIdentity

from tests.linedevs_bot.fakes import GUILD_ID, LOOKUP_URL, profile_url, registry_url


class TestResolveByName:
    """Username -> ExternalIdentity."""

    def test_found(self, resolver, http_session):
        http_session.route("POST", LOOKUP_URL, payload={"data": [{"id": 777, "name": "AliceRBX"}]})

        identity = asyncio.run(resolver.resolve_by_name("alicerbx"))

        assert identity == ExternalIdentity(external_id=777, name="AliceRBX")
        call = http_session.calls[0]
        assert call["json"] == {"usernames": ["alicerbx"], "excludeBannedUsers": True}

    def test_name_falls_back_to_input(self, resolver, http_session):
        http_session.route("POST", LOOKUP_URL, payload={"data": [{"id": "42"}]})

        identity = asyncio.run(resolver.resolve_by_name("Someone"))

        assert identity == ExternalIdentity(external_id=42, name="Someone")

    def test_not_found(self, resolver, http_session):
        http_session.route("POST", LOOKUP_URL, payload={"data": []})
        assert asyncio.run(resolver.resolve_by_name("Ghost")) is None

    def test_server_error_is_negative(self, resolver, http_session):
        http_session.route("POST", LOOKUP_URL, status=500, payload={})
        assert asyncio.run(resolver.resolve_by_name("AliceRBX")) is None

    def test_connection_error_is_negative(self, resolver, http_session):
        http_session.route("POST", LOOKUP_URL, error=aiohttp.ClientConnectionError("refused"))
        assert asyncio.run(resolver.resolve_by_name("AliceRBX")) is None

    def test_bad_json_is_negative(self, resolver, http_session):
        http_session.route("POST", LOOKUP_URL, payload=ValueError("not json"))
        assert asyncio.run(resolver.resolve_by_name("AliceRBX")) is None

    def test_api_key_header(self, http_session, services):
        resolver = IdentityResolver(http_session, services, directory_api_key="secret")
        http_session.route("POST", LOOKUP_URL, payload={"data": []})

        asyncio.run(resolver.resolve_by_name("x"))

        assert http_session.calls[0]["headers"] == {"x-api-key": "secret"}


class TestProfileField:
    """Profile About text."""

    def test_description(self, resolver, http_session):
        http_session.route("GET", profile_url(777), payload={"description": "key: AB12", "name": "A"})
        assert asyncio.run(resolver.fetch_profile_field(777)) == "key: AB12"

    def test_missing_description(self, resolver, http_session):
        http_session.route("GET", profile_url(777), payload={"name": "A"})
        assert asyncio.run(resolver.fetch_profile_field(777)) == ""

    def test_failure_is_empty(self, resolver, http_session):
        http_session.route("GET", profile_url(777), error=asyncio.TimeoutError())
        assert asyncio.run(resolver.fetch_profile_field(777)) == ""

    def test_unknown_user_is_empty(self, resolver):
        assert asyncio.run(resolver.fetch_profile_field(1)) == ""


class TestPreLinkedIdentity:
    """Registry lookups."""

    def test_hit(self, resolver, http_session):
        http_session.route("GET", registry_url(10), payload={"robloxId": 888, "cachedUsername": "BobRBX"})

        identity = asyncio.run(resolver.fetch_pre_linked_identity(10))

        assert identity == ExternalIdentity(external_id=888, name="BobRBX")
        assert str(GUILD_ID) in http_session.calls[0]["url"]

    def test_no_record(self, resolver):
        assert asyncio.run(resolver.fetch_pre_linked_identity(10)) is None

    def test_status_not_ok(self, resolver, http_session):
        http_session.route("GET", registry_url(10), payload={"status": "error", "robloxId": 888})
        assert asyncio.run(resolver.fetch_pre_linked_identity(10)) is None

    def test_status_ok(self, resolver, http_session):
        http_session.route(
            "GET", registry_url(10),
            payload={"status": "ok", "externalId": "888", "externalUsername": "BobRBX"},
        )
        identity = asyncio.run(resolver.fetch_pre_linked_identity(10))
        assert identity.external_id == 888

    def test_name_from_profile(self, resolver, http_session):
        http_session.route("GET", registry_url(10), payload={"robloxId": 888})
        http_session.route("GET", profile_url(888), payload={"name": "BobRBX", "description": ""})

        identity = asyncio.run(resolver.fetch_pre_linked_identity(10))

        assert identity.name == "BobRBX"

    def test_no_name_anywhere(self, resolver, http_session):
        http_session.route("GET", registry_url(10), payload={"robloxId": 888})
        assert asyncio.run(resolver.fetch_pre_linked_identity(10)) is None

    def test_registry_outage(self, resolver, http_session):
        http_session.route("GET", registry_url(10), status=502, payload={})
        assert asyncio.run(resolver.fetch_pre_linked_identity(10)) is None

    def test_bearer_header(self, http_session, services):
        resolver = IdentityResolver(http_session, services, guild_id=GUILD_ID, registry_api_key="tok")

        asyncio.run(resolver.fetch_pre_linked_identity(10))

        assert http_session.calls[0]["headers"] == {"Authorization": "Bearer tok"}
