"""
Account linking state machine.

    Unlinked --start (registry hit)--------------> Linked
    Unlinked --submit_username--> PendingManual --confirm--> Linked
    Linked   --unlink----------------------------> Unlinked

A Roblox account can be held by one requester at a time. The holder must
unlink before anyone else can claim it.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional, Protocol

from .errors import AlreadyLinked, Conflict, NotFound, Unauthorized, VerificationMismatch
from .identity import IdentityResolver
from .models import ExternalIdentity, LinkState, LinkedAccount, PendingVerification, utcnow
from .sessions import VerificationSessionStore
from .storage import AccountStore

logger = logging.getLogger(__name__)


class MemberRoles(Protocol):
    """Guild-side effects of a link state change."""

    async def mark_verified(self, requester_id: int, display_name: str) -> None:
        ...

    async def mark_unverified(self, requester_id: int) -> None:
        ...


@dataclass
class LinkResult:
    """Outcome of a successful link (or a no-op on an existing link)."""

    account: LinkedAccount
    via: str  # "registry", "profile_key" or "existing"

    @property
    def already_linked(self) -> bool:
        return self.via == "existing"


class AccountLinker:
    """Drives requesters between Unlinked, PendingManual and Linked."""

    def __init__(
        self,
        store: AccountStore,
        resolver: IdentityResolver,
        sessions: VerificationSessionStore,
        roles: MemberRoles,
        default_allotment: int = 15,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.resolver = resolver
        self.sessions = sessions
        self.roles = roles
        self.default_allotment = default_allotment
        self.clock = clock
        # Serialises the uniqueness check with the write
        self._lock = asyncio.Lock()

    async def state(self, requester_id: int) -> LinkState:
        account = await self.store.get_by_requester(requester_id)
        if account is not None and account.is_linked:
            return LinkState.LINKED
        if self.sessions.get(requester_id) is not None:
            return LinkState.PENDING_MANUAL
        return LinkState.UNLINKED

    async def _load_or_shell(self, requester_id: int) -> LinkedAccount:
        account = await self.store.get_by_requester(requester_id)
        if account is None:
            account = LinkedAccount.shell(requester_id, self.default_allotment, self.clock())
            await self.store.upsert(account)
        return account

    async def start_linking(self, requester_id: int) -> Optional[LinkResult]:
        """
        Begin linking for a requester.

        Returns:
            LinkResult when the requester is linked (already, or directly via
            the registry). None when a Roblox username is needed.

        Raises:
            Conflict: If the registry identity is held by someone else
        """
        account = await self._load_or_shell(requester_id)
        if account.is_linked:
            self.sessions.discard(requester_id)
            return LinkResult(account=account, via="existing")

        identity = await self.resolver.fetch_pre_linked_identity(requester_id)
        if identity is None:
            return None

        return await self._link(requester_id, identity, via="registry")

    async def submit_username(self, requester_id: int, username: str) -> PendingVerification:
        """
        Resolve a Roblox username and open a manual verification session.

        Raises:
            NotFound: If the username does not resolve
            AlreadyLinked: If the requester is already linked
        """
        account = await self._load_or_shell(requester_id)
        if account.is_linked:
            raise AlreadyLinked(account.external_name)

        username = username.strip()
        identity = await self.resolver.resolve_by_name(username) if username else None
        if identity is None:
            raise NotFound(f"Roblox username **{username}** not found.")

        session = self.sessions.start(requester_id, identity)
        logger.info(
            f"Verification session opened for {requester_id} -> "
            f"{identity.name} ({identity.external_id})"
        )
        return session

    async def confirm(self, requester_id: int) -> LinkResult:
        """
        Check the profile for the session key and link on a match.

        Confirming once linked is a no-op success, whatever session is left.

        Raises:
            NotFound: If there is no pending session and no link
            VerificationMismatch: If the key is not on the profile
            Conflict: If the Roblox account was claimed in the meantime
        """
        account = await self.store.get_by_requester(requester_id)
        if account is not None and account.is_linked:
            self.sessions.discard(requester_id)
            return LinkResult(account=account, via="existing")

        pending = self.sessions.get(requester_id)
        if pending is None:
            raise NotFound("No pending verification found. Start again.")

        description = await self.resolver.fetch_profile_field(pending.external_id)
        if pending.verification_key not in description:
            logger.info(f"Verification key missing from profile {pending.external_id} for {requester_id}")
            raise VerificationMismatch(pending.verification_key)

        identity = ExternalIdentity(external_id=pending.external_id, name=pending.external_name)
        return await self._link(requester_id, identity, via="profile_key")

    async def _link(self, requester_id: int, identity: ExternalIdentity, via: str) -> LinkResult:
        async with self._lock:
            now = self.clock()
            account = await self._load_or_shell(requester_id)
            if account.is_linked:
                self.sessions.discard(requester_id)
                return LinkResult(account=account, via="existing")

            holder = await self.store.get_by_external_id(identity.external_id)
            if holder is not None and holder.requester_id != requester_id:
                logger.warning(
                    f"Link rejected: {identity.external_id} requested by {requester_id}, "
                    f"held by {holder.requester_id}"
                )
                raise Conflict(identity.external_id, holder.requester_id)

            linked = account.copy(
                external_id=identity.external_id,
                external_name=identity.name,
                quota_remaining=self.default_allotment,
                quota_reset_at=now,
                suspended_until=None,
                linked_at=now,
            )
            await self.store.upsert(linked)
            self.sessions.discard(requester_id)

        logger.info(f"Linked {requester_id} to {identity.name} ({identity.external_id}) via {via}")
        await self.roles.mark_verified(requester_id, identity.name)
        return LinkResult(account=linked, via=via)

    async def unlink(self, actor_id: int, target_id: int, actor_is_admin: bool = False) -> LinkedAccount:
        """
        Clear a requester's link. The row itself is kept.

        Returns:
            The account as it was before unlinking

        Raises:
            Unauthorized: If unlinking someone else without admin rights
            NotFound: If the target is not linked
        """
        if actor_id != target_id and not actor_is_admin:
            raise Unauthorized("Only admins may unlink other members.")

        async with self._lock:
            account = await self.store.get_by_requester(target_id)
            if account is None or not account.is_linked:
                raise NotFound("That member has no linked Roblox account.")

            await self.store.upsert(account.copy(external_id=None, external_name=None, linked_at=None))
            self.sessions.discard(target_id)

        logger.info(f"Unlinked {target_id} from {account.external_name} (by {actor_id})")
        await self.roles.mark_unverified(target_id)
        return account
