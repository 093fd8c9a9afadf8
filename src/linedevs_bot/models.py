"""
Record types shared by the core modules.

LinkedAccount is the only durable record; PendingVerification lives in the
session store; ModerationState is a view over LinkedAccount.
"""

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


def utcnow() -> datetime:
    """Timezone-aware current time in UTC."""
    return datetime.now(timezone.utc)


class LinkState(str, Enum):
    """Where a requester stands in the linking flow."""
    UNLINKED = "unlinked"
    PENDING_MANUAL = "pending_manual"
    LINKED = "linked"


@dataclass(frozen=True)
class ExternalIdentity:
    """A resolved Roblox account."""

    external_id: int
    name: str


@dataclass
class LinkedAccount:
    """Durable per-requester row: linkage, quota and moderation state."""

    requester_id: int
    quota_remaining: int
    quota_reset_at: datetime
    external_id: Optional[int] = None
    external_name: Optional[str] = None
    flag_count: int = 0
    suspended_until: Optional[datetime] = None
    linked_at: Optional[datetime] = None

    @classmethod
    def shell(cls, requester_id: int, allotment: int, now: datetime) -> "LinkedAccount":
        """Fresh row for a requester we have not seen before."""
        return cls(requester_id=requester_id, quota_remaining=allotment, quota_reset_at=now)

    @property
    def is_linked(self) -> bool:
        return self.external_id is not None

    def is_suspended(self, now: datetime) -> bool:
        return self.suspended_until is not None and self.suspended_until > now

    def moderation_state(self, now: datetime) -> "ModerationState":
        return ModerationState(
            flag_count=self.flag_count,
            suspended_until=self.suspended_until,
            suspended=self.is_suspended(now),
        )

    def copy(self, **changes) -> "LinkedAccount":
        return replace(self, **changes)


@dataclass(frozen=True)
class ModerationState:
    """Read-only moderation view of an account."""

    flag_count: int
    suspended_until: Optional[datetime]
    suspended: bool


@dataclass
class PendingVerification:
    """An in-flight manual verification."""

    requester_id: int
    external_id: int
    external_name: str
    verification_key: str
    created_at: datetime
