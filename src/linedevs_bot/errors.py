"""
Error taxonomy for the core operations.

Every error here is per-event and recoverable for the process: the
dispatcher turns them into a reply to the requester.
"""

from datetime import datetime
from typing import Optional


class BotError(Exception):
    """Base class for errors reported back to the requester."""


class NotFound(BotError):
    """A lookup missed (unknown username, no pending session, not linked)."""


class Conflict(BotError):
    """The external identity is already claimed by another requester."""

    def __init__(self, external_id: int, holder_id: Optional[int]):
        self.external_id = external_id
        self.holder_id = holder_id
        super().__init__(
            f"Roblox account {external_id} is already linked to user {holder_id}"
        )


class Unauthorized(BotError):
    """A permission-gated action was attempted without privilege."""


class Suspended(BotError):
    """The requester is under a moderation suspension."""

    def __init__(self, until: datetime):
        self.until = until
        super().__init__(f"Suspended until {until.isoformat()}")


class Exhausted(BotError):
    """The requester has no quota left in the current window."""


class VerificationMismatch(BotError):
    """The verification key was not found on the external profile."""

    def __init__(self, expected_key: str):
        self.expected_key = expected_key
        super().__init__(f"Verification key {expected_key} not found on profile")


class TransportFailure(BotError):
    """An outbound call failed. Clients degrade this to a negative result."""


class AlreadyLinked(BotError):
    """The requester already holds a linked Roblox account."""

    def __init__(self, external_name: Optional[str]):
        self.external_name = external_name
        super().__init__(f"Already linked as {external_name}")
