"""
In-memory store for pending manual verifications.

One store is constructed per process and handed to the linker. At most one
session exists per requester; a new one replaces the old.
"""

import random
import string
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

from .models import ExternalIdentity, PendingVerification, utcnow

DEFAULT_KEY_ALPHABET = string.ascii_letters + string.digits + "._"


def generate_verification_key(
    length: int = 12,
    alphabet: str = DEFAULT_KEY_ALPHABET,
    rng: Optional[random.Random] = None,
) -> str:
    """Random key for the profile About section. Not a secret."""
    rng = rng or random.Random()
    return "".join(rng.choice(alphabet) for _ in range(length))


class VerificationSessionStore:
    """Pending verifications keyed by requester id."""

    def __init__(
        self,
        ttl_minutes: Optional[float] = None,
        key_length: int = 12,
        key_alphabet: str = DEFAULT_KEY_ALPHABET,
        clock: Callable[[], datetime] = utcnow,
        key_factory: Optional[Callable[[], str]] = None,
    ):
        self.ttl = timedelta(minutes=ttl_minutes) if ttl_minutes else None
        self.clock = clock
        self._key_factory = key_factory or (
            lambda: generate_verification_key(key_length, key_alphabet)
        )
        self._sessions: Dict[int, PendingVerification] = {}

    def _expired(self, session: PendingVerification) -> bool:
        return self.ttl is not None and self.clock() - session.created_at >= self.ttl

    def start(self, requester_id: int, identity: ExternalIdentity) -> PendingVerification:
        """Create (or overwrite) the session for a requester with a fresh key."""
        session = PendingVerification(
            requester_id=requester_id,
            external_id=identity.external_id,
            external_name=identity.name,
            verification_key=self._key_factory(),
            created_at=self.clock(),
        )
        self._sessions[requester_id] = session
        return session

    def get(self, requester_id: int) -> Optional[PendingVerification]:
        session = self._sessions.get(requester_id)
        if session is not None and self._expired(session):
            del self._sessions[requester_id]
            return None
        return session

    def discard(self, requester_id: int) -> Optional[PendingVerification]:
        return self._sessions.pop(requester_id, None)

    def purge_expired(self) -> int:
        """Drop expired sessions. Returns how many were removed."""
        expired = [rid for rid, s in self._sessions.items() if self._expired(s)]
        for requester_id in expired:
            del self._sessions[requester_id]
        return len(expired)

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, requester_id: int) -> bool:
        return self.get(requester_id) is not None
