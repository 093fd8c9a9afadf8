"""
Denylist moderation with escalating suspensions.

Each matching message adds a flag. Reaching the threshold suspends the
requester for a fixed period; the caller applies the Discord timeout.
Flags are never cleared.
"""

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, Optional

import aiosqlite

from .models import LinkedAccount, utcnow
from .storage import AccountStore

logger = logging.getLogger(__name__)


def scan(text: str, denylist: Iterable[str]) -> bool:
    """True if any denylisted term appears in text (case-insensitive)."""
    lowered = text.lower()
    return any(term and term.lower() in lowered for term in denylist)


@dataclass(frozen=True)
class ModerationResult:
    """Outcome of recording a flag."""

    flag_count: int
    threshold: int
    suspended: bool
    until: Optional[datetime] = None


class ModerationEngine:
    """Flag accounting for denylist matches."""

    def __init__(
        self,
        store: AccountStore,
        denylist: Iterable[str],
        flag_threshold: int = 5,
        suspension_hours: float = 48.0,
        default_allotment: int = 15,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.denylist = [term.lower() for term in denylist]
        self.flag_threshold = flag_threshold
        self.suspension = timedelta(hours=suspension_hours)
        self.default_allotment = default_allotment
        self.clock = clock
        self._locks: Dict[int, asyncio.Lock] = defaultdict(asyncio.Lock)
        # Flag counts that failed to persist, by requester
        self._unsaved_counts: Dict[int, int] = {}

    def scan(self, text: str) -> bool:
        return scan(text, self.denylist)

    async def on_match(self, requester_id: int) -> ModerationResult:
        """
        Record one flag and suspend at the threshold.

        Storage errors are logged and swallowed: the caller still gets a
        result so the warning or timeout can go out. Counts that could not
        be persisted are held in memory until a later write succeeds.
        """
        async with self._locks[requester_id]:
            now = self.clock()
            try:
                account = await self.store.get_by_requester(requester_id)
            except aiosqlite.Error as e:
                logger.error(f"Could not load flags for {requester_id}: {e}")
                account = None
                flag_count = self._unsaved_counts.get(requester_id, 0) + 1
            else:
                if account is None:
                    account = LinkedAccount.shell(requester_id, self.default_allotment, now)
                flag_count = max(account.flag_count, self._unsaved_counts.get(requester_id, 0)) + 1

            suspended = flag_count >= self.flag_threshold
            until = now + self.suspension if suspended else None

            persisted = False
            if account is not None:
                updated = account.copy(flag_count=flag_count)
                if suspended:
                    updated.suspended_until = until
                try:
                    await self.store.upsert(updated)
                    persisted = True
                except aiosqlite.Error as e:
                    logger.error(f"Could not persist flag for {requester_id}: {e}")

            if persisted:
                self._unsaved_counts.pop(requester_id, None)
            else:
                self._unsaved_counts[requester_id] = flag_count

        if suspended:
            logger.warning(
                f"Requester {requester_id} suspended until {until.isoformat()} "
                f"({flag_count} flags)"
            )
        else:
            logger.info(f"Requester {requester_id} flagged ({flag_count}/{self.flag_threshold})")

        return ModerationResult(
            flag_count=flag_count,
            threshold=self.flag_threshold,
            suspended=suspended,
            until=until,
        )

    async def check(self, requester_id: int, text: str) -> Optional[ModerationResult]:
        """Scan a message and record a flag if it matches. None when clean."""
        if not self.scan(text):
            return None
        return await self.on_match(requester_id)
