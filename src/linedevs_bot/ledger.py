"""
Daily quota for the assistant channel.

Quotas rotate on access: whenever an account is read and its last reset is
at least one rotation window old, the balance is refilled and the reset
time stamped. No background scheduler is involved.
"""

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict

from .errors import Exhausted, Suspended
from .models import LinkedAccount, utcnow
from .storage import AccountStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConsumeResult:
    """A successful spend."""

    remaining: int
    ok: bool = True


class TokenLedger:
    """Per-requester daily allotment of assistant invocations."""

    def __init__(
        self,
        store: AccountStore,
        daily_allotment: int = 15,
        rotation_hours: float = 24.0,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.daily_allotment = daily_allotment
        self.rotation = timedelta(hours=rotation_hours)
        self.clock = clock
        self._locks: Dict[int, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def _rotated(self, requester_id: int, now: datetime) -> LinkedAccount:
        """Load the account, refilling and persisting if the window has passed."""
        account = await self.store.get_by_requester(requester_id)
        if account is None:
            account = LinkedAccount.shell(requester_id, self.daily_allotment, now)
            await self.store.upsert(account)
            return account

        if now - account.quota_reset_at >= self.rotation:
            account = account.copy(quota_remaining=self.daily_allotment, quota_reset_at=now)
            await self.store.upsert(account)
            logger.debug(f"Quota rotated for {requester_id}")
        return account

    async def consume_token(self, requester_id: int) -> ConsumeResult:
        """
        Spend one invocation.

        Raises:
            Suspended: If the requester is suspended (carries the end time)
            Exhausted: If nothing is left in the current window
        """
        async with self._locks[requester_id]:
            now = self.clock()
            account = await self._rotated(requester_id, now)

            if account.is_suspended(now):
                raise Suspended(account.suspended_until)
            if account.quota_remaining <= 0:
                raise Exhausted("Daily assistant quota used up.")

            remaining = account.quota_remaining - 1
            await self.store.upsert(account.copy(quota_remaining=remaining))

        logger.info(f"Token spent by {requester_id}: {remaining}/{self.daily_allotment} left")
        return ConsumeResult(remaining=remaining)

    async def peek_balance(self, requester_id: int) -> int:
        """Current balance. Rotation still writes through."""
        async with self._locks[requester_id]:
            account = await self._rotated(requester_id, self.clock())
            return account.quota_remaining

    async def next_reset(self, requester_id: int) -> datetime:
        """When the current window ends for a requester."""
        account = await self.store.get_by_requester(requester_id)
        if account is None:
            return self.clock() + self.rotation
        return account.quota_reset_at + self.rotation
