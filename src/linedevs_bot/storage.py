"""
SQLite persistence for linked accounts.

Narrow contract: get by requester, get by external id, upsert keyed by
requester, delete by requester. Every call is a coroutine on its own
short-lived aiosqlite connection, so a locked database only stalls the
coroutine waiting on it.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import AsyncIterator, Optional

import aiosqlite

from .errors import Conflict
from .models import LinkedAccount

logger = logging.getLogger(__name__)

_COLUMNS = (
    "requester_id, external_id, external_name, quota_remaining, quota_reset_at, "
    "flag_count, suspended_until, linked_at"
)

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS linked_accounts (
        requester_id INTEGER PRIMARY KEY,
        external_id INTEGER,
        external_name TEXT,
        quota_remaining INTEGER NOT NULL,
        quota_reset_at TEXT NOT NULL,
        flag_count INTEGER NOT NULL DEFAULT 0,
        suspended_until TEXT,
        linked_at TEXT
    )
    """,
    # At most one row per non-null Roblox account
    """
    CREATE UNIQUE INDEX IF NOT EXISTS idx_linked_accounts_external_id
    ON linked_accounts(external_id)
    WHERE external_id IS NOT NULL
    """,
)


def _to_text(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _from_text(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class AccountStore:
    """
    Durable store for LinkedAccount rows.

    Usage:
        store = AccountStore(Path("linedevs_bot.db"))
        await store.initialize()
        account = await store.get_by_requester(1234)
        await store.upsert(account.copy(flag_count=account.flag_count + 1))
    """

    def __init__(self, db_path: Path, timeout: float = 30.0):
        self.db_path = Path(db_path)
        self.timeout = timeout
        self._ready = False

    async def initialize(self) -> None:
        """Create the table and indexes if missing. Safe to call repeatedly."""
        if self._ready:
            return
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        async with aiosqlite.connect(self.db_path, timeout=self.timeout) as db:
            for statement in _SCHEMA:
                await db.execute(statement)
            await db.commit()

        self._ready = True
        logger.info(f"Account store ready at {self.db_path}")

    @asynccontextmanager
    async def _connection(self) -> AsyncIterator[aiosqlite.Connection]:
        await self.initialize()
        async with aiosqlite.connect(self.db_path, timeout=self.timeout) as db:
            yield db

    @staticmethod
    def _row_to_account(row: tuple) -> LinkedAccount:
        (requester_id, external_id, external_name, quota_remaining, quota_reset_at,
         flag_count, suspended_until, linked_at) = row
        return LinkedAccount(
            requester_id=requester_id,
            external_id=external_id,
            external_name=external_name,
            quota_remaining=quota_remaining,
            quota_reset_at=_from_text(quota_reset_at),
            flag_count=flag_count,
            suspended_until=_from_text(suspended_until),
            linked_at=_from_text(linked_at),
        )

    async def _fetch_one(self, where: str, value: int) -> Optional[LinkedAccount]:
        async with self._connection() as db:
            async with db.execute(
                f"SELECT {_COLUMNS} FROM linked_accounts WHERE {where} = ?", (value,)
            ) as cursor:
                row = await cursor.fetchone()
        return self._row_to_account(row) if row else None

    async def get_by_requester(self, requester_id: int) -> Optional[LinkedAccount]:
        return await self._fetch_one("requester_id", requester_id)

    async def get_by_external_id(self, external_id: int) -> Optional[LinkedAccount]:
        return await self._fetch_one("external_id", external_id)

    async def upsert(self, account: LinkedAccount) -> None:
        """
        Insert or update the row keyed by requester_id.

        Raises:
            Conflict: If the external id is held by another requester
        """
        try:
            async with self._connection() as db:
                await db.execute(f"""
                    INSERT INTO linked_accounts ({_COLUMNS})
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(requester_id) DO UPDATE SET
                        external_id = excluded.external_id,
                        external_name = excluded.external_name,
                        quota_remaining = excluded.quota_remaining,
                        quota_reset_at = excluded.quota_reset_at,
                        flag_count = excluded.flag_count,
                        suspended_until = excluded.suspended_until,
                        linked_at = excluded.linked_at
                """, (
                    account.requester_id,
                    account.external_id,
                    account.external_name,
                    account.quota_remaining,
                    _to_text(account.quota_reset_at),
                    account.flag_count,
                    _to_text(account.suspended_until),
                    _to_text(account.linked_at),
                ))
                await db.commit()
        except aiosqlite.IntegrityError:
            holder = await self.get_by_external_id(account.external_id)
            raise Conflict(account.external_id, holder.requester_id if holder else None)

    async def delete_by_requester(self, requester_id: int) -> bool:
        """Remove a row. Returns True if one was deleted."""
        async with self._connection() as db:
            cursor = await db.execute(
                "DELETE FROM linked_accounts WHERE requester_id = ?", (requester_id,)
            )
            await db.commit()
            return cursor.rowcount > 0

    async def count_linked(self) -> int:
        """Number of rows holding a Roblox account."""
        async with self._connection() as db:
            async with db.execute(
                "SELECT COUNT(*) FROM linked_accounts WHERE external_id IS NOT NULL"
            ) as cursor:
                row = await cursor.fetchone()
        return row[0]
