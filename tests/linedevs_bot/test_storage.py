"""
Tests for the SQLite account store.
"""

import asyncio
import sqlite3
from datetime import timedelta

import pytest

from src.linedevs_bot.errors import Conflict
from src.linedevs_bot.models import LinkedAccount
from src.linedevs_bot.storage import AccountStore


def make_account(clock, requester_id, **changes):
    return LinkedAccount.shell(requester_id, 15, clock()).copy(**changes)


class TestAccountStore:
    """Row round trips and constraints."""

    def test_missing_rows(self, store):
        assert asyncio.run(store.get_by_requester(1)) is None
        assert asyncio.run(store.get_by_external_id(1)) is None

    def test_upsert_then_read(self, store, clock):
        account = make_account(
            clock, 1,
            external_id=777,
            external_name="AliceRBX",
            flag_count=2,
            suspended_until=clock() + timedelta(hours=48),
            linked_at=clock(),
        )
        asyncio.run(store.upsert(account))

        assert asyncio.run(store.get_by_requester(1)) == account
        assert asyncio.run(store.get_by_external_id(777)) == account

    def test_upsert_updates_in_place(self, store, clock):
        asyncio.run(store.upsert(make_account(clock, 1)))
        asyncio.run(store.upsert(make_account(clock, 1, quota_remaining=3)))

        assert asyncio.run(store.get_by_requester(1)).quota_remaining == 3

    def test_external_id_unique(self, store, clock):
        asyncio.run(store.upsert(make_account(clock, 1, external_id=777, external_name="AliceRBX")))

        with pytest.raises(Conflict) as exc_info:
            asyncio.run(store.upsert(make_account(clock, 2, external_id=777, external_name="AliceRBX")))

        assert exc_info.value.holder_id == 1
        assert asyncio.run(store.get_by_requester(2)) is None

    def test_many_unlinked_rows_allowed(self, store, clock):
        """The uniqueness index ignores rows without an external id."""
        asyncio.run(store.upsert(make_account(clock, 1)))
        asyncio.run(store.upsert(make_account(clock, 2)))

        assert asyncio.run(store.get_by_requester(2)) is not None

    def test_delete(self, store, clock):
        asyncio.run(store.upsert(make_account(clock, 1)))

        assert asyncio.run(store.delete_by_requester(1)) is True
        assert asyncio.run(store.delete_by_requester(1)) is False
        assert asyncio.run(store.get_by_requester(1)) is None

    def test_count_linked(self, store, clock):
        async def scenario():
            await store.upsert(make_account(clock, 1, external_id=10, external_name="a"))
            await store.upsert(make_account(clock, 2, external_id=11, external_name="b"))
            await store.upsert(make_account(clock, 3))
            return await store.count_linked()

        assert asyncio.run(scenario()) == 2

    def test_initialize_is_idempotent(self, store):
        asyncio.run(store.initialize())
        asyncio.run(store.initialize())

        assert store.db_path.exists()

    def test_data_survives_reopen(self, tmp_path, clock):
        path = tmp_path / "nested" / "accounts.db"
        asyncio.run(AccountStore(path).upsert(make_account(clock, 1, flag_count=4)))

        assert asyncio.run(AccountStore(path).get_by_requester(1)).flag_count == 4


class TestLockedDatabase:
    """A locked database stalls only the call waiting on it."""

    def test_event_loop_keeps_running_while_write_waits(self, tmp_path, clock):
        store = AccountStore(tmp_path / "accounts.db", timeout=5.0)
        asyncio.run(store.initialize())

        blocker = sqlite3.connect(store.db_path, isolation_level=None)
        blocker.execute("BEGIN EXCLUSIVE")

        async def scenario():
            loop = asyncio.get_running_loop()
            gaps = []
            writing = True

            async def ticker():
                last = loop.time()
                while writing:
                    await asyncio.sleep(0.02)
                    now = loop.time()
                    gaps.append(now - last)
                    last = now

            async def write():
                nonlocal writing
                try:
                    await store.upsert(make_account(clock, 1, quota_remaining=9))
                finally:
                    writing = False

            loop.call_later(0.5, blocker.execute, "COMMIT")
            await asyncio.gather(ticker(), write())
            return gaps

        try:
            gaps = asyncio.run(scenario())
        finally:
            blocker.close()

        assert len(gaps) > 5
        assert max(gaps) < 0.25
        assert asyncio.run(store.get_by_requester(1)).quota_remaining == 9
