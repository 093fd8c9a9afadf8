"""
Pytest fixtures for LineDevs bot tests.
"""

import pytest

from src.linedevs_bot.identity import IdentityResolver
from src.linedevs_bot.ledger import TokenLedger
from src.linedevs_bot.linking import AccountLinker
from src.linedevs_bot.moderation import ModerationEngine
from src.linedevs_bot.sessions import VerificationSessionStore
from src.linedevs_bot.storage import AccountStore
from src.settings import ServiceSettings

from tests.linedevs_bot.fakes import GUILD_ID, FakeClock, FakeRoles, FakeSession


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(tmp_path):
    return AccountStore(tmp_path / "accounts.db")


@pytest.fixture
def services():
    return ServiceSettings()


@pytest.fixture
def http_session():
    return FakeSession()


@pytest.fixture
def resolver(http_session, services):
    return IdentityResolver(http_session, services, guild_id=GUILD_ID)


@pytest.fixture
def roles():
    return FakeRoles()


@pytest.fixture
def sessions(clock):
    return VerificationSessionStore(clock=clock, key_factory=lambda: "AB12cd34EF56")


@pytest.fixture
def linker(store, resolver, sessions, roles, clock):
    return AccountLinker(store, resolver, sessions, roles, default_allotment=15, clock=clock)


@pytest.fixture
def ledger(store, clock):
    return TokenLedger(store, daily_allotment=15, rotation_hours=24, clock=clock)


@pytest.fixture
def moderation(store, clock):
    return ModerationEngine(
        store,
        denylist=["free nitro", "kys"],
        flag_threshold=5,
        suspension_hours=48,
        clock=clock,
    )
