"""
tests/conftest.py -- Shared test fixtures for the auth service.

This module provides:
  - sqlite_url / provider / store: a migrated SQLite file database per test,
    reached through the real EngineProvider
  - clock / service: SessionService with a controllable clock
  - alice: the seeded "alice" / "wonderland" member account
  - api_client: TestClient against the real FastAPI app with a patched lifespan

Design: SQLite *file* databases under tmp_path rather than :memory:.
EngineProvider always uses QueuePool, and every pooled connection to a plain
:memory: URL would open its own empty database.
"""

from __future__ import annotations

from collections.abc import Generator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app
from auth.database import EngineProvider
from auth.migrations import ensure_schema
from auth.models import User
from auth.passwords import hash_password
from auth.service import SessionService
from auth.store import SessionStore
from core.config import Settings, get_settings

ALICE_PASSWORD = "wonderland"


class FrozenClock:
    """Callable clock for SessionService; only moves when told to."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def sqlite_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'auth.db'}"


@pytest.fixture
def provider(sqlite_url: str) -> Generator[EngineProvider, None, None]:
    """EngineProvider over a freshly migrated database."""
    p = EngineProvider(sqlite_url)
    ensure_schema(p.get_engine())
    yield p
    p.dispose()


@pytest.fixture
def store(provider: EngineProvider) -> SessionStore:
    return SessionStore(provider)


@pytest.fixture(scope="session")
def alice_hash() -> str:
    # bcrypt is deliberately slow; hash once per test session.
    return hash_password(ALICE_PASSWORD)


@pytest.fixture
def alice(store: SessionStore, alice_hash: str) -> User:
    user = User(username="alice", role="member", password_hash=alice_hash)
    user.id = store.create_user(user)
    return user


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def service(store: SessionStore, clock: FrozenClock) -> SessionService:
    return SessionService(store, clock=clock)


@pytest.fixture
def fresh_settings() -> Generator[None, None, None]:
    """Clear the get_settings() cache around a test that changes the environment."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


# ---------------------------------------------------------------------------
# HTTP fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(settings: Settings, provider: EngineProvider):
    """Return an async context manager that replaces the real lifespan.

    Wires the test database into app.state so routes see an isolated store
    instead of whatever AUTH_DATABASE_URL points at.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        store = SessionStore(provider)
        app.state.settings = settings
        app.state.session_store = store
        app.state.session_service = SessionService.from_settings(store, settings)
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(tmp_path_factory, alice_hash: str) -> Generator[TestClient, None, None]:
    """Yield a TestClient whose database holds alice (member) and root (admin)."""
    url = f"sqlite:///{tmp_path_factory.mktemp('api') / 'auth.db'}"
    provider = EngineProvider(url)
    ensure_schema(provider.get_engine())
    store = SessionStore(provider)
    store.create_user(User(username="alice", role="member", password_hash=alice_hash))
    store.create_user(User(username="root", role="admin", password_hash=alice_hash))

    settings = Settings(_env_file=None, auth_database_url=url, trusted_header_auth=False)
    app.router.lifespan_context = _patch_lifespan(settings, provider)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client

    provider.dispose()


@pytest.fixture(autouse=True)
def _reset_rate_limits() -> None:
    """The login limiter is process-wide; start every test with empty counters."""
    limiter.reset()
