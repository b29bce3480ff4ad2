"""Shared fixtures: storage backends, stores, a controllable clock and an API client."""

import os

# Must be set before app modules read their configuration
os.environ["RATE_LIMIT_ENABLED"] = "0"
os.environ.setdefault("STORAGE_BACKEND", "memory")
os.environ.setdefault("AUTH_PROVIDER", "appwrite")

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool

from app.core.database.engine import init_db, make_engine, make_sessionmaker
from app.core.storage.database import DatabaseStorageProvider
from app.core.storage.memory import MemoryStorage, MemoryStorageProvider
from app.features.permissions.table import build_permission_table
from app.features.teams.store import MembershipStore
from app.features.users.auth import FixedIdentityProvider
from app.features.users.store import IdentityStore
from app.main import create_app


class FakeClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture(params=["memory", "database"])
async def storage(request):
    """A Storage for each backend; the database one is an in-memory SQLite."""
    if request.param == "memory":
        yield MemoryStorage()
        return

    engine = make_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    await init_db(engine)
    provider = DatabaseStorageProvider(sessionmaker=make_sessionmaker(engine), engine=engine)
    async with provider.session() as db_storage:
        yield db_storage
    await engine.dispose()


@pytest.fixture
def identities(storage, clock):
    return IdentityStore(storage, clock=clock)


@pytest.fixture
def store(storage, clock):
    return MembershipStore(storage, clock=clock)


@pytest.fixture
def table():
    return build_permission_table()


@pytest.fixture
async def users(identities):
    """Four registered users keyed by username."""
    created = {}
    for username in ("alice", "bob", "carol", "dave"):
        created[username] = await identities.register_user(
            username=username,
            email=f"{username}@example.com",
            display_name=username.title(),
        )
    return created


# ── API ──────────────────────────────────────────────────────────


class ApiUsers(dict):
    """Seeded users for API tests, with a way to switch the caller."""

    def __init__(self, app, users):
        super().__init__(users)
        self._app = app

    def act_as(self, username: str) -> None:
        self._app.state.auth_provider = FixedIdentityProvider(self[username].id)


@pytest.fixture
def memory_storage():
    return MemoryStorage()


@pytest.fixture
def app(memory_storage):
    return create_app(
        storage_provider=MemoryStorageProvider(memory_storage),
        auth_provider=FixedIdentityProvider("unset"),
    )


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def api_users(app, client, memory_storage):
    """alice, bob, carol and dave; requests are made as alice until act_as() says otherwise."""
    identities = IdentityStore(memory_storage)

    async def seed():
        return {
            username: await identities.register_user(
                username=username,
                email=f"{username}@example.com",
                display_name=username.title(),
            )
            for username in ("alice", "bob", "carol", "dave")
        }

    seeded = ApiUsers(app, client.portal.call(seed))
    seeded.act_as("alice")
    return seeded
