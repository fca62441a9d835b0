"""Pytest configuration for tests directory."""
import sys
from datetime import datetime
from pathlib import Path

# Add the backend directory to Python path
backend_dir = Path(__file__).parent.parent
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from vibefield.infra.db.base import Base
# Import all models to ensure they're registered with Base
from vibefield.infra.db.models import FriendshipModel, PresenceModel  # noqa: F401

from fakes import (
    InMemoryPolicyStateStore,
    InMemoryPresenceRepository,
    InMemoryTrajectoryStore,
    RecordingPublisher,
    StaticFriendships,
)

T0 = datetime(2026, 3, 14, 18, 0, 0)


def pytest_configure(config):
    """Register markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests that need real Postgres/Redis (deselect with '-m \"not integration\"')"
    )


@pytest.fixture
def t0() -> datetime:
    return T0


@pytest.fixture
async def db_engine():
    """In-memory SQLite engine with the presence and friendship tables."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def presence_repo() -> InMemoryPresenceRepository:
    return InMemoryPresenceRepository()


@pytest.fixture
def friendships() -> StaticFriendships:
    return StaticFriendships()


@pytest.fixture
def policy_store() -> InMemoryPolicyStateStore:
    return InMemoryPolicyStateStore()


@pytest.fixture
def trajectory_store() -> InMemoryTrajectoryStore:
    return InMemoryTrajectoryStore()


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()
