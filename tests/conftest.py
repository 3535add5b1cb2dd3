"""Pytest configuration and fixtures."""

from datetime import UTC, datetime

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from token_signal_tracker.storage.database import DatabaseManager
from token_signal_tracker.storage.models import Base

SAMPLE_MINT = "7GCihgDB8fe6KNjn2MYtkzZcRjQy3t9GHdC8uHYmW2hr"


@pytest.fixture
def sample_mint() -> str:
    """Sample Solana token mint for testing."""
    return SAMPLE_MINT


@pytest.fixture
def t0() -> datetime:
    """A fixed entry time, ten minutes past the hour."""
    return datetime(2026, 1, 10, 12, 10, tzinfo=UTC)


@pytest.fixture
async def async_engine():
    """Create an async in-memory SQLite engine shared by all sessions of a test."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def async_session(async_engine) -> AsyncSession:
    """Create an async session for testing."""
    session_factory = async_sessionmaker(bind=async_engine, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest.fixture
def db_manager(async_engine) -> DatabaseManager:
    """Database manager bound to the in-memory engine."""
    return DatabaseManager("sqlite+aiosqlite:///:memory:", engine=async_engine)
