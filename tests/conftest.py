"""Pytest configuration and fixtures for MillesBTP tests.

Every test gets its own file-backed SQLite database (aiosqlite) and a
fresh configuration with retry delays disabled.
"""

from __future__ import annotations

from datetime import datetime, timedelta

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from millesbtp.config import reset_config
from millesbtp.db import connection
from millesbtp.db.connection import enable_sqlite_foreign_keys
from millesbtp.db.models import Base
from millesbtp.worksites import WorksiteLocks, WorksiteService


class FakeClock:
    """Settable "now" for services and alert rules."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture(autouse=True)
def setup_test_env(monkeypatch, tmp_path):
    """Point configuration at a throwaway database and disable retry sleeps."""
    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'millesbtp.db'}")
    monkeypatch.setenv("STORAGE_RETRY_BASE_DELAY", "0")
    monkeypatch.setenv("STORAGE_RETRY_MAX_DELAY", "0")
    monkeypatch.setenv("LOG_LEVEL", "WARNING")
    monkeypatch.setattr(connection, "_engine", None)
    monkeypatch.setattr(connection, "_session_factory", None)
    reset_config()
    yield
    reset_config()


@pytest.fixture
def owner_id() -> str:
    """Authenticated actor used by most tests."""
    return "user-1"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2024, 6, 1, 12, 0, 0))


@pytest_asyncio.fixture()
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'worksites.db'}")
    enable_sqlite_foreign_keys(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture()
async def db_session(session_factory) -> AsyncSession:
    session = session_factory()
    try:
        yield session
    finally:
        await session.close()


@pytest.fixture
def service(session_factory, owner_id, clock) -> WorksiteService:
    return WorksiteService(session_factory, owner_id, locks=WorksiteLocks(), clock=clock)
