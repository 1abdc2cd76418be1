"""Shared fixtures for unit tests: in-memory SQLite and fakes."""

from __future__ import annotations

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel

import gateway.models  # noqa: F401
from gateway.concurrency.locks import _endpoint_locks
from gateway.config import ProbeConfig
from gateway.services.probe import ProbeService
from tests.fakes import FakeQueryExecutor


@pytest.fixture(autouse=True)
def _reset_endpoint_locks():
    """Locks are bound to an event loop; each test gets a fresh loop."""
    _endpoint_locks.clear()
    yield
    _endpoint_locks.clear()


@pytest.fixture
async def db_engine():
    """Create in-memory SQLite database."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
async def db_session(db_engine):
    """Session on the in-memory database."""
    async_session_factory = sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session_factory() as session:
        yield session


@pytest.fixture
def fake_executor() -> FakeQueryExecutor:
    """Create a FakeQueryExecutor instance."""
    return FakeQueryExecutor()


@pytest.fixture
def probe_service(fake_executor: FakeQueryExecutor) -> ProbeService:
    """ProbeService over the fake executor with a short timeout."""
    return ProbeService(
        fake_executor,
        ProbeConfig(timeout_seconds=0.5, default_table_limit=10, max_table_limit=100),
    )
