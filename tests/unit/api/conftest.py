"""Fixtures for API tests: the app over a temporary SQLite file."""

from __future__ import annotations

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel

from gateway.api.dependencies import get_executor
from gateway.db.session import get_session_dependency
from gateway.main import create_app
from tests.fakes import FakeQueryExecutor


@pytest.fixture
async def client(tmp_path, fake_executor: FakeQueryExecutor):
    """HTTP client bound to the app with test database and fake executor."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'api.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    session_factory = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async def override_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app = create_app()
    app.dependency_overrides[get_session_dependency] = override_session
    app.dependency_overrides[get_executor] = lambda: fake_executor

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        yield http

    await engine.dispose()


@pytest.fixture
async def active_endpoint(client: httpx.AsyncClient) -> dict:
    """An active GET table endpoint at /invoke/orders, with its token."""
    response = await client.post(
        "/v1/endpoints",
        json={
            "name": "Orders",
            "type": "table",
            "target": "orders",
            "path": "orders",
            "parameters": [{"name": "region", "type": "string", "required": True}],
            "generateApiKey": True,
            "status": "active",
        },
    )
    assert response.status_code == 201
    return response.json()
