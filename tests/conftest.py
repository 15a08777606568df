"""Shared test fixtures.

DB-backed tests run against in-memory SQLite (aiosqlite) with a StaticPool so
every session in a test shares one connection and sees the same tables.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from anky import redis_client
from anky.database import get_session
from anky.db import models  # noqa: F401
from anky.db.base import Base
from anky.indexing.ledger import LedgerReadError
from anky.main import create_app

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


class FakeLedger:
    """In-memory ledger: fid -> list of completed-session hashes."""

    def __init__(self, completed: dict[int, list[str]] | None = None) -> None:
        self.completed: dict[int, list[str]] = completed or {}
        self.fail = False
        self.calls: list[tuple[str, int, int | None]] = []

    def complete(self, fid: int, ipfs_hash: str) -> None:
        self.completed.setdefault(fid, []).append(ipfs_hash)

    async def completed_session_count(self, fid: int, block: int | None = None) -> int:
        self.calls.append(("count", fid, block))
        if self.fail:
            raise LedgerReadError("ledger unavailable")
        return len(self.completed.get(fid, []))

    async def completed_session_at(self, fid: int, index: int, block: int | None = None) -> str:
        self.calls.append(("at", fid, block))
        hashes = self.completed.get(fid, [])
        if index < 0 or index >= len(hashes):
            raise LedgerReadError(f"no completed session {index} for fid {fid}")
        return hashes[index]


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def mock_redis(monkeypatch: pytest.MonkeyPatch) -> AsyncMock:
    """Stand-in for the shared Redis client used by readiness checks."""
    fake = AsyncMock()
    fake.ping.return_value = True
    monkeypatch.setattr(redis_client, "_pool", fake)
    return fake


@pytest_asyncio.fixture
async def client(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client for the app with the DB dependency bound to the test engine."""
    app = create_app()

    async def _session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = _session
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
