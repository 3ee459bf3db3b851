"""Async test fixtures for sync engine tests using SQLite."""

from __future__ import annotations

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from crmsync.database import create_tables, get_db, get_session_factory
from crmsync.schemas.sync import ChangeEvent
from crmsync.sync.engine import SyncEngine


@pytest_asyncio.fixture
async def engine():
    eng = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
    await create_tables(eng)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def file_engine(tmp_path):
    """File-backed database: concurrent sessions get their own connections."""
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'sync.db'}", echo=False)
    await create_tables(eng)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def sync_engine(session_factory):
    return SyncEngine(session_factory, timeout=None)


@pytest.fixture
def make_event():
    def _make(**overrides) -> ChangeEvent:
        data = {
            "source": "client",
            "entity_type": "activity",
            "external_id": "act-ext-1",
            "owner_id": "u1",
            "operation": "create",
            "payload": {"category": "log", "title": "Lunch", "metadata": {"calories": 450}},
            "idempotency_key": "act_1",
        }
        data.update(overrides)
        return ChangeEvent.model_validate(data)

    return _make


async def count_rows(session_factory, model, *criteria) -> int:
    async with session_factory() as session:
        stmt = select(func.count()).select_from(model)
        for criterion in criteria:
            stmt = stmt.where(criterion)
        return (await session.execute(stmt)).scalar_one()


async def fetch_one(session_factory, model, *criteria):
    async with session_factory() as session:
        stmt = select(model)
        for criterion in criteria:
            stmt = stmt.where(criterion)
        return (await session.execute(stmt)).scalar_one_or_none()


@pytest_asyncio.fixture
async def client(engine):
    """HTTPX async test client against the sync app."""
    from crmsync.app import app

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()
