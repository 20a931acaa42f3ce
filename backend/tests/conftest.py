"""
Pytest fixtures for test database, Redis, client, users and slots.

Each test gets a fresh SQLite file (or TEST_DATABASE_URL, e.g. a PostgreSQL
test database) with the full schema, and a fakeredis instance standing in for
the rate limiter and booking queue store.
"""

import itertools
import os
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from fakeredis.aioredis import FakeRedis
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import async_sessionmaker

from slotbook.core.config import get_settings
from slotbook.db.base import Base
from slotbook.db.session import dispose_engine, get_session_factory, init_engine
from slotbook.infrastructure.redis_client import set_redis_client
from slotbook.main import app
from slotbook.models import Slot, SlotStatus, User
from slotbook.services.strategy_factory import reset_admission

TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL")


@pytest.fixture(autouse=True)
def test_settings(monkeypatch):
    """Known settings for every test; individual tests may override."""
    settings = get_settings()
    monkeypatch.setattr(settings, "ENVIRONMENT", "test")
    monkeypatch.setattr(settings, "ADMISSION_STRATEGY", "direct")
    monkeypatch.setattr(settings, "RATE_LIMIT_ENABLED", True)
    monkeypatch.setattr(settings, "REDIS_ENABLED", True)
    monkeypatch.setattr(settings, "MAX_ACTIVE_BOOKINGS", 5)
    monkeypatch.setattr(settings, "CANCELLATION_WINDOW_HOURS", 1)
    monkeypatch.setattr(settings, "BOOKING_RATE_LIMIT_MAX", 10)
    monkeypatch.setattr(settings, "BOOKING_RATE_LIMIT_WINDOW_SECONDS", 60)
    monkeypatch.setattr(settings, "BOOKING_QUEUE_NAME", "queue:booking:test")
    reset_admission()
    yield settings
    reset_admission()


@pytest_asyncio.fixture(autouse=True)
async def fake_redis() -> AsyncGenerator[FakeRedis, None]:
    client = FakeRedis(decode_responses=True)
    set_redis_client(client)
    try:
        yield client
    finally:
        await client.flushall()
        set_redis_client(None)


@pytest_asyncio.fixture(scope="function")
async def engine(tmp_path):
    """Create tables, yield engine, then drop tables for isolation."""
    url = TEST_DATABASE_URL or f"sqlite+aiosqlite:///{tmp_path / 'slotbook_test.db'}"
    engine = init_engine(url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await dispose_engine()


@pytest_asyncio.fixture
async def session_factory(engine) -> async_sessionmaker:
    return get_session_factory()


@pytest_asyncio.fixture(scope="function")
async def client(engine) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def make_user(session_factory):
    counter = itertools.count(1)

    async def _make(name: str = None, roles=("GUEST",)) -> User:
        n = next(counter)
        async with session_factory() as db, db.begin():
            user = User(email=f"user{n}@example.com", name=name or f"User {n}", roles=list(roles))
            db.add(user)
        return user

    return _make


@pytest.fixture
def make_slot(session_factory):
    """Insert a slot directly (no future/overlap checks, so past slots are possible)."""
    offsets = itertools.count(0)

    async def _make(
        host: User,
        starts_in: timedelta = None,
        duration: timedelta = timedelta(hours=1),
        status: SlotStatus = SlotStatus.AVAILABLE,
    ) -> Slot:
        if starts_in is None:
            starts_in = timedelta(days=1, hours=2 * next(offsets))
        start = datetime.now(timezone.utc) + starts_in
        async with session_factory() as db, db.begin():
            slot = Slot(host_id=host.id, start_time=start, end_time=start + duration, status=status.value)
            db.add(slot)
        return slot

    return _make


@pytest_asyncio.fixture
async def host(make_user) -> User:
    return await make_user(name="Host", roles=("HOST",))


@pytest_asyncio.fixture
async def guest(make_user) -> User:
    return await make_user(name="Guest")


@pytest_asyncio.fixture
async def test_slot(make_slot, host) -> Slot:
    return await make_slot(host)

