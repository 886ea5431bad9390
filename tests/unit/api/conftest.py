"""API test fixtures.

The app runs against in-memory SQLite with an in-memory cache and a real
broker. The lifespan is not run; the fixtures put the services on app.state.
"""

from __future__ import annotations

from collections.abc import AsyncIterator

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from edustride.api.app import create_app
from edustride.cache.resilient import ResilientCache
from edustride.cache.store import InMemoryCacheStore
from edustride.events.broker import EventBroker
from edustride.events.stream import StreamSessionManager
from edustride.persistence.db import (
    create_engine_for,
    create_session_factory,
    get_session,
    init_db,
)

USER = "user-1"
OTHER_USER = "user-2"


@pytest_asyncio.fixture
async def db_engine() -> AsyncIterator[AsyncEngine]:
    """Create an in-memory database with every table."""
    engine = create_engine_for("sqlite+aiosqlite://")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test database."""
    return create_session_factory(db_engine)


@pytest.fixture
def cache_store() -> InMemoryCacheStore:
    """The in-memory store behind the response cache."""
    return InMemoryCacheStore()


@pytest_asyncio.fixture
async def broker() -> AsyncIterator[EventBroker]:
    """A started broker, shut down after the test."""
    broker = EventBroker(ring_capacity=50, buffer_size=100, degradation_threshold=50)
    await broker.start()
    yield broker
    await broker.shutdown()


@pytest.fixture
def app(
    session_factory: async_sessionmaker[AsyncSession],
    cache_store: InMemoryCacheStore,
    broker: EventBroker,
) -> FastAPI:
    """Application wired to the test services."""
    app = create_app()

    async def get_test_session() -> AsyncIterator[AsyncSession]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = get_test_session
    app.state.cache = ResilientCache(cache_store, timeout=1.0)
    app.state.broker = broker
    app.state.streams = StreamSessionManager(broker, heartbeat_interval=5.0, retry_ms=1000)
    return app


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncIterator[AsyncClient]:
    """Client authenticated as USER."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers={"X-User-Id": USER},
    ) as client:
        yield client


@pytest_asyncio.fixture
async def other_client(app: FastAPI) -> AsyncIterator[AsyncClient]:
    """Client authenticated as OTHER_USER."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers={"X-User-Id": OTHER_USER},
    ) as client:
        yield client


@pytest_asyncio.fixture
async def anonymous_client(app: FastAPI) -> AsyncIterator[AsyncClient]:
    """Client without a user id."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
