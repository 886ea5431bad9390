"""Database engine and sessions for EduStride.

PostgreSQL (asyncpg) in deployment; any SQLAlchemy async URL works, and
SQLite URLs (aiosqlite) get a single shared connection so an in-memory
database survives across sessions.

One engine per process, created on first use and disposed by close_db().
Request handlers get a session from get_session(); commits are left to the
Datastore so a request commits at most once, after every repository call.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from edustride.config import settings

logger = logging.getLogger(__name__)

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def create_engine_for(url: str) -> AsyncEngine:
    """Build an engine with pool settings suited to the backend."""
    options: dict[str, Any]
    if make_url(url).get_backend_name() == "sqlite":
        options = {"connect_args": {"check_same_thread": False}, "poolclass": StaticPool}
    else:
        options = {
            "pool_size": settings.db_pool_size,
            "max_overflow": settings.db_max_overflow,
            "pool_timeout": 30,
            "pool_recycle": 1800,
            "pool_pre_ping": True,
        }
    return create_async_engine(url, **options)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # Rows stay readable after commit; routers serialise them post-write
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


def get_engine() -> AsyncEngine:
    global _engine
    if _engine is None:
        _engine = create_engine_for(settings.database_url)
    return _engine


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Session for one request. Uncommitted work is rolled back on close."""
    global _session_factory
    if _session_factory is None:
        _session_factory = create_session_factory(get_engine())
    async with _session_factory() as session:
        yield session


async def init_db(engine: AsyncEngine | None = None) -> None:
    """Create any missing tables."""
    from edustride.persistence.tables import Base

    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database ready (%d tables)", len(Base.metadata.tables))


async def close_db() -> None:
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None


async def health_check(engine: AsyncEngine | None = None) -> bool:
    """True if the database answers a trivial query."""
    try:
        async with (engine or get_engine()).connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as exc:
        logger.warning("Database health check failed: %r", exc)
        return False
    return True
