"""Runtime wiring for the EduStride response cache."""

from __future__ import annotations

import logging

from edustride.cache.redis import RedisCacheStore, close_redis, get_redis
from edustride.cache.resilient import ResilientCache
from edustride.cache.store import CacheStore, InMemoryCacheStore
from edustride.config import settings

logger = logging.getLogger(__name__)


async def create_cache_store() -> CacheStore:
    """Create a cache store based on configuration."""
    backend = settings.cache_backend.lower()

    if backend in {"memory", "inmemory", "in_memory"}:
        return InMemoryCacheStore(sweep_interval=settings.cache_sweep_interval)

    if backend == "redis":
        return RedisCacheStore(await get_redis(), prefix=settings.cache_prefix)

    raise ValueError("Unsupported cache_backend. Supported values: memory, redis.")


async def start_cache() -> ResilientCache:
    store = await create_cache_store()
    logger.info("Response cache ready (%s)", type(store).__name__)
    return ResilientCache(store, timeout=settings.cache_timeout_seconds)


async def stop_cache(cache: ResilientCache) -> None:
    await cache.store.close()
    if isinstance(cache.store, RedisCacheStore):
        await close_redis()
