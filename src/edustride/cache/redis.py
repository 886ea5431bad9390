"""Redis cache store for EduStride.

Provides the same contract as InMemoryCacheStore on top of a shared Redis.
Uses redis-py async client for connection pooling.
"""

from __future__ import annotations

from collections.abc import Awaitable
from typing import TYPE_CHECKING, cast

import redis.asyncio as redis

from edustride.cache.keys import CacheKeys
from edustride.cache.store import CacheStore, _validate_ttl
from edustride.config import settings

if TYPE_CHECKING:
    from redis.asyncio import Redis

# Module-level connection pool
_redis_client: Redis | None = None

# Characters with meaning in Redis glob patterns
_GLOB_SPECIAL = frozenset("*?[]\\")


async def get_redis() -> Redis:
    """Get or create the Redis client.

    Uses connection pooling for efficient connection management.
    """
    global _redis_client
    if _redis_client is None:
        _redis_client = redis.from_url(  # type: ignore[no-untyped-call]
            settings.redis_url,
            decode_responses=False,  # We're storing bytes
        )
    return _redis_client


async def close_redis() -> None:
    """Close Redis connections."""
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None


def glob_escape(literal: str) -> str:
    """Escape a literal so Redis SCAN MATCH treats it verbatim."""
    return "".join(f"\\{ch}" if ch in _GLOB_SPECIAL else ch for ch in literal)


class RedisCacheStore(CacheStore):
    """Cache store backed by Redis.

    All keys are namespaced under a prefix so several services can share
    one Redis database.
    """

    def __init__(self, client: Redis, prefix: str = settings.cache_prefix):
        self.client = client
        self.prefix = prefix

    def _full_key(self, key: str) -> str:
        return f"{self.prefix}:{key}"

    async def get(self, key: str) -> bytes | None:
        return cast(bytes | None, await self.client.get(self._full_key(key)))

    async def set(self, key: str, value: bytes, ttl_seconds: int) -> None:
        ttl = _validate_ttl(ttl_seconds)
        if ttl == 0:
            # SETEX rejects a zero TTL; an entry that expires now is a delete
            await self.client.delete(self._full_key(key))
            return
        await self.client.setex(self._full_key(key), ttl, value)

    async def delete(self, key: str) -> None:
        await self.client.delete(self._full_key(key))

    async def delete_pattern(self, pattern: str) -> int:
        """Delete matching keys.

        Uses SCAN to avoid blocking on large keyspaces.
        """
        prefix = CacheKeys.pattern_prefix(pattern)
        match = glob_escape(self._full_key(prefix)) + "*"
        deleted = 0
        batch: list[bytes] = []

        async for key in self.client.scan_iter(match=match, count=500):
            batch.append(key)
            if len(batch) >= 500:
                deleted += cast(int, await self.client.delete(*batch))
                batch.clear()
        if batch:
            deleted += cast(int, await self.client.delete(*batch))

        return deleted

    async def health_check(self) -> bool:
        """Check Redis connectivity."""
        try:
            await cast(Awaitable[bool], self.client.ping())
            return True
        except Exception:
            return False
