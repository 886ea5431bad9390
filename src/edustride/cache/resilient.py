"""Failure-containing facade over a CacheStore.

The cache is a pure optimization: no cache error may fail a request. Every
operation here returns a CacheResult instead of raising, applies a timeout
(a timed-out read is a miss), and logs failures as warnings. Values are
JSON-encoded with orjson on the way in and decoded on the way out.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

import orjson

from edustride.cache.keys import CacheKeys
from edustride.cache.store import CacheStore
from edustride.config import settings
from edustride.errors import CacheFailure
from edustride.observability.metrics import (
    record_cache_failure,
    record_cache_hit,
    record_cache_miss,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class CacheResult(Generic[T]):
    """Outcome of one cache operation.

    For reads, hit tells a cached value apart from a miss (a cached JSON
    null is still a hit). A failed operation always reports hit=False.
    """

    value: T | None = None
    hit: bool = False
    error: CacheFailure | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ResilientCache:
    """Cache facade used by the read and write paths."""

    key = staticmethod(CacheKeys.key)

    def __init__(self, store: CacheStore, timeout: float = settings.cache_timeout_seconds):
        self.store = store
        self.timeout = timeout

    async def _run(self, operation: str, key: str, awaitable: Awaitable[T]) -> CacheResult[T]:
        try:
            value = await asyncio.wait_for(awaitable, timeout=self.timeout)
        except Exception as exc:
            failure = CacheFailure(operation, key, exc)
            logger.warning("Cache %s failed for %s: %r", operation, key, exc)
            record_cache_failure(operation)
            return CacheResult(error=failure)
        return CacheResult(value=value)

    async def get(self, key: str) -> CacheResult[Any]:
        """Read and decode a value. Failures and timeouts read as a miss."""
        namespace = CacheKeys.parse_key(key)[0]
        result = await self._run("get", key, self.store.get(key))
        if not result.ok:
            return result
        if result.value is None:
            record_cache_miss(namespace)
            return CacheResult()
        try:
            decoded = orjson.loads(result.value)
        except orjson.JSONDecodeError as exc:
            logger.warning("Discarding undecodable cache entry %s: %s", key, exc)
            record_cache_failure("decode")
            await self.delete(key)
            return CacheResult(error=CacheFailure("decode", key, exc))
        record_cache_hit(namespace)
        return CacheResult(value=decoded, hit=True)

    async def set(self, key: str, value: Any, ttl_seconds: int) -> CacheResult[None]:
        try:
            payload = orjson.dumps(value)
        except TypeError as exc:
            logger.warning("Value for %s is not JSON serializable: %s", key, exc)
            record_cache_failure("encode")
            return CacheResult(error=CacheFailure("encode", key, exc))
        return await self._run("set", key, self.store.set(key, payload, ttl_seconds))

    async def delete(self, key: str) -> CacheResult[None]:
        return await self._run("delete", key, self.store.delete(key))

    async def delete_pattern(self, pattern: str) -> CacheResult[int]:
        return await self._run("delete_pattern", pattern, self.store.delete_pattern(pattern))

    async def invalidate_user(self, user_id: str) -> CacheResult[int]:
        return await self._run(
            "invalidate_user", CacheKeys.user_pattern(user_id), self.store.invalidate_user(user_id)
        )
