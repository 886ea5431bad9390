"""Cache store backends for EduStride.

Stores deal in opaque bytes with a TTL:
- InMemoryCacheStore: process-wide dict, the default for single instances
- RedisCacheStore: shared Redis (see edustride.cache.redis)

Stores raise on failure. Callers go through ResilientCache, which turns
every failure into a logged miss or no-op.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass

from edustride.cache.keys import CacheKeys

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


@dataclass(slots=True)
class CacheEntry:
    """A cached value and its absolute expiry time."""

    key: str
    value: bytes
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class CacheStore(ABC):
    """Abstract key/value store with TTL expiry and prefix deletion."""

    @abstractmethod
    async def get(self, key: str) -> bytes | None:
        """Get a value, or None if absent or expired."""

    @abstractmethod
    async def set(self, key: str, value: bytes, ttl_seconds: int) -> None:
        """Store a value, overwriting any existing entry."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Delete a key. Deleting an absent key is not an error."""

    @abstractmethod
    async def delete_pattern(self, pattern: str) -> int:
        """Delete every key matching a trailing-wildcard pattern.

        Returns the number of keys deleted.
        """

    async def invalidate_user(self, user_id: str) -> int:
        """Delete every key cached for a user, across all entity kinds."""
        deleted = 0
        for pattern in CacheKeys.user_patterns(user_id):
            deleted += await self.delete_pattern(pattern)
        return deleted

    async def health_check(self) -> bool:
        return True

    async def close(self) -> None:
        """Release backend resources."""


def _validate_ttl(ttl_seconds: int) -> int:
    if isinstance(ttl_seconds, bool) or not isinstance(ttl_seconds, int):
        raise TypeError(f"TTL must be whole seconds, got {ttl_seconds!r}")
    if ttl_seconds < 0:
        raise ValueError(f"TTL must not be negative, got {ttl_seconds}")
    return ttl_seconds


class InMemoryCacheStore(CacheStore):
    """In-process cache store.

    Expiry is checked lazily on read; expired entries are also dropped by
    sweep(), which set() runs opportunistically every sweep_interval seconds.
    The clock is injectable so TTL behaviour can be tested without sleeping.
    """

    def __init__(self, clock: Clock = time.monotonic, sweep_interval: float = 60.0):
        self._entries: dict[str, CacheEntry] = {}
        self._clock = clock
        self._sweep_interval = sweep_interval
        self._last_sweep = clock()

    async def get(self, key: str) -> bytes | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            self._entries.pop(key, None)
            return None
        return entry.value

    async def set(self, key: str, value: bytes, ttl_seconds: int) -> None:
        ttl = _validate_ttl(ttl_seconds)
        now = self._clock()
        self._entries[key] = CacheEntry(key=key, value=value, expires_at=now + ttl)
        if now - self._last_sweep >= self._sweep_interval:
            self.sweep()

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    async def delete_pattern(self, pattern: str) -> int:
        prefix = CacheKeys.pattern_prefix(pattern)
        matching = [key for key in self._entries if key.startswith(prefix)]
        for key in matching:
            del self._entries[key]
        return len(matching)

    def sweep(self) -> int:
        """Drop expired entries. Returns the number removed."""
        now = self._clock()
        self._last_sweep = now
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug("Swept %d expired cache entries", len(expired))
        return len(expired)

    def keys(self) -> list[str]:
        """Keys currently held, including expired entries not yet swept."""
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    async def close(self) -> None:
        self._entries.clear()
