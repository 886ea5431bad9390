"""Read-path cache wrapper (cache-aside).

Derives a canonical key from (entity kind, owner, query parameters), serves
hits without touching the datastore, and populates the cache on a miss with
a TTL chosen per entity kind. Callers cannot tell which path served them.

Loaders must return JSON-serialisable data (dicts and lists of primitives),
since a hit returns the decoded JSON of what the loader produced.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from typing import Any, TypeVar

from edustride.cache.keys import CacheKeys, EntityKind
from edustride.cache.resilient import ResilientCache
from edustride.config import settings

T = TypeVar("T")

# Frequently mutated kinds get short TTLs, slow-changing kinds longer ones.
CACHE_TTLS: dict[EntityKind, int] = {
    EntityKind.NOTIFICATIONS: 30,
    EntityKind.ACTIVITIES: 60,
    EntityKind.ACTIVITY_STATS: 60,
    EntityKind.PORTFOLIO: 300,
    EntityKind.SKILLS: 300,
    EntityKind.ROADMAP: 300,
    EntityKind.QUIZZES: 300,
}


def ttl_for(kind: EntityKind) -> int:
    return CACHE_TTLS.get(kind, settings.cache_default_ttl)


async def cached_read(
    cache: ResilientCache,
    kind: EntityKind,
    owner_id: str,
    params: Mapping[str, Any] | None,
    loader: Callable[[], Awaitable[T]],
    ttl: int | None = None,
) -> T:
    """Serve a collection read for a user through the cache."""
    key = CacheKeys.collection(kind, owner_id, params)
    return await read_through(cache, key, loader, ttl if ttl is not None else ttl_for(kind))


async def cached_entity(
    cache: ResilientCache,
    kind: EntityKind,
    owner_id: str,
    entity_id: str,
    loader: Callable[[], Awaitable[T | None]],
    ttl: int | None = None,
) -> T | None:
    """Serve a single-entity read for its owner through the cache.

    The entry lives in the owner's namespace, so a loader must only return
    entities owned by owner_id; one returning None (not found) is not cached.
    """
    key = CacheKeys.entity(kind, owner_id, entity_id)
    cached = await cache.get(key)
    if cached.hit:
        return cached.value  # type: ignore[no-any-return]

    value = await loader()
    if value is not None:
        await cache.set(key, value, ttl if ttl is not None else ttl_for(kind))
    return value


async def read_through(
    cache: ResilientCache,
    key: str,
    loader: Callable[[], Awaitable[T]],
    ttl: int,
) -> T:
    """Return the cached value for key, or load, cache and return it."""
    cached = await cache.get(key)
    if cached.hit:
        return cached.value  # type: ignore[no-any-return]

    value = await loader()
    await cache.set(key, value, ttl)
    return value
