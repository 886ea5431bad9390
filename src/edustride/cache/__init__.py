"""Response cache for EduStride.

Provides the cache-aside layer in front of the datastore:
- Canonical key derivation per entity kind, owner and query
- TTL-based expiration, in-memory or Redis backed
- Pattern invalidation driven by the write path
- Failure containment: the cache never fails a request
"""

from edustride.cache.invalidation import ACTIVITY_KINDS, InvalidationPlan
from edustride.cache.keys import CacheKeys, EntityKind
from edustride.cache.read_through import CACHE_TTLS, cached_entity, cached_read, read_through
from edustride.cache.redis import RedisCacheStore, close_redis, get_redis
from edustride.cache.resilient import CacheResult, ResilientCache
from edustride.cache.runtime import create_cache_store, start_cache, stop_cache
from edustride.cache.store import CacheStore, InMemoryCacheStore

__all__ = [
    # Keys
    "CacheKeys",
    "EntityKind",
    # Stores
    "CacheStore",
    "InMemoryCacheStore",
    "RedisCacheStore",
    "get_redis",
    "close_redis",
    "create_cache_store",
    "start_cache",
    "stop_cache",
    # Facade
    "CacheResult",
    "ResilientCache",
    # Read path
    "CACHE_TTLS",
    "cached_read",
    "cached_entity",
    "read_through",
    # Write path
    "ACTIVITY_KINDS",
    "InvalidationPlan",
]
