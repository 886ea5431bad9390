"""Cache invalidation for the write path.

An InvalidationPlan names the exact keys and prefix patterns that may be
stale after a mutation. The write path applies the plan after the datastore
commit and before the event is published, so a client reacting to the
event never reads a pre-write cache entry.

Example:
    plan = InvalidationPlan.for_entity(
        EntityKind.PORTFOLIO,
        owner_id=user_id,
        entity_id=portfolio_id,
        related=(EntityKind.ACTIVITIES,),
    )
    results = await plan.apply(cache)
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from edustride.cache.keys import CacheKeys, EntityKind
from edustride.cache.resilient import CacheResult, ResilientCache

logger = logging.getLogger(__name__)

# Kinds whose cached reads embed activity rows; any mutation that records
# an activity must also clear these.
ACTIVITY_KINDS = (EntityKind.ACTIVITIES, EntityKind.ACTIVITY_STATS)


@dataclass(frozen=True)
class InvalidationPlan:
    """Keys and trailing-wildcard patterns to clear after a write."""

    keys: tuple[str, ...] = ()
    patterns: tuple[str, ...] = ()

    @classmethod
    def for_entity(
        cls,
        kind: EntityKind,
        owner_id: str,
        entity_id: str | None = None,
        related: Iterable[EntityKind] = (),
    ) -> "InvalidationPlan":
        """Plan for a mutation of one entity.

        Clears the entity's own key, every collection read of its kind for
        the owner, and the owner's collections of each related kind.
        """
        keys = (CacheKeys.entity(kind, owner_id, entity_id),) if entity_id is not None else ()
        patterns = [CacheKeys.collection_pattern(kind, owner_id)]
        patterns.extend(CacheKeys.collection_pattern(other, owner_id) for other in related)
        return cls(keys=keys, patterns=tuple(dict.fromkeys(patterns)))

    @classmethod
    def for_user(cls, user_id: str) -> "InvalidationPlan":
        """Plan clearing everything cached for a user."""
        return cls(patterns=tuple(CacheKeys.user_patterns(user_id)))

    def merge(self, other: "InvalidationPlan") -> "InvalidationPlan":
        return InvalidationPlan(
            keys=tuple(dict.fromkeys(self.keys + other.keys)),
            patterns=tuple(dict.fromkeys(self.patterns + other.patterns)),
        )

    def __bool__(self) -> bool:
        return bool(self.keys or self.patterns)

    async def apply(self, cache: ResilientCache) -> list[CacheResult[int]]:
        """Apply the plan. Never raises; failures are in the results."""
        results: list[CacheResult[int]] = []
        for key in self.keys:
            deleted = await cache.delete(key)
            results.append(CacheResult(error=deleted.error))
        for pattern in self.patterns:
            results.append(await cache.delete_pattern(pattern))

        failed = sum(1 for result in results if not result.ok)
        if failed:
            logger.warning(
                "Cache invalidation incomplete: %d of %d operations failed", failed, len(results)
            )
        return results
