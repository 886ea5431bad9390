"""Write-path coordinator.

Every mutating operation runs through the same fixed sequence:

1. Write to the datastore. A failure aborts here and propagates.
2. Invalidate every cache entry the write may have made stale.
3. Publish the domain events describing the change.

Steps 2 and 3 are best-effort: their failures are logged and reported in
the WriteOutcome, never raised, and never undo the committed write.
Invalidating before publishing means a client that refetches in reaction
to an event cannot be served a cache entry from before the write.

There is no atomicity across the three systems. A reader between steps 1
and 2 may still see the old cached value for up to one TTL.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from typing import Generic, TypeVar, Union

from edustride.cache.invalidation import InvalidationPlan
from edustride.cache.resilient import CacheResult, ResilientCache
from edustride.errors import DatastoreFailure
from edustride.events.broker import EventBroker
from edustride.events.publisher import PublishResult, publish_events
from edustride.events.schemas import EventSpec

logger = logging.getLogger(__name__)

T = TypeVar("T")

PlanSource = Union[InvalidationPlan, Callable[[T], InvalidationPlan]]
EventSource = Union[Iterable[EventSpec], Callable[[T], Iterable[EventSpec]]]


@dataclass(frozen=True)
class WriteOutcome(Generic[T]):
    """The committed write and what happened to its side effects."""

    value: T
    invalidation: list[CacheResult[int]] = field(default_factory=list)
    published: list[PublishResult] = field(default_factory=list)

    @property
    def cache_invalidated(self) -> bool:
        return all(result.ok for result in self.invalidation)

    @property
    def events_published(self) -> bool:
        return all(result.ok for result in self.published)

    @property
    def fully_applied(self) -> bool:
        return self.cache_invalidated and self.events_published


class WritePathCoordinator:
    """Runs writes with their invalidation and publish side effects."""

    def __init__(self, cache: ResilientCache, broker: EventBroker):
        self.cache = cache
        self.broker = broker

    async def execute(
        self,
        user_id: str,
        write: Callable[[], Awaitable[T]],
        *,
        invalidate: PlanSource[T] | None = None,
        events: EventSource[T] | None = None,
    ) -> WriteOutcome[T]:
        """Run write, then invalidate, then publish.

        invalidate and events may be given directly or as functions of the
        written value (for entities whose id is only known after the write).
        If the plan cannot be built, everything cached for the user is
        invalidated instead.

        Raises:
            DatastoreFailure: If the write fails; nothing else is attempted
        """
        try:
            value = await write()
        except DatastoreFailure as exc:
            logger.error("Write for user %s failed: %s", user_id, exc)
            raise

        plan = self._resolve_plan(user_id, value, invalidate)
        invalidation = await plan.apply(self.cache) if plan else []

        specs = self._resolve_events(user_id, value, events)
        published = await publish_events(self.broker, user_id, specs) if specs else []

        outcome = WriteOutcome(value=value, invalidation=invalidation, published=published)
        if not outcome.fully_applied:
            logger.warning(
                "Write for user %s committed with incomplete side effects "
                "(cache invalidated: %s, events published: %s)",
                user_id,
                outcome.cache_invalidated,
                outcome.events_published,
            )
        return outcome

    @staticmethod
    def _resolve_plan(
        user_id: str, value: T, invalidate: PlanSource[T] | None
    ) -> InvalidationPlan:
        if invalidate is None:
            return InvalidationPlan()
        if isinstance(invalidate, InvalidationPlan):
            return invalidate
        try:
            return invalidate(value)
        except Exception:
            logger.exception("Could not build invalidation plan; invalidating user %s", user_id)
            return InvalidationPlan.for_user(user_id)

    @staticmethod
    def _resolve_events(user_id: str, value: T, events: EventSource[T] | None) -> list[EventSpec]:
        if events is None:
            return []
        try:
            return list(events(value) if callable(events) else events)
        except Exception:
            logger.exception("Could not build events for write by user %s", user_id)
            return []
