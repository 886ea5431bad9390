"""Bounded per-user history of recent events, used for reconnect replay."""

from __future__ import annotations

from collections import deque
from collections.abc import Iterator

from edustride.events.schemas import DomainEvent, RealtimeEventType


class RecentEventRing:
    """Fixed-capacity FIFO of a user's most recent events.

    Appending to a full ring evicts the oldest event. The id of the newest
    evicted event is remembered so since() can tell "nothing newer" apart
    from "history you need was dropped".
    """

    def __init__(self, capacity: int = 50):
        if capacity < 1:
            raise ValueError(f"Ring capacity must be positive, got {capacity}")
        self.capacity = capacity
        self._events: deque[DomainEvent] = deque()
        self.last_evicted_id = 0

    def append(self, event: DomainEvent) -> DomainEvent | None:
        """Append an event, returning the evicted one if the ring was full."""
        if self._events and event.id <= self._events[-1].id:
            raise ValueError(
                f"Event ids must increase: {event.id} after {self._events[-1].id}"
            )
        evicted = None
        if len(self._events) >= self.capacity:
            evicted = self._events.popleft()
            self.last_evicted_id = evicted.id
        self._events.append(event)
        return evicted

    def since(self, last_id: int) -> list[DomainEvent] | None:
        """Events with id > last_id, oldest first.

        Returns None when events after last_id have been evicted, i.e. the
        caller can no longer be brought up to date from the ring.
        """
        if last_id < self.last_evicted_id:
            return None
        return [event for event in self._events if event.id > last_id]

    def recent(
        self, event_type: RealtimeEventType | None = None, limit: int | None = None
    ) -> list[DomainEvent]:
        """Newest-first view, optionally filtered by type."""
        events = [
            event
            for event in reversed(self._events)
            if event_type is None or event.type == event_type
        ]
        return events[:limit] if limit is not None else events

    @property
    def oldest_id(self) -> int | None:
        return self._events[0].id if self._events else None

    @property
    def newest_id(self) -> int | None:
        return self._events[-1].id if self._events else None

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self) -> Iterator[DomainEvent]:
        return iter(self._events)
