"""Tests for the recent event ring."""

import pytest

from edustride.events.ring import RecentEventRing
from edustride.events.schemas import DomainEvent, RealtimeEventType


def make_event(event_id: int, event_type=RealtimeEventType.ACTIVITY) -> DomainEvent:
    return DomainEvent(id=event_id, user_id="u1", type=event_type, payload={"n": event_id})


class TestRecentEventRing:
    """Test bounded FIFO behaviour."""

    def test_capacity_must_be_positive(self) -> None:
        """A zero capacity ring is rejected."""
        with pytest.raises(ValueError):
            RecentEventRing(0)

    def test_append_until_full(self) -> None:
        """Appending below capacity evicts nothing."""
        ring = RecentEventRing(3)
        for i in (1, 2, 3):
            assert ring.append(make_event(i)) is None
        assert len(ring) == 3
        assert ring.oldest_id == 1
        assert ring.newest_id == 3

    def test_full_ring_evicts_oldest(self) -> None:
        """A full ring drops its oldest event."""
        ring = RecentEventRing(3)
        for i in (1, 2, 3):
            ring.append(make_event(i))
        evicted = ring.append(make_event(4))
        assert evicted is not None and evicted.id == 1
        assert [e.id for e in ring] == [2, 3, 4]
        assert ring.last_evicted_id == 1

    def test_ids_must_increase(self) -> None:
        """Out of order appends are rejected."""
        ring = RecentEventRing(3)
        ring.append(make_event(5))
        with pytest.raises(ValueError):
            ring.append(make_event(5))


class TestSince:
    """Test replay lookups."""

    def test_since_returns_newer_events(self) -> None:
        """Events after the given id come back oldest first."""
        ring = RecentEventRing(5)
        for i in (1, 2, 3, 4):
            ring.append(make_event(i))
        assert [e.id for e in ring.since(2)] == [3, 4]

    def test_since_newest_is_empty(self) -> None:
        """Nothing newer is an empty list, not a gap."""
        ring = RecentEventRing(5)
        ring.append(make_event(1))
        assert ring.since(1) == []

    def test_since_empty_ring(self) -> None:
        """An empty ring has nothing to replay."""
        assert RecentEventRing(5).since(0) == []

    def test_since_evicted_history_is_a_gap(self) -> None:
        """Asking for history older than the last eviction returns None."""
        ring = RecentEventRing(2)
        for i in (1, 2, 3, 4):
            ring.append(make_event(i))
        assert ring.since(1) is None
        assert [e.id for e in ring.since(2)] == [3, 4]


class TestRecent:
    """Test newest-first views."""

    def test_recent_newest_first_with_limit(self) -> None:
        """Recent events are newest first and honour the limit."""
        ring = RecentEventRing(5)
        for i in (1, 2, 3):
            ring.append(make_event(i))
        assert [e.id for e in ring.recent(limit=2)] == [3, 2]

    def test_recent_filtered_by_type(self) -> None:
        """Filtering keeps only the requested type."""
        ring = RecentEventRing(5)
        ring.append(make_event(1, RealtimeEventType.NOTIFICATION))
        ring.append(make_event(2, RealtimeEventType.ACTIVITY))
        ring.append(make_event(3, RealtimeEventType.NOTIFICATION))
        recent = ring.recent(RealtimeEventType.NOTIFICATION)
        assert [e.id for e in recent] == [3, 1]
