"""Tests for event builders and best-effort publishing."""

from unittest.mock import AsyncMock

import pytest

from edustride.events.broker import EventBroker
from edustride.events.publisher import (
    achievement_unlocked_event,
    activity_event,
    notification_event,
    portfolio_update_event,
    publish_events,
    roadmap_update_event,
    skill_progress_event,
)
from edustride.events.schemas import RealtimeEventType


class TestEventBuilders:
    """Test event payload construction."""

    def test_activity_event(self) -> None:
        """Activity events carry action and entity."""
        spec = activity_event("SKILL_ADDED", "skill", "s1", {"level": "BEGINNER"})
        assert spec.type is RealtimeEventType.ACTIVITY
        assert spec.payload == {
            "action": "SKILL_ADDED",
            "entityType": "skill",
            "entityId": "s1",
            "metadata": {"level": "BEGINNER"},
        }

    def test_activity_event_omits_empty_fields(self) -> None:
        """Missing entity id and metadata are left out."""
        assert activity_event("X", "quiz").payload == {"action": "X", "entityType": "quiz"}

    def test_portfolio_update_event(self) -> None:
        """Portfolio events name the item and the action."""
        spec = portfolio_update_event("p1", "published", "My site")
        assert spec.type is RealtimeEventType.PORTFOLIO_UPDATE
        assert spec.payload == {"portfolioId": "p1", "action": "published", "title": "My site"}

    def test_skill_progress_event(self) -> None:
        """Skill progress events carry old and new progress."""
        spec = skill_progress_event("s1", "Python", 20, 50)
        assert spec.payload["oldProgress"] == 20
        assert spec.payload["newProgress"] == 50
        assert spec.payload["action"] == "updated"

    def test_roadmap_update_event_optional_fields(self) -> None:
        """Item id and progress are only present when given."""
        assert "itemId" not in roadmap_update_event("r1", "created", "Plan").payload
        spec = roadmap_update_event("r1", "item-updated", "Plan", item_id="i1", progress=50)
        assert spec.payload["itemId"] == "i1"
        assert spec.payload["progress"] == 50

    def test_achievement_event(self) -> None:
        """Achievements may point at the entity that earned them."""
        spec = achievement_unlocked_event("perfect-score", "Perfect", "All correct", "quiz", "q1")
        assert spec.type is RealtimeEventType.ACHIEVEMENT_UNLOCKED
        assert spec.payload["entityId"] == "q1"

    def test_notification_event_lowercases_level(self) -> None:
        """Stored upper-case levels are sent lower-case."""
        spec = notification_event("n1", "Title", "Body", level="WARNING")
        assert spec.payload["type"] == "warning"
        assert spec.payload["read"] is False


class TestPublishEvents:
    """Test best-effort publishing."""

    @pytest.fixture
    async def broker(self) -> EventBroker:
        """Create a started broker."""
        broker = EventBroker(ring_capacity=5, buffer_size=10)
        await broker.start()
        return broker

    async def test_publishes_in_order(self, broker: EventBroker) -> None:
        """Specs become events in the given order."""
        specs = [activity_event("A", "skill"), portfolio_update_event("p1", "created", "T")]
        results = await publish_events(broker, "u1", specs)

        assert all(result.ok for result in results)
        assert [result.event.type for result in results] == [
            RealtimeEventType.ACTIVITY,
            RealtimeEventType.PORTFOLIO_UPDATE,
        ]
        assert results[0].event.id < results[1].event.id

    async def test_failure_is_reported_not_raised(self) -> None:
        """A failing publish is returned and later specs still go out."""
        broker = AsyncMock()
        broker.publish = AsyncMock(side_effect=[RuntimeError("boom"), object()])
        specs = [activity_event("A", "skill"), activity_event("B", "skill")]

        results = await publish_events(broker, "u1", specs)

        assert not results[0].ok
        assert isinstance(results[0].error, RuntimeError)
        assert results[1].ok
        assert broker.publish.await_count == 2
