"""Event builders and best-effort publishing for write operations.

Builders return EventSpec values describing what changed, with enough
context (entity id, title, action) for the UI to react without a refetch.
The write path publishes them after the cache has been invalidated.

Example:
    from edustride.events.publisher import portfolio_update_event, publish_events

    specs = [portfolio_update_event(item.id, "created", item.title)]
    results = await publish_events(broker, user_id, specs)
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any, Literal

from edustride.events.broker import EventBroker
from edustride.events.schemas import DomainEvent, EventSpec, RealtimeEventType

logger = logging.getLogger(__name__)

PortfolioAction = Literal["created", "updated", "deleted", "published"]
RoadmapAction = Literal[
    "created", "updated", "deleted", "item-added", "item-updated", "item-removed", "completed"
]


@dataclass(frozen=True, slots=True)
class PublishResult:
    """Outcome of publishing one event. Publishing never raises."""

    spec: EventSpec
    event: DomainEvent | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def activity_event(
    action: str,
    entity_type: str,
    entity_id: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> EventSpec:
    """An activity was recorded for the user."""
    payload: dict[str, Any] = {"action": action, "entityType": entity_type}
    if entity_id is not None:
        payload["entityId"] = entity_id
    if metadata:
        payload["metadata"] = metadata
    return EventSpec(RealtimeEventType.ACTIVITY, payload)


def portfolio_update_event(portfolio_id: str, action: PortfolioAction, title: str) -> EventSpec:
    return EventSpec(
        RealtimeEventType.PORTFOLIO_UPDATE,
        {"portfolioId": portfolio_id, "action": action, "title": title},
    )


def skill_progress_event(
    skill_id: str,
    skill_name: str,
    old_progress: int | None,
    new_progress: int | None,
    action: str = "updated",
) -> EventSpec:
    return EventSpec(
        RealtimeEventType.SKILL_PROGRESS,
        {
            "skillId": skill_id,
            "skillName": skill_name,
            "action": action,
            "oldProgress": old_progress,
            "newProgress": new_progress,
        },
    )


def roadmap_update_event(
    roadmap_id: str,
    action: RoadmapAction,
    title: str,
    item_id: str | None = None,
    progress: int | None = None,
) -> EventSpec:
    payload: dict[str, Any] = {"roadmapId": roadmap_id, "action": action, "title": title}
    if item_id is not None:
        payload["itemId"] = item_id
    if progress is not None:
        payload["progress"] = progress
    return EventSpec(RealtimeEventType.ROADMAP_UPDATE, payload)


def quiz_completed_event(
    quiz_id: str,
    attempt_id: str,
    title: str,
    score: int,
    passed: bool,
) -> EventSpec:
    return EventSpec(
        RealtimeEventType.QUIZ_COMPLETED,
        {
            "quizId": quiz_id,
            "attemptId": attempt_id,
            "title": title,
            "score": score,
            "passed": passed,
        },
    )


def achievement_unlocked_event(
    achievement: str,
    title: str,
    description: str,
    entity_type: str | None = None,
    entity_id: str | None = None,
) -> EventSpec:
    payload: dict[str, Any] = {
        "achievement": achievement,
        "title": title,
        "description": description,
    }
    if entity_type is not None:
        payload["entityType"] = entity_type
        payload["entityId"] = entity_id
    return EventSpec(RealtimeEventType.ACHIEVEMENT_UNLOCKED, payload)


def notification_event(
    notification_id: str,
    title: str,
    message: str,
    level: str = "info",
    action_url: str | None = None,
    read: bool = False,
) -> EventSpec:
    """A notification for the user, as shown in the notification tray."""
    return EventSpec(
        RealtimeEventType.NOTIFICATION,
        {
            "id": notification_id,
            "title": title,
            "message": message,
            "type": level.lower(),
            "read": read,
            "actionUrl": action_url,
        },
    )


async def publish_events(
    broker: EventBroker,
    user_id: str,
    specs: Iterable[EventSpec],
) -> list[PublishResult]:
    """Publish events in order. Failures are logged and returned, not raised."""
    results = []
    for spec in specs:
        try:
            event = await broker.publish(user_id, spec.type, spec.payload)
        except Exception as exc:
            logger.warning(
                "Failed to publish %s event for user %s: %r", spec.type.value, user_id, exc
            )
            results.append(PublishResult(spec, error=exc))
            continue
        results.append(PublishResult(spec, event=event))
    return results
