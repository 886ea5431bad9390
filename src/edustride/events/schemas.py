"""Event schemas for EduStride.

Defines the typed domain events delivered to realtime subscribers, and the
control signals the stream interleaves with them. Events carry everything
the UI needs to react without a refetch.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Union

logger = logging.getLogger(__name__)


class RealtimeEventType(str, Enum):
    """Closed set of domain event types."""

    ACTIVITY = "activity"
    NOTIFICATION = "notification"
    PORTFOLIO_UPDATE = "portfolio-update"
    SKILL_PROGRESS = "skill-progress"
    ROADMAP_UPDATE = "roadmap-update"
    QUIZ_COMPLETED = "quiz-completed"
    ACHIEVEMENT_UNLOCKED = "achievement-unlocked"

    @classmethod
    def parse_many(cls, raw: str | Iterable[str] | None) -> frozenset[RealtimeEventType]:
        """Parse a comma-separated type filter.

        Unknown names are ignored. An empty result means "all types".
        """
        if raw is None:
            return frozenset()
        names = raw.split(",") if isinstance(raw, str) else raw
        parsed: set[RealtimeEventType] = set()
        for name in names:
            name = name.strip()
            if not name:
                continue
            try:
                parsed.add(cls(name))
            except ValueError:
                logger.debug("Ignoring unknown event type filter %r", name)
        return frozenset(parsed)


class ControlFrameType(str, Enum):
    """Stream frames that are not domain events."""

    CONNECTED = "connected"
    PING = "ping"
    REPLAY_GAP = "replay-gap"


@dataclass(frozen=True, slots=True)
class DomainEvent:
    """A published event. Immutable once created."""

    id: int
    user_id: str
    type: RealtimeEventType
    payload: dict[str, Any]
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        """Wire representation of the event."""
        return {
            "id": self.id,
            "type": self.type.value,
            "userId": self.user_id,
            "data": self.payload,
            "timestamp": self.created_at.isoformat(),
        }


@dataclass(frozen=True, slots=True)
class ReplayGap:
    """Requested replay history is gone; the client must refetch.

    last_event_id is what the client asked to resume from, oldest_available
    the oldest id still retained for the user (None if nothing is retained).
    resume_from is the last id already covered by a refetch made now; live
    delivery continues after it.
    """

    last_event_id: int
    oldest_available: int | None
    resume_from: int
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        return {
            "lastEventId": self.last_event_id,
            "oldestAvailable": self.oldest_available,
            "resumeFrom": self.resume_from,
            "message": "Missed events are no longer available; refetch current state",
            "timestamp": self.created_at.isoformat(),
        }


@dataclass(frozen=True, slots=True)
class EventSpec:
    """An event to publish, before the broker assigns it an id."""

    type: RealtimeEventType
    payload: dict[str, Any]


# What a subscription yields to its stream
StreamItem = Union[DomainEvent, ReplayGap]
