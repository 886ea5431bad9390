"""Realtime event system for EduStride.

Every write produces domain events for the user it affects:
- The broker fans each event out to that user's live subscriptions
- A bounded ring of recent events per user supports replay on reconnect
- Stream sessions render subscriptions as Server-Sent Events

Delivery is best-effort and in-process: per-user publish order is kept,
slow subscribers are shed, and nothing survives a restart.
"""

from edustride.events.broker import (
    CloseReason,
    EventBroker,
    SubscriberState,
    Subscription,
    SubscriptionClosed,
)
from edustride.events.publisher import PublishResult, publish_events
from edustride.events.ring import RecentEventRing
from edustride.events.runtime import create_broker, start_broker, stop_broker
from edustride.events.schemas import (
    ControlFrameType,
    DomainEvent,
    EventSpec,
    RealtimeEventType,
    ReplayGap,
)
from edustride.events.stream import SSE_HEADERS, StreamSession, StreamSessionManager, format_sse

__all__ = [
    # Event types
    "RealtimeEventType",
    "ControlFrameType",
    "DomainEvent",
    "ReplayGap",
    "EventSpec",
    # Broker
    "EventBroker",
    "Subscription",
    "SubscriberState",
    "SubscriptionClosed",
    "CloseReason",
    "RecentEventRing",
    "create_broker",
    "start_broker",
    "stop_broker",
    # Streaming
    "StreamSession",
    "StreamSessionManager",
    "SSE_HEADERS",
    "format_sse",
    # Publishing
    "PublishResult",
    "publish_events",
]
