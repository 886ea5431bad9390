"""Runtime wiring for the EduStride event broker and stream sessions."""

from __future__ import annotations

import logging

from edustride.config import settings
from edustride.events.broker import EventBroker
from edustride.events.stream import StreamSessionManager

logger = logging.getLogger(__name__)


def create_broker() -> EventBroker:
    """Create an event broker based on configuration."""
    return EventBroker(
        ring_capacity=settings.event_ring_capacity,
        buffer_size=settings.subscriber_buffer_size,
        degradation_threshold=settings.subscriber_degradation_threshold,
    )


def create_stream_manager(broker: EventBroker) -> StreamSessionManager:
    return StreamSessionManager(
        broker,
        heartbeat_interval=settings.stream_heartbeat_seconds,
        retry_ms=settings.stream_retry_ms,
    )


async def start_broker() -> tuple[EventBroker, StreamSessionManager]:
    """Create and start the broker, with a session manager on top of it."""
    broker = create_broker()
    await broker.start()
    return broker, create_stream_manager(broker)


async def stop_broker(broker: EventBroker, streams: StreamSessionManager) -> None:
    """Close every open stream, then stop the broker."""
    closed = streams.close_all()
    if closed:
        logger.info("Closed %d open streams", closed)
    await broker.shutdown()
