"""Server-Sent Events sessions over broker subscriptions.

A StreamSession turns one Subscription into the text/event-stream wire
format and keeps the connection alive with heartbeats:

    id: 42
    event: notification
    data: {"id":42,"type":"notification","userId":"u1","data":{...},...}

The first frame is always "connected" (carrying a retry hint for the
client), a "replay-gap" frame tells the client to refetch, and a "ping"
frame is sent whenever the subscription has been idle for a heartbeat
interval. Control frames carry an id only where the client must resume
from it.

Sessions are one-shot: iterate once, and when the iteration ends for any
reason the subscription is released.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator, Awaitable, Callable, Iterable
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

import orjson

from edustride.config import settings
from edustride.errors import StreamTransportFailure
from edustride.events.broker import CloseReason, EventBroker, Subscription, SubscriptionClosed
from edustride.events.schemas import (
    ControlFrameType,
    DomainEvent,
    RealtimeEventType,
    ReplayGap,
    StreamItem,
)

logger = logging.getLogger(__name__)

SSE_MEDIA_TYPE = "text/event-stream"

# Disable caching and proxy buffering for the stream response
SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def format_sse(
    event: str,
    data: Any,
    event_id: int | None = None,
    retry_ms: int | None = None,
) -> str:
    """Render one SSE frame. data is JSON-encoded on a single line."""
    lines = []
    if retry_ms is not None:
        lines.append(f"retry: {retry_ms}")
    if event_id is not None:
        lines.append(f"id: {event_id}")
    lines.append(f"event: {event}")
    lines.append(f"data: {orjson.dumps(data).decode()}")
    return "\n".join(lines) + "\n\n"


def _now() -> str:
    return datetime.now(UTC).isoformat()


class StreamSession:
    """One client's event stream.

    Iterating yields SSE frames until the subscription is closed by the
    broker (shutdown, degradation). Closing the session, or abandoning the
    iteration (client disconnect cancels it), unsubscribes exactly once.
    """

    def __init__(
        self,
        broker: EventBroker,
        subscription: Subscription,
        heartbeat_interval: float = settings.stream_heartbeat_seconds,
        retry_ms: int = settings.stream_retry_ms,
        on_close: Callable[[StreamSession], None] | None = None,
    ):
        self.broker = broker
        self.subscription = subscription
        self.heartbeat_interval = heartbeat_interval
        self.retry_ms = retry_ms
        self.frames_sent = 0
        self._on_close = on_close
        self._started = False
        self._closed = False

    @property
    def connection_id(self) -> str:
        return self.subscription.connection_id

    @property
    def user_id(self) -> str:
        return self.subscription.user_id

    @property
    def closed(self) -> bool:
        return self._closed

    def __aiter__(self) -> AsyncGenerator[str, None]:
        if self._started:
            raise RuntimeError("A stream session can only be iterated once")
        self._started = True
        return self._frames()

    async def _frames(self) -> AsyncGenerator[str, None]:
        try:
            yield self._connected_frame()
            while True:
                try:
                    item = await self.subscription.receive(timeout=self.heartbeat_interval)
                except TimeoutError:
                    yield self._ping_frame()
                    continue
                except SubscriptionClosed as exc:
                    logger.info(
                        "Stream %s for user %s ended: %s",
                        self.connection_id,
                        self.user_id,
                        exc.reason.value if exc.reason else "closed",
                    )
                    return
                yield self.render(item)
        finally:
            self.close()

    async def pump(self, send: Callable[[str], Awaitable[None]]) -> bool:
        """Write every frame with send until the stream ends.

        A failing send is a transport failure: the session is closed as
        such and pump returns False instead of raising.
        """
        frames = self.__aiter__()
        try:
            async for frame in frames:
                try:
                    await send(frame)
                except Exception as exc:
                    failure = StreamTransportFailure(
                        f"Writing to stream {self.connection_id} failed: {exc!r}"
                    )
                    logger.info("%s", failure)
                    self.close(CloseReason.TRANSPORT_ERROR)
                    return False
                self.frames_sent += 1
            return True
        finally:
            await frames.aclose()

    def close(self, reason: CloseReason = CloseReason.CLIENT_DISCONNECT) -> None:
        """Release the subscription. Idempotent; the first reason wins."""
        if self._closed:
            return
        self._closed = True
        self.broker.discard(self.connection_id, reason)
        if self._on_close is not None:
            self._on_close(self)

    def render(self, item: StreamItem) -> str:
        if isinstance(item, DomainEvent):
            return format_sse(item.type.value, item.to_dict(), event_id=item.id)
        if isinstance(item, ReplayGap):
            return format_sse(
                ControlFrameType.REPLAY_GAP.value, item.to_dict(), event_id=item.resume_from
            )
        raise TypeError(f"Cannot render stream item {item!r}")

    def _connected_frame(self) -> str:
        types = sorted(t.value for t in self.subscription.interested_types)
        return format_sse(
            ControlFrameType.CONNECTED.value,
            {
                "connectionId": self.connection_id,
                "userId": self.user_id,
                "types": types or [t.value for t in RealtimeEventType],
                "timestamp": _now(),
            },
            event_id=self.subscription.last_delivered_event_id,
            retry_ms=self.retry_ms,
        )

    def _ping_frame(self) -> str:
        return format_sse(ControlFrameType.PING.value, {"timestamp": _now()})


class StreamSessionManager:
    """Opens stream sessions against the broker and tracks the live ones."""

    def __init__(
        self,
        broker: EventBroker,
        heartbeat_interval: float = settings.stream_heartbeat_seconds,
        retry_ms: int = settings.stream_retry_ms,
    ):
        self.broker = broker
        self.heartbeat_interval = heartbeat_interval
        self.retry_ms = retry_ms
        self._sessions: dict[str, StreamSession] = {}

    async def open(
        self,
        user_id: str,
        requested_types: Iterable[RealtimeEventType] | None = None,
        last_event_id: int | None = None,
        connection_id: str | None = None,
    ) -> StreamSession:
        """Subscribe and wrap the subscription in a new session."""
        subscription = await self.broker.subscribe(
            user_id,
            connection_id=connection_id or f"{user_id}-{uuid4().hex[:12]}",
            interested_types=requested_types,
            last_event_id=last_event_id,
        )
        session = StreamSession(
            self.broker,
            subscription,
            heartbeat_interval=self.heartbeat_interval,
            retry_ms=self.retry_ms,
            on_close=self._forget,
        )
        self._sessions[session.connection_id] = session
        logger.info(
            "Opened stream %s for user %s (resume after %s)",
            session.connection_id,
            user_id,
            last_event_id,
        )
        return session

    def _forget(self, session: StreamSession) -> None:
        self._sessions.pop(session.connection_id, None)

    def close_all(self, reason: CloseReason = CloseReason.SHUTDOWN) -> int:
        sessions = list(self._sessions.values())
        for session in sessions:
            session.close(reason)
        return len(sessions)

    @property
    def active_count(self) -> int:
        return len(self._sessions)

    def sessions_for(self, user_id: str) -> list[StreamSession]:
        return [s for s in self._sessions.values() if s.user_id == user_id]
