"""In-process event broker for EduStride.

Routes published domain events to the live subscriptions of their user:
- Per-user registry of subscriptions and a bounded ring of recent events
- Replay from the ring on reconnect, or a replay-gap signal if history is gone
- Bounded per-subscription buffers; slow subscribers are shed, never waited on

Each subscription owns an asyncio.Queue that the broker fills with
put_nowait(). Publishing therefore never blocks on a subscriber.

None of the registry-mutating code paths await, so each of them runs as one
uninterrupted step of the event loop. That is the critical section: no
publish can interleave with a subscribe's replay, and sequence ids are
assigned and appended in a single step.

Single process only. Fanning out across instances needs an external
pub/sub backend.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from uuid import uuid4

from edustride.errors import BrokerDeliveryFailure
from edustride.events.ring import RecentEventRing
from edustride.events.schemas import DomainEvent, RealtimeEventType, ReplayGap, StreamItem
from edustride.observability.metrics import (
    record_event_dropped,
    record_event_published,
    record_subscriber_count,
)

logger = logging.getLogger(__name__)


class SubscriberState(str, Enum):
    """Lifecycle of a subscription. CLOSED is terminal."""

    CONNECTING = "connecting"
    ACTIVE = "active"
    CLOSED = "closed"


class CloseReason(str, Enum):
    """Why a subscription was closed."""

    CLIENT_DISCONNECT = "client-disconnect"
    TRANSPORT_ERROR = "transport-error"
    DEGRADED = "degraded"
    SHUTDOWN = "shutdown"


class SubscriptionClosed(Exception):
    """Raised by Subscription.receive() once the subscription has ended."""

    def __init__(self, reason: CloseReason | None):
        self.reason = reason
        super().__init__(f"Subscription closed ({reason.value if reason else 'unknown'})")


# Queued behind the last item when a subscription closes
_CLOSED = object()


class Subscription:
    """One live subscriber connection.

    Created by EventBroker.subscribe() and consumed by exactly one stream.
    The broker pushes into the buffer; the stream pulls with receive().
    """

    def __init__(
        self,
        user_id: str,
        connection_id: str,
        interested_types: frozenset[RealtimeEventType] = frozenset(),
        buffer_size: int = 100,
        degradation_threshold: int = 50,
        last_event_id: int | None = None,
    ):
        self.user_id = user_id
        self.connection_id = connection_id
        self.interested_types = interested_types
        self.degradation_threshold = degradation_threshold
        self.last_delivered_event_id = last_event_id
        self.state = SubscriberState.CONNECTING
        self.close_reason: CloseReason | None = None
        self.degraded = False
        self.dropped = 0
        self._buffer: asyncio.Queue[Any] = asyncio.Queue(maxsize=buffer_size)
        self._finished = False

    def wants(self, event_type: RealtimeEventType) -> bool:
        return not self.interested_types or event_type in self.interested_types

    @property
    def pending(self) -> int:
        """Items buffered and not yet received."""
        return self._buffer.qsize()

    @property
    def is_closed(self) -> bool:
        return self.state is SubscriberState.CLOSED

    async def receive(self, timeout: float | None = None) -> StreamItem:
        """Wait for the next event or replay-gap signal.

        Raises:
            TimeoutError: If nothing arrived within timeout seconds
            SubscriptionClosed: Once the subscription has ended and every
                item buffered before the close has been received
        """
        if self._finished:
            raise SubscriptionClosed(self.close_reason)
        if timeout is None:
            item = await self._buffer.get()
        else:
            item = await asyncio.wait_for(self._buffer.get(), timeout=timeout)
        if item is _CLOSED:
            self._finished = True
            raise SubscriptionClosed(self.close_reason)
        if isinstance(item, DomainEvent):
            self.last_delivered_event_id = item.id
        elif isinstance(item, ReplayGap):
            self.last_delivered_event_id = item.resume_from
        if self.degraded and self._buffer.empty():
            self._recover()
        return item  # type: ignore[no-any-return]

    def _enqueue(self, item: StreamItem) -> None:
        """Buffer an item without blocking.

        A full buffer sheds its oldest item and marks the subscription
        degraded. Draining the buffer clears the mark and the shed count.

        Raises:
            BrokerDeliveryFailure: Once more items have been shed than the
                degradation threshold allows
        """
        if self.state is SubscriberState.CLOSED:
            return
        if self._buffer.full():
            self._buffer.get_nowait()
            self.dropped += 1
            record_event_dropped()
            if not self.degraded:
                self.degraded = True
                logger.warning(
                    "Subscriber %s (user %s) is not keeping up; shedding oldest events",
                    self.connection_id,
                    self.user_id,
                )
            if self.dropped > self.degradation_threshold:
                raise BrokerDeliveryFailure(
                    self.connection_id, f"{self.dropped} events dropped from a full buffer"
                )
        self._buffer.put_nowait(item)

    def _recover(self) -> None:
        # Caught up: only an unbroken lag counts toward the threshold
        logger.info(
            "Subscriber %s (user %s) caught up after %d shed events",
            self.connection_id,
            self.user_id,
            self.dropped,
        )
        self.degraded = False
        self.dropped = 0

    def _activate(self) -> None:
        if self.state is SubscriberState.CONNECTING:
            self.state = SubscriberState.ACTIVE

    def _close(self, reason: CloseReason) -> bool:
        """Mark closed and wake the consumer. Returns False if already closed."""
        if self.state is SubscriberState.CLOSED:
            return False
        self.state = SubscriberState.CLOSED
        self.close_reason = reason
        if self._buffer.full():
            self._buffer.get_nowait()
        self._buffer.put_nowait(_CLOSED)
        return True

    def __repr__(self) -> str:
        return (
            f"Subscription(user_id={self.user_id!r}, connection_id={self.connection_id!r}, "
            f"state={self.state.value}, pending={self.pending}, dropped={self.dropped})"
        )


@dataclass
class _UserChannel:
    """Broker state owned per user."""

    ring: RecentEventRing
    subscriptions: dict[str, Subscription] = field(default_factory=dict)


class EventBroker:
    """Process-wide publish/subscribe hub for realtime events.

    Lifecycle: start() before serving, shutdown() on exit. Shutdown closes
    every subscription so open streams end.
    """

    def __init__(
        self,
        ring_capacity: int = 50,
        buffer_size: int = 100,
        degradation_threshold: int = 50,
    ):
        # A full replay plus the gap signal must always fit in a fresh buffer
        if buffer_size <= ring_capacity:
            logger.warning(
                "Subscriber buffer %d cannot hold a full replay of %d events; using %d",
                buffer_size,
                ring_capacity,
                ring_capacity + 1,
            )
            buffer_size = ring_capacity + 1
        self.ring_capacity = ring_capacity
        self.buffer_size = buffer_size
        self.degradation_threshold = degradation_threshold
        self._channels: dict[str, _UserChannel] = {}
        self._connections: dict[str, Subscription] = {}
        self._sequence = 0
        self._running = False
        self._shut_down = False

    @property
    def running(self) -> bool:
        return self._running

    @property
    def last_event_id(self) -> int:
        """Id of the most recently published event (0 if none)."""
        return self._sequence

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._shut_down = False
        logger.info(
            "Event broker started (ring=%d, buffer=%d, degradation threshold=%d)",
            self.ring_capacity,
            self.buffer_size,
            self.degradation_threshold,
        )

    async def shutdown(self) -> None:
        """Close every subscription and refuse new ones."""
        self._shut_down = True
        self._running = False
        closed = 0
        for connection_id in list(self._connections):
            if self.discard(connection_id, CloseReason.SHUTDOWN):
                closed += 1
        logger.info("Event broker stopped (%d subscriptions closed)", closed)

    def _channel(self, user_id: str) -> _UserChannel:
        channel = self._channels.get(user_id)
        if channel is None:
            channel = _UserChannel(ring=RecentEventRing(self.ring_capacity))
            self._channels[user_id] = channel
        return channel

    async def subscribe(
        self,
        user_id: str,
        connection_id: str | None = None,
        interested_types: Iterable[RealtimeEventType] | None = None,
        last_event_id: int | None = None,
    ) -> Subscription:
        """Register a subscriber, replaying missed events if asked to.

        With last_event_id, buffered events newer than it (that the
        subscriber is interested in) are queued oldest first. If the ring
        no longer reaches back to last_event_id, a single ReplayGap is
        queued instead and only new events follow.

        Raises:
            RuntimeError: If the broker has been shut down
            ValueError: If connection_id is already subscribed
        """
        if self._shut_down:
            raise RuntimeError("Event broker is shut down")
        connection_id = connection_id or uuid4().hex
        if connection_id in self._connections:
            raise ValueError(f"Connection {connection_id} is already subscribed")

        channel = self._channel(user_id)
        subscription = Subscription(
            user_id=user_id,
            connection_id=connection_id,
            interested_types=frozenset(interested_types or ()),
            buffer_size=self.buffer_size,
            degradation_threshold=self.degradation_threshold,
            last_event_id=last_event_id if last_event_id is not None else self._sequence,
        )
        channel.subscriptions[connection_id] = subscription
        self._connections[connection_id] = subscription

        if last_event_id is not None:
            self._replay(channel, subscription, last_event_id)
        subscription._activate()

        record_subscriber_count(len(self._connections))
        logger.debug(
            "Subscribed %s for user %s (types=%s, last_event_id=%s)",
            connection_id,
            user_id,
            sorted(t.value for t in subscription.interested_types) or "all",
            last_event_id,
        )
        return subscription

    def _replay(
        self, channel: _UserChannel, subscription: Subscription, last_event_id: int
    ) -> None:
        # An id from the future was issued by an earlier process
        events = None if last_event_id > self._sequence else channel.ring.since(last_event_id)
        if events is None:
            logger.info(
                "Replay gap for %s: requested after %d, oldest retained %s",
                subscription.connection_id,
                last_event_id,
                channel.ring.oldest_id,
            )
            subscription._enqueue(
                ReplayGap(last_event_id, channel.ring.oldest_id, resume_from=self._sequence)
            )
            return
        for event in events:
            if subscription.wants(event.type):
                subscription._enqueue(event)

    async def publish(
        self,
        user_id: str,
        event_type: RealtimeEventType | str,
        payload: dict[str, Any] | None = None,
    ) -> DomainEvent:
        """Record an event and deliver it to the user's active subscribers.

        Never waits on a subscriber. A subscriber that has fallen too far
        behind is closed as degraded; the others are unaffected.

        Raises:
            ValueError: If event_type is not a known event type
        """
        event_type = RealtimeEventType(event_type)
        self._sequence += 1
        event = DomainEvent(
            id=self._sequence,
            user_id=user_id,
            type=event_type,
            payload=dict(payload or {}),
        )
        channel = self._channel(user_id)
        channel.ring.append(event)
        record_event_published(event_type.value)

        for subscription in list(channel.subscriptions.values()):
            if subscription.state is not SubscriberState.ACTIVE:
                continue
            if not subscription.wants(event_type):
                continue
            try:
                subscription._enqueue(event)
            except BrokerDeliveryFailure as exc:
                logger.warning("Closing degraded subscriber: %s", exc)
                self.discard(subscription.connection_id, CloseReason.DEGRADED)

        return event

    async def unsubscribe(self, connection_id: str) -> None:
        """Remove a subscriber. Unknown or already removed ids are ignored."""
        self.discard(connection_id, CloseReason.CLIENT_DISCONNECT)

    def discard(
        self, connection_id: str, reason: CloseReason = CloseReason.CLIENT_DISCONNECT
    ) -> bool:
        """Synchronous unsubscribe, usable from cleanup code.

        Returns True if the connection was registered.
        """
        subscription = self._connections.pop(connection_id, None)
        if subscription is None:
            return False
        channel = self._channels.get(subscription.user_id)
        if channel is not None:
            channel.subscriptions.pop(connection_id, None)
        subscription._close(reason)
        record_subscriber_count(len(self._connections))
        logger.debug(
            "Unsubscribed %s for user %s (%s)", connection_id, subscription.user_id, reason.value
        )
        return True

    def recent_events(
        self,
        user_id: str,
        event_type: RealtimeEventType | None = None,
        limit: int = 50,
    ) -> list[DomainEvent]:
        """Newest-first view of a user's retained events."""
        channel = self._channels.get(user_id)
        if channel is None:
            return []
        return channel.ring.recent(event_type, limit)

    def subscriber_count(self, user_id: str | None = None) -> int:
        if user_id is None:
            return len(self._connections)
        channel = self._channels.get(user_id)
        return len(channel.subscriptions) if channel else 0

    def connected_users(self) -> list[str]:
        return [user_id for user_id, channel in self._channels.items() if channel.subscriptions]
