"""Tests for Server-Sent Events stream sessions."""

import orjson
import pytest

from edustride.events.broker import CloseReason, EventBroker
from edustride.events.schemas import RealtimeEventType
from edustride.events.stream import StreamSession, StreamSessionManager, format_sse


def parse_frame(frame: str) -> dict:
    """Split an SSE frame into its fields, decoding data."""
    assert frame.endswith("\n\n")
    fields = {}
    for line in frame.strip("\n").split("\n"):
        name, _, value = line.partition(": ")
        fields[name] = value
    fields["data"] = orjson.loads(fields["data"])
    return fields


class TestFormatSse:
    """Test SSE frame rendering."""

    def test_minimal_frame(self) -> None:
        """Event and data lines, then a blank line."""
        assert format_sse("ping", {"a": 1}) == 'event: ping\ndata: {"a":1}\n\n'

    def test_frame_with_id_and_retry(self) -> None:
        """Retry and id lines precede the event."""
        frame = format_sse("connected", {}, event_id=3, retry_ms=5000)
        assert frame == "retry: 5000\nid: 3\nevent: connected\ndata: {}\n\n"

    def test_data_stays_on_one_line(self) -> None:
        """Newlines inside data are JSON-escaped."""
        frame = format_sse("notification", {"message": "a\nb"})
        assert frame.count("\n") == 3


class TestStreamSession:
    """Test frame production from a subscription."""

    @pytest.fixture
    async def broker(self) -> EventBroker:
        """Create a started broker."""
        broker = EventBroker(ring_capacity=5, buffer_size=10)
        await broker.start()
        return broker

    async def open_session(self, broker: EventBroker, **kwargs) -> StreamSession:
        subscription = await broker.subscribe("u1", connection_id="c1", **kwargs)
        return StreamSession(broker, subscription, heartbeat_interval=0.02, retry_ms=1000)

    async def test_first_frame_is_connected(self, broker: EventBroker) -> None:
        """The stream opens with a connected frame carrying a retry hint."""
        session = await self.open_session(broker, interested_types=[RealtimeEventType.ACTIVITY])
        frames = session.__aiter__()

        frame = parse_frame(await frames.__anext__())
        assert frame["retry"] == "1000"
        assert frame["id"] == "0"
        assert frame["event"] == "connected"
        assert frame["data"]["connectionId"] == "c1"
        assert frame["data"]["types"] == ["activity"]
        await frames.aclose()

    async def test_events_are_rendered_with_ids(self, broker: EventBroker) -> None:
        """Domain events carry their id and type."""
        session = await self.open_session(broker)
        frames = session.__aiter__()
        await frames.__anext__()

        event = await broker.publish("u1", RealtimeEventType.NOTIFICATION, {"title": "Hi"})
        frame = parse_frame(await frames.__anext__())

        assert frame["id"] == str(event.id)
        assert frame["event"] == "notification"
        assert frame["data"]["data"] == {"title": "Hi"}
        await frames.aclose()

    async def test_idle_stream_sends_ping(self, broker: EventBroker) -> None:
        """A heartbeat interval without events yields a ping."""
        session = await self.open_session(broker)
        frames = session.__aiter__()
        await frames.__anext__()

        frame = parse_frame(await frames.__anext__())
        assert frame["event"] == "ping"
        assert "id" not in frame
        await frames.aclose()

    async def test_replay_gap_frame(self, broker: EventBroker) -> None:
        """A gap is rendered with the id live delivery resumes from."""
        for _ in range(8):
            await broker.publish("u1", RealtimeEventType.ACTIVITY)
        session = await self.open_session(broker, last_event_id=1)
        frames = session.__aiter__()
        await frames.__anext__()

        frame = parse_frame(await frames.__anext__())
        assert frame["event"] == "replay-gap"
        assert frame["id"] == "8"
        assert frame["data"]["resumeFrom"] == 8
        await frames.aclose()

    async def test_stream_ends_when_broker_shuts_down(self, broker: EventBroker) -> None:
        """Closing the subscription ends the iteration and the session."""
        session = await self.open_session(broker)
        frames = [frame async for frame in self._until_shutdown(session, broker)]
        assert len(frames) == 1
        assert session.closed

    async def _until_shutdown(self, session: StreamSession, broker: EventBroker):
        async for frame in session:
            yield frame
            await broker.shutdown()

    async def test_abandoned_iteration_unsubscribes(self, broker: EventBroker) -> None:
        """Closing the iterator releases the subscription."""
        session = await self.open_session(broker)
        frames = session.__aiter__()
        await frames.__anext__()
        await frames.aclose()

        assert session.closed
        assert broker.subscriber_count() == 0

    async def test_iterates_once(self, broker: EventBroker) -> None:
        """A session cannot be iterated twice."""
        session = await self.open_session(broker)
        frames = session.__aiter__()
        with pytest.raises(RuntimeError):
            session.__aiter__()
        await frames.aclose()

    async def test_close_is_idempotent(self, broker: EventBroker) -> None:
        """The first close reason wins."""
        session = await self.open_session(broker)
        session.close(CloseReason.TRANSPORT_ERROR)
        session.close(CloseReason.SHUTDOWN)
        assert session.subscription.close_reason is CloseReason.TRANSPORT_ERROR


class TestPump:
    """Test writing frames to a transport."""

    @pytest.fixture
    async def broker(self) -> EventBroker:
        """Create a started broker."""
        broker = EventBroker(ring_capacity=5, buffer_size=10)
        await broker.start()
        return broker

    async def test_pump_until_stream_ends(self, broker: EventBroker) -> None:
        """Pump sends every frame and reports a clean end."""
        subscription = await broker.subscribe("u1")
        session = StreamSession(broker, subscription, heartbeat_interval=5)
        await broker.publish("u1", RealtimeEventType.ACTIVITY)
        sent: list[str] = []

        async def send(frame: str) -> None:
            sent.append(frame)
            if len(sent) == 2:
                await broker.shutdown()

        assert await session.pump(send) is True
        assert [parse_frame(frame)["event"] for frame in sent] == ["connected", "activity"]
        assert session.frames_sent == 2

    async def test_transport_failure_closes_session(self, broker: EventBroker) -> None:
        """A failing send closes the session as a transport error."""
        subscription = await broker.subscribe("u1")
        session = StreamSession(broker, subscription, heartbeat_interval=5)

        async def send(frame: str) -> None:
            raise ConnectionResetError("client went away")

        assert await session.pump(send) is False
        assert subscription.close_reason is CloseReason.TRANSPORT_ERROR
        assert broker.subscriber_count() == 0


class TestStreamSessionManager:
    """Test session tracking."""

    @pytest.fixture
    async def manager(self) -> StreamSessionManager:
        """Create a manager over a started broker."""
        broker = EventBroker(ring_capacity=5, buffer_size=10)
        await broker.start()
        return StreamSessionManager(broker, heartbeat_interval=5, retry_ms=1000)

    async def test_open_tracks_session(self, manager: StreamSessionManager) -> None:
        """Opened sessions are tracked per user."""
        session = await manager.open("u1", requested_types=[RealtimeEventType.NOTIFICATION])
        assert manager.active_count == 1
        assert manager.sessions_for("u1") == [session]
        assert session.connection_id.startswith("u1-")
        assert session.subscription.interested_types == {RealtimeEventType.NOTIFICATION}

    async def test_closed_session_is_forgotten(self, manager: StreamSessionManager) -> None:
        """Closing a session removes it from the manager."""
        session = await manager.open("u1")
        session.close()
        assert manager.active_count == 0
        assert manager.broker.subscriber_count() == 0

    async def test_close_all(self, manager: StreamSessionManager) -> None:
        """close_all closes every open session."""
        first = await manager.open("u1")
        second = await manager.open("u2")
        assert manager.close_all() == 2
        assert first.closed and second.closed
        assert first.subscription.close_reason is CloseReason.SHUTDOWN
        assert manager.active_count == 0
