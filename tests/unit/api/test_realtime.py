"""Tests for the realtime stream endpoints."""

import asyncio

import orjson
import pytest
from fastapi import FastAPI
from httpx import AsyncClient

from edustride.api.routers.realtime import parse_last_event_id
from edustride.events.broker import EventBroker
from edustride.events.schemas import RealtimeEventType


def parse_stream(text: str) -> list[dict]:
    """Split an event-stream body into frames."""
    frames = []
    for block in text.strip().split("\n\n"):
        frame = {}
        for line in block.split("\n"):
            name, _, value = line.partition(": ")
            frame[name] = value
        frame["data"] = orjson.loads(frame["data"])
        frames.append(frame)
    return frames


async def read_stream(client: AsyncClient, broker: EventBroker, publish, **request) -> list[dict]:
    """Open a stream, publish once it is subscribed, then end it."""

    async def drive() -> None:
        while broker.subscriber_count("user-1") == 0:
            await asyncio.sleep(0.01)
        await publish()
        await broker.shutdown()

    driver = asyncio.create_task(drive())
    response = await asyncio.wait_for(client.get("/api/realtime", **request), timeout=5)
    await driver
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    return parse_stream(response.text)


class TestParseLastEventId:
    """Test Last-Event-ID parsing."""

    def test_first_valid_candidate_wins(self) -> None:
        """The header is preferred over the query parameter."""
        assert parse_last_event_id("7", "3") == 7
        assert parse_last_event_id(None, "3") == 3

    def test_invalid_values_are_ignored(self) -> None:
        """Garbage and negative ids are treated as absent."""
        assert parse_last_event_id("abc", None) is None
        assert parse_last_event_id("-1") is None
        assert parse_last_event_id("abc", "4") == 4


class TestEventStream:
    """Test GET /api/realtime."""

    async def test_stream_delivers_events(self, client: AsyncClient, broker: EventBroker) -> None:
        """The stream opens with connected and carries published events."""

        async def publish() -> None:
            await broker.publish("user-1", RealtimeEventType.NOTIFICATION, {"title": "Hi"})
            await broker.publish("user-2", RealtimeEventType.NOTIFICATION, {"title": "Not you"})

        frames = await read_stream(client, broker, publish)

        assert [frame["event"] for frame in frames] == ["connected", "notification"]
        assert frames[0]["retry"] == "1000"
        assert frames[0]["data"]["userId"] == "user-1"
        assert frames[1]["data"]["data"] == {"title": "Hi"}
        assert frames[1]["id"] == "1"

    async def test_stream_type_filter(self, client: AsyncClient, broker: EventBroker) -> None:
        """Only requested types are streamed."""

        async def publish() -> None:
            await broker.publish("user-1", RealtimeEventType.ACTIVITY, {})
            await broker.publish("user-1", RealtimeEventType.SKILL_PROGRESS, {"newProgress": 5})

        frames = await read_stream(
            client, broker, publish, params={"types": "skill-progress,bogus"}
        )
        assert [frame["event"] for frame in frames] == ["connected", "skill-progress"]
        assert frames[0]["data"]["types"] == ["skill-progress"]

    async def test_reconnect_replays_missed_events(
        self, client: AsyncClient, broker: EventBroker
    ) -> None:
        """Last-Event-ID replays what was missed."""
        first = await broker.publish("user-1", RealtimeEventType.ACTIVITY, {"n": 1})
        await broker.publish("user-1", RealtimeEventType.ACTIVITY, {"n": 2})

        async def publish() -> None:
            await broker.publish("user-1", RealtimeEventType.ACTIVITY, {"n": 3})

        frames = await read_stream(
            client, broker, publish, headers={"Last-Event-ID": str(first.id)}
        )
        assert frames[0]["id"] == str(first.id)
        assert [frame["data"]["data"]["n"] for frame in frames[1:]] == [2, 3]

    async def test_reconnect_from_unknown_id_gets_gap(
        self, client: AsyncClient, broker: EventBroker
    ) -> None:
        """An id the broker never issued yields a replay-gap frame."""

        async def publish() -> None:
            pass

        frames = await read_stream(client, broker, publish, params={"lastEventId": "99"})
        assert [frame["event"] for frame in frames] == ["connected", "replay-gap"]
        assert frames[1]["data"]["lastEventId"] == 99

    async def test_stream_releases_session(
        self, app: FastAPI, client: AsyncClient, broker: EventBroker
    ) -> None:
        """Once the response ends the session is forgotten."""

        async def publish() -> None:
            pass

        await read_stream(client, broker, publish)
        assert app.state.streams.active_count == 0
        assert broker.subscriber_count() == 0

    async def test_stream_refused_after_shutdown(
        self, client: AsyncClient, broker: EventBroker
    ) -> None:
        """A stopped broker answers 503."""
        await broker.shutdown()
        response = await client.get("/api/realtime")
        assert response.status_code == 503
        assert response.json()["code"] == "ServiceUnavailable"

    async def test_stream_requires_user(self, anonymous_client: AsyncClient) -> None:
        """Anonymous streams are refused."""
        assert (await anonymous_client.get("/api/realtime")).status_code == 401

    async def test_preflight(self, anonymous_client: AsyncClient) -> None:
        """OPTIONS answers the CORS preflight."""
        response = await anonymous_client.options("/api/realtime")
        assert response.status_code == 204
        assert "Last-Event-ID" in response.headers["access-control-allow-headers"]
        assert response.headers["access-control-allow-methods"] == "GET, OPTIONS"


class TestRecentEvents:
    """Test GET /api/realtime/recent."""

    @pytest.fixture(autouse=True)
    async def published(self, broker: EventBroker) -> None:
        """Three events for user-1, one for user-2."""
        await broker.publish("user-1", RealtimeEventType.ACTIVITY, {"n": 1})
        await broker.publish("user-1", RealtimeEventType.NOTIFICATION, {"n": 2})
        await broker.publish("user-1", RealtimeEventType.ACTIVITY, {"n": 3})
        await broker.publish("user-2", RealtimeEventType.ACTIVITY, {"n": 4})

    async def test_recent_newest_first(self, client: AsyncClient) -> None:
        """Recent events are the caller's, newest first."""
        body = (await client.get("/api/realtime/recent")).json()
        assert body["count"] == 3
        assert [event["data"]["n"] for event in body["data"]] == [3, 2, 1]

    async def test_recent_by_type_and_limit(self, client: AsyncClient) -> None:
        """type and limit narrow the view."""
        body = (
            await client.get("/api/realtime/recent", params={"type": "activity", "limit": 1})
        ).json()
        assert [event["data"]["n"] for event in body["data"]] == [3]

    async def test_recent_unknown_type(self, client: AsyncClient) -> None:
        """Unknown types are a bad request."""
        response = await client.get("/api/realtime/recent", params={"type": "nope"})
        assert response.status_code == 400
