"""Realtime event stream endpoints.

GET /api/realtime opens a Server-Sent Events stream of the caller's domain
events. Clients reconnecting after a drop send the id of the last event
they saw (the Last-Event-ID header, or ?lastEventId=) and receive what they
missed, or a replay-gap frame if it is no longer retained.

    GET /api/realtime?types=notification,activity
    GET /api/realtime/recent?type=notification&limit=10
"""

from __future__ import annotations

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Header, Query
from starlette.responses import Response, StreamingResponse
from starlette.types import Receive, Scope, Send

from edustride.api.deps import UserId, get_broker, get_stream_manager
from edustride.api.errors import ApiError, BadRequestError
from edustride.config import settings
from edustride.events.broker import EventBroker
from edustride.events.schemas import RealtimeEventType
from edustride.events.stream import (
    SSE_HEADERS,
    SSE_MEDIA_TYPE,
    StreamSession,
    StreamSessionManager,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/realtime", tags=["realtime"])


class EventStreamResponse(StreamingResponse):
    """Streams one StreamSession to the client.

    Frames are written through StreamSession.pump so a failing write ends
    the session as a transport error. However the response ends (stream
    closed, client gone, task cancelled) the session is released.
    """

    def __init__(self, session: StreamSession, headers: dict[str, str] | None = None):
        self.session = session
        super().__init__(
            content=session,
            media_type=SSE_MEDIA_TYPE,
            headers={**SSE_HEADERS, **(headers or {})},
        )

    async def stream_response(self, send: Send) -> None:
        await send(
            {
                "type": "http.response.start",
                "status": self.status_code,
                "headers": self.raw_headers,
            }
        )

        async def write(frame: str) -> None:
            await send(
                {"type": "http.response.body", "body": frame.encode("utf-8"), "more_body": True}
            )

        if await self.session.pump(write):
            await send({"type": "http.response.body", "body": b"", "more_body": False})

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            self.session.close()


def parse_last_event_id(*candidates: str | None) -> int | None:
    """First candidate that is a non-negative integer; others are ignored."""
    for raw in candidates:
        if raw is None:
            continue
        try:
            value = int(raw.strip())
        except ValueError:
            continue
        if value >= 0:
            return value
    return None


def _cors_headers() -> dict[str, str]:
    return {
        "Access-Control-Allow-Origin": settings.cors_allow_origin,
    }


@router.get("")
async def stream_events(
    user_id: UserId,
    streams: Annotated[StreamSessionManager, Depends(get_stream_manager)],
    types: Annotated[
        str | None, Query(description="Comma-separated event types; all types if omitted")
    ] = None,
    last_event_id_param: Annotated[str | None, Query(alias="lastEventId")] = None,
    last_event_id_header: Annotated[str | None, Header(alias="Last-Event-ID")] = None,
) -> EventStreamResponse:
    """Open the caller's event stream.

    The first frame is "connected"; a "ping" frame follows every idle
    heartbeat interval. Unknown type names are ignored.
    """
    last_event_id = parse_last_event_id(last_event_id_header, last_event_id_param)
    try:
        session = await streams.open(
            user_id,
            requested_types=RealtimeEventType.parse_many(types),
            last_event_id=last_event_id,
        )
    except RuntimeError as exc:
        logger.warning("Refusing stream for user %s: %s", user_id, exc)
        raise ApiError(
            status_code=503, code="ServiceUnavailable", text="Event stream unavailable"
        ) from exc

    return EventStreamResponse(session, headers=_cors_headers())


@router.options("")
async def stream_preflight() -> Response:
    """CORS preflight for EventSource clients on another origin."""
    return Response(
        status_code=204,
        headers={
            **_cors_headers(),
            "Access-Control-Allow-Methods": "GET, OPTIONS",
            "Access-Control-Allow-Headers": "Content-Type, Last-Event-ID, X-User-Id",
            "Access-Control-Max-Age": "86400",
        },
    )


@router.get("/recent")
async def recent_events(
    user_id: UserId,
    broker: Annotated[EventBroker, Depends(get_broker)],
    type: Annotated[str | None, Query()] = None,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
) -> dict[str, Any]:
    """The caller's retained events, newest first."""
    event_type = None
    if type:
        try:
            event_type = RealtimeEventType(type)
        except ValueError as exc:
            raise BadRequestError(f"Unknown event type: {type}") from exc

    events = broker.recent_events(user_id, event_type, limit)
    return {"data": [event.to_dict() for event in events], "count": len(events)}
