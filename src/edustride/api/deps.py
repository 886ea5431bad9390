"""Shared FastAPI dependencies for EduStride routers.

The broker, stream manager and cache are process-wide services created in
the application lifespan and kept on app.state; handlers receive them
through these dependencies rather than importing globals.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Annotated, TypeVar

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from edustride.api.errors import ForbiddenError, NotFoundError, UnauthorizedError
from edustride.cache.resilient import ResilientCache
from edustride.events.broker import EventBroker
from edustride.events.stream import StreamSessionManager
from edustride.persistence.db import get_session
from edustride.persistence.repositories import Datastore
from edustride.services.write_path import WritePathCoordinator

RowT = TypeVar("RowT")


def current_user_id(
    x_user_id: Annotated[str | None, Header(alias="X-User-Id")] = None,
) -> str:
    """User id resolved by the upstream auth layer.

    Raises:
        UnauthorizedError: If the request carries no user id
    """
    if not x_user_id or not x_user_id.strip():
        raise UnauthorizedError()
    return x_user_id.strip()


def get_broker(request: Request) -> EventBroker:
    return request.app.state.broker  # type: ignore[no-any-return]


def get_stream_manager(request: Request) -> StreamSessionManager:
    return request.app.state.streams  # type: ignore[no-any-return]


def get_cache(request: Request) -> ResilientCache:
    return request.app.state.cache  # type: ignore[no-any-return]


def get_coordinator(
    cache: Annotated[ResilientCache, Depends(get_cache)],
    broker: Annotated[EventBroker, Depends(get_broker)],
) -> WritePathCoordinator:
    return WritePathCoordinator(cache, broker)


def get_datastore(session: Annotated[AsyncSession, Depends(get_session)]) -> Datastore:
    return Datastore(session)


UserId = Annotated[str, Depends(current_user_id)]
Cache = Annotated[ResilientCache, Depends(get_cache)]
Coordinator = Annotated[WritePathCoordinator, Depends(get_coordinator)]
Store = Annotated[Datastore, Depends(get_datastore)]


def ensure_owned(row: RowT | None, user_id: str, resource_type: str, identifier: str) -> RowT:
    """Return the row (an ORM row or its JSON body) if the user owns it.

    Raises:
        NotFoundError: If the row does not exist
        ForbiddenError: If it belongs to another user
    """
    if row is None:
        raise NotFoundError(resource_type, identifier)
    owner = row.get("userId") if isinstance(row, Mapping) else getattr(row, "user_id", None)
    if owner != user_id:
        raise ForbiddenError()
    return row
