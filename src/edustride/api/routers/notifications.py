"""Notification endpoints.

    GET    /api/notifications?unreadOnly=true&page=1&limit=20
    POST   /api/notifications
    PATCH  /api/notifications       {"notificationId": "..."} or {"markAllRead": true}
    DELETE /api/notifications?id=... or ?deleteAllRead=true

Notification lists are cached for a short TTL and carry the unread count.
Creating a notification also pushes it to the user's open streams.
"""

from __future__ import annotations

from typing import Annotated, Any

from fastapi import APIRouter, Query

from edustride.api.deps import Cache, Coordinator, Store, UserId, ensure_owned
from edustride.api.errors import BadRequestError
from edustride.api.schemas import (
    NotificationCreate,
    NotificationMarkRead,
    NotificationOut,
    page_body,
)
from edustride.cache import EntityKind, InvalidationPlan
from edustride.cache.read_through import cached_read
from edustride.events.publisher import notification_event
from edustride.persistence.tables import NotificationTable

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


def _invalidate(user_id: str) -> InvalidationPlan:
    return InvalidationPlan.for_entity(EntityKind.NOTIFICATIONS, user_id)


@router.get("")
async def list_notifications(
    user_id: UserId,
    store: Store,
    cache: Cache,
    unread_only: Annotated[bool, Query(alias="unreadOnly")] = False,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
) -> dict[str, Any]:
    """List notifications, newest first, with the unread count in meta."""
    params = {"unreadOnly": unread_only, "page": page, "limit": limit}

    async def load() -> dict[str, Any]:
        result = await store.notifications.list_for_user(
            user_id, page=page, limit=limit, unread_only=unread_only
        )
        unread = await store.notifications.unread_count(user_id)
        body = page_body(result, NotificationOut, unreadCount=unread)
        return {"data": body["data"], "meta": body["pagination"]}

    return await cached_read(cache, EntityKind.NOTIFICATIONS, user_id, params, load)


@router.post("", status_code=201)
async def create_notification(
    body: NotificationCreate,
    user_id: UserId,
    store: Store,
    coordinator: Coordinator,
) -> dict[str, Any]:
    """Create a notification and deliver it in realtime."""
    action_url = str(body.action_url) if body.action_url else None

    async def write() -> NotificationTable:
        row = await store.notifications.create(
            user_id,
            title=body.title,
            message=body.message,
            type=body.type.upper(),
            action_url=action_url,
            read=False,
        )
        await store.commit()
        return row

    outcome = await coordinator.execute(
        user_id,
        write,
        invalidate=_invalidate(user_id),
        events=lambda row: [
            notification_event(row.id, row.title, row.message, body.type, action_url)
        ],
    )
    return NotificationOut.model_validate(outcome.value).to_json()


@router.patch("")
async def mark_notifications_read(
    body: NotificationMarkRead,
    user_id: UserId,
    store: Store,
    coordinator: Coordinator,
) -> dict[str, Any]:
    """Mark one notification, or all of them, as read."""
    if body.mark_all_read:

        async def write() -> int:
            updated = await store.notifications.mark_all_read(user_id)
            await store.commit()
            return updated

    elif body.notification_id:
        row = ensure_owned(
            await store.notifications.get(body.notification_id),
            user_id,
            "Notification",
            body.notification_id,
        )

        async def write() -> int:
            await store.notifications.update(row, read=True)
            await store.commit()
            return 1

    else:
        raise BadRequestError("notificationId or markAllRead required")

    outcome = await coordinator.execute(user_id, write, invalidate=_invalidate(user_id))
    return {"success": True, "updated": outcome.value}


@router.delete("")
async def delete_notifications(
    user_id: UserId,
    store: Store,
    coordinator: Coordinator,
    notification_id: Annotated[str | None, Query(alias="id")] = None,
    delete_all_read: Annotated[bool, Query(alias="deleteAllRead")] = False,
) -> dict[str, Any]:
    """Delete one notification, or every read one."""
    if notification_id:
        row = ensure_owned(
            await store.notifications.get(notification_id),
            user_id,
            "Notification",
            notification_id,
        )

        async def write() -> int:
            await store.notifications.delete(row)
            await store.commit()
            return 1

    elif delete_all_read:

        async def write() -> int:
            deleted = await store.notifications.delete_all_read(user_id)
            await store.commit()
            return deleted

    else:
        raise BadRequestError("id or deleteAllRead required")

    outcome = await coordinator.execute(user_id, write, invalidate=_invalidate(user_id))
    return {"success": True, "deleted": outcome.value}
