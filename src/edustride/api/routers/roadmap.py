"""Learning roadmap endpoints.

    GET    /api/roadmap
    POST   /api/roadmap
    GET    /api/roadmap/{roadmap_id}
    PATCH  /api/roadmap/{roadmap_id}
    DELETE /api/roadmap/{roadmap_id}
    POST   /api/roadmap/{roadmap_id}/items
    PATCH  /api/roadmap/{roadmap_id}/items          (itemId in the body)
    DELETE /api/roadmap/{roadmap_id}/items?itemId=

Every write publishes roadmap-update with the recomputed progress.
Completing the last open item also records the roadmap as completed and
unlocks an achievement.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Annotated, Any, Literal

from fastapi import APIRouter, Query

from edustride.api.deps import Cache, Coordinator, Store, UserId, ensure_owned
from edustride.api.errors import NotFoundError
from edustride.api.schemas import (
    RoadmapCreate,
    RoadmapItemCreate,
    RoadmapItemOut,
    RoadmapItemUpdate,
    RoadmapOut,
    RoadmapUpdate,
    page_body,
)
from edustride.cache import ACTIVITY_KINDS, EntityKind, InvalidationPlan
from edustride.cache.read_through import cached_entity, cached_read
from edustride.events.publisher import (
    achievement_unlocked_event,
    activity_event,
    roadmap_update_event,
)
from edustride.events.schemas import EventSpec
from edustride.persistence.tables import (
    ActivityType,
    RoadmapItemStatus,
    RoadmapItemTable,
    RoadmapLevel,
    RoadmapTable,
    utcnow,
)

router = APIRouter(prefix="/api/roadmap", tags=["roadmap"])

ENTITY_TYPE = "roadmap"


def _invalidate(user_id: str, roadmap_id: str) -> InvalidationPlan:
    return InvalidationPlan.for_entity(
        EntityKind.ROADMAP, user_id, roadmap_id, related=ACTIVITY_KINDS
    )


@dataclass
class ItemChange:
    """Result of an item write, with what it completed."""

    roadmap: RoadmapTable
    item: RoadmapItemTable
    item_completed: bool = False
    roadmap_completed: bool = False


@router.get("")
async def list_roadmaps(
    user_id: UserId,
    store: Store,
    cache: Cache,
    level: Annotated[RoadmapLevel | None, Query()] = None,
    category: Annotated[str | None, Query(max_length=100)] = None,
    is_active: Annotated[bool | None, Query(alias="isActive")] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=50)] = 10,
    sort_by: Annotated[
        Literal["createdAt", "deadline", "progress"], Query(alias="sortBy")
    ] = "createdAt",
    sort_order: Annotated[Literal["asc", "desc"], Query(alias="sortOrder")] = "desc",
) -> dict[str, Any]:
    params = {
        "level": level.value if level else None,
        "category": category,
        "isActive": is_active,
        "page": page,
        "limit": limit,
        "sortBy": sort_by,
        "sortOrder": sort_order,
    }

    async def load() -> dict[str, Any]:
        result = await store.roadmaps.list_for_user(
            user_id,
            page=page,
            limit=limit,
            sort_by=sort_by,
            sort_order=sort_order,
            level=params["level"],
            category=category,
            is_active=is_active,
        )
        return page_body(result, RoadmapOut)

    return await cached_read(cache, EntityKind.ROADMAP, user_id, params, load)


@router.post("", status_code=201)
async def create_roadmap(
    body: RoadmapCreate,
    user_id: UserId,
    store: Store,
    coordinator: Coordinator,
) -> dict[str, Any]:
    """Create a roadmap, optionally with its initial items."""
    items = []
    for index, item in enumerate(body.items):
        values = item.to_row()
        if values.get("order") is None:
            values["order"] = index
        items.append(values)

    async def write() -> RoadmapTable:
        row = await store.roadmaps.create_with_items(user_id, items, **body.to_row())
        await store.activities.record(
            user_id,
            ActivityType.ROADMAP_CREATED.value,
            title=f"Created roadmap: {row.title}",
            entity_type=ENTITY_TYPE,
            entity_id=row.id,
        )
        await store.commit()
        return row

    outcome = await coordinator.execute(
        user_id,
        write,
        invalidate=lambda row: _invalidate(user_id, row.id),
        events=lambda row: [
            roadmap_update_event(row.id, "created", row.title, progress=row.progress),
            activity_event(ActivityType.ROADMAP_CREATED.value, ENTITY_TYPE, row.id),
        ],
    )
    return RoadmapOut.model_validate(outcome.value).to_json()


@router.get("/{roadmap_id}")
async def get_roadmap(
    roadmap_id: str,
    user_id: UserId,
    store: Store,
    cache: Cache,
) -> dict[str, Any]:
    """Get a roadmap with its items in order."""

    async def load() -> dict[str, Any]:
        row = ensure_owned(await store.roadmaps.get(roadmap_id), user_id, "Roadmap", roadmap_id)
        return RoadmapOut.model_validate(row).to_json()

    data = await cached_entity(cache, EntityKind.ROADMAP, user_id, roadmap_id, load)
    return ensure_owned(data, user_id, "Roadmap", roadmap_id)


@router.patch("/{roadmap_id}")
async def update_roadmap(
    roadmap_id: str,
    body: RoadmapUpdate,
    user_id: UserId,
    store: Store,
    coordinator: Coordinator,
) -> dict[str, Any]:
    existing = ensure_owned(await store.roadmaps.get(roadmap_id), user_id, "Roadmap", roadmap_id)

    async def write() -> RoadmapTable:
        row = await store.roadmaps.update(existing, **body.to_row())
        await store.commit()
        return row

    outcome = await coordinator.execute(
        user_id,
        write,
        invalidate=_invalidate(user_id, roadmap_id),
        events=lambda row: [
            roadmap_update_event(row.id, "updated", row.title, progress=row.progress)
        ],
    )
    return RoadmapOut.model_validate(outcome.value).to_json()


@router.delete("/{roadmap_id}")
async def delete_roadmap(
    roadmap_id: str,
    user_id: UserId,
    store: Store,
    coordinator: Coordinator,
) -> dict[str, bool]:
    existing = ensure_owned(await store.roadmaps.get(roadmap_id), user_id, "Roadmap", roadmap_id)
    title = existing.title

    async def write() -> None:
        await store.roadmaps.delete(existing)
        await store.commit()

    await coordinator.execute(
        user_id,
        write,
        invalidate=_invalidate(user_id, roadmap_id),
        events=[roadmap_update_event(roadmap_id, "deleted", title)],
    )
    return {"success": True}


# -----------------------------------------------------------------------------
# Items
# -----------------------------------------------------------------------------


@router.post("/{roadmap_id}/items", status_code=201)
async def add_roadmap_item(
    roadmap_id: str,
    body: RoadmapItemCreate,
    user_id: UserId,
    store: Store,
    coordinator: Coordinator,
) -> dict[str, Any]:
    """Append an item; without an order it goes after the last item."""
    roadmap = ensure_owned(await store.roadmaps.get(roadmap_id), user_id, "Roadmap", roadmap_id)

    async def write() -> RoadmapItemTable:
        item = await store.roadmaps.add_item(roadmap, **body.to_row())
        await store.commit()
        return item

    outcome = await coordinator.execute(
        user_id,
        write,
        invalidate=_invalidate(user_id, roadmap_id),
        events=lambda item: [
            roadmap_update_event(
                roadmap_id, "item-added", roadmap.title, item_id=item.id, progress=roadmap.progress
            )
        ],
    )
    return RoadmapItemOut.model_validate(outcome.value).to_json()


@router.patch("/{roadmap_id}/items")
async def update_roadmap_item(
    roadmap_id: str,
    body: RoadmapItemUpdate,
    user_id: UserId,
    store: Store,
    coordinator: Coordinator,
) -> dict[str, Any]:
    """Update an item. Marking it COMPLETED stamps completedAt."""
    roadmap = ensure_owned(await store.roadmaps.get(roadmap_id), user_id, "Roadmap", roadmap_id)
    item = await store.roadmaps.get_item(roadmap_id, body.item_id)
    if item is None:
        raise NotFoundError("Roadmap item", body.item_id)

    values = body.to_row()
    completing = (
        values.get("status") == RoadmapItemStatus.COMPLETED.value
        and item.status != RoadmapItemStatus.COMPLETED.value
    )
    if completing:
        values["completed_at"] = utcnow()

    async def write() -> ItemChange:
        updated = await store.roadmaps.update_item(roadmap, item, **values)
        change = ItemChange(roadmap=roadmap, item=updated, item_completed=completing)
        if completing:
            await store.activities.record(
                user_id,
                ActivityType.ROADMAP_ITEM_COMPLETED.value,
                title=f"Completed: {updated.title}",
                entity_type=ENTITY_TYPE,
                entity_id=roadmap_id,
                details={"itemId": updated.id},
            )
            total, completed = await store.roadmaps.item_counts(roadmap_id)
            if total and total == completed:
                change.roadmap_completed = True
                await store.activities.record(
                    user_id,
                    ActivityType.ROADMAP_COMPLETED.value,
                    title=f"Completed roadmap: {roadmap.title}",
                    entity_type=ENTITY_TYPE,
                    entity_id=roadmap_id,
                )
        await store.commit()
        return change

    outcome = await coordinator.execute(
        user_id, write, invalidate=_invalidate(user_id, roadmap_id), events=_item_events
    )
    return RoadmapItemOut.model_validate(outcome.value.item).to_json()


def _item_events(change: ItemChange) -> list[EventSpec]:
    roadmap = change.roadmap
    specs = [
        roadmap_update_event(
            roadmap.id,
            "completed" if change.roadmap_completed else "item-updated",
            roadmap.title,
            item_id=change.item.id,
            progress=roadmap.progress,
        )
    ]
    if change.item_completed:
        specs.append(
            activity_event(
                ActivityType.ROADMAP_ITEM_COMPLETED.value,
                ENTITY_TYPE,
                roadmap.id,
                {"itemId": change.item.id, "title": change.item.title},
            )
        )
    if change.roadmap_completed:
        specs.append(
            achievement_unlocked_event(
                "roadmap-completed",
                "Roadmap completed",
                f"You completed every step of {roadmap.title}",
                entity_type=ENTITY_TYPE,
                entity_id=roadmap.id,
            )
        )
    return specs


@router.delete("/{roadmap_id}/items")
async def delete_roadmap_item(
    roadmap_id: str,
    user_id: UserId,
    store: Store,
    coordinator: Coordinator,
    item_id: Annotated[str, Query(alias="itemId", min_length=1)],
) -> dict[str, bool]:
    roadmap = ensure_owned(await store.roadmaps.get(roadmap_id), user_id, "Roadmap", roadmap_id)
    item = await store.roadmaps.get_item(roadmap_id, item_id)
    if item is None:
        raise NotFoundError("Roadmap item", item_id)

    async def write() -> RoadmapTable:
        await store.roadmaps.delete_item(roadmap, item)
        await store.commit()
        return roadmap

    await coordinator.execute(
        user_id,
        write,
        invalidate=_invalidate(user_id, roadmap_id),
        events=lambda row: [
            roadmap_update_event(
                row.id, "item-removed", row.title, item_id=item_id, progress=row.progress
            )
        ],
    )
    return {"success": True}
