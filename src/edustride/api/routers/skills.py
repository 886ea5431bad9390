"""Skill endpoints.

    GET    /api/skills
    POST   /api/skills
    GET    /api/skills/{skill_id}
    PATCH  /api/skills/{skill_id}
    DELETE /api/skills/{skill_id}

A progress change publishes a skill-progress event with the old and new
values; crossing a quarter mark (25, 50, 75, 100) is recorded as a level-up
activity.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal

from fastapi import APIRouter, Query

from edustride.api.deps import Cache, Coordinator, Store, UserId, ensure_owned
from edustride.api.schemas import SkillCreate, SkillOut, SkillUpdate, page_body
from edustride.cache import ACTIVITY_KINDS, EntityKind, InvalidationPlan
from edustride.cache.read_through import cached_entity, cached_read
from edustride.events.publisher import activity_event, skill_progress_event
from edustride.events.schemas import EventSpec
from edustride.persistence.tables import ActivityType, SkillCategory, SkillLevel, SkillTable

router = APIRouter(prefix="/api/skills", tags=["skills"])

ENTITY_TYPE = "skill"
LEVEL_UP_STEP = 25


def _invalidate(user_id: str, skill_id: str) -> InvalidationPlan:
    return InvalidationPlan.for_entity(EntityKind.SKILLS, user_id, skill_id, related=ACTIVITY_KINDS)


def is_level_up(old_progress: int, new_progress: int) -> bool:
    return new_progress > old_progress and new_progress % LEVEL_UP_STEP == 0


@router.get("")
async def list_skills(
    user_id: UserId,
    store: Store,
    cache: Cache,
    category: Annotated[SkillCategory | None, Query()] = None,
    level: Annotated[SkillLevel | None, Query()] = None,
    is_public: Annotated[bool | None, Query(alias="isPublic")] = None,
    search: Annotated[str | None, Query(max_length=100)] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=50)] = 10,
    sort_by: Annotated[
        Literal["createdAt", "progress", "name"], Query(alias="sortBy")
    ] = "createdAt",
    sort_order: Annotated[Literal["asc", "desc"], Query(alias="sortOrder")] = "desc",
) -> dict[str, Any]:
    """List the caller's skills."""
    params = {
        "category": category.value if category else None,
        "level": level.value if level else None,
        "isPublic": is_public,
        "search": search,
        "page": page,
        "limit": limit,
        "sortBy": sort_by,
        "sortOrder": sort_order,
    }

    async def load() -> dict[str, Any]:
        result = await store.skills.list_for_user(
            user_id,
            page=page,
            limit=limit,
            sort_by=sort_by,
            sort_order=sort_order,
            category=params["category"],
            level=params["level"],
            is_public=is_public,
            search=search,
        )
        return page_body(result, SkillOut)

    return await cached_read(cache, EntityKind.SKILLS, user_id, params, load)


@router.post("", status_code=201)
async def create_skill(
    body: SkillCreate,
    user_id: UserId,
    store: Store,
    coordinator: Coordinator,
) -> dict[str, Any]:
    """Add a skill."""

    async def write() -> SkillTable:
        row = await store.skills.create(user_id, **body.to_row())
        await store.activities.record(
            user_id,
            ActivityType.SKILL_ADDED.value,
            title=f"Added new skill: {row.name}",
            entity_type=ENTITY_TYPE,
            entity_id=row.id,
            details={"category": row.category, "level": row.level},
        )
        await store.commit()
        return row

    outcome = await coordinator.execute(
        user_id,
        write,
        invalidate=lambda row: _invalidate(user_id, row.id),
        events=lambda row: [
            skill_progress_event(row.id, row.name, None, row.progress, action="added"),
            activity_event(
                ActivityType.SKILL_ADDED.value, ENTITY_TYPE, row.id, {"name": row.name}
            ),
        ],
    )
    return SkillOut.model_validate(outcome.value).to_json()


@router.get("/{skill_id}")
async def get_skill(
    skill_id: str,
    user_id: UserId,
    store: Store,
    cache: Cache,
) -> dict[str, Any]:
    async def load() -> dict[str, Any]:
        row = ensure_owned(await store.skills.get(skill_id), user_id, "Skill", skill_id)
        return SkillOut.model_validate(row).to_json()

    data = await cached_entity(cache, EntityKind.SKILLS, user_id, skill_id, load)
    return ensure_owned(data, user_id, "Skill", skill_id)


@router.patch("/{skill_id}")
async def update_skill(
    skill_id: str,
    body: SkillUpdate,
    user_id: UserId,
    store: Store,
    coordinator: Coordinator,
) -> dict[str, Any]:
    """Update a skill.

    Only a changed progress value publishes skill-progress.
    """
    existing = ensure_owned(await store.skills.get(skill_id), user_id, "Skill", skill_id)
    old_progress = existing.progress
    values = body.to_row()
    new_progress = values.get("progress", old_progress)
    level_up = is_level_up(old_progress, new_progress)

    async def write() -> SkillTable:
        row = await store.skills.update(existing, **values)
        if level_up:
            await store.activities.record(
                user_id,
                ActivityType.SKILL_LEVEL_UP.value,
                title=f"Reached {new_progress}% in {row.name}",
                entity_type=ENTITY_TYPE,
                entity_id=row.id,
                details={"progress": new_progress},
            )
        await store.commit()
        return row

    def events(row: SkillTable) -> list[EventSpec]:
        specs = []
        if new_progress != old_progress:
            specs.append(skill_progress_event(row.id, row.name, old_progress, new_progress))
        if level_up:
            specs.append(
                activity_event(
                    ActivityType.SKILL_LEVEL_UP.value,
                    ENTITY_TYPE,
                    row.id,
                    {"name": row.name, "progress": new_progress},
                )
            )
        return specs

    outcome = await coordinator.execute(
        user_id, write, invalidate=_invalidate(user_id, skill_id), events=events
    )
    return SkillOut.model_validate(outcome.value).to_json()


@router.delete("/{skill_id}")
async def delete_skill(
    skill_id: str,
    user_id: UserId,
    store: Store,
    coordinator: Coordinator,
) -> dict[str, bool]:
    existing = ensure_owned(await store.skills.get(skill_id), user_id, "Skill", skill_id)
    name = existing.name

    async def write() -> None:
        await store.skills.delete(existing)
        await store.commit()

    await coordinator.execute(
        user_id,
        write,
        invalidate=_invalidate(user_id, skill_id),
        events=[skill_progress_event(skill_id, name, existing.progress, None, action="deleted")],
    )
    return {"success": True}
