"""Activity feed endpoints.

Activities are written as a side effect of other writes; this router only
reads them. Both reads are cached briefly, and every write that records an
activity invalidates them.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Annotated, Any

from fastapi import APIRouter, Query

from edustride.api.deps import Cache, Store, UserId
from edustride.api.schemas import ActivityOut, ActivityStats, page_body
from edustride.cache import EntityKind
from edustride.cache.read_through import cached_read
from edustride.persistence.tables import ActivityType

router = APIRouter(prefix="/api/activities", tags=["activities"])

STATS_WINDOW = timedelta(days=30)
WEEKLY_WINDOW = timedelta(days=7)


@router.get("")
async def list_activities(
    user_id: UserId,
    store: Store,
    cache: Cache,
    type: Annotated[ActivityType | None, Query()] = None,
    entity_type: Annotated[str | None, Query(alias="entityType", max_length=32)] = None,
    start_date: Annotated[datetime | None, Query(alias="startDate")] = None,
    end_date: Annotated[datetime | None, Query(alias="endDate")] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
) -> dict[str, Any]:
    """The caller's activity feed, newest first."""
    params = {
        "type": type.value if type else None,
        "entityType": entity_type,
        "startDate": start_date,
        "endDate": end_date,
        "page": page,
        "limit": limit,
    }

    async def load() -> dict[str, Any]:
        result = await store.activities.list_for_user(
            user_id,
            page=page,
            limit=limit,
            type=params["type"],
            entity_type=entity_type,
            start_date=start_date,
            end_date=end_date,
        )
        return page_body(result, ActivityOut)

    return await cached_read(cache, EntityKind.ACTIVITIES, user_id, params, load)


@router.get("/stats")
async def activity_stats(
    user_id: UserId,
    store: Store,
    cache: Cache,
    type: Annotated[ActivityType | None, Query()] = None,
    entity_type: Annotated[str | None, Query(alias="entityType", max_length=32)] = None,
    start_date: Annotated[datetime | None, Query(alias="startDate")] = None,
    end_date: Annotated[datetime | None, Query(alias="endDate")] = None,
) -> dict[str, Any]:
    """Totals for the caller's activity.

    total honours every filter; last30Days replaces the date range with
    the last 30 days; weeklyActivity and byType ignore the filters.
    """
    params = {
        "type": type.value if type else None,
        "entityType": entity_type,
        "startDate": start_date,
        "endDate": end_date,
    }

    async def load() -> dict[str, Any]:
        now = datetime.now(UTC)
        criteria = {"type": params["type"], "entity_type": entity_type}
        total = await store.activities.count(
            user_id, start_date=start_date, end_date=end_date, **criteria
        )
        recent = await store.activities.count(
            user_id, start_date=now - STATS_WINDOW, **criteria
        )
        weekly = await store.activities.since(user_id, now - WEEKLY_WINDOW)
        by_type = await store.activities.count_by_type(user_id)
        stats = ActivityStats(
            total=total,
            last_30_days=recent,
            weekly_activity=[ActivityOut.model_validate(row) for row in weekly],
            by_type=by_type,
        )
        return stats.to_json()

    return await cached_read(cache, EntityKind.ACTIVITY_STATS, user_id, params, load)
