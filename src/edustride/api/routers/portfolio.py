"""Portfolio endpoints.

Reads go through the response cache; every write runs through the write
path coordinator so the cached lists and detail are invalidated before the
portfolio-update and activity events go out.

    GET    /api/portfolio
    POST   /api/portfolio
    GET    /api/portfolio/{portfolio_id}
    PATCH  /api/portfolio/{portfolio_id}
    DELETE /api/portfolio/{portfolio_id}
"""

from __future__ import annotations

from typing import Annotated, Any, Literal

from fastapi import APIRouter, Query

from edustride.api.deps import Cache, Coordinator, Store, UserId, ensure_owned
from edustride.api.schemas import PortfolioCreate, PortfolioOut, PortfolioUpdate, page_body
from edustride.cache import ACTIVITY_KINDS, EntityKind, InvalidationPlan
from edustride.cache.read_through import cached_entity, cached_read
from edustride.events.publisher import PortfolioAction, activity_event, portfolio_update_event
from edustride.persistence.tables import (
    ActivityType,
    PortfolioStatus,
    PortfolioTable,
    PortfolioType,
)

router = APIRouter(prefix="/api/portfolio", tags=["portfolio"])

ENTITY_TYPE = "portfolio"


def _invalidate(user_id: str, portfolio_id: str) -> InvalidationPlan:
    return InvalidationPlan.for_entity(
        EntityKind.PORTFOLIO, user_id, portfolio_id, related=ACTIVITY_KINDS
    )


def _update_action(row: PortfolioTable, default: PortfolioAction) -> PortfolioAction:
    return "published" if row.status == PortfolioStatus.PUBLISHED.value else default


@router.get("")
async def list_portfolio(
    user_id: UserId,
    store: Store,
    cache: Cache,
    type: Annotated[PortfolioType | None, Query()] = None,
    status: Annotated[PortfolioStatus | None, Query()] = None,
    is_featured: Annotated[bool | None, Query(alias="isFeatured")] = None,
    search: Annotated[str | None, Query(max_length=200)] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=50)] = 10,
    sort_by: Annotated[
        Literal["createdAt", "updatedAt", "title"], Query(alias="sortBy")
    ] = "createdAt",
    sort_order: Annotated[Literal["asc", "desc"], Query(alias="sortOrder")] = "desc",
) -> dict[str, Any]:
    """List the caller's portfolio items."""
    params = {
        "type": type.value if type else None,
        "status": status.value if status else None,
        "isFeatured": is_featured,
        "search": search,
        "page": page,
        "limit": limit,
        "sortBy": sort_by,
        "sortOrder": sort_order,
    }

    async def load() -> dict[str, Any]:
        result = await store.portfolio.list_for_user(
            user_id,
            page=page,
            limit=limit,
            sort_by=sort_by,
            sort_order=sort_order,
            type=params["type"],
            status=params["status"],
            is_featured=is_featured,
            search=search,
        )
        return page_body(result, PortfolioOut)

    return await cached_read(cache, EntityKind.PORTFOLIO, user_id, params, load)


@router.post("", status_code=201)
async def create_portfolio(
    body: PortfolioCreate,
    user_id: UserId,
    store: Store,
    coordinator: Coordinator,
) -> dict[str, Any]:
    """Create a portfolio item and record the activity."""

    async def write() -> PortfolioTable:
        row = await store.portfolio.create(user_id, **body.to_row())
        await store.activities.record(
            user_id,
            ActivityType.PORTFOLIO_CREATED.value,
            title=f"Created new {row.type.lower()}: {row.title}",
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
            portfolio_update_event(row.id, _update_action(row, "created"), row.title),
            activity_event(
                ActivityType.PORTFOLIO_CREATED.value,
                ENTITY_TYPE,
                row.id,
                {"title": row.title, "type": row.type},
            ),
        ],
    )
    return PortfolioOut.model_validate(outcome.value).to_json()


@router.get("/{portfolio_id}")
async def get_portfolio(
    portfolio_id: str,
    user_id: UserId,
    store: Store,
    cache: Cache,
) -> dict[str, Any]:
    """Get one portfolio item. Only the owner's reads are cached."""

    async def load() -> dict[str, Any]:
        row = ensure_owned(
            await store.portfolio.get(portfolio_id), user_id, "Portfolio", portfolio_id
        )
        return PortfolioOut.model_validate(row).to_json()

    data = await cached_entity(cache, EntityKind.PORTFOLIO, user_id, portfolio_id, load)
    return ensure_owned(data, user_id, "Portfolio", portfolio_id)


@router.patch("/{portfolio_id}")
async def update_portfolio(
    portfolio_id: str,
    body: PortfolioUpdate,
    user_id: UserId,
    store: Store,
    coordinator: Coordinator,
) -> dict[str, Any]:
    """Update a portfolio item."""
    existing = ensure_owned(
        await store.portfolio.get(portfolio_id), user_id, "Portfolio", portfolio_id
    )

    async def write() -> PortfolioTable:
        row = await store.portfolio.update(existing, **body.to_row())
        await store.activities.record(
            user_id,
            ActivityType.PORTFOLIO_UPDATED.value,
            title=f"Updated portfolio: {row.title}",
            entity_type=ENTITY_TYPE,
            entity_id=row.id,
        )
        await store.commit()
        return row

    outcome = await coordinator.execute(
        user_id,
        write,
        invalidate=_invalidate(user_id, portfolio_id),
        events=lambda row: [
            portfolio_update_event(row.id, _update_action(row, "updated"), row.title),
            activity_event(ActivityType.PORTFOLIO_UPDATED.value, ENTITY_TYPE, row.id),
        ],
    )
    return PortfolioOut.model_validate(outcome.value).to_json()


@router.delete("/{portfolio_id}")
async def delete_portfolio(
    portfolio_id: str,
    user_id: UserId,
    store: Store,
    coordinator: Coordinator,
) -> dict[str, bool]:
    """Delete a portfolio item."""
    existing = ensure_owned(
        await store.portfolio.get(portfolio_id), user_id, "Portfolio", portfolio_id
    )
    title = existing.title

    async def write() -> None:
        await store.portfolio.delete(existing)
        await store.commit()

    await coordinator.execute(
        user_id,
        write,
        invalidate=_invalidate(user_id, portfolio_id),
        events=[portfolio_update_event(portfolio_id, "deleted", title)],
    )
    return {"success": True}
