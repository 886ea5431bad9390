"""Repository pattern for EduStride persistence.

One repository per entity kind, all sharing the same contract:
- get() returns the row or None when it does not exist
- list_for_user() returns one page of a user's rows, filtered and sorted
- create()/update()/delete() flush but never commit; the Datastore commits

Ownership is not checked here; routers compare row.user_id with the caller.
Every SQLAlchemyError is re-raised as DatastoreFailure.
"""

from __future__ import annotations

import math
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, ClassVar, Generic, TypeVar

from sqlalchemy import ColumnElement, Select, func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from edustride.errors import DatastoreFailure
from edustride.persistence.tables import (
    ActivityTable,
    Base,
    NotificationTable,
    PortfolioTable,
    QuizAttemptTable,
    QuizTable,
    RoadmapItemTable,
    RoadmapItemStatus,
    RoadmapTable,
    SkillTable,
)

TableT = TypeVar("TableT", bound=Base)


@asynccontextmanager
async def datastore_errors(operation: str) -> AsyncIterator[None]:
    """Translate SQLAlchemy errors into DatastoreFailure."""
    try:
        yield
    except SQLAlchemyError as exc:
        raise DatastoreFailure(operation, exc) from exc


@dataclass
class Page(Generic[TableT]):
    """One page of a paginated query."""

    items: Sequence[TableT]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


class BaseRepository(Generic[TableT]):
    """Base repository with common CRUD operations."""

    table: ClassVar[type[Base]]
    # Public sort names mapped to column attributes
    sortable: ClassVar[dict[str, str]] = {"createdAt": "created_at", "updatedAt": "updated_at"}
    name: ClassVar[str] = "entity"

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, entity_id: str) -> TableT | None:
        async with datastore_errors(f"get {self.name}"):
            return await self.session.get(self.table, entity_id)  # type: ignore[return-value]

    async def create(self, user_id: str, **values: Any) -> TableT:
        row = self.table(user_id=user_id, **values)
        async with datastore_errors(f"create {self.name}"):
            self.session.add(row)
            await self.session.flush()
            await self.session.refresh(row)
        return row  # type: ignore[return-value]

    async def update(self, row: TableT, **values: Any) -> TableT:
        for field_name, value in values.items():
            setattr(row, field_name, value)
        async with datastore_errors(f"update {self.name}"):
            await self.session.flush()
            await self.session.refresh(row)
        return row

    async def delete(self, row: TableT) -> None:
        async with datastore_errors(f"delete {self.name}"):
            await self.session.delete(row)
            await self.session.flush()

    def _filters(self, **criteria: Any) -> list[ColumnElement[bool]]:
        """Where clauses for list_for_user(). None-valued criteria are ignored."""
        return []

    async def list_for_user(
        self,
        user_id: str,
        page: int = 1,
        limit: int = 10,
        sort_by: str = "createdAt",
        sort_order: str = "desc",
        **criteria: Any,
    ) -> Page[TableT]:
        table: Any = self.table
        clauses = [table.user_id == user_id, *self._filters(**criteria)]
        sort_column = getattr(table, self.sortable.get(sort_by, "created_at"))
        order = sort_column.asc() if sort_order == "asc" else sort_column.desc()

        stmt: Select[Any] = (
            select(table).where(*clauses).order_by(order).offset((page - 1) * limit).limit(limit)
        )
        count_stmt = select(func.count()).select_from(table).where(*clauses)
        async with datastore_errors(f"list {self.name}"):
            items = (await self.session.execute(stmt)).scalars().all()
            total = (await self.session.execute(count_stmt)).scalar_one()
        return Page(items=items, total=total, page=page, limit=limit)


class PortfolioRepository(BaseRepository[PortfolioTable]):
    table = PortfolioTable
    name = "portfolio"
    sortable = {"createdAt": "created_at", "updatedAt": "updated_at", "title": "title"}

    def _filters(
        self,
        type: str | None = None,
        status: str | None = None,
        is_featured: bool | None = None,
        search: str | None = None,
        **_: Any,
    ) -> list[ColumnElement[bool]]:
        clauses: list[ColumnElement[bool]] = []
        if type is not None:
            clauses.append(PortfolioTable.type == type)
        if status is not None:
            clauses.append(PortfolioTable.status == status)
        if is_featured is not None:
            clauses.append(PortfolioTable.is_featured == is_featured)
        if search:
            pattern = f"%{search}%"
            clauses.append(
                or_(PortfolioTable.title.ilike(pattern), PortfolioTable.description.ilike(pattern))
            )
        return clauses


class SkillRepository(BaseRepository[SkillTable]):
    table = SkillTable
    name = "skill"
    sortable = {"createdAt": "created_at", "progress": "progress", "name": "name"}

    def _filters(
        self,
        category: str | None = None,
        level: str | None = None,
        is_public: bool | None = None,
        search: str | None = None,
        **_: Any,
    ) -> list[ColumnElement[bool]]:
        clauses: list[ColumnElement[bool]] = []
        if category is not None:
            clauses.append(SkillTable.category == category)
        if level is not None:
            clauses.append(SkillTable.level == level)
        if is_public is not None:
            clauses.append(SkillTable.is_public == is_public)
        if search:
            clauses.append(SkillTable.name.ilike(f"%{search}%"))
        return clauses


class RoadmapRepository(BaseRepository[RoadmapTable]):
    table = RoadmapTable
    name = "roadmap"
    sortable = {"createdAt": "created_at", "deadline": "deadline", "progress": "progress"}

    def _filters(
        self,
        level: str | None = None,
        category: str | None = None,
        is_active: bool | None = None,
        **_: Any,
    ) -> list[ColumnElement[bool]]:
        clauses: list[ColumnElement[bool]] = []
        if level is not None:
            clauses.append(RoadmapTable.level == level)
        if category is not None:
            clauses.append(RoadmapTable.category == category)
        if is_active is not None:
            clauses.append(RoadmapTable.is_active == is_active)
        return clauses

    async def create_with_items(
        self, user_id: str, items: Sequence[dict[str, Any]], **values: Any
    ) -> RoadmapTable:
        row = RoadmapTable(user_id=user_id, **values)
        row.items = [RoadmapItemTable(**item) for item in items]
        completed = sum(
            1 for item in row.items if item.status == RoadmapItemStatus.COMPLETED.value
        )
        row.progress = round(completed / len(row.items) * 100) if row.items else 0
        async with datastore_errors("create roadmap"):
            self.session.add(row)
            await self.session.flush()
            await self.session.refresh(row, attribute_names=["items"])
        return row

    async def get_item(self, roadmap_id: str, item_id: str) -> RoadmapItemTable | None:
        stmt = select(RoadmapItemTable).where(
            RoadmapItemTable.id == item_id, RoadmapItemTable.roadmap_id == roadmap_id
        )
        async with datastore_errors("get roadmap item"):
            return (await self.session.execute(stmt)).scalar_one_or_none()

    async def add_item(self, roadmap: RoadmapTable, **values: Any) -> RoadmapItemTable:
        """Append an item. Without an explicit order it goes after the last one."""
        if values.get("order") is None:
            values["order"] = max((item.order for item in roadmap.items), default=-1) + 1
        item = RoadmapItemTable(roadmap_id=roadmap.id, **values)
        async with datastore_errors("create roadmap item"):
            self.session.add(item)
            await self.session.flush()
            await self.session.refresh(item)
            await self._refresh_progress(roadmap)
        return item

    async def update_item(
        self, roadmap: RoadmapTable, item: RoadmapItemTable, **values: Any
    ) -> RoadmapItemTable:
        for field_name, value in values.items():
            setattr(item, field_name, value)
        async with datastore_errors("update roadmap item"):
            await self.session.flush()
            await self.session.refresh(item)
            await self._refresh_progress(roadmap)
        return item

    async def delete_item(self, roadmap: RoadmapTable, item: RoadmapItemTable) -> None:
        async with datastore_errors("delete roadmap item"):
            await self.session.delete(item)
            await self.session.flush()
            await self._refresh_progress(roadmap)

    async def item_counts(self, roadmap_id: str) -> tuple[int, int]:
        """Return (total items, completed items) for a roadmap."""
        stmt = select(
            func.count(RoadmapItemTable.id),
            func.count(RoadmapItemTable.id).filter(
                RoadmapItemTable.status == RoadmapItemStatus.COMPLETED.value
            ),
        ).where(RoadmapItemTable.roadmap_id == roadmap_id)
        async with datastore_errors("count roadmap items"):
            total, completed = (await self.session.execute(stmt)).one()
        return int(total), int(completed)

    async def _refresh_progress(self, roadmap: RoadmapTable) -> None:
        total, completed = await self.item_counts(roadmap.id)
        roadmap.progress = round(completed / total * 100) if total else 0
        await self.session.flush()
        await self.session.refresh(roadmap, attribute_names=["items"])


class NotificationRepository(BaseRepository[NotificationTable]):
    table = NotificationTable
    name = "notification"

    def _filters(self, unread_only: bool = False, **_: Any) -> list[ColumnElement[bool]]:
        return [NotificationTable.read.is_(False)] if unread_only else []

    async def unread_count(self, user_id: str) -> int:
        stmt = select(func.count()).select_from(NotificationTable).where(
            NotificationTable.user_id == user_id, NotificationTable.read.is_(False)
        )
        async with datastore_errors("count notifications"):
            return int((await self.session.execute(stmt)).scalar_one())

    async def mark_all_read(self, user_id: str) -> int:
        stmt = (
            update(NotificationTable)
            .where(NotificationTable.user_id == user_id, NotificationTable.read.is_(False))
            .values(read=True)
        )
        async with datastore_errors("mark notifications read"):
            result = await self.session.execute(stmt)
        return int(result.rowcount or 0)  # type: ignore[attr-defined]

    async def delete_all_read(self, user_id: str) -> int:
        stmt = select(NotificationTable).where(
            NotificationTable.user_id == user_id, NotificationTable.read.is_(True)
        )
        async with datastore_errors("delete read notifications"):
            rows = (await self.session.execute(stmt)).scalars().all()
            for row in rows:
                await self.session.delete(row)
            await self.session.flush()
        return len(rows)


class ActivityRepository(BaseRepository[ActivityTable]):
    table = ActivityTable
    name = "activity"

    def _filters(
        self,
        type: str | None = None,
        entity_type: str | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
        **_: Any,
    ) -> list[ColumnElement[bool]]:
        clauses: list[ColumnElement[bool]] = []
        if type is not None:
            clauses.append(ActivityTable.type == type)
        if entity_type is not None:
            clauses.append(ActivityTable.entity_type == entity_type)
        if start_date is not None:
            clauses.append(ActivityTable.created_at >= start_date)
        if end_date is not None:
            clauses.append(ActivityTable.created_at <= end_date)
        return clauses

    async def record(
        self,
        user_id: str,
        type: str,
        title: str,
        description: str | None = None,
        entity_type: str | None = None,
        entity_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> ActivityTable:
        return await self.create(
            user_id,
            type=type,
            title=title,
            description=description,
            entity_type=entity_type,
            entity_id=entity_id,
            details=details,
        )

    async def count(self, user_id: str, **criteria: Any) -> int:
        stmt = select(func.count()).select_from(ActivityTable).where(
            ActivityTable.user_id == user_id, *self._filters(**criteria)
        )
        async with datastore_errors("count activities"):
            return int((await self.session.execute(stmt)).scalar_one())

    async def since(self, user_id: str, start: datetime) -> Sequence[ActivityTable]:
        stmt = (
            select(ActivityTable)
            .where(ActivityTable.user_id == user_id, ActivityTable.created_at >= start)
            .order_by(ActivityTable.created_at.desc())
        )
        async with datastore_errors("list recent activities"):
            return (await self.session.execute(stmt)).scalars().all()

    async def count_by_type(self, user_id: str) -> dict[str, int]:
        stmt = (
            select(ActivityTable.type, func.count(ActivityTable.id))
            .where(ActivityTable.user_id == user_id)
            .group_by(ActivityTable.type)
        )
        async with datastore_errors("count activities by type"):
            rows = (await self.session.execute(stmt)).all()
        return {activity_type: int(count) for activity_type, count in rows}


class QuizRepository(BaseRepository[QuizTable]):
    table = QuizTable
    name = "quiz"

    async def attempts(
        self, quiz_id: str, user_id: str, limit: int = 10
    ) -> Sequence[QuizAttemptTable]:
        stmt = (
            select(QuizAttemptTable)
            .where(QuizAttemptTable.quiz_id == quiz_id, QuizAttemptTable.user_id == user_id)
            .order_by(QuizAttemptTable.completed_at.desc())
            .limit(limit)
        )
        async with datastore_errors("list quiz attempts"):
            return (await self.session.execute(stmt)).scalars().all()

    async def record_attempt(
        self, quiz: QuizTable, user_id: str, **values: Any
    ) -> QuizAttemptTable:
        attempt = QuizAttemptTable(quiz_id=quiz.id, user_id=user_id, **values)
        async with datastore_errors("create quiz attempt"):
            self.session.add(attempt)
            await self.session.flush()
            await self.session.refresh(attempt)
        return attempt


class Datastore:
    """Repositories sharing one session, committed together."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.portfolio = PortfolioRepository(session)
        self.skills = SkillRepository(session)
        self.roadmaps = RoadmapRepository(session)
        self.notifications = NotificationRepository(session)
        self.activities = ActivityRepository(session)
        self.quizzes = QuizRepository(session)

    async def commit(self) -> None:
        try:
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise DatastoreFailure("commit", exc) from exc
