"""Request and response models for the EduStride API.

Responses use camelCase field names on the wire. Rows are converted with
from_attributes and dumped to JSON-ready dicts, which is also the form the
response cache stores.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, HttpUrl
from pydantic.alias_generators import to_camel

from edustride.persistence.repositories import Page
from edustride.persistence.tables import (
    ActivityType,
    NotificationLevel,
    PortfolioStatus,
    PortfolioType,
    QuestionType,
    RoadmapItemStatus,
    RoadmapLevel,
    SkillCategory,
    SkillLevel,
)


class ApiModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class PageMeta(ApiModel):
    page: int
    limit: int
    total: int
    total_pages: int


def page_body(page: Page[Any], model: type[ApiModel], **extra_meta: Any) -> dict[str, Any]:
    """JSON body for one page of rows: {"data": [...], "pagination": {...}}."""
    meta = PageMeta(
        page=page.page, limit=page.limit, total=page.total, total_pages=page.total_pages
    ).to_json()
    meta.update(extra_meta)
    return {
        "data": [model.model_validate(row).to_json() for row in page.items],
        "pagination": meta,
    }


# -----------------------------------------------------------------------------
# Portfolio
# -----------------------------------------------------------------------------


class PortfolioOut(ApiModel):
    id: str
    user_id: str
    title: str
    description: str | None = None
    type: PortfolioType
    status: PortfolioStatus
    thumbnail: str | None = None
    link: str | None = None
    github_url: str | None = None
    demo_url: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    is_featured: bool = False
    tags: list[str] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class PortfolioCreate(ApiModel):
    title: str = Field(min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=5000)
    type: PortfolioType
    status: PortfolioStatus = PortfolioStatus.DRAFT
    thumbnail: HttpUrl | None = None
    link: HttpUrl | None = None
    github_url: HttpUrl | None = None
    demo_url: HttpUrl | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    is_featured: bool = False
    tags: list[str] = Field(default_factory=list, max_length=20)

    def to_row(self) -> dict[str, Any]:
        """Column values for the table, with enums and URLs as strings."""
        values = self.model_dump(exclude_unset=False)
        return _row_values(values)


class PortfolioUpdate(ApiModel):
    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=5000)
    type: PortfolioType | None = None
    status: PortfolioStatus | None = None
    thumbnail: HttpUrl | None = None
    link: HttpUrl | None = None
    github_url: HttpUrl | None = None
    demo_url: HttpUrl | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    is_featured: bool | None = None
    tags: list[str] | None = Field(default=None, max_length=20)

    def to_row(self) -> dict[str, Any]:
        return _row_values(self.model_dump(exclude_unset=True))


# -----------------------------------------------------------------------------
# Skills
# -----------------------------------------------------------------------------


class SkillOut(ApiModel):
    id: str
    user_id: str
    name: str
    category: SkillCategory
    level: SkillLevel
    progress: int
    description: str | None = None
    is_public: bool = True
    created_at: datetime
    updated_at: datetime


class SkillCreate(ApiModel):
    name: str = Field(min_length=1, max_length=100)
    category: SkillCategory = SkillCategory.TECHNICAL
    level: SkillLevel = SkillLevel.BEGINNER
    progress: int = Field(default=0, ge=0, le=100)
    description: str | None = Field(default=None, max_length=1000)
    is_public: bool = True

    def to_row(self) -> dict[str, Any]:
        return _row_values(self.model_dump())


class SkillUpdate(ApiModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    category: SkillCategory | None = None
    level: SkillLevel | None = None
    progress: int | None = Field(default=None, ge=0, le=100)
    description: str | None = Field(default=None, max_length=1000)
    is_public: bool | None = None

    def to_row(self) -> dict[str, Any]:
        return _row_values(self.model_dump(exclude_unset=True))


# -----------------------------------------------------------------------------
# Roadmaps
# -----------------------------------------------------------------------------


class Resource(ApiModel):
    title: str
    url: HttpUrl
    type: Literal["article", "video", "course", "book", "other"]


class RoadmapItemOut(ApiModel):
    id: str
    roadmap_id: str
    title: str
    description: str | None = None
    order: int
    status: RoadmapItemStatus
    deadline: datetime | None = None
    completed_at: datetime | None = None
    resources: list[dict[str, Any]] = Field(default_factory=list)


class RoadmapOut(ApiModel):
    id: str
    user_id: str
    title: str
    description: str | None = None
    level: RoadmapLevel
    category: str
    deadline: datetime | None = None
    is_active: bool = True
    progress: int = 0
    items: list[RoadmapItemOut] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class RoadmapItemCreate(ApiModel):
    title: str = Field(min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=2000)
    order: int | None = Field(default=None, ge=0)
    status: RoadmapItemStatus = RoadmapItemStatus.NOT_STARTED
    deadline: datetime | None = None
    resources: list[Resource] = Field(default_factory=list)

    def to_row(self) -> dict[str, Any]:
        return _row_values(self.model_dump())


class RoadmapItemUpdate(ApiModel):
    item_id: str
    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=2000)
    status: RoadmapItemStatus | None = None
    deadline: datetime | None = None
    resources: list[Resource] | None = None

    def to_row(self) -> dict[str, Any]:
        return _row_values(self.model_dump(exclude_unset=True, exclude={"item_id"}))


class RoadmapCreate(ApiModel):
    title: str = Field(min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=5000)
    level: RoadmapLevel
    category: str = Field(min_length=1, max_length=100)
    deadline: datetime | None = None
    items: list[RoadmapItemCreate] = Field(default_factory=list, max_length=50)

    def to_row(self) -> dict[str, Any]:
        return _row_values(self.model_dump(exclude={"items"}))


class RoadmapUpdate(ApiModel):
    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=5000)
    level: RoadmapLevel | None = None
    category: str | None = Field(default=None, min_length=1, max_length=100)
    deadline: datetime | None = None
    is_active: bool | None = None

    def to_row(self) -> dict[str, Any]:
        return _row_values(self.model_dump(exclude_unset=True))


# -----------------------------------------------------------------------------
# Notifications
# -----------------------------------------------------------------------------


class NotificationOut(ApiModel):
    id: str
    user_id: str
    title: str
    message: str
    type: NotificationLevel
    read: bool
    action_url: str | None = None
    created_at: datetime


class NotificationCreate(ApiModel):
    title: str = Field(min_length=1, max_length=200)
    message: str = Field(min_length=1, max_length=1000)
    type: Literal["info", "success", "warning", "error"] = "info"
    action_url: HttpUrl | None = None


class NotificationMarkRead(ApiModel):
    notification_id: str | None = None
    mark_all_read: bool = False


# -----------------------------------------------------------------------------
# Activities
# -----------------------------------------------------------------------------


class ActivityOut(ApiModel):
    id: str
    user_id: str
    type: ActivityType
    title: str
    description: str | None = None
    entity_type: str | None = None
    entity_id: str | None = None
    details: dict[str, Any] | None = Field(default=None, serialization_alias="metadata")
    is_public: bool = True
    created_at: datetime


class ActivityStats(ApiModel):
    total: int
    last_30_days: int = Field(serialization_alias="last30Days")
    weekly_activity: list[ActivityOut]
    by_type: dict[str, int]


# -----------------------------------------------------------------------------
# Quizzes
# -----------------------------------------------------------------------------


class AnswerIn(ApiModel):
    question_id: str
    answer: str


class QuizSubmission(ApiModel):
    answers: list[AnswerIn]


class QuizAttemptOut(ApiModel):
    id: str
    quiz_id: str
    user_id: str
    score: int
    passed: bool
    answers: list[dict[str, Any]]
    feedback: str | None = None
    completed_at: datetime


class QuizAttemptResult(ApiModel):
    attempt: QuizAttemptOut
    score: int
    passed: bool
    message: str


def _row_values(values: dict[str, Any]) -> dict[str, Any]:
    """Convert enum and URL values to the plain strings stored in columns."""
    return {key: _plain(value) for key, value in values.items()}


def _plain(value: Any) -> Any:
    if isinstance(value, (PortfolioType, PortfolioStatus, SkillCategory, SkillLevel)):
        return value.value
    if isinstance(value, (RoadmapLevel, RoadmapItemStatus, NotificationLevel, QuestionType)):
        return value.value
    if isinstance(value, HttpUrl):
        return str(value)
    if isinstance(value, list):
        return [_plain(item) for item in value]
    if isinstance(value, dict):
        return {key: _plain(item) for key, item in value.items()}
    return value
