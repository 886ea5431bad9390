"""Persistence layer for EduStride.

This module provides:
- Async PostgreSQL engine and session factory
- SQLAlchemy ORM models for portfolios, skills, roadmaps, notifications,
  activities and quizzes
- One repository per entity kind, grouped in a Datastore per request
"""

from edustride.persistence.db import close_db, get_engine, get_session, init_db
from edustride.persistence.repositories import (
    ActivityRepository,
    Datastore,
    NotificationRepository,
    Page,
    PortfolioRepository,
    QuizRepository,
    RoadmapRepository,
    SkillRepository,
)
from edustride.persistence.tables import (
    ActivityTable,
    Base,
    NotificationTable,
    PortfolioTable,
    QuizAttemptTable,
    QuizTable,
    RoadmapItemTable,
    RoadmapTable,
    SkillTable,
)

__all__ = [
    # DB
    "get_engine",
    "get_session",
    "init_db",
    "close_db",
    # Tables
    "Base",
    "PortfolioTable",
    "SkillTable",
    "RoadmapTable",
    "RoadmapItemTable",
    "NotificationTable",
    "ActivityTable",
    "QuizTable",
    "QuizAttemptTable",
    # Repositories
    "Datastore",
    "Page",
    "PortfolioRepository",
    "SkillRepository",
    "RoadmapRepository",
    "NotificationRepository",
    "ActivityRepository",
    "QuizRepository",
]
