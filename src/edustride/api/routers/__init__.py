"""API routers for EduStride."""

from edustride.api.routers import (
    activities,
    health,
    metrics,
    notifications,
    portfolio,
    quizzes,
    realtime,
    roadmap,
    skills,
)

__all__ = [
    "activities",
    "health",
    "metrics",
    "notifications",
    "portfolio",
    "quizzes",
    "realtime",
    "roadmap",
    "skills",
]
