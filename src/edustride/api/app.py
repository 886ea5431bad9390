"""FastAPI application factory for EduStride.

Creates the application with:
- Portfolio, skill, roadmap, notification, activity and quiz routers
- The realtime Server-Sent Events stream (/api/realtime)
- Lifecycle management for the database, response cache and event broker
- Prometheus metrics and correlation-aware structured logging
- Consistent JSON error bodies
- ORJSON for fast JSON serialization
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, cast

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.responses import ORJSONResponse
from starlette.types import ExceptionHandler

from edustride.api.errors import (
    ApiError,
    api_exception_handler,
    datastore_exception_handler,
    generic_exception_handler,
    validation_exception_handler,
)
from edustride.api.middleware import CorrelationMiddleware
from edustride.api.routers import (
    activities,
    health,
    notifications,
    portfolio,
    quizzes,
    realtime,
    roadmap,
    skills,
)
from edustride.api.routers import metrics as metrics_router
from edustride.cache.runtime import start_cache, stop_cache
from edustride.config import settings
from edustride.errors import DatastoreFailure
from edustride.events.runtime import start_broker, stop_broker
from edustride.observability import configure_logging
from edustride.observability.metrics import MetricsMiddleware, get_metrics
from edustride.persistence.db import close_db, init_db

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application lifecycle.

    On startup:
    - Configure structured logging
    - Initialize Prometheus metrics
    - Initialize database connection pool and tables
    - Build the response cache (in-memory or Redis)
    - Start the event broker and stream session manager

    On shutdown:
    - Close every open stream and stop the broker
    - Close the cache (and Redis connection)
    - Close database connections
    """
    # Configure structured logging (JSON in production, console in dev)
    configure_logging(
        json_format=settings.env != "dev",
        level=settings.log_level,
    )
    get_metrics()  # Initialize metrics registry

    # Startup
    logger.info(f"Starting EduStride ({settings.env}, instance {settings.instance_id})")
    await init_db()
    app.state.cache = await start_cache()
    app.state.broker, app.state.streams = await start_broker()
    logger.info("EduStride startup complete")

    yield

    # Shutdown
    logger.info("Shutting down EduStride")
    await stop_broker(app.state.broker, app.state.streams)
    await stop_cache(app.state.cache)
    await close_db()
    logger.info("EduStride shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns a fully configured application with:
    - All resource routers and the realtime stream
    - Health probes and Prometheus metrics
    - Exception handlers for consistent error responses
    - Lifecycle hooks for connection management
    """
    app = FastAPI(
        title="EduStride",
        description="Realtime education portfolio service",
        version="0.1.0",
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    # CorrelationMiddleware is innermost to set context for all other middleware
    app.add_middleware(CorrelationMiddleware)
    if settings.enable_metrics:
        app.add_middleware(MetricsMiddleware)

    # Register exception handlers
    app.add_exception_handler(ApiError, cast(ExceptionHandler, api_exception_handler))
    app.add_exception_handler(
        RequestValidationError, cast(ExceptionHandler, validation_exception_handler)
    )
    app.add_exception_handler(DatastoreFailure, cast(ExceptionHandler, datastore_exception_handler))
    app.add_exception_handler(Exception, cast(ExceptionHandler, generic_exception_handler))

    # Include routers
    app.include_router(health.router)
    if settings.enable_metrics:
        app.include_router(metrics_router.router)

    app.include_router(portfolio.router)
    app.include_router(skills.router)
    app.include_router(roadmap.router)
    app.include_router(notifications.router)
    app.include_router(activities.router)
    app.include_router(quizzes.router)
    app.include_router(realtime.router)

    return app
