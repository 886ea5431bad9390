"""Health check endpoints for EduStride.

Provides Kubernetes-compatible liveness and readiness probes:
- /health/live  - Liveness probe (always returns OK if process is running)
- /health/ready - Readiness probe (checks database, cache and event broker)
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Annotated, Any

from fastapi import APIRouter, Depends
from fastapi.responses import ORJSONResponse

from edustride.api.deps import get_broker, get_cache
from edustride.cache.resilient import ResilientCache
from edustride.config import settings
from edustride.events.broker import EventBroker
from edustride.persistence.db import health_check as db_health_check

router = APIRouter(tags=["health"])

CHECK_TIMEOUT = 5.0


class HealthStatus(str, Enum):
    """Health check status."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


@dataclass
class ComponentHealth:
    """Health status of a single component."""

    name: str
    status: HealthStatus
    latency_ms: float
    message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON response."""
        result: dict[str, Any] = {
            "name": self.name,
            "status": self.status.value,
            "latency_ms": round(self.latency_ms, 2),
        }
        if self.message:
            result["message"] = self.message
        return result


async def _check(
    name: str,
    probe: Callable[[], Awaitable[bool]],
    failed_status: HealthStatus = HealthStatus.UNHEALTHY,
) -> ComponentHealth:
    start = time.monotonic()
    try:
        healthy = await asyncio.wait_for(probe(), timeout=CHECK_TIMEOUT)
        message = None if healthy else f"{name.capitalize()} check failed"
    except TimeoutError:
        healthy = False
        message = f"{name.capitalize()} check timed out"
    except Exception as e:
        healthy = False
        message = str(e)
    latency = (time.monotonic() - start) * 1000
    return ComponentHealth(
        name=name,
        status=HealthStatus.HEALTHY if healthy else failed_status,
        latency_ms=latency,
        message=message,
    )


async def check_database() -> ComponentHealth:
    """Check database connectivity."""
    return await _check("database", db_health_check)


async def check_cache(cache: ResilientCache) -> ComponentHealth:
    """Check the cache backend.

    The service keeps working without its cache, so a failing cache makes
    the instance degraded rather than unhealthy.
    """
    return await _check("cache", cache.store.health_check, HealthStatus.DEGRADED)


async def check_broker(broker: EventBroker) -> ComponentHealth:
    async def probe() -> bool:
        return broker.running

    return await _check("broker", probe)


@router.get("/health/live")
async def live() -> dict[str, str]:
    """Liveness probe.

    Returns OK if the process is running. Used by Kubernetes
    to determine if the container should be restarted.
    """
    return {"status": "ok"}


@router.get("/health/ready")
async def ready(
    cache: Annotated[ResilientCache, Depends(get_cache)],
    broker: Annotated[EventBroker, Depends(get_broker)],
) -> ORJSONResponse:
    """Readiness probe.

    Returns 200 while the database and broker are healthy (a degraded cache
    still counts as ready), 503 otherwise.
    """
    components = await asyncio.gather(
        check_database(),
        check_cache(cache),
        check_broker(broker),
    )

    if all(c.status == HealthStatus.HEALTHY for c in components):
        overall_status = HealthStatus.HEALTHY
    elif any(c.status == HealthStatus.UNHEALTHY for c in components):
        overall_status = HealthStatus.UNHEALTHY
    else:
        overall_status = HealthStatus.DEGRADED

    result = {
        "status": overall_status.value,
        "instance": settings.instance_id,
        "components": [c.to_dict() for c in components],
        "subscribers": broker.subscriber_count(),
    }
    status_code = 503 if overall_status == HealthStatus.UNHEALTHY else 200
    return ORJSONResponse(content=result, status_code=status_code)
