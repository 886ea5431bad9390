"""Prometheus metrics for EduStride.

Provides metrics collection and exposure:
- HTTP request metrics (latency, count)
- Cache metrics (hits, misses, contained failures)
- Realtime metrics (events published, live subscribers, shed events)

Usage:
    from edustride.observability.metrics import record_cache_hit

    record_cache_hit("portfolio")
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable

from prometheus_client import REGISTRY, Counter, Gauge, Histogram, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from edustride.config import settings

if TYPE_CHECKING:
    from starlette.types import ASGIApp

logger = logging.getLogger(__name__)


@dataclass
class MetricsRegistry:
    """Registry for Prometheus metrics."""

    # HTTP metrics
    http_requests_total: Any = None
    http_request_duration_seconds: Any = None

    # Cache metrics
    cache_hits_total: Any = None
    cache_misses_total: Any = None
    cache_failures_total: Any = None

    # Realtime metrics
    events_published_total: Any = None
    subscribers_active: Any = None
    events_dropped_total: Any = None

    # Internal state
    _initialized: bool = field(default=False, repr=False)
    _enabled: bool = field(default=False, repr=False)

    def initialize(self) -> None:
        """Initialize Prometheus metrics."""
        if self._initialized:
            return

        self._initialized = True
        if not settings.enable_metrics:
            logger.info("Metrics are disabled")
            return

        self.http_requests_total = Counter(
            "edustride_http_requests_total",
            "Total HTTP requests",
            ["method", "path", "status"],
        )
        self.http_request_duration_seconds = Histogram(
            "edustride_http_request_duration_seconds",
            "HTTP request latency in seconds",
            ["method", "path"],
            buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
        )

        self.cache_hits_total = Counter(
            "edustride_cache_hits_total",
            "Cache hits",
            ["namespace"],
        )
        self.cache_misses_total = Counter(
            "edustride_cache_misses_total",
            "Cache misses",
            ["namespace"],
        )
        self.cache_failures_total = Counter(
            "edustride_cache_failures_total",
            "Cache operations that failed or timed out",
            ["operation"],
        )

        self.events_published_total = Counter(
            "edustride_events_published_total",
            "Total realtime events published",
            ["event_type"],
        )
        self.subscribers_active = Gauge(
            "edustride_stream_subscribers_active",
            "Live realtime subscribers",
        )
        self.events_dropped_total = Counter(
            "edustride_events_dropped_total",
            "Events shed from saturated subscriber buffers",
        )

        self._enabled = True
        logger.info("Prometheus metrics initialized")

    def generate_latest(self) -> bytes:
        """Generate Prometheus metrics in exposition format."""
        if not self._enabled:
            return b"# Metrics disabled\n"
        return generate_latest(REGISTRY)


# Global metrics registry
metrics_registry = MetricsRegistry()


def get_metrics() -> MetricsRegistry:
    """Get the global metrics registry.

    Initializes metrics on first access.
    """
    if not metrics_registry._initialized:
        metrics_registry.initialize()
    return metrics_registry


class MetricsMiddleware(BaseHTTPMiddleware):
    """Middleware for HTTP request metrics.

    The realtime stream is skipped: its duration is the connection lifetime.
    """

    SKIP_PATHS = ("/health/live", "/health/ready", "/metrics", "/api/realtime")

    def __init__(self, app: "ASGIApp") -> None:
        super().__init__(app)
        self.metrics = get_metrics()

    async def dispatch(self, request: Request, call_next: Callable[[Request], Any]) -> Response:
        """Record metrics for HTTP requests."""
        if request.url.path in self.SKIP_PATHS:
            return await call_next(request)

        method = request.method
        path = self._normalize_path(request)
        start_time = time.perf_counter()
        status_code = 500

        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            duration = time.perf_counter() - start_time
            if self.metrics.http_requests_total:
                self.metrics.http_requests_total.labels(
                    method=method, path=path, status=status_code
                ).inc()
            if self.metrics.http_request_duration_seconds:
                self.metrics.http_request_duration_seconds.labels(
                    method=method, path=path
                ).observe(duration)

    @staticmethod
    def _normalize_path(request: Request) -> str:
        """Use the route template (/api/portfolio/{item_id}) to bound cardinality."""
        route = request.scope.get("route")
        return getattr(route, "path", request.url.path)


def record_cache_hit(namespace: str) -> None:
    metrics = get_metrics()
    if metrics.cache_hits_total:
        metrics.cache_hits_total.labels(namespace=namespace).inc()


def record_cache_miss(namespace: str) -> None:
    metrics = get_metrics()
    if metrics.cache_misses_total:
        metrics.cache_misses_total.labels(namespace=namespace).inc()


def record_cache_failure(operation: str) -> None:
    metrics = get_metrics()
    if metrics.cache_failures_total:
        metrics.cache_failures_total.labels(operation=operation).inc()


def record_event_published(event_type: str) -> None:
    metrics = get_metrics()
    if metrics.events_published_total:
        metrics.events_published_total.labels(event_type=event_type).inc()


def record_subscriber_count(count: int) -> None:
    metrics = get_metrics()
    if metrics.subscribers_active:
        metrics.subscribers_active.set(count)


def record_event_dropped() -> None:
    metrics = get_metrics()
    if metrics.events_dropped_total:
        metrics.events_dropped_total.inc()
