"""
Prometheus metrics for observability.

Exposes metrics for:
- HTTP request latency and counts
- Route materialization outcomes
- Stop lifecycle transitions and reorders
"""

import time

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
)
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from poolroute.core.config import settings

# ============================================================
# HTTP Metrics
# ============================================================

HTTP_REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint", "status_code"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

HTTP_REQUEST_TOTAL = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
)

HTTP_REQUEST_IN_PROGRESS = Gauge(
    "http_requests_in_progress",
    "HTTP requests currently in progress",
    ["method", "endpoint"],
)


# ============================================================
# Business Metrics
# ============================================================

ROUTES_GENERATED = Counter(
    "routes_generated_total",
    "Route instances considered during materialization",
    ["outcome"],  # created, skipped, error
)

STOP_TRANSITIONS = Counter(
    "route_stop_transitions_total",
    "Technician stop actions",
    ["action", "result"],  # result: ok, noop, rejected
)

ROUTE_REORDERS = Counter(
    "route_reorders_total",
    "Stop and schedule reorder requests",
    ["target", "result"],  # target: route, schedule
)


# ============================================================
# Dependency Health
# ============================================================

SERVICE_HEALTH = Gauge(
    "service_health",
    "Health of backing services (1 = healthy, 0 = unhealthy)",
    ["service"],
)


# ============================================================
# Application Info
# ============================================================

APP_INFO = Info(
    "app",
    "Application information",
)
APP_INFO.info(
    {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
    }
)


# ============================================================
# Middleware
# ============================================================


class PrometheusMiddleware(BaseHTTPMiddleware):
    """
    Middleware to collect HTTP request metrics.

    Tracks:
    - Request duration
    - Request count by endpoint and status
    - In-progress requests
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        if request.url.path == settings.METRICS_PATH:
            return await call_next(request)

        method = request.method
        endpoint = self._normalize_path(request.url.path)

        HTTP_REQUEST_IN_PROGRESS.labels(method=method, endpoint=endpoint).inc()

        start_time = time.perf_counter()
        status_code = "500"
        try:
            response = await call_next(request)
            status_code = str(response.status_code)
        finally:
            duration = time.perf_counter() - start_time

            HTTP_REQUEST_DURATION.labels(
                method=method,
                endpoint=endpoint,
                status_code=status_code,
            ).observe(duration)

            HTTP_REQUEST_TOTAL.labels(
                method=method,
                endpoint=endpoint,
                status_code=status_code,
            ).inc()

            HTTP_REQUEST_IN_PROGRESS.labels(method=method, endpoint=endpoint).dec()

        return response

    def _normalize_path(self, path: str) -> str:
        """
        Normalize path by replacing dynamic segments with placeholders.

        /api/v1/routes/stops/<uuid>/start -> /api/v1/routes/stops/{id}/start
        /api/v1/routes/2024-06-03 -> /api/v1/routes/{date}
        """
        normalized = []
        for part in path.split("/"):
            if not part:
                continue
            if len(part) == 36 and part.count("-") == 4:
                normalized.append("{id}")
            elif len(part) == 10 and part[4] == "-" and part[7] == "-" and part.replace("-", "").isdigit():
                normalized.append("{date}")
            elif part.isdigit():
                normalized.append("{id}")
            else:
                normalized.append(part)

        return "/" + "/".join(normalized) if normalized else "/"


# ============================================================
# Helper Functions
# ============================================================


def record_generation(created: int, skipped: int, errors: int) -> None:
    """Record one materialization run."""
    if created:
        ROUTES_GENERATED.labels(outcome="created").inc(created)
    if skipped:
        ROUTES_GENERATED.labels(outcome="skipped").inc(skipped)
    if errors:
        ROUTES_GENERATED.labels(outcome="error").inc(errors)


def record_stop_transition(action: str, result: str) -> None:
    STOP_TRANSITIONS.labels(action=action, result=result).inc()


def record_reorder(target: str, result: str) -> None:
    ROUTE_REORDERS.labels(target=target, result=result).inc()


def update_service_health(service: str, healthy: bool) -> None:
    SERVICE_HEALTH.labels(service=service).set(1 if healthy else 0)


# ============================================================
# Metrics Endpoint
# ============================================================


async def metrics_endpoint(request: Request) -> Response:
    """
    Prometheus metrics endpoint.

    Returns metrics in Prometheus text format.
    """
    return Response(
        content=generate_latest(REGISTRY),
        media_type=CONTENT_TYPE_LATEST,
    )
