"""Prometheus metrics and Sentry integration.

Provides:
- MetricsMiddleware: ASGI middleware for HTTP request metrics
- Simulation and migration counters used by the services
- init_sentry(): Initialize Sentry with tenant-aware before_send callback
- get_metrics_response(): FastAPI route handler body for /metrics
"""

from __future__ import annotations

import time

from prometheus_client import (
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# ── HTTP Metrics ─────────────────────────────────────────────────────────────

http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code", "tenant_id"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint", "tenant_id"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

# ── Simulation Metrics ───────────────────────────────────────────────────────

simulation_sessions_started_total = Counter(
    "simulation_sessions_started_total",
    "Simulation sessions started",
    ["mode"],
)

simulation_sessions_ended_total = Counter(
    "simulation_sessions_ended_total",
    "Simulation sessions ended",
    ["reason"],  # user, superseded, cleanup
)

simulation_writes_blocked_total = Counter(
    "simulation_writes_blocked_total",
    "Write requests rejected because the credential is a simulation",
)

# ── Platform Metrics ─────────────────────────────────────────────────────────

migrations_executed_total = Counter(
    "migrations_executed_total",
    "Migration units executed",
    ["migration_type", "status"],
)

tenant_connections_cached = Gauge(
    "tenant_connections_cached",
    "Number of tenant database engines held by the connection cache",
)


# ── Metrics Middleware ───────────────────────────────────────────────────────


class MetricsMiddleware(BaseHTTPMiddleware):
    """ASGI middleware that records Prometheus metrics for every HTTP request.

    Uses the matched route template as the endpoint label to keep
    cardinality bounded. Skips the /metrics endpoint itself.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path == "/metrics":
            return await call_next(request)

        start_time = time.perf_counter()
        response = await call_next(request)
        duration = time.perf_counter() - start_time

        # Tenant context is reset once the inner middleware returns, so read
        # the value it left on request.state
        tenant_id = getattr(request.state, "tenant_id", None) or "unknown"
        route = request.scope.get("route")
        endpoint = getattr(route, "path", None) or request.url.path

        http_requests_total.labels(
            method=request.method,
            endpoint=endpoint,
            status_code=str(response.status_code),
            tenant_id=tenant_id,
        ).inc()

        http_request_duration_seconds.labels(
            method=request.method,
            endpoint=endpoint,
            tenant_id=tenant_id,
        ).observe(duration)

        return response


# ── Sentry Integration ───────────────────────────────────────────────────────


def init_sentry(dsn: str, environment: str) -> None:
    """Initialize Sentry SDK with tenant-aware event tagging.

    Args:
        dsn: Sentry DSN string.
        environment: Deployment environment (development, staging, production).
    """
    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.starlette import StarletteIntegration

    traces_sample_rate = 0.1 if environment == "production" else 1.0

    def before_send(event: dict, hint: dict) -> dict:
        """Add tenant and simulation context to Sentry events."""
        try:
            from src.app.core.tenant import get_current_tenant

            ctx = get_current_tenant()
            event.setdefault("tags", {})
            event["tags"]["tenant_id"] = ctx.tenant_id
            if ctx.simulation_session_id:
                event["tags"]["simulation_session_id"] = ctx.simulation_session_id
        except RuntimeError:
            pass
        return event

    sentry_sdk.init(
        dsn=dsn,
        environment=environment,
        traces_sample_rate=traces_sample_rate,
        integrations=[
            StarletteIntegration(),
            FastApiIntegration(),
        ],
        before_send=before_send,
    )


# ── Metrics Endpoint ─────────────────────────────────────────────────────────


def get_metrics_response() -> Response:
    """Generate Prometheus exposition format response."""
    return Response(
        content=generate_latest(REGISTRY),
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )
