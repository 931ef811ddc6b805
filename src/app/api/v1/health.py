"""Health check endpoints.

Provides liveness (/health) and readiness (/health/ready) checks. The
readiness check verifies the central database and Redis and reports the
state of the tenant connection cache.
"""

from __future__ import annotations

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy import text

from src.app.config import get_settings

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    """Basic liveness check.

    No external dependencies are checked -- just that the server is running.
    """
    settings = get_settings()
    return {"status": "ok", "environment": settings.ENVIRONMENT.value}


async def _check_dependencies(request: Request) -> dict:
    """Check central database and Redis connectivity. Returns check results dict."""
    checks: dict = {"database": "ok", "redis": "ok"}
    state = request.app.state

    try:
        async with state.session_factory() as session:
            await session.execute(text("SELECT 1"))
    except Exception as e:
        checks["database"] = "error"
        checks["database_error"] = str(e)

    redis = getattr(state, "redis", None)
    if redis is None:
        checks["redis"] = "disabled"
    else:
        try:
            pong = await redis.ping()
            if not pong:
                checks["redis"] = "error"
                checks["redis_error"] = "PING did not return PONG"
        except Exception as e:
            checks["redis"] = "error"
            checks["redis_error"] = str(e)

    cache = getattr(state, "connection_cache", None)
    checks["tenant_connections"] = len(cache) if cache is not None else 0
    checks["tenant_base_url_configured"] = bool(get_settings().TENANT_DATABASE_BASE_URL)

    return checks


@router.get("/health/ready")
async def readiness_check(request: Request):
    """Readiness check: verifies the central database and Redis.

    Returns 200 if all pass, 503 if any critical dependency fails. Redis
    only caches tenant lookups, so a missing client is not fatal.
    """
    checks = await _check_dependencies(request)
    all_healthy = checks.get("database") == "ok" and checks.get("redis") in ("ok", "disabled")

    return JSONResponse(
        status_code=status.HTTP_200_OK if all_healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "ready" if all_healthy else "degraded",
            "checks": checks,
        },
    )
