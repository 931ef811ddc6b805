"""FastAPI application factory.

Creates the app with tenant context middleware, logging middleware, metrics
middleware, CORS, Sentry, lifespan events for database initialization and
service wiring, and the v1 API router.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from collections.abc import AsyncGenerator

import redis.asyncio as aioredis
import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.requests import Request
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.app.api.errors import register_exception_handlers
from src.app.api.middleware.logging import LoggingMiddleware, configure_structlog
from src.app.api.middleware.tenant import TenantContextMiddleware
from src.app.api.v1.router import router as v1_router
from src.app.config import get_settings
from src.app.core import background
from src.app.core.connections import TenantConnectionCache, close_tenant_connections, get_tenant_connection_cache
from src.app.core.database import close_db, get_session_factory, init_db
from src.app.core.monitoring import MetricsMiddleware, get_metrics_response, init_sentry
from src.app.core.redis import close_redis, get_redis_pool
from src.app.core.security import TokenIssuer
from src.app.services.activity_log import ActivityLogService
from src.app.services.student_store import StudentStore
from src.app.services.tenant_registry import TenantRegistry
from src.app.services.users import UserDirectory
from src.app.simulation.guard import SimulationWriteGuard
from src.app.simulation.repository import SimulationSessionRepository
from src.app.simulation.service import SimulationService

logger = structlog.get_logger(__name__)


def wire_services(
    app: FastAPI,
    session_factory: async_sessionmaker[AsyncSession],
    connection_cache: TenantConnectionCache,
    redis_client: aioredis.Redis | None = None,
) -> None:
    """Build the service graph and store it on ``app.state``.

    Endpoint dependencies (src.app.api.deps) read everything from here.
    """
    token_issuer = TokenIssuer()
    activity_log = ActivityLogService(session_factory)
    user_directory = UserDirectory(session_factory)

    app.state.session_factory = session_factory
    app.state.connection_cache = connection_cache
    app.state.redis = redis_client
    app.state.token_issuer = token_issuer
    app.state.user_directory = user_directory
    app.state.activity_log = activity_log
    app.state.simulation_guard = SimulationWriteGuard(activity_log=activity_log)
    app.state.simulation_service = SimulationService(
        repository=SimulationSessionRepository(session_factory),
        tenant_registry=TenantRegistry(session_factory, redis_client=redis_client),
        connection_cache=connection_cache,
        student_store=StudentStore(),
        user_directory=user_directory,
        activity_log=activity_log,
        token_issuer=token_issuer,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: init DB, services and Sentry on startup, close on shutdown."""
    settings = get_settings()
    configure_structlog()
    await init_db()

    # Initialize Sentry if DSN is configured
    if settings.SENTRY_DSN:
        init_sentry(dsn=settings.SENTRY_DSN, environment=settings.ENVIRONMENT.value)

    wire_services(
        app,
        session_factory=get_session_factory(),
        connection_cache=get_tenant_connection_cache(),
        redis_client=get_redis_pool(),
    )
    logger.info("app_started", environment=settings.ENVIRONMENT.value)

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    # Audit writes and page-visit tracking still in flight
    await background.drain()

    await close_tenant_connections()
    await close_db()
    await close_redis()
    logger.info("app_stopped")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="School Platform API",
        version="0.1.0",
        description="Multi-school platform with staff-to-student simulation",
        lifespan=lifespan,
    )

    # Middleware is added in reverse order (last added = outermost)

    # Tenant context middleware (inner -- binds caller context from the JWT)
    app.add_middleware(TenantContextMiddleware)

    # CORS middleware
    if settings.CORS_ALLOWED_ORIGINS == "*":
        origins = ["*"]
    else:
        origins = [o.strip() for o in settings.CORS_ALLOWED_ORIGINS.split(",")]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Logging middleware (logs every request with timing)
    app.add_middleware(LoggingMiddleware)

    # Metrics middleware (outermost -- records Prometheus metrics for all requests)
    app.add_middleware(MetricsMiddleware)

    register_exception_handlers(app)

    # Include v1 API router (health, auth, simulation)
    app.include_router(v1_router)

    # Prometheus metrics endpoint (infrastructure route, outside v1 router)
    @app.get("/metrics", include_in_schema=False)
    async def metrics(request: Request) -> Response:
        """Prometheus metrics endpoint."""
        return get_metrics_response()

    return app


# Module-level app for uvicorn
app = create_app()
