"""Async SQLAlchemy engine for the central database and declarative bases.

Provides:
- CentralBase: Declarative base for central tables (tenants, users, sessions, logs)
- TenantBase: Declarative base for per-tenant database tables (students)
- TrackerBase: Declarative base for the migration tracker (present in every database)
- build_engine(): create an AsyncEngine with pool settings suited to the dialect
- get_engine() / get_session_factory(): central engine and session factory singletons
- get_central_session(): FastAPI-style session generator for the central database

Tenant databases are never reached through this module; they are served by
TenantConnectionCache (src.app.core.connections).
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy import MetaData
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from src.app.config import get_settings

# ── Engine Construction ─────────────────────────────────────────────────────


def build_engine(url: Any, **overrides: Any) -> AsyncEngine:
    """Create an AsyncEngine, sizing the pool only for server databases."""
    kwargs: dict[str, Any] = {"pool_pre_ping": True, "echo": False}
    if not str(url).startswith("sqlite"):
        kwargs["pool_size"] = 20
        kwargs["max_overflow"] = 10
        kwargs["pool_recycle"] = 1800
    kwargs.update(overrides)
    return create_async_engine(url, **kwargs)


# ── Module-level central engine (lazy init) ─────────────────────────────────

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def get_engine() -> AsyncEngine:
    """Get or create the central async engine singleton."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = build_engine(settings.DATABASE_URL)
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get or create the central session factory singleton."""
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(get_engine(), expire_on_commit=False)
    return _session_factory


# ── Declarative Bases ───────────────────────────────────────────────────────

central_metadata = MetaData()
tenant_metadata = MetaData()
tracker_metadata = MetaData()


class CentralBase(DeclarativeBase):
    """Base class for central database models."""

    metadata = central_metadata


class TenantBase(DeclarativeBase):
    """Base class for per-tenant database models.

    Tables live in every school's own database; the engine for a given
    school comes from the tenant connection cache.
    """

    metadata = tenant_metadata


class TrackerBase(DeclarativeBase):
    """Base class for the migration tracker, created in every database."""

    metadata = tracker_metadata


# ── Session Factories ───────────────────────────────────────────────────────


async def get_central_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an AsyncSession bound to the central database."""
    async with get_session_factory()() as session:
        yield session


# ── Database Initialization ─────────────────────────────────────────────────


async def init_db() -> None:
    """Create central tables and the migration tracker if they don't exist."""
    # Model modules register their tables on import
    import src.app.models.central  # noqa: F401
    import src.app.models.migration  # noqa: F401

    engine = get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(CentralBase.metadata.create_all)
        await conn.run_sync(TrackerBase.metadata.create_all)


async def close_db() -> None:
    """Dispose of the central engine and close all connections."""
    global _engine, _session_factory
    if _engine:
        await _engine.dispose()
        _engine = None
        _session_factory = None
