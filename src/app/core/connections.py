"""Per-tenant database connection cache.

Every school has its own database. TenantConnectionCache hands out one
AsyncEngine per database name, creating it lazily on first use and reusing
it afterwards. The cache is an injected object (one per application, stored
on ``app.state``) so tests can substitute it and so it can carry an
explicit eviction policy.

Provides:
- TenantConnectionCache: get-or-create engine cache with per-key locking
- get_tenant_connection_cache(): process-wide instance built from settings
"""

from __future__ import annotations

import asyncio
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import structlog
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

from src.app.config import get_settings
from src.app.core.database import build_engine
from src.app.core.errors import ConfigurationError
from src.app.core.monitoring import tenant_connections_cached

logger = structlog.get_logger(__name__)

EngineFactory = Callable[[str], AsyncEngine]


@dataclass
class _CachedConnection:
    engine: AsyncEngine
    last_used: float


class TenantConnectionCache:
    """Keyed get-or-create store of tenant database engines.

    Concurrent first lookups for the same database name are serialized by a
    per-name asyncio.Lock, so every caller receives the same engine object.
    Connection failures propagate to the caller and are never cached.

    Eviction is opt-in:
    - max_connections > 0 keeps at most that many engines (least recently
      used are disposed first)
    - idle_ttl_seconds > 0 disposes engines unused for longer than that
    With both at 0 engines live until dispose_all().

    Disposing an evicted engine closes its pooled connections, but an
    AsyncEngine reconnects on next use. Callers must not keep an engine
    beyond the unit of work it was fetched for; fetch it again instead, or
    they may end up holding a second pool next to the cached replacement.
    """

    def __init__(
        self,
        base_url: str | None = None,
        *,
        engine_factory: EngineFactory | None = None,
        max_connections: int = 0,
        idle_ttl_seconds: float = 0,
        verify_connection: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._base_url = base_url
        self._engine_factory = engine_factory or build_engine
        self._max_connections = max_connections
        self._idle_ttl_seconds = idle_ttl_seconds
        self._verify_connection = verify_connection
        self._clock = clock
        self._entries: OrderedDict[str, _CachedConnection] = OrderedDict()
        self._locks: dict[str, asyncio.Lock] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, database_name: object) -> bool:
        return database_name in self._entries

    # ── Lookup ──────────────────────────────────────────────────────────

    async def get_connection(self, database_name: str) -> AsyncEngine:
        """Return the engine for ``database_name``, connecting on first use.

        Raises:
            ConfigurationError: If no tenant base URL is configured.
            Exception: Whatever the driver raises when the first connection fails.
        """
        await self._evict_idle()

        cached = self._lookup(database_name)
        if cached is not None:
            return cached

        lock = self._locks.setdefault(database_name, asyncio.Lock())
        async with lock:
            cached = self._lookup(database_name)
            if cached is not None:
                return cached

            engine = await self._connect(database_name)
            self._entries[database_name] = _CachedConnection(engine=engine, last_used=self._clock())
            tenant_connections_cached.set(len(self._entries))

        await self._evict_overflow()
        return engine

    def build_url(self, database_name: str) -> str:
        """Compose ``{base}/{database_name}`` from the configured base URL."""
        base = self._base_url if self._base_url is not None else get_settings().TENANT_DATABASE_BASE_URL
        if not base:
            raise ConfigurationError()
        return f"{base.rstrip('/')}/{database_name}"

    def _lookup(self, database_name: str) -> AsyncEngine | None:
        cached = self._entries.get(database_name)
        if cached is None:
            return None
        cached.last_used = self._clock()
        self._entries.move_to_end(database_name)
        return cached.engine

    async def _connect(self, database_name: str) -> AsyncEngine:
        url = self.build_url(database_name)
        engine = self._engine_factory(url)

        if self._verify_connection:
            try:
                async with engine.connect() as conn:
                    await conn.execute(text("SELECT 1"))
            except Exception:
                logger.error("tenant_connection_failed", database_name=database_name, exc_info=True)
                await engine.dispose()
                raise

        logger.info("tenant_connection_established", database_name=database_name)
        return engine

    # ── Eviction ────────────────────────────────────────────────────────

    async def _evict_idle(self) -> None:
        if self._idle_ttl_seconds <= 0 or not self._entries:
            return
        cutoff = self._clock() - self._idle_ttl_seconds
        expired = [name for name, entry in self._entries.items() if entry.last_used < cutoff]
        for name in expired:
            await self._evict(name, reason="idle")

    async def _evict_overflow(self) -> None:
        if self._max_connections <= 0:
            return
        while len(self._entries) > self._max_connections:
            oldest = next(iter(self._entries))
            await self._evict(oldest, reason="capacity")

    async def _evict(self, database_name: str, reason: str) -> None:
        cached = self._entries.pop(database_name, None)
        if cached is None:
            return
        lock = self._locks.get(database_name)
        if lock is not None and not lock.locked():
            del self._locks[database_name]
        tenant_connections_cached.set(len(self._entries))
        await cached.engine.dispose()
        logger.info("tenant_connection_evicted", database_name=database_name, reason=reason)

    async def dispose_all(self) -> None:
        """Dispose every cached engine. Used on application shutdown."""
        names = list(self._entries)
        for name in names:
            cached = self._entries.pop(name)
            await cached.engine.dispose()
        self._locks.clear()
        tenant_connections_cached.set(0)
        if names:
            logger.info("tenant_connections_disposed", count=len(names))


# ── Process-wide instance ───────────────────────────────────────────────────

_cache: TenantConnectionCache | None = None


def get_tenant_connection_cache(**overrides: Any) -> TenantConnectionCache:
    """Get or create the process-wide cache configured from settings."""
    global _cache
    if _cache is None:
        settings = get_settings()
        options: dict[str, Any] = {
            "max_connections": settings.TENANT_CONNECTION_MAX,
            "idle_ttl_seconds": settings.TENANT_CONNECTION_IDLE_TTL_SECONDS,
        }
        options.update(overrides)
        _cache = TenantConnectionCache(**options)
    return _cache


async def close_tenant_connections() -> None:
    """Dispose the process-wide cache."""
    global _cache
    if _cache is not None:
        await _cache.dispose_all()
        _cache = None
