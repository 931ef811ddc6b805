"""Central tenant registry lookups.

Resolves a school id to the record needed to reach its database. Results
are cached in Redis for a few minutes; the cache is best-effort, so a Redis
outage only costs a database round-trip.
"""

from __future__ import annotations

import json
import uuid

import redis.asyncio as aioredis
import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.app.config import get_settings
from src.app.models.central import Tenant
from src.app.schemas.tenant import TenantRecord

logger = structlog.get_logger(__name__)


def _tenant_to_record(tenant: Tenant) -> TenantRecord:
    return TenantRecord(
        id=str(tenant.id),
        name=tenant.name,
        database_name=tenant.database_name,
        logo_url=tenant.logo_url,
        status=tenant.status,
    )


def _parse_uuid(value: str) -> uuid.UUID | None:
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        return None


class TenantRegistry:
    """Read-only access to the central ``tenants`` table.

    Args:
        session_factory: Central database session factory.
        redis_client: Optional Redis client for the lookup cache.
        cache_ttl_seconds: Lifetime of cached lookups.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        redis_client: aioredis.Redis | None = None,
        cache_ttl_seconds: int | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._redis = redis_client
        self._ttl = cache_ttl_seconds if cache_ttl_seconds is not None else get_settings().TENANT_CACHE_TTL_SECONDS

    async def find_tenant_by_id(self, tenant_id: str) -> TenantRecord | None:
        """Return the non-deleted tenant with ``tenant_id`` or None."""
        tid = _parse_uuid(tenant_id)
        if tid is None:
            return None

        cache_key = f"tenant:lookup:{tid}"
        if self._redis is not None:
            try:
                cached = await self._redis.get(cache_key)
                if cached:
                    return TenantRecord(**json.loads(cached))
            except Exception:
                logger.warning("tenant_cache_get_failed", tenant_id=str(tid))

        async with self._session_factory() as session:
            result = await session.execute(
                select(Tenant).where(Tenant.id == tid, Tenant.deleted_at.is_(None))
            )
            tenant = result.scalar_one_or_none()

        if tenant is None:
            return None

        record = _tenant_to_record(tenant)
        if self._redis is not None:
            try:
                await self._redis.set(cache_key, record.model_dump_json(), ex=self._ttl)
            except Exception:
                logger.warning("tenant_cache_set_failed", tenant_id=str(tid))

        return record
