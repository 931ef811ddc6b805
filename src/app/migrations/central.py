"""Central database migration units."""

from __future__ import annotations

import structlog
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncConnection

from src.app.core.database import CentralBase
from src.app.models.central import Tenant, User
from src.app.models.enums import RecordStatus

logger = structlog.get_logger(__name__)

_STATUS_TABLES = (User.__table__, Tenant.__table__)


async def create_central_tables(conn: AsyncConnection, db_name: str | None = None) -> None:
    await conn.run_sync(CentralBase.metadata.create_all)


async def drop_central_tables(conn: AsyncConnection, db_name: str | None = None) -> None:
    await conn.run_sync(CentralBase.metadata.drop_all)


async def backfill_user_tenant_status(conn: AsyncConnection, db_name: str | None = None) -> None:
    """Give every user and school a status.

    Rows without one become ACTIVE; soft-deleted rows that are ACTIVE become
    INACTIVE.
    """
    for table in _STATUS_TABLES:
        activated = await conn.execute(
            update(table).where(table.c.status.is_(None)).values(status=RecordStatus.ACTIVE.value)
        )
        deactivated = await conn.execute(
            update(table)
            .where(
                table.c.deleted_at.is_not(None),
                table.c.status == RecordStatus.ACTIVE.value,
            )
            .values(status=RecordStatus.INACTIVE.value)
        )
        logger.info(
            "migration_status_backfilled",
            table=table.name,
            activated=activated.rowcount,
            deactivated=deactivated.rowcount,
        )


async def reset_user_tenant_status(conn: AsyncConnection, db_name: str | None = None) -> None:
    # The column stays; every row goes back to the default.
    for table in _STATUS_TABLES:
        await conn.execute(update(table).values(status=RecordStatus.ACTIVE.value))
