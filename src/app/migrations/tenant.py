"""Per-school database migration units."""

from __future__ import annotations

import structlog
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncConnection

from src.app.core.database import TenantBase
from src.app.models.enums import RecordStatus
from src.app.models.tenant import Student

logger = structlog.get_logger(__name__)

students = Student.__table__


async def create_tenant_tables(conn: AsyncConnection, db_name: str | None = None) -> None:
    await conn.run_sync(TenantBase.metadata.create_all)


async def drop_tenant_tables(conn: AsyncConnection, db_name: str | None = None) -> None:
    await conn.run_sync(TenantBase.metadata.drop_all)


async def backfill_student_status(conn: AsyncConnection, db_name: str | None = None) -> None:
    activated = await conn.execute(
        update(students).where(students.c.status.is_(None)).values(status=RecordStatus.ACTIVE.value)
    )
    deactivated = await conn.execute(
        update(students)
        .where(
            students.c.deleted_at.is_not(None),
            students.c.status == RecordStatus.ACTIVE.value,
        )
        .values(status=RecordStatus.INACTIVE.value)
    )
    logger.info(
        "migration_status_backfilled",
        table="students",
        db_name=db_name,
        activated=activated.rowcount,
        deactivated=deactivated.rowcount,
    )


async def reset_student_status(conn: AsyncConnection, db_name: str | None = None) -> None:
    await conn.execute(update(students).values(status=RecordStatus.ACTIVE.value))


async def backfill_csv_upload_flag(conn: AsyncConnection, db_name: str | None = None) -> None:
    result = await conn.execute(
        update(students).where(students.c.is_csv_upload.is_(None)).values(is_csv_upload=False)
    )
    logger.info("migration_csv_flag_backfilled", db_name=db_name, updated=result.rowcount)


async def clear_csv_upload_flag(conn: AsyncConnection, db_name: str | None = None) -> None:
    await conn.execute(update(students).values(is_csv_upload=None))
