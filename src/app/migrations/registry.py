"""Static migration registry.

Every unit is declared here in code (no directory scanning). Names carry a
timestamp prefix and the runner applies units in ascending name order.

Provides:
- MigrationType: central or tenant
- Migration: one unit with its up/down steps
- MIGRATIONS: every registered unit
- migrations_for(): the ordered units of one type
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum

from sqlalchemy.ext.asyncio import AsyncConnection

from src.app.migrations import central, tenant

# Steps receive an open transaction on the target database and, for tenant
# units, the database name.
MigrationStep = Callable[[AsyncConnection, str | None], Awaitable[None]]


class MigrationType(str, Enum):
    CENTRAL = "central"
    TENANT = "tenant"


@dataclass(frozen=True)
class Migration:
    name: str
    migration_type: MigrationType
    up: MigrationStep
    down: MigrationStep | None = None
    description: str = ""


MIGRATIONS: tuple[Migration, ...] = (
    # ── Central ─────────────────────────────────────────────────────────
    Migration(
        name="20250101000000-create-central-tables",
        migration_type=MigrationType.CENTRAL,
        up=central.create_central_tables,
        down=central.drop_central_tables,
        description="Create tenants, users, simulation_sessions and activity_logs",
    ),
    Migration(
        name="20250109120000-update-user-school-status",
        migration_type=MigrationType.CENTRAL,
        up=central.backfill_user_tenant_status,
        down=central.reset_user_tenant_status,
        description="Set missing user/school status to ACTIVE, deleted rows to INACTIVE",
    ),
    # ── Tenant ──────────────────────────────────────────────────────────
    Migration(
        name="20250101000000-create-tenant-tables",
        migration_type=MigrationType.TENANT,
        up=tenant.create_tenant_tables,
        down=tenant.drop_tenant_tables,
        description="Create students",
    ),
    Migration(
        name="20250109120000-update-student-status",
        migration_type=MigrationType.TENANT,
        up=tenant.backfill_student_status,
        down=tenant.reset_student_status,
        description="Set missing student status to ACTIVE, deleted rows to INACTIVE",
    ),
    Migration(
        name="20250109120001-add-csv-upload-field",
        migration_type=MigrationType.TENANT,
        up=tenant.backfill_csv_upload_flag,
        down=tenant.clear_csv_upload_flag,
        description="Default is_csv_upload to false on existing students",
    ),
)


def migrations_for(
    migration_type: MigrationType,
    migrations: tuple[Migration, ...] | list[Migration] = MIGRATIONS,
) -> list[Migration]:
    """Units of ``migration_type`` sorted by their timestamped name."""
    return sorted(
        (m for m in migrations if m.migration_type == migration_type),
        key=lambda m: m.name,
    )
