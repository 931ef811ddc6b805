"""Migration runner.

Applies registered units to the central database or to one school's
database. Each database keeps its own ``migration_tracker`` table; a unit
with a successful row for its (name, type, tenant_db_name) key is never run
again. Every attempt is recorded, failed ones included, and a run stops at
its first failure. Unit failures are reported through the results and never
raised past the runner.

Provides:
- MigrationRunner: run_central / run_tenant / run_all / rollback / status
- MigrationResult, MigrationRunSummary, MigrationState: run reports
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime

import structlog
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from src.app.core.connections import TenantConnectionCache
from src.app.core.database import TrackerBase
from src.app.core.errors import BadRequestError, NotFoundError
from src.app.core.monitoring import migrations_executed_total
from src.app.migrations.registry import MIGRATIONS, Migration, MigrationType, migrations_for
from src.app.models.migration import MigrationRecord
from src.app.models.enums import as_utc

logger = structlog.get_logger(__name__)


@dataclass
class MigrationResult:
    name: str
    success: bool
    execution_time_ms: int
    error: str | None = None


@dataclass
class MigrationRunSummary:
    central: list[MigrationResult] = field(default_factory=list)
    tenant: list[MigrationResult] = field(default_factory=list)
    tenant_skipped: bool = False

    @property
    def failed(self) -> bool:
        return any(not r.success for r in self.central + self.tenant)


@dataclass
class MigrationState:
    name: str
    applied: bool
    executed_at: datetime | None = None
    description: str = ""


class MigrationRunner:
    """Applies migration units to the central and tenant databases.

    Args:
        central_engine: Engine of the central database.
        connection_cache: Source of tenant database engines.
        migrations: Units to consider; defaults to the static registry.
    """

    def __init__(
        self,
        central_engine: AsyncEngine,
        connection_cache: TenantConnectionCache,
        migrations: tuple[Migration, ...] | list[Migration] = MIGRATIONS,
    ) -> None:
        self._central_engine = central_engine
        self._connections = connection_cache
        self._migrations = migrations

    # ── Runs ────────────────────────────────────────────────────────────

    async def run_central(self) -> list[MigrationResult]:
        return await self._run(self._central_engine, MigrationType.CENTRAL, None)

    async def run_tenant(self, db_name: str) -> list[MigrationResult]:
        """Apply tenant units to ``db_name``.

        Raises:
            ConfigurationError: If no tenant base URL is configured.
        """
        engine = await self._connections.get_connection(db_name)
        return await self._run(engine, MigrationType.TENANT, db_name)

    async def run_all(self, db_name: str | None = None) -> MigrationRunSummary:
        """Central units first, then the tenant units of ``db_name`` if given.

        A failed central unit skips the tenant phase entirely.
        """
        summary = MigrationRunSummary(central=await self.run_central())

        if any(not r.success for r in summary.central):
            summary.tenant_skipped = True
            logger.error("migration_tenant_phase_skipped", db_name=db_name)
            return summary

        if db_name:
            summary.tenant = await self.run_tenant(db_name)
        return summary

    async def _run(
        self,
        engine: AsyncEngine,
        migration_type: MigrationType,
        db_name: str | None,
    ) -> list[MigrationResult]:
        await self._ensure_tracker(engine)
        applied = await self._applied_names(engine, migration_type, db_name)
        pending = [m for m in migrations_for(migration_type, self._migrations) if m.name not in applied]

        logger.info(
            "migration_run_started",
            migration_type=migration_type.value,
            db_name=db_name,
            pending=len(pending),
        )

        results: list[MigrationResult] = []
        for migration in pending:
            result = await self._execute(engine, migration, db_name)
            results.append(result)
            if not result.success:
                break

        logger.info(
            "migration_run_finished",
            migration_type=migration_type.value,
            db_name=db_name,
            executed=len(results),
            failed=sum(1 for r in results if not r.success),
        )
        return results

    async def _execute(self, engine: AsyncEngine, migration: Migration, db_name: str | None) -> MigrationResult:
        started = time.perf_counter()
        error: str | None = None
        try:
            async with engine.begin() as conn:
                await migration.up(conn, db_name)
        except Exception as e:
            error = str(e) or e.__class__.__name__
            logger.error(
                "migration_failed",
                migration=migration.name,
                migration_type=migration.migration_type.value,
                db_name=db_name,
                exc_info=True,
            )
        elapsed_ms = int((time.perf_counter() - started) * 1000)
        success = error is None

        await self._record(engine, migration, db_name, success, elapsed_ms, error)
        migrations_executed_total.labels(
            migration_type=migration.migration_type.value,
            status="success" if success else "failed",
        ).inc()
        if success:
            logger.info(
                "migration_applied",
                migration=migration.name,
                migration_type=migration.migration_type.value,
                db_name=db_name,
                execution_time_ms=elapsed_ms,
            )
        return MigrationResult(name=migration.name, success=success, execution_time_ms=elapsed_ms, error=error)

    # ── Rollback ────────────────────────────────────────────────────────

    async def rollback(
        self,
        name: str,
        migration_type: MigrationType,
        db_name: str | None = None,
    ) -> MigrationResult:
        """Run the ``down`` step of an applied unit and forget it was applied.

        Raises:
            NotFoundError: If the unit is unknown, has no down step or was
                never applied to the target.
        """
        migration = next(
            (m for m in self._migrations if m.name == name and m.migration_type == migration_type),
            None,
        )
        if migration is None or migration.down is None:
            raise NotFoundError("migration.not_found", name=name)

        engine = await self._engine_for(migration_type, db_name)
        await self._ensure_tracker(engine)
        if name not in await self._applied_names(engine, migration_type, db_name):
            raise NotFoundError("migration.not_found", name=name)

        started = time.perf_counter()
        try:
            async with engine.begin() as conn:
                await migration.down(conn, db_name)
        except Exception as e:
            logger.error("migration_rollback_failed", migration=name, db_name=db_name, exc_info=True)
            return MigrationResult(
                name=name,
                success=False,
                execution_time_ms=int((time.perf_counter() - started) * 1000),
                error=str(e) or e.__class__.__name__,
            )

        async with AsyncSession(engine) as session:
            await session.execute(delete(MigrationRecord).where(*self._key(name, migration_type, db_name)))
            await session.commit()

        elapsed_ms = int((time.perf_counter() - started) * 1000)
        logger.info("migration_rolled_back", migration=name, db_name=db_name, execution_time_ms=elapsed_ms)
        return MigrationResult(name=name, success=True, execution_time_ms=elapsed_ms)

    # ── Status ──────────────────────────────────────────────────────────

    async def status(self, migration_type: MigrationType, db_name: str | None = None) -> list[MigrationState]:
        """Applied/pending state of every unit of ``migration_type`` on the target."""
        engine = await self._engine_for(migration_type, db_name)
        await self._ensure_tracker(engine)

        async with AsyncSession(engine) as session:
            rows = await session.execute(
                select(MigrationRecord.migration_name, MigrationRecord.executed_at).where(
                    MigrationRecord.migration_type == migration_type.value,
                    self._tenant_clause(db_name),
                    MigrationRecord.success.is_(True),
                )
            )
            executed = {name: as_utc(at) for name, at in rows.all()}

        return [
            MigrationState(
                name=m.name,
                applied=m.name in executed,
                executed_at=executed.get(m.name),
                description=m.description,
            )
            for m in migrations_for(migration_type, self._migrations)
        ]

    # ── Tracker ─────────────────────────────────────────────────────────

    async def _engine_for(self, migration_type: MigrationType, db_name: str | None) -> AsyncEngine:
        if migration_type == MigrationType.CENTRAL:
            return self._central_engine
        if not db_name:
            raise BadRequestError("migration.db_name_required")
        return await self._connections.get_connection(db_name)

    @staticmethod
    async def _ensure_tracker(engine: AsyncEngine) -> None:
        async with engine.begin() as conn:
            await conn.run_sync(TrackerBase.metadata.create_all)

    @staticmethod
    def _tenant_clause(db_name: str | None):
        if db_name is None:
            return MigrationRecord.tenant_db_name.is_(None)
        return MigrationRecord.tenant_db_name == db_name

    def _key(self, name: str, migration_type: MigrationType, db_name: str | None) -> tuple:
        return (
            MigrationRecord.migration_name == name,
            MigrationRecord.migration_type == migration_type.value,
            self._tenant_clause(db_name),
        )

    async def _applied_names(
        self,
        engine: AsyncEngine,
        migration_type: MigrationType,
        db_name: str | None,
    ) -> set[str]:
        async with AsyncSession(engine) as session:
            result = await session.execute(
                select(MigrationRecord.migration_name).where(
                    MigrationRecord.migration_type == migration_type.value,
                    self._tenant_clause(db_name),
                    MigrationRecord.success.is_(True),
                )
            )
            return set(result.scalars().all())

    @staticmethod
    async def _record(
        engine: AsyncEngine,
        migration: Migration,
        db_name: str | None,
        success: bool,
        elapsed_ms: int,
        error: str | None,
    ) -> None:
        async with AsyncSession(engine) as session:
            session.add(
                MigrationRecord(
                    migration_name=migration.name,
                    migration_type=migration.migration_type.value,
                    tenant_db_name=db_name,
                    execution_time_ms=elapsed_ms,
                    success=success,
                    error_message=error,
                )
            )
            await session.commit()
