"""Tests for the migration runner and its command-line entry point.

Covers:
- ordered execution and idempotent re-runs
- tracker rows for successes and failures
- stop-on-first-failure and resume on the next run
- run_all skipping the tenant phase after a central failure
- shipped backfills and rollback
- CLI exit codes
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import func, insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.app.core.database import TenantBase
from src.app.core.errors import NotFoundError
from src.app.migrations.cli import build_parser, execute, main
from src.app.migrations.registry import MIGRATIONS, Migration, MigrationType, migrations_for
from src.app.migrations.runner import MigrationResult, MigrationRunner, MigrationRunSummary
from src.app.models.central import Tenant
from src.app.models.migration import MigrationRecord
from src.app.models.tenant import Student


class _Units:
    """Builds recording migration units; names listed in ``failing`` raise."""

    def __init__(self) -> None:
        self.calls: list[str] = []
        self.failing: set[str] = set()

    def make(self, name: str, migration_type: MigrationType = MigrationType.CENTRAL) -> Migration:
        async def up(conn, db_name):
            self.calls.append(name)
            if name in self.failing:
                raise RuntimeError(f"{name} exploded")

        return Migration(name=name, migration_type=migration_type, up=up)


async def _tracker_rows(engine) -> list[MigrationRecord]:
    async with AsyncSession(engine) as session:
        result = await session.execute(select(MigrationRecord).order_by(MigrationRecord.id))
        return list(result.scalars().all())


# ── Registry ──────────────────────────────────────────────────────────────


def test_registry_is_sorted_by_name():
    for migration_type in MigrationType:
        names = [m.name for m in migrations_for(migration_type)]
        assert names == sorted(names)
        assert len(names) == len(set(names))


def test_migrations_for_sorts_out_of_order_units():
    units = _Units()
    unsorted = [units.make("20250102-b"), units.make("20250101-a"), units.make("20250101-t", MigrationType.TENANT)]
    assert [m.name for m in migrations_for(MigrationType.CENTRAL, unsorted)] == ["20250101-a", "20250102-b"]


# ── Runner ────────────────────────────────────────────────────────────────


class TestRunner:
    async def test_central_run_is_idempotent(self, central_engine, connection_cache):
        runner = MigrationRunner(central_engine, connection_cache)

        first = await runner.run_central()
        second = await runner.run_central()

        assert [r.name for r in first] == [m.name for m in migrations_for(MigrationType.CENTRAL)]
        assert all(r.success for r in first)
        assert second == []

    async def test_tenant_run_records_db_name(self, central_engine, connection_cache):
        runner = MigrationRunner(central_engine, connection_cache)

        results = await runner.run_tenant("school_m")

        assert len(results) == len(migrations_for(MigrationType.TENANT))
        engine = await connection_cache.get_connection("school_m")
        rows = await _tracker_rows(engine)
        assert {r.tenant_db_name for r in rows} == {"school_m"}
        assert all(r.success and r.migration_type == "tenant" for r in rows)
        assert await runner.run_tenant("school_m") == []

    async def test_units_run_in_name_order(self, central_engine, connection_cache):
        units = _Units()
        runner = MigrationRunner(
            central_engine,
            connection_cache,
            migrations=[units.make("20250103-c"), units.make("20250101-a"), units.make("20250102-b")],
        )

        await runner.run_central()

        assert units.calls == ["20250101-a", "20250102-b", "20250103-c"]

    async def test_failure_stops_run_and_resumes_later(self, central_engine, connection_cache):
        units = _Units()
        units.failing.add("20250102-b")
        runner = MigrationRunner(
            central_engine,
            connection_cache,
            migrations=[units.make("20250101-a"), units.make("20250102-b"), units.make("20250103-c")],
        )

        results = await runner.run_central()

        assert [(r.name, r.success) for r in results] == [("20250101-a", True), ("20250102-b", False)]
        assert "exploded" in results[1].error
        assert units.calls == ["20250101-a", "20250102-b"]

        rows = await _tracker_rows(central_engine)
        failed = [r for r in rows if not r.success]
        assert [r.migration_name for r in failed] == ["20250102-b"]
        assert failed[0].error_message == "20250102-b exploded"

        # Fixed: only the failed unit and the ones after it run
        units.failing.clear()
        units.calls.clear()
        resumed = await runner.run_central()

        assert units.calls == ["20250102-b", "20250103-c"]
        assert all(r.success for r in resumed)

    async def test_failed_unit_changes_are_rolled_back(self, central_engine, connection_cache):
        async def half_done(conn, db_name):
            await conn.execute(insert(Tenant.__table__).values(id=uuid.uuid4(), name="Half", database_name="half"))
            raise RuntimeError("halfway")

        runner = MigrationRunner(
            central_engine,
            connection_cache,
            migrations=[Migration(name="20250101-half", migration_type=MigrationType.CENTRAL, up=half_done)],
        )
        await runner.run_central()

        async with AsyncSession(central_engine) as session:
            assert await session.scalar(select(func.count()).select_from(Tenant)) == 0

    async def test_run_all_skips_tenant_after_central_failure(self, central_engine):
        units = _Units()
        units.failing.add("20250101-central")
        cache = MagicMock()
        cache.get_connection = AsyncMock()
        runner = MigrationRunner(
            central_engine,
            cache,
            migrations=[units.make("20250101-central"), units.make("20250101-tenant", MigrationType.TENANT)],
        )

        summary = await runner.run_all("school_m")

        assert summary.tenant_skipped is True
        assert summary.failed is True
        assert summary.tenant == []
        cache.get_connection.assert_not_awaited()
        assert units.calls == ["20250101-central"]

    async def test_run_all_runs_both_phases(self, central_engine, connection_cache):
        runner = MigrationRunner(central_engine, connection_cache)

        summary = await runner.run_all("school_m")

        assert summary.failed is False
        assert summary.tenant_skipped is False
        assert len(summary.central) == len(migrations_for(MigrationType.CENTRAL))
        assert len(summary.tenant) == len(migrations_for(MigrationType.TENANT))

    async def test_run_all_without_db_name_is_central_only(self, central_engine, connection_cache):
        summary = await MigrationRunner(central_engine, connection_cache).run_all()
        assert summary.tenant == []
        assert summary.tenant_skipped is False


# ── Shipped migrations ────────────────────────────────────────────────────


class TestShippedMigrations:
    async def test_student_backfills(self, central_engine, connection_cache):
        engine = await connection_cache.get_connection("school_m")
        async with engine.begin() as conn:
            await conn.run_sync(TenantBase.metadata.create_all)
            await conn.execute(
                insert(Student.__table__),
                [
                    {"id": uuid.uuid4(), "first_name": "No", "last_name": "Status", "email": "a@x.org",
                     "status": None, "is_csv_upload": None, "deleted_at": None},
                    {"id": uuid.uuid4(), "first_name": "Gone", "last_name": "Away", "email": "b@x.org",
                     "status": "ACTIVE", "is_csv_upload": True,
                     "deleted_at": datetime(2025, 1, 1, tzinfo=timezone.utc)},
                ],
            )

        results = await MigrationRunner(central_engine, connection_cache).run_tenant("school_m")
        assert all(r.success for r in results)

        async with AsyncSession(engine) as session:
            students = {s.email: s for s in (await session.execute(select(Student))).scalars()}
        assert students["a@x.org"].status == "ACTIVE"
        assert students["a@x.org"].is_csv_upload is False
        assert students["b@x.org"].status == "INACTIVE"
        assert students["b@x.org"].is_csv_upload is True

    async def test_rollback_reopens_unit(self, central_engine, connection_cache):
        runner = MigrationRunner(central_engine, connection_cache)
        await runner.run_tenant("school_m")
        name = "20250109120001-add-csv-upload-field"

        result = await runner.rollback(name, MigrationType.TENANT, "school_m")

        assert result.success is True
        states = {s.name: s for s in await runner.status(MigrationType.TENANT, "school_m")}
        assert states[name].applied is False
        assert states["20250101000000-create-tenant-tables"].applied is True
        assert states["20250101000000-create-tenant-tables"].executed_at is not None
        assert [r.name for r in await runner.run_tenant("school_m")] == [name]

    async def test_rollback_of_unapplied_unit(self, central_engine, connection_cache):
        runner = MigrationRunner(central_engine, connection_cache)
        with pytest.raises(NotFoundError):
            await runner.rollback("20250109120001-add-csv-upload-field", MigrationType.TENANT, "school_m")
        with pytest.raises(NotFoundError):
            await runner.rollback("19990101-unknown", MigrationType.CENTRAL)


# ── CLI ───────────────────────────────────────────────────────────────────


def _args(*argv: str):
    return build_parser().parse_args(list(argv))


class TestCli:
    def test_tenant_without_db_name_exits_1(self):
        assert main(["run", "--type", "tenant"]) == 1

    def test_invalid_invocation_exits_1(self):
        assert main(["run", "--type", "everything"]) == 1
        assert main([]) == 1

    async def test_successful_run_exits_0(self, central_engine, connection_cache):
        runner = MigrationRunner(central_engine, connection_cache)
        assert await execute(_args("run", "--type", "all", "--db-name", "school_m"), runner=runner) == 0
        # Nothing left to do is still a success
        assert await execute(_args("run", "--type", "central"), runner=runner) == 0

    async def test_failed_unit_exits_1(self):
        runner = MagicMock()
        runner.run_all = AsyncMock(
            return_value=MigrationRunSummary(
                central=[MigrationResult(name="20250101-a", success=False, execution_time_ms=3, error="boom")],
                tenant_skipped=True,
            )
        )
        assert await execute(_args("run", "--type", "all", "--db-name", "school_m"), runner=runner) == 1

    async def test_runner_error_exits_1(self):
        runner = MagicMock()
        runner.rollback = AsyncMock(side_effect=NotFoundError("migration.not_found", name="x"))
        assert await execute(_args("rollback", "x", "--type", "central"), runner=runner) == 1

    async def test_status_lists_units(self, central_engine, connection_cache, capsys):
        runner = MigrationRunner(central_engine, connection_cache)
        await runner.run_central()

        assert await execute(_args("status", "--type", "central"), runner=runner) == 0

        out = capsys.readouterr().out
        for migration in migrations_for(MigrationType.CENTRAL, MIGRATIONS):
            assert migration.name in out
        assert "pending" not in out
