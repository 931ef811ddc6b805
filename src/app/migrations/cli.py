"""Command-line entry point for the migration runner.

Usage:
    school-migrate run --type central
    school-migrate run --type tenant --db-name school_a
    school-migrate run --type all --db-name school_a
    school-migrate status --type tenant --db-name school_a
    school-migrate rollback 20250109120001-add-csv-upload-field --type tenant --db-name school_a

Exit status is 0 when every executed unit succeeded (or none were due) and
1 on any failure or invalid invocation.
"""

from __future__ import annotations

import argparse
import asyncio
import sys

import structlog

from src.app.api.middleware.logging import configure_structlog
from src.app.core.connections import TenantConnectionCache, get_tenant_connection_cache
from src.app.core.database import close_db, get_engine
from src.app.core.errors import AppError
from src.app.migrations.registry import MigrationType
from src.app.migrations.runner import MigrationResult, MigrationRunner

logger = structlog.get_logger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="school-migrate", description="Apply database migrations")
    commands = parser.add_subparsers(dest="command", required=True)

    run = commands.add_parser("run", help="Apply pending migrations")
    run.add_argument("--type", choices=["central", "tenant", "all"], default="all", dest="migration_type")
    run.add_argument("--db-name", default=None, help="Tenant database name")

    status = commands.add_parser("status", help="List applied and pending migrations")
    status.add_argument("--type", choices=["central", "tenant"], default="central", dest="migration_type")
    status.add_argument("--db-name", default=None, help="Tenant database name")

    rollback = commands.add_parser("rollback", help="Revert one applied migration")
    rollback.add_argument("name", help="Migration name")
    rollback.add_argument("--type", choices=["central", "tenant"], required=True, dest="migration_type")
    rollback.add_argument("--db-name", default=None, help="Tenant database name")

    return parser


def _print_results(title: str, results: list[MigrationResult]) -> None:
    print(f"{title}:")
    if not results:
        print("  (nothing to apply)")
    for r in results:
        marker = "ok " if r.success else "FAIL"
        line = f"  [{marker}] {r.name} ({r.execution_time_ms} ms)"
        if r.error:
            line += f" -- {r.error}"
        print(line)


async def _run(runner: MigrationRunner, args: argparse.Namespace) -> int:
    if args.migration_type == "central":
        results = await runner.run_central()
        _print_results("Central migrations", results)
        return EXIT_OK if all(r.success for r in results) else EXIT_FAILURE

    if args.migration_type == "tenant":
        results = await runner.run_tenant(args.db_name)
        _print_results(f"Tenant migrations ({args.db_name})", results)
        return EXIT_OK if all(r.success for r in results) else EXIT_FAILURE

    if not args.db_name:
        print("No --db-name given: only central migrations will run.")
    summary = await runner.run_all(args.db_name)
    _print_results("Central migrations", summary.central)
    if summary.tenant_skipped:
        print("Tenant migrations skipped because a central migration failed.")
    elif args.db_name:
        _print_results(f"Tenant migrations ({args.db_name})", summary.tenant)
    return EXIT_FAILURE if summary.failed else EXIT_OK


async def _status(runner: MigrationRunner, args: argparse.Namespace) -> int:
    states = await runner.status(MigrationType(args.migration_type), args.db_name)
    for state in states:
        when = state.executed_at.isoformat() if state.executed_at else "pending"
        print(f"  {'applied' if state.applied else 'pending':8} {state.name}  {when}")
    return EXIT_OK


async def _rollback(runner: MigrationRunner, args: argparse.Namespace) -> int:
    result = await runner.rollback(args.name, MigrationType(args.migration_type), args.db_name)
    _print_results("Rollback", [result])
    return EXIT_OK if result.success else EXIT_FAILURE


_COMMANDS = {"run": _run, "status": _status, "rollback": _rollback}


async def execute(
    args: argparse.Namespace,
    runner: MigrationRunner | None = None,
    connection_cache: TenantConnectionCache | None = None,
) -> int:
    """Run one parsed command and return the process exit status."""
    if args.migration_type == "tenant" and not args.db_name:
        print("--db-name is required for tenant migrations", file=sys.stderr)
        return EXIT_FAILURE

    owns_resources = runner is None
    if runner is None:
        connection_cache = connection_cache or get_tenant_connection_cache()
        runner = MigrationRunner(get_engine(), connection_cache)
    try:
        return await _COMMANDS[args.command](runner, args)
    except AppError as e:
        print(f"Error: {e.message()}", file=sys.stderr)
        logger.error("migration_cli_failed", command=args.command, code=e.code)
        return EXIT_FAILURE
    except Exception:
        logger.error("migration_cli_crashed", command=args.command, exc_info=True)
        return EXIT_FAILURE
    finally:
        if owns_resources:
            await connection_cache.dispose_all()
            await close_db()


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as e:
        # argparse exits 2 on bad usage; report it as a plain failure
        return EXIT_OK if e.code == 0 else EXIT_FAILURE
    configure_structlog()
    return asyncio.run(execute(args))


if __name__ == "__main__":
    sys.exit(main())
