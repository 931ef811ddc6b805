"""Versioned data migrations for the central and per-school databases.

Units are plain async functions registered in a static, ordered registry;
MigrationRunner applies the ones not yet recorded in each database's
``migration_tracker`` table.
"""
