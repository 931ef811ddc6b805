#!/usr/bin/env python3
"""CLI script to apply database migrations.

Usage:
    uv run python scripts/migrate.py run --type central
    uv run python scripts/migrate.py run --type all --db-name school_a
    uv run python scripts/migrate.py status --type tenant --db-name school_a

Connects using DATABASE_URL and TENANT_DATABASE_BASE_URL from environment
or .env file. See src/app/migrations/cli.py for all commands.
"""

from __future__ import annotations

import os
import sys

# Ensure project root is on sys.path so we can import src.app
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from dotenv import load_dotenv  # noqa: E402

# Load .env from project root
load_dotenv(os.path.join(os.path.dirname(__file__), "..", ".env"))

from src.app.migrations.cli import main  # noqa: E402

if __name__ == "__main__":
    sys.exit(main())
