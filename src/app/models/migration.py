"""Migration tracker model.

One row per migration attempt per database. A successful row for a
(migration_name, migration_type, tenant_db_name) key means the unit is
never executed again; failed rows stay for visibility and the unit remains
re-runnable.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from src.app.core.database import TrackerBase
from src.app.models.enums import utcnow


class MigrationRecord(TrackerBase):
    __tablename__ = "migration_tracker"
    __table_args__ = (
        Index(
            "ix_migration_tracker_key",
            "migration_name",
            "migration_type",
            "tenant_db_name",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    migration_name: Mapped[str] = mapped_column(String(200), nullable=False)
    migration_type: Mapped[str] = mapped_column(String(20), nullable=False)
    tenant_db_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    executed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    execution_time_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
