"""Per-tenant database models -- tables created in each school's database.

Every school has its own database, so no tenant_id column is needed:
isolation comes from the connection the tenant cache hands out.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from src.app.core.database import TenantBase
from src.app.models.enums import RecordStatus, utcnow


class Student(TenantBase):
    """Student enrolled at the school."""

    __tablename__ = "students"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    student_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    status: Mapped[str | None] = mapped_column(
        String(20), default=RecordStatus.ACTIVE.value, nullable=True
    )
    # Dummy accounts imported from CSV for demos and simulations
    is_csv_upload: Mapped[bool | None] = mapped_column(Boolean, default=False, nullable=True)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()
