"""Central database models -- tables that exist once for the whole platform.

The tenant registry, staff users, simulation sessions and the activity log
live here. Student records live in each school's own database
(src.app.models.tenant).
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from src.app.core.database import CentralBase
from src.app.models.enums import RecordStatus, SimulationMode, SimulationStatus, utcnow


class Tenant(CentralBase):
    """Registered school in the platform.

    Each school owns a dedicated database named by ``database_name``.
    """

    __tablename__ = "tenants"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    database_name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    logo_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    status: Mapped[str | None] = mapped_column(
        String(20), default=RecordStatus.ACTIVE.value, nullable=True
    )
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), onupdate=utcnow, nullable=True
    )


class User(CentralBase):
    """Staff account (super admin, school admin or professor)."""

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    last_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    hashed_password: Mapped[str | None] = mapped_column(String(255), nullable=True)
    role: Mapped[str] = mapped_column(String(30), nullable=False)
    tenant_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("tenants.id"), nullable=True
    )
    preferred_language: Mapped[str] = mapped_column(String(5), default="fr")
    status: Mapped[str | None] = mapped_column(
        String(20), default=RecordStatus.ACTIVE.value, nullable=True
    )
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class SimulationSession(CentralBase):
    """Audit record of a staff user viewing the platform as a student."""

    __tablename__ = "simulation_sessions"
    __table_args__ = (
        Index("ix_simulation_sessions_user_status", "original_user_id", "status"),
        Index("ix_simulation_sessions_tenant_created", "tenant_id", "created_at"),
        Index("ix_simulation_sessions_student_created", "simulated_student_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    # Staff member running the simulation
    original_user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    original_user_role: Mapped[str] = mapped_column(String(30), nullable=False)
    original_user_email: Mapped[str] = mapped_column(String(255), nullable=False)

    # Student being viewed
    simulated_student_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    simulated_student_email: Mapped[str] = mapped_column(String(255), nullable=False)
    simulated_student_name: Mapped[str] = mapped_column(String(200), nullable=False)

    tenant_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    tenant_name: Mapped[str] = mapped_column(String(200), nullable=False)

    simulation_mode: Mapped[str] = mapped_column(
        String(40), nullable=False, default=SimulationMode.READ_ONLY_IMPERSONATION.value
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=SimulationStatus.ACTIVE.value
    )
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    ended_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    duration_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)

    purpose: Mapped[str | None] = mapped_column(Text, nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # Observability
    pages_visited: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    modules_viewed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    quizzes_viewed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    ai_chats_opened: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), onupdate=utcnow, nullable=True
    )


class ActivityLog(CentralBase):
    """Audit trail entry."""

    __tablename__ = "activity_logs"
    __table_args__ = (
        Index("ix_activity_logs_tenant_created", "tenant_id", "created_at"),
        Index("ix_activity_logs_type_created", "activity_type", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    activity_type: Mapped[str] = mapped_column(String(60), nullable=False)
    category: Mapped[str] = mapped_column(String(40), nullable=False)
    level: Mapped[str] = mapped_column(String(20), nullable=False)
    actor_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    actor_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    actor_role: Mapped[str | None] = mapped_column(String(30), nullable=True)
    tenant_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    target_type: Mapped[str | None] = mapped_column(String(40), nullable=True)
    target_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    description: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    details: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    is_success: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
