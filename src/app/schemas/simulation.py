"""Pydantic schemas for the simulation API."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from src.app.models.enums import ActivityCounter, SimulationMode, SimulationStatus


# ── Requests ─────────────────────────────────────────────────────────────────


class StartSimulationRequest(BaseModel):
    """Request to view the platform as a student."""

    student_id: str = Field(..., description="Student to simulate")
    simulation_mode: SimulationMode = Field(
        default=SimulationMode.READ_ONLY_IMPERSONATION,
        description="Simulation mode",
    )
    tenant_id: str | None = Field(
        default=None,
        description="School of the student; required for super admins",
    )
    purpose: str | None = Field(default=None, max_length=500, description="Reason for the simulation (audit only)")


class ActivityCounterRequest(BaseModel):
    counter: ActivityCounter = Field(..., description="Counter to increment")


# ── Building blocks ──────────────────────────────────────────────────────────


class SimulatedStudent(BaseModel):
    id: str
    first_name: str
    last_name: str
    email: str
    student_code: str | None = None


class TenantSummary(BaseModel):
    id: str
    name: str
    logo: str | None = None


class SessionSummary(BaseModel):
    """Full view of a simulation session."""

    id: str
    original_user_id: str
    original_user_role: str
    original_user_email: str
    simulated_student_id: str
    simulated_student_email: str
    simulated_student_name: str
    tenant_id: str
    tenant_name: str
    simulation_mode: SimulationMode
    status: SimulationStatus
    started_at: datetime
    ended_at: datetime | None = None
    duration_seconds: int | None = None
    purpose: str | None = None
    pages_visited: list[str] = Field(default_factory=list)
    modules_viewed: int = 0
    quizzes_viewed: int = 0
    ai_chats_opened: int = 0


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> Pagination:
        total_pages = (total + limit - 1) // limit if limit else 0
        return cls(
            page=page,
            limit=limit,
            total=total,
            total_pages=total_pages,
            has_next=page < total_pages,
            has_prev=page > 1,
        )


# ── Responses ────────────────────────────────────────────────────────────────


class SimulationTokenResponse(BaseModel):
    """Scoped credential issued on start."""

    message: str
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    access_token_expires_in: int
    simulation_session_id: str
    simulation_mode: SimulationMode
    simulated_student: SimulatedStudent
    tenant: TenantSummary


class EndSimulationResponse(BaseModel):
    """Fresh staff credential issued on end.

    Tokens are empty and the summary is null when no session was found.
    """

    message: str
    access_token: str = ""
    refresh_token: str = ""
    token_type: str = "bearer"
    access_token_expires_in: int | None = None
    session_summary: SessionSummary | None = None


class ActiveSessionInfo(BaseModel):
    id: str
    simulated_student_id: str
    simulated_student_name: str
    simulated_student_email: str
    tenant_id: str
    tenant_name: str
    simulation_mode: SimulationMode
    started_at: datetime
    elapsed_seconds: int


class SimulationStatusResponse(BaseModel):
    is_simulation: bool
    original_user_id: str | None = None
    original_user_role: str | None = None
    session: ActiveSessionInfo | None = None


class CleanupResponse(BaseModel):
    message: str
    sessions_ended: int


class AvailableStudent(BaseModel):
    id: str
    first_name: str
    last_name: str
    email: str
    student_code: str | None = None
    is_dummy_student: bool = False


class AvailableStudentsResponse(BaseModel):
    students: list[AvailableStudent]
    tenant: TenantSummary
    pagination: Pagination


class SimulationHistoryResponse(BaseModel):
    sessions: list[SessionSummary]
    pagination: Pagination
