"""Simulation session manager.

Lets a staff member view the platform as one of their school's students.
start() issues a short-lived student credential flagged ``is_simulation``
and records an ACTIVE session; end() closes the session and hands back a
fresh staff credential. The write guard (src.app.simulation.guard) keeps
the simulation credential read-only.

Session lifecycle: ACTIVE -> ENDED (terminal). A staff member has at most
one ACTIVE session: start() auto-ends any leftover session first.

Exports:
    SimulationService: start / end / status / students / history / cleanup
        plus the best-effort tracking mutators.
    ClientInfo: request metadata captured for the audit record.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

import structlog

from src.app.config import Settings, get_settings
from src.app.core.background import spawn_best_effort
from src.app.core.connections import TenantConnectionCache
from src.app.core.errors import (
    AlreadySimulatingError,
    AuthenticationError,
    BadRequestError,
    InvalidStateError,
    NotFoundError,
)
from src.app.core.i18n import translate
from src.app.core.monitoring import (
    simulation_sessions_ended_total,
    simulation_sessions_started_total,
)
from src.app.core.security import TokenIssuer, TokenPair
from src.app.models.central import SimulationSession
from src.app.models.enums import (
    ActivityCounter,
    ActivityType,
    RecordStatus,
    SimulationStatus,
    UserRole,
    as_utc,
    utcnow,
)
from src.app.schemas.auth import CurrentUser
from src.app.schemas.simulation import (
    ActiveSessionInfo,
    AvailableStudent,
    AvailableStudentsResponse,
    CleanupResponse,
    EndSimulationResponse,
    Pagination,
    SessionSummary,
    SimulatedStudent,
    SimulationHistoryResponse,
    SimulationStatusResponse,
    SimulationTokenResponse,
    StartSimulationRequest,
    TenantSummary,
)
from src.app.schemas.tenant import TenantRecord
from src.app.services.activity_log import (
    ActivityEntry,
    ActivityLogService,
    Actor,
    Target,
)
from src.app.services.student_store import StudentStore
from src.app.services.tenant_registry import TenantRegistry
from src.app.services.users import UserDirectory, build_staff_claims
from src.app.simulation.repository import SimulationSessionRepository, compute_duration_seconds
from src.app.simulation.scopes import scope_for, staff_role

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ClientInfo:
    ip_address: str | None = None
    user_agent: str | None = None


def session_to_summary(record: SimulationSession) -> SessionSummary:
    return SessionSummary(
        id=str(record.id),
        original_user_id=str(record.original_user_id),
        original_user_role=record.original_user_role,
        original_user_email=record.original_user_email,
        simulated_student_id=str(record.simulated_student_id),
        simulated_student_email=record.simulated_student_email,
        simulated_student_name=record.simulated_student_name,
        tenant_id=str(record.tenant_id),
        tenant_name=record.tenant_name,
        simulation_mode=record.simulation_mode,
        status=record.status,
        started_at=as_utc(record.started_at),
        ended_at=as_utc(record.ended_at) if record.ended_at else None,
        duration_seconds=record.duration_seconds,
        purpose=record.purpose,
        pages_visited=list(record.pages_visited or []),
        modules_viewed=record.modules_viewed,
        quizzes_viewed=record.quizzes_viewed,
        ai_chats_opened=record.ai_chats_opened,
    )


def _tenant_summary(tenant: TenantRecord) -> TenantSummary:
    return TenantSummary(id=tenant.id, name=tenant.name, logo=tenant.logo_url)


class SimulationService:
    """Orchestrates simulation sessions.

    Args:
        repository: Session persistence in the central database.
        tenant_registry: Central school registry.
        connection_cache: Tenant database engines.
        student_store: Student lookups in a tenant database.
        user_directory: Staff accounts, used to re-issue staff credentials.
        activity_log: Audit trail (written best-effort).
        token_issuer: JWT signer.
        settings: Token lifetimes; defaults to get_settings().
        clock: Source of "now"; injectable for tests.
    """

    def __init__(
        self,
        repository: SimulationSessionRepository,
        tenant_registry: TenantRegistry,
        connection_cache: TenantConnectionCache,
        student_store: StudentStore,
        user_directory: UserDirectory,
        activity_log: ActivityLogService,
        token_issuer: TokenIssuer,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._repo = repository
        self._tenants = tenant_registry
        self._connections = connection_cache
        self._students = student_store
        self._users = user_directory
        self._activity = activity_log
        self._issuer = token_issuer
        self._settings = settings or get_settings()
        self._clock = clock

    # ── Start ───────────────────────────────────────────────────────────

    async def start(
        self,
        staff: CurrentUser,
        request: StartSimulationRequest,
        client: ClientInfo | None = None,
    ) -> SimulationTokenResponse:
        """Begin viewing the platform as a student.

        Validation order:
            1. caller's staff role may simulate (ForbiddenError)
            2. caller is not already simulating (AlreadySimulatingError)
            3. leftover ACTIVE sessions of the caller are auto-ended
            4. a school is resolved for the role (BadRequestError)
            5. the school exists (NotFoundError)
            6. the student exists and is not deleted (NotFoundError)
            7. the student is not INACTIVE (BadRequestError)
        """
        scope = scope_for(staff)
        if staff.is_simulation:
            raise AlreadySimulatingError()

        original_user_id = staff.id
        original_role = staff_role(staff)

        superseded = await self._end_all_active(original_user_id, reason="superseded")
        if superseded:
            logger.info(
                "simulation_sessions_superseded",
                user_id=original_user_id,
                count=superseded,
            )

        tenant_id = scope.resolve_tenant_id(staff, request.tenant_id)
        tenant = await self._tenants.find_tenant_by_id(tenant_id)
        if tenant is None:
            raise NotFoundError("simulation.tenant_not_found")

        engine = await self._connections.get_connection(tenant.database_name)
        student = await self._students.find_active_student_by_id(engine, request.student_id)
        if student is None:
            raise NotFoundError("simulation.student_not_found")
        if student.status == RecordStatus.INACTIVE.value:
            raise BadRequestError("simulation.account_deactivated")

        client = client or ClientInfo()
        record = await self._repo.create(
            original_user_id=uuid.UUID(original_user_id),
            original_user_role=original_role.value,
            original_user_email=staff.email,
            simulated_student_id=uuid.UUID(student.id),
            simulated_student_email=student.email,
            simulated_student_name=student.full_name,
            tenant_id=uuid.UUID(tenant.id),
            tenant_name=tenant.name,
            simulation_mode=request.simulation_mode.value,
            started_at=self._clock(),
            purpose=request.purpose,
            ip_address=client.ip_address,
            user_agent=client.user_agent,
        )
        session_id = str(record.id)

        simulation_sessions_started_total.labels(mode=request.simulation_mode.value).inc()
        logger.info(
            "simulation_started",
            session_id=session_id,
            user_id=original_user_id,
            role=original_role.value,
            tenant_id=tenant.id,
            student_id=student.id,
        )

        self._activity.record_in_background(
            ActivityEntry(
                activity_type=ActivityType.SIMULATION_STARTED,
                actor=Actor(
                    id=original_user_id,
                    email=staff.email,
                    role=original_role.value,
                    tenant_id=tenant.id,
                ),
                target=Target(type="student", id=student.id),
                metadata={
                    "simulation_session_id": session_id,
                    "simulation_mode": request.simulation_mode.value,
                    "purpose": request.purpose,
                    "tenant_name": tenant.name,
                },
                description_params={"actor": staff.email, "student": student.full_name},
            )
        )

        claims: dict[str, Any] = {
            "sub": student.id,
            "email": student.email,
            "role": UserRole.STUDENT.value,
            "tenant_id": tenant.id,
            "first_name": student.first_name,
            "last_name": student.last_name,
            "language": staff.language,
            "is_simulation": True,
            "simulation_session_id": session_id,
            "original_user_id": original_user_id,
            "original_user_role": original_role.value,
        }
        tokens = self._issuer.issue_pair(
            claims,
            access_expires=timedelta(minutes=self._settings.SIMULATION_ACCESS_TOKEN_EXPIRE_MINUTES),
            refresh_expires=timedelta(minutes=self._settings.SIMULATION_REFRESH_TOKEN_EXPIRE_MINUTES),
        )

        return SimulationTokenResponse(
            message=translate("simulation.started", staff.language),
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            access_token_expires_in=tokens.access_token_expires_in,
            simulation_session_id=session_id,
            simulation_mode=request.simulation_mode,
            simulated_student=SimulatedStudent(
                id=student.id,
                first_name=student.first_name,
                last_name=student.last_name,
                email=student.email,
                student_code=student.student_code,
            ),
            tenant=_tenant_summary(tenant),
        )

    # ── End ─────────────────────────────────────────────────────────────

    async def end(self, credential: CurrentUser) -> EndSimulationResponse:
        """Close the caller's simulation and return a staff credential.

        With a simulation credential the session it names is used; with a
        staff credential the caller's most recent ACTIVE session is. When
        nothing is found the call succeeds with empty tokens.

        Raises:
            InvalidStateError: If the session has already ended.
        """
        if credential.is_simulation and credential.simulation_session_id:
            record = await self._repo.get(credential.simulation_session_id)
            if record is not None and str(record.original_user_id) != credential.original_user_id:
                raise NotFoundError("simulation.session_not_found")
        else:
            record = await self._repo.find_latest_active_for_user(credential.id)

        if record is None:
            return EndSimulationResponse(
                message=translate("simulation.no_active_session", credential.language),
                session_summary=None,
            )

        if record.status == SimulationStatus.ENDED.value:
            raise InvalidStateError()

        ended = await self._repo.end_if_active(record, self._clock())
        if ended is None:
            raise InvalidStateError()

        simulation_sessions_ended_total.labels(reason="user").inc()
        logger.info(
            "simulation_ended",
            session_id=str(ended.id),
            user_id=str(ended.original_user_id),
            duration_seconds=ended.duration_seconds,
        )

        self._activity.record_in_background(
            ActivityEntry(
                activity_type=ActivityType.SIMULATION_ENDED,
                actor=Actor(
                    id=str(ended.original_user_id),
                    email=ended.original_user_email,
                    role=ended.original_user_role,
                    tenant_id=str(ended.tenant_id),
                ),
                target=Target(type="student", id=str(ended.simulated_student_id)),
                metadata={
                    "simulation_session_id": str(ended.id),
                    "duration_seconds": ended.duration_seconds,
                    "pages_visited": list(ended.pages_visited or []),
                    "modules_viewed": ended.modules_viewed,
                    "quizzes_viewed": ended.quizzes_viewed,
                    "ai_chats_opened": ended.ai_chats_opened,
                },
                description_params={
                    "actor": ended.original_user_email,
                    "student": ended.simulated_student_name,
                    "duration": ended.duration_seconds,
                },
            )
        )

        claims = await self._original_user_claims(ended)
        tokens = self._issuer.issue_pair(claims)

        return EndSimulationResponse(
            message=translate("simulation.ended", claims.get("language") or credential.language),
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            access_token_expires_in=tokens.access_token_expires_in,
            session_summary=session_to_summary(ended),
        )

    async def _original_user_claims(self, record: SimulationSession) -> dict[str, Any]:
        """Staff claims for the session owner, taken from stored data only."""
        user = await self._users.find_active_by_id(str(record.original_user_id))
        if user is not None:
            claims = build_staff_claims(user)
        else:
            claims = {
                "sub": str(record.original_user_id),
                "email": record.original_user_email,
                "tenant_id": (
                    None if record.original_user_role == UserRole.SUPER_ADMIN.value else str(record.tenant_id)
                ),
                "is_simulation": False,
            }
        claims["role"] = record.original_user_role
        return claims

    async def refresh(self, payload: dict[str, Any]) -> TokenPair:
        """Re-issue a simulation credential pair from a refresh token payload.

        Raises:
            AuthenticationError: If the session is gone or no longer ACTIVE.
        """
        record = await self._repo.get(payload.get("simulation_session_id", ""))
        if record is None or record.status != SimulationStatus.ACTIVE.value:
            raise AuthenticationError()
        claims = {k: v for k, v in payload.items() if k not in ("exp", "iat", "type")}
        return self._issuer.issue_pair(
            claims,
            access_expires=timedelta(minutes=self._settings.SIMULATION_ACCESS_TOKEN_EXPIRE_MINUTES),
            refresh_expires=timedelta(minutes=self._settings.SIMULATION_REFRESH_TOKEN_EXPIRE_MINUTES),
        )

    # ── Status ──────────────────────────────────────────────────────────

    async def get_status(self, credential: CurrentUser) -> SimulationStatusResponse:
        if not credential.is_simulation or not credential.simulation_session_id:
            return SimulationStatusResponse(is_simulation=False)

        record = await self._repo.get(credential.simulation_session_id)
        if record is None or record.status != SimulationStatus.ACTIVE.value:
            return SimulationStatusResponse(is_simulation=False)

        started_at = as_utc(record.started_at)
        return SimulationStatusResponse(
            is_simulation=True,
            original_user_id=str(record.original_user_id),
            original_user_role=record.original_user_role,
            session=ActiveSessionInfo(
                id=str(record.id),
                simulated_student_id=str(record.simulated_student_id),
                simulated_student_name=record.simulated_student_name,
                simulated_student_email=record.simulated_student_email,
                tenant_id=str(record.tenant_id),
                tenant_name=record.tenant_name,
                simulation_mode=record.simulation_mode,
                started_at=started_at,
                elapsed_seconds=compute_duration_seconds(started_at, self._clock()),
            ),
        )

    # ── Listings ────────────────────────────────────────────────────────

    async def list_available_students(
        self,
        staff: CurrentUser,
        tenant_id: str | None = None,
        search: str | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> AvailableStudentsResponse:
        """Students the caller may simulate, one page at a time."""
        scope = scope_for(staff)
        resolved_id = scope.resolve_tenant_id(staff, tenant_id)
        tenant = await self._tenants.find_tenant_by_id(resolved_id)
        if tenant is None:
            raise NotFoundError("simulation.tenant_not_found")

        engine = await self._connections.get_connection(tenant.database_name)
        students, total = await self._students.list_active_students(engine, search, page, limit)

        return AvailableStudentsResponse(
            students=[
                AvailableStudent(
                    id=s.id,
                    first_name=s.first_name,
                    last_name=s.last_name,
                    email=s.email,
                    student_code=s.student_code,
                    is_dummy_student=s.is_csv_upload,
                )
                for s in students
            ],
            tenant=_tenant_summary(tenant),
            pagination=Pagination.build(page, limit, total),
        )

    async def get_history(
        self,
        staff: CurrentUser,
        page: int = 1,
        limit: int = 20,
    ) -> SimulationHistoryResponse:
        """Past and current sessions visible to the caller's role."""
        filters = scope_for(staff).history_filters(staff)
        records, total = await self._repo.list_history(filters, page, limit)
        return SimulationHistoryResponse(
            sessions=[session_to_summary(r) for r in records],
            pagination=Pagination.build(page, limit, total),
        )

    # ── Recovery ────────────────────────────────────────────────────────

    async def cleanup_stuck_sessions(self, staff: CurrentUser) -> CleanupResponse:
        """End every ACTIVE session owned by the caller."""
        count = await self._end_all_active(staff.id, reason="cleanup")
        logger.info("simulation_cleanup", user_id=staff.id, sessions_ended=count)
        return CleanupResponse(
            message=translate("simulation.cleanup_done", staff.language, count=count),
            sessions_ended=count,
        )

    async def _end_all_active(self, user_id: str, reason: str) -> int:
        ended = 0
        for record in await self._repo.list_active_for_user(user_id):
            if await self._repo.end_if_active(record, self._clock()) is not None:
                ended += 1
                simulation_sessions_ended_total.labels(reason=reason).inc()
        return ended

    # ── Best-effort tracking ────────────────────────────────────────────

    async def track_page_visit(self, session_id: str, path: str) -> None:
        """Record ``path`` as visited. Never raises."""
        try:
            await self._repo.add_page_visit(session_id, path)
        except Exception:
            logger.warning("simulation_page_visit_failed", session_id=session_id, path=path, exc_info=True)

    async def increment_activity_counter(self, session_id: str, counter: ActivityCounter | str) -> None:
        """Add one to a session counter. Never raises."""
        try:
            await self._repo.increment_counter(session_id, ActivityCounter(counter))
        except ValueError:
            logger.warning("simulation_unknown_counter", session_id=session_id, counter=str(counter))
        except Exception:
            logger.warning(
                "simulation_counter_failed",
                session_id=session_id,
                counter=str(counter),
                exc_info=True,
            )

    def track_page_visit_in_background(self, session_id: str, path: str) -> None:
        spawn_best_effort(self.track_page_visit(session_id, path), name="simulation_page_visit")
