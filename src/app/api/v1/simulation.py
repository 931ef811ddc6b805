"""Student simulation API endpoints.

Staff members (super admin, school admin, professor) start a simulation to
see the platform as one of their students, and end it to get their own
credential back. Only /end and /activity accept writes from a simulation
credential.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from src.app.api.deps import get_client_info, get_current_user, get_simulation_service
from src.app.core.errors import BadRequestError
from src.app.schemas.auth import CurrentUser
from src.app.schemas.simulation import (
    ActivityCounterRequest,
    AvailableStudentsResponse,
    CleanupResponse,
    EndSimulationResponse,
    SimulationHistoryResponse,
    SimulationStatusResponse,
    SimulationTokenResponse,
    StartSimulationRequest,
)
from src.app.simulation.guard import allow_simulation_write
from src.app.simulation.service import ClientInfo, SimulationService

router = APIRouter(prefix="/api/v1/simulation", tags=["simulation"])


@router.post("/start", response_model=SimulationTokenResponse)
async def start_simulation(
    body: StartSimulationRequest,
    user: CurrentUser = Depends(get_current_user),
    client: ClientInfo = Depends(get_client_info),
    service: SimulationService = Depends(get_simulation_service),
):
    """Start viewing the platform as a student."""
    return await service.start(user, body, client)


@router.post("/end", response_model=EndSimulationResponse)
@allow_simulation_write
async def end_simulation(
    user: CurrentUser = Depends(get_current_user),
    service: SimulationService = Depends(get_simulation_service),
):
    """End the current simulation and return the staff credential."""
    return await service.end(user)


@router.get("/status", response_model=SimulationStatusResponse)
async def simulation_status(
    user: CurrentUser = Depends(get_current_user),
    service: SimulationService = Depends(get_simulation_service),
):
    return await service.get_status(user)


@router.get("/students", response_model=AvailableStudentsResponse)
async def list_students(
    tenant_id: str | None = Query(default=None),
    search: str | None = Query(default=None, max_length=100),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    user: CurrentUser = Depends(get_current_user),
    service: SimulationService = Depends(get_simulation_service),
):
    """List students the caller may simulate."""
    return await service.list_available_students(user, tenant_id, search, page, limit)


@router.get("/history", response_model=SimulationHistoryResponse)
async def simulation_history(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    user: CurrentUser = Depends(get_current_user),
    service: SimulationService = Depends(get_simulation_service),
):
    return await service.get_history(user, page, limit)


@router.post("/cleanup", response_model=CleanupResponse)
async def cleanup_sessions(
    user: CurrentUser = Depends(get_current_user),
    service: SimulationService = Depends(get_simulation_service),
):
    """End any ACTIVE sessions left behind by the caller."""
    return await service.cleanup_stuck_sessions(user)


@router.post("/activity", status_code=204)
@allow_simulation_write
async def record_activity(
    body: ActivityCounterRequest,
    user: CurrentUser = Depends(get_current_user),
    service: SimulationService = Depends(get_simulation_service),
):
    """Count a module, quiz or AI chat opened during the simulation."""
    if not user.is_simulation or not user.simulation_session_id:
        raise BadRequestError("simulation.no_active_session")
    await service.increment_activity_counter(user.simulation_session_id, body.counter)
