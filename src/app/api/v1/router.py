"""V1 API router -- aggregates all v1 endpoint routers.

Authenticated routers share the simulation write policy dependency, so a
simulation credential can never reach a write handler that has not opted in.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from src.app.api.deps import enforce_simulation_write_policy
from src.app.api.v1 import auth, health, simulation

router = APIRouter()

router.include_router(health.router)
router.include_router(auth.router, dependencies=[Depends(enforce_simulation_write_policy)])
router.include_router(simulation.router, dependencies=[Depends(enforce_simulation_write_policy)])
