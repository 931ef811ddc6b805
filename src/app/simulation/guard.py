"""Simulation write guard.

A simulation credential is a regular student credential plus an
``is_simulation`` flag, so this guard is the only thing that keeps a staff
member from changing real student data while simulating. It runs on every
API request after the credential is decoded:

- non-simulation credentials pass unconditionally
- read methods pass
- allow-listed paths (simulation control, current user, token refresh) pass
- handlers decorated with @allow_simulation_write pass
- everything else is rejected with WriteBlockedError
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, TypeVar

import structlog

from src.app.core.errors import WriteBlockedError
from src.app.core.monitoring import simulation_writes_blocked_total
from src.app.models.enums import ActivityType
from src.app.schemas.auth import CurrentUser
from src.app.services.activity_log import ActivityEntry, ActivityLogService, Actor, Target

logger = structlog.get_logger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

ALLOW_SIMULATION_WRITE_ATTR = "__allow_simulation_write__"

READ_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})

SIMULATION_WRITE_ALLOWLIST = (
    "/api/v1/simulation/end",
    "/api/v1/simulation/status",
    "/api/v1/auth/me",
    "/api/v1/auth/refresh",
)


def allow_simulation_write(func: F) -> F:
    """Mark a route handler as callable with a simulation credential."""
    setattr(func, ALLOW_SIMULATION_WRITE_ATTR, True)
    return func


def is_allowlisted(path: str, allowlist: tuple[str, ...] = SIMULATION_WRITE_ALLOWLIST) -> bool:
    """Prefix match against the allow-list, ignoring any query string."""
    bare = path.split("?", 1)[0]
    return any(bare.startswith(prefix) for prefix in allowlist)


class SimulationWriteGuard:
    """Decides whether a request may proceed under a simulation credential.

    Args:
        activity_log: When set, blocked writes are recorded best-effort.
        allowlist: Path prefixes always allowed.
    """

    def __init__(
        self,
        activity_log: ActivityLogService | None = None,
        allowlist: tuple[str, ...] = SIMULATION_WRITE_ALLOWLIST,
    ) -> None:
        self._activity_log = activity_log
        self._allowlist = allowlist

    def check(
        self,
        user: CurrentUser | None,
        method: str,
        path: str,
        endpoint: Callable[..., Any] | None = None,
    ) -> None:
        """Return normally if allowed.

        Raises:
            WriteBlockedError: For a write by a simulation credential.
        """
        if user is None or not user.is_simulation:
            return
        if method.upper() in READ_METHODS:
            return
        if is_allowlisted(path, self._allowlist):
            return
        if endpoint is not None and getattr(endpoint, ALLOW_SIMULATION_WRITE_ATTR, False):
            return

        simulation_writes_blocked_total.inc()
        logger.warning(
            "simulation_write_blocked",
            method=method,
            path=path,
            original_user_id=user.original_user_id,
            simulation_session_id=user.simulation_session_id,
        )
        if self._activity_log is not None:
            self._activity_log.record_in_background(
                ActivityEntry(
                    activity_type=ActivityType.SIMULATION_WRITE_BLOCKED,
                    actor=Actor(
                        id=user.original_user_id,
                        role=user.original_user_role.value if user.original_user_role else None,
                        tenant_id=user.tenant_id,
                    ),
                    target=Target(type="student", id=user.id),
                    metadata={
                        "method": method,
                        "path": path,
                        "simulation_session_id": user.simulation_session_id,
                    },
                    description_params={"method": method, "path": path},
                    is_success=False,
                )
            )
        raise WriteBlockedError()
