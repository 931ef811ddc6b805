"""Role-specific rules for which school a staff member may simulate in.

Each staff role that may start simulations maps to one RoleScope. The
service asks the scope instead of branching on role names:

- SUPER_ADMIN: any school, but must name it explicitly
- SCHOOL_ADMIN: own school; history covers the whole school
- PROFESSOR: own school; history covers own sessions only
"""

from __future__ import annotations

import uuid
from typing import Any

from src.app.core.errors import BadRequestError, ForbiddenError
from src.app.models.enums import UserRole
from src.app.schemas.auth import CurrentUser


class RoleScope:
    """Base scope: the caller's own school."""

    def resolve_tenant_id(self, user: CurrentUser, requested_tenant_id: str | None = None) -> str:
        if not user.tenant_id:
            raise BadRequestError("simulation.tenant_required")
        return user.tenant_id

    def history_filters(self, user: CurrentUser) -> dict[str, Any]:
        return {"tenant_id": uuid.UUID(self.resolve_tenant_id(user))}


class SuperAdminScope(RoleScope):
    def resolve_tenant_id(self, user: CurrentUser, requested_tenant_id: str | None = None) -> str:
        if not requested_tenant_id:
            raise BadRequestError("simulation.tenant_required")
        return requested_tenant_id

    def history_filters(self, user: CurrentUser) -> dict[str, Any]:
        return {}


class SchoolAdminScope(RoleScope):
    pass


class ProfessorScope(RoleScope):
    def history_filters(self, user: CurrentUser) -> dict[str, Any]:
        return {"original_user_id": uuid.UUID(user.id)}


ROLE_SCOPES: dict[UserRole, RoleScope] = {
    UserRole.SUPER_ADMIN: SuperAdminScope(),
    UserRole.SCHOOL_ADMIN: SchoolAdminScope(),
    UserRole.PROFESSOR: ProfessorScope(),
}


def staff_role(user: CurrentUser) -> UserRole:
    """Role of the staff member behind ``user``.

    For a simulation credential this is the role recorded at start, so the
    caller is still recognised as staff.
    """
    if user.is_simulation and user.original_user_role is not None:
        return user.original_user_role
    return user.role


def scope_for(user: CurrentUser) -> RoleScope:
    """Return the scope for the caller's staff role.

    Raises:
        ForbiddenError: If the role may not run simulations.
    """
    scope = ROLE_SCOPES.get(staff_role(user))
    if scope is None:
        raise ForbiddenError("simulation.forbidden_role")
    return scope
