"""Tests for role scopes: which school a staff member may simulate in."""

from __future__ import annotations

import uuid

import pytest

from src.app.core.errors import BadRequestError, ForbiddenError
from src.app.models.enums import UserRole
from src.app.schemas.auth import CurrentUser
from src.app.simulation.scopes import (
    ProfessorScope,
    SchoolAdminScope,
    SuperAdminScope,
    scope_for,
    staff_role,
)

TENANT_ID = str(uuid.uuid4())
OTHER_TENANT_ID = str(uuid.uuid4())
USER_ID = str(uuid.uuid4())


def _user(role: UserRole, tenant_id: str | None = TENANT_ID, **extra) -> CurrentUser:
    return CurrentUser(id=USER_ID, email="staff@example.com", role=role, tenant_id=tenant_id, **extra)


class TestScopeFor:
    @pytest.mark.parametrize(
        "role,expected",
        [
            (UserRole.SUPER_ADMIN, SuperAdminScope),
            (UserRole.SCHOOL_ADMIN, SchoolAdminScope),
            (UserRole.PROFESSOR, ProfessorScope),
        ],
    )
    def test_staff_roles(self, role, expected):
        assert isinstance(scope_for(_user(role)), expected)

    def test_student_is_forbidden(self):
        with pytest.raises(ForbiddenError):
            scope_for(_user(UserRole.STUDENT))

    def test_simulation_credential_uses_original_role(self):
        simulated = _user(
            UserRole.STUDENT,
            is_simulation=True,
            original_user_id=USER_ID,
            original_user_role=UserRole.PROFESSOR,
        )
        assert staff_role(simulated) == UserRole.PROFESSOR
        assert isinstance(scope_for(simulated), ProfessorScope)


class TestResolveTenant:
    def test_super_admin_requires_explicit_school(self):
        with pytest.raises(BadRequestError):
            SuperAdminScope().resolve_tenant_id(_user(UserRole.SUPER_ADMIN, tenant_id=None), None)

    def test_super_admin_uses_requested_school(self):
        user = _user(UserRole.SUPER_ADMIN, tenant_id=None)
        assert SuperAdminScope().resolve_tenant_id(user, OTHER_TENANT_ID) == OTHER_TENANT_ID

    def test_school_staff_use_own_school(self):
        user = _user(UserRole.SCHOOL_ADMIN)
        assert SchoolAdminScope().resolve_tenant_id(user, OTHER_TENANT_ID) == TENANT_ID

    def test_school_staff_without_school(self):
        with pytest.raises(BadRequestError):
            ProfessorScope().resolve_tenant_id(_user(UserRole.PROFESSOR, tenant_id=None))


class TestHistoryFilters:
    def test_super_admin_sees_everything(self):
        assert SuperAdminScope().history_filters(_user(UserRole.SUPER_ADMIN, tenant_id=None)) == {}

    def test_school_admin_sees_school(self):
        filters = SchoolAdminScope().history_filters(_user(UserRole.SCHOOL_ADMIN))
        assert filters == {"tenant_id": uuid.UUID(TENANT_ID)}

    def test_professor_sees_own_sessions(self):
        filters = ProfessorScope().history_filters(_user(UserRole.PROFESSOR))
        assert filters == {"original_user_id": uuid.UUID(USER_ID)}
