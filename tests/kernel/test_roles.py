"""Tests for roles, capabilities and the exception hierarchy."""

from uuid import uuid4

import pytest

from payroll_kernel.domain.roles import (
    ADMIN_ROLES,
    APPROVER_ROLES,
    Actor,
    Capability,
    Role,
    has_capability,
    require_capability,
)
from payroll_kernel.exceptions import (
    AuthorizationError,
    ConcurrentModificationError,
    EntityNotFoundError,
    InvalidTransitionError,
    NotFoundError,
    PayrollError,
    RunLockedError,
    SalaryStructureNotFoundError,
    StateConflictError,
    UnauthorizedActorError,
    ValidationError,
)


class TestCapabilities:

    def test_super_admin_holds_everything(self):
        assert all(has_capability(Role.SUPER_ADMIN, c) for c in Capability)

    @pytest.mark.parametrize("capability", [Capability.PROCESS_RUN, Capability.REOPEN_RUN])
    def test_processing_reserved_for_super_admin(self, capability):
        holders = {role for role in Role if has_capability(role, capability)}
        assert holders == {Role.SUPER_ADMIN}

    def test_account_admin_approves_but_cannot_create(self):
        assert has_capability(Role.ACCOUNT_ADMIN, Capability.APPROVE_RUN)
        assert not has_capability(Role.ACCOUNT_ADMIN, Capability.CREATE_RUN)

    def test_payroll_admin_creates_but_cannot_approve(self):
        assert has_capability(Role.PAYROLL_ADMIN, Capability.CREATE_RUN)
        assert not has_capability(Role.PAYROLL_ADMIN, Capability.APPROVE_RUN)

    def test_staff_only_submit_leave(self):
        held = {c for c in Capability if has_capability(Role.STAFF, c)}
        assert held == {Capability.SUBMIT_LEAVE}

    def test_audiences(self):
        assert set(APPROVER_ROLES) == {Role.SUPER_ADMIN, Role.ACCOUNT_ADMIN}
        assert Role.STAFF not in ADMIN_ROLES

    def test_require_capability_raises_with_context(self):
        actor = Actor(uuid4(), Role.STAFF)
        with pytest.raises(UnauthorizedActorError) as exc_info:
            require_capability(actor, Capability.CREATE_RUN)
        assert exc_info.value.role == "staff"
        assert exc_info.value.capability == "create_run"
        assert exc_info.value.actor_id == str(actor.user_id)


class TestExceptions:

    def test_codes_are_distinct(self):
        classes = [
            PayrollError, ValidationError, NotFoundError, SalaryStructureNotFoundError,
            EntityNotFoundError, StateConflictError, InvalidTransitionError, RunLockedError,
            ConcurrentModificationError, AuthorizationError, UnauthorizedActorError,
        ]
        codes = [cls.code for cls in classes]
        assert len(set(codes)) == len(codes)

    def test_hierarchy(self):
        assert issubclass(InvalidTransitionError, StateConflictError)
        assert issubclass(RunLockedError, StateConflictError)
        assert issubclass(ConcurrentModificationError, StateConflictError)
        assert issubclass(SalaryStructureNotFoundError, NotFoundError)
        assert issubclass(UnauthorizedActorError, AuthorizationError)

    def test_salary_structure_code(self):
        assert SalaryStructureNotFoundError(4, 2).code == "SALARY_STRUCTURE_NOT_FOUND"

    def test_validation_field(self):
        exc = ValidationError("bad period", field="period")
        assert exc.field == "period"
        assert str(exc) == "bad period"

    def test_invalid_transition_carries_state(self):
        exc = InvalidTransitionError("payroll_run", "r1", "draft", "approve")
        assert exc.current_state == "draft"
        assert exc.action == "approve"
        assert "draft" in str(exc)
