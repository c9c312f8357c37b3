"""
Typed Exception Hierarchy for the Payroll Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Payroll errors must be handled precisely. A caller that has to parse
``str(e)`` to tell "run already processed" from "grade not on the scale" will
break the first time a message is reworded. Every error therefore:

  1. Has a TYPED exception class (catch by type, not message)
  2. Has a CODE class attribute (machine-readable, API-safe)
  3. Carries structured DATA as attributes (not just a message string)

Example:
    try:
        service.approve(run_id, actor)
    except ConcurrentModificationError as e:
        # Somebody else moved the run first -- surface, never retry blindly
        api_response(code=e.code, run_id=e.entity_id, actual=e.actual_status)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    PayrollError (base)
    |
    +-- ValidationError
    |
    +-- NotFoundError
    |   +-- SalaryStructureNotFoundError
    |   +-- EntityNotFoundError
    |
    +-- InsufficientBalanceError
    |
    +-- StateConflictError
    |   +-- InvalidTransitionError
    |   +-- RunLockedError
    |   +-- ConcurrentModificationError
    |
    +-- AuthorizationError
    |   +-- UnauthorizedActorError
    |
    +-- ExternalServiceError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Validation      | VALIDATION_ERROR            | Malformed input (bad period, unknown
                |                             | leave type, end date before start)
----------------|-----------------------------|-----------------------------------------
Not found       | SALARY_STRUCTURE_NOT_FOUND  | Grade/step pair absent from the scale
                | ENTITY_NOT_FOUND            | Run, loan, request, staff missing
----------------|-----------------------------|-----------------------------------------
Balance         | INSUFFICIENT_BALANCE        | Leave balance too low / missing row
----------------|-----------------------------|-----------------------------------------
State           | INVALID_TRANSITION          | Action not allowed from current state
                | RUN_LOCKED                  | Mutating a processed payroll run
                | CONCURRENT_MODIFICATION     | Compare-and-set lost a race
----------------|-----------------------------|-----------------------------------------
Authorization   | UNAUTHORIZED_ACTOR          | Actor role lacks the capability
----------------|-----------------------------|-----------------------------------------
External        | EXTERNAL_SERVICE_ERROR      | Persistence / batch surface failure

===============================================================================
HANDLING PATTERNS
===============================================================================

* ValidationError / NotFoundError: surface to the caller immediately.
* StateConflictError: surface; never retried silently.
* ExternalServiceError: reads may be retried by the caller; non-idempotent
  writes must not be retried blindly.
* The only local recovery is bulk payroll processing, where a calculation
  failure for one staff member is logged and that staff member skipped.
"""

from __future__ import annotations

from decimal import Decimal


class PayrollError(Exception):
    """
    Base exception for all payroll engine errors.

    All subclasses must have a ``code`` class attribute for
    machine-readable error identification.
    """

    code: str = "PAYROLL_ERROR"


# Validation


class ValidationError(PayrollError):
    """Input is malformed or references something that cannot exist."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


# Not found


class NotFoundError(PayrollError):
    """Base exception for missing records."""

    code: str = "NOT_FOUND"


class SalaryStructureNotFoundError(NotFoundError):
    """No basic salary is configured for the grade level / step pair."""

    code: str = "SALARY_STRUCTURE_NOT_FOUND"

    def __init__(self, grade_level: int, step: int):
        self.grade_level = grade_level
        self.step = step
        super().__init__(
            f"No salary structure for GL{grade_level} Step{step}"
        )


class EntityNotFoundError(NotFoundError):
    """A referenced record does not exist."""

    code: str = "ENTITY_NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: object):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        super().__init__(f"{entity_type} not found: {entity_id}")


# Balances


class InsufficientBalanceError(PayrollError):
    """Requested quantity exceeds what the balance allows."""

    code: str = "INSUFFICIENT_BALANCE"

    def __init__(
        self,
        resource: str,
        requested: Decimal,
        available: Decimal | None,
    ):
        self.resource = resource
        self.requested = requested
        self.available = available
        available_text = "no balance" if available is None else str(available)
        super().__init__(
            f"Insufficient {resource} balance: requested {requested}, "
            f"available {available_text}"
        )


# State conflicts


class StateConflictError(PayrollError):
    """Base exception for illegal or conflicting state changes."""

    code: str = "STATE_CONFLICT"

    def __init__(self, message: str, entity_type: str = "", entity_id: object = ""):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        super().__init__(message)


class InvalidTransitionError(StateConflictError):
    """The action is not permitted from the entity's current state."""

    code: str = "INVALID_TRANSITION"

    def __init__(
        self,
        entity_type: str,
        entity_id: object,
        current_state: str,
        action: str,
    ):
        self.current_state = current_state
        self.action = action
        super().__init__(
            f"Cannot {action} {entity_type} {entity_id} from state "
            f"'{current_state}'",
            entity_type=entity_type,
            entity_id=entity_id,
        )


class RunLockedError(StateConflictError):
    """The payroll run is processed and must be reopened before mutation."""

    code: str = "RUN_LOCKED"

    def __init__(self, run_id: object, operation: str):
        self.operation = operation
        super().__init__(
            f"Payroll run {run_id} is processed (locked); cannot {operation}",
            entity_type="payroll_run",
            entity_id=run_id,
        )


class ConcurrentModificationError(StateConflictError):
    """Compare-and-set failed: another actor changed the record first."""

    code: str = "CONCURRENT_MODIFICATION"

    def __init__(
        self,
        entity_type: str,
        entity_id: object,
        expected: str,
        actual: str | None,
    ):
        self.expected_status = expected
        self.actual_status = actual
        super().__init__(
            f"{entity_type} {entity_id} was modified concurrently: "
            f"expected '{expected}', found '{actual}'",
            entity_type=entity_type,
            entity_id=entity_id,
        )


# Authorization


class AuthorizationError(PayrollError):
    """Base exception for role/capability failures."""

    code: str = "AUTHORIZATION_ERROR"


class UnauthorizedActorError(AuthorizationError):
    """The actor's role does not grant the capability the action needs."""

    code: str = "UNAUTHORIZED_ACTOR"

    def __init__(self, actor_id: object, role: str, capability: str):
        self.actor_id = str(actor_id)
        self.role = role
        self.capability = capability
        super().__init__(
            f"Actor {actor_id} with role '{role}' lacks capability "
            f"'{capability}'"
        )


# External collaborators


class ExternalServiceError(PayrollError):
    """The persistence port or batch surface failed."""

    code: str = "EXTERNAL_SERVICE_ERROR"

    def __init__(self, service: str, operation: str, reason: str):
        self.service = service
        self.operation = operation
        self.reason = reason
        super().__init__(f"{service} failed during {operation}: {reason}")
