"""
Salary & Allowance Engine - CONJUSS basic salary and allowance breakdown.

Pure functions with no I/O.  The salary table and allowance rules are passed
in by the caller (loaded through the persistence port).

Basic salary is a (grade level, step) lookup.  A missing pair is an error
(``SalaryStructureNotFoundError``).  Callers that prefer to keep a payroll
moving on incomplete reference data can opt into the documented fallback
formula via ``resolve_basic_salary(..., allow_fallback=True)``; the result is
flagged ``degraded`` and a warning is logged, so the substitution is never
silent.

Allowance rule semantics:
    - percentage rules: ``basic x value / 100``; fixed rules: ``value``.
    - "responsibility" rules: x1.5 at GL >= 15, x1.2 at GL >= 10.
    - "hazard" rules: zero unless the position mentions "field" or "rural".
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from uuid import UUID

from payroll_kernel.domain.values import normalize_key, quantize_money, sum_amounts
from payroll_kernel.exceptions import SalaryStructureNotFoundError
from payroll_kernel.logging_config import get_logger

logger = get_logger("engines.salary")

MIN_GRADE_LEVEL = 1
MAX_GRADE_LEVEL = 17
MIN_STEP = 1
MAX_STEP = 15

RESPONSIBILITY_SENIOR_GRADE = 15
RESPONSIBILITY_MID_GRADE = 10
RESPONSIBILITY_SENIOR_MULTIPLIER = Decimal("1.5")
RESPONSIBILITY_MID_MULTIPLIER = Decimal("1.2")
HAZARD_QUALIFYING_POSITIONS = ("field", "rural")

# Fallback when a grade/step row is missing: 30000 + GL*8000 + step*2000
FALLBACK_BASE = Decimal("30000")
FALLBACK_PER_GRADE = Decimal("8000")
FALLBACK_PER_STEP = Decimal("2000")

SalaryTable = Mapping[tuple[int, int], Decimal]


class RuleKind(str, Enum):
    """How a rule's ``value`` is interpreted."""

    PERCENTAGE = "percentage"
    FIXED = "fixed"


@dataclass(frozen=True)
class AllowanceRule:
    """A configured allowance (housing, transport, hazard, ...)."""

    name: str
    kind: RuleKind
    value: Decimal
    is_active: bool = True
    id: UUID | None = None


@dataclass(frozen=True)
class DeductionRule:
    """A configured statutory deduction (PAYE, pension, NHF, ...)."""

    name: str
    kind: RuleKind
    value: Decimal
    is_active: bool = True
    id: UUID | None = None


@dataclass(frozen=True)
class BasicSalary:
    """Resolved basic salary and whether it came from the fallback formula."""

    amount: Decimal
    grade_level: int
    step: int
    degraded: bool = False


def _scale_row(grade_level: int, steps: tuple[int, ...]) -> dict[tuple[int, int], Decimal]:
    return {
        (grade_level, step): Decimal(amount)
        for step, amount in enumerate(steps, start=1)
    }


# Seed CONJUSS scale; deployments load the authoritative table from storage.
DEFAULT_SALARY_SCALE: dict[tuple[int, int], Decimal] = {
    **_scale_row(1, tuple(range(30000, 45000, 1000))),
    **_scale_row(2, tuple(range(35000, 57500, 1500))),
    **_scale_row(3, tuple(range(42000, 72000, 2000))),
    **_scale_row(10, tuple(range(120000, 195000, 5000))),
    **_scale_row(15, tuple(range(250000, 400000, 10000))),
    **_scale_row(17, tuple(range(450000, 750000, 20000))),
}


def is_valid_grade_step(grade_level: int, step: int) -> bool:
    return (
        MIN_GRADE_LEVEL <= grade_level <= MAX_GRADE_LEVEL
        and MIN_STEP <= step <= MAX_STEP
    )


def next_step(grade_level: int, step: int) -> tuple[int, int] | None:
    """Next position on the scale; ``None`` at the top (GL17 Step15)."""
    if step < MAX_STEP:
        return grade_level, step + 1
    if grade_level < MAX_GRADE_LEVEL:
        return grade_level + 1, MIN_STEP
    return None


def fallback_basic_salary(grade_level: int, step: int) -> Decimal:
    return (
        FALLBACK_BASE
        + FALLBACK_PER_GRADE * grade_level
        + FALLBACK_PER_STEP * step
    )


def get_basic_salary(grade_level: int, step: int, salary_table: SalaryTable) -> Decimal:
    """
    Basic salary for a grade/step from the salary structure table.

    Raises:
        SalaryStructureNotFoundError: If the pair is absent from the table.
    """
    amount = salary_table.get((grade_level, step))
    if amount is None:
        raise SalaryStructureNotFoundError(grade_level, step)
    return amount


def resolve_basic_salary(
    grade_level: int,
    step: int,
    salary_table: SalaryTable,
    allow_fallback: bool = False,
) -> BasicSalary:
    """Table lookup with the opt-in, flagged fallback formula."""
    try:
        return BasicSalary(
            amount=get_basic_salary(grade_level, step, salary_table),
            grade_level=grade_level,
            step=step,
        )
    except SalaryStructureNotFoundError:
        if not allow_fallback:
            raise
        amount = fallback_basic_salary(grade_level, step)
        logger.warning(
            "salary_structure_fallback_used",
            extra={
                "grade_level": grade_level,
                "step": step,
                "fallback_amount": str(amount),
            },
        )
        return BasicSalary(
            amount=amount,
            grade_level=grade_level,
            step=step,
            degraded=True,
        )


def _rule_amount(base: Decimal, kind: RuleKind, value: Decimal) -> Decimal:
    if kind == RuleKind.PERCENTAGE:
        return base * (value / Decimal("100"))
    return value


def calculate_allowances(
    basic_salary: Decimal,
    allowance_rules: Iterable[AllowanceRule],
    grade_level: int,
    position: str,
) -> dict[str, Decimal]:
    """
    Allowance breakdown for one staff member.

    Postconditions:
        - Only active rules contribute.
        - Keys are normalized rule names; amounts are quantized to 0.01.
    """
    position_text = (position or "").lower()
    allowances: dict[str, Decimal] = {}

    for rule in allowance_rules:
        if not rule.is_active:
            continue
        amount = _rule_amount(basic_salary, rule.kind, rule.value)
        name = rule.name.lower()

        if "responsibility" in name:
            if grade_level >= RESPONSIBILITY_SENIOR_GRADE:
                amount *= RESPONSIBILITY_SENIOR_MULTIPLIER
            elif grade_level >= RESPONSIBILITY_MID_GRADE:
                amount *= RESPONSIBILITY_MID_MULTIPLIER

        if "hazard" in name and not any(
            marker in position_text for marker in HAZARD_QUALIFYING_POSITIONS
        ):
            amount = Decimal("0")

        allowances[normalize_key(rule.name)] = quantize_money(amount)

    return allowances


def total_allowances(allowances: Mapping[str, Decimal]) -> Decimal:
    return sum_amounts(allowances.values())
