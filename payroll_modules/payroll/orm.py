"""
Payroll ORM Persistence Models (``payroll_modules.payroll.orm``).

Responsibility:
    SQLAlchemy ORM models that persist the payroll DTOs (runs, payslips) and
    the payroll reference data (salary structure, allowance and deduction
    rules).  Each ORM class provides ``to_dto()`` / ``from_dto()``.

Invariants enforced:
    - All monetary fields use Decimal (Numeric(18,2)) -- NEVER float.
    - Payslip breakdowns are stored as JSON objects of decimal *strings* so
      amounts round-trip exactly.
    - ``version`` on payroll runs backs the compare-and-set transition.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import JSON, Boolean, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from payroll_kernel.db.base import TrackedBase


def _encode_breakdown(values: dict[str, Decimal]) -> dict[str, str]:
    return {key: str(amount) for key, amount in values.items()}


def _decode_breakdown(values: dict[str, str] | None) -> dict[str, Decimal]:
    return {key: Decimal(amount) for key, amount in (values or {}).items()}


# ---------------------------------------------------------------------------
# Reference data
# ---------------------------------------------------------------------------

class SalaryStructureModel(TrackedBase):
    """(grade level, step) -> basic salary."""

    __tablename__ = "salary_structures"

    grade_level: Mapped[int] = mapped_column(Integer, nullable=False)
    step: Mapped[int] = mapped_column(Integer, nullable=False)
    basic_salary: Mapped[Decimal] = mapped_column(nullable=False)

    __table_args__ = (
        UniqueConstraint("grade_level", "step", name="uq_salary_structure_grade_step"),
    )

    def to_dto(self):
        from payroll_modules.payroll.models import SalaryStructureEntry
        return SalaryStructureEntry(
            id=self.id,
            grade_level=self.grade_level,
            step=self.step,
            basic_salary=self.basic_salary,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID | None = None) -> "SalaryStructureModel":
        kwargs = {"id": dto.id} if dto.id is not None else {}
        return cls(
            grade_level=dto.grade_level,
            step=dto.step,
            basic_salary=dto.basic_salary,
            created_by_id=created_by_id,
            **kwargs,
        )


class AllowanceRuleModel(TrackedBase):
    __tablename__ = "allowances"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    kind: Mapped[str] = mapped_column(String(50), nullable=False)
    value: Mapped[Decimal] = mapped_column(nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def to_dto(self):
        from payroll_engines.salary import AllowanceRule, RuleKind
        return AllowanceRule(
            id=self.id,
            name=self.name,
            kind=RuleKind(self.kind),
            value=self.value,
            is_active=self.is_active,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID | None = None) -> "AllowanceRuleModel":
        return cls(
            id=dto.id or uuid4(),
            name=dto.name,
            kind=dto.kind.value,
            value=dto.value,
            is_active=dto.is_active,
            created_by_id=created_by_id,
        )


class DeductionRuleModel(TrackedBase):
    __tablename__ = "deductions"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    kind: Mapped[str] = mapped_column(String(50), nullable=False)
    value: Mapped[Decimal] = mapped_column(nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def to_dto(self):
        from payroll_engines.salary import DeductionRule, RuleKind
        return DeductionRule(
            id=self.id,
            name=self.name,
            kind=RuleKind(self.kind),
            value=self.value,
            is_active=self.is_active,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID | None = None) -> "DeductionRuleModel":
        return cls(
            id=dto.id or uuid4(),
            name=dto.name,
            kind=dto.kind.value,
            value=dto.value,
            is_active=dto.is_active,
            created_by_id=created_by_id,
        )


# ---------------------------------------------------------------------------
# PayrollRunModel
# ---------------------------------------------------------------------------

class PayrollRunModel(TrackedBase):
    """
    ORM model for ``PayrollRun``.

    Contract:
        Status changes are written with a conditional UPDATE on
        (id, status, version); see ``SqlAlchemyPersistence.compare_and_set_run``.
    """

    __tablename__ = "payroll_runs"

    period: Mapped[str] = mapped_column(String(7), nullable=False)
    department_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("departments.id"), nullable=True,
    )
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    staff_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    gross_amount: Mapped[Decimal] = mapped_column(nullable=False)
    total_deductions: Mapped[Decimal] = mapped_column(nullable=False)
    net_amount: Mapped[Decimal] = mapped_column(nullable=False)
    created_by: Mapped[UUID | None] = mapped_column(nullable=True)
    approved_by: Mapped[UUID | None] = mapped_column(nullable=True)
    processed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    run_created_at: Mapped[datetime | None] = mapped_column(nullable=True)
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    __table_args__ = (
        Index("idx_payroll_run_period", "period"),
        Index("idx_payroll_run_status", "status"),
    )

    def to_dto(self):
        from payroll_modules.payroll.models import PayrollRun, PayrollRunStatus
        return PayrollRun(
            id=self.id,
            period=self.period,
            status=PayrollRunStatus(self.status),
            department_id=self.department_id,
            staff_count=self.staff_count,
            gross_amount=self.gross_amount,
            total_deductions=self.total_deductions,
            net_amount=self.net_amount,
            created_by=self.created_by,
            approved_by=self.approved_by,
            processed_at=self.processed_at,
            created_at=self.run_created_at,
            version=self.version,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID | None = None) -> "PayrollRunModel":
        return cls(
            id=dto.id,
            period=dto.period,
            status=dto.status.value,
            department_id=dto.department_id,
            staff_count=dto.staff_count,
            gross_amount=dto.gross_amount,
            total_deductions=dto.total_deductions,
            net_amount=dto.net_amount,
            created_by=dto.created_by,
            approved_by=dto.approved_by,
            processed_at=dto.processed_at,
            run_created_at=dto.created_at,
            version=dto.version,
            created_by_id=created_by_id or dto.created_by,
        )

    @staticmethod
    def mutable_values(dto) -> dict:
        """Column values written by a status transition."""
        return {
            "status": dto.status.value,
            "staff_count": dto.staff_count,
            "gross_amount": dto.gross_amount,
            "total_deductions": dto.total_deductions,
            "net_amount": dto.net_amount,
            "approved_by": dto.approved_by,
            "processed_at": dto.processed_at,
            "version": dto.version,
        }

    def __repr__(self) -> str:
        return f"<PayrollRunModel {self.period} {self.status} v{self.version}>"


# ---------------------------------------------------------------------------
# PayslipModel
# ---------------------------------------------------------------------------

class PayslipModel(TrackedBase):
    """
    ORM model for ``Payslip``.

    Guarantees:
        - One payslip per (run, staff) (uq_payslip_run_staff).
    """

    __tablename__ = "payslips"

    staff_id: Mapped[UUID] = mapped_column(ForeignKey("staff.id"), nullable=False)
    payroll_run_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_runs.id"), nullable=False,
    )
    period: Mapped[str] = mapped_column(String(7), nullable=False)
    basic_salary: Mapped[Decimal] = mapped_column(nullable=False)
    allowances: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    deductions: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    arrears: Mapped[Decimal] = mapped_column(nullable=False)
    overtime: Mapped[Decimal] = mapped_column(nullable=False)
    bonus: Mapped[Decimal] = mapped_column(nullable=False)
    gross_pay: Mapped[Decimal] = mapped_column(nullable=False)
    total_deductions: Mapped[Decimal] = mapped_column(nullable=False)
    net_pay: Mapped[Decimal] = mapped_column(nullable=False)

    __table_args__ = (
        UniqueConstraint("payroll_run_id", "staff_id", name="uq_payslip_run_staff"),
        Index("idx_payslip_period", "period"),
    )

    def to_dto(self):
        from payroll_modules.payroll.models import Payslip
        return Payslip(
            id=self.id,
            staff_id=self.staff_id,
            payroll_run_id=self.payroll_run_id,
            period=self.period,
            basic_salary=self.basic_salary,
            allowances=_decode_breakdown(self.allowances),
            deductions=_decode_breakdown(self.deductions),
            arrears=self.arrears,
            overtime=self.overtime,
            bonus=self.bonus,
            gross_pay=self.gross_pay,
            total_deductions=self.total_deductions,
            net_pay=self.net_pay,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID | None = None) -> "PayslipModel":
        return cls(
            id=dto.id,
            staff_id=dto.staff_id,
            payroll_run_id=dto.payroll_run_id,
            period=dto.period,
            basic_salary=dto.basic_salary,
            allowances=_encode_breakdown(dto.allowances),
            deductions=_encode_breakdown(dto.deductions),
            arrears=dto.arrears,
            overtime=dto.overtime,
            bonus=dto.bonus,
            gross_pay=dto.gross_pay,
            total_deductions=dto.total_deductions,
            net_pay=dto.net_pay,
            created_by_id=created_by_id,
        )
