"""
Adjustment ORM Persistence Models (``payroll_modules.adjustments.orm``).

SQLAlchemy companions to ``payroll_modules.adjustments.models``.

Invariants enforced:
    - One deduction application per (deduction, period)
      (uq_deduction_application_period).
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from payroll_kernel.db.base import TrackedBase


class IndividualAllowanceModel(TrackedBase):
    __tablename__ = "staff_individual_allowances"

    staff_id: Mapped[UUID] = mapped_column(ForeignKey("staff.id"), nullable=False)
    payroll_run_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("payroll_runs.id"), nullable=True,
    )
    type: Mapped[str] = mapped_column(String(100), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    period: Mapped[str] = mapped_column(String(7), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    created_by: Mapped[UUID | None] = mapped_column(nullable=True)

    __table_args__ = (
        Index("idx_individual_allowance_period_status", "period", "status"),
        Index("idx_individual_allowance_run", "payroll_run_id"),
    )

    def to_dto(self):
        from payroll_modules.adjustments.models import AllowanceStatus, IndividualAllowance
        return IndividualAllowance(
            id=self.id,
            staff_id=self.staff_id,
            type=self.type,
            amount=self.amount,
            period=self.period,
            description=self.description,
            status=AllowanceStatus(self.status),
            payroll_run_id=self.payroll_run_id,
            created_by=self.created_by,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID | None = None) -> "IndividualAllowanceModel":
        return cls(
            id=dto.id,
            staff_id=dto.staff_id,
            created_by=dto.created_by,
            created_by_id=created_by_id or dto.created_by,
            **cls.mutable_values(dto),
        )

    @staticmethod
    def mutable_values(dto) -> dict:
        return {
            "type": dto.type,
            "amount": dto.amount,
            "period": dto.period,
            "description": dto.description,
            "status": dto.status.value,
            "payroll_run_id": dto.payroll_run_id,
        }


class IndividualDeductionModel(TrackedBase):
    __tablename__ = "staff_individual_deductions"

    staff_id: Mapped[UUID] = mapped_column(ForeignKey("staff.id"), nullable=False)
    loan_id: Mapped[UUID | None] = mapped_column(ForeignKey("loans.id"), nullable=True)
    type: Mapped[str] = mapped_column(String(100), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    total_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    remaining_balance: Mapped[Decimal | None] = mapped_column(nullable=True)
    period: Mapped[str] = mapped_column(String(7), nullable=False)
    start_period: Mapped[str | None] = mapped_column(String(7), nullable=True)
    end_period: Mapped[str | None] = mapped_column(String(7), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    is_loan_repayment: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_by: Mapped[UUID | None] = mapped_column(nullable=True)

    __table_args__ = (
        Index("idx_individual_deduction_status", "status"),
        Index("idx_individual_deduction_staff", "staff_id"),
    )

    def to_dto(self):
        from payroll_modules.adjustments.models import DeductionStatus, IndividualDeduction
        return IndividualDeduction(
            id=self.id,
            staff_id=self.staff_id,
            type=self.type,
            amount=self.amount,
            period=self.period,
            total_amount=self.total_amount,
            remaining_balance=self.remaining_balance,
            start_period=self.start_period,
            end_period=self.end_period,
            description=self.description,
            status=DeductionStatus(self.status),
            loan_id=self.loan_id,
            is_loan_repayment=self.is_loan_repayment,
            created_by=self.created_by,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID | None = None) -> "IndividualDeductionModel":
        return cls(
            id=dto.id,
            staff_id=dto.staff_id,
            created_by=dto.created_by,
            created_by_id=created_by_id or dto.created_by,
            **cls.mutable_values(dto),
        )

    @staticmethod
    def mutable_values(dto) -> dict:
        return {
            "type": dto.type,
            "amount": dto.amount,
            "total_amount": dto.total_amount,
            "remaining_balance": dto.remaining_balance,
            "period": dto.period,
            "start_period": dto.start_period,
            "end_period": dto.end_period,
            "description": dto.description,
            "status": dto.status.value,
            "loan_id": dto.loan_id,
            "is_loan_repayment": dto.is_loan_repayment,
        }


class DeductionApplicationModel(TrackedBase):
    __tablename__ = "deduction_applications"

    deduction_id: Mapped[UUID] = mapped_column(
        ForeignKey("staff_individual_deductions.id"), nullable=False,
    )
    period: Mapped[str] = mapped_column(String(7), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    payroll_run_id: Mapped[UUID | None] = mapped_column(nullable=True)
    applied_at: Mapped[datetime | None] = mapped_column(nullable=True)

    __table_args__ = (
        UniqueConstraint("deduction_id", "period", name="uq_deduction_application_period"),
    )

    def to_dto(self):
        from payroll_modules.adjustments.models import DeductionApplication
        return DeductionApplication(
            id=self.id,
            deduction_id=self.deduction_id,
            period=self.period,
            amount=self.amount,
            payroll_run_id=self.payroll_run_id,
            applied_at=self.applied_at,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID | None = None) -> "DeductionApplicationModel":
        return cls(
            id=dto.id,
            deduction_id=dto.deduction_id,
            period=dto.period,
            amount=dto.amount,
            payroll_run_id=dto.payroll_run_id,
            applied_at=dto.applied_at,
            created_by_id=created_by_id,
        )
