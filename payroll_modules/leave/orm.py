"""
Leave ORM Persistence Models (``payroll_modules.leave.orm``).

SQLAlchemy companions to ``payroll_modules.leave.models``.

Invariants enforced:
    - One balance row per (staff, leave type, year) (uq_leave_balance_staff_type_year).
    - One accrual ledger row per (staff, leave type, period)
      (uq_leave_accrual_staff_type_period); the unique constraint is what
      makes the monthly accrual idempotent.
    - ``remaining_days`` is not a column; it is derived in the DTO.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Boolean,
    Date,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from payroll_kernel.db.base import TrackedBase

Days = Numeric(7, 2)


class LeaveTypeModel(TrackedBase):
    __tablename__ = "leave_types"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    code: Mapped[str] = mapped_column(String(20), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_paid: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    max_days_per_year: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    accrual_rate: Mapped[Decimal] = mapped_column(Days, nullable=False)
    requires_approval: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (
        UniqueConstraint("code", name="uq_leave_type_code"),
    )

    def to_dto(self):
        from payroll_modules.leave.models import LeaveType
        return LeaveType(
            id=self.id,
            name=self.name,
            code=self.code,
            description=self.description,
            is_paid=self.is_paid,
            max_days_per_year=self.max_days_per_year,
            accrual_rate=self.accrual_rate,
            requires_approval=self.requires_approval,
            is_active=self.is_active,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID | None = None) -> "LeaveTypeModel":
        return cls(
            id=dto.id,
            name=dto.name,
            code=dto.code,
            description=dto.description,
            is_paid=dto.is_paid,
            max_days_per_year=dto.max_days_per_year,
            accrual_rate=dto.accrual_rate,
            requires_approval=dto.requires_approval,
            is_active=dto.is_active,
            created_by_id=created_by_id,
        )


class LeaveBalanceModel(TrackedBase):
    """
    ORM model for ``LeaveBalance``.

    Contract:
        ``used_days`` is only raised through the conditional UPDATE in
        ``SqlAlchemyPersistence.try_consume_leave_days``.
    """

    __tablename__ = "staff_leave_balances"

    staff_id: Mapped[UUID] = mapped_column(ForeignKey("staff.id"), nullable=False)
    leave_type_id: Mapped[UUID] = mapped_column(ForeignKey("leave_types.id"), nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    accrued_days: Mapped[Decimal] = mapped_column(Days, nullable=False)
    used_days: Mapped[Decimal] = mapped_column(Days, nullable=False)
    carried_forward: Mapped[Decimal] = mapped_column(Days, nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "staff_id", "leave_type_id", "year",
            name="uq_leave_balance_staff_type_year",
        ),
        Index("idx_leave_balance_staff_year", "staff_id", "year"),
    )

    def to_dto(self):
        from payroll_modules.leave.models import LeaveBalance
        return LeaveBalance(
            id=self.id,
            staff_id=self.staff_id,
            leave_type_id=self.leave_type_id,
            year=self.year,
            accrued_days=self.accrued_days,
            used_days=self.used_days,
            carried_forward=self.carried_forward,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID | None = None) -> "LeaveBalanceModel":
        return cls(
            id=dto.id,
            staff_id=dto.staff_id,
            leave_type_id=dto.leave_type_id,
            year=dto.year,
            accrued_days=dto.accrued_days,
            used_days=dto.used_days,
            carried_forward=dto.carried_forward,
            created_by_id=created_by_id,
        )


class LeaveAccrualEntryModel(TrackedBase):
    __tablename__ = "leave_accrual_entries"

    staff_id: Mapped[UUID] = mapped_column(ForeignKey("staff.id"), nullable=False)
    leave_type_id: Mapped[UUID] = mapped_column(ForeignKey("leave_types.id"), nullable=False)
    period: Mapped[str] = mapped_column(String(7), nullable=False)
    days: Mapped[Decimal] = mapped_column(Days, nullable=False)
    accrued_at: Mapped[datetime | None] = mapped_column(nullable=True)

    __table_args__ = (
        UniqueConstraint(
            "staff_id", "leave_type_id", "period",
            name="uq_leave_accrual_staff_type_period",
        ),
    )

    def to_dto(self):
        from payroll_modules.leave.models import LeaveAccrualEntry
        return LeaveAccrualEntry(
            id=self.id,
            staff_id=self.staff_id,
            leave_type_id=self.leave_type_id,
            period=self.period,
            days=self.days,
            accrued_at=self.accrued_at,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID | None = None) -> "LeaveAccrualEntryModel":
        return cls(
            id=dto.id,
            staff_id=dto.staff_id,
            leave_type_id=dto.leave_type_id,
            period=dto.period,
            days=dto.days,
            accrued_at=dto.accrued_at,
            created_by_id=created_by_id,
        )


class LeaveRequestModel(TrackedBase):
    __tablename__ = "leave_requests"

    staff_id: Mapped[UUID] = mapped_column(ForeignKey("staff.id"), nullable=False)
    leave_type_id: Mapped[UUID] = mapped_column(ForeignKey("leave_types.id"), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    total_days: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False, default="")
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    requested_by: Mapped[UUID | None] = mapped_column(nullable=True)
    approved_by: Mapped[UUID | None] = mapped_column(nullable=True)
    approval_comments: Mapped[str | None] = mapped_column(Text, nullable=True)
    decided_at: Mapped[datetime | None] = mapped_column(nullable=True)

    __table_args__ = (
        Index("idx_leave_requests_staff_id", "staff_id"),
        Index("idx_leave_requests_status", "status"),
        Index("idx_leave_requests_dates", "start_date", "end_date"),
    )

    def to_dto(self):
        from payroll_modules.leave.models import LeaveRequest, LeaveRequestStatus
        return LeaveRequest(
            id=self.id,
            staff_id=self.staff_id,
            leave_type_id=self.leave_type_id,
            start_date=self.start_date,
            end_date=self.end_date,
            total_days=self.total_days,
            reason=self.reason,
            status=LeaveRequestStatus(self.status),
            requested_by=self.requested_by,
            approved_by=self.approved_by,
            approval_comments=self.approval_comments,
            decided_at=self.decided_at,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID | None = None) -> "LeaveRequestModel":
        return cls(
            id=dto.id,
            staff_id=dto.staff_id,
            leave_type_id=dto.leave_type_id,
            start_date=dto.start_date,
            end_date=dto.end_date,
            total_days=dto.total_days,
            reason=dto.reason,
            status=dto.status.value,
            requested_by=dto.requested_by,
            approved_by=dto.approved_by,
            approval_comments=dto.approval_comments,
            decided_at=dto.decided_at,
            created_by_id=created_by_id or dto.requested_by,
        )

    @staticmethod
    def mutable_values(dto) -> dict:
        return {
            "status": dto.status.value,
            "approved_by": dto.approved_by,
            "approval_comments": dto.approval_comments,
            "decided_at": dto.decided_at,
        }
