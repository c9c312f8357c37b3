"""
Loan ORM Persistence Models (``payroll_modules.loans.orm``).

SQLAlchemy companions to ``payroll_modules.loans.models``.

Invariants enforced:
    - Cooperative names are unique (uq_cooperative_name).
    - ``installments_paid`` is only advanced through the conditional UPDATE in
      ``SqlAlchemyPersistence.compare_and_set_loan``.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, Date, ForeignKey, Index, Integer, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from payroll_kernel.db.base import TrackedBase


class CooperativeOrganizationModel(TrackedBase):
    __tablename__ = "cooperative_organizations"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    interest_rate_default: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    contact_person: Mapped[str | None] = mapped_column(String(200), nullable=True)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    phone_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (
        UniqueConstraint("name", name="uq_cooperative_name"),
    )

    def to_dto(self):
        from payroll_modules.loans.models import CooperativeOrganization
        return CooperativeOrganization(
            id=self.id,
            name=self.name,
            interest_rate_default=self.interest_rate_default,
            contact_person=self.contact_person,
            email=self.email,
            phone_number=self.phone_number,
            is_active=self.is_active,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID | None = None) -> "CooperativeOrganizationModel":
        return cls(
            id=dto.id,
            name=dto.name,
            interest_rate_default=dto.interest_rate_default,
            contact_person=dto.contact_person,
            email=dto.email,
            phone_number=dto.phone_number,
            is_active=dto.is_active,
            created_by_id=created_by_id,
        )


class LoanModel(TrackedBase):
    """ORM model for ``Loan``."""

    __tablename__ = "loans"

    staff_id: Mapped[UUID] = mapped_column(ForeignKey("staff.id"), nullable=False)
    cooperative_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("cooperative_organizations.id"), nullable=True,
    )
    loan_type: Mapped[str] = mapped_column(String(50), nullable=False)
    principal: Mapped[Decimal] = mapped_column(nullable=False)
    interest_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    method: Mapped[str] = mapped_column(String(50), nullable=False)
    number_of_installments: Mapped[int] = mapped_column(Integer, nullable=False)
    installments_paid: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    monthly_principal: Mapped[Decimal] = mapped_column(nullable=False)
    monthly_interest: Mapped[Decimal] = mapped_column(nullable=False)
    monthly_total: Mapped[Decimal] = mapped_column(nullable=False)
    total_interest: Mapped[Decimal] = mapped_column(nullable=False)
    remaining_balance: Mapped[Decimal] = mapped_column(nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[UUID | None] = mapped_column(nullable=True)

    __table_args__ = (
        Index("idx_loan_staff", "staff_id"),
        Index("idx_loan_status", "status"),
    )

    def to_dto(self):
        from payroll_engines.amortization import InterestMethod
        from payroll_modules.loans.models import Loan, LoanStatus, LoanType
        return Loan(
            id=self.id,
            staff_id=self.staff_id,
            cooperative_id=self.cooperative_id,
            loan_type=LoanType(self.loan_type),
            principal=self.principal,
            interest_rate=self.interest_rate,
            method=InterestMethod(self.method),
            number_of_installments=self.number_of_installments,
            installments_paid=self.installments_paid,
            monthly_principal=self.monthly_principal,
            monthly_interest=self.monthly_interest,
            monthly_total=self.monthly_total,
            total_interest=self.total_interest,
            remaining_balance=self.remaining_balance,
            start_date=self.start_date,
            end_date=self.end_date,
            status=LoanStatus(self.status),
            notes=self.notes,
            created_by=self.created_by,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID | None = None) -> "LoanModel":
        return cls(
            id=dto.id,
            **cls.mutable_values(dto),
            staff_id=dto.staff_id,
            loan_type=dto.loan_type.value,
            start_date=dto.start_date,
            created_by=dto.created_by,
            created_by_id=created_by_id or dto.created_by,
        )

    @staticmethod
    def mutable_values(dto) -> dict:
        return {
            "cooperative_id": dto.cooperative_id,
            "principal": dto.principal,
            "interest_rate": dto.interest_rate,
            "method": dto.method.value,
            "number_of_installments": dto.number_of_installments,
            "installments_paid": dto.installments_paid,
            "monthly_principal": dto.monthly_principal,
            "monthly_interest": dto.monthly_interest,
            "monthly_total": dto.monthly_total,
            "total_interest": dto.total_interest,
            "remaining_balance": dto.remaining_balance,
            "end_date": dto.end_date,
            "status": dto.status.value,
            "notes": dto.notes,
        }
