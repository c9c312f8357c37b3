"""
Staff ORM Persistence Models (``payroll_modules.staff.orm``).

SQLAlchemy companions to the DTOs in ``payroll_modules.staff.models``.  Each
ORM class provides ``to_dto()`` / ``from_dto()`` round-trip conversion.
Enum fields are stored as String(50) holding the enum ``.value``.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import Boolean, Date, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from payroll_kernel.db.base import TrackedBase


class DepartmentModel(TrackedBase):
    __tablename__ = "departments"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    code: Mapped[str] = mapped_column(String(50), nullable=False)

    __table_args__ = (
        UniqueConstraint("code", name="uq_department_code"),
    )

    def to_dto(self):
        from payroll_modules.staff.models import Department
        return Department(id=self.id, name=self.name, code=self.code)

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID | None = None) -> "DepartmentModel":
        return cls(id=dto.id, name=dto.name, code=dto.code, created_by_id=created_by_id)


class UserAccountModel(TrackedBase):
    """
    ORM model for ``UserAccount``.

    Guarantees:
        - ``email`` is unique (uq_user_email).
        - ``role`` stores the ``Role`` .value string.
    """

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(320), nullable=False)
    role: Mapped[str] = mapped_column(String(50), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (
        UniqueConstraint("email", name="uq_user_email"),
        Index("idx_user_role", "role"),
    )

    def to_dto(self):
        from payroll_kernel.domain.roles import Role
        from payroll_modules.staff.models import UserAccount
        return UserAccount(
            id=self.id,
            email=self.email,
            role=Role(self.role),
            is_active=self.is_active,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID | None = None) -> "UserAccountModel":
        return cls(
            id=dto.id,
            email=dto.email,
            role=dto.role.value,
            is_active=dto.is_active,
            created_by_id=created_by_id,
        )


class StaffModel(TrackedBase):
    """
    ORM model for ``Staff``.

    Guarantees:
        - ``staff_number`` is unique (uq_staff_number).
        - ``status`` stores the ``StaffStatus`` .value string.
    """

    __tablename__ = "staff"

    staff_number: Mapped[str] = mapped_column(String(50), nullable=False)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    grade_level: Mapped[int] = mapped_column(Integer, nullable=False)
    step: Mapped[int] = mapped_column(Integer, nullable=False)
    position: Mapped[str] = mapped_column(String(200), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    department_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("departments.id"), nullable=True,
    )
    user_id: Mapped[UUID | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    employment_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    __table_args__ = (
        UniqueConstraint("staff_number", name="uq_staff_number"),
        Index("idx_staff_status", "status"),
        Index("idx_staff_department", "department_id"),
    )

    def to_dto(self):
        from payroll_modules.staff.models import Staff, StaffStatus
        return Staff(
            id=self.id,
            staff_number=self.staff_number,
            first_name=self.first_name,
            last_name=self.last_name,
            grade_level=self.grade_level,
            step=self.step,
            position=self.position,
            status=StaffStatus(self.status),
            department_id=self.department_id,
            user_id=self.user_id,
            employment_date=self.employment_date,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID | None = None) -> "StaffModel":
        return cls(
            id=dto.id,
            staff_number=dto.staff_number,
            first_name=dto.first_name,
            last_name=dto.last_name,
            grade_level=dto.grade_level,
            step=dto.step,
            position=dto.position,
            status=dto.status.value,
            department_id=dto.department_id,
            user_id=dto.user_id,
            employment_date=dto.employment_date,
            created_by_id=created_by_id,
        )

    def __repr__(self) -> str:
        return (
            f"<StaffModel {self.staff_number}: GL{self.grade_level} "
            f"Step {self.step} ({self.status})>"
        )
