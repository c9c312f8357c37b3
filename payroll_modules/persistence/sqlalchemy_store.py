"""
SQLAlchemy persistence adapter (``payroll_modules.persistence.sqlalchemy_store``).

Responsibility
--------------
Implements ``PayrollPersistence`` over the SQLAlchemy 2.x ORM models in each
module's ``orm.py``.  Services only ever see frozen DTOs.

Transactions
------------
* The outermost ``unit_of_work()`` opens one session, commits on success and
  rolls back on failure.  Nested blocks on the same thread share it.
* Calls outside a unit of work run in a short-lived session of their own.
* Writes are flushed immediately so constraint violations surface at the
  call that caused them.
* Compare-and-set and the leave-day consumption are single conditional
  ``UPDATE ... WHERE`` statements; ``rowcount`` decides the outcome.

Failure modes
-------------
* Any ``SQLAlchemyError`` is re-raised as ``ExternalServiceError``.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from decimal import Decimal
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from payroll_engines.salary import AllowanceRule, DeductionRule
from payroll_kernel.exceptions import ExternalServiceError
from payroll_kernel.logging_config import get_logger
from payroll_modules.adjustments.models import (
    AllowanceStatus,
    DeductionApplication,
    DeductionStatus,
    IndividualAllowance,
    IndividualDeduction,
)
from payroll_modules.adjustments.orm import (
    DeductionApplicationModel,
    IndividualAllowanceModel,
    IndividualDeductionModel,
)
from payroll_modules.leave.models import (
    LeaveAccrualEntry,
    LeaveBalance,
    LeaveRequest,
    LeaveRequestStatus,
    LeaveType,
)
from payroll_modules.leave.orm import (
    LeaveAccrualEntryModel,
    LeaveBalanceModel,
    LeaveRequestModel,
    LeaveTypeModel,
)
from payroll_modules.loans.models import CooperativeOrganization, Loan, LoanStatus
from payroll_modules.loans.orm import CooperativeOrganizationModel, LoanModel
from payroll_modules.payroll.models import (
    PayrollRun,
    PayrollRunStatus,
    Payslip,
    SalaryStructureEntry,
)
from payroll_modules.payroll.orm import (
    AllowanceRuleModel,
    DeductionRuleModel,
    PayrollRunModel,
    PayslipModel,
    SalaryStructureModel,
)
from payroll_modules.staff.models import Department, Staff, StaffStatus, UserAccount
from payroll_modules.staff.orm import DepartmentModel, StaffModel, UserAccountModel

logger = get_logger("persistence.sqlalchemy")

_SYNC = {"synchronize_session": "fetch"}


class SqlAlchemyPersistence:
    """``PayrollPersistence`` backed by a SQLAlchemy session factory."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory
        self._local = threading.local()

    # ------------------------------------------------------------------
    # Session handling
    # ------------------------------------------------------------------

    def _current(self) -> Session | None:
        return getattr(self._local, "session", None)

    @contextmanager
    def unit_of_work(self) -> Iterator[None]:
        if self._current() is not None:
            yield
            return

        session = self._session_factory()
        self._local.session = session
        try:
            yield
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            logger.warning("unit_of_work_rolled_back", exc_info=True)
            raise ExternalServiceError("database", "commit", str(exc)) from exc
        except Exception:
            session.rollback()
            logger.debug("unit_of_work_rolled_back")
            raise
        finally:
            session.close()
            self._local.session = None

    @contextmanager
    def _session(self, operation: str) -> Iterator[Session]:
        current = self._current()
        try:
            if current is not None:
                yield current
                current.flush()
            else:
                with self._session_factory() as session, session.begin():
                    yield session
        except SQLAlchemyError as exc:
            logger.error(
                "persistence_operation_failed",
                extra={"operation": operation, "error": str(exc)},
            )
            raise ExternalServiceError("database", operation, str(exc)) from exc

    def _add(self, operation: str, *models) -> None:
        with self._session(operation) as session:
            session.add_all(models)

    def _get(self, operation: str, model_cls, entity_id: UUID):
        with self._session(operation) as session:
            row = session.get(model_cls, entity_id)
            return row.to_dto() if row is not None else None

    def _all(self, operation: str, stmt) -> list:
        with self._session(operation) as session:
            return [row.to_dto() for row in session.scalars(stmt)]

    def _update(self, operation: str, stmt) -> int:
        with self._session(operation) as session:
            result = session.execute(stmt.execution_options(**_SYNC))
            return result.rowcount

    # ------------------------------------------------------------------
    # Staff and users
    # ------------------------------------------------------------------

    def add_department(self, department: Department) -> None:
        self._add("add_department", DepartmentModel.from_dto(department))

    def add_user(self, user: UserAccount) -> None:
        self._add("add_user", UserAccountModel.from_dto(user))

    def get_user(self, user_id: UUID) -> UserAccount | None:
        return self._get("get_user", UserAccountModel, user_id)

    def list_user_ids_by_roles(self, roles: Iterable[str]) -> list[UUID]:
        wanted = sorted({str(getattr(r, "value", r)) for r in roles})
        stmt = select(UserAccountModel.id).where(
            UserAccountModel.role.in_(wanted),
            UserAccountModel.is_active.is_(True),
        )
        with self._session("list_user_ids_by_roles") as session:
            return list(session.scalars(stmt))

    def add_staff(self, staff: Staff) -> None:
        self._add("add_staff", StaffModel.from_dto(staff))

    def get_staff(self, staff_id: UUID) -> Staff | None:
        return self._get("get_staff", StaffModel, staff_id)

    def list_staff(
        self,
        statuses: Iterable[StaffStatus],
        department_id: UUID | None = None,
    ) -> list[Staff]:
        stmt = select(StaffModel).where(
            StaffModel.status.in_([s.value for s in statuses]),
        )
        if department_id is not None:
            stmt = stmt.where(StaffModel.department_id == department_id)
        return self._all("list_staff", stmt.order_by(StaffModel.staff_number))

    # ------------------------------------------------------------------
    # Reference data
    # ------------------------------------------------------------------

    def put_salary_entry(self, entry: SalaryStructureEntry) -> None:
        with self._session("put_salary_entry") as session:
            existing = session.scalars(
                select(SalaryStructureModel).where(
                    SalaryStructureModel.grade_level == entry.grade_level,
                    SalaryStructureModel.step == entry.step,
                )
            ).one_or_none()
            if existing is None:
                session.add(SalaryStructureModel.from_dto(entry))
            else:
                existing.basic_salary = entry.basic_salary

    def get_salary_table(self) -> dict[tuple[int, int], Decimal]:
        entries = self._all("get_salary_table", select(SalaryStructureModel))
        return {(e.grade_level, e.step): e.basic_salary for e in entries}

    def add_allowance_rule(self, rule: AllowanceRule) -> None:
        self._add("add_allowance_rule", AllowanceRuleModel.from_dto(rule))

    def list_allowance_rules(self) -> list[AllowanceRule]:
        return self._all(
            "list_allowance_rules",
            select(AllowanceRuleModel).order_by(AllowanceRuleModel.name),
        )

    def add_deduction_rule(self, rule: DeductionRule) -> None:
        self._add("add_deduction_rule", DeductionRuleModel.from_dto(rule))

    def list_deduction_rules(self) -> list[DeductionRule]:
        return self._all(
            "list_deduction_rules",
            select(DeductionRuleModel).order_by(DeductionRuleModel.name),
        )

    # ------------------------------------------------------------------
    # Payroll runs and payslips
    # ------------------------------------------------------------------

    def add_run(self, run: PayrollRun) -> None:
        self._add("add_run", PayrollRunModel.from_dto(run))

    def get_run(self, run_id: UUID) -> PayrollRun | None:
        return self._get("get_run", PayrollRunModel, run_id)

    def list_runs(self, period: str | None = None) -> list[PayrollRun]:
        stmt = select(PayrollRunModel)
        if period is not None:
            stmt = stmt.where(PayrollRunModel.period == period)
        return self._all(
            "list_runs",
            stmt.order_by(PayrollRunModel.period, PayrollRunModel.run_created_at),
        )

    def compare_and_set_run(
        self,
        run: PayrollRun,
        expected_status: PayrollRunStatus,
        expected_version: int,
    ) -> bool:
        stmt = (
            update(PayrollRunModel)
            .where(
                PayrollRunModel.id == run.id,
                PayrollRunModel.status == expected_status.value,
                PayrollRunModel.version == expected_version,
            )
            .values(**PayrollRunModel.mutable_values(run))
        )
        return self._update("compare_and_set_run", stmt) == 1

    def add_payslips(self, payslips: Iterable[Payslip]) -> None:
        self._add("add_payslips", *(PayslipModel.from_dto(p) for p in payslips))

    def list_payslips(self, run_id: UUID) -> list[Payslip]:
        stmt = select(PayslipModel).where(PayslipModel.payroll_run_id == run_id)
        return self._all("list_payslips", stmt)

    def delete_payslips(self, run_id: UUID) -> int:
        stmt = delete(PayslipModel).where(PayslipModel.payroll_run_id == run_id)
        return self._update("delete_payslips", stmt)

    # ------------------------------------------------------------------
    # Leave
    # ------------------------------------------------------------------

    def add_leave_type(self, leave_type: LeaveType) -> None:
        self._add("add_leave_type", LeaveTypeModel.from_dto(leave_type))

    def update_leave_type(self, leave_type: LeaveType) -> None:
        stmt = (
            update(LeaveTypeModel)
            .where(LeaveTypeModel.id == leave_type.id)
            .values(
                name=leave_type.name,
                code=leave_type.code,
                description=leave_type.description,
                is_paid=leave_type.is_paid,
                max_days_per_year=leave_type.max_days_per_year,
                accrual_rate=leave_type.accrual_rate,
                requires_approval=leave_type.requires_approval,
                is_active=leave_type.is_active,
            )
        )
        self._update("update_leave_type", stmt)

    def get_leave_type(self, leave_type_id: UUID) -> LeaveType | None:
        return self._get("get_leave_type", LeaveTypeModel, leave_type_id)

    def list_leave_types(self, active_only: bool = True) -> list[LeaveType]:
        stmt = select(LeaveTypeModel)
        if active_only:
            stmt = stmt.where(LeaveTypeModel.is_active.is_(True))
        return self._all("list_leave_types", stmt.order_by(LeaveTypeModel.name))

    def add_leave_balance(self, balance: LeaveBalance) -> None:
        self._add("add_leave_balance", LeaveBalanceModel.from_dto(balance))

    def get_leave_balance(
        self, staff_id: UUID, leave_type_id: UUID, year: int,
    ) -> LeaveBalance | None:
        stmt = select(LeaveBalanceModel).where(
            LeaveBalanceModel.staff_id == staff_id,
            LeaveBalanceModel.leave_type_id == leave_type_id,
            LeaveBalanceModel.year == year,
        )
        found = self._all("get_leave_balance", stmt)
        return found[0] if found else None

    def list_leave_balances(self, staff_id: UUID, year: int) -> list[LeaveBalance]:
        stmt = select(LeaveBalanceModel).where(
            LeaveBalanceModel.staff_id == staff_id,
            LeaveBalanceModel.year == year,
        )
        return self._all("list_leave_balances", stmt)

    def add_accrued_days(self, balance_id: UUID, days: Decimal) -> None:
        stmt = (
            update(LeaveBalanceModel)
            .where(LeaveBalanceModel.id == balance_id)
            .values(accrued_days=LeaveBalanceModel.accrued_days + days)
        )
        self._update("add_accrued_days", stmt)

    def try_consume_leave_days(
        self, staff_id: UUID, leave_type_id: UUID, year: int, days: Decimal,
    ) -> bool:
        remaining = (
            LeaveBalanceModel.accrued_days
            + LeaveBalanceModel.carried_forward
            - LeaveBalanceModel.used_days
        )
        stmt = (
            update(LeaveBalanceModel)
            .where(
                LeaveBalanceModel.staff_id == staff_id,
                LeaveBalanceModel.leave_type_id == leave_type_id,
                LeaveBalanceModel.year == year,
                remaining >= days,
            )
            .values(used_days=LeaveBalanceModel.used_days + days)
        )
        return self._update("try_consume_leave_days", stmt) == 1

    def has_accrual_entry(self, staff_id: UUID, leave_type_id: UUID, period: str) -> bool:
        stmt = select(LeaveAccrualEntryModel.id).where(
            LeaveAccrualEntryModel.staff_id == staff_id,
            LeaveAccrualEntryModel.leave_type_id == leave_type_id,
            LeaveAccrualEntryModel.period == period,
        )
        with self._session("has_accrual_entry") as session:
            return session.scalars(stmt).first() is not None

    def add_accrual_entry(self, entry: LeaveAccrualEntry) -> None:
        self._add("add_accrual_entry", LeaveAccrualEntryModel.from_dto(entry))

    def add_leave_request(self, request: LeaveRequest) -> None:
        self._add("add_leave_request", LeaveRequestModel.from_dto(request))

    def get_leave_request(self, request_id: UUID) -> LeaveRequest | None:
        return self._get("get_leave_request", LeaveRequestModel, request_id)

    def list_leave_requests(
        self,
        status: LeaveRequestStatus | None = None,
        staff_id: UUID | None = None,
    ) -> list[LeaveRequest]:
        stmt = select(LeaveRequestModel)
        if status is not None:
            stmt = stmt.where(LeaveRequestModel.status == status.value)
        if staff_id is not None:
            stmt = stmt.where(LeaveRequestModel.staff_id == staff_id)
        return self._all("list_leave_requests", stmt.order_by(LeaveRequestModel.start_date))

    def compare_and_set_leave_request(
        self, request: LeaveRequest, expected_status: LeaveRequestStatus,
    ) -> bool:
        stmt = (
            update(LeaveRequestModel)
            .where(
                LeaveRequestModel.id == request.id,
                LeaveRequestModel.status == expected_status.value,
            )
            .values(**LeaveRequestModel.mutable_values(request))
        )
        return self._update("compare_and_set_leave_request", stmt) == 1

    # ------------------------------------------------------------------
    # Loans
    # ------------------------------------------------------------------

    def add_cooperative(self, cooperative: CooperativeOrganization) -> None:
        self._add("add_cooperative", CooperativeOrganizationModel.from_dto(cooperative))

    def update_cooperative(self, cooperative: CooperativeOrganization) -> None:
        stmt = (
            update(CooperativeOrganizationModel)
            .where(CooperativeOrganizationModel.id == cooperative.id)
            .values(
                name=cooperative.name,
                interest_rate_default=cooperative.interest_rate_default,
                contact_person=cooperative.contact_person,
                email=cooperative.email,
                phone_number=cooperative.phone_number,
                is_active=cooperative.is_active,
            )
        )
        self._update("update_cooperative", stmt)

    def get_cooperative(self, cooperative_id: UUID) -> CooperativeOrganization | None:
        return self._get("get_cooperative", CooperativeOrganizationModel, cooperative_id)

    def list_cooperatives(self, active_only: bool = True) -> list[CooperativeOrganization]:
        stmt = select(CooperativeOrganizationModel)
        if active_only:
            stmt = stmt.where(CooperativeOrganizationModel.is_active.is_(True))
        return self._all(
            "list_cooperatives", stmt.order_by(CooperativeOrganizationModel.name),
        )

    def add_loan(self, loan: Loan) -> None:
        self._add("add_loan", LoanModel.from_dto(loan))

    def get_loan(self, loan_id: UUID) -> Loan | None:
        return self._get("get_loan", LoanModel, loan_id)

    def list_loans(
        self,
        staff_id: UUID | None = None,
        status: LoanStatus | None = None,
    ) -> list[Loan]:
        stmt = select(LoanModel)
        if staff_id is not None:
            stmt = stmt.where(LoanModel.staff_id == staff_id)
        if status is not None:
            stmt = stmt.where(LoanModel.status == status.value)
        return self._all("list_loans", stmt.order_by(LoanModel.start_date))

    def compare_and_set_loan(
        self,
        loan: Loan,
        expected_status: LoanStatus,
        expected_installments_paid: int,
    ) -> bool:
        stmt = (
            update(LoanModel)
            .where(
                LoanModel.id == loan.id,
                LoanModel.status == expected_status.value,
                LoanModel.installments_paid == expected_installments_paid,
            )
            .values(**LoanModel.mutable_values(loan))
        )
        return self._update("compare_and_set_loan", stmt) == 1

    # ------------------------------------------------------------------
    # Individual adjustments
    # ------------------------------------------------------------------

    def add_allowance(self, allowance: IndividualAllowance) -> None:
        self._add("add_allowance", IndividualAllowanceModel.from_dto(allowance))

    def get_allowance(self, allowance_id: UUID) -> IndividualAllowance | None:
        return self._get("get_allowance", IndividualAllowanceModel, allowance_id)

    def update_allowance(self, allowance: IndividualAllowance) -> None:
        stmt = (
            update(IndividualAllowanceModel)
            .where(IndividualAllowanceModel.id == allowance.id)
            .values(**IndividualAllowanceModel.mutable_values(allowance))
        )
        self._update("update_allowance", stmt)

    def list_allowances(
        self,
        period: str | None = None,
        status: AllowanceStatus | None = None,
        staff_id: UUID | None = None,
        payroll_run_id: UUID | None = None,
    ) -> list[IndividualAllowance]:
        stmt = select(IndividualAllowanceModel)
        if period is not None:
            stmt = stmt.where(IndividualAllowanceModel.period == period)
        if status is not None:
            stmt = stmt.where(IndividualAllowanceModel.status == status.value)
        if staff_id is not None:
            stmt = stmt.where(IndividualAllowanceModel.staff_id == staff_id)
        if payroll_run_id is not None:
            stmt = stmt.where(IndividualAllowanceModel.payroll_run_id == payroll_run_id)
        return self._all("list_allowances", stmt)

    def add_deduction(self, deduction: IndividualDeduction) -> None:
        self._add("add_deduction", IndividualDeductionModel.from_dto(deduction))

    def get_deduction(self, deduction_id: UUID) -> IndividualDeduction | None:
        return self._get("get_deduction", IndividualDeductionModel, deduction_id)

    def update_deduction(self, deduction: IndividualDeduction) -> None:
        stmt = (
            update(IndividualDeductionModel)
            .where(IndividualDeductionModel.id == deduction.id)
            .values(**IndividualDeductionModel.mutable_values(deduction))
        )
        self._update("update_deduction", stmt)

    def list_deductions(
        self,
        status: DeductionStatus | None = None,
        staff_id: UUID | None = None,
    ) -> list[IndividualDeduction]:
        stmt = select(IndividualDeductionModel)
        if status is not None:
            stmt = stmt.where(IndividualDeductionModel.status == status.value)
        if staff_id is not None:
            stmt = stmt.where(IndividualDeductionModel.staff_id == staff_id)
        return self._all("list_deductions", stmt)

    def get_deduction_application(
        self, deduction_id: UUID, period: str,
    ) -> DeductionApplication | None:
        stmt = select(DeductionApplicationModel).where(
            DeductionApplicationModel.deduction_id == deduction_id,
            DeductionApplicationModel.period == period,
        )
        found = self._all("get_deduction_application", stmt)
        return found[0] if found else None

    def list_deduction_applications(self, period: str) -> list[DeductionApplication]:
        stmt = select(DeductionApplicationModel).where(
            DeductionApplicationModel.period == period,
        )
        return self._all("list_deduction_applications", stmt)

    def add_deduction_application(self, application: DeductionApplication) -> None:
        self._add("add_deduction_application", DeductionApplicationModel.from_dto(application))
