"""
Persistence port (``payroll_modules.persistence.port``).

Responsibility
--------------
The storage contract consumed by every payroll service.  Adapters:

* ``InMemoryPersistence`` -- dict-backed, snapshot/restore unit of work.
* ``SqlAlchemyPersistence`` -- SQLAlchemy 2.x ORM, one session per unit of
  work, conditional ``UPDATE ... WHERE`` for compare-and-set.

Contract
--------
* ``unit_of_work()`` is a re-entrant context manager: the outermost block
  commits on success and rolls back on any exception.  Nested blocks join the
  outer one.
* ``compare_and_set_*`` methods return ``False`` (and change nothing) when the
  stored record no longer matches the expected state; callers translate that
  into ``ConcurrentModificationError``.
* ``try_consume_leave_days`` is a single conditional increment of
  ``used_days`` guarded by ``remaining_days >= days``.
* Lookups of a missing id return ``None``; the service raises.
* Adapter failures surface as ``ExternalServiceError``.
"""

from __future__ import annotations

from collections.abc import Iterable
from contextlib import AbstractContextManager
from decimal import Decimal
from typing import Protocol, runtime_checkable
from uuid import UUID

from payroll_engines.salary import AllowanceRule, DeductionRule
from payroll_modules.adjustments.models import (
    AllowanceStatus,
    DeductionApplication,
    DeductionStatus,
    IndividualAllowance,
    IndividualDeduction,
)
from payroll_modules.leave.models import (
    LeaveAccrualEntry,
    LeaveBalance,
    LeaveRequest,
    LeaveRequestStatus,
    LeaveType,
)
from payroll_modules.loans.models import CooperativeOrganization, Loan, LoanStatus
from payroll_modules.payroll.models import (
    PayrollRun,
    PayrollRunStatus,
    Payslip,
    SalaryStructureEntry,
)
from payroll_modules.staff.models import Department, Staff, StaffStatus, UserAccount


@runtime_checkable
class PayrollPersistence(Protocol):
    """Storage operations used by the payroll services."""

    def unit_of_work(self) -> AbstractContextManager[None]: ...

    # -- staff and users ---------------------------------------------------
    def add_department(self, department: Department) -> None: ...
    def add_user(self, user: UserAccount) -> None: ...
    def get_user(self, user_id: UUID) -> UserAccount | None: ...
    def list_user_ids_by_roles(self, roles: Iterable[str]) -> list[UUID]: ...
    def add_staff(self, staff: Staff) -> None: ...
    def get_staff(self, staff_id: UUID) -> Staff | None: ...
    def list_staff(
        self,
        statuses: Iterable[StaffStatus],
        department_id: UUID | None = None,
    ) -> list[Staff]: ...

    # -- reference data ----------------------------------------------------
    def put_salary_entry(self, entry: SalaryStructureEntry) -> None: ...
    def get_salary_table(self) -> dict[tuple[int, int], Decimal]: ...
    def add_allowance_rule(self, rule: AllowanceRule) -> None: ...
    def list_allowance_rules(self) -> list[AllowanceRule]: ...
    def add_deduction_rule(self, rule: DeductionRule) -> None: ...
    def list_deduction_rules(self) -> list[DeductionRule]: ...

    # -- payroll runs and payslips -----------------------------------------
    def add_run(self, run: PayrollRun) -> None: ...
    def get_run(self, run_id: UUID) -> PayrollRun | None: ...
    def list_runs(self, period: str | None = None) -> list[PayrollRun]: ...
    def compare_and_set_run(
        self,
        run: PayrollRun,
        expected_status: PayrollRunStatus,
        expected_version: int,
    ) -> bool: ...
    def add_payslips(self, payslips: Iterable[Payslip]) -> None: ...
    def list_payslips(self, run_id: UUID) -> list[Payslip]: ...
    def delete_payslips(self, run_id: UUID) -> int: ...

    # -- leave -------------------------------------------------------------
    def add_leave_type(self, leave_type: LeaveType) -> None: ...
    def update_leave_type(self, leave_type: LeaveType) -> None: ...
    def get_leave_type(self, leave_type_id: UUID) -> LeaveType | None: ...
    def list_leave_types(self, active_only: bool = True) -> list[LeaveType]: ...
    def add_leave_balance(self, balance: LeaveBalance) -> None: ...
    def get_leave_balance(
        self, staff_id: UUID, leave_type_id: UUID, year: int,
    ) -> LeaveBalance | None: ...
    def list_leave_balances(self, staff_id: UUID, year: int) -> list[LeaveBalance]: ...
    def add_accrued_days(self, balance_id: UUID, days: Decimal) -> None: ...
    def try_consume_leave_days(
        self, staff_id: UUID, leave_type_id: UUID, year: int, days: Decimal,
    ) -> bool: ...
    def has_accrual_entry(self, staff_id: UUID, leave_type_id: UUID, period: str) -> bool: ...
    def add_accrual_entry(self, entry: LeaveAccrualEntry) -> None: ...
    def add_leave_request(self, request: LeaveRequest) -> None: ...
    def get_leave_request(self, request_id: UUID) -> LeaveRequest | None: ...
    def list_leave_requests(
        self,
        status: LeaveRequestStatus | None = None,
        staff_id: UUID | None = None,
    ) -> list[LeaveRequest]: ...
    def compare_and_set_leave_request(
        self, request: LeaveRequest, expected_status: LeaveRequestStatus,
    ) -> bool: ...

    # -- loans -------------------------------------------------------------
    def add_cooperative(self, cooperative: CooperativeOrganization) -> None: ...
    def update_cooperative(self, cooperative: CooperativeOrganization) -> None: ...
    def get_cooperative(self, cooperative_id: UUID) -> CooperativeOrganization | None: ...
    def list_cooperatives(self, active_only: bool = True) -> list[CooperativeOrganization]: ...
    def add_loan(self, loan: Loan) -> None: ...
    def get_loan(self, loan_id: UUID) -> Loan | None: ...
    def list_loans(
        self,
        staff_id: UUID | None = None,
        status: LoanStatus | None = None,
    ) -> list[Loan]: ...
    def compare_and_set_loan(
        self,
        loan: Loan,
        expected_status: LoanStatus,
        expected_installments_paid: int,
    ) -> bool: ...

    # -- individual adjustments --------------------------------------------
    def add_allowance(self, allowance: IndividualAllowance) -> None: ...
    def get_allowance(self, allowance_id: UUID) -> IndividualAllowance | None: ...
    def update_allowance(self, allowance: IndividualAllowance) -> None: ...
    def list_allowances(
        self,
        period: str | None = None,
        status: AllowanceStatus | None = None,
        staff_id: UUID | None = None,
        payroll_run_id: UUID | None = None,
    ) -> list[IndividualAllowance]: ...
    def add_deduction(self, deduction: IndividualDeduction) -> None: ...
    def get_deduction(self, deduction_id: UUID) -> IndividualDeduction | None: ...
    def update_deduction(self, deduction: IndividualDeduction) -> None: ...
    def list_deductions(
        self,
        status: DeductionStatus | None = None,
        staff_id: UUID | None = None,
    ) -> list[IndividualDeduction]: ...
    def get_deduction_application(
        self, deduction_id: UUID, period: str,
    ) -> DeductionApplication | None: ...
    def list_deduction_applications(self, period: str) -> list[DeductionApplication]: ...
    def add_deduction_application(self, application: DeductionApplication) -> None: ...
