"""
In-memory persistence adapter (``payroll_modules.persistence.memory``).

Dict-backed implementation of ``PayrollPersistence`` for tests and for
embedding the engine without a database.  Records are frozen dataclasses, so
a unit of work snapshots every table with a shallow copy and restores it on
failure.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import replace
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

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

logger = get_logger("persistence.memory")

_TABLES = (
    "departments",
    "users",
    "staff",
    "salary",
    "allowance_rules",
    "deduction_rules",
    "runs",
    "payslips",
    "leave_types",
    "leave_balances",
    "accruals",
    "leave_requests",
    "cooperatives",
    "loans",
    "allowances",
    "deductions",
    "applications",
)


class InMemoryPersistence:
    """Dict-backed ``PayrollPersistence``."""

    def __init__(self) -> None:
        self._tables: dict[str, dict[Any, Any]] = {name: {} for name in _TABLES}
        self._lock = threading.RLock()
        self._depth = 0

    # ------------------------------------------------------------------
    # Unit of work
    # ------------------------------------------------------------------

    @contextmanager
    def unit_of_work(self) -> Iterator[None]:
        with self._lock:
            if self._depth > 0:
                self._depth += 1
                try:
                    yield
                finally:
                    self._depth -= 1
                return

            snapshot = {name: dict(table) for name, table in self._tables.items()}
            self._depth = 1
            try:
                yield
            except Exception:
                self._tables = snapshot
                logger.debug("memory_unit_of_work_rolled_back")
                raise
            finally:
                self._depth = 0

    def _insert(self, table: str, key: Any, value: Any) -> None:
        if key in self._tables[table]:
            raise ExternalServiceError(
                "memory_store", f"insert:{table}", f"duplicate key {key}",
            )
        self._tables[table][key] = value

    def _values(self, table: str) -> list[Any]:
        return list(self._tables[table].values())

    # ------------------------------------------------------------------
    # Staff and users
    # ------------------------------------------------------------------

    def add_department(self, department: Department) -> None:
        self._insert("departments", department.id, department)

    def add_user(self, user: UserAccount) -> None:
        self._insert("users", user.id, user)

    def get_user(self, user_id: UUID) -> UserAccount | None:
        return self._tables["users"].get(user_id)

    def list_user_ids_by_roles(self, roles: Iterable[str]) -> list[UUID]:
        wanted = {str(getattr(r, "value", r)) for r in roles}
        return [
            u.id for u in self._values("users")
            if u.is_active and u.role.value in wanted
        ]

    def add_staff(self, staff: Staff) -> None:
        self._insert("staff", staff.id, staff)

    def get_staff(self, staff_id: UUID) -> Staff | None:
        return self._tables["staff"].get(staff_id)

    def list_staff(
        self,
        statuses: Iterable[StaffStatus],
        department_id: UUID | None = None,
    ) -> list[Staff]:
        wanted = set(statuses)
        found = [
            s for s in self._values("staff")
            if s.status in wanted
            and (department_id is None or s.department_id == department_id)
        ]
        return sorted(found, key=lambda s: s.staff_number)

    # ------------------------------------------------------------------
    # Reference data
    # ------------------------------------------------------------------

    def put_salary_entry(self, entry: SalaryStructureEntry) -> None:
        self._tables["salary"][(entry.grade_level, entry.step)] = entry

    def get_salary_table(self) -> dict[tuple[int, int], Decimal]:
        return {key: e.basic_salary for key, e in self._tables["salary"].items()}

    def add_allowance_rule(self, rule: AllowanceRule) -> None:
        if rule.id is None:
            rule = replace(rule, id=uuid4())
        self._insert("allowance_rules", rule.id, rule)

    def list_allowance_rules(self) -> list[AllowanceRule]:
        return self._values("allowance_rules")

    def add_deduction_rule(self, rule: DeductionRule) -> None:
        if rule.id is None:
            rule = replace(rule, id=uuid4())
        self._insert("deduction_rules", rule.id, rule)

    def list_deduction_rules(self) -> list[DeductionRule]:
        return self._values("deduction_rules")

    # ------------------------------------------------------------------
    # Payroll runs and payslips
    # ------------------------------------------------------------------

    def add_run(self, run: PayrollRun) -> None:
        self._insert("runs", run.id, run)

    def get_run(self, run_id: UUID) -> PayrollRun | None:
        return self._tables["runs"].get(run_id)

    def list_runs(self, period: str | None = None) -> list[PayrollRun]:
        return [r for r in self._values("runs") if period is None or r.period == period]

    def compare_and_set_run(
        self,
        run: PayrollRun,
        expected_status: PayrollRunStatus,
        expected_version: int,
    ) -> bool:
        with self._lock:
            current = self._tables["runs"].get(run.id)
            if (
                current is None
                or current.status != expected_status
                or current.version != expected_version
            ):
                return False
            self._tables["runs"][run.id] = run
            return True

    def add_payslips(self, payslips: Iterable[Payslip]) -> None:
        for payslip in payslips:
            key = (payslip.payroll_run_id, payslip.staff_id)
            if any(
                (p.payroll_run_id, p.staff_id) == key for p in self._values("payslips")
            ):
                raise ExternalServiceError(
                    "memory_store", "insert:payslips", f"duplicate payslip {key}",
                )
            self._insert("payslips", payslip.id, payslip)

    def list_payslips(self, run_id: UUID) -> list[Payslip]:
        return [p for p in self._values("payslips") if p.payroll_run_id == run_id]

    def delete_payslips(self, run_id: UUID) -> int:
        doomed = [pid for pid, p in self._tables["payslips"].items() if p.payroll_run_id == run_id]
        for pid in doomed:
            del self._tables["payslips"][pid]
        return len(doomed)

    # ------------------------------------------------------------------
    # Leave
    # ------------------------------------------------------------------

    def add_leave_type(self, leave_type: LeaveType) -> None:
        self._insert("leave_types", leave_type.id, leave_type)

    def update_leave_type(self, leave_type: LeaveType) -> None:
        self._tables["leave_types"][leave_type.id] = leave_type

    def get_leave_type(self, leave_type_id: UUID) -> LeaveType | None:
        return self._tables["leave_types"].get(leave_type_id)

    def list_leave_types(self, active_only: bool = True) -> list[LeaveType]:
        types = [t for t in self._values("leave_types") if t.is_active or not active_only]
        return sorted(types, key=lambda t: t.name)

    def add_leave_balance(self, balance: LeaveBalance) -> None:
        key = (balance.staff_id, balance.leave_type_id, balance.year)
        self._insert("leave_balances", key, balance)

    def get_leave_balance(
        self, staff_id: UUID, leave_type_id: UUID, year: int,
    ) -> LeaveBalance | None:
        return self._tables["leave_balances"].get((staff_id, leave_type_id, year))

    def list_leave_balances(self, staff_id: UUID, year: int) -> list[LeaveBalance]:
        return [
            b for b in self._values("leave_balances")
            if b.staff_id == staff_id and b.year == year
        ]

    def _balance_key(self, balance_id: UUID) -> tuple:
        for key, balance in self._tables["leave_balances"].items():
            if balance.id == balance_id:
                return key
        raise ExternalServiceError("memory_store", "update:leave_balances", f"no balance {balance_id}")

    def add_accrued_days(self, balance_id: UUID, days: Decimal) -> None:
        key = self._balance_key(balance_id)
        balance = self._tables["leave_balances"][key]
        self._tables["leave_balances"][key] = replace(
            balance, accrued_days=balance.accrued_days + days,
        )

    def try_consume_leave_days(
        self, staff_id: UUID, leave_type_id: UUID, year: int, days: Decimal,
    ) -> bool:
        with self._lock:
            key = (staff_id, leave_type_id, year)
            balance = self._tables["leave_balances"].get(key)
            if balance is None or balance.remaining_days < days:
                return False
            self._tables["leave_balances"][key] = replace(
                balance, used_days=balance.used_days + days,
            )
            return True

    def has_accrual_entry(self, staff_id: UUID, leave_type_id: UUID, period: str) -> bool:
        return (staff_id, leave_type_id, period) in self._tables["accruals"]

    def add_accrual_entry(self, entry: LeaveAccrualEntry) -> None:
        self._insert("accruals", (entry.staff_id, entry.leave_type_id, entry.period), entry)

    def add_leave_request(self, request: LeaveRequest) -> None:
        self._insert("leave_requests", request.id, request)

    def get_leave_request(self, request_id: UUID) -> LeaveRequest | None:
        return self._tables["leave_requests"].get(request_id)

    def list_leave_requests(
        self,
        status: LeaveRequestStatus | None = None,
        staff_id: UUID | None = None,
    ) -> list[LeaveRequest]:
        found = [
            r for r in self._values("leave_requests")
            if (status is None or r.status == status)
            and (staff_id is None or r.staff_id == staff_id)
        ]
        return sorted(found, key=lambda r: r.start_date)

    def compare_and_set_leave_request(
        self, request: LeaveRequest, expected_status: LeaveRequestStatus,
    ) -> bool:
        with self._lock:
            current = self._tables["leave_requests"].get(request.id)
            if current is None or current.status != expected_status:
                return False
            self._tables["leave_requests"][request.id] = request
            return True

    # ------------------------------------------------------------------
    # Loans
    # ------------------------------------------------------------------

    def add_cooperative(self, cooperative: CooperativeOrganization) -> None:
        if any(c.name == cooperative.name for c in self._values("cooperatives")):
            raise ExternalServiceError(
                "memory_store", "insert:cooperatives", f"duplicate name {cooperative.name}",
            )
        self._insert("cooperatives", cooperative.id, cooperative)

    def update_cooperative(self, cooperative: CooperativeOrganization) -> None:
        self._tables["cooperatives"][cooperative.id] = cooperative

    def get_cooperative(self, cooperative_id: UUID) -> CooperativeOrganization | None:
        return self._tables["cooperatives"].get(cooperative_id)

    def list_cooperatives(self, active_only: bool = True) -> list[CooperativeOrganization]:
        found = [c for c in self._values("cooperatives") if c.is_active or not active_only]
        return sorted(found, key=lambda c: c.name)

    def add_loan(self, loan: Loan) -> None:
        self._insert("loans", loan.id, loan)

    def get_loan(self, loan_id: UUID) -> Loan | None:
        return self._tables["loans"].get(loan_id)

    def list_loans(
        self,
        staff_id: UUID | None = None,
        status: LoanStatus | None = None,
    ) -> list[Loan]:
        return [
            loan for loan in self._values("loans")
            if (staff_id is None or loan.staff_id == staff_id)
            and (status is None or loan.status == status)
        ]

    def compare_and_set_loan(
        self,
        loan: Loan,
        expected_status: LoanStatus,
        expected_installments_paid: int,
    ) -> bool:
        with self._lock:
            current = self._tables["loans"].get(loan.id)
            if (
                current is None
                or current.status != expected_status
                or current.installments_paid != expected_installments_paid
            ):
                return False
            self._tables["loans"][loan.id] = loan
            return True

    # ------------------------------------------------------------------
    # Individual adjustments
    # ------------------------------------------------------------------

    def add_allowance(self, allowance: IndividualAllowance) -> None:
        self._insert("allowances", allowance.id, allowance)

    def get_allowance(self, allowance_id: UUID) -> IndividualAllowance | None:
        return self._tables["allowances"].get(allowance_id)

    def update_allowance(self, allowance: IndividualAllowance) -> None:
        self._tables["allowances"][allowance.id] = allowance

    def list_allowances(
        self,
        period: str | None = None,
        status: AllowanceStatus | None = None,
        staff_id: UUID | None = None,
        payroll_run_id: UUID | None = None,
    ) -> list[IndividualAllowance]:
        return [
            a for a in self._values("allowances")
            if (period is None or a.period == period)
            and (status is None or a.status == status)
            and (staff_id is None or a.staff_id == staff_id)
            and (payroll_run_id is None or a.payroll_run_id == payroll_run_id)
        ]

    def add_deduction(self, deduction: IndividualDeduction) -> None:
        self._insert("deductions", deduction.id, deduction)

    def get_deduction(self, deduction_id: UUID) -> IndividualDeduction | None:
        return self._tables["deductions"].get(deduction_id)

    def update_deduction(self, deduction: IndividualDeduction) -> None:
        self._tables["deductions"][deduction.id] = deduction

    def list_deductions(
        self,
        status: DeductionStatus | None = None,
        staff_id: UUID | None = None,
    ) -> list[IndividualDeduction]:
        return [
            d for d in self._values("deductions")
            if (status is None or d.status == status)
            and (staff_id is None or d.staff_id == staff_id)
        ]

    def get_deduction_application(
        self, deduction_id: UUID, period: str,
    ) -> DeductionApplication | None:
        return self._tables["applications"].get((deduction_id, period))

    def list_deduction_applications(self, period: str) -> list[DeductionApplication]:
        return [a for a in self._values("applications") if a.period == period]

    def add_deduction_application(self, application: DeductionApplication) -> None:
        self._insert("applications", (application.deduction_id, application.period), application)
