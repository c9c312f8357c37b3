"""Tests for PayrollConfig and LeaveConfig validation."""

import pytest

from payroll_kernel.domain.roles import Role
from payroll_modules.leave.config import LeaveConfig
from payroll_modules.payroll.config import PayrollConfig


class TestPayrollConfig:

    def test_defaults(self):
        config = PayrollConfig.with_defaults()
        assert config.allow_salary_fallback is False
        assert config.pay_on_leave_staff is True
        assert config.currency == "NGN"
        assert config.approver_roles == (Role.SUPER_ADMIN, Role.ACCOUNT_ADMIN)

    def test_from_dict_coerces_roles(self):
        config = PayrollConfig.from_dict(
            {"approver_roles": ["super_admin"], "allow_salary_fallback": True},
        )
        assert config.approver_roles == (Role.SUPER_ADMIN,)
        assert config.allow_salary_fallback is True

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"currency": "NAIRA"},
            {"currency": "N1G"},
            {"approver_roles": ()},
            {"approver_roles": ("staff",)},
            {"approver_roles": ("janitor",)},
        ],
    )
    def test_invalid(self, kwargs):
        with pytest.raises(ValueError):
            PayrollConfig(**kwargs)

    def test_initialization_logged(self, captured_logs):
        PayrollConfig(pay_on_leave_staff=False)
        [entry] = [r for r in captured_logs() if r["message"] == "payroll_config_initialized"]
        assert entry["pay_on_leave_staff"] is False


class TestLeaveConfig:

    def test_defaults_to_saturday_sunday(self):
        assert LeaveConfig().weekend_days == frozenset({6, 7})

    def test_from_dict(self):
        config = LeaveConfig.from_dict({"weekend_days": [5, 6], "prorate_on_initialize": False})
        assert config.weekend_days == frozenset({5, 6})
        assert config.prorate_on_initialize is False

    @pytest.mark.parametrize("weekend", [{0}, {8}, {1, 2, 3, 4, 5, 6, 7}])
    def test_invalid_weekend(self, weekend):
        with pytest.raises(ValueError):
            LeaveConfig(weekend_days=weekend)
