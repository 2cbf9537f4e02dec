from __future__ import annotations

import sys
from decimal import Decimal
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from payroll_engine.core.quarantine import QuarantineBlockedError, QuarantineQueue
from payroll_engine.core.rates import load_rate_config, rate_config_for_month
from payroll_engine.core.rules_v1 import calculate_payroll, calculate_period, hourly_rate, overtime_pay
from payroll_engine.core.schema import AttendanceAggregate, Employee
from payroll_engine.core.validation import ValidationError


@pytest.fixture()
def config():
    return load_rate_config("2025-04")


def _employee(**overrides) -> Employee:
    data = {
        "id": "E001",
        "name": "佐藤 花子",
        "external_id": "1001",
        "basic_pay": Decimal("210000"),
        "duty_allowance": Decimal("10000"),
        "avg_monthly_hours": Decimal("173.0"),
        "standard_monthly": Decimal("260000"),
        "has_pension": True,
        "has_employment_insurance": True,
        "resident_tax": Decimal("13000"),
        "join_date": "2020-04-01",
    }
    data.update(overrides)
    return Employee(**data)


def test_standard_employee_with_statutory_overtime(config):
    attendance = AttendanceAggregate(statutory_overtime_hours=Decimal("10"))

    result = calculate_payroll(_employee(), attendance, config, "2025-04")

    assert result.hourly_rate == Decimal("1271.68")
    assert result.statutory_overtime_pay == Decimal("15896")
    assert result.gross_pay == Decimal("235896")
    assert result.health_insurance == Decimal("13403")
    assert result.nursing_care_insurance == Decimal("0")
    assert result.pension == Decimal("23790")
    assert result.employment_insurance == Decimal("1297")
    assert result.social_insurance_total == Decimal("38490")
    assert result.taxable_amount == Decimal("197406")
    assert result.income_tax == Decimal("10594")
    assert result.total_deduction == Decimal("62084")
    assert result.net_pay == Decimal("173812")


def test_employer_side_costs(config):
    attendance = AttendanceAggregate(statutory_overtime_hours=Decimal("10"))

    result = calculate_payroll(_employee(), attendance, config, "2025-04")

    assert result.employer_health_insurance == Decimal("13403")
    assert result.employer_pension == Decimal("23790")
    assert result.employer_child_support == Decimal("936")
    assert result.employer_employment_insurance == Decimal("2123")
    assert result.employer_total == Decimal("40252")
    assert result.company_cost == Decimal("276148")
    assert result.rate_version == "2025-04"
    assert result.rule_version == "rules_v1"


def test_fixed_overtime_excess_paid_on_top(config):
    employee = _employee(fixed_overtime_hours=Decimal("20"), fixed_overtime_pay=Decimal("40000"))
    attendance = AttendanceAggregate(statutory_overtime_hours=Decimal("25"))

    result = calculate_payroll(employee, attendance, config, "2025-04")

    excess = overtime_pay(Decimal("220000"), Decimal("5"), Decimal("1.25"), Decimal("173"))
    assert excess == Decimal("7948")
    assert result.fixed_overtime_pay == Decimal("40000")
    assert result.excess_overtime_pay == excess
    assert result.overtime_pay == Decimal("40000") + excess


def test_fixed_overtime_within_allotment_adds_nothing(config):
    employee = _employee(fixed_overtime_hours=Decimal("20"), fixed_overtime_pay=Decimal("40000"))
    attendance = AttendanceAggregate(
        statutory_overtime_hours=Decimal("12"),
        non_statutory_overtime_hours=Decimal("8"),
    )

    result = calculate_payroll(employee, attendance, config, "2025-04")

    assert result.excess_overtime_pay == Decimal("0")
    assert result.overtime_pay == Decimal("40000")
    assert result.gross_pay == Decimal("260000")


def test_fixed_overtime_allotment_covers_within_company_hours_first(config):
    employee = _employee(fixed_overtime_hours=Decimal("10"), fixed_overtime_pay=Decimal("20000"))
    attendance = AttendanceAggregate(
        statutory_overtime_hours=Decimal("4"),
        non_statutory_overtime_hours=Decimal("8"),
    )

    result = calculate_payroll(employee, attendance, config, "2025-04")

    # 8h within-company absorbed, 2h of statutory absorbed, 2h statutory excess.
    assert result.non_statutory_overtime_pay == Decimal("0")
    assert result.statutory_overtime_pay == overtime_pay(Decimal("220000"), Decimal("2"), Decimal("1.25"), Decimal("173"))


def test_late_night_and_holiday_paid_on_top_of_fixed(config):
    employee = _employee(fixed_overtime_hours=Decimal("20"), fixed_overtime_pay=Decimal("40000"))
    attendance = AttendanceAggregate(late_night_hours=Decimal("2"), holiday_hours=Decimal("8"))

    result = calculate_payroll(employee, attendance, config, "2025-04")

    assert result.late_night_pay == Decimal("3180")
    assert result.holiday_pay == Decimal("13735")
    assert result.gross_pay == Decimal("220000") + Decimal("40000") + Decimal("3180") + Decimal("13735")


def test_zero_attendance_has_no_overtime(config):
    employee = _employee(commute_allowance=Decimal("8000"))

    result = calculate_payroll(employee, AttendanceAggregate(), config, "2025-04")

    assert result.overtime_pay == Decimal("0")
    assert result.late_night_pay == Decimal("0")
    assert result.holiday_pay == Decimal("0")
    assert result.gross_pay == Decimal("228000")
    expected = (
        result.health_insurance
        + result.nursing_care_insurance
        + result.pension
        + result.employment_insurance
        + result.income_tax
        + result.resident_tax
    )
    assert result.net_pay == result.gross_pay - expected


def test_missing_attendance_defaults_to_zero(config):
    assert calculate_payroll(_employee(), None, config, "2025-04").gross_pay == Decimal("220000")


@pytest.mark.parametrize(
    "rate, hours, multiplier, expected",
    [
        (Decimal("1271.68"), Decimal("1"), Decimal("1.25"), Decimal("1590")),
        (Decimal("1000.01"), Decimal("0.1"), Decimal("1.00"), Decimal("101")),
        (Decimal("1500"), Decimal("2"), Decimal("1.35"), Decimal("4050")),
    ],
)
def test_overtime_rounds_up(rate, hours, multiplier, expected):
    assert overtime_pay(rate, hours, multiplier) == expected


def test_overtime_uses_unrounded_hourly_rate(config):
    # 300001 / 300 = 1000.00333...; the displayed rate rounds to 1000.00.
    employee = _employee(basic_pay=Decimal("300001"), duty_allowance=Decimal("0"), avg_monthly_hours=Decimal("300"))
    attendance = AttendanceAggregate(non_statutory_overtime_hours=Decimal("1"))

    result = calculate_payroll(employee, attendance, config, "2025-04")

    assert result.hourly_rate == Decimal("1000.00")
    assert result.non_statutory_overtime_pay == Decimal("1001")


def test_exact_products_are_not_pushed_to_the_next_yen():
    # 200000 / 3 cannot be represented exactly, yet 3 hours of it is 200000.
    assert overtime_pay(Decimal("200000"), Decimal("3"), Decimal("1.00"), Decimal("3")) == Decimal("200000")


def test_officer_with_employment_insurance_rejected(config):
    officer = _employee(employment_type="officer", is_officer=True, has_employment_insurance=True)

    with pytest.raises(ValidationError) as excinfo:
        calculate_payroll(officer, AttendanceAggregate(), config, "2025-04")

    assert excinfo.value.field == "has_employment_insurance"


def test_officer_without_employment_insurance(config):
    officer = _employee(is_officer=True, has_employment_insurance=False)

    result = calculate_payroll(officer, AttendanceAggregate(), config, "2025-04")

    assert result.employment_insurance == Decimal("0")
    assert result.employer_employment_insurance == Decimal("0")


@pytest.mark.parametrize("hours", [None, Decimal("0"), Decimal("-1")])
def test_non_positive_divisor_rejected(hours):
    with pytest.raises(ValidationError) as excinfo:
        hourly_rate(_employee(avg_monthly_hours=hours))
    assert excinfo.value.field == "avg_monthly_hours"


def test_negative_hours_rejected(config):
    attendance = AttendanceAggregate(statutory_overtime_hours=Decimal("-2"))

    with pytest.raises(ValidationError) as excinfo:
        calculate_payroll(_employee(), attendance, config, "2025-04")

    assert excinfo.value.field == "statutory_overtime_hours"


def test_nursing_care_when_flagged(config):
    result = calculate_payroll(_employee(has_nursing_care=True), AttendanceAggregate(), config, "2025-04")

    assert result.nursing_care_insurance == Decimal("2067")
    assert result.employer_nursing_care_insurance == Decimal("2067")


def test_withholding_override_used_verbatim(config):
    result = calculate_payroll(_employee(withholding_override=Decimal("5000")), AttendanceAggregate(), config, "2025-04")
    assert result.income_tax == Decimal("5000")


def test_period_skips_separated_and_honours_quarantine(config):
    employees = [_employee(), _employee(id="E002", external_id="1002", status="separated")]
    queue = QuarantineQueue()
    queue.upsert(
        month="2025-04",
        external_id="9999",
        external_name="unknown",
        reason="no candidate",
        aggregate={},
        raw_records=[],
        fingerprint="abc",
    )

    with pytest.raises(QuarantineBlockedError):
        calculate_period(employees, {}, config, "2025-04", quarantine=queue)

    queue.assign("2025-04:9999", "E001")
    with pytest.raises(QuarantineBlockedError):
        calculate_period(employees, {}, config, "2025-04", quarantine=queue)

    queue.resolve("2025-04:9999")
    results = calculate_period(employees, {}, config, "2025-04", quarantine=queue)

    assert [result.employee_id for result in results] == ["E001"]


def test_rate_version_selected_by_month():
    assert rate_config_for_month("2024-10").version == "2024-04"
    assert rate_config_for_month("2025-06").version == "2025-04"
    with pytest.raises(LookupError):
        rate_config_for_month("2023-01")
