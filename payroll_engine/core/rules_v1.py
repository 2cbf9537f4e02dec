from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Mapping

from payroll_engine.core.logging import get_logger
from payroll_engine.core.quarantine import QuarantineQueue
from payroll_engine.core.rates import RateConfig
from payroll_engine.core.rounding import ceil_yen, floor_yen, round_rate
from payroll_engine.core.schema import ZERO, AttendanceAggregate, Employee, PayrollResult
from payroll_engine.core.validation import ValidationError, validate_attendance, validate_employee
from payroll_engine.core.withholding import estimate_withholding

RULE_VERSION = "rules_v1"
ONE = Decimal("1")

logger = get_logger(__name__)


@dataclass
class OvertimeBreakdown:
    statutory: Decimal = ZERO
    non_statutory: Decimal = ZERO
    late_night: Decimal = ZERO
    holiday: Decimal = ZERO
    fixed: Decimal = ZERO
    excess: Decimal = ZERO

    @property
    def overtime(self) -> Decimal:
        """Statutory plus non-statutory portion, flat fixed pay included."""

        return self.fixed + self.statutory + self.non_statutory


def _rate_terms(employee: Employee) -> tuple[Decimal, Decimal]:
    divisor = employee.avg_monthly_hours
    if divisor is None or divisor <= 0:
        raise ValidationError("avg_monthly_hours", "must be greater than zero")
    return employee.basic_pay + employee.duty_allowance, divisor


def hourly_rate(employee: Employee) -> Decimal:
    """Unrounded ``(basic + duty) / avg_monthly_hours``."""

    base, divisor = _rate_terms(employee)
    return base / divisor


def overtime_pay(amount: Decimal, hours: Decimal, multiplier: Decimal, divisor: Decimal = ONE) -> Decimal:
    """Smallest yen >= ``amount * hours * multiplier / divisor``, dividing last."""

    if hours <= 0:
        return ZERO
    return ceil_yen(amount * hours * multiplier / divisor)


def calculate_overtime(
    employee: Employee,
    attendance: AttendanceAggregate,
    config: RateConfig,
) -> OvertimeBreakdown:
    multipliers = config.overtime
    statutory_hours = attendance.statutory_overtime_hours
    non_statutory_hours = attendance.non_statutory_overtime_hours
    base, divisor = _rate_terms(employee)

    def pay(hours: Decimal, multiplier: Decimal) -> Decimal:
        return overtime_pay(base, hours, multiplier, divisor)

    breakdown = OvertimeBreakdown(
        late_night=pay(attendance.late_night_hours, multipliers.late_night),
        holiday=pay(attendance.holiday_hours, multipliers.holiday),
    )

    if employee.has_fixed_overtime:
        # The allotment covers within-company hours before statutory ones.
        allotment = employee.fixed_overtime_hours
        non_statutory_excess = max(non_statutory_hours - allotment, ZERO)
        remaining = max(allotment - non_statutory_hours, ZERO)
        statutory_excess = max(statutory_hours - remaining, ZERO)

        breakdown.fixed = employee.fixed_overtime_pay
        breakdown.statutory = pay(statutory_excess, multipliers.statutory)
        breakdown.non_statutory = pay(non_statutory_excess, multipliers.non_statutory)
        breakdown.excess = breakdown.statutory + breakdown.non_statutory
        return breakdown

    breakdown.statutory = pay(statutory_hours, multipliers.statutory)
    breakdown.non_statutory = pay(non_statutory_hours, multipliers.non_statutory)
    return breakdown


def calculate_payroll(
    employee: Employee,
    attendance: AttendanceAggregate | None,
    config: RateConfig,
    period: str,
) -> PayrollResult:
    """Compute one employee's pay, deductions and employer cost for ``period``."""

    attendance = attendance or AttendanceAggregate()
    validate_employee(employee)
    validate_attendance(attendance)

    rate = round_rate(hourly_rate(employee))
    overtime = calculate_overtime(employee, attendance, config)

    gross = (
        employee.basic_pay
        + employee.duty_allowance
        + employee.commute_allowance
        + overtime.overtime
        + overtime.late_night
        + overtime.holiday
        + attendance.basic_pay_adjustment
        + attendance.overtime_adjustment
        + attendance.other_allowance
    )

    standard = employee.standard_monthly
    employee_rates = config.employee
    employer_rates = config.employer
    employment_eligible = employee.has_employment_insurance and not employee.officer

    health = floor_yen(standard * employee_rates.health)
    nursing = floor_yen(standard * employee_rates.nursing_care) if employee.has_nursing_care else ZERO
    pension = floor_yen(standard * employee_rates.pension) if employee.has_pension else ZERO
    employment = floor_yen(gross * employee_rates.employment) if employment_eligible else ZERO
    social = health + nursing + pension + employment

    taxable = gross - social
    income_tax = estimate_withholding(taxable, config.withholding, employee.withholding_override)
    total_deduction = social + income_tax + employee.resident_tax

    employer_health = floor_yen(standard * employer_rates.health)
    employer_nursing = floor_yen(standard * employer_rates.nursing_care) if employee.has_nursing_care else ZERO
    employer_pension = floor_yen(standard * employer_rates.pension) if employee.has_pension else ZERO
    employer_child = floor_yen(standard * employer_rates.child_support)
    employer_employment = floor_yen(gross * employer_rates.employment) if employment_eligible else ZERO
    employer_total = employer_health + employer_nursing + employer_pension + employer_child + employer_employment

    return PayrollResult(
        employee_id=employee.id,
        employee_name=employee.name,
        period_month=period,
        hourly_rate=rate,
        basic_pay=employee.basic_pay,
        duty_allowance=employee.duty_allowance,
        commute_allowance=employee.commute_allowance,
        statutory_overtime_pay=overtime.statutory,
        non_statutory_overtime_pay=overtime.non_statutory,
        fixed_overtime_pay=overtime.fixed,
        excess_overtime_pay=overtime.excess,
        overtime_pay=overtime.overtime,
        late_night_pay=overtime.late_night,
        holiday_pay=overtime.holiday,
        basic_pay_adjustment=attendance.basic_pay_adjustment,
        overtime_adjustment=attendance.overtime_adjustment,
        other_allowance=attendance.other_allowance,
        gross_pay=gross,
        health_insurance=health,
        nursing_care_insurance=nursing,
        pension=pension,
        employment_insurance=employment,
        social_insurance_total=social,
        taxable_amount=taxable,
        income_tax=income_tax,
        resident_tax=employee.resident_tax,
        total_deduction=total_deduction,
        net_pay=gross - total_deduction,
        employer_health_insurance=employer_health,
        employer_nursing_care_insurance=employer_nursing,
        employer_pension=employer_pension,
        employer_child_support=employer_child,
        employer_employment_insurance=employer_employment,
        employer_total=employer_total,
        company_cost=gross + employer_total,
        rate_version=config.version,
        rule_version=RULE_VERSION,
    )


def calculate_period(
    employees: Iterable[Employee],
    attendance: Mapping[str, AttendanceAggregate],
    config: RateConfig,
    period: str,
    quarantine: QuarantineQueue | None = None,
) -> list[PayrollResult]:
    """Compute every active employee for ``period``.

    Refuses to run while the quarantine queue holds open (pending or
    assigned) entries for the month. Employees without attendance are
    computed with zero hours.
    """

    if quarantine is not None:
        quarantine.ensure_clear(period)

    results = [
        calculate_payroll(employee, attendance.get(employee.id), config, period)
        for employee in employees
        if employee.active
    ]
    logger.info(
        "payroll.calculated",
        period=period,
        employees=len(results),
        gross_total=str(sum((item.gross_pay for item in results), ZERO)),
        net_total=str(sum((item.net_pay for item in results), ZERO)),
        rate_version=config.version,
    )
    return results
