from __future__ import annotations

from decimal import Decimal
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, constr

from payroll_engine.core.periods import MONTH_PATTERN

ZERO = Decimal("0")

HOUR_FIELDS = (
    "work_days",
    "scheduled_days",
    "work_hours",
    "scheduled_hours",
    "statutory_overtime_hours",
    "non_statutory_overtime_hours",
    "late_night_hours",
    "holiday_hours",
    "absence_days",
    "paid_leave_days",
)


class Employee(BaseModel):
    id: str
    name: str
    external_id: str = ""
    employment_type: Literal["regular", "contract", "officer"] = "regular"
    is_officer: bool = False
    department: str | None = None
    basic_pay: Decimal = ZERO
    duty_allowance: Decimal = ZERO
    commute_allowance: Decimal = ZERO
    avg_monthly_hours: Decimal | None = None
    standard_monthly: Decimal = ZERO
    fixed_overtime_hours: Decimal = ZERO
    fixed_overtime_pay: Decimal = ZERO
    has_nursing_care: bool = False
    has_pension: bool = False
    has_employment_insurance: bool = False
    dependents: int = 0
    resident_tax: Decimal = ZERO
    withholding_override: Decimal | None = None
    status: Literal["active", "separated"] = "active"
    join_date: str | None = None
    leave_date: str | None = None
    note: str | None = None

    @property
    def officer(self) -> bool:
        return self.is_officer or self.employment_type == "officer"

    @property
    def active(self) -> bool:
        return self.status == "active"

    @property
    def has_fixed_overtime(self) -> bool:
        return self.fixed_overtime_hours > 0 or self.fixed_overtime_pay > 0


class AttendanceAggregate(BaseModel):
    work_days: Decimal = ZERO
    scheduled_days: Decimal = ZERO
    work_hours: Decimal = ZERO
    scheduled_hours: Decimal = ZERO
    statutory_overtime_hours: Decimal = ZERO
    non_statutory_overtime_hours: Decimal = ZERO
    late_night_hours: Decimal = ZERO
    holiday_hours: Decimal = ZERO
    absence_days: Decimal = ZERO
    paid_leave_days: Decimal = ZERO
    basic_pay_adjustment: Decimal = ZERO
    overtime_adjustment: Decimal = ZERO
    other_allowance: Decimal = ZERO
    source: Literal["manual", "timekeeping", "quarantine"] = "manual"
    synced_at: str | None = None

    @property
    def total_overtime_hours(self) -> Decimal:
        return (
            self.statutory_overtime_hours
            + self.non_statutory_overtime_hours
            + self.late_night_hours
            + self.holiday_hours
        )


class ExternalTimeRecord(BaseModel):
    """One daily segment as delivered by the timekeeping service."""

    model_config = ConfigDict(extra="allow")

    user_id: str | int | None = None
    number: str | int | None = None
    full_name: str | None = None
    user_name: str | None = None
    date: str | None = None
    segment_title: str | None = None
    actual_working_hours: Any = None
    excess_of_statutory_working_hours: Any = None
    excess_of_statutory_working_hours_in_holidays: Any = None
    hours_in_statutory_working_hours: Any = None
    late_night_overtime_working_hours: Any = None
    hours_in_statutory_working_hours_in_holidays: Any = None

    @property
    def employee_number(self) -> str:
        return "" if self.number is None else str(self.number).strip()

    @property
    def display_name(self) -> str:
        return str(self.full_name or self.user_name or "").strip()


class MatchResult(BaseModel):
    record_key: str
    external_id: str
    external_name: str = ""
    match_type: Literal["exact", "legacy", "manual", "fallback", "unmatched"]
    employee_id: str | None = None
    reason: str = ""


class QuarantineEntry(BaseModel):
    record_key: str
    month: constr(pattern=MONTH_PATTERN)
    external_id: str
    external_name: str = ""
    reason: str
    status: Literal["pending", "assigned", "resolved"] = "pending"
    assigned_employee_id: str | None = None
    suggested_employee_id: str | None = None
    aggregate: dict = Field(default_factory=dict)
    raw_records: list[dict] = Field(default_factory=list)
    fingerprint: str
    created_at: str | None = None
    updated_at: str | None = None


class InsuranceGrade(BaseModel):
    model_config = ConfigDict(frozen=True)

    grade: int
    standard_monthly: Decimal
    lower_bound: Decimal
    upper_bound: Decimal | None = None

    def contains(self, amount: Decimal) -> bool:
        if amount < self.lower_bound:
            return False
        return self.upper_bound is None or amount < self.upper_bound


class TaxBracket(BaseModel):
    """``floor((amount - base) * rate + intercept)`` from ``threshold`` upwards."""

    model_config = ConfigDict(frozen=True)

    threshold: Decimal
    base: Decimal = ZERO
    rate: Decimal = ZERO
    intercept: Decimal = ZERO


class BonusRateBand(BaseModel):
    model_config = ConfigDict(frozen=True)

    upper: Decimal | None = None
    rate: Decimal


class PayrollResult(BaseModel):
    employee_id: str
    employee_name: str
    period_month: constr(pattern=MONTH_PATTERN)
    hourly_rate: Decimal = ZERO
    basic_pay: Decimal = ZERO
    duty_allowance: Decimal = ZERO
    commute_allowance: Decimal = ZERO
    statutory_overtime_pay: Decimal = ZERO
    non_statutory_overtime_pay: Decimal = ZERO
    fixed_overtime_pay: Decimal = ZERO
    excess_overtime_pay: Decimal = ZERO
    overtime_pay: Decimal = ZERO
    late_night_pay: Decimal = ZERO
    holiday_pay: Decimal = ZERO
    basic_pay_adjustment: Decimal = ZERO
    overtime_adjustment: Decimal = ZERO
    other_allowance: Decimal = ZERO
    gross_pay: Decimal = ZERO
    health_insurance: Decimal = ZERO
    nursing_care_insurance: Decimal = ZERO
    pension: Decimal = ZERO
    employment_insurance: Decimal = ZERO
    social_insurance_total: Decimal = ZERO
    taxable_amount: Decimal = ZERO
    income_tax: Decimal = ZERO
    resident_tax: Decimal = ZERO
    total_deduction: Decimal = ZERO
    net_pay: Decimal = ZERO
    employer_health_insurance: Decimal = ZERO
    employer_nursing_care_insurance: Decimal = ZERO
    employer_pension: Decimal = ZERO
    employer_child_support: Decimal = ZERO
    employer_employment_insurance: Decimal = ZERO
    employer_total: Decimal = ZERO
    company_cost: Decimal = ZERO
    rate_version: str
    rule_version: str = "rules_v1"


class BonusResult(BaseModel):
    employee_id: str
    bonus_amount: Decimal
    standard_bonus: Decimal
    health_insurance: Decimal = ZERO
    nursing_care_insurance: Decimal = ZERO
    pension: Decimal = ZERO
    employment_insurance: Decimal = ZERO
    social_insurance_total: Decimal = ZERO
    previous_month_taxable: Decimal = ZERO
    tax_rate: Decimal = ZERO
    taxable_amount: Decimal = ZERO
    income_tax: Decimal = ZERO
    total_deduction: Decimal = ZERO
    net_bonus: Decimal = ZERO


class YearEndDeductions(BaseModel):
    """Optional income deductions declared for the year-end adjustment."""

    life_insurance: Decimal = ZERO
    earthquake_insurance: Decimal = ZERO
    spouse: Decimal = ZERO
    other: Decimal = ZERO


class YearEndResult(BaseModel):
    employee_id: str | None = None
    year: int | None = None
    months_used: list[str] = Field(default_factory=list)
    annual_gross: Decimal
    commute_allowance: Decimal = ZERO
    taxable_income: Decimal
    income_deduction: Decimal
    income_amount: Decimal
    basic_deduction: Decimal
    dependent_deduction: Decimal = ZERO
    social_insurance_deduction: Decimal = ZERO
    life_insurance_deduction: Decimal = ZERO
    earthquake_insurance_deduction: Decimal = ZERO
    spouse_deduction: Decimal = ZERO
    other_deductions: Decimal = ZERO
    total_deductions: Decimal
    taxable_base: Decimal
    annual_tax: Decimal
    reconstruction_tax: Decimal
    annual_tax_due: Decimal
    annual_withheld: Decimal = ZERO
    # positive: refund to the employee, negative: additional collection
    adjustment: Decimal
