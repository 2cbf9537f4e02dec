from __future__ import annotations

from collections import defaultdict
from decimal import Decimal
from typing import Iterable

from payroll_engine.core.name_normalize import normalize_external_id
from payroll_engine.core.schema import HOUR_FIELDS, AttendanceAggregate, Employee


class ValidationError(Exception):
    """Raised when domain validation fails."""

    def __init__(self, field: str, reason: str) -> None:
        super().__init__(f"{field}: {reason}")
        self.field = field
        self.reason = reason


MONEY_FIELDS = (
    "basic_pay",
    "duty_allowance",
    "commute_allowance",
    "standard_monthly",
    "fixed_overtime_pay",
    "resident_tax",
)


def validate_employee(employee: Employee) -> None:
    if employee.officer and employee.has_employment_insurance:
        raise ValidationError("has_employment_insurance", "officers are not eligible for employment insurance")
    if employee.avg_monthly_hours is None or employee.avg_monthly_hours <= 0:
        raise ValidationError("avg_monthly_hours", "must be greater than zero")
    for field in MONEY_FIELDS:
        if getattr(employee, field) < 0:
            raise ValidationError(field, "amount cannot be negative")
    if employee.fixed_overtime_hours < 0:
        raise ValidationError("fixed_overtime_hours", "hours cannot be negative")
    if employee.withholding_override is not None and employee.withholding_override < 0:
        raise ValidationError("withholding_override", "amount cannot be negative")
    if employee.dependents < 0:
        raise ValidationError("dependents", "cannot be negative")


def validate_attendance(attendance: AttendanceAggregate) -> None:
    for field in HOUR_FIELDS:
        if getattr(attendance, field) < Decimal("0"):
            raise ValidationError(field, "hour/day value cannot be negative")


def duplicate_external_ids(employees: Iterable[Employee]) -> dict[str, list[str]]:
    """Normalised external ids shared by more than one active employee."""

    owners: dict[str, list[str]] = defaultdict(list)
    for employee in employees:
        if not employee.active:
            continue
        key = normalize_external_id(employee.external_id)
        if key:
            owners[key].append(employee.id)
    return {key: ids for key, ids in owners.items() if len(ids) > 1}


def validate_roster(employees: Iterable[Employee]) -> None:
    duplicates = duplicate_external_ids(employees)
    if duplicates:
        key, ids = next(iter(sorted(duplicates.items())))
        raise ValidationError("external_id", f"external id {key} is shared by employees {', '.join(ids)}")


def collect_setup_issues(employee: Employee, employees: Iterable[Employee] = ()) -> list[str]:
    """Human-readable setup gaps for an active employee (empty when ready)."""

    if not employee.active:
        return []
    issues: list[str] = []
    if not employee.join_date:
        issues.append("join date not set")
    if employee.basic_pay <= 0:
        issues.append("basic pay not set")
    if employee.standard_monthly <= 0:
        issues.append("standard monthly remuneration not set")
    if employee.avg_monthly_hours is None or employee.avg_monthly_hours <= 0:
        issues.append("average monthly hours not set")
    if "provisional" in str(employee.note or "").lower():
        issues.append("still registered as provisional")
    if employee.officer and employee.has_employment_insurance:
        issues.append("officer with employment insurance enabled")

    external_id = normalize_external_id(employee.external_id)
    if not external_id:
        issues.append("timekeeping id not set")
    elif any(
        other.id != employee.id and other.active and normalize_external_id(other.external_id) == external_id
        for other in employees
    ):
        issues.append("timekeeping id duplicated")
    return issues
