"""Standard monthly remuneration grade lookup and periodic re-grading."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Mapping, Sequence

from payroll_engine.core.schema import Employee, InsuranceGrade, PayrollResult


def grade_for_amount(amount: Decimal, grades: Sequence[InsuranceGrade]) -> InsuranceGrade | None:
    if amount is None or amount <= 0 or not grades:
        return None
    ordered = sorted(grades, key=lambda item: item.lower_bound)
    if amount < ordered[0].lower_bound:
        return ordered[0]
    for grade in ordered:
        if grade.contains(amount):
            return grade
    return ordered[-1]


def grade_for_standard_monthly(value: Decimal, grades: Sequence[InsuranceGrade]) -> InsuranceGrade | None:
    for grade in grades:
        if grade.standard_monthly == value:
            return grade
    return None


def average_gross(
    employee_id: str,
    snapshots: Mapping[str, Sequence[PayrollResult]],
    months: Sequence[str],
) -> tuple[Decimal | None, list[str]]:
    """Average gross over ``months`` that hold a result for ``employee_id``."""

    total = Decimal("0")
    used: list[str] = []
    for month in months:
        for result in snapshots.get(month, ()):
            if result.employee_id == employee_id:
                total += result.gross_pay
                used.append(month)
                break
    if not used:
        return None, used
    return total / len(used), used


@dataclass
class RegradeOutcome:
    employee_id: str
    months_used: list[str]
    average: Decimal | None
    previous: Decimal
    new_standard_monthly: Decimal
    grade: int | None
    employee: Employee

    @property
    def changed(self) -> bool:
        return self.new_standard_monthly != self.previous


def regrade_employee(
    employee: Employee,
    snapshots: Mapping[str, Sequence[PayrollResult]],
    months: Sequence[str],
    grades: Sequence[InsuranceGrade],
) -> RegradeOutcome:
    average, used = average_gross(employee.id, snapshots, months)
    grade = grade_for_amount(average, grades) if average is not None else None
    if grade is None:
        return RegradeOutcome(
            employee_id=employee.id,
            months_used=used,
            average=average,
            previous=employee.standard_monthly,
            new_standard_monthly=employee.standard_monthly,
            grade=None,
            employee=employee,
        )

    updated = employee.model_copy(update={"standard_monthly": grade.standard_monthly})
    return RegradeOutcome(
        employee_id=employee.id,
        months_used=used,
        average=average,
        previous=employee.standard_monthly,
        new_standard_monthly=grade.standard_monthly,
        grade=grade.grade,
        employee=updated,
    )
