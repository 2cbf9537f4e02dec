"""Pre-confirmation checks and period-over-period observations."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from decimal import Decimal
from typing import Literal, Mapping, Sequence

from payroll_engine.core.grades import grade_for_standard_monthly
from payroll_engine.core.rates import RateConfig
from payroll_engine.core.schema import ZERO, AttendanceAggregate, Employee, PayrollResult
from payroll_engine.core.validation import collect_setup_issues

GROSS_CHANGE_RATIO = Decimal("0.10")
STANDARD_DEVIATION_RATIO = Decimal("0.20")
DEDUCTION_CHANGE_RATIO = Decimal("0.10")


@dataclass
class MonthlyChecks:
    critical: list[str] = field(default_factory=list)
    warning: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.critical

    def to_dict(self) -> dict:
        return {"critical": list(self.critical), "warning": list(self.warning), "ok": self.ok}


@dataclass
class Insight:
    type: Literal["ok", "info", "warn"]
    text: str

    def to_dict(self) -> dict:
        return asdict(self)


def build_monthly_checks(
    employees: Sequence[Employee],
    attendance: Mapping[str, AttendanceAggregate],
    config: RateConfig,
    open_quarantine: int = 0,
    month_status: str | None = None,
) -> MonthlyChecks:
    checks = MonthlyChecks()
    active = [employee for employee in employees if employee.active]
    if not active:
        checks.critical.append("no active employees; register the roster first")
    if open_quarantine:
        checks.critical.append(
            f"{open_quarantine} unmatched attendance record(s) unresolved; automatic computation is blocked"
        )

    for employee in active:
        label = employee.name or employee.id
        if not employee.name:
            checks.critical.append(f"{employee.id}: name is empty")
        if employee.basic_pay <= 0:
            checks.critical.append(f"{label}: basic pay not set")
        if employee.standard_monthly <= 0:
            checks.critical.append(f"{label}: standard monthly remuneration not set")
        if employee.dependents < 0:
            checks.critical.append(f"{label}: dependents count is invalid")
        if employee.officer and employee.has_employment_insurance:
            checks.critical.append(f"{label}: officers are not eligible for employment insurance")

        issues = collect_setup_issues(employee, employees)
        if "timekeeping id duplicated" in issues:
            checks.critical.append(f"{label}: timekeeping id is shared with another employee")
        if "timekeeping id not set" in issues:
            checks.warning.append(f"{label}: timekeeping id not set")
        if employee.standard_monthly > 0 and grade_for_standard_monthly(employee.standard_monthly, config.grades) is None:
            checks.warning.append(f"{label}: standard monthly {employee.standard_monthly} is not on the grade table")
        if employee.id not in attendance:
            checks.warning.append(f"{label}: no attendance (computed with zero hours)")
        if not employee.join_date:
            checks.warning.append(f"{label}: join date not set")

    if month_status == "uncomputed":
        checks.warning.append("month not computed yet; sync attendance and run the calculation")
    return checks


def build_insights(
    employees: Sequence[Employee],
    attendance: Mapping[str, AttendanceAggregate],
    results: Sequence[PayrollResult],
    config: RateConfig,
    previous_gross: Decimal | None = None,
    previous_confirmed_deduction: Decimal | None = None,
) -> list[Insight]:
    insights: list[Insight] = []
    active = [employee for employee in employees if employee.active]
    by_employee = {result.employee_id: result for result in results}
    warn_hours = config.overtime_warning_hours
    limit_hours = config.overtime_limit_hours

    for employee in active:
        record = attendance.get(employee.id)
        if record is None:
            continue
        total = record.total_overtime_hours
        if total >= limit_hours:
            insights.append(Insight("warn", f"{employee.name}: overtime {total}h reached the {limit_hours}h limit"))
        elif total >= warn_hours:
            insights.append(Insight("warn", f"{employee.name}: overtime {total}h is over the {warn_hours}h warning line"))
        if employee.fixed_overtime_hours > 0:
            actual = record.statutory_overtime_hours + record.non_statutory_overtime_hours
            if actual > employee.fixed_overtime_hours:
                insights.append(
                    Insight(
                        "info",
                        f"{employee.name}: fixed overtime {employee.fixed_overtime_hours}h exceeded "
                        f"(actual {actual}h); the excess is paid on top",
                    )
                )

    if previous_gross and previous_gross > 0:
        current = sum((result.gross_pay for result in results), ZERO)
        change = (current - previous_gross) / previous_gross
        if abs(change) >= GROSS_CHANGE_RATIO:
            insights.append(
                Insight("info", f"total gross changed {change * 100:+.0f}% ({current - previous_gross:+}) from last month")
            )

    for employee in active:
        result = by_employee.get(employee.id)
        standard = employee.standard_monthly
        if result is not None and standard > 0 and abs(result.gross_pay - standard) / standard > STANDARD_DEVIATION_RATIO:
            insights.append(
                Insight(
                    "info",
                    f"{employee.name}: gross {result.gross_pay} differs from standard monthly {standard} by more than 20%",
                )
            )
        if standard > 0 and grade_for_standard_monthly(standard, config.grades) is None:
            insights.append(Insight("warn", f"{employee.name}: standard monthly {standard} is not on the grade table"))

    if previous_confirmed_deduction and previous_confirmed_deduction > 0 and results:
        current = sum((result.total_deduction for result in results), ZERO)
        if abs(current - previous_confirmed_deduction) / previous_confirmed_deduction > DEDUCTION_CHANGE_RATIO:
            insights.append(
                Insight("warn", "deductions differ from the last confirmed month by more than 10%; check rates and grades")
            )

    if not insights:
        insights.append(Insight("ok", "no issues detected"))
    return insights
