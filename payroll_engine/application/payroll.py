"""Application service layer for monthly payroll orchestration."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Mapping

from payroll_engine.core.attendance import aggregate_from_payload, normalize_records
from payroll_engine.core.bonus import calculate_bonus
from payroll_engine.core.grades import RegradeOutcome, regrade_employee
from payroll_engine.core.insights import Insight, MonthlyChecks, build_insights, build_monthly_checks
from payroll_engine.core.logging import get_logger
from payroll_engine.core.matching import reconcile
from payroll_engine.core.periods import month_window, normalise_period_month, previous_month
from payroll_engine.core.quarantine import QuarantineQueue
from payroll_engine.core.rates import RateConfig, load_rate_config, rate_config_for_month
from payroll_engine.core.rules_v1 import calculate_period
from payroll_engine.core.schema import (
    ZERO,
    AttendanceAggregate,
    BonusResult,
    Employee,
    MatchResult,
    PayrollResult,
    QuarantineEntry,
    YearEndDeductions,
    YearEndResult,
)
from payroll_engine.core.validation import validate_attendance, validate_employee, validate_roster
from payroll_engine.core.year_end import calculate_year_end_adjustment
from payroll_engine.domain import JobRecord, MonthLedgerEntry
from payroll_engine.infrastructure import (
    InMemoryPayrollRepository,
    InMemoryQuarantineStore,
    PayrollRepository,
    QuarantineStore,
    SnapshotWriteError,
    TimekeepingSource,
    get_timekeeping_source,
)

logger = get_logger(__name__)


class MonthLockedError(RuntimeError):
    """Raised when a confirmed month would be changed."""

    def __init__(self, month: str) -> None:
        super().__init__(f"{month} is confirmed; unlock it before recomputing")
        self.month = month


class MonthNotComputedError(RuntimeError):
    """Raised when confirming a month that has no stored results."""


class UnknownEmployeeError(KeyError):
    """Raised when an employee id is not on the roster."""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class SyncOutcome:
    month: str
    records: int
    employees: int
    results: list[MatchResult] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    quarantined: list[str] = field(default_factory=list)
    reapplied: list[str] = field(default_factory=list)
    dropped: list[dict] = field(default_factory=list)
    coercions: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "month": self.month,
            "records": self.records,
            "employees": self.employees,
            "updated": list(self.updated),
            "quarantined": list(self.quarantined),
            "reapplied": list(self.reapplied),
            "dropped": len(self.dropped),
            "coercions": self.coercions,
            "matches": [result.model_dump() for result in self.results],
        }


@dataclass
class RunOutcome:
    month: str
    results: list[PayrollResult]
    rate_version: str
    persisted: bool = True
    persist_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "month": self.month,
            "rate_version": self.rate_version,
            "persisted": self.persisted,
            "persist_error": self.persist_error,
            "results": [result.model_dump(mode="json") for result in self.results],
        }


class PayrollService:
    """Coordinates roster, attendance sync, quarantine and calculation use cases."""

    def __init__(
        self,
        repository: PayrollRepository,
        quarantine_store: QuarantineStore,
        *,
        rates_version: str | None = None,
    ) -> None:
        self._repository = repository
        self._quarantine_store = quarantine_store
        self._rates_version = rates_version

    # ------------------------------------------------------------------
    # configuration
    # ------------------------------------------------------------------
    def rate_config(self, month: str) -> RateConfig:
        if self._rates_version:
            return load_rate_config(self._rates_version)
        return rate_config_for_month(normalise_period_month(month))

    # ------------------------------------------------------------------
    # roster
    # ------------------------------------------------------------------
    def list_employees(self) -> list[Employee]:
        return self._repository.list_employees()

    def get_employee(self, employee_id: str) -> Employee:
        employee = self._repository.get_employee(employee_id)
        if employee is None:
            raise UnknownEmployeeError(employee_id)
        return employee

    def upsert_employee(self, payload: Mapping[str, Any] | Employee) -> Employee:
        if isinstance(payload, Employee):
            employee = payload
        else:
            existing = self._repository.get_employee(str(payload.get("id", "")))
            data = existing.model_dump() if existing else {}
            data.update(payload)
            employee = Employee.model_validate(data)

        validate_employee(employee)
        others = [item for item in self._repository.list_employees() if item.id != employee.id]
        validate_roster([*others, employee])
        stored = self._repository.upsert_employee(employee)
        logger.info("roster.employee_saved", employee_id=stored.id, status=stored.status)
        return stored

    def separate_employee(self, employee_id: str, leave_date: str | None = None) -> Employee:
        employee = self.get_employee(employee_id)
        updated = employee.model_copy(update={"status": "separated", "leave_date": leave_date or employee.leave_date})
        return self._repository.upsert_employee(updated)

    # ------------------------------------------------------------------
    # attendance
    # ------------------------------------------------------------------
    def get_attendance(self, month: str) -> dict[str, AttendanceAggregate]:
        return self._repository.get_attendance(normalise_period_month(month))

    def update_attendance(self, month: str, employee_id: str, payload: Mapping[str, Any]) -> AttendanceAggregate:
        month = normalise_period_month(month)
        self._ensure_unlocked(month)
        self.get_employee(employee_id)
        existing = self._repository.get_attendance(month).get(employee_id)
        data = existing.model_dump() if existing else {}
        data.update(payload)
        data["source"] = "manual"
        aggregate = AttendanceAggregate.model_validate(data)
        validate_attendance(aggregate)
        self._repository.put_attendance(month, employee_id, aggregate)
        return aggregate

    def sync_month(self, month: str, source: TimekeepingSource | None = None) -> SyncOutcome:
        """Pull a month from the timekeeping source and reconcile it.

        Nothing is written when the fetch fails.
        """

        month = normalise_period_month(month)
        self._ensure_unlocked(month)
        records = (source or get_timekeeping_source()).fetch_month(month)

        normalized = normalize_records(records, month)
        queue = self._quarantine_store.load()
        reconciled = reconcile(normalized, self._repository.list_employees(), queue)

        synced_at = _now()
        current = self._repository.get_attendance(month)
        for employee_id, attendance in reconciled.matched.items():
            aggregate = attendance.to_aggregate(previous=current.get(employee_id), synced_at=synced_at)
            self._repository.put_attendance(month, employee_id, aggregate)
        self._quarantine_store.save(queue)

        logger.info(
            "sync.completed",
            month=month,
            records=normalized.record_count,
            updated=len(reconciled.matched),
            quarantined=len(reconciled.quarantined),
            dropped=len(normalized.dropped),
        )
        return SyncOutcome(
            month=month,
            records=normalized.record_count,
            employees=len(normalized.employees),
            results=reconciled.results,
            updated=sorted(reconciled.matched),
            quarantined=reconciled.quarantined,
            reapplied=reconciled.reapplied,
            dropped=normalized.dropped,
            coercions=normalized.coercion_count,
        )

    # ------------------------------------------------------------------
    # quarantine
    # ------------------------------------------------------------------
    def quarantine(self) -> QuarantineQueue:
        return self._quarantine_store.load()

    def list_quarantine(self, month: str | None = None, *, include_resolved: bool = False) -> list[QuarantineEntry]:
        month = normalise_period_month(month) if month else None
        queue = self._quarantine_store.load()
        return queue.entries(month) if include_resolved else queue.open_entries(month)

    def assign_quarantine(self, record_key: str, employee_id: str, *, apply: bool = True) -> QuarantineEntry:
        employee = self.get_employee(employee_id)
        queue = self._quarantine_store.load()
        entry = queue.assign(record_key, employee.id)
        if apply:
            entry = self._apply_entry(queue, entry)
        self._quarantine_store.save(queue)
        return entry

    def unassign_quarantine(self, record_key: str) -> QuarantineEntry:
        queue = self._quarantine_store.load()
        entry = queue.unassign(record_key)
        self._quarantine_store.save(queue)
        return entry

    def apply_assignments(self, month: str | None = None) -> list[QuarantineEntry]:
        month = normalise_period_month(month) if month else None
        queue = self._quarantine_store.load()
        entries = queue.assigned(month)
        for entry_month in sorted({entry.month for entry in entries}):
            self._ensure_unlocked(entry_month)
        applied = [self._apply_entry(queue, entry) for entry in entries]
        self._quarantine_store.save(queue)
        return applied

    def _apply_entry(self, queue: QuarantineQueue, entry: QuarantineEntry) -> QuarantineEntry:
        self._ensure_unlocked(entry.month)
        employee_id = entry.assigned_employee_id
        current = self._repository.get_attendance(entry.month).get(employee_id)
        aggregate = aggregate_from_payload(entry.aggregate, previous=current, synced_at=_now())
        self._repository.put_attendance(entry.month, employee_id, aggregate)
        return queue.resolve(entry.record_key)

    # ------------------------------------------------------------------
    # calculation runs
    # ------------------------------------------------------------------
    def _ensure_unlocked(self, month: str) -> None:
        if self._repository.get_ledger(month).confirmed:
            raise MonthLockedError(month)

    def run_month(self, month: str) -> RunOutcome:
        month = normalise_period_month(month)
        self._ensure_unlocked(month)
        config = self.rate_config(month)
        results = calculate_period(
            self._repository.list_employees(),
            self._repository.get_attendance(month),
            config,
            month,
            quarantine=self._quarantine_store.load(),
        )

        outcome = RunOutcome(month=month, results=results, rate_version=config.version)
        try:
            self._repository.save_snapshot(month, results)
        except SnapshotWriteError as exc:
            outcome.persisted = False
            outcome.persist_error = str(exc)
            logger.error("payroll.snapshot_failed", month=month, error=str(exc))
            return outcome

        ledger = self._repository.get_ledger(month)
        ledger.status = "computed"
        ledger.gross_total = sum((item.gross_pay for item in results), ZERO)
        ledger.net_total = sum((item.net_pay for item in results), ZERO)
        ledger.deduction_total = sum((item.total_deduction for item in results), ZERO)
        ledger.computed_at = _now()
        self._repository.put_ledger(ledger)
        return outcome

    def get_results(self, month: str) -> list[PayrollResult]:
        return self._repository.get_snapshot(normalise_period_month(month))

    def get_ledger(self, month: str) -> MonthLedgerEntry:
        return self._repository.get_ledger(normalise_period_month(month))

    def list_ledger(self) -> list[MonthLedgerEntry]:
        return self._repository.list_ledger()

    def confirm_month(self, month: str, confirmed_by: str | None = None) -> MonthLedgerEntry:
        month = normalise_period_month(month)
        ledger = self._repository.get_ledger(month)
        if ledger.confirmed:
            return ledger
        if ledger.status != "computed" or not self._repository.get_snapshot(month):
            raise MonthNotComputedError(f"{month} has no computed results to confirm")
        ledger.status = "confirmed"
        ledger.confirmed_at = _now()
        ledger.confirmed_by = confirmed_by
        self._repository.put_ledger(ledger)
        logger.info("payroll.month_confirmed", month=month, confirmed_by=confirmed_by)
        return ledger

    def unlock_month(self, month: str) -> MonthLedgerEntry:
        month = normalise_period_month(month)
        ledger = self._repository.get_ledger(month)
        if ledger.confirmed:
            ledger.status = "computed"
            ledger.confirmed_at = None
            ledger.confirmed_by = None
            self._repository.put_ledger(ledger)
            logger.info("payroll.month_unlocked", month=month)
        return ledger

    # ------------------------------------------------------------------
    # checks, re-grading and bonus
    # ------------------------------------------------------------------
    def monthly_checks(self, month: str) -> MonthlyChecks:
        month = normalise_period_month(month)
        return build_monthly_checks(
            self._repository.list_employees(),
            self._repository.get_attendance(month),
            self.rate_config(month),
            open_quarantine=len(self._quarantine_store.load().open_entries(month)),
            month_status=self._repository.get_ledger(month).status,
        )

    def insights(self, month: str) -> list[Insight]:
        month = normalise_period_month(month)
        previous = self._repository.get_ledger(previous_month(month))
        confirmed = [
            entry for entry in self._repository.list_ledger() if entry.month < month and entry.confirmed
        ]
        last_confirmed = confirmed[-1] if confirmed else None
        return build_insights(
            self._repository.list_employees(),
            self._repository.get_attendance(month),
            self._repository.get_snapshot(month),
            self.rate_config(month),
            previous_gross=previous.gross_total if previous.status != "uncomputed" else None,
            previous_confirmed_deduction=last_confirmed.deduction_total if last_confirmed else None,
        )

    def regrade(self, month: str, *, window: int = 3, apply: bool = True) -> list[RegradeOutcome]:
        """Re-grade active employees from the average gross of the window ending at ``month``."""

        month = normalise_period_month(month)
        months = month_window(month, window)
        snapshots = self._repository.list_snapshots()
        grades = self.rate_config(month).grades

        outcomes = []
        for employee in self._repository.list_employees():
            if not employee.active:
                continue
            outcome = regrade_employee(employee, snapshots, months, grades)
            outcomes.append(outcome)
            if apply and outcome.changed:
                self._repository.upsert_employee(outcome.employee)
                logger.info(
                    "grades.regraded",
                    employee_id=employee.id,
                    previous=str(outcome.previous),
                    standard_monthly=str(outcome.new_standard_monthly),
                    months=outcome.months_used,
                )
        return outcomes

    def bonus(
        self,
        employee_id: str,
        amount: Decimal,
        month: str,
        previous_gross: Decimal | None = None,
    ) -> BonusResult:
        month = normalise_period_month(month)
        employee = self.get_employee(employee_id)
        if previous_gross is None:
            previous_gross = ZERO
            for result in self._repository.get_snapshot(previous_month(month)):
                if result.employee_id == employee_id:
                    previous_gross = result.gross_pay
                    break
        return calculate_bonus(employee, Decimal(str(amount)), Decimal(str(previous_gross)), self.rate_config(month))

    def year_end_adjustment(
        self,
        employee_id: str,
        year: int,
        deductions: Mapping[str, Any] | None = None,
    ) -> YearEndResult:
        """Year-end adjustment from the stored January..December snapshots of ``year``."""

        employee = self.get_employee(employee_id)
        year = int(year)
        if not 1900 <= year <= 9999:
            raise ValueError(f"invalid year: {year}")

        gross = social = commute = withheld = ZERO
        months_used = []
        snapshots = self._repository.list_snapshots()
        for month in sorted(snapshots):
            if not month.startswith(f"{year:04d}-"):
                continue
            for result in snapshots[month]:
                if result.employee_id != employee.id:
                    continue
                gross += result.gross_pay
                social += result.social_insurance_total
                commute += result.commute_allowance
                withheld += result.income_tax
                months_used.append(month)

        result = calculate_year_end_adjustment(
            gross,
            social,
            commute,
            withheld,
            employee.dependents,
            YearEndDeductions.model_validate(dict(deductions or {})),
        )
        logger.info(
            "year_end.calculated",
            employee_id=employee.id,
            year=year,
            months=len(months_used),
            adjustment=str(result.adjustment),
        )
        return result.model_copy(update={"employee_id": employee.id, "year": year, "months_used": months_used})

    # ------------------------------------------------------------------
    # job orchestration
    # ------------------------------------------------------------------
    def next_job_id(self) -> str:
        return self._repository.next_job_id()

    def register_job(self, job_id: str, month: str) -> JobRecord:
        job = JobRecord(job_id=job_id, month=month, created_at=_now())
        self._repository.register_job(job)
        return job

    def update_job_status(self, job_id: str, status: str, *, error: str | None = None, detail: dict | None = None) -> None:
        self._repository.update_job_status(job_id, status, error=error, detail=detail)
        if status in {"completed", "failed"}:
            job = self._repository.get_job(job_id)
            if job is not None:
                job.finished_at = _now()

    def get_job(self, job_id: str) -> JobRecord | None:
        return self._repository.get_job(job_id)

    def list_jobs(self, month: str | None = None) -> list[JobRecord]:
        return self._repository.list_jobs(month)

    # ------------------------------------------------------------------
    # testing helpers
    # ------------------------------------------------------------------
    def reset(self) -> None:
        self._repository.reset()
        self._quarantine_store.reset()


_service = PayrollService(InMemoryPayrollRepository(), InMemoryQuarantineStore())


def configure_payroll_service(
    repository: PayrollRepository | None = None,
    quarantine_store: QuarantineStore | None = None,
    *,
    rates_version: str | None = None,
) -> PayrollService:
    """Install a new process-wide service (used at application start-up)."""

    global _service
    _service = PayrollService(
        repository or InMemoryPayrollRepository(),
        quarantine_store or InMemoryQuarantineStore(),
        rates_version=rates_version,
    )
    return _service


def get_payroll_service() -> PayrollService:
    """Return the singleton payroll service for the process."""

    return _service


def reset_payroll_state() -> None:
    """Reset the in-memory store (used in tests)."""

    _service.reset()
