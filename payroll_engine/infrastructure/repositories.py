"""Infrastructure layer for roster, attendance and snapshot persistence."""
from __future__ import annotations

from typing import Protocol

from payroll_engine.core.schema import AttendanceAggregate, Employee, PayrollResult
from payroll_engine.domain import JobRecord, MonthLedgerEntry, MonthState


class SnapshotWriteError(RuntimeError):
    """Raised when a month's results cannot be stored."""


class PayrollRepository(Protocol):
    """Persistence contract for payroll state."""

    def list_employees(self) -> list[Employee]: ...

    def get_employee(self, employee_id: str) -> Employee | None: ...

    def upsert_employee(self, employee: Employee) -> Employee: ...

    def get_attendance(self, month: str) -> dict[str, AttendanceAggregate]: ...

    def put_attendance(self, month: str, employee_id: str, aggregate: AttendanceAggregate) -> None: ...

    def save_snapshot(self, month: str, results: list[PayrollResult]) -> None: ...

    def get_snapshot(self, month: str) -> list[PayrollResult]: ...

    def list_snapshots(self) -> dict[str, list[PayrollResult]]: ...

    def get_ledger(self, month: str) -> MonthLedgerEntry: ...

    def put_ledger(self, entry: MonthLedgerEntry) -> None: ...

    def list_ledger(self) -> list[MonthLedgerEntry]: ...

    def register_job(self, job: JobRecord) -> None: ...

    def update_job_status(self, job_id: str, status: str, *, error: str | None = None, detail: dict | None = None) -> None: ...

    def get_job(self, job_id: str) -> JobRecord | None: ...

    def list_jobs(self, month: str | None = None) -> list[JobRecord]: ...

    def next_job_id(self) -> str: ...

    def reset(self) -> None: ...


class InMemoryPayrollRepository:
    """Simple in-memory repository for fast iteration and tests."""

    def __init__(self) -> None:
        self._employees: dict[str, Employee] = {}
        self._months: dict[str, MonthState] = {}
        self._jobs: dict[str, JobRecord] = {}
        self._job_counter = 0

    # ------------------------------------------------------------------
    # internal helpers
    # ------------------------------------------------------------------
    def _ensure_month(self, month: str) -> MonthState:
        state = self._months.get(month)
        if state is None:
            state = MonthState(month=month)
            self._months[month] = state
        return state

    # ------------------------------------------------------------------
    # roster
    # ------------------------------------------------------------------
    def list_employees(self) -> list[Employee]:
        return sorted(self._employees.values(), key=lambda item: item.id)

    def get_employee(self, employee_id: str) -> Employee | None:
        return self._employees.get(employee_id)

    def upsert_employee(self, employee: Employee) -> Employee:
        self._employees[employee.id] = employee
        return employee

    # ------------------------------------------------------------------
    # attendance
    # ------------------------------------------------------------------
    def get_attendance(self, month: str) -> dict[str, AttendanceAggregate]:
        state = self._months.get(month)
        return dict(state.attendance) if state else {}

    def put_attendance(self, month: str, employee_id: str, aggregate: AttendanceAggregate) -> None:
        self._ensure_month(month).attendance[employee_id] = aggregate

    # ------------------------------------------------------------------
    # snapshots and ledger
    # ------------------------------------------------------------------
    def save_snapshot(self, month: str, results: list[PayrollResult]) -> None:
        self._ensure_month(month).results = list(results)

    def get_snapshot(self, month: str) -> list[PayrollResult]:
        state = self._months.get(month)
        return list(state.results) if state else []

    def list_snapshots(self) -> dict[str, list[PayrollResult]]:
        return {month: list(state.results) for month, state in sorted(self._months.items()) if state.results}

    def get_ledger(self, month: str) -> MonthLedgerEntry:
        state = self._ensure_month(month)
        if state.ledger is None:
            state.ledger = MonthLedgerEntry(month=month)
        return state.ledger

    def put_ledger(self, entry: MonthLedgerEntry) -> None:
        self._ensure_month(entry.month).ledger = entry

    def list_ledger(self) -> list[MonthLedgerEntry]:
        return [state.ledger for _, state in sorted(self._months.items()) if state.ledger is not None]

    # ------------------------------------------------------------------
    # jobs
    # ------------------------------------------------------------------
    def register_job(self, job: JobRecord) -> None:
        self._jobs[job.job_id] = job
        self._ensure_month(job.month).jobs.append(job)

    def update_job_status(self, job_id: str, status: str, *, error: str | None = None, detail: dict | None = None) -> None:
        job = self._jobs.get(job_id)
        if job is None:
            return
        job.status = status
        job.error = error
        if detail is not None:
            job.detail = detail

    def get_job(self, job_id: str) -> JobRecord | None:
        return self._jobs.get(job_id)

    def list_jobs(self, month: str | None = None) -> list[JobRecord]:
        jobs = list(self._jobs.values())
        if month is not None:
            jobs = [job for job in jobs if job.month == month]
        return jobs

    def next_job_id(self) -> str:
        self._job_counter += 1
        return f"job-{self._job_counter:05d}"

    def reset(self) -> None:
        self._employees.clear()
        self._months.clear()
        self._jobs.clear()
        self._job_counter = 0
