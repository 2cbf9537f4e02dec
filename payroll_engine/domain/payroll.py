"""Domain entities for monthly payroll processing."""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from payroll_engine.core.schema import AttendanceAggregate, PayrollResult


@dataclass(slots=True)
class JobRecord:
    """Represents a background attendance sync bound to a month."""

    job_id: str
    month: str
    status: str = "queued"
    error: str | None = None
    detail: dict[str, Any] = field(default_factory=dict)
    created_at: str | None = None
    finished_at: str | None = None


@dataclass(slots=True)
class MonthLedgerEntry:
    """Computation status and totals of one payroll month."""

    month: str
    status: str = "uncomputed"
    gross_total: Decimal = Decimal("0")
    net_total: Decimal = Decimal("0")
    deduction_total: Decimal = Decimal("0")
    computed_at: str | None = None
    confirmed_at: str | None = None
    confirmed_by: str | None = None

    @property
    def confirmed(self) -> bool:
        return self.status == "confirmed"


@dataclass(slots=True)
class MonthState:
    """Aggregated state for a single payroll month in memory."""

    month: str
    attendance: dict[str, AttendanceAggregate] = field(default_factory=dict)
    results: list[PayrollResult] = field(default_factory=list)
    ledger: MonthLedgerEntry | None = None
    jobs: list[JobRecord] = field(default_factory=list)
