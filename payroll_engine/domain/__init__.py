"""Domain layer definitions."""

from .payroll import JobRecord, MonthLedgerEntry, MonthState

__all__ = [
    "JobRecord",
    "MonthLedgerEntry",
    "MonthState",
]
