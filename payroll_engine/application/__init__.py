"""Application services."""

from .payroll import (
    MonthLockedError,
    MonthNotComputedError,
    PayrollService,
    RunOutcome,
    SyncOutcome,
    UnknownEmployeeError,
    configure_payroll_service,
    get_payroll_service,
    reset_payroll_state,
)

__all__ = [
    "MonthLockedError",
    "MonthNotComputedError",
    "PayrollService",
    "RunOutcome",
    "SyncOutcome",
    "UnknownEmployeeError",
    "configure_payroll_service",
    "get_payroll_service",
    "reset_payroll_state",
]
