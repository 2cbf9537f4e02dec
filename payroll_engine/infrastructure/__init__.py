"""Infrastructure layer exports."""

from .quarantine_store import InMemoryQuarantineStore, JsonQuarantineStore, QuarantineStore
from .repositories import InMemoryPayrollRepository, PayrollRepository, SnapshotWriteError
from .source import (
    StaticSource,
    TimekeepingSource,
    configure_timekeeping_source,
    get_timekeeping_source,
)
from .timekeeping import (
    TimekeepingAuthError,
    TimekeepingClient,
    TimekeepingError,
    TimekeepingFetchError,
)

__all__ = [
    "InMemoryPayrollRepository",
    "InMemoryQuarantineStore",
    "JsonQuarantineStore",
    "PayrollRepository",
    "QuarantineStore",
    "SnapshotWriteError",
    "StaticSource",
    "TimekeepingAuthError",
    "TimekeepingClient",
    "TimekeepingError",
    "TimekeepingFetchError",
    "TimekeepingSource",
    "configure_timekeeping_source",
    "get_timekeeping_source",
]
