from __future__ import annotations

from fastapi import HTTPException
from pydantic import ValidationError as PydanticValidationError

from payroll_engine.application import MonthLockedError, MonthNotComputedError, UnknownEmployeeError
from payroll_engine.core.periods import InvalidMonthError
from payroll_engine.core.quarantine import QuarantineBlockedError, UnknownQuarantineEntry
from payroll_engine.core.validation import ValidationError
from payroll_engine.infrastructure import TimekeepingError

DOMAIN_ERRORS = (
    ValidationError,
    PydanticValidationError,
    InvalidMonthError,
    UnknownEmployeeError,
    UnknownQuarantineEntry,
    QuarantineBlockedError,
    MonthLockedError,
    MonthNotComputedError,
    TimekeepingError,
    FileNotFoundError,
    LookupError,
    ValueError,
)


def http_error(exc: Exception) -> HTTPException:
    """Translate a domain exception into the matching HTTP response."""

    if isinstance(exc, ValidationError):
        return HTTPException(status_code=400, detail={"field": exc.field, "reason": exc.reason})
    if isinstance(exc, PydanticValidationError):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, UnknownEmployeeError):
        return HTTPException(status_code=404, detail=f"employee not found: {exc.args[0]}")
    if isinstance(exc, UnknownQuarantineEntry):
        return HTTPException(status_code=404, detail=f"quarantine entry not found: {exc.args[0]}")
    if isinstance(exc, QuarantineBlockedError):
        return HTTPException(status_code=409, detail={"message": str(exc), "pending": exc.pending})
    if isinstance(exc, (MonthLockedError, MonthNotComputedError)):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, TimekeepingError):
        return HTTPException(status_code=502, detail=exc.to_dict())
    return HTTPException(status_code=400, detail=str(exc))
