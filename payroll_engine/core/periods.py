"""Helpers for ``YYYY-MM`` payroll month keys."""

from __future__ import annotations

import re
from typing import Any

MONTH_PATTERN = r"^\d{4}-(0[1-9]|1[0-2])$"


class InvalidMonthError(ValueError):
    """Raised when a value cannot be read as a payroll month."""


def normalise_period_month(value: Any) -> str:
    """Return ``YYYY-MM`` for values such as ``2025-4``, ``2025/04`` or ``2025年4月``."""

    raw = str(value or "").strip()
    if re.fullmatch(MONTH_PATTERN, raw):
        return raw

    match = re.fullmatch(r"(\d{4})\s*[-/.年]\s*(\d{1,2})\s*月?", raw)
    if not match:
        raise InvalidMonthError(f"not a payroll month: {raw!r}")

    year, month = int(match.group(1)), int(match.group(2))
    if not 1 <= month <= 12:
        raise InvalidMonthError(f"month out of range: {raw!r}")
    return f"{year:04d}-{month:02d}"


def shift_month(month: str, delta: int) -> str:
    year, number = (int(part) for part in month.split("-"))
    index = year * 12 + (number - 1) + delta
    return f"{index // 12:04d}-{index % 12 + 1:02d}"


def previous_month(month: str) -> str:
    return shift_month(month, -1)


def month_window(end_month: str, length: int = 3) -> list[str]:
    """The ``length`` months ending at ``end_month``, oldest first."""

    return [shift_month(end_month, offset) for offset in range(-(length - 1), 1)]
