"""Attendance source hooks.

The service pulls a month of daily records through whatever source is
installed here. Application start-up installs a :class:`TimekeepingClient`
when credentials are configured; tests install an in-memory source.
"""
from __future__ import annotations

from typing import Any, Protocol

from .timekeeping import TimekeepingError


class TimekeepingSource(Protocol):
    """Contract for attendance sources."""

    def fetch_month(self, month: str) -> list[dict[str, Any]]:
        """Return every daily record of ``month``."""


class UnconfiguredSource:
    """Placeholder used when no timekeeping integration is configured."""

    def fetch_month(self, month: str) -> list[dict[str, Any]]:
        raise TimekeepingError("timekeeping integration not configured")


class StaticSource:
    """Serves pre-loaded records, keyed by month."""

    def __init__(self, records: dict[str, list[dict[str, Any]]] | None = None) -> None:
        self._records = dict(records or {})

    def put(self, month: str, records: list[dict[str, Any]]) -> None:
        self._records[month] = list(records)

    def fetch_month(self, month: str) -> list[dict[str, Any]]:
        return list(self._records.get(month, []))


_source: TimekeepingSource = UnconfiguredSource()


def configure_timekeeping_source(source: TimekeepingSource) -> None:
    """Install the source used by attendance sync."""

    global _source
    _source = source


def get_timekeeping_source() -> TimekeepingSource:
    """Return the currently configured source."""

    return _source
