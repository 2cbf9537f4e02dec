from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Iterable

from payroll_engine.core.logging import get_logger
from payroll_engine.core.name_normalize import normalize_external_id
from payroll_engine.core.schema import QuarantineEntry

logger = get_logger(__name__)


class QuarantineBlockedError(RuntimeError):
    """Raised when automatic computation is attempted with open entries."""

    def __init__(self, month: str, pending: list[str]) -> None:
        super().__init__(f"{len(pending)} unmatched attendance record(s) unresolved for {month}")
        self.month = month
        self.pending = pending


class UnknownQuarantineEntry(KeyError):
    """Raised when a record key is not in the queue."""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def record_key(month: str, external_id: Any) -> str:
    return f"{month}:{normalize_external_id(external_id)}"


class QuarantineQueue:
    """Unmatched attendance awaiting a manual employee assignment.

    Entries move ``pending`` -> ``assigned`` -> ``resolved``. Pending and
    assigned entries block automatic computation; an assignment only counts
    once its attendance has been applied and the entry resolved. Resolved
    entries stay in the queue with their fingerprint so an unchanged record
    is routed to the same employee on the next sync.
    """

    def __init__(self, entries: Iterable[QuarantineEntry] = ()) -> None:
        self._entries: dict[str, QuarantineEntry] = {entry.record_key: entry for entry in entries}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def get(self, key: str) -> QuarantineEntry:
        try:
            return self._entries[key]
        except KeyError as exc:
            raise UnknownQuarantineEntry(key) from exc

    def entries(self, month: str | None = None) -> list[QuarantineEntry]:
        items = self._entries.values()
        if month is not None:
            items = [entry for entry in items if entry.month == month]
        return sorted(items, key=lambda entry: entry.record_key)

    def assigned(self, month: str | None = None) -> list[QuarantineEntry]:
        return [entry for entry in self.entries(month) if entry.status == "assigned"]

    def resolved(self, month: str | None = None) -> list[QuarantineEntry]:
        return [entry for entry in self.entries(month) if entry.status == "resolved"]

    def open_entries(self, month: str | None = None) -> list[QuarantineEntry]:
        return [entry for entry in self.entries(month) if entry.status != "resolved"]

    def is_blocking(self, month: str) -> bool:
        return bool(self.open_entries(month))

    def ensure_clear(self, month: str) -> None:
        blocking = self.open_entries(month)
        if blocking:
            raise QuarantineBlockedError(month, [entry.record_key for entry in blocking])

    def resolved_assignment(self, key: str, fingerprint: str) -> str | None:
        """Employee a resolved entry was mapped to, if the record is unchanged."""

        entry = self._entries.get(key)
        if entry is None or entry.status != "resolved" or entry.fingerprint != fingerprint:
            return None
        return entry.assigned_employee_id

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    def upsert(
        self,
        *,
        month: str,
        external_id: str,
        external_name: str,
        reason: str,
        aggregate: dict,
        raw_records: list[dict],
        fingerprint: str,
        suggested_employee_id: str | None = None,
    ) -> QuarantineEntry:
        """Insert or refresh the entry for ``external_id``.

        An unchanged open entry keeps its status and assignment. A new or
        changed record starts ``pending``, or ``assigned`` to
        ``suggested_employee_id`` when a candidate is known.
        """

        key = record_key(month, external_id)
        now = _now()
        existing = self._entries.get(key)
        if existing is not None and existing.fingerprint == fingerprint and existing.status != "resolved":
            entry = existing.model_copy(update={"reason": reason, "updated_at": now})
        else:
            if existing is not None:
                logger.info("quarantine.entry_changed", record_key=key, previous_status=existing.status)
            entry = QuarantineEntry(
                status="assigned" if suggested_employee_id else "pending",
                assigned_employee_id=suggested_employee_id,
                suggested_employee_id=suggested_employee_id,
                record_key=key,
                month=month,
                external_id=external_id,
                external_name=external_name,
                reason=reason,
                aggregate=aggregate,
                raw_records=raw_records,
                fingerprint=fingerprint,
                created_at=existing.created_at if existing is not None else now,
                updated_at=now,
            )
        self._entries[key] = entry
        return entry

    def sync_month(self, month: str, keep: Iterable[str]) -> list[str]:
        """Drop entries of ``month`` whose keys are no longer unmatched."""

        keep_keys = set(keep)
        removed = [
            key for key, entry in self._entries.items() if entry.month == month and key not in keep_keys
        ]
        for key in removed:
            del self._entries[key]
        if removed:
            logger.info("quarantine.entries_cleared", month=month, removed=len(removed))
        return removed

    def assign(self, key: str, employee_id: str) -> QuarantineEntry:
        entry = self.get(key)
        if entry.status == "resolved":
            raise ValueError(f"quarantine entry {key} is already resolved")
        updated = entry.model_copy(
            update={"status": "assigned", "assigned_employee_id": employee_id, "updated_at": _now()}
        )
        self._entries[key] = updated
        logger.info("quarantine.assigned", record_key=key, employee_id=employee_id)
        return updated

    def unassign(self, key: str) -> QuarantineEntry:
        entry = self.get(key)
        updated = entry.model_copy(update={"status": "pending", "assigned_employee_id": None, "updated_at": _now()})
        self._entries[key] = updated
        return updated

    def resolve(self, key: str) -> QuarantineEntry:
        entry = self.get(key)
        if entry.status != "assigned":
            raise ValueError(f"quarantine entry {key} has no assignment to resolve")
        updated = entry.model_copy(update={"status": "resolved", "updated_at": _now()})
        self._entries[key] = updated
        logger.info("quarantine.resolved", record_key=key, employee_id=entry.assigned_employee_id)
        return updated

    # ------------------------------------------------------------------
    # Serialisation
    # ------------------------------------------------------------------
    def to_dict(self) -> dict:
        return {"entries": [entry.model_dump(mode="json") for entry in self.entries()]}

    @classmethod
    def from_dict(cls, payload: dict | None) -> "QuarantineQueue":
        rows = (payload or {}).get("entries", [])
        return cls(QuarantineEntry.model_validate(row) for row in rows)
