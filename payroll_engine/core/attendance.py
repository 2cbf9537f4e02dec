"""Normalize daily timekeeping segments into monthly attendance aggregates."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Mapping

from payroll_engine.core.logging import get_logger
from payroll_engine.core.name_normalize import normalize_external_id
from payroll_engine.core.rounding import minutes_to_hours
from payroll_engine.core.schema import ZERO, AttendanceAggregate, ExternalTimeRecord

logger = get_logger(__name__)

HOLIDAY_SEGMENT_KEYWORDS = ("休日", "祝日", "公休", "振替休日", "休業")
HOLIDAY_WORK_KEYWORDS = ("休日", "祝日")
ABSENCE_KEYWORD = "欠勤"
PAID_LEAVE_KEYWORD = "有給"

ZERO_TIME_STRINGS = {"", "0", "0:00", "00:00"}
CLOCK_PATTERN = re.compile(r"^(\d+):(\d{1,2})$")

# Carried over from a previously stored aggregate when re-normalizing.
PRESERVED_FIELDS = (
    "scheduled_days",
    "scheduled_hours",
    "basic_pay_adjustment",
    "overtime_adjustment",
    "other_allowance",
)


@dataclass
class Coercion:
    """A raw time value that could not be read and was counted as zero."""

    field: str
    raw: Any
    date: str | None = None


def parse_minutes(value: Any) -> tuple[Decimal, bool]:
    """Return ``(minutes, coerced)`` for a raw time value."""

    if value is None or isinstance(value, bool):
        return ZERO, isinstance(value, bool)
    if isinstance(value, (int, float, Decimal)):
        if isinstance(value, float) and not math.isfinite(value):
            return ZERO, True
        minutes = Decimal(str(value))
        if not minutes.is_finite() or minutes < 0:
            return ZERO, True
        return minutes, False

    text = str(value).strip()
    if text in ZERO_TIME_STRINGS:
        return ZERO, False

    match = CLOCK_PATTERN.match(text)
    if match:
        hours, minutes = int(match.group(1)), int(match.group(2))
        return Decimal(hours * 60 + minutes), False

    try:
        minutes = Decimal(text)
    except InvalidOperation:
        return ZERO, True
    if not minutes.is_finite() or minutes < 0:
        return ZERO, True
    return minutes, False


def time_to_minutes(value: Any) -> Decimal:
    return parse_minutes(value)[0]


def _contains_any(text: str, keywords: Iterable[str]) -> bool:
    return any(keyword in text for keyword in keywords)


@dataclass
class NormalizedAttendance:
    external_id: str
    name: str = ""
    work_days: int = 0
    absence_days: int = 0
    paid_leave_days: int = 0
    work_minutes: Decimal = ZERO
    statutory_overtime_minutes: Decimal = ZERO
    non_statutory_overtime_minutes: Decimal = ZERO
    late_night_minutes: Decimal = ZERO
    holiday_minutes: Decimal = ZERO
    records: list[dict] = field(default_factory=list)
    coercions: list[Coercion] = field(default_factory=list)

    def _minutes(self, record: ExternalTimeRecord, name: str) -> Decimal:
        raw = getattr(record, name)
        minutes, coerced = parse_minutes(raw)
        if coerced:
            self.coercions.append(Coercion(field=name, raw=raw, date=record.date))
        return minutes

    def add(self, record: ExternalTimeRecord) -> None:
        segment = str(record.segment_title or "")
        worked = self._minutes(record, "actual_working_hours")

        if worked > 0 and not _contains_any(segment, HOLIDAY_SEGMENT_KEYWORDS):
            self.work_days += 1
        self.work_minutes += worked

        self.statutory_overtime_minutes += self._minutes(record, "excess_of_statutory_working_hours")
        self.statutory_overtime_minutes += self._minutes(record, "excess_of_statutory_working_hours_in_holidays")
        self.non_statutory_overtime_minutes += self._minutes(record, "hours_in_statutory_working_hours")
        self.late_night_minutes += self._minutes(record, "late_night_overtime_working_hours")

        holiday = self._minutes(record, "hours_in_statutory_working_hours_in_holidays")
        if worked > 0 and _contains_any(segment, HOLIDAY_WORK_KEYWORDS):
            self.holiday_minutes += holiday

        if ABSENCE_KEYWORD in segment:
            self.absence_days += 1
        if PAID_LEAVE_KEYWORD in segment:
            self.paid_leave_days += 1

        if not self.name:
            self.name = record.display_name
        self.records.append(record.model_dump(mode="json"))

    def payload(self) -> dict:
        """Stable view of the totals, used for fingerprints and quarantine storage."""

        return {
            "external_id": self.external_id,
            "name": self.name,
            "work_days": self.work_days,
            "absence_days": self.absence_days,
            "paid_leave_days": self.paid_leave_days,
            "work_minutes": str(self.work_minutes),
            "statutory_overtime_minutes": str(self.statutory_overtime_minutes),
            "non_statutory_overtime_minutes": str(self.non_statutory_overtime_minutes),
            "late_night_minutes": str(self.late_night_minutes),
            "holiday_minutes": str(self.holiday_minutes),
        }

    def to_aggregate(
        self,
        previous: AttendanceAggregate | None = None,
        synced_at: str | None = None,
    ) -> AttendanceAggregate:
        preserved: dict[str, Any] = {}
        if previous is not None:
            preserved = {name: getattr(previous, name) for name in PRESERVED_FIELDS}
        return AttendanceAggregate(
            work_days=Decimal(self.work_days),
            work_hours=minutes_to_hours(self.work_minutes),
            statutory_overtime_hours=minutes_to_hours(self.statutory_overtime_minutes),
            non_statutory_overtime_hours=minutes_to_hours(self.non_statutory_overtime_minutes),
            late_night_hours=minutes_to_hours(self.late_night_minutes),
            holiday_hours=minutes_to_hours(self.holiday_minutes),
            absence_days=Decimal(self.absence_days),
            paid_leave_days=Decimal(self.paid_leave_days),
            source="timekeeping",
            synced_at=synced_at,
            **preserved,
        )


def aggregate_from_payload(
    payload: Mapping[str, Any],
    previous: AttendanceAggregate | None = None,
    synced_at: str | None = None,
    source: str = "quarantine",
) -> AttendanceAggregate:
    """Rebuild an aggregate from :meth:`NormalizedAttendance.payload` output."""

    normalized = NormalizedAttendance(
        external_id=str(payload.get("external_id", "")),
        name=str(payload.get("name", "")),
        work_days=int(payload.get("work_days", 0)),
        absence_days=int(payload.get("absence_days", 0)),
        paid_leave_days=int(payload.get("paid_leave_days", 0)),
        work_minutes=Decimal(str(payload.get("work_minutes", "0"))),
        statutory_overtime_minutes=Decimal(str(payload.get("statutory_overtime_minutes", "0"))),
        non_statutory_overtime_minutes=Decimal(str(payload.get("non_statutory_overtime_minutes", "0"))),
        late_night_minutes=Decimal(str(payload.get("late_night_minutes", "0"))),
        holiday_minutes=Decimal(str(payload.get("holiday_minutes", "0"))),
    )
    aggregate = normalized.to_aggregate(previous=previous, synced_at=synced_at)
    return aggregate.model_copy(update={"source": source})


@dataclass
class NormalizationResult:
    month: str
    employees: dict[str, NormalizedAttendance] = field(default_factory=dict)
    dropped: list[dict] = field(default_factory=list)
    record_count: int = 0

    @property
    def coercion_count(self) -> int:
        return sum(len(item.coercions) for item in self.employees.values())


def normalize_records(records: Iterable[ExternalTimeRecord | Mapping[str, Any]], month: str) -> NormalizationResult:
    """Group daily segments by employee number and total them.

    Records without an employee number are kept in ``dropped`` rather than
    aggregated.
    """

    result = NormalizationResult(month=month)
    for raw in records:
        record = raw if isinstance(raw, ExternalTimeRecord) else ExternalTimeRecord.model_validate(dict(raw))
        result.record_count += 1

        key = normalize_external_id(record.employee_number)
        if not key:
            result.dropped.append(record.model_dump(mode="json"))
            continue

        entry = result.employees.get(key)
        if entry is None:
            entry = NormalizedAttendance(external_id=record.employee_number)
            result.employees[key] = entry
        entry.add(record)

    if result.dropped:
        logger.warning(
            "attendance.records_dropped",
            month=month,
            dropped=len(result.dropped),
            reason="blank employee number",
        )
    if result.coercion_count:
        logger.info("attendance.values_coerced", month=month, coercions=result.coercion_count)
    logger.info(
        "attendance.normalized",
        month=month,
        records=result.record_count,
        employees=len(result.employees),
    )
    return result
