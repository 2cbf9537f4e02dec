from __future__ import annotations

import sys
from decimal import Decimal
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from payroll_engine.core.attendance import normalize_records, parse_minutes, time_to_minutes
from payroll_engine.core.schema import AttendanceAggregate


def _record(number, date, segment="出勤", **times):
    record = {
        "user_id": f"u-{number}",
        "number": number,
        "full_name": f"社員 {number}",
        "date": date,
        "segment_title": segment,
        "actual_working_hours": "8:00",
    }
    record.update(times)
    return record


@pytest.mark.parametrize(
    "value, expected",
    [
        ("8:30", Decimal("510")),
        ("0:45", Decimal("45")),
        ("12:05", Decimal("725")),
        ("0", Decimal("0")),
        ("0:00", Decimal("0")),
        ("00:00", Decimal("0")),
        ("", Decimal("0")),
        (None, Decimal("0")),
        (90, Decimal("90")),
        ("30", Decimal("30")),
    ],
)
def test_time_to_minutes(value, expected):
    assert time_to_minutes(value) == expected


@pytest.mark.parametrize("value", ["abc", "-1:00", "-15", "1:xx", float("nan"), "Infinity", True])
def test_malformed_times_coerce_to_zero(value):
    minutes, coerced = parse_minutes(value)
    assert minutes == Decimal("0")
    assert coerced is True


def test_aggregates_minutes_and_day_counters():
    records = [
        _record("1001", "2025-04-01", excess_of_statutory_working_hours="1:30", late_night_overtime_working_hours="0:30"),
        _record("1001", "2025-04-02", hours_in_statutory_working_hours="0:45"),
        _record(
            "1001",
            "2025-04-05",
            segment="休日出勤",
            excess_of_statutory_working_hours_in_holidays="1:00",
            hours_in_statutory_working_hours_in_holidays="7:00",
        ),
        _record("1001", "2025-04-08", segment="欠勤", actual_working_hours="0:00"),
        _record("1001", "2025-04-09", segment="有給休暇", actual_working_hours=""),
        _record("1001", "2025-04-10", segment="公休", actual_working_hours="0"),
    ]

    result = normalize_records(records, "2025-04")

    entry = result.employees["1001"]
    assert entry.work_days == 2
    assert entry.absence_days == 1
    assert entry.paid_leave_days == 1
    assert entry.work_minutes == Decimal("1440")
    assert entry.statutory_overtime_minutes == Decimal("150")
    assert entry.non_statutory_overtime_minutes == Decimal("45")
    assert entry.late_night_minutes == Decimal("30")
    assert entry.holiday_minutes == Decimal("420")
    assert len(entry.records) == 6


def test_holiday_minutes_require_holiday_segment_and_work():
    records = [
        _record("2001", "2025-04-03", hours_in_statutory_working_hours_in_holidays="3:00"),
        _record(
            "2001",
            "2025-04-06",
            segment="祝日",
            actual_working_hours="0:00",
            hours_in_statutory_working_hours_in_holidays="3:00",
        ),
    ]

    entry = normalize_records(records, "2025-04").employees["2001"]

    assert entry.holiday_minutes == Decimal("0")


def test_blank_employee_number_is_dropped_into_side_channel():
    records = [
        _record("1001", "2025-04-01", excess_of_statutory_working_hours="1:00"),
        _record("", "2025-04-01", excess_of_statutory_working_hours="5:00"),
        _record("   ", "2025-04-02"),
        {**_record("1002", "2025-04-01"), "number": None},
    ]

    result = normalize_records(records, "2025-04")

    assert list(result.employees) == ["1001"]
    assert result.employees["1001"].statutory_overtime_minutes == Decimal("60")
    assert len(result.dropped) == 3
    assert result.record_count == 4


def test_coercions_are_audited():
    records = [_record("1001", "2025-04-01", excess_of_statutory_working_hours="??")]

    result = normalize_records(records, "2025-04")

    coercion = result.employees["1001"].coercions[0]
    assert coercion.field == "excess_of_statutory_working_hours"
    assert coercion.raw == "??"
    assert coercion.date == "2025-04-01"
    assert result.coercion_count == 1


def test_to_aggregate_converts_hours_and_keeps_manual_fields():
    records = [
        _record("1001", "2025-04-01", excess_of_statutory_working_hours="1:20"),
        _record("1001", "2025-04-02", excess_of_statutory_working_hours="0:05"),
    ]
    entry = normalize_records(records, "2025-04").employees["1001"]
    previous = AttendanceAggregate(
        scheduled_days=Decimal("21"),
        scheduled_hours=Decimal("168"),
        other_allowance=Decimal("5000"),
        statutory_overtime_hours=Decimal("99"),
    )

    aggregate = entry.to_aggregate(previous=previous, synced_at="2025-05-01T00:00:00+00:00")

    assert aggregate.statutory_overtime_hours == Decimal("1.4")
    assert aggregate.work_hours == Decimal("16.0")
    assert aggregate.work_days == Decimal("2")
    assert aggregate.scheduled_days == Decimal("21")
    assert aggregate.scheduled_hours == Decimal("168")
    assert aggregate.other_allowance == Decimal("5000")
    assert aggregate.source == "timekeeping"
