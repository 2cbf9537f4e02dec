from __future__ import annotations

import sys
from decimal import Decimal
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from payroll_engine.core.attendance import normalize_records
from payroll_engine.core.matching import (
    REASON_AMBIGUOUS,
    REASON_DUPLICATE_ID,
    REASON_FALLBACK,
    REASON_LEGACY,
    REASON_MANUAL,
    REASON_NO_CANDIDATE,
    REASON_NO_EXTERNAL_ID,
    reconcile,
)
from payroll_engine.core.quarantine import QuarantineBlockedError, QuarantineQueue, UnknownQuarantineEntry
from payroll_engine.core.schema import Employee
from payroll_engine.infrastructure.quarantine_store import JsonQuarantineStore


def _employee(employee_id: str, name: str, external_id: str = "", **extra) -> Employee:
    return Employee(
        id=employee_id,
        name=name,
        external_id=external_id,
        basic_pay=Decimal("200000"),
        avg_monthly_hours=Decimal("160"),
        standard_monthly=Decimal("200000"),
        **extra,
    )


def _record(number, name, overtime="1:00", date="2025-04-01"):
    return {
        "user_id": f"u-{number}",
        "number": number,
        "full_name": name,
        "date": date,
        "segment_title": "出勤",
        "actual_working_hours": "8:00",
        "excess_of_statutory_working_hours": overtime,
    }


@pytest.fixture()
def roster():
    return [
        _employee("E001", "佐藤 花子", "1001"),
        _employee("E002", "鈴木 一郎", "ＡＢ 12"),
        _employee("E003", "田中 太郎"),
        _employee("E004", "山田 次郎"),
        _employee("E005", "山田 次郎"),
    ]


def test_exact_match_is_case_and_width_insensitive(roster):
    normalized = normalize_records([_record("1001", "佐藤 花子"), _record("ab12", "鈴木 一郎")], "2025-04")

    outcome = reconcile(normalized, roster, QuarantineQueue())

    assert {result.match_type for result in outcome.results} == {"exact"}
    assert set(outcome.matched) == {"E001", "E002"}
    assert outcome.quarantined == []


def test_name_only_match_is_held_for_confirmation(roster):
    queue = QuarantineQueue()
    normalized = normalize_records([_record("3003", "田中　太郎")], "2025-04")

    outcome = reconcile(normalized, roster, queue)

    result = outcome.results[0]
    assert result.match_type == "fallback"
    assert result.employee_id == "E003"
    assert result.reason == REASON_FALLBACK
    assert outcome.matched == {}
    assert outcome.quarantined == ["2025-04:3003"]

    entry = queue.get("2025-04:3003")
    assert entry.status == "assigned"
    assert entry.assigned_employee_id == "E003"
    assert entry.suggested_employee_id == "E003"
    assert queue.is_blocking("2025-04")


def test_number_matching_internal_id_is_applied(roster):
    outcome = reconcile(normalize_records([_record("E003", "別名")], "2025-04"), roster, QuarantineQueue())

    result = outcome.results[0]
    assert result.match_type == "legacy"
    assert result.reason == REASON_LEGACY
    assert "E003" in outcome.matched


def test_unmatched_reasons(roster):
    normalized = normalize_records(
        [
            _record("4004", "山田 次郎"),
            _record("5005", "高橋 三郎"),
            _record("6006", ""),
        ],
        "2025-04",
    )
    queue = QuarantineQueue()

    outcome = reconcile(normalized, roster, queue)

    reasons = {result.external_id: result.reason for result in outcome.results}
    assert reasons == {"4004": REASON_AMBIGUOUS, "5005": REASON_NO_CANDIDATE, "6006": REASON_NO_EXTERNAL_ID}
    assert len(queue) == 3
    assert queue.is_blocking("2025-04")
    assert not queue.is_blocking("2025-05")


def test_duplicate_external_id_on_roster_is_unmatched():
    roster = [_employee("E001", "A", "77"), _employee("E002", "B", "77", status="separated")]
    normalized = normalize_records([_record("77", "A")], "2025-04")

    outcome = reconcile(normalized, roster, QuarantineQueue())

    assert outcome.results[0].match_type == "unmatched"
    assert outcome.results[0].reason == REASON_DUPLICATE_ID


def test_gate_refuses_until_entries_resolved(roster):
    queue = QuarantineQueue()
    reconcile(normalize_records([_record("5005", "高橋 三郎")], "2025-04"), roster, queue)

    with pytest.raises(QuarantineBlockedError) as excinfo:
        queue.ensure_clear("2025-04")
    assert excinfo.value.pending == ["2025-04:5005"]

    # an assignment whose attendance has not been applied still blocks
    queue.assign("2025-04:5005", "E004")
    with pytest.raises(QuarantineBlockedError):
        queue.ensure_clear("2025-04")

    resolved = queue.resolve("2025-04:5005")
    queue.ensure_clear("2025-04")
    assert resolved.status == "resolved"
    assert queue.open_entries("2025-04") == []
    assert queue.resolved("2025-04") == [resolved]


def test_resolved_mapping_is_reapplied_on_unchanged_resync(roster):
    queue = QuarantineQueue()
    records = [_record("5005", "高橋 三郎", overtime="10:00")]
    reconcile(normalize_records(records, "2025-04"), roster, queue)
    queue.assign("2025-04:5005", "E004")
    queue.resolve("2025-04:5005")

    outcome = reconcile(normalize_records(records, "2025-04"), roster, queue)

    assert outcome.results[0].match_type == "manual"
    assert outcome.results[0].reason == REASON_MANUAL
    assert outcome.reapplied == ["2025-04:5005"]
    assert outcome.matched["E004"].statutory_overtime_minutes == Decimal("600")
    assert outcome.quarantined == []
    assert queue.get("2025-04:5005").status == "resolved"
    queue.ensure_clear("2025-04")


def test_resolved_mapping_reopens_when_record_changes(roster):
    queue = QuarantineQueue()
    reconcile(normalize_records([_record("5005", "高橋 三郎")], "2025-04"), roster, queue)
    queue.assign("2025-04:5005", "E004")
    queue.resolve("2025-04:5005")

    outcome = reconcile(normalize_records([_record("5005", "高橋 三郎", overtime="3:00")], "2025-04"), roster, queue)

    assert outcome.matched == {}
    entry = queue.get("2025-04:5005")
    assert entry.status == "pending"
    assert entry.assigned_employee_id is None


def test_assignment_survives_unchanged_resync(roster):
    queue = QuarantineQueue()
    records = [_record("5005", "高橋 三郎")]
    reconcile(normalize_records(records, "2025-04"), roster, queue)
    queue.assign("2025-04:5005", "E004")

    reconcile(normalize_records(records, "2025-04"), roster, queue)

    entry = queue.get("2025-04:5005")
    assert entry.status == "assigned"
    assert entry.assigned_employee_id == "E004"


def test_changed_record_reverts_to_pending(roster):
    queue = QuarantineQueue()
    reconcile(normalize_records([_record("5005", "高橋 三郎")], "2025-04"), roster, queue)
    queue.assign("2025-04:5005", "E004")

    reconcile(normalize_records([_record("5005", "高橋 三郎", overtime="2:00")], "2025-04"), roster, queue)

    entry = queue.get("2025-04:5005")
    assert entry.status == "pending"
    assert entry.assigned_employee_id is None


def test_resync_clears_entries_no_longer_unmatched(roster):
    queue = QuarantineQueue()
    reconcile(normalize_records([_record("5005", "高橋 三郎")], "2025-04"), roster, queue)
    roster.append(_employee("E006", "高橋 三郎", "5005"))

    outcome = reconcile(normalize_records([_record("5005", "高橋 三郎")], "2025-04"), roster, queue)

    assert len(queue) == 0
    assert "E006" in outcome.matched


def test_two_records_claiming_one_employee_are_quarantined(roster):
    normalized = normalize_records([_record("1001", "佐藤 花子"), _record("9009", "佐藤 花子")], "2025-04")
    queue = QuarantineQueue()

    outcome = reconcile(normalized, roster, queue)

    assert outcome.matched == {}
    assert len(queue) == 2


def test_unknown_entry_raises():
    with pytest.raises(UnknownQuarantineEntry):
        QuarantineQueue().assign("2025-04:missing", "E001")


def test_json_store_round_trips_state(tmp_path, roster):
    store = JsonQuarantineStore(tmp_path / "quarantine.json")
    queue = store.load()
    reconcile(normalize_records([_record("5005", "高橋 三郎")], "2025-04"), roster, queue)
    queue.assign("2025-04:5005", "E004")
    store.save(queue)

    restored = JsonQuarantineStore(tmp_path / "quarantine.json").load()

    entry = restored.get("2025-04:5005")
    assert entry.status == "assigned"
    assert entry.aggregate["statutory_overtime_minutes"] == "60"
    assert entry.raw_records[0]["number"] == "5005"
