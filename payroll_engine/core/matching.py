"""Reconcile normalized timekeeping attendance against the employee roster."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

from payroll_engine.core.attendance import NormalizationResult, NormalizedAttendance
from payroll_engine.core.hashing import sha256_payload
from payroll_engine.core.logging import get_logger
from payroll_engine.core.name_normalize import normalize, normalize_external_id
from payroll_engine.core.quarantine import QuarantineQueue, record_key
from payroll_engine.core.schema import Employee, MatchResult

logger = get_logger(__name__)

REASON_EXACT = "external id match"
REASON_LEGACY = "internal employee id match (legacy)"
REASON_MANUAL = "previous manual assignment"
REASON_FALLBACK = "name match only; confirm manually"
REASON_DUPLICATE_ID = "duplicate external id on file"
REASON_NO_EXTERNAL_ID = "no external id on file"
REASON_AMBIGUOUS = "ambiguous name match"
REASON_NO_CANDIDATE = "no candidate"

# Match types applied to attendance without operator review.
APPLIED_TYPES = frozenset({"exact", "legacy", "manual"})


def match_record(month: str, attendance: NormalizedAttendance, roster: Sequence[Employee]) -> MatchResult:
    """Classify one aggregate.

    External id first, then the record's number taken as an internal employee
    id, then a unique active employee with the same normalized name. A record
    with no name and no id hit has nothing left to match on.
    """

    external_id = normalize_external_id(attendance.external_id)
    base = {
        "record_key": record_key(month, attendance.external_id),
        "external_id": attendance.external_id,
        "external_name": attendance.name,
    }

    id_hits = [employee for employee in roster if normalize_external_id(employee.external_id) == external_id]
    if len(id_hits) == 1:
        return MatchResult(**base, match_type="exact", employee_id=id_hits[0].id, reason=REASON_EXACT)
    if len(id_hits) > 1:
        return MatchResult(**base, match_type="unmatched", reason=REASON_DUPLICATE_ID)

    direct_id = str(attendance.external_id or "").strip()
    if direct_id and any(employee.id == direct_id for employee in roster):
        return MatchResult(**base, match_type="legacy", employee_id=direct_id, reason=REASON_LEGACY)

    name = normalize(attendance.name) if attendance.name else ""
    if not name:
        return MatchResult(**base, match_type="unmatched", reason=REASON_NO_EXTERNAL_ID)

    candidates = [employee for employee in roster if employee.active and normalize(employee.name) == name]
    if len(candidates) == 1:
        return MatchResult(**base, match_type="fallback", employee_id=candidates[0].id, reason=REASON_FALLBACK)
    if candidates:
        return MatchResult(**base, match_type="unmatched", reason=REASON_AMBIGUOUS)
    return MatchResult(**base, match_type="unmatched", reason=REASON_NO_CANDIDATE)


@dataclass
class ReconcileOutcome:
    month: str
    results: list[MatchResult] = field(default_factory=list)
    # employee id -> normalized attendance
    matched: dict[str, NormalizedAttendance] = field(default_factory=dict)
    quarantined: list[str] = field(default_factory=list)

    @property
    def fallback_count(self) -> int:
        return sum(1 for result in self.results if result.match_type == "fallback")

    @property
    def reapplied(self) -> list[str]:
        return [result.record_key for result in self.results if result.match_type == "manual"]


def reconcile(
    normalized: NormalizationResult,
    roster: Sequence[Employee],
    queue: QuarantineQueue,
) -> ReconcileOutcome:
    """Match every aggregate and route the rest into ``queue``.

    Exact and legacy id matches are applied. A record whose resolved entry is
    unchanged goes back to the employee it was assigned to. Name-only matches
    are quarantined as ``assigned`` to the candidate, awaiting confirmation.
    Two aggregates resolving to the same employee both go to quarantine, and
    open entries of the month that no longer need review are dropped.
    """

    month = normalized.month
    outcome = ReconcileOutcome(month=month)
    roster_ids = {employee.id for employee in roster}
    payloads: dict[str, dict] = {}
    fingerprints: dict[str, str] = {}
    claims: dict[str, list[MatchResult]] = {}

    for key in sorted(normalized.employees):
        attendance = normalized.employees[key]
        payloads[key] = attendance.payload()
        fingerprints[key] = sha256_payload(payloads[key])

        result = match_record(month, attendance, roster)
        if result.match_type not in APPLIED_TYPES:
            previous = queue.resolved_assignment(result.record_key, fingerprints[key])
            if previous in roster_ids:
                result.match_type = "manual"
                result.employee_id = previous
                result.reason = REASON_MANUAL
        outcome.results.append(result)
        if result.employee_id is not None:
            claims.setdefault(result.employee_id, []).append(result)

    for employee_id, results in claims.items():
        if len(results) > 1:
            for result in results:
                result.match_type = "unmatched"
                result.employee_id = None
                result.reason = f"{REASON_DUPLICATE_ID} ({employee_id} claimed by several records)"

    for result in outcome.results:
        key = normalize_external_id(result.external_id)
        attendance = normalized.employees[key]
        if result.match_type in APPLIED_TYPES:
            outcome.matched[result.employee_id] = attendance
            continue
        if result.match_type == "fallback":
            logger.info(
                "matching.fallback_suggested",
                month=month,
                external_id=result.external_id,
                employee_id=result.employee_id,
            )
        queue.upsert(
            month=month,
            external_id=result.external_id,
            external_name=result.external_name,
            reason=result.reason,
            aggregate=payloads[key],
            raw_records=attendance.records,
            fingerprint=fingerprints[key],
            suggested_employee_id=result.employee_id if result.match_type == "fallback" else None,
        )
        outcome.quarantined.append(result.record_key)

    queue.sync_month(month, [*outcome.quarantined, *outcome.reapplied])
    logger.info(
        "matching.reconciled",
        month=month,
        matched=len(outcome.matched),
        reapplied=len(outcome.reapplied),
        fallback=outcome.fallback_count,
        quarantined=len(outcome.quarantined),
    )
    return outcome
