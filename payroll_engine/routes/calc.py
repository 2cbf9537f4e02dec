from __future__ import annotations

from decimal import Decimal, InvalidOperation

from fastapi import APIRouter, HTTPException
from fastapi.responses import FileResponse

from payroll_engine.application import get_payroll_service
from payroll_engine.core.export_dirs import ensure_month_root
from payroll_engine.core.periods import normalise_period_month
from payroll_engine.domain import MonthLedgerEntry
from payroll_engine.exporters.bank_payroll_csv import export_bank_payroll
from payroll_engine.exporters.withholding_ledger_csv import export_payroll_register, export_withholding_ledger
from payroll_engine.routes.errors import DOMAIN_ERRORS, http_error

router = APIRouter(prefix="/months", tags=["calculation"])

EXPORT_KINDS = {"bank", "withholding", "register"}


def _ledger_dict(entry: MonthLedgerEntry) -> dict:
    return {
        "month": entry.month,
        "status": entry.status,
        "gross_total": str(entry.gross_total),
        "net_total": str(entry.net_total),
        "deduction_total": str(entry.deduction_total),
        "computed_at": entry.computed_at,
        "confirmed_at": entry.confirmed_at,
        "confirmed_by": entry.confirmed_by,
    }


def _decimal(value: object, field: str) -> Decimal:
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise HTTPException(status_code=400, detail=f"{field} must be a number") from exc


@router.get("")
async def list_months() -> dict:
    service = get_payroll_service()
    return {"items": [_ledger_dict(entry) for entry in service.list_ledger()]}


@router.post("/{month}/calc")
async def trigger_calculation(month: str) -> dict:
    service = get_payroll_service()
    try:
        outcome = service.run_month(month)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc
    return outcome.to_dict()


@router.get("/{month}/results")
async def get_results(month: str) -> dict:
    service = get_payroll_service()
    try:
        rows = service.get_results(month)
        ledger = service.get_ledger(month)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc
    return {
        "month": ledger.month,
        "ledger": _ledger_dict(ledger),
        "items": [row.model_dump(mode="json") for row in rows],
    }


@router.post("/{month}/confirm")
async def confirm_month(month: str, payload: dict | None = None) -> dict:
    service = get_payroll_service()
    try:
        ledger = service.confirm_month(month, (payload or {}).get("confirmed_by"))
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc
    return _ledger_dict(ledger)


@router.post("/{month}/unlock")
async def unlock_month(month: str) -> dict:
    service = get_payroll_service()
    try:
        ledger = service.unlock_month(month)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc
    return _ledger_dict(ledger)


@router.get("/{month}/checks")
async def monthly_checks(month: str) -> dict:
    service = get_payroll_service()
    try:
        checks = service.monthly_checks(month)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc
    return checks.to_dict()


@router.get("/{month}/insights")
async def monthly_insights(month: str) -> dict:
    service = get_payroll_service()
    try:
        insights = service.insights(month)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc
    return {"items": [insight.to_dict() for insight in insights]}


@router.post("/{month}/regrade")
async def regrade(month: str, payload: dict | None = None) -> dict:
    payload = payload or {}
    window = int(payload.get("window", 3))
    if window < 1:
        raise HTTPException(status_code=400, detail="window must be at least 1")
    service = get_payroll_service()
    try:
        outcomes = service.regrade(month, window=window, apply=bool(payload.get("apply", True)))
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc
    return {
        "items": [
            {
                "employee_id": outcome.employee_id,
                "months_used": outcome.months_used,
                "average": None if outcome.average is None else str(outcome.average),
                "previous": str(outcome.previous),
                "standard_monthly": str(outcome.new_standard_monthly),
                "grade": outcome.grade,
                "changed": outcome.changed,
            }
            for outcome in outcomes
        ]
    }


@router.post("/{month}/bonus")
async def calculate_bonus(month: str, payload: dict) -> dict:
    employee_id = payload.get("employee_id")
    if not employee_id or payload.get("amount") is None:
        raise HTTPException(status_code=400, detail="employee_id and amount are required")
    amount = _decimal(payload["amount"], "amount")
    previous_gross = payload.get("previous_gross")
    if previous_gross is not None:
        previous_gross = _decimal(previous_gross, "previous_gross")
    service = get_payroll_service()
    try:
        result = service.bonus(employee_id, amount, month, previous_gross)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc
    return result.model_dump(mode="json")


@router.get("/{month}/export/{kind}")
async def export_month(month: str, kind: str) -> FileResponse:
    if kind not in EXPORT_KINDS:
        raise HTTPException(status_code=400, detail=f"kind must be one of {', '.join(sorted(EXPORT_KINDS))}")
    service = get_payroll_service()
    try:
        month = normalise_period_month(month)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc
    rows = service.get_results(month)
    if not rows:
        raise HTTPException(status_code=404, detail="no results for month")

    target = ensure_month_root(month) / f"{kind}_{month}.csv"
    if kind == "bank":
        export_bank_payroll(target, rows, service.list_employees())
    elif kind == "withholding":
        export_withholding_ledger(target, rows)
    else:
        export_payroll_register(target, rows)
    return FileResponse(target, media_type="text/csv", filename=target.name)
