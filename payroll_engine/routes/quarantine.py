from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query

from payroll_engine.application import get_payroll_service
from payroll_engine.routes.errors import DOMAIN_ERRORS, http_error

router = APIRouter(prefix="/quarantine", tags=["quarantine"])


@router.get("")
async def list_quarantine(
    month: str | None = Query(default=None),
    include_resolved: bool = Query(default=False),
) -> dict:
    service = get_payroll_service()
    try:
        entries = service.list_quarantine(month, include_resolved=include_resolved)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc
    return {
        "month": month,
        "pending": sum(1 for entry in entries if entry.status == "pending"),
        "assigned": sum(1 for entry in entries if entry.status == "assigned"),
        "items": [entry.model_dump(mode="json") for entry in entries],
    }


@router.post("/assign")
async def assign_entry(payload: dict) -> dict:
    record_key = payload.get("record_key")
    employee_id = payload.get("employee_id")
    if not record_key or not employee_id:
        raise HTTPException(status_code=400, detail="record_key and employee_id are required")
    service = get_payroll_service()
    try:
        entry = service.assign_quarantine(record_key, employee_id, apply=bool(payload.get("apply", True)))
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc
    return entry.model_dump(mode="json")


@router.post("/unassign")
async def unassign_entry(payload: dict) -> dict:
    record_key = payload.get("record_key")
    if not record_key:
        raise HTTPException(status_code=400, detail="record_key is required")
    service = get_payroll_service()
    try:
        entry = service.unassign_quarantine(record_key)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc
    return entry.model_dump(mode="json")


@router.post("/apply")
async def apply_assignments(payload: dict | None = None) -> dict:
    service = get_payroll_service()
    try:
        applied = service.apply_assignments((payload or {}).get("month"))
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc
    return {"items": [entry.model_dump(mode="json") for entry in applied]}
