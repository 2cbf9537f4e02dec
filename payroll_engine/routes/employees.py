from __future__ import annotations

from fastapi import APIRouter, HTTPException

from payroll_engine.application import get_payroll_service
from payroll_engine.core.validation import collect_setup_issues
from payroll_engine.routes.errors import DOMAIN_ERRORS, http_error

router = APIRouter(prefix="/employees", tags=["employees"])


@router.get("")
async def list_employees(status: str | None = None) -> dict:
    service = get_payroll_service()
    employees = service.list_employees()
    if status:
        employees = [employee for employee in employees if employee.status == status]
    return {"items": [employee.model_dump(mode="json") for employee in employees]}


@router.post("")
async def upsert_employee(payload: dict) -> dict:
    if not payload.get("id"):
        raise HTTPException(status_code=400, detail="id is required")
    service = get_payroll_service()
    try:
        employee = service.upsert_employee(payload)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc
    return employee.model_dump(mode="json")


@router.get("/{employee_id}")
async def get_employee(employee_id: str) -> dict:
    service = get_payroll_service()
    try:
        employee = service.get_employee(employee_id)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc
    data = employee.model_dump(mode="json")
    data["setup_issues"] = collect_setup_issues(employee, service.list_employees())
    return data


@router.post("/{employee_id}/separate")
async def separate_employee(employee_id: str, payload: dict | None = None) -> dict:
    service = get_payroll_service()
    try:
        employee = service.separate_employee(employee_id, (payload or {}).get("leave_date"))
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc
    return employee.model_dump(mode="json")


@router.post("/{employee_id}/year-end/{year}")
async def year_end_adjustment(employee_id: str, year: int, payload: dict | None = None) -> dict:
    service = get_payroll_service()
    try:
        result = service.year_end_adjustment(employee_id, year, (payload or {}).get("deductions"))
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc
    return result.model_dump(mode="json")
