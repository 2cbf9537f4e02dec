from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, HTTPException, Query

from payroll_engine.application import get_payroll_service
from payroll_engine.routes.errors import DOMAIN_ERRORS, http_error
from payroll_engine.workers.sync import SyncRequest, get_sync_worker

router = APIRouter(tags=["attendance"])


@router.post("/months/{month}/sync")
async def sync_attendance(month: str) -> dict:
    worker = get_sync_worker()
    try:
        job = await worker.enqueue(SyncRequest(month=month))
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc
    return {"job_id": job.job_id, "status": job.status, "sync": job.outcome.to_dict()}


@router.get("/months/{month}/attendance")
async def get_attendance(month: str) -> dict:
    service = get_payroll_service()
    try:
        attendance = service.get_attendance(month)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc
    return {
        "month": month,
        "items": {employee_id: item.model_dump(mode="json") for employee_id, item in attendance.items()},
    }


@router.put("/months/{month}/attendance/{employee_id}")
async def update_attendance(month: str, employee_id: str, payload: dict) -> dict:
    if not payload:
        raise HTTPException(status_code=400, detail="no attendance fields provided")
    service = get_payroll_service()
    try:
        aggregate = service.update_attendance(month, employee_id, payload)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc
    return aggregate.model_dump(mode="json")


@router.get("/jobs")
async def list_jobs(month: str | None = Query(default=None)) -> dict:
    service = get_payroll_service()
    return {"items": [asdict(job) for job in service.list_jobs(month)]}


@router.get("/jobs/{job_id}")
async def get_job(job_id: str) -> dict:
    service = get_payroll_service()
    job = service.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="job not found")
    return asdict(job)
