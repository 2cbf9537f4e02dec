from __future__ import annotations

import asyncio
from dataclasses import dataclass

from payroll_engine.application import SyncOutcome, get_payroll_service
from payroll_engine.core.logging import get_logger
from payroll_engine.core.periods import normalise_period_month
from payroll_engine.infrastructure import TimekeepingError, TimekeepingSource

logger = get_logger(__name__)


@dataclass
class SyncRequest:
    month: str
    source: TimekeepingSource | None = None


@dataclass
class SyncJob:
    job_id: str
    status: str
    outcome: SyncOutcome | None = None


class SyncWorker:
    """Runs attendance syncs one at a time, off the event loop."""

    def __init__(self) -> None:
        self._lock = asyncio.Lock()

    async def enqueue(self, payload: SyncRequest) -> SyncJob:
        month = normalise_period_month(payload.month)
        async with self._lock:
            service = get_payroll_service()
            job_id = service.next_job_id()
            service.register_job(job_id, month)
            service.update_job_status(job_id, "processing")
            try:
                outcome = await asyncio.to_thread(service.sync_month, month, payload.source)
            except TimekeepingError as exc:
                service.update_job_status(job_id, "failed", error=exc.message, detail=exc.to_dict())
                logger.error("sync.failed", job_id=job_id, month=month, **exc.to_dict())
                raise
            except Exception as exc:
                service.update_job_status(job_id, "failed", error=str(exc))
                raise
            else:
                service.update_job_status(
                    job_id,
                    "completed",
                    detail={
                        "records": outcome.records,
                        "updated": len(outcome.updated),
                        "quarantined": len(outcome.quarantined),
                        "dropped": len(outcome.dropped),
                    },
                )
            return SyncJob(job_id=job_id, status="completed", outcome=outcome)


_worker: SyncWorker | None = None


def get_sync_worker() -> SyncWorker:
    global _worker
    if _worker is None:
        _worker = SyncWorker()
    return _worker
