from __future__ import annotations

from fastapi import APIRouter, Depends

from app.api.deps import get_job_store
from app.services.job_store import JobStore

router = APIRouter(prefix="/api/results", tags=["results"])


@router.get("")
async def latest_results(store: JobStore = Depends(get_job_store)):
    """Raw payload of the most recently completed search, query included."""
    job = store.latest_completed()
    if job is None or job.result is None:
        return {"message": "no results yet", "results": None}
    return job.result
