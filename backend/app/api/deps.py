from __future__ import annotations

from app.config import settings
from app.services import supabase as db
from app.services.ingestion import IngestionService
from app.services.job_store import JobStore
from app.services.polling import PollingScheduler
from app.tools.clado_search import get_gateway

# Process-wide search state, created lazily and shared by every request.
_store: JobStore | None = None
_scheduler: PollingScheduler | None = None
_ingestion: IngestionService | None = None


def get_job_store() -> JobStore:
    global _store
    if _store is None:
        _store = JobStore(completed_retention=settings.completed_job_retention)
    return _store


def get_scheduler() -> PollingScheduler:
    global _scheduler
    if _scheduler is None:
        _scheduler = PollingScheduler(
            store=get_job_store(),
            gateway=get_gateway(),
            persistence=db,
            interval_seconds=settings.clado_poll_interval_seconds,
            max_attempts=settings.clado_max_poll_attempts,
        )
    return _scheduler


def get_ingestion_service() -> IngestionService:
    global _ingestion
    if _ingestion is None:
        _ingestion = IngestionService(
            store=get_job_store(),
            scheduler=get_scheduler(),
            gateway=get_gateway(),
            persistence=db,
            result_limit=settings.clado_result_limit,
        )
    return _ingestion


async def shutdown_polling() -> None:
    """Cancel every running poller; called from the app lifespan."""
    if _scheduler is not None:
        await _scheduler.shutdown()
