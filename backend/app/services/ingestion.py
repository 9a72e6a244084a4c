"""Entry point for new searches: submit upstream, register the job, start polling."""
from __future__ import annotations

import secrets
import time

from app.errors import ConfigurationError, InvalidRequest, PersistenceError
from app.models.jobs import JobStatus, SearchJob
from app.services.job_store import JobStore
from app.services.logger import log_search_step
from app.services.polling import PersistenceGateway, PollingScheduler
from app.tools.clado_search import SearchGateway


def generate_call_id(prefix: str = "search") -> str:
    """Process-unique call id: source prefix, epoch milliseconds, random suffix."""
    return f"{prefix}-{int(time.time() * 1000)}-{secrets.token_hex(4)}"


class IngestionService:
    def __init__(
        self,
        *,
        store: JobStore,
        scheduler: PollingScheduler,
        gateway: SearchGateway,
        persistence: PersistenceGateway,
        result_limit: int = 30,
    ):
        self.store = store
        self.scheduler = scheduler
        self.gateway = gateway
        self.persistence = persistence
        self.result_limit = result_limit

    async def start_search(
        self,
        query: str | None,
        *,
        call_id: str | None = None,
        submitter_name: str | None = None,
        project_id: str | None = None,
        source: str = "search",
    ) -> SearchJob:
        """Submit ``query`` and return the seeded job without waiting for results.

        Input, configuration and submit failures raise immediately. Anything that
        happens after submission is only visible through the job store and the
        project's status columns.
        """
        query = (query or "").strip()
        if not query:
            raise InvalidRequest("search_query is required")
        if not self.gateway.configured:
            raise ConfigurationError("Clado API key not configured")

        call_id = (call_id or "").strip() or generate_call_id(source)
        log_search_step(
            call_id,
            "submit",
            "running",
            {"query": query[:200], "project_id": project_id, "submitter": submitter_name},
        )
        external_job_id = await self.gateway.submit(query, limit=self.result_limit)
        # A previous job under this call id may still be writing its results.
        await self.scheduler.settle(call_id)

        job = SearchJob(
            call_id=call_id,
            external_job_id=external_job_id,
            query=query,
            submitter_name=submitter_name,
            target_collection_id=project_id,
        )
        self.store.seed(job)
        log_search_step(call_id, "submit", "completed", {"search_id": external_job_id})
        if project_id:
            await self._record_project_query(job)
        self.scheduler.start(job)
        return job

    async def _record_project_query(self, job: SearchJob) -> None:
        try:
            await self.persistence.update_project_search_state(
                job.target_collection_id,
                status=JobStatus.SUBMITTED.project_status,
                polling_count=0,
                expert_query=job.query,
            )
        except (PersistenceError, ConfigurationError) as e:
            log_search_step(
                job.call_id,
                "project_status",
                "error",
                {"project_id": job.target_collection_id, "error": str(e)},
            )
