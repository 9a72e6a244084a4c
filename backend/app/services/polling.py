"""Polling of deep research jobs until they finish, fail, or run out of attempts.

``SearchPoller`` is the per-job state machine; each ``tick()`` performs exactly
one status check. ``PollingScheduler`` owns one asyncio task per call id that
sleeps the fixed interval and ticks its poller until a terminal state.
"""
from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from functools import partial
from typing import Any, Coroutine, Protocol

import httpx

from app.errors import (
    ConfigurationError,
    ExpertSearchError,
    PersistenceError,
    PollBudgetExhausted,
    UpstreamJobFailed,
    UpstreamUnavailable,
)
from app.models.jobs import ExpertRecord, JobStatus, SearchJob, UpstreamStatus
from app.services.job_store import JobStore
from app.services.logger import log_search_step
from app.services.projector import project_experts
from app.tools.clado_search import SearchGateway, StatusResult


class PersistenceGateway(Protocol):
    async def insert_experts(self, records: list[ExpertRecord]) -> int: ...

    async def update_project_search_state(
        self,
        project_id: str,
        *,
        status: str,
        polling_count: int | None = None,
        expert_query: str | None = None,
    ) -> None: ...


class SearchPoller:
    def __init__(
        self,
        job: SearchJob,
        *,
        store: JobStore,
        gateway: SearchGateway,
        persistence: PersistenceGateway,
        max_attempts: int = 20,
    ):
        self.job = job
        self.store = store
        self.gateway = gateway
        self.persistence = persistence
        self.max_attempts = max(1, max_attempts)
        self._busy = False
        self._terminal: asyncio.Task | None = None

    @property
    def busy(self) -> bool:
        return self._busy

    @property
    def finishing(self) -> asyncio.Task | None:
        """Terminal handling still in progress, if any."""
        if self._terminal is None or self._terminal.done():
            return None
        return self._terminal

    async def tick(self) -> JobStatus:
        """Run one poll step and return the job status afterwards."""
        if self.job.status.is_terminal:
            return self.job.status
        if self._busy:
            log_search_step(
                self.job.call_id,
                "poll_skipped",
                "busy",
                {"attempt": self.job.poll_attempt},
            )
            return self.job.status

        self._busy = True
        try:
            return await self._poll_once()
        finally:
            self._busy = False

    async def _poll_once(self) -> JobStatus:
        job = self.job
        job.poll_attempt += 1
        attempt = job.poll_attempt
        job.status = JobStatus.POLLING
        log_search_step(
            job.call_id,
            "poll",
            "running",
            {
                "search_id": job.external_job_id,
                "attempt": attempt,
                "max_attempts": self.max_attempts,
            },
        )
        await self._sync_project(JobStatus.POLLING, polling_count=attempt)

        status = await self._fetch_status()

        # Another submission for this call id may have replaced the job while awaiting.
        if not self.store.is_current(job):
            return self._supersede()

        if status is not None:
            outcome = status.outcome
            if outcome is UpstreamStatus.SUCCEEDED:
                await self._finish(self._complete(status))
                return job.status
            if outcome is UpstreamStatus.FAILED:
                await self._finish(
                    self._fail(
                        JobStatus.FAILED,
                        UpstreamJobFailed(
                            f"Search {job.external_job_id} reported status '{status.status}'"
                        ),
                    )
                )
                return job.status

        if attempt >= self.max_attempts:
            await self._finish(
                self._fail(
                    JobStatus.ABORTED,
                    PollBudgetExhausted(
                        f"Search {job.external_job_id} did not finish within {self.max_attempts} polls"
                    ),
                )
            )
        return job.status

    async def _fetch_status(self) -> StatusResult | None:
        job = self.job
        try:
            status = await self.gateway.get_status(job.external_job_id)
        except UpstreamUnavailable as e:
            log_search_step(
                job.call_id,
                "poll",
                "error",
                {
                    "attempt": job.poll_attempt,
                    "status_code": e.status_code,
                    "error": str(e),
                    "details": e.details[:500],
                },
            )
            return None
        except (ExpertSearchError, httpx.HTTPError) as e:
            log_search_step(
                job.call_id,
                "poll",
                "error",
                {"attempt": job.poll_attempt, "error": repr(e)},
            )
            return None

        log_search_step(
            job.call_id,
            "poll",
            "received",
            {"attempt": job.poll_attempt, "upstream_status": status.status},
        )
        return status

    async def _finish(self, handler: Coroutine[Any, Any, None]) -> None:
        # Once started, terminal handling runs to the end even if the polling task is cancelled.
        self._terminal = asyncio.create_task(handler, name=f"finish-{self.job.call_id}")
        await asyncio.shield(self._terminal)

    async def _complete(self, status: StatusResult) -> None:
        job = self.job
        payload = status.payload
        job.result = {"query": job.query, **payload}
        job.completed_at = datetime.now(timezone.utc)

        records: list[ExpertRecord] = []
        if job.target_collection_id:
            records = project_experts(payload, job.target_collection_id, job.query)

        if records:
            try:
                job.inserted_count = await self.persistence.insert_experts(records)
            except (PersistenceError, ConfigurationError) as e:
                # The search itself succeeded; the job stays completed and carries the error.
                job.error = str(e)
                job.inserted_count = 0
                log_search_step(
                    job.call_id,
                    "persist_experts",
                    "failed",
                    {"project_id": job.target_collection_id, "error": str(e)},
                )
        else:
            job.inserted_count = 0

        self.store.mark_completed(job)
        await self._sync_project(JobStatus.COMPLETED, polling_count=job.poll_attempt)
        log_search_step(
            job.call_id,
            "search_completed",
            "completed",
            {
                "search_id": job.external_job_id,
                "attempts": job.poll_attempt,
                "candidates": len(payload.get("results") or [])
                if isinstance(payload.get("results"), list)
                else 0,
                "inserted": job.inserted_count,
                "project_id": job.target_collection_id,
            },
        )

    async def _fail(self, status: JobStatus, error: ExpertSearchError) -> None:
        job = self.job
        job.status = status
        job.error = str(error)
        job.completed_at = datetime.now(timezone.utc)
        if self.store.is_current(job):
            self.store.remove(job.call_id)

        step_type = (
            "poll_budget_exhausted" if isinstance(error, PollBudgetExhausted) else "upstream_job_failed"
        )
        log_search_step(
            job.call_id,
            step_type,
            "failed",
            {
                "search_id": job.external_job_id,
                "attempts": job.poll_attempt,
                "error": job.error,
            },
        )
        await self._sync_project(status, polling_count=job.poll_attempt)

    def _supersede(self) -> JobStatus:
        self.job.status = JobStatus.SUPERSEDED
        log_search_step(
            self.job.call_id,
            "poll",
            "superseded",
            {"search_id": self.job.external_job_id, "attempt": self.job.poll_attempt},
        )
        return self.job.status

    async def _sync_project(self, status: JobStatus, *, polling_count: int | None = None) -> None:
        project_id = self.job.target_collection_id
        if not project_id:
            return
        try:
            await self.persistence.update_project_search_state(
                project_id,
                status=status.project_status,
                polling_count=polling_count,
            )
        except (PersistenceError, ConfigurationError) as e:
            log_search_step(
                self.job.call_id,
                "project_status",
                "error",
                {"project_id": project_id, "status": status.project_status, "error": str(e)},
            )


class PollingScheduler:
    """Runs at most one polling task per call id."""

    def __init__(
        self,
        *,
        store: JobStore,
        gateway: SearchGateway,
        persistence: PersistenceGateway,
        interval_seconds: float = 30.0,
        max_attempts: int = 20,
    ):
        self.store = store
        self.gateway = gateway
        self.persistence = persistence
        self.interval_seconds = interval_seconds
        self.max_attempts = max_attempts
        self._tasks: dict[str, asyncio.Task] = {}
        self._pollers: dict[str, SearchPoller] = {}
        # Terminal handling left running by a cancelled poller.
        self._finishing: dict[str, asyncio.Task] = {}

    def start(self, job: SearchJob) -> SearchPoller:
        """Start polling ``job``, cancelling any poller already running for its call id."""
        if self.cancel(job.call_id):
            log_search_step(job.call_id, "poller_replaced", "cancelled")

        poller = SearchPoller(
            job,
            store=self.store,
            gateway=self.gateway,
            persistence=self.persistence,
            max_attempts=self.max_attempts,
        )
        task = asyncio.create_task(self._run(poller), name=f"poll-{job.call_id}")
        self._tasks[job.call_id] = task
        self._pollers[job.call_id] = poller
        task.add_done_callback(partial(self._forget, job.call_id))
        log_search_step(
            job.call_id,
            "poller_started",
            "running",
            {"search_id": job.external_job_id, "interval_seconds": self.interval_seconds},
        )
        return poller

    def cancel(self, call_id: str) -> bool:
        """Cancel the poller for ``call_id``. Returns False when nothing was running."""
        task = self._tasks.pop(call_id, None)
        poller = self._pollers.pop(call_id, None)
        if poller is not None and poller.finishing is not None:
            finishing = poller.finishing
            self._finishing[call_id] = finishing
            finishing.add_done_callback(partial(self._forget_finishing, call_id))
        if task is None or task.done():
            return False
        task.cancel()
        return True

    def is_active(self, call_id: str) -> bool:
        task = self._tasks.get(call_id)
        return task is not None and not task.done()

    def active_call_ids(self) -> list[str]:
        return [call_id for call_id, task in self._tasks.items() if not task.done()]

    def get_poller(self, call_id: str) -> SearchPoller | None:
        return self._pollers.get(call_id)

    async def join(self, call_id: str) -> None:
        """Wait for the poller of ``call_id`` to stop, whether it finished or was cancelled."""
        task = self._tasks.get(call_id)
        if task is None:
            return
        await asyncio.gather(task, return_exceptions=True)

    async def settle(self, call_id: str) -> None:
        """Wait until no terminal handling is in progress for ``call_id``."""
        poller = self._pollers.get(call_id)
        finishing = poller.finishing if poller is not None else None
        finishing = finishing or self._finishing.get(call_id)
        if finishing is None:
            return
        log_search_step(call_id, "settle", "waiting")
        await asyncio.gather(finishing, return_exceptions=True)

    async def shutdown(self) -> None:
        tasks = list(self._tasks.values())
        for call_id in list(self._tasks):
            self.cancel(call_id)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        finishing = list(self._finishing.values())
        if finishing:
            await asyncio.gather(*finishing, return_exceptions=True)

    def _forget(self, call_id: str, task: asyncio.Task) -> None:
        if self._tasks.get(call_id) is task:
            del self._tasks[call_id]
            self._pollers.pop(call_id, None)

    def _forget_finishing(self, call_id: str, task: asyncio.Task) -> None:
        if self._finishing.get(call_id) is task:
            del self._finishing[call_id]

    async def _run(self, poller: SearchPoller) -> None:
        call_id = poller.job.call_id
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                status = await poller.tick()
            except Exception as e:
                log_search_step(call_id, "poller_crashed", "error", {"error": repr(e)})
                return
            if status.is_terminal:
                log_search_step(call_id, "poller_stopped", status.value)
                return
