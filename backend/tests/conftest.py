from __future__ import annotations

from typing import Any

import pytest

from app.models.jobs import ExpertRecord, SearchJob
from app.services.job_store import JobStore
from app.tools.clado_search import StatusResult


class FakeGateway:
    """Scripted stand-in for the deep research API.

    ``responses`` are consumed one per status call; the last one repeats.
    Exceptions in the script are raised instead of returned.
    """

    def __init__(self, responses: list[Any] | None = None, *, job_id: str = "abc123", configured: bool = True):
        self.responses = list(responses or [StatusResult(status="processing")])
        self.job_id = job_id
        self.configured = configured
        self.submitted: list[tuple[str, int | None]] = []
        self.status_calls: list[str] = []
        self.submit_error: Exception | None = None

    async def submit(self, query: str, limit: int | None = None) -> str:
        self.submitted.append((query, limit))
        if self.submit_error is not None:
            raise self.submit_error
        return self.job_id

    async def get_status(self, job_id: str) -> StatusResult:
        self.status_calls.append(job_id)
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(item, Exception):
            raise item
        return item


class FakePersistence:
    def __init__(self, insert_error: Exception | None = None):
        self.insert_error = insert_error
        self.inserted: list[list[ExpertRecord]] = []
        self.project_updates: list[dict[str, Any]] = []

    async def insert_experts(self, records: list[ExpertRecord]) -> int:
        if self.insert_error is not None:
            raise self.insert_error
        self.inserted.append(list(records))
        return len(records)

    async def update_project_search_state(
        self,
        project_id: str,
        *,
        status: str,
        polling_count: int | None = None,
        expert_query: str | None = None,
    ) -> None:
        self.project_updates.append(
            {
                "project_id": project_id,
                "status": status,
                "polling_count": polling_count,
                "expert_query": expert_query,
            }
        )


class FakeScheduler:
    def __init__(self):
        self.started: list[SearchJob] = []
        self.settled: list[str] = []

    def start(self, job: SearchJob) -> None:
        self.started.append(job)

    async def settle(self, call_id: str) -> None:
        self.settled.append(call_id)


def completed(results: list[Any] | None = None) -> StatusResult:
    payload = {"status": "completed", "results": results if results is not None else []}
    return StatusResult(status="completed", payload=payload)


def jane_doe_candidate() -> dict[str, Any]:
    return {
        "profile": {
            "name": "Jane Doe",
            "linkedin_url": "https://li/jane",
            "headline": "CFO",
            "summary": "...",
            "criteria": {"fit": {"reasoning": "Strong match"}},
        }
    }


@pytest.fixture
def store() -> JobStore:
    return JobStore(completed_retention=10)


@pytest.fixture
def persistence() -> FakePersistence:
    return FakePersistence()


@pytest.fixture
def make_job():
    def _make(call_id: str = "call-1", **overrides: Any) -> SearchJob:
        fields: dict[str, Any] = {
            "call_id": call_id,
            "external_job_id": "abc123",
            "query": "fintech CFOs",
            "target_collection_id": "project-1",
        }
        fields.update(overrides)
        return SearchJob(**fields)

    return _make
