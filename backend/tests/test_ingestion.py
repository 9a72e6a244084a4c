from __future__ import annotations

import re

import pytest

from app.errors import ConfigurationError, InvalidRequest, UpstreamProtocolError, UpstreamUnavailable
from app.models.jobs import JobStatus
from app.services.ingestion import IngestionService, generate_call_id
from app.services.polling import PollingScheduler

from conftest import FakeGateway, FakeScheduler, completed, jane_doe_candidate


def _service(store, persistence, gateway=None, scheduler=None):
    return IngestionService(
        store=store,
        scheduler=scheduler or FakeScheduler(),
        gateway=gateway or FakeGateway(),
        persistence=persistence,
        result_limit=30,
    )


def test_generate_call_id_format_and_uniqueness():
    ids = {generate_call_id("vapi") for _ in range(200)}

    assert len(ids) == 200
    assert all(re.fullmatch(r"vapi-\d{13}-[0-9a-f]{8}", call_id) for call_id in ids)


@pytest.mark.asyncio
@pytest.mark.parametrize("query", [None, "", "   "])
async def test_empty_query_rejected_without_upstream_call(store, persistence, query):
    gateway = FakeGateway()
    service = _service(store, persistence, gateway=gateway)

    with pytest.raises(InvalidRequest):
        await service.start_search(query)

    assert gateway.submitted == []
    assert len(store) == 0


@pytest.mark.asyncio
async def test_missing_credential_is_configuration_error(store, persistence):
    gateway = FakeGateway(configured=False)
    service = _service(store, persistence, gateway=gateway)

    with pytest.raises(ConfigurationError):
        await service.start_search("fintech CFOs")

    assert gateway.submitted == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error",
    [
        UpstreamUnavailable("HTTP 500", status_code=500, details="boom"),
        UpstreamProtocolError("No search ID returned from Clado"),
    ],
)
async def test_submit_failure_propagates(store, persistence, error):
    gateway = FakeGateway()
    gateway.submit_error = error
    scheduler = FakeScheduler()
    service = _service(store, persistence, gateway=gateway, scheduler=scheduler)

    with pytest.raises(type(error)):
        await service.start_search("fintech CFOs")

    assert scheduler.started == []
    assert len(store) == 0


@pytest.mark.asyncio
async def test_successful_submit_seeds_job_and_starts_polling(store, persistence):
    gateway = FakeGateway(job_id="abc123")
    scheduler = FakeScheduler()
    service = _service(store, persistence, gateway=gateway, scheduler=scheduler)

    job = await service.start_search(
        "  fintech CFOs ",
        call_id="call-1",
        submitter_name="Dana",
        project_id="project-1",
    )

    assert gateway.submitted == [("fintech CFOs", 30)]
    assert job.call_id == "call-1"
    assert job.external_job_id == "abc123"
    assert job.query == "fintech CFOs"
    assert job.submitter_name == "Dana"
    assert job.status is JobStatus.SUBMITTED
    assert store.get_active("call-1") is job
    assert scheduler.settled == ["call-1"]
    assert scheduler.started == [job]
    assert persistence.project_updates == [
        {
            "project_id": "project-1",
            "status": "submitted",
            "polling_count": 0,
            "expert_query": "fintech CFOs",
        }
    ]


@pytest.mark.asyncio
async def test_generated_call_id_uses_source_prefix(store, persistence):
    service = _service(store, persistence)

    job = await service.start_search("fintech CFOs", source="vapi")

    assert job.call_id.startswith("vapi-")
    assert persistence.project_updates == []


@pytest.mark.asyncio
async def test_returns_before_job_finishes(store, persistence):
    gateway = FakeGateway(
        [
            completed([jane_doe_candidate()]),
        ]
    )
    scheduler = PollingScheduler(
        store=store,
        gateway=gateway,
        persistence=persistence,
        interval_seconds=0,
        max_attempts=3,
    )
    service = _service(store, persistence, gateway=gateway, scheduler=scheduler)

    job = await service.start_search("fintech CFOs", call_id="call-1", project_id="project-1")

    assert job.status is JobStatus.SUBMITTED
    assert gateway.status_calls == []
    assert scheduler.is_active("call-1")

    await scheduler.join("call-1")
    assert job.status is JobStatus.COMPLETED
    assert len(persistence.inserted) == 1
