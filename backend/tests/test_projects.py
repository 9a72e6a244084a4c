"""Tests for transcript analysis and project creation."""
from __future__ import annotations

import re
from unittest.mock import AsyncMock, patch

import pytest

from app import llm_client
from app.errors import AnalysisError, PersistenceError
from app.llm_client import ToolCallResult
from app.services import projects
from app.services import supabase as db
from app.services.ingestion import IngestionService

from conftest import FakeGateway, FakePersistence, FakeScheduler

QUESTIONS = [f"Question {i}?" for i in range(1, 11)]


def _analysis(**overrides):
    arguments = {
        "project_title": "EV Battery Supply Chain 2025",
        "project_description": "Understand cathode sourcing risk.",
        "questions": QUESTIONS,
        "expert_search_query": "battery procurement leaders at EV OEMs",
    }
    arguments.update(overrides)
    return ToolCallResult(name="create_project_analysis", arguments=arguments)


def _ingestion(store, gateway=None, scheduler=None):
    return IngestionService(
        store=store,
        scheduler=scheduler or FakeScheduler(),
        gateway=gateway or FakeGateway(),
        persistence=FakePersistence(),
    )


def _stored_project(data):
    return {"id": "p1", **data}


@pytest.mark.parametrize(
    "name, slug",
    [
        ("EV Battery Supply Chain 2025", "ev-battery-supply-chain-2025"),
        ("  Hello,   World!  ", "hello-world"),
        ("a -- b", "a-b"),
        ("---", ""),
    ],
)
def test_generate_slug(name, slug):
    assert projects.generate_slug(name) == slug


def test_generate_test_project_name():
    assert re.fullmatch(r"test-\d+", projects.generate_test_project_name())


@pytest.mark.asyncio
async def test_analyze_transcript_returns_analysis():
    with patch.object(llm_client, "call_tool", AsyncMock(return_value=_analysis())) as call_tool:
        analysis = await projects.analyze_transcript("AI: hello\nUser: batteries")

    assert analysis.project_title == "EV Battery Supply Chain 2025"
    assert analysis.questions == QUESTIONS
    kwargs = call_tool.call_args.kwargs
    assert kwargs["tool"] is projects.PROJECT_ANALYSIS_TOOL
    assert "User: batteries" in kwargs["user"]
    assert "exactly 10 expert questions" in kwargs["system"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "result",
    [
        None,
        _analysis(questions="not a list"),
        _analysis(questions=QUESTIONS[:9]),
    ],
)
async def test_analyze_transcript_rejects_unusable_replies(result):
    with patch.object(llm_client, "call_tool", AsyncMock(return_value=result)):
        with pytest.raises(AnalysisError):
            await projects.analyze_transcript("transcript")


@pytest.mark.asyncio
async def test_create_project_rejects_duplicate_slug():
    existing = {"id": "p0", "name": "EV Battery Supply Chain 2025"}
    with (
        patch.object(db, "find_project_by_slug", AsyncMock(return_value=existing)),
        patch.object(db, "create_project", AsyncMock()) as create,
    ):
        result = await projects.create_project(
            name="EV Battery Supply Chain 2025",
            description="d",
            investor_id="inv-1",
        )

    assert result.success is False
    assert result.error == 'A project named "EV Battery Supply Chain 2025" already exists'
    create.assert_not_called()


@pytest.mark.asyncio
async def test_create_project_reports_insert_failure():
    with (
        patch.object(db, "find_project_by_slug", AsyncMock(return_value=None)),
        patch.object(db, "create_project", AsyncMock(side_effect=PersistenceError("boom"))),
    ):
        result = await projects.create_project(name="New", description="d", investor_id="inv-1")

    assert result.success is False
    assert result.error == "Failed to create project"


@pytest.mark.asyncio
async def test_transcript_project_starts_auto_search(store):
    gateway = FakeGateway(job_id="abc123")
    scheduler = FakeScheduler()
    ingestion = _ingestion(store, gateway=gateway, scheduler=scheduler)

    with (
        patch.object(llm_client, "call_tool", AsyncMock(return_value=_analysis())),
        patch.object(db, "find_project_by_slug", AsyncMock(return_value=None)),
        patch.object(db, "create_project", AsyncMock(side_effect=_stored_project)) as create,
    ):
        result = await projects.create_project_from_transcript("transcript", "inv-1", ingestion)

    assert result.success is True
    row = create.call_args.args[0]
    assert row["slug"] == "ev-battery-supply-chain-2025"
    assert row["questions"] == QUESTIONS
    assert row["investor_id"] == "inv-1"
    assert result.expert_search_query == "battery procurement leaders at EV OEMs"
    assert re.fullmatch(r"auto-p1-\d{13}", result.search_call_id)
    assert gateway.submitted == [("battery procurement leaders at EV OEMs", 30)]
    (job,) = scheduler.started
    assert job.target_collection_id == "p1"


@pytest.mark.asyncio
async def test_transcript_project_survives_search_failure(store):
    gateway = FakeGateway(configured=False)
    ingestion = _ingestion(store, gateway=gateway)

    with (
        patch.object(llm_client, "call_tool", AsyncMock(return_value=_analysis())),
        patch.object(db, "find_project_by_slug", AsyncMock(return_value=None)),
        patch.object(db, "create_project", AsyncMock(side_effect=_stored_project)),
    ):
        result = await projects.create_project_from_transcript("transcript", "inv-1", ingestion)

    assert result.success is True
    assert result.search_call_id is None
    assert len(store) == 0


@pytest.mark.asyncio
async def test_analysis_failure_creates_fallback_project(store):
    gateway = FakeGateway()
    ingestion = _ingestion(store, gateway=gateway)

    with (
        patch.object(llm_client, "call_tool", AsyncMock(side_effect=RuntimeError("model down"))),
        patch.object(db, "find_project_by_slug", AsyncMock(return_value=None)),
        patch.object(db, "create_project", AsyncMock(side_effect=_stored_project)) as create,
    ):
        result = await projects.create_project_from_transcript("AI: Tell me about lithium", "inv-1", ingestion)

    assert result.success is True
    row = create.call_args.args[0]
    assert row["name"].startswith("test-")
    assert row["description"] == projects.FALLBACK_DESCRIPTION
    assert row["questions"] == ["Tell me about lithium"]
    assert result.search_call_id is None
    assert gateway.submitted == []
