from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from app.api.deps import get_ingestion_service
from app.errors import ConfigurationError, UpstreamUnavailable
from app.models.schemas import (
    ExpertListResponse,
    ExpertResponse,
    ProjectCreatedResponse,
    ProjectSummary,
    TranscriptProjectRequest,
    VapiCallsRequest,
    VapiCallsResponse,
)
from app.services import projects
from app.services import supabase as db
from app.services.ingestion import IngestionService
from app.services.logger import log_event
from app.tools import vapi_calls

router = APIRouter(prefix="/api", tags=["projects"])


def _summary(project: dict[str, Any] | None) -> ProjectSummary | None:
    if not project:
        return None
    return ProjectSummary(
        id=str(project.get("id")),
        name=project.get("name") or "",
        slug=project.get("slug") or "",
        description=project.get("description"),
        questions=list(project.get("questions") or []),
        questions_done=bool(project.get("questions_done")),
    )


def _created_response(result: projects.ProjectCreationResult) -> ProjectCreatedResponse:
    return ProjectCreatedResponse(
        success=result.success,
        project=_summary(result.project),
        error=result.error,
        expert_search_query=result.expert_search_query,
        search_call_id=result.search_call_id,
    )


@router.post("/projects/from-transcript", response_model=ProjectCreatedResponse)
async def create_project_from_transcript(
    request: TranscriptProjectRequest,
    ingestion: IngestionService = Depends(get_ingestion_service),
):
    result = await projects.create_project_from_transcript(
        request.transcript,
        request.investor_id,
        ingestion,
    )
    return _created_response(result)


@router.get("/projects/{project_id}/experts", response_model=ExpertListResponse)
async def list_project_experts(project_id: str):
    rows = await db.get_experts(project_id)
    # Storage order is not guaranteed; rank is authoritative.
    rows = sorted(rows, key=lambda row: int(row.get("rank") or 0))
    return ExpertListResponse(
        project_id=project_id,
        experts=[ExpertResponse(**row) for row in rows],
    )


@router.post("/vapi-calls", response_model=VapiCallsResponse)
async def fetch_vapi_calls(
    request: VapiCallsRequest,
    ingestion: IngestionService = Depends(get_ingestion_service),
):
    """Find the caller's latest voice call and turn its transcript into a project."""
    assistant_id = vapi_calls.assistant_id_for(request.assistant_type)
    if not assistant_id:
        raise ConfigurationError("Assistant ID not configured")

    try:
        calls = await vapi_calls.list_recent_calls()
    except UpstreamUnavailable as e:
        return JSONResponse(
            status_code=e.status_code or 502,
            content={"error": str(e), "details": e.details},
        )
    matched = vapi_calls.filter_calls(calls, assistant_id, request.first_name)
    latest_call = matched[0] if matched else None
    log_event(
        "vapi_calls_fetched",
        "Fetched recent voice calls",
        total=len(calls),
        matched=len(matched),
        latest_call_id=latest_call.get("id") if latest_call else None,
    )

    response = VapiCallsResponse(
        latest_call=latest_call,
        total_calls=len(matched),
        filtered_by={
            "first_name": request.first_name,
            "assistant_type": request.assistant_type,
            "assistant_id": assistant_id,
        },
    )

    transcript = latest_call.get("transcript") if latest_call else None
    if not transcript or not request.first_name:
        return response

    investor_id = await db.find_investor_id_by_first_name(request.first_name)
    if investor_id is None:
        log_event(
            "investor_not_found",
            "Could not find investor for voice call",
            first_name=request.first_name,
        )
        return response

    result = await projects.create_project_from_transcript(transcript, investor_id, ingestion)
    if result.success:
        response.project_created = _summary(result.project)
        response.expert_search_query = result.expert_search_query
    else:
        log_event("project_auto_create_failed", "Auto project creation failed", error=result.error)
    return response
