from __future__ import annotations

import json
from typing import Any

from fastapi import APIRouter, Depends, Header, HTTPException, Request

from app.api.deps import get_ingestion_service, get_job_store
from app.models.schemas import SearchAcceptedResponse, SearchJobResponse
from app.services.ingestion import IngestionService
from app.services.job_store import JobStore
from app.services.logger import log_event

router = APIRouter(prefix="/api/search", tags=["search"])

VOICE_TOOL_NAME = "expert_search"


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def extract_search_query(body: Any) -> tuple[str | None, str]:
    """Return the query and its source prefix from a direct or voice tool-call body."""
    if not isinstance(body, dict):
        return None, "search"

    message = body.get("message")
    if isinstance(message, dict):
        tool_calls = message.get("toolCalls") or []
        first = tool_calls[0] if isinstance(tool_calls, list) and tool_calls else None
        function = first.get("function") if isinstance(first, dict) else None
        if isinstance(function, dict) and function.get("name") == VOICE_TOOL_NAME:
            arguments = function.get("arguments") or {}
            if isinstance(arguments, str):
                try:
                    arguments = json.loads(arguments)
                except json.JSONDecodeError:
                    arguments = {}
            query = arguments.get("search_query") if isinstance(arguments, dict) else None
            return (query if isinstance(query, str) else None), "vapi"

    query = body.get("search_query")
    return (query if isinstance(query, str) else None), "search"


async def _read_json(request: Request) -> Any:
    raw = await request.body()
    try:
        return json.loads(raw or b"{}")
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        log_event("search_request_invalid_json", "Body is not valid JSON", error=str(e))
        return {}


@router.post("", response_model=SearchAcceptedResponse)
async def start_search(
    request: Request,
    x_call_id: str | None = Header(default=None),
    ingestion: IngestionService = Depends(get_ingestion_service),
):
    """Submit an expert search and return as soon as polling has started."""
    body = await _read_json(request)
    query, source = extract_search_query(body)
    metadata = body if isinstance(body, dict) else {}

    job = await ingestion.start_search(
        query,
        call_id=x_call_id,
        submitter_name=_optional_str(metadata.get("submitter_name")),
        project_id=_optional_str(metadata.get("project_id")),
        source=source,
    )
    return SearchAcceptedResponse(search_id=job.external_job_id, call_id=job.call_id)


@router.get("/{call_id}", response_model=SearchJobResponse)
async def get_search(call_id: str, store: JobStore = Depends(get_job_store)):
    job = store.get(call_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Search not found")
    return SearchJobResponse(**job.snapshot())
