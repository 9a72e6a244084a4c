from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


# --- Requests ---


class TranscriptProjectRequest(BaseModel):
    transcript: str = Field(min_length=1)
    investor_id: str = Field(min_length=1)


class VapiCallsRequest(BaseModel):
    first_name: str | None = None
    assistant_type: str | None = None


# --- Responses ---


class SearchAcceptedResponse(BaseModel):
    success: bool = True
    message: str = "Search initiated successfully"
    search_id: str
    call_id: str


class SearchJobResponse(BaseModel):
    call_id: str
    search_id: str
    query: str
    submitter_name: str | None = None
    project_id: str | None = None
    status: str
    poll_attempt: int
    error: str | None = None
    inserted_count: int | None = None
    has_result: bool = False
    created_at: str
    completed_at: str | None = None


class ProjectSummary(BaseModel):
    id: str
    name: str
    slug: str
    description: str | None = None
    questions: list[str] = Field(default_factory=list)
    questions_done: bool = False


class ProjectCreatedResponse(BaseModel):
    success: bool
    project: ProjectSummary | None = None
    error: str | None = None
    expert_search_query: str | None = None
    search_call_id: str | None = None


class ExpertResponse(BaseModel):
    name: str | None = ""
    project_id: str
    linkedin_url: str | None = ""
    headline: str | None = ""
    summary: str | None = ""
    reasoning: str | None = ""
    for_query: str | None = ""
    rank: int
    raw_json: Any = None


class ExpertListResponse(BaseModel):
    project_id: str
    experts: list[ExpertResponse]


class VapiCallsResponse(BaseModel):
    success: bool = True
    latest_call: dict[str, Any] | None = None
    total_calls: int = 0
    filtered_by: dict[str, Any] = Field(default_factory=dict)
    project_created: ProjectSummary | None = None
    expert_search_query: str | None = None
