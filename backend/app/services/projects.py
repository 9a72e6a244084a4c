"""Project creation, including projects derived from voice call transcripts."""
from __future__ import annotations

import random
import re
import time
from dataclasses import dataclass, field
from typing import Any

from app import llm_client
from app.errors import AnalysisError, ExpertSearchError
from app.services import supabase as db
from app.services.ingestion import IngestionService
from app.services.logger import log_event
from app.services.prompt_store import render_prompt_pair

QUESTION_COUNT = 10
FALLBACK_DESCRIPTION = "Project created from voice call - AI analysis unavailable"

PROJECT_ANALYSIS_TOOL: dict[str, Any] = {
    "type": "function",
    "function": {
        "name": "create_project_analysis",
        "description": "Create project analysis from call transcript",
        "parameters": {
            "type": "object",
            "properties": {
                "project_title": {
                    "type": "string",
                    "description": "Specific project title, max 70 characters, plain language",
                },
                "project_description": {
                    "type": "string",
                    "description": (
                        "4-6 sentences covering objective, time window, geography, "
                        "stage focus, priorities, and exclusions"
                    ),
                },
                "questions": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": (
                        f"Exactly {QUESTION_COUNT} expert-sourcing questions, one sentence each, "
                        "actionable and alpha-seeking"
                    ),
                },
                "expert_search_query": {
                    "type": "string",
                    "description": (
                        "Concise expert search query to find relevant domain experts, operators, "
                        "and practitioners - focus on roles, experience level, and industry context"
                    ),
                },
            },
            "required": [
                "project_title",
                "project_description",
                "questions",
                "expert_search_query",
            ],
        },
    },
}


@dataclass
class ProjectAnalysis:
    project_title: str
    project_description: str
    questions: list[str]
    expert_search_query: str


@dataclass
class ProjectCreationResult:
    success: bool
    project: dict[str, Any] | None = None
    error: str | None = None
    expert_search_query: str | None = None
    search_call_id: str | None = None
    questions: list[str] = field(default_factory=list)


def generate_slug(name: str) -> str:
    slug = name.lower().strip()
    slug = re.sub(r"[^a-z0-9\s-]", "", slug)
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"-+", "-", slug)
    return slug.strip("-")


def generate_test_project_name() -> str:
    return f"test-{random.randrange(10**12)}"


async def analyze_transcript(transcript: str) -> ProjectAnalysis:
    """Ask the LLM for a project brief; raises AnalysisError when the reply is unusable."""
    prompts = render_prompt_pair(
        "project_analysis",
        transcript=transcript,
        question_count=QUESTION_COUNT,
    )
    result = await llm_client.call_tool(
        system=prompts.system,
        user=prompts.user,
        tool=PROJECT_ANALYSIS_TOOL,
        caller="project_analysis",
    )
    if result is None:
        raise AnalysisError("Failed to get valid analysis from the model")

    args = result.arguments
    questions = args.get("questions")
    if not isinstance(questions, list):
        raise AnalysisError("Analysis is missing the questions list")
    if len(questions) != QUESTION_COUNT:
        raise AnalysisError(f"Expected exactly {QUESTION_COUNT} questions, got {len(questions)}")

    return ProjectAnalysis(
        project_title=str(args.get("project_title") or "").strip(),
        project_description=str(args.get("project_description") or "").strip(),
        questions=[str(q) for q in questions],
        expert_search_query=str(args.get("expert_search_query") or "").strip(),
    )


async def create_project(
    *,
    name: str,
    description: str,
    investor_id: str,
    questions: list[str] | None = None,
    questions_done: bool = False,
) -> ProjectCreationResult:
    slug = generate_slug(name)
    existing = await db.find_project_by_slug(slug, investor_id)
    if existing:
        return ProjectCreationResult(
            success=False,
            error=f'A project named "{existing.get("name")}" already exists',
        )

    try:
        project = await db.create_project(
            {
                "name": name,
                "slug": slug,
                "description": description,
                "questions": questions or [],
                "investor_id": investor_id,
                "questions_done": questions_done,
            }
        )
    except ExpertSearchError as e:
        log_event("project_create_failed", "Project creation failed", error=str(e), slug=slug)
        return ProjectCreationResult(success=False, error="Failed to create project")

    log_event(
        "project_created",
        "Project created",
        project_id=project.get("id"),
        slug=project.get("slug"),
    )
    return ProjectCreationResult(
        success=True,
        project=project,
        questions=list(project.get("questions") or []),
    )


async def create_project_from_transcript(
    transcript: str,
    investor_id: str,
    ingestion: IngestionService,
) -> ProjectCreationResult:
    """Analyze a call transcript, create the project and kick off its expert search."""
    try:
        analysis = await analyze_transcript(transcript)
    except Exception as e:
        log_event(
            "project_analysis_failed",
            "Transcript analysis failed, falling back to basic project",
            error=str(e),
        )
        return await create_project(
            name=generate_test_project_name(),
            description=FALLBACK_DESCRIPTION,
            questions=[re.sub(r"^AI:\s*", "", transcript)],
            investor_id=investor_id,
        )

    result = await create_project(
        name=analysis.project_title,
        description=analysis.project_description,
        questions=analysis.questions,
        investor_id=investor_id,
    )
    result.expert_search_query = analysis.expert_search_query

    if result.success and result.project and analysis.expert_search_query:
        project_id = str(result.project["id"])
        call_id = f"auto-{project_id}-{int(time.time() * 1000)}"
        try:
            job = await ingestion.start_search(
                analysis.expert_search_query,
                call_id=call_id,
                project_id=project_id,
                source="auto",
            )
            result.search_call_id = job.call_id
        except ExpertSearchError as e:
            log_event(
                "expert_search_trigger_failed",
                "Could not start expert search for new project",
                project_id=project_id,
                call_id=call_id,
                error=str(e),
            )
    return result
