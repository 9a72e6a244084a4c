"""Turn a completed deep research payload into ranked expert rows."""
from __future__ import annotations

import json
from typing import Any

from app.models.jobs import ExpertRecord

LINKEDIN_URL_FIELDS = ("linkedin_profile_url", "linkedin_url")


def _text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def _first_present(profile: dict[str, Any], keys: tuple[str, ...]) -> str:
    for key in keys:
        value = profile.get(key)
        if value:
            return _text(value)
    return ""


def extract_reasoning(profile: dict[str, Any]) -> str:
    """Join every non-empty criteria reasoning, in mapping order, with a blank line."""
    criteria = profile.get("criteria")
    if not isinstance(criteria, dict):
        return ""
    parts: list[str] = []
    for entry in criteria.values():
        if not isinstance(entry, dict):
            continue
        reasoning = entry.get("reasoning")
        if reasoning:
            parts.append(_text(reasoning))
    return "\n\n".join(parts)


def _materialize(candidate: Any) -> Any:
    # Detach from the polling response so the stored payload is plain JSON data.
    return json.loads(json.dumps(candidate))


def to_expert_record(candidate: Any, rank: int, project_id: str, query: str) -> ExpertRecord:
    profile = candidate.get("profile") if isinstance(candidate, dict) else None
    if not isinstance(profile, dict):
        profile = {}

    return ExpertRecord(
        name=_text(profile.get("name")),
        project_id=project_id,
        linkedin_url=_first_present(profile, LINKEDIN_URL_FIELDS),
        headline=_text(profile.get("headline")),
        summary=_text(profile.get("summary")),
        reasoning=extract_reasoning(profile),
        for_query=query,
        rank=rank,
        raw_json=_materialize(candidate),
    )


def project_experts(raw_result: Any, project_id: str, query: str) -> list[ExpertRecord]:
    """Map provider candidates to ExpertRecords, ranked by their position in the response."""
    if not isinstance(raw_result, dict):
        return []
    candidates = raw_result.get("results")
    if not isinstance(candidates, list):
        return []

    return [
        to_expert_record(candidate, rank=index + 1, project_id=project_id, query=query)
        for index, candidate in enumerate(candidates)
    ]
