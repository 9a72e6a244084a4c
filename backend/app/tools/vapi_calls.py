from __future__ import annotations

from typing import Any

import httpx

from app.config import settings
from app.errors import ConfigurationError, UpstreamUnavailable


def assistant_id_for(assistant_type: str | None) -> str:
    """Dashboard calls fall back to the questions assistant when no dashboard id is set."""
    if assistant_type == "dashboard":
        return settings.vapi_dashboard_assistant_id or settings.vapi_questions_assistant_id
    return settings.vapi_questions_assistant_id


async def list_recent_calls(limit: int | None = None) -> list[dict[str, Any]]:
    """Fetch the most recent calls, newest first as returned by the API."""
    if not settings.vapi_private_key:
        raise ConfigurationError("Vapi private API key not configured")

    url = f"{settings.vapi_base_url.rstrip('/')}/call"
    try:
        async with httpx.AsyncClient(timeout=30.0) as client:
            response = await client.get(
                url,
                params={"limit": limit or settings.vapi_call_list_limit},
                headers={
                    "Authorization": f"Bearer {settings.vapi_private_key}",
                    "Content-Type": "application/json",
                },
            )
    except httpx.HTTPError as e:
        raise UpstreamUnavailable(f"GET {url} failed: {e}", details=str(e)) from e

    if response.status_code < 200 or response.status_code >= 300:
        raise UpstreamUnavailable(
            "Failed to fetch calls from Vapi",
            status_code=response.status_code,
            details=response.text,
        )
    try:
        payload = response.json()
    except ValueError as e:
        raise UpstreamUnavailable(
            "Vapi returned a non-JSON body",
            details=response.text,
        ) from e
    return payload if isinstance(payload, list) else []


def filter_calls(calls: list[dict[str, Any]], assistant_id: str, first_name: str | None) -> list[dict[str, Any]]:
    matched = []
    for call in calls:
        if not isinstance(call, dict) or call.get("assistantId") != assistant_id:
            continue
        overrides = call.get("assistantOverrides")
        variables = overrides.get("variableValues") if isinstance(overrides, dict) else None
        if not isinstance(variables, dict):
            variables = {}
        if variables.get("first_name") == first_name:
            matched.append(call)
    return matched
