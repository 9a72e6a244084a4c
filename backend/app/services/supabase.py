from __future__ import annotations

import asyncio
from typing import Any

from supabase import create_client, Client

from app.config import settings
from app.errors import ConfigurationError, PersistenceError
from app.models.jobs import ExpertRecord
from app.services.logger import log_db_operation


def get_client() -> Client:
    if not settings.supabase_url or not settings.supabase_service_key:
        raise ConfigurationError("SUPABASE_URL and SUPABASE_SERVICE_KEY must be set")
    return create_client(settings.supabase_url, settings.supabase_service_key)


_client: Client | None = None


def client() -> Client:
    global _client
    if _client is None:
        _client = get_client()
    return _client


async def _execute(query: Any) -> Any:
    """Run blocking Supabase query execution in a worker thread."""
    return await asyncio.to_thread(query.execute)


# --- Experts ---


async def insert_experts(records: list[ExpertRecord]) -> int:
    """Insert one search's experts in a single batch and return the inserted count."""
    if not records:
        return 0
    rows = [record.to_row() for record in records]
    try:
        result = await _execute(client().table("experts").insert(rows))
    except Exception as e:
        log_db_operation("insert", "experts", "error", details=f"{len(rows)} rows", error=str(e))
        raise PersistenceError(f"Failed to insert {len(rows)} experts: {e}") from e

    inserted = len(result.data or [])
    log_db_operation("insert", "experts", "success", details=f"{inserted} rows")
    return inserted


async def get_experts(project_id: str) -> list[dict[str, Any]]:
    result = await _execute(
        client().table("experts").select("*").eq("project_id", project_id).order("rank")
    )
    return result.data or []


# --- Projects ---


async def update_project_search_state(
    project_id: str,
    *,
    status: str,
    polling_count: int | None = None,
    expert_query: str | None = None,
) -> None:
    update: dict[str, Any] = {"clado_status": status}
    if polling_count is not None:
        update["clado_polling_count"] = polling_count
    if expert_query is not None:
        update["expert_query"] = expert_query
    try:
        await _execute(client().table("projects").update(update).eq("id", project_id))
    except Exception as e:
        log_db_operation("update", "projects", "error", details=project_id, error=str(e))
        raise PersistenceError(f"Failed to update project {project_id}: {e}") from e


async def find_project_by_slug(slug: str, investor_id: str) -> dict[str, Any] | None:
    result = await _execute(
        client()
        .table("projects")
        .select("id, name, slug")
        .eq("slug", slug)
        .eq("investor_id", investor_id)
        .limit(1)
    )
    return result.data[0] if result.data else None


async def create_project(data: dict[str, Any]) -> dict[str, Any]:
    try:
        result = await _execute(client().table("projects").insert(data))
    except Exception as e:
        log_db_operation("insert", "projects", "error", details=data.get("slug"), error=str(e))
        raise PersistenceError(f"Failed to create project: {e}") from e
    if not result.data:
        raise PersistenceError("Project insert returned no row")
    log_db_operation("insert", "projects", "success", details=result.data[0].get("slug"))
    return result.data[0]


# --- Investors ---


async def find_investor_id_by_first_name(first_name: str) -> str | None:
    result = await _execute(
        client().table("investors").select("id").eq("first_name", first_name).limit(1)
    )
    if not result.data:
        return None
    return str(result.data[0]["id"])
