"""Prompt catalog stored as JSON next to the app, rendered with ``string.Template``."""
from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from string import Template
from typing import Any


PROMPTS_PATH = Path(__file__).resolve().parents[1] / "prompts" / "prompts.json"
_catalog_cache: tuple[int, dict[str, Any]] | None = None


@dataclass(frozen=True)
class PromptPair:
    system: str
    user: str


def _catalog() -> dict[str, Any]:
    global _catalog_cache
    mtime_ns = PROMPTS_PATH.stat().st_mtime_ns
    if _catalog_cache is not None and _catalog_cache[0] == mtime_ns:
        return _catalog_cache[1]

    payload = json.loads(PROMPTS_PATH.read_text(encoding="utf-8"))
    if not isinstance(payload, dict):
        raise ValueError("Prompt catalog must be a JSON object.")
    _catalog_cache = (mtime_ns, payload)
    return payload


def _render(name: str, role: str, template_text: Any, values: dict[str, Any]) -> str:
    if not isinstance(template_text, str):
        raise TypeError(f"Prompt '{name}.{role}' must be a string")
    try:
        return Template(template_text).substitute(**values)
    except KeyError as exc:
        raise KeyError(f"Missing template value '{exc.args[0]}' for prompt '{name}.{role}'") from exc


def render_prompt_pair(name: str, **values: Any) -> PromptPair:
    """Render the system and user messages of prompt ``name``."""
    entry = _catalog().get(name)
    if not isinstance(entry, dict):
        raise KeyError(f"Prompt not found: {name}")
    return PromptPair(
        system=_render(name, "system", entry.get("system"), values),
        user=_render(name, "user", entry.get("user"), values),
    )
