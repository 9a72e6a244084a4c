"""OpenRouter LLM client factory with a forced function-call helper."""
from __future__ import annotations

import json
import time
from dataclasses import dataclass
from typing import Any

from app.config import settings
from app.errors import ConfigurationError
from app.services.logger import log_llm_call


@dataclass
class ToolCallResult:
    name: str
    arguments: dict[str, Any]
    input_tokens: int = 0
    output_tokens: int = 0


def _temperature_for_model(model: str) -> int:
    # Some OpenAI GPT-5-compatible gateways reject temperature=0.
    lowered = (model or "").lower()
    if "gpt-5" in lowered:
        return 1
    return 0


def get_client() -> Any:
    """Get OpenRouter client via OpenAI-compatible SDK."""
    from openai import AsyncOpenAI

    if not settings.openrouter_api_key:
        raise ConfigurationError("OPENROUTER_API_KEY is not configured")
    base_url = settings.openrouter_base_url.strip() or "https://openrouter.ai/api/v1"
    return AsyncOpenAI(
        api_key=settings.openrouter_api_key,
        base_url=base_url,
    )


def get_model() -> str:
    return settings.analysis_model


_client: Any | None = None


def client() -> Any:
    """Get or create the LLM client."""
    global _client
    if _client is None:
        _client = get_client()
    return _client


def _parse_arguments(raw: Any) -> dict[str, Any] | None:
    if isinstance(raw, dict):
        return raw
    try:
        parsed = json.loads(raw or "")
    except (TypeError, json.JSONDecodeError):
        return None
    return parsed if isinstance(parsed, dict) else None


async def call_tool(
    *,
    system: str,
    user: str,
    tool: dict[str, Any],
    caller: str,
    model: str | None = None,
) -> ToolCallResult | None:
    """Force the model to call ``tool`` and return its parsed arguments.

    Returns None when the response carries no call to the requested function
    or its arguments are not a JSON object.
    """
    model = model or get_model()
    tool_name = tool["function"]["name"]
    started = time.monotonic()
    try:
        response = await client().chat.completions.create(
            model=model,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            tools=[tool],
            tool_choice={"type": "function", "function": {"name": tool_name}},
            temperature=_temperature_for_model(model),
        )
    except Exception as e:
        log_llm_call(
            model=model,
            caller=caller,
            duration_ms=int((time.monotonic() - started) * 1000),
            status="error",
            error=str(e),
        )
        raise

    usage = getattr(response, "usage", None)
    input_tokens = getattr(usage, "prompt_tokens", 0) or 0
    output_tokens = getattr(usage, "completion_tokens", 0) or 0
    log_llm_call(
        model=model,
        caller=caller,
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        duration_ms=int((time.monotonic() - started) * 1000),
    )

    choices = getattr(response, "choices", None) or []
    if not choices:
        return None
    tool_calls = getattr(choices[0].message, "tool_calls", None) or []
    if not tool_calls:
        return None
    function = getattr(tool_calls[0], "function", None)
    if function is None or function.name != tool_name:
        return None
    arguments = _parse_arguments(function.arguments)
    if arguments is None:
        return None
    return ToolCallResult(
        name=function.name,
        arguments=arguments,
        input_tokens=input_tokens,
        output_tokens=output_tokens,
    )
