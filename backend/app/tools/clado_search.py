from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx

from app.config import settings
from app.errors import ConfigurationError, UpstreamProtocolError, UpstreamUnavailable
from app.models.jobs import UpstreamStatus


@dataclass
class StatusResult:
    status: str
    payload: dict[str, Any] = field(default_factory=dict)

    @property
    def outcome(self) -> UpstreamStatus:
        return UpstreamStatus.classify(self.status)


class SearchGateway(Protocol):
    @property
    def configured(self) -> bool: ...

    async def submit(self, query: str, limit: int | None = None) -> str: ...
    async def get_status(self, job_id: str) -> StatusResult: ...


class CladoSearchGateway:
    """Deep research client for the Clado people-search API."""

    def __init__(
        self,
        *,
        api_key: str,
        base_url: str = "https://search.clado.ai/api/search",
        timeout: float = 30.0,
        default_limit: int = 30,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.default_limit = default_limit

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def _headers(self) -> dict[str, str]:
        if not self.api_key:
            raise ConfigurationError("Clado API key not configured")
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def _request(self, method: str, url: str, **kwargs: Any) -> dict[str, Any]:
        headers = self._headers()
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            raise UpstreamUnavailable(f"{method} {url} failed: {e}", details=str(e)) from e

        if response.status_code < 200 or response.status_code >= 300:
            raise UpstreamUnavailable(
                f"{method} {url} returned HTTP {response.status_code}",
                status_code=response.status_code,
                details=response.text,
            )
        try:
            payload = response.json()
        except ValueError as e:
            raise UpstreamUnavailable(
                f"{method} {url} returned a non-JSON body",
                status_code=response.status_code,
                details=response.text,
            ) from e
        return payload if isinstance(payload, dict) else {}

    async def submit(self, query: str, limit: int | None = None) -> str:
        """Start a deep research job and return the provider's job id."""
        payload = await self._request(
            "POST",
            f"{self.base_url}/deep_research",
            json={"query": query, "limit": limit or self.default_limit},
        )
        job_id = payload.get("job_id")
        if not job_id:
            raise UpstreamProtocolError("No search ID returned from Clado")
        return str(job_id)

    async def get_status(self, job_id: str) -> StatusResult:
        """Fetch the current state of a deep research job.

        Non-terminal statuses such as ``processing`` are returned normally.
        """
        payload = await self._request("GET", f"{self.base_url}/deep_research/{job_id}")
        return StatusResult(status=str(payload.get("status") or ""), payload=payload)


_gateway: CladoSearchGateway | None = None


def get_gateway() -> CladoSearchGateway:
    global _gateway
    if _gateway is None:
        _gateway = CladoSearchGateway(
            api_key=settings.clado_api_key,
            base_url=settings.clado_base_url,
            timeout=settings.clado_request_timeout_seconds,
            default_limit=settings.clado_result_limit,
        )
    return _gateway
