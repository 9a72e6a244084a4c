from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class JobStatus(str, Enum):
    SUBMITTED = "submitted"
    POLLING = "polling"
    COMPLETED = "completed"
    FAILED = "failed"
    ABORTED = "aborted"
    SUPERSEDED = "superseded"

    @property
    def is_terminal(self) -> bool:
        return self not in (JobStatus.SUBMITTED, JobStatus.POLLING)

    @property
    def project_status(self) -> str:
        """Value written to ``projects.clado_status`` for this job state."""
        # Budget exhaustion is reported to users the same way as an upstream failure.
        if self is JobStatus.ABORTED:
            return JobStatus.FAILED.value
        return self.value


class UpstreamStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    PENDING = "pending"

    @classmethod
    def classify(cls, raw_status: Any) -> "UpstreamStatus":
        value = str(raw_status or "").strip().lower()
        if value in ("completed", "success"):
            return cls.SUCCEEDED
        if value in ("failed", "error"):
            return cls.FAILED
        return cls.PENDING


@dataclass
class SearchJob:
    call_id: str
    external_job_id: str
    query: str
    submitter_name: str | None = None
    target_collection_id: str | None = None
    status: JobStatus = JobStatus.SUBMITTED
    poll_attempt: int = 0
    result: dict[str, Any] | None = None
    error: str | None = None
    inserted_count: int | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: datetime | None = None

    def snapshot(self) -> dict[str, Any]:
        """Serializable view of the job without the raw result payload."""
        return {
            "call_id": self.call_id,
            "search_id": self.external_job_id,
            "query": self.query,
            "submitter_name": self.submitter_name,
            "project_id": self.target_collection_id,
            "status": self.status.value,
            "poll_attempt": self.poll_attempt,
            "error": self.error,
            "inserted_count": self.inserted_count,
            "has_result": self.result is not None,
            "created_at": self.created_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


@dataclass
class ExpertRecord:
    name: str
    project_id: str
    linkedin_url: str
    headline: str
    summary: str
    reasoning: str
    for_query: str
    rank: int
    raw_json: Any = None

    def to_row(self) -> dict[str, Any]:
        return asdict(self)
