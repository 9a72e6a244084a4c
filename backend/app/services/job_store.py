"""In-process registry of search jobs keyed by call id."""
from __future__ import annotations

from collections import OrderedDict

from app.models.jobs import JobStatus, SearchJob


class JobStore:
    """Holds active jobs and a bounded window of completed ones.

    All access happens on the event loop thread, so per-key dict operations
    need no locking. Completed jobs are kept for read-back, oldest evicted
    first once ``completed_retention`` is exceeded.
    """

    def __init__(self, completed_retention: int = 100):
        self.completed_retention = max(1, completed_retention)
        self._active: dict[str, SearchJob] = {}
        self._completed: OrderedDict[str, SearchJob] = OrderedDict()
        self._latest_call_id: str | None = None

    def seed(self, job: SearchJob) -> SearchJob:
        """Register a newly submitted job, replacing any job under the same call id."""
        if self._completed.pop(job.call_id, None) is not None and job.call_id == self._latest_call_id:
            # A resubmission is not a completion; fall back to the newest remaining result.
            self._latest_call_id = next(reversed(self._completed), None)
        self._active[job.call_id] = job
        return job

    def get(self, call_id: str) -> SearchJob | None:
        return self._active.get(call_id) or self._completed.get(call_id)

    def get_active(self, call_id: str) -> SearchJob | None:
        return self._active.get(call_id)

    def is_current(self, job: SearchJob) -> bool:
        """True while ``job`` is still the one registered for its call id."""
        return self._active.get(job.call_id) is job

    def mark_completed(self, job: SearchJob) -> None:
        job.status = JobStatus.COMPLETED
        active = self._active.get(job.call_id)
        if active is not None and active is not job:
            # Replaced while finishing; the newer job owns the call id.
            return
        self._active.pop(job.call_id, None)
        self._completed[job.call_id] = job
        self._completed.move_to_end(job.call_id)
        self._latest_call_id = job.call_id
        while len(self._completed) > self.completed_retention:
            evicted, _ = self._completed.popitem(last=False)
            if evicted == self._latest_call_id:
                self._latest_call_id = None

    def remove(self, call_id: str) -> SearchJob | None:
        """Drop a job and its transient state. Unknown call ids are ignored."""
        job = self._active.pop(call_id, None)
        if job is None:
            job = self._completed.pop(call_id, None)
            if call_id == self._latest_call_id:
                self._latest_call_id = next(reversed(self._completed), None)
        return job

    def latest_completed(self) -> SearchJob | None:
        if self._latest_call_id is None:
            return None
        return self._completed.get(self._latest_call_id)

    def active_call_ids(self) -> list[str]:
        return list(self._active)

    def __len__(self) -> int:
        return len(self._active) + len(self._completed)

    def __contains__(self, call_id: object) -> bool:
        return call_id in self._active or call_id in self._completed

    def clear(self) -> None:
        self._active.clear()
        self._completed.clear()
        self._latest_call_id = None
