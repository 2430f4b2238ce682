"""
In-process registry of scan job status records.

A record is created on the first update for a job id and merged on every
later one. Each job id is driven by exactly one orchestration loop, so
there is no locking here; callers must not run two scans under the same
job id. Records live for the process lifetime.
"""

from copy import deepcopy
from typing import Any

from ..domain.models import (
    JOB_STATUS_CANCELLED,
    JOB_STATUS_PENDING,
    JOB_STATUS_RUNNING,
    utc_now_iso,
)


class JobRegistry:
    """Mutable map of job id -> status record."""

    def __init__(self):
        self._jobs: dict[str, dict[str, Any]] = {}

    def update(self, job_id: str, **fields: Any) -> dict[str, Any]:
        existing = self._jobs.get(job_id) or {
            "job_id": job_id,
            "status": JOB_STATUS_PENDING,
            "created_at": utc_now_iso(),
            "processed_messages": 0,
            "percent_complete": None,
            "contacts_found": 0,
            "message": "",
        }
        record = {**existing, **fields}
        self._jobs[job_id] = record
        return deepcopy(record)

    def get(self, job_id: str) -> dict[str, Any] | None:
        record = self._jobs.get(job_id)
        return deepcopy(record) if record is not None else None

    def status_of(self, job_id: str) -> str | None:
        record = self._jobs.get(job_id)
        return record["status"] if record else None

    def cancel(self, job_id: str) -> dict[str, Any] | None:
        """Mark a pending/running job cancelled; other states are left alone."""
        record = self._jobs.get(job_id)
        if record is None:
            return None
        if record["status"] in (JOB_STATUS_PENDING, JOB_STATUS_RUNNING):
            return self.update(job_id, status=JOB_STATUS_CANCELLED)
        return deepcopy(record)

    def clear(self) -> None:
        self._jobs.clear()


# One registry per process; status routes and the scan loop share it.
job_registry = JobRegistry()
