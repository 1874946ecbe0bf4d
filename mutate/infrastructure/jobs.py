"""Job persistence."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Protocol

from mutate.core.errors import JobNotFound
from mutate.domain import Job


class JobStore(Protocol):
    """Persistence contract for job records."""

    def add(self, job: Job) -> None: ...

    def get(self, job_id: str) -> Job | None: ...

    def save(self, job: Job) -> None: ...

    def set_progress(self, job_id: str, progress: int) -> None: ...

    def list(self, organization_id: str | None = None) -> list[Job]: ...


class InMemoryJobStore:
    """Simple in-memory job store for local runs and tests."""

    def __init__(self) -> None:
        self._jobs: dict[str, Job] = {}

    def add(self, job: Job) -> None:
        self._jobs[job.id] = job

    def get(self, job_id: str) -> Job | None:
        return self._jobs.get(job_id)

    def save(self, job: Job) -> None:
        if job.id not in self._jobs:
            raise JobNotFound(job.id)
        job.updated_at = datetime.now(timezone.utc)
        self._jobs[job.id] = job

    def set_progress(self, job_id: str, progress: int) -> None:
        job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFound(job_id)
        job.progress = max(0, min(100, progress))

    def list(self, organization_id: str | None = None) -> list[Job]:
        jobs = list(self._jobs.values())
        if organization_id is not None:
            jobs = [job for job in jobs if job.organization_id == organization_id]
        return sorted(jobs, key=lambda job: job.created_at)

    def reset(self) -> None:
        self._jobs.clear()
