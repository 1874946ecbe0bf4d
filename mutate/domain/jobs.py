"""Transformation job records and their lifecycle."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from mutate.core.errors import JobStateError


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in {JobStatus.COMPLETED, JobStatus.FAILED}


_TRANSITIONS: dict[JobStatus, set[JobStatus]] = {
    JobStatus.PENDING: {JobStatus.PROCESSING},
    JobStatus.PROCESSING: {JobStatus.COMPLETED, JobStatus.FAILED},
    JobStatus.COMPLETED: set(),
    JobStatus.FAILED: set(),
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class JobMetadata:
    started_at: datetime | None = None
    completed_at: datetime | None = None
    input_key: str | None = None
    input_url: str | None = None
    output_key: str | None = None
    output_url: str | None = None
    expires_at: datetime | None = None
    execution_log: list[str] = field(default_factory=list)
    error: str | None = None
    file_size: int | None = None


@dataclass(slots=True)
class Job:
    """A queued spreadsheet transformation owned by the worker once dequeued."""

    id: str
    organization_id: str
    configuration_id: str
    file_name: str
    status: JobStatus = JobStatus.PENDING
    callback_url: str | None = None
    progress: int = 0
    metadata: JobMetadata = field(default_factory=JobMetadata)
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    def can_transition(self, target: JobStatus, *, redelivery: bool = False) -> bool:
        if target in _TRANSITIONS[self.status]:
            return True
        # a redelivered message may restart a failed or abandoned job
        return (
            redelivery
            and target is JobStatus.PROCESSING
            and self.status in {JobStatus.FAILED, JobStatus.PROCESSING}
        )

    def transition(self, target: JobStatus, *, redelivery: bool = False) -> None:
        if not self.can_transition(target, redelivery=redelivery):
            raise JobStateError(self.id, self.status.value, target.value)
        self.status = target
        self.updated_at = _utcnow()

    def status_view(self) -> dict[str, Any]:
        return {
            "jobId": self.id,
            "status": self.status.value,
            "progress": self.progress,
            "downloadUrl": self.metadata.output_url,
            "executionLog": list(self.metadata.execution_log),
            "error": self.metadata.error,
        }
