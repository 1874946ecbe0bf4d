"""Usage accounting hooks.

Billing itself lives elsewhere; the worker only reports conversions through
this contract and never fails a job because a hook raised.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


class BillingTracker(Protocol):
    def track_conversion_complete(
        self,
        organization_id: str,
        job_id: str,
        conversion_type: str,
        file_size: int,
    ) -> None: ...

    def track_conversion_failure(self, organization_id: str, job_id: str) -> None: ...


class NoOpBillingTracker:
    def track_conversion_complete(
        self,
        organization_id: str,
        job_id: str,
        conversion_type: str,
        file_size: int,
    ) -> None:  # pragma: no cover - trivial
        return None

    def track_conversion_failure(self, organization_id: str, job_id: str) -> None:  # pragma: no cover - trivial
        return None


@dataclass(slots=True)
class BillingEvent:
    kind: str
    organization_id: str
    job_id: str
    conversion_type: str | None = None
    file_size: int | None = None


class RecordingBillingTracker:
    """Keeps the reported events in memory."""

    def __init__(self) -> None:
        self.events: list[BillingEvent] = []

    def track_conversion_complete(
        self,
        organization_id: str,
        job_id: str,
        conversion_type: str,
        file_size: int,
    ) -> None:
        self.events.append(BillingEvent("complete", organization_id, job_id, conversion_type, file_size))

    def track_conversion_failure(self, organization_id: str, job_id: str) -> None:
        self.events.append(BillingEvent("failure", organization_id, job_id))
