"""Webhook destinations and delivery records."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class DeliveryStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class OrganizationWebhook:
    id: str
    organization_id: str
    url: str
    name: str = ""
    secret: str | None = None
    is_active: bool = True
    last_used_at: datetime | None = None


@dataclass(slots=True)
class WebhookDelivery:
    """One logical notification to one destination, with its attempt history."""

    id: str
    url: str
    event_type: str
    organization_id: str
    job_id: str
    payload: dict[str, Any]
    body: bytes
    idempotency_key: str
    payload_hash: str
    webhook_id: str | None = None
    status: DeliveryStatus = DeliveryStatus.PENDING
    attempts: int = 0
    last_attempt: datetime | None = None
    next_attempt: datetime | None = None
    response_status: int | None = None
    response_body: str | None = None
    error: str | None = None
    created_at: datetime = field(default_factory=_utcnow)

    @property
    def terminal(self) -> bool:
        return self.status is not DeliveryStatus.PENDING

    def audit_view(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "url": self.url,
            "eventType": self.event_type,
            "status": self.status.value,
            "attempts": self.attempts,
            "idempotencyKey": self.idempotency_key,
            "payloadHash": self.payload_hash,
            "responseStatus": self.response_status,
            "responseBody": self.response_body,
            "error": self.error,
        }
