"""Outgoing webhook notifications."""

from .destinations import Destination, resolve_destination, validate_webhook_url
from .dispatcher import (
    EVENT_COMPLETED,
    EVENT_FAILED,
    WebhookDispatcher,
    backoff_delay,
)
from .signing import compute_signature, sign_payload, verify_signature

__all__ = [
    "Destination",
    "EVENT_COMPLETED",
    "EVENT_FAILED",
    "WebhookDispatcher",
    "backoff_delay",
    "compute_signature",
    "resolve_destination",
    "sign_payload",
    "validate_webhook_url",
    "verify_signature",
]
