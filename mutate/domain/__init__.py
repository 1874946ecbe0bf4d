"""Domain layer definitions."""

from .jobs import Job, JobMetadata, JobStatus
from .webhooks import DeliveryStatus, OrganizationWebhook, WebhookDelivery

__all__ = [
    "DeliveryStatus",
    "Job",
    "JobMetadata",
    "JobStatus",
    "OrganizationWebhook",
    "WebhookDelivery",
]
