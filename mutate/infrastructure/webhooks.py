"""Persistence for organization webhooks and delivery records."""
from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import Protocol

from mutate.domain import DeliveryStatus, OrganizationWebhook, WebhookDelivery


class WebhookStore(Protocol):
    def get(self, webhook_id: str) -> OrganizationWebhook | None: ...

    def add(self, webhook: OrganizationWebhook) -> None: ...

    def touch(self, webhook_id: str, used_at: datetime) -> None: ...


class DeliveryStore(Protocol):
    def create_if_absent(self, delivery: WebhookDelivery) -> tuple[WebhookDelivery, bool]: ...

    def get(self, delivery_id: str) -> WebhookDelivery | None: ...

    def get_by_key(self, idempotency_key: str) -> WebhookDelivery | None: ...

    def save(self, delivery: WebhookDelivery) -> None: ...

    def list(self, status: DeliveryStatus | None = None) -> list[WebhookDelivery]: ...


class InMemoryWebhookStore:
    def __init__(self, webhooks: list[OrganizationWebhook] | None = None) -> None:
        self._webhooks: dict[str, OrganizationWebhook] = {}
        for webhook in webhooks or []:
            self.add(webhook)

    def get(self, webhook_id: str) -> OrganizationWebhook | None:
        return self._webhooks.get(webhook_id)

    def add(self, webhook: OrganizationWebhook) -> None:
        self._webhooks[webhook.id] = webhook

    def touch(self, webhook_id: str, used_at: datetime) -> None:
        webhook = self._webhooks.get(webhook_id)
        if webhook is not None:
            self._webhooks[webhook_id] = replace(webhook, last_used_at=used_at)


class InMemoryDeliveryStore:
    """Delivery records keyed by id with a unique index on the idempotency key."""

    def __init__(self) -> None:
        self._deliveries: dict[str, WebhookDelivery] = {}
        self._by_key: dict[str, str] = {}

    def create_if_absent(self, delivery: WebhookDelivery) -> tuple[WebhookDelivery, bool]:
        existing_id = self._by_key.get(delivery.idempotency_key)
        if existing_id is not None:
            return self._deliveries[existing_id], False
        self._deliveries[delivery.id] = delivery
        self._by_key[delivery.idempotency_key] = delivery.id
        return delivery, True

    def get(self, delivery_id: str) -> WebhookDelivery | None:
        return self._deliveries.get(delivery_id)

    def get_by_key(self, idempotency_key: str) -> WebhookDelivery | None:
        delivery_id = self._by_key.get(idempotency_key)
        return self._deliveries.get(delivery_id) if delivery_id else None

    def save(self, delivery: WebhookDelivery) -> None:
        self._deliveries[delivery.id] = delivery

    def list(self, status: DeliveryStatus | None = None) -> list[WebhookDelivery]:
        deliveries = sorted(self._deliveries.values(), key=lambda item: item.created_at)
        if status is None:
            return deliveries
        return [delivery for delivery in deliveries if delivery.status is status]
