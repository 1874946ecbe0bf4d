"""Signed webhook delivery with retry and dead-lettering."""
from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable

import httpx

from mutate.config import Settings
from mutate.core.errors import WebhookDeliveryError, WebhookError
from mutate.core.hashing import idempotency_key, sha256_bytes
from mutate.core.schema import Configuration, WebhookPayload
from mutate.domain import DeliveryStatus, WebhookDelivery
from mutate.infrastructure.webhooks import DeliveryStore, WebhookStore

from .destinations import Destination, resolve_destination
from .signing import sign_payload

logger = logging.getLogger(__name__)

EVENT_COMPLETED = "transformation.completed"
EVENT_FAILED = "transformation.failed"
USER_AGENT = "Mutate-Webhook/1.0"

HEADER_EVENT = "X-Webhook-Event"
HEADER_TIMESTAMP = "X-Mutate-Timestamp"
HEADER_DELIVERY_ID = "X-Mutate-Delivery-Id"
HEADER_SIGNATURE = "X-Mutate-Signature"

RESPONSE_BODY_LIMIT = 10_000

Sleep = Callable[[float], Awaitable[None]]
Clock = Callable[[], datetime]


def backoff_delay(attempt: int, initial_delay: float = 1.0) -> float:
    """Wait after failed attempt ``attempt`` (1-based): 1, 2, 4, 8, ... times the initial delay."""

    return initial_delay * (2 ** (attempt - 1))


def event_for(payload: WebhookPayload) -> str:
    return EVENT_COMPLETED if payload.status == "completed" else EVENT_FAILED


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WebhookDispatcher:
    """Resolves a destination, records the delivery and posts it in the background."""

    def __init__(
        self,
        deliveries: DeliveryStore,
        webhooks: WebhookStore,
        *,
        secret: str | None = None,
        max_retries: int = 5,
        timeout: float = 30.0,
        initial_delay: float = 1.0,
        allow_localhost: bool = True,
        http_client: httpx.AsyncClient | None = None,
        sleep: Sleep = asyncio.sleep,
        clock: Clock = _utcnow,
    ) -> None:
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        self._deliveries = deliveries
        self._webhooks = webhooks
        self._secret = secret
        self._max_retries = max_retries
        self._timeout = timeout
        self._initial_delay = initial_delay
        self._allow_localhost = allow_localhost
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = http_client is None
        self._sleep = sleep
        self._clock = clock
        self._in_flight: set[str] = set()
        self._tasks: set[asyncio.Task[None]] = set()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        deliveries: DeliveryStore,
        webhooks: WebhookStore,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> "WebhookDispatcher":
        return cls(
            deliveries,
            webhooks,
            secret=settings.webhook_secret,
            max_retries=settings.webhook_max_retries,
            timeout=settings.webhook_timeout,
            initial_delay=settings.webhook_initial_delay,
            allow_localhost=settings.is_local,
            http_client=http_client,
        )

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------
    def _signing_secret(self, delivery: WebhookDelivery) -> str | None:
        if delivery.webhook_id:
            webhook = self._webhooks.get(delivery.webhook_id)
            if webhook is not None and webhook.secret:
                return webhook.secret
        return self._secret

    def _headers(self, delivery: WebhookDelivery) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "User-Agent": USER_AGENT,
            HEADER_EVENT: delivery.event_type,
            HEADER_TIMESTAMP: str(int(self._clock().timestamp())),
            HEADER_DELIVERY_ID: delivery.id,
        }
        secret = self._signing_secret(delivery)
        if secret:
            headers[HEADER_SIGNATURE] = sign_payload(delivery.body, secret)
        return headers

    async def _post(self, delivery: WebhookDelivery) -> httpx.Response:
        try:
            response = await self._client.post(
                delivery.url,
                content=delivery.body,
                headers=self._headers(delivery),
                timeout=self._timeout,
            )
        except httpx.TimeoutException as exc:
            raise WebhookDeliveryError(f"Request timed out after {self._timeout:g}s") from exc
        except httpx.HTTPError as exc:
            raise WebhookDeliveryError(f"Request failed: {exc}") from exc

        delivery.response_status = response.status_code
        delivery.response_body = response.text[:RESPONSE_BODY_LIMIT]
        if not 200 <= response.status_code < 300:
            raise WebhookDeliveryError(
                f"Destination responded with HTTP {response.status_code}",
                status_code=response.status_code,
                body=delivery.response_body,
            )
        return response

    def _build_delivery(self, payload: WebhookPayload, destination: Destination, event_type: str) -> WebhookDelivery:
        body = payload.body()
        return WebhookDelivery(
            id=uuid.uuid4().hex,
            url=destination.url,
            event_type=event_type,
            organization_id=payload.organization_id,
            job_id=payload.job_id,
            payload=payload.to_wire(),
            body=body,
            idempotency_key=idempotency_key(
                payload.organization_id,
                payload.configuration_id,
                event_type,
                payload.job_id,
                destination.url,
            ),
            payload_hash=sha256_bytes(body),
            webhook_id=destination.webhook_id,
        )

    def _schedule(self, delivery: WebhookDelivery) -> None:
        task = asyncio.create_task(self._run(delivery), name=f"webhook-{delivery.id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self, delivery: WebhookDelivery) -> None:
        try:
            await self.deliver(delivery)
        except Exception:
            logger.exception("Webhook delivery %s stopped unexpectedly", delivery.id)

    # ------------------------------------------------------------------
    # public API
    # ------------------------------------------------------------------
    def resolve(self, *, callback_url: str | None, configuration: Configuration | None) -> Destination | None:
        return resolve_destination(
            callback_url=callback_url,
            configuration=configuration,
            webhooks=self._webhooks,
            allow_localhost=self._allow_localhost,
        )

    async def dispatch(
        self,
        payload: WebhookPayload,
        *,
        configuration: Configuration | None,
        callback_url: str | None = None,
        event_type: str | None = None,
    ) -> WebhookDelivery | None:
        """Record a delivery for ``payload`` and start sending it.

        Returns ``None`` when no destination validates.  A payload that was
        already dispatched to the same destination returns the existing record
        without sending again.
        """

        destination = self.resolve(callback_url=callback_url, configuration=configuration)
        if destination is None:
            logger.info("No webhook destination for job %s", payload.job_id)
            return None

        delivery = self._build_delivery(payload, destination, event_type or event_for(payload))
        stored, created = self._deliveries.create_if_absent(delivery)
        if not created:
            logger.info(
                "Webhook for job %s (%s) already recorded as delivery %s",
                payload.job_id,
                stored.event_type,
                stored.id,
            )
            return stored

        logger.info("Dispatching %s for job %s to %s (%s)", stored.event_type, payload.job_id, stored.url, destination.source)
        self._schedule(stored)
        return stored

    async def deliver(self, delivery: WebhookDelivery) -> WebhookDelivery:
        """Send ``delivery`` until it succeeds or its attempts run out."""

        if delivery.id in self._in_flight:
            raise WebhookError(f"Delivery {delivery.id} is already in flight")
        self._in_flight.add(delivery.id)
        try:
            while True:
                delivery.attempts += 1
                delivery.last_attempt = self._clock()
                delivery.next_attempt = None
                try:
                    await self._post(delivery)
                except WebhookDeliveryError as exc:
                    delivery.error = str(exc)
                else:
                    delivery.status = DeliveryStatus.SUCCESS
                    delivery.error = None
                    self._deliveries.save(delivery)
                    if delivery.webhook_id:
                        self._webhooks.touch(delivery.webhook_id, delivery.last_attempt)
                    logger.info("Delivered webhook %s on attempt %s", delivery.id, delivery.attempts)
                    return delivery

                if delivery.attempts >= self._max_retries:
                    delivery.status = DeliveryStatus.FAILED
                    self._deliveries.save(delivery)
                    logger.error(
                        "Webhook %s to %s failed after %s attempt(s): %s",
                        delivery.id,
                        delivery.url,
                        delivery.attempts,
                        delivery.error,
                    )
                    return delivery

                delay = backoff_delay(delivery.attempts, self._initial_delay)
                delivery.next_attempt = delivery.last_attempt + timedelta(seconds=delay)
                self._deliveries.save(delivery)
                logger.warning(
                    "Webhook %s attempt %s/%s failed (%s), retrying in %gs",
                    delivery.id,
                    delivery.attempts,
                    self._max_retries,
                    delivery.error,
                    delay,
                )
                await self._sleep(delay)
        finally:
            self._in_flight.discard(delivery.id)

    async def replay(self, delivery_id: str) -> WebhookDelivery:
        """Reset a dead-lettered delivery and send it again."""

        delivery = self._deliveries.get(delivery_id)
        if delivery is None:
            raise WebhookError(f"Delivery {delivery_id} not found")
        if delivery.status is not DeliveryStatus.FAILED:
            raise WebhookError(f"Delivery {delivery_id} is {delivery.status.value}, only failed deliveries can be replayed")

        delivery.status = DeliveryStatus.PENDING
        delivery.attempts = 0
        delivery.error = None
        delivery.next_attempt = None
        delivery.response_status = None
        delivery.response_body = None
        self._deliveries.save(delivery)
        logger.info("Replaying webhook %s to %s", delivery.id, delivery.url)
        return await self.deliver(delivery)

    def dead_letters(self) -> list[WebhookDelivery]:
        return self._deliveries.list(DeliveryStatus.FAILED)

    async def drain(self) -> None:
        """Wait for every scheduled delivery to finish."""

        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        await self.drain()
        if self._owns_client:
            await self._client.aclose()
