"""Webhook receiver used to inspect deliveries during local development."""
from __future__ import annotations

import json
import logging
import uuid
from collections import deque
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, HTTPException, Request

from mutate.webhooks.signing import verify_signature

logger = logging.getLogger(__name__)

router = APIRouter(tags=["webhooks"])

RECORDED_HEADERS = (
    "content-type",
    "user-agent",
    "x-webhook-event",
    "x-mutate-timestamp",
    "x-mutate-delivery-id",
    "x-mutate-signature",
)


class WebhookHistory:
    """Most recent received webhooks, newest first."""

    def __init__(self, limit: int = 100) -> None:
        self._entries: deque[dict[str, Any]] = deque(maxlen=limit)

    def record(self, *, headers: dict[str, str], payload: Any, verified: bool | None) -> dict[str, Any]:
        entry = {
            "id": uuid.uuid4().hex,
            "receivedAt": datetime.now(timezone.utc).isoformat(),
            "headers": headers,
            "payload": payload,
            "verified": verified,
        }
        self._entries.appendleft(entry)
        return entry

    def list(self) -> list[dict[str, Any]]:
        return list(self._entries)

    def get(self, entry_id: str) -> dict[str, Any] | None:
        return next((entry for entry in self._entries if entry["id"] == entry_id), None)

    def clear(self) -> int:
        count = len(self._entries)
        self._entries.clear()
        return count


def _history(request: Request) -> WebhookHistory:
    return request.app.state.webhook_history


@router.post("/webhook")
async def receive_webhook(request: Request) -> dict:
    """Record one delivery, rejecting it when the signature does not verify."""
    body = await request.body()
    secret: str | None = request.app.state.receiver_secret

    verified: bool | None = None
    if secret:
        verified = verify_signature(body, secret, request.headers.get("x-mutate-signature"))
        if not verified:
            logger.warning("Rejected webhook with invalid signature")
            raise HTTPException(status_code=401, detail="Invalid webhook signature")

    try:
        payload = json.loads(body) if body else None
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Body must be valid JSON") from exc

    headers = {name: request.headers[name] for name in RECORDED_HEADERS if name in request.headers}
    entry = _history(request).record(headers=headers, payload=payload, verified=verified)
    logger.info("Received webhook %s (%s)", entry["id"], headers.get("x-webhook-event", "unknown event"))
    return {"received": True, "id": entry["id"]}


@router.get("/webhooks")
async def list_webhooks(request: Request) -> dict:
    items = _history(request).list()
    return {"items": items, "count": len(items)}


@router.get("/webhooks/{entry_id}")
async def get_webhook(entry_id: str, request: Request) -> dict:
    entry = _history(request).get(entry_id)
    if entry is None:
        raise HTTPException(status_code=404, detail="Webhook not found")
    return entry


@router.delete("/webhooks")
async def clear_webhooks(request: Request) -> dict:
    return {"cleared": _history(request).clear()}


@router.get("/health")
async def health() -> dict:
    return {"status": "ok"}
