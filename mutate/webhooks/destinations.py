"""Destination resolution for outgoing webhooks.

Candidates are tried in a fixed order: the per-job callback URL, the
organization webhook selected on the configuration, then the configuration's
own callback URL.  The first candidate whose URL validates wins.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal
from urllib.parse import urlparse

from mutate.core.errors import WebhookValidationError
from mutate.core.schema import Configuration
from mutate.infrastructure.webhooks import WebhookStore

logger = logging.getLogger(__name__)

DestinationSource = Literal["callback", "organization_webhook", "configuration"]

LOCAL_HOSTS = {"localhost", "127.0.0.1"}


@dataclass(slots=True)
class Destination:
    url: str
    source: DestinationSource
    webhook_id: str | None = None
    secret: str | None = None


def validate_webhook_url(url: str, *, allow_localhost: bool) -> str:
    parsed = urlparse(url.strip())
    if parsed.scheme not in {"http", "https"}:
        raise WebhookValidationError(url, f"Unsupported URL scheme {parsed.scheme or '(none)'!r}")
    if not parsed.hostname:
        raise WebhookValidationError(url, "URL has no host")
    if not allow_localhost and parsed.hostname.lower() in LOCAL_HOSTS:
        raise WebhookValidationError(url, "Local addresses are not allowed in this environment")
    return url.strip()


def candidate_destinations(
    *,
    callback_url: str | None,
    configuration: Configuration | None,
    webhooks: WebhookStore,
) -> list[Destination]:
    candidates: list[Destination] = []
    if callback_url:
        candidates.append(Destination(url=callback_url, source="callback"))

    if configuration is not None and configuration.webhook_id:
        webhook = webhooks.get(configuration.webhook_id)
        if webhook is None:
            logger.warning("Organization webhook %s not found", configuration.webhook_id)
        elif not webhook.is_active:
            logger.warning("Organization webhook %s is inactive, skipping", webhook.id)
        elif webhook.organization_id != configuration.organization_id:
            logger.warning("Organization webhook %s belongs to another organization, skipping", webhook.id)
        else:
            candidates.append(
                Destination(
                    url=webhook.url,
                    source="organization_webhook",
                    webhook_id=webhook.id,
                    secret=webhook.secret,
                )
            )

    if configuration is not None and configuration.callback_url:
        candidates.append(Destination(url=configuration.callback_url, source="configuration"))
    return candidates


def resolve_destination(
    *,
    callback_url: str | None,
    configuration: Configuration | None,
    webhooks: WebhookStore,
    allow_localhost: bool,
) -> Destination | None:
    for candidate in candidate_destinations(
        callback_url=callback_url,
        configuration=configuration,
        webhooks=webhooks,
    ):
        try:
            candidate.url = validate_webhook_url(candidate.url, allow_localhost=allow_localhost)
        except WebhookValidationError as exc:
            logger.warning("Skipping %s destination %s: %s", candidate.source, exc.url, exc.reason)
            continue
        return candidate
    return None
