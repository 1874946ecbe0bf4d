from __future__ import annotations

import hashlib
import json


def sha256_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def sha256_text(text: str) -> str:
    return sha256_bytes(text.encode("utf-8"))


def idempotency_key(
    organization_id: str,
    configuration_id: str,
    event_type: str,
    job_id: str,
    target_url: str,
) -> str:
    """Fingerprint of one logical notification to one destination."""

    basis = json.dumps([organization_id, configuration_id, event_type, job_id, target_url], separators=(",", ":"))
    return sha256_text(basis)
