from __future__ import annotations

import hmac

SIGNATURE_PREFIX = "sha256="


def compute_signature(body: bytes, secret: str) -> str:
    """Hex HMAC-SHA256 of ``body`` keyed with ``secret``."""

    return hmac.new(secret.encode("utf-8"), body, digestmod="sha256").hexdigest()


def sign_payload(body: bytes, secret: str) -> str:
    return f"{SIGNATURE_PREFIX}{compute_signature(body, secret)}"


def verify_signature(body: bytes, secret: str, signature: str | None) -> bool:
    if not signature:
        return False
    expected = sign_payload(body, secret)
    return hmac.compare_digest(expected.encode("utf-8"), signature.strip().encode("utf-8"))
