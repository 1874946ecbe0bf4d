from __future__ import annotations

import json
import sys
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

from fastapi.testclient import TestClient

from mutate.app import create_app
from mutate.webhooks import sign_payload

BODY = json.dumps({"jobId": "job-1", "status": "completed"}).encode("utf-8")


def _client(**kwargs) -> TestClient:
    return TestClient(create_app(**kwargs))


def test_signed_webhook_is_recorded():
    client = _client(secret="receiver-secret")

    response = client.post(
        "/webhook",
        content=BODY,
        headers={
            "Content-Type": "application/json",
            "X-Webhook-Event": "transformation.completed",
            "X-Mutate-Signature": sign_payload(BODY, "receiver-secret"),
        },
    )

    assert response.status_code == 200
    entry_id = response.json()["id"]

    listing = client.get("/webhooks").json()
    assert listing["count"] == 1
    (entry,) = listing["items"]
    assert entry["id"] == entry_id
    assert entry["verified"] is True
    assert entry["payload"] == {"jobId": "job-1", "status": "completed"}
    assert entry["headers"]["x-webhook-event"] == "transformation.completed"

    assert client.get(f"/webhooks/{entry_id}").json() == entry


def test_bad_signature_is_rejected():
    client = _client(secret="receiver-secret")

    response = client.post("/webhook", content=BODY, headers={"X-Mutate-Signature": sign_payload(BODY, "other")})
    missing = client.post("/webhook", content=BODY)

    assert response.status_code == 401
    assert missing.status_code == 401
    assert client.get("/webhooks").json()["count"] == 0


def test_unsigned_webhooks_accepted_without_secret(monkeypatch):
    monkeypatch.delenv("RECEIVER_WEBHOOK_SECRET", raising=False)
    client = _client()

    response = client.post("/webhook", content=BODY)

    assert response.status_code == 200
    assert client.get("/webhooks").json()["items"][0]["verified"] is None


def test_secret_from_environment(monkeypatch):
    monkeypatch.setenv("RECEIVER_WEBHOOK_SECRET", "env-secret")
    client = _client()

    assert client.post("/webhook", content=BODY).status_code == 401
    signed = client.post("/webhook", content=BODY, headers={"X-Mutate-Signature": sign_payload(BODY, "env-secret")})
    assert signed.status_code == 200


def test_invalid_json_is_a_bad_request(monkeypatch):
    monkeypatch.delenv("RECEIVER_WEBHOOK_SECRET", raising=False)
    client = _client()

    assert client.post("/webhook", content=b"{not json").status_code == 400


def test_history_lookup_and_clear(monkeypatch):
    monkeypatch.delenv("RECEIVER_WEBHOOK_SECRET", raising=False)
    client = _client()
    client.post("/webhook", content=BODY)
    client.post("/webhook", content=BODY)

    assert client.get("/webhooks/unknown").status_code == 404
    assert client.delete("/webhooks").json() == {"cleared": 2}
    assert client.get("/webhooks").json() == {"items": [], "count": 0}


def test_history_is_bounded_and_newest_first(monkeypatch):
    monkeypatch.delenv("RECEIVER_WEBHOOK_SECRET", raising=False)
    client = _client(history_limit=2)

    ids = [client.post("/webhook", content=json.dumps({"n": n}).encode()).json()["id"] for n in range(3)]

    items = client.get("/webhooks").json()["items"]
    assert [item["id"] for item in items] == [ids[2], ids[1]]


def test_health_and_root():
    client = _client(secret="receiver-secret")

    assert client.get("/health").json() == {"status": "ok"}
    assert client.get("/").json()["health"] == "/health"
