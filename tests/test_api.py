"""
test_api.py — Tests for the HTTP surface.

Covers:
    • POST /api/v1/notifications (202, key derivation, header key, errors)
    • GET  /api/v1/notifications/{key}, /events, /channels
    • Error envelope for 400 / 404 / 422 / 503
    • Health probes

The application lifespan runs for real (in-memory backends, simulated
providers); each test then swaps in a dispatcher built from fakes.

Run with:
    pytest tests/test_api.py -v
"""

from __future__ import annotations

from typing import Optional

import pytest
from fastapi.testclient import TestClient

from backend.app.core.errors import PersistenceError
from backend.app.main import app
from backend.app.notifications.channels import (
    SimulatedEmailSender,
    SimulatedPushSender,
    SimulatedSmsSender,
)
from backend.app.notifications.contacts import InMemoryContactResolver, InMemoryTokenStore
from backend.app.notifications.dispatcher import NotificationDispatcher
from backend.app.notifications.models import Contact, NotificationChannel, NotificationRecord
from backend.app.notifications.store import InMemoryAttemptStore
from backend.app.notifications.templates import StaticTemplateResolver

WALLET_BODY = {
    "user_id": "user_1",
    "event": "wallet_funded",
    "payload": {"currency": "₦", "amount": "5,000", "balance": "12,500"},
}


class BrokenStore(InMemoryAttemptStore):
    async def create(self, record: NotificationRecord) -> bool:
        raise PersistenceError("database unavailable")


def _make_dispatcher(store: Optional[InMemoryAttemptStore] = None) -> NotificationDispatcher:
    contacts = InMemoryContactResolver({
        "user_1": Contact(email="ada@example.com", phone_number="08031234567", push_token="tok"),
    })
    return NotificationDispatcher(
        contacts=contacts,
        templates=StaticTemplateResolver(),
        store=store if store is not None else InMemoryAttemptStore(),
        email_sender=SimulatedEmailSender(),
        sms_sender=SimulatedSmsSender(),
        push_sender=SimulatedPushSender(),
        token_store=InMemoryTokenStore(),
    )


@pytest.fixture
def client():
    with TestClient(app) as c:
        app.state.dispatcher = _make_dispatcher()
        yield c


@pytest.fixture
def broken_client():
    with TestClient(app) as c:
        app.state.dispatcher = _make_dispatcher(BrokenStore())
        yield c


# ═══════════════════════════════════════════════════════════════════════════
# Section 1: Dispatch
# ═══════════════════════════════════════════════════════════════════════════

class TestDispatchEndpoint:
    """POST /api/v1/notifications"""

    def test_accepted(self, client):
        resp = client.post("/api/v1/notifications", json=WALLET_BODY)
        assert resp.status_code == 202
        data = resp.json()
        assert data["status"] == "accepted"
        assert data["idempotency_key"].startswith("user_1_wallet_funded_")
        assert set(data["channel_keys"]) == {"email", "sms", "in_app", "push"}
        assert data["channel_keys"]["sms"] == f"{data['idempotency_key']}_sms"

    def test_body_key_used(self, client):
        resp = client.post("/api/v1/notifications", json={**WALLET_BODY, "idempotency_key": "txn_1"})
        assert resp.json()["idempotency_key"] == "txn_1"
        assert resp.json()["channel_keys"]["push"] == "txn_1_push"

    def test_header_key_used(self, client):
        resp = client.post(
            "/api/v1/notifications", json=WALLET_BODY, headers={"Idempotency-Key": "hdr_1"},
        )
        assert resp.json()["idempotency_key"] == "hdr_1"

    def test_body_key_beats_header(self, client):
        resp = client.post(
            "/api/v1/notifications",
            json={**WALLET_BODY, "idempotency_key": "body_1"},
            headers={"Idempotency-Key": "hdr_1"},
        )
        assert resp.json()["idempotency_key"] == "body_1"

    def test_records_persisted(self, client):
        client.post("/api/v1/notifications", json={**WALLET_BODY, "idempotency_key": "txn_2"})
        store = app.state.dispatcher.store
        assert len(store) == 4
        assert {r.channel for r in store.all()} == set(NotificationChannel)

    def test_repeat_key_no_duplicates(self, client):
        for _ in range(2):
            resp = client.post("/api/v1/notifications", json={**WALLET_BODY, "idempotency_key": "dup"})
            assert resp.status_code == 202
        assert len(app.state.dispatcher.store) == 4

    def test_unknown_user_accepted_silently(self, client):
        resp = client.post("/api/v1/notifications", json={**WALLET_BODY, "user_id": "ghost"})
        assert resp.status_code == 202
        assert len(app.state.dispatcher.store) == 0

    def test_unknown_event_400(self, client):
        resp = client.post("/api/v1/notifications", json={**WALLET_BODY, "event": "order_shipped"})
        assert resp.status_code == 400
        error = resp.json()["error"]
        assert error["code"] == "UNKNOWN_EVENT"
        assert error["message"] == "Invalid event type: order_shipped"
        assert len(app.state.dispatcher.store) == 0

    def test_missing_fields_422(self, client):
        resp = client.post("/api/v1/notifications", json={"event": "wallet_funded"})
        assert resp.status_code == 422

    def test_persistence_failure_503(self, broken_client):
        resp = broken_client.post("/api/v1/notifications", json=WALLET_BODY)
        assert resp.status_code == 503
        assert resp.json()["error"]["code"] == "PERSISTENCE_ERROR"


# ═══════════════════════════════════════════════════════════════════════════
# Section 2: Lookups
# ═══════════════════════════════════════════════════════════════════════════

class TestLookupEndpoints:
    """GET endpoints."""

    def test_get_record(self, client):
        client.post("/api/v1/notifications", json={**WALLET_BODY, "idempotency_key": "txn_3"})
        resp = client.get("/api/v1/notifications/txn_3_in_app")
        assert resp.status_code == 200
        data = resp.json()
        assert data["idempotency_key"] == "txn_3_in_app"
        assert data["channel"] == "in_app"
        assert data["status"] in ("pending", "sent")
        assert data["message"] == "₦5,000 added to your wallet."

    def test_get_missing_404(self, client):
        resp = client.get("/api/v1/notifications/nope_email")
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "NOT_FOUND"

    def test_events(self, client):
        resp = client.get("/api/v1/notifications/events")
        assert resp.status_code == 200
        events = {e["event"]: e for e in resp.json()["events"]}
        assert len(events) == 7
        assert events["login_alert"]["channels"]["sms"] == "fallback"
        assert events["wallet_funded"]["channels"]["email"] == "dedicated"
        assert events["wallet_funded"]["channels"]["push"] == "fallback"
        assert events["promo_offer"]["priority"] == "low"

    def test_channels(self, client):
        resp = client.get("/api/v1/notifications/channels")
        assert resp.json()["channels"] == ["email", "sms", "in_app", "push"]
        assert resp.json()["fallback_template_channel"] == "in_app"


# ═══════════════════════════════════════════════════════════════════════════
# Section 3: Health
# ═══════════════════════════════════════════════════════════════════════════

class TestHealth:
    """Health probes with in-memory backends."""

    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        names = [c["name"] for c in resp.json()["components"]]
        assert "dispatcher" in names
        assert "database" not in names

    def test_live(self, client):
        assert client.get("/health/live").json() == {"status": "alive"}

    def test_ready(self, client):
        assert client.get("/health/ready").status_code == 200

    def test_request_id_header(self, client):
        resp = client.get("/api/v1/notifications/channels", headers={"X-Request-ID": "abc123"})
        assert resp.headers["X-Request-ID"] == "abc123"
