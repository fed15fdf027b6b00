"""
Integration tests — Stripe webhook endpoint.

Requests are signed the way Stripe signs them (HMAC-SHA256 over
"<timestamp>.<payload>") and served through aiohttp's TestServer.
"""
from __future__ import annotations

import hashlib
import hmac
import json
import time
from typing import Any, Dict, Optional

from aiohttp.test_utils import TestClient, TestServer

from clubbot.models.models import RegistrationStatus
from clubbot.services.exceptions import ErrorClass
from clubbot.webhook import build_webhook_app, registration_id_from

SECRET = "whsec_test_secret"
PATH = "/stripe/webhook"


def _event(event_type: str, session: Dict[str, Any]) -> str:
    return json.dumps({
        "id": "evt_test_1",
        "object": "event",
        "type": event_type,
        "data": {"object": dict(session, object="checkout.session")},
    })


def _signature(payload: str, secret: str = SECRET, timestamp: Optional[int] = None) -> str:
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.{payload}".encode()
    digest = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


async def _post(app, payload: str, signature: Optional[str] = None):
    async with TestClient(TestServer(app)) as client:
        resp = await client.post(
            PATH,
            data=payload.encode(),
            headers={"Stripe-Signature": signature or _signature(payload)},
        )
        return resp.status, await resp.text()


class TestRegistrationReference:
    def test_client_reference_id(self) -> None:
        assert registration_id_from({"client_reference_id": "7"}) == 7

    def test_metadata_fallback(self) -> None:
        assert registration_id_from({"client_reference_id": None, "metadata": {"registration_id": "9"}}) == 9

    def test_missing_or_garbage(self) -> None:
        assert registration_id_from({}) is None
        assert registration_id_from({"client_reference_id": "abc"}) is None


class TestStripeWebhook:
    async def test_invalid_signature_rejected(self, make_orchestrator) -> None:
        app = build_webhook_app(make_orchestrator(), SECRET, PATH)
        payload = _event("checkout.session.completed", {"id": "sess_abc", "client_reference_id": "1"})

        status, _ = await _post(app, payload, signature=_signature(payload, secret="whsec_other"))

        assert status == 400

    async def test_malformed_payload_rejected(self, make_orchestrator) -> None:
        app = build_webhook_app(make_orchestrator(), SECRET, PATH)
        status, _ = await _post(app, "not json")
        assert status == 400

    async def test_completed_session_converts_registration(
        self, gateway, make_fields, make_orchestrator, fake_stripe, members
    ) -> None:
        stored = await gateway.insert(make_fields())
        app = build_webhook_app(make_orchestrator(), SECRET, PATH)
        payload = _event(
            "checkout.session.completed",
            {"id": "sess_abc", "client_reference_id": str(stored.id), "payment_status": "paid"},
        )

        status, text = await _post(app, payload)

        assert status == 200
        assert text == "ok"
        assert fake_stripe.retrieved == ["sess_abc"]
        assert members.calls == [stored.id]
        persisted = await gateway.read(stored.id)
        assert persisted.status == RegistrationStatus.ACCEPTED
        assert persisted.processed is True

    async def test_event_body_is_not_trusted(
        self, gateway, make_fields, make_orchestrator, fake_stripe, make_session, members
    ) -> None:
        stored = await gateway.insert(make_fields())
        fake_stripe.session = make_session(status="open", payment_status="unpaid")
        app = build_webhook_app(make_orchestrator(), SECRET, PATH)
        payload = _event(
            "checkout.session.completed",
            {"id": "sess_abc", "client_reference_id": str(stored.id), "payment_status": "paid"},
        )

        status, _ = await _post(app, payload)

        assert status == 200
        assert members.calls == []
        assert (await gateway.read(stored.id)).status == RegistrationStatus.PENDING

    async def test_unhandled_event_ignored(self, make_orchestrator, fake_stripe) -> None:
        app = build_webhook_app(make_orchestrator(), SECRET, PATH)
        payload = _event("customer.created", {"id": "cus_1"})

        status, text = await _post(app, payload)

        assert status == 200
        assert text == "ignored"
        assert fake_stripe.retrieved == []

    async def test_unknown_registration_acknowledged(self, make_orchestrator) -> None:
        app = build_webhook_app(make_orchestrator(), SECRET, PATH)
        payload = _event("checkout.session.completed", {"id": "sess_abc", "client_reference_id": "404"})

        status, text = await _post(app, payload)

        assert status == 200
        assert text == "unknown registration"

    async def test_unstored_outcome_asks_for_retry(
        self, gateway, make_fields, make_orchestrator, failing_chain
    ) -> None:
        stored = await gateway.insert(make_fields())
        orchestrator = make_orchestrator(update_chain=failing_chain(ErrorClass.AUTH).chain())
        app = build_webhook_app(orchestrator, SECRET, PATH)
        payload = _event("checkout.session.completed", {"id": "sess_abc", "client_reference_id": str(stored.id)})

        status, _ = await _post(app, payload)

        assert status == 500
        assert (await gateway.read(stored.id)).processed is False
