"""
Stripe webhook endpoint.

Checkout events are only a trigger: the handler never trusts the event body
for the payment outcome. It extracts the registration id and session id and
lets the orchestrator verify the session with Stripe itself.

Responses
---------
400 — bad signature or malformed payload
500 — the outcome could not be stored yet; Stripe retries the delivery
200 — everything else (including events for unknown registrations)
"""
from __future__ import annotations

import logging
from typing import Any, Optional

import stripe
from aiohttp import web

from clubbot.models.models import SyncState
from clubbot.services.exceptions import RegistrationNotFound, RegistrationRejectedByStore
from clubbot.services.orchestrator import RegistrationOrchestrator
from clubbot.services.payment_client import session_field

logger = logging.getLogger(__name__)

ORCHESTRATOR_KEY = web.AppKey("orchestrator", RegistrationOrchestrator)
WEBHOOK_SECRET_KEY = web.AppKey("webhook_secret", str)

HANDLED_EVENTS = frozenset({
    "checkout.session.completed",
    "checkout.session.async_payment_succeeded",
    "checkout.session.async_payment_failed",
    "checkout.session.expired",
})


def registration_id_from(session: Any) -> Optional[int]:
    """client_reference_id, falling back to metadata.registration_id."""
    raw = session_field(session, "client_reference_id")
    if not raw:
        raw = session_field(session_field(session, "metadata") or {}, "registration_id")
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


async def stripe_webhook(request: web.Request) -> web.Response:
    payload = await request.read()
    signature = request.headers.get("Stripe-Signature", "")
    try:
        event = stripe.Webhook.construct_event(
            payload=payload,
            sig_header=signature,
            secret=request.app[WEBHOOK_SECRET_KEY],
        )
    except stripe.SignatureVerificationError as exc:
        logger.warning("Rejected webhook with invalid signature: %s", exc)
        return web.Response(status=400, text="invalid signature")
    except ValueError as exc:
        logger.warning("Rejected malformed webhook payload: %s", exc)
        return web.Response(status=400, text="invalid payload")

    event_type = event.type
    if event_type not in HANDLED_EVENTS:
        logger.debug("Ignoring webhook event %s", event_type)
        return web.Response(text="ignored")

    session = event.data.object
    session_id = session_field(session, "id")
    registration_id = registration_id_from(session)
    if registration_id is None or not session_id:
        logger.warning("Webhook %s without a registration reference (session %s)", event_type, session_id)
        return web.Response(text="no registration")

    orchestrator = request.app[ORCHESTRATOR_KEY]
    try:
        record = await orchestrator.confirm_payment_and_convert(registration_id, session_id)
    except RegistrationNotFound:
        logger.warning("Webhook %s for unknown registration %d", event_type, registration_id)
        return web.Response(text="unknown registration")
    except RegistrationRejectedByStore as exc:
        logger.error("Store refused payment update for registration %d: %s", registration_id, exc)
        return web.Response(text="rejected")

    if record.sync_state == SyncState.LOCALLY_AHEAD:
        logger.warning(
            "Payment outcome for registration %d not stored yet; asking Stripe to retry",
            registration_id,
        )
        return web.Response(status=500, text="retry")

    logger.info(
        "Webhook %s processed for registration %d → %s (processed=%s)",
        event_type, registration_id, record.status, record.processed,
    )
    return web.Response(text="ok")


def build_webhook_app(
    orchestrator: RegistrationOrchestrator,
    webhook_secret: str,
    path: str = "/stripe/webhook",
) -> web.Application:
    app = web.Application()
    app[ORCHESTRATOR_KEY] = orchestrator
    app[WEBHOOK_SECRET_KEY] = webhook_secret
    app.router.add_post(path, stripe_webhook)
    return app


async def start_webhook_server(app: web.Application, host: str, port: int) -> web.AppRunner:
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
    logger.info("Stripe webhook listening on %s:%d", host, port)
    return runner
