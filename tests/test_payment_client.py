"""
Unit tests — Stripe payment confirmation client.

Stripe is replaced by the FakeStripe callables from conftest.py; no network.

Coverage:
  - Session classification (paid / open / expired / failed async payment)
  - Timeouts and Stripe errors are pending, never failed
  - Idempotent verification
  - Checkout session creation (amounts, metadata, idempotency key)
"""
from __future__ import annotations

import time

import pytest
import stripe

from clubbot.models.models import PaymentMethod, PaymentStatus, PaymentType
from clubbot.services.exceptions import PaymentSessionError
from clubbot.services.payment_client import (
    PaymentConfirmationClient,
    VerificationStatus,
    classify_session,
)
from clubbot.services.schemas import RegistrationSnapshot


class TestClassifySession:
    def test_paid(self, make_session) -> None:
        assert classify_session(make_session()) == VerificationStatus.SUCCEEDED

    def test_no_payment_required(self, make_session) -> None:
        assert classify_session(make_session(payment_status="no_payment_required")) == VerificationStatus.SUCCEEDED

    def test_open_session_is_pending(self, make_session) -> None:
        session = make_session(status="open", payment_status="unpaid")
        assert classify_session(session) == VerificationStatus.PENDING

    def test_async_payment_processing_is_pending(self, make_session) -> None:
        session = make_session(payment_status="unpaid", payment_intent={"id": "pi_1", "status": "processing"})
        assert classify_session(session) == VerificationStatus.PENDING

    def test_expired_session_failed(self, make_session) -> None:
        session = make_session(status="expired", payment_status="unpaid")
        assert classify_session(session) == VerificationStatus.FAILED

    def test_declined_async_payment_failed(self, make_session) -> None:
        session = make_session(
            payment_status="unpaid",
            payment_intent={"id": "pi_1", "status": "requires_payment_method"},
        )
        assert classify_session(session) == VerificationStatus.FAILED


class TestVerify:
    async def test_paid_session_succeeds(self, payments, fake_stripe) -> None:
        v = await payments.verify("sess_abc")

        assert v.succeeded
        assert v.amount_cents == 26000
        assert v.payment_reference == "pi_123"
        assert fake_stripe.retrieved == ["sess_abc"]

    async def test_payment_info_from_verification(self, payments) -> None:
        info = (await payments.verify("sess_abc")).to_payment_info()

        assert info.method == PaymentMethod.CARD
        assert info.status == PaymentStatus.COMPLETED
        assert info.amount == 260.0
        assert info.reference == "pi_123"
        assert info.notes == PaymentType.LABELS[PaymentType.FULL]

    async def test_expanded_payment_intent_reference(self, payments, fake_stripe, make_session) -> None:
        fake_stripe.session = make_session(payment_intent={"id": "pi_999", "status": "succeeded"})
        v = await payments.verify("sess_abc")
        assert v.payment_reference == "pi_999"

    async def test_timeout_is_pending(self, make_session) -> None:
        def slow_retrieve(reference, **kwargs):
            time.sleep(0.3)
            return make_session(reference)

        client = PaymentConfirmationClient("sk_test", timeout=0.05, retrieve_session=slow_retrieve)
        v = await client.verify("sess_slow")

        assert v.status == VerificationStatus.PENDING
        assert v.session_id == "sess_slow"

    async def test_stripe_error_is_pending(self, payments, fake_stripe) -> None:
        fake_stripe.error = stripe.APIConnectionError("network down")
        assert (await payments.verify("sess_abc")).status == VerificationStatus.PENDING

    async def test_unexpected_error_is_pending(self, payments, fake_stripe) -> None:
        fake_stripe.error = RuntimeError("boom")
        assert (await payments.verify("sess_abc")).status == VerificationStatus.PENDING

    async def test_verification_is_idempotent(self, payments, fake_stripe) -> None:
        first = await payments.verify("sess_abc")
        second = await payments.verify("sess_abc")

        assert first.status == second.status == VerificationStatus.SUCCEEDED
        assert fake_stripe.retrieved == ["sess_abc", "sess_abc"]

    async def test_status_follows_provider_change(self, payments, fake_stripe, make_session) -> None:
        fake_stripe.session = make_session(status="open", payment_status="unpaid")
        assert (await payments.verify("sess_abc")).status == VerificationStatus.PENDING

        fake_stripe.session = make_session()
        assert (await payments.verify("sess_abc")).status == VerificationStatus.SUCCEEDED


class TestCreateSession:
    async def test_full_payment_session(self, payments, fake_stripe) -> None:
        registration = RegistrationSnapshot(id=7, player_name="Pau", email="a@b.cat", season="2024-2025")
        link = await payments.create_session(registration, PaymentType.FULL)

        assert link.session_id == "cs_test_1"
        assert link.url.startswith("https://")
        call = fake_stripe.created[0]
        assert call["client_reference_id"] == "7"
        assert call["metadata"]["registration_id"] == "7"
        assert call["line_items"][0]["price_data"]["unit_amount"] == 26000
        assert call["idempotency_key"] == "registration-7-full"

    async def test_partial_amount(self, payments) -> None:
        assert payments.amount_for(PaymentType.PARTIAL) == 10000
        assert payments.amount_for("unknown") == 26000

    async def test_unsaved_registration_rejected(self, payments) -> None:
        with pytest.raises(PaymentSessionError):
            await payments.create_session(RegistrationSnapshot(), PaymentType.FULL)

    async def test_stripe_failure_raises_session_error(self, payments, fake_stripe) -> None:
        fake_stripe.error = stripe.InvalidRequestError("bad amount", param="unit_amount")
        with pytest.raises(PaymentSessionError):
            await payments.create_session(RegistrationSnapshot(id=1), PaymentType.FULL)
