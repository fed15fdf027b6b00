"""
Stripe payment client.

verify() turns a Checkout session reference into one of
succeeded / pending / failed. A network error, a timeout or any other
client-side failure is classified as pending, never as failed: only the
provider itself can tell us the customer's payment failed.

The Stripe SDK is blocking, so every call runs in a worker thread and is
bounded by its own timeout.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Optional

import stripe

from clubbot.models.models import PaymentMethod, PaymentStatus, PaymentType
from clubbot.services.exceptions import PaymentSessionError
from clubbot.services.schemas import PaymentInfo, RegistrationSnapshot

logger = logging.getLogger(__name__)


class VerificationStatus:
    SUCCEEDED = "succeeded"
    PENDING   = "pending"
    FAILED    = "failed"


_PAID_STATUSES = ("paid", "no_payment_required")
_FAILED_SESSION_STATUSES = ("expired",)
# Payment intent states after a declined or abandoned asynchronous payment
_FAILED_INTENT_STATUSES = ("canceled", "requires_payment_method")


@dataclass(frozen=True)
class PaymentVerification:
    status: str
    session_id: str
    amount_cents: Optional[int] = None
    currency: Optional[str] = None
    payment_reference: Optional[str] = None
    payment_type: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == VerificationStatus.SUCCEEDED

    def to_payment_info(self) -> PaymentInfo:
        """Payment sub-record derived from a confirmed payment."""
        amount = (self.amount_cents or 0) / 100
        notes = PaymentType.LABELS.get(self.payment_type) if self.payment_type else None
        return PaymentInfo(
            method=PaymentMethod.CARD,
            status=PaymentStatus.COMPLETED,
            amount=amount,
            date=datetime.now(timezone.utc).isoformat(),
            reference=self.payment_reference or self.session_id,
            notes=notes,
        )


@dataclass(frozen=True)
class CheckoutLink:
    session_id: str
    url: str


def session_field(obj: Any, name: str) -> Any:
    """Read a field from a Stripe object or a plain dict."""
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


def classify_session(session: Any) -> str:
    """Map a Checkout session object to a VerificationStatus."""
    if session_field(session, "payment_status") in _PAID_STATUSES:
        return VerificationStatus.SUCCEEDED
    if session_field(session, "status") in _FAILED_SESSION_STATUSES:
        return VerificationStatus.FAILED
    intent = session_field(session, "payment_intent")
    if (
        session_field(session, "status") == "complete"
        and intent is not None
        and not isinstance(intent, str)
        and session_field(intent, "status") in _FAILED_INTENT_STATUSES
    ):
        return VerificationStatus.FAILED
    return VerificationStatus.PENDING


class PaymentConfirmationClient:
    """
    Stateless wrapper around Stripe Checkout.

    Parameters
    ----------
    api_key          : Stripe secret key
    timeout          : per-call budget in seconds
    retrieve_session : override for stripe.checkout.Session.retrieve (tests)
    create_session   : override for stripe.checkout.Session.create (tests)
    """

    def __init__(
        self,
        api_key: Optional[str],
        timeout: float = 10.0,
        retrieve_session: Optional[Callable[..., Any]] = None,
        create_session: Optional[Callable[..., Any]] = None,
        currency: str = "eur",
        full_amount_cents: int = 26000,
        partial_amount_cents: int = 10000,
        success_url: str = "https://t.me/",
        cancel_url: str = "https://t.me/",
    ) -> None:
        self._api_key = api_key
        self._timeout = timeout
        self._retrieve = retrieve_session or stripe.checkout.Session.retrieve
        self._create = create_session or stripe.checkout.Session.create
        self._currency = currency
        self._amounts = {
            PaymentType.FULL: full_amount_cents,
            PaymentType.PARTIAL: partial_amount_cents,
        }
        self._success_url = success_url
        self._cancel_url = cancel_url

    @property
    def currency(self) -> str:
        return self._currency

    def amount_for(self, payment_type: str) -> int:
        return self._amounts.get(payment_type, self._amounts[PaymentType.FULL])

    async def _run(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        return await asyncio.wait_for(
            asyncio.to_thread(func, *args, **kwargs),
            self._timeout,
        )

    async def verify(self, session_reference: str) -> PaymentVerification:
        """Ask Stripe whether the Checkout session was paid."""
        try:
            session = await self._run(
                self._retrieve,
                session_reference,
                api_key=self._api_key,
                expand=["payment_intent"],
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Payment verification for %s timed out after %ss — treating as pending",
                session_reference, self._timeout,
            )
            return PaymentVerification(VerificationStatus.PENDING, session_reference)
        except stripe.StripeError as exc:
            logger.warning(
                "Stripe error verifying %s (%s) — treating as pending: %s",
                session_reference, type(exc).__name__, exc,
            )
            return PaymentVerification(VerificationStatus.PENDING, session_reference)
        except Exception as exc:
            logger.warning(
                "Unexpected error verifying %s — treating as pending: %s",
                session_reference, exc,
            )
            return PaymentVerification(VerificationStatus.PENDING, session_reference)

        status = classify_session(session)
        metadata = session_field(session, "metadata") or {}
        payment_intent = session_field(session, "payment_intent")
        if payment_intent is not None and not isinstance(payment_intent, str):
            payment_intent = session_field(payment_intent, "id")

        return PaymentVerification(
            status=status,
            session_id=session_field(session, "id") or session_reference,
            amount_cents=session_field(session, "amount_total"),
            currency=session_field(session, "currency"),
            payment_reference=payment_intent,
            payment_type=session_field(metadata, "payment_type"),
        )

    async def create_session(
        self,
        registration: RegistrationSnapshot,
        payment_type: str = PaymentType.FULL,
    ) -> CheckoutLink:
        """
        Open a Checkout session for a stored registration.
        The idempotency key makes a repeated click reuse the same session.
        """
        if registration.id is None:
            raise PaymentSessionError("Registration must be stored before payment")

        amount = self.amount_for(payment_type)
        label = PaymentType.LABELS.get(payment_type, payment_type)
        try:
            session = await self._run(
                self._create,
                api_key=self._api_key,
                mode="payment",
                payment_method_types=["card"],
                line_items=[{
                    "price_data": {
                        "currency": self._currency,
                        "product_data": {
                            "name": f"Inscripció {registration.season or ''} — {label}".strip(),
                        },
                        "unit_amount": amount,
                    },
                    "quantity": 1,
                }],
                client_reference_id=str(registration.id),
                customer_email=registration.email or None,
                metadata={
                    "registration_id": str(registration.id),
                    "payment_type": payment_type,
                    "player_name": registration.player_name,
                },
                success_url=self._success_url,
                cancel_url=self._cancel_url,
                idempotency_key=f"registration-{registration.id}-{payment_type}",
            )
        except asyncio.TimeoutError as exc:
            raise PaymentSessionError("Payment provider did not answer in time") from exc
        except stripe.StripeError as exc:
            logger.error("Could not create checkout session for registration %d: %s", registration.id, exc)
            raise PaymentSessionError(str(exc)) from exc

        logger.info(
            "Checkout session %s created for registration %d (%s, %d cents)",
            session_field(session, "id"), registration.id, payment_type, amount,
        )
        return CheckoutLink(session_id=session_field(session, "id"), url=session_field(session, "url"))
