"""
Shared pytest fixtures for the registration bot tests.

Sets required environment variables BEFORE any clubbot module is imported so
that pydantic-settings and SQLAlchemy engine initialisation use safe test values.
"""
from __future__ import annotations

import asyncio
import os
from typing import Any, AsyncGenerator, Dict, List, Optional

# ── Set env vars before any clubbot import ────────────────────────────────────
os.environ.setdefault("BOT_TOKEN", "test-token-for-pytest")
os.environ.setdefault("ADMIN_IDS", "123456789")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

# ── Third-party ───────────────────────────────────────────────────────────────
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# ── Clubbot imports (safe after env vars are set) ─────────────────────────────
from clubbot.models.base import Base
from clubbot.services.exceptions import StoreError
from clubbot.services.member_service import MemberService
from clubbot.services.orchestrator import KeyedLocks, RegistrationOrchestrator
from clubbot.services.payment_client import PaymentConfirmationClient
from clubbot.services.projection import OptimisticProjection
from clubbot.services.schemas import MemberSnapshot, RegistrationSnapshot
from clubbot.services.store_gateway import RegistrationGateway
from clubbot.services.write_chain import (
    Strategy,
    Transition,
    WriteFallbackChain,
    build_create_chain,
    build_update_chain,
)


# ── DB fixtures ───────────────────────────────────────────────────────────────

@pytest.fixture
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """
    Session factory over an isolated SQLite file. A file (not :memory:) is
    used because the gateway opens a new connection per transaction and every
    in-memory connection would see its own empty database.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    try:
        yield factory
    finally:
        await engine.dispose()


@pytest.fixture
async def async_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def gateway(session_factory) -> RegistrationGateway:
    return RegistrationGateway(session_factory)


# ── Data helpers ──────────────────────────────────────────────────────────────

def registration_fields(**overrides: Any) -> Dict[str, Any]:
    fields: Dict[str, Any] = dict(
        telegram_id=555001,
        player_name="Pau Garcia Puig",
        birth_date="2014-05-12",
        player_dni="12345678Z",
        team="Aleví",
        parent_name="Marta Puig Soler",
        contact_phone="612345678",
        email="marta@example.com",
        accept_terms=True,
        season="2024-2025",
    )
    fields.update(overrides)
    return fields


@pytest.fixture
def make_fields():
    """Factory fixture — returns a callable that builds registration fields."""
    return registration_fields


def paid_session(reference: str = "sess_abc", **overrides: Any) -> Dict[str, Any]:
    """Checkout session payload as Stripe returns it for a paid session."""
    session: Dict[str, Any] = {
        "id": reference,
        "status": "complete",
        "payment_status": "paid",
        "amount_total": 26000,
        "currency": "eur",
        "payment_intent": "pi_123",
        "metadata": {"payment_type": "full"},
    }
    session.update(overrides)
    return session


# ── Fakes ─────────────────────────────────────────────────────────────────────

class FakeStripe:
    """Stand-in for stripe.checkout.Session.retrieve / create."""

    def __init__(self, session: Optional[Dict[str, Any]] = None) -> None:
        self.session = session if session is not None else paid_session()
        self.retrieved: List[str] = []
        self.created: List[Dict[str, Any]] = []
        self.error: Optional[Exception] = None

    def retrieve(self, reference: str, **kwargs: Any) -> Dict[str, Any]:
        self.retrieved.append(reference)
        if self.error is not None:
            raise self.error
        return dict(self.session, id=reference)

    def create(self, **kwargs: Any) -> Dict[str, Any]:
        self.created.append(kwargs)
        if self.error is not None:
            raise self.error
        return {"id": "cs_test_1", "url": "https://checkout.stripe.test/cs_test_1"}


@pytest.fixture
def fake_stripe() -> FakeStripe:
    return FakeStripe()


@pytest.fixture
def payments(fake_stripe) -> PaymentConfirmationClient:
    return PaymentConfirmationClient(
        api_key="sk_test_dummy",
        timeout=1.0,
        retrieve_session=fake_stripe.retrieve,
        create_session=fake_stripe.create,
    )


class CountingMembers:
    """Real MemberService that records every call and yields to the loop first."""

    def __init__(self, service: MemberService) -> None:
        self._service = service
        self.calls: List[int] = []

    async def create_from_registration(self, registration: RegistrationSnapshot) -> MemberSnapshot:
        self.calls.append(registration.id)
        # Give a racing caller the chance to run
        await asyncio.sleep(0.01)
        return await self._service.create_from_registration(registration)


@pytest.fixture
def members(session_factory) -> CountingMembers:
    return CountingMembers(MemberService(session_factory))


class RecordingNotifier:
    def __init__(self) -> None:
        self.sent: List[RegistrationSnapshot] = []

    async def registration_updated(self, registration: RegistrationSnapshot) -> None:
        self.sent.append(registration)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


class FailingStrategies:
    """
    Three strategies that raise the configured error class while `broken`
    is set, and delegate to a real chain once it is cleared.
    """

    def __init__(self, real: WriteFallbackChain, error_class: str) -> None:
        self._real = real
        self.error_class = error_class
        self.broken = True
        self.calls: List[str] = []

    def strategy(self, name: str) -> Strategy:
        async def call(t: Transition) -> RegistrationSnapshot:
            self.calls.append(name)
            if self.broken:
                raise StoreError(f"{name} refused", self.error_class)
            result = await self._real.run(t)
            if not result.success:
                raise result.error
            return result.record
        return Strategy(name, call)

    def chain(self) -> WriteFallbackChain:
        return WriteFallbackChain(
            [self.strategy("direct"), self.strategy("elevated"), self.strategy("minimal")]
        )


@pytest.fixture
def make_orchestrator(gateway, payments, members, notifier):
    """Factory fixture — orchestrator over the SQLite gateway with optional chain overrides."""

    def _make(
        update_chain: Optional[WriteFallbackChain] = None,
        create_chain: Optional[WriteFallbackChain] = None,
        payments_client: Optional[PaymentConfirmationClient] = None,
    ) -> RegistrationOrchestrator:
        return RegistrationOrchestrator(
            gateway=gateway,
            update_chain=update_chain or build_update_chain(gateway, timeout=2.0),
            create_chain=create_chain or build_create_chain(gateway, timeout=2.0),
            payments=payments_client or payments,
            members=members,
            notifier=notifier,
            locks=KeyedLocks(),
            store_timeout=2.0,
        )

    return _make


@pytest.fixture
def projection() -> OptimisticProjection:
    return OptimisticProjection(owner_id=555001)


@pytest.fixture
def make_session():
    """Factory fixture — returns a callable that builds a Checkout session payload."""
    return paid_session


@pytest.fixture
def failing_chain(gateway):
    """Factory fixture — FailingStrategies wrapping the real update or create chain."""

    def _make(error_class: str, create: bool = False) -> FailingStrategies:
        real = build_create_chain(gateway) if create else build_update_chain(gateway)
        return FailingStrategies(real, error_class)

    return _make
