"""
Registration reconciliation orchestrator.

Drives a registration through its lifecycle

    submitted → pending → accepted / rejected → converted to a member

reconciling three sources of truth: the payment provider, the store and the
user's optimistic view.

Rules
-----
* A status change is shown to the user at once; if every write strategy
  fails the change is returned as-is, flagged locally-ahead, and replayed
  later (next read of the record or the periodic sweep).
* Only validation-class store errors and missing registrations are raised.
* Member creation happens at most once per registration. The decision is
  taken under a per-registration lock, against a fresh read of the store,
  never against the projection or a value read earlier in the same call.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional, Protocol

from clubbot.models.models import PaymentStatus, RegistrationStatus, SyncState
from clubbot.services.exceptions import (
    ErrorClass,
    MemberAlreadyExists,
    RegistrationNotFound,
    RegistrationRejectedByStore,
    StoreError,
    TransitionNotAllowed,
)
from clubbot.services.payment_client import PaymentConfirmationClient, VerificationStatus
from clubbot.services.projection import Key, OptimisticProjection, ProjectionEntry, ProjectionRegistry
from clubbot.services.schemas import MemberSnapshot, PaymentInfo, RegistrationSnapshot
from clubbot.services.store_gateway import RegistrationGateway
from clubbot.services.write_chain import Transition, WriteFallbackChain

logger = logging.getLogger(__name__)


class MemberCreator(Protocol):
    async def create_from_registration(
        self, registration: RegistrationSnapshot
    ) -> MemberSnapshot: ...


class RegistrationNotifier(Protocol):
    async def registration_updated(self, registration: RegistrationSnapshot) -> None: ...


class KeyedLocks:
    """One asyncio.Lock per key, released from the table once nobody waits."""

    def __init__(self) -> None:
        self._locks: Dict[Any, asyncio.Lock] = {}
        self._users: Dict[Any, int] = {}

    @asynccontextmanager
    async def hold(self, key: Any) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                self._locks.pop(key, None)


class RegistrationOrchestrator:
    def __init__(
        self,
        gateway: RegistrationGateway,
        update_chain: WriteFallbackChain,
        create_chain: WriteFallbackChain,
        payments: PaymentConfirmationClient,
        members: MemberCreator,
        notifier: Optional[RegistrationNotifier] = None,
        locks: Optional[KeyedLocks] = None,
        store_timeout: Optional[float] = None,
    ) -> None:
        self._gateway = gateway
        self._update_chain = update_chain
        self._create_chain = create_chain
        self._payments = payments
        self._members = members
        self._notifier = notifier
        self._locks = locks or KeyedLocks()
        self._store_timeout = store_timeout

    @property
    def payments(self) -> PaymentConfirmationClient:
        return self._payments

    # ── Reads ─────────────────────────────────────────────────────────────────

    async def _read(self, registration_id: int) -> RegistrationSnapshot:
        """Fresh read of the persisted record."""
        try:
            if self._store_timeout is None:
                return await self._gateway.read(registration_id)
            return await asyncio.wait_for(
                self._gateway.read(registration_id), self._store_timeout
            )
        except asyncio.TimeoutError as exc:
            raise StoreError(
                f"Read of registration {registration_id} timed out",
                ErrorClass.TRANSIENT,
                exc,
            ) from exc

    async def _load(
        self,
        registration_id: int,
        projection: OptimisticProjection,
    ) -> Optional[RegistrationSnapshot]:
        """
        Persisted record, or the last one this session saw if the store is
        unreachable. Raises RegistrationNotFound.
        """
        try:
            return await self._read(registration_id)
        except StoreError as exc:
            if exc.error_class == ErrorClass.NOT_FOUND:
                projection.discard(registration_id)
                raise RegistrationNotFound(registration_id) from exc
            logger.warning(
                "Could not read registration %d [%s]: %s",
                registration_id, exc.error_class, exc,
            )
            entry = projection.get(registration_id)
            return entry.persisted if entry else None

    async def get_registration(
        self,
        registration_id: int,
        *,
        projection: Optional[OptimisticProjection] = None,
    ) -> RegistrationSnapshot:
        """
        Fresh read. A locally-ahead entry for the same record is replayed
        against the store on the way.
        """
        projection = _session(projection)
        try:
            record = await self._read(registration_id)
        except StoreError as exc:
            if exc.error_class == ErrorClass.NOT_FOUND:
                projection.discard(registration_id)
                raise RegistrationNotFound(registration_id) from exc
            entry = projection.get(registration_id)
            if entry is None:
                raise
            logger.warning(
                "Showing cached view of registration %d, store unavailable: %s",
                registration_id, exc,
            )
            return entry.view

        entry = projection.get(registration_id)
        if entry is not None and entry.is_locally_ahead and entry.pending is not None:
            try:
                return await self._replay(entry, record, projection)
            except RegistrationRejectedByStore as exc:
                logger.error("Store rejected replay of registration %d: %s", registration_id, exc)
        return projection.remember(record).view

    async def list_registrations(
        self,
        status: Optional[str] = None,
        telegram_id: Optional[int] = None,
        *,
        projection: Optional[OptimisticProjection] = None,
    ) -> List[RegistrationSnapshot]:
        """Persisted list with this session's locally-ahead views laid over it."""
        projection = _session(projection)
        records = await self._gateway.list_all(status=status, telegram_id=telegram_id)
        views = []
        for record in records:
            entry = projection.get(record.id)
            views.append(entry.view if entry and entry.is_locally_ahead else record)
        return views

    # ── Transitions ───────────────────────────────────────────────────────────

    async def request_transition(
        self,
        registration_id: int,
        target_status: str,
        target_processed: bool,
        payment_info: Optional[PaymentInfo] = None,
        *,
        comments: Optional[str] = None,
        projection: Optional[OptimisticProjection] = None,
    ) -> RegistrationSnapshot:
        projection = _session(projection)
        current = await self._load(registration_id, projection)
        record = await self._transition_from(
            current,
            Transition(
                registration_id,
                target_status,
                target_processed,
                payment_info=payment_info,
                comments=comments,
            ),
            projection,
        )
        await self._notify(current, record)
        return record

    async def add_comment(
        self,
        registration_id: int,
        comments: str,
        *,
        projection: Optional[OptimisticProjection] = None,
    ) -> RegistrationSnapshot:
        """
        Informational write; allowed even after conversion. A status change
        still waiting to be stored travels with the comment.
        """
        projection = _session(projection)
        current = await self._load(registration_id, projection)
        entry = projection.get(registration_id)
        if entry is not None and entry.is_locally_ahead and entry.pending is not None:
            pending = entry.pending
            transition = Transition(
                registration_id,
                pending.status,
                pending.processed,
                payment_info=pending.payment_info,
                comments=comments,
            )
        else:
            base = current or projection.view(registration_id)
            if base is None:
                base = RegistrationSnapshot(id=registration_id, sync_state=SyncState.LOCALLY_AHEAD)
            transition = Transition(registration_id, base.status, base.processed, comments=comments)
        return await self._transition_from(current, transition, projection)

    async def submit_registration(
        self,
        fields: Dict[str, Any],
        *,
        submission_key: Optional[str] = None,
        projection: Optional[OptimisticProjection] = None,
    ) -> RegistrationSnapshot:
        """Create path: a fresh submission has no identifier yet."""
        projection = _session(projection)
        transition = Transition(
            None,
            RegistrationStatus.PENDING,
            False,
            fields=dict(fields),
            submission_key=submission_key or str(uuid.uuid4()),
        )
        base = RegistrationSnapshot(sync_state=SyncState.LOCALLY_AHEAD)
        return await self._apply(projection.local_key(), base, transition, projection)

    async def _transition_from(
        self,
        current: Optional[RegistrationSnapshot],
        transition: Transition,
        projection: OptimisticProjection,
    ) -> RegistrationSnapshot:
        if transition.status not in RegistrationStatus.ALL:
            raise ValueError(f"Unknown registration status: {transition.status!r}")
        if current is not None and current.is_converted:
            transition = _restrict_converted(current, transition)

        base = current or projection.view(transition.registration_id)
        if base is None:
            base = RegistrationSnapshot(
                id=transition.registration_id, sync_state=SyncState.LOCALLY_AHEAD
            )
        return await self._apply(transition.registration_id, base, transition, projection)

    async def _apply(
        self,
        key: Key,
        base: RegistrationSnapshot,
        transition: Transition,
        projection: OptimisticProjection,
    ) -> RegistrationSnapshot:
        entry = projection.apply(key, base, transition)
        return await self._persist(entry, transition, projection)

    async def _persist(
        self,
        entry: ProjectionEntry,
        transition: Transition,
        projection: OptimisticProjection,
    ) -> RegistrationSnapshot:
        chain = self._create_chain if transition.is_create else self._update_chain
        result = await chain.run(transition)

        if result.success:
            return projection.confirm(entry.key, result.record).view

        projection.mark_failed(entry.key, result.error)
        if result.error_class == ErrorClass.VALIDATION:
            # Surfaced to the caller; the view goes back to the stored value
            projection.revert(entry.key)
            raise RegistrationRejectedByStore(str(result.error), result.error)
        if result.error_class == ErrorClass.NOT_FOUND and transition.registration_id is not None:
            projection.discard(entry.key)
            raise RegistrationNotFound(transition.registration_id)

        logger.error(
            "All write strategies failed for registration %s (tried: %s); "
            "keeping %s/processed=%s locally ahead for reconciliation",
            entry.key, ", ".join(result.attempted) or "none",
            transition.status, transition.processed,
        )
        return entry.view

    # ── Payment & conversion ──────────────────────────────────────────────────

    async def confirm_payment_and_convert(
        self,
        registration_id: int,
        session_reference: str,
        *,
        projection: Optional[OptimisticProjection] = None,
    ) -> RegistrationSnapshot:
        projection = _session(projection)
        current = await self._load(registration_id, projection)

        verification = await self._payments.verify(session_reference)

        if verification.status == VerificationStatus.PENDING:
            logger.info(
                "Payment %s for registration %d not settled yet",
                session_reference, registration_id,
            )
            return _current_view(registration_id, current, projection)

        if verification.status == VerificationStatus.FAILED:
            if _has_settled_payment(current) or _has_settled_payment(projection.view(registration_id)):
                logger.warning(
                    "Payment %s reported failed but registration %d is already paid; "
                    "not rejecting",
                    session_reference, registration_id,
                )
                return _current_view(registration_id, current, projection)
            record = await self._transition_from(
                current,
                Transition(registration_id, RegistrationStatus.REJECTED, False),
                projection,
            )
            await self._notify(current, record)
            return record

        return await self._convert(
            registration_id, projection, verification.to_payment_info()
        )

    async def convert(
        self,
        registration_id: int,
        *,
        projection: Optional[OptimisticProjection] = None,
    ) -> RegistrationSnapshot:
        """Administrator conversion without an online payment (cash, transfer)."""
        projection = _session(projection)
        current = await self._load(registration_id, projection)
        if current is not None and current.status == RegistrationStatus.REJECTED:
            raise TransitionNotAllowed(
                f"Registration {registration_id} is rejected and cannot be converted"
            )
        return await self._convert(registration_id, projection)

    async def _fresh_processed_check(
        self,
        registration_id: int,
        projection: OptimisticProjection,
    ) -> tuple[Optional[RegistrationSnapshot], Optional[RegistrationSnapshot]]:
        """
        (persisted, early_result): early_result is set when conversion must
        not go ahead — already processed, or the store cannot tell us.
        """
        try:
            persisted = await self._read(registration_id)
        except StoreError as exc:
            if exc.error_class == ErrorClass.NOT_FOUND:
                projection.discard(registration_id)
                raise RegistrationNotFound(registration_id) from exc
            logger.error(
                "Cannot confirm processed flag of registration %d [%s]; "
                "member creation postponed",
                registration_id, exc.error_class,
            )
            return None, _current_view(registration_id, None, projection)

        if persisted.processed:
            logger.info(
                "Registration %d already processed, member creation skipped",
                registration_id,
            )
            return persisted, projection.remember(persisted).view
        return persisted, None

    async def _convert(
        self,
        registration_id: int,
        projection: OptimisticProjection,
        payment_info: Optional[PaymentInfo] = None,
    ) -> RegistrationSnapshot:
        async with self._locks.hold(registration_id):
            before, early = await self._fresh_processed_check(registration_id, projection)
            if early is not None:
                return early

            if payment_info is not None:
                await self._transition_from(
                    before,
                    Transition(
                        registration_id,
                        RegistrationStatus.ACCEPTED,
                        False,
                        payment_info=payment_info,
                    ),
                    projection,
                )
                # Re-read right before the side effect
                persisted, early = await self._fresh_processed_check(registration_id, projection)
                if early is not None:
                    return early
            else:
                persisted = before

            try:
                member = await self._members.create_from_registration(persisted)
            except MemberAlreadyExists:
                logger.warning(
                    "Member for registration %d already exists; marking it processed",
                    registration_id,
                )
            except Exception:
                logger.exception(
                    "Member creation failed for registration %d; left unprocessed",
                    registration_id,
                )
                return _current_view(registration_id, persisted, projection)
            else:
                logger.info(
                    "Registration %d converted into member %d", registration_id, member.id
                )

            record = await self._transition_from(
                persisted,
                Transition(
                    registration_id,
                    RegistrationStatus.ACCEPTED,
                    True,
                    payment_info=payment_info,
                ),
                projection,
            )

        await self._notify(before, record)
        return record

    # ── Deletion ──────────────────────────────────────────────────────────────

    async def delete_registration(
        self,
        registration_id: int,
        *,
        projection: Optional[OptimisticProjection] = None,
    ) -> None:
        """Irreversible; errors are raised to the administrator."""
        projection = _session(projection)
        try:
            await self._gateway.delete(registration_id)
        except StoreError as exc:
            if exc.error_class == ErrorClass.NOT_FOUND:
                raise RegistrationNotFound(registration_id) from exc
            raise
        finally:
            projection.discard(registration_id)
        logger.info("Registration %d deleted", registration_id)

    # ── Reconciliation ────────────────────────────────────────────────────────

    async def _replay(
        self,
        entry: ProjectionEntry,
        persisted: Optional[RegistrationSnapshot],
        projection: OptimisticProjection,
    ) -> RegistrationSnapshot:
        transition = entry.pending
        if persisted is not None:
            entry.persisted = persisted
            if persisted.is_converted:
                try:
                    transition = _restrict_converted(persisted, transition)
                except TransitionNotAllowed:
                    logger.warning(
                        "Dropping stale change %s for converted registration %d",
                        transition.status, persisted.id,
                    )
                    return projection.confirm(entry.key, persisted).view
                entry.pending = transition
        return await self._persist(entry, transition, projection)

    async def reconcile(self, projection: OptimisticProjection) -> int:
        """Replay every locally-ahead entry. Returns how many got persisted."""
        synced = 0
        for entry in projection.locally_ahead():
            if entry.pending is None:
                continue

            persisted = None
            if not entry.pending.is_create:
                try:
                    persisted = await self._read(entry.pending.registration_id)
                except StoreError as exc:
                    if exc.error_class == ErrorClass.NOT_FOUND:
                        projection.discard(entry.key)
                    else:
                        logger.warning(
                            "Reconciliation of registration %s postponed [%s]",
                            entry.key, exc.error_class,
                        )
                    continue

            try:
                record = await self._replay(entry, persisted, projection)
            except RegistrationNotFound:
                continue
            except RegistrationRejectedByStore as exc:
                logger.error("Store rejected replay of registration %s: %s", entry.key, exc)
                continue
            if record.sync_state == SyncState.CONFIRMED:
                synced += 1

        if synced:
            logger.info(
                "Reconciled %d registration(s) for session %s", synced, projection.owner_id
            )
        return synced

    # ── Notifications ─────────────────────────────────────────────────────────

    async def _notify(
        self,
        before: Optional[RegistrationSnapshot],
        after: RegistrationSnapshot,
    ) -> None:
        """Tell the applicant about a persisted change. Never raises."""
        if self._notifier is None or after.sync_state != SyncState.CONFIRMED:
            return
        if before is not None and (before.status, before.processed) == (after.status, after.processed):
            return
        try:
            await self._notifier.registration_updated(after)
        except Exception:
            logger.exception("Notification for registration %s failed", after.id)


# ── Helpers ───────────────────────────────────────────────────────────────────

def _session(projection: Optional[OptimisticProjection]) -> OptimisticProjection:
    """Callers without a UI session (webhooks) get a throwaway projection."""
    return projection if projection is not None else OptimisticProjection()


def _restrict_converted(current: RegistrationSnapshot, transition: Transition) -> Transition:
    """A converted registration keeps accepted/processed; only comments change."""
    if transition.status != RegistrationStatus.ACCEPTED:
        raise TransitionNotAllowed(
            f"Registration {current.id} is already converted to a member"
        )
    if not transition.processed or transition.payment_info is not None:
        logger.info(
            "Registration %d is converted; only informational fields are written",
            current.id,
        )
    return Transition(
        current.id,
        RegistrationStatus.ACCEPTED,
        True,
        comments=transition.comments,
    )


def _has_settled_payment(registration: Optional[RegistrationSnapshot]) -> bool:
    """Accepted, or carrying a completed payment from any checkout session."""
    if registration is None:
        return False
    if registration.status == RegistrationStatus.ACCEPTED:
        return True
    payment = registration.payment_info
    return payment is not None and payment.status == PaymentStatus.COMPLETED


def _current_view(
    registration_id: int,
    current: Optional[RegistrationSnapshot],
    projection: OptimisticProjection,
) -> RegistrationSnapshot:
    entry = projection.get(registration_id)
    if entry is not None and entry.is_locally_ahead:
        return entry.view
    if current is not None:
        return projection.remember(current).view
    if entry is not None:
        return entry.view
    return RegistrationSnapshot(id=registration_id, sync_state=SyncState.LOCALLY_AHEAD)


async def reconciliation_loop(
    orchestrator: RegistrationOrchestrator,
    registry: ProjectionRegistry,
    interval: float,
) -> None:
    """Background sweep over every open session's projection."""
    while True:
        await asyncio.sleep(interval)
        for projection in registry.all():
            try:
                await orchestrator.reconcile(projection)
            except Exception:
                logger.exception(
                    "Reconciliation sweep failed for session %s", projection.owner_id
                )
