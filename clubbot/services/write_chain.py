"""
Write fallback chain.

A state-changing write is attempted through an ordered list of strategies,
from the most informative to the least informative, stopping at the first
success:

  1. direct   — all fields of the transition through the ordinary connection
  2. elevated — the same fields through the privileged connection; only
                tried right after an authorization-class failure
  3. minimal  — only the fields that define the transition (status and
                processed; required applicant fields for an insert)

Which strategies exist and in which order is plain data (a list of
Strategy objects), so tests can build chains out of fakes.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from clubbot.services.exceptions import ErrorClass, StoreError
from clubbot.services.schemas import PaymentInfo, RegistrationSnapshot
from clubbot.services.store_gateway import RegistrationGateway, classify_error

logger = logging.getLogger(__name__)

DIRECT   = "direct"
ELEVATED = "elevated"
MINIMAL  = "minimal"

# Columns present in every schema version of the registrations table
REQUIRED_INSERT_FIELDS = (
    "telegram_id",
    "player_name",
    "birth_date",
    "player_dni",
    "team",
    "parent_name",
    "contact_phone",
    "email",
)

# Errors that no other strategy can fix
_TERMINAL_CLASSES = (ErrorClass.VALIDATION, ErrorClass.NOT_FOUND)


@dataclass
class Transition:
    """Target state of a registration (registration_id=None means create)."""

    registration_id: Optional[int]
    status: str
    processed: bool
    payment_info: Optional[PaymentInfo] = None
    comments: Optional[str] = None
    fields: Dict[str, Any] = field(default_factory=dict)
    submission_key: Optional[str] = None

    @property
    def is_create(self) -> bool:
        return self.registration_id is None

    def _state_values(self) -> Dict[str, Any]:
        return {"status": self.status, "processed": self.processed}

    def full_values(self) -> Dict[str, Any]:
        values: Dict[str, Any] = {}
        if self.is_create:
            values.update(self.fields)
            if self.submission_key:
                values["submission_key"] = self.submission_key
        values.update(self._state_values())
        if self.payment_info is not None:
            values["payment_info"] = self.payment_info.model_dump()
        if self.comments is not None:
            values["comments"] = self.comments
        return values

    def minimal_values(self) -> Dict[str, Any]:
        values: Dict[str, Any] = {}
        if self.is_create:
            values.update({k: self.fields[k] for k in REQUIRED_INSERT_FIELDS if k in self.fields})
            if self.submission_key:
                values["submission_key"] = self.submission_key
        values.update(self._state_values())
        return values

    def apply_to(self, base: RegistrationSnapshot) -> RegistrationSnapshot:
        """Merge the target fields into a snapshot (nothing is persisted)."""
        changes: Dict[str, Any] = dict(self.fields) if self.is_create else {}
        changes.update(self._state_values())
        if self.registration_id is not None:
            changes["id"] = self.registration_id
        if self.submission_key:
            changes["submission_key"] = self.submission_key
        if self.payment_info is not None:
            changes["payment_info"] = self.payment_info
        if self.comments is not None:
            changes["comments"] = self.comments
        return base.model_copy(update=changes)


@dataclass(frozen=True)
class Strategy:
    name: str
    call: Callable[[Transition], Awaitable[RegistrationSnapshot]]
    only_after_auth: bool = False


@dataclass
class WriteAttemptResult:
    """Outcome of one chain run; `strategy` is for observability only."""

    strategy: Optional[str]
    success: bool
    record: Optional[RegistrationSnapshot] = None
    error: Optional[StoreError] = None
    attempted: List[str] = field(default_factory=list)

    @property
    def error_class(self) -> Optional[str]:
        return self.error.error_class if self.error else None


class WriteFallbackChain:
    """
    Runs strategies in order, each at most once.

    Parameters
    ----------
    strategies : ordered Strategy list
    timeout    : per-strategy budget in seconds (None = unbounded)
    """

    def __init__(self, strategies: Sequence[Strategy], timeout: Optional[float] = None) -> None:
        self._strategies = list(strategies)
        self._timeout = timeout

    @property
    def names(self) -> List[str]:
        return [s.name for s in self._strategies]

    async def run(self, transition: Transition) -> WriteAttemptResult:
        attempted: List[str] = []
        last_error: Optional[StoreError] = None

        for strategy in self._strategies:
            if strategy.only_after_auth and (
                last_error is None or last_error.error_class != ErrorClass.AUTH
            ):
                continue

            attempted.append(strategy.name)
            try:
                record = await self._call(strategy, transition)
            except StoreError as exc:
                last_error = exc
                logger.warning(
                    "Write strategy %s failed for registration %s [%s]: %s",
                    strategy.name, transition.registration_id, exc.error_class, exc,
                )
                if exc.error_class in _TERMINAL_CLASSES:
                    return WriteAttemptResult(None, False, error=exc, attempted=attempted)
                continue

            logger.info(
                "Registration %s written via %s strategy",
                record.id, strategy.name,
            )
            return WriteAttemptResult(strategy.name, True, record=record, attempted=attempted)

        return WriteAttemptResult(None, False, error=last_error, attempted=attempted)

    async def _call(self, strategy: Strategy, transition: Transition) -> RegistrationSnapshot:
        try:
            if self._timeout is None:
                return await strategy.call(transition)
            return await asyncio.wait_for(strategy.call(transition), self._timeout)
        except StoreError:
            raise
        except asyncio.TimeoutError as exc:
            raise StoreError(
                f"{strategy.name} write timed out after {self._timeout}s",
                ErrorClass.TRANSIENT,
                exc,
            ) from exc
        except Exception as exc:
            raise StoreError(str(exc), classify_error(exc), exc) from exc


# ── Default chains ────────────────────────────────────────────────────────────

def build_update_chain(
    gateway: RegistrationGateway,
    timeout: Optional[float] = None,
) -> WriteFallbackChain:
    async def direct(t: Transition) -> RegistrationSnapshot:
        return await gateway.write(t.registration_id, t.full_values())

    async def elevated(t: Transition) -> RegistrationSnapshot:
        return await gateway.write(t.registration_id, t.full_values(), privileged=True)

    async def minimal(t: Transition) -> RegistrationSnapshot:
        return await gateway.write(t.registration_id, t.minimal_values())

    return WriteFallbackChain(
        [
            Strategy(DIRECT, direct),
            Strategy(ELEVATED, elevated, only_after_auth=True),
            Strategy(MINIMAL, minimal),
        ],
        timeout=timeout,
    )


def build_create_chain(
    gateway: RegistrationGateway,
    timeout: Optional[float] = None,
) -> WriteFallbackChain:
    async def direct(t: Transition) -> RegistrationSnapshot:
        return await gateway.insert(t.full_values())

    async def elevated(t: Transition) -> RegistrationSnapshot:
        return await gateway.insert(t.full_values(), privileged=True)

    async def minimal(t: Transition) -> RegistrationSnapshot:
        return await gateway.insert(t.minimal_values())

    return WriteFallbackChain(
        [
            Strategy(DIRECT, direct),
            Strategy(ELEVATED, elevated, only_after_auth=True),
            Strategy(MINIMAL, minimal),
        ],
        timeout=timeout,
    )
