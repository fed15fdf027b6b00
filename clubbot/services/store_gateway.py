"""
Record store gateway — typed access to registration rows.

Two layers:
  * plain async functions that receive an AsyncSession (same shape as the
    other services, easy to unit-test against an in-memory database);
  * RegistrationGateway, which binds session factories and runs every call
    in its own short transaction, translating failures into classified
    StoreError instances.

No retry or fallback logic lives here; see write_chain.py.
"""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import (
    ArgumentError,
    CompileError,
    DBAPIError,
    InterfaceError,
    OperationalError,
    StatementError,
)
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from clubbot.models.models import Registration
from clubbot.services.exceptions import ErrorClass, StoreError
from clubbot.services.schemas import RegistrationSnapshot

logger = logging.getLogger(__name__)

# SQLSTATE 42501: insufficient_privilege (also raised by row-level security)
_SQLSTATE_INSUFFICIENT_PRIVILEGE = "42501"
_AUTH_MARKERS = ("permission denied", "row-level security", "insufficient privilege")


# ── Error classification ──────────────────────────────────────────────────────

def _sqlstate(exc: DBAPIError) -> Optional[str]:
    orig = exc.orig
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


def classify_error(exc: BaseException) -> str:
    """Map a backend exception to one of ErrorClass.*"""
    if isinstance(exc, StoreError):
        return exc.error_class
    if isinstance(exc, asyncio.TimeoutError):
        return ErrorClass.TRANSIENT
    if isinstance(exc, DBAPIError):
        if exc.connection_invalidated:
            return ErrorClass.TRANSIENT
        message = str(exc.orig).lower()
        if _sqlstate(exc) == _SQLSTATE_INSUFFICIENT_PRIVILEGE or any(
            marker in message for marker in _AUTH_MARKERS
        ):
            return ErrorClass.AUTH
        if isinstance(exc, (OperationalError, InterfaceError)):
            return ErrorClass.TRANSIENT
        # IntegrityError, DataError, ProgrammingError (e.g. unknown column)
        return ErrorClass.VALIDATION
    if isinstance(exc, (StatementError, CompileError, ArgumentError, TypeError, ValueError)):
        return ErrorClass.VALIDATION
    if isinstance(exc, OSError):
        return ErrorClass.TRANSIENT
    return ErrorClass.TRANSIENT


# ── Session-level operations ──────────────────────────────────────────────────

async def get_registration(
    session: AsyncSession,
    registration_id: int,
) -> Optional[Registration]:
    result = await session.execute(
        select(Registration).where(Registration.id == registration_id)
    )
    return result.scalar_one_or_none()


async def get_registration_by_submission_key(
    session: AsyncSession,
    submission_key: str,
) -> Optional[Registration]:
    result = await session.execute(
        select(Registration).where(Registration.submission_key == submission_key)
    )
    return result.scalar_one_or_none()


async def list_registrations(
    session: AsyncSession,
    status: Optional[str] = None,
    telegram_id: Optional[int] = None,
) -> List[Registration]:
    q = select(Registration).order_by(Registration.created_at.desc(), Registration.id.desc())
    if status:
        q = q.where(Registration.status == status)
    if telegram_id is not None:
        q = q.where(Registration.telegram_id == telegram_id)
    result = await session.execute(q)
    return list(result.scalars().all())


async def create_registration(
    session: AsyncSession,
    fields: Dict[str, Any],
) -> Registration:
    """
    Insert a registration row.
    Idempotent on submission_key: a retried insert returns the stored row.
    """
    key = fields.get("submission_key")
    if key:
        existing = await get_registration_by_submission_key(session, key)
        if existing is not None:
            logger.info("Registration with submission_key=%s already stored (id=%d)", key, existing.id)
            return existing

    registration = Registration(**fields)
    session.add(registration)
    await session.flush()
    await session.refresh(registration)
    return registration


async def update_registration(
    session: AsyncSession,
    registration_id: int,
    values: Dict[str, Any],
) -> Registration:
    """
    Update the given columns of one registration.

    A row hidden by a row-level policy is silently skipped by the database,
    so an update that matches nothing is reported as an authorization failure.
    A processed registration never goes back to processed=False.
    """
    stmt = (
        update(Registration)
        .where(Registration.id == registration_id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    reverts_processed = values.get("processed") is False
    if reverts_processed:
        stmt = stmt.where(Registration.processed.is_(False))

    result = await session.execute(stmt)
    if result.rowcount == 0:
        if reverts_processed:
            existing = await get_registration(session, registration_id)
            if existing is not None and existing.processed:
                raise StoreError(
                    f"Registration {registration_id} is processed; processed cannot be reverted",
                    ErrorClass.VALIDATION,
                )
        raise StoreError(
            f"Update of registration {registration_id} matched no rows",
            ErrorClass.AUTH,
        )
    registration = await get_registration(session, registration_id)
    if registration is None:
        raise StoreError(
            f"Registration {registration_id} not visible after update",
            ErrorClass.AUTH,
        )
    await session.refresh(registration)
    return registration


async def delete_registration(session: AsyncSession, registration_id: int) -> bool:
    result = await session.execute(
        delete(Registration).where(Registration.id == registration_id)
    )
    return result.rowcount > 0


# ── Transactional gateway ─────────────────────────────────────────────────────

class RegistrationGateway:
    """
    Typed CRUD over registrations, one transaction per call.

    Parameters
    ----------
    session_factory            : ordinary application connection
    privileged_session_factory : service-role connection (bypasses row-level
                                 policies); defaults to session_factory
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        privileged_session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    ) -> None:
        self._factory = session_factory
        self._privileged_factory = privileged_session_factory or session_factory

    @asynccontextmanager
    async def _transaction(self, privileged: bool = False) -> AsyncIterator[AsyncSession]:
        factory = self._privileged_factory if privileged else self._factory
        async with factory() as session:
            try:
                yield session
                await session.commit()
            except StoreError:
                await session.rollback()
                raise
            except Exception as exc:
                await session.rollback()
                raise StoreError(str(exc), classify_error(exc), exc) from exc

    async def read(self, registration_id: int) -> RegistrationSnapshot:
        async with self._transaction() as session:
            registration = await get_registration(session, registration_id)
            if registration is None:
                raise StoreError(
                    f"Registration {registration_id} not found", ErrorClass.NOT_FOUND
                )
            return RegistrationSnapshot.model_validate(registration)

    async def list_all(
        self,
        status: Optional[str] = None,
        telegram_id: Optional[int] = None,
    ) -> List[RegistrationSnapshot]:
        async with self._transaction() as session:
            rows = await list_registrations(session, status=status, telegram_id=telegram_id)
            return [RegistrationSnapshot.model_validate(r) for r in rows]

    async def write(
        self,
        registration_id: int,
        values: Dict[str, Any],
        privileged: bool = False,
    ) -> RegistrationSnapshot:
        async with self._transaction(privileged) as session:
            registration = await update_registration(session, registration_id, values)
            return RegistrationSnapshot.model_validate(registration)

    async def insert(
        self,
        fields: Dict[str, Any],
        privileged: bool = False,
    ) -> RegistrationSnapshot:
        async with self._transaction(privileged) as session:
            registration = await create_registration(session, fields)
            return RegistrationSnapshot.model_validate(registration)

    async def delete(self, registration_id: int) -> None:
        async with self._transaction() as session:
            if not await delete_registration(session, registration_id):
                raise StoreError(
                    f"Registration {registration_id} not found", ErrorClass.NOT_FOUND
                )
