"""
Integration tests — Record store gateway over SQLite.

Each test receives a fresh database file through the `session_factory`
fixture defined in conftest.py.

Coverage:
  - Session-level CRUD helpers (create / get / list / update / delete)
  - Idempotent insert on submission_key
  - Zero-row update reported as an authorization failure
  - processed flag never reverted
  - Error classification of backend exceptions
  - RegistrationGateway transactions and classified StoreError
"""
from __future__ import annotations

import asyncio

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError, ProgrammingError

from clubbot.models.models import RegistrationStatus
from clubbot.services.exceptions import ErrorClass, StoreError
from clubbot.services.store_gateway import (
    classify_error,
    create_registration,
    delete_registration,
    get_registration,
    list_registrations,
    update_registration,
)


class _PgError(Exception):
    def __init__(self, message: str, sqlstate: str | None = None) -> None:
        super().__init__(message)
        self.sqlstate = sqlstate


# ─────────────────────────── Session-level helpers ────────────────────────────

class TestRegistrationCRUD:
    async def test_create_and_get(self, async_session, make_fields) -> None:
        r = await create_registration(async_session, make_fields())
        await async_session.commit()

        fetched = await get_registration(async_session, r.id)
        assert fetched is not None
        assert fetched.player_name == "Pau Garcia Puig"
        assert fetched.status == RegistrationStatus.PENDING
        assert fetched.processed is False

    async def test_get_nonexistent_returns_none(self, async_session) -> None:
        assert await get_registration(async_session, 99999) is None

    async def test_insert_is_idempotent_on_submission_key(self, async_session, make_fields) -> None:
        first = await create_registration(async_session, make_fields(submission_key="k-1"))
        second = await create_registration(async_session, make_fields(submission_key="k-1"))
        await async_session.commit()

        assert first.id == second.id
        assert len(await list_registrations(async_session)) == 1

    async def test_list_filters_by_status_and_owner(self, async_session, make_fields) -> None:
        await create_registration(async_session, make_fields())
        await create_registration(async_session, make_fields(telegram_id=777, status=RegistrationStatus.ACCEPTED))
        await async_session.commit()

        assert len(await list_registrations(async_session)) == 2
        pending = await list_registrations(async_session, status=RegistrationStatus.PENDING)
        assert [r.telegram_id for r in pending] == [555001]
        mine = await list_registrations(async_session, telegram_id=777)
        assert [r.status for r in mine] == [RegistrationStatus.ACCEPTED]

    async def test_update_changes_columns(self, async_session, make_fields) -> None:
        r = await create_registration(async_session, make_fields())
        updated = await update_registration(
            async_session, r.id, {"status": RegistrationStatus.ACCEPTED, "comments": "ok"}
        )
        assert updated.status == RegistrationStatus.ACCEPTED
        assert updated.comments == "ok"

    async def test_update_of_missing_row_is_auth_class(self, async_session) -> None:
        with pytest.raises(StoreError) as exc_info:
            await update_registration(async_session, 4242, {"status": RegistrationStatus.REJECTED})
        assert exc_info.value.error_class == ErrorClass.AUTH

    async def test_processed_is_never_reverted(self, async_session, make_fields) -> None:
        r = await create_registration(async_session, make_fields(status=RegistrationStatus.ACCEPTED, processed=True))
        with pytest.raises(StoreError) as exc_info:
            await update_registration(
                async_session, r.id, {"status": RegistrationStatus.ACCEPTED, "processed": False}
            )
        assert exc_info.value.error_class == ErrorClass.VALIDATION

        again = await get_registration(async_session, r.id)
        assert again.processed is True

    async def test_delete(self, async_session, make_fields) -> None:
        r = await create_registration(async_session, make_fields())
        assert await delete_registration(async_session, r.id) is True
        assert await delete_registration(async_session, r.id) is False


# ─────────────────────────── Classification ───────────────────────────────────

class TestClassifyError:
    def test_insufficient_privilege_sqlstate(self) -> None:
        exc = ProgrammingError("UPDATE", {}, _PgError("denied", sqlstate="42501"))
        assert classify_error(exc) == ErrorClass.AUTH

    def test_row_level_security_message(self) -> None:
        exc = ProgrammingError(
            "INSERT", {}, _PgError('new row violates row-level security policy for table "registrations"')
        )
        assert classify_error(exc) == ErrorClass.AUTH

    def test_unknown_column_is_validation(self) -> None:
        exc = ProgrammingError("UPDATE", {}, _PgError('column "payment_info" does not exist', sqlstate="42703"))
        assert classify_error(exc) == ErrorClass.VALIDATION

    def test_integrity_error_is_validation(self) -> None:
        exc = IntegrityError("INSERT", {}, _PgError("NOT NULL constraint failed"))
        assert classify_error(exc) == ErrorClass.VALIDATION

    def test_connection_loss_is_transient(self) -> None:
        exc = OperationalError("SELECT", {}, _PgError("connection refused"))
        assert classify_error(exc) == ErrorClass.TRANSIENT

    def test_timeout_is_transient(self) -> None:
        assert classify_error(asyncio.TimeoutError()) == ErrorClass.TRANSIENT

    def test_store_error_keeps_its_class(self) -> None:
        assert classify_error(StoreError("x", ErrorClass.NOT_FOUND)) == ErrorClass.NOT_FOUND


# ─────────────────────────── Gateway ──────────────────────────────────────────

class TestRegistrationGateway:
    async def test_insert_read_roundtrip(self, gateway, make_fields) -> None:
        stored = await gateway.insert(make_fields())
        assert stored.id is not None

        read = await gateway.read(stored.id)
        assert read.player_dni == "12345678Z"
        assert read.sync_state == "confirmed"

    async def test_read_missing_raises_not_found(self, gateway) -> None:
        with pytest.raises(StoreError) as exc_info:
            await gateway.read(123)
        assert exc_info.value.error_class == ErrorClass.NOT_FOUND

    async def test_write_persists_payment_info(self, gateway, make_fields) -> None:
        stored = await gateway.insert(make_fields())
        written = await gateway.write(
            stored.id,
            {
                "status": RegistrationStatus.ACCEPTED,
                "payment_info": {"method": "card", "status": "completed", "amount": 260.0},
            },
        )
        assert written.payment_info is not None
        assert written.payment_info.amount == 260.0

        assert (await gateway.read(stored.id)).status == RegistrationStatus.ACCEPTED

    async def test_failed_write_is_rolled_back(self, gateway, make_fields) -> None:
        stored = await gateway.insert(make_fields())
        with pytest.raises(StoreError) as exc_info:
            await gateway.write(stored.id, {"no_such_column": 1})
        assert exc_info.value.error_class == ErrorClass.VALIDATION
        assert (await gateway.read(stored.id)).status == RegistrationStatus.PENDING

    async def test_privileged_write_uses_second_factory(self, session_factory, make_fields) -> None:
        from clubbot.services.store_gateway import RegistrationGateway

        opened = []

        def privileged():
            opened.append("privileged")
            return session_factory()

        gw = RegistrationGateway(session_factory, privileged)
        stored = await gw.insert(make_fields())
        await gw.write(stored.id, {"status": RegistrationStatus.REJECTED}, privileged=True)
        assert opened == ["privileged"]

    async def test_list_all(self, gateway, make_fields) -> None:
        await gateway.insert(make_fields())
        await gateway.insert(make_fields(telegram_id=42))
        assert len(await gateway.list_all()) == 2
        assert len(await gateway.list_all(telegram_id=42)) == 1

    async def test_delete_missing_raises_not_found(self, gateway) -> None:
        with pytest.raises(StoreError) as exc_info:
            await gateway.delete(5)
        assert exc_info.value.error_class == ErrorClass.NOT_FOUND
