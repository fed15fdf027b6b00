"""
Parent registration FSM handler.

Flow:
  "New registration" → player name → birth date → DNI → team → parent name
         → phone → e-mail → address → city → postal code → shirt size
         → confirm → stored ✅ → choose payment → Checkout link
         → "I have paid" → payment verified, player created
"""
import logging
import uuid

from aiogram import F, Router
from aiogram.enums import ParseMode
from aiogram.filters import StateFilter
from aiogram.fsm.context import FSMContext
from aiogram.types import CallbackQuery, Message
from pydantic import ValidationError

from clubbot.config import settings
from clubbot.handlers.texts import payment_amount_line, payment_result_text, registration_card
from clubbot.keyboards import (
    MainMenuCb, PaymentCb, RegistrationCb,
    cancel_registration_kb, checkout_kb, confirm_registration_kb, my_registrations_kb,
    parent_main_menu, payment_choice_kb, registration_detail_kb, shirt_size_kb,
    skip_step_kb, team_kb,
)
from clubbot.models.models import RegistrationStatus, SyncState
from clubbot.services import (
    OptimisticProjection,
    PaymentConfirmationClient,
    PaymentSessionError,
    RegistrationNotFound,
    RegistrationOrchestrator,
    RegistrationRejectedByStore,
    RegistrationSnapshot,
    StoreError,
)
from clubbot.states import RegistrationStates
from clubbot.validators import (
    TEAMS,
    RegistrationData,
    TextField,
    clean_birth_date,
    clean_dni,
    clean_email,
    clean_name,
    clean_phone,
    clean_postal_code,
)

logger = logging.getLogger(__name__)
router = Router(name="registration")


# ── Entry: "New registration" button ──────────────────────────────────────────

@router.callback_query(MainMenuCb.filter(F.action == "register"))
async def cq_start_registration(callback: CallbackQuery, state: FSMContext) -> None:
    await state.clear()
    # Same key for every retry of this submission
    await state.update_data(submission_key=str(uuid.uuid4()))
    await state.set_state(RegistrationStates.enter_player_name)
    await callback.message.edit_text(
        f"📝 *Inscripció temporada {settings.SEASON}*\n\n"
        f"Escriu el *nom i cognoms del jugador*:",
        parse_mode=ParseMode.MARKDOWN,
        reply_markup=cancel_registration_kb(),
    )
    await callback.answer()


async def _reject_input(message: Message, exc: ValueError) -> None:
    await message.answer(f"⚠️ {exc}. Torna-ho a provar:", reply_markup=cancel_registration_kb())


# ── Step 1: player name ───────────────────────────────────────────────────────

@router.message(RegistrationStates.enter_player_name)
async def msg_player_name(message: Message, state: FSMContext) -> None:
    try:
        name = clean_name(message.text or "")
    except ValueError as exc:
        await _reject_input(message, exc)
        return

    await state.update_data(player_name=name)
    await state.set_state(RegistrationStates.enter_birth_date)
    await message.answer(
        f"👤 *{name}*\n\nData de naixement (DD/MM/AAAA):",
        parse_mode=ParseMode.MARKDOWN,
        reply_markup=cancel_registration_kb(),
    )


# ── Step 2: birth date ────────────────────────────────────────────────────────

@router.message(RegistrationStates.enter_birth_date)
async def msg_birth_date(message: Message, state: FSMContext) -> None:
    try:
        birth_date = clean_birth_date(message.text or "")
    except ValueError as exc:
        await _reject_input(message, exc)
        return

    await state.update_data(birth_date=birth_date)
    await state.set_state(RegistrationStates.enter_dni)
    await message.answer("🪪 DNI / NIE del jugador:", reply_markup=cancel_registration_kb())


# ── Step 3: DNI ───────────────────────────────────────────────────────────────

@router.message(RegistrationStates.enter_dni)
async def msg_dni(message: Message, state: FSMContext) -> None:
    try:
        dni = clean_dni(message.text or "")
    except ValueError as exc:
        await _reject_input(message, exc)
        return

    await state.update_data(player_dni=dni)
    await state.set_state(RegistrationStates.choose_team)
    await message.answer("📂 Tria l'*equip*:", parse_mode=ParseMode.MARKDOWN, reply_markup=team_kb())


# ── Step 4: team ──────────────────────────────────────────────────────────────

@router.callback_query(F.data.startswith("reg_team:"), RegistrationStates.choose_team)
async def cq_team(callback: CallbackQuery, state: FSMContext) -> None:
    team = callback.data.split(":", 1)[1]
    if team not in TEAMS:
        await callback.answer("Equip desconegut.", show_alert=True)
        return

    await state.update_data(team=team)
    await state.set_state(RegistrationStates.enter_parent_name)
    await callback.message.edit_text(
        f"📂 Equip: *{team}*\n\nNom i cognoms del *pare, mare o tutor*:",
        parse_mode=ParseMode.MARKDOWN,
        reply_markup=cancel_registration_kb(),
    )
    await callback.answer()


@router.message(RegistrationStates.choose_team)
async def msg_team_hint(message: Message) -> None:
    """Catch accidental text input during the team selection step."""
    await message.answer("👆 Tria l'equip amb un dels botons:", reply_markup=team_kb())


# ── Step 5–7: parent, phone, e-mail ───────────────────────────────────────────

@router.message(RegistrationStates.enter_parent_name)
async def msg_parent_name(message: Message, state: FSMContext) -> None:
    try:
        name = clean_name(message.text or "")
    except ValueError as exc:
        await _reject_input(message, exc)
        return

    await state.update_data(parent_name=name)
    await state.set_state(RegistrationStates.enter_phone)
    await message.answer("📞 Telèfon de contacte:", reply_markup=cancel_registration_kb())


@router.message(RegistrationStates.enter_phone)
async def msg_phone(message: Message, state: FSMContext) -> None:
    try:
        phone = clean_phone(message.text or "")
    except ValueError as exc:
        await _reject_input(message, exc)
        return

    await state.update_data(contact_phone=phone)
    await state.set_state(RegistrationStates.enter_email)
    await message.answer("✉️ Correu electrònic:", reply_markup=cancel_registration_kb())


@router.message(RegistrationStates.enter_email)
async def msg_email(message: Message, state: FSMContext) -> None:
    try:
        email = clean_email(message.text or "")
    except ValueError as exc:
        await _reject_input(message, exc)
        return

    await state.update_data(email=email)
    await state.set_state(RegistrationStates.enter_address)
    await message.answer("🏠 Adreça (carrer i número):", reply_markup=skip_step_kb())


# ── Step 8–10: optional address fields ────────────────────────────────────────

_OPTIONAL_STEPS = {
    RegistrationStates.enter_address.state:     ("address",     RegistrationStates.enter_city),
    RegistrationStates.enter_city.state:        ("city",        RegistrationStates.enter_postal_code),
    RegistrationStates.enter_postal_code.state: ("postal_code", RegistrationStates.choose_shirt_size),
}


async def _next_optional_step(message: Message, state: FSMContext) -> None:
    current = await state.get_state()
    _, next_state = _OPTIONAL_STEPS[current]
    await state.set_state(next_state)
    if next_state == RegistrationStates.enter_city:
        await message.answer("🏙 Població:", reply_markup=skip_step_kb())
    elif next_state == RegistrationStates.enter_postal_code:
        await message.answer("📮 Codi postal:", reply_markup=skip_step_kb())
    else:
        await message.answer("👕 Talla de l'equipació:", reply_markup=shirt_size_kb())


@router.message(StateFilter(RegistrationStates.enter_address, RegistrationStates.enter_city))
async def msg_address_part(message: Message, state: FSMContext) -> None:
    try:
        value = TextField(value=message.text or "").value
    except ValidationError as exc:
        await message.answer(f"⚠️ {exc.errors()[0]['msg']}", reply_markup=skip_step_kb())
        return

    field, _ = _OPTIONAL_STEPS[await state.get_state()]
    await state.update_data(**{field: value})
    await _next_optional_step(message, state)


@router.message(RegistrationStates.enter_postal_code)
async def msg_postal_code(message: Message, state: FSMContext) -> None:
    try:
        postal_code = clean_postal_code(message.text or "")
    except ValueError as exc:
        await message.answer(f"⚠️ {exc}.", reply_markup=skip_step_kb())
        return

    await state.update_data(postal_code=postal_code)
    await _next_optional_step(message, state)


@router.callback_query(
    F.data == "reg_skip",
    StateFilter(
        RegistrationStates.enter_address,
        RegistrationStates.enter_city,
        RegistrationStates.enter_postal_code,
    ),
)
async def cq_skip_step(callback: CallbackQuery, state: FSMContext) -> None:
    await _next_optional_step(callback.message, state)
    await callback.answer()


# ── Step 11: shirt size → summary ─────────────────────────────────────────────

@router.callback_query(F.data.startswith("reg_size:"), RegistrationStates.choose_shirt_size)
async def cq_shirt_size(callback: CallbackQuery, state: FSMContext) -> None:
    size = callback.data.split(":", 1)[1]
    await state.update_data(shirt_size=None if size == "-" else size)
    await state.set_state(RegistrationStates.confirm)

    data = await state.get_data()
    summary = RegistrationSnapshot(
        **{k: v for k, v in data.items() if k in RegistrationSnapshot.model_fields}
    )
    await callback.message.edit_text(
        f"📝 *Revisa les dades de la inscripció:*\n\n"
        f"{registration_card(summary, with_sync=False)}\n\n"
        f"_En enviar-la acceptes les condicions d'inscripció del club._",
        parse_mode=ParseMode.MARKDOWN,
        reply_markup=confirm_registration_kb(),
    )
    await callback.answer()


@router.callback_query(F.data == "reg_edit", RegistrationStates.confirm)
async def cq_edit_registration(callback: CallbackQuery, state: FSMContext) -> None:
    """Go back to the first step, keeping the submission key."""
    await state.set_state(RegistrationStates.enter_player_name)
    await callback.message.edit_text(
        "✏️ Escriu de nou el *nom i cognoms del jugador*:",
        parse_mode=ParseMode.MARKDOWN,
        reply_markup=cancel_registration_kb(),
    )
    await callback.answer()


# ── Step 12: submit ───────────────────────────────────────────────────────────

@router.callback_query(F.data == "reg_confirm", RegistrationStates.confirm)
async def cq_confirm_registration(
    callback: CallbackQuery,
    state: FSMContext,
    orchestrator: RegistrationOrchestrator,
    projection: OptimisticProjection,
) -> None:
    data = await state.get_data()
    try:
        payload = RegistrationData(**{**data, "accept_terms": True})
    except ValidationError as exc:
        await callback.answer(f"⚠️ {exc.errors()[0]['msg']}", show_alert=True)
        return

    fields = payload.model_dump()
    fields["telegram_id"] = callback.from_user.id
    fields["season"] = settings.SEASON

    try:
        record = await orchestrator.submit_registration(
            fields,
            submission_key=data.get("submission_key"),
            projection=projection,
        )
    except RegistrationRejectedByStore as exc:
        logger.warning("Registration from %d refused by store: %s", callback.from_user.id, exc)
        await callback.answer("❌ No s'ha pogut desar la inscripció. Revisa les dades.", show_alert=True)
        return

    if record.sync_state == SyncState.LOCALLY_AHEAD:
        await state.clear()
        await callback.message.edit_text(
            "🟡 *Inscripció rebuda.*\n\n"
            "Ara mateix no la podem desar; ho tornarem a intentar automàticament. "
            "La trobaràs a «Les meves inscripcions».",
            parse_mode=ParseMode.MARKDOWN,
            reply_markup=parent_main_menu(),
        )
        await callback.answer()
        return

    await state.set_state(RegistrationStates.payment)
    await state.update_data(registration_id=record.id)

    text = (
        f"🎉 *Inscripció enviada!*\n\n"
        f"👤 {record.player_name}\n"
        f"📂 {record.team}\n"
        f"📌 Estat: {RegistrationStatus.EMOJI[record.status]} "
        f"{RegistrationStatus.LABELS[record.status]}\n\n"
    )
    if settings.payments_enabled:
        text += "Tria com vols pagar la quota:"
        kb = payment_choice_kb(record.id)
    else:
        text += "El club es posarà en contacte amb tu per al pagament. 🔔"
        kb = parent_main_menu()
    await callback.message.edit_text(text, parse_mode=ParseMode.MARKDOWN, reply_markup=kb)
    await callback.answer("✅ Inscripció desada!")


# ── Payment ───────────────────────────────────────────────────────────────────

async def _own_registration(
    callback: CallbackQuery,
    orchestrator: RegistrationOrchestrator,
    projection: OptimisticProjection,
    registration_id: int,
) -> RegistrationSnapshot | None:
    """The registration, if it exists and belongs to the caller."""
    try:
        record = await orchestrator.get_registration(registration_id, projection=projection)
    except (RegistrationNotFound, StoreError):
        await callback.answer("Inscripció no disponible.", show_alert=True)
        return None
    if record.telegram_id != callback.from_user.id:
        await callback.answer("Inscripció no disponible.", show_alert=True)
        return None
    return record


@router.callback_query(PaymentCb.filter(F.action == "pay"))
async def cq_pay(
    callback: CallbackQuery,
    callback_data: PaymentCb,
    state: FSMContext,
    orchestrator: RegistrationOrchestrator,
    projection: OptimisticProjection,
) -> None:
    record = await _own_registration(callback, orchestrator, projection, callback_data.rid)
    if record is None:
        return
    if not settings.payments_enabled:
        await callback.answer("El pagament en línia no està disponible.", show_alert=True)
        return

    await state.set_state(RegistrationStates.payment)
    await state.update_data(registration_id=record.id)
    await callback.message.edit_text(
        f"💳 *{record.player_name}*\n\nTria com vols pagar la quota:",
        parse_mode=ParseMode.MARKDOWN,
        reply_markup=payment_choice_kb(record.id),
    )
    await callback.answer()


@router.callback_query(PaymentCb.filter(F.action == "choose"))
async def cq_choose_payment(
    callback: CallbackQuery,
    callback_data: PaymentCb,
    state: FSMContext,
    orchestrator: RegistrationOrchestrator,
    payments: PaymentConfirmationClient,
    projection: OptimisticProjection,
) -> None:
    record = await _own_registration(callback, orchestrator, projection, callback_data.rid)
    if record is None:
        return
    if record.status != RegistrationStatus.PENDING or record.processed:
        await callback.answer("Aquesta inscripció ja no està pendent de pagament.", show_alert=True)
        return

    try:
        link = await payments.create_session(record, callback_data.ptype)
    except PaymentSessionError as exc:
        logger.warning("Checkout for registration %d unavailable: %s", record.id, exc)
        await callback.answer("⚠️ No s'ha pogut iniciar el pagament. Prova-ho més tard.", show_alert=True)
        return

    data = await state.get_data()
    sessions = dict(data.get("payment_sessions", {}))
    sessions[str(record.id)] = link.session_id
    await state.set_state(RegistrationStates.payment)
    await state.update_data(payment_sessions=sessions)

    amount = payment_amount_line(
        callback_data.ptype, payments.amount_for(callback_data.ptype), payments.currency
    )
    await callback.message.edit_text(
        f"💳 {amount}\n\n"
        f"Obre l'enllaç per pagar amb targeta. Quan acabis, prem «Ja he pagat».",
        parse_mode=ParseMode.MARKDOWN,
        reply_markup=checkout_kb(record.id, link.url),
    )
    await callback.answer()


@router.callback_query(PaymentCb.filter(F.action == "check"))
async def cq_check_payment(
    callback: CallbackQuery,
    callback_data: PaymentCb,
    state: FSMContext,
    orchestrator: RegistrationOrchestrator,
    projection: OptimisticProjection,
) -> None:
    data = await state.get_data()
    session_id = data.get("payment_sessions", {}).get(str(callback_data.rid))
    if not session_id:
        await callback.answer(
            "Si ja has pagat, la inscripció s'actualitzarà automàticament.", show_alert=True
        )
        return

    record = await _own_registration(callback, orchestrator, projection, callback_data.rid)
    if record is None:
        return

    try:
        record = await orchestrator.confirm_payment_and_convert(
            record.id, session_id, projection=projection
        )
    except RegistrationNotFound:
        await callback.answer("Inscripció no disponible.", show_alert=True)
        return
    except RegistrationRejectedByStore as exc:
        logger.error("Payment update for registration %d refused by store: %s", callback_data.rid, exc)
        await callback.answer("⚠️ No s'ha pogut actualitzar la inscripció. Contacta amb el club.", show_alert=True)
        return

    text = payment_result_text(record)
    if record.sync_state == SyncState.LOCALLY_AHEAD:
        text += "\n\n🟡 _Estem desant els canvis; es completarà automàticament._"

    if record.status == RegistrationStatus.PENDING and not record.processed:
        await callback.answer("⏳ Pagament pendent de confirmació.")
        return

    await state.clear()
    await callback.message.edit_text(text, parse_mode=ParseMode.MARKDOWN, reply_markup=parent_main_menu())
    await callback.answer()


# ── My registrations ──────────────────────────────────────────────────────────

@router.callback_query(MainMenuCb.filter(F.action == "my_registrations"))
async def cq_my_registrations(
    callback: CallbackQuery,
    orchestrator: RegistrationOrchestrator,
    projection: OptimisticProjection,
) -> None:
    try:
        records = await orchestrator.list_registrations(
            telegram_id=callback.from_user.id, projection=projection
        )
    except StoreError as exc:
        logger.warning("Cannot list registrations for %d: %s", callback.from_user.id, exc)
        await callback.answer("⚠️ Servei no disponible. Prova-ho més tard.", show_alert=True)
        return

    unsent = [e for e in projection.locally_ahead() if isinstance(e.key, str)]
    if not records and not unsent:
        await callback.answer("Encara no tens cap inscripció.", show_alert=True)
        return

    text = "📋 *Les meves inscripcions:*"
    if unsent:
        names = ", ".join(e.view.player_name for e in unsent)
        text += f"\n\n🟡 Pendents de desar: {names}"
    await callback.message.edit_text(
        text, parse_mode=ParseMode.MARKDOWN, reply_markup=my_registrations_kb(records)
    )
    await callback.answer()


@router.callback_query(RegistrationCb.filter(F.action == "view"))
async def cq_view_registration(
    callback: CallbackQuery,
    callback_data: RegistrationCb,
    orchestrator: RegistrationOrchestrator,
    projection: OptimisticProjection,
) -> None:
    record = await _own_registration(callback, orchestrator, projection, callback_data.rid)
    if record is None:
        return
    await callback.message.edit_text(
        registration_card(record),
        parse_mode=ParseMode.MARKDOWN,
        reply_markup=registration_detail_kb(record),
    )
    await callback.answer()
