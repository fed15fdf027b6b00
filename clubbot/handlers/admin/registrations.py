"""
Admin panel: registration review, status changes, conversion into players.

Every status change goes through the orchestrator; the detail view shows
whether what the admin sees is already stored (🟢) or still waiting to be
written (🟡).
"""
import logging

from aiogram import F, Router
from aiogram.enums import ParseMode
from aiogram.exceptions import TelegramBadRequest
from aiogram.fsm.context import FSMContext
from aiogram.types import CallbackQuery, Message
from sqlalchemy.ext.asyncio import AsyncSession

from clubbot.handlers.texts import registration_card
from clubbot.keyboards import (
    AdminPanelCb, AdminRegCb,
    admin_main_menu, back_to_main, comment_cancel_kb, confirm_action_kb,
    registration_detail_admin_kb, registration_list_admin_kb,
)
from clubbot.middlewares import IsAdmin
from clubbot.models.models import RegistrationStatus, SyncState
from clubbot.services import (
    OptimisticProjection,
    RegistrationError,
    RegistrationNotFound,
    RegistrationOrchestrator,
    RegistrationRejectedByStore,
    RegistrationSnapshot,
    StoreError,
    TransitionNotAllowed,
    list_members,
)
from clubbot.states import AdminRegistrationStates
from clubbot.validators import TextField

logger = logging.getLogger(__name__)
router = Router(name="admin_registrations")
router.callback_query.filter(IsAdmin())

_STATUS_ACTIONS = {
    "accept":  RegistrationStatus.ACCEPTED,
    "reject":  RegistrationStatus.REJECTED,
    "pending": RegistrationStatus.PENDING,
}


async def _show_detail(callback: CallbackQuery, record: RegistrationSnapshot) -> None:
    try:
        await callback.message.edit_text(
            registration_card(record, admin=True),
            parse_mode=ParseMode.MARKDOWN,
            reply_markup=registration_detail_admin_kb(record),
        )
    except TelegramBadRequest:
        # "message is not modified"
        pass


def _error_text(exc: Exception) -> str:
    if isinstance(exc, RegistrationNotFound):
        return "Inscripció no trobada."
    if isinstance(exc, TransitionNotAllowed):
        return "⛔️ Ja s'ha convertit en jugador; només es poden afegir comentaris."
    if isinstance(exc, RegistrationRejectedByStore):
        return f"❌ La base de dades ha rebutjat el canvi: {exc}"
    return "⚠️ Servei no disponible. Prova-ho més tard."


# ── Admin home (back) ─────────────────────────────────────────────────────────

@router.callback_query(AdminPanelCb.filter(F.action == "back"))
async def cq_admin_home(callback: CallbackQuery, state: FSMContext) -> None:
    await state.clear()
    await callback.message.edit_text(
        "⚡ *Panell d'administració*\n\nTria una secció:",
        parse_mode=ParseMode.MARKDOWN,
        reply_markup=admin_main_menu(),
    )
    await callback.answer()


# ── Lists ─────────────────────────────────────────────────────────────────────

@router.callback_query(AdminPanelCb.filter(F.action.in_({"all", "pending"})))
async def cq_registration_list(
    callback: CallbackQuery,
    callback_data: AdminPanelCb,
    state: FSMContext,
    orchestrator: RegistrationOrchestrator,
    projection: OptimisticProjection,
) -> None:
    await state.clear()
    status = RegistrationStatus.PENDING if callback_data.action == "pending" else None
    try:
        records = await orchestrator.list_registrations(status=status, projection=projection)
    except StoreError as exc:
        logger.warning("Cannot list registrations: %s", exc)
        await callback.answer(_error_text(exc), show_alert=True)
        return

    title = "⚪️ *Inscripcions pendents*" if status else "📋 *Totes les inscripcions*"
    if not records:
        await callback.message.edit_text(
            f"{title}\n\n_Cap inscripció._",
            parse_mode=ParseMode.MARKDOWN,
            reply_markup=registration_list_admin_kb([]),
        )
        await callback.answer()
        return

    ahead = sum(1 for r in records if r.sync_state == SyncState.LOCALLY_AHEAD)
    text = f"{title} ({len(records)})"
    if ahead:
        text += f"\n🟡 {ahead} amb canvis pendents de desar"
    await callback.message.edit_text(
        text,
        parse_mode=ParseMode.MARKDOWN,
        reply_markup=registration_list_admin_kb(records),
    )
    await callback.answer()


@router.callback_query(AdminPanelCb.filter(F.action == "members"))
async def cq_member_list(callback: CallbackQuery, session: AsyncSession) -> None:
    members = await list_members(session)
    if not members:
        await callback.answer("Encara no hi ha jugadors.", show_alert=True)
        return

    lines = [f"⚽️ *Jugadors* ({len(members)})", ""]
    for m in members:
        lines.append(f"• {m.display_name}  [{m.category or '—'}]")
    await callback.message.edit_text(
        "\n".join(lines),
        parse_mode=ParseMode.MARKDOWN,
        reply_markup=back_to_main(),
    )
    await callback.answer()


# ── Sync now ──────────────────────────────────────────────────────────────────

@router.callback_query(AdminPanelCb.filter(F.action == "sync"))
async def cq_sync_now(
    callback: CallbackQuery,
    orchestrator: RegistrationOrchestrator,
    projection: OptimisticProjection,
) -> None:
    pending = len(projection.locally_ahead())
    if not pending:
        await callback.answer("🟢 Tot està sincronitzat.", show_alert=True)
        return

    synced = await orchestrator.reconcile(projection)
    left = len(projection.locally_ahead())
    await callback.answer(
        f"🔄 Desats: {synced}. Pendents: {left}.",
        show_alert=True,
    )


# ── Detail ────────────────────────────────────────────────────────────────────

@router.callback_query(AdminRegCb.filter(F.action == "view"))
async def cq_registration_detail(
    callback: CallbackQuery,
    callback_data: AdminRegCb,
    state: FSMContext,
    orchestrator: RegistrationOrchestrator,
    projection: OptimisticProjection,
) -> None:
    await state.clear()
    try:
        record = await orchestrator.get_registration(callback_data.rid, projection=projection)
    except (RegistrationError, StoreError) as exc:
        await callback.answer(_error_text(exc), show_alert=True)
        return

    await _show_detail(callback, record)
    await callback.answer()


# ── Status changes ────────────────────────────────────────────────────────────

@router.callback_query(AdminRegCb.filter(F.action.in_(set(_STATUS_ACTIONS))))
async def cq_change_status(
    callback: CallbackQuery,
    callback_data: AdminRegCb,
    orchestrator: RegistrationOrchestrator,
    projection: OptimisticProjection,
) -> None:
    target = _STATUS_ACTIONS[callback_data.action]
    current = projection.view(callback_data.rid)
    try:
        record = await orchestrator.request_transition(
            callback_data.rid,
            target,
            current.processed if current is not None else False,
            projection=projection,
        )
    except (RegistrationError, StoreError) as exc:
        await callback.answer(_error_text(exc), show_alert=True)
        return

    logger.info(
        "Admin %d set registration %d to %s (%s)",
        callback.from_user.id, callback_data.rid, target, record.sync_state,
    )
    await _show_detail(callback, record)
    if record.sync_state == SyncState.LOCALLY_AHEAD:
        await callback.answer("🟡 Canvi pendent de desar; es reintentarà.", show_alert=True)
    else:
        await callback.answer(f"{RegistrationStatus.EMOJI[target]} {RegistrationStatus.LABELS[target]}")


# ── Conversion ────────────────────────────────────────────────────────────────

@router.callback_query(AdminRegCb.filter(F.action == "convert"))
async def cq_convert_ask(callback: CallbackQuery, callback_data: AdminRegCb) -> None:
    await callback.message.edit_text(
        "⚽️ *Convertir en jugador?*\n\n"
        "Es crearà la fitxa del jugador i la inscripció quedarà tancada.",
        parse_mode=ParseMode.MARKDOWN,
        reply_markup=confirm_action_kb(
            yes_cb=AdminRegCb(action="convert_confirm", rid=callback_data.rid).pack(),
            no_cb=AdminRegCb(action="view", rid=callback_data.rid).pack(),
        ),
    )
    await callback.answer()


@router.callback_query(AdminRegCb.filter(F.action == "convert_confirm"))
async def cq_convert(
    callback: CallbackQuery,
    callback_data: AdminRegCb,
    orchestrator: RegistrationOrchestrator,
    projection: OptimisticProjection,
) -> None:
    try:
        record = await orchestrator.convert(callback_data.rid, projection=projection)
    except (RegistrationError, StoreError) as exc:
        await callback.answer(_error_text(exc), show_alert=True)
        return

    await _show_detail(callback, record)
    if record.is_converted and record.sync_state == SyncState.CONFIRMED:
        await callback.answer("✅ Jugador creat.")
    else:
        await callback.answer("🟡 Conversió pendent; es completarà automàticament.", show_alert=True)


# ── Comments ──────────────────────────────────────────────────────────────────

@router.callback_query(AdminRegCb.filter(F.action == "comment"))
async def cq_comment_start(
    callback: CallbackQuery,
    callback_data: AdminRegCb,
    state: FSMContext,
) -> None:
    await state.set_state(AdminRegistrationStates.enter_comment)
    await state.update_data(registration_id=callback_data.rid)
    await callback.message.edit_text(
        "💬 Escriu el comentari per a aquesta inscripció:",
        reply_markup=comment_cancel_kb(callback_data.rid),
    )
    await callback.answer()


@router.message(AdminRegistrationStates.enter_comment, IsAdmin())
async def msg_comment(
    message: Message,
    state: FSMContext,
    orchestrator: RegistrationOrchestrator,
    projection: OptimisticProjection,
) -> None:
    data = await state.get_data()
    rid = data.get("registration_id")
    if rid is None:
        await state.clear()
        await message.answer("🔄 Sessió reiniciada.", reply_markup=admin_main_menu())
        return
    try:
        comment = TextField(value=message.text or "").value
    except ValueError:
        await message.answer("⚠️ Comentari massa curt o massa llarg.", reply_markup=comment_cancel_kb(rid))
        return

    await state.clear()
    try:
        record = await orchestrator.add_comment(rid, comment, projection=projection)
    except (RegistrationError, StoreError) as exc:
        await message.answer(_error_text(exc), reply_markup=admin_main_menu())
        return

    await message.answer(
        registration_card(record, admin=True),
        parse_mode=ParseMode.MARKDOWN,
        reply_markup=registration_detail_admin_kb(record),
    )


# ── Deletion ──────────────────────────────────────────────────────────────────

@router.callback_query(AdminRegCb.filter(F.action == "delete"))
async def cq_delete_ask(callback: CallbackQuery, callback_data: AdminRegCb) -> None:
    await callback.message.edit_text(
        "🗑️ *Eliminar la inscripció?*\n\nAquesta acció no es pot desfer.",
        parse_mode=ParseMode.MARKDOWN,
        reply_markup=confirm_action_kb(
            yes_cb=AdminRegCb(action="delete_confirm", rid=callback_data.rid).pack(),
            no_cb=AdminRegCb(action="view", rid=callback_data.rid).pack(),
        ),
    )
    await callback.answer()


@router.callback_query(AdminRegCb.filter(F.action == "delete_confirm"))
async def cq_delete(
    callback: CallbackQuery,
    callback_data: AdminRegCb,
    orchestrator: RegistrationOrchestrator,
    projection: OptimisticProjection,
) -> None:
    try:
        await orchestrator.delete_registration(callback_data.rid, projection=projection)
    except (RegistrationError, StoreError) as exc:
        await callback.answer(_error_text(exc), show_alert=True)
        return

    logger.info("Admin %d deleted registration %d", callback.from_user.id, callback_data.rid)
    await callback.message.edit_text(
        "🗑️ Inscripció eliminada.",
        reply_markup=admin_main_menu(),
    )
    await callback.answer()
