"""
Common handlers: /start, /cancel, main menu routing.
"""
import logging

from aiogram import F, Router
from aiogram.enums import ParseMode
from aiogram.filters import Command, CommandStart
from aiogram.fsm.context import FSMContext
from aiogram.types import CallbackQuery, Message

from clubbot.keyboards import MainMenuCb, admin_main_menu, parent_main_menu
from clubbot.services import OptimisticProjection, ProjectionRegistry, RegistrationOrchestrator

logger = logging.getLogger(__name__)
router = Router(name="common")


# ── /start ────────────────────────────────────────────────────────────────────

@router.message(CommandStart())
async def cmd_start(message: Message, state: FSMContext, is_admin: bool) -> None:
    await state.clear()
    if is_admin:
        await _send_admin_welcome(message)
    else:
        await _send_parent_welcome(message)


async def _send_parent_welcome(message: Message) -> None:
    name = message.from_user.first_name
    text = (
        f"⚽️ Benvingut/da a les *inscripcions del club*, {name}!\n\n"
        f"Aquí pots:\n"
        f"• 📝 Inscriure un jugador per a la temporada\n"
        f"• 💳 Pagar la quota en línia\n"
        f"• 📋 Consultar l'estat de les teves inscripcions\n\n"
        f"Tria una opció:"
    )
    await message.answer(text, parse_mode=ParseMode.MARKDOWN, reply_markup=parent_main_menu())


async def _send_admin_welcome(message: Message) -> None:
    name = message.from_user.first_name
    text = (
        f"⚡ *Panell d'administració* — {name}\n\n"
        f"Revisa les inscripcions, confirma pagaments\n"
        f"i converteix-les en fitxes de jugador.\n\n"
        f"Tria una secció:"
    )
    await message.answer(text, parse_mode=ParseMode.MARKDOWN, reply_markup=admin_main_menu())


# ── /cancel ───────────────────────────────────────────────────────────────────

@router.message(Command("cancel"))
async def cmd_cancel(
    message: Message,
    state: FSMContext,
    is_admin: bool,
    orchestrator: RegistrationOrchestrator,
    registry: ProjectionRegistry,
    projection: OptimisticProjection,
) -> None:
    """Ends the user's session: one last sync attempt, then the view is dropped."""
    await state.clear()
    pending = len(projection.locally_ahead())
    if pending:
        synced = await orchestrator.reconcile(projection)
        if synced < pending:
            logger.warning(
                "Session %d closed with %d unsynced change(s)",
                message.from_user.id, pending - synced,
            )
    registry.drop(message.from_user.id)
    await message.answer(
        "🔄 Sessió reiniciada.",
        reply_markup=admin_main_menu() if is_admin else parent_main_menu(),
    )


# ── Main menu callback ────────────────────────────────────────────────────────

@router.callback_query(MainMenuCb.filter(F.action == "main"))
async def cq_main_menu(callback: CallbackQuery, is_admin: bool, state: FSMContext) -> None:
    await state.clear()
    if is_admin:
        text = "⚡ *Panell d'administració*\n\nTria una secció:"
        kb   = admin_main_menu()
    else:
        text = "⚽️ *Inscripcions del club*\n\nTria una opció:"
        kb   = parent_main_menu()

    await callback.message.edit_text(text, parse_mode=ParseMode.MARKDOWN, reply_markup=kb)
    await callback.answer()


@router.callback_query(F.data == "noop")
async def cq_noop(callback: CallbackQuery) -> None:
    await callback.answer()
