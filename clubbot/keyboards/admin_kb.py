"""
Keyboards for the admin panel: registration review and conversion.
"""
from typing import List

from aiogram.types import InlineKeyboardButton, InlineKeyboardMarkup
from aiogram.utils.keyboard import InlineKeyboardBuilder

from clubbot.keyboards.callbacks import AdminPanelCb, AdminRegCb
from clubbot.models.models import RegistrationStatus
from clubbot.services.schemas import RegistrationSnapshot


def registration_list_admin_kb(
    registrations: List[RegistrationSnapshot],
    back_action: str = "back",
) -> InlineKeyboardMarkup:
    builder = InlineKeyboardBuilder()
    for r in registrations:
        builder.row(
            InlineKeyboardButton(
                text=f"{r.status_emoji}{r.sync_emoji} {r.player_name}  [{r.team}]",
                callback_data=AdminRegCb(action="view", rid=r.id).pack(),
            )
        )
    builder.row(
        InlineKeyboardButton(text="🔙 Enrere", callback_data=AdminPanelCb(action=back_action).pack()),
    )
    return builder.as_markup()


def registration_detail_admin_kb(r: RegistrationSnapshot) -> InlineKeyboardMarkup:
    """Context-aware control panel for a single registration."""
    builder = InlineKeyboardBuilder()

    if not r.is_converted:
        row = []
        if r.status != RegistrationStatus.ACCEPTED:
            row.append(InlineKeyboardButton(
                text="✅ Acceptar", callback_data=AdminRegCb(action="accept", rid=r.id).pack(),
            ))
        if r.status != RegistrationStatus.REJECTED:
            row.append(InlineKeyboardButton(
                text="❌ Rebutjar", callback_data=AdminRegCb(action="reject", rid=r.id).pack(),
            ))
        if r.status != RegistrationStatus.PENDING:
            row.append(InlineKeyboardButton(
                text="⚪️ Pendent", callback_data=AdminRegCb(action="pending", rid=r.id).pack(),
            ))
        builder.row(*row)

        if r.status != RegistrationStatus.REJECTED:
            builder.row(
                InlineKeyboardButton(
                    text="⚽️ Convertir en jugador",
                    callback_data=AdminRegCb(action="convert", rid=r.id).pack(),
                )
            )

    builder.row(
        InlineKeyboardButton(
            text="💬 Afegir comentari",
            callback_data=AdminRegCb(action="comment", rid=r.id).pack(),
        )
    )
    builder.row(
        InlineKeyboardButton(
            text="🗑️ Eliminar",
            callback_data=AdminRegCb(action="delete", rid=r.id).pack(),
        )
    )
    builder.row(
        InlineKeyboardButton(text="🔙 Enrere", callback_data=AdminPanelCb(action="all").pack()),
    )
    return builder.as_markup()


def confirm_action_kb(yes_cb: str, no_cb: str) -> InlineKeyboardMarkup:
    builder = InlineKeyboardBuilder()
    builder.row(
        InlineKeyboardButton(text="✅ Sí", callback_data=yes_cb),
        InlineKeyboardButton(text="❌ No", callback_data=no_cb),
    )
    return builder.as_markup()


def comment_cancel_kb(rid: int) -> InlineKeyboardMarkup:
    builder = InlineKeyboardBuilder()
    builder.row(
        InlineKeyboardButton(text="❌ Cancel·lar", callback_data=AdminRegCb(action="view", rid=rid).pack()),
    )
    return builder.as_markup()
