"""
Keyboards for the parent registration FSM flow.
"""
from typing import List

from aiogram.types import InlineKeyboardButton, InlineKeyboardMarkup
from aiogram.utils.keyboard import InlineKeyboardBuilder

from clubbot.keyboards.callbacks import MainMenuCb, PaymentCb, RegistrationCb
from clubbot.models.models import PaymentType, RegistrationStatus
from clubbot.services.schemas import RegistrationSnapshot
from clubbot.validators import SHIRT_SIZES, TEAMS


def cancel_registration_kb() -> InlineKeyboardMarkup:
    builder = InlineKeyboardBuilder()
    builder.row(InlineKeyboardButton(text="❌ Cancel·lar", callback_data=MainMenuCb(action="main").pack()))
    return builder.as_markup()


def team_kb() -> InlineKeyboardMarkup:
    builder = InlineKeyboardBuilder()
    # Two teams per row
    for i in range(0, len(TEAMS), 2):
        builder.row(*[
            InlineKeyboardButton(text=team, callback_data=f"reg_team:{team}")
            for team in TEAMS[i:i + 2]
        ])
    builder.row(InlineKeyboardButton(text="❌ Cancel·lar", callback_data=MainMenuCb(action="main").pack()))
    return builder.as_markup()


def shirt_size_kb() -> InlineKeyboardMarkup:
    builder = InlineKeyboardBuilder()
    builder.row(*[
        InlineKeyboardButton(text=size, callback_data=f"reg_size:{size}")
        for size in SHIRT_SIZES
    ])
    builder.row(InlineKeyboardButton(text="⏭ Ometre", callback_data="reg_size:-"))
    builder.row(InlineKeyboardButton(text="❌ Cancel·lar", callback_data=MainMenuCb(action="main").pack()))
    return builder.as_markup()


def skip_step_kb() -> InlineKeyboardMarkup:
    builder = InlineKeyboardBuilder()
    builder.row(InlineKeyboardButton(text="⏭ Ometre", callback_data="reg_skip"))
    builder.row(InlineKeyboardButton(text="❌ Cancel·lar", callback_data=MainMenuCb(action="main").pack()))
    return builder.as_markup()


def confirm_registration_kb() -> InlineKeyboardMarkup:
    builder = InlineKeyboardBuilder()
    builder.row(
        InlineKeyboardButton(text="✅ Accepto i envio", callback_data="reg_confirm"),
        InlineKeyboardButton(text="✏️ Modificar",       callback_data="reg_edit"),
    )
    builder.row(InlineKeyboardButton(text="❌ Cancel·lar", callback_data=MainMenuCb(action="main").pack()))
    return builder.as_markup()


def payment_choice_kb(rid: int) -> InlineKeyboardMarkup:
    builder = InlineKeyboardBuilder()
    for ptype in (PaymentType.FULL, PaymentType.PARTIAL):
        builder.row(
            InlineKeyboardButton(
                text=f"💳 {PaymentType.LABELS[ptype]}",
                callback_data=PaymentCb(action="choose", rid=rid, ptype=ptype).pack(),
            )
        )
    builder.row(InlineKeyboardButton(text="🔙 Pagar més tard", callback_data=MainMenuCb(action="main").pack()))
    return builder.as_markup()


def checkout_kb(rid: int, url: str) -> InlineKeyboardMarkup:
    builder = InlineKeyboardBuilder()
    builder.row(InlineKeyboardButton(text="💳 Anar al pagament", url=url))
    builder.row(
        InlineKeyboardButton(
            text="🔄 Ja he pagat, comprovar",
            callback_data=PaymentCb(action="check", rid=rid).pack(),
        )
    )
    builder.row(InlineKeyboardButton(text="🔙 Menú principal", callback_data=MainMenuCb(action="main").pack()))
    return builder.as_markup()


def my_registrations_kb(registrations: List[RegistrationSnapshot]) -> InlineKeyboardMarkup:
    """Parent's own registrations list."""
    builder = InlineKeyboardBuilder()
    for r in registrations:
        builder.row(
            InlineKeyboardButton(
                text=f"{r.status_emoji}{r.sync_emoji} {r.player_name}",
                callback_data=RegistrationCb(action="view", rid=r.id).pack(),
            )
        )
    builder.row(InlineKeyboardButton(text="🔙 Enrere", callback_data=MainMenuCb(action="main").pack()))
    return builder.as_markup()


def registration_detail_kb(registration: RegistrationSnapshot) -> InlineKeyboardMarkup:
    builder = InlineKeyboardBuilder()
    if registration.status == RegistrationStatus.PENDING and registration.id is not None:
        builder.row(
            InlineKeyboardButton(
                text="💳 Pagar inscripció",
                callback_data=PaymentCb(action="pay", rid=registration.id).pack(),
            )
        )
    builder.row(InlineKeyboardButton(text="🔙 Enrere", callback_data=MainMenuCb(action="my_registrations").pack()))
    return builder.as_markup()
