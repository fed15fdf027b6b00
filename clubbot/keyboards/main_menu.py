"""
Main menu keyboards — parent vs. admin.
"""
from aiogram.types import InlineKeyboardButton, InlineKeyboardMarkup
from aiogram.utils.keyboard import InlineKeyboardBuilder

from clubbot.keyboards.callbacks import MainMenuCb, AdminPanelCb


def parent_main_menu() -> InlineKeyboardMarkup:
    builder = InlineKeyboardBuilder()
    builder.row(
        InlineKeyboardButton(text="📝 Nova inscripció",   callback_data=MainMenuCb(action="register").pack()),
    )
    builder.row(
        InlineKeyboardButton(text="📋 Les meves inscripcions", callback_data=MainMenuCb(action="my_registrations").pack()),
    )
    return builder.as_markup()


def admin_main_menu() -> InlineKeyboardMarkup:
    builder = InlineKeyboardBuilder()
    builder.row(
        InlineKeyboardButton(text="⚪️ Inscripcions pendents", callback_data=AdminPanelCb(action="pending").pack()),
    )
    builder.row(
        InlineKeyboardButton(text="📋 Totes les inscripcions", callback_data=AdminPanelCb(action="all").pack()),
    )
    builder.row(
        InlineKeyboardButton(text="⚽️ Jugadors",             callback_data=AdminPanelCb(action="members").pack()),
    )
    builder.row(
        InlineKeyboardButton(text="🔄 Sincronitzar ara",      callback_data=AdminPanelCb(action="sync").pack()),
    )
    return builder.as_markup()


def back_to_main() -> InlineKeyboardMarkup:
    builder = InlineKeyboardBuilder()
    builder.row(InlineKeyboardButton(text="🔙 Menú principal", callback_data=MainMenuCb(action="main").pack()))
    return builder.as_markup()
