"""
Centralized CallbackData factories.
Telegram limits callback_data to 64 bytes — all prefixes are kept short.
"""
from aiogram.filters.callback_data import CallbackData


class MainMenuCb(CallbackData, prefix="mm"):
    action: str           # main | register | my_registrations


class RegistrationCb(CallbackData, prefix="reg"):
    action: str           # view
    rid: int = 0          # registration id


class PaymentCb(CallbackData, prefix="pay"):
    action: str           # pay | choose | check
    rid: int = 0          # registration id
    ptype: str = ""       # full | partial


class AdminPanelCb(CallbackData, prefix="adm"):
    action: str           # all | pending | members | sync | back


class AdminRegCb(CallbackData, prefix="areg"):
    action: str           # view | accept | reject | pending | convert | convert_confirm
                          # comment | delete | delete_confirm
    rid: int = 0          # registration id
