from clubbot.keyboards.callbacks import (
    MainMenuCb,
    RegistrationCb,
    PaymentCb,
    AdminPanelCb,
    AdminRegCb,
)
from clubbot.keyboards.main_menu import parent_main_menu, admin_main_menu, back_to_main
from clubbot.keyboards.registration_kb import (
    cancel_registration_kb,
    team_kb,
    shirt_size_kb,
    skip_step_kb,
    confirm_registration_kb,
    payment_choice_kb,
    checkout_kb,
    my_registrations_kb,
    registration_detail_kb,
)
from clubbot.keyboards.admin_kb import (
    registration_list_admin_kb,
    registration_detail_admin_kb,
    confirm_action_kb,
    comment_cancel_kb,
)

__all__ = [
    # callbacks
    "MainMenuCb", "RegistrationCb", "PaymentCb", "AdminPanelCb", "AdminRegCb",
    # main menu
    "parent_main_menu", "admin_main_menu", "back_to_main",
    # registration
    "cancel_registration_kb", "team_kb", "shirt_size_kb", "skip_step_kb",
    "confirm_registration_kb", "payment_choice_kb", "checkout_kb",
    "my_registrations_kb", "registration_detail_kb",
    # admin
    "registration_list_admin_kb", "registration_detail_admin_kb",
    "confirm_action_kb", "comment_cancel_kb",
]
