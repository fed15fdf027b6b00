from aiogram.fsm.state import State, StatesGroup


class AdminRegistrationStates(StatesGroup):
    """FSM for admin actions that need text input."""
    enter_comment = State()   # Admin types a note for a registration
