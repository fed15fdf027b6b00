from aiogram.fsm.state import State, StatesGroup


class RegistrationStates(StatesGroup):
    """FSM for the parent-driven registration flow."""
    enter_player_name = State()   # Text input: player full name
    enter_birth_date  = State()   # Text input: DD/MM/YYYY
    enter_dni         = State()   # Text input: DNI / NIE
    choose_team       = State()   # Inline: team / age group
    enter_parent_name = State()   # Text input: responsible adult
    enter_phone       = State()   # Text input: contact phone
    enter_email       = State()   # Text input: contact e-mail
    enter_address     = State()   # Text input: street address
    enter_city        = State()   # Text input: town
    enter_postal_code = State()   # Text input: postal code
    choose_shirt_size = State()   # Inline: kit size
    confirm           = State()   # Show summary → accept terms & submit
    payment           = State()   # Checkout link sent, waiting for payment
