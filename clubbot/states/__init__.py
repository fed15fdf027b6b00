from clubbot.states.registration_states import RegistrationStates
from clubbot.states.admin_states import AdminRegistrationStates

__all__ = ["RegistrationStates", "AdminRegistrationStates"]
