"""
Error taxonomy for the registration core.

Store errors carry a class that drives the write fallback chain:
only ``auth`` (and ``transient``) failures fall through to the next
strategy; ``validation`` and ``not_found`` stop it immediately.
"""
from __future__ import annotations

from typing import Optional


class ErrorClass:
    AUTH       = "auth"         # permission / row-level policy refused the write
    VALIDATION = "validation"   # malformed data or schema mismatch
    TRANSIENT  = "transient"    # network, timeout, connection dropped
    NOT_FOUND  = "not_found"


class StoreError(Exception):
    """Raised by the record store gateway with a classified cause."""

    def __init__(
        self,
        message: str,
        error_class: str,
        original_error: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.error_class = error_class
        self.original_error = original_error

    def __repr__(self) -> str:
        return f"StoreError({self.error_class}: {self})"


class RegistrationError(Exception):
    """Base class for failures surfaced to the immediate caller."""


class RegistrationNotFound(RegistrationError):
    def __init__(self, registration_id: int) -> None:
        super().__init__(f"Registration {registration_id} not found")
        self.registration_id = registration_id


class RegistrationRejectedByStore(RegistrationError):
    """A validation-class write error; no fallback was attempted."""

    def __init__(self, message: str, cause: Optional[StoreError] = None) -> None:
        super().__init__(message)
        self.cause = cause


class TransitionNotAllowed(RegistrationError):
    """Status change requested on a registration already converted to a member."""


class MemberAlreadyExists(Exception):
    """A member derived from this registration is already stored."""

    def __init__(self, registration_id: int) -> None:
        super().__init__(f"Member for registration {registration_id} already exists")
        self.registration_id = registration_id


class PaymentSessionError(Exception):
    """The payment provider could not open a checkout session."""
