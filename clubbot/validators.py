"""
Input validation for FSM text handlers — Pydantic v2 models.

Used to validate user-supplied text before it reaches the registration core.
Keeps validation logic out of handler code and makes it trivially testable.
"""
from __future__ import annotations

import re
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, field_validator

# Letters (Catalan / Spanish accents included), spaces, hyphens, apostrophes
_NAME_RE = re.compile(r"^[A-Za-zÀ-ÖØ-öø-ÿ][A-Za-zÀ-ÖØ-öø-ÿ\s'·\-]*[A-Za-zÀ-ÖØ-öø-ÿ]$")

# Spanish DNI (8 digits + letter) or NIE (X/Y/Z + 7 digits + letter)
_DNI_RE = re.compile(r"^(\d{8}|[XYZ]\d{7})[A-Z]$")
_DNI_LETTERS = "TRWAGMYFPDXBNJZSQVHLCKE"

_PHONE_RE = re.compile(r"^\+?\d{9,15}$")
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[A-Za-z]{2,}$")
_POSTAL_RE = re.compile(r"^\d{5}$")

TEAMS = (
    "Prebenjamí",
    "Benjamí",
    "Aleví",
    "Infantil",
    "Cadet",
    "Juvenil",
    "Amateur",
)

SHIRT_SIZES = ("XS", "S", "M", "L", "XL", "XXL")


# ── Field rules ───────────────────────────────────────────────────────────────

def clean_name(v: str) -> str:
    v = " ".join(v.split())
    if len(v) < 3 or len(v) > 100:
        raise ValueError("El nom ha de tenir entre 3 i 100 caràcters")
    if not _NAME_RE.match(v):
        raise ValueError("El nom només pot contenir lletres, espais i guions")
    return v


def clean_birth_date(v: str) -> str:
    """DD/MM/YYYY, DD-MM-YYYY or YYYY-MM-DD → ISO string."""
    v = v.strip()
    parsed: Optional[date] = None
    for fmt in ("%d/%m/%Y", "%Y-%m-%d", "%d-%m-%Y"):
        try:
            parsed = datetime.strptime(v, fmt).date()
            break
        except ValueError:
            continue
    if parsed is None:
        raise ValueError("Format de data no vàlid (DD/MM/AAAA)")
    age = (date.today() - parsed).days / 365.25
    if age < 3 or age > 60:
        raise ValueError("La data de naixement no és plausible")
    return parsed.isoformat()


def clean_dni(v: str) -> str:
    v = v.strip().upper().replace("-", "").replace(" ", "")
    if not _DNI_RE.match(v):
        raise ValueError("DNI/NIE no vàlid")
    digits = v[:-1].replace("X", "0").replace("Y", "1").replace("Z", "2")
    if _DNI_LETTERS[int(digits) % 23] != v[-1]:
        raise ValueError("La lletra del DNI/NIE no coincideix")
    return v


def clean_phone(v: str) -> str:
    v = re.sub(r"[\s\-().]", "", v)
    if not _PHONE_RE.match(v):
        raise ValueError("Telèfon no vàlid")
    return v


def clean_email(v: str) -> str:
    v = v.strip().lower()
    if not _EMAIL_RE.match(v):
        raise ValueError("Correu electrònic no vàlid")
    return v


def clean_postal_code(v: str) -> str:
    v = v.strip()
    if not _POSTAL_RE.match(v):
        raise ValueError("El codi postal ha de tenir 5 xifres")
    return v


def clean_text(v: str) -> str:
    v = " ".join(v.split())
    if len(v) < 2 or len(v) > 255:
        raise ValueError("Camp massa curt o massa llarg")
    return v


# ── Models ────────────────────────────────────────────────────────────────────

class TextField(BaseModel):
    """Single free-text FSM step (address, city, comment)."""

    value: str

    @field_validator("value")
    @classmethod
    def validate_value(cls, v: str) -> str:
        return clean_text(v)


class RegistrationData(BaseModel):
    """
    Complete registration payload validated before submission.

    Attributes
    ----------
    player_name   : Player full name
    birth_date    : ISO date string
    player_dni    : DNI / NIE with control letter
    team          : One of TEAMS
    parent_name   : Responsible adult
    contact_phone : 9–15 digits, optional leading +
    email         : Contact e-mail
    shirt_size    : One of SHIRT_SIZES (optional)
    accept_terms  : Must be True
    """

    player_name: str
    birth_date: str
    player_dni: str
    team: str
    parent_name: str
    contact_phone: str
    email: str
    address: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None
    shirt_size: Optional[str] = None
    accept_terms: bool

    @field_validator("player_name", "parent_name")
    @classmethod
    def validate_names(cls, v: str) -> str:
        return clean_name(v)

    @field_validator("birth_date")
    @classmethod
    def validate_birth_date(cls, v: str) -> str:
        return clean_birth_date(v)

    @field_validator("player_dni")
    @classmethod
    def validate_dni(cls, v: str) -> str:
        return clean_dni(v)

    @field_validator("contact_phone")
    @classmethod
    def validate_phone(cls, v: str) -> str:
        return clean_phone(v)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return clean_email(v)

    @field_validator("postal_code")
    @classmethod
    def validate_postal_code(cls, v: Optional[str]) -> Optional[str]:
        return clean_postal_code(v) if v is not None else v

    @field_validator("team")
    @classmethod
    def validate_team(cls, v: str) -> str:
        if v not in TEAMS:
            raise ValueError(f"Equip desconegut: {v}")
        return v

    @field_validator("shirt_size")
    @classmethod
    def validate_shirt_size(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip().upper()
        if v not in SHIRT_SIZES:
            raise ValueError("Talla no vàlida")
        return v

    @field_validator("accept_terms")
    @classmethod
    def validate_terms(cls, v: bool) -> bool:
        if not v:
            raise ValueError("Cal acceptar les condicions")
        return v
