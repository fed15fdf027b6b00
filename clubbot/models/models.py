"""
ORM models for the club registration system.

Domain overview
---------------
Registration — a season sign-up submitted by a parent (status + processed flag)
  └─ payment_info  — JSON sub-record written only from a confirmed payment
Member       — the player record derived from a processed registration
               (table "players", at most one per registration)
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    String,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from clubbot.models.base import Base

# ─────────────────────────── Constants ────────────────────────────────────────

class RegistrationStatus:
    PENDING  = "pending"    # Submitted, waiting for payment / review
    ACCEPTED = "accepted"   # Paid or approved by an administrator
    REJECTED = "rejected"   # Payment failed or refused by an administrator

    ALL = (PENDING, ACCEPTED, REJECTED)

    LABELS = {
        PENDING:  "Pendent",
        ACCEPTED: "Acceptada",
        REJECTED: "Rebutjada",
    }

    EMOJI = {
        PENDING:  "⚪️",
        ACCEPTED: "✅",
        REJECTED: "❌",
    }


class PaymentStatus:
    PENDING   = "pending"
    COMPLETED = "completed"
    FAILED    = "failed"


class PaymentMethod:
    CARD     = "card"
    TRANSFER = "transfer"
    CASH     = "cash"


class PaymentType:
    FULL    = "full"      # whole season fee
    PARTIAL = "partial"   # first instalment

    LABELS = {
        FULL:    "Pagament complet",
        PARTIAL: "Pagament parcial",
    }


class SyncState:
    CONFIRMED     = "confirmed"       # value matches the last persisted one
    LOCALLY_AHEAD = "locally-ahead"   # shown to the user, not yet persisted

    EMOJI = {
        CONFIRMED:     "🟢",
        LOCALLY_AHEAD: "🟡",
    }


class MemberStatus:
    ACTIVE   = "active"
    INACTIVE = "inactive"


# ─────────────────────────── Models ───────────────────────────────────────────

class Registration(Base):
    """A player registration for the season."""
    __tablename__ = "registrations"

    id:             Mapped[int]            = mapped_column(Integer, primary_key=True, autoincrement=True)
    submission_key: Mapped[Optional[str]]  = mapped_column(String(36), unique=True, nullable=True)
    telegram_id:    Mapped[Optional[int]]  = mapped_column(BigInteger, index=True, nullable=True)

    player_name:    Mapped[str]            = mapped_column(String(255))
    birth_date:     Mapped[str]            = mapped_column(String(10))     # YYYY-MM-DD
    player_dni:     Mapped[str]            = mapped_column(String(20))
    team:           Mapped[str]            = mapped_column(String(100))
    parent_name:    Mapped[str]            = mapped_column(String(255))
    contact_phone:  Mapped[str]            = mapped_column(String(30))
    email:          Mapped[str]            = mapped_column(String(255))
    address:        Mapped[Optional[str]]  = mapped_column(String(255), nullable=True)
    city:           Mapped[Optional[str]]  = mapped_column(String(100), nullable=True)
    postal_code:    Mapped[Optional[str]]  = mapped_column(String(10), nullable=True)
    shirt_size:     Mapped[Optional[str]]  = mapped_column(String(10), nullable=True)
    accept_terms:   Mapped[bool]           = mapped_column(Boolean, default=False)
    season:         Mapped[Optional[str]]  = mapped_column(String(20), nullable=True)

    comments:       Mapped[Optional[str]]  = mapped_column(String(1000), nullable=True)

    status:         Mapped[str]            = mapped_column(String(20), default=RegistrationStatus.PENDING, index=True)
    processed:      Mapped[bool]           = mapped_column(Boolean, default=False)
    payment_info:   Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    created_at:     Mapped[datetime]       = mapped_column(DateTime, default=func.now())
    updated_at:     Mapped[datetime]       = mapped_column(DateTime, default=func.now(), onupdate=func.now())

    @property
    def status_emoji(self) -> str:
        return RegistrationStatus.EMOJI.get(self.status, "❓")


class Member(Base):
    """Club player created from a processed registration."""
    __tablename__ = "players"

    id:              Mapped[int]           = mapped_column(Integer, primary_key=True, autoincrement=True)
    registration_id: Mapped[int]           = mapped_column(ForeignKey("registrations.id", ondelete="SET NULL"), unique=True, nullable=True)
    first_name:      Mapped[str]           = mapped_column(String(255))
    last_name:       Mapped[str]           = mapped_column(String(255), default="")
    birth_date:      Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    dni:             Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    phone:           Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    email:           Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    address:         Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    city:            Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    postal_code:     Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    category:        Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    notes:           Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    status:          Mapped[str]           = mapped_column(String(20), default=MemberStatus.ACTIVE)
    created_at:      Mapped[datetime]      = mapped_column(DateTime, default=func.now())

    @property
    def display_name(self) -> str:
        parts = [self.first_name]
        if self.last_name:
            parts.append(self.last_name)
        return " ".join(parts)
