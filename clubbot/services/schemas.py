"""
Detached snapshots of persisted records.

ORM instances are bound to the session that loaded them; the reconciliation
core passes these pydantic copies around instead, so a snapshot stays valid
after its session is closed and can be merged with a requested target.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

from clubbot.models.models import PaymentStatus, RegistrationStatus, SyncState


class PaymentInfo(BaseModel):
    """Payment sub-record owned by a registration."""

    method: str
    status: str = PaymentStatus.PENDING
    amount: float = 0.0
    date: Optional[str] = None
    reference: Optional[str] = None
    notes: Optional[str] = None


class RegistrationSnapshot(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    submission_key: Optional[str] = None
    telegram_id: Optional[int] = None

    player_name: str = ""
    birth_date: str = ""
    player_dni: str = ""
    team: str = ""
    parent_name: str = ""
    contact_phone: str = ""
    email: str = ""
    address: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None
    shirt_size: Optional[str] = None
    accept_terms: bool = False
    season: Optional[str] = None

    comments: Optional[str] = None

    status: str = RegistrationStatus.PENDING
    processed: bool = False
    payment_info: Optional[PaymentInfo] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    # Not persisted: whether this value is backed by the store
    sync_state: str = SyncState.CONFIRMED

    @property
    def is_converted(self) -> bool:
        """Accepted and turned into a member; only comments may change now."""
        return self.status == RegistrationStatus.ACCEPTED and self.processed

    @property
    def status_emoji(self) -> str:
        return RegistrationStatus.EMOJI.get(self.status, "❓")

    @property
    def sync_emoji(self) -> str:
        return SyncState.EMOJI.get(self.sync_state, "❓")


class MemberSnapshot(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    registration_id: Optional[int] = None
    first_name: str
    last_name: str = ""
    category: Optional[str] = None
    status: str
