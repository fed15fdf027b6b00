from clubbot.models.base import (
    Base,
    engine,
    privileged_engine,
    AsyncSessionFactory,
    PrivilegedSessionFactory,
)
from clubbot.models.models import (
    Registration,
    Member,
    RegistrationStatus,
    PaymentStatus,
    PaymentMethod,
    PaymentType,
    SyncState,
    MemberStatus,
)

__all__ = [
    "Base",
    "engine",
    "privileged_engine",
    "AsyncSessionFactory",
    "PrivilegedSessionFactory",
    "Registration",
    "Member",
    "RegistrationStatus",
    "PaymentStatus",
    "PaymentMethod",
    "PaymentType",
    "SyncState",
    "MemberStatus",
]
