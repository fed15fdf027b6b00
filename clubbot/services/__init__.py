from clubbot.services.exceptions import (
    ErrorClass, StoreError,
    RegistrationError, RegistrationNotFound, RegistrationRejectedByStore,
    TransitionNotAllowed, MemberAlreadyExists, PaymentSessionError,
)
from clubbot.services.schemas import PaymentInfo, RegistrationSnapshot, MemberSnapshot
from clubbot.services.store_gateway import RegistrationGateway, classify_error
from clubbot.services.write_chain import (
    Transition, Strategy, WriteAttemptResult, WriteFallbackChain,
    build_update_chain, build_create_chain,
)
from clubbot.services.payment_client import (
    PaymentConfirmationClient, PaymentVerification, VerificationStatus, CheckoutLink,
)
from clubbot.services.projection import OptimisticProjection, ProjectionRegistry
from clubbot.services.member_service import MemberService, get_member_for_registration, list_members
from clubbot.services.notification_service import Notifier
from clubbot.services.orchestrator import (
    RegistrationOrchestrator, KeyedLocks, reconciliation_loop,
)

__all__ = [
    # errors
    "ErrorClass", "StoreError",
    "RegistrationError", "RegistrationNotFound", "RegistrationRejectedByStore",
    "TransitionNotAllowed", "MemberAlreadyExists", "PaymentSessionError",
    # snapshots
    "PaymentInfo", "RegistrationSnapshot", "MemberSnapshot",
    # store
    "RegistrationGateway", "classify_error",
    # write chain
    "Transition", "Strategy", "WriteAttemptResult", "WriteFallbackChain",
    "build_update_chain", "build_create_chain",
    # payments
    "PaymentConfirmationClient", "PaymentVerification", "VerificationStatus", "CheckoutLink",
    # projection
    "OptimisticProjection", "ProjectionRegistry",
    # members
    "MemberService", "get_member_for_registration", "list_members",
    # notifications
    "Notifier",
    # orchestration
    "RegistrationOrchestrator", "KeyedLocks", "reconciliation_loop",
]
