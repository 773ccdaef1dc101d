"""Pydantic models for square booking payment confirmation."""

from .booking import (
    Booking,
    BookingDraft,
    LineItem,
    Square,
    User,
)
from .confirmation import CHECKOUT_COMPLETED_EVENT, PaymentConfirmation
from .enums import (
    BillingStatus,
    BookingStatus,
    ConfirmationChannel,
    ConfirmationState,
    ReferenceKind,
)
from .errors import (
    BookingContentionError,
    BookingCreationError,
    BookingError,
    BookingMetadataError,
    ErrorCode,
    ErrorResponse,
    NotFoundError,
    OptionStoreError,
    ProviderUnavailableError,
    ReferenceAlreadyClaimedError,
    SignatureError,
    StripeServiceError,
)
from .stripe_webhook import ProcessedWebhookSet

__all__ = [
    # Enums
    "BillingStatus",
    "BookingStatus",
    "ConfirmationChannel",
    "ConfirmationState",
    "ReferenceKind",
    # Booking
    "Booking",
    "BookingDraft",
    "LineItem",
    "Square",
    "User",
    # Confirmation
    "CHECKOUT_COMPLETED_EVENT",
    "PaymentConfirmation",
    "ProcessedWebhookSet",
    # Errors
    "BookingContentionError",
    "BookingCreationError",
    "BookingError",
    "BookingMetadataError",
    "ErrorCode",
    "ErrorResponse",
    "NotFoundError",
    "OptionStoreError",
    "ProviderUnavailableError",
    "ReferenceAlreadyClaimedError",
    "SignatureError",
    "StripeServiceError",
]
