"""Error codes and exceptions for payment confirmation handling.

Two families live here:
- ``BookingError`` with an ``ErrorCode``, raised at the API edge and rendered
  into a consistent JSON body by the FastAPI exception handlers.
- Service exceptions raised by the core (provider, store, materializer).
  Routes translate these into ``BookingError`` codes.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class ErrorCode(str, Enum):
    """Error codes returned by the payment API."""

    AUTH_REQUIRED = "ERR_AUTH_001"

    INVALID_WEBHOOK_SIGNATURE = "ERR_STRIPE_001"
    STRIPE_API_ERROR = "ERR_STRIPE_002"
    PROVIDER_UNAVAILABLE = "ERR_STRIPE_003"
    INVALID_PAYMENT_SESSION = "ERR_STRIPE_004"

    BOOKING_CREATION_FAILED = "ERR_BOOKING_001"
    BOOKING_CONTENTION = "ERR_BOOKING_002"
    WEBHOOK_PROCESSING_FAILED = "ERR_BOOKING_003"
    INVALID_BOOKING_REQUEST = "ERR_BOOKING_004"


ERROR_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.AUTH_REQUIRED: "Authentication required to perform this action",
    ErrorCode.INVALID_WEBHOOK_SIGNATURE: "Invalid webhook signature",
    ErrorCode.STRIPE_API_ERROR: "Stripe API error occurred",
    ErrorCode.PROVIDER_UNAVAILABLE: "Payment provider is temporarily unavailable",
    ErrorCode.INVALID_PAYMENT_SESSION: "Invalid payment session",
    ErrorCode.BOOKING_CREATION_FAILED: "Booking could not be created from the payment",
    ErrorCode.BOOKING_CONTENTION: "The square is no longer available for the paid time slot",
    ErrorCode.WEBHOOK_PROCESSING_FAILED: "Webhook event could not be processed",
    ErrorCode.INVALID_BOOKING_REQUEST: "Booking request is invalid",
}

ERROR_RECOVERY: dict[ErrorCode, str] = {
    ErrorCode.AUTH_REQUIRED: "Sign in and try again",
    ErrorCode.INVALID_WEBHOOK_SIGNATURE: "Verify webhook secret configuration",
    ErrorCode.STRIPE_API_ERROR: "Try again or contact support",
    ErrorCode.PROVIDER_UNAVAILABLE: "Reload the page in a moment to re-check the payment",
    ErrorCode.INVALID_PAYMENT_SESSION: "Return to the booking page and start the payment again",
    ErrorCode.BOOKING_CREATION_FAILED: "Contact support with the payment reference",
    ErrorCode.BOOKING_CONTENTION: (
        "Payment was captured; an operator must reconcile the booking manually"
    ),
    ErrorCode.WEBHOOK_PROCESSING_FAILED: "The provider will redeliver the event",
    ErrorCode.INVALID_BOOKING_REQUEST: "Check the booking details and try again",
}


class ErrorResponse(BaseModel):
    """Standard error body returned by the API."""

    model_config = ConfigDict(strict=True)

    success: bool = False
    error_code: ErrorCode
    message: str
    recovery: str
    details: Optional[dict[str, str]] = None

    @classmethod
    def from_code(
        cls,
        code: ErrorCode,
        details: Optional[dict[str, str]] = None,
    ) -> "ErrorResponse":
        """Create an ErrorResponse from an error code."""
        return cls(
            error_code=code,
            message=ERROR_MESSAGES[code],
            recovery=ERROR_RECOVERY[code],
            details=details,
        )


class BookingError(Exception):
    """Exception raised at the API edge.

    Converted to an ``ErrorResponse`` by the registered exception handler.
    """

    def __init__(
        self,
        code: ErrorCode,
        details: Optional[dict[str, str]] = None,
    ):
        self.code = code
        self.message = ERROR_MESSAGES[code]
        self.recovery = ERROR_RECOVERY[code]
        self.details = details
        super().__init__(self.message)

    def to_error_response(self) -> ErrorResponse:
        """Convert this exception to an ErrorResponse."""
        return ErrorResponse.from_code(self.code, self.details)


# === Service exceptions ===


class StripeServiceError(Exception):
    """Raised when a Stripe operation fails."""

    def __init__(self, message: str, stripe_error_code: str | None = None) -> None:
        """Initialize with message and optional Stripe error code.

        Args:
            message: Human-readable error message.
            stripe_error_code: Stripe-specific error code if available.
        """
        super().__init__(message)
        self.stripe_error_code = stripe_error_code


class SignatureError(StripeServiceError):
    """Webhook signature or payload could not be verified."""


class ProviderUnavailableError(StripeServiceError):
    """Transient provider failure. Nothing was created; safe to retry."""


class NotFoundError(Exception):
    """A user or square referenced by payment metadata does not exist."""

    def __init__(self, entity: str, entity_id: str) -> None:
        super().__init__(f"{entity} {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id


class BookingCreationError(Exception):
    """A verified payment could not be turned into a booking."""


class BookingContentionError(BookingCreationError):
    """The square became unavailable between payment and materialization."""


class ReferenceAlreadyClaimedError(Exception):
    """Another booking already holds the session or payment intent reference."""

    def __init__(self, references: list[str]) -> None:
        super().__init__(f"Payment reference already claimed: {', '.join(references)}")
        self.references = references


class BookingMetadataError(ValueError):
    """Stored booking metadata cannot be decoded."""


class OptionStoreError(Exception):
    """The key-value option store could not be read or written."""


# Stripe error codes that indicate a transient failure
STRIPE_RETRYABLE_ERRORS: set[str] = {
    "processing_error",
    "rate_limit",
    "lock_timeout",
    "api_connection_error",
}


def is_stripe_error_retryable(stripe_error_code: Optional[str]) -> bool:
    """Check if a Stripe error is likely transient and retryable.

    Args:
        stripe_error_code: The Stripe error code.

    Returns:
        True if the error may be resolved by retrying.
    """
    return stripe_error_code in STRIPE_RETRYABLE_ERRORS if stripe_error_code else False
