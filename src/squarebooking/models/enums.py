"""Enumeration types for square booking payment models."""

from enum import Enum


class BillingStatus(str, Enum):
    """Billing status of a booking."""

    PENDING = "pending"
    PAID = "paid"
    CANCELLED = "cancelled"


class BookingStatus(str, Enum):
    """Lifecycle status of a booking."""

    SINGLE = "single"
    CANCELLED = "cancelled"


class ConfirmationChannel(str, Enum):
    """Channel through which a payment confirmation arrived."""

    SESSION_CHECK = "session_check"
    WEBHOOK = "webhook"


class ConfirmationState(str, Enum):
    """State of a single payment attempt inside the reconciler."""

    UNCONFIRMED = "unconfirmed"
    CONFIRMED = "confirmed"
    MATERIALIZED = "materialized"
    REJECTED = "rejected"
    DUPLICATE = "duplicate"
    PENDING = "pending"  # Deferred to the webhook channel
    IGNORED = "ignored"  # Event type or status not actionable


class ReferenceKind(str, Enum):
    """Kind of payment reference stored in the booking reference index."""

    SESSION = "session"
    PAYMENT_INTENT = "intent"
