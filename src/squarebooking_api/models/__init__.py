"""Request and response models for the payment API."""

from squarebooking_api.models.payments import (
    CheckoutRequest,
    CheckoutResponse,
    FeeInfo,
    FeeRequest,
    FeeResponse,
    PaymentOutcomeResponse,
    WebhookErrorResponse,
    WebhookResponse,
)

__all__ = [
    "CheckoutRequest",
    "CheckoutResponse",
    "FeeInfo",
    "FeeRequest",
    "FeeResponse",
    "PaymentOutcomeResponse",
    "WebhookErrorResponse",
    "WebhookResponse",
]
