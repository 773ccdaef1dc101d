"""API models for payment endpoints."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, model_validator

from squarebooking.models.booking import LineItem


class WebhookResponse(BaseModel):
    """Standard webhook response."""

    received: bool
    event_id: str | None = None
    event_type: str | None = None
    processing_result: str  # "materialized", "duplicate", "ignored"
    message: str | None = None


class WebhookErrorResponse(BaseModel):
    """Error response for webhook failures."""

    success: bool = False
    message: str
    recovery: str | None = None


class PaymentOutcomeResponse(BaseModel):
    """What the user sees after returning from checkout."""

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {
                    "status": "materialized",
                    "message": "Payment successful! Your booking has been confirmed.",
                    "booking_id": "BKG-3F2A9C0D11E4",
                }
            ]
        },
    )

    status: str = Field(
        ...,
        description="materialized, duplicate, pending, rejected, success or cancelled",
    )
    message: str
    booking_id: str | None = None


class CheckoutRequest(BaseModel):
    """Request to start a checkout session for a square booking."""

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {
                    "square_id": "court-1",
                    "date_start": "2026-07-01T10:00:00",
                    "date_end": "2026-07-01T11:00:00",
                    "quantity": 1,
                    "line_items": [
                        {"description": "Court 1, 60 minutes", "unit_price_minor": 2500}
                    ],
                    "success_url": "https://example.com/payments/success",
                    "cancel_url": "https://example.com/payments/cancel",
                }
            ]
        },
    )

    square_id: str = Field(..., min_length=1)
    date_start: datetime
    date_end: datetime
    quantity: int = Field(default=1, gt=0)
    line_items: list[LineItem] = Field(..., min_length=1)
    player_names: str | None = Field(default=None, description="Stored on the booking verbatim")
    notes: str | None = None
    success_url: str
    cancel_url: str
    customer_email: str | None = None
    international: bool = Field(
        default=False, description="Apply the international card fee rate"
    )

    @model_validator(mode="after")
    def _end_after_start(self) -> "CheckoutRequest":
        if self.date_end <= self.date_start:
            raise ValueError("date_end must be after date_start")
        return self


class CheckoutResponse(BaseModel):
    """Checkout session created with the provider."""

    session_id: str
    checkout_url: str


class FeeRequest(BaseModel):
    """Amount to quote processing fees for, in minor currency units."""

    amount_minor: int = Field(..., description="Amount before fees, e.g. 2500 for 25.00")
    international: bool = False


class FeeInfo(BaseModel):
    original_amount: int
    percentage_fee: int
    fixed_fee: int
    total_fee: int
    total_with_fees: int
    fee_percentage: float
    card_type: str


class FeeResponse(BaseModel):
    success: bool = True
    fee_info: FeeInfo
