"""Stripe webhook endpoint.

No user authentication: payloads are verified with the Stripe webhook
signing secret. Any non-2xx answer makes Stripe redeliver the event, so
only failures that a redelivery can fix return 5xx.
"""

from botocore.exceptions import ClientError
from fastapi import APIRouter, Depends, Request

from squarebooking.models.confirmation import PaymentConfirmation
from squarebooking.models.errors import (
    BookingCreationError,
    BookingError,
    ErrorCode,
    OptionStoreError,
    SignatureError,
    StripeServiceError,
)
from squarebooking.services.confirmation_settings import ConfirmationSettings
from squarebooking.services.reconciler import ConfirmationReconciler
from squarebooking.services.stripe_service import StripeService
from squarebooking.utils.logging import get_logger, log_webhook_event
from squarebooking_api.dependencies import (
    get_confirmation_settings,
    get_payment_provider,
    get_reconciler,
)
from squarebooking_api.models.payments import WebhookErrorResponse, WebhookResponse

logger = get_logger(__name__)

router = APIRouter(tags=["webhooks"])


@router.post(
    "/payments/webhook",
    summary="Receive Stripe webhook events",
    description="""
Endpoint for Stripe webhook events. `checkout.session.completed` with
payment status `paid` creates the booking; other events are acknowledged
and ignored.

**No authentication required** - signature is verified using Stripe webhook secret.

**Idempotent**: Replayed events and payments that already have a booking
return 200 with 'duplicate' result.
""",
    response_model=WebhookResponse,
    responses={
        200: {
            "description": "Event materialized, duplicate or ignored",
            "model": WebhookResponse,
        },
        400: {
            "description": "Invalid signature, missing header or unparsable payload",
            "model": WebhookErrorResponse,
        },
        500: {
            "description": "Booking could not be created; Stripe will retry",
            "model": WebhookErrorResponse,
        },
    },
)
async def handle_stripe_webhook(
    request: Request,
    settings: ConfirmationSettings = Depends(get_confirmation_settings),
    stripe_service: StripeService = Depends(get_payment_provider),
    reconciler: ConfirmationReconciler = Depends(get_reconciler),
) -> WebhookResponse:
    """Handle incoming Stripe webhook events.

    Verifies signature, builds the confirmation and hands it to the
    reconciler.
    """
    if not settings.webhook_enabled:
        log_webhook_event(logger, None, None, result="ignored", reason="webhook_disabled")
        return WebhookResponse(
            received=True,
            processing_result="ignored",
            message="Webhook confirmation is disabled",
        )

    signature = request.headers.get("Stripe-Signature")
    if not signature:
        logger.warning("Webhook request missing Stripe-Signature header")
        raise BookingError(
            code=ErrorCode.INVALID_WEBHOOK_SIGNATURE,
            details={"message": "Missing Stripe-Signature header"},
        )

    payload = await request.body()

    try:
        event = stripe_service.verify_webhook_signature(payload, signature)
    except SignatureError as e:
        raise BookingError(
            code=ErrorCode.INVALID_WEBHOOK_SIGNATURE,
            details={"message": str(e)},
        ) from e
    except StripeServiceError as e:
        logger.error("Webhook verification unavailable: %s", e)
        raise BookingError(
            code=ErrorCode.WEBHOOK_PROCESSING_FAILED,
            details={"message": "Webhook verification is not configured"},
        ) from e

    event_id = event.get("id")
    event_type = event.get("type")
    log_webhook_event(logger, event_type, event_id, result="received")

    try:
        confirmation = PaymentConfirmation.from_webhook_event(event)
    except ValueError as e:
        logger.warning("Unparsable webhook event %s: %s", event_id, e)
        raise BookingError(
            code=ErrorCode.INVALID_WEBHOOK_SIGNATURE,
            details={"message": "Invalid payload"},
        ) from e

    try:
        result = reconciler.handle_webhook(confirmation, settings)
    except (BookingCreationError, StripeServiceError, OptionStoreError, ClientError) as e:
        raise BookingError(
            code=ErrorCode.WEBHOOK_PROCESSING_FAILED,
            details={"event_id": str(event_id or ""), "message": str(e)},
        ) from e

    return WebhookResponse(
        received=True,
        event_id=event_id,
        event_type=event_type,
        processing_result=result.state.value,
        message=result.message,
    )
