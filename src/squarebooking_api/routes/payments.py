"""Payment endpoints around Stripe Checkout.

Provides REST endpoints for:
- Starting a checkout session for a square booking (user required)
- The success page the browser returns to, which runs the session check
- The cancel page
- Processing-fee quotes

The signed-in user is identified by the ``x-user-id`` header set by the
authenticating gateway.
"""

from fastapi import APIRouter, Depends, Query, Request
from starlette.status import HTTP_201_CREATED

from squarebooking.models.booking import META_NOTES, META_PLAYER_NAMES, BookingDraft
from squarebooking.models.errors import (
    BookingContentionError,
    BookingCreationError,
    BookingError,
    ErrorCode,
    NotFoundError,
    ProviderUnavailableError,
    StripeServiceError,
)
from squarebooking.services.confirmation_settings import ConfirmationSettings
from squarebooking.services.directories import SquareDirectory
from squarebooking.services.reconciler import ConfirmationReconciler
from squarebooking.services.stripe_service import StripeService, calculate_fees
from squarebooking.services.success_notice import SuccessNoticeStore
from squarebooking.utils.logging import get_logger
from squarebooking_api.dependencies import (
    get_confirmation_settings,
    get_payment_provider,
    get_reconciler,
    get_square_directory,
    get_success_notice_store,
)
from squarebooking_api.models.payments import (
    CheckoutRequest,
    CheckoutResponse,
    FeeInfo,
    FeeRequest,
    FeeResponse,
    PaymentOutcomeResponse,
)

logger = get_logger(__name__)

router = APIRouter(tags=["payments"])

USER_ID_HEADER = "x-user-id"
INVALID_SESSION_MESSAGE = "Invalid payment session."
PAYMENT_CANCELLED_MESSAGE = "Payment was cancelled. You can try again later."


def _get_user_id(request: Request) -> str | None:
    """Extract the signed-in user's ID from the gateway header."""
    return request.headers.get(USER_ID_HEADER) or None


@router.get(
    "/payments/success",
    summary="Return from checkout",
    description="""
Called when the browser returns from Stripe Checkout.

A confirmation already recorded by the webhook for the signed-in user is
shown first and cleared. Otherwise the checkout session is checked with
Stripe and the booking is created if the payment went through.
""",
    response_model=PaymentOutcomeResponse,
    responses={
        400: {"description": "Missing or unknown session_id"},
        409: {"description": "Square no longer available for the paid slot"},
        500: {"description": "Booking could not be created"},
        503: {"description": "Stripe temporarily unavailable"},
    },
)
async def payment_success(
    request: Request,
    session_id: str | None = Query(default=None, description="Checkout session ID"),
    settings: ConfirmationSettings = Depends(get_confirmation_settings),
    reconciler: ConfirmationReconciler = Depends(get_reconciler),
    notices: SuccessNoticeStore = Depends(get_success_notice_store),
) -> PaymentOutcomeResponse:
    """Report the outcome of a checkout to the returning user."""
    notice = notices.consume(_get_user_id(request))
    if notice:
        return PaymentOutcomeResponse(status="success", message=notice)

    if not session_id:
        raise BookingError(
            code=ErrorCode.INVALID_PAYMENT_SESSION,
            details={"message": INVALID_SESSION_MESSAGE},
        )

    try:
        result = reconciler.handle_session_check(session_id, settings)
    except ProviderUnavailableError as e:
        raise BookingError(
            code=ErrorCode.PROVIDER_UNAVAILABLE,
            details={"session_id": session_id},
        ) from e
    except StripeServiceError as e:
        if e.stripe_error_code == "resource_missing":
            raise BookingError(
                code=ErrorCode.INVALID_PAYMENT_SESSION,
                details={"message": INVALID_SESSION_MESSAGE},
            ) from e
        raise BookingError(
            code=ErrorCode.STRIPE_API_ERROR,
            details={"session_id": session_id},
        ) from e
    except BookingContentionError as e:
        raise BookingError(
            code=ErrorCode.BOOKING_CONTENTION,
            details={"session_id": session_id},
        ) from e
    except BookingCreationError as e:
        raise BookingError(
            code=ErrorCode.BOOKING_CREATION_FAILED,
            details={"session_id": session_id, "message": str(e)},
        ) from e

    return PaymentOutcomeResponse(
        status=result.state.value,
        message=result.message or "",
        booking_id=result.booking_id,
    )


@router.get(
    "/payments/cancel",
    summary="Return from a cancelled checkout",
    response_model=PaymentOutcomeResponse,
)
async def payment_cancel() -> PaymentOutcomeResponse:
    return PaymentOutcomeResponse(status="cancelled", message=PAYMENT_CANCELLED_MESSAGE)


@router.post(
    "/payments/checkout",
    summary="Create checkout session",
    description="""
Create a Stripe Checkout session for a square booking.

**Requires a signed-in user.**

The booking is only created after Stripe confirms the payment, through
the webhook or the success page.
""",
    response_model=CheckoutResponse,
    status_code=HTTP_201_CREATED,
    responses={
        400: {"description": "Unknown square or invalid booking request"},
        401: {"description": "Sign-in required"},
        502: {"description": "Stripe rejected the request"},
    },
)
async def create_checkout(
    body: CheckoutRequest,
    request: Request,
    settings: ConfirmationSettings = Depends(get_confirmation_settings),
    stripe_service: StripeService = Depends(get_payment_provider),
    squares: SquareDirectory = Depends(get_square_directory),
) -> CheckoutResponse:
    """Start a checkout for the signed-in user."""
    user_id = _get_user_id(request)
    if not user_id:
        raise BookingError(code=ErrorCode.AUTH_REQUIRED)

    try:
        squares.get(body.square_id)
    except NotFoundError as e:
        raise BookingError(
            code=ErrorCode.INVALID_BOOKING_REQUEST,
            details={"square_id": body.square_id, "message": str(e)},
        ) from e

    meta: dict[str, str] = {}
    if body.player_names:
        meta[META_PLAYER_NAMES] = body.player_names
    if body.notes:
        meta[META_NOTES] = body.notes

    draft = BookingDraft(
        user_id=user_id,
        square_id=body.square_id,
        date_start=body.date_start,
        date_end=body.date_end,
        quantity=body.quantity,
        line_items=body.line_items,
        meta=meta,
    )

    try:
        session = stripe_service.create_checkout_session(
            draft,
            success_url=body.success_url,
            cancel_url=body.cancel_url,
            customer_email=body.customer_email,
            include_fees=settings.include_fees,
            international=body.international,
        )
    except ValueError as e:
        raise BookingError(
            code=ErrorCode.INVALID_BOOKING_REQUEST,
            details={"message": str(e)},
        ) from e
    except StripeServiceError as e:
        raise BookingError(
            code=ErrorCode.STRIPE_API_ERROR,
            details={"message": str(e)},
        ) from e

    logger.info("Checkout session %s created for user %s", session["session_id"], user_id)
    return CheckoutResponse(**session)


@router.post(
    "/payments/fees",
    summary="Quote processing fees",
    description="""
Quote the card processing fee Stripe charges on an amount, as added to the
checkout when fee pass-through is enabled.

**Requires a signed-in user.**
""",
    response_model=FeeResponse,
    responses={
        400: {"description": "Amount is not positive"},
        401: {"description": "Sign-in required"},
    },
)
async def quote_fees(body: FeeRequest, request: Request) -> FeeResponse:
    if not _get_user_id(request):
        raise BookingError(code=ErrorCode.AUTH_REQUIRED)

    try:
        fee_info = calculate_fees(body.amount_minor, body.international)
    except ValueError as e:
        logger.warning("Error calculating fees: %s", e)
        raise BookingError(
            code=ErrorCode.INVALID_BOOKING_REQUEST,
            details={"message": str(e)},
        ) from e

    return FeeResponse(fee_info=FeeInfo(**fee_info))
