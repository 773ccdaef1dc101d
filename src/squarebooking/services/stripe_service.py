"""Stripe integration for checkout sessions and webhook verification.

Uses the v8+ StripeClient pattern. API keys and the webhook signing secret
come from SSM Parameter Store.
"""

import json
import logging
import os
from decimal import ROUND_HALF_UP, Decimal
from functools import lru_cache
from typing import Any

import stripe
from stripe import StripeClient

from squarebooking.models.booking import BookingDraft, LineItem
from squarebooking.models.confirmation import PaymentConfirmation
from squarebooking.models.errors import (
    ProviderUnavailableError,
    SignatureError,
    StripeServiceError,
    is_stripe_error_retryable,
)

from .ssm_service import SSMService, SSMServiceError, get_ssm_service

logger = logging.getLogger(__name__)

DOMESTIC_FEE_RATE = Decimal("0.0175")
INTERNATIONAL_FEE_RATE = Decimal("0.029")
FIXED_FEE_MINOR = 30
PROCESSING_FEE_DESCRIPTION = "Payment Processing Fee"


def _round_minor(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _with_session_placeholder(url: str) -> str:
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}session_id={{CHECKOUT_SESSION_ID}}"


def calculate_fees(amount_minor: int, international: bool = False) -> dict[str, Any]:
    """Calculate Stripe processing fees for an amount.

    Args:
        amount_minor: Amount in minor currency units
        international: Whether an international card rate applies

    Returns:
        Dict with percentage_fee, fixed_fee, total_fee, total_with_fees
        (all minor units) and fee_percentage.

    Raises:
        ValueError: If the amount is not positive.
    """
    if amount_minor <= 0:
        raise ValueError("Invalid amount")

    rate = INTERNATIONAL_FEE_RATE if international else DOMESTIC_FEE_RATE
    percentage_fee = _round_minor(Decimal(amount_minor) * rate)
    total_fee = percentage_fee + FIXED_FEE_MINOR

    return {
        "original_amount": amount_minor,
        "percentage_fee": percentage_fee,
        "fixed_fee": FIXED_FEE_MINOR,
        "total_fee": total_fee,
        "total_with_fees": amount_minor + total_fee,
        "fee_percentage": round(total_fee / amount_minor * 100, 2),
        "card_type": "International" if international else "Domestic",
    }


class StripeService:
    """Service for Stripe payment operations.

    Handles:
    - Checkout session creation from a booking draft
    - Checkout session retrieval (session-check channel)
    - Webhook signature validation (webhook channel)
    """

    def __init__(self, environment: str | None = None, ssm: SSMService | None = None) -> None:
        """Initialize Stripe service.

        Args:
            environment: Environment name (dev, prod). Defaults to ENVIRONMENT env var.
            ssm: Parameter store client. Defaults to the shared SSMService.
        """
        self._environment = environment or os.environ.get("ENVIRONMENT", "dev")
        self._ssm = ssm or get_ssm_service()
        self._test_mode = os.environ.get("STRIPE_TEST_MODE", "true").lower() not in (
            "0",
            "false",
            "no",
        )
        self._currency = os.environ.get("STRIPE_CURRENCY", "AUD").lower()
        self._client: StripeClient | None = None
        self._webhook_secret: str | None = None

    @property
    def currency(self) -> str:
        return self._currency

    def _get_client(self) -> StripeClient:
        """Get or create the Stripe client (lazy initialization).

        Raises:
            StripeServiceError: If credentials cannot be retrieved.
        """
        if self._client is None:
            key_name = "test_secret_key" if self._test_mode else "live_secret_key"
            try:
                secret_key = self._ssm.get_service_secret("stripe", key_name)
            except SSMServiceError as e:
                raise StripeServiceError(f"Failed to initialize Stripe client: {e}") from e
            self._client = StripeClient(secret_key)
            logger.info(
                "Stripe client initialized for environment: %s (test_mode=%s)",
                self._environment,
                self._test_mode,
            )
        return self._client

    def _get_webhook_secret(self) -> str:
        """Get the webhook signing secret.

        Raises:
            StripeServiceError: If secret cannot be retrieved.
        """
        if self._webhook_secret is None:
            try:
                self._webhook_secret = self._ssm.get_service_secret("stripe", "webhook_secret")
            except SSMServiceError as e:
                raise StripeServiceError(f"Webhook secret is not configured: {e}") from e
        return self._webhook_secret

    def verify_webhook_signature(self, payload: bytes, signature: str) -> dict[str, Any]:
        """Verify a webhook signature and parse the event.

        Args:
            payload: Raw request body bytes.
            signature: Stripe-Signature header value.

        Returns:
            Parsed event as plain JSON data.

        Raises:
            SignatureError: If the signature or payload is invalid.
            StripeServiceError: If the webhook secret is unavailable.
        """
        webhook_secret = self._get_webhook_secret()

        try:
            stripe.Webhook.construct_event(payload, signature, webhook_secret)
        except stripe.SignatureVerificationError as e:
            logger.warning("Invalid webhook signature: %s", str(e))
            raise SignatureError("Invalid webhook signature") from e
        except ValueError as e:
            logger.warning("Invalid webhook payload: %s", str(e))
            raise SignatureError("Invalid payload") from e

        try:
            event = json.loads(payload)
        except ValueError as e:
            raise SignatureError("Invalid payload") from e
        if not isinstance(event, dict):
            raise SignatureError("Invalid payload")

        logger.info("Webhook signature verified for event: %s", event.get("id"))
        return event

    def get_checkout_session(self, session_id: str) -> PaymentConfirmation:
        """Retrieve a checkout session's live payment status.

        Args:
            session_id: Stripe checkout session ID (cs_xxx)

        Returns:
            PaymentConfirmation on the session-check channel

        Raises:
            ProviderUnavailableError: On connection, rate-limit or API errors.
            StripeServiceError: If the session does not exist or the request
                is rejected.
        """
        client = self._get_client()

        try:
            session = client.checkout.sessions.retrieve(session_id)
        except stripe.InvalidRequestError as e:
            logger.warning("Checkout session %s could not be retrieved: %s", session_id, e)
            raise StripeServiceError(
                f"Checkout session {session_id} not found",
                stripe_error_code=getattr(e, "code", None),
            ) from e
        except (stripe.APIConnectionError, stripe.RateLimitError, stripe.APIError) as e:
            logger.error("Stripe unavailable while retrieving %s: %s", session_id, e)
            raise ProviderUnavailableError(
                f"Stripe unavailable: {e}",
                stripe_error_code=getattr(e, "code", None),
            ) from e
        except stripe.StripeError as e:
            error_code = getattr(e, "code", None)
            if is_stripe_error_retryable(error_code):
                raise ProviderUnavailableError(
                    f"Stripe unavailable: {e}", stripe_error_code=error_code
                ) from e
            raise StripeServiceError(
                f"Failed to retrieve checkout session: {e}", stripe_error_code=error_code
            ) from e

        logger.info("Checkout session %s payment status: %s", session_id, session.payment_status)

        return PaymentConfirmation.from_checkout_session(
            session_id=session.id,
            payment_status=session.payment_status,
            payment_intent=session.payment_intent,
            metadata=session.metadata,
        )

    def build_line_items(
        self,
        items: list[LineItem],
        *,
        include_fees: bool = False,
        international: bool = False,
    ) -> list[dict[str, Any]]:
        """Convert draft line items into Checkout line items.

        Net-priced items with a positive tax rate get the tax added to the
        unit amount; gross-priced items are used as is.
        """
        line_items: list[dict[str, Any]] = []
        total = 0

        for item in items:
            unit_amount = item.unit_price_minor
            if not item.price_is_gross and item.tax_rate > 0:
                unit_amount = _round_minor(
                    Decimal(unit_amount) * (1 + item.tax_rate / Decimal(100))
                )

            name = item.description if item.quantity == 1 else f"{item.description} (per item)"
            line_items.append(
                {
                    "price_data": {
                        "currency": self._currency,
                        "product_data": {"name": name},
                        "unit_amount": unit_amount,
                    },
                    "quantity": item.quantity,
                }
            )
            total += unit_amount * item.quantity

        if include_fees and total > 0:
            fees = calculate_fees(total, international)
            line_items.append(
                {
                    "price_data": {
                        "currency": self._currency,
                        "product_data": {"name": PROCESSING_FEE_DESCRIPTION},
                        "unit_amount": fees["total_fee"],
                    },
                    "quantity": 1,
                }
            )
            logger.info(
                "Stripe fees added: original %d, fee %d (%s%%)",
                total,
                fees["total_fee"],
                fees["fee_percentage"],
            )

        return line_items

    def create_checkout_session(
        self,
        draft: BookingDraft,
        *,
        success_url: str,
        cancel_url: str,
        customer_email: str | None = None,
        include_fees: bool = False,
        international: bool = False,
    ) -> dict[str, Any]:
        """Create a Stripe Checkout session for a booking draft.

        Args:
            draft: Booking to be paid for; its metadata travels with the session.
            success_url: Redirect on success; session_id is appended.
            cancel_url: Redirect on cancel; session_id is appended.
            customer_email: Optional customer email for the Stripe receipt.
            include_fees: Add a processing-fee line item.
            international: Use the international card fee rate.

        Returns:
            Dict with session_id and checkout_url.

        Raises:
            ValueError: If the draft has no line items.
            StripeServiceError: If session creation fails.
        """
        line_items = self.build_line_items(
            draft.line_items, include_fees=include_fees, international=international
        )
        if not line_items:
            raise ValueError("Booking draft has no line items")

        client = self._get_client()
        params: dict[str, Any] = {
            "mode": "payment",
            "payment_method_types": ["card"],
            "line_items": line_items,
            "success_url": _with_session_placeholder(success_url),
            "cancel_url": _with_session_placeholder(cancel_url),
            "metadata": draft.to_checkout_metadata(),
        }
        if customer_email:
            params["customer_email"] = customer_email

        try:
            logger.info(
                "Creating Stripe checkout session for user %s, square %s",
                draft.user_id,
                draft.square_id,
            )
            session = client.checkout.sessions.create(params=params)
        except stripe.StripeError as e:
            error_code = getattr(e, "code", None)
            logger.error(
                "Stripe checkout session creation failed: %s (code: %s)",
                str(e),
                error_code,
            )
            raise StripeServiceError(
                f"Failed to create checkout session: {e}",
                stripe_error_code=error_code,
            ) from e

        logger.info("Checkout session created: %s", session.id)
        return {"session_id": session.id, "checkout_url": session.url}


@lru_cache(maxsize=1)
def get_stripe_service() -> StripeService:
    """Get the shared StripeService instance (singleton pattern)."""
    return StripeService()
