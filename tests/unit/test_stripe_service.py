"""Unit tests for StripeService.

Stripe API calls are mocked; webhook signatures are real HMAC signatures
checked by the stripe SDK.
"""

import hashlib
import hmac
import json
import time
from datetime import datetime
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
import stripe

from squarebooking.models.booking import BookingDraft, LineItem
from squarebooking.models.enums import ConfirmationChannel
from squarebooking.models.errors import (
    ProviderUnavailableError,
    SignatureError,
    StripeServiceError,
)
from squarebooking.services.ssm_service import SSMServiceError
from squarebooking.services.stripe_service import StripeService, calculate_fees

TEST_WEBHOOK_SECRET = "whsec_test_secret123"


def _create_stripe_signature(payload: bytes, secret: str = TEST_WEBHOOK_SECRET) -> str:
    timestamp = str(int(time.time()))
    signed_payload = f"{timestamp}.{payload.decode('utf-8')}"
    signature = hmac.new(
        secret.encode("utf-8"),
        signed_payload.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()
    return f"t={timestamp},v1={signature}"


@pytest.fixture
def mock_ssm() -> MagicMock:
    """Mock SSM service for credential retrieval."""
    secrets = {
        "test_secret_key": "sk_test_abc123",
        "webhook_secret": TEST_WEBHOOK_SECRET,
    }
    ssm = MagicMock()
    ssm.get_service_secret.side_effect = lambda service, name: secrets[name]
    return ssm


@pytest.fixture
def stripe_service(mock_ssm: MagicMock) -> StripeService:
    return StripeService(environment="dev", ssm=mock_ssm)


@pytest.fixture
def mock_client(stripe_service: StripeService) -> MagicMock:
    client = MagicMock()
    stripe_service._client = client
    return client


@pytest.fixture
def draft() -> BookingDraft:
    return BookingDraft(
        user_id="u1",
        square_id="sq1",
        date_start=datetime(2026, 7, 1, 10, 0),
        date_end=datetime(2026, 7, 1, 11, 0),
        line_items=[LineItem(description="Court 1, 60 minutes", unit_price_minor=2500)],
        meta={"player-names": "Ana, Ben"},
    )


class TestVerifyWebhookSignature:
    def test_valid_signature_returns_event(self, stripe_service: StripeService) -> None:
        payload = json.dumps(
            {"id": "evt_1", "type": "checkout.session.completed", "data": {"object": {}}}
        ).encode()

        event = stripe_service.verify_webhook_signature(payload, _create_stripe_signature(payload))

        assert event["id"] == "evt_1"
        assert isinstance(event, dict)

    def test_wrong_secret_is_rejected(self, stripe_service: StripeService) -> None:
        payload = b'{"id": "evt_1"}'
        signature = _create_stripe_signature(payload, secret="whsec_other")

        with pytest.raises(SignatureError, match="Invalid webhook signature"):
            stripe_service.verify_webhook_signature(payload, signature)

    def test_tampered_payload_is_rejected(self, stripe_service: StripeService) -> None:
        signature = _create_stripe_signature(b'{"id": "evt_1"}')

        with pytest.raises(SignatureError):
            stripe_service.verify_webhook_signature(b'{"id": "evt_2"}', signature)

    def test_invalid_json_is_rejected(self, stripe_service: StripeService) -> None:
        payload = b"not json"

        with pytest.raises(SignatureError, match="Invalid payload"):
            stripe_service.verify_webhook_signature(payload, _create_stripe_signature(payload))

    def test_missing_secret_is_service_error(self, mock_ssm: MagicMock) -> None:
        mock_ssm.get_service_secret.side_effect = SSMServiceError("SSM parameter not found")
        service = StripeService(environment="dev", ssm=mock_ssm)

        with pytest.raises(StripeServiceError) as exc_info:
            service.verify_webhook_signature(b"{}", "t=1,v1=abc")

        assert not isinstance(exc_info.value, SignatureError)


class TestGetCheckoutSession:
    def test_returns_confirmation(
        self, stripe_service: StripeService, mock_client: MagicMock
    ) -> None:
        mock_client.checkout.sessions.retrieve.return_value = MagicMock(
            id="cs_1",
            payment_status="paid",
            payment_intent="pi_1",
            metadata={"user_id": "u1", "quantity": 2},
        )

        confirmation = stripe_service.get_checkout_session("cs_1")

        mock_client.checkout.sessions.retrieve.assert_called_once_with("cs_1")
        assert confirmation.channel == ConfirmationChannel.SESSION_CHECK
        assert confirmation.session_id == "cs_1"
        assert confirmation.payment_intent_id == "pi_1"
        assert confirmation.webhook_event_id is None
        assert confirmation.is_paid
        assert confirmation.metadata == {"user_id": "u1", "quantity": "2"}

    def test_expanded_payment_intent_is_reduced_to_id(
        self, stripe_service: StripeService, mock_client: MagicMock
    ) -> None:
        mock_client.checkout.sessions.retrieve.return_value = MagicMock(
            id="cs_1",
            payment_status="unpaid",
            payment_intent={"id": "pi_1", "object": "payment_intent"},
            metadata={},
        )

        confirmation = stripe_service.get_checkout_session("cs_1")

        assert confirmation.payment_intent_id == "pi_1"
        assert not confirmation.is_paid

    def test_unknown_session(self, stripe_service: StripeService, mock_client: MagicMock) -> None:
        mock_client.checkout.sessions.retrieve.side_effect = stripe.InvalidRequestError(
            "No such checkout.session: cs_missing", "id", code="resource_missing"
        )

        with pytest.raises(StripeServiceError) as exc_info:
            stripe_service.get_checkout_session("cs_missing")

        assert exc_info.value.stripe_error_code == "resource_missing"
        assert not isinstance(exc_info.value, ProviderUnavailableError)

    @pytest.mark.parametrize(
        "error",
        [
            stripe.APIConnectionError("Network unreachable"),
            stripe.RateLimitError("Too many requests"),
            stripe.APIError("Internal error"),
        ],
    )
    def test_transient_errors_are_provider_unavailable(
        self,
        stripe_service: StripeService,
        mock_client: MagicMock,
        error: stripe.StripeError,
    ) -> None:
        mock_client.checkout.sessions.retrieve.side_effect = error

        with pytest.raises(ProviderUnavailableError):
            stripe_service.get_checkout_session("cs_1")

    def test_client_uses_test_key(self, stripe_service: StripeService, mock_ssm: MagicMock) -> None:
        stripe_service._get_client()

        mock_ssm.get_service_secret.assert_called_with("stripe", "test_secret_key")


class TestLineItems:
    def test_gross_price_is_used_as_is(self, stripe_service: StripeService) -> None:
        items = stripe_service.build_line_items(
            [LineItem(description="Court", unit_price_minor=2500, tax_rate=Decimal("19"))]
        )

        assert items == [
            {
                "price_data": {
                    "currency": "aud",
                    "product_data": {"name": "Court"},
                    "unit_amount": 2500,
                },
                "quantity": 1,
            }
        ]

    def test_net_price_gets_tax_added(self, stripe_service: StripeService) -> None:
        items = stripe_service.build_line_items(
            [
                LineItem(
                    description="Racket",
                    quantity=2,
                    unit_price_minor=1000,
                    tax_rate=Decimal("19"),
                    price_is_gross=False,
                )
            ]
        )

        assert items[0]["price_data"]["unit_amount"] == 1190
        assert items[0]["price_data"]["product_data"]["name"] == "Racket (per item)"
        assert items[0]["quantity"] == 2

    def test_fee_line_item(self, stripe_service: StripeService) -> None:
        items = stripe_service.build_line_items(
            [LineItem(description="Court", unit_price_minor=1000)], include_fees=True
        )

        assert len(items) == 2
        assert items[1]["price_data"]["product_data"]["name"] == "Payment Processing Fee"
        assert items[1]["price_data"]["unit_amount"] == 48


class TestCalculateFees:
    def test_domestic(self) -> None:
        fees = calculate_fees(1000)

        assert fees["percentage_fee"] == 18
        assert fees["total_fee"] == 48
        assert fees["total_with_fees"] == 1048

    def test_international(self) -> None:
        fees = calculate_fees(1000, international=True)

        assert fees["percentage_fee"] == 29
        assert fees["total_fee"] == 59
        assert fees["card_type"] == "International"

    def test_non_positive_amount(self) -> None:
        with pytest.raises(ValueError):
            calculate_fees(0)


class TestCreateCheckoutSession:
    def test_creates_session_with_metadata(
        self, stripe_service: StripeService, mock_client: MagicMock, draft: BookingDraft
    ) -> None:
        mock_client.checkout.sessions.create.return_value = MagicMock(
            id="cs_new", url="https://checkout.stripe.com/c/pay/cs_new"
        )

        result = stripe_service.create_checkout_session(
            draft,
            success_url="https://example.com/payments/success",
            cancel_url="https://example.com/payments/cancel?from=checkout",
            customer_email="ana@example.com",
        )

        assert result == {
            "session_id": "cs_new",
            "checkout_url": "https://checkout.stripe.com/c/pay/cs_new",
        }
        params = mock_client.checkout.sessions.create.call_args.kwargs["params"]
        assert params["mode"] == "payment"
        assert params["success_url"] == (
            "https://example.com/payments/success?session_id={CHECKOUT_SESSION_ID}"
        )
        assert params["cancel_url"] == (
            "https://example.com/payments/cancel?from=checkout&session_id={CHECKOUT_SESSION_ID}"
        )
        assert params["customer_email"] == "ana@example.com"
        assert params["metadata"] == {
            "user_id": "u1",
            "square_id": "sq1",
            "ds": "2026-07-01",
            "de": "2026-07-01",
            "ts": "10:00",
            "te": "11:00",
            "quantity": "1",
            "player-names": "Ana, Ben",
        }

    def test_draft_without_line_items(
        self, stripe_service: StripeService, mock_client: MagicMock, draft: BookingDraft
    ) -> None:
        empty = draft.model_copy(update={"line_items": []})

        with pytest.raises(ValueError):
            stripe_service.create_checkout_session(
                empty, success_url="https://a", cancel_url="https://b"
            )

        mock_client.checkout.sessions.create.assert_not_called()

    def test_stripe_error_is_wrapped(
        self, stripe_service: StripeService, mock_client: MagicMock, draft: BookingDraft
    ) -> None:
        mock_client.checkout.sessions.create.side_effect = stripe.CardError(
            "Card declined", None, code="card_declined"
        )

        with pytest.raises(StripeServiceError) as exc_info:
            stripe_service.create_checkout_session(
                draft, success_url="https://a", cancel_url="https://b"
            )

        assert exc_info.value.stripe_error_code == "card_declined"
