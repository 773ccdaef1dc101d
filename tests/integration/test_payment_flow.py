"""End-to-end payment confirmation flows.

Webhook and session check race for the same paid checkout session. Whatever
the order and however often each channel fires, exactly one paid booking
must exist afterwards.
"""

import hashlib
import hmac
import json
import time
from typing import Any
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from squarebooking.models.confirmation import PaymentConfirmation
from squarebooking.models.enums import ConfirmationState
from squarebooking.services.booking_store import BookingStore
from squarebooking.services.confirmation_settings import ConfirmationSettings
from squarebooking.services.idempotency_ledger import IdempotencyLedger
from squarebooking.services.materializer import BookingMaterializer
from squarebooking.services.option_store import OptionStore
from squarebooking.services.reconciler import ConfirmationReconciler
from squarebooking.services.stripe_service import StripeService
from squarebooking.services.success_notice import SuccessNoticeStore
from squarebooking_api.main import app

TEST_WEBHOOK_SECRET = "whsec_test_secret_for_testing"
HYBRID = ConfirmationSettings()


def _create_stripe_signature(payload: bytes, secret: str = TEST_WEBHOOK_SECRET) -> str:
    timestamp = str(int(time.time()))
    signed_payload = f"{timestamp}.{payload.decode('utf-8')}"
    signature = hmac.new(
        secret.encode("utf-8"),
        signed_payload.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()
    return f"t={timestamp},v1={signature}"


def _send_webhook(
    client: TestClient,
    metadata: dict[str, str],
    event_id: str,
    session_id: str,
) -> Any:
    event = {
        "id": event_id,
        "object": "event",
        "type": "checkout.session.completed",
        "data": {
            "object": {
                "id": session_id,
                "object": "checkout.session",
                "payment_intent": f"pi_{session_id}",
                "payment_status": "paid",
                "metadata": metadata,
            },
        },
    }
    payload = json.dumps(event).encode("utf-8")
    return client.post(
        "/api/payments/webhook",
        content=payload,
        headers={"Stripe-Signature": _create_stripe_signature(payload)},
    )


def _session(metadata: dict[str, str], session_id: str) -> PaymentConfirmation:
    return PaymentConfirmation.from_checkout_session(
        session_id=session_id,
        payment_status="paid",
        payment_intent=f"pi_{session_id}",
        metadata=metadata,
    )


@pytest.fixture
def client(mock_tables: None) -> TestClient:
    return TestClient(app)


def test_session_check_then_webhook(
    client: TestClient,
    checkout_metadata: dict[str, str],
    booking_store: BookingStore,
    ledger: IdempotencyLedger,
) -> None:
    with patch.object(
        StripeService, "get_checkout_session", return_value=_session(checkout_metadata, "cs_2")
    ):
        page = client.get("/api/payments/success", params={"session_id": "cs_2"})

    hook = _send_webhook(client, checkout_metadata, "evt_2", "cs_2")

    assert page.json()["status"] == "materialized"
    assert hook.status_code == 200
    assert hook.json()["processing_result"] == "duplicate"
    assert len(booking_store.list_all()) == 1
    assert ledger.is_processed("evt_2")


def test_webhook_then_session_check(
    client: TestClient,
    checkout_metadata: dict[str, str],
    booking_store: BookingStore,
) -> None:
    hook = _send_webhook(client, checkout_metadata, "evt_3", "cs_3")

    with patch.object(
        StripeService, "get_checkout_session", return_value=_session(checkout_metadata, "cs_3")
    ) as mock_get:
        notice_page = client.get(
            "/api/payments/success",
            params={"session_id": "cs_3"},
            headers={"x-user-id": "u1"},
        )
        checked_page = client.get(
            "/api/payments/success",
            params={"session_id": "cs_3"},
            headers={"x-user-id": "u1"},
        )

    assert hook.json()["processing_result"] == "materialized"
    assert notice_page.json()["status"] == "success"
    assert checked_page.json()["status"] == "duplicate"
    assert mock_get.call_count == 1

    bookings = booking_store.list_all()
    assert len(bookings) == 1
    assert checked_page.json()["booking_id"] == bookings[0].booking_id


def test_repeated_mixed_deliveries_leave_one_booking(
    client: TestClient,
    checkout_metadata: dict[str, str],
    booking_store: BookingStore,
) -> None:
    metadata = {**checkout_metadata, "square_id": "sq-shared"}

    with patch.object(
        StripeService, "get_checkout_session", return_value=_session(metadata, "cs_4")
    ):
        for attempt in range(3):
            _send_webhook(client, metadata, f"evt_4_{attempt}", "cs_4")
            client.get("/api/payments/success", params={"session_id": "cs_4"})
            _send_webhook(client, metadata, f"evt_4_{attempt}", "cs_4")

    paid = [booking for booking in booking_store.list_all() if booking.is_paid]
    assert len(paid) == 1
    assert paid[0].square_id == "sq-shared"


def test_redelivery_after_cancellation_does_not_rebook(
    client: TestClient,
    checkout_metadata: dict[str, str],
    booking_store: BookingStore,
) -> None:
    _send_webhook(client, checkout_metadata, "evt_7", "cs_7")
    booking = booking_store.list_all()[0]
    booking_store.cancel(booking.booking_id)

    response = _send_webhook(client, checkout_metadata, "evt_7b", "cs_7")

    assert response.json()["processing_result"] == "duplicate"
    bookings = booking_store.list_all()
    assert len(bookings) == 1
    assert not bookings[0].is_paid


def test_redelivery_after_lost_ledger_mark_is_duplicate(
    client: TestClient,
    checkout_metadata: dict[str, str],
    booking_store: BookingStore,
    ledger: IdempotencyLedger,
    option_store: OptionStore,
) -> None:
    _send_webhook(client, checkout_metadata, "evt_8", "cs_8")
    option_store.set_json(IdempotencyLedger.OPTION_KEY, [])

    response = _send_webhook(client, checkout_metadata, "evt_8", "cs_8")

    assert response.json()["processing_result"] == "duplicate"
    assert len(booking_store.list_all()) == 1
    assert ledger.is_processed("evt_8")


class TestRace:
    """Both channels pass the existence check before either has written."""

    @pytest.fixture
    def blind_oracle(self) -> MagicMock:
        oracle = MagicMock()
        oracle.find_paid_booking.return_value = None
        return oracle

    def _reconciler(
        self,
        confirmation: PaymentConfirmation,
        ledger: IdempotencyLedger,
        oracle: MagicMock,
        materializer: BookingMaterializer,
        notices: SuccessNoticeStore,
    ) -> ConfirmationReconciler:
        stripe_service = MagicMock()
        stripe_service.get_checkout_session.return_value = confirmation
        return ConfirmationReconciler(stripe_service, ledger, oracle, materializer, notices)

    def test_second_writer_becomes_duplicate(
        self,
        checkout_metadata: dict[str, str],
        ledger: IdempotencyLedger,
        blind_oracle: MagicMock,
        materializer: BookingMaterializer,
        notices: SuccessNoticeStore,
        booking_store: BookingStore,
    ) -> None:
        session = _session(checkout_metadata, "cs_5")
        webhook = PaymentConfirmation.from_webhook_event(
            {
                "id": "evt_5",
                "type": "checkout.session.completed",
                "data": {
                    "object": {
                        "id": "cs_5",
                        "payment_intent": "pi_cs_5",
                        "payment_status": "paid",
                        "metadata": checkout_metadata,
                    }
                },
            }
        )
        page_side = self._reconciler(session, ledger, blind_oracle, materializer, notices)
        hook_side = self._reconciler(session, ledger, blind_oracle, materializer, notices)

        first = page_side.handle_session_check("cs_5", HYBRID)
        second = hook_side.handle_webhook(webhook, HYBRID)

        assert first.state == ConfirmationState.MATERIALIZED
        assert second.state == ConfirmationState.DUPLICATE
        assert len(booking_store.list_all()) == 1
        assert ledger.is_processed("evt_5")

    def test_conditional_write_decides_when_precheck_misses(
        self,
        checkout_metadata: dict[str, str],
        ledger: IdempotencyLedger,
        blind_oracle: MagicMock,
        materializer: BookingMaterializer,
        notices: SuccessNoticeStore,
        booking_store: BookingStore,
    ) -> None:
        metadata = {**checkout_metadata, "square_id": "sq-shared"}
        session = _session(metadata, "cs_6")
        first_side = self._reconciler(session, ledger, blind_oracle, materializer, notices)
        second_side = self._reconciler(session, ledger, blind_oracle, materializer, notices)

        first = first_side.handle_session_check("cs_6", HYBRID)
        with patch.object(BookingStore, "_claimed", return_value=[]):
            second = second_side.handle_session_check("cs_6", HYBRID)

        assert first.state == ConfirmationState.MATERIALIZED
        assert second.state == ConfirmationState.DUPLICATE
        assert len(booking_store.list_all()) == 1
