"""Unit tests for BookingMaterializer."""

from datetime import datetime

import pytest

from squarebooking.models.confirmation import PaymentConfirmation
from squarebooking.models.enums import ConfirmationChannel
from squarebooking.models.errors import (
    BookingContentionError,
    BookingCreationError,
    NotFoundError,
)
from squarebooking.services.booking_store import BookingStore
from squarebooking.services.materializer import BookingMaterializer


def _confirmation(
    metadata: dict[str, str],
    session_id: str | None = "cs_1",
    payment_intent_id: str | None = "pi_1",
) -> PaymentConfirmation:
    return PaymentConfirmation(
        channel=ConfirmationChannel.WEBHOOK,
        session_id=session_id,
        payment_intent_id=payment_intent_id,
        webhook_event_id="evt_1",
        event_type="checkout.session.completed",
        payment_status="paid",
        metadata=metadata,
    )


def test_materialize_creates_paid_booking(
    materializer: BookingMaterializer,
    booking_store: BookingStore,
    checkout_metadata: dict[str, str],
) -> None:
    booking = materializer.materialize(_confirmation(checkout_metadata))

    stored = booking_store.get(booking.booking_id)
    assert stored is not None
    assert stored.is_paid
    assert stored.user_id == "u1"
    assert stored.square_id == "sq1"
    assert stored.quantity == 1
    assert stored.date_start == datetime(2026, 7, 1, 10, 0)
    assert stored.date_end == datetime(2026, 7, 1, 11, 0)
    assert stored.meta == {
        "player-names": "Ana, Ben",
        "notes": "Bring balls",
        "stripe_session_id": "cs_1",
        "stripe_payment_intent_id": "pi_1",
    }


def test_materialize_without_payment_intent(
    materializer: BookingMaterializer, checkout_metadata: dict[str, str]
) -> None:
    booking = materializer.materialize(_confirmation(checkout_metadata, payment_intent_id=None))

    assert booking.get_meta("stripe_session_id") == "cs_1"
    assert booking.get_meta("stripe_payment_intent_id") is None


@pytest.mark.parametrize(
    "override",
    [
        {"square_id": ""},
        {"ts": "25:99"},
        {"ds": "2026-13-01"},
        {"quantity": "two"},
        {"quantity": "0"},
        {"te": "09:00"},
    ],
)
def test_bad_metadata_raises_creation_error(
    materializer: BookingMaterializer,
    booking_store: BookingStore,
    checkout_metadata: dict[str, str],
    override: dict[str, str],
) -> None:
    with pytest.raises(BookingCreationError):
        materializer.materialize(_confirmation({**checkout_metadata, **override}))

    assert booking_store.list_all() == []


def test_unknown_user_raises_creation_error(
    materializer: BookingMaterializer, checkout_metadata: dict[str, str]
) -> None:
    with pytest.raises(BookingCreationError) as exc_info:
        materializer.materialize(_confirmation({**checkout_metadata, "user_id": "ghost"}))

    assert isinstance(exc_info.value.__cause__, NotFoundError)


def test_unknown_square_raises_creation_error(
    materializer: BookingMaterializer, checkout_metadata: dict[str, str]
) -> None:
    with pytest.raises(BookingCreationError) as exc_info:
        materializer.materialize(_confirmation({**checkout_metadata, "square_id": "nowhere"}))

    assert isinstance(exc_info.value.__cause__, NotFoundError)


def test_taken_square_raises_contention(
    materializer: BookingMaterializer, checkout_metadata: dict[str, str]
) -> None:
    materializer.materialize(_confirmation(checkout_metadata))

    with pytest.raises(BookingContentionError):
        materializer.materialize(
            _confirmation(checkout_metadata, session_id="cs_2", payment_intent_id="pi_2")
        )
