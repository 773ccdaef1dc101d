"""Booking persistence with a payment reference index.

Each paid booking is written in one DynamoDB transaction together with one
reference item per Stripe ID it carries (``session:cs_xxx``,
``intent:pi_xxx``). Reference items are conditional puts, so a second
booking can never claim a session or payment intent that is already taken.
"""

import datetime as dt
import json
import logging
import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from squarebooking.models.booking import (
    STRIPE_PAYMENT_INTENT_META,
    STRIPE_SESSION_META,
    Booking,
    Square,
    User,
)
from squarebooking.models.enums import BillingStatus, BookingStatus, ReferenceKind
from squarebooking.models.errors import BookingContentionError, ReferenceAlreadyClaimedError

if TYPE_CHECKING:
    from .dynamodb import DynamoDBService

logger = logging.getLogger(__name__)

_REFERENCE_META_KEYS = {
    ReferenceKind.SESSION: STRIPE_SESSION_META,
    ReferenceKind.PAYMENT_INTENT: STRIPE_PAYMENT_INTENT_META,
}


def reference_key(kind: ReferenceKind, value: str) -> str:
    """Primary key of a reference index item."""
    return f"{kind.value}:{value}"


def _naive_utc(value: datetime) -> datetime:
    """Aware timestamps become naive UTC so they compare with naive ones."""
    if value.tzinfo is None:
        return value
    return value.astimezone(dt.UTC).replace(tzinfo=None)


class BookingStore:
    """Creates and reads bookings."""

    BOOKINGS_TABLE = "bookings"
    REFERENCES_TABLE = "booking-references"
    SQUARE_INDEX = "square_id-index"

    def __init__(self, db: "DynamoDBService") -> None:
        self.db = db

    def _generate_booking_id(self) -> str:
        return f"BKG-{uuid.uuid4().hex[:12].upper()}"

    def _check_capacity(
        self,
        square: Square,
        quantity: int,
        date_start: datetime,
        date_end: datetime,
    ) -> None:
        """Raise if the square cannot take ``quantity`` more in the range."""
        items = self.db.query_by_gsi(
            self.BOOKINGS_TABLE,
            self.SQUARE_INDEX,
            "square_id",
            square.square_id,
        )
        date_start = _naive_utc(date_start)
        date_end = _naive_utc(date_end)
        booked = 0
        for item in items:
            if item.get("status") == BookingStatus.CANCELLED.value:
                continue
            try:
                other_start = _naive_utc(datetime.fromisoformat(item["date_start"]))
                other_end = _naive_utc(datetime.fromisoformat(item["date_end"]))
                other_quantity = int(item.get("quantity", 1))
            except (KeyError, TypeError, ValueError):
                logger.warning("Ignoring unreadable booking %s in capacity check", item.get("booking_id"))
                continue
            if date_start < other_end and other_start < date_end:
                booked += other_quantity

        if booked + quantity > square.capacity:
            raise BookingContentionError(
                f"Square {square.square_id} has {square.capacity - booked} of "
                f"{square.capacity} places left, {quantity} requested"
            )

    def _reference_keys(self, meta: dict[str, str]) -> list[str]:
        keys: list[str] = []
        for kind, meta_key in _REFERENCE_META_KEYS.items():
            value = meta.get(meta_key)
            if value:
                keys.append(reference_key(kind, value))
        return keys

    def _claimed(self, references: list[str]) -> list[str]:
        return [
            key
            for key in references
            if self.db.get_item(self.REFERENCES_TABLE, {"reference": key})
        ]

    def create_paid(
        self,
        user: User,
        square: Square,
        quantity: int,
        date_start: datetime,
        date_end: datetime,
        meta: dict[str, str],
    ) -> Booking:
        """Create a booking with billing status paid.

        Args:
            user: Booking owner
            square: Booked square
            quantity: Number of places
            date_start: Start timestamp
            date_end: End timestamp
            meta: Booking metadata, including Stripe references

        Returns:
            The created Booking

        Raises:
            BookingContentionError: If the square is full for the range.
            ReferenceAlreadyClaimedError: If a Stripe reference in ``meta``
                already belongs to another booking.
        """
        references = self._reference_keys(meta)
        claimed = self._claimed(references)
        if claimed:
            raise ReferenceAlreadyClaimedError(claimed)

        self._check_capacity(square, quantity, date_start, date_end)

        booking = Booking(
            booking_id=self._generate_booking_id(),
            user_id=user.user_id,
            square_id=square.square_id,
            quantity=quantity,
            date_start=date_start,
            date_end=date_end,
            status=BookingStatus.SINGLE.value,
            status_billing=BillingStatus.PAID.value,
            meta_json=json.dumps(meta, sort_keys=True),
            created_at=dt.datetime.now(dt.UTC),
        )

        puts: list[tuple[str, dict[str, Any], str | None]] = [
            (self.BOOKINGS_TABLE, booking.to_item(), "booking_id"),
        ]
        for key in references:
            puts.append(
                (
                    self.REFERENCES_TABLE,
                    {
                        "reference": key,
                        "booking_id": booking.booking_id,
                        "created_at": booking.created_at.isoformat() if booking.created_at else "",
                    },
                    "reference",
                )
            )

        if not self.db.transact_put(puts):
            raise ReferenceAlreadyClaimedError(references)

        logger.info(
            "Booking %s created for square %s (%s - %s)",
            booking.booking_id,
            square.square_id,
            date_start.isoformat(),
            date_end.isoformat(),
        )
        return booking

    def get(self, booking_id: str) -> Booking | None:
        item = self.db.get_item(self.BOOKINGS_TABLE, {"booking_id": booking_id})
        return Booking.from_item(item) if item else None

    def find_by_reference(self, kind: ReferenceKind, value: str) -> Booking | None:
        """Look up a booking through the reference index.

        A booking row that cannot be loaded is logged and treated as absent;
        its reference item still blocks a second booking in ``create_paid``.
        """
        key = reference_key(kind, value)
        ref = self.db.get_item(self.REFERENCES_TABLE, {"reference": key})
        if not ref:
            return None
        item = self.db.get_item(self.BOOKINGS_TABLE, {"booking_id": ref["booking_id"]})
        if not item:
            return None
        return self._load(item, f"reference {key}")

    def _load(self, item: dict[str, Any], source: str) -> Booking | None:
        try:
            return Booking.from_item(item)
        except (KeyError, TypeError, ValueError, ValidationError) as e:
            logger.warning(
                "Skipping unreadable booking %s (%s): %s", item.get("booking_id", "?"), source, e
            )
            return None

    def list_all(self) -> list[Booking]:
        """All bookings. Items that cannot be loaded are logged and skipped."""
        bookings: list[Booking] = []
        for item in self.db.scan(self.BOOKINGS_TABLE):
            booking = self._load(item, "scan")
            if booking:
                bookings.append(booking)
        return bookings

    def cancel(self, booking_id: str) -> Booking | None:
        """Mark a booking cancelled. Reference items are kept."""
        attrs = self.db.update_item(
            self.BOOKINGS_TABLE,
            {"booking_id": booking_id},
            "SET #status = :status, status_billing = :billing",
            {
                ":status": BookingStatus.CANCELLED.value,
                ":billing": BillingStatus.CANCELLED.value,
            },
            {"#status": "status"},  # status is reserved word
            condition_expression="attribute_exists(booking_id)",
        )
        return Booking.from_item(attrs) if attrs else None
