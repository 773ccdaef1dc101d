"""Duplicate detection over bookings that already exist.

A payment is already materialized when a paid booking references its
checkout session or payment intent. The reference index answers this
directly; a full scan over booking metadata covers bookings written before
the index existed.
"""

import logging
import os

from squarebooking.models.booking import (
    STRIPE_PAYMENT_INTENT_META,
    STRIPE_SESSION_META,
    Booking,
)
from squarebooking.models.enums import ReferenceKind
from squarebooking.models.errors import BookingMetadataError

from .booking_store import BookingStore

logger = logging.getLogger(__name__)


def _scan_fallback_from_env() -> bool:
    return os.getenv("BOOKING_REFERENCE_SCAN_FALLBACK", "true").strip().lower() not in (
        "0",
        "false",
        "no",
        "off",
    )


class BookingExistenceOracle:
    """Answers whether a paid booking already references a payment."""

    def __init__(self, store: BookingStore, scan_fallback: bool | None = None) -> None:
        """Initialize the oracle.

        Args:
            store: Booking store
            scan_fallback: Also scan booking metadata when the index has no
                match. Defaults to BOOKING_REFERENCE_SCAN_FALLBACK (on).
        """
        self.store = store
        self.scan_fallback = _scan_fallback_from_env() if scan_fallback is None else scan_fallback

    def find_paid_booking(
        self,
        session_id: str | None = None,
        payment_intent_id: str | None = None,
    ) -> Booking | None:
        """Find a paid booking by session ID, then by payment intent ID.

        Args:
            session_id: Checkout session ID (cs_xxx)
            payment_intent_id: PaymentIntent ID (pi_xxx)

        Returns:
            The paid booking or None
        """
        lookups = [
            (ReferenceKind.SESSION, STRIPE_SESSION_META, session_id),
            (ReferenceKind.PAYMENT_INTENT, STRIPE_PAYMENT_INTENT_META, payment_intent_id),
        ]
        lookups = [lookup for lookup in lookups if lookup[2]]
        if not lookups:
            return None

        for kind, _, value in lookups:
            booking = self.store.find_by_reference(kind, value)
            if booking and booking.is_paid:
                logger.info("Paid booking %s found by %s %s", booking.booking_id, kind.value, value)
                return booking

        if not self.scan_fallback:
            return None

        bookings = self.store.list_all()
        for _, meta_key, value in lookups:
            booking = self._scan(bookings, meta_key, value)
            if booking:
                return booking
        return None

    def _scan(self, bookings: list[Booking], meta_key: str, value: str) -> Booking | None:
        for booking in bookings:
            if not booking.is_paid:
                continue
            try:
                stored = booking.get_meta(meta_key)
            except BookingMetadataError as e:
                logger.warning("Error checking booking metadata: %s", e)
                continue
            if stored == value:
                logger.info("Paid booking %s found by metadata scan (%s)", booking.booking_id, meta_key)
                return booking
        return None
