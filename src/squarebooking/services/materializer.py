"""Turns a verified payment confirmation into a persisted paid booking."""

import logging

from squarebooking.models.booking import Booking, BookingDraft
from squarebooking.models.confirmation import PaymentConfirmation
from squarebooking.models.errors import (
    BookingContentionError,
    BookingCreationError,
    NotFoundError,
)

from .booking_store import BookingStore
from .directories import SquareDirectory, UserDirectory

logger = logging.getLogger(__name__)


class BookingMaterializer:
    """Builds a booking from checkout metadata and hands it to the store.

    The Stripe references stamped onto the booking here are what the
    existence oracle later looks up.
    """

    def __init__(
        self,
        store: BookingStore,
        users: UserDirectory,
        squares: SquareDirectory,
    ) -> None:
        self.store = store
        self.users = users
        self.squares = squares

    def build_draft(self, confirmation: PaymentConfirmation) -> BookingDraft:
        """Rebuild the booking draft carried in the confirmation metadata.

        Raises:
            BookingCreationError: If the metadata is incomplete or unparsable.
        """
        try:
            draft = BookingDraft.from_checkout_metadata(confirmation.metadata)
        except ValueError as e:
            raise BookingCreationError(f"Invalid booking metadata: {e}") from e

        return draft.model_copy(update={"meta": {**draft.meta, **confirmation.references}})

    def materialize(self, confirmation: PaymentConfirmation) -> Booking:
        """Create the paid booking for a confirmation.

        Args:
            confirmation: Verified, paid confirmation

        Returns:
            The created Booking

        Raises:
            BookingCreationError: On bad metadata or an unknown user/square.
            BookingContentionError: If the square is no longer available.
            ReferenceAlreadyClaimedError: If another booking already holds
                the session or payment intent.
        """
        draft = self.build_draft(confirmation)

        try:
            user = self.users.get(draft.user_id)
            square = self.squares.get(draft.square_id)
        except NotFoundError as e:
            logger.error("Error creating booking: %s", e)
            raise BookingCreationError(str(e)) from e

        try:
            booking = self.store.create_paid(
                user,
                square,
                draft.quantity,
                draft.date_start,
                draft.date_end,
                draft.meta,
            )
        except BookingContentionError:
            logger.error(
                "Square %s unavailable for paid session %s; manual reconciliation required",
                draft.square_id,
                confirmation.session_id,
            )
            raise

        logger.info(
            "Booking created successfully: %s for session: %s",
            booking.booking_id,
            confirmation.session_id,
        )
        return booking
