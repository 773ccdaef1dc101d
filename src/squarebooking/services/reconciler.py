"""Reconciliation of payment confirmations from both channels.

A payment can be confirmed by the browser returning from checkout (session
check) and by the provider pushing a webhook, in either order, any number of
times. The reconciler turns every such confirmation into exactly one
terminal decision so that each paid session yields at most one booking.
"""

from pydantic import BaseModel, ConfigDict

from squarebooking.models.booking import Booking
from squarebooking.models.confirmation import CHECKOUT_COMPLETED_EVENT, PaymentConfirmation
from squarebooking.models.enums import ConfirmationChannel, ConfirmationState
from squarebooking.models.errors import ReferenceAlreadyClaimedError
from squarebooking.utils.logging import get_logger, log_confirmation, log_webhook_event

from .confirmation_settings import ConfirmationSettings
from .existence_oracle import BookingExistenceOracle
from .idempotency_ledger import IdempotencyLedger
from .materializer import BookingMaterializer
from .stripe_service import StripeService
from .success_notice import PAYMENT_SUCCESS_MESSAGE, SuccessNoticeStore

logger = get_logger(__name__)

PAYMENT_PENDING_MESSAGE = "Payment received! Your booking will be confirmed shortly."
PAYMENT_REJECTED_MESSAGE = "Payment was not completed successfully."
EVENT_ALREADY_PROCESSED_MESSAGE = "Event already processed"

ALLOWED_TRANSITIONS: dict[ConfirmationState, frozenset[ConfirmationState]] = {
    ConfirmationState.UNCONFIRMED: frozenset(
        {
            ConfirmationState.CONFIRMED,
            ConfirmationState.REJECTED,
            ConfirmationState.PENDING,
            ConfirmationState.IGNORED,
            ConfirmationState.DUPLICATE,
        }
    ),
    ConfirmationState.CONFIRMED: frozenset(
        {ConfirmationState.MATERIALIZED, ConfirmationState.DUPLICATE}
    ),
}


class ReconcileResult(BaseModel):
    """Outcome of reconciling one confirmation."""

    model_config = ConfigDict(frozen=True)

    state: ConfirmationState
    channel: ConfirmationChannel
    session_id: str | None = None
    booking_id: str | None = None
    message: str | None = None


class _Attempt:
    """Tracks the state of one payment attempt through a single call."""

    def __init__(self, channel: ConfirmationChannel, session_id: str | None) -> None:
        self.channel = channel
        self.session_id = session_id
        self.state = ConfirmationState.UNCONFIRMED

    def advance(self, new_state: ConfirmationState) -> None:
        if new_state not in ALLOWED_TRANSITIONS.get(self.state, frozenset()):
            raise RuntimeError(
                f"Illegal confirmation transition {self.state.value} -> {new_state.value}"
            )
        self.state = new_state

    def finish(
        self,
        state: ConfirmationState,
        *,
        booking_id: str | None = None,
        message: str | None = None,
    ) -> ReconcileResult:
        self.advance(state)
        return ReconcileResult(
            state=state,
            channel=self.channel,
            session_id=self.session_id,
            booking_id=booking_id,
            message=message,
        )


class ConfirmationReconciler:
    """Decides, per confirmation, whether to create a booking.

    Webhook confirmations are deduplicated by event ID through the ledger;
    both channels are deduplicated by payment reference through the
    existence oracle and the store's reference index.
    """

    def __init__(
        self,
        stripe: StripeService,
        ledger: IdempotencyLedger,
        oracle: BookingExistenceOracle,
        materializer: BookingMaterializer,
        notices: SuccessNoticeStore,
    ) -> None:
        self.stripe = stripe
        self.ledger = ledger
        self.oracle = oracle
        self.materializer = materializer
        self.notices = notices

    def _find_existing(self, confirmation: PaymentConfirmation) -> Booking | None:
        return self.oracle.find_paid_booking(
            session_id=confirmation.session_id,
            payment_intent_id=confirmation.payment_intent_id,
        )

    def _mark(self, confirmation: PaymentConfirmation) -> None:
        if confirmation.webhook_event_id:
            self.ledger.mark_processed(confirmation.webhook_event_id)

    def handle_webhook(
        self,
        confirmation: PaymentConfirmation,
        settings: ConfirmationSettings,
    ) -> ReconcileResult:
        """Reconcile a verified webhook confirmation.

        Args:
            confirmation: Confirmation built from the webhook event
            settings: Channel toggles resolved for this request

        Returns:
            ReconcileResult with state materialized, duplicate or ignored

        Raises:
            BookingCreationError: If the booking cannot be materialized. The
                event is not marked processed so the provider redelivers it.
        """
        attempt = _Attempt(ConfirmationChannel.WEBHOOK, confirmation.session_id)
        event_id = confirmation.webhook_event_id
        logger.info(
            "Reconciling webhook event %s for session %s (mode=%s)",
            event_id,
            confirmation.session_id,
            settings.mode,
        )

        if not settings.webhook_enabled:
            log_webhook_event(
                logger, confirmation.event_type, event_id, result="ignored", reason="disabled"
            )
            return attempt.finish(
                ConfirmationState.IGNORED, message="Webhook confirmation is disabled"
            )

        if confirmation.event_type != CHECKOUT_COMPLETED_EVENT or not confirmation.is_paid:
            log_webhook_event(
                logger,
                confirmation.event_type,
                event_id,
                session_id=confirmation.session_id,
                result="ignored",
                payment_status=confirmation.payment_status,
            )
            return attempt.finish(
                ConfirmationState.IGNORED,
                message=(
                    f"Event type '{confirmation.event_type}' with payment status "
                    f"'{confirmation.payment_status}' not handled"
                ),
            )

        if event_id and self.ledger.is_processed(event_id):
            log_webhook_event(
                logger,
                confirmation.event_type,
                event_id,
                session_id=confirmation.session_id,
                result="duplicate",
            )
            return attempt.finish(
                ConfirmationState.DUPLICATE, message=EVENT_ALREADY_PROCESSED_MESSAGE
            )

        attempt.advance(ConfirmationState.CONFIRMED)

        existing = self._find_existing(confirmation)
        if existing:
            self._mark(confirmation)
            log_webhook_event(
                logger,
                confirmation.event_type,
                event_id,
                session_id=confirmation.session_id,
                booking_id=existing.booking_id,
                result="duplicate",
            )
            return attempt.finish(
                ConfirmationState.DUPLICATE,
                booking_id=existing.booking_id,
                message="Booking already exists for this payment",
            )

        try:
            booking = self.materializer.materialize(confirmation)
        except ReferenceAlreadyClaimedError as e:
            self._mark(confirmation)
            log_webhook_event(
                logger,
                confirmation.event_type,
                event_id,
                session_id=confirmation.session_id,
                result="duplicate",
                references=e.references,
            )
            return attempt.finish(
                ConfirmationState.DUPLICATE,
                message="Booking already exists for this payment",
            )
        except Exception as e:
            log_webhook_event(
                logger,
                confirmation.event_type,
                event_id,
                session_id=confirmation.session_id,
                result="error",
                error=str(e),
            )
            raise

        self._mark(confirmation)
        if confirmation.user_id:
            self.notices.store(confirmation.user_id, PAYMENT_SUCCESS_MESSAGE)
        log_webhook_event(
            logger,
            confirmation.event_type,
            event_id,
            session_id=confirmation.session_id,
            booking_id=booking.booking_id,
            result="materialized",
        )
        return attempt.finish(
            ConfirmationState.MATERIALIZED,
            booking_id=booking.booking_id,
            message=PAYMENT_SUCCESS_MESSAGE,
        )

    def handle_session_check(
        self,
        session_id: str,
        settings: ConfirmationSettings,
    ) -> ReconcileResult:
        """Reconcile the user's return from checkout.

        Args:
            session_id: Checkout session ID from the success redirect
            settings: Channel toggles resolved for this request

        Returns:
            ReconcileResult with state pending, rejected, duplicate or
            materialized

        Raises:
            StripeServiceError: If the provider cannot be queried.
            BookingCreationError: If the booking cannot be materialized.
        """
        attempt = _Attempt(ConfirmationChannel.SESSION_CHECK, session_id)
        logger.info("Reconciling session check for %s (mode=%s)", session_id, settings.mode)

        if settings.webhook_only:
            log_confirmation(
                logger,
                attempt.channel.value,
                ConfirmationState.PENDING.value,
                session_id=session_id,
                reason="webhook_only",
            )
            return attempt.finish(ConfirmationState.PENDING, message=PAYMENT_PENDING_MESSAGE)

        confirmation = self.stripe.get_checkout_session(session_id)

        if not confirmation.is_paid:
            if settings.hybrid:
                log_confirmation(
                    logger,
                    attempt.channel.value,
                    ConfirmationState.PENDING.value,
                    session_id=session_id,
                    reason=f"payment_status={confirmation.payment_status}",
                )
                return attempt.finish(
                    ConfirmationState.PENDING, message=PAYMENT_PENDING_MESSAGE
                )
            log_confirmation(
                logger,
                attempt.channel.value,
                ConfirmationState.REJECTED.value,
                session_id=session_id,
                reason=f"payment_status={confirmation.payment_status}",
            )
            return attempt.finish(ConfirmationState.REJECTED, message=PAYMENT_REJECTED_MESSAGE)

        attempt.advance(ConfirmationState.CONFIRMED)

        existing = self._find_existing(confirmation)
        if existing:
            log_confirmation(
                logger,
                attempt.channel.value,
                ConfirmationState.DUPLICATE.value,
                session_id=session_id,
                payment_intent_id=confirmation.payment_intent_id,
                booking_id=existing.booking_id,
            )
            return attempt.finish(
                ConfirmationState.DUPLICATE,
                booking_id=existing.booking_id,
                message=PAYMENT_SUCCESS_MESSAGE,
            )

        try:
            booking = self.materializer.materialize(confirmation)
        except ReferenceAlreadyClaimedError:
            log_confirmation(
                logger,
                attempt.channel.value,
                ConfirmationState.DUPLICATE.value,
                session_id=session_id,
                payment_intent_id=confirmation.payment_intent_id,
                reason="reference_claimed",
            )
            return attempt.finish(ConfirmationState.DUPLICATE, message=PAYMENT_SUCCESS_MESSAGE)

        log_confirmation(
            logger,
            attempt.channel.value,
            ConfirmationState.MATERIALIZED.value,
            session_id=session_id,
            payment_intent_id=confirmation.payment_intent_id,
            booking_id=booking.booking_id,
        )
        return attempt.finish(
            ConfirmationState.MATERIALIZED,
            booking_id=booking.booking_id,
            message=PAYMENT_SUCCESS_MESSAGE,
        )
