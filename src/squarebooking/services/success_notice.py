"""Pending success notices handed from the webhook to the user's next visit."""

import logging

from .option_store import OptionStore

logger = logging.getLogger(__name__)

PAYMENT_SUCCESS_MESSAGE = "Payment successful! Your booking has been confirmed."


class SuccessNoticeStore:
    """One pending message per user, consumed on first read."""

    KEY_PREFIX = "stripe.payment_success_"

    def __init__(self, options: OptionStore) -> None:
        self.options = options

    def _key(self, user_id: str) -> str:
        return f"{self.KEY_PREFIX}{user_id}"

    def store(self, user_id: str | None, message: str = PAYMENT_SUCCESS_MESSAGE) -> None:
        """Store a notice for a user. No-op without a user ID."""
        if not user_id:
            return
        self.options.set(self._key(user_id), message)
        logger.info("Payment success message stored for user: %s", user_id)

    def consume(self, user_id: str | None) -> str | None:
        """Return the pending notice for a user and clear it."""
        if not user_id:
            return None
        message = self.options.get(self._key(user_id))
        if message is None:
            return None
        self.options.set(self._key(user_id), None)
        logger.info("Payment success message cleared for user: %s", user_id)
        return message
