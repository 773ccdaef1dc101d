"""Idempotency ledger of processed webhook events.

The ledger is a bounded, FIFO-evicting list of event IDs kept in one option
store item. It is best-effort:

- two concurrent deliveries of one event may both see it as unprocessed;
- ``mark_processed`` reads, modifies and writes the whole list, so two
  concurrent marks of different events can lose one of them, and a later
  redelivery of the lost event is then treated as new.

Both cases reach the booking existence check and the reference index, which
report the payment as a duplicate instead of booking it twice.
"""

import logging

from pydantic import ValidationError

from squarebooking.models.stripe_webhook import (
    PROCESSED_WEBHOOKS_CAPACITY,
    ProcessedWebhookSet,
)

from .option_store import OptionStore

logger = logging.getLogger(__name__)


class IdempotencyLedger:
    """Record of webhook events that already produced their effect."""

    OPTION_KEY = "stripe.processed_webhooks"

    def __init__(self, options: OptionStore, capacity: int = PROCESSED_WEBHOOKS_CAPACITY) -> None:
        self.options = options
        self.capacity = capacity

    def _load(self) -> ProcessedWebhookSet:
        stored = self.options.get_json(self.OPTION_KEY, default=[])
        try:
            return ProcessedWebhookSet(event_ids=stored, capacity=self.capacity)
        except ValidationError:
            logger.warning("Processed webhook ledger is malformed, starting empty")
            return ProcessedWebhookSet(capacity=self.capacity)

    def is_processed(self, event_id: str) -> bool:
        """Check if a webhook event was already processed.

        Args:
            event_id: Stripe event ID

        Returns:
            True if the event is in the ledger
        """
        return event_id in self._load()

    def mark_processed(self, event_id: str) -> None:
        """Add an event to the ledger and persist it before returning.

        Args:
            event_id: Stripe event ID
        """
        ledger = self._load()
        if event_id in ledger:
            return
        evicted = ledger.add(event_id)
        self.options.set_json(self.OPTION_KEY, ledger.event_ids)
        if evicted:
            logger.debug("Evicted %d oldest webhook IDs from ledger", len(evicted))
        logger.info("Webhook marked as processed: %s", event_id)

    def processed_ids(self) -> list[str]:
        """Current ledger contents, oldest first."""
        return list(self._load().event_ids)
