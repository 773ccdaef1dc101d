"""Bounded record of processed Stripe webhook events."""

from pydantic import BaseModel, ConfigDict, Field

PROCESSED_WEBHOOKS_CAPACITY = 1000


class ProcessedWebhookSet(BaseModel):
    """Ordered, duplicate-free list of handled webhook event IDs.

    Oldest entries are evicted first once ``capacity`` is exceeded.
    """

    model_config = ConfigDict(strict=True)

    event_ids: list[str] = Field(
        default_factory=list,
        description="Stripe event IDs (evt_xxx), oldest first",
    )
    capacity: int = Field(default=PROCESSED_WEBHOOKS_CAPACITY, gt=0)

    def __contains__(self, event_id: object) -> bool:
        return event_id in self.event_ids

    def __len__(self) -> int:
        return len(self.event_ids)

    def add(self, event_id: str) -> list[str]:
        """Append an event ID unless already present.

        Returns:
            Event IDs evicted to stay within capacity.
        """
        if event_id in self.event_ids:
            return []
        self.event_ids.append(event_id)
        overflow = len(self.event_ids) - self.capacity
        if overflow <= 0:
            return []
        evicted = self.event_ids[:overflow]
        del self.event_ids[:overflow]
        return evicted
