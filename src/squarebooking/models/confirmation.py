"""Typed payment confirmation built at the channel boundary.

Webhook events arrive as plain JSON dicts and checkout sessions as Stripe
objects. Both are reduced to one ``PaymentConfirmation`` immediately after
receipt so the reconciler never inspects provider shapes.
"""

from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field

from .enums import ConfirmationChannel

CHECKOUT_COMPLETED_EVENT = "checkout.session.completed"
PAID = "paid"


def _stringify_metadata(metadata: Mapping[str, Any] | None) -> dict[str, str]:
    prepared: dict[str, str] = {}
    for key, value in (metadata or {}).items():
        if value is None:
            continue
        prepared[str(key)] = str(value)
    return prepared


def _reference_id(value: Any) -> str | None:
    """Reduce an id-or-expanded-object field to its id."""
    if value is None or value == "":
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, Mapping):
        ref = value.get("id")
        return str(ref) if ref else None
    ref = getattr(value, "id", None)
    return str(ref) if ref else None


class PaymentConfirmation(BaseModel):
    """A payment confirmation received from either channel. Immutable."""

    model_config = ConfigDict(frozen=True)

    channel: ConfirmationChannel
    session_id: str | None = Field(default=None, description="Checkout session ID (cs_xxx)")
    payment_intent_id: str | None = Field(default=None, description="PaymentIntent ID (pi_xxx)")
    webhook_event_id: str | None = Field(default=None, description="Webhook event ID (evt_xxx)")
    event_type: str | None = None
    payment_status: str = Field(..., description="Provider payment_status, e.g. 'paid'")
    metadata: dict[str, str] = Field(default_factory=dict)

    @property
    def is_paid(self) -> bool:
        return self.payment_status == PAID

    @property
    def user_id(self) -> str | None:
        return self.metadata.get("user_id") or None

    @property
    def references(self) -> dict[str, str]:
        """Non-empty payment references keyed by booking metadata key."""
        refs: dict[str, str] = {}
        if self.session_id:
            refs["stripe_session_id"] = self.session_id
        if self.payment_intent_id:
            refs["stripe_payment_intent_id"] = self.payment_intent_id
        return refs

    @classmethod
    def from_webhook_event(cls, event: Mapping[str, Any]) -> "PaymentConfirmation":
        """Build a confirmation from a verified webhook event.

        Args:
            event: Parsed webhook event (``id``, ``type``, ``data.object``)

        Returns:
            PaymentConfirmation on the webhook channel.

        Raises:
            ValueError: If the event has no ``data.object`` mapping.
        """
        data = event.get("data")
        session = data.get("object") if isinstance(data, Mapping) else None
        if not isinstance(session, Mapping):
            raise ValueError("Webhook event has no data.object")

        metadata = session.get("metadata")
        if metadata is not None and not isinstance(metadata, Mapping):
            raise ValueError("Webhook event metadata is not an object")

        return cls(
            channel=ConfirmationChannel.WEBHOOK,
            session_id=_reference_id(session.get("id")),
            payment_intent_id=_reference_id(session.get("payment_intent")),
            webhook_event_id=_reference_id(event.get("id")),
            event_type=event.get("type"),
            payment_status=str(session.get("payment_status") or ""),
            metadata=_stringify_metadata(metadata),
        )

    @classmethod
    def from_checkout_session(
        cls,
        *,
        session_id: str,
        payment_status: str | None,
        payment_intent: Any = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> "PaymentConfirmation":
        """Build a confirmation from a retrieved checkout session."""
        return cls(
            channel=ConfirmationChannel.SESSION_CHECK,
            session_id=session_id,
            payment_intent_id=_reference_id(payment_intent),
            event_type=CHECKOUT_COMPLETED_EVENT,
            payment_status=payment_status or "",
            metadata=_stringify_metadata(metadata),
        )
