"""Booking, draft and directory entity models."""

import json
from datetime import datetime
from decimal import Decimal
from typing import Any, Mapping

from pydantic import BaseModel, Field, model_validator

from .enums import BillingStatus, BookingStatus
from .errors import BookingMetadataError

# Metadata keys carried through the provider checkout session
META_USER_ID = "user_id"
META_SQUARE_ID = "square_id"
META_DATE_START = "ds"
META_DATE_END = "de"
META_TIME_START = "ts"
META_TIME_END = "te"
META_QUANTITY = "quantity"
META_PLAYER_NAMES = "player-names"
META_NOTES = "notes"

# Free-text keys copied verbatim onto the booking
CARRIED_META_KEYS = (META_PLAYER_NAMES, META_NOTES)

# Booking metadata keys written by materialization
STRIPE_SESSION_META = "stripe_session_id"
STRIPE_PAYMENT_INTENT_META = "stripe_payment_intent_id"


class LineItem(BaseModel):
    """A single billed line of a booking draft.

    Prices are in minor currency units. ``tax_rate`` is a percentage.
    """

    description: str = Field(..., min_length=1)
    quantity: int = Field(default=1, gt=0)
    unit_price_minor: int = Field(..., ge=0)
    tax_rate: Decimal = Field(default=Decimal("0"), ge=0)
    price_is_gross: bool = True


class BookingDraft(BaseModel):
    """Everything needed to request, and later persist, a paid booking."""

    user_id: str
    square_id: str
    date_start: datetime
    date_end: datetime
    quantity: int = Field(default=1, gt=0)
    line_items: list[LineItem] = Field(default_factory=list)
    meta: dict[str, str] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _end_after_start(self) -> "BookingDraft":
        if self.date_end <= self.date_start:
            raise ValueError("date_end must be after date_start")
        return self

    def to_checkout_metadata(self) -> dict[str, str]:
        """Metadata attached to the checkout session.

        The provider echoes it back on both confirmation channels.
        """
        metadata = {
            META_USER_ID: self.user_id,
            META_SQUARE_ID: self.square_id,
            META_DATE_START: self.date_start.strftime("%Y-%m-%d"),
            META_DATE_END: self.date_end.strftime("%Y-%m-%d"),
            META_TIME_START: self.date_start.strftime("%H:%M"),
            META_TIME_END: self.date_end.strftime("%H:%M"),
            META_QUANTITY: str(self.quantity),
        }
        for key, value in self.meta.items():
            metadata.setdefault(key, value)
        return metadata

    @classmethod
    def from_checkout_metadata(cls, metadata: Mapping[str, str]) -> "BookingDraft":
        """Rebuild a draft from checkout metadata.

        Raises:
            ValueError: On missing keys, unparsable dates or a bad quantity.
        """
        required = (
            META_USER_ID,
            META_SQUARE_ID,
            META_DATE_START,
            META_TIME_START,
            META_DATE_END,
            META_TIME_END,
            META_QUANTITY,
        )
        missing = [key for key in required if not metadata.get(key)]
        if missing:
            raise ValueError(f"Missing checkout metadata: {', '.join(missing)}")

        date_start = _combine(metadata[META_DATE_START], metadata[META_TIME_START])
        date_end = _combine(metadata[META_DATE_END], metadata[META_TIME_END])

        try:
            quantity = int(metadata[META_QUANTITY])
        except ValueError as e:
            raise ValueError(f"Invalid quantity: {metadata[META_QUANTITY]!r}") from e

        meta = {key: metadata[key] for key in CARRIED_META_KEYS if key in metadata}

        return cls(
            user_id=metadata[META_USER_ID],
            square_id=metadata[META_SQUARE_ID],
            date_start=date_start,
            date_end=date_end,
            quantity=quantity,
            meta=meta,
        )


def _combine(date_part: str, time_part: str) -> datetime:
    try:
        return datetime.fromisoformat(f"{date_part.strip()}T{time_part.strip()}")
    except ValueError as e:
        raise ValueError(f"Invalid date/time: {date_part!r} {time_part!r}") from e


class Booking(BaseModel):
    """A persisted booking.

    Metadata is stored serialized and decoded on access, so one booking with
    corrupt metadata does not break loading the others.
    """

    booking_id: str
    user_id: str
    square_id: str
    quantity: int = Field(..., gt=0)
    date_start: datetime
    date_end: datetime
    status: str = BookingStatus.SINGLE.value
    status_billing: str = BillingStatus.PENDING.value
    meta_json: str = "{}"
    created_at: datetime | None = None

    @property
    def is_paid(self) -> bool:
        return self.status_billing == BillingStatus.PAID.value

    @property
    def meta(self) -> dict[str, Any]:
        """Decoded metadata.

        Raises:
            BookingMetadataError: If the stored metadata is not a JSON object.
        """
        try:
            decoded = json.loads(self.meta_json)
        except (TypeError, json.JSONDecodeError) as e:
            raise BookingMetadataError(
                f"Booking {self.booking_id} has unreadable metadata"
            ) from e
        if not isinstance(decoded, dict):
            raise BookingMetadataError(
                f"Booking {self.booking_id} metadata is not an object"
            )
        return decoded

    def get_meta(self, key: str, default: Any = None) -> Any:
        return self.meta.get(key, default)

    def to_item(self) -> dict[str, Any]:
        """Serialize to a DynamoDB item."""
        item: dict[str, Any] = {
            "booking_id": self.booking_id,
            "user_id": self.user_id,
            "square_id": self.square_id,
            "quantity": self.quantity,
            "date_start": self.date_start.isoformat(),
            "date_end": self.date_end.isoformat(),
            "status": self.status,
            "status_billing": self.status_billing,
            "meta": self.meta_json,
        }
        if self.created_at:
            item["created_at"] = self.created_at.isoformat()
        return item

    @classmethod
    def from_item(cls, item: Mapping[str, Any]) -> "Booking":
        """Deserialize from a DynamoDB item."""
        return cls(
            booking_id=item["booking_id"],
            user_id=str(item["user_id"]),
            square_id=str(item["square_id"]),
            quantity=int(item["quantity"]),
            date_start=datetime.fromisoformat(item["date_start"]),
            date_end=datetime.fromisoformat(item["date_end"]),
            status=item.get("status", BookingStatus.SINGLE.value),
            status_billing=item.get("status_billing", BillingStatus.PENDING.value),
            meta_json=item.get("meta", "{}"),
            created_at=(
                datetime.fromisoformat(item["created_at"]) if item.get("created_at") else None
            ),
        )


class User(BaseModel):
    """A registered user as returned by the user directory."""

    user_id: str
    email: str | None = None
    name: str | None = None


class Square(BaseModel):
    """A bookable square (court, room, lane)."""

    square_id: str
    name: str
    capacity: int = Field(default=1, gt=0)
