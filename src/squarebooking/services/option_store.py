"""Key-value option store backed by DynamoDB.

Holds runtime settings (feature toggles) as well as small pieces of
durable state: the processed-webhook ledger and pending success notices.
Values are strings; helpers decode booleans and JSON.
"""

import datetime as dt
import json
import logging
from typing import TYPE_CHECKING, Any

from botocore.exceptions import ClientError

from squarebooking.models.errors import OptionStoreError

if TYPE_CHECKING:
    from .dynamodb import DynamoDBService

logger = logging.getLogger(__name__)

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


class OptionStore:
    """String-keyed settings table."""

    OPTIONS_TABLE = "options"

    def __init__(self, db: "DynamoDBService") -> None:
        self.db = db

    def get(self, key: str, default: str | None = None) -> str | None:
        """Read an option value.

        Args:
            key: Option key, e.g. "service.payment.stripe.use_webhook"
            default: Returned when the option is not set

        Returns:
            Stored string value or ``default``
        """
        try:
            item = self.db.get_item(self.OPTIONS_TABLE, {"key": key})
        except ClientError as e:
            raise OptionStoreError(f"Failed to read option {key}: {e}") from e
        if not item or item.get("value") is None:
            return default
        return str(item["value"])

    def set(self, key: str, value: str | None) -> None:
        """Write an option value. ``None`` removes the option."""
        try:
            if value is None:
                self.db.delete_item(self.OPTIONS_TABLE, {"key": key})
                return
            self.db.put_item(
                self.OPTIONS_TABLE,
                {
                    "key": key,
                    "value": value,
                    "updated_at": dt.datetime.now(dt.UTC).isoformat(),
                },
            )
        except ClientError as e:
            raise OptionStoreError(f"Failed to write option {key}: {e}") from e

    def get_bool(self, key: str, default: bool) -> bool:
        """Read a boolean option; unrecognised values fall back to ``default``."""
        raw = self.get(key)
        if raw is None:
            return default
        normalized = raw.strip().lower()
        if normalized in _TRUE_VALUES:
            return True
        if normalized in _FALSE_VALUES:
            return False
        logger.warning("Option %s has non-boolean value %r, using default", key, raw)
        return default

    def get_json(self, key: str, default: Any = None) -> Any:
        """Read a JSON-encoded option; undecodable values return ``default``."""
        raw = self.get(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Option %s holds invalid JSON, using default", key)
            return default

    def set_json(self, key: str, value: Any) -> None:
        self.set(key, json.dumps(value))
