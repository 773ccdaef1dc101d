"""DynamoDB access for options, bookings, references and directories.

Tables are named ``<prefix>-<table>``; the prefix defaults to
``squarebooking-<environment>`` and can be overridden with
``DYNAMODB_TABLE_PREFIX``.
"""

import os
from typing import Any

import boto3
from boto3.dynamodb.conditions import Key
from boto3.dynamodb.types import TypeSerializer
from botocore.exceptions import ClientError

_dynamodb_service_instance: "DynamoDBService | None" = None


def get_dynamodb_service(environment: str | None = None) -> "DynamoDBService":
    """Return the process-wide DynamoDBService, creating it on first use."""
    global _dynamodb_service_instance
    if _dynamodb_service_instance is None:
        _dynamodb_service_instance = DynamoDBService(environment)
    return _dynamodb_service_instance


def reset_dynamodb_service() -> None:
    """Drop the shared instance so the next call builds fresh boto3 clients."""
    global _dynamodb_service_instance
    _dynamodb_service_instance = None


class DynamoDBService:
    """Thin wrapper over the boto3 table resource and low-level client."""

    def __init__(self, environment: str | None = None) -> None:
        self.environment = environment or os.getenv("ENVIRONMENT", "dev")
        self.name_prefix = os.getenv(
            "DYNAMODB_TABLE_PREFIX", f"squarebooking-{self.environment}"
        )
        self._dynamodb = boto3.resource("dynamodb")
        self._client = boto3.client("dynamodb")
        self._serializer = TypeSerializer()

    def _table_name(self, table: str) -> str:
        return f"{self.name_prefix}-{table}"

    def _get_table(self, table: str) -> Any:
        return self._dynamodb.Table(self._table_name(table))

    def get_item(self, table: str, key: dict[str, Any]) -> dict[str, Any] | None:
        """Strongly consistent read of one item; None when absent."""
        response = self._get_table(table).get_item(Key=key, ConsistentRead=True)
        item: dict[str, Any] | None = response.get("Item")
        return item

    def put_item(self, table: str, item: dict[str, Any]) -> None:
        self._get_table(table).put_item(Item=item)

    def update_item(
        self,
        table: str,
        key: dict[str, Any],
        update_expression: str,
        values: dict[str, Any],
        names: dict[str, str] | None = None,
        condition_expression: str | None = None,
    ) -> dict[str, Any] | None:
        """Apply an update expression and return the new item.

        Args:
            table: Table name without prefix
            key: Primary key
            update_expression: e.g. ``SET #status = :status``
            values: ExpressionAttributeValues
            names: ExpressionAttributeNames, for reserved words
            condition_expression: Update only applies when this holds

        Returns:
            All attributes after the update, or None if the condition failed
        """
        kwargs: dict[str, Any] = {
            "Key": key,
            "UpdateExpression": update_expression,
            "ExpressionAttributeValues": values,
            "ReturnValues": "ALL_NEW",
        }
        if names:
            kwargs["ExpressionAttributeNames"] = names
        if condition_expression:
            kwargs["ConditionExpression"] = condition_expression

        try:
            response = self._get_table(table).update_item(**kwargs)
        except ClientError as e:
            if e.response["Error"]["Code"] == "ConditionalCheckFailedException":
                return None
            raise
        attrs: dict[str, Any] | None = response.get("Attributes")
        return attrs

    def delete_item(self, table: str, key: dict[str, Any]) -> None:
        self._get_table(table).delete_item(Key=key)

    def query_by_gsi(
        self,
        table: str,
        index_name: str,
        partition_key_name: str,
        partition_key_value: str,
    ) -> list[dict[str, Any]]:
        """All items of a GSI partition, following pagination."""
        kwargs: dict[str, Any] = {
            "IndexName": index_name,
            "KeyConditionExpression": Key(partition_key_name).eq(partition_key_value),
        }
        return self._collect(self._get_table(table).query, kwargs)

    def scan(self, table: str) -> list[dict[str, Any]]:
        """Every item in a table, following pagination."""
        return self._collect(self._get_table(table).scan, {})

    def _collect(self, operation: Any, kwargs: dict[str, Any]) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        while True:
            response = operation(**kwargs)
            items.extend(response.get("Items", []))
            last_key = response.get("LastEvaluatedKey")
            if not last_key:
                return items
            kwargs["ExclusiveStartKey"] = last_key

    def transact_put(self, puts: list[tuple[str, dict[str, Any], str | None]]) -> bool:
        """Write several items all-or-nothing.

        Args:
            puts: ``(table, item, key_attribute)`` tuples. A put with a
                ``key_attribute`` fails the whole transaction if an item with
                that key already exists.

        Returns:
            True if written, False if the transaction was cancelled
        """
        transact_items: list[dict[str, Any]] = []
        for table, item, key_attribute in puts:
            put: dict[str, Any] = {
                "TableName": self._table_name(table),
                "Item": {k: self._serializer.serialize(v) for k, v in item.items()},
            }
            if key_attribute:
                put["ConditionExpression"] = "attribute_not_exists(#pk)"
                put["ExpressionAttributeNames"] = {"#pk": key_attribute}
            transact_items.append({"Put": put})

        try:
            self._client.transact_write_items(TransactItems=transact_items)
        except ClientError as e:
            if e.response["Error"]["Code"] == "TransactionCanceledException":
                return False
            raise
        return True
