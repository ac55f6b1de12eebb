"""
DynamoDB-backed record storage with the same interface as ``SQLiteStore``.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

import boto3
from boto3.dynamodb.conditions import Attr, Key

from pds.core.config import StorageSettings


class DynamoDBClient:
    """Credential record CRUD on a table keyed by ``pk`` (hash) and ``sk`` (range)."""

    def __init__(self, settings: StorageSettings, *, table: Any = None) -> None:
        self._settings = settings
        if table is None:
            if not settings.dynamodb_table_name:
                raise ValueError("DYNAMODB_TABLE_NAME is required for the dynamodb backend.")
            resource = boto3.resource("dynamodb", region_name=settings.region_name)
            table = resource.Table(settings.dynamodb_table_name)
        self._table = table

    def put_item(self, item: Dict[str, Any]) -> None:
        """Put (upsert) an item in the DynamoDB table."""
        if not item.get("pk") or not item.get("sk"):
            raise ValueError("Item must include 'pk' and 'sk' keys")
        self._table.put_item(Item=item)

    def get_item(self, *, partition_key: str, sort_key: str) -> Optional[Dict[str, Any]]:
        """Retrieve an item using its key."""
        response = self._table.get_item(Key={"pk": partition_key, "sk": sort_key})
        return response.get("Item")

    def delete_item(self, *, partition_key: str, sort_key: str) -> bool:
        response = self._table.delete_item(
            Key={"pk": partition_key, "sk": sort_key},
            ReturnValues="ALL_OLD",
        )
        return bool(response.get("Attributes"))

    def list_items_with_prefix(
        self, *, partition_key: str, sort_key_prefix: str
    ) -> list[Dict[str, Any]]:
        """Query items of one partition whose sort key starts with a prefix."""
        response = self._table.query(
            KeyConditionExpression=Key("pk").eq(partition_key)
            & Key("sk").begins_with(sort_key_prefix)
        )
        return response.get("Items", [])

    def list_items_by_sort_key(self, *, sort_key: str) -> list[Dict[str, Any]]:
        """Scan every partition for items with the given sort key."""
        items: list[Dict[str, Any]] = []
        scan_kwargs: Dict[str, Any] = {"FilterExpression": Attr("sk").eq(sort_key)}
        while True:
            response = self._table.scan(**scan_kwargs)
            items.extend(response.get("Items", []))
            last_key = response.get("LastEvaluatedKey")
            if not last_key:
                return items
            scan_kwargs["ExclusiveStartKey"] = last_key


__all__ = ["DynamoDBClient"]
