"""
DynamoDB-backed record store for token rows.

Uses a single-table layout: ``pk`` holds ``<table>#<key values>`` and ``sk``
holds the logical table name so every row of a table can be listed with a
filtered scan.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Iterable, Mapping, Optional, Sequence

import boto3
from boto3.dynamodb.conditions import Attr
from botocore.exceptions import BotoCoreError, ClientError

from app.core.config import StorageSettings
from app.core.errors import ConfigurationError, StoreError
from app.models.tokens import AGENCY_KEY, AGENCY_TABLE, LOCATION_KEY, LOCATION_TABLE

_INTERNAL_ATTRIBUTES = ("pk", "sk")
_KEY_COLUMNS = {AGENCY_TABLE: AGENCY_KEY, LOCATION_TABLE: LOCATION_KEY}


def _partition_key(table: str, row: Mapping[str, Any], keys: Sequence[str]) -> str:
    missing = [key for key in keys if not row.get(key)]
    if missing:
        raise StoreError(f"Row is missing key columns: {', '.join(missing)}")
    return "#".join([table, *(str(row[key]) for key in keys)])


def _to_item(row: Mapping[str, Any]) -> Dict[str, Any]:
    """DynamoDB rejects floats, so numbers are carried as Decimal."""
    return json.loads(json.dumps(dict(row), default=str), parse_float=Decimal)


def _strip(item: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in item.items() if key not in _INTERNAL_ATTRIBUTES}


class DynamoDBStore:
    """Token row storage on a DynamoDB table with ``pk``/``sk`` keys."""

    def __init__(self, settings: StorageSettings, table: Any = None) -> None:
        self._settings = settings
        if table is None:
            if not settings.dynamodb_table_name:
                raise ConfigurationError("DYNAMODB_TABLE_NAME is required for the dynamodb backend.")
            resource = boto3.resource("dynamodb", region_name=settings.region_name)
            table = resource.Table(settings.dynamodb_table_name)
        self._table = table

    def get(self, table: str, filters: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        """Look rows up by key when possible, otherwise scan the table."""
        try:
            key_columns = _KEY_COLUMNS.get(table, ())
            if key_columns and set(key_columns) == set(filters):
                response = self._table.get_item(
                    Key={"pk": _partition_key(table, filters, key_columns), "sk": table}
                )
                item = response.get("Item")
                return _strip(item) if item else None
            for item in self._scan(table):
                if all(item.get(column) == value for column, value in filters.items()):
                    return _strip(item)
        except (BotoCoreError, ClientError) as exc:
            raise StoreError(f"Failed to read {table}: {exc}") from exc
        return None

    def upsert(
        self, table: str, row: Mapping[str, Any], conflict_keys: Sequence[str]
    ) -> Dict[str, Any]:
        """Merge the provided attributes into the item sharing the row's key."""
        pk = _partition_key(table, row, conflict_keys)
        try:
            existing = self._table.get_item(Key={"pk": pk, "sk": table}).get("Item") or {}
            merged = {**existing, **_to_item(row), "pk": pk, "sk": table}
            if not existing:
                merged.setdefault("created_at", datetime.now(timezone.utc).isoformat())
            self._table.put_item(Item=merged)
        except (BotoCoreError, ClientError) as exc:
            raise StoreError(f"Failed to write {table}: {exc}") from exc
        return _strip(merged)

    def list(self, table: str, columns: Optional[Iterable[str]] = None) -> list[Dict[str, Any]]:
        try:
            items = [_strip(item) for item in self._scan(table)]
        except (BotoCoreError, ClientError) as exc:
            raise StoreError(f"Failed to read {table}: {exc}") from exc
        if columns is None:
            return items
        wanted = list(columns)
        return [{column: item.get(column) for column in wanted} for item in items]

    def _scan(self, table: str) -> Iterable[Dict[str, Any]]:
        kwargs: Dict[str, Any] = {"FilterExpression": Attr("sk").eq(table)}
        while True:
            response = self._table.scan(**kwargs)
            yield from response.get("Items", [])
            last_key = response.get("LastEvaluatedKey")
            if not last_key:
                return
            kwargs["ExclusiveStartKey"] = last_key


__all__ = ["DynamoDBStore"]
