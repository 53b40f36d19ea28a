"""Pytest configuration shared across the suite."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Mapping, Optional, Sequence

import pytest


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO-powered tests to run against asyncio backend only."""
    return "asyncio"


class InMemoryStore:
    """Dictionary-backed record store with the same upsert semantics as SQLiteStore."""

    def __init__(self) -> None:
        self.tables: Dict[str, Dict[tuple, Dict[str, Any]]] = {}
        self.upserts: list[tuple[str, Dict[str, Any]]] = []

    def get(self, table: str, filters: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        for row in self.tables.get(table, {}).values():
            if all(row.get(column) == value for column, value in filters.items()):
                return dict(row)
        return None

    def upsert(
        self, table: str, row: Mapping[str, Any], conflict_keys: Sequence[str]
    ) -> Dict[str, Any]:
        key = tuple(row[column] for column in conflict_keys)
        rows = self.tables.setdefault(table, {})
        merged = {**rows.get(key, {}), **row}
        if key not in rows:
            merged.setdefault("created_at", datetime.now(timezone.utc).isoformat())
        rows[key] = merged
        self.upserts.append((table, dict(row)))
        return dict(merged)

    def list(self, table: str, columns: Optional[Iterable[str]] = None) -> list[Dict[str, Any]]:
        rows = [dict(row) for row in self.tables.get(table, {}).values()]
        if columns is None:
            return rows
        wanted = list(columns)
        return [{column: row.get(column) for column in wanted} for row in rows]


@pytest.fixture
def memory_store() -> InMemoryStore:
    return InMemoryStore()
