"""SQLite-backed relational record store for token rows."""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional, Protocol, Sequence

from app.core.errors import StoreError
from app.models.tokens import AGENCY_KEY, AGENCY_TABLE, LOCATION_KEY, LOCATION_TABLE

_KEY_COLUMNS = {AGENCY_TABLE: AGENCY_KEY, LOCATION_TABLE: LOCATION_KEY}


class RecordStore(Protocol):
    """Minimal upsert-capable table store used by the token services."""

    def get(self, table: str, filters: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        ...

    def upsert(
        self, table: str, row: Mapping[str, Any], conflict_keys: Sequence[str]
    ) -> Dict[str, Any]:
        ...

    def list(self, table: str, columns: Optional[Iterable[str]] = None) -> list[Dict[str, Any]]:
        ...


def _record_key(row: Mapping[str, Any], keys: Sequence[str]) -> str:
    missing = [key for key in keys if not row.get(key)]
    if missing:
        raise StoreError(f"Row is missing key columns: {', '.join(missing)}")
    return json.dumps([str(row[key]) for key in keys])


def _project(row: Dict[str, Any], columns: Optional[Iterable[str]]) -> Dict[str, Any]:
    if columns is None:
        return row
    return {column: row.get(column) for column in columns}


def _decode(table: str, raw: str) -> Dict[str, Any]:
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise StoreError(f"Corrupt row in {table}: {exc}") from exc


class SQLiteStore:
    """Logical tables kept in one ``records`` table keyed by (table, key)."""

    def __init__(self, db_path: str) -> None:
        self._db_path = Path(db_path)
        if self._db_path.parent and not self._db_path.parent.exists():
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS records (
                    tbl TEXT NOT NULL,
                    record_key TEXT NOT NULL,
                    data TEXT NOT NULL,
                    PRIMARY KEY (tbl, record_key)
                )
                """
            )

    def get(self, table: str, filters: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        """Return the first row of ``table`` whose columns equal ``filters``."""
        key_columns = _KEY_COLUMNS.get(table, ())
        if key_columns and set(key_columns) == set(filters) and all(filters.values()):
            try:
                with self._connect() as conn:
                    row = conn.execute(
                        "SELECT data FROM records WHERE tbl = ? AND record_key = ?",
                        (table, _record_key(filters, key_columns)),
                    ).fetchone()
            except sqlite3.Error as exc:
                raise StoreError(f"Failed to read {table}: {exc}") from exc
            return _decode(table, row["data"]) if row else None

        for data in self._scan(table):
            if all(data.get(column) == value for column, value in filters.items()):
                return data
        return None

    def upsert(
        self, table: str, row: Mapping[str, Any], conflict_keys: Sequence[str]
    ) -> Dict[str, Any]:
        """Insert ``row`` or merge its columns into the row sharing its key."""
        record_key = _record_key(row, conflict_keys)
        try:
            with self._connect() as conn:
                # Hold the write lock across the read so concurrent merges serialize.
                conn.execute("BEGIN IMMEDIATE")
                existing = conn.execute(
                    "SELECT data FROM records WHERE tbl = ? AND record_key = ?",
                    (table, record_key),
                ).fetchone()
                merged: Dict[str, Any] = _decode(table, existing["data"]) if existing else {}
                merged.update(row)
                if existing is None:
                    merged.setdefault("created_at", datetime.now(timezone.utc).isoformat())
                conn.execute(
                    """
                    INSERT INTO records (tbl, record_key, data)
                    VALUES (?, ?, ?)
                    ON CONFLICT(tbl, record_key) DO UPDATE SET data = excluded.data
                    """,
                    (table, record_key, json.dumps(merged, default=str)),
                )
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to write {table}: {exc}") from exc
        return merged

    def list(self, table: str, columns: Optional[Iterable[str]] = None) -> list[Dict[str, Any]]:
        return [_project(data, columns) for data in self._scan(table)]

    def _scan(self, table: str) -> list[Dict[str, Any]]:
        try:
            with self._connect() as conn:
                rows = conn.execute(
                    "SELECT data FROM records WHERE tbl = ? ORDER BY rowid", (table,)
                ).fetchall()
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to read {table}: {exc}") from exc
        return [_decode(table, row["data"]) for row in rows]


__all__ = ["RecordStore", "SQLiteStore"]
