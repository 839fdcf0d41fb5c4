"""
In-memory local store driver for testing.

Provides the same semantics as SqliteLocalStore without touching disk:
- Unit tests for the repository and sync engine
- Ephemeral caches where persistence is not needed

Invariants:
    - All data is lost on process exit
    - Records are copied on the way in and out, like a real store
    - Auto-increment counters survive clear_table()
"""

from __future__ import annotations

import copy
import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Any

from ..errors import LocalStoreError
from .base import TableSchema, is_unassigned_key

logger = logging.getLogger(__name__)


@dataclass
class _Row:
    seq: int
    key: Any
    record: dict[str, Any]


class InMemoryLocalStore:
    """In-memory implementation of the LocalStore protocol.

    Example:
        >>> store = InMemoryLocalStore()
        >>> store.register_table(TableSchema("Customer"))
        >>> await store.insert("Customer", {"id": 0, "name": "Acme"})
        {'id': 1, 'name': 'Acme'}
    """

    def __init__(self, schemas: list[TableSchema] | None = None) -> None:
        self._schemas: dict[str, TableSchema] = {}
        self._rows: dict[str, list[_Row]] = defaultdict(list)
        self._sequence: dict[str, int] = defaultdict(int)
        self._failures: dict[str, Exception] = {}
        self._open = False

        for schema in schemas or []:
            self.register_table(schema)

    @property
    def is_open(self) -> bool:
        return self._open

    def register_table(self, schema: TableSchema) -> None:
        existing = self._schemas.get(schema.name)
        if existing is not None and existing != schema:
            raise LocalStoreError(
                f"Table {schema.name} already registered with a different schema",
                table=schema.name,
            )
        self._schemas[schema.name] = schema

    async def open(self) -> None:
        failure = self._failures.pop("open", None)
        if failure is not None:
            raise failure
        self._open = True

    async def close(self) -> None:
        self._open = False

    def _schema(self, operation: str, table: str) -> TableSchema:
        failure = self._failures.pop(operation, None)
        if failure is not None:
            raise failure
        schema = self._schemas.get(table)
        if schema is None:
            raise LocalStoreError(f"Table not registered: {table}", table=table)
        return schema

    def _find(self, table: str, key: Any) -> _Row | None:
        for row in self._rows[table]:
            if row.key == key:
                return row
        return None

    async def scan_all(self, table: str) -> list[dict[str, Any]]:
        self._schema("scan_all", table)
        return [copy.deepcopy(row.record) for row in self._rows[table]]

    async def find_by_field(self, table: str, field: str, value: Any) -> list[dict[str, Any]]:
        self._schema("find_by_field", table)
        return [
            copy.deepcopy(row.record)
            for row in self._rows[table]
            if row.record.get(field) == value
        ]

    async def insert(self, table: str, record: dict[str, Any]) -> dict[str, Any]:
        schema = self._schema("insert", table)
        record = copy.deepcopy(record)
        key = record.get(schema.primary_key)

        seq = self._sequence[table] + 1

        if schema.auto_increment and is_unassigned_key(key):
            used = [row.key for row in self._rows[table] if isinstance(row.key, int)]
            key = max([seq] + [k + 1 for k in used])
            record[schema.primary_key] = key
        elif key is None:
            raise LocalStoreError(
                f"Record for {table} has no '{schema.primary_key}'", table=table
            )
        elif self._find(table, key) is not None:
            raise LocalStoreError(f"Duplicate key {key!r} in {table}", table=table)

        self._sequence[table] = seq
        self._rows[table].append(_Row(seq=seq, key=key, record=record))
        return copy.deepcopy(record)

    async def update(self, table: str, key: Any, record: dict[str, Any]) -> dict[str, Any]:
        schema = self._schema("update", table)
        record = {**copy.deepcopy(record), schema.primary_key: key}

        row = self._find(table, key)
        if row is None:
            self._sequence[table] += 1
            self._rows[table].append(_Row(seq=self._sequence[table], key=key, record=record))
        else:
            row.record = record
        return copy.deepcopy(record)

    async def delete_by_key(self, table: str, key: Any) -> bool:
        self._schema("delete_by_key", table)
        row = self._find(table, key)
        if row is None:
            return False
        self._rows[table].remove(row)
        return True

    async def clear_table(self, table: str) -> int:
        self._schema("clear_table", table)
        removed = len(self._rows[table])
        self._rows[table].clear()
        return removed

    async def last_record(self, table: str) -> dict[str, Any] | None:
        self._schema("last_record", table)
        rows = self._rows[table]
        return copy.deepcopy(rows[-1].record) if rows else None

    async def count(self, table: str) -> int:
        self._schema("count", table)
        return len(self._rows[table])

    # Testing helpers

    def fail_next(self, operation: str, exception: Exception | None = None) -> None:
        """Make the next call of an operation raise.

        Args:
            operation: Method name, e.g. "insert" or "delete_by_key"
            exception: Exception to raise (LocalStoreError by default)
        """
        self._failures[operation] = exception or LocalStoreError(
            f"Injected {operation} failure"
        )

    def table_names(self) -> list[str]:
        """Names of registered tables (testing helper)."""
        return sorted(self._schemas)
