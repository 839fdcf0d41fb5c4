"""
SQLite local store driver for SyncRepo.

One SQLite file per local database holds every registered table. Each
table stores JSON record bodies next to their key:

Table schema:
    <table>:
        - seq INTEGER PRIMARY KEY AUTOINCREMENT (insertion order)
        - pk UNIQUE (record key, integer or text)
        - body TEXT (JSON record)

Invariants:
    - All writes run in a single IMMEDIATE transaction
    - AUTOINCREMENT guarantees seq values are never reused, so keys
      assigned by the store are never reused either
    - Record bodies always carry their own key field

How to change safely:
    - Schema changes must keep existing database files readable
    - Test with both WAL and rollback journal modes
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from ..errors import LocalStoreError
from .base import TableSchema, is_unassigned_key

logger = logging.getLogger(__name__)


def _quote(name: str) -> str:
    """Quote a table name after checking its characters."""
    if not name or not all(c.isalnum() or c in "_-" for c in name):
        raise LocalStoreError(f"Invalid table name: {name!r}", table=name)
    return f'"{name}"'


class SqliteLocalStore:
    """SQLite implementation of the LocalStore protocol.

    Thread safety:
        Each operation opens its own connection. SQLite handles
        concurrent access via WAL mode.

    Example:
        >>> store = SqliteLocalStore("/var/lib/app", "RepositoryDemo")
        >>> store.register_table(TableSchema("Customer", primary_key="id"))
        >>> await store.open()
        >>> await store.insert("Customer", {"id": 0, "name": "Acme"})
        {'id': 1, 'name': 'Acme'}
    """

    def __init__(
        self,
        data_dir: str,
        db_name: str = "syncrepo",
        wal_mode: bool = True,
        busy_timeout_ms: int = 5000,
        schemas: list[TableSchema] | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            data_dir: Directory for the database file
            db_name: Database name (file name without extension)
            wal_mode: Enable SQLite WAL mode
            busy_timeout_ms: SQLite busy timeout
            schemas: Tables to register up front
        """
        self.data_dir = Path(data_dir)
        self.db_name = db_name
        self.wal_mode = wal_mode
        self.busy_timeout_ms = busy_timeout_ms
        self._schemas: dict[str, TableSchema] = {}
        self._created: set[str] = set()
        self._open = False
        self._lock = asyncio.Lock()

        for schema in schemas or []:
            self.register_table(schema)

    @property
    def db_path(self) -> Path:
        # Sanitize db_name to prevent path traversal
        safe_name = "".join(c for c in self.db_name if c.isalnum() or c in "-_")
        return self.data_dir / f"{safe_name}.db"

    @property
    def is_open(self) -> bool:
        return self._open

    def register_table(self, schema: TableSchema) -> None:
        _quote(schema.name)
        existing = self._schemas.get(schema.name)
        if existing is not None and existing != schema:
            raise LocalStoreError(
                f"Table {schema.name} already registered with a different schema",
                table=schema.name,
            )
        self._schemas[schema.name] = schema

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """Get a configured database connection.

        Yields:
            SQLite connection

        Raises:
            LocalStoreError: If the database cannot be opened
        """
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(
                str(self.db_path),
                timeout=self.busy_timeout_ms / 1000.0,
                isolation_level=None,  # Autocommit by default, explicit transactions
            )
        except (OSError, sqlite3.Error) as e:
            raise LocalStoreError(f"Cannot open local database {self.db_path}: {e}") from e

        conn.row_factory = sqlite3.Row
        try:
            conn.execute(f"PRAGMA busy_timeout = {self.busy_timeout_ms}")
            if self.wal_mode:
                conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("PRAGMA synchronous = NORMAL")
            yield conn
        finally:
            conn.close()

    def _create_table(self, conn: sqlite3.Connection, schema: TableSchema) -> None:
        conn.execute(
            f"""
            CREATE TABLE IF NOT EXISTS {_quote(schema.name)} (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                pk UNIQUE,
                body TEXT NOT NULL
            )
            """
        )
        self._created.add(schema.name)

    def _schema(self, conn: sqlite3.Connection, table: str) -> TableSchema:
        """Look up a registered table, creating it on first use."""
        schema = self._schemas.get(table)
        if schema is None:
            raise LocalStoreError(f"Table not registered: {table}", table=table)
        if table not in self._created:
            self._create_table(conn, schema)
        return schema

    async def open(self) -> None:
        """Create the database file and registered tables."""
        async with self._lock:
            if self._open:
                return
            try:
                with self._get_connection() as conn:
                    for schema in self._schemas.values():
                        self._create_table(conn, schema)
            except sqlite3.Error as e:
                raise LocalStoreError(f"Failed to initialize {self.db_path}: {e}") from e
            self._open = True
            logger.info(f"Opened local database: {self.db_path}")

    async def close(self) -> None:
        self._open = False
        self._created.clear()

    async def scan_all(self, table: str) -> list[dict[str, Any]]:
        with self._get_connection() as conn:
            try:
                self._schema(conn, table)
                rows = conn.execute(f"SELECT body FROM {_quote(table)} ORDER BY seq").fetchall()
            except sqlite3.Error as e:
                raise LocalStoreError(f"Scan of {table} failed: {e}", table=table) from e
        return [json.loads(row["body"]) for row in rows]

    async def find_by_field(self, table: str, field: str, value: Any) -> list[dict[str, Any]]:
        with self._get_connection() as conn:
            try:
                schema = self._schema(conn, table)
                if field == schema.primary_key:
                    rows = conn.execute(
                        f"SELECT body FROM {_quote(table)} WHERE pk = ? ORDER BY seq",
                        (value,),
                    ).fetchall()
                else:
                    rows = conn.execute(
                        f"SELECT body FROM {_quote(table)} "
                        "WHERE json_extract(body, ?) = ? ORDER BY seq",
                        (f'$."{field}"', value),
                    ).fetchall()
            except sqlite3.Error as e:
                raise LocalStoreError(f"Lookup in {table} failed: {e}", table=table) from e
        return [json.loads(row["body"]) for row in rows]

    async def insert(self, table: str, record: dict[str, Any]) -> dict[str, Any]:
        record = dict(record)
        with self._get_connection() as conn:
            try:
                schema = self._schema(conn, table)
                key = record.get(schema.primary_key)
                conn.execute("BEGIN IMMEDIATE")
                try:
                    if schema.auto_increment and is_unassigned_key(key):
                        cursor = conn.execute(
                            f"INSERT INTO {_quote(table)} (pk, body) VALUES (NULL, '{{}}')"
                        )
                        key = self._next_key(conn, table, cursor.lastrowid)
                        record[schema.primary_key] = key
                        conn.execute(
                            f"UPDATE {_quote(table)} SET pk = ?, body = ? WHERE seq = ?",
                            (key, json.dumps(record), cursor.lastrowid),
                        )
                    else:
                        if key is None:
                            raise LocalStoreError(
                                f"Record for {table} has no '{schema.primary_key}'",
                                table=table,
                            )
                        conn.execute(
                            f"INSERT INTO {_quote(table)} (pk, body) VALUES (?, ?)",
                            (key, json.dumps(record)),
                        )
                    conn.execute("COMMIT")
                except Exception:
                    conn.execute("ROLLBACK")
                    raise
            except sqlite3.Error as e:
                raise LocalStoreError(f"Insert into {table} failed: {e}", table=table) from e

        logger.debug("Inserted local record", extra={"table": table, "key": key})
        return record

    @staticmethod
    def _next_key(conn: sqlite3.Connection, table: str, seq: int) -> int:
        """Key for a new auto-increment row.

        Normally the row's seq. Rows written by upsert under an explicit
        integer key can already occupy that value, in which case the key
        moves past the largest one in use.
        """
        row = conn.execute(
            f"SELECT MAX(pk) AS max_pk FROM {_quote(table)} WHERE typeof(pk) = 'integer'"
        ).fetchone()
        max_pk = row["max_pk"] if row and row["max_pk"] is not None else 0
        return max(seq, max_pk + 1)

    async def update(self, table: str, key: Any, record: dict[str, Any]) -> dict[str, Any]:
        with self._get_connection() as conn:
            try:
                schema = self._schema(conn, table)
                record = {**record, schema.primary_key: key}
                conn.execute(
                    f"""
                    INSERT INTO {_quote(table)} (pk, body) VALUES (?, ?)
                    ON CONFLICT(pk) DO UPDATE SET body = excluded.body
                    """,
                    (key, json.dumps(record)),
                )
            except sqlite3.Error as e:
                raise LocalStoreError(f"Update of {table} failed: {e}", table=table) from e

        logger.debug("Updated local record", extra={"table": table, "key": key})
        return record

    async def delete_by_key(self, table: str, key: Any) -> bool:
        with self._get_connection() as conn:
            try:
                self._schema(conn, table)
                cursor = conn.execute(f"DELETE FROM {_quote(table)} WHERE pk = ?", (key,))
            except sqlite3.Error as e:
                raise LocalStoreError(f"Delete from {table} failed: {e}", table=table) from e
        return cursor.rowcount > 0

    async def clear_table(self, table: str) -> int:
        with self._get_connection() as conn:
            try:
                self._schema(conn, table)
                # sqlite_sequence keeps its value, keys are not reused
                cursor = conn.execute(f"DELETE FROM {_quote(table)}")
            except sqlite3.Error as e:
                raise LocalStoreError(f"Clear of {table} failed: {e}", table=table) from e
        logger.debug("Cleared local table", extra={"table": table, "rows": cursor.rowcount})
        return cursor.rowcount

    async def last_record(self, table: str) -> dict[str, Any] | None:
        with self._get_connection() as conn:
            try:
                self._schema(conn, table)
                row = conn.execute(
                    f"SELECT body FROM {_quote(table)} ORDER BY seq DESC LIMIT 1"
                ).fetchone()
            except sqlite3.Error as e:
                raise LocalStoreError(f"Read of {table} failed: {e}", table=table) from e
        return json.loads(row["body"]) if row else None

    async def count(self, table: str) -> int:
        with self._get_connection() as conn:
            try:
                self._schema(conn, table)
                row = conn.execute(f"SELECT COUNT(*) AS n FROM {_quote(table)}").fetchone()
            except sqlite3.Error as e:
                raise LocalStoreError(f"Count of {table} failed: {e}", table=table) from e
        return row["n"]
