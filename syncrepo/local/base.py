"""
Base protocol and types for the local store driver.

The local store is a generic embedded store of JSON records, organized in
tables. Each table is declared with a TableSchema naming its primary key
field and whether the store assigns keys.

Invariants:
    - scan_all() returns records in insertion order
    - Auto-increment keys are never reused, even after clear_table()
    - update() is an upsert keyed by the given key
    - All driver failures raise LocalStoreError

How to change safely:
    - Protocol changes require updating all implementations
    - Keep the in-memory driver semantically identical to SQLite
"""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from ..errors import LocalStoreError

__all__ = ["LocalStore", "LocalStoreError", "TableSchema", "is_unassigned_key"]


@dataclass(frozen=True)
class TableSchema:
    """Declaration of one local table.

    Attributes:
        name: Table name
        primary_key: Name of the record field used as key
        auto_increment: Whether the store assigns keys to records without one
    """

    name: str
    primary_key: str = "id"
    auto_increment: bool = True


def is_unassigned_key(key: Any) -> bool:
    """Whether a key value asks the store to assign one."""
    return key is None or key == 0


@runtime_checkable
class LocalStore(Protocol):
    """Protocol for local store drivers.

    Example:
        >>> store = SqliteLocalStore("/tmp/data", "app")
        >>> store.register_table(TableSchema("Customer", "id"))
        >>> record = await store.insert("Customer", {"id": 0, "name": "Acme"})
        >>> record["id"]
        1
    """

    @abstractmethod
    async def open(self) -> None:
        """Open the store and create registered tables.

        Raises:
            LocalStoreError: If the store cannot be opened
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release resources."""
        ...

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """Whether open() has completed."""
        ...

    @abstractmethod
    def register_table(self, schema: TableSchema) -> None:
        """Declare a table. Tables registered after open() are created lazily."""
        ...

    @abstractmethod
    async def scan_all(self, table: str) -> list[dict[str, Any]]:
        """Return every record of a table in insertion order."""
        ...

    @abstractmethod
    async def find_by_field(self, table: str, field: str, value: Any) -> list[dict[str, Any]]:
        """Return records whose field equals value."""
        ...

    @abstractmethod
    async def insert(self, table: str, record: dict[str, Any]) -> dict[str, Any]:
        """Insert a record and return it as stored (with its key).

        Raises:
            LocalStoreError: If the key already exists
        """
        ...

    @abstractmethod
    async def update(self, table: str, key: Any, record: dict[str, Any]) -> dict[str, Any]:
        """Write a record under key, inserting it if absent."""
        ...

    @abstractmethod
    async def delete_by_key(self, table: str, key: Any) -> bool:
        """Delete a record. Returns False if it did not exist."""
        ...

    @abstractmethod
    async def clear_table(self, table: str) -> int:
        """Delete every record of a table. Returns the number removed."""
        ...

    @abstractmethod
    async def last_record(self, table: str) -> dict[str, Any] | None:
        """Return the most recently inserted record of a table."""
        ...

    @abstractmethod
    async def count(self, table: str) -> int:
        """Number of records in a table."""
        ...
