"""
In-memory remote store for testing.

Behaves like an authoritative server for one entity type:
- Assigns server keys on insert (independent of the submitted key)
- Keeps records in JSON form, in insertion order
- Journals every call for assertions
- Supports failure injection and simulated outages

It also backs the reference HTTP API in syncrepo.server.

Invariants:
    - All data is lost on process exit
    - Server keys are never reused
"""

from __future__ import annotations

import logging
from typing import Any, Generic, TypeVar

from ..entity import EntityBinding
from ..errors import RemoteStoreError, RemoteUnavailableError
from ..query import QueryFilter

logger = logging.getLogger(__name__)

T = TypeVar("T")


class InMemoryRemoteStore(Generic[T]):
    """In-memory implementation of the Repository contract.

    Attributes:
        binding: Entity binding (key access and codec)
        available: When False every call raises RemoteUnavailableError
        calls: Journal of (method, argument) tuples

    Example:
        >>> remote = InMemoryRemoteStore(binding, first_key=57)
        >>> created = await remote.insert(Customer(id=1, name="Acme"))
        >>> created.id
        57
    """

    def __init__(self, binding: EntityBinding[T], first_key: int = 1) -> None:
        self.binding = binding
        self.available = True
        self.calls: list[tuple[str, Any]] = []
        self._records: dict[Any, dict[str, Any]] = {}
        self._next_key = first_key
        self._failures: dict[str, Exception] = {}

    def _enter(self, method: str, argument: Any = None) -> None:
        self.calls.append((method, argument))
        if not self.available:
            raise RemoteUnavailableError(f"Remote store unavailable during {method}")
        failure = self._failures.pop(method, None)
        if failure is not None:
            raise failure

    async def get_all(self) -> list[T]:
        self._enter("get_all")
        return [self.binding.from_record(dict(r)) for r in self._records.values()]

    async def get_by_id(self, key: Any) -> T | None:
        self._enter("get_by_id", key)
        record = self._records.get(key)
        return self.binding.from_record(dict(record)) if record is not None else None

    async def get(self, query: QueryFilter) -> list[T]:
        self._enter("get", query)
        return [
            self.binding.from_record(dict(r))
            for r in query.apply(self._records.values())
        ]

    async def insert(self, entity: T) -> T | None:
        self._enter("insert", entity)
        record = self.binding.to_record(entity)

        if self.binding.auto_generate_key:
            key = self._next_key
            self._next_key += 1
        else:
            key = record.get(self.binding.primary_key)
            if key in self._records:
                raise RemoteStoreError(f"Duplicate key {key!r}", status_code=409)
            if isinstance(key, int):
                self._next_key = max(self._next_key, key + 1)

        record[self.binding.primary_key] = key
        self._records[key] = record
        logger.debug("Remote insert", extra={"entity": self.binding.name, "key": key})
        return self.binding.from_record(dict(record))

    async def update(self, entity: T) -> T | None:
        self._enter("update", entity)
        record = self.binding.to_record(entity)
        key = record.get(self.binding.primary_key)
        if key not in self._records:
            return None
        self._records[key] = record
        return self.binding.from_record(dict(record))

    async def delete_by_id(self, key: Any) -> bool:
        self._enter("delete_by_id", key)
        return self._records.pop(key, None) is not None

    async def delete(self, entity: T) -> bool:
        self._enter("delete", entity)
        return self._records.pop(self.binding.get_key(entity), None) is not None

    async def delete_all(self) -> bool:
        self._enter("delete_all")
        self._records.clear()
        return True

    # Testing helpers

    def fail_next(self, method: str, exception: Exception | None = None) -> None:
        """Make the next call of a method raise.

        Args:
            method: Method name, e.g. "insert"
            exception: Exception to raise (RemoteStoreError 503 by default)
        """
        self._failures[method] = exception or RemoteStoreError(
            f"Injected {method} failure", status_code=503
        )

    def records(self) -> list[dict[str, Any]]:
        """Stored records in insertion order (testing helper)."""
        return [dict(r) for r in self._records.values()]

    def calls_to(self, method: str) -> list[Any]:
        """Arguments of every journaled call to a method (testing helper)."""
        return [arg for name, arg in self.calls if name == method]
