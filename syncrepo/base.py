"""
Repository protocol for SyncRepo.

Every data source the consumer can talk to implements this contract:
- Remote stores (HttpRemoteStore, InMemoryRemoteStore)
- The offline variant (LocalRepository)
- The connectivity-aware router (SyncRepository)

Contract:
    - Reads return empty lists rather than failing on empty stores
    - get_by_id/update return None when the entity does not exist
    - delete_* return False when nothing was deleted
    - Remote implementations raise RemoteStoreError on transport or
      server failures; they never swallow them

How to change safely:
    - Protocol changes require updating all implementations
    - Keep online and offline behavior identical for the same data
"""

from __future__ import annotations

from abc import abstractmethod
from typing import Any, Protocol, TypeVar, runtime_checkable

from .query import QueryFilter

T = TypeVar("T")


@runtime_checkable
class Repository(Protocol[T]):
    """CRUD + query contract for one entity type."""

    @abstractmethod
    async def get_all(self) -> list[T]:
        ...

    @abstractmethod
    async def get_by_id(self, key: Any) -> T | None:
        ...

    @abstractmethod
    async def get(self, query: QueryFilter) -> list[T]:
        ...

    @abstractmethod
    async def insert(self, entity: T) -> T | None:
        """Create an entity and return it as stored (with its key)."""
        ...

    @abstractmethod
    async def update(self, entity: T) -> T | None:
        ...

    @abstractmethod
    async def delete_by_id(self, key: Any) -> bool:
        ...

    @abstractmethod
    async def delete(self, entity: T) -> bool:
        ...

    @abstractmethod
    async def delete_all(self) -> bool:
        ...
