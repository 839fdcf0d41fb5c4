"""
Dual-mode repository for SyncRepo.

SyncRepository is the entry point consumers use. It routes every call
to one of two Repository implementations depending on connectivity:
- Online: the remote store, results returned unchanged, nothing logged
- Offline: LocalRepository, which writes the local store and appends
  one LocalTransaction per successful mutation

On the offline -> online transition it replays the transaction log
through the SyncEngine.

Invariants:
    - Exactly one log entry per successful offline mutation, in order
    - Log appends complete before the mutating call returns
    - A failed log append never changes the caller's result
    - Local store failures on offline writes become None/False
    - The connectivity flag is owned by the SyncRepository instance

How to change safely:
    - Keep LocalRepository and the remote store behaviorally identical
      for reads over the same data
    - New mutating operations need a matching ActionKind and replay step
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Generic, TypeVar

from .base import Repository
from .config import SyncRepoConfig
from .connectivity import ConnectivityMonitor
from .entity import EntityBinding
from .errors import LocalStoreError
from .local.base import LocalStore, TableSchema
from .local.sqlite import SqliteLocalStore
from .query import QueryFilter
from .sync import SyncEngine, SyncResult
from .transactions import LocalTransaction, TransactionLog

logger = logging.getLogger(__name__)

T = TypeVar("T")


class LocalRepository(Generic[T]):
    """Offline variant of the Repository contract.

    Reads come from the local store. Writes go to the local store and are
    recorded in the transaction log for later replay.

    Example:
        >>> offline = LocalRepository(store, binding)
        >>> created = await offline.insert(Customer(id=0, name="Acme"))
        >>> created.id
        1
    """

    def __init__(
        self,
        store: LocalStore,
        binding: EntityBinding[T],
        log: TransactionLog[T] | None = None,
    ) -> None:
        self.store = store
        self.binding = binding
        self.table = binding.table_name
        self.log = log or TransactionLog(store, binding)
        store.register_table(
            TableSchema(
                self.table,
                primary_key=binding.primary_key,
                auto_increment=binding.auto_generate_key,
            )
        )
        self._open_lock = asyncio.Lock()

    async def ensure_open(self) -> None:
        """Open the local store once; later calls reuse it."""
        if self.store.is_open:
            return
        async with self._open_lock:
            if not self.store.is_open:
                await self.store.open()

    async def _record(self, transaction: LocalTransaction[T]) -> None:
        """Append to the log. Failures are logged, never raised."""
        try:
            await self.log.append(transaction)
        except Exception:
            logger.warning(
                f"Failed to record {transaction.action_name} for {self.binding.name}; "
                "the change will not be replayed",
                exc_info=True,
                extra={"entity": self.binding.name, "action": transaction.action_name},
            )

    async def get_all(self) -> list[T]:
        await self.ensure_open()
        records = await self.store.scan_all(self.table)
        return [self.binding.from_record(r) for r in records]

    async def get_by_id(self, key: Any) -> T | None:
        await self.ensure_open()
        records = await self.store.find_by_field(self.table, self.binding.primary_key, key)
        return self.binding.from_record(records[0]) if records else None

    async def get(self, query: QueryFilter) -> list[T]:
        # The whole table is loaded and filtered in-process
        await self.ensure_open()
        records = await self.store.scan_all(self.table)
        return [self.binding.from_record(r) for r in query.apply(records)]

    async def insert(self, entity: T) -> T | None:
        if self.binding.auto_generate_key and not self.binding.has_zero_key(entity):
            entity = self.binding.with_key(entity, self.binding.zero_key)

        try:
            await self.ensure_open()
            await self.store.insert(self.table, self.binding.to_record(entity))
            last = await self.store.last_record(self.table)
        except LocalStoreError:
            logger.exception(
                f"Offline insert into {self.table} failed",
                extra={"entity": self.binding.name},
            )
            return None
        if last is None:
            return None

        created = self.binding.from_record(last)
        await self._record(LocalTransaction.insert(created))
        return created

    async def update(self, entity: T) -> T | None:
        key = self.binding.get_key(entity)

        try:
            await self.ensure_open()
            await self.store.update(self.table, key, self.binding.to_record(entity))
        except LocalStoreError:
            logger.exception(
                f"Offline update of {self.table} key {key!r} failed",
                extra={"entity": self.binding.name},
            )
            return None

        await self._record(LocalTransaction.update_by_id(entity))
        return entity

    async def delete_by_id(self, key: Any) -> bool:
        try:
            await self.ensure_open()
            existing = await self.get_by_id(key)
            await self.store.delete_by_key(self.table, key)
        except LocalStoreError:
            logger.exception(
                f"Offline delete from {self.table} key {key!r} failed",
                extra={"entity": self.binding.name},
            )
            return False

        if existing is None:
            # Kept in the log: the remote store may still hold the key
            logger.debug(
                f"Offline delete of {key!r}: no local row",
                extra={"entity": self.binding.name},
            )

        await self._record(LocalTransaction.delete_by_id(key))
        return True

    async def delete(self, entity: T) -> bool:
        return await self.delete_by_id(self.binding.get_key(entity))

    async def delete_all(self) -> bool:
        try:
            await self.ensure_open()
            removed = await self.store.clear_table(self.table)
        except LocalStoreError:
            logger.exception(
                f"Offline clear of {self.table} failed",
                extra={"entity": self.binding.name},
            )
            return False

        logger.debug(f"Offline delete_all removed {removed} rows", extra={"entity": self.binding.name})
        await self._record(LocalTransaction.delete_all())
        return True


class SyncRepository(Generic[T]):
    """Connectivity-aware router over the remote store and LocalRepository.

    Attributes:
        binding: Entity binding
        remote: Online variant
        local: Offline variant
        last_sync: Result of the most recent replay pass

    Known gaps:
        - Overlapping offline calls may interleave their log appends
        - After a failed replay on reconnect the repository stays online.
          New writes reach the remote store before the entries still in
          the log, which are only sent by the next successful pass

    Example:
        >>> repo = SyncRepository(binding, SqliteLocalStore(data_dir), remote)
        >>> await repo.on_connectivity_changed(False)
        >>> await repo.insert(Customer(id=0, name="Acme"))   # local key 1
        >>> await repo.on_connectivity_changed(True)         # replays the log
    """

    def __init__(
        self,
        binding: EntityBinding[T],
        local_store: LocalStore,
        remote: Repository[T],
        initially_online: bool = True,
    ) -> None:
        """Initialize the repository.

        Args:
            binding: Entity binding (key access and codec)
            local_store: Local store driver
            remote: Remote store for the entity type
            initially_online: Connectivity state before the first signal
        """
        self.binding = binding
        self.remote = remote
        self.local = LocalRepository(local_store, binding)
        self.engine = SyncEngine(self.local.log, remote)
        self.last_sync: SyncResult | None = None

        self._is_online = initially_online
        self._sync_lock = asyncio.Lock()
        self._unsubscribe: Callable[[], None] | None = None

    @classmethod
    def from_config(
        cls,
        config: SyncRepoConfig,
        binding: EntityBinding[T],
        remote: Repository[T],
    ) -> SyncRepository[T]:
        """Create a repository over SQLite storage from SyncRepoConfig.

        Args:
            config: Complete configuration (storage and sync sections are used)
            binding: Entity binding
            remote: Remote store for the entity type
        """
        storage = config.storage
        local_store = SqliteLocalStore(
            storage.data_dir,
            storage.db_name,
            wal_mode=storage.wal_mode,
            busy_timeout_ms=storage.busy_timeout_ms,
        )
        return cls(
            binding,
            local_store,
            remote,
            initially_online=config.sync.initially_online,
        )

    @property
    def is_online(self) -> bool:
        return self._is_online

    @is_online.setter
    def is_online(self, value: bool) -> None:
        # Host-driven injection; never triggers a sync
        self._is_online = value

    @property
    def log(self) -> TransactionLog[T]:
        return self.local.log

    def _active(self) -> Repository[T]:
        return self.remote if self._is_online else self.local

    async def open(self) -> None:
        await self.local.ensure_open()

    async def close(self) -> None:
        self.detach()
        await self.local.store.close()

    async def __aenter__(self) -> SyncRepository[T]:
        await self.open()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def on_connectivity_changed(self, is_online: bool) -> SyncResult | None:
        """Handle a connectivity signal.

        Offline -> online flips the flag and replays the log before
        returning. Online -> offline only flips the flag. A repeated
        value is ignored.

        Returns:
            The replay result on an offline -> online transition, else None
        """
        if is_online == self._is_online:
            return None

        self._is_online = is_online
        logger.info(
            f"Connectivity changed: {'online' if is_online else 'offline'}",
            extra={"entity": self.binding.name},
        )

        if not is_online:
            return None

        await self.sync_local_to_server()
        return self.last_sync

    def attach(self, monitor: ConnectivityMonitor) -> None:
        """Receive connectivity signals from a monitor."""
        self.detach()
        self._unsubscribe = monitor.subscribe(self.on_connectivity_changed)

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    async def sync_local_to_server(self) -> bool:
        """Replay the transaction log against the remote store.

        Returns:
            True once the log has been drained, False if an entry failed
            (the failed entry and its successors stay in the log)
        """
        async with self._sync_lock:
            await self.local.ensure_open()
            self.last_sync = await self.engine.replay()
        return self.last_sync.success

    async def pending_transactions(self) -> list[LocalTransaction[T]]:
        """Transactions waiting for replay, in replay order."""
        await self.local.ensure_open()
        return await self.local.log.entries()

    async def get_all(self) -> list[T]:
        return await self._active().get_all()

    async def get_by_id(self, key: Any) -> T | None:
        return await self._active().get_by_id(key)

    async def get(self, query: QueryFilter) -> list[T]:
        return await self._active().get(query)

    async def insert(self, entity: T) -> T | None:
        return await self._active().insert(entity)

    async def update(self, entity: T) -> T | None:
        return await self._active().update(entity)

    async def delete_by_id(self, key: Any) -> bool:
        return await self._active().delete_by_id(key)

    async def delete(self, entity: T) -> bool:
        return await self._active().delete(entity)

    async def delete_all(self) -> bool:
        return await self._active().delete_all()
