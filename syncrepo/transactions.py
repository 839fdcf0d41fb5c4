"""
Local transaction log for SyncRepo.

While offline, every successful local mutation appends one
LocalTransaction to the log table of its entity type
(<EntityName>_LocalTransactions). The sync engine replays the log
against the remote store in append order.

Stored record format:
    {
        "seq": 3,                      # log position, assigned on append
        "action": 1,                   # ActionKind value
        "action_name": "UpdateById",   # ActionKind text
        "id": null,                    # key, DeleteById only
        "entity": {"id": 1, ...},      # entity record, null for DeleteById/DeleteAll
        "recorded_at": 1730000000000,  # Unix ms
        "reconciled": false            # keys already remapped to server keys
    }

Invariants:
    - seq order = causal order = replay order
    - The log is append-only while offline; entries are only rewritten by
      key reconciliation and removed once replayed
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Generic, TypeVar

from .entity import EntityBinding
from .local.base import LocalStore, TableSchema

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ActionKind(IntEnum):
    """Kinds of offline mutations."""

    INSERT = 0
    UPDATE_BY_ID = 1
    DELETE_BY_ID = 2
    DELETE_BY_ENTITY = 3
    DELETE_ALL = 4

    @property
    def action_name(self) -> str:
        return _ACTION_NAMES[self]


_ACTION_NAMES = {
    ActionKind.INSERT: "Insert",
    ActionKind.UPDATE_BY_ID: "UpdateById",
    ActionKind.DELETE_BY_ID: "DeleteById",
    ActionKind.DELETE_BY_ENTITY: "DeleteByEntity",
    ActionKind.DELETE_ALL: "DeleteAll",
}


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class LocalTransaction(Generic[T]):
    """One mutation pending replay.

    Attributes:
        action: Kind of mutation
        entity: Entity snapshot (None for DeleteById and DeleteAll)
        id: Deleted key (DeleteById only)
        seq: Position in the log, None until appended
        recorded_at: When the mutation happened (Unix ms)
        reconciled: Keys already rewritten to server keys
    """

    action: ActionKind
    entity: T | None = None
    id: Any = None
    seq: int | None = None
    recorded_at: int = field(default_factory=_now_ms)
    reconciled: bool = False

    @property
    def action_name(self) -> str:
        return self.action.action_name

    @classmethod
    def insert(cls, entity: T) -> LocalTransaction[T]:
        return cls(action=ActionKind.INSERT, entity=entity)

    @classmethod
    def update_by_id(cls, entity: T) -> LocalTransaction[T]:
        return cls(action=ActionKind.UPDATE_BY_ID, entity=entity)

    @classmethod
    def delete_by_id(cls, key: Any) -> LocalTransaction[T]:
        return cls(action=ActionKind.DELETE_BY_ID, id=key)

    @classmethod
    def delete_by_entity(cls, entity: T) -> LocalTransaction[T]:
        return cls(action=ActionKind.DELETE_BY_ENTITY, entity=entity)

    @classmethod
    def delete_all(cls) -> LocalTransaction[T]:
        return cls(action=ActionKind.DELETE_ALL)

    def to_record(self, binding: EntityBinding[T]) -> dict[str, Any]:
        """Convert to the stored record form."""
        return {
            "seq": self.seq or 0,
            "action": int(self.action),
            "action_name": self.action_name,
            "id": self.id,
            "entity": binding.to_record(self.entity) if self.entity is not None else None,
            "recorded_at": self.recorded_at,
            "reconciled": self.reconciled,
        }

    @classmethod
    def from_record(cls, record: dict[str, Any], binding: EntityBinding[T]) -> LocalTransaction[T]:
        """Create from the stored record form."""
        entity = record.get("entity")
        return cls(
            action=ActionKind(record["action"]),
            entity=binding.from_record(entity) if entity is not None else None,
            id=record.get("id"),
            seq=record.get("seq"),
            recorded_at=record.get("recorded_at", 0),
            reconciled=bool(record.get("reconciled", False)),
        )

    def __str__(self) -> str:
        return f"LocalTransaction(seq={self.seq}, action={self.action_name})"


class TransactionLog(Generic[T]):
    """Ordered log of pending transactions for one entity type.

    Example:
        >>> log = TransactionLog(store, binding)
        >>> await log.append(LocalTransaction.insert(customer))
        >>> [tx.action_name for tx in await log.entries()]
        ['Insert']
    """

    def __init__(self, store: LocalStore, binding: EntityBinding[T]) -> None:
        self.store = store
        self.binding = binding
        self.table = binding.log_table_name
        store.register_table(TableSchema(self.table, primary_key="seq", auto_increment=True))

    async def append(self, transaction: LocalTransaction[T]) -> LocalTransaction[T]:
        """Append a transaction and assign its seq.

        Raises:
            LocalStoreError: If the write fails
        """
        transaction.seq = None
        stored = await self.store.insert(self.table, transaction.to_record(self.binding))
        transaction.seq = stored["seq"]
        logger.debug(
            "Recorded local transaction",
            extra={"table": self.table, "seq": transaction.seq, "action": transaction.action_name},
        )
        return transaction

    async def entries(self) -> list[LocalTransaction[T]]:
        """All pending transactions in replay order."""
        records = await self.store.scan_all(self.table)
        return [LocalTransaction.from_record(r, self.binding) for r in records]

    async def save(self, transaction: LocalTransaction[T]) -> None:
        """Persist changes to an already appended transaction."""
        if transaction.seq is None:
            raise ValueError("Transaction has not been appended")
        await self.store.update(self.table, transaction.seq, transaction.to_record(self.binding))

    async def remove(self, seq: int) -> bool:
        """Remove one transaction. Returns False if it was not in the log."""
        return await self.store.delete_by_key(self.table, seq)

    async def clear(self) -> int:
        """Remove every transaction. Returns the number removed."""
        return await self.store.clear_table(self.table)

    async def count(self) -> int:
        return await self.store.count(self.table)
