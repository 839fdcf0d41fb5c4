"""
Sync engine for SyncRepo.

Replays the transaction log of one entity type against the remote store
once connectivity returns. It ensures:
- Ordered replay (log order, one remote call at a time)
- Key reconciliation after replayed inserts
- Progress is durable per entry: an entry leaves the log as soon as its
  remote call succeeded, so a failure loses at most the in-flight entry

Replay steps per entry:
    Insert          -> remote.insert(entity), then reconcile keys
    UpdateById      -> remote.update(entity)
    DeleteById      -> remote.delete_by_id(id)
    DeleteByEntity  -> remote.delete(entity)
    DeleteAll       -> remote.delete_all()

Key reconciliation:
    When the remote store assigns key S to an entity inserted offline
    under local key L, every later unreconciled entry whose entity has
    key L gets key S (its other fields are kept), and every later
    DeleteById of L becomes a DeleteById of S. The rewritten entries are
    saved back to the log. The primary local table keeps key L.

Invariants:
    - Only exceptions stop a pass; the raising entry and everything
      after it stay in the log
    - Individual outcomes (insert/update returning None, a delete of an
      absent row) are logged at WARNING and count as replayed
    - No retries; the next pass resumes at the head of the log
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from .base import Repository
from .errors import ReplayError
from .transactions import ActionKind, LocalTransaction, TransactionLog

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class SyncResult:
    """Result of one replay pass.

    Attributes:
        success: Whether every entry was replayed
        replayed: Number of entries replayed in this pass
        remaining: Entries still in the log afterwards
        failed: The entry that stopped the pass
        error: Error message if failed
        key_remaps: Local key -> server key for inserts replayed in this pass
        skipped: Replayed entries the remote store reported no effect for
    """

    success: bool
    replayed: int = 0
    remaining: int = 0
    failed: LocalTransaction[Any] | None = None
    error: str | None = None
    key_remaps: dict[Any, Any] = field(default_factory=dict)
    skipped: list[LocalTransaction[Any]] = field(default_factory=list)


class SyncEngine(Generic[T]):
    """Replays a TransactionLog against a remote store.

    Thread safety:
        Not safe for overlapping passes on the same log; SyncRepository
        serializes passes with a lock.

    Example:
        >>> engine = SyncEngine(log, remote)
        >>> result = await engine.replay()
        >>> result.success, result.replayed
        (True, 3)
    """

    def __init__(self, log: TransactionLog[T], remote: Repository[T]) -> None:
        self.log = log
        self.remote = remote
        self.binding = log.binding

    async def replay(self, raise_on_error: bool = False) -> SyncResult:
        """Run one replay pass.

        Args:
            raise_on_error: Raise ReplayError instead of returning a failed result

        Returns:
            SyncResult describing the pass

        Raises:
            ReplayError: If raise_on_error is set and an entry fails
        """
        entries = await self.log.entries()
        if not entries:
            return SyncResult(success=True)

        logger.info(
            "Replaying local transactions",
            extra={"entity": self.binding.name, "pending": len(entries)},
        )
        result = SyncResult(success=True)

        for index, transaction in enumerate(entries):
            try:
                await self._replay_one(transaction, entries[index + 1 :], result)
            except Exception as e:
                result.success = False
                result.failed = transaction
                result.error = str(e)
                result.remaining = len(entries) - index
                logger.error(
                    f"Replay stopped at {transaction}: {e}",
                    exc_info=True,
                    extra={
                        "entity": self.binding.name,
                        "seq": transaction.seq,
                        "replayed": result.replayed,
                        "remaining": result.remaining,
                    },
                )
                if raise_on_error:
                    raise ReplayError(
                        f"Replay of {transaction.action_name} (seq {transaction.seq}) failed: {e}",
                        seq=transaction.seq,
                        action=transaction.action_name,
                    ) from e
                return result

            result.replayed += 1

        await self.log.clear()
        logger.info(
            "Local transactions replayed",
            extra={
                "entity": self.binding.name,
                "replayed": result.replayed,
                "remapped": len(result.key_remaps),
                "skipped": len(result.skipped),
            },
        )
        return result

    async def _replay_one(
        self,
        transaction: LocalTransaction[T],
        pending: list[LocalTransaction[T]],
        result: SyncResult,
    ) -> None:
        """Submit one entry to the remote store, then drop it from the log."""
        action = transaction.action
        logger.debug(
            "Replaying transaction",
            extra={"entity": self.binding.name, "seq": transaction.seq, "action": action.action_name},
        )

        if action == ActionKind.INSERT:
            created = await self.remote.insert(self._require_entity(transaction))
            if created is None:
                self._skipped(transaction, "Remote insert returned no entity", result)
            else:
                await self._reconcile(transaction.entity, created, pending, result)

        elif action == ActionKind.UPDATE_BY_ID:
            updated = await self.remote.update(self._require_entity(transaction))
            if updated is None:
                self._skipped(
                    transaction,
                    f"Remote update found no entity with key "
                    f"{self.binding.get_key(transaction.entity)!r}",
                    result,
                )

        elif action == ActionKind.DELETE_BY_ID:
            if not await self.remote.delete_by_id(transaction.id):
                self._skipped(
                    transaction, f"Remote delete of {transaction.id!r} found nothing", result
                )

        elif action == ActionKind.DELETE_BY_ENTITY:
            if not await self.remote.delete(self._require_entity(transaction)):
                self._skipped(transaction, "Remote delete by entity found nothing", result)

        elif action == ActionKind.DELETE_ALL:
            await self.remote.delete_all()

        if transaction.seq is not None:
            await self.log.remove(transaction.seq)

    def _skipped(self, transaction: LocalTransaction[T], reason: str, result: SyncResult) -> None:
        """Record an entry the remote store had no effect for."""
        result.skipped.append(transaction)
        logger.warning(
            f"{reason}; dropping {transaction}",
            extra={"entity": self.binding.name, "seq": transaction.seq},
        )

    def _require_entity(self, transaction: LocalTransaction[T]) -> T:
        if transaction.entity is None:
            raise ReplayError(
                f"{transaction.action_name} entry has no entity",
                seq=transaction.seq,
                action=transaction.action_name,
            )
        return transaction.entity

    async def _reconcile(
        self,
        offline_entity: T,
        online_entity: T,
        pending: list[LocalTransaction[T]],
        result: SyncResult,
    ) -> None:
        """Rewrite the local key of an inserted entity in the pending entries."""
        local_key = self.binding.get_key(offline_entity)
        server_key = self.binding.get_key(online_entity)
        if local_key == server_key:
            return

        result.key_remaps[local_key] = server_key
        rewritten = 0

        for transaction in pending:
            if transaction.reconciled:
                continue

            changed = False
            if (
                transaction.entity is not None
                and self.binding.get_key(transaction.entity) == local_key
            ):
                transaction.entity = self.binding.with_key(transaction.entity, server_key)
                changed = True
            if transaction.action == ActionKind.DELETE_BY_ID and transaction.id == local_key:
                transaction.id = server_key
                changed = True

            if changed:
                transaction.reconciled = True
                await self.log.save(transaction)
                rewritten += 1

        logger.debug(
            "Reconciled keys",
            extra={
                "entity": self.binding.name,
                "local_key": local_key,
                "server_key": server_key,
                "rewritten": rewritten,
            },
        )
