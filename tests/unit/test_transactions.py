"""
Unit tests for the local transaction log.

Tests cover:
- Action kinds and names
- Stored record format
- Append order, save, remove, clear
"""

from dataclasses import dataclass

import pytest

from syncrepo.entity import EntityBinding
from syncrepo.local.memory import InMemoryLocalStore
from syncrepo.transactions import ActionKind, LocalTransaction, TransactionLog


@dataclass
class Customer:
    id: int = 0
    name: str = ""


class TestActionKind:
    """Tests for ActionKind."""

    def test_values_and_names(self):
        """Numeric values and text names are fixed."""
        assert [(int(a), a.action_name) for a in ActionKind] == [
            (0, "Insert"),
            (1, "UpdateById"),
            (2, "DeleteById"),
            (3, "DeleteByEntity"),
            (4, "DeleteAll"),
        ]


class TestLocalTransaction:
    """Tests for LocalTransaction."""

    @pytest.fixture
    def binding(self):
        return EntityBinding(Customer)

    def test_factories(self):
        """Factories populate entity or id, never both."""
        insert = LocalTransaction.insert(Customer(id=1, name="Acme"))
        delete = LocalTransaction.delete_by_id(7)
        clear = LocalTransaction.delete_all()

        assert insert.action == ActionKind.INSERT and insert.id is None
        assert delete.entity is None and delete.id == 7
        assert clear.entity is None and clear.id is None
        assert insert.recorded_at > 0

    def test_record_format(self, binding):
        """Stored records carry action value and text."""
        tx = LocalTransaction.update_by_id(Customer(id=1, name="Acme"))
        tx.seq = 3

        record = tx.to_record(binding)

        assert record["seq"] == 3
        assert record["action"] == 1
        assert record["action_name"] == "UpdateById"
        assert record["entity"] == {"id": 1, "name": "Acme"}
        assert record["id"] is None
        assert record["reconciled"] is False

    def test_from_record(self, binding):
        """Records convert back to typed transactions."""
        tx = LocalTransaction.from_record(
            {"seq": 2, "action": 2, "id": 5, "entity": None, "recorded_at": 10},
            binding,
        )

        assert tx.action == ActionKind.DELETE_BY_ID
        assert tx.id == 5
        assert tx.seq == 2
        assert not tx.reconciled


class TestTransactionLog:
    """Tests for TransactionLog."""

    @pytest.fixture
    def store(self):
        return InMemoryLocalStore()

    @pytest.fixture
    def log(self, store):
        return TransactionLog(store, EntityBinding(Customer))

    def test_registers_log_table(self, store, log):
        """The log table is named after the entity."""
        assert log.table == "Customer_LocalTransactions"
        assert "Customer_LocalTransactions" in store.table_names()

    @pytest.mark.asyncio
    async def test_append_assigns_increasing_seq(self, log):
        """Appends get increasing positions and keep order."""
        first = await log.append(LocalTransaction.insert(Customer(id=1, name="Acme")))
        second = await log.append(LocalTransaction.delete_by_id(1))

        entries = await log.entries()

        assert first.seq < second.seq
        assert [tx.action for tx in entries] == [ActionKind.INSERT, ActionKind.DELETE_BY_ID]
        assert entries[0].entity == Customer(id=1, name="Acme")

    @pytest.mark.asyncio
    async def test_seq_is_independent_of_entity_key(self, log):
        """Entries for the same entity key do not collide."""
        await log.append(LocalTransaction.insert(Customer(id=1, name="Acme")))
        await log.append(LocalTransaction.update_by_id(Customer(id=1, name="Acme Corp")))

        assert await log.count() == 2

    @pytest.mark.asyncio
    async def test_save_rewrites_in_place(self, log):
        """save() persists changes without moving the entry."""
        first = await log.append(LocalTransaction.update_by_id(Customer(id=1, name="A")))
        await log.append(LocalTransaction.delete_all())

        first.entity = Customer(id=57, name="A")
        first.reconciled = True
        await log.save(first)

        entries = await log.entries()
        assert entries[0].entity.id == 57
        assert entries[0].reconciled
        assert entries[1].action == ActionKind.DELETE_ALL

    @pytest.mark.asyncio
    async def test_save_requires_seq(self, log):
        """Unappended transactions cannot be saved."""
        with pytest.raises(ValueError):
            await log.save(LocalTransaction.delete_all())

    @pytest.mark.asyncio
    async def test_remove_and_clear(self, log):
        """remove() drops one entry, clear() all."""
        first = await log.append(LocalTransaction.delete_by_id(1))
        await log.append(LocalTransaction.delete_by_id(2))
        await log.append(LocalTransaction.delete_by_id(3))

        assert await log.remove(first.seq) is True
        assert await log.remove(first.seq) is False
        assert [tx.id for tx in await log.entries()] == [2, 3]

        assert await log.clear() == 2
        assert await log.entries() == []
