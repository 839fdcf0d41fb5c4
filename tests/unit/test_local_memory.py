"""
Unit tests for the in-memory local store driver.

Tests cover:
- Parity with the SQLite driver on keys and ordering
- Record isolation (copies in and out)
- Testing helpers
"""

import pytest

from syncrepo.errors import LocalStoreError
from syncrepo.local.base import LocalStore, TableSchema
from syncrepo.local.memory import InMemoryLocalStore


class TestInMemoryLocalStore:
    """Tests for InMemoryLocalStore."""

    @pytest.fixture
    def store(self):
        """Create a fresh store with a Customer table."""
        return InMemoryLocalStore(schemas=[TableSchema("Customer")])

    def test_implements_protocol(self, store):
        """The driver satisfies the LocalStore protocol."""
        assert isinstance(store, LocalStore)

    @pytest.mark.asyncio
    async def test_open_close(self, store):
        """Lifecycle flags."""
        await store.open()
        assert store.is_open

        await store.close()
        assert not store.is_open

    @pytest.mark.asyncio
    async def test_auto_keys_never_reused(self, store):
        """Keys keep counting after clear_table()."""
        await store.insert("Customer", {"id": 0, "name": "Acme"})
        await store.clear_table("Customer")

        created = await store.insert("Customer", {"id": 0, "name": "Globex"})

        assert created["id"] == 2

    @pytest.mark.asyncio
    async def test_auto_key_skips_upserted_keys(self, store):
        """Auto keys move past explicitly upserted integer keys."""
        await store.update("Customer", 1, {"name": "Upserted"})

        created = await store.insert("Customer", {"id": 0, "name": "Acme"})

        assert created["id"] == 2

    @pytest.mark.asyncio
    async def test_duplicate_explicit_key(self):
        """Explicit duplicate keys are rejected."""
        store = InMemoryLocalStore(schemas=[TableSchema("Product", "sku", auto_increment=False)])
        await store.insert("Product", {"sku": "A"})

        with pytest.raises(LocalStoreError):
            await store.insert("Product", {"sku": "A"})

        assert await store.count("Product") == 1

    @pytest.mark.asyncio
    async def test_records_are_copied(self, store):
        """Mutating a returned record does not change the store."""
        record = {"id": 0, "tags": ["a"]}
        created = await store.insert("Customer", record)

        created["tags"].append("b")
        record["tags"].append("c")

        assert (await store.scan_all("Customer"))[0]["tags"] == ["a"]

    @pytest.mark.asyncio
    async def test_last_record_and_order(self, store):
        """scan_all keeps insertion order, last_record the newest row."""
        await store.insert("Customer", {"id": 0, "name": "Acme"})
        await store.insert("Customer", {"id": 0, "name": "Globex"})
        await store.update("Customer", 1, {"name": "Acme Corp"})

        assert [r["name"] for r in await store.scan_all("Customer")] == ["Acme Corp", "Globex"]
        assert (await store.last_record("Customer"))["name"] == "Globex"

    @pytest.mark.asyncio
    async def test_fail_next(self, store):
        """fail_next injects exactly one failure."""
        store.fail_next("insert")

        with pytest.raises(LocalStoreError):
            await store.insert("Customer", {"id": 0})

        created = await store.insert("Customer", {"id": 0})
        assert created["id"] == 1

    def test_table_names(self, store):
        """Registered tables are listed."""
        store.register_table(TableSchema("Customer_LocalTransactions", "seq"))

        assert store.table_names() == ["Customer", "Customer_LocalTransactions"]
