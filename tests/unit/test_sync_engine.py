"""
Unit tests for the sync engine.

Tests cover:
- Ordered replay of every action kind
- Key reconciliation after replayed inserts
- Failure handling and resume
- Empty log
"""

from dataclasses import dataclass

import pytest

from syncrepo.entity import EntityBinding
from syncrepo.errors import RemoteStoreError, ReplayError
from syncrepo.local.memory import InMemoryLocalStore
from syncrepo.remote.memory import InMemoryRemoteStore
from syncrepo.repository import LocalRepository
from syncrepo.sync import SyncEngine
from syncrepo.transactions import ActionKind, LocalTransaction


@dataclass
class Customer:
    id: int = 0
    name: str = ""
    city: str = ""


def _returns_none(method):
    """Wrap a remote method so it still runs but reports no entity."""

    async def wrapper(entity):
        await method(entity)
        return None

    return wrapper


class TestSyncEngine:
    """Tests for SyncEngine."""

    @pytest.fixture
    def binding(self):
        return EntityBinding(Customer)

    @pytest.fixture
    def offline(self, binding):
        """Offline repository over an in-memory store."""
        return LocalRepository(InMemoryLocalStore(), binding)

    @pytest.fixture
    def remote(self, binding):
        """Remote store that assigns keys starting at 57."""
        return InMemoryRemoteStore(binding, first_key=57)

    @pytest.fixture
    def engine(self, offline, remote):
        return SyncEngine(offline.log, remote)

    @pytest.mark.asyncio
    async def test_empty_log_makes_no_calls(self, offline, engine, remote):
        """Sync of an empty log succeeds without remote calls."""
        await offline.ensure_open()

        result = await engine.replay()

        assert result.success
        assert result.replayed == 0
        assert remote.calls == []

    @pytest.mark.asyncio
    async def test_acme_scenario(self, offline, engine, remote):
        """Local key 1 becomes server key 57; the local row keeps key 1."""
        created = await offline.insert(Customer(name="Acme"))
        assert created.id == 1

        result = await engine.replay()

        assert result.success
        assert result.key_remaps == {1: 57}
        assert remote.records() == [{"id": 57, "name": "Acme", "city": ""}]
        assert await offline.log.count() == 0
        assert await offline.get_all() == [Customer(id=1, name="Acme")]

    @pytest.mark.asyncio
    async def test_insert_then_update_uses_server_key(self, offline, engine, remote):
        """An update of an offline insert is replayed against the server key."""
        await offline.insert(Customer(name="Acme", city="Berlin"))
        await offline.update(Customer(id=1, name="Acme Corp", city="Berlin"))

        result = await engine.replay()

        assert result.success
        assert result.replayed == 2
        updates = remote.calls_to("update")
        assert updates == [Customer(id=57, name="Acme Corp", city="Berlin")]
        assert remote.records() == [{"id": 57, "name": "Acme Corp", "city": "Berlin"}]

    @pytest.mark.asyncio
    async def test_insert_then_delete_uses_server_key(self, offline, engine, remote):
        """A delete of an offline insert targets the server key."""
        await offline.insert(Customer(name="Acme"))
        await offline.delete_by_id(1)

        result = await engine.replay()

        assert result.success
        assert remote.calls_to("delete_by_id") == [57]
        assert remote.records() == []

    @pytest.mark.asyncio
    async def test_replay_preserves_order(self, offline, engine, remote):
        """Remote calls follow the log order."""
        await offline.insert(Customer(name="Acme"))
        await offline.insert(Customer(name="Globex"))
        await offline.delete_all()
        await offline.insert(Customer(name="Initech"))

        result = await engine.replay()

        assert result.success
        assert [name for name, _ in remote.calls] == [
            "insert",
            "insert",
            "delete_all",
            "insert",
        ]
        assert [r["name"] for r in remote.records()] == ["Initech"]
        assert result.key_remaps == {1: 57, 2: 58, 3: 59}

    @pytest.mark.asyncio
    async def test_each_remap_applies_once(self, binding, offline):
        """A rewritten entry is not remapped again by a later insert."""
        # Server keys overlap local keys: 1 -> 2, then 2 -> 3. The update of
        # entity 1 must stop at 2.
        remote = InMemoryRemoteStore(binding, first_key=2)
        await offline.insert(Customer(name="Acme"))
        await offline.insert(Customer(name="Globex"))
        await offline.update(Customer(id=1, name="Acme Corp"))

        result = await SyncEngine(offline.log, remote).replay()

        assert result.success
        assert result.key_remaps == {1: 2, 2: 3}
        assert remote.calls_to("update") == [Customer(id=2, name="Acme Corp")]

    @pytest.mark.asyncio
    async def test_delete_of_absent_row_counts_as_replayed(self, offline, engine, remote):
        """Remote deletes returning False do not fail the pass."""
        await offline.delete_by_id(1234)

        result = await engine.replay()

        assert result.success
        assert result.replayed == 1
        assert await offline.log.count() == 0

    @pytest.mark.asyncio
    async def test_delete_by_entity(self, offline, engine, remote):
        """DeleteByEntity entries call remote.delete."""
        await offline.ensure_open()
        existing = await remote.insert(Customer(name="Old"))
        await offline.log.append(LocalTransaction.delete_by_entity(existing))

        result = await engine.replay()

        assert result.success
        assert remote.calls_to("delete") == [Customer(id=57, name="Old")]
        assert remote.records() == []

    @pytest.mark.asyncio
    async def test_failure_keeps_failed_entry_and_tail(self, offline, engine, remote):
        """A failed entry and everything after it stay in the log."""
        await offline.insert(Customer(name="Acme"))
        await offline.insert(Customer(name="Globex"))
        await offline.delete_by_id(1)
        remote.fail_next("delete_by_id")

        result = await engine.replay()

        assert not result.success
        assert result.replayed == 2
        assert result.remaining == 1
        assert result.failed.action == ActionKind.DELETE_BY_ID
        assert "Injected" in result.error
        entries = await offline.log.entries()
        assert [(tx.action, tx.id) for tx in entries] == [(ActionKind.DELETE_BY_ID, 57)]

    @pytest.mark.asyncio
    async def test_resume_after_failure(self, offline, engine, remote):
        """The next pass resumes at the failed entry."""
        await offline.insert(Customer(name="Acme"))
        await offline.update(Customer(id=1, name="Acme Corp"))
        remote.fail_next("update")

        first = await engine.replay()
        second = await engine.replay()

        assert not first.success
        assert second.success
        assert second.replayed == 1
        assert len(remote.calls_to("insert")) == 1
        assert remote.records() == [{"id": 57, "name": "Acme Corp", "city": ""}]
        assert await offline.log.count() == 0

    @pytest.mark.asyncio
    async def test_first_entry_failure_leaves_log_intact(self, offline, engine, remote):
        """Nothing is removed when the head entry fails."""
        await offline.insert(Customer(name="Acme"))
        await offline.insert(Customer(name="Globex"))
        remote.available = False

        result = await engine.replay()

        assert not result.success
        assert result.replayed == 0
        assert result.remaining == 2
        assert await offline.log.count() == 2

    @pytest.mark.asyncio
    async def test_update_of_missing_remote_entity_is_skipped(self, offline, engine, remote):
        """A remote update returning None is dropped and the pass goes on."""
        await offline.update(Customer(id=8, name="Ghost"))
        await offline.insert(Customer(name="Acme"))

        result = await engine.replay()

        assert result.success
        assert result.replayed == 2
        assert [tx.action for tx in result.skipped] == [ActionKind.UPDATE_BY_ID]
        assert [r["name"] for r in remote.records()] == ["Acme"]
        assert await offline.log.count() == 0

    @pytest.mark.asyncio
    async def test_insert_returning_none_is_skipped(self, offline, engine, remote):
        """An insert the remote store returns nothing for is not reconciled."""
        await offline.insert(Customer(name="Acme"))
        await offline.update(Customer(id=1, name="Acme Corp"))
        remote.insert = _returns_none(remote.insert)

        result = await engine.replay()

        assert result.success
        assert result.key_remaps == {}
        assert [tx.action for tx in result.skipped] == [
            ActionKind.INSERT,
            ActionKind.UPDATE_BY_ID,
        ]
        assert await offline.log.count() == 0

    @pytest.mark.asyncio
    async def test_edit_of_synced_entity_does_not_block_log(self, offline, engine, remote):
        """An offline edit under the local key of an already synced entity
        does not hold back the entries after it."""
        await offline.insert(Customer(name="Acme"))
        assert (await engine.replay()).key_remaps == {1: 57}

        # The local table still holds key 1, the server has 57
        await offline.update(Customer(id=1, name="Acme Corp"))
        await offline.insert(Customer(name="Globex"))

        result = await engine.replay()

        assert result.success
        assert result.replayed == 2
        assert [r["name"] for r in remote.records()] == ["Acme", "Globex"]
        assert await offline.log.count() == 0
        assert (await engine.replay()).replayed == 0

    @pytest.mark.asyncio
    async def test_raise_on_error(self, offline, engine, remote):
        """raise_on_error turns a failed pass into ReplayError."""
        await offline.insert(Customer(name="Acme"))
        remote.fail_next("insert", RemoteStoreError("boom", status_code=500))

        with pytest.raises(ReplayError) as exc_info:
            await engine.replay(raise_on_error=True)

        assert exc_info.value.action == "Insert"
        assert isinstance(exc_info.value.__cause__, RemoteStoreError)
        assert await offline.log.count() == 1
