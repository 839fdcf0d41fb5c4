"""
Unit tests for the sync CLI.

Tests cover:
- Pending transaction listing (text and JSON)
- Dropping entries
- Argument parsing and exit codes
"""

import json
import tempfile

import pytest

from syncrepo.config import SyncRepoConfig
from syncrepo.entity import EntityBinding
from syncrepo.local.sqlite import SqliteLocalStore
from syncrepo.repository import LocalRepository
from syncrepo.tools.sync_cli import SyncCLI, build_parser, main, run


class TestSyncCLI:
    """Tests for the sync CLI."""

    @pytest.fixture
    def data_dir(self):
        """Create temporary data directory."""
        with tempfile.TemporaryDirectory() as tmpdir:
            yield tmpdir

    @pytest.fixture
    def store(self, data_dir):
        return SqliteLocalStore(data_dir, "app", wal_mode=False)

    async def record_offline_changes(self, store):
        repo = LocalRepository(store, EntityBinding(dict, name="Customer"))
        await repo.insert({"id": 0, "name": "Acme"})
        await repo.delete_by_id(1)

    @pytest.mark.asyncio
    async def test_status_and_show(self, store):
        """Pending entries are listed in replay order."""
        await self.record_offline_changes(store)
        cli = SyncCLI(store, "Customer")

        entries = await cli.show()

        assert await cli.status() == 2
        assert [tx.action_name for tx in entries] == ["Insert", "DeleteById"]

        text = SyncCLI.format_entries(entries)
        assert text.startswith("2 pending transaction(s):")
        assert "Insert" in text and "DeleteById 1" in text

        data = json.loads(SyncCLI.format_entries(entries, "json"))
        assert data[0]["entity"] == {"id": 1, "name": "Acme"}
        assert data[1]["id"] == 1

    def test_format_empty(self):
        """An empty log has a short message."""
        assert SyncCLI.format_entries([]) == "No pending transactions"

    @pytest.mark.asyncio
    async def test_drop(self, store):
        """drop removes exactly one entry."""
        await self.record_offline_changes(store)
        cli = SyncCLI(store, "Customer")
        first = (await cli.show())[0]

        assert await cli.drop(first.seq) is True
        assert await cli.drop(first.seq) is False
        assert [tx.action_name for tx in await cli.show()] == ["DeleteById"]

    def test_parser(self):
        """Subcommands and options parse."""
        args = build_parser().parse_args(
            ["--entity", "Customer", "--data-dir", "/tmp/x", "drop", "--seq", "4"]
        )

        assert args.command == "drop"
        assert args.seq == 4
        assert args.key == "id"

    def test_parser_requires_entity(self):
        """--entity is mandatory."""
        with pytest.raises(SystemExit):
            build_parser().parse_args(["status"])

    @pytest.mark.asyncio
    async def test_run_exit_codes(self, data_dir, store, capsys):
        """run() returns process exit codes."""
        await self.record_offline_changes(store)
        config = SyncRepoConfig()
        parser = build_parser()

        base = ["--entity", "Customer", "--data-dir", data_dir, "--db-name", "app"]
        assert await run(parser.parse_args(base + ["status"]), config) == 0
        assert "2 pending transaction(s)" in capsys.readouterr().out

        assert await run(parser.parse_args(base + ["drop", "--seq", "999"]), config) == 1
        assert await run(parser.parse_args(base + ["sync"]), config) == 2

    def test_main_rejects_invalid_environment(self, data_dir, monkeypatch):
        """Configuration comes from the environment and is validated."""
        monkeypatch.setenv("LOG_FORMAT", "xml")

        with pytest.raises(SystemExit) as exc_info:
            main(["--entity", "Customer", "--data-dir", data_dir, "status"])

        assert exc_info.value.code == 2
