"""
Sync CLI tool for SyncRepo.

Inspects and drains the local transaction log of one entity table:
- status: Count pending transactions
- show: List pending transactions in replay order
- drop: Remove one transaction (manual recovery)
- sync: Replay the log against the HTTP remote store

Usage:
    syncrepo-sync --entity Customer status
    syncrepo-sync --entity Customer show --format json
    syncrepo-sync --entity Customer drop --seq 4
    syncrepo-sync --entity Customer sync --remote-url http://localhost:8000

Storage and remote settings default to the SYNCREPO_* environment
variables (see config.py); flags override them.

Invariants:
    - sync exits non-zero when the replay pass stops on a failure
    - Entities are handled as plain records, no model code is required
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

import json_log_formatter

from ..config import ObservabilityConfig, RemoteConfig, SyncRepoConfig
from ..entity import EntityBinding
from ..local.sqlite import SqliteLocalStore
from ..remote.http import HttpRemoteStore
from ..sync import SyncEngine, SyncResult
from ..transactions import LocalTransaction, TransactionLog

logger = logging.getLogger(__name__)


def setup_logging(config: ObservabilityConfig) -> None:
    """Configure logging based on configuration.

    Args:
        config: Observability configuration
    """
    level = getattr(logging, config.log_level.upper(), logging.INFO)

    if config.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


class SyncCLI:
    """CLI operations over one entity's transaction log.

    Example:
        >>> cli = SyncCLI(SqliteLocalStore("./data", "app"), "Customer")
        >>> await cli.status()
        3
    """

    def __init__(self, store: SqliteLocalStore, entity: str, primary_key: str = "id") -> None:
        self.store = store
        self.binding: EntityBinding[dict[str, Any]] = EntityBinding(
            dict, primary_key=primary_key, name=entity
        )
        self.log = TransactionLog(store, self.binding)

    async def status(self) -> int:
        """Number of pending transactions."""
        return await self.log.count()

    async def show(self) -> list[LocalTransaction[dict[str, Any]]]:
        """Pending transactions in replay order."""
        return await self.log.entries()

    async def drop(self, seq: int) -> bool:
        """Remove one transaction from the log."""
        removed = await self.log.remove(seq)
        if removed:
            logger.warning(
                f"Dropped transaction {seq} from {self.log.table}",
                extra={"seq": seq, "table": self.log.table},
            )
        return removed

    async def sync(self, remote: HttpRemoteStore[dict[str, Any]]) -> SyncResult:
        """Run one replay pass."""
        return await SyncEngine(self.log, remote).replay()

    @staticmethod
    def format_entries(entries: list[LocalTransaction[dict[str, Any]]], fmt: str = "text") -> str:
        if fmt == "json":
            return json.dumps(
                [
                    {
                        "seq": tx.seq,
                        "action": tx.action_name,
                        "id": tx.id,
                        "entity": tx.entity,
                        "recorded_at": tx.recorded_at,
                        "reconciled": tx.reconciled,
                    }
                    for tx in entries
                ],
                indent=2,
                sort_keys=True,
            )

        if not entries:
            return "No pending transactions"
        lines = [f"{len(entries)} pending transaction(s):"]
        for tx in entries:
            when = datetime.fromtimestamp(tx.recorded_at / 1000, tz=timezone.utc)
            target = tx.entity if tx.entity is not None else tx.id
            suffix = f" {json.dumps(target, sort_keys=True)}" if target is not None else ""
            lines.append(f"  [{tx.seq}] {when:%Y-%m-%d %H:%M:%S} {tx.action_name}{suffix}")
        return "\n".join(lines)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="syncrepo-sync",
        description="Inspect and replay SyncRepo transaction logs",
    )
    parser.add_argument("--entity", required=True, help="Entity (table) name, e.g. Customer")
    parser.add_argument("--key", default="id", help="Primary key field name")
    parser.add_argument("--data-dir", help="Local data directory (SYNCREPO_DATA_DIR)")
    parser.add_argument("--db-name", help="Local database name (SYNCREPO_DB_NAME)")

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("status", help="Count pending transactions")

    show_parser = subparsers.add_parser("show", help="List pending transactions")
    show_parser.add_argument(
        "--format", choices=["text", "json"], default="text", help="Output format"
    )

    drop_parser = subparsers.add_parser("drop", help="Remove one pending transaction")
    drop_parser.add_argument("--seq", type=int, required=True, help="Log position to remove")

    sync_parser = subparsers.add_parser("sync", help="Replay pending transactions")
    sync_parser.add_argument("--remote-url", help="Remote API root (SYNCREPO_REMOTE_URL)")

    return parser


async def run(args: argparse.Namespace, config: SyncRepoConfig) -> int:
    """Execute a parsed command. Returns the exit code."""
    storage = config.storage
    store = SqliteLocalStore(
        args.data_dir or storage.data_dir,
        args.db_name or storage.db_name,
        wal_mode=storage.wal_mode,
        busy_timeout_ms=storage.busy_timeout_ms,
    )
    cli = SyncCLI(store, args.entity, primary_key=args.key)

    if args.command == "status":
        print(f"{await cli.status()} pending transaction(s) for {args.entity}")
        return 0

    if args.command == "show":
        print(cli.format_entries(await cli.show(), args.format))
        return 0

    if args.command == "drop":
        if await cli.drop(args.seq):
            print(f"Dropped transaction {args.seq}")
            return 0
        print(f"No transaction with seq {args.seq}", file=sys.stderr)
        return 1

    if args.command == "sync":
        remote_config = config.remote
        if args.remote_url:
            remote_config = RemoteConfig(
                base_url=args.remote_url,
                timeout_seconds=remote_config.timeout_seconds,
                api_key=remote_config.api_key,
            )
        if not remote_config.base_url:
            print("A remote URL is required (--remote-url or SYNCREPO_REMOTE_URL)", file=sys.stderr)
            return 2

        async with HttpRemoteStore.from_config(remote_config, cli.binding) as remote:
            result = await cli.sync(remote)

        if result.success:
            print(f"Replayed {result.replayed} transaction(s)")
            for local_key, server_key in result.key_remaps.items():
                print(f"  key {local_key} -> {server_key}")
            for transaction in result.skipped:
                print(f"  no remote effect: {transaction}")
            return 0
        print(
            f"Sync FAILED after {result.replayed} transaction(s) at "
            f"{result.failed}: {result.error}\n"
            f"{result.remaining} transaction(s) left in the log",
        )
        return 1

    return 2


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = SyncRepoConfig.from_env()
    except ValueError as e:
        parser.error(str(e))
    setup_logging(config.observability)

    sys.exit(asyncio.run(run(args, config)))


if __name__ == "__main__":
    main()
