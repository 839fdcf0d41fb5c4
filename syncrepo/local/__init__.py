"""
Local store drivers for SyncRepo.

- base: LocalStore protocol and TableSchema
- sqlite: SQLite driver (on-device persistence)
- memory: In-memory driver (tests, ephemeral use)
"""

from .base import LocalStore, LocalStoreError, TableSchema
from .memory import InMemoryLocalStore
from .sqlite import SqliteLocalStore

__all__ = [
    "LocalStore",
    "LocalStoreError",
    "TableSchema",
    "InMemoryLocalStore",
    "SqliteLocalStore",
]
