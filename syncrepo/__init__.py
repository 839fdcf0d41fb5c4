"""
SyncRepo - Offline-first repository with transaction replay.

This package provides a connectivity-aware repository for one entity type:
- SyncRepository routes CRUD calls to a remote store while online and to
  a local store while offline
- Offline mutations are recorded in a per-entity transaction log
- The SyncEngine replays the log when connectivity returns and rewrites
  local keys to the keys assigned by the server

Example:
    >>> from syncrepo import EntityBinding, SqliteLocalStore, SyncRepository
    >>> from syncrepo import HttpRemoteStore
    >>>
    >>> binding = EntityBinding(Customer, primary_key="id")
    >>> remote = HttpRemoteStore("http://localhost:8000", binding)
    >>> async with SyncRepository(binding, SqliteLocalStore("./data"), remote) as repo:
    ...     await repo.on_connectivity_changed(False)
    ...     await repo.insert(Customer(id=0, name="Acme"))
    ...     await repo.on_connectivity_changed(True)   # replays the log

Invariants:
    - One transaction log table per entity type
    - Replay preserves the order of offline mutations

Version: 1.0.0
"""

__version__ = "1.0.0"

from .base import Repository
from .config import SyncRepoConfig
from .connectivity import ConnectivityMonitor
from .entity import LOCAL_TRANSACTIONS_SUFFIX, EntityBinding
from .errors import (
    ConfigurationError,
    LocalStoreError,
    RemoteStoreError,
    RemoteUnavailableError,
    ReplayError,
    SyncRepoError,
    ValidationError,
)
from .local import InMemoryLocalStore, LocalStore, SqliteLocalStore, TableSchema
from .query import FilterOperator, FilterProperty, QueryFilter
from .remote import HttpRemoteStore, InMemoryRemoteStore
from .repository import LocalRepository, SyncRepository
from .sync import SyncEngine, SyncResult
from .transactions import ActionKind, LocalTransaction, TransactionLog

__all__ = [
    # Version
    "__version__",
    # Repositories
    "Repository",
    "SyncRepository",
    "LocalRepository",
    # Entities and queries
    "EntityBinding",
    "LOCAL_TRANSACTIONS_SUFFIX",
    "QueryFilter",
    "FilterProperty",
    "FilterOperator",
    # Stores
    "LocalStore",
    "TableSchema",
    "SqliteLocalStore",
    "InMemoryLocalStore",
    "HttpRemoteStore",
    "InMemoryRemoteStore",
    # Sync
    "ActionKind",
    "LocalTransaction",
    "TransactionLog",
    "SyncEngine",
    "SyncResult",
    "ConnectivityMonitor",
    # Config
    "SyncRepoConfig",
    # Errors
    "SyncRepoError",
    "ConfigurationError",
    "ValidationError",
    "LocalStoreError",
    "RemoteStoreError",
    "RemoteUnavailableError",
    "ReplayError",
]
