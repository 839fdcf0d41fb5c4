"""
Remote store clients for SyncRepo.

- http: httpx client for the REST collection contract
- memory: In-memory authoritative store (tests, reference server)
"""

from .http import HttpRemoteStore
from .memory import InMemoryRemoteStore

__all__ = ["HttpRemoteStore", "InMemoryRemoteStore"]
