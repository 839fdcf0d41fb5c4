"""
SyncRepo Test Suite.

This package contains:
- unit/: Unit tests (in-memory stores, SQLite in temp dirs, mocked HTTP)
- integration/: Integration tests (SQLite + reference FastAPI app)
"""
