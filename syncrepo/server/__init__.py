"""Reference remote API (FastAPI) for SyncRepo."""

from .app import build_router, create_app

__all__ = ["build_router", "create_app"]
