"""
Reference remote CRUD API for SyncRepo.

A FastAPI application serving the REST collection contract spoken by
HttpRemoteStore, backed by an InMemoryRemoteStore. It is the remote
side of the integration tests (through httpx.ASGITransport) and a
local development server:

    uvicorn syncrepo.server.app:create_app --factory --port 8000

Filters posted to /<Entity>/query are evaluated with QueryFilter.apply,
the same code the offline path uses.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Body, FastAPI, HTTPException, Response

from ..entity import EntityBinding
from ..errors import RemoteStoreError, ValidationError
from ..query import QueryFilter
from ..remote.memory import InMemoryRemoteStore

logger = logging.getLogger(__name__)


def _parse_key(raw: str) -> Any:
    """Path keys are integers when they look like one."""
    return int(raw) if raw.lstrip("-").isdigit() else raw


def build_router(store: InMemoryRemoteStore[Any]) -> APIRouter:
    """Create the routes for one collection."""
    binding = store.binding
    router = APIRouter(prefix=f"/{binding.name}", tags=[binding.name])

    def to_entity(body: dict[str, Any]) -> Any:
        try:
            return binding.from_record(body)
        except ValidationError as e:
            raise HTTPException(status_code=422, detail=e.errors) from e

    @router.get("")
    async def list_entities() -> list[dict[str, Any]]:
        return [binding.to_record(e) for e in await store.get_all()]

    @router.post("/query")
    async def query_entities(body: dict[str, Any] = Body(...)) -> list[dict[str, Any]]:
        try:
            query = QueryFilter.from_dict(body)
        except (KeyError, ValueError) as e:
            raise HTTPException(status_code=422, detail=f"Invalid filter: {e}") from e
        return [binding.to_record(e) for e in await store.get(query)]

    @router.get("/{key}")
    async def get_entity(key: str) -> dict[str, Any]:
        entity = await store.get_by_id(_parse_key(key))
        if entity is None:
            raise HTTPException(status_code=404, detail=f"{binding.name} {key} not found")
        return binding.to_record(entity)

    @router.post("", status_code=201)
    async def insert_entity(body: dict[str, Any] = Body(...)) -> dict[str, Any]:
        try:
            created = await store.insert(to_entity(body))
        except RemoteStoreError as e:
            raise HTTPException(status_code=e.status_code or 500, detail=e.message) from e
        return binding.to_record(created)

    @router.put("")
    async def update_entity(body: dict[str, Any] = Body(...)) -> dict[str, Any]:
        updated = await store.update(to_entity(body))
        if updated is None:
            key = body.get(binding.primary_key)
            raise HTTPException(status_code=404, detail=f"{binding.name} {key} not found")
        return binding.to_record(updated)

    @router.delete("/{key}")
    async def delete_entity(key: str) -> dict[str, bool]:
        if not await store.delete_by_id(_parse_key(key)):
            raise HTTPException(status_code=404, detail=f"{binding.name} {key} not found")
        return {"deleted": True}

    @router.delete("", status_code=204)
    async def delete_all_entities() -> Response:
        await store.delete_all()
        return Response(status_code=204)

    return router


def create_app(
    binding: EntityBinding[Any] | None = None,
    store: InMemoryRemoteStore[Any] | None = None,
) -> FastAPI:
    """Create the reference API.

    Args:
        binding: Entity binding (defaults to dict records named "Customer")
        store: Backing store (a fresh InMemoryRemoteStore by default)
    """
    if store is None:
        binding = binding or EntityBinding(dict, primary_key="id", name="Customer")
        store = InMemoryRemoteStore(binding)

    app = FastAPI(
        title="SyncRepo reference API",
        description="In-memory REST collection used as a remote store.",
        version="1.0.0",
    )
    app.state.store = store
    app.include_router(build_router(store))

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "healthy", "collection": store.binding.name}

    logger.debug("Reference API created", extra={"collection": store.binding.name})
    return app
