"""
HTTP remote store client for SyncRepo.

Talks to a REST collection for one entity type using httpx:

    GET    /<Entity>          list all
    GET    /<Entity>/{key}    one entity (404 -> None)
    POST   /<Entity>          insert, returns the stored entity
    PUT    /<Entity>          update, returns the stored entity (404 -> None)
    DELETE /<Entity>/{key}    delete one (404 -> False)
    DELETE /<Entity>          delete all
    POST   /<Entity>/query    filtered list, body = QueryFilter.to_dict()

Invariants:
    - Transport failures raise RemoteUnavailableError
    - Non-2xx responses other than the documented 404s raise RemoteStoreError
    - Nothing is retried here; callers decide
"""

from __future__ import annotations

import logging
from typing import Any, Generic, TypeVar

import httpx

from ..config import RemoteConfig
from ..entity import EntityBinding
from ..errors import RemoteStoreError, RemoteUnavailableError
from ..query import QueryFilter

logger = logging.getLogger(__name__)

T = TypeVar("T")


class HttpRemoteStore(Generic[T]):
    """Repository contract over a REST collection.

    Example:
        >>> async with HttpRemoteStore("http://localhost:8000", binding) as remote:
        ...     customers = await remote.get_all()
    """

    def __init__(
        self,
        base_url: str,
        binding: EntityBinding[T],
        collection: str | None = None,
        timeout_seconds: float = 10.0,
        api_key: str | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: Root URL of the API
            binding: Entity binding (key access and codec)
            collection: Collection path segment (defaults to the entity name)
            timeout_seconds: Request timeout when the client is owned here
            api_key: Optional bearer token
            client: Pre-built httpx client (tests inject a MockTransport here)
        """
        self.binding = binding
        self.collection = collection or binding.name
        self._base_url = base_url.rstrip("/")
        self._owns_client = client is None

        headers = {"Accept": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"

        if client is None:
            client = httpx.AsyncClient(timeout=timeout_seconds, headers=headers)
        else:
            client.headers.update(headers)
        self._client = client

    @classmethod
    def from_config(cls, config: RemoteConfig, binding: EntityBinding[T]) -> HttpRemoteStore[T]:
        """Create a client from RemoteConfig."""
        if not config.base_url:
            raise ValueError("RemoteConfig.base_url is required")
        return cls(
            config.base_url,
            binding,
            timeout_seconds=config.timeout_seconds,
            api_key=config.api_key,
        )

    async def __aenter__(self) -> HttpRemoteStore[T]:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _url(self, key: Any = None, suffix: str | None = None) -> str:
        url = f"{self._base_url}/{self.collection}"
        if key is not None:
            url += f"/{key}"
        if suffix:
            url += f"/{suffix}"
        return url

    async def _request(
        self,
        method: str,
        url: str,
        json_body: Any = None,
        allow_not_found: bool = False,
    ) -> httpx.Response | None:
        """Send a request and map failures to SyncRepo errors.

        Returns:
            The response, or None on 404 when allow_not_found is set
        """
        try:
            response = await self._client.request(method, url, json=json_body)
        except httpx.TransportError as e:
            raise RemoteUnavailableError(f"{method} {url} failed: {e}", url=url) from e

        if response.status_code == 404 and allow_not_found:
            return None
        if response.is_error:
            raise RemoteStoreError(
                f"{method} {url} returned {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
                url=url,
            )

        logger.debug(
            "Remote request",
            extra={"method": method, "url": url, "status": response.status_code},
        )
        return response

    def _entity(self, response: httpx.Response) -> T:
        return self.binding.from_record(response.json())

    async def get_all(self) -> list[T]:
        response = await self._request("GET", self._url())
        return [self.binding.from_record(r) for r in response.json()]

    async def get_by_id(self, key: Any) -> T | None:
        response = await self._request("GET", self._url(key), allow_not_found=True)
        return self._entity(response) if response is not None else None

    async def get(self, query: QueryFilter) -> list[T]:
        response = await self._request("POST", self._url(suffix="query"), query.to_dict())
        return [self.binding.from_record(r) for r in response.json()]

    async def insert(self, entity: T) -> T | None:
        response = await self._request("POST", self._url(), self.binding.to_record(entity))
        return self._entity(response)

    async def update(self, entity: T) -> T | None:
        response = await self._request(
            "PUT", self._url(), self.binding.to_record(entity), allow_not_found=True
        )
        return self._entity(response) if response is not None else None

    async def delete_by_id(self, key: Any) -> bool:
        response = await self._request("DELETE", self._url(key), allow_not_found=True)
        return response is not None

    async def delete(self, entity: T) -> bool:
        return await self.delete_by_id(self.binding.get_key(entity))

    async def delete_all(self) -> bool:
        await self._request("DELETE", self._url())
        return True
