"""
Connectivity monitor for SyncRepo.

Probes an HTTP endpoint on an interval and pushes online/offline
transitions to subscribed listeners (typically
SyncRepository.on_connectivity_changed).

Online means the probe URL answered with any status below 500.
Transport errors (refused, timeout, DNS) and 5xx mean offline.

Invariants:
    - Listeners are only called on transitions; the first probe always
      reports its result
    - Listeners are awaited one after the other, in subscription order
    - A failing listener is logged and does not stop the others
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Union

import httpx

from .config import ConnectivityConfig

logger = logging.getLogger(__name__)

ConnectivityListener = Callable[[bool], Union[Awaitable[Any], Any]]


class ConnectivityMonitor:
    """Polls a probe URL and reports connectivity transitions.

    Example:
        >>> monitor = ConnectivityMonitor("http://api.local/health")
        >>> repo.attach(monitor)
        >>> await monitor.start()
    """

    def __init__(
        self,
        probe_url: str,
        interval_seconds: float = 5.0,
        timeout_seconds: float = 2.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.probe_url = probe_url
        self.interval_seconds = interval_seconds
        self.timeout_seconds = timeout_seconds
        self._client = client
        self._owns_client = client is None
        self._listeners: list[ConnectivityListener] = []
        self._is_online: bool | None = None
        self._task: asyncio.Task[None] | None = None

    @classmethod
    def from_config(
        cls,
        config: ConnectivityConfig,
        default_url: str | None = None,
    ) -> ConnectivityMonitor:
        probe_url = config.probe_url or default_url
        if not probe_url:
            raise ValueError("A probe URL is required (SYNCREPO_PROBE_URL or SYNCREPO_REMOTE_URL)")
        return cls(
            probe_url,
            interval_seconds=config.interval_seconds,
            timeout_seconds=config.timeout_seconds,
        )

    @property
    def is_online(self) -> bool | None:
        """Last observed state, None before the first probe."""
        return self._is_online

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def subscribe(self, listener: ConnectivityListener) -> Callable[[], None]:
        """Register a listener.

        Returns:
            Function that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout_seconds)
        return self._client

    async def check(self) -> bool:
        """Probe once without notifying anyone."""
        try:
            response = await self._get_client().get(self.probe_url)
        except httpx.TransportError as e:
            logger.debug(f"Connectivity probe failed: {e}", extra={"probe_url": self.probe_url})
            return False
        return response.status_code < 500

    async def poll_once(self) -> bool:
        """Probe and notify listeners if the state changed."""
        is_online = await self.check()
        if is_online != self._is_online:
            self._is_online = is_online
            await self.notify(is_online)
        return is_online

    async def notify(self, is_online: bool) -> None:
        """Deliver a state to every listener."""
        logger.info(
            f"Connectivity: {'online' if is_online else 'offline'}",
            extra={"probe_url": self.probe_url},
        )
        for listener in list(self._listeners):
            try:
                outcome = listener(is_online)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception:
                logger.exception("Connectivity listener failed")

    async def _run(self) -> None:
        while True:
            await self.poll_once()
            await asyncio.sleep(self.interval_seconds)

    async def start(self) -> None:
        """Start polling in a background task."""
        if self.is_running:
            logger.warning("Connectivity monitor already running")
            return
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Stop polling and release the HTTP client."""
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
