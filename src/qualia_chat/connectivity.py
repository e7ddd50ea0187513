"""Network reachability tracking."""

import asyncio
import logging
from typing import Callable, Optional

import httpx

logger = logging.getLogger(__name__)

Listener = Callable[[bool], None]


class ConnectivityMonitor:
    """Tracks whether the network is reachable and reports transitions."""

    def __init__(
        self,
        probe_url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        interval: float = 15.0,
        online: bool = True,
    ):
        self.probe_url = probe_url
        self.interval = interval
        self._client = client
        self._online = online
        self._listeners: list[Listener] = []
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def is_online(self) -> bool:
        return self._online

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def set_online(self, online: bool) -> None:
        if online == self._online:
            return
        self._online = online
        logger.info("Connectivity restored" if online else "Connectivity lost")
        for listener in list(self._listeners):
            listener(online)

    async def check(self) -> bool:
        """Probe the network once and record the result."""
        if not self.probe_url or self._client is None:
            return self._online
        try:
            response = await self._client.head(self.probe_url, follow_redirects=True)
            online = response.status_code < 500
        except httpx.TransportError as e:
            logger.debug(f"Connectivity probe failed: {e}")
            online = False
        self.set_online(online)
        return online

    def start(self) -> Optional[asyncio.Task[None]]:
        if not self.probe_url or self._client is None:
            return None
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._watch())
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def _watch(self) -> None:
        while True:
            await self.check()
            await asyncio.sleep(self.interval)
