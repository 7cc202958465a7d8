"""
Connectivity Signal

The engine does not detect connectivity itself; it is told about edges.
ConnectivityMonitor holds the current state, fans edges out to async
listeners in registration order, and can optionally watch a TCP endpoint
to generate edges on its own.
"""

import asyncio
from typing import Awaitable, Callable, Optional

import structlog


Listener = Callable[[bool], Awaitable[None]]

logger = structlog.get_logger(__name__)


class ConnectivityMonitor:
    """Online/offline state with edge notifications."""

    def __init__(self, online: bool = True):
        self._online = online
        self._listeners: list[Listener] = []
        self._watch_task: Optional[asyncio.Task] = None

    @property
    def is_online(self) -> bool:
        return self._online

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """Register for edges. Returns a function that removes the listener."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    async def set_online(self, online: bool) -> None:
        """Record the current state; listeners only hear about changes."""
        if online == self._online:
            return
        self._online = online
        logger.info("connectivity_changed", online=online)
        for listener in list(self._listeners):
            await listener(online)

    @staticmethod
    async def probe(host: str, port: int, timeout: float = 3.0) -> bool:
        """True if a TCP connection to host:port opens within timeout."""
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(host, port), timeout=timeout
            )
        except (OSError, asyncio.TimeoutError):
            return False
        writer.close()
        try:
            await writer.wait_closed()
        except OSError as e:
            logger.debug("probe_close_failed", host=host, port=port, error=str(e))
        return True

    def watch(
        self,
        host: str = "sheets.googleapis.com",
        port: int = 443,
        interval: float = 15.0,
    ) -> asyncio.Task:
        """Probe periodically in the background and feed results to set_online."""
        async def run() -> None:
            while True:
                try:
                    await self.set_online(await self.probe(host, port))
                except Exception:
                    # A failing listener must not end the watch
                    logger.exception("connectivity_watch_failed", host=host, port=port)
                await asyncio.sleep(interval)

        self.stop_watching()
        self._watch_task = asyncio.get_running_loop().create_task(run())
        return self._watch_task

    def stop_watching(self) -> None:
        if self._watch_task is not None:
            self._watch_task.cancel()
            self._watch_task = None
