"""
Connectivity Monitor

Tracks whether the device is online.
The state is set explicitly (by the host UI through the local agent) or by
an optional TCP probe; an offline -> online transition notifies listeners,
which is what triggers a drain when the connection comes back.
"""

import asyncio
from collections.abc import Awaitable, Callable

from compliance_sync.core.logging.logger import get_logger

logger = get_logger(__name__)

ConnectivityListener = Callable[[], Awaitable[None]]


class ConnectivityMonitor:
    def __init__(
        self,
        probe_host: str | None = None,
        probe_port: int = 443,
        probe_timeout: float = 3.0,
        initially_online: bool = True,
    ):
        self.probe_host = probe_host
        self.probe_port = probe_port
        self.probe_timeout = probe_timeout
        self._online = initially_online
        self._listeners: list[ConnectivityListener] = []

    @classmethod
    def from_settings(cls, settings) -> "ConnectivityMonitor":
        conn = settings.connectivity
        return cls(
            probe_host=conn.CONNECTIVITY_PROBE_HOST,
            probe_port=conn.CONNECTIVITY_PROBE_PORT,
            probe_timeout=conn.CONNECTIVITY_PROBE_TIMEOUT,
        )

    def is_online(self) -> bool:
        return self._online

    def add_listener(self, listener: ConnectivityListener) -> None:
        """Register a coroutine called on every offline -> online transition."""
        self._listeners.append(listener)

    async def set_online(self, online: bool) -> None:
        was_online = self._online
        self._online = online
        if was_online == online:
            return

        logger.info("Connectivity changed", stage="NET.1", online=online)
        if online:
            for listener in list(self._listeners):
                try:
                    await listener()
                except Exception as e:
                    logger.error("Connectivity listener failed", stage="NET.1", error=str(e), exc_info=True)

    async def probe(self) -> bool:
        """
        Check reachability with a TCP connect and update the state.

        Without a configured probe host the current state is returned as-is.
        """
        if not self.probe_host:
            return self._online

        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(self.probe_host, self.probe_port),
                timeout=self.probe_timeout,
            )
            writer.close()
            await writer.wait_closed()
            reachable = True
        except (OSError, asyncio.TimeoutError) as e:
            logger.debug("Connectivity probe failed", stage="NET.2", host=self.probe_host, error=str(e))
            reachable = False

        await self.set_online(reachable)
        return reachable
