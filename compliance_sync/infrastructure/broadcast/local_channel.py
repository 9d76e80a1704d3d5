"""
In-Process Broadcast

LocalBroadcastHub hands out LocalBroadcastChannel instances that share a name.
A message published on one channel is delivered to every OTHER channel with
the same name, mirroring browser BroadcastChannel semantics. Used for tests
and for several sessions hosted by one process.
"""

from collections import defaultdict

from compliance_sync.core.interfaces.broadcast import BroadcastHandler
from compliance_sync.core.logging.logger import get_logger
from compliance_sync.core.models.session import BroadcastMessage

logger = get_logger(__name__)


class LocalBroadcastHub:
    def __init__(self):
        self._channels: dict[str, list["LocalBroadcastChannel"]] = defaultdict(list)

    def channel(self, name: str) -> "LocalBroadcastChannel":
        channel = LocalBroadcastChannel(name, self)
        self._channels[name].append(channel)
        return channel

    def _detach(self, channel: "LocalBroadcastChannel") -> None:
        peers = self._channels.get(channel.name, [])
        if channel in peers:
            peers.remove(channel)

    async def _deliver(self, sender: "LocalBroadcastChannel", message: BroadcastMessage) -> None:
        for peer in list(self._channels.get(sender.name, [])):
            if peer is not sender:
                await peer._dispatch(message)


class LocalBroadcastChannel:
    def __init__(self, name: str, hub: LocalBroadcastHub):
        self.name = name
        self._hub = hub
        self._handlers: list[BroadcastHandler] = []
        self._closed = False

    async def publish(self, message: BroadcastMessage) -> None:
        if self._closed:
            return
        await self._hub._deliver(self, message)

    async def subscribe(self, handler: BroadcastHandler) -> None:
        self._handlers.append(handler)

    async def close(self) -> None:
        self._closed = True
        self._handlers.clear()
        self._hub._detach(self)

    async def _dispatch(self, message: BroadcastMessage) -> None:
        for handler in list(self._handlers):
            try:
                await handler(message)
            except Exception as e:
                # One failing listener must not starve the others
                logger.error(
                    "Broadcast handler failed",
                    stage="BC.2",
                    channel=self.name,
                    message_type=message.type.value,
                    error=str(e),
                    exc_info=True,
                )
