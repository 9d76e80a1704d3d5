"""
Broadcast Channel Protocol

Message passing between independent processes ("tabs") that share a session.
Semantics follow a browser BroadcastChannel: every subscriber on the same
channel name receives a published message, except the publisher itself.
"""

from collections.abc import Awaitable, Callable
from typing import Protocol, runtime_checkable

from compliance_sync.core.models.session import BroadcastMessage

BroadcastHandler = Callable[[BroadcastMessage], Awaitable[None]]


@runtime_checkable
class BroadcastChannel(Protocol):
    name: str

    async def publish(self, message: BroadcastMessage) -> None:
        """Deliver `message` to every other subscriber of this channel."""
        ...

    async def subscribe(self, handler: BroadcastHandler) -> None:
        """Register a handler for messages from other subscribers."""
        ...

    async def close(self) -> None:
        """Stop receiving messages."""
        ...
