"""
Redis Pub/Sub Broadcast

Cross-process broadcast over Redis PUBLISH/SUBSCRIBE. Each channel instance
tags what it publishes with a random sender id and drops its own messages
when they come back, so the publisher is never notified of itself.
"""

import asyncio
import uuid

import orjson
import redis.asyncio as redis
from pydantic import ValidationError
from redis.exceptions import RedisError

from compliance_sync.core.interfaces.broadcast import BroadcastHandler
from compliance_sync.core.logging.logger import get_logger
from compliance_sync.core.models.session import BroadcastMessage

logger = get_logger(__name__)


class RedisBroadcastChannel:
    def __init__(self, name: str, client: redis.Redis, retry_delay: float = 5.0):
        self.name = name
        self._client = client
        self.retry_delay = retry_delay
        self._sender_id = uuid.uuid4().hex
        self._handlers: list[BroadcastHandler] = []
        self._pubsub = None
        self._listener: asyncio.Task | None = None

    async def publish(self, message: BroadcastMessage) -> None:
        body = orjson.dumps({"type": message.type.value, "sender": self._sender_id})
        try:
            await self._client.publish(self.name, body)
        except RedisError as e:
            # Other tabs miss this message; they converge on their next refresh
            logger.warning("Broadcast publish failed", stage="BC.1", channel=self.name, error=str(e))

    async def subscribe(self, handler: BroadcastHandler) -> None:
        self._handlers.append(handler)
        if self._listener is None:
            await self._open_pubsub()
            self._listener = asyncio.create_task(self._listen())
            logger.info("Broadcast listener started", stage="BC.0", channel=self.name)

    async def close(self) -> None:
        if self._listener:
            self._listener.cancel()
            try:
                await self._listener
            except asyncio.CancelledError:
                pass
            self._listener = None
        if self._pubsub:
            await self._pubsub.unsubscribe(self.name)
            await self._pubsub.aclose()
            self._pubsub = None
        self._handlers.clear()

    async def _open_pubsub(self) -> None:
        self._pubsub = self._client.pubsub(ignore_subscribe_messages=True)
        await self._pubsub.subscribe(self.name)

    async def _drop_pubsub(self) -> None:
        pubsub, self._pubsub = self._pubsub, None
        if pubsub is None:
            return
        try:
            await pubsub.aclose()
        except RedisError as e:
            logger.debug("Closing broken pub/sub failed", stage="BC.3", channel=self.name, error=str(e))

    async def _listen(self) -> None:
        """
        Deliver messages until closed.

        A failing connection is dropped and resubscribed after `retry_delay`;
        the loop only ends when the subscription itself ends.
        """
        while True:
            try:
                if self._pubsub is None:
                    await self._open_pubsub()
                    logger.info("Broadcast listener resubscribed", stage="BC.3", channel=self.name)

                async for raw in self._pubsub.listen():
                    if not isinstance(raw, dict) or raw.get("type") != "message":
                        continue
                    await self.handle_raw(raw.get("data"))
                return
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(
                    "Broadcast listener error", stage="BC.3", channel=self.name, error=str(e), exc_info=True
                )
                await self._drop_pubsub()
                await asyncio.sleep(self.retry_delay)

    async def handle_raw(self, data: bytes | str) -> None:
        """Decode one pub/sub payload and hand it to the handlers."""
        try:
            body = orjson.loads(data)
        except (orjson.JSONDecodeError, TypeError) as e:
            logger.warning("Ignoring malformed broadcast", stage="BC.2", channel=self.name, error=str(e))
            return

        if not isinstance(body, dict):
            logger.warning("Ignoring non-object broadcast", stage="BC.2", channel=self.name)
            return
        if body.get("sender") == self._sender_id:
            return
        try:
            message = BroadcastMessage(type=body["type"])
        except (KeyError, ValidationError) as e:
            logger.warning("Ignoring malformed broadcast", stage="BC.2", channel=self.name, error=str(e))
            return

        for handler in list(self._handlers):
            try:
                await handler(message)
            except Exception as e:
                logger.error(
                    "Broadcast handler failed",
                    stage="BC.2",
                    channel=self.name,
                    message_type=message.type.value,
                    error=str(e),
                    exc_info=True,
                )
