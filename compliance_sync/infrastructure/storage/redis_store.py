"""
Redis Durable Store

Shared implementation of the DurableStore protocol for several processes on
one device (several UI tabs or agents sharing one queue). Layout, with `p` the
configured key prefix:

    p:entries            HASH   idempotency_key -> orjson(QueueEntry)
    p:status:<status>    SET    idempotency keys with that status
    p:meta:<key>         STRING orjson(metadata record)

Entry writes update the hash and the status sets inside one MULTI/EXEC, so
the status index never disagrees with the entries. Metadata compare-and-set
uses optimistic locking (WATCH/MULTI/EXEC, retried on WatchError): that is
what makes the cross-process drain lock atomic.
"""

from collections.abc import Callable

import orjson
import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool
from redis.exceptions import ConnectionError, RedisError, TimeoutError, WatchError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential_jitter

from compliance_sync.core.config.constants import (
    STORAGE_KEY_ENTRIES,
    STORAGE_KEY_META,
    STORAGE_KEY_STATUS,
    EntryStatus,
)
from compliance_sync.core.exceptions import (
    StorageError,
    StorageUnavailableError,
    StorageWriteError,
)
from compliance_sync.core.interfaces.store import MetaValue
from compliance_sync.core.logging.logger import get_logger
from compliance_sync.core.models.queue import QueueEntry

logger = get_logger(__name__)

CONNECT_ATTEMPTS = 3


class RedisStore:
    """
    Redis-backed durable store.

    Args:
        settings: Application settings (storage section is used)
        client: Pre-built client (tests); when given, connect() only pings it
    """

    def __init__(self, settings, client: redis.Redis | None = None):
        self._settings = settings.storage
        self._prefix = self._settings.STORAGE_KEY_PREFIX
        self._pool: ConnectionPool | None = None
        self._client: redis.Redis | None = client

    # =========================================================================
    # Key layout
    # =========================================================================

    @property
    def entries_key(self) -> str:
        return f"{self._prefix}:{STORAGE_KEY_ENTRIES}"

    def status_key(self, status: EntryStatus) -> str:
        return f"{self._prefix}:{STORAGE_KEY_STATUS}:{status.value}"

    def meta_key(self, key: str) -> str:
        return f"{self._prefix}:{STORAGE_KEY_META}:{key}"

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def connect(self) -> None:
        """
        Connect and verify with PING.

        STAGE-STORE.1: Connection establishment

        Transient connection failures are retried with jittered backoff before
        giving up with StorageUnavailableError.
        """
        if self._client is None:
            self._pool = ConnectionPool(
                host=self._settings.REDIS_HOST,
                port=self._settings.REDIS_PORT,
                db=self._settings.REDIS_DB,
                password=self._settings.REDIS_PASSWORD,
                socket_connect_timeout=self._settings.REDIS_SOCKET_CONNECT_TIMEOUT,
                socket_timeout=self._settings.REDIS_SOCKET_TIMEOUT,
                retry_on_timeout=True,
                decode_responses=True,
            )
            self._client = redis.Redis(connection_pool=self._pool)

        @retry(
            stop=stop_after_attempt(CONNECT_ATTEMPTS),
            wait=wait_exponential_jitter(initial=0.1, max=1.0),
            retry=retry_if_exception_type((ConnectionError, TimeoutError)),
            before_sleep=lambda retry_state: logger.info(
                "Redis connect retry",
                stage="STORE.1",
                attempt=retry_state.attempt_number,
            ),
            reraise=True,
        )
        async def _ping() -> None:
            await self._client.ping()

        try:
            await _ping()
        except (ConnectionError, TimeoutError) as e:
            logger.error("Failed to connect to Redis store", stage="STORE.1", error=str(e))
            raise StorageUnavailableError(
                f"Failed to connect to Redis: {e}",
                details={"host": self._settings.REDIS_HOST, "port": self._settings.REDIS_PORT},
            ) from e

        logger.info(
            "Redis store connected",
            stage="STORE.1",
            host=self._settings.REDIS_HOST,
            port=self._settings.REDIS_PORT,
            prefix=self._prefix,
        )

    async def disconnect(self) -> None:
        if self._client:
            await self._client.aclose()
        if self._pool:
            await self._pool.disconnect()
        self._client = None
        self._pool = None
        logger.info("Redis store disconnected", stage="STORE.9")

    async def ping(self) -> bool:
        try:
            if self._client:
                await self._client.ping()
                return True
        except (ConnectionError, TimeoutError):
            pass
        return False

    def _require_client(self) -> redis.Redis:
        if self._client is None:
            raise StorageUnavailableError("Store used before connect()", details={"backend": "redis"})
        return self._client

    # =========================================================================
    # Entries
    # =========================================================================

    async def put_entry(self, entry: QueueEntry) -> None:
        client = self._require_client()
        key = entry.idempotency_key
        try:
            async with client.pipeline(transaction=True) as pipe:
                pipe.hset(self.entries_key, key, orjson.dumps(entry.to_storage()).decode("utf-8"))
                for status in EntryStatus:
                    if status == entry.status:
                        pipe.sadd(self.status_key(status), key)
                    else:
                        pipe.srem(self.status_key(status), key)
                await pipe.execute()
        except RedisError as e:
            logger.error("Queue entry write failed", stage="STORE.2", idempotency_key=key, error=str(e))
            raise StorageWriteError.from_exception(
                e, message="Failed to persist queue entry", idempotency_key=key
            ) from e

    async def get_entry(self, idempotency_key: str) -> QueueEntry | None:
        client = self._require_client()
        try:
            raw = await client.hget(self.entries_key, idempotency_key)
        except RedisError as e:
            raise StorageError.from_exception(e, idempotency_key=idempotency_key) from e
        return self._decode_entry(raw)

    async def delete_entry(self, idempotency_key: str) -> bool:
        client = self._require_client()
        try:
            async with client.pipeline(transaction=True) as pipe:
                pipe.hdel(self.entries_key, idempotency_key)
                for status in EntryStatus:
                    pipe.srem(self.status_key(status), idempotency_key)
                results = await pipe.execute()
        except RedisError as e:
            raise StorageWriteError.from_exception(e, idempotency_key=idempotency_key) from e
        return bool(results[0])

    async def entries_by_status(self, status: EntryStatus) -> list[QueueEntry]:
        client = self._require_client()
        try:
            keys = list(await client.smembers(self.status_key(status)))
            if not keys:
                return []
            raws = await client.hmget(self.entries_key, keys)
        except RedisError as e:
            raise StorageError.from_exception(e, status=status.value) from e

        entries = []
        for raw in raws:
            entry = self._decode_entry(raw)
            # Skip index members whose entry vanished between the two reads
            if entry is not None and entry.status == status:
                entries.append(entry)
        return entries

    async def count_by_status(self) -> dict[EntryStatus, int]:
        client = self._require_client()
        statuses = list(EntryStatus)
        try:
            async with client.pipeline(transaction=False) as pipe:
                for status in statuses:
                    pipe.scard(self.status_key(status))
                counts = await pipe.execute()
        except RedisError as e:
            raise StorageError.from_exception(e) from e
        return {status: int(count) for status, count in zip(statuses, counts)}

    @staticmethod
    def _decode_entry(raw: str | None) -> QueueEntry | None:
        if raw is None:
            return None
        return QueueEntry.model_validate(orjson.loads(raw))

    # =========================================================================
    # Metadata
    # =========================================================================

    async def get_meta(self, key: str) -> MetaValue | None:
        client = self._require_client()
        try:
            raw = await client.get(self.meta_key(key))
        except RedisError as e:
            raise StorageError.from_exception(e, meta_key=key) from e
        return orjson.loads(raw) if raw else None

    async def compare_and_set_meta(
        self, key: str, decide: Callable[[MetaValue | None], MetaValue | None]
    ) -> bool:
        """
        Optimistic read-decide-write.

        Algorithm:
        1. WATCH the key, read the current value
        2. Ask `decide` for the new value (None aborts)
        3. MULTI/SET/EXEC; if another process touched the key after WATCH,
           EXEC raises WatchError and we start over with the fresh value
        """
        client = self._require_client()
        redis_key = self.meta_key(key)
        try:
            async with client.pipeline(transaction=True) as pipe:
                while True:
                    try:
                        await pipe.watch(redis_key)
                        raw = await pipe.get(redis_key)
                        new_value = decide(orjson.loads(raw) if raw else None)
                        if new_value is None:
                            await pipe.unwatch()
                            return False
                        pipe.multi()
                        pipe.set(redis_key, orjson.dumps(new_value).decode("utf-8"))
                        await pipe.execute()
                        return True
                    except WatchError:
                        logger.debug("Metadata changed during transaction, retrying", stage="STORE.3", key=key)
                        continue
        except RedisError as e:
            raise StorageWriteError.from_exception(e, meta_key=key) from e

    async def compare_and_delete_meta(
        self, key: str, predicate: Callable[[MetaValue | None], bool]
    ) -> bool:
        client = self._require_client()
        redis_key = self.meta_key(key)
        try:
            async with client.pipeline(transaction=True) as pipe:
                while True:
                    try:
                        await pipe.watch(redis_key)
                        raw = await pipe.get(redis_key)
                        current = orjson.loads(raw) if raw else None
                        if not predicate(current):
                            await pipe.unwatch()
                            return False
                        pipe.multi()
                        pipe.delete(redis_key)
                        results = await pipe.execute()
                        return bool(results[0])
                    except WatchError:
                        continue
        except RedisError as e:
            raise StorageWriteError.from_exception(e, meta_key=key) from e
