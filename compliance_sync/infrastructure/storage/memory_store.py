"""
In-Memory Durable Store

Single-process implementation of the DurableStore protocol. Durable only for
the lifetime of the process; used in tests and on devices that run one client.

Every read returns a copy, so callers can never mutate stored state behind the
store's back, and every metadata compare-and-set runs under one asyncio.Lock,
which makes it atomic with respect to every other coroutine in the process.
"""

import asyncio
import copy
from collections.abc import Callable

from compliance_sync.core.config.constants import EntryStatus
from compliance_sync.core.exceptions import StorageUnavailableError
from compliance_sync.core.interfaces.store import MetaValue
from compliance_sync.core.logging.logger import get_logger
from compliance_sync.core.models.queue import QueueEntry

logger = get_logger(__name__)


class InMemoryStore:
    """Dict-backed store with an asyncio.Lock around metadata transactions."""

    def __init__(self):
        self._entries: dict[str, QueueEntry] = {}
        self._meta: dict[str, MetaValue] = {}
        self._meta_lock = asyncio.Lock()
        self._connected = False

    async def connect(self) -> None:
        self._connected = True
        logger.info("In-memory store ready", stage="STORE.1")

    async def disconnect(self) -> None:
        self._connected = False
        logger.info("In-memory store closed", stage="STORE.9")

    async def ping(self) -> bool:
        return self._connected

    def _ensure_connected(self) -> None:
        if not self._connected:
            raise StorageUnavailableError("Store used before connect()", details={"backend": "memory"})

    # =========================================================================
    # Entries
    # =========================================================================

    async def put_entry(self, entry: QueueEntry) -> None:
        self._ensure_connected()
        self._entries[entry.idempotency_key] = entry.model_copy(deep=True)

    async def get_entry(self, idempotency_key: str) -> QueueEntry | None:
        self._ensure_connected()
        entry = self._entries.get(idempotency_key)
        return entry.model_copy(deep=True) if entry else None

    async def delete_entry(self, idempotency_key: str) -> bool:
        self._ensure_connected()
        return self._entries.pop(idempotency_key, None) is not None

    async def entries_by_status(self, status: EntryStatus) -> list[QueueEntry]:
        self._ensure_connected()
        return [e.model_copy(deep=True) for e in self._entries.values() if e.status == status]

    async def count_by_status(self) -> dict[EntryStatus, int]:
        self._ensure_connected()
        counts = {status: 0 for status in EntryStatus}
        for entry in self._entries.values():
            counts[entry.status] += 1
        return counts

    # =========================================================================
    # Metadata
    # =========================================================================

    async def get_meta(self, key: str) -> MetaValue | None:
        self._ensure_connected()
        value = self._meta.get(key)
        return copy.deepcopy(value) if value is not None else None

    async def compare_and_set_meta(
        self, key: str, decide: Callable[[MetaValue | None], MetaValue | None]
    ) -> bool:
        self._ensure_connected()
        async with self._meta_lock:
            new_value = decide(copy.deepcopy(self._meta.get(key)))
            if new_value is None:
                return False
            self._meta[key] = copy.deepcopy(new_value)
            return True

    async def compare_and_delete_meta(
        self, key: str, predicate: Callable[[MetaValue | None], bool]
    ) -> bool:
        self._ensure_connected()
        async with self._meta_lock:
            current = self._meta.get(key)
            if not predicate(copy.deepcopy(current)):
                return False
            self._meta.pop(key, None)
            return current is not None
