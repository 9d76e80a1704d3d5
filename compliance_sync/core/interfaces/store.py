"""
Durable Store Protocol

This module defines the abstract protocol for the submission queue's
durable storage, enabling dependency injection and testability.

Architectural Decision: Protocol-based abstraction
- One append-oriented collection of queue entries keyed by idempotency key
- One small key/value collection for metadata (drain lock)
- Metadata compare-and-set/delete are ATOMIC: the read of the current value
  and the write of the new one happen as one indivisible operation, which is
  what makes the cross-process drain lock safe

Implementations:
- InMemoryStore: single-process store (tests, one client per device)
- RedisStore: shared store for several processes
"""

from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable

from compliance_sync.core.config.constants import EntryStatus
from compliance_sync.core.models.queue import QueueEntry

MetaValue = dict[str, Any]


@runtime_checkable
class DurableStore(Protocol):
    """
    Protocol defining the interface for durable queue stores.

    Error contract: implementations raise StorageUnavailableError when the
    backend cannot be reached and StorageWriteError when a write fails.
    """

    async def connect(self) -> None:
        """
        Open the store.

        Raises:
            StorageUnavailableError: If the backend is unreachable
        """
        ...

    async def disconnect(self) -> None:
        """Close the store."""
        ...

    async def ping(self) -> bool:
        """Return True if the store is healthy."""
        ...

    async def put_entry(self, entry: QueueEntry) -> None:
        """
        Insert or replace an entry, keeping the status index consistent.

        Raises:
            StorageWriteError: If the write fails
        """
        ...

    async def get_entry(self, idempotency_key: str) -> QueueEntry | None:
        """Fetch one entry by key."""
        ...

    async def delete_entry(self, idempotency_key: str) -> bool:
        """Delete one entry. Returns True if it existed."""
        ...

    async def entries_by_status(self, status: EntryStatus) -> list[QueueEntry]:
        """All entries with the given status (unordered)."""
        ...

    async def count_by_status(self) -> dict[EntryStatus, int]:
        """Entry counts for every status."""
        ...

    async def get_meta(self, key: str) -> MetaValue | None:
        """Read a metadata record."""
        ...

    async def compare_and_set_meta(
        self, key: str, decide: Callable[[MetaValue | None], MetaValue | None]
    ) -> bool:
        """
        Atomically read `key`, call `decide(current)`, and write its result.

        `decide` returns the new value, or None to leave the record untouched.
        Returns True if a value was written.
        """
        ...

    async def compare_and_delete_meta(
        self, key: str, predicate: Callable[[MetaValue | None], bool]
    ) -> bool:
        """Atomically delete `key` if `predicate(current)` holds."""
        ...
