"""
Unit Tests for InMemoryStore

Tests entry CRUD, the status index, copy isolation and the atomicity of the
metadata compare-and-set used by the drain lock.
"""

import asyncio

import pytest

from compliance_sync.core.config.constants import EntryStatus
from compliance_sync.core.exceptions import StorageUnavailableError
from compliance_sync.core.interfaces.store import DurableStore
from compliance_sync.infrastructure.storage.memory_store import InMemoryStore
from tests.test_fixtures import EntryFactory


@pytest.mark.unit
class TestEntries:
    """Entry collection behaviour."""

    def test_satisfies_protocol(self):
        assert isinstance(InMemoryStore(), DurableStore)

    @pytest.mark.asyncio
    async def test_put_and_get(self, store):
        entry = EntryFactory.entry()
        await store.put_entry(entry)
        assert await store.get_entry(entry.idempotency_key) == entry

    @pytest.mark.asyncio
    async def test_get_missing(self, store):
        assert await store.get_entry("nope") is None

    @pytest.mark.asyncio
    async def test_put_replaces_and_reindexes(self, store):
        entry = EntryFactory.entry()
        await store.put_entry(entry)
        await store.put_entry(entry.model_copy(update={"status": EntryStatus.SYNCED}))

        assert await store.entries_by_status(EntryStatus.PENDING) == []
        assert len(await store.entries_by_status(EntryStatus.SYNCED)) == 1

    @pytest.mark.asyncio
    async def test_returned_entries_are_copies(self, store):
        """Mutating a read result must not change stored state."""
        entry = EntryFactory.entry()
        await store.put_entry(entry)

        fetched = await store.get_entry(entry.idempotency_key)
        fetched.attempts = 99
        fetched.payload.data["reading"] = -1

        stored = await store.get_entry(entry.idempotency_key)
        assert stored.attempts == 0
        assert stored.payload.data["reading"] == 3.5

    @pytest.mark.asyncio
    async def test_delete(self, store):
        entry = EntryFactory.entry()
        await store.put_entry(entry)
        assert await store.delete_entry(entry.idempotency_key) is True
        assert await store.delete_entry(entry.idempotency_key) is False

    @pytest.mark.asyncio
    async def test_count_by_status_includes_every_status(self, store):
        await store.put_entry(EntryFactory.entry())
        await store.put_entry(EntryFactory.entry())
        await store.put_entry(EntryFactory.entry(status=EntryStatus.FAILED))

        assert await store.count_by_status() == {
            EntryStatus.PENDING: 2,
            EntryStatus.FAILED: 1,
            EntryStatus.SYNCED: 0,
        }

    @pytest.mark.asyncio
    async def test_use_before_connect_raises(self):
        with pytest.raises(StorageUnavailableError):
            await InMemoryStore().put_entry(EntryFactory.entry())

    @pytest.mark.asyncio
    async def test_ping_follows_connection(self):
        store = InMemoryStore()
        assert await store.ping() is False
        await store.connect()
        assert await store.ping() is True


@pytest.mark.unit
class TestMetadata:
    """Metadata compare-and-set/delete."""

    @pytest.mark.asyncio
    async def test_set_when_decide_returns_value(self, store):
        assert await store.compare_and_set_meta("lock", lambda current: {"owner": "a"}) is True
        assert await store.get_meta("lock") == {"owner": "a"}

    @pytest.mark.asyncio
    async def test_decide_none_leaves_value(self, store):
        await store.compare_and_set_meta("lock", lambda current: {"owner": "a"})
        assert await store.compare_and_set_meta("lock", lambda current: None) is False
        assert await store.get_meta("lock") == {"owner": "a"}

    @pytest.mark.asyncio
    async def test_decide_sees_current_value(self, store):
        seen = []
        await store.compare_and_set_meta("lock", lambda current: {"owner": "a"})
        await store.compare_and_set_meta("lock", lambda current: seen.append(current))
        assert seen == [{"owner": "a"}]

    @pytest.mark.asyncio
    async def test_concurrent_acquire_has_one_winner(self, store):
        """Two acquirers racing on an empty key: exactly one writes."""

        def acquire(owner):
            def decide(current):
                return None if current else {"owner": owner}

            return decide

        results = await asyncio.gather(
            store.compare_and_set_meta("lock", acquire("a")),
            store.compare_and_set_meta("lock", acquire("b")),
        )
        assert sorted(results) == [False, True]

    @pytest.mark.asyncio
    async def test_compare_and_delete(self, store):
        await store.compare_and_set_meta("lock", lambda current: {"owner": "a"})

        assert await store.compare_and_delete_meta("lock", lambda c: c and c["owner"] == "b") is False
        assert await store.get_meta("lock") == {"owner": "a"}

        assert await store.compare_and_delete_meta("lock", lambda c: c and c["owner"] == "a") is True
        assert await store.get_meta("lock") is None

    @pytest.mark.asyncio
    async def test_compare_and_delete_missing_key(self, store):
        assert await store.compare_and_delete_meta("lock", lambda c: True) is False
