"""
Submission Queue

Durable, ordered, idempotent delivery of compliance log entries.

Delivery model (at-least-once with server-side dedup):
- enqueue() writes the entry durably and returns immediately; no network
- drain() sends pending entries oldest-first, one at a time, under a
  cross-process lock, and classifies each outcome:

    success            -> synced                         continue
    CONFLICT           -> synced (duplicate delivery)    continue
    SESSION_EXPIRED    -> untouched, auth required       stop
    VALIDATION_ERROR   -> failed, error kept, attempts+1 continue
    anything else      -> attempts+1                     stop

  Stopping on a transient failure (instead of skipping ahead) preserves
  ordering: a later entry is never delivered before an earlier one that is
  still pending.

Drain lock:
    One metadata record {owner, timestamp}. Acquired with one atomic
    compare-and-set: held and fresh -> refuse; absent or stale (older than
    30s) -> take it. Renewed before every entry, so a long drain over a slow
    connection is not mistaken for an abandoned one; if renewal finds another
    owner the drain stops. Released in `finally`, only if still ours.

Only storage failures raise out of this module. Network, auth and
validation outcomes are all reported through DrainResult.
"""

import inspect
import time
import uuid
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Any

from pydantic import TypeAdapter, ValidationError

from compliance_sync.core.config.constants import (
    DRAIN_LOCK_KEY,
    LOCK_STALE_SECONDS,
    SYNCED_RETENTION_DAYS,
    EntryStatus,
    ErrorCode,
)
from compliance_sync.core.exceptions import StorageError
from compliance_sync.core.interfaces.store import DurableStore, MetaValue
from compliance_sync.core.logging.logger import get_logger
from compliance_sync.core.models.envelope import ApiResponse
from compliance_sync.core.models.queue import (
    DrainLock,
    DrainResult,
    EvictionCheck,
    LogEntryPayload,
    QueueEntry,
    QueueStatus,
)
from compliance_sync.infrastructure.monitoring.metrics_collector import MetricsCollector

logger = get_logger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60

_DATETIME = TypeAdapter(datetime)

TokenProvider = Callable[[], "str | None | Awaitable[str | None]"]
SendFn = Callable[[QueueEntry, str], Awaitable[ApiResponse]]


class SubmissionQueue:
    """
    Durable submission queue over a DurableStore.

    Args:
        store: Durable store (connected by the caller)
        connectivity: Callable returning True while the device is online
        lock_stale_after: Seconds after which a drain lock is abandoned
        retention_days: Synced entries older than this are swept
        clock: Wall-clock source (epoch seconds)
        owner_id: Identifies this process in the drain lock
        metrics: Optional metrics collector
    """

    def __init__(
        self,
        store: DurableStore,
        *,
        connectivity: Callable[[], bool] = lambda: True,
        lock_stale_after: float = LOCK_STALE_SECONDS,
        retention_days: int = SYNCED_RETENTION_DAYS,
        clock: Callable[[], float] = time.time,
        owner_id: str | None = None,
        metrics: MetricsCollector | None = None,
    ):
        self._store = store
        self._is_online = connectivity
        self.lock_stale_after = lock_stale_after
        self.retention_days = retention_days
        self._clock = clock
        self.owner_id = owner_id or uuid.uuid4().hex[:8]
        self._metrics = metrics
        self._last_queued_at = 0

    # =========================================================================
    # Enqueue / status
    # =========================================================================

    async def enqueue(self, payload: LogEntryPayload | dict[str, Any]) -> str:
        """
        Durably queue one log entry.

        STAGE-Q.1: Enqueue

        Returns:
            The entry's idempotency key

        Raises:
            StorageWriteError: The entry was NOT queued
        """
        if not isinstance(payload, LogEntryPayload):
            payload = LogEntryPayload.model_validate(payload)

        entry = QueueEntry(
            idempotency_key=str(uuid.uuid4()),
            payload=payload,
            client_created_at=datetime.now(timezone.utc),
            status=EntryStatus.PENDING,
            attempts=0,
            queued_at=self._next_queued_at(),
        )
        await self._store.put_entry(entry)

        logger.info(
            "Entry queued",
            stage="Q.1",
            idempotency_key=entry.idempotency_key,
            log_type=payload.log_type,
        )
        if self._metrics:
            self._metrics.record_enqueued(payload.log_type)
        return entry.idempotency_key

    def _next_queued_at(self) -> int:
        # Strictly increasing within this process, even if the clock stalls
        stamp = max(time.time_ns(), self._last_queued_at + 1)
        self._last_queued_at = stamp
        return stamp

    async def status(self) -> QueueStatus:
        counts = await self._store.count_by_status()
        status = QueueStatus(
            pending=counts.get(EntryStatus.PENDING, 0),
            failed=counts.get(EntryStatus.FAILED, 0),
            synced=counts.get(EntryStatus.SYNCED, 0),
        )
        if self._metrics:
            self._metrics.set_queue_depth(status.pending, status.failed, status.synced)
        return status

    async def entries_by_status(self, status: EntryStatus) -> list[QueueEntry]:
        """Entries with `status`, oldest first."""
        entries = await self._store.entries_by_status(status)
        return sorted(entries, key=lambda e: e.queued_at)

    # =========================================================================
    # Drain
    # =========================================================================

    async def drain(self, get_token: TokenProvider, send: SendFn) -> DrainResult:
        """
        Deliver pending entries, oldest first.

        STAGE-Q.2: Drain

        Args:
            get_token: Returns the current access token (sync or async)
            send: Delivers one entry, returns the response envelope

        Returns:
            DrainResult; never raises for network/auth/validation outcomes

        Raises:
            StorageError: The durable store failed
        """
        result = DrainResult()

        if not self._is_online():
            logger.info("Drain skipped: offline", stage="Q.2")
            result.stopped = True
            self._record_drain("offline")
            return result

        lock_owner = f"{self.owner_id}:{uuid.uuid4().hex[:8]}"
        if not await self._acquire_lock(lock_owner):
            logger.info("Drain skipped: another drain holds the lock", stage="Q.2")
            result.stopped = True
            self._record_drain("locked")
            return result

        try:
            pending = await self.entries_by_status(EntryStatus.PENDING)
            logger.info("Drain started", stage="Q.2", pending=len(pending), lock_owner=lock_owner)

            for entry in pending:
                if not await self._renew_lock(lock_owner):
                    logger.warning("Drain lock lost, stopping", stage="Q.2", lock_owner=lock_owner)
                    result.stopped = True
                    break

                token = await self._resolve_token(get_token)
                if not token:
                    result.auth_required = True
                    result.stopped = True
                    break

                if not await self._deliver(entry, token, send, result):
                    break
        finally:
            await self._release_lock(lock_owner)

        logger.info("Drain finished", stage="Q.2", **result.to_dict())
        self._record_drain(
            "auth_required" if result.auth_required else "stopped" if result.stopped else "completed"
        )
        return result

    async def _deliver(
        self, entry: QueueEntry, token: str, send: SendFn, result: DrainResult
    ) -> bool:
        """Send one entry and apply its outcome. Returns False to stop the drain."""
        key = entry.idempotency_key
        try:
            response = await send(entry, token)
        except StorageError:
            raise
        except Exception as e:
            logger.error("Send raised, treating as transient", stage="Q.3", idempotency_key=key, error=str(e), exc_info=True)
            response = ApiResponse.fail(ErrorCode.NETWORK_ERROR, str(e) or "send failed")

        if response.success or response.error_code == ErrorCode.CONFLICT.value:
            duplicate = not response.success
            await self._store.put_entry(
                entry.model_copy(
                    update={
                        "status": EntryStatus.SYNCED,
                        "synced_at": self._clock(),
                        "server_received_at": _server_received_at(response) or entry.server_received_at,
                        "error": None,
                    }
                )
            )
            result.synced += 1
            logger.info("Entry synced", stage="Q.3", idempotency_key=key, duplicate=duplicate)
            self._record_outcome("duplicate" if duplicate else "synced")
            return True

        if response.error_code == ErrorCode.SESSION_EXPIRED.value:
            result.auth_required = True
            result.stopped = True
            logger.info("Drain stopped: session expired", stage="Q.3", idempotency_key=key)
            self._record_outcome("auth_expired")
            return False

        if response.error_code == ErrorCode.VALIDATION_ERROR.value:
            await self._store.put_entry(
                entry.model_copy(
                    update={
                        "status": EntryStatus.FAILED,
                        "error": response.error,
                        "attempts": entry.attempts + 1,
                    }
                )
            )
            result.failed += 1
            logger.warning(
                "Entry rejected by backend",
                stage="Q.3",
                idempotency_key=key,
                field=response.error.field if response.error else None,
            )
            self._record_outcome("rejected")
            return True

        await self._store.put_entry(entry.model_copy(update={"attempts": entry.attempts + 1}))
        result.stopped = True
        logger.warning(
            "Transient delivery failure, stopping drain",
            stage="Q.3",
            idempotency_key=key,
            error_code=response.error_code,
            attempts=entry.attempts + 1,
        )
        self._record_outcome("transient")
        return False

    @staticmethod
    async def _resolve_token(get_token: TokenProvider) -> str | None:
        token = get_token()
        if inspect.isawaitable(token):
            token = await token
        return token

    # =========================================================================
    # Drain lock
    # =========================================================================

    async def _acquire_lock(self, lock_owner: str) -> bool:
        now = self._clock()

        def decide(current: MetaValue | None) -> MetaValue | None:
            if current is not None and self._lock_is_fresh(current, now):
                return None
            return DrainLock(owner=lock_owner, timestamp=now).model_dump()

        return await self._store.compare_and_set_meta(DRAIN_LOCK_KEY, decide)

    async def _renew_lock(self, lock_owner: str) -> bool:
        now = self._clock()

        def decide(current: MetaValue | None) -> MetaValue | None:
            if current is None or current.get("owner") != lock_owner:
                return None
            return DrainLock(owner=lock_owner, timestamp=now).model_dump()

        return await self._store.compare_and_set_meta(DRAIN_LOCK_KEY, decide)

    async def _release_lock(self, lock_owner: str) -> None:
        try:
            await self._store.compare_and_delete_meta(
                DRAIN_LOCK_KEY,
                lambda current: current is not None and current.get("owner") == lock_owner,
            )
        except StorageError as e:
            # An unreleased lock goes stale and is reclaimed
            logger.warning("Failed to release drain lock", stage="Q.2", lock_owner=lock_owner, error=str(e))

    def _lock_is_fresh(self, current: MetaValue, now: float) -> bool:
        try:
            lock = DrainLock.model_validate(current)
        except ValidationError:
            logger.warning("Discarding malformed drain lock", stage="Q.2", lock=current)
            return False
        return lock.is_fresh(now, self.lock_stale_after)

    async def current_lock(self) -> DrainLock | None:
        raw = await self._store.get_meta(DRAIN_LOCK_KEY)
        return DrainLock.model_validate(raw) if raw else None

    # =========================================================================
    # Maintenance
    # =========================================================================

    async def cleanup_synced(self) -> int:
        """
        Delete synced entries older than the retention window.

        STAGE-Q.4: Retention sweep

        Failed and pending entries are never touched.
        """
        cutoff = self._clock() - self.retention_days * SECONDS_PER_DAY
        cleaned = 0
        for entry in await self._store.entries_by_status(EntryStatus.SYNCED):
            if entry.synced_at is not None and entry.synced_at < cutoff:
                if await self._store.delete_entry(entry.idempotency_key):
                    cleaned += 1

        if cleaned:
            logger.info("Synced entries cleaned up", stage="Q.4", cleaned=cleaned)
        return cleaned

    async def check_eviction(
        self, last_known_pending_count: int, last_known_synced_count: int | None = None
    ) -> EvictionCheck:
        """
        Best-effort detection of pending entries lost without being delivered.

        Pending entries only leave the pending state by becoming synced (or
        failed). If the pending count dropped while nothing was synced, the
        storage was most likely evicted. Detection only: nothing is repaired.
        """
        status = await self.status()
        if last_known_synced_count is None:
            nothing_synced = status.synced == 0
        else:
            nothing_synced = status.synced <= last_known_synced_count

        detected = (
            last_known_pending_count > 0
            and status.pending < last_known_pending_count
            and nothing_synced
        )

        if detected:
            logger.warning(
                "Possible storage eviction detected",
                stage="Q.5",
                expected_pending=last_known_pending_count,
                found_pending=status.pending,
            )
            if self._metrics:
                self._metrics.record_eviction()

        return EvictionCheck(eviction_detected=detected, current_count=status.pending)

    async def requeue_failed(self, keys: list[str] | None = None) -> int:
        """
        Move failed entries back to pending so a later drain retries them.

        The idempotency key is unchanged, so a retry of an entry the backend
        did in fact accept is reported back as a duplicate, never stored twice.
        """
        wanted = set(keys) if keys is not None else None
        requeued = 0
        for entry in await self._store.entries_by_status(EntryStatus.FAILED):
            if wanted is not None and entry.idempotency_key not in wanted:
                continue
            await self._store.put_entry(
                entry.model_copy(update={"status": EntryStatus.PENDING, "error": None})
            )
            requeued += 1

        if requeued:
            logger.info("Failed entries requeued", stage="Q.6", requeued=requeued)
        return requeued

    async def dismiss_failed(self, idempotency_key: str) -> bool:
        """Delete one failed entry after a human has dealt with it."""
        entry = await self._store.get_entry(idempotency_key)
        if entry is None or entry.status != EntryStatus.FAILED:
            return False
        deleted = await self._store.delete_entry(idempotency_key)
        logger.info("Failed entry dismissed", stage="Q.6", idempotency_key=idempotency_key)
        return deleted

    # =========================================================================
    # Metrics
    # =========================================================================

    def _record_drain(self, outcome: str) -> None:
        if self._metrics:
            self._metrics.record_drain_run(outcome)

    def _record_outcome(self, outcome: str) -> None:
        if self._metrics:
            self._metrics.record_entry_outcome(outcome)


def _server_received_at(response: ApiResponse) -> datetime | None:
    data = response.data if isinstance(response.data, dict) else {}
    raw = data.get("serverReceivedAt")
    if raw is None:
        return None
    try:
        return _DATETIME.validate_python(raw)
    except ValidationError:
        logger.warning("Unparseable serverReceivedAt from backend", stage="Q.3", value=raw)
        return None
