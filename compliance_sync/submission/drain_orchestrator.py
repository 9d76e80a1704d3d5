"""
Drain Orchestrator

Decides WHEN the submission queue is drained. Triggers:

    connectivity restored  -> drain
    foreground             -> eviction check, status refresh, drain if pending
    periodic poll (10s)    -> probe, status refresh, drain if pending
    hourly                 -> retention sweep of synced entries

A drain is only attempted for an authenticated session. If the backend
reports the session expired mid-drain, one silent refresh is tried; if that
fails too, `auth_required` is raised for the UI to show a re-login prompt.

Failures never escape a trigger: a failed drain is logged and the status is
picked up again on the next poll.
"""

import asyncio
import time
from collections.abc import Callable

from compliance_sync.auth.session_manager import SessionManager
from compliance_sync.core.config.constants import CLEANUP_INTERVAL, STATUS_POLL_INTERVAL
from compliance_sync.core.exceptions import StorageError
from compliance_sync.core.logging.logger import get_logger
from compliance_sync.core.models.queue import DrainResult, EvictionCheck, QueueStatus
from compliance_sync.infrastructure.http.api_client import ComplianceApiClient
from compliance_sync.infrastructure.network.connectivity import ConnectivityMonitor
from compliance_sync.submission.submission_queue import SubmissionQueue

logger = get_logger(__name__)


class DrainOrchestrator:
    def __init__(
        self,
        queue: SubmissionQueue,
        session: SessionManager,
        api: ComplianceApiClient,
        connectivity: ConnectivityMonitor,
        poll_interval: float = STATUS_POLL_INTERVAL,
        cleanup_interval: float = CLEANUP_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._queue = queue
        self._session = session
        self._api = api
        self._connectivity = connectivity
        self.poll_interval = poll_interval
        self.cleanup_interval = cleanup_interval
        self._clock = clock

        self.last_status = QueueStatus()
        self.last_result: DrainResult | None = None
        self.last_eviction: EvictionCheck | None = None
        self.auth_required = False

        self._last_cleanup: float | None = None
        self._running = False
        self._shutdown_event = asyncio.Event()
        self._task: asyncio.Task | None = None

        connectivity.add_listener(self.on_connectivity_restored)

    # =========================================================================
    # Triggers
    # =========================================================================

    async def refresh_status(self) -> QueueStatus:
        try:
            self.last_status = await self._queue.status()
        except StorageError as e:
            logger.error("Queue status unavailable", stage="DR.1", error=str(e))
        return self.last_status

    async def attempt_drain(self, reason: str = "manual") -> DrainResult | None:
        """
        Drain once if authenticated.

        STAGE-DR.2: Drain attempt

        Returns:
            The DrainResult, or None if no drain was run
        """
        if not self._session.is_authenticated:
            logger.debug("Drain not attempted: not authenticated", stage="DR.2", reason=reason)
            return None

        result = None
        try:
            result = await self._queue.drain(self._session.get_access_token, self._api.submit_log_entry)
            self.last_result = result

            if result.auth_required:
                logger.info("Drain needs authentication, trying silent refresh", stage="DR.2")
                self.auth_required = not await self._session.silent_refresh()
            else:
                self.auth_required = False
        except StorageError as e:
            logger.error("Drain failed on storage error", stage="DR.2", reason=reason, error=str(e))
        finally:
            await self.refresh_status()

        logger.info(
            "Drain attempt finished",
            stage="DR.2",
            reason=reason,
            result=result.to_dict() if result else None,
            pending=self.last_status.pending,
        )
        return result

    async def on_connectivity_restored(self) -> None:
        await self.attempt_drain("online")

    async def on_foreground(self) -> EvictionCheck | None:
        """
        The UI came back to the foreground.

        The eviction check runs first, against the counts remembered before
        the app went to the background.
        """
        try:
            self.last_eviction = await self._queue.check_eviction(
                self.last_status.pending, self.last_status.synced
            )
        except StorageError as e:
            logger.error("Eviction check failed", stage="DR.3", error=str(e))

        await self.refresh_status()
        if self.last_status.pending and self._connectivity.is_online():
            await self.attempt_drain("foreground")
        return self.last_eviction

    async def tick(self) -> None:
        """One poll cycle."""
        await self._connectivity.probe()
        await self.refresh_status()

        if self.last_status.pending and self._connectivity.is_online():
            await self.attempt_drain("poll")

        now = self._clock()
        if self._last_cleanup is None or now - self._last_cleanup >= self.cleanup_interval:
            self._last_cleanup = now
            try:
                await self._queue.cleanup_synced()
            except StorageError as e:
                logger.error("Retention sweep failed", stage="DR.4", error=str(e))

    # =========================================================================
    # Background loop
    # =========================================================================

    async def run(self) -> None:
        self._running = True
        self._shutdown_event.clear()
        logger.info("Drain orchestrator started", stage="DR.0", poll_interval=self.poll_interval)

        while self._running and not self._shutdown_event.is_set():
            try:
                await self.tick()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Poll cycle failed", stage="DR.0", error=str(e), exc_info=True)

            try:
                await asyncio.wait_for(self._shutdown_event.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                pass

        logger.info("Drain orchestrator stopped", stage="DR.0")

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run())

    async def stop(self, timeout: float = 5.0) -> None:
        self._running = False
        self._shutdown_event.set()
        if self._task is None:
            return
        try:
            await asyncio.wait_for(self._task, timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("Orchestrator shutdown timeout, cancelling task", stage="DR.0")
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
