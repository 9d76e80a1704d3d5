"""
Application Context

The application-root object. It owns every long-lived component (store,
breakers, API client, session, queue, orchestrator) and their lifecycle,
in place of module-level singletons.

Startup order (init):      store -> API client -> session -> orchestrator
Shutdown order (teardown): orchestrator -> session -> API client -> store
"""

import httpx
import redis.asyncio as redis

from compliance_sync.auth.session_manager import SessionManager
from compliance_sync.core.config.settings import Settings, get_settings
from compliance_sync.core.interfaces.broadcast import BroadcastChannel
from compliance_sync.core.interfaces.store import DurableStore
from compliance_sync.core.logging.logger import get_logger
from compliance_sync.core.resilience.circuit_breaker import CircuitBreakerRegistry
from compliance_sync.infrastructure.broadcast.local_channel import LocalBroadcastHub
from compliance_sync.infrastructure.broadcast.redis_channel import RedisBroadcastChannel
from compliance_sync.infrastructure.http.api_client import ComplianceApiClient
from compliance_sync.infrastructure.monitoring.metrics_collector import (
    MetricsCollector,
    get_metrics_collector,
)
from compliance_sync.infrastructure.network.connectivity import ConnectivityMonitor
from compliance_sync.infrastructure.storage.factory import create_store
from compliance_sync.submission.drain_orchestrator import DrainOrchestrator
from compliance_sync.submission.submission_queue import SubmissionQueue

logger = get_logger(__name__)

COMPLIANCE_API_NAME = "Compliance API"


class ComplianceContext:
    def __init__(
        self,
        settings: Settings,
        store: DurableStore,
        breakers: CircuitBreakerRegistry,
        api: ComplianceApiClient,
        connectivity: ConnectivityMonitor,
        session: SessionManager,
        queue: SubmissionQueue,
        orchestrator: DrainOrchestrator,
        metrics: MetricsCollector,
        redis_client: redis.Redis | None = None,
    ):
        self.settings = settings
        self.store = store
        self.breakers = breakers
        self.api = api
        self.connectivity = connectivity
        self.session = session
        self.queue = queue
        self.orchestrator = orchestrator
        self.metrics = metrics
        self._redis_client = redis_client
        self._initialized = False

    @classmethod
    def create(
        cls,
        settings: Settings | None = None,
        *,
        store: DurableStore | None = None,
        channel: BroadcastChannel | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "ComplianceContext":
        """
        Wire every component from settings.

        STAGE-CTX.0: Composition

        Args:
            settings: Defaults to get_settings()
            store: Overrides the store selected by STORAGE_BACKEND
            channel: Overrides the broadcast channel selected by BROADCAST_BACKEND
            transport: Overrides the HTTP transport of the API client
        """
        settings = settings or get_settings()
        metrics = get_metrics_collector()

        store = store or create_store(settings)

        redis_client = None
        if channel is None:
            channel_name = settings.auth.AUTH_BROADCAST_CHANNEL
            if settings.auth.BROADCAST_BACKEND == "redis":
                storage = settings.storage
                redis_client = redis.Redis(
                    host=storage.REDIS_HOST,
                    port=storage.REDIS_PORT,
                    db=storage.REDIS_DB,
                    password=storage.REDIS_PASSWORD,
                    socket_connect_timeout=storage.REDIS_SOCKET_CONNECT_TIMEOUT,
                )
                channel = RedisBroadcastChannel(channel_name, redis_client)
            else:
                channel = LocalBroadcastHub().channel(channel_name)

        breakers = CircuitBreakerRegistry.from_settings(settings)
        api = ComplianceApiClient.from_settings(
            settings, breakers.get_breaker(COMPLIANCE_API_NAME), metrics, transport=transport
        )

        connectivity = ConnectivityMonitor.from_settings(settings)
        session = SessionManager(api, channel)
        queue = SubmissionQueue(
            store,
            connectivity=connectivity.is_online,
            lock_stale_after=settings.queue.QUEUE_LOCK_STALE_SECONDS,
            retention_days=settings.queue.QUEUE_SYNCED_RETENTION_DAYS,
            metrics=metrics,
        )
        orchestrator = DrainOrchestrator(
            queue,
            session,
            api,
            connectivity,
            poll_interval=settings.queue.QUEUE_POLL_INTERVAL_SECONDS,
            cleanup_interval=settings.queue.QUEUE_CLEANUP_INTERVAL_SECONDS,
        )

        return cls(
            settings=settings,
            store=store,
            breakers=breakers,
            api=api,
            connectivity=connectivity,
            session=session,
            queue=queue,
            orchestrator=orchestrator,
            metrics=metrics,
            redis_client=redis_client,
        )

    async def init(self, start_background: bool = True) -> None:
        """
        Start every component.

        STAGE-CTX.1: Startup

        Raises:
            StorageUnavailableError: The durable store cannot be reached
        """
        await self.store.connect()
        await self.api.open()
        await self.session.start()
        await self.orchestrator.refresh_status()
        if start_background:
            self.orchestrator.start()
        self._initialized = True
        logger.info(
            "Compliance context ready",
            stage="CTX.1",
            owner_id=self.queue.owner_id,
            session=self.session.status.value,
            pending=self.orchestrator.last_status.pending,
        )

    async def teardown(self) -> None:
        """STAGE-CTX.9: Shutdown"""
        await self.orchestrator.stop()
        await self.session.close()
        await self.api.close()
        await self.store.disconnect()
        if self._redis_client is not None:
            await self._redis_client.aclose()
            self._redis_client = None
        self._initialized = False
        logger.info("Compliance context stopped", stage="CTX.9")
