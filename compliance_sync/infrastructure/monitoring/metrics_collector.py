#!/usr/bin/env python3
"""
Metrics Collector with Prometheus Integration

This module provides metrics collection for the compliance sync subsystem:
- Queue depth by status (the pending/failed badge, as a gauge)
- Enqueue and drain outcome counters
- Eviction detections
- Circuit breaker state and trips
- Backend request outcomes by error code

Architectural Decision: prometheus-client for industry-standard metrics
"""

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    Counter,
    Gauge,
    Info,
    generate_latest,
)

from compliance_sync.core.config.settings import get_settings
from compliance_sync.core.logging.logger import get_logger

logger = get_logger(__name__)


# ============================================================================
# Metric Definitions
# ============================================================================

QUEUE_DEPTH = Gauge(
    'compliance_queue_entries',
    'Queue entries by status',
    ['status']
)

ENTRIES_ENQUEUED = Counter(
    'compliance_entries_enqueued_total',
    'Total log entries added to the queue',
    ['log_type']
)

DRAIN_RUNS = Counter(
    'compliance_drain_runs_total',
    'Drain invocations by outcome',
    ['outcome']  # completed, offline, locked, auth_required, stopped
)

ENTRY_OUTCOMES = Counter(
    'compliance_entry_outcomes_total',
    'Per-entry delivery outcomes',
    ['outcome']  # synced, duplicate, rejected, auth_expired, transient
)

EVICTIONS_DETECTED = Counter(
    'compliance_evictions_detected_total',
    'Times pending entries vanished without being delivered'
)

CIRCUIT_BREAKER_OPEN = Gauge(
    'compliance_circuit_breaker_open',
    'Circuit breaker state (0=closed, 1=open)',
    ['api']
)

CIRCUIT_BREAKER_TRIPS = Counter(
    'compliance_circuit_breaker_trips_total',
    'Closed-to-open transitions',
    ['api']
)

API_REQUESTS = Counter(
    'compliance_api_requests_total',
    'Backend requests by method and result code',
    ['method', 'result']
)

APP_INFO = Info(
    'compliance_sync',
    'Application information'
)


class MetricsCollector:
    """
    Centralized metrics collector.

    STAGE-M: Metrics collection

    Usage:
        metrics = get_metrics_collector()
        metrics.record_entry_outcome("synced")
        output = metrics.get_prometheus_metrics()
    """

    def __init__(self):
        self.settings = get_settings()

        APP_INFO.info({
            'version': self.settings.app.APP_VERSION,
            'environment': self.settings.app.ENVIRONMENT,
            'app_name': self.settings.app.APP_NAME
        })

        logger.info("Metrics collector initialized", stage="M.0")

    # =========================================================================
    # Queue Metrics
    # =========================================================================

    def set_queue_depth(self, pending: int, failed: int, synced: int) -> None:
        QUEUE_DEPTH.labels(status="pending").set(pending)
        QUEUE_DEPTH.labels(status="failed").set(failed)
        QUEUE_DEPTH.labels(status="synced").set(synced)

    def record_enqueued(self, log_type: str) -> None:
        ENTRIES_ENQUEUED.labels(log_type=log_type).inc()

    def record_drain_run(self, outcome: str) -> None:
        DRAIN_RUNS.labels(outcome=outcome).inc()

    def record_entry_outcome(self, outcome: str) -> None:
        ENTRY_OUTCOMES.labels(outcome=outcome).inc()

    def record_eviction(self) -> None:
        EVICTIONS_DETECTED.inc()

    # =========================================================================
    # Circuit Breaker Metrics
    # =========================================================================

    def set_circuit_state(self, api: str, is_open: bool) -> None:
        CIRCUIT_BREAKER_OPEN.labels(api=api).set(1 if is_open else 0)

    def record_circuit_trip(self, api: str) -> None:
        CIRCUIT_BREAKER_TRIPS.labels(api=api).inc()

    # =========================================================================
    # Backend Metrics
    # =========================================================================

    def record_api_request(self, method: str, result: str) -> None:
        API_REQUESTS.labels(method=method, result=result).inc()

    # =========================================================================
    # Export
    # =========================================================================

    def get_prometheus_metrics(self) -> bytes:
        """Prometheus text format metrics."""
        return generate_latest(REGISTRY)

    def get_content_type(self) -> str:
        return CONTENT_TYPE_LATEST


# Global metrics collector
_metrics: MetricsCollector | None = None


def get_metrics_collector() -> MetricsCollector:
    """Get global metrics collector."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
