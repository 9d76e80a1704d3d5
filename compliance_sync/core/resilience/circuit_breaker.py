"""
Circuit Breaker for Quota-Limited APIs.

This module implements an in-process circuit breaker that protects a
quota-limited backend from being hammered once its quota is exhausted.

MECHANISM OF ACTION:
-------------------
1.  **Qualifying Failures Only**:
    Only quota-related statuses (429 rate limited, 403 forbidden, 402 payment
    required) count. Generic unreliability (500, timeouts, network) is left to
    the callers' own retry-later handling; this breaker is not a general
    health monitor.

2.  **State Transitions**:
    - **CLOSED**: Calls allowed.
      - On qualifying failure: counter increments, failure time stamped.
      - Threshold reached: transition to OPEN (edge reported exactly once).
      - On success: counter reset.

    - **OPEN**: Calls blocked.
      - Recovery: once `reset_timeout` has elapsed since the last failure, the
        next `should_attempt_call()` closes the circuit and resets the counter.
        The half-open probe is folded into CLOSED rather than modelled as a
        third state; a probe that fails again simply counts toward a new
        episode.

3.  **Registry**:
    One breaker per logical API, owned by the application context
    (`CircuitBreakerRegistry`), never shared across processes.
"""

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from compliance_sync.core.config.constants import (
    CB_DEFAULT_FAILURE_THRESHOLD,
    CB_DEFAULT_RESET_TIMEOUT,
    QUOTA_STATUS_CODES,
)
from compliance_sync.core.logging.logger import get_logger
from compliance_sync.infrastructure.monitoring.metrics_collector import (
    MetricsCollector,
    get_metrics_collector,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class BreakerStatus:
    name: str
    is_open: bool
    failure_count: int
    quota_exceeded: bool
    time_until_reset: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "apiName": self.name,
            "isOpen": self.is_open,
            "failureCount": self.failure_count,
            "quotaExceeded": self.quota_exceeded,
            "timeUntilReset": self.time_until_reset,
        }


def extract_status(status_or_error: Any) -> int | None:
    """
    Pull an HTTP status out of an int or an exception.

    Accepts a bare status code, an exception with `status`/`status_code`, or an
    exception carrying a `response` with `status_code` (httpx.HTTPStatusError).
    """
    if isinstance(status_or_error, bool):
        return None
    if isinstance(status_or_error, int):
        return status_or_error

    for attr in ("status", "status_code"):
        value = getattr(status_or_error, attr, None)
        if isinstance(value, int):
            return value

    response = getattr(status_or_error, "response", None)
    value = getattr(response, "status_code", None)
    return value if isinstance(value, int) else None


class ApiCircuitBreaker:
    """
    Threshold/cool-down breaker for one logical API.

    Invariants:
    - is_open is only set while failure_count >= failure_threshold
    - is_open is only cleared by record_success() or an elapsed cool-down
    """

    def __init__(
        self,
        name: str = "API",
        failure_threshold: int = CB_DEFAULT_FAILURE_THRESHOLD,
        reset_timeout: float = CB_DEFAULT_RESET_TIMEOUT,
        clock: Callable[[], float] = time.monotonic,
        metrics: MetricsCollector | None = None,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self._clock = clock
        self._metrics = metrics

        self.failure_count = 0
        self.last_failure_time: float | None = None
        self.is_open = False

    def should_attempt_call(self) -> bool:
        """
        Determine whether a call may proceed.

        Logic:
        1. CLOSED -> True.
        2. OPEN and cool-down elapsed -> close, reset count, True.
        3. OPEN otherwise -> False.
        """
        if not self.is_open:
            return True

        elapsed = self._clock() - (self.last_failure_time or 0.0)
        if elapsed > self.reset_timeout:
            self.is_open = False
            self.failure_count = 0
            logger.warning(
                f"Circuit '{self.name}' cool-down expired, attempting calls again",
                stage="CB.2",
            )
            self._publish_state()
            return True

        return False

    def record_failure(self, status_or_error: Any) -> bool:
        """
        Record a failed call.

        Returns:
            True exactly when this failure opened the circuit.
        """
        status = extract_status(status_or_error)
        if status not in QUOTA_STATUS_CODES:
            return False

        self.failure_count += 1
        self.last_failure_time = self._clock()

        logger.warning(
            f"Circuit '{self.name}' recorded quota failure "
            f"({self.failure_count}/{self.failure_threshold})",
            stage="CB.3",
            status=status,
        )

        just_opened = self.failure_count >= self.failure_threshold and not self.is_open
        if just_opened:
            self.is_open = True
            logger.error(
                f"Circuit '{self.name}' tripped, quota likely exhausted",
                stage="CB.4",
                failure_count=self.failure_count,
                retry_in_seconds=self.reset_timeout,
            )
            if self._metrics:
                self._metrics.record_circuit_trip(self.name)
            self._publish_state()

        return just_opened

    def record_success(self) -> None:
        """Clear the failure count and force the circuit closed."""
        was_open = self.is_open
        self.failure_count = 0
        self.last_failure_time = None
        self.is_open = False
        if was_open:
            logger.info(f"Circuit '{self.name}' recovered, resetting to closed", stage="CB.5")
            self._publish_state()

    def get_status(self) -> BreakerStatus:
        """Pure read of the current state."""
        time_until_reset = 0.0
        if self.is_open and self.last_failure_time is not None:
            time_until_reset = max(
                0.0, self.reset_timeout - (self._clock() - self.last_failure_time)
            )

        return BreakerStatus(
            name=self.name,
            is_open=self.is_open,
            failure_count=self.failure_count,
            quota_exceeded=self.failure_count >= self.failure_threshold,
            time_until_reset=time_until_reset,
        )

    def reset(self) -> None:
        """Manual reset (operators, tests)."""
        self.is_open = False
        self.failure_count = 0
        self.last_failure_time = None
        logger.warning(f"Circuit '{self.name}' manually reset", stage="CB.6")
        self._publish_state()

    def _publish_state(self) -> None:
        if self._metrics:
            self._metrics.set_circuit_state(self.name, self.is_open)


# ============================================================================
# Registry
# ============================================================================


class CircuitBreakerRegistry:
    """One breaker per logical API, created on first use."""

    def __init__(
        self,
        failure_threshold: int = CB_DEFAULT_FAILURE_THRESHOLD,
        reset_timeout: float = CB_DEFAULT_RESET_TIMEOUT,
        clock: Callable[[], float] = time.monotonic,
        metrics: MetricsCollector | None = None,
    ):
        self._failure_threshold = failure_threshold
        self._reset_timeout = reset_timeout
        self._clock = clock
        self._metrics = metrics
        self._breakers: dict[str, ApiCircuitBreaker] = {}

    @classmethod
    def from_settings(cls, settings) -> "CircuitBreakerRegistry":
        return cls(
            failure_threshold=settings.circuit_breaker.CB_FAILURE_THRESHOLD,
            reset_timeout=settings.circuit_breaker.CB_RECOVERY_TIMEOUT,
            metrics=get_metrics_collector(),
        )

    def get_breaker(self, name: str) -> ApiCircuitBreaker:
        if name not in self._breakers:
            self._breakers[name] = ApiCircuitBreaker(
                name,
                failure_threshold=self._failure_threshold,
                reset_timeout=self._reset_timeout,
                clock=self._clock,
                metrics=self._metrics,
            )
        return self._breakers[name]

    def get_all_stats(self) -> dict[str, dict[str, Any]]:
        return {name: breaker.get_status().to_dict() for name, breaker in self._breakers.items()}

    def reset_all(self) -> None:
        for breaker in self._breakers.values():
            breaker.reset()
