from compliance_sync.core.resilience.circuit_breaker import (
    ApiCircuitBreaker,
    BreakerStatus,
    CircuitBreakerRegistry,
)

__all__ = ["ApiCircuitBreaker", "BreakerStatus", "CircuitBreakerRegistry"]
