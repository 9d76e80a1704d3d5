"""
Pytest Configuration and Shared Test Fixtures

This module provides pytest configuration and reusable fixtures for all tests.
All fixtures defined here are automatically available to all test files.
"""

import httpx
import pytest

from compliance_sync.core.config.settings import Settings
from compliance_sync.core.resilience.circuit_breaker import ApiCircuitBreaker
from compliance_sync.infrastructure.http.api_client import MOCK_BASE_URL, ComplianceApiClient
from compliance_sync.infrastructure.storage.memory_store import InMemoryStore
from compliance_sync.mock_backend.app import create_mock_backend

# ============================================================================
# Clocks
# ============================================================================


class FakeClock:
    """Manually advanced clock, usable wherever a `clock` callable is accepted."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def settings():
    """Real Settings with test-friendly values (no simulated latency)."""
    return Settings(
        ENVIRONMENT="test",
        MOCK_API_LATENCY_MIN_MS=0,
        MOCK_API_LATENCY_MAX_MS=0,
        STORAGE_BACKEND="memory",
        BROADCAST_BACKEND="local",
        COMPLIANCE_API_URL=None,
    )


# ============================================================================
# Infrastructure Fixtures
# ============================================================================


@pytest.fixture
async def store():
    """Connected in-memory durable store."""
    store = InMemoryStore()
    await store.connect()
    yield store
    await store.disconnect()


@pytest.fixture
def mock_backend():
    """Fresh mock compliance backend without simulated latency."""
    return create_mock_backend(latency_ms=(0, 0))


@pytest.fixture
def breaker():
    return ApiCircuitBreaker("Compliance API")


@pytest.fixture
async def api_client(mock_backend, breaker):
    """API client wired to the mock backend over ASGI."""
    client = ComplianceApiClient(
        MOCK_BASE_URL,
        breaker=breaker,
        transport=httpx.ASGITransport(app=mock_backend),
    )
    await client.open()
    yield client
    await client.close()


@pytest.fixture
async def make_api_client(mock_backend):
    """Factory for extra clients ("tabs") sharing one mock backend."""
    clients: list[ComplianceApiClient] = []

    async def _make() -> ComplianceApiClient:
        client = ComplianceApiClient(
            MOCK_BASE_URL,
            breaker=ApiCircuitBreaker("Compliance API"),
            transport=httpx.ASGITransport(app=mock_backend),
        )
        await client.open()
        clients.append(client)
        return client

    yield _make

    for client in clients:
        await client.close()
