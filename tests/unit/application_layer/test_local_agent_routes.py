"""
Unit Tests for the Local Agent Routes

The app is driven over httpx.ASGITransport. That transport does not run the
lifespan, so the fixture starts the context itself (without the background
poller) and attaches it to app.state the way the lifespan does.
"""

import httpx
import pytest

from compliance_sync.application.app import create_app
from compliance_sync.application.context import ComplianceContext
from compliance_sync.core.config.constants import EntryStatus
from compliance_sync.infrastructure.storage.memory_store import InMemoryStore
from tests.test_fixtures import (
    MANAGER_IDENTIFIER,
    STAFF_IDENTIFIER,
    STAFF_SECRET,
    EntryFactory,
)

BASE = "/api/v1"


@pytest.fixture
async def context(settings, mock_backend):
    ctx = ComplianceContext.create(
        settings,
        store=InMemoryStore(),
        transport=httpx.ASGITransport(app=mock_backend),
    )
    await ctx.init(start_background=False)
    yield ctx
    await ctx.teardown()


@pytest.fixture
async def agent(context):
    app = create_app(context)
    app.state.context = context
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://agent") as client:
        yield client


async def login(agent, identifier=STAFF_IDENTIFIER, secret=STAFF_SECRET):
    return await agent.post(f"{BASE}/session/login", json={"identifier": identifier, "secret": secret})


async def status(agent):
    return (await agent.get(f"{BASE}/queue/status")).json()


@pytest.mark.unit
class TestHealth:
    @pytest.mark.asyncio
    async def test_root(self, agent):
        body = (await agent.get("/")).json()
        assert body["health"] == f"{BASE}/health"

    @pytest.mark.asyncio
    async def test_healthy(self, agent):
        response = await agent.get(f"{BASE}/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.json()["components"]["store"] == "up"

    @pytest.mark.asyncio
    async def test_degraded_when_circuit_open(self, agent, context):
        for _ in range(context.api.breaker.failure_threshold):
            context.api.breaker.record_failure(429)

        body = (await agent.get(f"{BASE}/health")).json()

        assert body["status"] == "degraded"
        assert body["components"]["circuitBreakers"]["Compliance API"]["isOpen"] is True

    @pytest.mark.asyncio
    async def test_degraded_when_offline(self, agent):
        await agent.post(f"{BASE}/connectivity", json={"online": False})
        assert (await agent.get(f"{BASE}/health")).json()["status"] == "degraded"

    @pytest.mark.asyncio
    async def test_unhealthy_without_store(self, agent, context):
        await context.store.disconnect()

        response = await agent.get(f"{BASE}/health")

        assert response.status_code == 503
        assert response.json()["status"] == "unhealthy"

    @pytest.mark.asyncio
    async def test_correlation_id_echoed(self, agent):
        response = await agent.get(f"{BASE}/health", headers={"X-Request-ID": "req-123"})
        assert response.headers["X-Request-ID"] == "req-123"

    @pytest.mark.asyncio
    async def test_metrics_endpoint(self, agent):
        response = await agent.get(f"{BASE}/metrics")
        assert response.status_code == 200
        assert "compliance_queue_entries" in response.text


@pytest.mark.unit
class TestSessionRoutes:
    """Login/logout through the agent; the token never leaves it."""

    @pytest.mark.asyncio
    async def test_initial_session(self, agent):
        body = (await agent.get(f"{BASE}/session")).json()
        assert body["isAuthenticated"] is False
        assert body["user"] is None

    @pytest.mark.asyncio
    async def test_login_success_hides_token(self, agent, context):
        response = await login(agent)

        assert response.status_code == 200
        body = response.json()
        assert body["data"]["isAuthenticated"] is True
        assert body["data"]["user"]["id"] == "emp-001"
        token = context.session.get_access_token()
        assert token
        assert token not in response.text
        assert token not in (await agent.get(f"{BASE}/session")).text

    @pytest.mark.asyncio
    async def test_invalid_credentials(self, agent):
        response = await login(agent, secret="9999")
        assert response.status_code == 401
        assert response.json()["error"]["code"] == "INVALID_CREDENTIALS"

    @pytest.mark.asyncio
    async def test_format_rejected_by_backend(self, agent):
        response = await login(agent, identifier="123")
        assert response.status_code == 422
        assert response.json()["error"]["field"] == "identifier"

    @pytest.mark.asyncio
    async def test_missing_fields_rejected_locally(self, agent):
        response = await agent.post(f"{BASE}/session/login", json={"identifier": STAFF_IDENTIFIER})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_lockout_sets_retry_after(self, agent):
        for _ in range(5):
            await login(agent, MANAGER_IDENTIFIER, "1111")

        response = await login(agent, MANAGER_IDENTIFIER, "0000")

        assert response.status_code == 429
        assert int(response.headers["Retry-After"]) > 0

    @pytest.mark.asyncio
    async def test_logout(self, agent):
        await login(agent)
        response = await agent.post(f"{BASE}/session/logout")

        assert response.json()["data"]["isAuthenticated"] is False
        assert (await agent.get(f"{BASE}/session")).json()["isAuthenticated"] is False


@pytest.mark.unit
class TestQueueRoutes:
    """Enqueue, status, drain and the failed-entry workflow."""

    @pytest.mark.asyncio
    async def test_enqueue_logged_out_stays_pending(self, agent):
        response = await agent.post(f"{BASE}/queue/entries", json=EntryFactory.wire_payload())

        assert response.status_code == 201
        assert response.json()["idempotencyKey"]
        body = await status(agent)
        assert body["pending"] == 1
        assert body["authRequired"] is False
        assert body["circuit"]["isOpen"] is False

    @pytest.mark.asyncio
    async def test_enqueue_logged_in_delivers_in_background(self, agent, mock_backend):
        await login(agent)

        key = (await agent.post(f"{BASE}/queue/entries", json=EntryFactory.wire_payload())).json()["idempotencyKey"]

        body = await status(agent)
        assert (body["pending"], body["synced"]) == (0, 1)
        assert key in mock_backend.state.mock.received

    @pytest.mark.asyncio
    async def test_invalid_entry_rejected(self, agent):
        response = await agent.post(f"{BASE}/queue/entries", json={"logType": "temperature"})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_login_drains_entries_queued_while_logged_out(self, agent):
        await agent.post(f"{BASE}/queue/entries", json=EntryFactory.wire_payload())
        await agent.post(f"{BASE}/queue/entries", json=EntryFactory.wire_payload())

        await login(agent)

        assert (await status(agent))["synced"] == 2

    @pytest.mark.asyncio
    async def test_offline_then_online(self, agent):
        await login(agent)
        await agent.post(f"{BASE}/connectivity", json={"online": False})
        await agent.post(f"{BASE}/queue/entries", json=EntryFactory.wire_payload())
        assert (await status(agent))["pending"] == 1

        response = await agent.post(f"{BASE}/connectivity", json={"online": True})

        assert response.json()["online"] is True
        assert response.json()["status"]["synced"] == 1

    @pytest.mark.asyncio
    async def test_manual_drain_requires_session(self, agent):
        assert (await agent.post(f"{BASE}/queue/drain")).status_code == 401

    @pytest.mark.asyncio
    async def test_manual_drain(self, agent, context):
        await login(agent)
        await context.queue.enqueue(EntryFactory.payload())

        body = (await agent.post(f"{BASE}/queue/drain")).json()

        assert body["result"]["synced"] == 1
        assert body["status"]["pending"] == 0

    @pytest.mark.asyncio
    async def test_failed_entry_workflow(self, agent, context):
        entry = EntryFactory.entry(status=EntryStatus.FAILED, attempts=1)
        await context.store.put_entry(entry)
        key = entry.idempotency_key

        listed = (await agent.get(f"{BASE}/queue/failed")).json()["entries"]
        assert [e["idempotencyKey"] for e in listed] == [key]

        assert (await agent.post(f"{BASE}/queue/failed/{key}/retry")).status_code == 200
        assert (await agent.post(f"{BASE}/queue/failed/{key}/retry")).status_code == 404
        assert (await context.store.get_entry(key)).status == EntryStatus.PENDING

    @pytest.mark.asyncio
    async def test_dismiss_failed(self, agent, context):
        entry = EntryFactory.entry(status=EntryStatus.FAILED)
        await context.store.put_entry(entry)

        assert (await agent.delete(f"{BASE}/queue/failed/{entry.idempotency_key}")).status_code == 200
        assert (await agent.delete(f"{BASE}/queue/failed/{entry.idempotency_key}")).status_code == 404

    @pytest.mark.asyncio
    async def test_foreground_reports_eviction(self, agent, context):
        context.orchestrator.last_status.pending = 2

        body = (await agent.post(f"{BASE}/queue/foreground")).json()

        assert body["eviction"] == {"evictionDetected": True, "currentCount": 0}

    @pytest.mark.asyncio
    async def test_cleanup(self, agent):
        assert (await agent.post(f"{BASE}/queue/cleanup")).json() == {"cleaned": 0}

    @pytest.mark.asyncio
    async def test_storage_failure_maps_to_503(self, agent, context):
        await context.store.disconnect()

        response = await agent.post(f"{BASE}/queue/entries", json=EntryFactory.wire_payload())

        assert response.status_code == 503
        assert response.json()["error_type"] == "StorageUnavailableError"
