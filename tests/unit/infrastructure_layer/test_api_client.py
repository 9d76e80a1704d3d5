"""
Unit Tests for ComplianceApiClient

Uses httpx.MockTransport so every transport outcome (status codes, timeouts,
dropped connections) can be produced deterministically.
"""

from unittest.mock import MagicMock

import httpx
import orjson
import pytest

from compliance_sync.auth.session_manager import SessionManager
from compliance_sync.core.config.constants import ErrorCode
from compliance_sync.core.config.settings import Settings
from compliance_sync.core.logging.logger import clear_correlation_id, set_correlation_id
from compliance_sync.core.resilience.circuit_breaker import ApiCircuitBreaker
from compliance_sync.infrastructure.http.api_client import (
    MOCK_BASE_URL,
    ComplianceApiClient,
    parse_response,
)
from tests.test_fixtures import EntryFactory

BASE_URL = "https://backend.test"


class Recorder:
    """MockTransport handler that records requests and replays a response factory."""

    def __init__(self, respond):
        self.respond = respond
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.respond(request)


@pytest.fixture
async def make_client(clock):
    clients = []

    async def _make(respond, threshold=2, metrics=None):
        recorder = Recorder(respond)
        client = ComplianceApiClient(
            BASE_URL,
            breaker=ApiCircuitBreaker("test", failure_threshold=threshold, clock=clock),
            transport=httpx.MockTransport(recorder),
            metrics=metrics,
        )
        await client.open()
        clients.append(client)
        return client, recorder

    yield _make

    for client in clients:
        await client.close()


def respond_json(status, body=None):
    return lambda request: httpx.Response(status, json=body)


@pytest.mark.unit
class TestParseResponse:
    """Envelope normalization."""

    def request(self):
        return httpx.Request("GET", BASE_URL)

    def test_envelope_passthrough(self):
        response = httpx.Response(200, json={"success": True, "data": {"id": 1}}, request=self.request())
        assert parse_response(response).data == {"id": 1}

    def test_bare_body_wrapped(self):
        response = httpx.Response(200, json=[1, 2], request=self.request())
        result = parse_response(response)
        assert result.success is True
        assert result.data == [1, 2]

    def test_empty_success(self):
        result = parse_response(httpx.Response(204, request=self.request()))
        assert result.success is True
        assert result.data is None

    @pytest.mark.parametrize(
        "status,code",
        [
            (401, "SESSION_EXPIRED"),
            (403, "FORBIDDEN"),
            (409, "CONFLICT"),
            (422, "VALIDATION_ERROR"),
            (429, "RATE_LIMITED"),
            (500, "INTERNAL_ERROR"),
            (502, "INTERNAL_ERROR"),
        ],
    )
    def test_status_mapping(self, status, code):
        result = parse_response(httpx.Response(status, request=self.request()))
        assert result.success is False
        assert result.error.code == code

    def test_backend_error_object_wins(self):
        body = {"success": False, "error": {"code": "INVALID_CREDENTIALS", "message": "nope"}}
        result = parse_response(httpx.Response(401, json=body, request=self.request()))
        assert result.error.code == "INVALID_CREDENTIALS"
        assert result.error.message == "nope"

    def test_message_from_plain_body(self):
        result = parse_response(httpx.Response(422, json={"message": "bad pin"}, request=self.request()))
        assert result.error.message == "bad pin"

    def test_non_json_error_uses_reason_phrase(self):
        result = parse_response(httpx.Response(502, text="<html>", request=self.request()))
        assert result.error.message == "Bad Gateway"

    @pytest.mark.parametrize(
        "status,error,expected",
        [
            (500, {"code": 500, "message": "boom"}, ("INTERNAL_ERROR", "boom", None)),
            (429, {"code": "RATE_LIMITED", "message": "slow down", "retryAfter": 1.5}, ("RATE_LIMITED", "slow down", 2)),
            (401, {"code": "SESSION_EXPIRED", "message": None}, ("SESSION_EXPIRED", "Unauthorized", None)),
            (422, {"code": ["x"], "field": 7, "retryAfter": "soon"}, ("VALIDATION_ERROR", "Unprocessable Entity", None)),
        ],
    )
    def test_nonconforming_error_body_falls_back(self, status, error, expected):
        """A backend error object that does not fit the model never raises."""
        result = parse_response(httpx.Response(status, json={"success": False, "error": error}, request=self.request()))

        assert result.success is False
        assert (result.error.code, result.error.message, result.error.retry_after) == expected

    def test_nonconforming_error_keeps_readable_field(self):
        body = {"error": {"code": 422, "message": "bad", "field": "identifier"}}
        result = parse_response(httpx.Response(422, json=body, request=self.request()))
        assert result.error.field == "identifier"
        assert result.error.code == "VALIDATION_ERROR"

    def test_non_string_message_in_plain_body(self):
        result = parse_response(httpx.Response(500, json={"message": {"nested": True}}, request=self.request()))
        assert result.error.message == "Internal Server Error"

    def test_nonconforming_success_envelope(self):
        body = {"success": True, "data": {"id": 1}, "error": {"code": 1}}
        result = parse_response(httpx.Response(200, json=body, request=self.request()))
        assert result.success is True
        assert result.data == {"id": 1}

    def test_nonconforming_failure_envelope_on_2xx(self):
        body = {"success": False, "error": {"code": 1, "message": "odd"}}
        result = parse_response(httpx.Response(200, json=body, request=self.request()))
        assert result.success is False
        assert result.error.code == "UNKNOWN"
        assert result.error.message == "odd"

    @pytest.mark.asyncio
    async def test_request_and_session_survive_nonconforming_body(self, make_client):
        client, _ = await make_client(respond_json(401, {"success": False, "error": {"code": 401, "message": None}}))

        result = await client.get("/auth/me")
        session = SessionManager(client)

        assert result.error_code == "SESSION_EXPIRED"
        assert await session.start() is False


@pytest.mark.unit
class TestRequest:
    """Request pipeline."""

    @pytest.mark.asyncio
    async def test_url_includes_prefix(self, make_client):
        client, recorder = await make_client(respond_json(200, {"ok": True}))
        await client.get("/auth/me")
        assert str(recorder.requests[0].url) == "https://backend.test/api/compliance/auth/me"

    @pytest.mark.asyncio
    async def test_bearer_header_only_with_token(self, make_client):
        client, recorder = await make_client(respond_json(200, {}))
        await client.get("/logs", access_token="tok")
        await client.get("/logs")
        assert recorder.requests[0].headers["Authorization"] == "Bearer tok"
        assert "Authorization" not in recorder.requests[1].headers

    @pytest.mark.asyncio
    async def test_correlation_id_forwarded(self, make_client):
        client, recorder = await make_client(respond_json(200, {}))
        set_correlation_id("req-7")
        try:
            await client.get("/logs")
        finally:
            clear_correlation_id()
        assert recorder.requests[0].headers["X-Request-ID"] == "req-7"

    @pytest.mark.asyncio
    async def test_mutation_and_read_timeouts(self, make_client):
        client, recorder = await make_client(respond_json(200, {}))
        await client.post("/log-entry", {})
        await client.get("/logs")
        assert recorder.requests[0].extensions["timeout"]["read"] == 15.0
        assert recorder.requests[1].extensions["timeout"]["read"] == 10.0

    @pytest.mark.parametrize("method,expected", [("GET", 10.0), ("post", 15.0), ("PATCH", 15.0), ("DELETE", 15.0)])
    def test_timeout_for(self, method, expected):
        assert ComplianceApiClient(BASE_URL).timeout_for(method) == expected

    @pytest.mark.asyncio
    async def test_timeout_becomes_envelope(self, make_client):
        def respond(request):
            raise httpx.ReadTimeout("slow", request=request)

        client, _ = await make_client(respond)
        result = await client.post("/log-entry", {})

        assert result.error.code == ErrorCode.TIMEOUT.value
        assert result.error.message == "Request timed out after 15000ms"

    @pytest.mark.asyncio
    async def test_network_error_becomes_envelope(self, make_client):
        def respond(request):
            raise httpx.ConnectError("connection refused", request=request)

        client, _ = await make_client(respond)
        result = await client.get("/logs")

        assert result.error.code == ErrorCode.NETWORK_ERROR.value

    @pytest.mark.asyncio
    async def test_submit_log_entry_body(self, make_client):
        client, recorder = await make_client(respond_json(201, {"success": True, "data": {}}))
        entry = EntryFactory.entry(idempotency_key="k1")

        await client.submit_log_entry(entry, "tok")

        request = recorder.requests[0]
        assert request.method == "POST"
        assert request.url.path == "/api/compliance/log-entry"
        body = orjson.loads(request.content)
        assert body["idempotencyKey"] == "k1"
        assert body["logType"] == "temperature"

    @pytest.mark.asyncio
    async def test_metrics_recorded(self, make_client):
        metrics = MagicMock()
        client, _ = await make_client(respond_json(409), metrics=metrics)
        await client.post("/log-entry", {})
        metrics.record_api_request.assert_called_once_with("POST", "CONFLICT")


@pytest.mark.unit
class TestBreakerIntegration:
    """Breaker gating and bookkeeping."""

    @pytest.mark.asyncio
    async def test_quota_failures_open_circuit(self, make_client):
        client, recorder = await make_client(respond_json(429), threshold=2)

        await client.get("/logs")
        await client.get("/logs")
        result = await client.get("/logs")

        assert result.error.code == ErrorCode.CIRCUIT_OPEN.value
        assert len(recorder.requests) == 2

    @pytest.mark.asyncio
    async def test_server_errors_do_not_open_circuit(self, make_client):
        client, recorder = await make_client(respond_json(503), threshold=2)

        for _ in range(3):
            await client.get("/logs")

        assert len(recorder.requests) == 3
        assert client.breaker.is_open is False

    @pytest.mark.asyncio
    async def test_success_resets_count(self, make_client):
        statuses = iter([429, 200, 429])
        client, _ = await make_client(lambda request: httpx.Response(next(statuses), json={}), threshold=2)

        for _ in range(3):
            await client.get("/logs")

        assert client.breaker.failure_count == 1
        assert client.breaker.is_open is False

    @pytest.mark.asyncio
    async def test_circuit_recovers_after_cool_down(self, make_client, clock):
        statuses = iter([429, 429, 200])
        client, recorder = await make_client(lambda request: httpx.Response(next(statuses), json={}), threshold=2)
        await client.get("/logs")
        await client.get("/logs")

        clock.advance(client.breaker.reset_timeout + 1)
        result = await client.get("/logs")

        assert result.success is True
        assert len(recorder.requests) == 3


@pytest.mark.unit
class TestFromSettings:
    def test_configured_url(self, breaker):
        settings = Settings(COMPLIANCE_API_URL="https://compliance.example.com", API_READ_TIMEOUT=4)
        client = ComplianceApiClient.from_settings(settings, breaker)
        assert client.base_url == "https://compliance.example.com"
        assert client.read_timeout == 4
        assert client.breaker is breaker

    def test_mock_when_unconfigured(self, settings, breaker):
        client = ComplianceApiClient.from_settings(settings, breaker)
        assert client.base_url == MOCK_BASE_URL

    @pytest.mark.asyncio
    async def test_mock_backend_reachable(self, settings, breaker):
        async with ComplianceApiClient.from_settings(settings, breaker) as client:
            result = await client.get("/assets")
        assert result.error.code == ErrorCode.SESSION_EXPIRED.value
