"""
Compliance API Client

Single HTTP entry point for every /api/compliance/* call.

Every outcome is reduced to an ApiResponse envelope; the only thing callers
branch on is `success` and `error.code`. Expected failures (HTTP errors,
timeouts, dropped connections, an open circuit) never raise.

Request pipeline:
    1. Circuit breaker gate (CIRCUIT_OPEN, no network call)
    2. URL built by httpx from base_url + prefix + path
    3. Per-request timeout: mutation (15s) vs read (10s)
    4. Bearer header from the caller-supplied in-memory token; the backend's
       httpOnly session cookie lives only in the client's cookie jar
    5. Response normalization + breaker bookkeeping

When no backend URL is configured the client is wired to the bundled mock
backend through httpx.ASGITransport, so the rest of the system cannot tell
the difference.
"""

import math
from typing import Any

import httpx
from pydantic import ValidationError

from compliance_sync.core.config.constants import (
    API_PREFIX,
    BREAKER_REPORTED_STATUS_CODES,
    HEADER_AUTHORIZATION,
    HEADER_REQUEST_ID,
    HTTP_STATUS_ERROR_CODES,
    MUTATION_METHODS,
    MUTATION_TIMEOUT,
    PATH_LOG_ENTRY,
    READ_TIMEOUT,
    ErrorCode,
)
from compliance_sync.core.logging.logger import get_correlation_id, get_logger
from compliance_sync.core.models.envelope import ApiError, ApiResponse
from compliance_sync.core.models.queue import QueueEntry
from compliance_sync.core.resilience.circuit_breaker import ApiCircuitBreaker
from compliance_sync.infrastructure.monitoring.metrics_collector import MetricsCollector

logger = get_logger(__name__)

MOCK_BASE_URL = "http://mock-compliance"


def parse_response(response: httpx.Response) -> ApiResponse:
    """
    Normalize an HTTP response into the envelope.

    - 2xx: the body if it already is an envelope, otherwise wrapped as data
    - non-2xx: the backend's own `error` object if present, otherwise a code
      derived from the status (401/403/409/422/429, else INTERNAL_ERROR)

    Never raises: an error object that does not fit ApiError keeps whatever
    fields can be read and takes the status-derived code.
    """
    try:
        body = response.json()
    except ValueError:
        body = None

    if response.is_success:
        if isinstance(body, dict) and "success" in body:
            try:
                return ApiResponse.model_validate(body)
            except ValidationError as e:
                logger.warning("Nonconforming success envelope", stage="API.2", error=str(e))
                if body.get("success") is False:
                    return ApiResponse(success=False, error=_lenient_error(body.get("error"), ErrorCode.UNKNOWN))
                return ApiResponse.ok(body.get("data"))
        if body is None:
            return ApiResponse.ok()
        return ApiResponse.ok(body)

    code = HTTP_STATUS_ERROR_CODES.get(response.status_code, ErrorCode.INTERNAL_ERROR)
    fallback_message = response.reason_phrase or "Request failed"

    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        try:
            return ApiResponse(success=False, error=ApiError.model_validate(body["error"]))
        except ValidationError as e:
            logger.warning(
                "Nonconforming error body", stage="API.2", status_code=response.status_code, error=str(e)
            )
            return ApiResponse(success=False, error=_lenient_error(body["error"], code, fallback_message))

    message = body.get("message") if isinstance(body, dict) else None
    if not isinstance(message, str):
        message = None
    return ApiResponse.fail(code, message or fallback_message)


def _lenient_error(raw: Any, code: ErrorCode, fallback_message: str = "Request failed") -> ApiError:
    raw = raw if isinstance(raw, dict) else {}
    raw_code, message, field = raw.get("code"), raw.get("message"), raw.get("field")
    return ApiError(
        code=raw_code if isinstance(raw_code, str) and raw_code else code.value,
        message=message if isinstance(message, str) and message else fallback_message,
        field=field if isinstance(field, str) else None,
        retry_after=_seconds(raw.get("retryAfter", raw.get("retry_after"))),
    )


def _seconds(value: Any) -> int | None:
    # Fractional waits round up
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        try:
            value = float(value)
        except ValueError:
            return None
    if isinstance(value, (int, float)) and math.isfinite(value) and value >= 0:
        return math.ceil(value)
    return None


class ComplianceApiClient:
    """
    Async client for the compliance backend.

    Usage:
        async with ComplianceApiClient(base_url, breaker=breaker) as api:
            result = await api.post("/auth/login", {"identifier": ..., "secret": ...})
    """

    def __init__(
        self,
        base_url: str,
        prefix: str = API_PREFIX,
        breaker: ApiCircuitBreaker | None = None,
        read_timeout: float = READ_TIMEOUT,
        mutation_timeout: float = MUTATION_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
        metrics: MetricsCollector | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.prefix = "/" + prefix.strip("/")
        self.breaker = breaker or ApiCircuitBreaker("Compliance API")
        self.read_timeout = read_timeout
        self.mutation_timeout = mutation_timeout
        self._transport = transport
        self._metrics = metrics
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_settings(
        cls,
        settings,
        breaker: ApiCircuitBreaker,
        metrics: MetricsCollector | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "ComplianceApiClient":
        """
        Build the client from settings.

        STAGE-API.0: Backend selection

        An explicit `transport` wins over both the configured URL and the mock.
        """
        api = settings.api
        base_url = api.COMPLIANCE_API_URL

        if transport is not None:
            base_url = base_url or MOCK_BASE_URL
        elif not base_url:
            from compliance_sync.mock_backend.app import create_mock_backend

            logger.warning("No COMPLIANCE_API_URL configured, using mock backend", stage="API.0")
            mock = settings.mock_backend
            transport = httpx.ASGITransport(
                app=create_mock_backend(
                    latency_ms=(mock.MOCK_API_LATENCY_MIN_MS, mock.MOCK_API_LATENCY_MAX_MS)
                )
            )
            base_url = MOCK_BASE_URL

        return cls(
            base_url,
            prefix=api.COMPLIANCE_API_PREFIX,
            breaker=breaker,
            read_timeout=api.API_READ_TIMEOUT,
            mutation_timeout=api.API_MUTATION_TIMEOUT,
            transport=transport,
            metrics=metrics,
        )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def open(self) -> None:
        if self._client is not None:
            return
        self._client = httpx.AsyncClient(
            base_url=self.base_url + self.prefix,
            transport=self._transport,
            timeout=httpx.Timeout(self.read_timeout),
            headers={"Content-Type": "application/json"},
        )
        logger.info("Compliance API client opened", stage="API.1", base_url=self.base_url)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info("Compliance API client closed", stage="API.9")

    async def __aenter__(self) -> "ComplianceApiClient":
        await self.open()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def clear_cookies(self) -> None:
        """Drop the session marker cookie (local logout)."""
        if self._client is not None:
            self._client.cookies.clear()

    # =========================================================================
    # Requests
    # =========================================================================

    def timeout_for(self, method: str) -> float:
        return self.mutation_timeout if method.upper() in MUTATION_METHODS else self.read_timeout

    async def request(
        self,
        path: str,
        method: str = "GET",
        body: dict[str, Any] | None = None,
        access_token: str | None = None,
    ) -> ApiResponse:
        """
        Make one backend call.

        Args:
            path: Path relative to the API prefix (e.g. "/auth/login")
            method: HTTP method
            body: JSON body
            access_token: In-memory bearer token (never read from storage)

        Returns:
            ApiResponse envelope; never raises for HTTP or network failures
        """
        method = method.upper()

        if not self.breaker.should_attempt_call():
            self._record(method, ErrorCode.CIRCUIT_OPEN.value)
            return ApiResponse.fail(
                ErrorCode.CIRCUIT_OPEN,
                "Compliance API temporarily unavailable. Will retry automatically.",
            )

        if self._client is None:
            await self.open()

        relative = "/" + path.lstrip("/")
        timeout = self.timeout_for(method)
        headers: dict[str, str] = {}
        if access_token:
            headers[HEADER_AUTHORIZATION] = f"Bearer {access_token}"
        correlation_id = get_correlation_id()
        if correlation_id:
            headers[HEADER_REQUEST_ID] = correlation_id

        try:
            response = await self._client.request(
                method,
                relative,
                json=body,
                headers=headers,
                timeout=timeout,
            )
        except httpx.TimeoutException:
            logger.warning("Compliance API timeout", stage="API.3", method=method, path=relative, timeout=timeout)
            self._record(method, ErrorCode.TIMEOUT.value)
            return ApiResponse.fail(ErrorCode.TIMEOUT, f"Request timed out after {int(timeout * 1000)}ms")
        except httpx.TransportError as e:
            logger.warning("Compliance API network error", stage="API.3", method=method, path=relative, error=str(e))
            self._record(method, ErrorCode.NETWORK_ERROR.value)
            return ApiResponse.fail(ErrorCode.NETWORK_ERROR, str(e) or "Network request failed")

        result = parse_response(response)

        if response.is_success:
            self.breaker.record_success()
        elif response.status_code in BREAKER_REPORTED_STATUS_CODES:
            self.breaker.record_failure(response.status_code)

        self._record(method, "ok" if result.success else (result.error_code or ErrorCode.UNKNOWN.value))
        logger.debug(
            "Compliance API call",
            stage="API.2",
            method=method,
            path=relative,
            status_code=response.status_code,
            success=result.success,
        )
        return result

    async def get(self, path: str, access_token: str | None = None) -> ApiResponse:
        return await self.request(path, "GET", access_token=access_token)

    async def post(
        self, path: str, body: dict[str, Any] | None = None, access_token: str | None = None
    ) -> ApiResponse:
        return await self.request(path, "POST", body=body, access_token=access_token)

    async def patch(
        self, path: str, body: dict[str, Any] | None = None, access_token: str | None = None
    ) -> ApiResponse:
        return await self.request(path, "PATCH", body=body, access_token=access_token)

    async def submit_log_entry(self, entry: QueueEntry, access_token: str) -> ApiResponse:
        """POST one queued entry to /log-entry."""
        return await self.post(PATH_LOG_ENTRY, entry.to_request_body(), access_token=access_token)

    def _record(self, method: str, result: str) -> None:
        if self._metrics:
            self._metrics.record_api_request(method, result)
