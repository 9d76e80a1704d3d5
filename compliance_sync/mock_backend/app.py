"""
Mock Compliance Backend

In-process stand-in for the compliance backend, used whenever no
COMPLIANCE_API_URL is configured (local development, tests). The API client
reaches it through httpx.ASGITransport, so it speaks real HTTP semantics:
status codes, an httpOnly session cookie and bearer tokens.

Endpoints (under /api/compliance):
    POST /auth/login     identifier (10 digits) + secret (4 digits)
    GET  /auth/me        session cookie -> fresh access token
    POST /auth/logout    drops the session and its cookie
    POST /log-entry      bearer; duplicate idempotency key -> 409 CONFLICT
    GET  /logs           bearer; entries received for the caller's location
    GET  /assets         bearer
    GET  /stats          bearer
"""

import asyncio
import random
import re
import time
from collections.abc import Callable
from typing import Any

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import AliasChoices, BaseModel, Field

from compliance_sync.core.config.constants import (
    API_PREFIX,
    HEADER_AUTHORIZATION,
    PATH_AUTH_LOGIN,
    PATH_AUTH_LOGOUT,
    PATH_AUTH_ME,
    PATH_LOG_ENTRY,
    ErrorCode,
)
from compliance_sync.core.logging.logger import get_logger
from compliance_sync.core.models.envelope import ApiResponse
from compliance_sync.mock_backend.state import TEST_ASSETS, MockBackendState, MockUser

logger = get_logger(__name__)

SESSION_COOKIE = "compliance_session"
IDENTIFIER_PATTERN = re.compile(r"^\d{10}$")
SECRET_PATTERN = re.compile(r"^\d{4}$")


class MockApiError(Exception):
    """Raised by handlers; rendered as an error envelope with `status_code`."""

    def __init__(self, status_code: int, code: ErrorCode, message: str, **extra: Any):
        self.status_code = status_code
        self.code = code
        self.message = message
        self.extra = extra
        super().__init__(message)


class LoginRequest(BaseModel):
    identifier: str | None = Field(default=None, validation_alias=AliasChoices("identifier", "phone"))
    secret: str | None = Field(default=None, validation_alias=AliasChoices("secret", "pin"))


def _state(request: Request) -> MockBackendState:
    return request.app.state.mock


def require_user(request: Request) -> MockUser:
    header = request.headers.get(HEADER_AUTHORIZATION, "")
    token = header[7:] if header.startswith("Bearer ") else None
    user = _state(request).user_from_token(token)
    if user is None:
        raise MockApiError(401, ErrorCode.SESSION_EXPIRED, "Authentication required")
    return user


def _grant(state: MockBackendState, user: MockUser) -> dict[str, Any]:
    return {"accessToken": state.issue_token(user), "employee": user.profile()}


router = APIRouter(prefix=API_PREFIX)


# ============================================================================
# Auth
# ============================================================================


@router.post(PATH_AUTH_LOGIN)
async def login(body: LoginRequest, request: Request):
    state = _state(request)

    if not body.identifier or not IDENTIFIER_PATTERN.match(body.identifier):
        raise MockApiError(422, ErrorCode.VALIDATION_ERROR, "Identifier must be 10 digits", field="identifier")
    if not body.secret or not SECRET_PATTERN.match(body.secret):
        raise MockApiError(422, ErrorCode.VALIDATION_ERROR, "Secret must be 4 digits", field="secret")

    retry_after = state.retry_after(body.identifier)
    if retry_after is not None:
        raise MockApiError(
            429,
            ErrorCode.RATE_LIMITED,
            "Too many login attempts. Please try again later.",
            retry_after=retry_after,
        )

    user = state.find_user(body.identifier, body.secret)
    if user is None:
        state.record_failure(body.identifier)
        raise MockApiError(401, ErrorCode.INVALID_CREDENTIALS, "Invalid identifier or secret")

    state.record_success(body.identifier)
    session_id = state.open_session(user)

    response = JSONResponse(ApiResponse.ok(_grant(state, user)).to_wire())
    secure = request.url.scheme == "https"
    response.set_cookie(
        SESSION_COOKIE,
        session_id,
        httponly=True,
        secure=secure,
        samesite="none" if secure else "lax",
    )
    return response


@router.get(PATH_AUTH_ME)
async def me(request: Request):
    state = _state(request)
    user = state.session_user(request.cookies.get(SESSION_COOKIE))
    if user is None:
        raise MockApiError(401, ErrorCode.SESSION_EXPIRED, "No active session")
    return ApiResponse.ok(_grant(state, user)).to_wire()


@router.post(PATH_AUTH_LOGOUT)
async def logout(request: Request):
    _state(request).close_session(request.cookies.get(SESSION_COOKIE))
    response = JSONResponse({"success": True})
    response.delete_cookie(SESSION_COOKIE)
    return response


# ============================================================================
# Authenticated endpoints
# ============================================================================


@router.post(PATH_LOG_ENTRY)
async def log_entry(request: Request, user: MockUser = Depends(require_user)):
    try:
        body = await request.json()
    except ValueError:
        body = None
    if not isinstance(body, dict):
        raise MockApiError(422, ErrorCode.VALIDATION_ERROR, "Body must be a JSON object")

    if not body.get("logType"):
        raise MockApiError(422, ErrorCode.VALIDATION_ERROR, "logType is required", field="logType")
    if not body.get("idempotencyKey"):
        raise MockApiError(422, ErrorCode.VALIDATION_ERROR, "idempotencyKey is required", field="idempotencyKey")

    record = _state(request).accept_entry(body, user)
    if record is None:
        raise MockApiError(409, ErrorCode.CONFLICT, "Entry already received")

    return ApiResponse.ok({"id": record["id"], "serverReceivedAt": record["serverReceivedAt"]}).to_wire()


@router.get("/logs")
async def logs(request: Request, user: MockUser = Depends(require_user)):
    received = [
        r for r in _state(request).received.values() if r.get("locationId") == user.location_id
    ]
    return ApiResponse.ok({"logs": received}).to_wire()


@router.get("/assets")
async def assets(user: MockUser = Depends(require_user)):
    return ApiResponse.ok({"assets": list(TEST_ASSETS)}).to_wire()


@router.get("/stats")
async def stats(request: Request, user: MockUser = Depends(require_user)):
    temps_today = sum(
        1
        for r in _state(request).received.values()
        if r.get("locationId") == user.location_id and r.get("logType") == "temperature"
    )
    return ApiResponse.ok(
        {
            "tempsLoggedToday": temps_today,
            "cleaningComplete": False,
            "activeAlerts": 0,
            "compliancePercent": 0,
        }
    ).to_wire()


# ============================================================================
# Application Factory
# ============================================================================


def create_mock_backend(
    latency_ms: tuple[int, int] = (200, 500),
    clock: Callable[[], float] = time.time,
) -> FastAPI:
    """
    Build a fresh mock backend.

    Args:
        latency_ms: Simulated latency range; (0, 0) disables it
        clock: Wall clock used for token expiry and lockouts
    """
    app = FastAPI(title="Mock Compliance Backend", docs_url=None, redoc_url=None)
    app.state.mock = MockBackendState(clock=clock)
    min_ms, max_ms = latency_ms

    @app.middleware("http")
    async def simulated_latency(request: Request, call_next):
        if max_ms > 0:
            await asyncio.sleep(random.uniform(min_ms, max_ms) / 1000)
        return await call_next(request)

    @app.exception_handler(MockApiError)
    async def mock_api_error_handler(request: Request, exc: MockApiError):
        logger.debug(
            "Mock backend rejected request",
            stage="MOCK.1",
            path=request.url.path,
            status_code=exc.status_code,
            error_code=exc.code.value,
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=ApiResponse.fail(exc.code, exc.message, **exc.extra).to_wire(),
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=422,
            content=ApiResponse.fail(ErrorCode.VALIDATION_ERROR, "Malformed request body").to_wire(),
        )

    app.include_router(router)

    # Registered after the router so it only sees unmatched paths
    @app.api_route(API_PREFIX + "/{path:path}", methods=["GET", "POST", "PUT", "PATCH", "DELETE"])
    async def not_found(path: str, request: Request):
        raise MockApiError(404, ErrorCode.NOT_FOUND, f"No mock handler for {request.method} /{path}")

    return app
