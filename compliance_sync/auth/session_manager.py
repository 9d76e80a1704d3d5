"""
Session Manager

Hybrid session model:
- the backend keeps a long-lived httpOnly session cookie (the "session
  marker"), which only ever lives in the API client's cookie jar;
- the short-lived access token lives in THIS object's memory only and is
  handed out through get_access_token(). It is never persisted, logged or
  returned by any route.

State machine:
    UNAUTHENTICATED --start()/silent_refresh()--> LOADING --ok--> AUTHENTICATED
    AUTHENTICATED --logout()/expire()/broadcast logout--> UNAUTHENTICATED

Sibling processes ("tabs") are kept in step through a BroadcastChannel:
    auth:logout -> clear local state immediately
    auth:login  -> run our own silent refresh (the token is never broadcast)
"""

from typing import Any

from pydantic import ValidationError

from compliance_sync.core.config.constants import (
    PATH_AUTH_LOGIN,
    PATH_AUTH_LOGOUT,
    PATH_AUTH_ME,
    BroadcastMessageType,
    ErrorCode,
    SessionStatus,
)
from compliance_sync.core.interfaces.broadcast import BroadcastChannel
from compliance_sync.core.logging.logger import get_logger
from compliance_sync.core.models.envelope import ApiError, ApiResponse
from compliance_sync.core.models.session import (
    BroadcastMessage,
    LoginResult,
    SessionGrant,
    SessionUser,
)
from compliance_sync.infrastructure.http.api_client import ComplianceApiClient

logger = get_logger(__name__)


class SessionManager:
    def __init__(self, api: ComplianceApiClient, channel: BroadcastChannel | None = None):
        self._api = api
        self._channel = channel
        self._access_token: str | None = None
        self.user: SessionUser | None = None
        self.status = SessionStatus.UNAUTHENTICATED

    @property
    def is_authenticated(self) -> bool:
        return self.status == SessionStatus.AUTHENTICATED

    @property
    def role(self) -> str | None:
        return self.user.role if self.user else None

    def get_access_token(self) -> str | None:
        """The only accessor for the in-memory token."""
        return self._access_token

    def snapshot(self) -> dict[str, Any]:
        """Public view of the session. Never includes the token."""
        return {
            "status": self.status.value,
            "isAuthenticated": self.is_authenticated,
            "role": self.role,
            "user": self.user.model_dump(by_alias=True) if self.user else None,
        }

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> bool:
        """
        Subscribe to sibling broadcasts, then restore any existing session.

        STAGE-AUTH.0: Session bootstrap
        """
        if self._channel is not None:
            await self._channel.subscribe(self._on_broadcast)
        self.status = SessionStatus.LOADING
        return await self.silent_refresh()

    async def close(self) -> None:
        if self._channel is not None:
            await self._channel.close()
            self._channel = None

    # =========================================================================
    # Operations
    # =========================================================================

    async def login(self, identifier: str, secret: str) -> LoginResult:
        """
        Exchange credentials for a session.

        Failure leaves every piece of state exactly as it was.
        """
        result = await self._api.post(PATH_AUTH_LOGIN, {"identifier": identifier, "secret": secret})

        grant = self._grant_from(result)
        if grant is None:
            error = result.error or ApiError(code=ErrorCode.UNKNOWN.value, message="Login failed")
            logger.info("Login rejected", stage="AUTH.1", error_code=error.code, retry_after=error.retry_after)
            return LoginResult(success=False, error=error)

        self._apply(grant)
        logger.info("Login succeeded", stage="AUTH.1", user_id=grant.user.id, role=grant.user.role)
        await self._publish(BroadcastMessageType.AUTH_LOGIN)
        return LoginResult(success=True)

    async def silent_refresh(self) -> bool:
        """
        Restore the session from the backend's session cookie.

        A rejection is not an error: it simply means nobody is logged in.
        """
        result = await self._api.get(PATH_AUTH_ME)
        grant = self._grant_from(result)
        if grant is None:
            self._clear()
            logger.debug("Silent refresh found no session", stage="AUTH.2", error_code=result.error_code)
            return False

        self._apply(grant)
        logger.info("Session restored", stage="AUTH.2", user_id=grant.user.id)
        return True

    async def logout(self) -> None:
        """Best-effort server logout; local state is cleared regardless."""
        result = await self._api.post(PATH_AUTH_LOGOUT, access_token=self._access_token)
        if not result.success:
            logger.warning("Server logout failed, clearing local session anyway", stage="AUTH.3", error_code=result.error_code)

        self._clear()
        self._api.clear_cookies()
        logger.info("Logged out", stage="AUTH.3")
        await self._publish(BroadcastMessageType.AUTH_LOGOUT)

    def expire(self) -> None:
        """The backend reported the session expired: drop local state, no broadcast."""
        if self.status != SessionStatus.UNAUTHENTICATED:
            logger.info("Session expired", stage="AUTH.4")
        self._clear()

    # =========================================================================
    # Internals
    # =========================================================================

    @staticmethod
    def _grant_from(result: ApiResponse) -> SessionGrant | None:
        if not result.success or not isinstance(result.data, dict):
            return None
        try:
            return SessionGrant.model_validate(result.data)
        except ValidationError as e:
            logger.error("Malformed session grant from backend", stage="AUTH.5", error=str(e))
            return None

    def _apply(self, grant: SessionGrant) -> None:
        self._access_token = grant.access_token
        self.user = grant.user
        self.status = SessionStatus.AUTHENTICATED

    def _clear(self) -> None:
        self._access_token = None
        self.user = None
        self.status = SessionStatus.UNAUTHENTICATED

    async def _publish(self, message_type: BroadcastMessageType) -> None:
        if self._channel is not None:
            await self._channel.publish(BroadcastMessage(type=message_type))

    async def _on_broadcast(self, message: BroadcastMessage) -> None:
        logger.debug("Broadcast received", stage="AUTH.6", message_type=message.type.value)
        if message.type == BroadcastMessageType.AUTH_LOGOUT:
            self._clear()
        elif message.type == BroadcastMessageType.AUTH_LOGIN:
            await self.silent_refresh()
