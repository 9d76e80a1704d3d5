"""
Unit Tests for SessionManager

Runs against the mock backend over ASGI. "Tabs" are SessionManagers that
share one API client (one cookie jar, as browser tabs do) but each have their
own broadcast channel.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from compliance_sync.auth.session_manager import SessionManager
from compliance_sync.core.config.constants import ErrorCode, SessionStatus
from compliance_sync.core.models.envelope import ApiResponse
from compliance_sync.infrastructure.broadcast import LocalBroadcastHub
from tests.test_fixtures import (
    MANAGER_IDENTIFIER,
    MANAGER_SECRET,
    STAFF_IDENTIFIER,
    STAFF_SECRET,
)


@pytest.fixture
def hub():
    return LocalBroadcastHub()


@pytest.fixture
async def session(api_client, hub):
    manager = SessionManager(api_client, hub.channel("auth"))
    await manager.start()
    yield manager
    await manager.close()


@pytest.mark.unit
class TestLogin:
    """Credential exchange."""

    @pytest.mark.asyncio
    async def test_login_success(self, session):
        result = await session.login(STAFF_IDENTIFIER, STAFF_SECRET)

        assert result.success is True
        assert session.is_authenticated is True
        assert session.role == "staff"
        assert session.user.id == "emp-001"
        assert session.get_access_token()

    @pytest.mark.asyncio
    async def test_snapshot_never_contains_token(self, session):
        await session.login(STAFF_IDENTIFIER, STAFF_SECRET)
        token = session.get_access_token()

        snapshot = session.snapshot()

        assert snapshot["isAuthenticated"] is True
        assert snapshot["user"]["locationId"] == "loc-wellington-001"
        assert token not in repr(snapshot)
        assert "accessToken" not in snapshot

    @pytest.mark.asyncio
    async def test_invalid_credentials_leave_state_unchanged(self, session):
        result = await session.login(STAFF_IDENTIFIER, "9999")

        assert result.success is False
        assert result.error.code == ErrorCode.INVALID_CREDENTIALS.value
        assert session.status == SessionStatus.UNAUTHENTICATED
        assert session.get_access_token() is None

    @pytest.mark.asyncio
    async def test_failed_login_keeps_existing_session(self, session):
        await session.login(STAFF_IDENTIFIER, STAFF_SECRET)
        token = session.get_access_token()

        result = await session.login(MANAGER_IDENTIFIER, "1111")

        assert result.success is False
        assert session.is_authenticated is True
        assert session.get_access_token() == token
        assert session.role == "staff"

    @pytest.mark.asyncio
    async def test_malformed_identifier(self, session):
        result = await session.login("123", STAFF_SECRET)
        assert result.error.code == ErrorCode.VALIDATION_ERROR.value
        assert result.error.field == "identifier"

    @pytest.mark.asyncio
    async def test_lockout_after_repeated_failures(self, session):
        for _ in range(5):
            await session.login(MANAGER_IDENTIFIER, "1111")

        result = await session.login(MANAGER_IDENTIFIER, MANAGER_SECRET)

        assert result.success is False
        assert result.error.code == ErrorCode.RATE_LIMITED.value
        assert 0 < result.error.retry_after <= 15 * 60
        assert session.is_authenticated is False

    @pytest.mark.asyncio
    async def test_malformed_grant_is_a_failure(self):
        api = MagicMock()
        api.post = AsyncMock(return_value=ApiResponse.ok({"unexpected": True}))
        manager = SessionManager(api)

        result = await manager.login(STAFF_IDENTIFIER, STAFF_SECRET)

        assert result.success is False
        assert manager.is_authenticated is False


@pytest.mark.unit
class TestSilentRefresh:
    """Session restore from the cookie marker."""

    @pytest.mark.asyncio
    async def test_start_without_cookie_is_unauthenticated(self, session):
        assert session.status == SessionStatus.UNAUTHENTICATED

    @pytest.mark.asyncio
    async def test_new_manager_restores_from_cookie(self, session, api_client):
        await session.login(STAFF_IDENTIFIER, STAFF_SECRET)

        reloaded = SessionManager(api_client)
        assert await reloaded.start() is True

        assert reloaded.is_authenticated is True
        assert reloaded.user.id == "emp-001"

    @pytest.mark.asyncio
    async def test_other_cookie_jar_has_no_session(self, session, make_api_client):
        await session.login(STAFF_IDENTIFIER, STAFF_SECRET)

        stranger = SessionManager(await make_api_client())

        assert await stranger.start() is False

    @pytest.mark.asyncio
    async def test_failed_refresh_clears_state(self, session, api_client):
        await session.login(STAFF_IDENTIFIER, STAFF_SECRET)
        api_client.clear_cookies()

        assert await session.silent_refresh() is False
        assert session.get_access_token() is None
        assert session.user is None


@pytest.mark.unit
class TestLogout:
    @pytest.mark.asyncio
    async def test_logout_ends_server_session(self, session, api_client):
        await session.login(STAFF_IDENTIFIER, STAFF_SECRET)

        await session.logout()

        assert session.is_authenticated is False
        assert await SessionManager(api_client).start() is False

    @pytest.mark.asyncio
    async def test_logout_clears_locally_when_server_fails(self):
        api = MagicMock()
        api.post = AsyncMock(
            side_effect=[
                ApiResponse.ok({"accessToken": "t", "employee": {"id": "e", "name": "n", "role": "staff", "locationId": "l"}}),
                ApiResponse.fail(ErrorCode.NETWORK_ERROR, "offline"),
            ]
        )
        manager = SessionManager(api)
        await manager.login(STAFF_IDENTIFIER, STAFF_SECRET)

        await manager.logout()

        assert manager.is_authenticated is False
        api.clear_cookies.assert_called_once()

    @pytest.mark.asyncio
    async def test_expire_is_local_only(self, session, api_client, hub):
        await session.login(STAFF_IDENTIFIER, STAFF_SECRET)
        other_tab = SessionManager(api_client, hub.channel("auth"))
        await other_tab.start()

        session.expire()

        assert session.is_authenticated is False
        assert other_tab.is_authenticated is True


@pytest.mark.unit
class TestCrossTab:
    """Broadcast propagation between sibling sessions."""

    @pytest.mark.asyncio
    async def test_login_propagates_by_refresh(self, api_client, hub):
        tab_a = SessionManager(api_client, hub.channel("auth"))
        tab_b = SessionManager(api_client, hub.channel("auth"))
        await tab_a.start()
        await tab_b.start()

        await tab_a.login(STAFF_IDENTIFIER, STAFF_SECRET)

        assert tab_b.is_authenticated is True
        assert tab_b.user.id == "emp-001"
        assert tab_b.get_access_token()

    @pytest.mark.asyncio
    async def test_logout_propagates(self, api_client, hub):
        tab_a = SessionManager(api_client, hub.channel("auth"))
        tab_b = SessionManager(api_client, hub.channel("auth"))
        await tab_a.start()
        await tab_b.start()
        await tab_a.login(STAFF_IDENTIFIER, STAFF_SECRET)

        await tab_a.logout()

        assert tab_a.is_authenticated is False
        assert tab_b.is_authenticated is False
        assert tab_b.get_access_token() is None

    @pytest.mark.asyncio
    async def test_closed_tab_ignores_broadcasts(self, api_client, hub):
        tab_a = SessionManager(api_client, hub.channel("auth"))
        tab_b = SessionManager(api_client, hub.channel("auth"))
        await tab_a.start()
        await tab_b.start()
        await tab_b.close()

        await tab_a.login(STAFF_IDENTIFIER, STAFF_SECRET)

        assert tab_b.is_authenticated is False
