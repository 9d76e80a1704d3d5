"""
Mock backend state: test users, sessions, login lockout and received entries.

All state is in memory and per app instance; `reset()` restores a fresh
backend between tests.
"""

import base64
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import orjson

LOCKOUT_THRESHOLD = 5
LOCKOUT_SECONDS = 15 * 60
ACCESS_TOKEN_TTL_SECONDS = 15 * 60


@dataclass(frozen=True)
class MockUser:
    id: str
    identifier: str
    secret: str
    name: str
    role: str
    location_id: str

    def profile(self) -> dict[str, str]:
        return {"id": self.id, "name": self.name, "role": self.role, "locationId": self.location_id}


TEST_USERS = (
    MockUser("emp-001", "5191234567", "1234", "Test Staff", "staff", "loc-wellington-001"),
    MockUser("emp-002", "5199876543", "0000", "Test Manager", "manager", "loc-wellington-001"),
)

TEST_ASSETS = (
    {"id": "asset-001", "name": "Walk-in Cooler #1", "type": "fridge", "threshold": 4},
    {"id": "asset-002", "name": "Reach-in Freezer #1", "type": "freezer", "threshold": -18},
    {"id": "asset-003", "name": "Display Fridge #1", "type": "fridge", "threshold": 4},
)


@dataclass
class LoginAttempts:
    count: int = 0
    locked_until: float | None = None


@dataclass
class MockBackendState:
    clock: Callable[[], float] = time.time
    users: tuple[MockUser, ...] = TEST_USERS
    sessions: dict[str, str] = field(default_factory=dict)
    attempts: dict[str, LoginAttempts] = field(default_factory=dict)
    received: dict[str, dict[str, Any]] = field(default_factory=dict)

    def reset(self) -> None:
        self.sessions.clear()
        self.attempts.clear()
        self.received.clear()

    # =========================================================================
    # Users and sessions
    # =========================================================================

    def find_user(self, identifier: str, secret: str) -> MockUser | None:
        return next((u for u in self.users if u.identifier == identifier and u.secret == secret), None)

    def user_by_id(self, user_id: str) -> MockUser | None:
        return next((u for u in self.users if u.id == user_id), None)

    def open_session(self, user: MockUser) -> str:
        session_id = f"mock-session-{uuid.uuid4()}"
        self.sessions[session_id] = user.id
        return session_id

    def session_user(self, session_id: str | None) -> MockUser | None:
        if not session_id or session_id not in self.sessions:
            return None
        return self.user_by_id(self.sessions[session_id])

    def close_session(self, session_id: str | None) -> None:
        if session_id:
            self.sessions.pop(session_id, None)

    # =========================================================================
    # Access tokens (opaque base64 JSON, not a real JWT)
    # =========================================================================

    def issue_token(self, user: MockUser) -> str:
        claims = {
            "sub": user.id,
            "role": user.role,
            "locationId": user.location_id,
            "exp": int((self.clock() + ACCESS_TOKEN_TTL_SECONDS) * 1000),
        }
        return base64.urlsafe_b64encode(orjson.dumps(claims)).decode("ascii")

    def user_from_token(self, token: str | None) -> MockUser | None:
        if not token:
            return None
        try:
            claims = orjson.loads(base64.urlsafe_b64decode(token.encode("ascii")))
        except (ValueError, orjson.JSONDecodeError):
            return None
        if not isinstance(claims, dict):
            return None
        exp = claims.get("exp")
        if exp is not None and exp < self.clock() * 1000:
            return None
        return self.user_by_id(claims.get("sub", ""))

    # =========================================================================
    # Login lockout
    # =========================================================================

    def retry_after(self, identifier: str) -> int | None:
        """Seconds until `identifier` may try again, or None if not locked."""
        attempts = self.attempts.get(identifier)
        if attempts is None or attempts.locked_until is None:
            return None
        now = self.clock()
        if now < attempts.locked_until:
            return max(1, int(attempts.locked_until - now + 0.999))
        self.attempts[identifier] = LoginAttempts()
        return None

    def record_failure(self, identifier: str) -> None:
        attempts = self.attempts.setdefault(identifier, LoginAttempts())
        attempts.count += 1
        if attempts.count >= LOCKOUT_THRESHOLD:
            attempts.locked_until = self.clock() + LOCKOUT_SECONDS

    def record_success(self, identifier: str) -> None:
        self.attempts[identifier] = LoginAttempts()

    # =========================================================================
    # Log entries
    # =========================================================================

    def accept_entry(self, body: dict[str, Any], user: MockUser) -> dict[str, Any] | None:
        """Store a log entry. Returns None if its idempotency key was seen before."""
        key = body["idempotencyKey"]
        if key in self.received:
            return None
        record = {
            **body,
            "id": f"log-{uuid.uuid4().hex[:8]}",
            "serverReceivedAt": datetime.now(timezone.utc).isoformat(),
            "receivedBy": user.id,
        }
        self.received[key] = record
        return record
