"""
System Constants and Enumerations

This module defines system-wide constants and enumerations used across
the compliance sync subsystem.

Architectural Decision: Centralized constants for maintainability
- Single source of truth for magic numbers
- Type-safe enums for state management
- Wire-level error codes shared by the API client, queue and mock backend
"""

from enum import Enum

# ============================================================================
# Queue Entry Status
# ============================================================================


class EntryStatus(str, Enum):
    """
    Lifecycle of a queued log entry.

    PENDING: Awaiting delivery
    FAILED: Permanently rejected by the backend (needs a human)
    SYNCED: Accepted by the backend (or recognized as a duplicate)
    """

    PENDING = "pending"
    FAILED = "failed"
    SYNCED = "synced"


# ============================================================================
# Session Status
# ============================================================================


class SessionStatus(str, Enum):
    """Authentication state of one process/tab."""

    UNAUTHENTICATED = "unauthenticated"
    LOADING = "loading"
    AUTHENTICATED = "authenticated"


# ============================================================================
# Cross-Tab Broadcast
# ============================================================================


class BroadcastMessageType(str, Enum):
    """Message kinds carried on the auth broadcast channel."""

    AUTH_LOGIN = "auth:login"
    AUTH_LOGOUT = "auth:logout"


# ============================================================================
# API Error Codes
# ============================================================================


class ErrorCode(str, Enum):
    """
    Error codes carried in the normalized response envelope.

    Codes the submission queue acts on:
    - CONFLICT: duplicate idempotency key, treated as delivered
    - SESSION_EXPIRED: stop draining, re-authentication required
    - VALIDATION_ERROR: permanent per-entry failure
    Everything else is transient.
    """

    SESSION_EXPIRED = "SESSION_EXPIRED"
    FORBIDDEN = "FORBIDDEN"
    CONFLICT = "CONFLICT"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    RATE_LIMITED = "RATE_LIMITED"
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    NOT_FOUND = "NOT_FOUND"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    CIRCUIT_OPEN = "CIRCUIT_OPEN"
    TIMEOUT = "TIMEOUT"
    NETWORK_ERROR = "NETWORK_ERROR"
    UNKNOWN = "UNKNOWN"


# HTTP status -> envelope error code (anything unmapped is INTERNAL_ERROR)
HTTP_STATUS_ERROR_CODES: dict[int, ErrorCode] = {
    401: ErrorCode.SESSION_EXPIRED,
    403: ErrorCode.FORBIDDEN,
    409: ErrorCode.CONFLICT,
    422: ErrorCode.VALIDATION_ERROR,
    429: ErrorCode.RATE_LIMITED,
}

# ============================================================================
# Circuit Breaker
# ============================================================================

# Only quota exhaustion trips the breaker: rate-limited, forbidden, payment required
QUOTA_STATUS_CODES = frozenset({429, 403, 402})

# Statuses the API client reports to the breaker (it filters to QUOTA_STATUS_CODES)
BREAKER_REPORTED_STATUS_CODES = frozenset({429, 403, 402, 500, 502, 503})

CB_DEFAULT_FAILURE_THRESHOLD = 5
CB_DEFAULT_RESET_TIMEOUT = 60 * 60  # 1 hour

# ============================================================================
# Timeouts (seconds)
# ============================================================================

READ_TIMEOUT = 10.0
MUTATION_TIMEOUT = 15.0

MUTATION_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})

# ============================================================================
# Queue
# ============================================================================

DRAIN_LOCK_KEY = "drainLock"
LOCK_STALE_SECONDS = 30
SYNCED_RETENTION_DAYS = 7
STATUS_POLL_INTERVAL = 10
CLEANUP_INTERVAL = 60 * 60

# ============================================================================
# Backend Paths
# ============================================================================

API_PREFIX = "/api/compliance"
PATH_LOG_ENTRY = "/log-entry"
PATH_AUTH_LOGIN = "/auth/login"
PATH_AUTH_ME = "/auth/me"
PATH_AUTH_LOGOUT = "/auth/logout"

# ============================================================================
# Storage Keys
# ============================================================================

STORAGE_KEY_ENTRIES = "entries"
STORAGE_KEY_STATUS = "status"
STORAGE_KEY_META = "meta"

# ============================================================================
# HTTP Headers
# ============================================================================

HEADER_REQUEST_ID = "X-Request-ID"
HEADER_AUTHORIZATION = "Authorization"
