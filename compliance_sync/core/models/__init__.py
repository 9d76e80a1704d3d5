from compliance_sync.core.models.envelope import ApiError, ApiResponse
from compliance_sync.core.models.queue import (
    DrainLock,
    DrainResult,
    EvictionCheck,
    LogEntryPayload,
    QueueEntry,
    QueueStatus,
)
from compliance_sync.core.models.session import (
    BroadcastMessage,
    LoginResult,
    SessionGrant,
    SessionUser,
)

__all__ = [
    "ApiError",
    "ApiResponse",
    "BroadcastMessage",
    "DrainLock",
    "DrainResult",
    "EvictionCheck",
    "LogEntryPayload",
    "LoginResult",
    "QueueEntry",
    "QueueStatus",
    "SessionGrant",
    "SessionUser",
]
