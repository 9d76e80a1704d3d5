"""
Storage Exceptions

All exceptions related to the durable queue store. These are the only
failures that propagate out of the submission queue: losing a write
silently is worse than a visible error.
"""

from compliance_sync.core.exceptions.base import ComplianceSyncError


class StorageError(ComplianceSyncError):
    """Base exception for durable store errors."""
    pass


class StorageUnavailableError(StorageError):
    """
    Raised when the durable store cannot be reached.

    Common causes:
    - Redis not running or unreachable
    - Store used before connect()
    """
    pass


class StorageWriteError(StorageError):
    """
    Raised when a write to the durable store fails.

    The caller of enqueue() receives this and must tell the user to retry;
    the record has NOT been queued.
    """
    pass
