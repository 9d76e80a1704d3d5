"""
Base Exception Class

Root of the exception hierarchy. Only conditions the caller cannot treat as
a normal outcome are raised; everything the queue and session expect to
happen (rejected entry, expired session, quota, dropped connection) is
returned as an ApiResponse or DrainResult instead.
"""

from typing import Any

from compliance_sync.core.logging.logger import get_correlation_id


class ComplianceSyncError(Exception):
    """
    Base exception for compliance sync errors.

    The correlation id defaults to the one bound to the current request or
    drain, so an error surfaced by the local agent can be matched to its log
    lines.

    Example:
        raise StorageWriteError(
            "Failed to persist queue entry",
            details={"idempotency_key": "0b7c...", "backend": "redis"}
        )
    """

    def __init__(
        self, message: str, correlation_id: str | None = None, details: dict[str, Any] | None = None
    ):
        self.message = message
        self.correlation_id = correlation_id or get_correlation_id()
        self.details = dict(details or {})
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Body returned by the local agent's error handler."""
        return {
            "error_type": type(self).__name__,
            "message": self.message,
            "correlation_id": self.correlation_id,
            "details": self.details,
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, details={self.details!r})"

    @classmethod
    def from_exception(cls, exc: Exception, message: str | None = None, **details) -> "ComplianceSyncError":
        """
        Wrap a driver exception, keeping its type and text in `details`.

        Example:
            except RedisError as e:
                raise StorageWriteError.from_exception(e, idempotency_key=key) from e
        """
        return cls(
            message or str(exc) or type(exc).__name__,
            details={"cause": type(exc).__name__, "cause_message": str(exc), **details},
        )
