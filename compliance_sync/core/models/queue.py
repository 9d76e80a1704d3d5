"""
Submission queue models.

QueueEntry is the unit of durable work. It is stored and sent in camelCase
(the backend's wire format); Python code uses snake_case attributes.
"""

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from compliance_sync.core.config.constants import EntryStatus
from compliance_sync.core.models.envelope import ApiError


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class LogEntryPayload(_CamelModel):
    """Domain fields of one compliance log entry."""

    log_type: str = Field(min_length=1)
    employee_id: str = Field(min_length=1)
    location_id: str = Field(min_length=1)
    data: dict[str, Any] = Field(default_factory=dict)
    gps_coords: dict[str, Any] | None = None
    signature_data: str | None = None


class QueueEntry(_CamelModel):
    """
    A queued log entry.

    Invariants:
    - exactly one entry per idempotency_key; the key is what the backend
      uses to recognize a retried delivery as a duplicate
    - error is only set while status is FAILED
    """

    idempotency_key: str
    payload: LogEntryPayload
    client_created_at: datetime
    server_received_at: datetime | None = None
    status: EntryStatus = EntryStatus.PENDING
    attempts: int = 0
    error: ApiError | None = None
    synced_at: float | None = None
    queued_at: int

    def to_request_body(self) -> dict[str, Any]:
        """Body for POST /log-entry."""
        body = self.payload.model_dump(mode="json", by_alias=True)
        body["clientCreatedAt"] = self.client_created_at.isoformat()
        body["idempotencyKey"] = self.idempotency_key
        return body

    def to_storage(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class DrainLock(_CamelModel):
    """Cross-process drain lock record stored in the metadata collection."""

    owner: str
    timestamp: float

    def is_fresh(self, now: float, stale_after: float) -> bool:
        return self.timestamp > now - stale_after


@dataclass
class QueueStatus:
    pending: int = 0
    failed: int = 0
    synced: int = 0

    @property
    def total(self) -> int:
        return self.pending + self.failed + self.synced

    def to_dict(self) -> dict[str, int]:
        return {**asdict(self), "total": self.total}


@dataclass
class DrainResult:
    synced: int = 0
    failed: int = 0
    stopped: bool = False
    auth_required: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "synced": self.synced,
            "failed": self.failed,
            "stopped": self.stopped,
            "authRequired": self.auth_required,
        }


@dataclass
class EvictionCheck:
    eviction_detected: bool
    current_count: int

    def to_dict(self) -> dict[str, Any]:
        return {"evictionDetected": self.eviction_detected, "currentCount": self.current_count}
