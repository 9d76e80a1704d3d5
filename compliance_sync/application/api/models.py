"""Request/response models of the local agent routes."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class LoginRequest(BaseModel):
    identifier: str = Field(min_length=1)
    secret: str = Field(min_length=1)


class ConnectivityRequest(BaseModel):
    online: bool


class EnqueueResponse(_CamelModel):
    idempotency_key: str


class QueueStatusResponse(_CamelModel):
    pending: int
    failed: int
    synced: int
    total: int
    auth_required: bool
    circuit: dict[str, Any]


class HealthResponse(BaseModel):
    status: str  # healthy, degraded, unhealthy
    timestamp: str
    components: dict[str, Any] | None = None
