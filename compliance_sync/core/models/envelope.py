"""
Normalized API response envelope.

Every backend call, whatever the transport outcome, is reduced to one shape:

    {"success": true,  "data": {...}}
    {"success": false, "error": {"code": "...", "message": "...", "field": "...", "retryAfter": 30}}

This is the tagged result type the queue and session manager branch on;
expected failures never surface as exceptions.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from compliance_sync.core.config.constants import ErrorCode


class ApiError(BaseModel):
    """Structured error returned by the backend or synthesized by the client."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    code: str = ErrorCode.UNKNOWN.value
    message: str = ""
    field: str | None = None
    retry_after: int | None = None

    def has_code(self, code: ErrorCode) -> bool:
        return self.code == code.value


class ApiResponse(BaseModel):
    """Success/failure envelope."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    success: bool
    data: Any = None
    error: ApiError | None = None

    @classmethod
    def ok(cls, data: Any = None) -> "ApiResponse":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, code: ErrorCode | str, message: str, **extra: Any) -> "ApiResponse":
        code_value = code.value if isinstance(code, ErrorCode) else code
        return cls(success=False, error=ApiError(code=code_value, message=message, **extra))

    @property
    def error_code(self) -> str | None:
        return self.error.code if self.error else None

    def to_wire(self) -> dict[str, Any]:
        """Serialize with camelCase error keys, omitting empty fields."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
