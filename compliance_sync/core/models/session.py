"""Session models: the user profile and the login/refresh grant."""

from dataclasses import dataclass

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from compliance_sync.core.config.constants import BroadcastMessageType
from compliance_sync.core.models.envelope import ApiError


class SessionUser(BaseModel):
    """Display/authorization metadata. Role checks here are UX only."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    name: str
    role: str
    location_id: str


class SessionGrant(BaseModel):
    """Payload of a successful /auth/login or /auth/me call."""

    model_config = ConfigDict(populate_by_name=True)

    access_token: str = Field(validation_alias=AliasChoices("accessToken", "access_token"))
    user: SessionUser = Field(validation_alias=AliasChoices("user", "employee"))


class BroadcastMessage(BaseModel):
    """Cross-tab message. Carries no payload: each tab re-derives its own state."""

    type: BroadcastMessageType


@dataclass
class LoginResult:
    success: bool
    error: ApiError | None = None
