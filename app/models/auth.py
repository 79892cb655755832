"""Authentication models."""

from datetime import datetime
from enum import Enum
from pydantic import BaseModel, Field


class Provider(str, Enum):
    """Supported OAuth identity providers."""
    GITHUB = "github"
    GOOGLE = "google"


class ExternalProfile(BaseModel):
    """Identity data returned by a provider's user-info endpoint."""
    provider: Provider
    external_id: str = Field(..., min_length=1, max_length=128)
    email: str = Field(..., min_length=3, max_length=320)
    name: str = Field(default="", max_length=255)
    avatar_url: str | None = None


class User(BaseModel):
    """Local account bound to one external identity."""
    id: str = Field(..., alias="_id")
    email: str
    name: str = ""
    avatar_url: str | None = None
    provider: Provider
    external_id: str
    created_at: datetime
    updated_at: datetime

    model_config = {
        "populate_by_name": True,
    }


class UserResponse(BaseModel):
    """Public user data returned to clients."""
    id: str
    email: str
    name: str
    avatar_url: str | None = None
    provider: Provider
    created_at: datetime

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            email=user.email,
            name=user.name,
            avatar_url=user.avatar_url,
            provider=user.provider,
            created_at=user.created_at,
        )


class MeResponse(BaseModel):
    """Response payload for the current-user endpoint."""
    user: UserResponse


class OAuthState(BaseModel):
    """Single-use nonce correlating an authorization request to its callback."""
    state: str = Field(..., min_length=16)
    provider: Provider
    return_to: str | None = None
    created_at: datetime
    expires_at: datetime


class LoginRedirect(BaseModel):
    """Where to send the browser to start a login."""
    authorization_url: str
    state: str


class AuthResult(BaseModel):
    """Outcome of a successful OAuth callback."""
    token: str
    expires_in: int
    user: User
    return_to: str | None = None


class AuthConfigResponse(BaseModel):
    """Client-side auth configuration."""
    providers: list[Provider] = Field(default_factory=list)


class MessageResponse(BaseModel):
    """Plain acknowledgement payload."""
    message: str
