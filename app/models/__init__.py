"""Pydantic models for the SysDes auth backend."""

from app.models.auth import (
    Provider,
    ExternalProfile,
    User,
    UserResponse,
    MeResponse,
    OAuthState,
    LoginRedirect,
    AuthResult,
    AuthConfigResponse,
    MessageResponse,
)

__all__ = [
    "Provider",
    "ExternalProfile",
    "User",
    "UserResponse",
    "MeResponse",
    "OAuthState",
    "LoginRedirect",
    "AuthResult",
    "AuthConfigResponse",
    "MessageResponse",
]
