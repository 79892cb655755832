"""Services for the SysDes auth backend."""

from app.services.auth import AuthService
from app.services.identity import (
    IdentityProvider,
    GitHubProvider,
    GoogleProvider,
    ProviderRegistry,
)
from app.services.states import OAuthStateStore
from app.services.tokens import SigningKey, TokenService
from app.services.users import UserStore

__all__ = [
    "AuthService",
    "IdentityProvider",
    "GitHubProvider",
    "GoogleProvider",
    "ProviderRegistry",
    "OAuthStateStore",
    "SigningKey",
    "TokenService",
    "UserStore",
]
