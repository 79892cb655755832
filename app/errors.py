"""Error types raised by the authentication subsystem.

Every error carries the HTTP status it maps to and a short public code that is
safe to put in a redirect query string. The exception message is internal
detail for the log only; it is never sent to the client.
"""

from fastapi import status


class AuthError(Exception):
    """Base class for authentication errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "auth_failed"
    public_message: str = "Authentication failed"


class UnknownProvider(AuthError):
    """The requested identity provider is not known or not configured."""

    status_code = status.HTTP_404_NOT_FOUND
    code = "unknown_provider"
    public_message = "Unknown identity provider"


class ProviderError(AuthError):
    """The identity provider was unreachable or returned a malformed response."""

    status_code = status.HTTP_502_BAD_GATEWAY
    code = "provider_error"
    public_message = "Identity provider unavailable"


class InvalidGrant(AuthError):
    """The provider rejected the authorization code."""

    status_code = status.HTTP_401_UNAUTHORIZED
    code = "invalid_grant"
    public_message = "Authorization code was rejected"


class InvalidState(AuthError):
    """The OAuth state was missing, unknown, expired or already used."""

    status_code = status.HTTP_401_UNAUTHORIZED
    code = "invalid_state"
    public_message = "Login session expired, please try again"


class InvalidRequest(AuthError):
    """The callback was missing required parameters."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "invalid_request"
    public_message = "Malformed login request"


class StoreError(AuthError):
    """The user store failed to read or write."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "store_error"
    public_message = "Service temporarily unavailable"


class EmailInUse(StoreError):
    """Another account already owns the profile's email address."""

    status_code = status.HTTP_409_CONFLICT
    code = "account_conflict"
    public_message = "An account with this email already exists"


class Unauthenticated(AuthError):
    """The request carries no valid session."""

    status_code = status.HTTP_401_UNAUTHORIZED
    code = "unauthenticated"
    public_message = "Not authenticated"


class NotFound(Unauthenticated):
    """The token subject no longer exists."""


class TokenError(Unauthenticated):
    """Base class for session token verification failures."""


class Expired(TokenError):
    """The token's expiry has passed."""


class InvalidSignature(TokenError):
    """The token's signature does not match its content."""


class Malformed(TokenError):
    """The token cannot be decoded."""
