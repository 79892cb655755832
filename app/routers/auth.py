"""Authentication API endpoints."""

import hmac
import logging
from datetime import timedelta
from urllib.parse import urlencode
from fastapi import APIRouter, Cookie, Depends, Header, HTTPException, Query, Request, Response, status
from fastapi.responses import RedirectResponse
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.config import Settings
from app.database import get_database
from app.errors import AuthError, InvalidState, Unauthenticated, UnknownProvider
from app.models.auth import (
    AuthConfigResponse,
    MeResponse,
    MessageResponse,
    User,
    UserResponse,
)
from app.services.auth import AuthService
from app.services.states import OAuthStateStore
from app.services.users import UserStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

ACCESS_TOKEN_COOKIE = "access_token"
LOGGED_IN_COOKIE = "logged_in"
OAUTH_STATE_COOKIE = "oauth_state"


def get_app_settings(request: Request) -> Settings:
    """Dependency for the settings the app was built with."""
    return request.app.state.settings


def get_auth_service(
    request: Request,
    db: AsyncIOMotorDatabase = Depends(get_database),
) -> AuthService:
    """Dependency for auth service."""
    settings: Settings = request.app.state.settings
    return AuthService(
        users=UserStore(db),
        states=OAuthStateStore(db, timedelta(seconds=settings.oauth_state_ttl_seconds)),
        tokens=request.app.state.token_service,
        providers=request.app.state.providers,
    )


def _http_error(error: AuthError) -> HTTPException:
    """Translate an auth error into a generic HTTP error."""
    headers = None
    if error.status_code == status.HTTP_401_UNAUTHORIZED:
        headers = {"WWW-Authenticate": "Bearer"}
    return HTTPException(
        status_code=error.status_code,
        detail=error.public_message,
        headers=headers,
    )


def _extract_session_token(
    authorization: str | None,
    access_token_cookie: str | None,
) -> str | None:
    if authorization and authorization.lower().startswith("bearer "):
        token = authorization.split(" ", 1)[1].strip()
        if token:
            return token
    if access_token_cookie:
        return access_token_cookie
    return None


async def require_user(
    request: Request,
    authorization: str | None = Header(default=None),
    access_token: str | None = Cookie(default=None, alias=ACCESS_TOKEN_COOKIE),
    auth_service: AuthService = Depends(get_auth_service),
) -> User:
    """Authenticate the request before any protected handler runs.

    The resolved user is also placed on ``request.state.user``.
    """
    token = _extract_session_token(authorization, access_token)
    try:
        user = await auth_service.current_user(token)
    except AuthError as e:
        if e.status_code >= 500:
            logger.error(f"Could not resolve session user: {e}")
        raise _http_error(e) from None

    request.state.user = user
    return user


async def optional_user(
    request: Request,
    authorization: str | None = Header(default=None),
    access_token: str | None = Cookie(default=None, alias=ACCESS_TOKEN_COOKIE),
    auth_service: AuthService = Depends(get_auth_service),
) -> User | None:
    """Resolve the session user if a valid token is presented.

    Anonymous requests and rejected tokens continue with ``None``. Store
    failures are still reported.
    """
    token = _extract_session_token(authorization, access_token)
    user = None
    if token:
        try:
            user = await auth_service.current_user(token)
        except Unauthenticated:
            user = None
        except AuthError as e:
            logger.error(f"Could not resolve session user: {e}")
            raise _http_error(e) from None

    request.state.user = user
    return user


def _frontend_redirect(settings: Settings, path: str, params: dict[str, str]) -> RedirectResponse:
    query = urlencode({k: v for k, v in params.items() if v})
    url = f"{settings.frontend_url.rstrip('/')}{path}"
    if query:
        url = f"{url}?{query}"
    return RedirectResponse(url, status_code=status.HTTP_302_FOUND)


def _state_bound_to_browser(state: str | None, browser_state: str | None) -> bool:
    if not state or not browser_state:
        return False
    return hmac.compare_digest(state.encode(), browser_state.encode())


def _login_error_redirect(settings: Settings, code: str) -> RedirectResponse:
    response = _frontend_redirect(settings, "/login", {"error": code})
    _clear_auth_cookies(response)
    _clear_state_cookie(response)
    return response


def _set_state_cookie(response: Response, settings: Settings, state: str) -> None:
    response.set_cookie(
        key=OAUTH_STATE_COOKIE,
        value=state,
        max_age=settings.oauth_state_ttl_seconds,
        httponly=True,
        secure=not settings.is_development,
        samesite="lax",
        path="/",
    )


def _clear_state_cookie(response: Response) -> None:
    response.delete_cookie(OAUTH_STATE_COOKIE, path="/", httponly=True, samesite="lax")


def _set_auth_cookies(response: Response, settings: Settings, token: str, max_age: int) -> None:
    response.set_cookie(
        key=ACCESS_TOKEN_COOKIE,
        value=token,
        max_age=max_age,
        httponly=True,
        secure=not settings.is_development,
        samesite="lax",
        path="/",
    )
    # Lets frontend JS see that a session exists without exposing the token.
    response.set_cookie(
        key=LOGGED_IN_COOKIE,
        value="true",
        max_age=max_age,
        httponly=False,
        secure=not settings.is_development,
        samesite="lax",
        path="/",
    )


def _clear_auth_cookies(response: Response) -> None:
    response.delete_cookie(ACCESS_TOKEN_COOKIE, path="/", httponly=True, samesite="lax")
    response.delete_cookie(LOGGED_IN_COOKIE, path="/", samesite="lax")


@router.get("/config", response_model=AuthConfigResponse)
async def get_auth_config(request: Request) -> AuthConfigResponse:
    """Return the login providers the frontend may offer."""
    return AuthConfigResponse(providers=request.app.state.providers.enabled)


@router.get("/me", response_model=MeResponse)
async def get_me(user: User = Depends(require_user)) -> MeResponse:
    """Get authenticated user profile."""
    return MeResponse(user=UserResponse.from_user(user))


@router.post("/logout", response_model=MessageResponse)
async def logout(
    response: Response,
    auth_service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Log out: the client must discard its token; cookies are cleared."""
    auth_service.logout()
    _clear_auth_cookies(response)
    return MessageResponse(message="Logged out successfully")


@router.get("/{provider}/login")
async def login(
    provider: str,
    return_to: str | None = Query(default=None, max_length=2048),
    settings: Settings = Depends(get_app_settings),
    auth_service: AuthService = Depends(get_auth_service),
) -> RedirectResponse:
    """Redirect the browser to the provider's authorization page.

    The state is also set in an HttpOnly cookie so the callback can only be
    completed by the browser that started the login.
    """
    try:
        redirect = await auth_service.initiate_login(provider, return_to=return_to)
    except AuthError as e:
        if not isinstance(e, UnknownProvider):
            logger.error(f"Could not start {provider} login: {e}")
        raise _http_error(e) from None
    response = RedirectResponse(redirect.authorization_url, status_code=status.HTTP_302_FOUND)
    _set_state_cookie(response, settings, redirect.state)
    return response


@router.get("/{provider}/callback")
async def callback(
    provider: str,
    code: str | None = Query(default=None, max_length=2048),
    state: str | None = Query(default=None, max_length=512),
    error: str | None = Query(default=None, max_length=256),
    oauth_state: str | None = Cookie(default=None, alias=OAUTH_STATE_COOKIE),
    settings: Settings = Depends(get_app_settings),
    auth_service: AuthService = Depends(get_auth_service),
) -> RedirectResponse:
    """Finish the OAuth flow and hand the session token to the browser.

    The token travels only in an HttpOnly cookie on the redirect; failures
    redirect to the frontend login page with a public error code.
    """
    bound = _state_bound_to_browser(state, oauth_state)

    if error:
        logger.warning(f"{provider} returned OAuth error {error!r}")
        if bound:
            try:
                await auth_service.cancel_login(provider, state)
            except AuthError as e:
                logger.warning(f"Could not discard {provider} login state: {e}")
        return _login_error_redirect(settings, "access_denied")

    try:
        if not bound:
            logger.warning(f"Rejected {provider} callback: state missing or not bound to this browser")
            raise InvalidState("State is missing or does not match the browser's state cookie")
        # A missing code is rejected after the state is consumed.
        result = await auth_service.handle_callback(provider, code, state)
    except AuthError as e:
        return _login_error_redirect(settings, e.code)

    response = _frontend_redirect(
        settings,
        "/auth/callback",
        {"provider": result.user.provider.value, "return_to": result.return_to or ""},
    )
    _clear_state_cookie(response)
    _set_auth_cookies(response, settings, result.token, result.expires_in)
    return response
