"""Authentication service for OAuth login and session tokens."""

import logging
from datetime import datetime

from app.errors import (
    AuthError,
    InvalidRequest,
    InvalidState,
    NotFound,
    TokenError,
    Unauthenticated,
)
from app.models.auth import AuthResult, LoginRedirect, Provider, User
from app.services.identity import ProviderRegistry
from app.services.states import OAuthStateStore
from app.services.tokens import TokenService
from app.services.users import UserStore
from app.utils.helpers import sanitize_return_path, utcnow

logger = logging.getLogger(__name__)


class AuthService:
    """Orchestrates login, callback, current-user lookup and logout.

    Holds no state of its own between calls; every collaborator is injected.
    """

    def __init__(
        self,
        users: UserStore,
        states: OAuthStateStore,
        tokens: TokenService,
        providers: ProviderRegistry,
    ):
        self.users = users
        self.states = states
        self.tokens = tokens
        self.providers = providers

    async def initiate_login(
        self,
        provider: Provider | str,
        return_to: str | None = None,
        now: datetime | None = None,
    ) -> LoginRedirect:
        """Create an OAuth state and return the provider URL to redirect to."""
        identity_provider = self.providers.get(provider)
        state = await self.states.create(
            identity_provider.provider,
            now or utcnow(),
            return_to=sanitize_return_path(return_to),
        )
        logger.info(f"Login initiated for {identity_provider.provider.value}")
        return LoginRedirect(
            authorization_url=identity_provider.build_authorization_url(state.state),
            state=state.state,
        )

    async def handle_callback(
        self,
        provider: Provider | str,
        code: str | None,
        presented_state: str | None,
        now: datetime | None = None,
    ) -> AuthResult:
        """Complete a login from the provider's redirect.

        The state is consumed before the code is exchanged, so a replayed or
        concurrent duplicate callback fails with InvalidState and can never
        mint a second token for the same authorization.
        """
        now = now or utcnow()
        identity_provider = self.providers.get(provider)
        tag = identity_provider.provider.value
        stage = "callback_received"

        try:
            if not presented_state:
                raise InvalidState("Callback carried no state")
            state = await self.states.consume(presented_state, identity_provider.provider, now)
            if state is None:
                raise InvalidState("State is unknown, expired, or already used")
            stage = "state_validated"

            if not code:
                raise InvalidRequest("Callback carried no authorization code")
            profile = await identity_provider.exchange_code(code)
            stage = "code_exchanged"

            user = await self.users.upsert(profile, now)
            stage = "user_upserted"

            token = self.tokens.issue(user.id, now)
        except InvalidState as e:
            logger.warning(f"Rejected {tag} callback at {stage}: possible CSRF or replay ({e})")
            raise
        except AuthError as e:
            logger.error(f"Login via {tag} failed at {stage}: {type(e).__name__}: {e}")
            raise

        logger.info(f"Login via {tag} succeeded for user {user.id}")
        return AuthResult(
            token=token,
            expires_in=self.tokens.ttl_seconds,
            user=user,
            return_to=state.return_to,
        )

    async def current_user(self, token: str | None, now: datetime | None = None) -> User:
        """Resolve the user behind a session token.

        Raises:
            Unauthenticated: token missing or failing verification.
            NotFound: token is valid but its subject no longer exists.
        """
        if not token:
            raise Unauthenticated("No session token presented")
        try:
            user_id = self.tokens.verify(token, now or utcnow())
        except TokenError as e:
            logger.info(f"Session token rejected: {type(e).__name__}")
            raise Unauthenticated("Session token failed verification") from e

        user = await self.users.find_by_id(user_id)
        if user is None:
            raise NotFound(f"User {user_id} no longer exists")
        return user

    async def cancel_login(
        self,
        provider: Provider | str,
        presented_state: str | None,
        now: datetime | None = None,
    ) -> None:
        """Discard the state of a login the provider reported as failed."""
        identity_provider = self.providers.get(provider)
        if not presented_state:
            return
        state = await self.states.consume(presented_state, identity_provider.provider, now or utcnow())
        if state is not None:
            logger.info(f"Login via {identity_provider.provider.value} cancelled; state discarded")

    def logout(self) -> None:
        """Server-side no-op.

        Tokens are stateless and cannot be revoked before expiry; the client
        is told to discard its credential.
        """
        logger.info("Logout requested; session token left to expire")
