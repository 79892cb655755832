"""OAuth 2.0 identity provider clients (GitHub, Google)."""

from abc import ABC, abstractmethod
from typing import Any
import httpx
import logging
from pydantic import ValidationError

from app.config import Settings
from app.errors import InvalidGrant, ProviderError, UnknownProvider
from app.models.auth import ExternalProfile, Provider

logger = logging.getLogger(__name__)

# Token endpoint error codes meaning the authorization code itself was refused.
REJECTED_GRANT_ERRORS = {"invalid_grant", "bad_verification_code"}


class IdentityProvider(ABC):
    """One OAuth 2.0 authorization-code provider.

    Subclasses supply endpoints, scopes and profile parsing. Provider
    responses are treated as untrusted input.
    """

    provider: Provider
    authorize_url: str
    token_url: str
    scope: str

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_url: str,
        http_client: httpx.AsyncClient,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_url = redirect_url
        self.http_client = http_client

    def _authorization_params(self, state: str) -> dict[str, str]:
        return {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_url,
            "scope": self.scope,
            "state": state,
        }

    def _token_params(self, code: str) -> dict[str, str]:
        return {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "code": code,
            "redirect_uri": self.redirect_url,
        }

    def build_authorization_url(self, state: str) -> str:
        """Build the provider authorize URL carrying ``state``."""
        return str(httpx.URL(self.authorize_url, params=self._authorization_params(state)))

    async def exchange_code(self, code: str) -> ExternalProfile:
        """Exchange an authorization code for the user's provider profile.

        Raises:
            InvalidGrant: the provider refused the code.
            ProviderError: network failure, timeout, non-2xx or malformed payload.
        """
        access_token = await self._exchange_token(code)
        return await self._fetch_profile(access_token)

    @abstractmethod
    async def _fetch_profile(self, access_token: str) -> ExternalProfile:
        """Fetch and validate the profile for an access token."""

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self.http_client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise ProviderError(f"{self.provider.value} request to {url} timed out") from e
        except httpx.HTTPError as e:
            raise ProviderError(f"{self.provider.value} request to {url} failed: {e}") from e

    def _json(self, response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise ProviderError(
                f"{self.provider.value} returned non-JSON from {response.request.url}"
            ) from e

    async def _exchange_token(self, code: str) -> str:
        response = await self._request(
            "POST",
            self.token_url,
            data=self._token_params(code),
            headers={"Accept": "application/json"},
        )
        payload = self._json(response) if response.content else {}
        if not isinstance(payload, dict):
            raise ProviderError(f"{self.provider.value} token response is not an object")

        error = payload.get("error")
        if error in REJECTED_GRANT_ERRORS:
            raise InvalidGrant(f"{self.provider.value} rejected authorization code: {error}")
        if error or not response.is_success:
            raise ProviderError(
                f"{self.provider.value} token exchange failed "
                f"(status {response.status_code}, error {error!r})"
            )

        access_token = payload.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            raise ProviderError(f"{self.provider.value} token response has no access_token")
        return access_token

    async def _get_json(self, url: str, access_token: str, accept: str = "application/json") -> Any:
        response = await self._request(
            "GET",
            url,
            headers={
                "Authorization": f"Bearer {access_token}",
                "Accept": accept,
            },
        )
        if not response.is_success:
            raise ProviderError(
                f"{self.provider.value} API error {response.status_code} from {url}"
            )
        return self._json(response)

    def _build_profile(
        self,
        external_id: Any,
        email: Any,
        name: Any,
        avatar_url: Any,
    ) -> ExternalProfile:
        if external_id is None or isinstance(external_id, bool) or str(external_id).strip() == "":
            raise ProviderError(f"{self.provider.value} profile has no stable id")
        if not isinstance(email, str) or not email.strip():
            raise ProviderError(f"{self.provider.value} profile has no email")
        try:
            return ExternalProfile(
                provider=self.provider,
                external_id=str(external_id).strip(),
                email=email.strip().lower(),
                name=name.strip() if isinstance(name, str) else "",
                avatar_url=avatar_url if isinstance(avatar_url, str) and avatar_url else None,
            )
        except ValidationError as e:
            raise ProviderError(f"{self.provider.value} profile failed validation: {e}") from e


class GitHubProvider(IdentityProvider):
    """GitHub OAuth app login."""

    provider = Provider.GITHUB
    authorize_url = "https://github.com/login/oauth/authorize"
    token_url = "https://github.com/login/oauth/access_token"
    api_url = "https://api.github.com"
    scope = "read:user user:email"

    async def _fetch_profile(self, access_token: str) -> ExternalProfile:
        user_data = await self._get_json(
            f"{self.api_url}/user",
            access_token,
            accept="application/vnd.github+json",
        )
        if not isinstance(user_data, dict):
            raise ProviderError("github user response is not an object")

        email = user_data.get("email")
        if not email:
            email = await self._fetch_verified_email(access_token)

        return self._build_profile(
            external_id=user_data.get("id"),
            email=email,
            name=user_data.get("name") or user_data.get("login"),
            avatar_url=user_data.get("avatar_url"),
        )

    async def _fetch_verified_email(self, access_token: str) -> str | None:
        """Pick the primary verified email, else any verified one."""
        try:
            emails = await self._get_json(
                f"{self.api_url}/user/emails",
                access_token,
                accept="application/vnd.github+json",
            )
        except ProviderError as e:
            logger.warning(f"GitHub email lookup failed: {e}")
            return None
        if not isinstance(emails, list):
            return None

        verified = [
            entry for entry in emails
            if isinstance(entry, dict) and entry.get("verified") and entry.get("email")
        ]
        for entry in verified:
            if entry.get("primary"):
                return entry["email"]
        return verified[0]["email"] if verified else None


class GoogleProvider(IdentityProvider):
    """Google OAuth 2.0 login."""

    provider = Provider.GOOGLE
    authorize_url = "https://accounts.google.com/o/oauth2/v2/auth"
    token_url = "https://oauth2.googleapis.com/token"
    userinfo_url = "https://www.googleapis.com/oauth2/v2/userinfo"
    scope = "openid email profile"

    def _authorization_params(self, state: str) -> dict[str, str]:
        params = super()._authorization_params(state)
        params["response_type"] = "code"
        return params

    def _token_params(self, code: str) -> dict[str, str]:
        params = super()._token_params(code)
        params["grant_type"] = "authorization_code"
        return params

    async def _fetch_profile(self, access_token: str) -> ExternalProfile:
        user_data = await self._get_json(self.userinfo_url, access_token)
        if not isinstance(user_data, dict):
            raise ProviderError("google userinfo response is not an object")
        if user_data.get("verified_email") is False:
            raise ProviderError("google account email is not verified")

        return self._build_profile(
            external_id=user_data.get("id"),
            email=user_data.get("email"),
            name=user_data.get("name"),
            avatar_url=user_data.get("picture"),
        )


PROVIDER_CLASSES: dict[Provider, type[IdentityProvider]] = {
    Provider.GITHUB: GitHubProvider,
    Provider.GOOGLE: GoogleProvider,
}


class ProviderRegistry:
    """Selects the identity provider implementation for a provider tag.

    Owns the shared HTTP client used by every provider.
    """

    def __init__(
        self,
        providers: dict[Provider, IdentityProvider],
        http_client: httpx.AsyncClient | None = None,
    ):
        self._providers = dict(providers)
        self._http_client = http_client

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        http_client: httpx.AsyncClient | None = None,
    ) -> "ProviderRegistry":
        """Build providers for every tag with a client id and secret configured."""
        client = http_client or httpx.AsyncClient(timeout=settings.provider_timeout_seconds)
        providers: dict[Provider, IdentityProvider] = {}
        for tag, provider_class in PROVIDER_CLASSES.items():
            client_id = getattr(settings, f"{tag.value}_client_id")
            client_secret = getattr(settings, f"{tag.value}_client_secret")
            if not client_id or not client_secret:
                logger.info(f"{tag.value} login disabled: client credentials not configured")
                continue
            providers[tag] = provider_class(
                client_id=client_id,
                client_secret=client_secret,
                redirect_url=getattr(settings, f"{tag.value}_redirect_url"),
                http_client=client,
            )
        return cls(providers, http_client=client)

    @property
    def enabled(self) -> list[Provider]:
        return list(self._providers)

    def get(self, provider: Provider | str) -> IdentityProvider:
        """Get the provider for a tag, raising UnknownProvider otherwise."""
        try:
            tag = Provider(provider)
        except ValueError:
            raise UnknownProvider(f"Unknown provider {provider!r}") from None
        if tag not in self._providers:
            raise UnknownProvider(f"Provider {tag.value} is not configured")
        return self._providers[tag]

    async def close(self) -> None:
        """Close the shared HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None
