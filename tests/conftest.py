"""Pytest configuration and fixtures for SysDes auth tests."""

import asyncio
import json
import os
from datetime import timedelta
from typing import AsyncGenerator
from urllib.parse import parse_qs
import httpx
import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import AsyncClient, ASGITransport
from mongomock_motor import AsyncMongoMockClient
from motor.motor_asyncio import AsyncIOMotorDatabase

# Set test environment before importing app modules
os.environ["MONGODB_DATABASE"] = "sysdes_test"
os.environ["JWT_SECRET"] = "test-signing-secret-with-at-least-32-bytes"
os.environ["GITHUB_CLIENT_ID"] = "gh-client-id"
os.environ["GITHUB_CLIENT_SECRET"] = "gh-client-secret"
os.environ["GITHUB_REDIRECT_URL"] = "http://localhost:4000/api/auth/github/callback"
os.environ["GOOGLE_CLIENT_ID"] = "google-client-id"
os.environ["GOOGLE_CLIENT_SECRET"] = "google-client-secret"
os.environ["GOOGLE_REDIRECT_URL"] = "http://localhost:4000/api/auth/google/callback"
os.environ["FRONTEND_URL"] = "http://localhost:3000"

from app.config import Settings, get_settings
from app.database import Database
from app.errors import InvalidGrant
from app.main import create_app
from app.models.auth import ExternalProfile, Provider
from app.services.auth import AuthService
from app.services.identity import GitHubProvider, IdentityProvider, ProviderRegistry
from app.services.states import OAuthStateStore
from app.services.tokens import SigningKey, TokenService
from app.services.users import UserStore


class FakeProvider(IdentityProvider):
    """Identity provider returning canned profiles without any network I/O."""

    provider = Provider.GITHUB
    authorize_url = "https://github.com/login/oauth/authorize"
    token_url = "https://github.com/login/oauth/access_token"
    scope = "read:user user:email"

    def __init__(self, profiles: dict[str, ExternalProfile] | None = None):
        super().__init__(
            client_id="gh-client-id",
            client_secret="gh-client-secret",
            redirect_url="http://localhost:4000/api/auth/github/callback",
            http_client=None,
        )
        self.profiles = profiles or {}
        self.exchanged: list[str] = []
        self.started = asyncio.Event()
        self.gate: asyncio.Event | None = None
        self.error: Exception | None = None

    async def exchange_code(self, code: str) -> ExternalProfile:
        self.exchanged.append(code)
        self.started.set()
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        if code not in self.profiles:
            raise InvalidGrant(f"unknown code {code}")
        return self.profiles[code]

    async def _fetch_profile(self, access_token: str) -> ExternalProfile:
        raise NotImplementedError


def github_profile(
    external_id: str = "42",
    email: str = "a@x.com",
    name: str = "A",
    avatar_url: str | None = "https://avatars.example.com/42",
) -> ExternalProfile:
    return ExternalProfile(
        provider=Provider.GITHUB,
        external_id=external_id,
        email=email,
        name=name,
        avatar_url=avatar_url,
    )


def github_api_handler(request: httpx.Request) -> httpx.Response:
    """Simulated GitHub OAuth and REST API."""
    if request.url.path == "/login/oauth/access_token":
        form = parse_qs(request.content.decode())
        code = form.get("code", [""])[0]
        if code.startswith("valid-code"):
            return httpx.Response(200, json={"access_token": f"gho_{code}", "token_type": "bearer"})
        return httpx.Response(200, json={"error": "bad_verification_code"})
    if request.url.path == "/user":
        return httpx.Response(200, json={
            "id": 42,
            "login": "a-login",
            "name": "A",
            "email": "a@x.com",
            "avatar_url": "https://avatars.example.com/42",
        })
    return httpx.Response(404, content=json.dumps({"message": "Not Found"}).encode())


def session_cookie(response: httpx.Response, name: str = "access_token") -> str | None:
    """Read a cookie value straight from the Set-Cookie headers."""
    for header in response.headers.get_list("set-cookie"):
        key, _, rest = header.partition("=")
        if key.strip() == name:
            return rest.split(";", 1)[0].strip('"') or None
    return None


@pytest.fixture
def settings() -> Settings:
    return get_settings()


@pytest_asyncio.fixture(scope="function")
async def db() -> AsyncGenerator[AsyncIOMotorDatabase, None]:
    """In-memory database with the production indexes, fresh for each test."""
    await Database.connect(get_settings(), client=AsyncMongoMockClient())
    database = Database.get_db()

    yield database

    Database.client = None
    Database.db = None


@pytest.fixture
def token_service() -> TokenService:
    return TokenService(
        SigningKey(key_id="test", secret="test-signing-secret-with-at-least-32-bytes"),
        ttl=timedelta(hours=1),
    )


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider({"valid-code": github_profile()})


@pytest.fixture
def user_store(db: AsyncIOMotorDatabase) -> UserStore:
    return UserStore(db)


@pytest.fixture
def state_store(db: AsyncIOMotorDatabase) -> OAuthStateStore:
    return OAuthStateStore(db, timedelta(minutes=10))


@pytest.fixture
def auth_service(
    user_store: UserStore,
    state_store: OAuthStateStore,
    token_service: TokenService,
    fake_provider: FakeProvider,
) -> AuthService:
    return AuthService(
        users=user_store,
        states=state_store,
        tokens=token_service,
        providers=ProviderRegistry({Provider.GITHUB: fake_provider}),
    )


@pytest_asyncio.fixture
async def app(
    db: AsyncIOMotorDatabase,
    settings: Settings,
) -> AsyncGenerator[FastAPI, None]:
    """App whose GitHub API is simulated."""
    github_client = httpx.AsyncClient(transport=httpx.MockTransport(github_api_handler))
    providers = ProviderRegistry(
        {
            Provider.GITHUB: GitHubProvider(
                client_id=settings.github_client_id,
                client_secret=settings.github_client_secret,
                redirect_url=settings.github_redirect_url,
                http_client=github_client,
            ),
        },
        http_client=github_client,
    )

    yield create_app(settings=settings, providers=providers)

    await providers.close()


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client for the test app; keeps cookies like a browser."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def other_client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """A second browser with its own cookie jar."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
