"""Configuration settings for the SysDes auth backend."""

from pydantic import Field
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Server settings
    env: str = "development"
    app_name: str = "SysDes"

    # MongoDB settings
    mongodb_url: str = "mongodb://localhost:27017"
    mongodb_database: str = "sysdes"

    # Session token settings
    jwt_secret: str = "dev-only-secret-change-in-production"
    jwt_key_id: str = "default"
    jwt_expiry_hours: int = Field(default=168, gt=0)

    # GitHub OAuth
    github_client_id: str = ""
    github_client_secret: str = ""
    github_redirect_url: str = "http://localhost:4000/api/auth/github/callback"

    # Google OAuth
    google_client_id: str = ""
    google_client_secret: str = ""
    google_redirect_url: str = "http://localhost:4000/api/auth/google/callback"

    # OAuth flow settings
    oauth_state_ttl_seconds: int = Field(default=600, gt=0)
    provider_timeout_seconds: float = Field(default=10.0, gt=0)

    # Frontend
    frontend_url: str = "http://localhost:3000"
    cors_allowed_origins: str = "http://localhost:3000"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @property
    def is_development(self) -> bool:
        """Whether the server runs in development mode."""
        return self.env.lower() == "development"

    @property
    def token_ttl_seconds(self) -> int:
        """Session token lifetime in seconds."""
        return self.jwt_expiry_hours * 3600

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.cors_allowed_origins.split(",") if origin.strip()]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
