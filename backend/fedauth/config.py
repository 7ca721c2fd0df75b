"""Application configuration using Pydantic settings."""

from functools import lru_cache
from typing import Any

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = "fedauth"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"  # development, staging, production

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./fedauth.db"
    DB_ECHO: bool = False

    # Security
    SECRET_KEY: str = "dev-secret-key-change-in-production"
    ALGORITHM: str = "HS256"

    # Sessions
    # cookie: Starlette SessionMiddleware (signed cookie)
    # token:  JWT carried in the Authorization header, re-issued on mutation
    # auto:   token when the request carries a bearer token, cookie otherwise
    SESSION_MODE: str = "auto"
    SESSION_COOKIE_NAME: str = "fedauth.session"
    SESSION_TOKEN_EXPIRE_MINUTES: int = 60 * 24

    # CORS
    CORS_ORIGINS: list[str] = ["http://localhost:3000", "http://localhost:5173"]

    # Monitoring
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "text"  # 'text' or 'json' (json for production)

    # ── External identity login ─────────────────────────────────────────────
    OMNIAUTH_PREFIX: str = "/auth"
    # Each entry: {"name": "github", "strategy": "pkg.module:GitHub", "args": [...], "options": {...}}
    OMNIAUTH_PROVIDERS: list[dict[str, Any]] = []
    OMNIAUTH_ALLOWED_REQUEST_METHODS: list[str] = ["GET", "POST"]
    OMNIAUTH_JSON: bool = False  # Always answer in JSON (API-only deployments)

    OMNIAUTH_FAILURE_REDIRECT: str = "/login"
    OMNIAUTH_LOGIN_FAILURE_REDIRECT: str = "/login"
    OMNIAUTH_CONNECTED_REDIRECT: str = "/"
    LOGIN_REDIRECT: str = "/"

    OMNIAUTH_FAILURE_ERROR_STATUS: int = 500
    UNOPEN_ACCOUNT_ERROR_STATUS: int = 403
    NO_MATCHING_ACCOUNT_ERROR_STATUS: int = 401

    OMNIAUTH_CREATE_ACCOUNT: bool = True  # Create accounts for unknown identities
    UPDATE_OMNIAUTH_IDENTITY: bool = True  # Refresh info/credentials/extra on every login
    VERIFY_ACCOUNT_ENABLED: bool = False  # Auto-verify unverified accounts by matching email
    OMNIAUTH_TWO_FACTORS: bool = False  # External login may satisfy a second factor
    SKIP_STATUS_CHECKS: bool = False
    EMAIL_AUTH_ENABLED: bool = False
    CHECK_CSRF: bool = True
    OMNIAUTH_REMOVAL_REQUIRES_PASSWORD: bool = True

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    @field_validator("SECRET_KEY")
    @classmethod
    def validate_secret_key(cls, v: str) -> str:
        """Validate SECRET_KEY is not using insecure defaults in production."""
        insecure_defaults = [
            "dev-secret-key-change-in-production",
            "your-secret-key-here",
            "change-me",
            "secret",
        ]

        # Get ENVIRONMENT from environment variable directly (before Settings is fully initialized)
        import os

        environment = os.getenv("ENVIRONMENT", "development")

        if environment == "production" and (v in insecure_defaults or len(v) < 32):
            raise ValueError(
                "Insecure SECRET_KEY detected in production! "
                "Generate a secure key with: openssl rand -hex 32"
            )

        return v

    @field_validator("SESSION_MODE")
    @classmethod
    def validate_session_mode(cls, v: str) -> str:
        """Only cookie, token and auto session modes are supported."""
        v = v.lower()
        if v not in ("cookie", "token", "auto"):
            raise ValueError("SESSION_MODE must be one of: cookie, token, auto")
        return v

    @field_validator("OMNIAUTH_PREFIX")
    @classmethod
    def validate_omniauth_prefix(cls, v: str) -> str:
        """Normalize the prefix to a leading slash and no trailing slash."""
        v = "/" + v.strip("/")
        return "" if v == "/" else v

    @field_validator("OMNIAUTH_ALLOWED_REQUEST_METHODS")
    @classmethod
    def validate_allowed_methods(cls, v: list[str]) -> list[str]:
        return [method.upper() for method in v]

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
