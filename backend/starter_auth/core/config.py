"""Application configuration loaded from environment variables.

Settings for the record store, HTTP surface, session cookies, and the
Sign in with Apple credentials. Uses pydantic-settings for validation and
.env file support.
"""

from typing import Literal

from pydantic import SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Session lifetime (30 days); shared by the session row and its cookie
SESSION_MAX_AGE_SECONDS = 30 * 24 * 60 * 60

# CSRF state cookie lifetime for the Apple round trip (10 minutes)
OAUTH_STATE_MAX_AGE_SECONDS = 600


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Record store
    # SQLite by default; any SQLAlchemy async URL works (e.g. postgresql+asyncpg)
    database_url: str = "sqlite+aiosqlite:///./starter_auth.db"

    # CORS (Security)
    # CRITICAL: Never set to ["*"] when allow_credentials=True
    allowed_origins: list[str] = ["http://localhost:3000"]

    # Application
    environment: str = "development"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"

    # Public base URL, used to build the Apple redirect URI
    app_url: str = "http://localhost:3000"

    # Session cookie
    session_cookie_name: str = "session"
    session_cookie_secure: bool = True
    session_cookie_samesite: Literal["lax", "strict", "none"] = "lax"

    # Sign in with Apple
    apple_team_id: str = ""
    apple_client_id: str = ""
    apple_key_id: str = ""
    apple_private_key: SecretStr = SecretStr("")
    # Off by default: identity tokens are checked for claims only
    apple_verify_id_token_signature: bool = False

    # Token exchange timeout in seconds
    oauth_http_timeout: float = 10.0

    # Rate Limiting (Security)
    rate_limit_enabled: bool = True

    @property
    def database_url_sync(self) -> str:
        """Sync database URL for Alembic."""
        return self.database_url.replace("+aiosqlite", "").replace("+asyncpg", "")

    @property
    def apple_redirect_uri(self) -> str:
        """Callback URL registered with Apple for the form_post response."""
        return f"{self.app_url.rstrip('/')}/api/v1/auth/apple/callback"

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, value: object) -> object:
        """Accept level names in any case (LOG_LEVEL=debug)."""
        return value.upper() if isinstance(value, str) else value

    @model_validator(mode="after")
    def check_production_security(self) -> "Settings":
        """Validate security requirements.

        Checks:
        - SameSite=None requires Secure flag (browser requirement)
        - CORS must not use wildcard origin (incompatible with credentials)
        - APP_URL must be https in production (Apple rejects http redirects)
        """
        if self.session_cookie_samesite == "none" and not self.session_cookie_secure:
            msg = (
                "SESSION_COOKIE_SECURE must be true when SESSION_COOKIE_SAMESITE=none. "
                "Browsers reject SameSite=None cookies without the Secure flag."
            )
            raise ValueError(msg)

        if "*" in self.allowed_origins:
            msg = (
                "ALLOWED_ORIGINS must not contain '*' (wildcard). "
                "This application uses credentials (cookies) which are "
                "incompatible with wildcard CORS origins."
            )
            raise ValueError(msg)

        if self.environment == "production" and not self.app_url.startswith(
            "https://"
        ):
            msg = f"APP_URL must use https in production. Got: {self.app_url}"
            raise ValueError(msg)

        return self


settings = Settings()
