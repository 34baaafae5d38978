"""
Single source of truth for application configuration.
All settings are typed and loaded from environment variables.
"""
from functools import lru_cache
from typing import Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings with graceful degradation.

    - If RESEND_API_KEY is missing, emails are skipped (not failed)
    - If no AI provider key is set, the chat endpoint returns 503
    - If COMPOSIO_API_KEY is missing, tool router features are disabled
    - All settings have sensible defaults for local development
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=True,
    )

    # === API Configuration ===
    APP_URL: str = Field(
        default="http://localhost:3000",
        description="Public URL of the web client (used in emails and redirects)"
    )
    ALLOWED_ORIGINS: list[str] = Field(
        default=["http://localhost:3000", "http://localhost:8000"],
        description="CORS allowed origins"
    )
    DEBUG: bool = Field(default=False, description="Expose error details and pretty logs")

    # === Database ===
    DATABASE_URL: str = Field(
        default="sqlite:///./data/luno.db",
        description="SQLAlchemy database URL"
    )

    # === Auth ===
    JWT_SECRET: str = Field(
        default="change-me-in-production",
        min_length=8,
        description="HMAC secret used to sign access tokens"
    )
    JWT_ALGORITHM: str = Field(default="HS256")
    ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(default=60 * 24 * 7, ge=1)

    # === Encryption ===
    ENCRYPTION_KEY: Optional[str] = Field(
        default=None,
        description="Key for AES-256-GCM (64 hex chars, or a passphrase derived with PBKDF2)"
    )

    # === Lemon Squeezy (billing) ===
    LEMONSQUEEZY_API_KEY: Optional[str] = None
    LEMONSQUEEZY_API_BASE_URL: str = Field(default="https://api.lemonsqueezy.com")
    LEMONSQUEEZY_WEBHOOK_SECRET: Optional[str] = None
    LEMONSQUEEZY_STORE_URL: Optional[str] = Field(
        default=None,
        description="Store host, e.g. luno.lemonsqueezy.com"
    )
    LEMONSQUEEZY_PRO_VARIANT_ID: Optional[str] = None
    LEMONSQUEEZY_FAMILY_VARIANT_ID: Optional[str] = None

    # === Resend (email) ===
    RESEND_API_KEY: Optional[str] = None
    RESEND_API_BASE_URL: str = Field(default="https://api.resend.com")
    RESEND_FROM_EMAIL: str = Field(default="Luno <noreply@yourdomain.com>")

    # === AI chat ===
    OPENAI_API_KEY: Optional[str] = Field(
        default=None,
        description="OpenAI API key for the chat assistant (optional)"
    )
    GOOGLE_API_KEY: Optional[str] = Field(
        default=None,
        description="Gemini API key, used through the OpenAI-compatible endpoint"
    )
    GOOGLE_OPENAI_BASE_URL: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta/openai/"
    )
    DEFAULT_CHAT_PROVIDER: str = Field(default="google", pattern="^(google|openai)$")
    DEFAULT_CHAT_MODEL: str = Field(default="gemini-2.5-flash-lite")
    CHAT_MAX_STEPS: int = Field(default=10, ge=1, le=25)
    CHAT_TEMPERATURE: float = Field(default=0.7, ge=0.0, le=2.0)
    CHAT_MAX_TOKENS: int = Field(default=2000, ge=1)

    # === Composio Tool Router ===
    COMPOSIO_API_KEY: Optional[str] = None
    COMPOSIO_BASE_URL: str = Field(default="https://backend.composio.dev")
    TOOL_ROUTER_SESSION_TTL_MINUTES: int = Field(default=60, ge=1)

    # === Background jobs ===
    NOTIFICATIONS_WEBHOOK_SECRET: Optional[str] = Field(
        default=None,
        description="Secret token for webhook-triggered notification checks"
    )
    ENABLE_SCHEDULER: bool = Field(default=False)
    NOTIFICATIONS_CRON: str = Field(default="0 * * * *")
    INVITATION_EXPIRY_DAYS: int = Field(default=7, ge=1)

    # === Cache ===
    CACHE_TTL_SECONDS: int = Field(default=60, ge=0)
    CACHE_MAX_ENTRIES: int = Field(default=4096, ge=1)

    # === Rate Limiting ===
    RATE_LIMIT_REQUESTS: int = Field(
        default=100,
        ge=1,
        description="Max requests per window"
    )
    RATE_LIMIT_WINDOW_SECONDS: int = Field(
        default=60,
        ge=1,
        description="Rate limit window in seconds"
    )

    # === Retry Configuration ===
    HTTP_RETRY_MAX_ATTEMPTS: int = Field(default=3, ge=1, le=10)
    HTTP_RETRY_WAIT_MIN_SECONDS: float = Field(default=1.0, ge=0.0)
    HTTP_RETRY_WAIT_MAX_SECONDS: float = Field(default=10.0, ge=0.0)

    @field_validator("LEMONSQUEEZY_STORE_URL")
    @classmethod
    def strip_store_scheme(cls, v: Optional[str]) -> Optional[str]:
        """Store URL is used as a bare host."""
        if v is None:
            return v
        return v.removeprefix("https://").removeprefix("http://").rstrip("/")

    @property
    def email_configured(self) -> bool:
        return self.RESEND_API_KEY is not None

    @property
    def billing_configured(self) -> bool:
        return self.LEMONSQUEEZY_STORE_URL is not None and self.LEMONSQUEEZY_PRO_VARIANT_ID is not None

    @property
    def tool_router_configured(self) -> bool:
        return self.COMPOSIO_API_KEY is not None

    @property
    def chat_configured(self) -> bool:
        """Check if at least one chat provider is available."""
        return self.OPENAI_API_KEY is not None or self.GOOGLE_API_KEY is not None


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    This is the single entry point for all configuration.
    The LRU cache ensures we only parse env vars once.
    """
    return Settings()


def reload_settings() -> Settings:
    """
    Force reload settings from environment.
    Useful for testing or when env vars change at runtime.
    """
    get_settings.cache_clear()
    return get_settings()
