"""Application configuration management using Pydantic Settings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

GatewayEnvironmentName = Literal["production", "sandbox"]


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be overridden via environment variables.
    Required settings will raise validation errors if not provided.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="event-registration-backend", description="Application name")
    app_env: str = Field(default="development", description="Environment (development/staging/production)")
    debug: bool = Field(default=False, description="Enable debug mode")

    # Server
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8080, description="Server port")

    # CORS
    cors_origins: str = Field(
        default="http://localhost:3000,http://localhost:5173",
        description="Comma-separated list of allowed CORS origins",
    )

    # Supabase
    supabase_url: str = Field(..., description="Supabase project URL")
    supabase_secret_key: str = Field(..., description="Supabase secret key for backend operations")

    # Cashfree payment gateway
    cashfree_app_id: str = Field(default="", description="Cashfree PG client/app ID")
    cashfree_secret_key: str = Field(default="", description="Cashfree PG client secret")
    cashfree_environment: GatewayEnvironmentName = Field(
        default="production",
        description="Primary gateway environment",
    )
    cashfree_fallback_environment: GatewayEnvironmentName | None = Field(
        default=None,
        description="Environment to retry read-only gateway calls against when the primary fails",
    )
    cashfree_api_version: str = Field(default="2023-08-01", description="Cashfree PG API version header")
    cashfree_verify_webhooks: bool = Field(default=True, description="Verify x-webhook-signature on webhooks")
    gateway_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Upper bound for a single gateway call, independent of the transport timeout",
    )

    # Email (Resend)
    resend_api_key: str = Field(default="", description="Resend API key for sending emails")
    email_from_address: str = Field(
        default="Registrations <noreply@example.com>",
        description="From address for transactional emails",
    )
    event_display_name: str = Field(default="Spardha'26", description="Event name used in emails")

    # Frontend
    frontend_url: str = Field(
        default="http://localhost:3000",
        description="Frontend URL used for ticket links and gateway return URLs",
    )

    # Rate limiting
    rate_limit_general_requests: int = Field(default=100, description="Requests per IP per general window")
    rate_limit_general_window_seconds: int = Field(default=900, description="General window (15 minutes)")
    rate_limit_checkout_requests: int = Field(default=10, description="Order creations per IP per checkout window")
    rate_limit_checkout_window_seconds: int = Field(default=3600, description="Checkout window (1 hour)")

    # Request limits
    max_request_body_size: int = Field(default=1_048_576, description="Maximum accepted request body in bytes")

    @model_validator(mode="after")
    def drop_redundant_fallback(self) -> "Settings":
        """Ignore a fallback environment that equals the primary one."""
        if self.cashfree_fallback_environment == self.cashfree_environment:
            self.cashfree_fallback_environment = None
        return self

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins string into a list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env == "production"

    @property
    def is_gateway_configured(self) -> bool:
        """Check if Cashfree credentials are present."""
        return bool(self.cashfree_app_id and self.cashfree_secret_key)

    @property
    def ticket_base_url(self) -> str:
        """Frontend base URL without a trailing slash."""
        return self.frontend_url.rstrip("/")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton.

    Returns:
        Settings: Application settings instance.

    Note:
        Settings are cached using lru_cache for performance.
        Call get_settings.cache_clear() to reload settings.
    """
    return Settings()
