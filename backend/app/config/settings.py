"""
Application Settings for App Ideas Finder

Centralized configuration using Pydantic Settings with .env support.
All environment variables are validated at startup.
"""

from functools import lru_cache
from typing import Optional
from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Stripe, Resend and Grok keys are optional so the API can boot without
    them; the routes that need them fail with a ConfigurationError instead.
    """

    # Supabase Configuration
    supabase_url: str
    supabase_anon_key: Optional[str] = None
    supabase_service_role_key: str
    supabase_jwt_secret: Optional[str] = None
    session_cookie_name: str = "sb-access-token"

    # Application Settings
    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"
    site_url: str = "https://www.appideasfinder.com"

    # CORS Configuration
    allowed_origins: list[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    # Stripe Configuration
    stripe_secret_key: Optional[str] = None
    stripe_webhook_secret: Optional[str] = None
    stripe_price_trial: Optional[str] = None
    stripe_price_core_monthly: Optional[str] = None
    stripe_price_core_annual: Optional[str] = None
    stripe_price_prime_monthly: Optional[str] = None
    stripe_price_prime_annual: Optional[str] = None

    # Trial and bonus policy
    trial_days: int = 3
    waitlist_bonus_searches: int = 75

    # Email (Resend)
    resend_api_key: Optional[str] = None
    email_from: str = "App Ideas Finder <noreply@appideasfinder.com>"
    admin_alert_email: str = "info@appideasfinder.com"
    default_reply_to: str = "info@appideasfinder.com"

    # Cron shared secret (GET /api/cron/convert-trials)
    cron_secret: Optional[str] = None

    # Grok (xAI) Configuration
    grok_api_key: Optional[str] = None
    grok_api_url: str = "https://api.x.ai/v1/chat/completions"
    grok_model: str = "grok-3-mini"
    grok_timeout_seconds: float = 120.0

    # Database Configuration (SQLModel/SQLAlchemy)
    database_url: Optional[str] = None
    database_pool_size: int = 5
    database_max_overflow: int = 10
    database_pool_timeout: int = 30
    database_echo: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @model_validator(mode="after")
    def validate_settings(self) -> "Settings":
        """Normalize the database URL and reject impossible trial lengths."""
        if self.database_url:
            if self.database_url.startswith("postgresql://"):
                self.database_url = self.database_url.replace(
                    "postgresql://", "postgresql+asyncpg://", 1
                )
            elif self.database_url.startswith("postgres://"):
                self.database_url = self.database_url.replace(
                    "postgres://", "postgresql+asyncpg://", 1
                )

        if self.trial_days <= 0:
            raise ValueError("TRIAL_DAYS must be positive")

        self.site_url = self.site_url.rstrip("/")
        return self

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment.lower() == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development."""
        return self.environment.lower() == "development"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience export for direct import
settings = get_settings()
