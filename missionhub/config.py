"""Configuration settings for the MissionHub backend."""

from decimal import Decimal
from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # Supabase
    supabase_url: str
    supabase_secret_key: str | None = None  # Backend/admin access
    # Legacy key (deprecated, will be removed)
    supabase_service_role_key: str | None = None

    # JWT
    jwt_secret_key: str  # Required - no default for security
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 60 * 24 * 7  # 1 week

    # Stripe
    stripe_secret_key: str | None = None
    stripe_publishable_key: str | None = None
    stripe_webhook_secret: str | None = None
    payment_currency: str = "eur"

    # Firebase Cloud Messaging
    fcm_server_key: str | None = None
    fcm_url: str = "https://fcm.googleapis.com/fcm/send"

    # Marketplace
    commission_rate: Decimal = Field(default=Decimal("0.15"), ge=0, lt=1)
    external_call_timeout_seconds: float = Field(default=10.0, gt=0)

    # App
    environment: Literal["development", "production", "test"] = "development"
    debug: bool = False
    log_level: str = "INFO"
    rate_limit_enabled: bool = True
    # CORS: Allowed origins for cross-origin requests
    cors_origins: list[str] = [
        "http://localhost:8081",
        "http://localhost:19006",
        "http://127.0.0.1:19006",
    ]
    # Only these sources may set X-Forwarded-For
    trusted_proxy_cidrs: list[str] = [
        "10.0.0.0/8",
        "172.16.0.0/12",
        "192.168.0.0/16",
        "127.0.0.0/8",
        "::1/128",
    ]

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",  # Ignore extra env vars not in model
    )

    @property
    def is_development(self) -> bool:
        return self.environment == "development" or self.debug


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
