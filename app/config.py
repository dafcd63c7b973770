"""
Configuration management using pydantic-settings.
Loads environment variables with type validation.
"""

from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "AI Flashcards Backend"
    app_version: str = "0.1.0"
    debug: bool = False

    # Database
    database_url: str

    # Redis (quota store)
    redis_url: str = "redis://localhost:6379/0"
    # Applies to both the hourly and monthly checks when Redis is unreachable
    quota_fail_open: bool = False

    # Clerk
    clerk_secret_key: str = ""
    clerk_jwks_url: str = "https://api.clerk.com/v1/jwks"
    clerk_issuer: Optional[str] = None
    clerk_webhook_secret: str = ""

    # Stripe
    stripe_secret_key: str = ""
    stripe_webhook_secret: str = ""
    stripe_price_basic: str = "price_basic"
    stripe_price_premium: str = "price_premium"
    stripe_price_pro: str = "price_pro"

    # Generative model (OpenAI-compatible endpoint)
    ai_api_key: str = ""
    ai_base_url: str = "https://generativelanguage.googleapis.com/v1beta/openai/"
    ai_model: str = "gemini-2.0-flash"

    # Card previews
    preview_ttl_hours: int = 24
    preview_cleanup_interval_minutes: int = 60

    # CORS
    cors_origins: str = "http://localhost:3000"

    # Server
    host: str = "0.0.0.0"
    port: int = 8080

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.cors_origins.split(",")]


@lru_cache
def get_settings() -> Settings:
    """
    Cached settings instance.
    Use dependency injection in FastAPI routes.
    """
    return Settings()
