"""
Application configuration using Pydantic Settings.

Configuration values can be set via environment variables or .env file.
"""

import json
from typing import List, Optional

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application settings
    APP_NAME: str = "Marketplace"
    VERSION: str = "2.0.0"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    HOST: str = "0.0.0.0"
    PORT: int = 8500

    DATABASE_URL: str = "sqlite:///./data/marketplace.db"
    CORS_ORIGINS: List[str] = ["http://localhost:8500", "http://localhost:3000"]

    # Logging
    LOG_LEVEL: str = "INFO"
    STRUCTURED_LOGGING: bool = False

    # Session lifecycle
    SESSION_COOKIE_NAME: str = "session"
    SESSION_TTL_SECONDS: int = 7 * 24 * 60 * 60
    SESSION_CACHE_TTL_SECONDS: int = 5 * 60
    SESSION_CACHE_SWEEP_INTERVAL_SECONDS: int = 60
    # Sliding renewal writes happen at most once per threshold window
    SESSION_ACTIVITY_UPDATE_THRESHOLD_SECONDS: int = 5 * 60
    SESSION_CLEANUP_BATCH_SIZE: int = 500
    SESSION_LIST_LIMIT: int = 1000
    SESSION_ACTIVE_WINDOW_MINUTES: int = 30

    # Shared secret for the externally triggered cleanup job
    CRON_SECRET: Optional[str] = None

    # Rate limiting configuration
    rate_limit_auth_endpoints: str = "10/minute"
    rate_limit_read_endpoints: str = "100/minute"

    # Optional Redis URL for distributed rate limiting
    # When set, rate limits will be shared across multiple instances
    redis_url: Optional[str] = None

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, value):
        """Accept a JSON list or a comma-separated string."""
        if isinstance(value, str):
            value = value.strip()
            if value.startswith("["):
                return json.loads(value)
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value

    @model_validator(mode="after")
    def check_session_windows(self) -> "Settings":
        if self.SESSION_ACTIVITY_UPDATE_THRESHOLD_SECONDS >= self.SESSION_TTL_SECONDS:
            raise ValueError(
                "SESSION_ACTIVITY_UPDATE_THRESHOLD_SECONDS must be smaller than SESSION_TTL_SECONDS"
            )
        if self.SESSION_CACHE_TTL_SECONDS <= 0 or self.SESSION_TTL_SECONDS <= 0:
            raise ValueError("Session TTL values must be positive")
        return self

    @property
    def cookie_secure(self) -> bool:
        """Session cookies carry the Secure flag only in production."""
        return self.ENVIRONMENT == "production"


# Global settings instance
settings = Settings()
