"""
Centralized configuration for TestFlow AI
All environment variables and settings are defined here
"""

from typing import Optional
from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Every value has a hardcoded fallback so the service starts with no .env file.
    """

    # ======================
    # Model API Configuration
    # ======================
    ANTHROPIC_API_KEY: str = Field(default="", description="Anthropic API key")
    ANTHROPIC_BASE_URL: Optional[str] = Field(
        default=None,
        description="Override for the model API base URL (proxy or local gateway)"
    )
    ANTHROPIC_MODEL: str = Field(
        default="claude-sonnet-4-20250514",
        description="Model used for test generation"
    )
    MAX_TOKENS: int = Field(
        default=4000,
        description="Max response tokens for page-level test generation"
    )
    ELEMENT_MAX_TOKENS: int = Field(
        default=3000,
        description="Max response tokens for element-level test generation"
    )

    # ======================
    # Rate Limiting
    # ======================
    RATE_LIMIT_WINDOW_MS: int = Field(
        default=60000,  # 1 minute
        description="Sliding window length in milliseconds"
    )
    RATE_LIMIT_MAX_REQUESTS: int = Field(
        default=10,
        description="Requests allowed per identifier inside one window"
    )

    # ======================
    # Environment
    # ======================
    ENVIRONMENT: str = Field(
        default="development",
        description="development or production (production blocks local/private URLs)"
    )

    # ======================
    # Redis Configuration
    # ======================
    REDIS_URL: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL"
    )

    # ======================
    # Celery Configuration
    # ======================
    CELERY_BROKER_URL: Optional[str] = Field(
        default=None,
        description="Celery broker URL (defaults to REDIS_URL if not set)"
    )
    CELERY_RESULT_BACKEND: str = Field(
        default="redis://localhost:6379/1",
        description="Celery result backend URL"
    )
    CELERY_RESULT_EXPIRES: int = Field(
        default=3600,
        description="Time in seconds before task results expire"
    )

    # ======================
    # Browser Configuration
    # ======================
    VIEWPORT_WIDTH: int = Field(default=1600, description="Browser viewport width")
    VIEWPORT_HEIGHT: int = Field(default=1200, description="Browser viewport height")
    PAGE_LOAD_TIMEOUT: int = Field(
        default=60000,
        description="Navigation timeout in milliseconds"
    )

    # ======================
    # Test Session Storage
    # ======================
    SESSION_RETENTION_DAYS: int = Field(
        default=30,
        description="Sessions older than this are removed by cleanup"
    )
    HISTORY_LIMIT: int = Field(
        default=5,
        description="Default number of sessions returned by history lookups"
    )

    # ======================
    # Logging Configuration
    # ======================
    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level"
    )

    @property
    def celery_broker(self) -> str:
        """Get Celery broker URL, defaulting to REDIS_URL if not set"""
        return self.CELERY_BROKER_URL or self.REDIS_URL

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"  # Allow extra env vars in .env file


# Global settings instance
settings = Settings()


# ======================
# Convenience Functions
# ======================

def get_redis_url() -> str:
    """Get Redis connection URL"""
    return settings.REDIS_URL


def get_celery_broker_url() -> str:
    """Get Celery broker URL"""
    return settings.celery_broker


def get_celery_result_backend() -> str:
    """Get Celery result backend URL"""
    return settings.CELERY_RESULT_BACKEND


def get_anthropic_api_key() -> str:
    """Get Anthropic API key"""
    return settings.ANTHROPIC_API_KEY


def get_anthropic_model() -> str:
    """Get Anthropic model name"""
    return settings.ANTHROPIC_MODEL
