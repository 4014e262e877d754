"""
Application configuration using Pydantic Settings.
Loads from environment variables with sensible defaults.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, RedisDsn
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
    app_name: str = "Insight Engine"
    app_version: str = "1.0.0"
    debug: bool = False
    environment: Literal["development", "staging", "production"] = "development"

    # API
    api_v1_prefix: str = "/api/v1"
    cors_origins: list[str] = ["http://localhost:3000", "http://localhost:5000"]

    # JWT Authentication
    jwt_secret_key: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"

    # Database - Individual settings (recommended)
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_database: str = "insights"
    postgres_user: str = "postgres"
    postgres_password: str = "postgres"
    database_url_override: str = ""  # e.g. sqlite+aiosqlite:///./local.db

    # Database pool settings
    database_pool_size: int = 20
    database_max_overflow: int = 10

    @property
    def database_url(self) -> str:
        """Build database URL from individual components."""
        if self.database_url_override:
            return self.database_url_override
        return f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}@{self.postgres_host}:{self.postgres_port}/{self.postgres_database}"

    # Redis
    redis_url: RedisDsn = Field(default="redis://localhost:6379/0")
    digest_cache_ttl: int = 6 * 3600  # 6 hours

    # Celery
    celery_broker_url: str = "redis://localhost:6379/1"
    celery_result_backend: str = "redis://localhost:6379/1"

    # LLM Providers
    openai_api_key: str = ""
    anthropic_api_key: str = ""

    # Default LLM Provider: "openai" or "anthropic"
    default_llm_provider: str = "openai"

    # LLM Model Configuration
    openai_model_primary: str = "gpt-4o"
    openai_model_fast: str = "gpt-4o-mini"
    anthropic_model_primary: str = "claude-3-5-sonnet-20241022"
    anthropic_model_fast: str = "claude-3-haiku-20240307"

    # LLM Settings
    llm_temperature: float = 0.3
    llm_max_tokens: int = 1024

    # Intent classifier calls (timeout per attempt, retries with backoff)
    classifier_timeout_seconds: float = 20.0
    classifier_max_attempts: int = 3
    classifier_backoff_min: float = 0.5
    classifier_backoff_max: float = 8.0

    # Pillar weights: one policy for every submission source
    weight_decay_factor: float = Field(default=0.95, gt=0.0, le=1.0)
    weight_boost_factor: float = Field(default=0.10, ge=0.0, le=1.0)
    weight_decay_mode: Literal["event", "time"] = "event"
    weight_default_value: float = Field(default=0.5, ge=0.0, le=1.0)

    # Weekly digest
    digest_window_days: int = 7
    digest_top_pillars: int = 3

    # Logging
    log_level: str = "INFO"
    log_format: Literal["json", "console"] = "console"

    # Sentry (Error Tracking)
    sentry_dsn: str = ""
    sentry_environment: str = "development"
    sentry_traces_sample_rate: float = 0.1


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
