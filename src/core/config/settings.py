#!/usr/bin/env python3
"""
Centralized Configuration Module using Pydantic Settings

This module provides type-safe, environment-based configuration for the
delivery and scheduling engine. Every loop, dispatcher and limiter reads its
tunables from here so behaviour can be changed per environment without code
changes.

Architectural Decision: Pydantic Settings for type safety and validation
- Environment variable loading with .env support
- Type validation at startup (fail fast on misconfiguration)
- Section views (settings.scheduler, settings.webhooks, ...) for readability
- Easy testing with reload_settings()
"""

from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """Relational store connection settings."""

    DATABASE_URL: str = Field(
        default="postgresql+asyncpg://localhost/publishing",
        description="SQLAlchemy async database URL",
    )
    DATABASE_ECHO: bool = Field(default=False, description="Echo SQL statements")
    DATABASE_POOL_SIZE: int = Field(default=10, description="Connection pool size")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class SchedulerSettings(BaseSettings):
    """
    Job dispatch loop configuration.

    The retry values are expressed in milliseconds to match the backoff
    policy used by the webhook dispatcher.
    """

    SCHEDULER_POLL_INTERVAL_SECONDS: float = Field(default=60.0, description="Dispatch loop interval")
    SCHEDULER_BATCH_SIZE: int = Field(default=50, description="Max due jobs selected per pass")
    SCHEDULER_MAX_CONCURRENCY: int = Field(default=5, description="Jobs published in parallel")
    SCHEDULER_DEFAULT_MAX_ATTEMPTS: int = Field(default=5, description="Attempts before terminal failure")
    SCHEDULER_LEASE_SECONDS: int = Field(default=300, description="Claim lease before recovery")
    SCHEDULER_RETRY_INITIAL_DELAY_MS: int = Field(default=1000, description="First retry delay")
    SCHEDULER_RETRY_BACKOFF_MULTIPLIER: float = Field(default=2.0, description="Backoff multiplier")
    SCHEDULER_RETRY_MAX_DELAY_MS: int = Field(default=30000, description="Retry delay cap")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class WebhookSettings(BaseSettings):
    """Outbound webhook delivery configuration."""

    WEBHOOK_SWEEP_INTERVAL_SECONDS: float = Field(default=30.0, description="Pending delivery sweep interval")
    WEBHOOK_SWEEP_BATCH_SIZE: int = Field(default=50, description="Deliveries retried per sweep")
    WEBHOOK_DEFAULT_TIMEOUT_MS: int = Field(default=30000, description="Default POST timeout")
    WEBHOOK_MIN_TIMEOUT_MS: int = Field(default=1000, description="Smallest accepted timeout")
    WEBHOOK_MAX_TIMEOUT_MS: int = Field(default=300000, description="Largest accepted timeout")
    WEBHOOK_LEASE_MARGIN_SECONDS: float = Field(default=60.0, description="Grace past the timeout before a delivering row is reclaimed")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class RateLimitSettings(BaseSettings):
    """
    Sliding window rate limiter configuration.

    Architectural Decision: process-local windows by default, Redis sorted
    sets when several instances must share one budget.
    """

    RATE_LIMIT_BACKEND: Literal["memory", "redis"] = Field(default="memory", description="Window store")
    RATE_LIMIT_WINDOW_SECONDS: int = Field(default=60, description="Sliding window length")
    RATE_LIMIT_DEFAULT_LIMIT: int = Field(default=50, description="Limit for unknown operations")
    REDIS_URL: str = Field(default="redis://localhost:6379/0", description="Redis URL for shared windows")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class HealthSettings(BaseSettings):
    """Provider health tracking configuration."""

    HEALTH_FAILURE_THRESHOLD: int = Field(default=5, description="Consecutive errors before unhealthy")
    HEALTH_PROBE_INTERVAL_SECONDS: float = Field(default=300.0, description="Background probe interval")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class ImageGenerationSettings(BaseSettings):
    """Image provider and stock source credentials plus fallback tuning."""

    OPENAI_API_KEY: str | None = Field(default=None, description="OpenAI API key (DALL-E)")
    GOOGLE_API_KEY: str | None = Field(default=None, description="Google API key (Imagen)")
    STABILITY_API_KEY: str | None = Field(default=None, description="Stability AI API key")
    UNSPLASH_ACCESS_KEY: str | None = Field(default=None, description="Unsplash access key")
    PEXELS_API_KEY: str | None = Field(default=None, description="Pexels API key")
    PIXABAY_API_KEY: str | None = Field(default=None, description="Pixabay API key")
    IMAGE_CACHE_TTL_SECONDS: int = Field(default=3600, description="Generated image cache TTL")
    IMAGE_MAX_PROVIDER_ATTEMPTS: int = Field(default=3, description="AI providers tried per request")
    IMAGE_PROVIDER_TIMEOUT_SECONDS: float = Field(default=60.0, description="Provider call timeout")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class SyncSettings(BaseSettings):
    """Integration sync orchestration configuration."""

    SYNC_ENABLED: bool = Field(default=True, description="Start sync loops at startup")
    SYNC_RETRY_MAX_ATTEMPTS: int = Field(default=3, description="Connector attempts per sync")
    SYNC_OVERDUE_SECONDS: int = Field(default=7200, description="Age after which a sync is overdue")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class LoggingSettings(BaseSettings):
    """
    Logging configuration for structured logging.

    Architectural Decision: structlog for production-grade logging
    """

    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: Literal["json", "console"] = Field(default="json", description="Log output format")

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return v.upper()

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class ApplicationSettings(BaseSettings):
    """General application settings."""

    ENVIRONMENT: Literal["development", "test", "staging", "production"] = Field(
        default="development",
        description="Application environment"
    )
    APP_NAME: str = Field(default="Publishing Delivery Engine", description="Application name")
    APP_VERSION: str = Field(default="1.0.0", description="Application version")
    API_HOST: str = Field(default="0.0.0.0", description="API host")
    API_PORT: int = Field(default=8000, description="API port")
    API_BASE_PATH: str = Field(default="/api/v1", description="Prefix for all API routes")
    CORS_ORIGINS: list[str] = Field(default=["*"], description="Allowed CORS origins")
    WORKERS_ENABLED: bool = Field(default=True, description="Run background loops in this process")
    CREDENTIALS_ENCRYPTION_KEY: str | None = Field(default=None, description="Fernet key for credentials")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class Settings(BaseSettings):
    """
    Main settings class that aggregates all configuration sections.

    Usage:
        from src.core.config.settings import get_settings

        settings = get_settings()
        batch = settings.scheduler.SCHEDULER_BATCH_SIZE
        backend = settings.rate_limit.RATE_LIMIT_BACKEND
    """

    # Database
    DATABASE_URL: str = Field(default="postgresql+asyncpg://localhost/publishing", description="Database URL")
    DATABASE_ECHO: bool = Field(default=False, description="Echo SQL statements")
    DATABASE_POOL_SIZE: int = Field(default=10, description="Connection pool size")

    # Scheduler
    SCHEDULER_POLL_INTERVAL_SECONDS: float = Field(default=60.0, description="Dispatch loop interval")
    SCHEDULER_BATCH_SIZE: int = Field(default=50, description="Max due jobs selected per pass")
    SCHEDULER_MAX_CONCURRENCY: int = Field(default=5, description="Jobs published in parallel")
    SCHEDULER_DEFAULT_MAX_ATTEMPTS: int = Field(default=5, description="Attempts before terminal failure")
    SCHEDULER_LEASE_SECONDS: int = Field(default=300, description="Claim lease before recovery")
    SCHEDULER_RETRY_INITIAL_DELAY_MS: int = Field(default=1000, description="First retry delay")
    SCHEDULER_RETRY_BACKOFF_MULTIPLIER: float = Field(default=2.0, description="Backoff multiplier")
    SCHEDULER_RETRY_MAX_DELAY_MS: int = Field(default=30000, description="Retry delay cap")

    # Webhooks
    WEBHOOK_SWEEP_INTERVAL_SECONDS: float = Field(default=30.0, description="Pending delivery sweep interval")
    WEBHOOK_SWEEP_BATCH_SIZE: int = Field(default=50, description="Deliveries retried per sweep")
    WEBHOOK_DEFAULT_TIMEOUT_MS: int = Field(default=30000, description="Default POST timeout")
    WEBHOOK_MIN_TIMEOUT_MS: int = Field(default=1000, description="Smallest accepted timeout")
    WEBHOOK_MAX_TIMEOUT_MS: int = Field(default=300000, description="Largest accepted timeout")
    WEBHOOK_LEASE_MARGIN_SECONDS: float = Field(default=60.0, description="Grace past the timeout before a delivering row is reclaimed")

    # Rate limiting
    RATE_LIMIT_BACKEND: Literal["memory", "redis"] = Field(default="memory", description="Window store")
    RATE_LIMIT_WINDOW_SECONDS: int = Field(default=60, description="Sliding window length")
    RATE_LIMIT_DEFAULT_LIMIT: int = Field(default=50, description="Limit for unknown operations")
    REDIS_URL: str = Field(default="redis://localhost:6379/0", description="Redis URL for shared windows")

    # Provider health
    HEALTH_FAILURE_THRESHOLD: int = Field(default=5, description="Consecutive errors before unhealthy")
    HEALTH_PROBE_INTERVAL_SECONDS: float = Field(default=300.0, description="Background probe interval")

    # Image generation
    OPENAI_API_KEY: str | None = Field(default=None, description="OpenAI API key (DALL-E)")
    GOOGLE_API_KEY: str | None = Field(default=None, description="Google API key (Imagen)")
    STABILITY_API_KEY: str | None = Field(default=None, description="Stability AI API key")
    UNSPLASH_ACCESS_KEY: str | None = Field(default=None, description="Unsplash access key")
    PEXELS_API_KEY: str | None = Field(default=None, description="Pexels API key")
    PIXABAY_API_KEY: str | None = Field(default=None, description="Pixabay API key")
    IMAGE_CACHE_TTL_SECONDS: int = Field(default=3600, description="Generated image cache TTL")
    IMAGE_MAX_PROVIDER_ATTEMPTS: int = Field(default=3, description="AI providers tried per request")
    IMAGE_PROVIDER_TIMEOUT_SECONDS: float = Field(default=60.0, description="Provider call timeout")

    # Integration sync
    SYNC_ENABLED: bool = Field(default=True, description="Start sync loops at startup")
    SYNC_RETRY_MAX_ATTEMPTS: int = Field(default=3, description="Connector attempts per sync")
    SYNC_OVERDUE_SECONDS: int = Field(default=7200, description="Age after which a sync is overdue")

    # Logging
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: Literal["json", "console"] = Field(default="json", description="Log output format")

    # Application
    ENVIRONMENT: Literal["development", "test", "staging", "production"] = Field(
        default="development",
        description="Application environment"
    )
    APP_NAME: str = Field(default="Publishing Delivery Engine", description="Application name")
    APP_VERSION: str = Field(default="1.0.0", description="Application version")
    API_HOST: str = Field(default="0.0.0.0", description="API host")
    API_PORT: int = Field(default=8000, description="API port")
    API_BASE_PATH: str = Field(default="/api/v1", description="Prefix for all API routes")
    CORS_ORIGINS: list[str] = Field(default=["*"], description="Allowed CORS origins")
    WORKERS_ENABLED: bool = Field(default=True, description="Run background loops in this process")
    CREDENTIALS_ENCRYPTION_KEY: str | None = Field(default=None, description="Fernet key for credentials")

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return v.upper()

    # Section views
    @property
    def database(self) -> DatabaseSettings:
        """Get database settings."""
        return DatabaseSettings(
            DATABASE_URL=self.DATABASE_URL,
            DATABASE_ECHO=self.DATABASE_ECHO,
            DATABASE_POOL_SIZE=self.DATABASE_POOL_SIZE,
        )

    @property
    def scheduler(self) -> SchedulerSettings:
        """Get job scheduler settings."""
        return SchedulerSettings(
            SCHEDULER_POLL_INTERVAL_SECONDS=self.SCHEDULER_POLL_INTERVAL_SECONDS,
            SCHEDULER_BATCH_SIZE=self.SCHEDULER_BATCH_SIZE,
            SCHEDULER_MAX_CONCURRENCY=self.SCHEDULER_MAX_CONCURRENCY,
            SCHEDULER_DEFAULT_MAX_ATTEMPTS=self.SCHEDULER_DEFAULT_MAX_ATTEMPTS,
            SCHEDULER_LEASE_SECONDS=self.SCHEDULER_LEASE_SECONDS,
            SCHEDULER_RETRY_INITIAL_DELAY_MS=self.SCHEDULER_RETRY_INITIAL_DELAY_MS,
            SCHEDULER_RETRY_BACKOFF_MULTIPLIER=self.SCHEDULER_RETRY_BACKOFF_MULTIPLIER,
            SCHEDULER_RETRY_MAX_DELAY_MS=self.SCHEDULER_RETRY_MAX_DELAY_MS,
        )

    @property
    def webhooks(self) -> WebhookSettings:
        """Get webhook delivery settings."""
        return WebhookSettings(
            WEBHOOK_SWEEP_INTERVAL_SECONDS=self.WEBHOOK_SWEEP_INTERVAL_SECONDS,
            WEBHOOK_SWEEP_BATCH_SIZE=self.WEBHOOK_SWEEP_BATCH_SIZE,
            WEBHOOK_DEFAULT_TIMEOUT_MS=self.WEBHOOK_DEFAULT_TIMEOUT_MS,
            WEBHOOK_MIN_TIMEOUT_MS=self.WEBHOOK_MIN_TIMEOUT_MS,
            WEBHOOK_MAX_TIMEOUT_MS=self.WEBHOOK_MAX_TIMEOUT_MS,
            WEBHOOK_LEASE_MARGIN_SECONDS=self.WEBHOOK_LEASE_MARGIN_SECONDS,
        )

    @property
    def rate_limit(self) -> RateLimitSettings:
        """Get rate limit settings."""
        return RateLimitSettings(
            RATE_LIMIT_BACKEND=self.RATE_LIMIT_BACKEND,
            RATE_LIMIT_WINDOW_SECONDS=self.RATE_LIMIT_WINDOW_SECONDS,
            RATE_LIMIT_DEFAULT_LIMIT=self.RATE_LIMIT_DEFAULT_LIMIT,
            REDIS_URL=self.REDIS_URL,
        )

    @property
    def health(self) -> HealthSettings:
        """Get provider health settings."""
        return HealthSettings(
            HEALTH_FAILURE_THRESHOLD=self.HEALTH_FAILURE_THRESHOLD,
            HEALTH_PROBE_INTERVAL_SECONDS=self.HEALTH_PROBE_INTERVAL_SECONDS,
        )

    @property
    def image_generation(self) -> ImageGenerationSettings:
        """Get image generation settings."""
        return ImageGenerationSettings(
            OPENAI_API_KEY=self.OPENAI_API_KEY,
            GOOGLE_API_KEY=self.GOOGLE_API_KEY,
            STABILITY_API_KEY=self.STABILITY_API_KEY,
            UNSPLASH_ACCESS_KEY=self.UNSPLASH_ACCESS_KEY,
            PEXELS_API_KEY=self.PEXELS_API_KEY,
            PIXABAY_API_KEY=self.PIXABAY_API_KEY,
            IMAGE_CACHE_TTL_SECONDS=self.IMAGE_CACHE_TTL_SECONDS,
            IMAGE_MAX_PROVIDER_ATTEMPTS=self.IMAGE_MAX_PROVIDER_ATTEMPTS,
            IMAGE_PROVIDER_TIMEOUT_SECONDS=self.IMAGE_PROVIDER_TIMEOUT_SECONDS,
        )

    @property
    def sync(self) -> SyncSettings:
        """Get integration sync settings."""
        return SyncSettings(
            SYNC_ENABLED=self.SYNC_ENABLED,
            SYNC_RETRY_MAX_ATTEMPTS=self.SYNC_RETRY_MAX_ATTEMPTS,
            SYNC_OVERDUE_SECONDS=self.SYNC_OVERDUE_SECONDS,
        )

    @property
    def logging(self) -> LoggingSettings:
        """Get logging settings."""
        return LoggingSettings(LOG_LEVEL=self.LOG_LEVEL, LOG_FORMAT=self.LOG_FORMAT)

    @property
    def app(self) -> ApplicationSettings:
        """Get application settings."""
        return ApplicationSettings(
            ENVIRONMENT=self.ENVIRONMENT,
            APP_NAME=self.APP_NAME,
            APP_VERSION=self.APP_VERSION,
            API_HOST=self.API_HOST,
            API_PORT=self.API_PORT,
            API_BASE_PATH=self.API_BASE_PATH,
            CORS_ORIGINS=self.CORS_ORIGINS,
            WORKERS_ENABLED=self.WORKERS_ENABLED,
            CREDENTIALS_ENCRYPTION_KEY=self.CREDENTIALS_ENCRYPTION_KEY,
        )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )


_settings: Settings | None = None


def get_settings() -> Settings:
    """
    Get the settings instance, building it on first use.

    Returns:
        Settings: Loaded settings
    """
    global _settings

    if _settings is None:
        _settings = Settings()

    return _settings


def reload_settings() -> Settings:
    """
    Reload settings from the environment (useful for testing).

    Returns:
        Settings: New settings instance
    """
    global _settings
    _settings = Settings()
    return _settings
