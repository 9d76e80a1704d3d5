#!/usr/bin/env python3
"""
Centralized Configuration Module using Pydantic Settings

This module provides type-safe, environment-based configuration for the
compliance sync subsystem. All configuration is centralized here to ensure
consistency across modules.

Architectural Decision: Pydantic Settings for type safety and validation
- Environment variable loading with .env support
- Type validation at startup (fail fast on misconfiguration)
- Easy testing with override mechanisms
"""

from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from compliance_sync.core.config.constants import (
    API_PREFIX,
    CB_DEFAULT_FAILURE_THRESHOLD,
    CB_DEFAULT_RESET_TIMEOUT,
    CLEANUP_INTERVAL,
    LOCK_STALE_SECONDS,
    MUTATION_TIMEOUT,
    READ_TIMEOUT,
    STATUS_POLL_INTERVAL,
    SYNCED_RETENTION_DAYS,
)


class StorageSettings(BaseSettings):
    """
    Durable store configuration.

    STAGE-0.1: Storage backend selection

    memory: single-process store (tests, kiosks with one client)
    redis: shared store for several processes on one device
    """

    STORAGE_BACKEND: Literal["memory", "redis"] = Field(default="memory")
    STORAGE_KEY_PREFIX: str = Field(default="compliance")
    REDIS_HOST: str = Field(default="localhost")
    REDIS_PORT: int = Field(default=6379)
    REDIS_DB: int = Field(default=0)
    REDIS_PASSWORD: str | None = Field(default=None)
    REDIS_SOCKET_TIMEOUT: int = Field(default=5)
    REDIS_SOCKET_CONNECT_TIMEOUT: int = Field(default=5)

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class QueueSettings(BaseSettings):
    """Submission queue timings."""

    QUEUE_LOCK_STALE_SECONDS: float = Field(default=LOCK_STALE_SECONDS)
    QUEUE_SYNCED_RETENTION_DAYS: int = Field(default=SYNCED_RETENTION_DAYS)
    QUEUE_POLL_INTERVAL_SECONDS: float = Field(default=STATUS_POLL_INTERVAL)
    QUEUE_CLEANUP_INTERVAL_SECONDS: float = Field(default=CLEANUP_INTERVAL)

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class ApiSettings(BaseSettings):
    """
    Compliance backend configuration.

    STAGE-0.2: Backend endpoint configuration

    When COMPLIANCE_API_URL is unset the client talks to the bundled mock backend.
    """

    COMPLIANCE_API_URL: str | None = Field(default=None)
    COMPLIANCE_API_PREFIX: str = Field(default=API_PREFIX)
    API_READ_TIMEOUT: float = Field(default=READ_TIMEOUT)
    API_MUTATION_TIMEOUT: float = Field(default=MUTATION_TIMEOUT)

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class CircuitBreakerSettings(BaseSettings):
    """
    Circuit breaker configuration for quota protection.

    STAGE-CB: Circuit breaker thresholds
    """

    CB_FAILURE_THRESHOLD: int = Field(default=CB_DEFAULT_FAILURE_THRESHOLD)
    CB_RECOVERY_TIMEOUT: float = Field(default=CB_DEFAULT_RESET_TIMEOUT)

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class AuthSettings(BaseSettings):
    """Session broadcast configuration."""

    BROADCAST_BACKEND: Literal["local", "redis"] = Field(default="local")
    AUTH_BROADCAST_CHANNEL: str = Field(default="compliance-internal-auth")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class ConnectivitySettings(BaseSettings):
    """Optional TCP reachability probe."""

    CONNECTIVITY_PROBE_HOST: str | None = Field(default=None)
    CONNECTIVITY_PROBE_PORT: int = Field(default=443)
    CONNECTIVITY_PROBE_TIMEOUT: float = Field(default=3.0)

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class MockBackendSettings(BaseSettings):
    """Simulated latency for the bundled mock backend."""

    MOCK_API_LATENCY_MIN_MS: int = Field(default=200)
    MOCK_API_LATENCY_MAX_MS: int = Field(default=500)

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class LoggingSettings(BaseSettings):
    """
    Logging configuration for structured logging.

    STAGE-L: Logging configuration
    """

    LOG_LEVEL: str = Field(default="INFO")
    LOG_FORMAT: Literal["json", "console"] = Field(default="json")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class ApplicationSettings(BaseSettings):
    """
    General application settings.

    STAGE-0: Application initialization
    """

    ENVIRONMENT: Literal["development", "staging", "production", "test"] = Field(
        default="development"
    )
    APP_NAME: str = Field(default="Compliance Sync Agent")
    APP_VERSION: str = Field(default="1.0.0")
    API_HOST: str = Field(default="127.0.0.1")
    API_PORT: int = Field(default=8765)
    API_BASE_PATH: str = Field(default="/api/v1")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class Settings(BaseSettings):
    """
    Main settings class that aggregates all configuration sections.

    STAGE-0: Centralized configuration initialization

    Usage:
        from compliance_sync.core.config import get_settings

        settings = get_settings()
        stale_after = settings.queue.QUEUE_LOCK_STALE_SECONDS
        base_url = settings.api.COMPLIANCE_API_URL
    """

    # Storage
    STORAGE_BACKEND: Literal["memory", "redis"] = Field(default="memory", description="Durable store backend")
    STORAGE_KEY_PREFIX: str = Field(default="compliance", description="Key prefix for the durable store")
    REDIS_HOST: str = Field(default="localhost", description="Redis server host")
    REDIS_PORT: int = Field(default=6379, description="Redis server port")
    REDIS_DB: int = Field(default=0, description="Redis database number")
    REDIS_PASSWORD: str | None = Field(default=None, description="Redis password (if required)")
    REDIS_SOCKET_TIMEOUT: int = Field(default=5, description="Socket timeout in seconds")
    REDIS_SOCKET_CONNECT_TIMEOUT: int = Field(default=5, description="Connection timeout in seconds")

    # Queue
    QUEUE_LOCK_STALE_SECONDS: float = Field(default=LOCK_STALE_SECONDS, description="Drain lock is abandoned after this")
    QUEUE_SYNCED_RETENTION_DAYS: int = Field(default=SYNCED_RETENTION_DAYS, description="Synced entries kept this long")
    QUEUE_POLL_INTERVAL_SECONDS: float = Field(default=STATUS_POLL_INTERVAL, description="Status poll / drain interval")
    QUEUE_CLEANUP_INTERVAL_SECONDS: float = Field(default=CLEANUP_INTERVAL, description="Retention sweep interval")

    # Compliance API
    COMPLIANCE_API_URL: str | None = Field(default=None, description="Backend base URL (unset = mock backend)")
    COMPLIANCE_API_PREFIX: str = Field(default=API_PREFIX, description="Path prefix for every backend call")
    API_READ_TIMEOUT: float = Field(default=READ_TIMEOUT, description="Timeout for GET requests")
    API_MUTATION_TIMEOUT: float = Field(default=MUTATION_TIMEOUT, description="Timeout for POST/PUT/PATCH/DELETE")

    # Circuit Breaker
    CB_FAILURE_THRESHOLD: int = Field(default=CB_DEFAULT_FAILURE_THRESHOLD, description="Quota failures before opening")
    CB_RECOVERY_TIMEOUT: float = Field(default=CB_DEFAULT_RESET_TIMEOUT, description="Seconds before retrying")

    # Auth
    BROADCAST_BACKEND: Literal["local", "redis"] = Field(default="local", description="Cross-tab broadcast transport")
    AUTH_BROADCAST_CHANNEL: str = Field(default="compliance-internal-auth", description="Broadcast channel name")

    # Connectivity
    CONNECTIVITY_PROBE_HOST: str | None = Field(default=None, description="Host probed for reachability")
    CONNECTIVITY_PROBE_PORT: int = Field(default=443, description="Port probed for reachability")
    CONNECTIVITY_PROBE_TIMEOUT: float = Field(default=3.0, description="Probe timeout in seconds")

    # Mock backend
    MOCK_API_LATENCY_MIN_MS: int = Field(default=200, description="Minimum simulated latency")
    MOCK_API_LATENCY_MAX_MS: int = Field(default=500, description="Maximum simulated latency")

    # Logging
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: Literal["json", "console"] = Field(default="json", description="Log output format")

    # Application
    ENVIRONMENT: Literal["development", "staging", "production", "test"] = Field(
        default="development",
        description="Application environment"
    )
    APP_NAME: str = Field(default="Compliance Sync Agent", description="Application name")
    APP_VERSION: str = Field(default="1.0.0", description="Application version")
    API_HOST: str = Field(default="127.0.0.1", description="Local agent host")
    API_PORT: int = Field(default=8765, description="Local agent port")
    API_BASE_PATH: str = Field(default="/api/v1", description="Local agent route prefix")

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return v.upper()

    @field_validator(
        "CB_FAILURE_THRESHOLD",
        "CB_RECOVERY_TIMEOUT",
        "QUEUE_LOCK_STALE_SECONDS",
        "QUEUE_SYNCED_RETENTION_DAYS",
        "API_READ_TIMEOUT",
        "API_MUTATION_TIMEOUT",
    )
    @classmethod
    def validate_positive(cls, v, info):
        """Thresholds and timeouts must be positive."""
        if v <= 0:
            raise ValueError(f"{info.field_name} must be positive")
        return v

    @model_validator(mode="after")
    def validate_mock_latency(self):
        """Min latency may not exceed max latency."""
        if self.MOCK_API_LATENCY_MIN_MS > self.MOCK_API_LATENCY_MAX_MS:
            raise ValueError("MOCK_API_LATENCY_MIN_MS must not exceed MOCK_API_LATENCY_MAX_MS")
        return self

    # Nested configuration views

    @property
    def storage(self) -> 'StorageSettings':
        """Get storage settings."""
        return StorageSettings(
            STORAGE_BACKEND=self.STORAGE_BACKEND,
            STORAGE_KEY_PREFIX=self.STORAGE_KEY_PREFIX,
            REDIS_HOST=self.REDIS_HOST,
            REDIS_PORT=self.REDIS_PORT,
            REDIS_DB=self.REDIS_DB,
            REDIS_PASSWORD=self.REDIS_PASSWORD,
            REDIS_SOCKET_TIMEOUT=self.REDIS_SOCKET_TIMEOUT,
            REDIS_SOCKET_CONNECT_TIMEOUT=self.REDIS_SOCKET_CONNECT_TIMEOUT,
        )

    @property
    def queue(self) -> 'QueueSettings':
        """Get queue settings."""
        return QueueSettings(
            QUEUE_LOCK_STALE_SECONDS=self.QUEUE_LOCK_STALE_SECONDS,
            QUEUE_SYNCED_RETENTION_DAYS=self.QUEUE_SYNCED_RETENTION_DAYS,
            QUEUE_POLL_INTERVAL_SECONDS=self.QUEUE_POLL_INTERVAL_SECONDS,
            QUEUE_CLEANUP_INTERVAL_SECONDS=self.QUEUE_CLEANUP_INTERVAL_SECONDS,
        )

    @property
    def api(self) -> 'ApiSettings':
        """Get compliance API settings."""
        return ApiSettings(
            COMPLIANCE_API_URL=self.COMPLIANCE_API_URL,
            COMPLIANCE_API_PREFIX=self.COMPLIANCE_API_PREFIX,
            API_READ_TIMEOUT=self.API_READ_TIMEOUT,
            API_MUTATION_TIMEOUT=self.API_MUTATION_TIMEOUT,
        )

    @property
    def circuit_breaker(self) -> 'CircuitBreakerSettings':
        """Get circuit breaker settings."""
        return CircuitBreakerSettings(
            CB_FAILURE_THRESHOLD=self.CB_FAILURE_THRESHOLD,
            CB_RECOVERY_TIMEOUT=self.CB_RECOVERY_TIMEOUT,
        )

    @property
    def auth(self) -> 'AuthSettings':
        """Get auth broadcast settings."""
        return AuthSettings(
            BROADCAST_BACKEND=self.BROADCAST_BACKEND,
            AUTH_BROADCAST_CHANNEL=self.AUTH_BROADCAST_CHANNEL,
        )

    @property
    def connectivity(self) -> 'ConnectivitySettings':
        """Get connectivity probe settings."""
        return ConnectivitySettings(
            CONNECTIVITY_PROBE_HOST=self.CONNECTIVITY_PROBE_HOST,
            CONNECTIVITY_PROBE_PORT=self.CONNECTIVITY_PROBE_PORT,
            CONNECTIVITY_PROBE_TIMEOUT=self.CONNECTIVITY_PROBE_TIMEOUT,
        )

    @property
    def mock_backend(self) -> 'MockBackendSettings':
        """Get mock backend settings."""
        return MockBackendSettings(
            MOCK_API_LATENCY_MIN_MS=self.MOCK_API_LATENCY_MIN_MS,
            MOCK_API_LATENCY_MAX_MS=self.MOCK_API_LATENCY_MAX_MS,
        )

    @property
    def logging(self) -> 'LoggingSettings':
        """Get logging settings."""
        return LoggingSettings(LOG_LEVEL=self.LOG_LEVEL, LOG_FORMAT=self.LOG_FORMAT)

    @property
    def app(self) -> 'ApplicationSettings':
        """Get application settings."""
        return ApplicationSettings(
            ENVIRONMENT=self.ENVIRONMENT,
            APP_NAME=self.APP_NAME,
            APP_VERSION=self.APP_VERSION,
            API_HOST=self.API_HOST,
            API_PORT=self.API_PORT,
            API_BASE_PATH=self.API_BASE_PATH,
        )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"  # Ignore extra environment variables
    )


# Global settings instance (singleton pattern)
_settings: Settings | None = None


def get_settings() -> Settings:
    """
    Get the global settings instance (singleton).

    STAGE-0.3: Settings initialization

    Returns:
        Settings: Global settings instance
    """
    global _settings

    if _settings is None:
        _settings = Settings()

    return _settings


def reload_settings() -> Settings:
    """
    Reload settings (useful for testing).

    Returns:
        Settings: New settings instance
    """
    global _settings
    _settings = Settings()
    return _settings
