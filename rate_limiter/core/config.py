"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file

Malformed values never stop the service from starting: numeric fields and the
storage selector fall back to their documented defaults and log a warning.
"""

from __future__ import annotations

import logging
import os
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


# Determine which environment to load (default: development)
APP_ENV = os.getenv("APP_ENV", "development")

# Project root (so .env resolution doesn't depend on current working directory)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None

# Nested BaseSettings don't inherit env_file, so populate os.environ up front
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


class StorageType(str, Enum):
    """Supported storage backends."""

    MEMORY = "memory"
    REDIS = "redis"


def _field_default(model: type[BaseSettings], field_name: str) -> Any:
    return model.model_fields[field_name].default


def _coerce_positive_number(
    model: type[BaseSettings],
    value: Any,
    info: ValidationInfo,
    *,
    cast: type,
    allow_zero: bool = False,
) -> Any:
    """Parse a positive number, falling back to the field default.

    Args:
        model: Settings class owning the field.
        value: Raw value (usually a string from the environment).
        info: Pydantic validation info carrying the field name.
        cast: Target type (int or float).
        allow_zero: Whether 0 is an acceptable value.

    Returns:
        The parsed value, or the field default when parsing fails.
    """

    default = _field_default(model, info.field_name)
    try:
        parsed = cast(value)
    except (TypeError, ValueError):
        _warn_invalid_value(model, info.field_name, value, default)
        return default

    if parsed < 0 or (parsed == 0 and not allow_zero):
        _warn_invalid_value(model, info.field_name, value, default)
        return default
    return parsed


def _warn_invalid_value(
    model: type[BaseSettings], field_name: str, value: Any, default: Any
) -> None:
    # Settings load at import time, before configure_logging() installs the
    # JSON formatter, so the variable and value must be in the message itself.
    env_name = f"{model.model_config.get('env_prefix', '')}{field_name}".upper()
    logger.warning(
        "config.invalid_value field=%s value=%r fallback=%r",
        env_name,
        value,
        default,
        extra={"field": env_name, "value": str(value), "fallback": default},
    )


def _build_rate_limiter_settings() -> "RateLimiterSettings":
    """Build rate limiter settings from environment.

    Pydantic Settings (v2) populates values from environment variables, but
    static type checkers treat fields as constructor arguments.
    """

    return RateLimiterSettings()  # type: ignore[call-arg]


def _build_storage_settings() -> "StorageSettings":
    return StorageSettings()  # type: ignore[call-arg]


def _build_redis_settings() -> "RedisSettings":
    return RedisSettings()  # type: ignore[call-arg]


def _build_server_settings() -> "ServerSettings":
    return ServerSettings()  # type: ignore[call-arg]


def _build_log_settings() -> "LogSettings":
    return LogSettings()  # type: ignore[call-arg]


class RateLimiterSettings(BaseSettings):
    """Limits and windows consumed by the rate limiter."""

    ip_limit: int = Field(
        10,
        description="Maximum requests per window for a single client IP",
    )
    ip_expiration: int = Field(
        300,
        description="Counter window in seconds for client IPs",
    )
    token_limit: int = Field(
        100,
        description="Maximum requests per window for a single access token",
    )
    token_expiration: int = Field(
        300,
        description="Counter window in seconds for access tokens",
    )
    block_duration: int = Field(
        300,
        description="How long an identifier stays blocked after exceeding its limit",
    )
    cleanup_interval_seconds: float = Field(
        60.0,
        description="Interval between expired-entry sweeps of the in-memory backend",
    )
    operation_timeout_seconds: float = Field(
        5.0,
        description="Deadline for a single admission check against the storage",
    )

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMITER_",
        case_sensitive=False,
    )

    @field_validator(
        "ip_limit",
        "ip_expiration",
        "token_limit",
        "token_expiration",
        "block_duration",
        mode="before",
    )
    @classmethod
    def _validate_int(cls, value: Any, info: ValidationInfo) -> Any:
        return _coerce_positive_number(cls, value, info, cast=int)

    @field_validator("cleanup_interval_seconds", "operation_timeout_seconds", mode="before")
    @classmethod
    def _validate_float(cls, value: Any, info: ValidationInfo) -> Any:
        return _coerce_positive_number(cls, value, info, cast=float)


class StorageSettings(BaseSettings):
    """Storage backend selection."""

    type: StorageType = Field(
        StorageType.REDIS,
        description="Storage backend: 'memory' (single process) or 'redis' (shared)",
    )

    model_config = SettingsConfigDict(
        env_prefix="STORAGE_",
        case_sensitive=False,
    )

    @field_validator("type", mode="before")
    @classmethod
    def _validate_type(cls, value: Any) -> StorageType:
        if isinstance(value, StorageType):
            return value
        try:
            return StorageType(str(value).strip().lower())
        except ValueError:
            logger.warning(
                "config.invalid_storage_type field=STORAGE_TYPE value=%r fallback=%s",
                value,
                StorageType.REDIS.value,
                extra={"value": str(value), "fallback": StorageType.REDIS.value},
            )
            return StorageType.REDIS


class RedisSettings(BaseSettings):
    """Connection parameters for the Redis backend."""

    host: str = Field("localhost", description="Redis host name")
    port: int = Field(6379, description="Redis TCP port")
    password: str | None = Field(None, description="Redis password (optional)")
    db: int = Field(0, description="Redis logical database index")
    connect_timeout_seconds: float = Field(
        5.0,
        description="Timeout for the startup connectivity check and socket connects",
    )

    model_config = SettingsConfigDict(
        env_prefix="REDIS_",
        case_sensitive=False,
    )

    @field_validator("port", mode="before")
    @classmethod
    def _validate_port(cls, value: Any, info: ValidationInfo) -> Any:
        return _coerce_positive_number(cls, value, info, cast=int)

    @field_validator("db", mode="before")
    @classmethod
    def _validate_db(cls, value: Any, info: ValidationInfo) -> Any:
        return _coerce_positive_number(cls, value, info, cast=int, allow_zero=True)

    @field_validator("connect_timeout_seconds", mode="before")
    @classmethod
    def _validate_timeout(cls, value: Any, info: ValidationInfo) -> Any:
        return _coerce_positive_number(cls, value, info, cast=float)


class ServerSettings(BaseSettings):
    """HTTP server bind address."""

    host: str = Field("0.0.0.0", description="Interface to bind")
    port: int = Field(8080, description="Port to listen on")

    model_config = SettingsConfigDict(
        env_prefix="SERVER_",
        case_sensitive=False,
    )

    @field_validator("port", mode="before")
    @classmethod
    def _validate_port(cls, value: Any, info: ValidationInfo) -> Any:
        return _coerce_positive_number(cls, value, info, cast=int)


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="'json' or 'plain'")
    output: str = Field("stdout", description="'stdout' or 'file'")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(
        10 * 1024 * 1024,
        description="Rotate the log file after this many bytes (0 disables rotation)",
    )
    backup_count: int = Field(5, description="Number of rotated files to keep")
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to propagate the request correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )

    @field_validator("max_bytes", "backup_count", mode="before")
    @classmethod
    def _validate_rotation(cls, value: Any, info: ValidationInfo) -> Any:
        return _coerce_positive_number(cls, value, info, cast=int, allow_zero=True)


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    """

    app_env: str = APP_ENV
    rate_limiter: RateLimiterSettings = Field(default_factory=_build_rate_limiter_settings)
    storage: StorageSettings = Field(default_factory=_build_storage_settings)
    redis: RedisSettings = Field(default_factory=_build_redis_settings)
    server: ServerSettings = Field(default_factory=_build_server_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
settings = Settings()
