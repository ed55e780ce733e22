"""Centralized configuration management for the Gemini client.

This module provides a single source of truth for all configuration values,
using pydantic-settings for environment variable loading and validation.

Configuration objects are read-only once built. They are passed explicitly
into request models and clients; ``get_settings()`` returns a cached default
for callers that do not supply one, and ``reset_settings()`` drops that cache
(tests use it after changing environment variables).

Configuration Sections:
    - GeminiConfig: API connection, default models, timeouts, request logging
    - ClientConfig: Retry, batching, caching and connection pool settings
    - ImageConfig: Limits applied to inline image parts

Environment Variable Prefixes:
    - GEMINI_*: API settings (GEMINI_API_KEY, GEMINI_DEFAULT_MODEL, ...)
    - GEMINI_CLIENT_*: Client behaviour settings
    - GEMINI_IMAGE_*: Image settings

Usage:
    from gemini_kit.core.config import get_settings

    settings = get_settings()
    model = settings.gemini.default_model
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from gemini_kit.domain.exceptions import ConfigurationError

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com"
DEFAULT_MODEL = "gemini-2.0-flash"
DEFAULT_EMBEDDING_MODEL = "gemini-embedding-exp-03-07"


class GeminiConfig(BaseSettings):
    """Gemini API connection configuration.

    All settings can be overridden via GEMINI_* environment variables. The
    default models are read from ``GEMINI_DEFAULT_MODEL`` and
    ``GEMINI_DEFAULT_EMBEDDING_MODEL``.

    Attributes:
        api_key: API key sent as the ``key`` query parameter. None until set.
        api_version: API version path prefix. Default: "v1beta".
        base_url: API root URL. Must start with http:// or https://.
        default_model: Model used when a request names none.
        default_embedding_model: Model used for embeddings when none is named.
        timeout: Read timeout for regular requests (seconds).
        open_timeout: Connect timeout (seconds).
        streaming_timeout: Overall budget for a streamed response (seconds).
        on_data_timeout: Maximum silence between stream chunks (seconds).
        log_requests: Write one JSON line per request to the request log.
        log_dir: Directory holding ``requests.jsonl``.
    """

    model_config = SettingsConfigDict(
        env_prefix="GEMINI_",
        case_sensitive=False,
        extra="ignore",
    )

    api_key: str | None = Field(default=None, description="Gemini API key")
    api_version: str = Field(default="v1beta", description="API version prefix")
    base_url: str = Field(default=DEFAULT_BASE_URL, description="API root URL")
    default_model: str = Field(
        default=DEFAULT_MODEL,
        description="Default generation model",
    )
    default_embedding_model: str = Field(
        default=DEFAULT_EMBEDDING_MODEL,
        description="Default embedding model",
    )
    timeout: float = Field(default=30.0, gt=0, le=3600, description="Request timeout (seconds)")
    open_timeout: float = Field(default=10.0, gt=0, le=600, description="Connect timeout (seconds)")
    streaming_timeout: float = Field(
        default=300.0, gt=0, le=3600, description="Streaming timeout (seconds)"
    )
    on_data_timeout: float = Field(
        default=60.0, gt=0, le=3600, description="Max silence between stream chunks (seconds)"
    )
    log_requests: bool = Field(default=False, description="Write structured request logs")
    log_dir: str = Field(default="logs", description="Directory for request logs")

    @property
    def api_base_url(self) -> str:
        """Return the versioned API root, e.g. ``https://host/v1beta``."""
        return f"{self.base_url.rstrip('/')}/{self.api_version}"

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Ensure base_url starts with http:// or https://.

        Raises:
            ValueError: If the URL scheme is not http or https.
        """
        if not v.startswith(("http://", "https://")):
            msg = "base_url must start with http:// or https://"
            raise ValueError(msg)
        return v

    @field_validator("api_version", "default_model", "default_embedding_model")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            msg = "value cannot be empty"
            raise ValueError(msg)
        return v

    def validate_api_key(self) -> None:
        """Check that an API key is configured.

        Raises:
            ConfigurationError: If the API key is missing or blank.
        """
        if not self.api_key or not self.api_key.strip():
            raise ConfigurationError("API key must be set")


class ClientConfig(BaseSettings):
    """Client behaviour configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GEMINI_CLIENT_",
        case_sensitive=False,
        extra="ignore",
    )

    max_retries: int = Field(default=3, ge=0, le=10, description="Max retry attempts")
    retry_delay: float = Field(default=1.0, ge=0.0, le=60.0, description="Base retry delay (seconds)")
    max_retry_delay: float = Field(
        default=60.0, ge=0.0, le=600.0, description="Upper bound for a single retry delay"
    )
    max_batch_size: int = Field(
        default=100, ge=1, le=1000, description="Max texts per batch embedding call"
    )
    model_cache_ttl: float = Field(
        default=3600.0, ge=0.0, le=86400.0, description="Model info cache TTL (seconds)"
    )
    model_cache_size: int = Field(default=256, ge=1, le=10000, description="Model info cache entries")
    pool_connections: int = Field(default=10, ge=1, le=100, description="HTTP connection pools")
    pool_maxsize: int = Field(default=10, ge=1, le=1000, description="Connections per pool")
    max_concurrent_requests: int = Field(
        default=10, ge=1, le=1000, description="Max in-flight async requests"
    )


class ImageConfig(BaseSettings):
    """Inline image limits."""

    model_config = SettingsConfigDict(
        env_prefix="GEMINI_IMAGE_",
        case_sensitive=False,
        extra="ignore",
    )

    max_size_bytes: int = Field(
        default=10 * 1024 * 1024,  # 10MB
        ge=1024,
        le=100 * 1024 * 1024,
        description="Max image size in bytes",
    )
    url_timeout: float = Field(default=30.0, gt=0, le=600, description="Image download timeout")


class Settings(BaseSettings):
    """Root settings object aggregating every configuration section.

    Configuration is loaded from:
        1. Environment variables (with the section prefixes)
        2. .env file (if present in the working directory)
        3. Default values

    Attributes:
        gemini: API connection configuration.
        client: Client behaviour configuration.
        image: Inline image limits.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    gemini: GeminiConfig = Field(default_factory=GeminiConfig)
    client: ClientConfig = Field(default_factory=ClientConfig)
    image: ImageConfig = Field(default_factory=ImageConfig)

    @classmethod
    @lru_cache(maxsize=1)
    def get_settings(cls) -> Settings:
        """Get the cached settings instance.

        Settings are loaded from the environment on first call and reused
        afterwards.

        Returns:
            Cached Settings instance with all sections populated.
        """
        return cls()


def get_settings() -> Settings:
    """Return the process-wide default settings."""
    return Settings.get_settings()


def reset_settings() -> None:
    """Forget the cached settings so the next call reloads the environment."""
    Settings.get_settings.cache_clear()


__all__ = [
    "DEFAULT_BASE_URL",
    "DEFAULT_EMBEDDING_MODEL",
    "DEFAULT_MODEL",
    "ClientConfig",
    "GeminiConfig",
    "ImageConfig",
    "Settings",
    "get_settings",
    "reset_settings",
]
