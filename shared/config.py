"""
Shared configuration management for the Cross-Language Validation service.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings.

    Every field can be overridden through a ``VALIDATION_``-prefixed
    environment variable or a ``.env`` file, e.g. ``VALIDATION_RULES_FILE``.
    """

    model_config = SettingsConfigDict(
        env_prefix="VALIDATION_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Rule document loaded at startup
    rules_file: Optional[str] = Field(default=None)

    # External error-code-to-message mapping served to UI clients
    error_messages_file: Optional[str] = Field(default=None)


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port, **overrides)
