"""
Shared configuration management for the Access RBAC service.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="RBAC_",
        env_file=".env",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local", description="Deployment environment")
    log_level: str = Field(default="info", description="Log level")

    # External services
    redis_url: str = Field(default="redis://localhost:6379/0")
    postgres_dsn: str = Field(default="postgres://localhost:5432/access")

    # Backends
    cache_backend: str = Field(default="memory", description="memory | redis")
    grant_store_backend: str = Field(default="memory", description="memory | postgres")

    # Permission cache
    permission_cache_ttl_seconds: int = Field(default=900, ge=1)
    permission_failure_ttl_seconds: int = Field(default=60, ge=1)

    # Role bootstrap
    seed_roles_on_startup: bool = Field(default=False)

    # Backing store resilience
    store_failure_threshold: int = Field(default=5, ge=1)
    store_recovery_timeout_seconds: float = Field(default=30.0, gt=0)

    # HTTP
    cors_origins: Optional[str] = Field(default=None, description="Comma separated origins")


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
