"""
Shared configuration management for the Cédula lookup service.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="CEDULA_",
        case_sensitive=False,
        extra="ignore"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Shared stores
    redis_url: str = Field(default="redis://localhost:6379/0")
    redis_socket_timeout: float = Field(default=2.0)

    # Upstream registry (JCE portal)
    registry_base_url: str = Field(default="https://dataportal.jce.gob.do")
    registry_endpoint: str = Field(default="/idcons/IndividualDataHandler.aspx")
    registry_service_id: str = Field(default="")
    registry_photo_base_url: str = Field(default="https://dataportal.jce.gob.do")
    registry_user_agent: str = Field(default="Cedula-Consulta-Service/1.0.0")
    registry_connect_timeout: float = Field(default=5.0)
    registry_read_timeout: float = Field(default=15.0)
    registry_overall_timeout: float = Field(default=25.0)

    # Retry policy
    retry_max_attempts: int = Field(default=3, ge=1, le=6)
    retry_base_delay: float = Field(default=1.0, ge=0.0)
    retry_max_delay: float = Field(default=10.0, ge=0.0)
    retry_multiplier: float = Field(default=2.0, ge=1.0)
    retry_jitter: bool = Field(default=True)

    # Circuit breaker
    circuit_breaker_enabled: bool = Field(default=True)
    circuit_breaker_failure_threshold: int = Field(default=5, ge=1)
    circuit_breaker_recovery_timeout: float = Field(default=60.0, gt=0.0)

    # Rate limiting
    rate_limit_requests_per_minute: int = Field(default=100, ge=1)
    rate_limit_burst_capacity: int = Field(default=20, ge=0)
    rate_limit_requests_per_hour: int = Field(default=1000, ge=1)
    rate_limit_key_prefix: str = Field(default="jce:rate_limit")

    # Result cache
    cache_ttl_seconds: int = Field(default=3600, ge=1)
    cache_key_prefix: str = Field(default="jce:consulta")

    # HTTP surface
    cors_origins: Optional[str] = Field(default=None)


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
