"""
Shared configuration management for the rule manager.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="RULES_",
        env_file=".env",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local", description="Deployment environment")
    log_level: str = Field(default="info", description="Log level name")

    # Remote store (engine side)
    store_url: str = Field(default="http://localhost:4001", description="Rule store base URL")
    store_timeout_seconds: float = Field(default=10.0, description="HTTP timeout for store calls")

    # Browsing session
    page_size: int = Field(default=25, description="Default page length")
    max_pending_changes: int = Field(default=200, description="Pending edit ledger capacity")

    # Security
    jwt_secret: str = Field(default="secret", description="HMAC secret for session tokens")
    jwt_algorithm: str = Field(default="HS256", description="JWT signing algorithm")
    token_ttl_seconds: int = Field(default=12 * 3600, description="Session token lifetime")
    login_password: str = Field(default="1234", description="Shared demo password")
    admin_tenant_id: Optional[str] = Field(default="admin", description="Tenant granted the see-all scope")

    # Bulk generator
    dummy_batch_size: int = Field(default=20, description="Rules inserted per generator batch")
    dummy_max_concurrent_batches: int = Field(default=5, description="Generator batches in flight")
    reset_batch_size: int = Field(default=5000, description="Rules deleted per cleanup batch")


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
