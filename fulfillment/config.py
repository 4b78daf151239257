"""Configuration management for the order fulfillment service."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Order Store / Catalog
    redis_url: str = Field(default="redis://localhost:6379/0", description="Redis URL")
    key_prefix: str = Field(default="fulfillment", description="Namespace for Redis keys")
    store_max_retries: int = Field(
        default=10, description="Optimistic transaction retries for order updates"
    )

    # API Configuration
    api_port: int = Field(default=4000, description="API server port")
    api_host: str = Field(default="0.0.0.0", description="API server host")
    api_workers: int = Field(default=1, description="Number of API workers")
    api_prefix: str = Field(default="/api", description="Mount point for HTTP routes")
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])

    # Environment
    environment: Literal["development", "staging", "production"] = Field(
        default="development"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: Literal["json", "text"] = Field(default="json", description="Log format")

    # Security
    secret_key: str = Field(..., description="Secret key for JWT signing")
    token_algorithm: str = Field(default="HS256", description="JWT signing algorithm")
    tracking_token_expire_minutes: int = Field(
        default=1440, description="Order tracking token lifetime in minutes"
    )
    realtime_auth_required: bool = Field(
        default=True, description="Require tokens for realtime room joins"
    )

    # Realtime
    broadcast_backend: Literal["local", "redis"] = Field(
        default="local", description="In-process rooms or Redis pub/sub relay"
    )
    broadcast_channel: str = Field(default="fulfillment:events")
    relay_retry_seconds: float = Field(
        default=0.5, gt=0, description="First resubscribe delay after the relay loses Redis"
    )
    relay_max_retry_seconds: float = Field(default=30.0, gt=0)
    subscriber_queue_size: int = Field(
        default=256, description="Outbound buffer per realtime connection"
    )

    # Listing
    default_page_limit: int = Field(default=50, ge=1)
    max_page_limit: int = Field(default=200, ge=1)
    recent_orders_limit: int = Field(default=10, ge=1)

    # Delivery time estimates (minutes)
    estimate_base_minutes: float = Field(default=45, description="Prep plus delivery time")
    estimate_floor_minutes: float = Field(default=5)
    estimate_cap_minutes: float = Field(default=60)
    estimate_window_minutes: float = Field(default=10)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is valid."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Log level must be one of {valid_levels}")
        return v_upper

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
