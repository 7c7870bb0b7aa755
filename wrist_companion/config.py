"""
Configuration management for the wrist companion.

Uses Pydantic Settings for environment variable parsing.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class HomeAssistantConfig(BaseSettings):
    """Home Assistant connection configuration."""

    model_config = SettingsConfigDict(env_prefix="WRIST_HA_")

    token: Optional[str] = Field(
        default=None,
        description="Long-lived access token",
    )
    local_url: Optional[str] = Field(
        default=None,
        description="Home Assistant address on the home network",
    )
    external_url: Optional[str] = Field(
        default=None,
        description="Home Assistant address reachable from outside",
    )
    timeout: float = Field(
        default=10.0,
        description="Seconds to wait for each endpoint before failing over",
    )


class DeviceConfig(BaseSettings):
    """Watch bridge connection configuration."""

    model_config = SettingsConfigDict(env_prefix="WRIST_DEVICE_")

    url: str = Field(
        default="ws://localhost:8765",
        description="Watch bridge WebSocket URL",
    )
    enabled: bool = Field(
        default=True,
        description="Connect to the watch bridge on startup",
    )
    reconnect_interval: int = Field(
        default=5,
        description="Base seconds between reconnection attempts",
    )
    max_reconnect_interval: int = Field(
        default=60,
        description="Upper bound for reconnection backoff",
    )
    handler_timeout: Optional[float] = Field(
        default=30.0,
        description="Seconds a device request may run before it is abandoned",
    )


class CompanionConfig(BaseSettings):
    """Main companion configuration."""

    model_config = SettingsConfigDict(
        env_prefix="WRIST_",
        env_file=".env",
        extra="ignore",
    )

    log_level: str = Field(
        default="INFO",
        description="Root logging level",
    )

    # Sub-configs
    homeassistant: HomeAssistantConfig = Field(default_factory=HomeAssistantConfig)
    device: DeviceConfig = Field(default_factory=DeviceConfig)


# Global settings instance
_settings: Optional[CompanionConfig] = None


def get_settings() -> CompanionConfig:
    """Get or create global settings instance."""
    global _settings
    if _settings is None:
        _settings = CompanionConfig()
    return _settings
