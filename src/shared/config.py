"""Configuration management for the Commerce MCP Bridge.

Supports YAML configuration files and environment variable overrides.
Configuration is loaded once and cached for performance.
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal, Optional, TypeVar

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

SettingsT = TypeVar("SettingsT", bound=BaseSettings)


class PlatformSettings(BaseSettings):
    """Backing commerce platform connection and outbound credentials."""
    base_url: str = Field(default="http://localhost:5000", description="Platform base URL")
    timeout_seconds: Optional[float] = Field(default=None, description="Outbound timeout, None = httpx default")

    # Credential sources, consulted in this order
    api_key: Optional[str] = Field(default=None)
    api_key_mode: Literal["header", "query"] = Field(default="header")
    api_key_name: str = Field(default="api_key", description="Header or query parameter carrying the key")
    bearer_token: Optional[str] = Field(default=None)
    username: Optional[str] = Field(default=None)
    password: Optional[str] = Field(default=None)
    token_endpoint: str = Field(default="connect/token", description="OAuth password grant endpoint")
    client_id: Optional[str] = Field(default=None)

    model_config = SettingsConfigDict(
        env_prefix="PLATFORM_",
        env_file=".env",
        extra="ignore"
    )


class BridgeServerSettings(BaseSettings):
    """MCP bridge server configuration."""
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8001)
    route_prefix: str = Field(default="/api/mcp")
    modules_path: str = Field(default="modules")

    server_name: str = Field(default="Commerce MCP Bridge")
    server_version: str = Field(default="1.0.0")
    protocol_version: str = Field(default="2024-11-05")

    # Never leak exception text to the wire unless explicitly enabled
    expose_error_details: bool = Field(default=False)
    invocation_timeout_seconds: Optional[float] = Field(default=None, gt=0)

    enable_audit: bool = Field(default=True)
    audit_log_path: str = Field(default="logs/audit.log")

    model_config = SettingsConfigDict(
        env_prefix="MCP_SERVER_",
        env_file=".env",
        extra="ignore"
    )


class Settings(BaseSettings):
    """Main application settings."""
    environment: str = Field(default="development")
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")

    # Component settings
    platform: PlatformSettings = Field(default_factory=PlatformSettings)
    mcp_server: BridgeServerSettings = Field(default_factory=BridgeServerSettings)

    model_config = SettingsConfigDict(
        env_prefix="MCP_",
        env_file=".env",
        extra="ignore"
    )

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Settings":
        """
        Load settings from a YAML file.

        Environment variables (``MCP_``, ``PLATFORM_``, ``MCP_SERVER_``) take
        precedence over values from the file, section by section.
        """
        data = load_yaml_config(path)
        sections = {
            "platform": PlatformSettings,
            "mcp_server": BridgeServerSettings,
        }
        values = {
            name: overlay_environment(section_cls, data.pop(name, None) or {})
            for name, section_cls in sections.items()
        }
        return overlay_environment(cls, {**data, **values})


def overlay_environment(settings_cls: type[SettingsT], values: dict[str, Any]) -> SettingsT:
    """Build ``settings_cls`` from ``values``, letting environment variables override them."""
    from_env = settings_cls()
    overrides = from_env.model_dump(include=from_env.model_fields_set)
    return settings_cls(**{**values, **overrides})


def load_yaml_config(path: str | Path) -> dict[str, Any]:
    """Load a YAML configuration file."""
    path = Path(path)
    if not path.exists():
        return {}

    with open(path) as f:
        return yaml.safe_load(f) or {}


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    config_path = os.environ.get("MCP_CONFIG_PATH", "config/settings.yaml")
    return Settings.from_yaml(config_path)
