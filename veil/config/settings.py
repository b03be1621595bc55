"""
Veil Settings
Pydantic-based configuration with support for env vars and a .env.local file.
"""

from enum import Enum
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LOG_LEVELS = frozenset({"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"})


class RoutingMode(str, Enum):
    """How requests are matched against the access rules."""

    METHOD = "method"  # Method-keyed table, single 401 outcome
    PATH = "path"  # Path-keyed table, 404 for unknown paths


class ProxySettings(BaseSettings):
    """
    Process-wide proxy settings.

    Usage:
        from veil.config import get_settings

        settings = get_settings()
        print(settings.upstream_timeout)
    """

    model_config = SettingsConfigDict(
        env_file=".env.local",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    log_level: str = Field(default="INFO", alias="VEIL_LOG_LEVEL")
    upstream_timeout: float = Field(default=5.0, alias="VEIL_UPSTREAM_TIMEOUT")
    routing_mode: RoutingMode = Field(default=RoutingMode.METHOD, alias="VEIL_ROUTING_MODE")
    mirror_status_codes: bool = Field(default=True, alias="VEIL_MIRROR_STATUS_CODES")
    forward_query_string: bool = Field(default=True, alias="VEIL_FORWARD_QUERY_STRING")
    access_log: bool = Field(default=False, alias="VEIL_ACCESS_LOG")

    @field_validator("log_level", mode="before")
    @classmethod
    def parse_log_level(cls, v):
        if isinstance(v, str):
            v = v.strip().upper()
            if v not in LOG_LEVELS:
                raise ValueError(f"log level must be one of {sorted(LOG_LEVELS)}")
        return v

    @field_validator("routing_mode", mode="before")
    @classmethod
    def parse_routing_mode(cls, v):
        if isinstance(v, str):
            return v.strip().lower()
        return v


@lru_cache()
def get_settings() -> ProxySettings:
    """
    Get cached settings instance.

    Returns:
        ProxySettings: The proxy settings
    """
    return ProxySettings()


def reload_settings() -> ProxySettings:
    """
    Reload settings (clears cache).

    Returns:
        ProxySettings: Fresh settings instance
    """
    get_settings.cache_clear()
    return get_settings()
