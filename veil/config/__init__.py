"""
Veil Configuration Module
Environment-driven settings using pydantic-settings.
"""

from veil.config.settings import (
    ProxySettings,
    RoutingMode,
    get_settings,
    reload_settings,
)

__all__ = [
    "ProxySettings",
    "RoutingMode",
    "get_settings",
    "reload_settings",
]
