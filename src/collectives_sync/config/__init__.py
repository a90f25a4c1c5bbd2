"""Configuration package for Collectives Sync."""

from .settings import (
    LoggingSettings,
    SchedulingSettings,
    LoginFlowSettings,
    WebDAVSettings,
    StatusServerSettings,
    AppSettings,
    get_settings
)

from .schema import SyncConfig, default_config

from .loader import (
    ConfigLoader,
    ConfigurationError,
    load_config_from_env
)

__all__ = [
    "LoggingSettings",
    "SchedulingSettings",
    "LoginFlowSettings",
    "WebDAVSettings",
    "StatusServerSettings",
    "AppSettings",
    "get_settings",

    "SyncConfig",
    "default_config",

    "ConfigLoader",
    "ConfigurationError",
    "load_config_from_env"
]
