"""Configuration management module."""

from loomsync.core.config.settings import (
    BusConfig,
    CacheConfig,
    ConfigManager,
    LoggingConfig,
    LoomSyncConfig,
    RemoteConfig,
    get_default_config,
    load_config_from_env,
)

__all__ = [
    "ConfigManager",
    "LoomSyncConfig",
    "load_config_from_env",
    "get_default_config",
    "CacheConfig",
    "RemoteConfig",
    "BusConfig",
    "LoggingConfig",
]
