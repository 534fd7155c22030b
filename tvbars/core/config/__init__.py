"""Configuration management module."""

from tvbars.core.config.settings import (
    MEMORY_DATABASE,
    ConfigManager,
    LoggingConfig,
    MaterializerConfig,
    StoreConfig,
    TvBarsConfig,
    load_config_from_env,
)

__all__ = [
    "MEMORY_DATABASE",
    "ConfigManager",
    "TvBarsConfig",
    "StoreConfig",
    "MaterializerConfig",
    "LoggingConfig",
    "load_config_from_env",
]
