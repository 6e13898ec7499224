"""Configuration — serverdeck.yml loading and session construction."""

from serverdeck.core.config.loader import (
    ConfigError,
    HostConfig,
    ServerDeckConfig,
    TimeoutConfig,
    find_config_file,
    load_config,
)
from serverdeck.core.config.sessions import open_session

__all__ = [
    "ConfigError",
    "HostConfig",
    "ServerDeckConfig",
    "TimeoutConfig",
    "find_config_file",
    "load_config",
    "open_session",
]
