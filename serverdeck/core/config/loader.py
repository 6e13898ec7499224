"""
Configuration loader — reads serverdeck.yml into typed settings.

The file lists the hosts serverdeck can open a session against and the
per-call-site command timeouts. It is searched upward from the working
directory. When no file exists, a single implicit local host is used.

    hosts:
      - name: web1
        host: 203.0.113.10
        username: deploy
        key_path: ~/.ssh/id_ed25519
      - name: here
        local: true
    default_host: web1
    timeouts:
      status_batch: 20
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError, model_validator

from serverdeck.core.errors import ServerDeckError

logger = logging.getLogger(__name__)

CONFIG_FILE = "serverdeck.yml"


class ConfigError(ServerDeckError):
    """Raised when serverdeck configuration is invalid or unreadable."""


class HostConfig(BaseModel):
    """How to reach one target host."""

    name: str
    host: str = "localhost"
    port: int = 22
    username: str | None = None
    key_path: str | None = None
    password_env: str | None = None     # env var holding the password
    known_hosts: str | None = None      # None disables host key checking
    local: bool = False                 # run commands on this machine

    @property
    def password(self) -> str | None:
        if not self.password_env:
            return None
        return os.environ.get(self.password_env)

    @property
    def expanded_key_path(self) -> str | None:
        return str(Path(self.key_path).expanduser()) if self.key_path else None


class TimeoutConfig(BaseModel):
    """Per-call-site command timeouts, in seconds."""

    default: float = 15
    status_batch: float = 20
    service_action: float = 30
    long_running: float = 120
    phpinfo: float = 30


class ServerDeckConfig(BaseModel):
    """Root configuration model."""

    hosts: list[HostConfig] = Field(default_factory=list)
    default_host: str | None = None
    timeouts: TimeoutConfig = Field(default_factory=TimeoutConfig)

    @model_validator(mode="after")
    def _ensure_host(self) -> ServerDeckConfig:
        if not self.hosts:
            self.hosts = [HostConfig(name="local", local=True)]
        names = [h.name for h in self.hosts]
        if len(names) != len(set(names)):
            raise ValueError("host names must be unique")
        if self.default_host and self.default_host not in names:
            raise ValueError(f"default_host '{self.default_host}' is not a configured host")
        return self

    def host(self, name: str | None = None) -> HostConfig:
        """Look up a host by name; None means the default host.

        Raises:
            ConfigError: If no host has that name.
        """
        wanted = name or self.default_host
        if wanted is None:
            return self.hosts[0]
        for host in self.hosts:
            if host.name == wanted:
                return host
        raise ConfigError(f"Unknown host '{wanted}'. Configured: {', '.join(h.name for h in self.hosts)}")


def find_config_file(start_dir: Path | None = None) -> Path | None:
    """Search for serverdeck.yml from ``start_dir`` (default: cwd) upward."""
    current = (start_dir or Path.cwd()).resolve()
    for directory in (current, *current.parents):
        candidate = directory / CONFIG_FILE
        if candidate.is_file():
            return candidate
    return None


def load_config(path: Path | None = None) -> ServerDeckConfig:
    """Load and validate configuration.

    Args:
        path: Explicit config path. If None, searches upward; if nothing
            is found, returns the implicit local-only configuration.

    Raises:
        ConfigError: If an explicit path is missing, or the file is invalid.
    """
    if path is None:
        path = find_config_file()
        if path is None:
            logger.debug("No %s found, using implicit local host", CONFIG_FILE)
            return ServerDeckConfig()
    elif not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    logger.debug("Loading config from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    try:
        config = ServerDeckConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {path}: {e}") from e

    logger.info("Loaded %d host(s) from %s", len(config.hosts), path)
    return config
