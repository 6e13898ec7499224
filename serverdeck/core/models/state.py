"""
ApplicationState — the per-application sink section providers write into.

One ApplicationState exists per application per session. It is owned
by the caller that created it and mutated only through the
ApplicationStateStore, which applies changes on a single writer task.

The small info models below are the typed results providers parse out
of command output.
"""

from __future__ import annotations

import re
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, model_validator

# ── Configuration values ────────────────────────────────────────


class ConfigValueType(StrEnum):
    SIZE = "size"
    TIME = "time"
    NUMBER = "number"
    BOOLEAN = "boolean"
    STRING = "string"


_BOOLEAN_WORDS = {"on", "off", "yes", "no", "true", "false", "enabled", "disabled"}
_SIZE_RE = re.compile(r"^\d+(\.\d+)?\s*([kmgt]i?b?|bytes?)$", re.IGNORECASE)
_TIME_RE = re.compile(r"^\d+(\.\d+)?\s*(ms|s|m|h|d|min|sec)$", re.IGNORECASE)
_NUMBER_RE = re.compile(r"^-?\d+(\.\d+)?$")


def infer_value_type(raw: str) -> ConfigValueType:
    """Classify a raw directive value for display and validation."""
    value = raw.strip().strip("'\"")
    if value.lower() in _BOOLEAN_WORDS:
        return ConfigValueType.BOOLEAN
    if _NUMBER_RE.match(value):
        return ConfigValueType.NUMBER
    if _SIZE_RE.match(value):
        return ConfigValueType.SIZE
    if _TIME_RE.match(value):
        return ConfigValueType.TIME
    return ConfigValueType.STRING


class ConfigValue(BaseModel):
    """One configuration directive, normalised across source syntaxes."""

    key: str
    value: str
    display_name: str
    description: str = ""
    type: ConfigValueType | None = None
    section: str | None = None

    @model_validator(mode="after")
    def _infer_type(self) -> ConfigValue:
        if self.type is None:
            self.type = infer_value_type(self.value)
        return self


# ── Databases ───────────────────────────────────────────────────


class DatabaseInfo(BaseModel):
    name: str
    size: str = ""
    table_count: int = 0


class DatabaseUser(BaseModel):
    id: str
    username: str
    host: str = ""
    privileges: list[str] = Field(default_factory=list)


# ── PHP ─────────────────────────────────────────────────────────


class PHPExtensionInfo(BaseModel):
    name: str
    is_loaded: bool = True
    is_core: bool = False


class PHPFPMStatus(BaseModel):
    """Parsed output of the FPM status page."""

    pool: str = ""
    process_manager: str = ""
    start_time: str = ""
    accepted_connections: int = 0
    active_processes: int = 0
    idle_processes: int = 0
    total_processes: int = 0
    max_active_processes: int = 0


# ── Web servers ─────────────────────────────────────────────────


class NginxStatusInfo(BaseModel):
    """Parsed stub_status output."""

    active_connections: int = 0
    accepts: int = 0
    handled: int = 0
    requests: int = 0
    reading: int = 0
    writing: int = 0
    waiting: int = 0


class SecurityCheck(BaseModel):
    name: str
    enabled: bool = False
    detail: str = ""


class WafLogEntry(BaseModel):
    """One refused request from a combined-format access log."""

    ip: str
    time: str = ""
    request: str = ""
    status: int = 0
    size: int = 0
    referrer: str = ""
    user_agent: str = ""


class WebsiteInfo(BaseModel):
    """A virtual host discovered on a web server."""

    domain: str
    server: str  # nginx | apache
    document_root: str = ""
    port: int = 80
    ssl: bool = False
    php_version: str | None = None
    proxy_pass: str | None = None
    config_path: str = ""
    enabled: bool = True


# ── Databases (server status) ───────────────────────────────────


class MySQLStatusInfo(BaseModel):
    version: str = ""
    uptime: str = ""
    threads_connected: int = 0
    questions: int = 0
    slow_queries: int = 0
    open_tables: int = 0
    qps: float = 0.0


# ── Application state ───────────────────────────────────────────


class ApplicationState(BaseModel):
    """Everything the section providers learned about one application."""

    application_id: str

    # ── Service ──────────────────────────────────────────────────
    is_loading: bool = False
    is_running: bool = False
    version: str = ""
    binary_path: str = ""
    config_path: str = ""

    # ── Configuration ────────────────────────────────────────────
    config_content: str = ""
    config_values: list[ConfigValue] = Field(default_factory=list)

    # ── Logs ─────────────────────────────────────────────────────
    logs: list[str] = Field(default_factory=list)
    log_files: list[str] = Field(default_factory=list)
    log_path: str = ""

    # ── Versions ─────────────────────────────────────────────────
    installed_versions: list[str] = Field(default_factory=list)
    active_version: str = ""

    # ── Web servers ──────────────────────────────────────────────
    modules: list[str] = Field(default_factory=list)
    security_checks: list[SecurityCheck] = Field(default_factory=list)
    security_stats: dict[str, int] = Field(default_factory=dict)
    waf_entries: list[WafLogEntry] = Field(default_factory=list)
    sites: list[WebsiteInfo] = Field(default_factory=list)
    nginx_status: NginxStatusInfo | None = None

    # ── PHP ──────────────────────────────────────────────────────
    extensions: list[PHPExtensionInfo] = Field(default_factory=list)
    available_extensions: list[str] = Field(default_factory=list)
    disabled_functions: list[str] = Field(default_factory=list)
    fpm_pool_config: str = ""
    fpm_status: PHPFPMStatus | None = None
    phpinfo_html: str = ""
    phpinfo_summary: dict[str, str] = Field(default_factory=dict)

    # ── Databases ────────────────────────────────────────────────
    databases: list[DatabaseInfo] = Field(default_factory=list)
    users: list[DatabaseUser] = Field(default_factory=list)
    mysql_status: MySQLStatusInfo | None = None

    # ── Generic ──────────────────────────────────────────────────
    status_text: str = ""
    status_metrics: dict[str, str] = Field(default_factory=dict)
    error_message: str | None = None
    loaded_sections: list[str] = Field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")
