"""
Application definitions — declarative descriptions of server software.

An ApplicationDefinition says what a piece of software is (category,
capabilities), how to reach it on disk and in systemd
(ServiceConfiguration), and which independently loadable sections its
management surface is made of (SectionDefinition). Definitions are
immutable; they are built once when the registry is constructed.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ApplicationCategory(StrEnum):
    """Broad family an application belongs to."""

    WEB_SERVER = "web_server"
    DATABASE = "database"
    RUNTIME = "runtime"
    CACHE = "cache"
    TOOL = "tool"


class Capability(StrEnum):
    """Feature flags gating which sections/actions an application offers."""

    CONTROLLABLE = "controllable"
    CONFIGURABLE = "configurable"
    HAS_MODULES = "has_modules"
    HAS_EXTENSIONS = "has_extensions"
    HAS_DATABASES = "has_databases"
    HAS_USERS = "has_users"
    HAS_LOGS = "has_logs"
    MULTI_VERSION = "multi_version"
    HAS_STATUS = "has_status"
    HAS_SITES = "has_sites"
    HAS_SECURITY = "has_security"
    HAS_FPM = "has_fpm"


class SectionProviderType(StrEnum):
    """Dispatch key from a section to the provider that loads it."""

    # Common across all applications
    SERVICE = "service"
    VERSIONS = "versions"
    CONFIGURATION = "configuration"
    CONFIG_FILE = "config_file"
    LOGS = "logs"
    STATUS = "status"

    # Web servers
    MODULES = "modules"
    SECURITY = "security"
    WAF_STATS = "waf_stats"
    SITES = "sites"
    ERROR_PAGES = "error_pages"

    # PHP
    EXTENSIONS = "extensions"
    DISABLED_FUNCTIONS = "disabled_functions"
    FPM_PROFILE = "fpm_profile"
    PHPINFO = "phpinfo"
    UPLOAD_LIMITS = "upload_limits"
    TIMEOUTS = "timeouts"

    # Databases
    DATABASES = "databases"
    USERS = "users"
    BACKUP = "backup"

    @property
    def default_name(self) -> str:
        return _DEFAULT_NAMES[self]

    @property
    def default_icon(self) -> str:
        return _DEFAULT_ICONS[self]


_DEFAULT_NAMES: dict[SectionProviderType, str] = {
    SectionProviderType.SERVICE: "Service",
    SectionProviderType.VERSIONS: "Versions",
    SectionProviderType.CONFIGURATION: "Configuration",
    SectionProviderType.CONFIG_FILE: "Config File",
    SectionProviderType.LOGS: "Logs",
    SectionProviderType.STATUS: "Status",
    SectionProviderType.MODULES: "Modules",
    SectionProviderType.SECURITY: "Security",
    SectionProviderType.WAF_STATS: "WAF Logs",
    SectionProviderType.SITES: "Sites",
    SectionProviderType.ERROR_PAGES: "Error Pages",
    SectionProviderType.EXTENSIONS: "Extensions",
    SectionProviderType.DISABLED_FUNCTIONS: "Disabled Functions",
    SectionProviderType.FPM_PROFILE: "FPM Profile",
    SectionProviderType.PHPINFO: "PHP Info",
    SectionProviderType.UPLOAD_LIMITS: "Upload Limits",
    SectionProviderType.TIMEOUTS: "Timeouts",
    SectionProviderType.DATABASES: "Databases",
    SectionProviderType.USERS: "Users",
    SectionProviderType.BACKUP: "Backup",
}

_DEFAULT_ICONS: dict[SectionProviderType, str] = {
    SectionProviderType.SERVICE: "power",
    SectionProviderType.VERSIONS: "layers",
    SectionProviderType.CONFIGURATION: "sliders",
    SectionProviderType.CONFIG_FILE: "file-text",
    SectionProviderType.LOGS: "list",
    SectionProviderType.STATUS: "bar-chart",
    SectionProviderType.MODULES: "cpu",
    SectionProviderType.SECURITY: "shield",
    SectionProviderType.WAF_STATS: "activity",
    SectionProviderType.SITES: "globe",
    SectionProviderType.ERROR_PAGES: "alert-triangle",
    SectionProviderType.EXTENSIONS: "puzzle",
    SectionProviderType.DISABLED_FUNCTIONS: "x-circle",
    SectionProviderType.FPM_PROFILE: "cpu",
    SectionProviderType.PHPINFO: "info",
    SectionProviderType.UPLOAD_LIMITS: "upload",
    SectionProviderType.TIMEOUTS: "clock",
    SectionProviderType.DATABASES: "database",
    SectionProviderType.USERS: "users",
    SectionProviderType.BACKUP: "hard-drive",
}


class SectionDefinition(BaseModel):
    """One independently loadable facet of an application."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    icon: str
    provider_type: SectionProviderType
    order: int = 0
    is_default: bool = False
    requires_running: bool = False  # only meaningful while the service runs


class ServiceConfiguration(BaseModel):
    """Filesystem and systemd facts needed to operate an application.

    Paths here are the common-case defaults. Software whose layout varies
    by distribution is re-resolved by its detector at call time.
    """

    model_config = ConfigDict(frozen=True)

    service_name: str
    config_path: str | None = None
    log_paths: tuple[str, ...] = ()
    binary_path: str | None = None
    pid_path: str | None = None
    socket_path: str | None = None


class ApplicationDefinition(BaseModel):
    """Declarative description of one piece of server software."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    slug: str = ""
    icon: str = ""
    category: ApplicationCategory
    theme_color: str = "#6B7280"
    sections: tuple[SectionDefinition, ...] = ()
    service_config: ServiceConfiguration
    capabilities: frozenset[Capability] = Field(default_factory=frozenset)

    @model_validator(mode="before")
    @classmethod
    def _normalise_identity(cls, data: dict) -> dict:
        if isinstance(data, dict):
            data = dict(data)
            data["id"] = str(data.get("id", "")).lower()
            if not data.get("slug"):
                data["slug"] = data["id"]
        return data

    def has(self, capability: Capability) -> bool:
        """Whether this application declares a capability."""
        return capability in self.capabilities

    @property
    def sorted_sections(self) -> list[SectionDefinition]:
        """Sections in presentation order."""
        return sorted(self.sections, key=lambda s: s.order)

    @property
    def default_section(self) -> SectionDefinition | None:
        """The section flagged as default, else the first in order."""
        for section in self.sections:
            if section.is_default:
                return section
        ordered = self.sorted_sections
        return ordered[0] if ordered else None

    def section(self, section_id: str) -> SectionDefinition | None:
        """Look up a section by id or provider type."""
        wanted = section_id.lower()
        for section in self.sections:
            if section.id == wanted or section.provider_type.value == wanted:
                return section
        return None
