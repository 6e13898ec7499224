"""
Application registry — the catalog of supported server software.

The registry is built once from a list of ApplicationDefinitions and
is read-only afterwards, so any number of tasks may look things up
concurrently without locking. Ids are compared case-insensitively and
installed-software names are resolved through a small alias table
(``httpd`` → apache, ``mariadb`` → mysql, ...).

Usage::

    registry = ApplicationRegistry()
    app = registry.application_for_software("httpd")   # apache
    for section in app.sorted_sections:
        ...
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from serverdeck.core.models.application import (
    ApplicationCategory,
    ApplicationDefinition,
    Capability,
    SectionDefinition,
    SectionProviderType,
    ServiceConfiguration,
)

logger = logging.getLogger(__name__)

# Installed-software names that differ from the canonical application id
SOFTWARE_ALIASES: dict[str, str] = {
    "apache2": "apache",
    "httpd": "apache",
    "mariadb": "mysql",
    "postgres": "postgresql",
    "nodejs": "node",
    "mongo": "mongodb",
    "mongod": "mongodb",
    "redis-server": "redis",
}


# ── Section builders ────────────────────────────────────────────


def section(
    provider_type: SectionProviderType,
    order: int,
    *,
    name: str | None = None,
    icon: str | None = None,
    is_default: bool = False,
    requires_running: bool = False,
) -> SectionDefinition:
    """A section whose id is its provider type, with the type's default labels."""
    return SectionDefinition(
        id=provider_type.value,
        name=name or provider_type.default_name,
        icon=icon or provider_type.default_icon,
        provider_type=provider_type,
        order=order,
        is_default=is_default,
        requires_running=requires_running,
    )


def service_section(order: int = 0) -> SectionDefinition:
    return section(SectionProviderType.SERVICE, order, is_default=True)


def configuration_section(order: int) -> SectionDefinition:
    return section(SectionProviderType.CONFIGURATION, order)


def config_file_section(order: int) -> SectionDefinition:
    return section(SectionProviderType.CONFIG_FILE, order)


def logs_section(order: int) -> SectionDefinition:
    return section(SectionProviderType.LOGS, order)


def status_section(order: int) -> SectionDefinition:
    return section(SectionProviderType.STATUS, order, requires_running=True)


def versions_section(order: int) -> SectionDefinition:
    return section(SectionProviderType.VERSIONS, order)


def modules_section(order: int) -> SectionDefinition:
    return section(SectionProviderType.MODULES, order)


def security_section(order: int) -> SectionDefinition:
    return section(SectionProviderType.SECURITY, order)


def sites_section(order: int) -> SectionDefinition:
    return section(SectionProviderType.SITES, order)


def databases_section(order: int) -> SectionDefinition:
    return section(SectionProviderType.DATABASES, order)


def users_section(order: int) -> SectionDefinition:
    return section(SectionProviderType.USERS, order)


def extensions_section(order: int) -> SectionDefinition:
    return section(SectionProviderType.EXTENSIONS, order)


def disabled_functions_section(order: int) -> SectionDefinition:
    return section(SectionProviderType.DISABLED_FUNCTIONS, order)


def fpm_profile_section(order: int) -> SectionDefinition:
    return section(SectionProviderType.FPM_PROFILE, order)


def phpinfo_section(order: int) -> SectionDefinition:
    return section(SectionProviderType.PHPINFO, order)


# ── Built-in catalog ────────────────────────────────────────────

C = Capability

NGINX = ApplicationDefinition(
    id="nginx",
    name="Nginx",
    icon="server",
    category=ApplicationCategory.WEB_SERVER,
    theme_color="#009639",
    sections=(
        service_section(0),
        configuration_section(1),
        config_file_section(2),
        sites_section(3),
        modules_section(4),
        security_section(5),
        logs_section(6),
        status_section(7),
    ),
    service_config=ServiceConfiguration(
        service_name="nginx",
        config_path="/etc/nginx/nginx.conf",
        log_paths=("/var/log/nginx/error.log", "/var/log/nginx/access.log"),
        binary_path="/usr/sbin/nginx",
        pid_path="/run/nginx.pid",
    ),
    capabilities=frozenset({
        C.CONTROLLABLE, C.CONFIGURABLE, C.HAS_MODULES, C.HAS_LOGS,
        C.HAS_STATUS, C.HAS_SITES, C.HAS_SECURITY, C.MULTI_VERSION,
    }),
)

APACHE = ApplicationDefinition(
    id="apache",
    name="Apache",
    icon="server",
    category=ApplicationCategory.WEB_SERVER,
    theme_color="#D22128",
    sections=(
        service_section(0),
        configuration_section(1),
        config_file_section(2),
        sites_section(3),
        modules_section(4),
        security_section(5),
        logs_section(6),
        status_section(7),
    ),
    service_config=ServiceConfiguration(
        service_name="apache2",
        config_path="/etc/apache2/apache2.conf",
        log_paths=("/var/log/apache2/error.log", "/var/log/apache2/access.log"),
        binary_path="/usr/sbin/apache2",
    ),
    capabilities=frozenset({
        C.CONTROLLABLE, C.CONFIGURABLE, C.HAS_MODULES, C.HAS_LOGS,
        C.HAS_STATUS, C.HAS_SITES, C.HAS_SECURITY, C.MULTI_VERSION,
    }),
)

PHP = ApplicationDefinition(
    id="php",
    name="PHP",
    icon="terminal",
    category=ApplicationCategory.RUNTIME,
    theme_color="#777BB4",
    sections=(
        service_section(0),
        versions_section(1),
        extensions_section(2),
        disabled_functions_section(3),
        configuration_section(4),
        config_file_section(5),
        fpm_profile_section(6),
        logs_section(7),
        phpinfo_section(8),
    ),
    service_config=ServiceConfiguration(
        service_name="php-fpm",
        config_path="/etc/php/8.2/fpm/php.ini",
        log_paths=("/var/log/php-fpm.log", "/var/log/php8.2-fpm.log"),
        binary_path="/usr/bin/php",
        socket_path="/run/php/php-fpm.sock",
    ),
    capabilities=frozenset({
        C.CONTROLLABLE, C.CONFIGURABLE, C.HAS_EXTENSIONS, C.HAS_LOGS,
        C.MULTI_VERSION, C.HAS_FPM,
    }),
)

MYSQL = ApplicationDefinition(
    id="mysql",
    name="MySQL",
    icon="database",
    category=ApplicationCategory.DATABASE,
    theme_color="#4479A1",
    sections=(
        service_section(0),
        configuration_section(1),
        databases_section(2),
        users_section(3),
        logs_section(4),
        status_section(5),
    ),
    service_config=ServiceConfiguration(
        service_name="mysql",
        config_path="/etc/mysql/mysql.conf.d/mysqld.cnf",
        log_paths=("/var/log/mysql/error.log",),
        binary_path="/usr/bin/mysql",
        socket_path="/var/run/mysqld/mysqld.sock",
    ),
    capabilities=frozenset({
        C.CONTROLLABLE, C.CONFIGURABLE, C.HAS_DATABASES, C.HAS_USERS,
        C.HAS_LOGS, C.HAS_STATUS, C.MULTI_VERSION,
    }),
)

POSTGRESQL = ApplicationDefinition(
    id="postgresql",
    name="PostgreSQL",
    icon="database",
    category=ApplicationCategory.DATABASE,
    theme_color="#336791",
    sections=(
        service_section(0),
        configuration_section(1),
        databases_section(2),
        users_section(3),
        logs_section(4),
        status_section(5),
    ),
    service_config=ServiceConfiguration(
        service_name="postgresql",
        config_path="/etc/postgresql/15/main/postgresql.conf",
        log_paths=("/var/log/postgresql/postgresql-main.log",),
        binary_path="/usr/bin/psql",
    ),
    capabilities=frozenset({
        C.CONTROLLABLE, C.CONFIGURABLE, C.HAS_DATABASES, C.HAS_USERS,
        C.HAS_LOGS, C.HAS_STATUS, C.MULTI_VERSION,
    }),
)

REDIS = ApplicationDefinition(
    id="redis",
    name="Redis",
    icon="zap",
    category=ApplicationCategory.CACHE,
    theme_color="#DC382D",
    sections=(
        service_section(0),
        configuration_section(1),
        config_file_section(2),
        databases_section(3),
        users_section(4),
        logs_section(5),
        status_section(6),
    ),
    service_config=ServiceConfiguration(
        service_name="redis-server",
        config_path="/etc/redis/redis.conf",
        log_paths=("/var/log/redis/redis-server.log",),
        binary_path="/usr/bin/redis-server",
        socket_path="/run/redis/redis-server.sock",
    ),
    capabilities=frozenset({
        C.CONTROLLABLE, C.CONFIGURABLE, C.HAS_DATABASES, C.HAS_USERS,
        C.HAS_LOGS, C.HAS_STATUS,
    }),
)

MONGODB = ApplicationDefinition(
    id="mongodb",
    name="MongoDB",
    icon="leaf",
    category=ApplicationCategory.DATABASE,
    theme_color="#47A248",
    sections=(
        service_section(0),
        configuration_section(1),
        databases_section(2),
        users_section(3),
        logs_section(4),
    ),
    service_config=ServiceConfiguration(
        service_name="mongod",
        config_path="/etc/mongod.conf",
        log_paths=("/var/log/mongodb/mongod.log",),
        binary_path="/usr/bin/mongod",
    ),
    capabilities=frozenset({
        C.CONTROLLABLE, C.CONFIGURABLE, C.HAS_DATABASES, C.HAS_USERS, C.HAS_LOGS,
    }),
)

PYTHON = ApplicationDefinition(
    id="python",
    name="Python",
    icon="terminal",
    category=ApplicationCategory.RUNTIME,
    theme_color="#3776AB",
    sections=(service_section(0), versions_section(1)),
    service_config=ServiceConfiguration(service_name="", binary_path="/usr/bin/python3"),
    capabilities=frozenset({C.MULTI_VERSION}),
)

NODE = ApplicationDefinition(
    id="node",
    name="Node.js",
    slug="nodejs",
    icon="terminal",
    category=ApplicationCategory.RUNTIME,
    theme_color="#339933",
    sections=(service_section(0), versions_section(1)),
    service_config=ServiceConfiguration(service_name="", binary_path="/usr/bin/node"),
    capabilities=frozenset({C.MULTI_VERSION}),
)

BUILTIN_APPLICATIONS: tuple[ApplicationDefinition, ...] = (
    NGINX, APACHE, PHP, MYSQL, POSTGRESQL, REDIS, MONGODB, PYTHON, NODE,
)


# ── Registry ────────────────────────────────────────────────────


class ApplicationRegistry:
    """Read-only lookup over application definitions.

    Populated once at construction. Duplicate ids keep the last
    definition and log a warning.
    """

    def __init__(self, definitions: Iterable[ApplicationDefinition] = BUILTIN_APPLICATIONS):
        self._applications: dict[str, ApplicationDefinition] = {}
        for definition in definitions:
            if definition.id in self._applications:
                logger.warning("Overwriting existing application: %s", definition.id)
            self._applications[definition.id] = definition
        logger.debug("Application registry built with %d definitions", len(self._applications))

    def __len__(self) -> int:
        return len(self._applications)

    def __contains__(self, application_id: object) -> bool:
        return isinstance(application_id, str) and application_id.lower() in self._applications

    def application(self, application_id: str) -> ApplicationDefinition | None:
        """Look up a definition by id, ignoring case."""
        return self._applications.get(application_id.lower())

    def application_for_software(self, name: str) -> ApplicationDefinition | None:
        """Resolve an installed-software name to its definition.

        Tries the id directly, then the alias table, then any definition
        whose slug or service name matches.
        """
        wanted = name.strip().lower()
        if not wanted:
            return None
        direct = self.application(wanted)
        if direct is not None:
            return direct
        alias = SOFTWARE_ALIASES.get(wanted)
        if alias is not None:
            return self.application(alias)
        for app in self._applications.values():
            if app.slug.lower() == wanted or app.service_config.service_name.lower() == wanted:
                return app
        return None

    def all_applications(self) -> list[ApplicationDefinition]:
        """Every definition, sorted by display name."""
        return sorted(self._applications.values(), key=lambda a: a.name)

    def applications(self, category: ApplicationCategory) -> list[ApplicationDefinition]:
        return [a for a in self.all_applications() if a.category == category]

    def with_capability(self, capability: Capability) -> list[ApplicationDefinition]:
        return [a for a in self.all_applications() if a.has(capability)]
