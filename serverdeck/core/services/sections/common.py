"""
Common section providers — sections every application can offer.

Service, logs, raw config file, parsed configuration values, installed
versions and runtime status. Per-application variance is pushed down
into the software services; these providers mostly route results into
the state store.
"""

from __future__ import annotations

import logging

from serverdeck.core.errors import LoadFailed
from serverdeck.core.models.application import ApplicationDefinition, SectionProviderType
from serverdeck.core.services.detection.base import first_match
from serverdeck.core.services.sections.base import SectionProvider
from serverdeck.core.services.sections.config_values import parse_config_values
from serverdeck.core.services.software import (
    MySQLService,
    PHPService,
    PostgreSQLService,
    RedisService,
    RuntimeService,
    SoftwareServices,
)
from serverdeck.core.services.software.nginx import NginxService
from serverdeck.core.services.state_store import ApplicationStateStore
from serverdeck.core.services.versions.compare import sort_versions_desc
from serverdeck.core.session import ServerSession, looks_denied, quote, read_failed, sudo

logger = logging.getLogger(__name__)

LOG_TAIL_LINES = 200
JOURNAL_LINES = 100

# Tried after the catalog's own paths when those yield nothing
FALLBACK_LOG_PATHS: dict[str, tuple[str, ...]] = {
    "nginx": ("/var/log/nginx/error.log", "/var/log/nginx/access.log", "/www/server/nginx/logs/error.log"),
    "apache": ("/var/log/apache2/error.log", "/var/log/httpd/error_log", "/var/log/httpd/access_log"),
    "php": ("/var/log/php-fpm.log", "/var/log/php8.3-fpm.log", "/var/log/php8.2-fpm.log", "/var/log/php8.1-fpm.log"),
    "mysql": ("/var/log/mysql/error.log", "/var/log/mysql.log", "/var/log/mariadb/mariadb.log"),
    "postgresql": ("/var/log/postgresql/postgresql-main.log", "/var/log/postgresql/postgresql-15-main.log"),
    "redis": ("/var/log/redis/redis-server.log", "/var/log/redis.log"),
    "mongodb": ("/var/log/mongodb/mongod.log", "/var/log/mongo.log"),
}

FALLBACK_CONFIG_PATHS: dict[str, tuple[str, ...]] = {
    "nginx": ("/etc/nginx/nginx.conf", "/www/server/nginx/conf/nginx.conf", "/usr/local/nginx/conf/nginx.conf"),
    "apache": ("/etc/apache2/apache2.conf", "/etc/httpd/conf/httpd.conf", "/www/server/apache/conf/httpd.conf"),
    "php": (
        "/etc/php/8.3/fpm/php.ini",
        "/etc/php/8.2/fpm/php.ini",
        "/etc/php/8.1/fpm/php.ini",
        "/etc/php/8.0/fpm/php.ini",
        "/etc/php/7.4/fpm/php.ini",
    ),
    "mysql": ("/etc/mysql/mysql.conf.d/mysqld.cnf", "/etc/mysql/my.cnf", "/etc/my.cnf"),
    "postgresql": (
        "/etc/postgresql/16/main/postgresql.conf",
        "/etc/postgresql/15/main/postgresql.conf",
        "/etc/postgresql/14/main/postgresql.conf",
    ),
    "redis": ("/etc/redis/redis.conf", "/etc/redis.conf"),
    "mongodb": ("/etc/mongod.conf",),
}


def _unique(paths: list[str | None]) -> list[str]:
    seen: list[str] = []
    for path in paths:
        if path and path not in seen:
            seen.append(path)
    return seen


# ── Service ─────────────────────────────────────────────────────


class ServiceSectionProvider(SectionProvider):
    """Installed/running state, version, binary and config locations."""

    provider_type = SectionProviderType.SERVICE

    async def load_data(self, app: ApplicationDefinition, store: ApplicationStateStore, session: ServerSession) -> None:
        service = self.service_for(app)
        status = await service.get_status(session)
        binary = await service.get_binary_path(session) if status.is_installed else None
        config_path = await service.get_config_path(session) if status.is_installed else None

        await store.apply(
            is_running=status.is_running,
            version=status.version or status.display,
            binary_path=binary or app.service_config.binary_path or "",
            config_path=config_path or app.service_config.config_path or "",
            status_text=status.display,
        )

        if isinstance(service, NginxService) and status.is_running:
            await store.apply(nginx_status=await service.get_stub_status(session))


# ── Logs ────────────────────────────────────────────────────────


class LogsSectionProvider(SectionProvider):
    """Tail of the first readable log file, else the systemd journal.

    A file that exists but cannot be read yields a single placeholder
    line describing the denial, so the section still renders.
    """

    provider_type = SectionProviderType.LOGS

    async def load_data(self, app: ApplicationDefinition, store: ApplicationStateStore, session: ServerSession) -> None:
        service = self.services.for_application(app.id)
        resolved = await service.get_log_paths(session) if service else []
        configured = _unique([*resolved, *app.service_config.log_paths])
        candidates = _unique([store.state.log_path or None, *configured, *FALLBACK_LOG_PATHS.get(app.id, ())])
        await store.apply(log_files=configured or candidates)

        denied: str | None = None
        for path in candidates:
            result = await session.execute_elevated(f"tail -n {LOG_TAIL_LINES} {quote(path)} 2>&1", timeout=15)
            first = result.lines[0] if result.lines else ""
            if looks_denied(first):
                denied = denied or path
                continue
            if not result.ok or not result.text or read_failed(result):
                continue
            await store.apply(log_path=path, logs=result.output.splitlines())
            return

        unit = app.service_config.service_name
        if unit:
            journal = await session.execute(
                f"{sudo('journalctl')} -u {quote(unit)} -n {JOURNAL_LINES} --no-pager 2>/dev/null", timeout=15
            )
            if journal.ok and journal.text and "No entries" not in journal.output:
                await store.apply(log_path=f"journal:{unit}", logs=journal.output.splitlines())
                return

        if denied is not None:
            logger.debug("%s: log %s is not readable", app.id, denied)
            await store.apply(log_path=denied, logs=[f"Permission denied: cannot read {denied}"])
            return
        await store.apply(logs=[], status_text=f"No logs found. Checked paths: {', '.join(candidates)}")


# ── Config file ─────────────────────────────────────────────────


class ConfigFileSectionProvider(SectionProvider):
    """Raw content of the main config file, trying known locations in order."""

    provider_type = SectionProviderType.CONFIG_FILE

    async def load_data(self, app: ApplicationDefinition, store: ApplicationStateStore, session: ServerSession) -> None:
        service = self.services.for_application(app.id)
        resolved = await service.get_config_path(session) if service else None
        candidates = _unique([resolved, app.service_config.config_path, *FALLBACK_CONFIG_PATHS.get(app.id, ())])
        if not candidates:
            raise LoadFailed(f"No config file is known for {app.name}")

        async def _read(path: str) -> tuple[str, str] | None:
            content = await session.read_text(path)
            return (path, content) if content is not None else None

        found = await first_match([lambda p=p: _read(p) for p in candidates])
        if found is None:
            raise LoadFailed(f"Could not load config file at {candidates[0]}")
        path, content = found
        await store.apply(config_path=path, config_content=content)


# ── Configuration values ────────────────────────────────────────


class ConfigurationSectionProvider(SectionProvider):
    """Selected directives parsed out of the config file."""

    provider_type = SectionProviderType.CONFIGURATION

    def __init__(self, services: SoftwareServices, config_file: ConfigFileSectionProvider | None = None):
        super().__init__(services)
        self.config_file = config_file or ConfigFileSectionProvider(services)

    async def load_data(self, app: ApplicationDefinition, store: ApplicationStateStore, session: ServerSession) -> None:
        if not store.state.config_content:
            try:
                await self.config_file.load_data(app, store, session)
            except LoadFailed as e:
                logger.debug("%s: no config to parse: %s", app.id, e)
                await store.apply(config_values=[])
                return
        values = parse_config_values(app.id, store.state.config_content)
        await store.apply(config_values=values)


# ── Versions ────────────────────────────────────────────────────


class VersionsSectionProvider(SectionProvider):
    """Active version and every installed version, newest first."""

    provider_type = SectionProviderType.VERSIONS

    async def load_data(self, app: ApplicationDefinition, store: ApplicationStateStore, session: ServerSession) -> None:
        service = self.service_for(app)
        active = await service.get_version(session) or ""

        installed: list[str] = []
        if isinstance(service, (PHPService, RuntimeService)):
            installed = await service.installed_versions(session)
        elif isinstance(service, PostgreSQLService):
            installed = await service.versions.get_cluster_versions(session)
        if not installed and active:
            installed = [active]

        await store.apply(active_version=active, installed_versions=sort_versions_desc(installed))


# ── Status ──────────────────────────────────────────────────────


REDIS_STATUS_KEYS = (
    "redis_version", "uptime_in_days", "connected_clients", "used_memory_human",
    "total_commands_processed", "keyspace_hits", "keyspace_misses", "role",
)


class StatusSectionProvider(SectionProvider):
    """Runtime metrics: stub_status, FPM status, server counters."""

    provider_type = SectionProviderType.STATUS

    async def load_data(self, app: ApplicationDefinition, store: ApplicationStateStore, session: ServerSession) -> None:
        service = self.service_for(app)

        if isinstance(service, NginxService):
            await store.apply(nginx_status=await service.get_stub_status(session))
        elif isinstance(service, MySQLService):
            await store.apply(mysql_status=await service.get_server_status(session))
        elif isinstance(service, PHPService):
            await store.apply(fpm_status=await service.fpm.get_status(session))
        elif isinstance(service, RedisService):
            info = await service.get_info(session)
            await store.apply(status_metrics={k: info[k] for k in REDIS_STATUS_KEYS if k in info})
        elif isinstance(service, PostgreSQLService):
            count = await service.get_connection_count(session)
            await store.apply(status_metrics={"connections": str(count)} if count is not None else {})

        unit = app.service_config.service_name
        if unit and not isinstance(service, PHPService):
            result = await session.execute(f"systemctl status {quote(unit)} --no-pager -l -n 5 2>/dev/null", timeout=10)
            await store.apply(status_text=result.output.strip())
