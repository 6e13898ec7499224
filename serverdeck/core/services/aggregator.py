"""
Server service aggregator — the façade the CLI and other consumers call.

The aggregator owns no state of its own. It holds the injected
software services and application registry, and exposes:

    - Status: one batched round trip for the common services, or a
      fan-out of independent per-application checks.
    - Service control: start/stop/restart by service name, routed to a
      per-service handler when one exists and otherwise to a plain
      ``systemctl <verb> <name>``.
    - Safe config updates: write, validate, and only then reload. A
      config that fails validation stays on disk but is never applied;
      the validator's text is returned to the caller.
    - Sites, databases, PHP version switching, MySQL root password.

Expected failures are reported as ``False``/``None``. Only a dead
session (SessionNotAvailable) or an unknown application id
(ServiceNotFound) raise.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Iterable

from pydantic import BaseModel

from serverdeck.core.config.loader import TimeoutConfig
from serverdeck.core.errors import ServiceNotFound
from serverdeck.core.models.application import ApplicationDefinition
from serverdeck.core.models.state import DatabaseInfo, WebsiteInfo
from serverdeck.core.models.status import ServerStatus, SoftwareStatus
from serverdeck.core.models.versioning import SwitchOutcome
from serverdeck.core.services.applications import ApplicationRegistry
from serverdeck.core.services.software import (
    ControllableService,
    DatabaseService,
    MySQLService,
    SoftwareServices,
    WebServerService,
)
from serverdeck.core.services.software.base import systemctl
from serverdeck.core.session import ServerSession, quote, require_session, sudo

logger = logging.getLogger(__name__)

# Services probed by the batched status script, in order
BATCH_SERVICES: tuple[str, ...] = ("nginx", "apache2", "httpd", "mysql", "postgresql", "php", "redis")

# Version probe per batched service; output goes to one line
VERSION_COMMANDS: dict[str, str] = {
    "nginx": "nginx -v",
    "apache2": "apache2 -v",
    "httpd": "httpd -v",
    "mysql": "mysql --version",
    "postgresql": "psql --version",
    "php": "php --version",
    "redis": "redis-server --version",
}

_UNIT_NAME_RE = re.compile(r"^[A-Za-z0-9@._-]+$")
_FPM_UNIT_RE = re.compile(r"^php(\d+\.\d+)-fpm$")
_PHP_VERSION_RE = re.compile(r"^\d+\.\d+$")


class ConfigUpdateResult(BaseModel):
    """Outcome of a write → validate → reload config update."""

    path: str = ""
    written: bool = False
    valid: bool = False
    reloaded: bool = False
    validator_output: str = ""

    @property
    def ok(self) -> bool:
        return self.written and self.valid and self.reloaded


# ── Batched status ──────────────────────────────────────────────


def build_status_script(services: Iterable[str] = BATCH_SERVICES) -> str:
    """One shell script probing activity and version of every service.

    Each service contributes four lines to the output: ``SVC_<NAME>``,
    its ``systemctl is-active`` state, ``VER_<NAME>``, and the first
    line of its version output (or ``not installed``).
    """
    lines = []
    for svc in services:
        key = svc.upper()
        version = VERSION_COMMANDS.get(svc, f"{svc} --version")
        binary = version.split()[0]
        lines.append(f'echo "SVC_{key}"; systemctl is-active {quote(svc)} 2>/dev/null | head -n 1 || echo "inactive"')
        lines.append(
            f'echo "VER_{key}"; command -v {quote(binary)} >/dev/null 2>&1 '
            f'&& {version} 2>&1 | head -n 1 || echo "not installed"'
        )
    return "\n".join(lines)


def _clean_version(raw: str) -> str:
    """``nginx version: nginx/1.24.0`` → ``nginx/1.24.0``; first token with ``/`` or ``.``."""
    for token in raw.split():
        if "/" in token or "." in token:
            return token.removeprefix("v=").rstrip(",")
    return "installed"


def parse_batch_status(output: str) -> dict[str, SoftwareStatus]:
    """Split batched output on its markers into a status per service key.

    A marker takes the line that follows it. A service with no version
    line, an empty one, or ``not installed`` is not installed whatever
    its activity line says.
    """
    lines = [line.strip() for line in output.splitlines()]
    activity: dict[str, str] = {}
    versions: dict[str, str] = {}
    for index, line in enumerate(lines[:-1]):
        value = lines[index + 1]
        if line.startswith("SVC_"):
            activity[line.removeprefix("SVC_").lower()] = value
        elif line.startswith("VER_"):
            versions[line.removeprefix("VER_").lower()] = "" if value.startswith(("SVC_", "VER_")) else value

    statuses: dict[str, SoftwareStatus] = {}
    for key in activity.keys() | versions.keys():
        version = versions.get(key, "")
        if not version or "not installed" in version or "not found" in version:
            statuses[key] = SoftwareStatus.not_installed()
        elif activity.get(key) == "active":
            statuses[key] = SoftwareStatus.running(_clean_version(version))
        else:
            statuses[key] = SoftwareStatus.stopped(_clean_version(version))
    return statuses


def to_server_status(statuses: dict[str, SoftwareStatus]) -> ServerStatus:
    """Fold per-key statuses into a ServerStatus; apache2 falls back to httpd."""
    missing = SoftwareStatus.not_installed()
    apache = statuses.get("apache2", missing)
    if not apache.is_installed:
        apache = statuses.get("httpd", missing)
    return ServerStatus(
        nginx=statuses.get("nginx", missing),
        apache=apache,
        mysql=statuses.get("mysql", missing),
        postgresql=statuses.get("postgresql", missing),
        php=statuses.get("php", missing),
        redis=statuses.get("redis", missing),
    )


# ── Aggregator ──────────────────────────────────────────────────


class ServerServiceAggregator:
    """Single entry point for status, control and mutation operations."""

    def __init__(
        self,
        services: SoftwareServices | None = None,
        applications: ApplicationRegistry | None = None,
        timeouts: TimeoutConfig | None = None,
    ):
        self.services = services or SoftwareServices()
        self.applications = applications or ApplicationRegistry()
        self.timeouts = timeouts or TimeoutConfig()

    # ── Status ───────────────────────────────────────────────────

    async def fetch_installed_software(self, session: ServerSession | None) -> ServerStatus:
        """Status of the common services in a single round trip."""
        live = require_session(session)
        result = await live.execute(build_status_script(), timeout=self.timeouts.status_batch)
        status = to_server_status(parse_batch_status(result.output))
        logger.debug("Batched status on %s: %s", live.label, status.installed)
        return status

    async def fetch_status(self, session: ServerSession | None, application_id: str) -> SoftwareStatus:
        live = require_session(session)
        service = self.services.for_application(self._application(application_id).id)
        if service is None:
            raise ServiceNotFound(application_id)
        return await service.get_status(live)

    async def fetch_status_concurrently(
        self,
        session: ServerSession | None,
        application_ids: Iterable[str],
    ) -> dict[str, SoftwareStatus]:
        """Independent per-application checks issued together.

        The transport still runs one command at a time per target; the
        checks interleave at command boundaries.
        """
        live = require_session(session)
        ids = [self._application(a).id for a in application_ids]
        results = await asyncio.gather(*(self.fetch_status(live, a) for a in ids))
        return dict(zip(ids, results, strict=True))

    # ── Service control ──────────────────────────────────────────

    async def start_service(self, session: ServerSession | None, name: str) -> bool:
        return await self._control(session, "start", name)

    async def stop_service(self, session: ServerSession | None, name: str) -> bool:
        return await self._control(session, "stop", name)

    async def restart_service(self, session: ServerSession | None, name: str) -> bool:
        return await self._control(session, "restart", name)

    def handler_for(self, name: str) -> ControllableService | None:
        """The service class that knows how to control ``name``, if any."""
        app = self.applications.application_for_software(name)
        if app is None:
            return None
        service = self.services.for_application(app.id)
        return service if isinstance(service, ControllableService) else None

    async def _control(self, session: ServerSession | None, verb: str, name: str) -> bool:
        live = require_session(session)
        name = name.strip()

        fpm = _FPM_UNIT_RE.match(name)
        if fpm:
            ok = await self.services.php.fpm.control(live, verb, fpm.group(1))
        elif (handler := self.handler_for(name)) is not None:
            ok = await getattr(handler, verb)(live)
        elif _UNIT_NAME_RE.match(name):
            ok = (await systemctl(live, verb, name, timeout=self.timeouts.service_action)).ok
        else:
            logger.warning("Refusing to %s invalid service name %r", verb, name)
            return False

        logger.info("%s %s on %s: %s", verb, name, live.label, "ok" if ok else "failed")
        return ok

    # ── Configuration ────────────────────────────────────────────

    async def update_config(
        self,
        session: ServerSession | None,
        application_id: str,
        content: str,
        path: str | None = None,
    ) -> ConfigUpdateResult:
        """Write a new config, validate it, and reload only if it passed.

        A config that fails validation is left on disk as written and
        the running service keeps its previous configuration.
        """
        live = require_session(session)
        app = self._application(application_id)
        service = self.services.for_application(app.id)
        if not isinstance(service, ControllableService):
            raise ServiceNotFound(application_id)

        target = path or await service.get_config_path(live) or app.service_config.config_path
        if not target:
            logger.warning("%s: no config path to write", app.id)
            return ConfigUpdateResult()

        if not await live.write_file(target, content):
            logger.warning("%s: writing %s failed", app.id, target)
            return ConfigUpdateResult(path=target)

        validation = await service.validate_config(live)
        if not validation.valid:
            logger.warning("%s: new config at %s failed validation, not reloading: %s", app.id, target, validation.message)
            return ConfigUpdateResult(path=target, written=True, validator_output=validation.output or validation.message)

        reloaded = await service.apply_config(live)
        logger.info("%s: config %s updated (reloaded=%s)", app.id, target, reloaded)
        return ConfigUpdateResult(
            path=target, written=True, valid=True, reloaded=reloaded, validator_output=validation.output
        )

    # ── Websites ─────────────────────────────────────────────────

    def _web_servers(self) -> list[WebServerService]:
        return [self.services.nginx, self.services.apache]

    async def fetch_websites(self, session: ServerSession | None) -> list[WebsiteInfo]:
        """Sites from every installed web server."""
        live = require_session(session)
        sites: list[WebsiteInfo] = []
        for server in self._web_servers():
            if await server.is_installed(live):
                sites.extend(await server.fetch_sites(live))
        return sites

    async def create_website(
        self,
        session: ServerSession | None,
        domain: str,
        root: str = "",
        port: int = 80,
        php_version: str | None = None,
        web_server: str | None = None,
    ) -> bool:
        """Create a site on ``web_server``, else on nginx, else on apache."""
        live = require_session(session)
        server = await self._pick_web_server(live, web_server)
        if server is None:
            logger.warning("No web server installed on %s", live.label)
            return False
        try:
            return await server.create_site(live, domain, root=root, port=port, php_version=php_version)
        except ValueError as e:
            logger.warning("Cannot create site %r: %s", domain, e)
            return False

    async def delete_website(
        self,
        session: ServerSession | None,
        domain: str,
        web_server: str,
        delete_files: bool = False,
    ) -> bool:
        live = require_session(session)
        server = self.services.web_server(self._application(web_server).id)
        if server is None:
            return False
        return await server.delete_site(live, domain, delete_files=delete_files)

    async def _pick_web_server(self, session: ServerSession, name: str | None) -> WebServerService | None:
        if name:
            return self.services.web_server(self._application(name).id)
        for server in self._web_servers():
            if await server.is_installed(session):
                return server
        return None

    async def set_apache_module(self, session: ServerSession | None, module: str, enabled: bool) -> bool:
        """Enable or disable an apache module, then test and restart."""
        live = require_session(session)
        ok = await self.services.apache.set_module(live, module, enabled)
        verb = "enable" if enabled else "disable"
        logger.info("%s apache module %s on %s: %s", verb, module, live.label, "ok" if ok else "failed")
        return ok

    # ── Databases ────────────────────────────────────────────────

    def _database(self, engine: str) -> DatabaseService:
        service = self.services.database(self._application(engine).id)
        if service is None:
            raise ServiceNotFound(engine)
        return service

    async def fetch_databases(
        self,
        session: ServerSession | None,
        engines: Iterable[str] = ("mysql", "postgresql"),
    ) -> dict[str, list[DatabaseInfo]]:
        """Databases of every installed engine, keyed by engine id."""
        live = require_session(session)
        found: dict[str, list[DatabaseInfo]] = {}
        for engine in engines:
            service = self._database(engine)
            if await service.is_installed(live):
                found[service.engine] = await service.fetch_databases(live)
        return found

    async def create_database(
        self,
        session: ServerSession | None,
        name: str,
        engine: str = "mysql",
        username: str | None = None,
        password: str | None = None,
    ) -> bool:
        live = require_session(session)
        service = self._database(engine)
        if isinstance(service, MySQLService):
            ok = await service.create_database(live, name, username=username, password=password)
        else:
            ok = await service.create_database(live, name)
        logger.info("create database %s on %s/%s: %s", name, live.label, service.engine, "ok" if ok else "failed")
        return ok

    async def delete_database(self, session: ServerSession | None, name: str, engine: str = "mysql") -> bool:
        live = require_session(session)
        service = self._database(engine)
        ok = await service.delete_database(live, name)
        logger.info("delete database %s on %s/%s: %s", name, live.label, service.engine, "ok" if ok else "failed")
        return ok

    async def backup_database(self, session: ServerSession | None, name: str, engine: str = "mysql") -> str | None:
        """Dump a database on the target; returns the dump path."""
        live = require_session(session)
        return await self._database(engine).backup_database(live, name)

    async def change_mysql_root_password(self, session: ServerSession | None, password: str) -> bool:
        return await self.services.mysql.change_root_password(require_session(session), password)

    # ── PHP versions ─────────────────────────────────────────────

    async def installed_php_versions(self, session: ServerSession | None) -> list[str]:
        return await self.services.php.installed_versions(require_session(session))

    async def switch_php_version(self, session: ServerSession | None, version: str) -> SwitchOutcome:
        """Switch the system-wide PHP CLI version."""
        return await self.services.php.switch_version(require_session(session), version)

    async def switch_site_php_version(self, session: ServerSession | None, domain: str, version: str) -> bool:
        """Point one nginx site at another PHP-FPM socket, then validate and reload."""
        live = require_session(session)
        if not _PHP_VERSION_RE.match(version):
            return False
        nginx = self.services.nginx
        config_path = f"{await nginx.sites_available_dir(live)}/{nginx.site_file_name(domain)}"
        expression = f"s/php[0-9.]*-fpm.sock/php{version}-fpm.sock/g"
        await live.execute(f"{sudo('sed')} -i {quote(expression)} {quote(config_path)}", timeout=15)

        validation = await nginx.validate_config(live)
        if not validation.valid:
            logger.warning("PHP switch for %s left config invalid: %s", domain, validation.message)
            return False
        return await nginx.reload(live)

    # ── Helpers ──────────────────────────────────────────────────

    def _application(self, name: str) -> ApplicationDefinition:
        app = self.applications.application_for_software(name)
        if app is None:
            raise ServiceNotFound(name)
        return app
