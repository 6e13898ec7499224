"""
Apache detection — installation, paths, version, modules, validation.

The same server ships as ``apache2`` (Debian family, /etc/apache2) and
``httpd`` (RHEL family, /etc/httpd). The layout directory is the most
reliable tell, so OS classification probes it before anything else.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from serverdeck.core.models.command import ValidationResult
from serverdeck.core.services.detection.base import (
    OSFamily,
    SoftwareDetector,
    detect_os_family,
    first_regex,
    most_common_prefix,
    service_exists,
)
from serverdeck.core.session import ServerSession, quote, sudo

logger = logging.getLogger(__name__)


class ApacheDetector(SoftwareDetector):
    binaries = ("apache2", "httpd")
    service_names = ("apache2", "httpd")
    binary_paths = (
        "/usr/sbin/apache2",
        "/usr/sbin/httpd",
        "/usr/local/apache2/bin/httpd",
        "/www/server/apache/bin/httpd",
    )
    packages = ("apache2", "httpd")

    async def get_service_name(self, session: ServerSession) -> str:
        for service in self.service_names:
            if await service_exists(session, service):
                return service
        family = await detect_os_family(session, debian_dir="/etc/apache2", rhel_dir="/etc/httpd")
        return "httpd" if family == OSFamily.RHEL else "apache2"


# ── Paths ───────────────────────────────────────────────────────


@dataclass(frozen=True)
class ApachePaths:
    config_file: str
    sites_available: str
    sites_enabled: str
    mods_available: str
    mods_enabled: str
    conf_d: str
    log_dir: str
    pid_file: str
    ctl: str  # control binary

    @property
    def error_log(self) -> str:
        return f"{self.log_dir}/error.log" if "apache2" in self.log_dir else f"{self.log_dir}/error_log"

    @property
    def access_log(self) -> str:
        return f"{self.log_dir}/access.log" if "apache2" in self.log_dir else f"{self.log_dir}/access_log"

    @property
    def uses_symlinks(self) -> bool:
        return self.sites_available != self.sites_enabled


DEBIAN_PATHS = ApachePaths(
    config_file="/etc/apache2/apache2.conf",
    sites_available="/etc/apache2/sites-available",
    sites_enabled="/etc/apache2/sites-enabled",
    mods_available="/etc/apache2/mods-available",
    mods_enabled="/etc/apache2/mods-enabled",
    conf_d="/etc/apache2/conf-available",
    log_dir="/var/log/apache2",
    pid_file="/var/run/apache2/apache2.pid",
    ctl="apache2ctl",
)

RHEL_PATHS = ApachePaths(
    config_file="/etc/httpd/conf/httpd.conf",
    sites_available="/etc/httpd/conf.d",
    sites_enabled="/etc/httpd/conf.d",
    mods_available="/etc/httpd/conf.modules.d",
    mods_enabled="/etc/httpd/conf.modules.d",
    conf_d="/etc/httpd/conf.d",
    log_dir="/var/log/httpd",
    pid_file="/var/run/httpd/httpd.pid",
    ctl="apachectl",
)


class ApachePathResolver:
    """Resolve apache file locations on the target at call time."""

    async def get_os_type(self, session: ServerSession) -> OSFamily:
        return await detect_os_family(session, debian_dir="/etc/apache2", rhel_dir="/etc/httpd")

    async def get_paths(self, session: ServerSession) -> ApachePaths:
        family = await self.get_os_type(session)
        return RHEL_PATHS if family == OSFamily.RHEL else DEBIAN_PATHS

    async def get_config_path(self, session: ServerSession) -> str:
        return (await self.get_paths(session)).config_file

    async def get_document_root_base(self, session: ServerSession) -> str:
        """Most frequent DocumentRoot prefix across vhosts, else ``/var/www``."""
        paths = await self.get_paths(session)
        result = await session.execute(
            f"grep -rhiE '^\\s*DocumentRoot\\s+' {quote(paths.sites_enabled)} 2>/dev/null | head -n 200",
            timeout=10,
        )
        roots = [
            line.split(None, 1)[1].strip().strip('"')
            for line in result.lines
            if len(line.split(None, 1)) == 2
        ]
        return most_common_prefix(roots) or "/var/www"


# ── Version & modules ───────────────────────────────────────────

_VERSION_PATTERNS = (
    re.compile(r"Apache/(\d+\.\d+\.\d+)"),
    re.compile(r"(\d+\.\d+\.\d+)"),
    re.compile(r"(\d+\.\d+)"),
)


def parse_apache_version(output: str) -> str | None:
    """``Server version: Apache/2.4.57 (Debian)`` → ``2.4.57``."""
    return first_regex(_VERSION_PATTERNS, output)


def parse_apache_modules(output: str) -> list[str]:
    """Module names from ``apachectl -M`` (``rewrite_module (shared)`` → ``rewrite_module``)."""
    modules: list[str] = []
    for line in output.splitlines():
        line = line.strip()
        if not line or line.startswith("Loaded") or "_module" not in line:
            continue
        name = line.split()[0]
        if name not in modules:
            modules.append(name)
    return sorted(modules)


class ApacheVersionResolver:
    async def get_version(self, session: ServerSession) -> str | None:
        result = await session.execute(
            "(apache2 -v 2>/dev/null || httpd -v 2>/dev/null) | head -n 1", timeout=10
        )
        return parse_apache_version(result.output)

    async def get_loaded_modules(self, session: ServerSession) -> list[str]:
        result = await session.execute(
            "apache2ctl -M 2>/dev/null || apachectl -M 2>/dev/null || httpd -M 2>/dev/null",
            timeout=15,
        )
        return parse_apache_modules(result.output)


# ── Validation ──────────────────────────────────────────────────

_FAILURE_WORDS = ("error", "failed", "invalid", "password is required", "command not found")


def parse_apache_configtest(output: str, exit_code: int = 0) -> ValidationResult:
    text = output.strip()
    failure_line = next(
        (line.strip() for line in text.splitlines()
         if any(word in line.lower() for word in _FAILURE_WORDS)),
        None,
    )
    if exit_code != 0:
        message = failure_line or (text.splitlines()[0] if text else f"configtest exited with code {exit_code}")
        return ValidationResult(valid=False, message=message, output=text)
    if "syntax ok" in text.lower():
        return ValidationResult(valid=True, message="Configuration is valid", output=text)
    if not text:
        return ValidationResult(valid=True, message="Configuration appears valid", output=text)
    return ValidationResult(valid=False, message=failure_line or "Configuration validation failed", output=text)


class ApacheConfigValidator:
    async def validate(self, session: ServerSession) -> ValidationResult:
        result = await session.execute(
            f"{sudo('apache2ctl')} configtest 2>&1 || {sudo('apachectl')} configtest 2>&1",
            timeout=15,
        )
        validation = parse_apache_configtest(result.output, result.exit_code)
        if not validation.valid:
            logger.info("apache config test failed: %s", validation.message)
        return validation
