"""
nginx detection — installation, paths, version, and config validation.

Debian-family hosts keep virtual hosts in sites-available/sites-enabled;
RHEL-family hosts use conf.d for both. Panel-managed hosts (aaPanel and
similar) install under /www/server/nginx and keep vhosts elsewhere.
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
    first_existing_command,
    first_match,
    first_regex,
    most_common_prefix,
)
from serverdeck.core.session import ServerSession, quote, sudo

logger = logging.getLogger(__name__)


class NginxDetector(SoftwareDetector):
    binaries = ("nginx",)
    service_names = ("nginx",)
    binary_paths = (
        "/usr/sbin/nginx",
        "/usr/local/sbin/nginx",
        "/usr/local/nginx/sbin/nginx",
        "/www/server/nginx/sbin/nginx",
    )
    packages = ("nginx", "nginx-core", "nginx-full", "nginx-extras", "nginx-light", "openresty")


# ── Paths ───────────────────────────────────────────────────────


@dataclass(frozen=True)
class NginxPaths:
    config_file: str
    sites_available: str
    sites_enabled: str
    conf_d: str
    log_dir: str
    pid_file: str

    @property
    def error_log(self) -> str:
        return f"{self.log_dir}/error.log"

    @property
    def access_log(self) -> str:
        return f"{self.log_dir}/access.log"

    @property
    def uses_symlinks(self) -> bool:
        """Whether enabling a site means linking available → enabled."""
        return self.sites_available != self.sites_enabled


DEBIAN_PATHS = NginxPaths(
    config_file="/etc/nginx/nginx.conf",
    sites_available="/etc/nginx/sites-available",
    sites_enabled="/etc/nginx/sites-enabled",
    conf_d="/etc/nginx/conf.d",
    log_dir="/var/log/nginx",
    pid_file="/run/nginx.pid",
)

RHEL_PATHS = NginxPaths(
    config_file="/etc/nginx/nginx.conf",
    sites_available="/etc/nginx/conf.d",
    sites_enabled="/etc/nginx/conf.d",
    conf_d="/etc/nginx/conf.d",
    log_dir="/var/log/nginx",
    pid_file="/run/nginx.pid",
)

PANEL_PATHS = NginxPaths(
    config_file="/www/server/nginx/conf/nginx.conf",
    sites_available="/www/server/panel/vhost/nginx",
    sites_enabled="/www/server/panel/vhost/nginx",
    conf_d="/www/server/nginx/conf",
    log_dir="/www/wwwlogs",
    pid_file="/www/server/nginx/logs/nginx.pid",
)

CONFIG_CANDIDATES = (
    "/etc/nginx/nginx.conf",
    "/www/server/nginx/conf/nginx.conf",
    "/usr/local/nginx/conf/nginx.conf",
    "/usr/local/etc/nginx/nginx.conf",
)

_DEFAULT_ROOTS = {
    OSFamily.DEBIAN: ("/var/www", "/var/www/html"),
    OSFamily.RHEL: ("/usr/share/nginx/html", "/var/www"),
}
_PANEL_ROOT = "/www/wwwroot"
_BARE_ROOT = "/var/www"


class NginxPathResolver:
    """Resolve nginx file locations on the target at call time."""

    async def get_os_type(self, session: ServerSession) -> OSFamily:
        return await detect_os_family(session, debian_dir="/etc/nginx/sites-available")

    async def is_panel_managed(self, session: ServerSession) -> bool:
        result = await session.execute(
            "test -f /www/server/nginx/conf/nginx.conf && test ! -f /etc/nginx/nginx.conf && echo PANEL",
            timeout=5,
        )
        return "PANEL" in result.output

    async def get_paths(self, session: ServerSession) -> NginxPaths:
        if await self.is_panel_managed(session):
            return PANEL_PATHS
        family = await self.get_os_type(session)
        return RHEL_PATHS if family == OSFamily.RHEL else DEBIAN_PATHS

    async def get_config_path(self, session: ServerSession) -> str:
        """First existing main config file, else the Debian default."""
        result = await session.execute(first_existing_command(CONFIG_CANDIDATES), timeout=5)
        return result.text if result.text.startswith("/") else DEBIAN_PATHS.config_file

    async def get_document_root_base(self, session: ServerSession) -> str:
        """Where new site document roots should live.

        Chain: most frequent ``root`` prefix across existing vhosts →
        per-OS default directory → panel convention → ``/var/www``.
        """
        family = await self.get_os_type(session)
        found = await first_match([
            lambda: self._discover_from_sites(session),
            lambda: _first_existing_dir(session, _DEFAULT_ROOTS.get(family, ())),
            lambda: _first_existing_dir(session, (_PANEL_ROOT,)),
        ])
        return found or _BARE_ROOT

    async def _discover_from_sites(self, session: ServerSession) -> str | None:
        dirs = {DEBIAN_PATHS.sites_enabled, RHEL_PATHS.conf_d, PANEL_PATHS.sites_enabled}
        targets = " ".join(quote(d) for d in sorted(dirs))
        result = await session.execute(
            f"grep -rhE '^\\s*root\\s+' {targets} 2>/dev/null | head -n 200", timeout=10
        )
        roots = [
            line.split(None, 1)[1].rstrip(";").strip()
            for line in result.lines
            if len(line.split(None, 1)) == 2
        ]
        return most_common_prefix(roots)


async def _first_existing_dir(session: ServerSession, candidates: tuple[str, ...]) -> str | None:
    for path in candidates:
        if await session.directory_exists(path):
            return path
    return None


# ── Version ─────────────────────────────────────────────────────

_VERSION_PATTERNS = (
    re.compile(r"nginx/(\d+\.\d+\.\d+)"),
    re.compile(r"(\d+\.\d+\.\d+)"),
    re.compile(r"(\d+\.\d+)"),
)


def parse_nginx_version(output: str) -> str | None:
    """``nginx version: nginx/1.24.0 (Ubuntu)`` → ``1.24.0``."""
    return first_regex(_VERSION_PATTERNS, output)


class NginxVersionResolver:
    async def get_version(self, session: ServerSession) -> str | None:
        result = await session.execute("nginx -v 2>&1 | head -n 1", timeout=10)
        return parse_nginx_version(result.output)

    async def get_build_info(self, session: ServerSession) -> str:
        """Full ``nginx -V`` output (compiler flags and configure arguments)."""
        result = await session.execute("nginx -V 2>&1", timeout=10)
        return result.output


# ── Validation ──────────────────────────────────────────────────

_FAILURE_WORDS = ("failed", "error", "emerg", "password is required", "command not found")


def parse_nginx_test(output: str, exit_code: int = 0) -> ValidationResult:
    """Interpret ``nginx -t`` output.

    A nonzero exit is always a failure, whatever the text says; the
    text only supplies the message.
    """
    text = output.strip()
    lower = text.lower()
    failure_line = next(
        (line.strip() for line in text.splitlines()
         if any(word in line.lower() for word in _FAILURE_WORDS)),
        None,
    )
    if exit_code != 0:
        message = failure_line or (text.splitlines()[0] if text else f"nginx -t exited with code {exit_code}")
        return ValidationResult(valid=False, message=message, output=text)
    if "syntax is ok" in lower and "test is successful" in lower:
        return ValidationResult(valid=True, message="Configuration test successful", output=text)
    if failure_line is None:
        return ValidationResult(valid=True, message="Configuration test passed", output=text)
    return ValidationResult(valid=False, message=failure_line, output=text)


class NginxConfigValidator:
    async def validate(self, session: ServerSession) -> ValidationResult:
        result = await session.execute(f"{sudo('nginx')} -t 2>&1", timeout=15)
        validation = parse_nginx_test(result.output, result.exit_code)
        if not validation.valid:
            logger.info("nginx config test failed: %s", validation.message)
        return validation
