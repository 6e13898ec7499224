"""
Apache service — status, virtual hosts, modules, security modules.

Debian hosts enable sites and modules with ``a2ensite``/``a2enmod``;
RHEL hosts load everything under conf.d, so enabling a site there
only means the file exists.
"""

from __future__ import annotations

import logging
import re

from serverdeck.core.models.command import ValidationResult
from serverdeck.core.models.state import SecurityCheck, WebsiteInfo
from serverdeck.core.services.detection.apache import (
    ApacheConfigValidator,
    ApacheDetector,
    ApachePathResolver,
    ApacheVersionResolver,
)
from serverdeck.core.services.detection.base import OSFamily
from serverdeck.core.services.software.web import WebServerService, is_valid_site_name, strip_ansi
from serverdeck.core.session import ServerSession, quote, sudo

logger = logging.getLogger(__name__)

_SITE_DIRECTIVES = r"^[^#]*(ServerName|DocumentRoot|<VirtualHost|SSLEngine|ProxyPass|SetHandler)"
_MODULE_NAME_RE = re.compile(r"^[A-Za-z0-9_]+$")

# Security-relevant modules and the loaded-module names that provide them
_SECURITY_MODULES = (
    ("ModSecurity", "security2_module"),
    ("ModEvasive", "evasive20_module"),
    ("SSL/TLS", "ssl_module"),
    ("Headers", "headers_module"),
)


def parse_apache_site(output: str, site_name: str, config_path: str = "") -> WebsiteInfo:
    """WebsiteInfo from the grepped directives of one vhost file.

    Unlike nginx, every apache site file is reported: a missing
    ServerName falls back to the file name.
    """
    domain = site_name.removesuffix(".conf")
    root = "/var/www/html"
    port = 80
    ssl = False
    proxy: str | None = None
    php_version: str | None = None

    for raw in output.splitlines():
        line = raw.strip()
        parts = line.split()
        if not parts:
            continue
        directive = parts[0]
        if directive == "ServerName" and len(parts) >= 2:
            domain = parts[1]
        elif directive == "DocumentRoot" and len(parts) >= 2:
            root = parts[1].strip('"')
        elif directive.startswith("<VirtualHost"):
            match = re.search(r":(\d+)", line)
            if match:
                port = int(match.group(1))
                ssl = ssl or port == 443
        elif directive == "SSLEngine" and len(parts) >= 2:
            ssl = ssl or parts[1].lower() == "on"
        elif directive == "ProxyPass" and len(parts) >= 3:
            proxy = parts[2]
        elif directive == "SetHandler":
            match = re.search(r"php(\d+\.\d+)", line)
            php_version = match.group(1) if match else ""

    return WebsiteInfo(
        domain=domain,
        server="apache",
        document_root=root,
        port=port,
        ssl=ssl,
        php_version=php_version,
        proxy_pass=proxy,
        config_path=config_path or site_name,
    )


def build_apache_site(domain: str, root: str, port: int, php_socket: str | None) -> str:
    lines = [
        f"<VirtualHost *:{port}>",
        f"    ServerName {domain}",
        f"    ServerAlias www.{domain}",
        f"    DocumentRoot {root}",
        "",
        f"    <Directory {root}>",
        "        Options Indexes FollowSymLinks",
        "        AllowOverride All",
        "        Require all granted",
        "    </Directory>",
    ]
    if php_socket:
        lines += [
            "",
            r'    <FilesMatch "\.php$">',
            f'        SetHandler "proxy:unix:{php_socket}|fcgi://localhost"',
            "    </FilesMatch>",
        ]
    lines += [
        "",
        f"    ErrorLog ${{APACHE_LOG_DIR}}/{domain}_error.log",
        f"    CustomLog ${{APACHE_LOG_DIR}}/{domain}_access.log combined",
        "</VirtualHost>",
    ]
    return "\n".join(lines) + "\n"


class ApacheService(WebServerService):
    server_name = "apache"
    detector = ApacheDetector()

    def __init__(self):
        self.paths = ApachePathResolver()
        self.versions = ApacheVersionResolver()
        self.validator = ApacheConfigValidator()

    async def get_version(self, session: ServerSession) -> str | None:
        return await self.versions.get_version(session)

    async def get_config_path(self, session: ServerSession) -> str:
        return await self.paths.get_config_path(session)

    async def get_log_paths(self, session: ServerSession) -> list[str]:
        paths = await self.paths.get_paths(session)
        return [paths.error_log, paths.access_log]

    async def sites_available_dir(self, session: ServerSession) -> str:
        return (await self.paths.get_paths(session)).sites_available

    async def sites_enabled_dir(self, session: ServerSession) -> str:
        return (await self.paths.get_paths(session)).sites_enabled

    def site_file_name(self, domain: str) -> str:
        return f"{domain}.conf"

    def build_site_config(self, domain: str, root: str, port: int, php_socket: str | None) -> str:
        return build_apache_site(domain, root, port, php_socket)

    async def get_document_root_base(self, session: ServerSession) -> str:
        return await self.paths.get_document_root_base(session)

    async def validate_config(self, session: ServerSession) -> ValidationResult:
        return await self.validator.validate(session)

    async def find_php_socket(self, session: ServerSession, php_version: str) -> str | None:
        return f"/run/php/php{php_version}-fpm.sock"

    async def read_document_root(self, session: ServerSession, config_path: str) -> str | None:
        result = await session.execute(
            f"grep -E '^[^#]*DocumentRoot' {quote(config_path)} 2>/dev/null | head -n 1 | awk '{{print $2}}' | tr -d '\"'",
            timeout=10,
        )
        return result.text or None

    # ── Sites ────────────────────────────────────────────────────

    async def fetch_sites(self, session: ServerSession) -> list[WebsiteInfo]:
        paths = await self.paths.get_paths(session)
        listing = await session.execute(f"ls -1 {quote(paths.sites_enabled)} 2>/dev/null", timeout=10)
        text = strip_ansi(listing.output)
        if "cannot access" in text:
            return []

        sites: list[WebsiteInfo] = []
        for name in (line.strip() for line in text.splitlines()):
            if not is_valid_site_name(name):
                continue
            config_path = f"{paths.sites_enabled}/{name}"
            result = await session.execute(
                f"grep -E {quote(_SITE_DIRECTIVES)} {quote(config_path)} 2>/dev/null | head -n 20",
                timeout=10,
            )
            sites.append(parse_apache_site(result.output, name, config_path))
        return sites

    async def enable_site(self, session: ServerSession, domain: str) -> bool:
        if await self.paths.get_os_type(session) != OSFamily.DEBIAN:
            return True
        site = quote(self.site_file_name(domain))
        result = await session.execute(f"{sudo('a2ensite')} {site} 2>&1 && echo ENABLED", timeout=15)
        return "ENABLED" in result.output or "already enabled" in result.output

    async def disable_site(self, session: ServerSession, domain: str) -> bool:
        # a2dissite succeeds for sites that are already disabled
        if await self.paths.get_os_type(session) == OSFamily.DEBIAN:
            site = quote(self.site_file_name(domain))
            await session.execute(f"{sudo('a2dissite')} {site} 2>&1 || true", timeout=15)
        return True

    # ── Modules & security ───────────────────────────────────────

    async def get_modules(self, session: ServerSession) -> list[str]:
        return [m.removesuffix("_module") for m in await self.versions.get_loaded_modules(session)]

    async def enable_module(self, session: ServerSession, module: str) -> bool:
        return await self._toggle_module(session, module, enable=True)

    async def disable_module(self, session: ServerSession, module: str) -> bool:
        return await self._toggle_module(session, module, enable=False)

    async def set_module(self, session: ServerSession, module: str, enabled: bool) -> bool:
        """Toggle a module, test the config, restart.

        A toggle that breaks the config test is undone and the server
        is left running on its previous configuration.
        """
        if not await self._toggle_module(session, module, enable=enabled):
            return False
        validation = await self.validate_config(session)
        if not validation.valid:
            logger.warning("Undoing apache module %s change: %s", module, validation.message)
            await self._toggle_module(session, module, enable=not enabled)
            return False
        return await self.restart(session)

    async def _toggle_module(self, session: ServerSession, module: str, enable: bool) -> bool:
        name = module.strip().removesuffix("_module")
        if not _MODULE_NAME_RE.match(name):
            logger.warning("Invalid apache module name: %r", module)
            return False
        if await self.paths.get_os_type(session) != OSFamily.DEBIAN:
            # RHEL loads modules from conf.modules.d; there is no a2enmod
            logger.warning("Cannot toggle apache module %s on %s: a2enmod not available", name, session.label)
            return False
        tool, marker = ("a2enmod", "ENABLED") if enable else ("a2dismod", "DISABLED")
        result = await session.execute(f"{sudo(tool)} {quote(name)} 2>&1 && echo {marker}", timeout=15)
        return marker in result.output

    async def get_security_checks(self, session: ServerSession) -> list[SecurityCheck]:
        loaded = set(await self.versions.get_loaded_modules(session))
        return [
            SecurityCheck(name=name, enabled=module in loaded, detail=module)
            for name, module in _SECURITY_MODULES
        ]
