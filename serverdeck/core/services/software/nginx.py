"""
nginx service — status, sites, stub_status and security posture.
"""

from __future__ import annotations

import logging
import re

from serverdeck.core.models.command import ValidationResult
from serverdeck.core.models.state import NginxStatusInfo, SecurityCheck, WebsiteInfo
from serverdeck.core.services.detection.nginx import (
    NginxConfigValidator,
    NginxDetector,
    NginxPathResolver,
    NginxVersionResolver,
)
from serverdeck.core.services.detection.php import PHPPathResolver
from serverdeck.core.services.software.web import WebServerService, is_valid_site_name, strip_ansi
from serverdeck.core.session import ServerSession, quote, sudo

logger = logging.getLogger(__name__)

_SITE_DIRECTIVES = r"^[^#]*(server_name|root|listen|fastcgi_pass|php|proxy_pass|ssl_certificate|index)"


def parse_nginx_site(output: str, site_name: str, config_path: str = "") -> WebsiteInfo | None:
    """Build a WebsiteInfo from the grepped directives of one vhost file.

    Files without a real ``server_name`` (``_``, ``localhost``) are
    snippets or catch-alls and yield None.
    """
    domain = ""
    root = ""
    port: int | None = None
    ssl = False
    php = False
    proxy: str | None = None

    for raw in output.splitlines():
        line = raw.strip()
        parts = line.rstrip(";").split()
        if not parts:
            continue
        directive = parts[0]
        if directive == "server_name" and len(parts) >= 2 and not domain:
            candidate = parts[1].strip('"')
            if candidate.startswith("SSL."):
                candidate = candidate[4:]
            if candidate not in ("_", "localhost"):
                domain = candidate
        elif directive == "root" and len(parts) >= 2:
            root = parts[1].strip('"')
        elif directive == "listen":
            if "443" in line or "ssl" in parts:
                ssl = True
            match = re.search(r"(\d+)(?=[\s;]|$)", line)
            if match and port is None:
                port = int(match.group(1))
        elif directive.startswith("ssl_certificate"):
            ssl = True
        elif directive == "proxy_pass" and len(parts) >= 2:
            proxy = parts[1]
        lower = line.lower()
        if "fastcgi_pass" in lower or ".php" in lower:
            php = True

    if not domain:
        return None

    php_version = None
    if php:
        match = re.search(r"php(\d+\.\d+)", output)
        php_version = match.group(1) if match else ""
    return WebsiteInfo(
        domain=domain,
        server="nginx",
        document_root=root,
        port=port or 80,
        ssl=ssl,
        php_version=php_version,
        proxy_pass=proxy,
        config_path=config_path or site_name,
    )


def parse_stub_status(output: str) -> NginxStatusInfo | None:
    """Parse the ``stub_status`` page.

    Active connections: 2
    server accepts handled requests
     10 10 25
    Reading: 0 Writing: 1 Waiting: 1
    """
    active = re.search(r"Active connections:\s*(\d+)", output)
    if not active:
        return None
    info = NginxStatusInfo(active_connections=int(active.group(1)))
    counters = re.search(r"^\s*(\d+)\s+(\d+)\s+(\d+)\s*$", output, re.MULTILINE)
    if counters:
        info.accepts, info.handled, info.requests = (int(g) for g in counters.groups())
    for field in ("reading", "writing", "waiting"):
        match = re.search(rf"{field.capitalize()}:\s*(\d+)", output)
        if match:
            setattr(info, field, int(match.group(1)))
    return info


def build_nginx_site(domain: str, root: str, port: int, php_socket: str | None) -> str:
    lines = [
        "server {",
        f"    listen {port};",
        f"    listen [::]:{port};",
        "",
        f"    server_name {domain} www.{domain};",
        f"    root {root};",
        "    index index.html index.htm index.php;",
        "",
        "    location / {",
        "        try_files $uri $uri/ =404;",
        "    }",
    ]
    if php_socket:
        lines += [
            "",
            r"    location ~ \.php$ {",
            "        include snippets/fastcgi-php.conf;",
            f"        fastcgi_pass unix:{php_socket};",
            "    }",
            "",
            r"    location ~ /\.ht {",
            "        deny all;",
            "    }",
        ]
    lines.append("}")
    return "\n".join(lines) + "\n"


# Name → shell probe; a check passes when the probe prints anything
_SECURITY_PROBES = (
    ("ModSecurity", "nginx -V 2>&1 | grep -io modsecurity; ls /etc/nginx/modsec/modsecurity.conf 2>/dev/null"),
    ("OWASP CRS", "ls /etc/nginx/modsec/crs-setup.conf /usr/share/modsecurity-crs 2>/dev/null | head -n 1"),
    ("Rate Limiting", "grep -rl 'limit_req_zone' /etc/nginx/ 2>/dev/null | head -n 1"),
    ("SSL/TLS", "grep -rl 'ssl_certificate' /etc/nginx/ 2>/dev/null | head -n 1"),
    ("Security Headers", "grep -rlE 'X-Frame-Options|X-Content-Type-Options' /etc/nginx/ 2>/dev/null | head -n 1"),
    ("Server Tokens Off", "grep -rE '^\\s*server_tokens\\s+off' /etc/nginx/ 2>/dev/null | head -n 1"),
)


class NginxService(WebServerService):
    server_name = "nginx"
    detector = NginxDetector()

    def __init__(self):
        self.paths = NginxPathResolver()
        self.versions = NginxVersionResolver()
        self.validator = NginxConfigValidator()
        self.php_paths = PHPPathResolver()

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
        return domain

    def build_site_config(self, domain: str, root: str, port: int, php_socket: str | None) -> str:
        return build_nginx_site(domain, root, port, php_socket)

    async def get_document_root_base(self, session: ServerSession) -> str:
        return await self.paths.get_document_root_base(session)

    async def validate_config(self, session: ServerSession) -> ValidationResult:
        return await self.validator.validate(session)

    async def find_php_socket(self, session: ServerSession, php_version: str) -> str | None:
        socket = await self.php_paths.get_socket_path(session, php_version)
        return socket or f"/run/php/php{php_version}-fpm.sock"

    async def read_document_root(self, session: ServerSession, config_path: str) -> str | None:
        result = await session.execute(
            f"grep -E '^[^#]*root\\s' {quote(config_path)} 2>/dev/null | head -n 1 | awk '{{print $2}}' | tr -d ';'",
            timeout=10,
        )
        return result.text or None

    # ── Sites ────────────────────────────────────────────────────

    async def _list_dir(self, session: ServerSession, path: str) -> list[str]:
        result = await session.execute(f"ls -1 --color=never {quote(path)} 2>/dev/null", timeout=10)
        text = strip_ansi(result.output)
        if "cannot access" in text:
            return []
        return [line.strip() for line in text.splitlines() if line.strip()]

    async def fetch_sites(self, session: ServerSession) -> list[WebsiteInfo]:
        """Every vhost with a real server_name, deduplicated by domain."""
        paths = await self.paths.get_paths(session)
        enabled = set(await self._list_dir(session, paths.sites_enabled))

        sites: list[WebsiteInfo] = []
        seen: set[str] = set()
        for name in await self._list_dir(session, paths.sites_available):
            if not is_valid_site_name(name):
                continue
            config_path = f"{paths.sites_available}/{name}"
            result = await session.execute(
                f"grep -Ei {quote(_SITE_DIRECTIVES)} {quote(config_path)} 2>/dev/null | head -n 40",
                timeout=10,
            )
            site = parse_nginx_site(result.output, name, config_path)
            if site is None or site.domain in seen:
                continue
            seen.add(site.domain)
            bare = name.removesuffix(".conf")
            site.enabled = not paths.uses_symlinks or bool({name, bare, f"{bare}.conf"} & enabled)
            sites.append(site)
        logger.debug("nginx: %d sites on %s", len(sites), session.label)
        return sites

    async def enable_site(self, session: ServerSession, domain: str) -> bool:
        paths = await self.paths.get_paths(session)
        if not paths.uses_symlinks:
            return True
        source = quote(f"{paths.sites_available}/{domain}")
        target = quote(f"{paths.sites_enabled}/{domain}")
        result = await session.execute(f"{sudo('ln')} -sf {source} {target} && echo LINKED", timeout=10)
        return "LINKED" in result.output

    async def disable_site(self, session: ServerSession, domain: str) -> bool:
        paths = await self.paths.get_paths(session)
        if not paths.uses_symlinks:
            return True
        target = quote(f"{paths.sites_enabled}/{domain}")
        result = await session.execute(f"{sudo('rm')} -f {target} && echo REMOVED", timeout=10)
        return "REMOVED" in result.output

    # ── Runtime status & security ────────────────────────────────

    async def get_stub_status(self, session: ServerSession) -> NginxStatusInfo | None:
        result = await session.execute(
            "curl -s --max-time 3 http://127.0.0.1/nginx_status 2>/dev/null "
            "|| curl -s --max-time 3 http://127.0.0.1/stub_status 2>/dev/null",
            timeout=10,
        )
        return parse_stub_status(result.output)

    async def get_modules(self, session: ServerSession) -> list[str]:
        build = await self.versions.get_build_info(session)
        dynamic = await session.execute(
            "ls -1 /etc/nginx/modules-enabled/ 2>/dev/null", timeout=10
        )
        return parse_nginx_modules(build, dynamic.lines)

    async def get_security_checks(self, session: ServerSession) -> list[SecurityCheck]:
        checks = []
        for name, probe in _SECURITY_PROBES:
            result = await session.execute(probe, timeout=15)
            checks.append(SecurityCheck(name=name, enabled=bool(result.text), detail=result.lines[0] if result.lines else ""))
        return checks

    async def get_security_stats(self, session: ServerSession) -> dict[str, int]:
        total = await session.execute("wc -l < /var/log/modsec_audit.log 2>/dev/null", timeout=10)
        recent = await session.execute(
            "find /var/log/modsec_audit.log -mmin -1440 2>/dev/null | xargs -r wc -l 2>/dev/null | tail -n 1",
            timeout=10,
        )
        return {"total_blocked": _first_int(total.text), "last_24h": _first_int(recent.text)}


def parse_nginx_modules(build_info: str, enabled_files: list[str] | None = None) -> list[str]:
    """Module names from ``nginx -V`` configure flags plus modules-enabled entries."""
    modules: set[str] = set()
    match = re.search(r"configure arguments:(.+)", build_info)
    if match:
        for arg in match.group(1).split():
            if arg.startswith("--with-") and "=" not in arg:
                name = arg.removeprefix("--with-").removesuffix("_module")
                if not name.endswith(("-opt", "-threads")) and name not in ("debug", "compat", "threads", "file-aio"):
                    modules.add(name)
            elif arg.startswith(("--add-module=", "--add-dynamic-module=")):
                modules.add(arg.split("=", 1)[1].rstrip("/").rsplit("/", 1)[-1])
    for entry in enabled_files or ():
        name = entry.strip().rsplit("/", 1)[-1].removesuffix(".conf")
        if name:
            modules.add(name)
    return sorted(modules)


def _first_int(text: str) -> int:
    parts = text.split()
    return int(parts[0]) if parts and parts[0].isdigit() else 0
