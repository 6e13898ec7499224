"""
Web server services — shared site management flow for nginx and apache.

Both servers manage virtual hosts the same way: a config file per site
in an "available" directory, an enable step, a config test, a reload.
Subclasses supply the paths, the config template and the parser.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod

from serverdeck.core.models.command import ValidationResult
from serverdeck.core.models.state import SecurityCheck, WafLogEntry, WebsiteInfo
from serverdeck.core.services.software.base import ControllableService, is_safe_to_remove
from serverdeck.core.session import ServerSession, quote, sudo

logger = logging.getLogger(__name__)

_ANSI_RE = re.compile(r"\x1b\[[0-9;]*[mGKHF]")
_SITE_NAME_RE = re.compile(r"^[A-Za-z0-9._-]+$")
_DOMAIN_RE = re.compile(r"^(?=.{1,253}$)[a-z0-9]([a-z0-9-]{0,61}[a-z0-9])?(\.[a-z0-9]([a-z0-9-]{0,61}[a-z0-9])?)*$")

# Files in vhost directories that are not operator sites
_JUNK_FRAGMENTS = (
    "welcome", "phpinfo", "btwaf", "well-known", "rewrite", "redirect", "monitor", "websocket",
)
_DEFAULT_SITES = {"default", "default.conf", "000-default.conf", "default-ssl.conf"}

# ip - user [time] "request" status bytes "referrer" "user agent"
_COMBINED_LOG_RE = re.compile(r'^(\S+) \S+ \S+ \[(.+?)\] "(.*?)" (\d{3}) (\d+|-) "(.*?)" "(.*?)"')
# Statuses a WAF or deny rule answers with
_BLOCKED_STATUS = r'" (403|444) '


def strip_ansi(text: str) -> str:
    return _ANSI_RE.sub("", text)


def is_valid_site_name(name: str) -> bool:
    """Whether a directory entry looks like an operator-managed site file."""
    name = name.strip()
    if not 3 <= len(name) < 100 or name.startswith(".") or name.startswith("0."):
        return False
    if name in _DEFAULT_SITES or not _SITE_NAME_RE.match(name):
        return False
    lower = name.lower()
    return not any(fragment in lower for fragment in _JUNK_FRAGMENTS)


def normalise_domain(domain: str) -> str:
    """Lowercased, trimmed domain; raises ValueError when it is not a hostname."""
    value = domain.strip().lower()
    if not _DOMAIN_RE.match(value):
        raise ValueError(f"Invalid domain: {domain!r}")
    return value


def default_document_root(base: str, domain: str) -> str:
    return f"{base.rstrip('/')}/{domain.replace('.', '_')}"


def parse_access_log(output: str) -> list[WafLogEntry]:
    """Entries of a combined-format access log; other lines are skipped."""
    entries = []
    for line in output.splitlines():
        match = _COMBINED_LOG_RE.match(line.strip())
        if not match:
            continue
        ip, time, request, status, size, referrer, agent = match.groups()
        entries.append(WafLogEntry(
            ip=ip,
            time=time,
            request=request,
            status=int(status),
            size=0 if size == "-" else int(size),
            referrer=referrer,
            user_agent=agent,
        ))
    return entries


class WebServerService(ControllableService, ABC):
    """Site CRUD common to nginx and apache."""

    server_name: str = ""

    # ── Subclass hooks ───────────────────────────────────────────

    @abstractmethod
    async def sites_available_dir(self, session: ServerSession) -> str: ...

    @abstractmethod
    async def sites_enabled_dir(self, session: ServerSession) -> str: ...

    @abstractmethod
    def site_file_name(self, domain: str) -> str: ...

    @abstractmethod
    def build_site_config(self, domain: str, root: str, port: int, php_socket: str | None) -> str: ...

    @abstractmethod
    async def enable_site(self, session: ServerSession, domain: str) -> bool: ...

    @abstractmethod
    async def disable_site(self, session: ServerSession, domain: str) -> bool: ...

    @abstractmethod
    async def validate_config(self, session: ServerSession) -> ValidationResult: ...

    async def apply_config(self, session: ServerSession) -> bool:
        return await self.reload(session)

    @abstractmethod
    async def get_document_root_base(self, session: ServerSession) -> str: ...

    @abstractmethod
    async def fetch_sites(self, session: ServerSession) -> list[WebsiteInfo]: ...

    async def find_php_socket(self, session: ServerSession, php_version: str) -> str | None:
        return None

    async def read_document_root(self, session: ServerSession, config_path: str) -> str | None:
        return None

    async def get_modules(self, session: ServerSession) -> list[str]:
        return []

    async def get_security_checks(self, session: ServerSession) -> list[SecurityCheck]:
        return []

    async def get_security_stats(self, session: ServerSession) -> dict[str, int]:
        return {}

    async def get_blocked_requests(self, session: ServerSession, limit: int = 50) -> list[WafLogEntry]:
        """Most recent refused requests (403/444) from the access log, newest first."""
        access_log = next((p for p in await self.get_log_paths(session) if "access" in p), None)
        if not access_log:
            return []
        result = await session.execute(
            f"{sudo('tail')} -n 5000 {quote(access_log)} 2>/dev/null | grep -E {quote(_BLOCKED_STATUS)} | tail -n {limit}",
            timeout=15,
        )
        return list(reversed(parse_access_log(result.output)))

    # ── Flow ─────────────────────────────────────────────────────

    async def create_site(
        self,
        session: ServerSession,
        domain: str,
        root: str = "",
        port: int = 80,
        php_version: str | None = None,
    ) -> bool:
        """Write the vhost, enable it, test the config, reload.

        A site that fails the config test is disabled and its file
        removed again, so a bad new site never blocks later reloads.
        """
        domain = normalise_domain(domain)
        root = root.strip()
        if not root or root == "/var/www":
            root = default_document_root(await self.get_document_root_base(session), domain)
        if not root.startswith("/"):
            root = "/" + root

        socket = await self.find_php_socket(session, php_version) if php_version else None
        config_path = f"{await self.sites_available_dir(session)}/{self.site_file_name(domain)}"
        content = self.build_site_config(domain, root, port, socket)

        if not await session.write_file(config_path, content):
            logger.warning("Cannot write %s site config %s", self.server_name, config_path)
            return False
        if not await self.enable_site(session, domain):
            logger.warning("Cannot enable %s site %s", self.server_name, domain)
            return False

        validation = await self.validate_config(session)
        if not validation.valid:
            logger.warning("Rolling back %s site %s: %s", self.server_name, domain, validation.message)
            await self.disable_site(session, domain)
            await session.execute(f"{sudo('rm')} -f {quote(config_path)}", timeout=10)
            return False

        await session.execute(f"{sudo('mkdir')} -p {quote(root)}", timeout=10)
        logger.info("Created %s site %s (root %s)", self.server_name, domain, root)
        return await self.reload(session)

    async def delete_site(self, session: ServerSession, domain: str, delete_files: bool = False) -> bool:
        """Disable and remove a site; optionally remove its document root.

        Top-level directories such as ``/``, ``/var`` and ``/var/www``
        are never removed, whatever the site config claims.
        """
        config_path = f"{await self.sites_available_dir(session)}/{self.site_file_name(domain)}"
        root = await self.read_document_root(session, config_path) if delete_files else None

        await self.disable_site(session, domain)
        await session.execute(f"{sudo('rm')} -f {quote(config_path)}", timeout=10)

        if root:
            if is_safe_to_remove(root):
                await session.execute(f"{sudo('rm')} -rf {quote(root)}", timeout=30)
            else:
                logger.warning("Refusing to remove document root %s for %s", root, domain)

        logger.info("Deleted %s site %s", self.server_name, domain)
        return await self.reload(session)
