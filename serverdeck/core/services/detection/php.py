"""
PHP detection — installation, per-version paths, and version discovery.

A host may carry several PHP versions side by side (``/etc/php/8.1``,
``/etc/php/8.2``...), each with its own CLI and FPM configuration and
its own ``php<version>-fpm`` unit. Paths here are resolved per version.
"""

from __future__ import annotations

import logging
import re

from serverdeck.core.models.versioning import (
    AlternativesDetection,
    BinaryGlobDetection,
    DirectoryDetection,
    VersionDetectionStrategy,
)
from serverdeck.core.services.detection.base import SoftwareDetector, first_match
from serverdeck.core.session import ServerSession, quote

logger = logging.getLogger(__name__)


class PHPDetector(SoftwareDetector):
    binaries = ("php",)
    service_names = ("php-fpm",)
    binary_paths = ("/usr/bin/php", "/usr/local/bin/php", "/www/server/php/82/bin/php")
    packages = (r"php[0-9.]*-(cli|fpm|common)", "php", "php-cli", "php-fpm")

    async def probe_service(self, session: ServerSession) -> bool:
        # FPM units are versioned (php8.2-fpm), so count instead of naming one
        result = await session.execute(
            "systemctl list-units --type=service --all --no-legend 2>/dev/null | grep -cE 'php[0-9.]*-fpm'",
            timeout=5,
        )
        return result.text.isdigit() and int(result.text) > 0


# ── Paths ───────────────────────────────────────────────────────


def fpm_ini_path(version: str) -> str:
    return f"/etc/php/{version}/fpm/php.ini"


def cli_ini_path(version: str) -> str:
    return f"/etc/php/{version}/cli/php.ini"


def pool_config_candidates(version: str | None) -> tuple[str, ...]:
    if not version:
        return ("/etc/php-fpm.d/www.conf",)
    return (
        f"/etc/php/{version}/fpm/pool.d/www.conf",
        "/etc/php-fpm.d/www.conf",
        f"/etc/php/{version}/fpm/php-fpm.conf",
    )


def socket_candidates(version: str | None) -> tuple[str, ...]:
    if version:
        return (
            f"/run/php/php{version}-fpm.sock",
            f"/var/run/php/php{version}-fpm.sock",
            f"/var/run/php-fpm/php{version}-fpm.sock",
        )
    return (
        "/run/php/php-fpm.sock",
        "/var/run/php/php-fpm.sock",
        "/run/php-fpm/www.sock",
    )


class PHPPathResolver:
    """Per-version PHP configuration locations."""

    async def get_ini_path(self, session: ServerSession, version: str | None) -> str | None:
        """Loaded php.ini: FPM config first, then CLI, then what ``php --ini`` reports."""
        candidates: list[str] = []
        if version:
            candidates += [fpm_ini_path(version), cli_ini_path(version)]
        for path in candidates:
            if await session.path_exists(path):
                return path
        result = await session.execute(
            "php --ini 2>/dev/null | grep 'Loaded Configuration File' | cut -d: -f2-", timeout=10
        )
        path = result.text
        return path if path.startswith("/") else None

    async def get_pool_config_path(self, session: ServerSession, version: str | None) -> str | None:
        for path in pool_config_candidates(version):
            if await session.path_exists(path):
                return path
        return None

    async def get_socket_path(self, session: ServerSession, version: str | None) -> str | None:
        """First FPM socket that exists for ``version`` (or the unversioned ones)."""
        async def _probe(path: str) -> str | None:
            result = await session.execute(f"test -S {quote(path)} && echo EXISTS", timeout=5)
            return path if "EXISTS" in result.output else None

        candidates = list(socket_candidates(version))
        if version:
            candidates += socket_candidates(None)
        return await first_match([lambda p=p: _probe(p) for p in candidates])


# ── Versions ────────────────────────────────────────────────────

_ACTIVE_RE = re.compile(r"PHP\s+(\d+\.\d+)")

# Order matters: version directories are authoritative on Debian-family
# hosts; binaries and alternatives cover the rest.
DETECTION_STRATEGIES: tuple[VersionDetectionStrategy, ...] = (
    DirectoryDetection(path="/etc/php", pattern=r"^[0-9]+\.[0-9]+$"),
    BinaryGlobDetection(pattern="php[0-9]*"),
    AlternativesDetection(name="php"),
)


def parse_php_active_version(output: str) -> str | None:
    """``PHP 8.2.7 (cli) (built: ...)`` → ``8.2``; a bare ``8.2`` passes through."""
    match = _ACTIVE_RE.search(output)
    if match:
        return match.group(1)
    text = output.strip()
    return text if re.fullmatch(r"\d+\.\d+", text) else None


class PHPVersionResolver:
    async def get_active_version(self, session: ServerSession) -> str | None:
        """Major.minor of the PHP on PATH."""
        result = await session.execute(
            "php -r 'echo PHP_MAJOR_VERSION.\".\".PHP_MINOR_VERSION;' 2>/dev/null || php -v 2>/dev/null | head -n 1",
            timeout=10,
        )
        return parse_php_active_version(result.output)

    async def get_full_version(self, session: ServerSession) -> str | None:
        result = await session.execute("php -r 'echo PHP_VERSION;' 2>/dev/null", timeout=10)
        text = result.text
        return text if re.match(r"^\d+\.\d+", text) else None
