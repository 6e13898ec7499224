"""
Detection base — probe chains for "is X installed, and where".

Every detector answers from an ordered list of probes: ``command -v``,
systemd unit state, well-known binary paths, then the dpkg and rpm
package databases. The chain short-circuits on the first positive
probe, and each probe is a separate method so it can be tested alone.

Detectors never raise for missing evidence. An absent binary, an
unknown unit, or empty output resolves to the next probe or to a
default; only SessionNotAvailable (the transport is gone) escapes.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Awaitable, Callable, Sequence
from enum import StrEnum
from typing import TypeVar

from serverdeck.core.session import ServerSession, quote

logger = logging.getLogger(__name__)

T = TypeVar("T")

Probe = Callable[[], Awaitable[T | None]]


async def first_match(probes: Sequence[Probe[T]]) -> T | None:
    """Run probes in order; return the first truthy result.

    Later probes are never started once one succeeds.
    """
    for probe in probes:
        value = await probe()
        if value:
            return value
    return None


# ── OS family ───────────────────────────────────────────────────


class OSFamily(StrEnum):
    DEBIAN = "debian"
    RHEL = "rhel"
    UNKNOWN = "unknown"


_DEBIAN_IDS = {"debian", "ubuntu", "linuxmint", "raspbian", "pop", "elementary", "kali"}
_RHEL_IDS = {"rhel", "centos", "fedora", "rocky", "almalinux", "ol", "amzn", "cloudlinux", "scientific"}


def parse_os_release(text: str) -> OSFamily:
    """Classify ``/etc/os-release`` content by its ID and ID_LIKE fields."""
    ids: set[str] = set()
    for line in text.splitlines():
        key, sep, value = line.partition("=")
        if not sep or key.strip() not in ("ID", "ID_LIKE"):
            continue
        ids.update(value.strip().strip('"').strip("'").lower().split())
    if ids & _DEBIAN_IDS:
        return OSFamily.DEBIAN
    if ids & _RHEL_IDS:
        return OSFamily.RHEL
    return OSFamily.UNKNOWN


async def detect_os_family(
    session: ServerSession,
    debian_dir: str | None = None,
    rhel_dir: str | None = None,
    default: OSFamily = OSFamily.DEBIAN,
) -> OSFamily:
    """Classify the target as Debian- or RHEL-family.

    Order: the distribution-defining directory of the software in
    question (e.g. ``/etc/apache2`` vs ``/etc/httpd``), then
    ``/etc/os-release``, then ``default``. The directory probe runs
    first because panel-managed hosts often carry a layout that does
    not match their release file.
    """
    if debian_dir or rhel_dir:
        parts = []
        if debian_dir:
            parts.append(f"test -d {quote(debian_dir)} && echo DEBIAN_DIR")
        if rhel_dir:
            parts.append(f"test -d {quote(rhel_dir)} && echo RHEL_DIR")
        result = await session.execute("; ".join(parts) + "; true", timeout=5)
        has_debian = "DEBIAN_DIR" in result.output
        has_rhel = "RHEL_DIR" in result.output
        if has_debian and not has_rhel:
            return OSFamily.DEBIAN
        if has_rhel and not has_debian:
            return OSFamily.RHEL

    release = await session.execute("cat /etc/os-release 2>/dev/null", timeout=5)
    family = parse_os_release(release.output)
    if family != OSFamily.UNKNOWN:
        return family

    logger.debug("OS family inconclusive on %s, defaulting to %s", session.label, default)
    return default


# ── Path helpers ────────────────────────────────────────────────


def first_existing_command(candidates: Sequence[str], expand_globs: bool = False) -> str:
    """Shell loop printing the first candidate that exists.

    Candidates are tested in the given order; ``ls`` would sort them.
    With ``expand_globs`` the candidates are left unquoted so the shell
    expands patterns such as ``/var/lib/postgresql/*/main``.
    """
    words = " ".join(candidates) if expand_globs else " ".join(quote(c) for c in candidates)
    return f'for p in {words}; do [ -e "$p" ] && {{ echo "$p"; break; }}; done'


# ── systemd helpers ─────────────────────────────────────────────


async def is_service_active(session: ServerSession, service: str) -> bool:
    result = await session.execute(f"systemctl is-active {quote(service)} 2>/dev/null", timeout=10)
    return result.text == "active"


async def service_exists(session: ServerSession, service: str) -> bool:
    """Whether systemd knows a unit by this name (loaded or installed)."""
    unit = quote(f"{service}.service")
    result = await session.execute(
        f"systemctl list-unit-files --no-legend {unit} 2>/dev/null; "
        f"systemctl list-units --all --no-legend {unit} 2>/dev/null",
        timeout=10,
    )
    return f"{service}.service" in result.output


# ── Generic detector ────────────────────────────────────────────


class SoftwareDetector:
    """Installation probe chain for one software family.

    Subclasses set the class attributes; most need nothing else.
    """

    # Names tried with ``command -v``
    binaries: tuple[str, ...] = ()
    # systemd unit names, most common first
    service_names: tuple[str, ...] = ()
    # Absolute paths checked when the binary is not on PATH
    binary_paths: tuple[str, ...] = ()
    # Package name regexes for dpkg / rpm
    packages: tuple[str, ...] = ()

    @property
    def name(self) -> str:
        return self.binaries[0] if self.binaries else self.__class__.__name__

    async def is_installed(self, session: ServerSession) -> bool:
        found = await first_match([
            lambda: self.probe_which(session),
            lambda: self.probe_service(session),
            lambda: self.probe_binary_paths(session),
            lambda: self.probe_dpkg(session),
            lambda: self.probe_rpm(session),
        ])
        return bool(found)

    # ── Probes ──────────────────────────────────────────────────

    async def probe_which(self, session: ServerSession) -> bool:
        return bool(await self._which(session))

    async def probe_service(self, session: ServerSession) -> bool:
        for service in self.service_names:
            svc = quote(service)
            result = await session.execute(
                f"systemctl is-active {svc} 2>/dev/null; systemctl is-enabled {svc} 2>/dev/null",
                timeout=5,
            )
            states = set(result.lines)
            if states & {"active", "activating", "reloading", "enabled", "enabled-runtime", "static"}:
                return True
        return False

    async def probe_binary_paths(self, session: ServerSession) -> bool:
        return bool(await self._first_existing_path(session))

    async def probe_dpkg(self, session: ServerSession) -> bool:
        if not self.packages:
            return False
        pattern = quote(r"^ii\s+(" + "|".join(self.packages) + r")(:|\s)")
        result = await session.execute(f"dpkg -l 2>/dev/null | grep -E {pattern} | wc -l", timeout=10)
        return _count(result.text) > 0

    async def probe_rpm(self, session: ServerSession) -> bool:
        if not self.packages:
            return False
        pattern = quote("^(" + "|".join(self.packages) + ")-[0-9]")
        result = await session.execute(f"rpm -qa 2>/dev/null | grep -E {pattern} | wc -l", timeout=10)
        return _count(result.text) > 0

    # ── Locations ───────────────────────────────────────────────

    async def get_binary_path(self, session: ServerSession) -> str | None:
        """PATH lookup first, then the well-known locations."""
        return await first_match([
            lambda: self._which(session),
            lambda: self._first_existing_path(session),
        ])

    async def get_service_name(self, session: ServerSession) -> str:
        """First unit name systemd knows; falls back to the most common one."""
        for service in self.service_names:
            if await service_exists(session, service):
                return service
        return self.service_names[0] if self.service_names else self.name

    async def is_running(self, session: ServerSession) -> bool:
        service = await self.get_service_name(session)
        return await is_service_active(session, service)

    async def _which(self, session: ServerSession) -> str | None:
        if not self.binaries:
            return None
        names = " ".join(quote(b) for b in self.binaries)
        result = await session.execute(f"command -v {names} 2>/dev/null | head -n 1", timeout=5)
        path = result.text
        return path if path.startswith("/") else None

    async def _first_existing_path(self, session: ServerSession) -> str | None:
        if not self.binary_paths:
            return None
        result = await session.execute(first_existing_command(self.binary_paths), timeout=5)
        path = result.text
        return path if path.startswith("/") else None


def _count(text: str) -> int:
    try:
        return int(text.split()[0]) if text else 0
    except ValueError:
        return 0


def first_regex(patterns: Sequence[str | re.Pattern[str]], text: str, flags: int = 0) -> str | None:
    """Group 1 of the first pattern that matches ``text``."""
    for pattern in patterns:
        match = re.search(pattern, text, flags)
        if match:
            return match.group(1)
    return None


def most_common_prefix(paths: Sequence[str], depth: int = 2) -> str | None:
    """The most frequent leading ``depth`` path components among ``paths``.

    ``["/var/www/a/public", "/var/www/b", "/srv/c"]`` → ``"/var/www"``.
    Ties go to the prefix seen first.
    """
    counts: dict[str, int] = {}
    for path in paths:
        parts = [p for p in path.strip().split("/") if p]
        if len(parts) < depth or not path.strip().startswith("/"):
            continue
        prefix = "/" + "/".join(parts[:depth])
        counts[prefix] = counts.get(prefix, 0) + 1
    if not counts:
        return None
    return max(counts, key=lambda p: counts[p])
