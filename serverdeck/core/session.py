"""
ServerSession — the explicit context threaded through every call.

A session pairs one CommandTransport with the few higher-level
primitives the core needs on top of raw execution: elevated file read
and write, existence probes, and quoting. Providers and services take
the session as a parameter and never keep a reference to it.
"""

from __future__ import annotations

import base64
import logging
import shlex
import uuid

from serverdeck.adapters.transport.base import CommandTransport
from serverdeck.core.errors import SessionNotAvailable
from serverdeck.core.models.command import CommandResult

logger = logging.getLogger(__name__)

# Bytes of base64 text appended per upload command
_UPLOAD_CHUNK = 3000

# Substrings that mean a read did not return file content
MISSING_MARKERS = ("No such file", "cannot open", "not found")
DENIED_MARKERS = ("Permission denied", "Operation not permitted", "a password is required")
# What the shell prints when sudo itself is absent
SUDO_MISSING_MARKERS = ("sudo: command not found", "sudo: not found")


def quote(value: str) -> str:
    """Quote one value for safe interpolation into a shell command."""
    return shlex.quote(value)


def sudo(command: str, elevate: bool = True) -> str:
    """Prefix a command with non-interactive sudo."""
    return f"sudo -n {command}" if elevate else command


class ServerSession:
    """A live handle on one target host."""

    def __init__(self, transport: CommandTransport, label: str = ""):
        self._transport = transport
        self.label = label or transport.name
        self._sudo_absent = False

    @property
    def transport(self) -> CommandTransport:
        return self._transport

    @property
    def is_alive(self) -> bool:
        return not self._transport.closed

    async def execute(self, command: str, timeout: float | None = None) -> CommandResult:
        """Run one shell command on the target."""
        return await self._transport.execute(command, timeout=timeout)

    async def execute_elevated(self, command: str, timeout: float | None = None) -> CommandResult:
        """Run ``command`` through sudo, or as is on a host without sudo.

        A missing sudo binary is remembered for the rest of the session.
        """
        if self._sudo_absent:
            return await self.execute(command, timeout=timeout)
        result = await self.execute(sudo(command), timeout=timeout)
        if sudo_missing(result.lines[0] if result.lines else ""):
            logger.warning("sudo is not installed on %s; running commands unelevated", self.label)
            self._sudo_absent = True
            result = await self.execute(command, timeout=timeout)
        return result

    async def close(self) -> None:
        await self._transport.close()

    async def __aenter__(self) -> ServerSession:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # ── File primitives ─────────────────────────────────────────

    async def read_file(self, path: str, elevate: bool = True, timeout: float = 20) -> CommandResult:
        """Read a file with ``cat``; errors land in the output text.

        Callers detect absence or denial by substring inspection, since
        some targets exit 0 on partial failure.
        """
        command = f"cat {quote(path)} 2>&1"
        if elevate:
            return await self.execute_elevated(command, timeout=timeout)
        return await self.execute(command, timeout=timeout)

    async def read_text(self, path: str, elevate: bool = True) -> str | None:
        """File content, or None when missing, unreadable, or empty."""
        result = await self.read_file(path, elevate=elevate)
        if not result.text or read_failed(result):
            return None
        return result.output

    async def write_file(self, path: str, content: str, elevate: bool = True) -> bool:
        """Write ``content`` to ``path`` on the target.

        The content is uploaded base64-encoded in chunks to a temp file,
        then decoded into place through ``tee`` (optionally elevated).
        Each step is confirmed by an echoed marker.
        """
        tmp = f"/tmp/serverdeck_upload_{uuid.uuid4().hex[:8]}"
        encoded = base64.b64encode(content.encode("utf-8")).decode("ascii")

        init = await self.execute(f": > {tmp} && echo INIT_OK", timeout=10)
        if "INIT_OK" not in init.output:
            logger.warning("Cannot create upload temp file on %s", self.label)
            return False

        try:
            for offset in range(0, len(encoded), _UPLOAD_CHUNK):
                chunk = encoded[offset:offset + _UPLOAD_CHUNK]
                result = await self.execute(f"printf '%s' '{chunk}' >> {tmp} && echo C_OK", timeout=10)
                if "C_OK" not in result.output:
                    logger.warning("Upload chunk failed for %s", path)
                    return False

            install = await self.execute(
                f"base64 -d {tmp} | {sudo('tee', elevate)} {quote(path)} > /dev/null && echo INSTALL_OK",
                timeout=30,
            )
            if "INSTALL_OK" not in install.output:
                logger.warning("Cannot install %s: %s", path, install.text)
                return False
            return True
        finally:
            await self.execute(f"rm -f {tmp}", timeout=5)

    # ── Probes ──────────────────────────────────────────────────

    async def command_exists(self, name: str) -> bool:
        result = await self.execute(f"command -v {quote(name)} 2>/dev/null", timeout=5)
        return bool(result.text)

    async def path_exists(self, path: str) -> bool:
        result = await self.execute(f"test -e {quote(path)} && echo YES || echo NO", timeout=5)
        return result.text == "YES"

    async def directory_exists(self, path: str) -> bool:
        result = await self.execute(f"test -d {quote(path)} && echo YES || echo NO", timeout=5)
        return result.text == "YES"

    def __repr__(self) -> str:
        return f"<ServerSession {self.label!r} alive={self.is_alive}>"


def looks_missing(output: str) -> bool:
    if sudo_missing(output):
        return False
    return any(marker in output for marker in MISSING_MARKERS)


def looks_denied(output: str) -> bool:
    return any(marker in output for marker in DENIED_MARKERS)


def sudo_missing(output: str) -> bool:
    return any(marker in output for marker in SUDO_MISSING_MARKERS)


def read_failed(result: CommandResult) -> bool:
    """Whether a read command reported an error instead of content.

    Only the first line is inspected: file content may well mention
    "not found" further down.
    """
    first = result.lines[0] if result.lines else ""
    return looks_missing(first) or looks_denied(first) or sudo_missing(first)


def require_session(session: ServerSession | None) -> ServerSession:
    """Return the session, or raise SessionNotAvailable if it is unusable."""
    if session is None or not session.is_alive:
        raise SessionNotAvailable()
    return session
