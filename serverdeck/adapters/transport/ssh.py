"""
SSH transport — run commands on a remote host over asyncssh.

One SSHTransport wraps one authenticated asyncssh connection. The base
class guarantees a single command in flight per connection.
"""

from __future__ import annotations

import logging
import time
from typing import Any

import asyncssh

from serverdeck.adapters.transport.base import DEFAULT_TIMEOUT, CommandTransport
from serverdeck.core.errors import SessionNotAvailable
from serverdeck.core.models.command import EXIT_TRANSPORT_ERROR, CommandResult

logger = logging.getLogger(__name__)


class SSHTransport(CommandTransport):
    """Execute commands through an open ``asyncssh.SSHClientConnection``."""

    def __init__(
        self,
        conn: asyncssh.SSHClientConnection,
        host: str = "",
        default_timeout: float = DEFAULT_TIMEOUT,
    ):
        super().__init__(default_timeout=default_timeout)
        self._conn = conn
        self._host = host

    @property
    def name(self) -> str:
        return f"ssh:{self._host}" if self._host else "ssh"

    async def _run(self, command: str, timeout: float) -> CommandResult:
        start = time.monotonic()
        try:
            result = await self._conn.run(
                command,
                check=False,
                timeout=timeout,
                stderr=asyncssh.STDOUT,
            )
        except asyncssh.TimeoutError:
            return CommandResult.timeout(command, timeout)
        except (asyncssh.Error, OSError) as e:
            logger.warning("SSH command failed on %s: %s", self._host or "remote", e)
            return CommandResult.failure(command, f"SSH error: {e}", time.monotonic() - start)

        output = result.stdout or ""
        if isinstance(output, bytes):
            output = output.decode("utf-8", errors="replace")

        exit_code = result.exit_status
        if exit_code is None:
            exit_code = EXIT_TRANSPORT_ERROR

        return CommandResult(
            command=command,
            output=output,
            exit_code=exit_code,
            execution_time=time.monotonic() - start,
        )

    async def _close(self) -> None:
        self._conn.close()
        await self._conn.wait_closed()


async def connect_ssh(
    host: str,
    username: str | None = None,
    password: str | None = None,
    key_path: str | None = None,
    port: int = 22,
    known_hosts: str | None = None,
    default_timeout: float = DEFAULT_TIMEOUT,
) -> SSHTransport:
    """Open an asyncssh connection and wrap it in a transport.

    Args:
        host: Hostname or address.
        username: Login user (default: asyncssh's local-user default).
        password: Optional password.
        key_path: Optional private key file.
        port: SSH port.
        known_hosts: Path to a known_hosts file. None disables host key checks.
        default_timeout: Per-command timeout used when callers pass none.

    Raises:
        SessionNotAvailable: If the connection cannot be established.
    """
    kwargs: dict[str, Any] = {
        "host": host,
        "port": port,
        "known_hosts": known_hosts,
    }
    if username:
        kwargs["username"] = username
    if password:
        kwargs["password"] = password
    if key_path:
        kwargs["client_keys"] = [key_path]

    logger.info("Connecting to %s:%d", host, port)
    try:
        conn = await asyncssh.connect(**kwargs)
    except (asyncssh.Error, OSError) as e:
        raise SessionNotAvailable(f"Cannot connect to {host}:{port}: {e}") from e

    return SSHTransport(conn, host=host, default_timeout=default_timeout)
