"""
Local transport — run commands on this machine through /bin/sh.

Useful when serverdeck runs on the server it manages, and as the
simplest real transport for manual testing.
"""

from __future__ import annotations

import asyncio
import logging
import time

from serverdeck.adapters.transport.base import DEFAULT_TIMEOUT, CommandTransport
from serverdeck.core.models.command import EXIT_TRANSPORT_ERROR, CommandResult

logger = logging.getLogger(__name__)


class LocalTransport(CommandTransport):
    """Execute commands with ``asyncio.create_subprocess_shell``.

    stderr is merged into stdout so the output matches what an
    interactive shell session would show.
    """

    def __init__(self, default_timeout: float = DEFAULT_TIMEOUT):
        super().__init__(default_timeout=default_timeout)

    @property
    def name(self) -> str:
        return "local"

    async def _run(self, command: str, timeout: float) -> CommandResult:
        start = time.monotonic()
        try:
            proc = await asyncio.create_subprocess_shell(
                command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as e:
            return CommandResult.failure(command, f"Cannot start shell: {e}")

        try:
            stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except TimeoutError:
            proc.kill()
            await proc.wait()
            return CommandResult.timeout(command, timeout)

        return CommandResult(
            command=command,
            output=stdout.decode("utf-8", errors="replace"),
            exit_code=proc.returncode if proc.returncode is not None else EXIT_TRANSPORT_ERROR,
            execution_time=time.monotonic() - start,
        )
