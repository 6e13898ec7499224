"""
Transport base — the one primitive the orchestration core depends on.

A transport executes a single shell command string against a target
and returns a CommandResult. Exactly one command is in flight per
target: the base class serializes calls with an asyncio.Lock, so
concurrent callers queue rather than interleave on the same channel.

To create a new transport:
    1. Subclass CommandTransport
    2. Implement name, _run, and (if it holds resources) _close
    3. Hand it to a ServerSession
"""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod

from serverdeck.core.errors import SessionNotAvailable
from serverdeck.core.models.command import CommandResult

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 15.0


class CommandTransport(ABC):
    """Abstract base class for command transports.

    Subclasses implement ``_run``. It MUST return a CommandResult for
    every command, including timeouts and failures; the only exception
    allowed to escape ``execute`` is SessionNotAvailable.
    """

    def __init__(self, default_timeout: float = DEFAULT_TIMEOUT):
        self._default_timeout = default_timeout
        self._lock = asyncio.Lock()
        self._closed = False

    @property
    @abstractmethod
    def name(self) -> str:
        """Transport identifier (e.g., 'local', 'ssh', 'mock')."""

    @property
    def closed(self) -> bool:
        return self._closed

    async def execute(self, command: str, timeout: float | None = None) -> CommandResult:
        """Run one command, waiting for any in-flight command to finish first.

        Args:
            command: Opaque POSIX shell string. Interpolated values must
                already be quoted by the caller.
            timeout: Per-command timeout in seconds (default: transport default).

        Raises:
            SessionNotAvailable: If the transport has been closed.
        """
        if self._closed:
            raise SessionNotAvailable(f"{self.name} transport is closed")

        limit = timeout if timeout is not None else self._default_timeout

        async with self._lock:
            if self._closed:
                raise SessionNotAvailable(f"{self.name} transport is closed")
            logger.debug("[%s] $ %s (timeout=%ss)", self.name, command, limit)
            start = time.monotonic()
            result = await self._run(command, limit)
            if not result.execution_time:
                result.execution_time = time.monotonic() - start

        if not result.ok:
            logger.debug(
                "[%s] exit %d after %.2fs: %s",
                self.name, result.exit_code, result.execution_time, command,
            )
        return result

    async def close(self) -> None:
        """Close the transport. Further execute calls raise SessionNotAvailable."""
        if self._closed:
            return
        self._closed = True
        await self._close()

    @abstractmethod
    async def _run(self, command: str, timeout: float) -> CommandResult:
        """Execute the command. Never raises for command-level failure."""

    async def _close(self) -> None:
        """Release transport resources (optional hook)."""

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r} closed={self._closed}>"
