"""
Mock transport — test double for every command-issuing component.

Returns pre-configured output per command. Matching is exact first,
then by substring (the longest registered pattern that occurs in the
command wins), then the default response.
"""

from __future__ import annotations

import asyncio

from serverdeck.adapters.transport.base import CommandTransport
from serverdeck.core.models.command import CommandResult


class MockTransport(CommandTransport):
    """Scriptable transport for tests.

    By default every command succeeds with empty output, which the
    core reads as "nothing found".
    """

    def __init__(
        self,
        responses: dict[str, str] | None = None,
        default_output: str = "",
        default_exit_code: int = 0,
        latency: float = 0.0,
    ):
        super().__init__()
        self._responses: dict[str, tuple[str, int]] = {
            pattern: (output, 0) for pattern, output in (responses or {}).items()
        }
        self._default = (default_output, default_exit_code)
        self._latency = latency
        self._call_log: list[str] = []

    @property
    def name(self) -> str:
        return "mock"

    @property
    def call_log(self) -> list[str]:
        """Every command this transport has executed, in order."""
        return self._call_log

    @property
    def call_count(self) -> int:
        return len(self._call_log)

    def set_response(self, pattern: str, output: str, exit_code: int = 0) -> None:
        """Respond to commands equal to, or containing, ``pattern``."""
        self._responses[pattern] = (output, exit_code)

    def set_failure(self, pattern: str, output: str = "", exit_code: int = 1) -> None:
        """Make commands matching ``pattern`` exit nonzero."""
        self._responses[pattern] = (output, exit_code)

    def ran(self, fragment: str) -> bool:
        """Whether any executed command contained ``fragment``."""
        return any(fragment in cmd for cmd in self._call_log)

    def commands_matching(self, fragment: str) -> list[str]:
        return [cmd for cmd in self._call_log if fragment in cmd]

    def reset(self) -> None:
        """Clear call log and custom responses."""
        self._call_log.clear()
        self._responses.clear()

    def _match(self, command: str) -> tuple[str, int]:
        if command in self._responses:
            return self._responses[command]
        candidates = [p for p in self._responses if p in command]
        if candidates:
            return self._responses[max(candidates, key=len)]
        return self._default

    async def _run(self, command: str, timeout: float) -> CommandResult:
        self._call_log.append(command)
        if self._latency:
            await asyncio.sleep(self._latency)
        output, exit_code = self._match(command)
        return CommandResult(
            command=command,
            output=output,
            exit_code=exit_code,
            execution_time=self._latency or 0.001,
        )
