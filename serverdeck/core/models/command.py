"""
CommandResult — the atomic unit returned by every transport.

A result is always produced. Timeouts and spawn failures are folded
into a well-formed result with a nonzero exit code, so callers never
have to distinguish "the command failed" from "we could not run it"
unless they want to.
"""

from __future__ import annotations

from pydantic import BaseModel

# Exit codes used when the command never produced one of its own
EXIT_TIMEOUT = 124
EXIT_TRANSPORT_ERROR = 255


class CommandResult(BaseModel):
    """Outcome of one shell command executed on a target."""

    command: str
    output: str = ""
    exit_code: int = 0
    execution_time: float = 0.0  # seconds

    @property
    def ok(self) -> bool:
        """Whether the command exited with status 0."""
        return self.exit_code == 0

    @property
    def timed_out(self) -> bool:
        return self.exit_code == EXIT_TIMEOUT

    @property
    def text(self) -> str:
        """Output with surrounding whitespace removed."""
        return self.output.strip()

    @property
    def lines(self) -> list[str]:
        """Non-empty, stripped output lines."""
        return [line.strip() for line in self.output.splitlines() if line.strip()]

    def contains(self, needle: str, case_sensitive: bool = False) -> bool:
        """Substring check on the output.

        Some targets return 0 even on partial failure, so error detection
        is done by inspecting the text rather than the exit code alone.
        """
        if case_sensitive:
            return needle in self.output
        return needle.lower() in self.output.lower()

    @classmethod
    def timeout(cls, command: str, seconds: float) -> CommandResult:
        """Build the result for a command that exceeded its timeout."""
        return cls(
            command=command,
            output=f"Command timed out after {seconds:g}s",
            exit_code=EXIT_TIMEOUT,
            execution_time=seconds,
        )

    @classmethod
    def failure(cls, command: str, error: str, elapsed: float = 0.0) -> CommandResult:
        """Build the result for a command the transport could not run."""
        return cls(
            command=command,
            output=error,
            exit_code=EXIT_TRANSPORT_ERROR,
            execution_time=elapsed,
        )


class ValidationResult(BaseModel):
    """Outcome of a service's built-in config test (``nginx -t`` etc.)."""

    valid: bool
    message: str = ""   # first error line, or a short success note
    output: str = ""    # raw validator text
