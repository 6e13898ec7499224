"""
SoftwareStatus — tagged status of one piece of software on a host.

Only ``running`` and ``stopped`` (and plain ``installed``) carry a
version. ``not_installed`` never does: a probe that incidentally
captured a version string for missing software is still reported as
not installed.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, Field, model_validator


class StatusKind(StrEnum):
    NOT_INSTALLED = "not_installed"
    INSTALLED = "installed"
    RUNNING = "running"
    STOPPED = "stopped"
    ERROR = "error"
    UNKNOWN = "unknown"


_VERSIONED = {StatusKind.INSTALLED, StatusKind.RUNNING, StatusKind.STOPPED}


class SoftwareStatus(BaseModel):
    """Installed/running state of a service, with its version when known."""

    kind: StatusKind = StatusKind.UNKNOWN
    version: str | None = None
    message: str | None = None

    @model_validator(mode="after")
    def _drop_stray_version(self) -> SoftwareStatus:
        if self.kind not in _VERSIONED:
            self.version = None
        return self

    # ── Constructors ─────────────────────────────────────────────

    @classmethod
    def not_installed(cls) -> SoftwareStatus:
        return cls(kind=StatusKind.NOT_INSTALLED)

    @classmethod
    def installed(cls, version: str) -> SoftwareStatus:
        return cls(kind=StatusKind.INSTALLED, version=version)

    @classmethod
    def running(cls, version: str) -> SoftwareStatus:
        return cls(kind=StatusKind.RUNNING, version=version)

    @classmethod
    def stopped(cls, version: str) -> SoftwareStatus:
        return cls(kind=StatusKind.STOPPED, version=version)

    @classmethod
    def error(cls, message: str) -> SoftwareStatus:
        return cls(kind=StatusKind.ERROR, message=message)

    @classmethod
    def unknown(cls) -> SoftwareStatus:
        return cls(kind=StatusKind.UNKNOWN)

    # ── Queries ──────────────────────────────────────────────────

    @property
    def is_installed(self) -> bool:
        return self.kind in _VERSIONED

    @property
    def is_running(self) -> bool:
        return self.kind == StatusKind.RUNNING

    @property
    def display(self) -> str:
        """Short human-readable label."""
        if self.kind == StatusKind.NOT_INSTALLED:
            return "Not Installed"
        if self.kind == StatusKind.ERROR:
            return f"Error: {self.message}"
        if self.kind == StatusKind.UNKNOWN:
            return "Unknown"
        return f"{self.kind.value.capitalize()} ({self.version})"


class ServerStatus(BaseModel):
    """Status of the commonly managed services on one host."""

    nginx: SoftwareStatus = Field(default_factory=SoftwareStatus.not_installed)
    apache: SoftwareStatus = Field(default_factory=SoftwareStatus.not_installed)
    mysql: SoftwareStatus = Field(default_factory=SoftwareStatus.not_installed)
    postgresql: SoftwareStatus = Field(default_factory=SoftwareStatus.not_installed)
    php: SoftwareStatus = Field(default_factory=SoftwareStatus.not_installed)
    redis: SoftwareStatus = Field(default_factory=SoftwareStatus.not_installed)

    def items(self) -> list[tuple[str, SoftwareStatus]]:
        return [(name, getattr(self, name)) for name in type(self).model_fields]

    @property
    def installed(self) -> list[str]:
        return [name for name, status in self.items() if status.is_installed]
