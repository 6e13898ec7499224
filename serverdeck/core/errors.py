"""
Error taxonomy — what the orchestration core raises.

Detectors and path resolvers never raise; they degrade to defaults.
Section providers raise SectionProviderError subclasses for hard
failures only. Aggregator mutations report expected failures as
booleans and let SessionNotAvailable propagate.
"""

from __future__ import annotations


class ServerDeckError(Exception):
    """Base class for all serverdeck errors."""


class SectionProviderError(ServerDeckError):
    """A section could not be loaded."""

    # Whether the condition is a configuration problem the operator
    # should see, rather than an empty "no data" state.
    user_visible: bool = False


class SessionNotAvailable(SectionProviderError):
    """No usable remote session (never opened, or already closed)."""

    user_visible = True

    def __init__(self, detail: str = "No active session") -> None:
        super().__init__(detail)


class ServiceNotFound(SectionProviderError):
    """No application definition exists for the requested id."""

    def __init__(self, application_id: str) -> None:
        self.application_id = application_id
        super().__init__(f"Service not found: {application_id}")


class LoadFailed(SectionProviderError):
    """A provider's required probe failed outright."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Failed to load data: {reason}")


class NotSupported(SectionProviderError):
    """No provider is registered for a declared section type."""

    user_visible = True

    def __init__(self, section_type: str) -> None:
        self.section_type = str(section_type)
        super().__init__(f"Section type not supported: {self.section_type}")


class VersionSwitchError(ServerDeckError):
    """The transport failed while switching the active version."""
