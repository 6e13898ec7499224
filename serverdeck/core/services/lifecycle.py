"""
Application lifecycle — installed/running/multi-version state per application.

``refresh_state`` asks the application's service, in order: is it
installed, which version, are several versions installed side by
side, is it running. The result is cached per application id until
the next refresh.
"""

from __future__ import annotations

import logging
from enum import StrEnum

from pydantic import BaseModel, Field

from serverdeck.core.services.applications import ApplicationRegistry
from serverdeck.core.services.software import (
    ControllableService,
    PHPService,
    RuntimeService,
    SoftwareServices,
)
from serverdeck.core.session import ServerSession, require_session

logger = logging.getLogger(__name__)


class LifecycleKind(StrEnum):
    NOT_INSTALLED = "not_installed"
    INSTALLED = "installed"
    RUNNING = "running"
    STOPPED = "stopped"
    MULTIPLE_VERSIONS = "multiple_versions"
    BROKEN = "broken"


class LifecycleState(BaseModel):
    kind: LifecycleKind
    version: str | None = None
    versions: list[str] = Field(default_factory=list)
    active_version: str | None = None
    reason: str | None = None

    @classmethod
    def not_installed(cls) -> LifecycleState:
        return cls(kind=LifecycleKind.NOT_INSTALLED)

    @classmethod
    def installed(cls, version: str) -> LifecycleState:
        return cls(kind=LifecycleKind.INSTALLED, version=version)

    @classmethod
    def running(cls, version: str) -> LifecycleState:
        return cls(kind=LifecycleKind.RUNNING, version=version)

    @classmethod
    def stopped(cls, version: str) -> LifecycleState:
        return cls(kind=LifecycleKind.STOPPED, version=version)

    @classmethod
    def multiple_versions(cls, versions: list[str], active: str | None) -> LifecycleState:
        return cls(kind=LifecycleKind.MULTIPLE_VERSIONS, versions=versions, active_version=active)

    @classmethod
    def broken(cls, reason: str) -> LifecycleState:
        return cls(kind=LifecycleKind.BROKEN, reason=reason)

    @property
    def display(self) -> str:
        if self.kind == LifecycleKind.MULTIPLE_VERSIONS:
            return f"{len(self.versions)} versions (active {self.active_version or 'none'})"
        if self.kind == LifecycleKind.BROKEN:
            return f"Broken: {self.reason}"
        if self.version:
            return f"{self.kind.value.replace('_', ' ').capitalize()} ({self.version})"
        return self.kind.value.replace("_", " ").capitalize()


class ApplicationLifecycleManager:
    """Caches the last known lifecycle state of every application."""

    def __init__(
        self,
        services: SoftwareServices | None = None,
        applications: ApplicationRegistry | None = None,
    ):
        self.services = services or SoftwareServices()
        self.applications = applications or ApplicationRegistry()
        self._states: dict[str, LifecycleState] = {}

    @property
    def states(self) -> dict[str, LifecycleState]:
        return dict(self._states)

    def state(self, application_id: str) -> LifecycleState | None:
        return self._states.get(application_id.lower())

    def update_state(self, application_id: str, state: LifecycleState) -> None:
        self._states[application_id.lower()] = state

    async def refresh_state(self, application_id: str, session: ServerSession | None) -> LifecycleState:
        state = await self._probe(application_id, require_session(session))
        self.update_state(application_id, state)
        logger.debug("Lifecycle %s: %s", application_id, state.display)
        return state

    async def _probe(self, application_id: str, session: ServerSession) -> LifecycleState:
        app = self.applications.application(application_id)
        if app is None:
            return LifecycleState.broken("Service not found")
        service = self.services.for_application(app.id)
        if service is None:
            return LifecycleState.broken(f"No service for {app.name}")

        if not await service.is_installed(session):
            return LifecycleState.not_installed()
        version = await service.get_version(session) or "unknown"

        if isinstance(service, (PHPService, RuntimeService)):
            versions = await service.installed_versions(session)
            if len(versions) > 1:
                return LifecycleState.multiple_versions(versions, await service.get_version(session))

        if isinstance(service, ControllableService):
            if await service.is_running(session):
                return LifecycleState.running(version)
            return LifecycleState.stopped(version)
        return LifecycleState.installed(version)
