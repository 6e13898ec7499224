"""
Section provider interface — one implementation per section type.

A provider knows how to fetch and parse the data behind one kind of
section (logs, databases, extensions, ...). It receives the
application definition, the state store to write into, and the
session to run commands on. It keeps none of them after the call.

Failure contract:
    - Empty or partial command output is a valid "nothing found"
      result and is written as an empty value, never raised.
    - LoadFailed is raised only when a required probe fails outright.
    - ServiceNotFound is raised when no software service backs the
      application.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from serverdeck.core.errors import ServiceNotFound
from serverdeck.core.models.application import ApplicationDefinition, SectionProviderType
from serverdeck.core.services.software import SoftwareServices
from serverdeck.core.services.software.base import ServerModuleService
from serverdeck.core.services.state_store import ApplicationStateStore
from serverdeck.core.session import ServerSession


class SectionProvider(ABC):
    """Loads one section type into an application's state.

    Subclasses must set ``provider_type`` and implement ``load_data``.
    """

    provider_type: SectionProviderType

    def __init__(self, services: SoftwareServices):
        self.services = services

    @abstractmethod
    async def load_data(
        self,
        app: ApplicationDefinition,
        store: ApplicationStateStore,
        session: ServerSession,
    ) -> None:
        """Run this section's probes and write the results into ``store``."""

    def service_for(self, app: ApplicationDefinition) -> ServerModuleService:
        """The software service behind ``app``, or ServiceNotFound."""
        service = self.services.for_application(app.id)
        if service is None:
            raise ServiceNotFound(app.id)
        return service

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.provider_type}>"
