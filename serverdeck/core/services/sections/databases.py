"""
Database section providers — database and user listings per engine.

The engine-specific query syntax and output format live in the
database services; an engine with nothing to list writes an empty
list rather than failing.
"""

from __future__ import annotations

from serverdeck.core.errors import LoadFailed
from serverdeck.core.models.application import ApplicationDefinition, SectionProviderType
from serverdeck.core.services.sections.base import SectionProvider
from serverdeck.core.services.software import DatabaseService
from serverdeck.core.services.state_store import ApplicationStateStore
from serverdeck.core.session import ServerSession


class _DatabaseProvider(SectionProvider):
    def database_for(self, app: ApplicationDefinition) -> DatabaseService:
        service = self.service_for(app)
        if not isinstance(service, DatabaseService):
            raise LoadFailed(f"{app.name} has no databases")
        return service


class DatabasesSectionProvider(_DatabaseProvider):
    provider_type = SectionProviderType.DATABASES

    async def load_data(self, app: ApplicationDefinition, store: ApplicationStateStore, session: ServerSession) -> None:
        service = self.database_for(app)
        await store.apply(databases=await service.fetch_databases(session))


class UsersSectionProvider(_DatabaseProvider):
    provider_type = SectionProviderType.USERS

    async def load_data(self, app: ApplicationDefinition, store: ApplicationStateStore, session: ServerSession) -> None:
        service = self.database_for(app)
        await store.apply(users=await service.fetch_users(session))
