"""
Web server section providers — sites, modules, security.

Nginx and Apache expose the same three sections through different
probes; the web server service hides the difference and the providers
write the same state fields either way.
"""

from __future__ import annotations

from serverdeck.core.errors import LoadFailed
from serverdeck.core.models.application import ApplicationDefinition, SectionProviderType
from serverdeck.core.services.sections.base import SectionProvider
from serverdeck.core.services.software import WebServerService
from serverdeck.core.services.state_store import ApplicationStateStore
from serverdeck.core.session import ServerSession


class _WebServerProvider(SectionProvider):
    def web_server_for(self, app: ApplicationDefinition) -> WebServerService:
        service = self.service_for(app)
        if not isinstance(service, WebServerService):
            raise LoadFailed(f"{app.name} is not a web server")
        return service


class SitesSectionProvider(_WebServerProvider):
    provider_type = SectionProviderType.SITES

    async def load_data(self, app: ApplicationDefinition, store: ApplicationStateStore, session: ServerSession) -> None:
        service = self.web_server_for(app)
        await store.apply(sites=await service.fetch_sites(session))


class ModulesSectionProvider(_WebServerProvider):
    """Compiled-in and dynamically loaded modules."""

    provider_type = SectionProviderType.MODULES

    async def load_data(self, app: ApplicationDefinition, store: ApplicationStateStore, session: ServerSession) -> None:
        service = self.web_server_for(app)
        await store.apply(modules=await service.get_modules(session))


class SecuritySectionProvider(_WebServerProvider):
    """WAF, rate limiting, TLS and header checks, block counters and recently refused requests."""

    provider_type = SectionProviderType.SECURITY

    async def load_data(self, app: ApplicationDefinition, store: ApplicationStateStore, session: ServerSession) -> None:
        service = self.web_server_for(app)
        checks = await service.get_security_checks(session)
        stats = await service.get_security_stats(session)
        blocked = await service.get_blocked_requests(session)
        await store.apply(security_checks=checks, security_stats=stats, waf_entries=blocked)
