"""
PHP section providers — extensions, disabled functions, FPM, phpinfo.

All four read the active PHP version. Only the extensions section
treats a missing ``php`` binary as a hard failure; the others write
empty results.
"""

from __future__ import annotations

import logging

from serverdeck.core.errors import LoadFailed
from serverdeck.core.models.application import ApplicationDefinition, SectionProviderType
from serverdeck.core.services.sections.base import SectionProvider
from serverdeck.core.services.software import PHPService, SoftwareServices
from serverdeck.core.services.state_store import ApplicationStateStore
from serverdeck.core.session import ServerSession

logger = logging.getLogger(__name__)


class _PHPProvider(SectionProvider):
    def php_for(self, app: ApplicationDefinition) -> PHPService:
        service = self.service_for(app)
        if not isinstance(service, PHPService):
            raise LoadFailed(f"{app.name} is not PHP")
        return service


class ExtensionsSectionProvider(_PHPProvider):
    """Loaded modules from ``php -m`` plus installable extension packages."""

    provider_type = SectionProviderType.EXTENSIONS

    async def load_data(self, app: ApplicationDefinition, store: ApplicationStateStore, session: ServerSession) -> None:
        php = self.php_for(app)
        if not await session.command_exists("php"):
            raise LoadFailed("php binary not found")
        extensions = await php.get_extensions(session)
        available = await php.get_available_extensions(session)
        await store.apply(extensions=extensions, available_extensions=available)


class DisabledFunctionsSectionProvider(_PHPProvider):
    provider_type = SectionProviderType.DISABLED_FUNCTIONS

    async def load_data(self, app: ApplicationDefinition, store: ApplicationStateStore, session: ServerSession) -> None:
        php = self.php_for(app)
        await store.apply(disabled_functions=await php.get_disabled_functions(session))


class FPMProfileSectionProvider(_PHPProvider):
    """Pool configuration of the active version and the live FPM status page."""

    provider_type = SectionProviderType.FPM_PROFILE

    async def load_data(self, app: ApplicationDefinition, store: ApplicationStateStore, session: ServerSession) -> None:
        php = self.php_for(app)
        path, content = await php.get_pool_config(session)
        if path is None:
            logger.debug("php: no FPM pool file found on %s", session.label)
        status = await php.fpm.get_status(session)
        await store.apply(fpm_pool_config=content, fpm_status=status)


class PHPInfoSectionProvider(_PHPProvider):
    provider_type = SectionProviderType.PHPINFO

    def __init__(self, services: SoftwareServices, timeout: float = 30):
        super().__init__(services)
        self.timeout = timeout

    async def load_data(self, app: ApplicationDefinition, store: ApplicationStateStore, session: ServerSession) -> None:
        php = self.php_for(app)
        html = await php.get_phpinfo(session, timeout=self.timeout)
        summary = await php.get_info_summary(session)
        await store.apply(phpinfo_html=html, phpinfo_summary=summary)
