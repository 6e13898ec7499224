"""
Section provider registry — the single dispatch point for section loads.

Providers are registered once while the registry is being built and
the table is only read afterwards. Dispatching a section whose type
has no provider raises NotSupported; it never silently loads nothing.
"""

from __future__ import annotations

import logging

from serverdeck.core.errors import NotSupported, SectionProviderError
from serverdeck.core.models.application import (
    ApplicationDefinition,
    SectionDefinition,
    SectionProviderType,
)
from serverdeck.core.services.sections.base import SectionProvider
from serverdeck.core.services.state_store import ApplicationStateStore
from serverdeck.core.session import ServerSession, require_session

logger = logging.getLogger(__name__)


class SectionProviderRegistry:
    """Maps each SectionProviderType to the provider that loads it."""

    def __init__(self, providers: list[SectionProvider] | None = None):
        self._providers: dict[SectionProviderType, SectionProvider] = {}
        for provider in providers or ():
            self.register(provider)

    def register(self, provider: SectionProvider) -> None:
        """Register a provider under its declared type."""
        key = provider.provider_type
        if key in self._providers:
            logger.warning("Overwriting existing section provider: %s", key)
        self._providers[key] = provider
        logger.debug("Registered section provider: %s", key)

    def provider(self, provider_type: SectionProviderType) -> SectionProvider | None:
        return self._providers.get(provider_type)

    def has_provider(self, provider_type: SectionProviderType) -> bool:
        return provider_type in self._providers

    def list_providers(self) -> list[str]:
        return sorted(t.value for t in self._providers)

    async def load_data(
        self,
        section: SectionDefinition,
        app: ApplicationDefinition,
        store: ApplicationStateStore,
        session: ServerSession | None,
    ) -> None:
        """Load one section of ``app`` into ``store``.

        Raises:
            NotSupported: no provider is registered for the section's type.
            SessionNotAvailable: the session is missing or closed.
            SectionProviderError: the provider's own hard failures.
        """
        provider = self._providers.get(section.provider_type)
        if provider is None:
            raise NotSupported(section.provider_type)
        live = require_session(session)

        await store.apply(is_loading=True, error_message=None)
        try:
            await provider.load_data(app, store, live)
        except SectionProviderError as e:
            logger.warning("Section %s/%s failed: %s", app.id, section.id, e)
            await store.apply(error_message=str(e))
            raise
        finally:
            await store.apply(is_loading=False)
        await store.mark_loaded(section.id)

    async def load_all(
        self,
        app: ApplicationDefinition,
        store: ApplicationStateStore,
        session: ServerSession | None,
    ) -> dict[str, str]:
        """Load every section of ``app`` in order.

        A failing section does not stop the others. Returns the error
        message of each section that failed, keyed by section id.
        """
        errors: dict[str, str] = {}
        for section in app.sorted_sections:
            try:
                await self.load_data(section, app, store, session)
            except SectionProviderError as e:
                if e.user_visible and not isinstance(e, NotSupported):
                    raise
                errors[section.id] = str(e)
        return errors
