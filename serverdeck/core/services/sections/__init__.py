"""
Section providers and their registry.

``build_default_registry`` wires every built-in provider to one
``SoftwareServices`` instance. Section types without a provider
(waf_stats, error_pages, upload_limits, timeouts, backup) dispatch to
NotSupported.
"""

from __future__ import annotations

from serverdeck.core.services.sections.base import SectionProvider
from serverdeck.core.services.sections.common import (
    ConfigFileSectionProvider,
    ConfigurationSectionProvider,
    LogsSectionProvider,
    ServiceSectionProvider,
    StatusSectionProvider,
    VersionsSectionProvider,
)
from serverdeck.core.services.sections.databases import DatabasesSectionProvider, UsersSectionProvider
from serverdeck.core.services.sections.php import (
    DisabledFunctionsSectionProvider,
    ExtensionsSectionProvider,
    FPMProfileSectionProvider,
    PHPInfoSectionProvider,
)
from serverdeck.core.services.sections.registry import SectionProviderRegistry
from serverdeck.core.services.sections.web import (
    ModulesSectionProvider,
    SecuritySectionProvider,
    SitesSectionProvider,
)
from serverdeck.core.services.software import SoftwareServices


def build_default_registry(
    services: SoftwareServices | None = None,
    phpinfo_timeout: float = 30,
) -> SectionProviderRegistry:
    """A registry holding every built-in provider."""
    services = services or SoftwareServices()
    config_file = ConfigFileSectionProvider(services)
    return SectionProviderRegistry([
        # Common
        ServiceSectionProvider(services),
        LogsSectionProvider(services),
        config_file,
        ConfigurationSectionProvider(services, config_file),
        VersionsSectionProvider(services),
        StatusSectionProvider(services),
        # Web servers
        ModulesSectionProvider(services),
        SecuritySectionProvider(services),
        SitesSectionProvider(services),
        # PHP
        ExtensionsSectionProvider(services),
        DisabledFunctionsSectionProvider(services),
        FPMProfileSectionProvider(services),
        PHPInfoSectionProvider(services, timeout=phpinfo_timeout),
        # Databases
        DatabasesSectionProvider(services),
        UsersSectionProvider(services),
    ])


__all__ = [
    "SectionProvider",
    "SectionProviderRegistry",
    "build_default_registry",
]
