"""
Domain models — Pydantic types for serverdeck.

All models are re-exported here for convenient access:

    from serverdeck.core.models import ApplicationDefinition, ApplicationState, SoftwareStatus
"""

from serverdeck.core.models.application import (
    ApplicationCategory,
    ApplicationDefinition,
    Capability,
    SectionDefinition,
    SectionProviderType,
    ServiceConfiguration,
)
from serverdeck.core.models.command import CommandResult, ValidationResult
from serverdeck.core.models.state import (
    ApplicationState,
    ConfigValue,
    ConfigValueType,
    DatabaseInfo,
    DatabaseUser,
    MySQLStatusInfo,
    NginxStatusInfo,
    PHPExtensionInfo,
    PHPFPMStatus,
    SecurityCheck,
    WafLogEntry,
    WebsiteInfo,
)
from serverdeck.core.models.status import ServerStatus, SoftwareStatus, StatusKind
from serverdeck.core.models.versioning import (
    AlternativesDetection,
    AlternativesSwitch,
    BinaryGlobDetection,
    DirectoryDetection,
    PackageManagerDetection,
    SwitchAttempt,
    SwitchOutcome,
    SymlinkSwitch,
    VersionDetectionStrategy,
    VersionManagerDetection,
    VersionManagerSwitch,
    VersionSwitchStrategy,
)

__all__ = [
    # application.py
    "AlternativesDetection",
    "AlternativesSwitch",
    "ApplicationCategory",
    "ApplicationDefinition",
    # state.py
    "ApplicationState",
    "BinaryGlobDetection",
    "Capability",
    # command.py
    "CommandResult",
    "ConfigValue",
    "ConfigValueType",
    "DatabaseInfo",
    "DatabaseUser",
    # versioning.py
    "DirectoryDetection",
    "MySQLStatusInfo",
    "NginxStatusInfo",
    "PHPExtensionInfo",
    "PHPFPMStatus",
    "PackageManagerDetection",
    "SectionDefinition",
    "SectionProviderType",
    "SecurityCheck",
    "ServerStatus",
    "ServiceConfiguration",
    # status.py
    "SoftwareStatus",
    "StatusKind",
    "ValidationResult",
    "SwitchAttempt",
    "SwitchOutcome",
    "SymlinkSwitch",
    "VersionDetectionStrategy",
    "VersionManagerDetection",
    "VersionManagerSwitch",
    "VersionSwitchStrategy",
    "WafLogEntry",
    "WebsiteInfo",
]
