"""Version management — numeric comparison and strategy execution."""

from serverdeck.core.services.versions.compare import (
    compare_versions,
    is_newer,
    parse_version,
    sort_versions_desc,
)
from serverdeck.core.services.versions.manager import VersionManager, extract_versions

__all__ = [
    "VersionManager",
    "compare_versions",
    "extract_versions",
    "is_newer",
    "parse_version",
    "sort_versions_desc",
]
