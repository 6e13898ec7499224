"""
Runtime services — Node.js and Python.

Runtimes have no long-running unit; "running" is meaningless, so their
status is installed/not installed with the active version. Both carry
several versions side by side and switch through the VersionManager.
"""

from __future__ import annotations

import logging

from serverdeck.core.models.status import SoftwareStatus
from serverdeck.core.models.versioning import (
    SwitchOutcome,
    VersionDetectionStrategy,
    VersionSwitchStrategy,
)
from serverdeck.core.services.detection.runtimes import (
    NODE_ALTERNATIVES_SWITCH,
    NODE_BINARY_DETECTION,
    NODE_NVM_DETECTION,
    NODE_NVM_SWITCH,
    PYTHON_DETECTION,
    PYTHON_SWITCH,
    NodeDetector,
    PythonDetector,
    parse_node_version,
    parse_python_version,
)
from serverdeck.core.services.software.base import ServerModuleService
from serverdeck.core.services.versions.manager import VersionManager
from serverdeck.core.session import ServerSession

logger = logging.getLogger(__name__)


class RuntimeService(ServerModuleService):
    """Multi-version interpreter without a systemd unit."""

    language: str = ""

    def __init__(self, version_manager: VersionManager | None = None):
        self.version_manager = version_manager or VersionManager()

    async def detection_strategies(self, session: ServerSession) -> tuple[VersionDetectionStrategy, ...]:
        return ()

    async def switch_strategies(self, session: ServerSession) -> tuple[VersionSwitchStrategy, ...]:
        return ()

    async def is_running(self, session: ServerSession) -> bool:
        return False

    async def get_status(self, session: ServerSession) -> SoftwareStatus:
        if not await self.is_installed(session):
            return SoftwareStatus.not_installed()
        return SoftwareStatus.installed(await self.get_version(session) or "installed")

    async def installed_versions(self, session: ServerSession) -> list[str]:
        return await self.version_manager.detect(await self.detection_strategies(session), session)

    async def switch_version(self, session: ServerSession, version: str) -> SwitchOutcome:
        outcome = await self.version_manager.switch(version, await self.switch_strategies(session), session)
        if outcome.used_fallback:
            logger.warning("%s %s activated via fallback %s", self.language, version, outcome.strategy)
        return outcome


class NodeService(RuntimeService):
    """Node.js through nvm when present, else system binaries."""

    language = "node"
    detector = NodeDetector()

    async def get_version(self, session: ServerSession) -> str | None:
        result = await session.execute("node --version 2>/dev/null", timeout=10)
        return parse_node_version(result.output)

    async def detection_strategies(self, session: ServerSession) -> tuple[VersionDetectionStrategy, ...]:
        if await self.detector.is_nvm_installed(session):
            return (NODE_NVM_DETECTION, NODE_BINARY_DETECTION)
        return (NODE_BINARY_DETECTION,)

    async def switch_strategies(self, session: ServerSession) -> tuple[VersionSwitchStrategy, ...]:
        if await self.detector.is_nvm_installed(session):
            return (NODE_NVM_SWITCH, NODE_ALTERNATIVES_SWITCH)
        return (NODE_ALTERNATIVES_SWITCH,)


class PythonService(RuntimeService):
    language = "python"
    detector = PythonDetector()

    async def get_version(self, session: ServerSession) -> str | None:
        result = await session.execute("python3 --version 2>&1", timeout=10)
        return parse_python_version(result.output)

    async def detection_strategies(self, session: ServerSession) -> tuple[VersionDetectionStrategy, ...]:
        return PYTHON_DETECTION

    async def switch_strategies(self, session: ServerSession) -> tuple[VersionSwitchStrategy, ...]:
        return PYTHON_SWITCH
