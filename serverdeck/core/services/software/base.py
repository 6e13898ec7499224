"""
Software service base — status and systemd control shared by every family.

A service class pairs a detector (is it installed, what unit name) with
a version resolver, and adds the mutations an operator can perform.
Mutations return ``bool`` for expected failures; only a dead session
raises.
"""

from __future__ import annotations

import logging
from typing import ClassVar

from serverdeck.core.models.command import CommandResult, ValidationResult
from serverdeck.core.models.status import SoftwareStatus
from serverdeck.core.services.detection.base import SoftwareDetector
from serverdeck.core.session import ServerSession, quote, sudo

logger = logging.getLogger(__name__)

SERVICE_ACTION_TIMEOUT = 30

SYSTEMCTL_VERBS = ("start", "stop", "restart", "reload", "enable", "disable")


async def systemctl(
    session: ServerSession,
    verb: str,
    unit: str,
    timeout: float = SERVICE_ACTION_TIMEOUT,
) -> CommandResult:
    """``sudo systemctl <verb> <unit>``; success is exit code 0."""
    if verb not in SYSTEMCTL_VERBS:
        raise ValueError(f"Unsupported systemctl verb: {verb}")
    result = await session.execute(f"{sudo('systemctl')} {verb} {quote(unit)} 2>&1", timeout=timeout)
    if result.ok:
        logger.info("systemctl %s %s on %s", verb, unit, session.label)
    else:
        logger.warning("systemctl %s %s failed (exit %d): %s", verb, unit, result.exit_code, result.text)
    return result


class ServerModuleService:
    """Installed / version / running, folded into a SoftwareStatus."""

    detector: ClassVar[SoftwareDetector]

    async def is_installed(self, session: ServerSession) -> bool:
        return await self.detector.is_installed(session)

    async def get_version(self, session: ServerSession) -> str | None:
        return None

    async def is_running(self, session: ServerSession) -> bool:
        return await self.detector.is_running(session)

    async def get_binary_path(self, session: ServerSession) -> str | None:
        return await self.detector.get_binary_path(session)

    async def get_config_path(self, session: ServerSession) -> str | None:
        return None

    async def get_log_paths(self, session: ServerSession) -> list[str]:
        """Log files resolved for this host; empty means use the catalog defaults."""
        return []

    async def get_status(self, session: ServerSession) -> SoftwareStatus:
        """Not installed wins over anything a later probe might report."""
        if not await self.is_installed(session):
            return SoftwareStatus.not_installed()
        version = await self.get_version(session) or "installed"
        if await self.is_running(session):
            return SoftwareStatus.running(version)
        return SoftwareStatus.stopped(version)


class ControllableService(ServerModuleService):
    """A ServerModuleService backed by a systemd unit."""

    async def service_name(self, session: ServerSession) -> str:
        return await self.detector.get_service_name(session)

    async def _control(self, session: ServerSession, verb: str) -> bool:
        unit = await self.service_name(session)
        return (await systemctl(session, verb, unit)).ok

    async def start(self, session: ServerSession) -> bool:
        return await self._control(session, "start")

    async def stop(self, session: ServerSession) -> bool:
        return await self._control(session, "stop")

    async def restart(self, session: ServerSession) -> bool:
        return await self._control(session, "restart")

    async def reload(self, session: ServerSession) -> bool:
        return await self._control(session, "reload")

    async def enable(self, session: ServerSession) -> bool:
        return await self._control(session, "enable")

    async def disable(self, session: ServerSession) -> bool:
        return await self._control(session, "disable")

    async def validate_config(self, session: ServerSession) -> ValidationResult:
        """Built-in config test; services without one always pass."""
        return ValidationResult(valid=True, message="No configuration validator")

    async def apply_config(self, session: ServerSession) -> bool:
        """Make a saved config live. Services that cannot reload restart."""
        return await self.restart(session)


def is_safe_to_remove(path: str) -> bool:
    """Whether a document root may be deleted recursively."""
    normalised = "/" + path.strip().strip("/")
    protected = {"/", "/var", "/var/www", "/usr", "/etc", "/home", "/root", "/srv", "/www", "/www/wwwroot"}
    return bool(path.strip()) and path.strip().startswith("/") and normalised not in protected
