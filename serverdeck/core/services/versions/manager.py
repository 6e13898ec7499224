"""
Version manager — enumerate and switch installed versions by strategy.

Each software family declares an ordered list of detection strategies
and an ordered list of switch strategies (see core.models.versioning).
Detection returns the first non-empty result in that order. Switching
tries each strategy until one succeeds and reports every attempt, so a
fallback to a cruder mechanism is visible to the caller.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence

from serverdeck.core.errors import VersionSwitchError
from serverdeck.core.models.command import EXIT_TIMEOUT, EXIT_TRANSPORT_ERROR, CommandResult
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
from serverdeck.core.services.versions.compare import sort_versions_desc
from serverdeck.core.session import ServerSession, quote, sudo

logger = logging.getLogger(__name__)

_VERSION_RE = re.compile(r"v?(\d+\.\d+(?:\.\d+)?)")
_VALID_VERSION = re.compile(r"^v?\d+(\.\d+)*[0-9A-Za-z.\-]*$")


def describe(strategy: VersionDetectionStrategy | VersionSwitchStrategy) -> str:
    """Short label for logs and switch reports."""
    match strategy:
        case DirectoryDetection(path=path):
            return f"directory:{path}"
        case AlternativesDetection(name=name) | AlternativesSwitch(binary=name):
            return f"alternatives:{name}"
        case VersionManagerDetection(tool=tool) | VersionManagerSwitch(tool=tool):
            return f"version-manager:{tool}"
        case PackageManagerDetection(pattern=pattern):
            return f"package:{pattern}"
        case BinaryGlobDetection(directory=directory, pattern=pattern):
            return f"binaries:{directory}/{pattern}"
        case SymlinkSwitch(link=link):
            return f"symlink:{link}"
    return strategy.kind


def extract_versions(output: str) -> list[str]:
    """Every ``x.y`` / ``x.y.z`` in the text, newest first, deduped.

    Lines marked ``N/A`` (version-manager aliases pointing at versions
    that are not installed) are skipped.
    """
    found: list[str] = []
    for line in output.splitlines():
        if "N/A" in line:
            continue
        found.extend(_VERSION_RE.findall(line))
    return sort_versions_desc(found)


class VersionManager:
    """Stateless executor for version strategies."""

    # ── Detection ───────────────────────────────────────────────

    async def detect(
        self,
        strategies: Sequence[VersionDetectionStrategy],
        session: ServerSession,
    ) -> list[str]:
        """Installed versions from the first strategy that finds any."""
        for strategy in strategies:
            versions = await self.detect_with(strategy, session)
            if versions:
                logger.debug("Versions via %s: %s", describe(strategy), versions)
                return versions
        return []

    async def detect_with(
        self,
        strategy: VersionDetectionStrategy,
        session: ServerSession,
    ) -> list[str]:
        """Run one detection strategy. Never raises on empty output."""
        match strategy:
            case DirectoryDetection(path=path, pattern=pattern):
                result = await session.execute(
                    f"ls -1 {quote(path)} 2>/dev/null | grep -E {quote(pattern)}", timeout=10
                )
                return sort_versions_desc(result.lines)
            case AlternativesDetection(name=name):
                result = await session.execute(
                    f"update-alternatives --list {quote(name)} 2>/dev/null", timeout=10
                )
                return extract_versions(_basenames(result))
            case VersionManagerDetection(command=command):
                result = await session.execute(f"bash -c {quote(command)} 2>/dev/null", timeout=15)
                return extract_versions(result.output)
            case PackageManagerDetection(pattern=pattern):
                installed = quote(r"^ii\s+" + pattern)
                result = await session.execute(
                    f"dpkg -l 2>/dev/null | grep -E {installed} | awk '{{print $3}}'",
                    timeout=10,
                )
                return extract_versions(result.output)
            case BinaryGlobDetection(directory=directory, pattern=pattern):
                result = await session.execute(
                    f"ls -1 {quote(directory)}/{pattern} 2>/dev/null", timeout=10
                )
                return extract_versions(_basenames(result))
        return []

    # ── Switching ───────────────────────────────────────────────

    async def switch(
        self,
        version: str,
        strategies: Sequence[VersionSwitchStrategy],
        session: ServerSession,
    ) -> SwitchOutcome:
        """Try each switch strategy in order until one succeeds.

        Returns:
            SwitchOutcome listing every attempt. ``success`` is False for
            logical failures (malformed version, mechanism unavailable).

        Raises:
            VersionSwitchError: If the transport itself failed mid-switch.
        """
        outcome = SwitchOutcome(version=version)
        if not _VALID_VERSION.match(version):
            outcome.attempts.append(
                SwitchAttempt(strategy="validation", success=False, output=f"Invalid version: {version!r}")
            )
            return outcome

        for strategy in strategies:
            attempt = await self.switch_with(version, strategy, session)
            outcome.attempts.append(attempt)
            if attempt.success:
                break
            logger.info("Switch to %s via %s failed, trying next", version, attempt.strategy)
        return outcome

    async def switch_with(
        self,
        version: str,
        strategy: VersionSwitchStrategy,
        session: ServerSession,
    ) -> SwitchAttempt:
        """Run one switch strategy."""
        bare = version[1:] if version[:1] in ("v", "V") else version
        match strategy:
            case AlternativesSwitch(binary=binary, path=path):
                target = f"{path.rstrip('/')}/{binary}{bare}"
                command = f"{sudo('update-alternatives')} --set {quote(binary)} {quote(target)} 2>&1 && echo SWITCHED"
                marker = "SWITCHED"
            case SymlinkSwitch(link=link, target=target):
                resolved = target.replace("{VERSION}", bare)
                source = quote(resolved)
                command = (
                    f"if [ -x {source} ]; then {sudo('ln')} -sf {source} {quote(link)} 2>&1 && echo LINKED; "
                    f"else echo {quote(resolved + ': no such executable')}; fi"
                )
                marker = "LINKED"
            case VersionManagerSwitch(command=template):
                script = template.replace("{VERSION}", quote(bare))
                command = f"bash -c {quote(script)} 2>&1 && echo SWITCHED"
                marker = "SWITCHED"
            case _:
                return SwitchAttempt(strategy=describe(strategy), success=False, output="unknown strategy")

        result = await session.execute(command, timeout=30)
        _raise_on_transport_failure(result)
        return SwitchAttempt(
            strategy=describe(strategy),
            success=marker in result.output,
            output=result.output.replace(marker, "").strip(),
        )


def _basenames(result: CommandResult) -> str:
    return "\n".join(line.rsplit("/", 1)[-1] for line in result.lines)


def _raise_on_transport_failure(result: CommandResult) -> None:
    if result.exit_code in (EXIT_TIMEOUT, EXIT_TRANSPORT_ERROR):
        raise VersionSwitchError(f"Transport failure running '{result.command}': {result.text}")
