"""
Version strategies — how to enumerate and switch installed versions.

Strategies are data, not code: a new piece of software declares which
mechanism it uses and the VersionManager supplies the behaviour. The
``kind`` field is the tag that discriminates the variants.
"""

from __future__ import annotations

from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field


class _Strategy(BaseModel):
    model_config = ConfigDict(frozen=True)


# ── Detection ───────────────────────────────────────────────────


class DirectoryDetection(_Strategy):
    """Version directories under a path, e.g. ``/etc/php/8.2``."""

    kind: Literal["directory"] = "directory"
    path: str
    pattern: str = r"^[0-9]"


class AlternativesDetection(_Strategy):
    """Entries registered with the OS alternatives mechanism."""

    kind: Literal["alternatives"] = "alternatives"
    name: str


class VersionManagerDetection(_Strategy):
    """A user-space version manager listing (nvm, pyenv)."""

    kind: Literal["version_manager"] = "version_manager"
    tool: str
    command: str


class PackageManagerDetection(_Strategy):
    """Installed distribution packages matching a name pattern."""

    kind: Literal["package_manager"] = "package_manager"
    pattern: str


class BinaryGlobDetection(_Strategy):
    """Versioned binaries in /usr/bin, e.g. ``python3*``."""

    kind: Literal["binary_glob"] = "binary_glob"
    pattern: str
    directory: str = "/usr/bin"


VersionDetectionStrategy = Annotated[
    DirectoryDetection
    | AlternativesDetection
    | VersionManagerDetection
    | PackageManagerDetection
    | BinaryGlobDetection,
    Field(discriminator="kind"),
]


# ── Switching ───────────────────────────────────────────────────


class AlternativesSwitch(_Strategy):
    """``update-alternatives --set <binary> <path>/<binary><version>``."""

    kind: Literal["alternatives"] = "alternatives"
    binary: str
    path: str = "/usr/bin"


class SymlinkSwitch(_Strategy):
    """Point ``link`` at ``target``; ``{VERSION}`` in target is substituted."""

    kind: Literal["symlink"] = "symlink"
    link: str
    target: str


class VersionManagerSwitch(_Strategy):
    """Run a version-manager command; ``{VERSION}`` is substituted."""

    kind: Literal["version_manager"] = "version_manager"
    tool: str
    command: str


VersionSwitchStrategy = Annotated[
    AlternativesSwitch | SymlinkSwitch | VersionManagerSwitch,
    Field(discriminator="kind"),
]


class SwitchAttempt(BaseModel):
    """One strategy tried during a switch."""

    strategy: str
    success: bool
    output: str = ""


class SwitchOutcome(BaseModel):
    """Every attempt made while switching, in order."""

    version: str
    attempts: list[SwitchAttempt] = Field(default_factory=list)

    @property
    def success(self) -> bool:
        return any(a.success for a in self.attempts)

    @property
    def used_fallback(self) -> bool:
        """Whether a strategy other than the first one succeeded."""
        return self.success and not self.attempts[0].success

    @property
    def strategy(self) -> str | None:
        """The strategy that succeeded, if any."""
        for attempt in self.attempts:
            if attempt.success:
                return attempt.strategy
        return None
