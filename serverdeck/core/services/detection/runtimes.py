"""
Runtime detection — Node.js and Python interpreters.

Both are commonly present in several versions at once: Node through
nvm in the operator's home directory, Python as versioned binaries in
/usr/bin registered with the alternatives mechanism.
"""

from __future__ import annotations

import re

from serverdeck.core.models.versioning import (
    AlternativesDetection,
    AlternativesSwitch,
    BinaryGlobDetection,
    SymlinkSwitch,
    VersionDetectionStrategy,
    VersionManagerDetection,
    VersionManagerSwitch,
    VersionSwitchStrategy,
)
from serverdeck.core.services.detection.base import SoftwareDetector
from serverdeck.core.session import ServerSession

NVM_INIT = 'export NVM_DIR="$HOME/.nvm"; . "$NVM_DIR/nvm.sh"'


# ── Node.js ─────────────────────────────────────────────────────


class NodeDetector(SoftwareDetector):
    binaries = ("node", "nodejs")
    binary_paths = ("/usr/bin/node", "/usr/local/bin/node", "/usr/bin/nodejs")
    packages = ("nodejs",)

    async def is_nvm_installed(self, session: ServerSession) -> bool:
        result = await session.execute('test -s "$HOME/.nvm/nvm.sh" && echo NVM', timeout=5)
        return "NVM" in result.output


NODE_NVM_DETECTION = VersionManagerDetection(tool="nvm", command=f"{NVM_INIT} && nvm ls --no-colors")
NODE_BINARY_DETECTION = BinaryGlobDetection(pattern="node*")
NODE_NVM_SWITCH = VersionManagerSwitch(
    tool="nvm", command=f"{NVM_INIT} && nvm alias default {{VERSION}} && nvm use {{VERSION}}"
)
NODE_ALTERNATIVES_SWITCH = AlternativesSwitch(binary="node", path="/usr/bin")


def parse_node_version(output: str) -> str | None:
    """``v20.11.1`` → ``20.11.1``."""
    match = re.search(r"v?(\d+\.\d+\.\d+)", output)
    return match.group(1) if match else None


# ── Python ──────────────────────────────────────────────────────


class PythonDetector(SoftwareDetector):
    binaries = ("python3", "python")
    binary_paths = ("/usr/bin/python3", "/usr/local/bin/python3")
    packages = ("python3",)


PYTHON_DETECTION: tuple[VersionDetectionStrategy, ...] = (
    BinaryGlobDetection(pattern="python3.*"),
    AlternativesDetection(name="python3"),
    VersionManagerDetection(tool="pyenv", command="pyenv versions --bare"),
)

PYTHON_SWITCH: tuple[VersionSwitchStrategy, ...] = (
    AlternativesSwitch(binary="python", path="/usr/bin"),
    SymlinkSwitch(link="/usr/bin/python3", target="/usr/bin/python{VERSION}"),
)


def parse_python_version(output: str) -> str | None:
    """``Python 3.11.4`` → ``3.11.4``."""
    match = re.search(r"Python\s+(\d+\.\d+(?:\.\d+)?)", output)
    return match.group(1) if match else None
