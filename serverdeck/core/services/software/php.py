"""
PHP service — versions, FPM instances, ini values, extensions.

"Running" for PHP means some FPM instance is active. Each installed
version has its own ``php<version>-fpm`` unit, so service control
first resolves which unit is meant: the running one, else any
installed one, else the unversioned ``php-fpm``.
"""

from __future__ import annotations

import logging
import re

from serverdeck.core.models.command import ValidationResult
from serverdeck.core.models.state import PHPExtensionInfo, PHPFPMStatus
from serverdeck.core.models.versioning import (
    AlternativesSwitch,
    SwitchOutcome,
    SymlinkSwitch,
    VersionSwitchStrategy,
)
from serverdeck.core.services.detection.base import is_service_active
from serverdeck.core.services.detection.php import (
    DETECTION_STRATEGIES,
    PHPDetector,
    PHPPathResolver,
    PHPVersionResolver,
)
from serverdeck.core.services.software.base import ControllableService, systemctl
from serverdeck.core.services.versions.manager import VersionManager
from serverdeck.core.session import ServerSession, quote, sudo

logger = logging.getLogger(__name__)

SWITCH_STRATEGIES: tuple[VersionSwitchStrategy, ...] = (
    AlternativesSwitch(binary="php", path="/usr/bin"),
    SymlinkSwitch(link="/usr/bin/php", target="/usr/bin/php{VERSION}"),
)

CORE_EXTENSIONS = frozenset({
    "core", "date", "libxml", "pcre", "reflection", "spl",
    "standard", "filter", "hash", "json", "ctype", "tokenizer",
})

_FPM_UNIT_RE = re.compile(r"php[0-9.]*-fpm")

# Labels shown in the PHP info summary and the expression that yields each
PHPINFO_FIELDS = (
    ("PHP Version", "PHP_VERSION"),
    ("Zend Engine", "zend_version()"),
    ("SAPI", "php_sapi_name()"),
    ("Config File", "php_ini_loaded_file()"),
    ("Memory Limit", "ini_get('memory_limit')"),
    ("Max Execution Time", "ini_get('max_execution_time')"),
    ("Upload Max Filesize", "ini_get('upload_max_filesize')"),
    ("Post Max Size", "ini_get('post_max_size')"),
    ("Timezone", "date_default_timezone_get()"),
    ("Display Errors", "ini_get('display_errors')"),
)


# ── Parsers ─────────────────────────────────────────────────────


def parse_fpm_units(output: str) -> list[str]:
    """Unique FPM unit names (``php8.2-fpm``) in order of appearance."""
    units: list[str] = []
    for unit in _FPM_UNIT_RE.findall(output):
        if unit not in units:
            units.append(unit)
    return units


def parse_fpm_status(output: str) -> PHPFPMStatus | None:
    """Parse the plain-text FPM status page; None unless it names a pool."""
    if "pool:" not in output:
        return None
    fields = {
        "pool": "pool",
        "process manager": "process_manager",
        "start time": "start_time",
        "accepted conn": "accepted_connections",
        "active processes": "active_processes",
        "idle processes": "idle_processes",
        "total processes": "total_processes",
        "max active processes": "max_active_processes",
    }
    values: dict[str, str | int] = {}
    for line in output.splitlines():
        key, sep, value = line.partition(":")
        name = fields.get(key.strip().lower())
        if not sep or name is None:
            continue
        value = value.strip()
        if name in ("pool", "process_manager", "start_time"):
            values[name] = value
        elif value.isdigit():
            values[name] = int(value)
    return PHPFPMStatus(**values)


def parse_php_modules(output: str) -> list[PHPExtensionInfo]:
    """``php -m`` output; ``[PHP Modules]`` style headers are skipped."""
    names = sorted(
        {line.strip() for line in output.splitlines() if line.strip() and not line.strip().startswith("[")},
        key=str.lower,
    )
    return [PHPExtensionInfo(name=n, is_loaded=True, is_core=n.lower() in CORE_EXTENSIONS) for n in names]


def parse_disabled_functions(value: str) -> list[str]:
    return sorted({f.strip() for f in value.split(",") if f.strip()})


def php_eval(expression: str) -> str:
    """A ``php -r`` command echoing one expression."""
    return f"php -r {quote(f'echo {expression};')} 2>/dev/null"


# ── FPM ─────────────────────────────────────────────────────────


class PHPFPMManager:
    """Discovery and control of PHP-FPM units."""

    async def installed_units(self, session: ServerSession) -> list[str]:
        result = await session.execute(
            "systemctl list-units --type=service --all --no-legend 2>/dev/null | grep -oE 'php[0-9.]*-fpm' | sort -u",
            timeout=10,
        )
        return parse_fpm_units(result.output)

    async def active_unit(self, session: ServerSession) -> str:
        """Running unit, else any installed unit, else ``php-fpm``."""
        running = await session.execute(
            "systemctl list-units --type=service --state=running --no-legend 2>/dev/null "
            "| grep -oE 'php[0-9.]*-fpm' | head -n 1",
            timeout=10,
        )
        units = parse_fpm_units(running.output)
        if units:
            return units[0]
        installed = await self.installed_units(session)
        return installed[0] if installed else "php-fpm"

    async def is_any_running(self, session: ServerSession) -> bool:
        result = await session.execute(
            "systemctl list-units --type=service --state=running --no-legend 2>/dev/null | grep -cE 'php.*fpm'",
            timeout=10,
        )
        return result.text.isdigit() and int(result.text) > 0

    async def unit_states(self, session: ServerSession) -> dict[str, bool]:
        """Every installed FPM unit and whether it is active."""
        return {unit: await is_service_active(session, unit) for unit in await self.installed_units(session)}

    async def control(self, session: ServerSession, verb: str, version: str | None = None) -> bool:
        unit = f"php{version}-fpm" if version else await self.active_unit(session)
        return (await systemctl(session, verb, unit)).ok

    async def test_config(self, session: ServerSession, unit: str) -> ValidationResult:
        """``php-fpmX.Y -t``; missing binaries count as passing."""
        binary = unit.removesuffix("-fpm").replace("php", "php-fpm", 1)
        result = await session.execute(f"{sudo(quote(binary))} -t 2>&1", timeout=15)
        text = result.output.strip()
        if "command not found" in text or "No such file" in text:
            return ValidationResult(valid=True, message=f"{binary} not available", output=text)
        if result.ok or "test is successful" in text:
            return ValidationResult(valid=True, message="Configuration test successful", output=text)
        first = next((line for line in result.lines if "error" in line.lower()), text.splitlines()[0] if text else "")
        return ValidationResult(valid=False, message=first, output=text)

    async def get_status(self, session: ServerSession) -> PHPFPMStatus | None:
        result = await session.execute("curl -s --max-time 3 http://127.0.0.1/fpm-status 2>/dev/null", timeout=5)
        return parse_fpm_status(result.output)


# ── Service ─────────────────────────────────────────────────────


class PHPService(ControllableService):
    detector = PHPDetector()

    def __init__(self, version_manager: VersionManager | None = None):
        self.versions = PHPVersionResolver()
        self.paths = PHPPathResolver()
        self.fpm = PHPFPMManager()
        self.version_manager = version_manager or VersionManager()

    async def get_version(self, session: ServerSession) -> str | None:
        return await self.versions.get_active_version(session)

    async def is_running(self, session: ServerSession) -> bool:
        return await self.fpm.is_any_running(session)

    async def service_name(self, session: ServerSession) -> str:
        return await self.fpm.active_unit(session)

    async def restart(self, session: ServerSession) -> bool:
        """Restart the active FPM unit, refusing when its config test fails."""
        unit = await self.fpm.active_unit(session)
        validation = await self.fpm.test_config(session, unit)
        if not validation.valid:
            logger.warning("Not restarting %s: %s", unit, validation.message)
            return False
        return (await systemctl(session, "restart", unit)).ok

    async def validate_config(self, session: ServerSession) -> ValidationResult:
        return await self.fpm.test_config(session, await self.fpm.active_unit(session))

    async def apply_config(self, session: ServerSession) -> bool:
        return await self.reload(session)

    # ── Versions ─────────────────────────────────────────────────

    async def installed_versions(self, session: ServerSession) -> list[str]:
        return await self.version_manager.detect(DETECTION_STRATEGIES, session)

    async def switch_version(self, session: ServerSession, version: str) -> SwitchOutcome:
        outcome = await self.version_manager.switch(version, SWITCH_STRATEGIES, session)
        if outcome.used_fallback:
            logger.warning("PHP %s activated via fallback %s", version, outcome.strategy)
        return outcome

    # ── Configuration ────────────────────────────────────────────

    async def get_config_path(self, session: ServerSession) -> str | None:
        version = await self.get_version(session)
        return await self.paths.get_ini_path(session, version)

    async def get_ini_value(self, session: ServerSession, key: str) -> str | None:
        result = await session.execute(php_eval(f"ini_get({key!r})"), timeout=10)
        return result.text or None

    async def get_disabled_functions(self, session: ServerSession) -> list[str]:
        return parse_disabled_functions(await self.get_ini_value(session, "disable_functions") or "")

    async def get_extensions(self, session: ServerSession) -> list[PHPExtensionInfo]:
        result = await session.execute("php -m 2>/dev/null", timeout=15)
        return parse_php_modules(result.output) if result.ok else []

    async def get_available_extensions(self, session: ServerSession) -> list[str]:
        result = await session.execute(
            "apt-cache search --names-only '^php[0-9.]+-' 2>/dev/null | awk '{print $1}' | sort -u | head -n 50",
            timeout=20,
        )
        return result.lines

    async def get_pool_config(self, session: ServerSession) -> tuple[str | None, str]:
        """Path and content of the active version's FPM pool file."""
        version = await self.get_version(session)
        path = await self.paths.get_pool_config_path(session, version)
        if path is None:
            return None, ""
        return path, await session.read_text(path) or ""

    async def get_info_summary(self, session: ServerSession) -> dict[str, str]:
        summary: dict[str, str] = {}
        for label, expression in PHPINFO_FIELDS:
            result = await session.execute(php_eval(expression), timeout=10)
            if result.ok:
                summary[label] = result.text
        return summary

    async def get_phpinfo(self, session: ServerSession, timeout: float = 30) -> str:
        result = await session.execute("php -r 'phpinfo();' 2>/dev/null", timeout=timeout)
        return result.output
