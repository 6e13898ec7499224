"""
Logging configuration — one setup call per process.

The CLI calls ``setup_logging`` once at startup; every module that does
``logger = logging.getLogger(__name__)`` inherits the result.

Console level precedence:
    CLI flag  >  SERVERDECK_LOG_LEVEL  >  WARNING

A log file can be added with SERVERDECK_LOG_FILE, optionally at its own
level via SERVERDECK_LOG_FILE_LEVEL. The file always gets full detail,
including every command sent to a target at DEBUG.
"""

from __future__ import annotations

import logging
import os
import sys

ENV_LEVEL = "SERVERDECK_LOG_LEVEL"
ENV_FILE = "SERVERDECK_LOG_FILE"
ENV_FILE_LEVEL = "SERVERDECK_LOG_FILE_LEVEL"

# ── Format strings ──────────────────────────────────────────────

_FORMATS: dict[int, tuple[str, str | None]] = {
    logging.DEBUG: ("%(asctime)s %(levelname)-5s %(name)s:%(lineno)d %(message)s", "%H:%M:%S"),
    logging.INFO: ("%(asctime)s [%(name)s] %(message)s", "%H:%M:%S"),
}
_FMT_MINIMAL = "%(message)s"
_FMT_FILE = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d %(message)s"
_DATEFMT_FILE = "%Y-%m-%d %H:%M:%S"

# asyncssh logs every channel open/close at INFO
_NOISY_LOGGERS = ("asyncssh", "asyncio")


def level_from_flags(debug: bool = False, verbose: bool = False, quiet: bool = False) -> str:
    """Resolve the console level from CLI flags, then the environment."""
    if debug:
        return "DEBUG"
    if verbose:
        return "INFO"
    if quiet:
        return "ERROR"
    return os.environ.get(ENV_LEVEL, "WARNING")


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
    quiet_third_party: bool = True,
) -> None:
    """Configure the root logger.

    Args:
        level: Console level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: Optional log file path (default: SERVERDECK_LOG_FILE).
        log_file_level: Level for the file (default: SERVERDECK_LOG_FILE_LEVEL,
            then ``level``).
        quiet_third_party: Keep asyncssh/asyncio at WARNING unless the
            console is at DEBUG.
    """
    console_level = _parse_level(level)
    log_file = log_file or os.environ.get(ENV_FILE)
    log_file_level = log_file_level or os.environ.get(ENV_FILE_LEVEL)

    if console_level <= logging.DEBUG:
        fmt, datefmt = _FORMATS[logging.DEBUG]
    elif console_level <= logging.INFO:
        fmt, datefmt = _FORMATS[logging.INFO]
    else:
        fmt, datefmt = _FMT_MINIMAL, None

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(logging.Formatter(fmt, datefmt=datefmt))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(console)
    root_level = console_level

    if log_file:
        file_level = _parse_level(log_file_level) if log_file_level else console_level
        root_level = min(root_level, file_level)
        handler = logging.FileHandler(log_file, encoding="utf-8")
        handler.setLevel(file_level)
        handler.setFormatter(logging.Formatter(_FMT_FILE, datefmt=_DATEFMT_FILE))
        root.addHandler(handler)

    root.setLevel(root_level)

    if quiet_third_party and console_level > logging.DEBUG:
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    logging.raiseExceptions = False


def _parse_level(level: str | None) -> int:
    """Level name to numeric constant; unknown names mean WARNING."""
    if not level:
        return logging.WARNING
    numeric = logging.getLevelName(level.upper())
    return numeric if isinstance(numeric, int) else logging.WARNING
