"""
Version comparison — numeric, component-wise, never lexical.

``"8.10"`` is newer than ``"8.2"``. Versions are split on ``.``,
compared position by position, and missing components count as 0, so
``"8.2"`` and ``"8.2.0"`` are equal. A leading ``v`` is ignored, and
so is any non-numeric tail within a component (``"1-MariaDB"`` → 1).
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from functools import cmp_to_key

_LEADING_INT = re.compile(r"^(\d+)")


def parse_version(version: str) -> tuple[int, ...]:
    """Parse ``"v8.2.10"`` into ``(8, 2, 10)``. Unparseable parts are 0."""
    text = version.strip()
    if text[:1] in ("v", "V"):
        text = text[1:]
    parts: list[int] = []
    for component in text.split("."):
        match = _LEADING_INT.match(component)
        parts.append(int(match.group(1)) if match else 0)
    return tuple(parts)


def compare_versions(a: str, b: str) -> int:
    """Return -1 if a < b, 0 if equal, 1 if a > b."""
    pa, pb = parse_version(a), parse_version(b)
    width = max(len(pa), len(pb))
    pa += (0,) * (width - len(pa))
    pb += (0,) * (width - len(pb))
    if pa < pb:
        return -1
    if pa > pb:
        return 1
    return 0


def _normalise(version: str) -> str:
    text = version.strip()
    return text[1:] if text[:1] in ("v", "V") else text


def sort_versions_desc(versions: Iterable[str]) -> list[str]:
    """Dedupe and sort newest first.

    Entries that compare equal (``"8.2"`` and ``"8.2.0"``) collapse to
    the first one seen, so the result is strictly descending.
    """
    unique: list[str] = []
    for raw in versions:
        version = _normalise(raw)
        if not version or not version[0].isdigit():
            continue
        if any(compare_versions(version, seen) == 0 for seen in unique):
            continue
        unique.append(version)
    return sorted(unique, key=cmp_to_key(compare_versions), reverse=True)


def is_newer(candidate: str, current: str) -> bool:
    return compare_versions(candidate, current) > 0
