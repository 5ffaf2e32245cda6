"""
Version comparison utilities for cpmkeeper.

NuGet versions are compared with a deliberately simple numeric scheme:
each version is split on ``.`` and ``-``, every segment is read as an
integer (non-numeric segments count as ``0``) and the shorter sequence is
padded with zeros. This orders release versions correctly but does not
implement SemVer pre-release precedence: ``1.0.0-alpha`` and
``1.0.0-beta`` compare equal, and ``1.0.0-rc.1`` sorts *above*
``1.0.0``. Conflict thresholds elsewhere depend on exactly this ordering.

The module also evaluates NuGet interval notation (``[1.0, 2.0)``) for
advisory matching, and parses dependency ranges found in lock files.
"""

from __future__ import annotations

import re
from typing import List, NamedTuple, Optional

from cpmkeeper.constants import SEVERITY_LABELS

_SEGMENT_SPLIT = re.compile(r"[.-]")
_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")

# "[lower, upper]" with either bound optional; bracket style per side.
_INTERVAL = re.compile(r"^([\[(])\s*([^,\s]*)\s*,\s*([^,\s\])]*)\s*([\])])$")

_EXACT_SINGLE = re.compile(r"^\[([^\],]+)\]$")
_EXACT_PAIR = re.compile(r"^\[([^\],]+),\s*([^\]]+)\]$")
_FIRST_VERSION = re.compile(r"[\[(]?\s*(\d[\d.]*[^\s,)\]]*)")


class VersionRequirement(NamedTuple):
    """A dependency requirement reduced to one version and its kind."""

    version: str
    is_exact: bool


def _segments(version: str) -> List[int]:
    """Split *version* into integer segments, mapping junk to ``0``."""
    values: List[int] = []
    for part in _SEGMENT_SPLIT.split(version):
        match = _LEADING_INT.match(part)
        values.append(int(match.group(1)) if match else 0)
    return values


def compare_versions(v1: str, v2: str) -> int:
    """Compare two version strings numerically.

    Args:
        v1: First version.
        v2: Second version.

    Returns:
        ``-1`` if *v1* < *v2*, ``0`` if equal, ``1`` if *v1* > *v2*.

    Examples:
        >>> compare_versions("1.10.0", "1.9.0")
        1
        >>> compare_versions("1.0", "1.0.0")
        0
        >>> compare_versions("abc", "0.0")
        0
    """
    parts1 = _segments(v1)
    parts2 = _segments(v2)
    length = max(len(parts1), len(parts2))
    parts1 += [0] * (length - len(parts1))
    parts2 += [0] * (length - len(parts2))

    for p1, p2 in zip(parts1, parts2):
        if p1 < p2:
            return -1
        if p1 > p2:
            return 1
    return 0


def version_in_range(version: str, version_range: str) -> bool:
    """Return ``True`` if *version* lies inside a NuGet interval.

    ``[`` / ``]`` are inclusive bounds, ``(`` / ``)`` exclusive; an empty
    bound is unbounded on that side. Anything that is not bracketed
    interval notation (including a bare version) yields ``False``.

    Examples:
        >>> version_in_range("1.9.9", "(, 2.0.0)")
        True
        >>> version_in_range("2.0.0", "[1.0.0, 2.0.0)")
        False
        >>> version_in_range("1.0.0", "1.0.0")
        False
    """
    match = _INTERVAL.match(version_range.strip())
    if not match:
        return False

    open_bracket, lower, upper, close_bracket = match.groups()

    if lower:
        cmp = compare_versions(version, lower)
        if open_bracket == "[" and cmp < 0:
            return False
        if open_bracket == "(" and cmp <= 0:
            return False

    if upper:
        cmp = compare_versions(version, upper)
        if close_bracket == "]" and cmp > 0:
            return False
        if close_bracket == ")" and cmp >= 0:
            return False

    return True


def parse_version_range(version_range: str) -> VersionRequirement:
    """Reduce a lock-file dependency range to a single requirement.

    ``[X]`` and ``[X, X]`` are exact pins. Every other form is treated as
    a minimum and yields the first version token found.

    Examples:
        >>> parse_version_range("[2.14.1]")
        VersionRequirement(version='2.14.1', is_exact=True)
        >>> parse_version_range("[2.0.0, 3.0.0)")
        VersionRequirement(version='2.0.0', is_exact=False)
    """
    trimmed = version_range.strip()

    exact = _EXACT_SINGLE.match(trimmed)
    if exact:
        return VersionRequirement(exact.group(1).strip(), True)

    pair = _EXACT_PAIR.match(trimmed)
    if pair and pair.group(1).strip() == pair.group(2).strip():
        return VersionRequirement(pair.group(1).strip(), True)

    first = _FIRST_VERSION.search(trimmed)
    return VersionRequirement(first.group(1) if first else trimmed, False)


def severity_to_string(rank: Optional[int]) -> str:
    """Map an advisory severity rank (0-3) to its label."""
    if isinstance(rank, int) and 0 <= rank < len(SEVERITY_LABELS):
        return SEVERITY_LABELS[rank]
    return "Unknown"
