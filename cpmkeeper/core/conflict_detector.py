"""Conflict detection and reconciliation.

Conflicts reach cpmkeeper through two channels:

1. The JSON report of ``dotnet list package --include-transitive``. It
   shows *what* was resolved but not *why*, so only a central version
   lower than the resolved one can be flagged from it.
2. ``NU1608`` restore warnings ("package version outside of dependency
   constraint"). They name the constraining package and the demanded
   version, and they are the only reliable signal for exact pins.

Warning-derived conflicts are authoritative; JSON-derived ones fill the
gaps. The ``merge_project_*`` helpers fold a per-project re-analysis into
the results of an earlier full pass.

All functions here are pure: inputs are never mutated and every returned
record is a fresh object.
"""

from __future__ import annotations

import re
from typing import Dict, Iterable, List, NamedTuple, Optional, Sequence, Set, Tuple

from cpmkeeper.constants import (
    COLLAPSED_LIST_HEAD,
    CONFLICT_WARNING_CODE,
    MAX_LISTED_NAMES,
)
from cpmkeeper.core.dotnet_cli import project_display_name
from cpmkeeper.models.conflict import (
    TransitiveConflict,
    Vulnerability,
    VulnerablePackageInfo,
)
from cpmkeeper.models.package import Package, normalize_id
from cpmkeeper.models.report import (
    ReportPackage,
    ResolvedDependencyReport,
    RestoreWarning,
)
from cpmkeeper.utils.logger import get_logger
from cpmkeeper.utils.version_utils import compare_versions

logger = get_logger("conflict_detector")

__all__ = [
    "ConflictWarning",
    "cap_names",
    "detect_conflicts",
    "extract_vulnerabilities",
    "match_conflict_warning",
    "merge_conflicts",
    "merge_project_conflicts",
    "merge_project_vulnerabilities",
    "parse_restore_warnings",
]

# "Humanizer.Core.af 2.14.1 requires Humanizer.Core (= 2.14.1) but version
#  Humanizer.Core 3.0.1 was resolved."
_NU1608_PATTERN = re.compile(
    r"(\S+)\s+\S+\s+requires\s+(\S+)\s+\([^)]*?(\d[\d.]*\S*)\)"
    r"\s+but version\s+\S+\s+(\S+)\s+was resolved"
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def cap_names(names: Sequence[str], limit: int = MAX_LISTED_NAMES) -> List[str]:
    """Collapse a long name list into ``head + ["and N more"]``.

    Lists of at most *limit* names are returned unchanged (as a copy).

    Example::

        >>> cap_names(["a", "b", "c", "d", "e", "f"])
        ['a', 'b', 'c', 'and 3 more']
    """
    if len(names) <= limit:
        return list(names)
    head = list(names[:COLLAPSED_LIST_HEAD])
    return head + [f"and {len(names) - COLLAPSED_LIST_HEAD} more"]


def _append_unique(target: List[str], items: Iterable[str]) -> None:
    for item in items:
        if item not in target:
            target.append(item)


# ---------------------------------------------------------------------------
# JSON path
# ---------------------------------------------------------------------------


def detect_conflicts(
    report: ResolvedDependencyReport,
    central_packages: Sequence[Package],
) -> List[TransitiveConflict]:
    """Find transitive packages resolved above their central version.

    A central version equal to or higher than the resolved one satisfies
    a minimum constraint and is not flagged; exact-pin violations are left
    to :func:`parse_restore_warnings`.

    Args:
        report: Parsed ``dotnet list --include-transitive`` output.
        central_packages: Packages declared in the central manifest.

    Returns:
        One conflict per ``(package id, framework)``, with the projects it
        was seen in accumulated in discovery order.
    """
    central: Dict[str, Package] = {pkg.key: pkg for pkg in central_packages}
    conflicts: Dict[Tuple[str, str], TransitiveConflict] = {}

    for project in report.projects:
        project_name = project_display_name(project.path)

        for framework in project.frameworks:
            for transitive in framework.transitive_packages:
                package_key = normalize_id(transitive.id)
                declared = central.get(package_key)
                if declared is None:
                    continue
                if declared.version == transitive.resolved_version:
                    continue
                if compare_versions(declared.version, transitive.resolved_version) >= 0:
                    continue

                key = (package_key, framework.framework)
                existing = conflicts.get(key)
                if existing is not None:
                    _append_unique(existing.projects, [project_name])
                    continue

                conflicts[key] = TransitiveConflict(
                    package_id=declared.name,
                    central_version=declared.version,
                    transitive_version=transitive.resolved_version,
                    transitive_parents=_candidate_parents(
                        framework.top_level_packages, package_key, central
                    ),
                    projects=[project_name],
                    framework=framework.framework,
                )

    return list(conflicts.values())


def _candidate_parents(
    top_level: Sequence[ReportPackage],
    package_key: str,
    central: Dict[str, Package],
) -> List[str]:
    """Top-level ids that may have pulled a package in, at most five."""
    parents: List[str] = []
    for pkg in top_level:
        key = normalize_id(pkg.id)
        if key == package_key or key in central:
            continue
        if pkg.id not in parents:
            parents.append(pkg.id)
        if len(parents) == MAX_LISTED_NAMES:
            break
    return parents


def extract_vulnerabilities(
    report: ResolvedDependencyReport,
) -> List[VulnerablePackageInfo]:
    """Collect packages carrying advisories from a ``--vulnerable`` report.

    Records are keyed by ``(package id, resolved version)``; the same
    vulnerable version seen in several projects becomes one record.
    """
    found: Dict[Tuple[str, str], VulnerablePackageInfo] = {}

    def collect(
        packages: Sequence[ReportPackage],
        is_transitive: bool,
        project_name: str,
        framework: str,
    ) -> None:
        for pkg in packages:
            if not pkg.vulnerabilities:
                continue

            key = (normalize_id(pkg.id), pkg.resolved_version)
            existing = found.get(key)
            if existing is not None:
                _append_unique(existing.projects, [project_name])
                continue

            found[key] = VulnerablePackageInfo(
                package_id=pkg.id,
                resolved_version=pkg.resolved_version,
                is_transitive=is_transitive,
                vulnerabilities=[
                    Vulnerability(severity=v.severity, advisory_url=v.advisory_url)
                    for v in pkg.vulnerabilities
                ],
                projects=[project_name],
                framework=framework,
            )

    for project in report.projects:
        project_name = project_display_name(project.path)
        for framework in project.frameworks:
            collect(framework.top_level_packages, False, project_name, framework.framework)
            collect(framework.transitive_packages, True, project_name, framework.framework)

    return list(found.values())


# ---------------------------------------------------------------------------
# Warning path
# ---------------------------------------------------------------------------


class ConflictWarning(NamedTuple):
    """Fields recovered from one NU1608 message."""

    constrainer: str
    package_id: str
    required_version: str
    resolved_version: str


def match_conflict_warning(message: str) -> Optional[ConflictWarning]:
    """Extract the four NU1608 fields from a warning message.

    Returns ``None`` if the message does not have the expected shape.

    Example::

        >>> found = match_conflict_warning(
        ...     "Humanizer.Core.af 2.14.1 requires Humanizer.Core (= 2.14.1) "
        ...     "but version Humanizer.Core 3.0.1 was resolved."
        ... )
        >>> found.constrainer, found.required_version, found.resolved_version
        ('Humanizer.Core.af', '2.14.1', '3.0.1')
    """
    match = _NU1608_PATTERN.search(message)
    if not match:
        return None
    return ConflictWarning(*match.groups())


def parse_restore_warnings(
    warnings: Sequence[RestoreWarning],
) -> List[TransitiveConflict]:
    """Turn NU1608 restore warnings into conflicts.

    Warnings with another code, or whose message does not match, are
    ignored. Records merge by package id; the constrainer list of each
    merged record is capped with :func:`cap_names`.

    The resulting ``central_version`` is the version restore actually
    resolved, and ``transitive_version`` the version the constrainer
    demands. ``framework`` is always empty: warnings do not carry one.
    """
    conflicts: Dict[str, TransitiveConflict] = {}
    skipped = 0

    for warning in warnings:
        if warning.code != CONFLICT_WARNING_CODE:
            continue

        fields = match_conflict_warning(warning.message)
        if fields is None:
            skipped += 1
            continue

        project_name = project_display_name(warning.project_path)
        key = normalize_id(fields.package_id)

        existing = conflicts.get(key)
        if existing is not None:
            _append_unique(existing.transitive_parents, [fields.constrainer])
            _append_unique(existing.projects, [project_name])
            continue

        conflicts[key] = TransitiveConflict(
            package_id=fields.package_id,
            central_version=fields.resolved_version,
            transitive_version=fields.required_version,
            transitive_parents=[fields.constrainer],
            projects=[project_name],
            framework="",
        )

    if skipped:
        logger.debug("%d %s warning(s) did not match", skipped, CONFLICT_WARNING_CODE)

    for conflict in conflicts.values():
        conflict.transitive_parents = cap_names(conflict.transitive_parents)

    return list(conflicts.values())


# ---------------------------------------------------------------------------
# Reconciliation
# ---------------------------------------------------------------------------


def merge_conflicts(
    primary: Sequence[TransitiveConflict],
    secondary: Sequence[TransitiveConflict],
) -> List[TransitiveConflict]:
    """Combine two conflict lists, *primary* winning on package id.

    Secondary entries whose id (case-insensitive) is already present are
    dropped, the rest are appended in their original order.
    """
    result = [conflict.copy() for conflict in primary]
    seen: Set[str] = {normalize_id(c.package_id) for c in primary}

    for conflict in secondary:
        key = normalize_id(conflict.package_id)
        if key not in seen:
            result.append(conflict.copy())
            seen.add(key)

    return result


def merge_project_conflicts(
    existing: Sequence[TransitiveConflict],
    fresh: Sequence[TransitiveConflict],
    affected_projects: Iterable[str],
) -> List[TransitiveConflict]:
    """Replace the attribution of *affected_projects* with *fresh* results.

    Affected project names are stripped from every existing record and
    records left without projects are dropped. Fresh records are then
    unioned in by ``(package id, framework)``.
    """
    affected = {name.lower() for name in affected_projects}
    retained: List[TransitiveConflict] = []
    index: Dict[Tuple[str, str], TransitiveConflict] = {}

    for conflict in existing:
        remaining = [p for p in conflict.projects if p.lower() not in affected]
        if not remaining:
            continue
        kept = conflict.copy()
        kept.projects = remaining
        retained.append(kept)
        index.setdefault(kept.key, kept)

    for conflict in fresh:
        match = index.get(conflict.key)
        if match is not None:
            _append_unique(match.projects, conflict.projects)
            continue
        added = conflict.copy()
        retained.append(added)
        index[added.key] = added

    return retained


def merge_project_vulnerabilities(
    existing: Sequence[VulnerablePackageInfo],
    fresh: Sequence[VulnerablePackageInfo],
    affected_projects: Iterable[str],
) -> List[VulnerablePackageInfo]:
    """Vulnerability counterpart of :func:`merge_project_conflicts`.

    Records are matched by ``(package id, resolved version)``. Passing an
    empty *fresh* list simply retires the affected projects.
    """
    affected = {name.lower() for name in affected_projects}
    retained: List[VulnerablePackageInfo] = []
    index: Dict[Tuple[str, str], VulnerablePackageInfo] = {}

    for vuln in existing:
        remaining = [p for p in vuln.projects if p.lower() not in affected]
        if not remaining:
            continue
        kept = vuln.copy()
        kept.projects = remaining
        retained.append(kept)
        index.setdefault(kept.key, kept)

    for vuln in fresh:
        match = index.get(vuln.key)
        if match is not None:
            _append_unique(match.projects, vuln.projects)
            continue
        added = vuln.copy()
        retained.append(added)
        index[added.key] = added

    return retained
