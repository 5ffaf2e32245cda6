"""
Analysis result data models for cpmkeeper.

This module defines the records produced by an analysis pass:

- :class:`TransitiveConflict`: a centrally-managed package whose version
  disagrees with what the dependency graph resolves or requires.
- :class:`TransitiveConstraint`: the strictest requirement other packages
  place on a centrally-managed package.
- :class:`VulnerablePackageInfo`: a resolved package carrying advisories.
- :class:`AnalysisResult`: the snapshot the orchestrator publishes.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from cpmkeeper.models.package import normalize_id


@dataclass(frozen=True)
class Vulnerability:
    """A single advisory: severity label plus advisory link."""

    severity: str
    advisory_url: str

    def to_json(self) -> Dict[str, str]:
        return {"severity": self.severity, "advisory_url": self.advisory_url}


@dataclass
class TransitiveConflict:
    """A centrally declared version that disagrees with the resolved graph.

    Identity is ``(package_id.lower(), framework)``. Conflicts found in
    restore warnings carry an empty ``framework``.

    Attributes:
        package_id: Affected package id.
        central_version: Version in effect for the package. For JSON-path
            conflicts this is the manifest version; for warning-path
            conflicts it is the version restore resolved.
        transitive_version: Version the dependency graph asks for.
        transitive_parents: Packages that pull the requirement in.
        projects: Project names the conflict was observed in.
        framework: Target framework moniker, e.g. ``"net8.0"``.
    """

    package_id: str
    central_version: str
    transitive_version: str
    transitive_parents: List[str] = field(default_factory=list)
    projects: List[str] = field(default_factory=list)
    framework: str = ""

    @property
    def key(self) -> Tuple[str, str]:
        return (normalize_id(self.package_id), self.framework)

    def copy(self) -> "TransitiveConflict":
        """Return a copy whose lists can be mutated independently."""
        return replace(
            self,
            transitive_parents=list(self.transitive_parents),
            projects=list(self.projects),
        )

    def to_display_string(self) -> str:
        """Return a human-readable description of the conflict."""
        parents = ", ".join(self.transitive_parents) or "other packages"
        return (
            f"{self.package_id} is set to {self.central_version} but {parents} "
            f"transitively requires {self.transitive_version} "
            f"(in {', '.join(self.projects)})"
        )

    def to_json(self) -> Dict[str, Any]:
        return {
            "package_id": self.package_id,
            "central_version": self.central_version,
            "transitive_version": self.transitive_version,
            "transitive_parents": list(self.transitive_parents),
            "projects": list(self.projects),
            "framework": self.framework,
        }

    def __str__(self) -> str:
        return self.to_display_string()


@dataclass
class TransitiveConstraint:
    """The strictest transitive requirement on a centrally-managed package.

    Attributes:
        package_id: Constrained package id.
        required_version: Version extracted from ``version_range``.
        version_range: Raw NuGet range as found in the lock graph.
        is_exact: ``True`` for a pin (``[X]`` or ``[X, X]``), ``False``
            for a minimum.
        required_by: Ids of packages declaring the requirement.
    """

    package_id: str
    required_version: str
    version_range: str
    is_exact: bool
    required_by: List[str] = field(default_factory=list)

    def to_json(self) -> Dict[str, Any]:
        return {
            "package_id": self.package_id,
            "required_version": self.required_version,
            "version_range": self.version_range,
            "is_exact": self.is_exact,
            "required_by": list(self.required_by),
        }


@dataclass
class VulnerablePackageInfo:
    """A resolved package version with known advisories.

    Identity is ``(package_id.lower(), resolved_version)``.
    """

    package_id: str
    resolved_version: str
    is_transitive: bool
    vulnerabilities: List[Vulnerability] = field(default_factory=list)
    projects: List[str] = field(default_factory=list)
    framework: str = ""

    @property
    def key(self) -> Tuple[str, str]:
        return (normalize_id(self.package_id), self.resolved_version)

    def copy(self) -> "VulnerablePackageInfo":
        """Return a copy whose lists can be mutated independently."""
        return replace(
            self,
            vulnerabilities=list(self.vulnerabilities),
            projects=list(self.projects),
        )

    def to_json(self) -> Dict[str, Any]:
        return {
            "package_id": self.package_id,
            "resolved_version": self.resolved_version,
            "is_transitive": self.is_transitive,
            "vulnerabilities": [v.to_json() for v in self.vulnerabilities],
            "projects": list(self.projects),
            "framework": self.framework,
        }


@dataclass(frozen=True)
class AnalysisResult:
    """Snapshot of the most recent analysis pass.

    Instances are replaced, never mutated: readers holding a snapshot
    never observe a half-finished pass.

    Attributes:
        transitive_conflicts: Conflicts found by the last pass.
        vulnerable_packages: Vulnerable packages found by the last pass.
        last_updated: Completion time of the last successful pass, or
            ``None`` before the first one.
        is_running: ``True`` while a pass is in flight.
        error: Human-readable summary of failures, if any.
    """

    transitive_conflicts: List[TransitiveConflict] = field(default_factory=list)
    vulnerable_packages: List[VulnerablePackageInfo] = field(default_factory=list)
    last_updated: Optional[datetime] = None
    is_running: bool = False
    error: Optional[str] = None

    @classmethod
    def empty(cls) -> "AnalysisResult":
        return cls()

    def has_findings(self) -> bool:
        """Return True if any conflict or vulnerability was recorded."""
        return bool(self.transitive_conflicts or self.vulnerable_packages)

    def to_json(self) -> Dict[str, Any]:
        return {
            "transitive_conflicts": [c.to_json() for c in self.transitive_conflicts],
            "vulnerable_packages": [v.to_json() for v in self.vulnerable_packages],
            "last_updated": (
                self.last_updated.isoformat() if self.last_updated else None
            ),
            "is_running": self.is_running,
            "error": self.error,
        }
