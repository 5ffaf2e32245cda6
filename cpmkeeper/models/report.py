"""
Models for the output of the ``dotnet`` CLI.

:class:`ResolvedDependencyReport` mirrors the JSON printed by
``dotnet list package --format json``; :class:`RestoreWarning` is one
``warning NUxxxx`` line printed by ``dotnet restore``. Both are built
once per analysis pass and never mutated afterwards.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional


def _as_list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


@dataclass(frozen=True)
class ReportVulnerability:
    """One advisory attached to a resolved package."""

    severity: str
    advisory_url: str

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "ReportVulnerability":
        # The CLI spells the key "advisoryurl"
        return cls(
            severity=str(raw.get("severity", "")),
            advisory_url=str(raw.get("advisoryurl") or raw.get("advisoryUrl") or ""),
        )


@dataclass(frozen=True)
class ReportPackage:
    """A package as resolved for one project/framework."""

    id: str
    resolved_version: str
    requested_version: Optional[str] = None
    vulnerabilities: List[ReportVulnerability] = field(default_factory=list)

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "ReportPackage":
        return cls(
            id=str(raw.get("id", "")),
            resolved_version=str(raw.get("resolvedVersion", "")),
            requested_version=raw.get("requestedVersion"),
            vulnerabilities=[
                ReportVulnerability.from_dict(v)
                for v in _as_list(raw.get("vulnerabilities"))
                if isinstance(v, Mapping)
            ],
        )


@dataclass(frozen=True)
class ReportFramework:
    """Top-level and transitive packages for one target framework."""

    framework: str
    top_level_packages: List[ReportPackage] = field(default_factory=list)
    transitive_packages: List[ReportPackage] = field(default_factory=list)

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "ReportFramework":
        return cls(
            framework=str(raw.get("framework", "")),
            top_level_packages=[
                ReportPackage.from_dict(p)
                for p in _as_list(raw.get("topLevelPackages"))
                if isinstance(p, Mapping)
            ],
            transitive_packages=[
                ReportPackage.from_dict(p)
                for p in _as_list(raw.get("transitivePackages"))
                if isinstance(p, Mapping)
            ],
        )


@dataclass(frozen=True)
class ReportProject:
    path: str
    frameworks: List[ReportFramework] = field(default_factory=list)

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "ReportProject":
        return cls(
            path=str(raw.get("path", "")),
            frameworks=[
                ReportFramework.from_dict(f)
                for f in _as_list(raw.get("frameworks"))
                if isinstance(f, Mapping)
            ],
        )


@dataclass(frozen=True)
class ResolvedDependencyReport:
    """Parsed ``dotnet list package --format json`` document.

    Missing or malformed sections degrade to empty lists so that a
    partially populated report still yields whatever it does contain.
    """

    projects: List[ReportProject] = field(default_factory=list)
    version: int = 1
    parameters: str = ""

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "ResolvedDependencyReport":
        version = raw.get("version", 1)
        return cls(
            projects=[
                ReportProject.from_dict(p)
                for p in _as_list(raw.get("projects"))
                if isinstance(p, Mapping)
            ],
            version=version if isinstance(version, int) else 1,
            parameters=str(raw.get("parameters", "")),
        )


@dataclass(frozen=True)
class RestoreWarning:
    """A single ``warning NUxxxx`` diagnostic from ``dotnet restore``.

    Attributes:
        code: Diagnostic code, e.g. ``"NU1608"``.
        message: Full warning text after the code.
        project_path: Project the warning was reported for.
    """

    code: str
    message: str
    project_path: str

    def to_json(self) -> Dict[str, str]:
        """Return a JSON-serializable representation."""
        return {
            "code": self.code,
            "message": self.message,
            "project_path": self.project_path,
        }
