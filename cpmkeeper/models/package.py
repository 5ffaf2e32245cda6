"""
Central manifest data models for cpmkeeper.

This module defines what the analysis layer knows about a CPM workspace:
the packages declared in ``Directory.Packages.props`` (grouped by their
``ItemGroup`` label) and the package references found in each project.
Package identity is the package id compared case-insensitively.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set


def normalize_id(package_id: str) -> str:
    """Return the case-insensitive identity key for a NuGet package id."""
    return package_id.lower()


@dataclass
class Package:
    """A centrally declared package version.

    Attributes:
        name: Package id as written in the manifest.
        version: Declared version.
        label: ``Label`` of the enclosing ``ItemGroup``, if any.
    """

    name: str
    version: str
    label: Optional[str] = None

    @property
    def key(self) -> str:
        return normalize_id(self.name)

    def to_json(self) -> Dict[str, Any]:
        """Return a JSON-serializable representation."""
        return {"name": self.name, "version": self.version, "label": self.label}

    def __str__(self) -> str:
        return f"{self.name}@{self.version}"


@dataclass
class ItemGroup:
    """One labelled ``ItemGroup`` of the central manifest."""

    label: Optional[str] = None
    packages: List[Package] = field(default_factory=list)


@dataclass
class ProjectInfo:
    """Package references of a single project file.

    Attributes:
        path: Absolute path of the project file.
        name: Project name (file name without extension).
        declared_package_names: Ids referenced via ``PackageReference``.
        versioned_overrides: References that carry a local ``Version``
            attribute, mapped id → version. Under CPM these are errors.
    """

    path: str
    name: str
    declared_package_names: Set[str] = field(default_factory=set)
    versioned_overrides: Dict[str, str] = field(default_factory=dict)

    def references(self, package_id: str) -> bool:
        """Return True if this project references *package_id*."""
        wanted = normalize_id(package_id)
        return any(normalize_id(n) == wanted for n in self.declared_package_names)


@dataclass(frozen=True)
class VersionOverride:
    """A project that pins a centrally-managed package locally."""

    project: str
    package_id: str
    local_version: str
    central_version: str

    def to_display_string(self) -> str:
        return (
            f"{self.project}: {self.package_id} pinned to {self.local_version} "
            f"(central version is {self.central_version})"
        )

    def to_json(self) -> Dict[str, str]:
        """Return a JSON-serializable representation."""
        return {
            "project": self.project,
            "package_id": self.package_id,
            "local_version": self.local_version,
            "central_version": self.central_version,
        }
