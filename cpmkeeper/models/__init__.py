"""
Unified data model exports for cpmkeeper.

This module re-exports all core data models to provide a stable and
convenient public API. Users can import models directly from
``cpmkeeper.models`` instead of individual submodules.

Example:
    >>> from cpmkeeper.models import Package, TransitiveConflict, AnalysisResult
"""

from __future__ import annotations

from cpmkeeper.models.package import (
    ItemGroup,
    Package,
    ProjectInfo,
    VersionOverride,
    normalize_id,
)
from cpmkeeper.models.report import (
    ReportFramework,
    ReportPackage,
    ReportProject,
    ReportVulnerability,
    ResolvedDependencyReport,
    RestoreWarning,
)
from cpmkeeper.models.conflict import (
    AnalysisResult,
    TransitiveConflict,
    TransitiveConstraint,
    Vulnerability,
    VulnerablePackageInfo,
)
from cpmkeeper.models.lock_graph import LockGraph, LockNode

__all__ = [
    "Package",
    "ItemGroup",
    "ProjectInfo",
    "VersionOverride",
    "normalize_id",
    "ReportFramework",
    "ReportPackage",
    "ReportProject",
    "ReportVulnerability",
    "ResolvedDependencyReport",
    "RestoreWarning",
    "AnalysisResult",
    "TransitiveConflict",
    "TransitiveConstraint",
    "Vulnerability",
    "VulnerablePackageInfo",
    "LockGraph",
    "LockNode",
]
