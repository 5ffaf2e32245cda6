"""
Core functionality exports for cpmkeeper.

This module provides convenient access to the core subsystems of cpmkeeper.
Importing from here keeps user-facing imports clean and stable:

    from cpmkeeper.core import PackageAnalysisService
"""

from __future__ import annotations

from cpmkeeper.core.dotnet_cli import DotnetCli
from cpmkeeper.core.manifest import CentralManifest
from cpmkeeper.core.constraint_extractor import ConstraintIndex
from cpmkeeper.core.vulnerability_db import VulnerabilityDatabase, VulnerabilityDbEntry
from cpmkeeper.core.analysis_service import AnalysisState, PackageAnalysisService

__all__ = [
    "DotnetCli",
    "CentralManifest",
    "ConstraintIndex",
    "VulnerabilityDatabase",
    "VulnerabilityDbEntry",
    "AnalysisState",
    "PackageAnalysisService",
]
