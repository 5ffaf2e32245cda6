"""
cpmkeeper: Central Package Management analysis for .NET solutions

cpmkeeper inspects a solution that declares its NuGet package versions
centrally in ``Directory.Packages.props`` and reports where the versions
actually resolved by ``dotnet`` disagree with the central declarations.

Features include:
    • Transitive conflict detection (JSON report + NU1608 restore warnings)
    • Incremental, per-project re-analysis with result merging
    • Transitive constraint extraction from ``project.assets.json``
    • Vulnerability scanning via ``dotnet list --vulnerable`` and the
      NuGet advisory feed
    • Detection of local ``Version`` overrides in CPM projects
"""

from __future__ import annotations

from cpmkeeper.__version__ import __version__

# ---------------------------------------------------------------------------
# Package Metadata
# ---------------------------------------------------------------------------

__author__ = "cpmkeeper Contributors"
__license__ = "Apache-2.0"
__description__ = "Dependency-conflict analysis for NuGet Central Package Management."

# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

from cpmkeeper.core.analysis_service import AnalysisState, PackageAnalysisService
from cpmkeeper.core.manifest import CentralManifest

__all__ = [
    "__version__",
    "AnalysisState",
    "CentralManifest",
    "PackageAnalysisService",
]
