"""Analyze command implementation for cpmkeeper.

Runs a full analysis of a Central Package Management workspace and
reports three kinds of findings:

1. **Transitive conflicts**: centrally declared versions that the
   resolved dependency graph contradicts.
2. **Vulnerable packages**: resolved packages with published advisories.
3. **Transitive constraints**: the strictest requirement other packages
   place on each centrally-managed package (informational).

Typical usage::

    # Analyze the workspace in the current directory
    $ cpmkeeper analyze

    # Machine-readable JSON output
    $ cpmkeeper analyze src/ --format json > report.json

    # Re-analyze two projects after a full pass
    $ cpmkeeper analyze -p src/Api/Api.csproj -p src/Web/Web.csproj
"""

from __future__ import annotations

import sys
import json
import click
import asyncio
from pathlib import Path
from typing import Any, Dict, List, Tuple

from cpmkeeper.config import CpmKeeperConfig
from cpmkeeper.context import CpmKeeperContext, pass_context
from cpmkeeper.core import CentralManifest, DotnetCli, PackageAnalysisService
from cpmkeeper.exceptions import CpmKeeperError
from cpmkeeper.models import AnalysisResult, TransitiveConstraint
from cpmkeeper.utils import (
    colorize_severity,
    get_logger,
    get_console,
    print_error,
    print_info,
    print_success,
    print_table,
    print_warning,
)

logger = get_logger("commands.analyze")


@click.command()
@click.argument(
    "root",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=".",
)
@click.option(
    "--format",
    "-f",
    type=click.Choice(["table", "json"], case_sensitive=False),
    default="table",
    help="Output format.",
)
@click.option(
    "--project",
    "-p",
    "projects",
    multiple=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Re-analyze only this project after the full pass (repeatable).",
)
@pass_context
def analyze(
    ctx: CpmKeeperContext,
    root: Path,
    format: str,
    projects: Tuple[Path, ...],
) -> None:
    """Analyze a CPM workspace for conflicts and vulnerabilities.

    Loads ``Directory.Packages.props`` and every project below ROOT, runs
    ``dotnet restore`` and ``dotnet list package``, and reports packages
    whose central version contradicts the resolved graph.

    Exits:
        0 if nothing was found, 1 if conflicts or vulnerabilities were
        found or the analysis reported an error.
    """
    try:
        has_findings = asyncio.run(_analyze_async(ctx, root, format, projects))
        sys.exit(1 if has_findings else 0)

    except CpmKeeperError as e:
        print_error(f"{e}")
        sys.exit(1)
    except Exception as e:
        print_error(f"Unexpected error: {e}")
        logger.exception("Error in analyze command")
        sys.exit(1)


# ---------------------------------------------------------------------------
# Async orchestration
# ---------------------------------------------------------------------------


async def _analyze_async(
    ctx: CpmKeeperContext,
    root: Path,
    format: str,
    projects: Tuple[Path, ...],
) -> bool:
    """Run the analysis and render it.

    Returns:
        ``True`` if anything actionable was found or the pass failed.

    Raises:
        ManifestError: The workspace has no readable central manifest.
    """
    config = ctx.config or CpmKeeperConfig()
    show_progress = format == "table"

    manifest = CentralManifest.load(root)
    service = PackageAnalysisService(
        DotnetCli(config.dotnet_path, timeout=config.command_timeout),
        manifest,
        cache_ttl=config.cache_ttl_minutes * 60.0,
        enable_vulnerability_scan=config.enable_vulnerability_scan,
    )

    if show_progress:
        print_info(
            f"Analyzing {len(manifest.get_all_projects())} project(s) "
            f"with {len(manifest.get_all_packages())} central package(s)..."
        )

    result = await service.run_full(force=True)
    if projects:
        result = await service.run_incremental([str(p.resolve()) for p in projects])

    constraints = service.get_all_constraints()

    if format == "json":
        _display_json(result, constraints)
    else:
        _display_tables(result, constraints)
        _display_summary(result)

    return result.has_findings() or result.error is not None


# ---------------------------------------------------------------------------
# Display renderers
# ---------------------------------------------------------------------------


def _display_tables(
    result: AnalysisResult,
    constraints: List[TransitiveConstraint],
) -> None:
    """Render conflicts, vulnerabilities and constraints as Rich tables."""
    conflict_rows: List[Dict[str, Any]] = [
        {
            "Package": c.package_id,
            "Central": c.central_version,
            "Transitive": f"[red]{c.transitive_version}[/red]",
            "Framework": c.framework,
            "Required By": c.transitive_parents,
            "Projects": ", ".join(c.projects),
        }
        for c in result.transitive_conflicts
    ]
    print_table(
        conflict_rows,
        title="Transitive Conflicts",
        column_styles={
            "Package": {"style": "bold cyan", "no_wrap": True},
            "Central": {"justify": "center", "style": "muted"},
            "Transitive": {"justify": "center"},
        },
        show_row_lines=True,
    )

    vuln_rows: List[Dict[str, Any]] = []
    for v in result.vulnerable_packages:
        for advisory in v.vulnerabilities:
            vuln_rows.append(
                {
                    "Package": v.package_id,
                    "Version": v.resolved_version,
                    "Severity": colorize_severity(advisory.severity),
                    "Transitive": "yes" if v.is_transitive else "no",
                    "Projects": ", ".join(v.projects),
                    "Advisory": advisory.advisory_url,
                }
            )
    print_table(
        vuln_rows,
        title="Vulnerable Packages",
        column_styles={
            "Package": {"style": "bold cyan", "no_wrap": True},
            "Version": {"justify": "center"},
            "Severity": {"justify": "center"},
        },
    )

    constraint_rows: List[Dict[str, Any]] = [
        {
            "Package": c.package_id,
            "Requires": c.required_version,
            "Kind": "[yellow]exact[/yellow]" if c.is_exact else "minimum",
            "Range": c.version_range,
            "Required By": c.required_by,
        }
        for c in constraints
    ]
    print_table(
        constraint_rows,
        title="Transitive Constraints",
        column_styles={"Package": {"style": "bold cyan", "no_wrap": True}},
    )


def _display_summary(result: AnalysisResult) -> None:
    get_console().print("")

    if result.error:
        print_error(result.error)

    conflicts = len(result.transitive_conflicts)
    vulnerable = len(result.vulnerable_packages)
    if conflicts or vulnerable:
        print_warning(
            f"Found {conflicts} transitive conflict(s) and "
            f"{vulnerable} vulnerable package(s)."
        )
    elif not result.error:
        print_success("No transitive conflicts or vulnerable packages found.")


def _display_json(
    result: AnalysisResult,
    constraints: List[TransitiveConstraint],
) -> None:
    """Render the analysis as JSON for machine consumption.

    Example::

        {
          "transitive_conflicts": [...],
          "vulnerable_packages": [...],
          "last_updated": "2024-05-01T10:00:00",
          "is_running": false,
          "error": null,
          "transitive_constraints": [...]
        }
    """
    data = result.to_json()
    data["transitive_constraints"] = [c.to_json() for c in constraints]
    print(json.dumps(data, indent=2))
