"""Overrides command implementation for cpmkeeper.

Lists ``PackageReference`` elements that set a local ``Version`` on a
package already declared in ``Directory.Packages.props``. Under Central
Package Management such references fail the restore (NU1008).

Typical usage::

    $ cpmkeeper overrides
    $ cpmkeeper overrides src/ --format json
"""

from __future__ import annotations

import sys
import json
import click
from pathlib import Path
from typing import List

from cpmkeeper.context import CpmKeeperContext, pass_context
from cpmkeeper.core import CentralManifest
from cpmkeeper.exceptions import CpmKeeperError
from cpmkeeper.models import VersionOverride
from cpmkeeper.utils import get_logger, print_error, print_success, print_table, print_warning

logger = get_logger("commands.overrides")


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
@pass_context
def overrides(ctx: CpmKeeperContext, root: Path, format: str) -> None:
    """List projects that pin a centrally-managed package locally.

    Exits:
        0 if no project overrides a central version, 1 otherwise.
    """
    try:
        manifest = CentralManifest.load(root)
    except CpmKeeperError as e:
        print_error(f"{e}")
        sys.exit(1)

    found = manifest.find_version_overrides()
    logger.info("Found %d local version override(s)", len(found))

    if format == "json":
        print(json.dumps([o.to_json() for o in found], indent=2))
    else:
        _display_table(found)

    sys.exit(1 if found else 0)


def _display_table(found: List[VersionOverride]) -> None:
    if not found:
        print_success("No project overrides a centrally managed version.")
        return

    print_table(
        [
            {
                "Project": o.project,
                "Package": o.package_id,
                "Local": f"[red]{o.local_version}[/red]",
                "Central": o.central_version,
            }
            for o in found
        ],
        title="Local Version Overrides",
        column_styles={
            "Project": {"style": "bold", "no_wrap": True},
            "Package": {"style": "bold cyan", "no_wrap": True},
            "Local": {"justify": "center"},
            "Central": {"justify": "center", "style": "muted"},
        },
    )
    print_warning(
        f"{len(found)} reference(s) set a Version attribute; remove it so the "
        "central version applies."
    )
