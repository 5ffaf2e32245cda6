"""Audit command implementation for cpmkeeper.

Checks a package against the NuGet vulnerability feed without touching
any workspace. With a VERSION, only that version is checked; without
one, every published version of the package is checked.

Typical usage::

    $ cpmkeeper audit Newtonsoft.Json 12.0.3
    $ cpmkeeper audit Newtonsoft.Json
    $ cpmkeeper audit System.Text.Json 8.0.0 --format json
"""

from __future__ import annotations

import sys
import json
import click
import asyncio
from typing import Dict, List, Optional

from cpmkeeper.config import CpmKeeperConfig
from cpmkeeper.context import CpmKeeperContext, pass_context
from cpmkeeper.core import VulnerabilityDatabase
from cpmkeeper.exceptions import CpmKeeperError
from cpmkeeper.models import Vulnerability
from cpmkeeper.utils import (
    HTTPClient,
    colorize_severity,
    get_logger,
    print_error,
    print_success,
    print_table,
)

logger = get_logger("commands.audit")


@click.command()
@click.argument("package")
@click.argument("version", required=False)
@click.option(
    "--format",
    "-f",
    type=click.Choice(["table", "json"], case_sensitive=False),
    default="table",
    help="Output format.",
)
@pass_context
def audit(
    ctx: CpmKeeperContext, package: str, version: Optional[str], format: str
) -> None:
    """Check PACKAGE for known vulnerabilities.

    With VERSION, only that version is checked. Without it, every
    published version is checked and the affected ones are listed.

    Exits:
        0 if no advisory applies, 1 if one does or the feed could not be
        loaded.
    """
    try:
        if version is None:
            by_version = asyncio.run(_audit_versions_async(ctx, package))
        else:
            found = asyncio.run(_audit_async(ctx, package, version))
    except CpmKeeperError as e:
        print_error(f"{e}")
        sys.exit(1)

    if version is None:
        _report_versions(package, by_version, format)
        sys.exit(1 if by_version else 0)

    if format == "json":
        print(
            json.dumps(
                {
                    "package_id": package,
                    "version": version,
                    "vulnerabilities": [v.to_json() for v in found],
                },
                indent=2,
            )
        )
    elif found:
        print_table(
            [
                {
                    "Severity": colorize_severity(v.severity),
                    "Advisory": v.advisory_url,
                }
                for v in found
            ],
            title=f"{package} {version}",
        )
    else:
        print_success(f"No known vulnerabilities for {package} {version}")

    sys.exit(1 if found else 0)


def _report_versions(
    package: str,
    by_version: Dict[str, List[Vulnerability]],
    format: str,
) -> None:
    if format == "json":
        print(
            json.dumps(
                {
                    "package_id": package,
                    "versions": {
                        v: [vuln.to_json() for vuln in vulns]
                        for v, vulns in by_version.items()
                    },
                },
                indent=2,
            )
        )
        return

    if not by_version:
        print_success(f"No published version of {package} has known vulnerabilities")
        return

    print_table(
        [
            {
                "Version": v,
                "Severity": [colorize_severity(vuln.severity) for vuln in vulns],
                "Advisory": [vuln.advisory_url for vuln in vulns],
            }
            for v, vulns in by_version.items()
        ],
        title=f"Vulnerable versions of {package}",
        column_styles={"Version": {"style": "bold", "no_wrap": True}},
        show_row_lines=True,
    )


def _database(http: HTTPClient, ctx: CpmKeeperContext) -> VulnerabilityDatabase:
    config = ctx.config or CpmKeeperConfig()
    return VulnerabilityDatabase(http, ttl=config.vulnerability_db_ttl_minutes * 60.0)


async def _audit_async(
    ctx: CpmKeeperContext,
    package: str,
    version: str,
) -> List[Vulnerability]:
    async with HTTPClient() as http:
        return await _database(http, ctx).check_vulnerabilities(package, version)


async def _audit_versions_async(
    ctx: CpmKeeperContext,
    package: str,
) -> Dict[str, List[Vulnerability]]:
    async with HTTPClient() as http:
        return await _database(http, ctx).get_version_vulnerabilities(package)
