"""
Command-line interface for cpmkeeper.

This module provides the main CLI entry point and handles global options,
configuration loading, and command registration.
"""

from __future__ import annotations

import os
import sys
import logging
from pathlib import Path
from typing import Optional

import click

from cpmkeeper.config import load_config
from cpmkeeper.__version__ import __version__
from cpmkeeper.context import CpmKeeperContext
from cpmkeeper.exceptions import ConfigError, CpmKeeperError
from cpmkeeper.utils.logger import get_logger, setup_logging
from cpmkeeper.utils.console import print_error, print_warning, reconfigure_console

logger = get_logger("cli")


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Path to configuration file.",
    envvar="CPMKEEPER_CONFIG",
)
@click.option(
    "--verbose",
    "-v",
    count=True,
    help="Increase verbosity (can be repeated: -v, -vv).",
)
@click.option(
    "--color/--no-color",
    default=True,
    help="Enable or disable colored output.",
    envvar="CPMKEEPER_COLOR",
)
@click.version_option(
    version=__version__,
    prog_name="cpmkeeper",
    message="%(prog)s %(version)s",
)
@click.pass_context
def cli(
    ctx: click.Context,
    config: Optional[Path],
    verbose: int,
    color: bool,
) -> None:
    """cpmkeeper: dependency analysis for NuGet Central Package Management.

    \b
    Available commands:
      cpmkeeper analyze            Find transitive conflicts and vulnerabilities
      cpmkeeper overrides          List local Version overrides of central packages
      cpmkeeper audit              Check one package version for advisories

    \b
    Examples:
      cpmkeeper analyze
      cpmkeeper analyze src/ --format json
      cpmkeeper audit Newtonsoft.Json 12.0.3

    Use ``cpmkeeper COMMAND --help`` for command-specific options.
    """
    # Respect NO_COLOR for logging and console output
    if color:
        os.environ.pop("NO_COLOR", None)
    else:
        os.environ["NO_COLOR"] = "1"
    reconfigure_console()

    _configure_logging(verbose)

    try:
        loaded_config = load_config(config)
    except ConfigError as exc:
        print_error(str(exc))
        raise SystemExit(1) from exc

    cpmkeeper_ctx = CpmKeeperContext()
    cpmkeeper_ctx.config_path = config or loaded_config.source_path
    cpmkeeper_ctx.color = color
    cpmkeeper_ctx.verbose = verbose
    cpmkeeper_ctx.config = loaded_config
    ctx.obj = cpmkeeper_ctx

    logger.debug("cpmkeeper v%s", __version__)
    logger.debug("Config path: %s", cpmkeeper_ctx.config_path)
    if loaded_config.source_path:
        logger.debug("Loaded configuration: %s", loaded_config.to_log_dict())
    logger.debug("Verbosity: %s | Color: %s", verbose, color)


def _configure_logging(verbose: int) -> None:
    """Configure logging level based on verbosity flags."""
    if verbose <= 0:
        level = logging.WARNING
    elif verbose == 1:
        level = logging.INFO
    else:
        level = logging.DEBUG

    setup_logging(level=level, verbose=verbose >= 2)
    logger.debug("Logging initialized at %s level", logging.getLevelName(level))


# Register CLI subcommands
from cpmkeeper.commands.analyze import analyze  # noqa: E402
from cpmkeeper.commands.audit import audit  # noqa: E402
from cpmkeeper.commands.overrides import overrides  # noqa: E402

cli.add_command(analyze)
cli.add_command(overrides)
cli.add_command(audit)


def main() -> int:
    """Main entry point for the cpmkeeper CLI.

    Returns:
        Exit code:
            0   Success
            1   Findings, application error or unhandled error
            2   Usage error (Click)
            130 Interrupted by user (Ctrl+C)
    """
    try:
        cli(standalone_mode=False)
        return 0

    except SystemExit as exc:
        code = exc.code
        if code is None:
            return 0
        return code if isinstance(code, int) else 1

    except click.exceptions.Abort:
        print_warning("\nOperation cancelled by user")
        return 130

    except click.ClickException as exc:
        exc.show()
        return exc.exit_code

    except CpmKeeperError as exc:
        print_error(str(exc))
        logger.debug(
            "CpmKeeperError details: %s",
            exc.details or "<none>",
            exc_info=True,
        )
        return 1

    except KeyboardInterrupt:
        print_warning("\nOperation cancelled by user")
        return 130

    except Exception as exc:
        print_error(f"Unexpected error: {exc}")
        logger.exception("Unhandled exception in CLI")
        return 1


if __name__ == "__main__":
    sys.exit(main())
