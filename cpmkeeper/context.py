"""
Shared context object for cpmkeeper CLI commands.

This module defines the global Click context used to share configuration
and runtime options across CLI subcommands.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Optional

import click

if TYPE_CHECKING:
    from cpmkeeper.config import CpmKeeperConfig


class CpmKeeperContext:
    """Global context object for cpmkeeper CLI commands.

    An instance of this class is created once per CLI invocation and
    passed to commands using Click's context mechanism.

    Attributes:
        config_path: Path to the cpmkeeper configuration file, if provided.
        verbose: Verbosity level (0=WARNING, 1=INFO, 2+=DEBUG).
        color: Whether colored terminal output is enabled.
        config: Loaded configuration, set by the ``cpmkeeper`` group.
    """

    __slots__ = ("config_path", "verbose", "color", "config")

    def __init__(self) -> None:
        self.config_path: Optional[Path] = None
        self.verbose: int = 0
        self.color: bool = True
        self.config: Optional[CpmKeeperConfig] = None


#: Click decorator for injecting :class:`CpmKeeperContext` into commands.
pass_context = click.make_pass_decorator(CpmKeeperContext, ensure=True)
