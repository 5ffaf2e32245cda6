"""Configuration file loader for cpmkeeper.

Handles discovery, loading, parsing, and validation of ``cpmkeeper.toml``.
Settings live under a ``[cpmkeeper]`` table.

Discovery order:

1. Explicit path from ``--config`` or ``CPMKEEPER_CONFIG``
2. ``cpmkeeper.toml`` in current directory

Configuration precedence: defaults < config file < CLI args.

Typical usage::

    config = load_config()  # Auto-discover
    config = load_config(Path("custom.toml"))  # Explicit path

Example (``cpmkeeper.toml``)::

    [cpmkeeper]
    dotnet_path = "/usr/share/dotnet/dotnet"
    command_timeout = 300
    cache_ttl_minutes = 5
    enable_vulnerability_scan = false
"""

from __future__ import annotations


import tomli as tomllib
from pathlib import Path
from typing import Any, Dict, Optional, Tuple
from dataclasses import dataclass, field

from cpmkeeper.exceptions import ConfigError
from cpmkeeper.utils.logger import get_logger
from cpmkeeper.constants import (
    CONFIG_FILE_NAME,
    DEFAULT_CACHE_TTL_MINUTES,
    DEFAULT_COMMAND_TIMEOUT,
    DEFAULT_DOTNET_PATH,
    DEFAULT_ENABLE_VULNERABILITY_SCAN,
    DEFAULT_VULNERABILITY_DB_TTL_MINUTES,
)

logger = get_logger("config")


@dataclass
class CpmKeeperConfig:
    """Parsed and validated cpmkeeper configuration.

    All fields have defaults, so empty config files are valid.

    Attributes:
        dotnet_path: ``dotnet`` executable to invoke.
        command_timeout: Seconds before a list/restore command is killed.
        cache_ttl_minutes: Minutes a full analysis result stays fresh.
        vulnerability_db_ttl_minutes: Minutes before the advisory feed is
            reloaded in the background.
        enable_vulnerability_scan: Run ``dotnet list --vulnerable`` during
            full analysis.
        source_path: Path to loaded config file, or ``None`` if using defaults.
    """

    dotnet_path: str = DEFAULT_DOTNET_PATH
    command_timeout: int = DEFAULT_COMMAND_TIMEOUT
    cache_ttl_minutes: int = DEFAULT_CACHE_TTL_MINUTES
    vulnerability_db_ttl_minutes: int = DEFAULT_VULNERABILITY_DB_TTL_MINUTES
    enable_vulnerability_scan: bool = DEFAULT_ENABLE_VULNERABILITY_SCAN

    # Metadata (not a user-facing option)
    source_path: Optional[Path] = field(default=None, repr=False)

    def to_log_dict(self) -> Dict[str, Any]:
        """Return configuration as dictionary for debug logging.

        Excludes ``source_path`` metadata.
        """
        return {
            "dotnet_path": self.dotnet_path,
            "command_timeout": self.command_timeout,
            "cache_ttl_minutes": self.cache_ttl_minutes,
            "vulnerability_db_ttl_minutes": self.vulnerability_db_ttl_minutes,
            "enable_vulnerability_scan": self.enable_vulnerability_scan,
        }


def discover_config_file(explicit_path: Optional[Path] = None) -> Optional[Path]:
    """Find the configuration file to load.

    Args:
        explicit_path: Explicit config path. If provided, must exist.

    Returns:
        Resolved path to config file, or ``None`` if not found.

    Raises:
        ConfigError: Explicit path provided but does not exist.
    """
    if explicit_path is not None:
        resolved = explicit_path.resolve()
        if not resolved.is_file():
            raise ConfigError(
                f"Configuration file not found: {explicit_path}",
                config_path=str(explicit_path),
            )
        logger.debug("Using explicit config: %s", resolved)
        return resolved

    candidate = Path.cwd() / CONFIG_FILE_NAME
    if candidate.is_file():
        logger.debug("Found %s: %s", CONFIG_FILE_NAME, candidate)
        return candidate

    logger.debug("No configuration file found")
    return None


def load_config(config_path: Optional[Path] = None) -> CpmKeeperConfig:
    """Load and validate cpmkeeper configuration.

    Args:
        config_path: Explicit path to config file. If ``None``, uses
            auto-discovery (see :func:`discover_config_file`).

    Returns:
        Validated :class:`CpmKeeperConfig` with values from file or defaults.

    Raises:
        ConfigError: File cannot be parsed, has unknown keys, or invalid values.
    """
    resolved = discover_config_file(config_path)

    if resolved is None:
        logger.debug("No config file found, using defaults")
        return CpmKeeperConfig()

    logger.info("Loading configuration from %s", resolved)
    raw = _read_toml(resolved)

    section = raw.get("cpmkeeper", {})
    if not isinstance(section, dict):
        raise ConfigError(
            "[cpmkeeper] must be a table",
            config_path=str(resolved),
        )
    if not section:
        logger.debug("Config file found but no cpmkeeper section, using defaults")
        return CpmKeeperConfig(source_path=resolved)

    config = _parse_section(section, config_path=str(resolved))
    config.source_path = resolved

    logger.debug("Loaded configuration: %s", config.to_log_dict())
    return config


def _read_toml(path: Path) -> Dict[str, Any]:
    """Read and parse a TOML file.

    Raises:
        ConfigError: File cannot be read or is not valid TOML.
    """
    try:
        with open(path, "rb") as fh:
            return tomllib.load(fh)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(
            f"Invalid TOML in {path.name}: {exc}",
            config_path=str(path),
        ) from exc
    except OSError as exc:
        raise ConfigError(
            f"Cannot read configuration file {path}: {exc}",
            config_path=str(path),
        ) from exc


# option -> (expected type, minimum value or None)
_OPTIONS: Dict[str, Tuple[type, Optional[int]]] = {
    "dotnet_path": (str, None),
    "command_timeout": (int, 1),
    "cache_ttl_minutes": (int, 0),
    "vulnerability_db_ttl_minutes": (int, 1),
    "enable_vulnerability_scan": (bool, None),
}

_TYPE_NAMES = {str: "a string", int: "an integer", bool: "a boolean"}


def _parse_section(
    section: Dict[str, Any],
    *,
    config_path: str,
) -> CpmKeeperConfig:
    """Parse and validate the ``[cpmkeeper]`` table.

    Rejects unknown keys, type mismatches and out-of-range numbers.

    Raises:
        ConfigError: Unknown keys or invalid values.
    """
    config = CpmKeeperConfig()

    unknown = set(section.keys()) - set(_OPTIONS)
    if unknown:
        raise ConfigError(
            f"Unknown configuration keys: {', '.join(sorted(unknown))}",
            config_path=config_path,
        )

    for option, (expected, minimum) in _OPTIONS.items():
        if option not in section:
            continue
        val = section[option]

        # bool is a subclass of int; reject true/false for numeric options
        if not isinstance(val, expected) or (expected is int and isinstance(val, bool)):
            raise ConfigError(
                f"{option} must be {_TYPE_NAMES[expected]}, got {type(val).__name__}",
                config_path=config_path,
                option=option,
            )
        if minimum is not None and val < minimum:
            raise ConfigError(
                f"{option} must be at least {minimum}, got {val}",
                config_path=config_path,
                option=option,
            )
        setattr(config, option, val)

    return config
