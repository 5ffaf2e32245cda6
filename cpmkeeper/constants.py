"""
Centralized constants for cpmkeeper.

This module defines immutable configuration values used across cpmkeeper,
including NuGet endpoints, dotnet CLI settings, analysis tuning knobs,
well-known file names, and logging formats. All values are intended to be
treated as read-only.
"""

from typing import Final, Sequence

# ---------------------------------------------------------------------------
# Project metadata
# ---------------------------------------------------------------------------

#: HTTP User-Agent template used for outbound requests.
USER_AGENT_TEMPLATE: Final[str] = "cpmkeeper/{version}"

# ---------------------------------------------------------------------------
# NuGet endpoints
# ---------------------------------------------------------------------------

#: Index of the NuGet vulnerability feed (lists the data pages).
NUGET_VULNERABILITY_INDEX: Final[str] = (
    "https://api.nuget.org/v3/vulnerabilities/index.json"
)

#: Flat-container listing of every published version of a package.
NUGET_FLAT_CONTAINER_VERSIONS: Final[str] = (
    "https://api.nuget.org/v3-flatcontainer/{package}/index.json"
)

# ---------------------------------------------------------------------------
# HTTP configuration
# ---------------------------------------------------------------------------

#: Default network timeout in seconds.
DEFAULT_TIMEOUT: Final[int] = 30

#: Maximum number of retries for failed HTTP requests.
DEFAULT_MAX_RETRIES: Final[int] = 3

# ---------------------------------------------------------------------------
# dotnet CLI
# ---------------------------------------------------------------------------

#: Executable used when no ``dotnet_path`` is configured.
DEFAULT_DOTNET_PATH: Final[str] = "dotnet"

#: Timeout (seconds) for list/restore invocations.
DEFAULT_COMMAND_TIMEOUT: Final[int] = 120

#: Timeout (seconds) for the ``dotnet --version`` availability check.
PROBE_TIMEOUT: Final[int] = 10

#: Restore warning code emitted for "package version outside of
#: dependency constraint".
CONFLICT_WARNING_CODE: Final[str] = "NU1608"

# ---------------------------------------------------------------------------
# Analysis tuning
# ---------------------------------------------------------------------------

#: Age (minutes) after which a cached analysis result is recomputed.
DEFAULT_CACHE_TTL_MINUTES: Final[int] = 10

#: Age (minutes) after which the advisory database is reloaded.
DEFAULT_VULNERABILITY_DB_TTL_MINUTES: Final[int] = 60

#: Whether full passes run ``dotnet list --vulnerable``.
DEFAULT_ENABLE_VULNERABILITY_SCAN: Final[bool] = True

#: Longest name list kept verbatim before collapsing into "and N more".
MAX_LISTED_NAMES: Final[int] = 5

#: Names kept in front of the "and N more" entry once a list is collapsed.
COLLAPSED_LIST_HEAD: Final[int] = 3

#: Severity labels indexed by the advisory feed's numeric rank.
SEVERITY_LABELS: Final[Sequence[str]] = ("Low", "Moderate", "High", "Critical")

# ---------------------------------------------------------------------------
# Well-known files
# ---------------------------------------------------------------------------

#: Central manifest file name.
CENTRAL_MANIFEST_FILE: Final[str] = "Directory.Packages.props"

#: Project file extension scanned for package references.
PROJECT_FILE_SUFFIX: Final[str] = ".csproj"

#: Lock graph location relative to a project directory.
LOCK_FILE_RELATIVE_PATH: Final[Sequence[str]] = ("obj", "project.assets.json")

#: Directories never descended into while scanning a workspace.
IGNORED_DIRECTORIES: Final[Sequence[str]] = ("bin", "obj", "node_modules", ".git", ".vs")

#: Default configuration file name.
CONFIG_FILE_NAME: Final[str] = "cpmkeeper.toml"

#: Maximum allowed file size (in bytes) when reading workspace files.
MAX_FILE_SIZE: Final[int] = 50 * 1024 * 1024  # 50 MB

# ---------------------------------------------------------------------------
# Logging configuration
# ---------------------------------------------------------------------------

#: Timestamp format for verbose logging.
LOG_DATE_FORMAT: Final[str] = "%Y-%m-%d %H:%M:%S"

#: Default log format (non-verbose).
LOG_DEFAULT_FORMAT: Final[str] = "%(levelname)s: %(message)s"

#: Verbose log format including timestamp and logger name.
LOG_VERBOSE_FORMAT: Final[str] = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
