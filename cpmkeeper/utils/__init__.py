"""
Utility helpers for cpmkeeper.

This package provides reusable utilities used across cpmkeeper, including:

- Console output helpers (Rich-based)
- Logging configuration and retrieval
- Filesystem safety helpers
- Async HTTP client utilities
- Version comparison and range helpers

Only symbols listed in ``__all__`` are considered part of the public API.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Filesystem utilities
# ---------------------------------------------------------------------------

from cpmkeeper.utils.filesystem import (
    find_files,
    lock_file_path,
    safe_read_file,
)

# ---------------------------------------------------------------------------
# Logging utilities
# ---------------------------------------------------------------------------

from cpmkeeper.utils.logger import (
    disable_logging,
    get_logger,
    is_logging_configured,
    log_duration,
    setup_logging,
)

# ---------------------------------------------------------------------------
# Console utilities
# ---------------------------------------------------------------------------

from cpmkeeper.utils.console import (
    colorize_severity,
    get_console,
    print_error,
    print_info,
    print_success,
    print_table,
    print_warning,
    reconfigure_console,
)

# ---------------------------------------------------------------------------
# HTTP utilities
# ---------------------------------------------------------------------------

from cpmkeeper.utils.http import HTTPClient

# ---------------------------------------------------------------------------
# Version utilities
# ---------------------------------------------------------------------------

from cpmkeeper.utils.version_utils import (
    compare_versions,
    parse_version_range,
    severity_to_string,
    version_in_range,
)

# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

__all__ = [
    # Console
    "print_error",
    "print_info",
    "print_table",
    "print_success",
    "print_warning",
    "get_console",
    "reconfigure_console",
    "colorize_severity",
    # Logging
    "get_logger",
    "log_duration",
    "setup_logging",
    "disable_logging",
    "is_logging_configured",
    # Filesystem
    "safe_read_file",
    "find_files",
    "lock_file_path",
    # HTTP
    "HTTPClient",
    # Version utilities
    "compare_versions",
    "version_in_range",
    "parse_version_range",
    "severity_to_string",
]
