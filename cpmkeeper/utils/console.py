"""
Terminal output for cpmkeeper commands.

Findings are rendered with Rich: one-line status messages, tables of
conflicts, advisories and overrides, and severity badges styled through
the ``severity.*`` theme entries. Diagnostics go through
:mod:`cpmkeeper.utils.logger`, never through this module.
"""

from __future__ import annotations

import os
import sys
import threading
from typing import Any, Dict, Mapping, Optional, Sequence

from rich.table import Table
from rich.theme import Theme
from rich.console import Console

from cpmkeeper.constants import SEVERITY_LABELS

CPMKEEPER_THEME = Theme(
    {
        "success": "bold green",
        "error": "bold red",
        "warning": "bold yellow",
        "info": "bold cyan",
        "muted": "dim",
        "severity.low": "cyan",
        "severity.moderate": "yellow",
        "severity.high": "red",
        "severity.critical": "bold red",
    }
)

#: Markup shown in place of an empty table cell.
EMPTY_CELL = "[muted]-[/muted]"

_STATUS_PREFIXES: Dict[str, str] = {
    "success": "[OK]",
    "error": "[ERROR]",
    "warning": "[WARNING]",
    "info": "",
}

_KNOWN_SEVERITIES = frozenset(label.lower() for label in SEVERITY_LABELS)

_console: Optional[Console] = None
_console_lock = threading.Lock()


def _should_use_color() -> bool:
    """Color only on an interactive stdout outside CI, unless NO_COLOR is set."""
    if os.environ.get("NO_COLOR") or os.environ.get("CI"):
        return False
    isatty = getattr(sys.stdout, "isatty", None)
    if isatty is None:
        return False
    try:
        return bool(isatty())
    except (OSError, ValueError):
        return False


def _get_console() -> Console:
    global _console

    if _console is None:
        with _console_lock:
            if _console is None:
                use_color = _should_use_color()
                _console = Console(
                    theme=CPMKEEPER_THEME,
                    no_color=not use_color,
                    highlight=use_color,
                )
    return _console


def get_console() -> Console:
    """Return the shared Rich console."""
    return _get_console()


def reconfigure_console() -> None:
    """Drop the shared console so the next call re-reads the environment."""
    global _console
    with _console_lock:
        _console = None


# ---------------------------------------------------------------------------
# Status lines
# ---------------------------------------------------------------------------


def _print_status(kind: str, message: str, prefix: Optional[str]) -> None:
    label = _STATUS_PREFIXES[kind] if prefix is None else prefix
    text = f"{label} {message}" if label else message
    _get_console().print(text, style=kind)


def print_success(message: str, *, prefix: Optional[str] = None) -> None:
    _print_status("success", message, prefix)


def print_error(message: str, *, prefix: Optional[str] = None) -> None:
    _print_status("error", message, prefix)


def print_warning(message: str, *, prefix: Optional[str] = None) -> None:
    _print_status("warning", message, prefix)


def print_info(message: str) -> None:
    _print_status("info", message, None)


# ---------------------------------------------------------------------------
# Tables
# ---------------------------------------------------------------------------


def _cell(value: Any) -> str:
    """Render one table value; sequences become one entry per line."""
    if isinstance(value, (list, tuple)):
        value = "\n".join(str(item) for item in value)
    if value is None or value == "":
        return EMPTY_CELL
    return str(value)


def print_table(
    rows: Sequence[Mapping[str, Any]],
    *,
    title: Optional[str] = None,
    headers: Optional[Sequence[str]] = None,
    column_styles: Optional[Mapping[str, Mapping[str, Any]]] = None,
    show_row_lines: bool = False,
) -> None:
    """Render findings as a Rich table.

    Nothing is printed for an empty *rows*; callers report "nothing found"
    themselves.

    Args:
        rows: One mapping per row. List values are shown one per line and
            empty values as a dim dash.
        title: Table title, e.g. ``"Transitive Conflicts"``.
        headers: Column order. Defaults to the keys of the first row.
        column_styles: Extra ``Table.add_column`` options per column,
            e.g. ``{"Package": {"style": "bold cyan", "no_wrap": True}}``.
        show_row_lines: Draw a rule between rows (useful for multi-line cells).
    """
    if not rows:
        return

    columns = list(headers) if headers is not None else list(rows[0])
    styles = column_styles or {}

    table = Table(title=title, header_style="bold", show_lines=show_row_lines)
    for name in columns:
        options: Dict[str, Any] = {"overflow": "fold"}
        options.update(styles.get(name, {}))
        table.add_column(name, **options)

    for row in rows:
        table.add_row(*(_cell(row.get(name)) for name in columns))

    _get_console().print(table)


def colorize_severity(severity: str) -> str:
    """Wrap an advisory severity label in its theme style.

    Example::

        >>> colorize_severity("High")
        '[severity.high]High[/severity.high]'
        >>> colorize_severity("Unknown")
        'Unknown'
    """
    key = severity.lower()
    if key not in _KNOWN_SEVERITIES:
        return severity
    return f"[severity.{key}]{severity}[/severity.{key}]"
