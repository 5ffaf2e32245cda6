from __future__ import annotations

import sys
from typing import Generator
from unittest.mock import MagicMock, patch

import pytest
from rich.table import Table
from rich.console import Console

from cpmkeeper.utils.console import (
    CPMKEEPER_THEME,
    EMPTY_CELL,
    _get_console,
    _should_use_color,
    colorize_severity,
    get_console,
    print_error,
    print_info,
    print_success,
    print_table,
    print_warning,
    reconfigure_console,
)


# ==============================================================================
# Fixtures
# ==============================================================================


@pytest.fixture(autouse=True)
def reset_console() -> Generator[None, None, None]:
    """Reset the console singleton around each test."""
    reconfigure_console()
    yield
    reconfigure_console()


@pytest.fixture
def mock_console() -> Generator[MagicMock, None, None]:
    console = MagicMock(spec=Console)
    with patch("cpmkeeper.utils.console._get_console", return_value=console):
        yield console


def _rendered_table(mock_console: MagicMock) -> Table:
    table = mock_console.print.call_args[0][0]
    assert isinstance(table, Table)
    return table


def _cells(table: Table, column: int) -> list:
    return list(table.columns[column].cells)


# ==============================================================================
# Color detection and singleton
# ==============================================================================


@pytest.mark.unit
class TestShouldUseColor:
    """Tests for _should_use_color environment handling."""

    def test_no_color_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("NO_COLOR", "1")
        assert _should_use_color() is False

    def test_ci_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.setenv("CI", "1")
        assert _should_use_color() is False

    def test_tty(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.delenv("CI", raising=False)
        with patch.object(sys.stdout, "isatty", return_value=True):
            assert _should_use_color() is True

    def test_closed_stream(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.delenv("CI", raising=False)
        with patch.object(sys.stdout, "isatty", side_effect=ValueError("closed")):
            assert _should_use_color() is False


@pytest.mark.unit
class TestConsoleSingleton:
    def test_same_instance_returned(self) -> None:
        assert _get_console() is _get_console()
        assert get_console() is _get_console()

    def test_reconfigure_creates_new_instance(self) -> None:
        first = _get_console()
        reconfigure_console()
        assert _get_console() is not first

    def test_theme_has_severity_styles(self) -> None:
        for name in (
            "success",
            "error",
            "warning",
            "info",
            "muted",
            "severity.low",
            "severity.moderate",
            "severity.high",
            "severity.critical",
        ):
            assert name in CPMKEEPER_THEME.styles


# ==============================================================================
# Status messages
# ==============================================================================


@pytest.mark.unit
class TestStatusMessages:
    """Tests for the one-line status helpers."""

    def test_print_success(self, mock_console: MagicMock) -> None:
        print_success("done")
        mock_console.print.assert_called_once_with("[OK] done", style="success")

    def test_print_error(self, mock_console: MagicMock) -> None:
        print_error("No workspace root found")
        mock_console.print.assert_called_once_with(
            "[ERROR] No workspace root found", style="error"
        )

    def test_print_warning_custom_prefix(self, mock_console: MagicMock) -> None:
        print_warning("careful", prefix="!")
        mock_console.print.assert_called_once_with("! careful", style="warning")

    def test_empty_prefix(self, mock_console: MagicMock) -> None:
        print_error("plain", prefix="")
        mock_console.print.assert_called_once_with("plain", style="error")

    def test_print_info_has_no_prefix(self, mock_console: MagicMock) -> None:
        print_info("Analyzing 2 project(s)...")
        mock_console.print.assert_called_once_with(
            "Analyzing 2 project(s)...", style="info"
        )


# ==============================================================================
# Tables
# ==============================================================================


@pytest.mark.unit
class TestPrintTable:
    """Tests for print_table rendering."""

    def test_empty_rows_print_nothing(self, mock_console: MagicMock) -> None:
        print_table([])
        mock_console.print.assert_not_called()

    def test_headers_default_to_first_row(self, mock_console: MagicMock) -> None:
        print_table(
            [{"Package": "Humanizer.Core", "Central": "3.0.1"}],
            title="Transitive Conflicts",
        )

        table = _rendered_table(mock_console)
        assert [c.header for c in table.columns] == ["Package", "Central"]
        assert table.title == "Transitive Conflicts"
        assert table.row_count == 1

    def test_list_values_one_per_line(self, mock_console: MagicMock) -> None:
        print_table(
            [
                {
                    "Package": "Humanizer.Core",
                    "Required By": ["Humanizer.Core.af", "Humanizer.Core.ar"],
                }
            ]
        )

        table = _rendered_table(mock_console)
        assert _cells(table, 1) == ["Humanizer.Core.af\nHumanizer.Core.ar"]

    def test_empty_values_become_dash(self, mock_console: MagicMock) -> None:
        print_table(
            [{"Package": "Serilog", "Framework": "", "Required By": []}],
            headers=["Package", "Framework", "Required By", "Projects"],
        )

        table = _rendered_table(mock_console)
        assert [c.header for c in table.columns][-1] == "Projects"
        for column in (1, 2, 3):
            assert _cells(table, column) == [EMPTY_CELL]

    def test_column_styles_applied(self, mock_console: MagicMock) -> None:
        print_table(
            [{"Package": "A", "Version": "1.0"}],
            column_styles={"Version": {"justify": "center", "no_wrap": True}},
        )

        version_column = _rendered_table(mock_console).columns[1]
        assert version_column.justify == "center"
        assert version_column.no_wrap is True
        assert version_column.overflow == "fold"

    def test_row_lines(self, mock_console: MagicMock) -> None:
        print_table([{"Package": "A"}], show_row_lines=True)
        assert _rendered_table(mock_console).show_lines is True


@pytest.mark.unit
class TestColorizeSeverity:
    """Tests for colorize_severity."""

    @pytest.mark.parametrize(
        "severity,expected",
        [
            ("Critical", "[severity.critical]Critical[/severity.critical]"),
            ("High", "[severity.high]High[/severity.high]"),
            ("Moderate", "[severity.moderate]Moderate[/severity.moderate]"),
            ("low", "[severity.low]low[/severity.low]"),
        ],
    )
    def test_known_labels(self, severity: str, expected: str) -> None:
        assert colorize_severity(severity) == expected

    def test_unknown_label_unchanged(self) -> None:
        assert colorize_severity("Unknown") == "Unknown"

    def test_markup_renders_with_theme(self) -> None:
        console = Console(theme=CPMKEEPER_THEME, record=True, width=40)
        console.print(colorize_severity("Critical"))
        assert console.export_text().strip() == "Critical"
