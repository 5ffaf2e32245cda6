from __future__ import annotations

import io
import logging
import pytest
from typing import Generator
from unittest.mock import patch

from cpmkeeper.utils.logger import (
    ColoredFormatter,
    disable_logging,
    get_logger,
    is_logging_configured,
    log_duration,
    setup_logging,
)


@pytest.fixture
def clean_logger_state() -> Generator[None, None, None]:
    """Reset the ``cpmkeeper`` logger and configuration flag around a test."""
    import cpmkeeper.utils.logger as logger_module

    root_logger = logging.getLogger("cpmkeeper")
    root_logger.handlers.clear()
    root_logger.setLevel(logging.NOTSET)
    logger_module._logging_configured = False

    yield

    root_logger.handlers.clear()
    root_logger.setLevel(logging.NOTSET)
    root_logger.propagate = True
    logger_module._logging_configured = False


@pytest.fixture
def captured_stream() -> io.StringIO:
    return io.StringIO()


def _record(level: int = logging.INFO, msg: str = "Test message") -> logging.LogRecord:
    return logging.LogRecord(
        name="test",
        level=level,
        pathname="test.py",
        lineno=1,
        msg=msg,
        args=(),
        exc_info=None,
    )


@pytest.mark.unit
class TestColoredFormatter:
    """Tests for ColoredFormatter ANSI color formatting."""

    def test_color_codes_defined(self) -> None:
        for level in ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]:
            assert ColoredFormatter.COLORS[level].startswith("\033[")
        assert ColoredFormatter.RESET == "\033[0m"

    def test_format_with_color_enabled(self) -> None:
        """Test levelname is wrapped in escape codes when color applies."""
        formatter = ColoredFormatter("%(levelname)s: %(message)s", use_color=True)

        with patch.object(ColoredFormatter, "_should_use_color", return_value=True):
            result = formatter.format(_record())

        assert result == "\033[32mINFO\033[0m: Test message"

    def test_format_restores_levelname(self) -> None:
        """Test the shared record is left untouched after formatting."""
        formatter = ColoredFormatter("%(levelname)s", use_color=True)
        record = _record(logging.ERROR)

        with patch.object(ColoredFormatter, "_should_use_color", return_value=True):
            formatter.format(record)

        assert record.levelname == "ERROR"

    def test_format_without_color(self) -> None:
        formatter = ColoredFormatter("%(levelname)s: %(message)s", use_color=False)
        assert formatter.format(_record()) == "INFO: Test message"

    def test_no_color_env_disables_color(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("NO_COLOR", "1")
        assert ColoredFormatter._should_use_color() is False

    def test_ci_env_disables_color(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.setenv("CI", "true")
        assert ColoredFormatter._should_use_color() is False


@pytest.mark.unit
@pytest.mark.usefixtures("clean_logger_state")
class TestSetupLogging:
    """Tests for setup_logging."""

    def test_configures_single_handler(self, captured_stream: io.StringIO) -> None:
        setup_logging(level=logging.DEBUG, stream=captured_stream)

        root_logger = logging.getLogger("cpmkeeper")
        assert len(root_logger.handlers) == 1
        assert root_logger.level == logging.DEBUG
        assert root_logger.propagate is False
        assert is_logging_configured() is True

    def test_repeated_setup_replaces_handler(
        self, captured_stream: io.StringIO
    ) -> None:
        setup_logging(stream=captured_stream)
        setup_logging(stream=captured_stream)

        assert len(logging.getLogger("cpmkeeper").handlers) == 1

    def test_messages_reach_stream(
        self, captured_stream: io.StringIO, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("NO_COLOR", "1")
        setup_logging(level=logging.INFO, stream=captured_stream)

        get_logger("analysis").info("hello %s", "world")

        assert "INFO: hello world" in captured_stream.getvalue()

    def test_level_filters_messages(
        self, captured_stream: io.StringIO, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("NO_COLOR", "1")
        setup_logging(level=logging.WARNING, stream=captured_stream)

        get_logger("analysis").info("hidden")

        assert captured_stream.getvalue() == ""

    def test_verbose_format_includes_logger_name(
        self, captured_stream: io.StringIO, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("NO_COLOR", "1")
        setup_logging(level=logging.DEBUG, verbose=True, stream=captured_stream)

        get_logger("dotnet").debug("availability check")

        assert "cpmkeeper.dotnet - DEBUG - availability check" in captured_stream.getvalue()

    def test_disable_logging(self, captured_stream: io.StringIO) -> None:
        setup_logging(stream=captured_stream)
        disable_logging()

        root_logger = logging.getLogger("cpmkeeper")
        assert is_logging_configured() is False
        assert all(isinstance(h, logging.NullHandler) for h in root_logger.handlers)


@pytest.mark.unit
class TestGetLogger:
    """Tests for get_logger name resolution."""

    def test_root_logger(self) -> None:
        assert get_logger().name == "cpmkeeper"
        assert get_logger("cpmkeeper").name == "cpmkeeper"

    def test_short_and_qualified_names_match(self) -> None:
        assert get_logger("analysis") is get_logger("cpmkeeper.analysis")

    def test_child_name(self) -> None:
        assert get_logger("core.manifest").name == "cpmkeeper.core.manifest"


@pytest.mark.unit
@pytest.mark.usefixtures("clean_logger_state")
class TestLogDuration:
    """Tests for log_duration."""

    def test_logs_label_with_milliseconds(
        self, captured_stream: io.StringIO, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("NO_COLOR", "1")
        setup_logging(level=logging.DEBUG, stream=captured_stream)
        logger = get_logger("timing")

        with log_duration(logger, "dotnet restore"):
            pass

        output = captured_stream.getvalue()
        assert "dotnet restore: " in output
        assert output.rstrip().endswith("ms")

    def test_logs_even_when_block_raises(
        self, captured_stream: io.StringIO, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("NO_COLOR", "1")
        setup_logging(level=logging.DEBUG, stream=captured_stream)
        logger = get_logger("timing")

        with pytest.raises(RuntimeError):
            with log_duration(logger, "failing step"):
                raise RuntimeError("boom")

        assert "failing step: " in captured_stream.getvalue()
