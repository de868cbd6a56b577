"""Tests for logging setup."""

import io
import json
import logging
from pathlib import Path

import pytest
from rich.console import Console

from ocilot.errors import InvalidInputError, UnexpectedError
from ocilot.logs import (
    LOGGER_NAME,
    JsonLineFormatter,
    configure_logging,
    report_failure,
    verbosity_to_level,
)


@pytest.fixture(autouse=True)
def reset_package_logger():
    """Restore the package logger after each test."""
    yield
    root = logging.getLogger(LOGGER_NAME)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    root.propagate = True
    root.setLevel(logging.NOTSET)


class TestVerbosityToLevel:
    """Tests for verbosity_to_level function."""

    def test_default(self) -> None:
        """No flags should give INFO."""
        assert verbosity_to_level() == logging.INFO

    def test_verbose(self) -> None:
        """-v should lower to DEBUG and stop there."""
        assert verbosity_to_level(verbose=1) == logging.DEBUG
        assert verbosity_to_level(verbose=5) == logging.DEBUG

    def test_quiet(self) -> None:
        """Each -q should raise one step until output is disabled."""
        assert verbosity_to_level(quiet=1) == logging.WARNING
        assert verbosity_to_level(quiet=2) == logging.ERROR
        assert verbosity_to_level(quiet=3) is None
        assert verbosity_to_level(quiet=9) is None

    def test_custom_default(self) -> None:
        """Steps should count from the configured default."""
        assert verbosity_to_level(quiet=1, default=logging.DEBUG) == logging.INFO

    def test_combined_flags_rejected(self) -> None:
        """-v and -q together should be rejected."""
        with pytest.raises(InvalidInputError):
            verbosity_to_level(verbose=1, quiet=1)


class TestJsonLineFormatter:
    """Tests for JsonLineFormatter."""

    def test_format(self) -> None:
        """Records should become single-line JSON objects."""
        record = logging.LogRecord(
            "ocilot.test", logging.INFO, __file__, 1, "hello %s", ("world",), None
        )
        line = JsonLineFormatter().format(record)

        assert "\n" not in line
        event = json.loads(line)
        assert event["message"] == "hello world"
        assert event["level"] == "INFO"
        assert event["logger"] == "ocilot.test"
        assert "timestamp" in event
        assert "exception" not in event


class TestConfigureLogging:
    """Tests for configure_logging function."""

    def test_file_gets_debug_records(self, tmp_path: Path) -> None:
        """The diagnostic log should receive every record as JSON."""
        log_file = tmp_path / "logs" / "last-log.jsonl"
        configure_logging(
            logging.WARNING, log_file, console=Console(file=io.StringIO())
        )

        logging.getLogger("ocilot.some.module").debug("detail %d", 42)
        for handler in logging.getLogger(LOGGER_NAME).handlers:
            handler.flush()

        events = [json.loads(line) for line in log_file.read_text().splitlines()]
        assert events[-1]["message"] == "detail 42"
        assert events[-1]["level"] == "DEBUG"

    def test_console_respects_level(self) -> None:
        """The console should only show records at the requested level."""
        buffer = io.StringIO()
        configure_logging(
            logging.WARNING, None, console=Console(file=buffer, width=200)
        )

        log = logging.getLogger("ocilot.module")
        log.info("not shown")
        log.warning("shown")

        assert "shown" in buffer.getvalue()
        assert "not shown" not in buffer.getvalue()

    def test_silenced_console(self) -> None:
        """A None level should install no console handler."""
        root = configure_logging(None, None)
        assert root.handlers == []

    def test_log_file_truncated(self, tmp_path: Path) -> None:
        """Each configuration should start a fresh diagnostic log."""
        log_file = tmp_path / "last-log.jsonl"
        log_file.write_text("old content\n")

        configure_logging(None, log_file)
        for handler in logging.getLogger(LOGGER_NAME).handlers:
            handler.flush()

        assert "old content" not in log_file.read_text()

    def test_repeated_calls_do_not_duplicate(self) -> None:
        """Calling twice should replace handlers."""
        console = Console(file=io.StringIO())
        configure_logging(logging.INFO, None, console=console)
        root = configure_logging(logging.INFO, None, console=console)
        assert len(root.handlers) == 1


class TestReportFailure:
    """Tests for report_failure function."""

    def test_writes_traceback_and_hint(self, tmp_path: Path) -> None:
        """Failures should be logged with traceback and a log file hint."""
        log_file = tmp_path / "last-log.jsonl"
        configure_logging(None, log_file)

        try:
            raise UnexpectedError("registry unreachable")
        except UnexpectedError as e:
            report_failure(e, log_file)
        for handler in logging.getLogger(LOGGER_NAME).handlers:
            handler.flush()

        events = [json.loads(line) for line in log_file.read_text().splitlines()]
        assert any("registry unreachable" in e["message"] for e in events)
        assert any("UnexpectedError" in e.get("exception", "") for e in events)
        assert any(str(log_file) in e["message"] for e in events)
