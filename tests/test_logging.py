"""Tests for the JSON formatter and lifecycle logging."""

from __future__ import annotations

import json
import logging
import sys

import pytest

from stdio_rpc.logging_utils import StdioRpcJsonFormatter
from stdio_rpc.rpc import ExpressionServer, serve_pipe


def _record(msg: str = "test", *, level: int = logging.INFO, exc_info: object = None) -> logging.LogRecord:
    return logging.LogRecord(
        name="test",
        level=level,
        pathname="",
        lineno=0,
        msg=msg,
        args=(),
        exc_info=exc_info,  # type: ignore[arg-type]
    )


# ---------------------------------------------------------------------------
# StdioRpcJsonFormatter
# ---------------------------------------------------------------------------


class TestStdioRpcJsonFormatter:
    """Tests for StdioRpcJsonFormatter."""

    def test_valid_json_output(self) -> None:
        """Output should be valid JSON with the fixed keys."""
        parsed = json.loads(StdioRpcJsonFormatter().format(_record("test message")))
        assert parsed["level"] == "INFO"
        assert parsed["logger"] == "test"
        assert parsed["message"] == "test message"
        assert "timestamp" in parsed

    def test_single_line(self) -> None:
        """Embedded newlines are escaped so each record is one line."""
        output = StdioRpcJsonFormatter().format(_record("two\nlines"))
        assert "\n" not in output
        assert json.loads(output)["message"] == "two\nlines"

    def test_fixed_keys_first(self) -> None:
        """timestamp, level, logger and message lead the object."""
        record = _record()
        record.server_id = "srv42"
        parsed = json.loads(StdioRpcJsonFormatter().format(record))
        assert list(parsed)[:4] == ["timestamp", "level", "logger", "message"]

    def test_extra_fields_in_output(self) -> None:
        """Extra fields should appear in JSON output."""
        record = _record()
        record.server_id = "srv42"
        record.expression = "a+b"
        parsed = json.loads(StdioRpcJsonFormatter().format(record))
        assert parsed["server_id"] == "srv42"
        assert parsed["expression"] == "a+b"

    def test_reserved_keys_not_overridden(self) -> None:
        """An extra named like a fixed key does not replace it."""
        record = _record()
        record.level = "bogus"
        record.logger = "bogus"
        parsed = json.loads(StdioRpcJsonFormatter().format(record))
        assert parsed["level"] == "INFO"
        assert parsed["logger"] == "test"

    def test_exception_info_included(self) -> None:
        """Exception info should be included in JSON output."""
        try:
            raise ValueError("test error")
        except ValueError:
            exc_info = sys.exc_info()
        parsed = json.loads(StdioRpcJsonFormatter().format(_record(level=logging.ERROR, exc_info=exc_info)))
        assert "ValueError" in parsed["exception"]

    def test_none_exc_info_tuple_excluded(self) -> None:
        """exc_info=(None, None, None) should not produce an exception key."""
        parsed = json.loads(StdioRpcJsonFormatter().format(_record(exc_info=(None, None, None))))
        assert "exception" not in parsed

    def test_default_str_handles_non_serializable(self) -> None:
        """Non-serializable values should be coerced to strings."""
        record = _record()
        record.custom_obj = object()
        parsed = json.loads(StdioRpcJsonFormatter().format(record))
        assert parsed["custom_obj"].startswith("<object object")

    def test_non_ascii_kept(self) -> None:
        """Symbols are written as-is rather than escaped."""
        assert "▲" in StdioRpcJsonFormatter().format(_record("▲"))

    def test_stack_info_included(self) -> None:
        """stack_info should be included in JSON output when present."""
        record = _record()
        record.stack_info = "Stack (most recent call last):\n  File test.py"
        parsed = json.loads(StdioRpcJsonFormatter().format(record))
        assert "stack_info" in parsed


# ---------------------------------------------------------------------------
# Lifecycle and access logging
# ---------------------------------------------------------------------------


class TestLifecycleLogging:
    """Framework log records."""

    def test_server_init_logs(self, caplog: pytest.LogCaptureFixture) -> None:
        """ExpressionServer.__init__ emits INFO with its server_id."""
        with caplog.at_level(logging.DEBUG, logger="stdio_rpc.rpc"):
            ExpressionServer(server_id="test123")
        records = [r for r in caplog.records if r.name == "stdio_rpc.rpc"]
        assert any("test123" in r.getMessage() for r in records)
        assert records[0].__dict__["server_id"] == "test123"

    def test_generated_server_id(self) -> None:
        """Without an id one is generated."""
        assert len(ExpressionServer().server_id) == 12

    def test_evaluation_failure_logged_at_debug(self, caplog: pytest.LogCaptureFixture) -> None:
        """A fallback response is explained at DEBUG."""
        with caplog.at_level(logging.DEBUG, logger="stdio_rpc.rpc"), serve_pipe() as client:
            client.evaluate("1/0")
        assert any("'1/0' failed (Division by zero), responding 0" in r.getMessage() for r in caplog.records)

    def test_unknown_symbol_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        """The client notes symbols answered with the default."""
        with caplog.at_level(logging.DEBUG, logger="stdio_rpc.symbols"), serve_pipe() as client:
            client.evaluate("q")
        assert any("Unknown symbol 'q'" in r.getMessage() for r in caplog.records)

    def test_access_record_as_json(self, caplog: pytest.LogCaptureFixture) -> None:
        """Access records carry exchange fields through the JSON formatter."""
        with caplog.at_level(logging.INFO, logger="stdio_rpc.access"):
            with serve_pipe(ExpressionServer(server_id="j")) as client:
                client.evaluate("b*c")
        record = next(r for r in caplog.records if r.name == "stdio_rpc.access")
        parsed = json.loads(StdioRpcJsonFormatter().format(record))
        assert parsed["message"] == "exchange ok"
        assert parsed["server_id"] == "j"
        assert parsed["queried"] == "bc"
        assert parsed["result"] == 6
        assert parsed["bad_seq"] is False

    def test_access_log_silent_when_disabled(self, caplog: pytest.LogCaptureFixture) -> None:
        """No access record is produced when the logger is above INFO."""
        with caplog.at_level(logging.WARNING, logger="stdio_rpc.access"):
            with serve_pipe() as client:
                client.evaluate("1")
        assert not [r for r in caplog.records if r.name == "stdio_rpc.access"]
