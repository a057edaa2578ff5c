"""Tests for stdio_rpc.log: the Level enum carried by Log messages."""

from __future__ import annotations

import logging

import pytest

from stdio_rpc.log import Level
from stdio_rpc.rpc import Log

# ---------------------------------------------------------------------------
# Level.logging_level
# ---------------------------------------------------------------------------


class TestLoggingLevel:
    """Mapping from protocol severities to stdlib logging levels."""

    @pytest.mark.parametrize(
        ("level", "expected"),
        [
            (Level.EXCEPTION, logging.CRITICAL),
            (Level.ERROR, logging.ERROR),
            (Level.WARN, logging.WARNING),
            (Level.INFO, logging.INFO),
            (Level.DEBUG, logging.DEBUG),
        ],
        ids=["exception", "error", "warn", "info", "debug"],
    )
    def test_mapping(self, level: Level, expected: int) -> None:
        """Each severity maps to its stdlib counterpart."""
        assert level.logging_level == expected

    def test_trace_below_debug(self) -> None:
        """TRACE is finer than DEBUG."""
        assert 0 < Level.TRACE.logging_level < logging.DEBUG

    def test_ordered_most_to_least_severe(self) -> None:
        """Declaration order matches descending severity."""
        levels = [level.logging_level for level in Level]
        assert levels == sorted(levels, reverse=True)


# ---------------------------------------------------------------------------
# Log messages
# ---------------------------------------------------------------------------


class TestLogMessage:
    """The Level field of Log."""

    def test_default_level_is_info(self) -> None:
        """A Log without an explicit level is INFO."""
        assert Log("hello").level is Level.INFO

    def test_level_travels_by_name(self) -> None:
        """The wire carries the member name, not the value."""
        assert Log("x", Level.WARN)._to_row_dict() == {"message": "x", "level": "WARN"}
