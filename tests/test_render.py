"""Tests for the console transcript renderer."""

from __future__ import annotations

import pytest
import typer

from stdio_rpc.log import Level
from stdio_rpc.render import LANE_WIDTH, render_header, render_message, render_symbol_pool
from stdio_rpc.rpc import BadSeq, Envelope, Log, Query, Reply, Request, Response
from stdio_rpc.symbols import DEFAULT_SYMBOLS, SymbolTable


def _plain(message: Envelope, outgoing: bool) -> str:
    return typer.unstyle(render_message(message, outgoing))


def _lane(line: str) -> str:
    """Text between the two lifeline bars."""
    assert line.startswith("    |")
    assert line.endswith("|")
    return line[5:-1]


class TestRenderMessage:
    """One line per message, fixed width, arrow in the direction of travel."""

    @pytest.mark.parametrize(
        ("message", "outgoing"),
        [
            (Request("a+b"), True),
            (Reply(-1), True),
            (Query("▲"), False),
            (Response(3), False),
            (Log("resolving 2 symbol(s)", Level.DEBUG), False),
            (BadSeq(), False),
        ],
        ids=["request", "reply", "query", "response", "log", "bad-seq"],
    )
    def test_lane_width_is_fixed(self, message: Envelope, outgoing: bool) -> None:
        """Every line has the same visible width between the bars."""
        assert len(_lane(_plain(message, outgoing))) == LANE_WIDTH

    def test_outgoing_arrow(self) -> None:
        """Client to server messages point right."""
        line = _plain(Request("a+b"), True)
        assert line.startswith("    |----Req: ")
        assert line.endswith("a+b---▶|")

    def test_incoming_arrow(self) -> None:
        """Server to client messages point left."""
        line = _plain(Query("a"), False)
        assert line.startswith("    |◀---Query: ")
        assert line.endswith("a?----|")

    def test_value_suffixes(self) -> None:
        """Reply and Log end in '!', Query in '?', Response in nothing."""
        assert _lane(_plain(Reply(1), True)).endswith("1!---▶")
        assert _lane(_plain(Log("hi"), False)).endswith("hi!----")
        assert _lane(_plain(Response(42), False)).endswith(" 42----")

    def test_bad_seq(self) -> None:
        """BadSeq renders a fixed text."""
        assert "BadSeq:" in _plain(BadSeq(), False)
        assert "Bad seq!" in _plain(BadSeq(), False)

    def test_values_are_right_aligned(self) -> None:
        """Short values are padded on the left."""
        line = _plain(Request("1"), True)
        assert line == "    |----Req: " + " " * 18 + "1---▶|"

    def test_long_values_truncated(self) -> None:
        """Values that do not fit are cut with an ellipsis."""
        lane = _lane(_plain(Request("a+b*c" * 10), True))
        assert len(lane) == LANE_WIDTH
        assert "...---▶" in lane
        assert lane.startswith("----Req: a+b*c")

    def test_extreme_integers_fit(self) -> None:
        """The widest 64-bit value keeps the lane width."""
        assert len(_lane(_plain(Reply(-(2**63)), True))) == LANE_WIDTH

    def test_styles_applied(self) -> None:
        """The raw line carries ANSI escapes."""
        assert "\x1b[" in render_message(Request("a"), True)

    def test_unknown_message(self) -> None:
        """Objects that are not protocol messages are rejected."""
        with pytest.raises(TypeError, match="Cannot render"):
            render_message(object(), True)  # type: ignore[arg-type]


class TestHeaderAndPool:
    """Header and symbol pool layout."""

    def test_header_names_both_sides(self) -> None:
        """The header labels the client and the server lifelines."""
        header = typer.unstyle(render_header())
        assert header.split() == ["client", "server"]
        assert header.index("client") < header.index("server")

    def test_pool_rows(self) -> None:
        """The stock table is laid out three entries per row."""
        lines = typer.unstyle(render_symbol_pool(DEFAULT_SYMBOLS)).splitlines()
        assert lines == [
            "Symbols Pool:",
            "a  :   1    b  :   2    c  :   3",
            "▲  :   1    ▼  :  -1    ▶  : 100",
            "◀  : 200",
        ]

    def test_pool_exact_rows(self) -> None:
        """A table of three entries fills one row."""
        lines = typer.unstyle(render_symbol_pool(SymbolTable({"x": 1, "y": 2, "z": 3}))).splitlines()
        assert len(lines) == 2

    def test_empty_pool(self) -> None:
        """An empty table renders only the title."""
        assert typer.unstyle(render_symbol_pool(SymbolTable({}))) == "Symbols Pool:"
