"""Console transcript of an exchange, as shown by ``stdio-rpc repl``.

Each message becomes one line drawn between the client and server
lifelines, with an arrow pointing in the direction of travel::

     client                         server
        |----Req:              a+b---▶|
        |◀---Query:              a?----|
        |----Reply:              1!---▶|

Colours are applied with :func:`typer.style`; ``typer.unstyle`` recovers
the plain layout.
"""

from __future__ import annotations

from collections.abc import Mapping

import typer

from stdio_rpc.rpc._envelope import Envelope
from stdio_rpc.rpc._messages import BadSeq, Log, Query, Reply, Request, Response

__all__ = ["LANE_WIDTH", "render_header", "render_message", "render_symbol_pool"]

LANE_WIDTH = 32
"""Visible characters between the two lifeline bars."""

_INDENT = "    "
_SHAFT = "----"
_POOL_COLUMNS = 3


def _truncate(text: str, width: int) -> str:
    if len(text) <= width:
        return text
    return text[: max(width - 3, 0)] + "..."


def _label_and_value(message: Envelope) -> tuple[str, str, str]:
    """Return ``(styled label, styled value, suffix)`` for *message*."""
    if isinstance(message, Request):
        width = _value_width("Req", "")
        return (
            typer.style("Req", fg="green", bold=True),
            typer.style(_truncate(message.expression, width).rjust(width), fg="green"),
            "",
        )
    if isinstance(message, Reply):
        return _pair("Reply", str(message.value), "!", label_style={"fg": "bright_yellow", "italic": True}, fg="yellow")
    if isinstance(message, Query):
        return _pair("Query", message.symbol, "?", label_style={"fg": "yellow"}, fg="yellow")
    if isinstance(message, Response):
        return _pair("Response", str(message.value), "", label_style={"fg": "bright_green", "italic": True}, fg="green")
    if isinstance(message, Log):
        return _pair("Log", message.message, "!", label_style={}, fg=None)
    if isinstance(message, BadSeq):
        return _pair("BadSeq", "Bad seq", "!", label_style={"fg": "red"}, fg="red")
    raise TypeError(f"Cannot render {type(message).__name__}")


def _value_width(label: str, suffix: str) -> int:
    # shaft + label + ": " + value + suffix + shaft-with-arrowhead
    return LANE_WIDTH - 2 * len(_SHAFT) - len(label) - 2 - len(suffix)


def _pair(
    label: str,
    value: str,
    suffix: str,
    *,
    label_style: Mapping[str, object],
    fg: str | None,
) -> tuple[str, str, str]:
    width = _value_width(label, suffix)
    styled_label = typer.style(label, bold=True, **label_style)  # type: ignore[arg-type]
    styled_value = typer.style(_truncate(value, width).rjust(width), fg=fg)
    return styled_label, styled_value, suffix


def render_message(message: Envelope, outgoing: bool) -> str:
    """Format one transcript line.

    Args:
        message: Any ``ClientMessage`` or ``ServerMessage`` variant.
        outgoing: ``True`` for messages travelling client → server (arrow
            points right), ``False`` for server → client.

    Returns:
        The styled line.  Long values are truncated with ``...`` so the
        lane width stays fixed.

    Raises:
        TypeError: If *message* is not a known variant.

    """
    label, value, suffix = _label_and_value(message)
    body = f"{label}: {value}{suffix}"
    if outgoing:
        return f"{_INDENT}|{_SHAFT}{body}{_SHAFT[:-1]}▶|"
    return f"{_INDENT}|◀{_SHAFT[:-1]}{body}{_SHAFT}|"


def render_header() -> str:
    """Column titles placed above a transcript."""
    return f"{'client':^{len(_INDENT) * 2}}{'':^{LANE_WIDTH - len(_INDENT) * 2 + 2}}{'server':^{len(_INDENT) * 2}}"


def render_symbol_pool(table: Mapping[str, int]) -> str:
    """Lay out *table* three entries per row under a ``Symbols Pool:`` title."""
    lines = [typer.style("Symbols Pool:", fg="blue", bold=True)]
    row: list[str] = []
    for symbol, value in table.items():
        row.append(f"{typer.style(symbol.ljust(3), fg='cyan')}:{value:>4}")
        if len(row) == _POOL_COLUMNS:
            lines.append("    ".join(row))
            row = []
    if row:
        lines.append("    ".join(row))
    return "\n".join(lines)
