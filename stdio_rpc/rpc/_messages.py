"""Protocol messages exchanged between the client and the expression server.

Two closed families, both framed with :class:`LengthPrefixedCodec`:

- :class:`ClientMessage`: ``Request`` opens an exchange, ``Reply`` answers
  the outstanding ``Query``.
- :class:`ServerMessage`: ``Query`` asks for one symbol's value,
  ``Response`` carries the result and closes the exchange, ``Log`` is a
  non-sequencing side message, ``BadSeq`` reports a sequencing violation.
"""

from __future__ import annotations

from dataclasses import dataclass

from stdio_rpc.log import Level
from stdio_rpc.rpc._codec import LengthPrefixedCodec
from stdio_rpc.rpc._envelope import Envelope

__all__ = [
    "INT64_MAX",
    "INT64_MIN",
    "BadSeq",
    "ClientMessage",
    "Log",
    "Query",
    "Reply",
    "Request",
    "Response",
    "ServerMessage",
]

INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1


def _check_int64(owner: str, value: object) -> None:
    if not isinstance(value, int) or isinstance(value, bool):
        raise TypeError(f"{owner}.value must be an int, got {type(value).__name__}")
    if not INT64_MIN <= value <= INT64_MAX:
        raise ValueError(f"{owner}.value {value} is outside the signed 64-bit range")


def _check_text(owner: str, name: str, value: object) -> None:
    if not isinstance(value, str):
        raise TypeError(f"{owner}.{name} must be a str, got {type(value).__name__}")


# ---------------------------------------------------------------------------
# Client -> server
# ---------------------------------------------------------------------------


class ClientMessage(Envelope, codec=LengthPrefixedCodec()):
    """Messages written by the client on the server's stdin."""


@dataclass(frozen=True)
class Request(ClientMessage):
    """Open an exchange with the raw expression text.

    Attributes:
        expression: Expression as written by the user, symbols included.

    """

    expression: str

    def __post_init__(self) -> None:
        """Validate the payload."""
        _check_text("Request", "expression", self.expression)


@dataclass(frozen=True)
class Reply(ClientMessage):
    """Answer the most recent outstanding ``Query``."""

    value: int

    def __post_init__(self) -> None:
        """Validate the payload."""
        _check_int64("Reply", self.value)


# ---------------------------------------------------------------------------
# Server -> client
# ---------------------------------------------------------------------------


class ServerMessage(Envelope, codec=LengthPrefixedCodec()):
    """Messages written by the server on its stdout."""


@dataclass(frozen=True)
class Query(ServerMessage):
    """Ask the client for the value of one symbol.

    Attributes:
        symbol: Exactly one character (any Unicode code point).

    """

    symbol: str

    def __post_init__(self) -> None:
        """Validate the payload."""
        _check_text("Query", "symbol", self.symbol)
        if len(self.symbol) != 1:
            raise ValueError(f"Query.symbol must be a single character, got {self.symbol!r}")


@dataclass(frozen=True)
class Response(ServerMessage):
    """Final evaluated result; closes the exchange."""

    value: int

    def __post_init__(self) -> None:
        """Validate the payload."""
        _check_int64("Response", self.value)


@dataclass(frozen=True)
class Log(ServerMessage):
    """Informational side message; does not advance the exchange."""

    message: str
    level: Level = Level.INFO

    def __post_init__(self) -> None:
        """Validate the payload."""
        _check_text("Log", "message", self.message)
        if not isinstance(self.level, Level):
            raise TypeError(f"Log.level must be a Level, got {type(self.level).__name__}")


@dataclass(frozen=True)
class BadSeq(ServerMessage):
    """The peer's last message was not valid in the current protocol state."""
