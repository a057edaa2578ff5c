"""Exchange states, outcomes, and the transition tracker shared by both sides.

One exchange runs ``Request -> (Query -> Reply)* -> Response``, or ends
early with ``BadSeq``::

    IDLE --Request--> OPEN --Query(s)--> AWAITING_REPLY(s) --Reply--> OPEN
    OPEN --Response--> CLOSED --> IDLE
    any state --BadSeq--> IDLE

The server drives the exchange; the client mirrors the same states from
the messages it sees.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum

from stdio_rpc.rpc._debug import wire_exchange_logger

__all__ = [
    "CLOSED",
    "IDLE",
    "OPEN",
    "ExchangeOutcome",
    "ExchangeState",
    "Phase",
]


class Phase(Enum):
    """Coarse position within an exchange."""

    IDLE = "idle"
    OPEN = "open"
    AWAITING_REPLY = "awaiting_reply"
    CLOSED = "closed"


@dataclass(frozen=True)
class ExchangeState:
    """Exchange phase plus the symbol whose ``Reply`` is outstanding, if any."""

    phase: Phase
    symbol: str | None = None

    @classmethod
    def awaiting_reply(cls, symbol: str) -> ExchangeState:
        """State after ``Query(symbol)`` has been sent or received."""
        return cls(Phase.AWAITING_REPLY, symbol)

    def __str__(self) -> str:
        """Render as ``IDLE`` or ``AWAITING_REPLY('a')``."""
        if self.symbol is None:
            return self.phase.name
        return f"{self.phase.name}({self.symbol!r})"


IDLE = ExchangeState(Phase.IDLE)
OPEN = ExchangeState(Phase.OPEN)
CLOSED = ExchangeState(Phase.CLOSED)


@dataclass
class ExchangeOutcome:
    """What happened during one exchange, as seen by one side.

    Attributes:
        expression: Request text, or ``None`` when the exchange never opened
            because the first message was not a ``Request``.
        queried: Symbols queried, in order.
        values: Resolved value per symbol.
        result: Value carried by ``Response``; ``None`` if the exchange was
            aborted.
        bad_seq: Whether the exchange ended with ``BadSeq``.

    """

    expression: str | None
    queried: list[str] = field(default_factory=list)
    values: dict[str, int] = field(default_factory=dict)
    result: int | None = None
    bad_seq: bool = False

    @property
    def aborted(self) -> bool:
        """True when no ``Response`` was produced."""
        return self.result is None


class _StateTracker:
    """Current exchange state for one side, logging every transition."""

    __slots__ = ("_role", "_state")

    def __init__(self, role: str) -> None:
        self._role = role
        self._state = IDLE

    @property
    def state(self) -> ExchangeState:
        return self._state

    def move(self, new: ExchangeState) -> None:
        if wire_exchange_logger.isEnabledFor(logging.DEBUG):
            wire_exchange_logger.debug("%s: %s -> %s", self._role, self._state, new)
        self._state = new
