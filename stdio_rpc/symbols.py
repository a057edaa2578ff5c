"""Client-side symbol resolution.

The client answers every ``Query`` from a static table.  Unknown symbols
resolve to the table's default rather than failing, so an exchange always
completes with a ``Response``.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from types import MappingProxyType
from typing import Protocol

__all__ = [
    "DEFAULT_SYMBOLS",
    "SymbolResolver",
    "SymbolTable",
]

_logger = logging.getLogger("stdio_rpc.symbols")


class SymbolResolver(Protocol):
    """Anything that can supply an integer for a single-character symbol."""

    def resolve(self, symbol: str) -> int:
        """Return the value for *symbol*; never raises for unknown symbols."""
        ...


class SymbolTable(Mapping[str, int]):
    """Immutable symbol → value table with a fallback for misses."""

    __slots__ = ("_default", "_values")

    def __init__(self, values: Mapping[str, int], *, default: int = 0) -> None:
        """Initialize from a mapping of single-character symbols to values.

        Raises:
            ValueError: If a key is not exactly one character.

        """
        bad = [k for k in values if len(k) != 1]
        if bad:
            raise ValueError(f"Symbols must be single characters, got {bad!r}")
        self._values: Mapping[str, int] = MappingProxyType(dict(values))
        self._default = default

    @property
    def default(self) -> int:
        """Value returned for symbols not in the table."""
        return self._default

    def resolve(self, symbol: str) -> int:
        """Return the value for *symbol*, or :attr:`default` when absent."""
        try:
            return self._values[symbol]
        except KeyError:
            _logger.debug("Unknown symbol %r, using default %d", symbol, self._default)
            return self._default

    def __getitem__(self, symbol: str) -> int:
        return self._values[symbol]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        """Return a string representation suitable for debugging."""
        return f"SymbolTable({dict(self._values)!r}, default={self._default})"


DEFAULT_SYMBOLS = SymbolTable(
    {
        "a": 1,
        "b": 2,
        "c": 3,
        "▲": 1,
        "▼": -1,
        "▶": 100,
        "◀": 200,
    }
)
"""The stock table used by the interactive client."""
