"""Symbol extraction, substitution, and the integer expression evaluator.

The server cannot interpret symbols itself: it extracts them from the
request text, asks the client for a value for each, substitutes the
decimal values back in, and hands the purely numeric text to
:func:`evaluate_int`.

Evaluator grammar (whitespace ignored)::

    expr    := term (("+" | "-") term)*
    term    := unary (("*" | "/") unary)*
    unary   := ("+" | "-")* primary
    primary := DIGITS | "(" expr ")"

Arithmetic is signed 64-bit: division truncates toward zero, and any
intermediate value outside the int64 range is an error, as is division
by zero.
"""

from __future__ import annotations

import re
from collections.abc import Mapping

__all__ = [
    "OPERATORS",
    "EvaluationError",
    "evaluate_int",
    "evaluate_or_default",
    "extract_symbols",
    "substitute",
]

OPERATORS = frozenset("+-*/")
"""Characters that are never treated as symbols."""

_ASCII_DIGITS = frozenset("0123456789")
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1
_INT64_DIGITS = len(str(_INT64_MAX))
_TOKEN = re.compile(r"\s*(?:([0-9]+)|(.))")


class EvaluationError(ValueError):
    """The expression is not valid integer arithmetic or overflows int64."""


# ---------------------------------------------------------------------------
# Symbols
# ---------------------------------------------------------------------------


def _is_symbol(ch: str) -> bool:
    # str.isspace, so the \x1c-\x1f separators count as whitespace too
    return not (ch in _ASCII_DIGITS or ch.isspace() or ch in OPERATORS)


def extract_symbols(expression: str) -> tuple[str, ...]:
    """Return the distinct symbols of *expression* in order of first appearance.

    A symbol is any character that is not an ASCII digit, whitespace, or
    one of ``+ - * /``.  Parentheses are symbols too.
    """
    return tuple(dict.fromkeys(ch for ch in expression if _is_symbol(ch)))


def substitute(expression: str, values: Mapping[str, int]) -> str:
    """Replace every occurrence of each symbol in *values* with its decimal value."""
    return "".join(str(values[ch]) if ch in values else ch for ch in expression)


# ---------------------------------------------------------------------------
# Evaluator
# ---------------------------------------------------------------------------


def _tokenize(text: str) -> list[str]:
    tokens: list[str] = []
    text = text.strip()
    pos = 0
    while pos < len(text):
        match = _TOKEN.match(text, pos)
        if match is None:
            raise EvaluationError(f"Unexpected input at offset {pos}")
        number, op = match.groups()
        if number is not None:
            tokens.append(number)
        elif op in OPERATORS or op in "()":
            tokens.append(op)
        else:
            raise EvaluationError(f"Unexpected character {op!r} at offset {match.start(2)}")
        pos = match.end()
    return tokens


def _checked(value: int) -> int:
    if not _INT64_MIN <= value <= _INT64_MAX:
        raise EvaluationError(f"Integer overflow: {value} does not fit in 64 bits")
    return value


class _Parser:
    """Recursive-descent evaluator over a token list."""

    __slots__ = ("_pos", "_tokens")

    def __init__(self, tokens: list[str]) -> None:
        self._tokens = tokens
        self._pos = 0

    def _peek(self) -> str | None:
        return self._tokens[self._pos] if self._pos < len(self._tokens) else None

    def _take(self) -> str:
        token = self._peek()
        if token is None:
            raise EvaluationError("Unexpected end of expression")
        self._pos += 1
        return token

    def parse(self) -> int:
        if not self._tokens:
            raise EvaluationError("Empty expression")
        value = self._expr()
        if self._peek() is not None:
            raise EvaluationError(f"Unexpected token {self._peek()!r}")
        return value

    def _expr(self) -> int:
        value = self._term()
        while self._peek() in ("+", "-"):
            op = self._take()
            rhs = self._term()
            value = _checked(value + rhs if op == "+" else value - rhs)
        return value

    def _term(self) -> int:
        value = self._unary()
        while self._peek() in ("*", "/"):
            op = self._take()
            rhs = self._unary()
            if op == "*":
                value = _checked(value * rhs)
            else:
                if rhs == 0:
                    raise EvaluationError("Division by zero")
                quotient = abs(value) // abs(rhs)
                value = _checked(quotient if (value < 0) == (rhs < 0) else -quotient)
        return value

    def _unary(self) -> int:
        negations = 0
        while self._peek() in ("+", "-"):
            if self._take() == "-":
                negations += 1
        value = self._primary()
        if not negations:
            return value
        # every intermediate negation must fit, so -(-(MIN)) still overflows
        negated = _checked(-value)
        return negated if negations % 2 else value

    def _primary(self) -> int:
        token = self._take()
        if token == "(":
            value = self._expr()
            if self._take() != ")":
                raise EvaluationError("Expected ')'")
            return value
        if token[0] in _ASCII_DIGITS:
            digits = token.lstrip("0") or "0"
            if len(digits) > _INT64_DIGITS:
                raise EvaluationError(f"Integer overflow: {len(digits)}-digit literal does not fit in 64 bits")
            return _checked(int(digits))
        raise EvaluationError(f"Unexpected token {token!r}")


def evaluate_int(text: str) -> int:
    """Evaluate integer arithmetic in *text*.

    Raises:
        EvaluationError: On syntax errors, division by zero, or int64 overflow.

    """
    try:
        return _Parser(_tokenize(text)).parse()
    except RecursionError:
        raise EvaluationError("Expression is nested too deeply") from None


def evaluate_or_default(text: str, default: int = 0) -> int:
    """Evaluate *text*, returning *default* when evaluation fails."""
    try:
        return evaluate_int(text)
    except EvaluationError:
        return default
