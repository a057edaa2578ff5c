"""Tests for symbol extraction, substitution and the integer evaluator."""

from __future__ import annotations

import pytest

from stdio_rpc.expression import (
    EvaluationError,
    evaluate_int,
    evaluate_or_default,
    extract_symbols,
    substitute,
)


class TestExtractSymbols:
    """Symbols are everything but ASCII digits, whitespace and operators."""

    @pytest.mark.parametrize(
        ("expression", "expected"),
        [
            ("1+2", ()),
            ("a+b", ("a", "b")),
            ("a+a", ("a",)),
            ("b*a+b-a", ("b", "a")),
            ("  ▲ * ▼ / ◀  ", ("▲", "▼", "◀")),
            ("(a)", ("(", "a", ")")),
            ("x١", ("x", "١")),
            ("", ()),
        ],
        ids=["numeric", "two", "dedup", "first-occurrence", "unicode", "parens", "non-ascii-digit", "empty"],
    )
    def test_extract(self, expression: str, expected: tuple[str, ...]) -> None:
        """Distinct symbols in order of first occurrence."""
        assert extract_symbols(expression) == expected

    def test_whitespace_of_all_kinds_is_ignored(self) -> None:
        """Tabs, newlines and non-breaking spaces are not symbols."""
        assert extract_symbols("a\t+\nb ") == ("a", "b")

    def test_unicode_separators_are_whitespace(self) -> None:
        """The \\x1c-\\x1f separators count as whitespace, not symbols."""
        assert extract_symbols("a\x1cb\x1f") == ("a", "b")
        assert evaluate_int("1\x1f+\x1c2") == 3


class TestSubstitute:
    """Single-pass textual substitution."""

    def test_decimal_rendering(self) -> None:
        """Each occurrence is replaced by its decimal value."""
        assert substitute("a+b*a", {"a": 1, "b": 20}) == "1+20*1"

    def test_negative_values(self) -> None:
        """Negative values keep their sign."""
        assert substitute("▶/▼", {"▶": 100, "▼": -1}) == "100/-1"

    def test_unmapped_characters_are_kept(self) -> None:
        """Characters without a value pass through unchanged."""
        assert substitute("a+q", {"a": 1}) == "1+q"

    def test_replacement_digits_are_not_rescanned(self) -> None:
        """A substituted value is never substituted again."""
        assert substitute("ab", {"a": 1, "b": 2, "1": 9}) == "12"


class TestEvaluateInt:
    """Signed 64-bit integer arithmetic."""

    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("1+2", 3),
            ("2+3*4", 14),
            ("(2+3)*4", 20),
            ("10-4-3", 3),
            ("100/-1", -100),
            ("7/2", 3),
            ("-7/2", -3),
            ("7/-2", -3),
            ("-7/-2", 3),
            ("--5", 5),
            ("+5", 5),
            ("-(1+2)", -3),
            (" 1 +\t2 ", 3),
            ("007", 7),
            ("9223372036854775807", 2**63 - 1),
            ("-9223372036854775807-1", -(2**63)),
            ("-" * 3001 + "1", -1),
            ("+-" * 2000 + "7", 7),
            ("0" * 5000 + "42", 42),
        ],
        ids=[
            "add",
            "precedence",
            "parens",
            "left-assoc",
            "negative-divisor",
            "truncate",
            "truncate-neg-lhs",
            "truncate-neg-rhs",
            "truncate-both-neg",
            "double-negation",
            "unary-plus",
            "negated-group",
            "whitespace",
            "leading-zeros",
            "int64-max",
            "int64-min",
            "deep-unary",
            "deep-mixed-signs",
            "long-leading-zeros",
        ],
    )
    def test_valid(self, text: str, expected: int) -> None:
        """Well-formed arithmetic evaluates exactly."""
        assert evaluate_int(text) == expected

    @pytest.mark.parametrize(
        "text",
        [
            "",
            "   ",
            "1+",
            "(1+2",
            "1+2)",
            "1 2",
            "1/0",
            "1/(2-2)",
            "x+1",
            "1.5",
            "٣+1",
            "9223372036854775808",
            "9223372036854775807+1",
            "-9223372036854775807-2",
            "4611686018427387904*2",
            "()",
            "1" * 5000,
            "(" * 5000 + "1" + ")" * 5000,
        ],
        ids=[
            "empty",
            "blank",
            "dangling-op",
            "unclosed",
            "unopened",
            "juxtaposed",
            "div-zero",
            "div-zero-expr",
            "symbol",
            "decimal-point",
            "non-ascii-digit",
            "literal-overflow",
            "add-overflow",
            "sub-overflow",
            "mul-overflow",
            "empty-parens",
            "huge-literal",
            "deep-parens",
        ],
    )
    def test_invalid(self, text: str) -> None:
        """Syntax errors, division by zero and overflow raise EvaluationError."""
        with pytest.raises(EvaluationError):
            evaluate_int(text)

    def test_evaluation_error_is_value_error(self) -> None:
        """Callers may catch ValueError."""
        assert issubclass(EvaluationError, ValueError)


class TestEvaluateOrDefault:
    """Failure maps to a default value."""

    def test_success(self) -> None:
        """Valid text evaluates normally."""
        assert evaluate_or_default("6*7") == 42

    def test_default_zero(self) -> None:
        """Invalid text yields 0 by default."""
        assert evaluate_or_default("(1") == 0

    def test_custom_default(self) -> None:
        """A custom default is returned on failure."""
        assert evaluate_or_default("1/0", default=-1) == -1

    @pytest.mark.parametrize(
        "text",
        ["1" * 5000, "-" * 3000 + "(" * 3000 + "1" + ")" * 3000],
        ids=["huge-literal", "deep-nesting"],
    )
    def test_pathological_input(self, text: str) -> None:
        """Oversized literals and deep nesting fall back instead of raising."""
        assert evaluate_or_default(text, default=-5) == -5
