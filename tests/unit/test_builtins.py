"""Tests for built-in math, string, collection, and mutating functions."""

from __future__ import annotations

from collections.abc import Callable

import pytest

from tally.core.errors import (
    ArityMismatchError,
    InvalidOperandError,
    NotCallableError,
    UndefinedVariableError,
)

Calc = Callable[[str], str]


# ============================================================================
# Math
# ============================================================================


class TestMathFunctions:
    @pytest.mark.parametrize(
        ("source", "expected"),
        [
            ("sqrt(2)", "1.4142135624"),
            ("cbrt(27)", "3"),
            ("cbrt(-8)", "-2"),
            ("root(81, 4)", "3"),
            ("abs(-5 km)", "5 km"),
            ("log(1000)", "3"),
            ("log(8, 2)", "3"),
            ("ln(1)", "0"),
            ("fact(10)", "3628800"),
            ("round(2.345, 2)", "2.35"),
            ("round(2.5)", "3"),
            ("ceil(1.2)", "2"),
            ("floor(-1.2)", "-2"),
            ("floor(2.7 km)", "2 km"),
            ("sin(0)", "0"),
            ("cos(0)", "1"),
            ("sin(90 deg)", "1"),
            ("min(3, 1, 2)", "1"),
            ("max([1 km, 900 m])", "1 km"),
        ],
    )
    def test_expression(self, calc: Calc, source: str, expected: str) -> None:
        assert calc(source) == expected

    def test_sqrt_of_negative(self, calc: Calc) -> None:
        with pytest.raises(InvalidOperandError):
            calc("sqrt(-4)")

    def test_log_of_zero(self, calc: Calc) -> None:
        with pytest.raises(InvalidOperandError):
            calc("ln(0)")

    def test_wrong_argument_count(self, calc: Calc) -> None:
        with pytest.raises(ArityMismatchError, match=r"sqrt\(\) expects 1 argument"):
            calc("sqrt(1, 2)")

    def test_trig_rejects_lengths(self, calc: Calc) -> None:
        with pytest.raises(InvalidOperandError, match="angle"):
            calc("sin(5 m)")


class TestStringFunctions:
    @pytest.mark.parametrize(
        ("source", "expected"),
        [
            ('trim("  padded  ")', "padded"),
            ('lower("MiXeD")', "mixed"),
            ('charat("tally", 1)', "a"),
            ('charat("tally", 10)', ""),
            ('substr("tally", 2)', "lly"),
            ('reverse("abc")', "cba"),
            ('includes("calculator", "calc")', "true"),
            ("format(2.5 h)", "2h 30min"),
            (
                'format(date("2024-03-15T14:05", "UTC"), "EEE d MMM yyyy, hh:mm a")',
                "Fri 15 Mar 2024, 02:05 PM",
            ),
        ],
    )
    def test_expression(self, calc: Calc, source: str, expected: str) -> None:
        assert calc(source) == expected

    def test_negative_precision(self, calc: Calc) -> None:
        with pytest.raises(InvalidOperandError):
            calc("format(1.5, -1)")

    def test_upper_needs_string(self, calc: Calc) -> None:
        with pytest.raises(InvalidOperandError, match="expects a string"):
            calc("upper(5)")


# ============================================================================
# Arrays and objects
# ============================================================================


class TestArrayFunctions:
    @pytest.mark.parametrize(
        ("source", "expected"),
        [
            ("push([1, 2], 3, 4)", "[1, 2, 3, 4]"),
            ("pop([1, 2, 3])", "[1, 2]"),
            ("shift([1, 2, 3])", "[2, 3]"),
            ("unshift([2, 3], 1)", "[1, 2, 3]"),
            ("append([1], [2, 3])", "[1, 2, 3]"),
            ("prepend([3], [1, 2])", "[1, 2, 3]"),
            ("concat([1], [2], [3])", "[1, 2, 3]"),
            ("slice([1, 2, 3, 4], 1, 3)", "[2, 3]"),
            ("slice([1, 2, 3, 4], -2)", "[3, 4]"),
            ("reverse([1, 2, 3])", "[3, 2, 1]"),
            ("first([])", "null"),
            ("last([1, 2, 3])", "3"),
            ("length([1, 2])", "2"),
            ("includes([1 km, 2 km], 1000 m)", "true"),
            ("sum([1 m, 50 cm])", "1.5 m"),
            ("sum([])", "0"),
            ('sum([1, "skip", 2])', "3"),
            ("avg([2, 4])", "3"),
            ("average([])", "null"),
            ("range(4)", "[0, 1, 2, 3]"),
            ("range(1, 10, 3)", "[1, 4, 7]"),
            ("range(3, 0, -1)", "[3, 2, 1]"),
        ],
    )
    def test_expression(self, calc: Calc, source: str, expected: str) -> None:
        assert calc(source) == expected

    def test_range_zero_step(self, calc: Calc) -> None:
        with pytest.raises(InvalidOperandError, match="step cannot be zero"):
            calc("range(0, 5, 0)")

    def test_push_needs_array(self, calc: Calc) -> None:
        with pytest.raises(InvalidOperandError, match="expects an array"):
            calc("push(1, 2)")


class TestArrayOperators:
    @pytest.mark.parametrize(
        ("source", "expected"),
        [
            ("[1, 2] + [3]", "[1, 2, 3]"),
            ("[1, 2] + 3", "[1, 2, 3]"),
            ("[1, 2, 3, 2] - 2", "[1, 3]"),
            ("[1, 2, 3] - [1, 3]", "[2]"),
            ("[1, 2, 3][-1]", "3"),
            ("[1][5]", "null"),
            ("[1, 2, 3].length", "3"),
            ("[1, 2] == [1, 2]", "true"),
        ],
    )
    def test_expression(self, calc: Calc, source: str, expected: str) -> None:
        assert calc(source) == expected


class TestObjectFunctions:
    @pytest.mark.parametrize(
        ("source", "expected"),
        [
            ("keys({a: 1, b: 2})", '["a", "b"]'),
            ("values({a: 1, b: 2})", "[1, 2]"),
            ('has({a: 1}, "a")', "true"),
            ("length({a: 1, b: 2})", "2"),
            ("{a: 1}.a", "1"),
            ('{a: 1}.b ?? "missing"', "missing"),
            ('{a: 1}["a"]', "1"),
            ('{"1": "one"}[1]', "one"),
            ("map({a: 1, b: 2}, x => x * 10)", "{a: 10, b: 20}"),
            ("filter({a: 1, b: 2}, x => x > 1)", "{b: 2}"),
        ],
    )
    def test_expression(self, calc: Calc, source: str, expected: str) -> None:
        assert calc(source) == expected


class TestHigherOrderFunctions:
    @pytest.mark.parametrize(
        ("source", "expected"),
        [
            ("map([1, 2, 3], x => x * 2)", "[2, 4, 6]"),
            ("filter([1, 2, 3, 4], x => x % 2 == 0)", "[2, 4]"),
            ("reduce([1, 2, 3], (acc, x) => acc + x)", "6"),
            ("reduce([1, 2, 3], (acc, x) => acc + x, 10)", "16"),
            ("sort([3, 1, 2])", "[1, 2, 3]"),
            ("sort([3, 1, 2], (a, b) => b - a)", "[3, 2, 1]"),
            ("sort([1 km, 10 m, 1 mi])", "[10 m, 1 km, 1 mi]"),
            ("groupBy([1, 2, 3, 4], x => x % 2)", "{1: [1, 3], 0: [2, 4]}"),
            ("find([1, 5, 10], x => x > 3)", "5"),
            ("find([1, 2], x => x > 3)", "null"),
            ("findIndex([1, 5, 10], x => x > 3)", "1"),
            ("findIndex([1, 2], x => x > 3)", "-1"),
        ],
    )
    def test_expression(self, calc: Calc, source: str, expected: str) -> None:
        assert calc(source) == expected

    def test_callback_with_wrong_arity(self, calc: Calc) -> None:
        with pytest.raises(ArityMismatchError):
            calc("map([1, 2], (a, b) => a)")

    def test_callback_must_be_function(self, calc: Calc) -> None:
        with pytest.raises(NotCallableError):
            calc("map([1, 2], 3)")

    def test_partial_as_callback(self, calc: Calc) -> None:
        calc("add(a, b) = a + b")
        assert calc("map([1, 2], add(10))") == "[11, 12]"

    def test_reduce_empty_without_initial(self, calc: Calc) -> None:
        with pytest.raises(InvalidOperandError, match="initial value"):
            calc("reduce([], (acc, x) => acc + x)")

    def test_comparator_must_return_number(self, calc: Calc) -> None:
        with pytest.raises(InvalidOperandError, match="comparator"):
            calc('sort([2, 1], (a, b) => "x")')


# ============================================================================
# Mutating variants
# ============================================================================


class TestMutatingFunctions:
    """``name!`` rebinds the variable it was called on."""

    def test_push_rebinds(self, calc: Calc) -> None:
        calc("items = [1, 2, 3]")
        assert calc("push!(items, 4)") == "[1, 2, 3, 4]"
        assert calc("items") == "[1, 2, 3, 4]"

    def test_pop_returns_removed_element(self, calc: Calc) -> None:
        calc("items = [1, 2, 3]")
        assert calc("pop!(items)") == "3"
        assert calc("items") == "[1, 2]"

    def test_shift_returns_first(self, calc: Calc) -> None:
        calc("items = [1, 2, 3]")
        assert calc("shift!(items)") == "1"
        assert calc("items") == "[2, 3]"

    def test_pop_empty_gives_null(self, calc: Calc) -> None:
        calc("items = []")
        assert calc("pop!(items)") == "null"
        assert calc("items") == "[]"

    def test_sort_and_filter(self, calc: Calc) -> None:
        calc("items = [3, 1, 4, 1, 5]")
        calc("sort!(items)")
        calc("filter!(items, x => x > 1)")
        assert calc("items") == "[3, 4, 5]"

    def test_other_bindings_keep_old_value(self, calc: Calc) -> None:
        calc("items = [1]")
        calc("snapshot = items")
        calc("push!(items, 2)")
        assert calc("snapshot") == "[1]"

    def test_needs_variable(self, calc: Calc) -> None:
        with pytest.raises(InvalidOperandError, match="needs a variable"):
            calc("push!([1], 2)")

    def test_unbound_variable(self, calc: Calc) -> None:
        with pytest.raises(UndefinedVariableError):
            calc("push!(nothing_here, 2)")

    def test_unknown_mutating_function(self, calc: Calc) -> None:
        calc("items = [1]")
        with pytest.raises(UndefinedVariableError, match="Unknown function: sum!"):
            calc("sum!(items)")
