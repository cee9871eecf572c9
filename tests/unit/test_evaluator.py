"""Tests for evaluating calculator lines end to end.

Covers:
- Arithmetic, units, currency, percentages, bases
- Strings, logic, comparisons, type checks
- Variables, functions, lambdas, partial application, pipes
- History aggregates, dates, error reporting
"""

from __future__ import annotations

from collections.abc import Callable
from contextlib import nullcontext
from decimal import Decimal

import pytest

from tally.core.config import CalculatorConfig, CurrencyConfig
from tally.core.engine import CalculatorSession
from tally.core.errors import (
    DivisionByZeroError,
    IncompatibleDimensionsError,
    InvalidOperandError,
    ParseError,
    RecursionLimitExceededError,
    UndefinedVariableError,
    UnknownCurrencyError,
)
from tally.core.expression_lang import evaluate_source, evaluator
from tally.core.units.currency import CurrencySnapshot
from tally.core.values import Number

Calc = Callable[[str], str]


# ============================================================================
# Numbers and units
# ============================================================================


class TestArithmetic:
    """Exact decimal arithmetic."""

    @pytest.mark.parametrize(
        ("source", "expected"),
        [
            ("1 + 2 * 3", "7"),
            ("(1 + 2) * 3", "9"),
            ("2 ^ 10", "1024"),
            ("0.1 + 0.2", "0.3"),
            ("10 / 4", "2.5"),
            ("-7 % 3", "2"),
            ("7 mod 3", "1"),
            ("2 ^ 0.5", "1.4142135624"),
            ("1_000_000 / 3", "333333.3333333333"),
        ],
    )
    def test_expression(self, calc: Calc, source: str, expected: str) -> None:
        assert calc(source) == expected

    def test_division_by_zero(self, calc: Calc) -> None:
        with pytest.raises(DivisionByZeroError):
            calc("1 / 0")

    def test_evaluate_source_without_session(self) -> None:
        assert evaluate_source("6 * 7") == Number(Decimal(42))


class TestUnits:
    """Quantities carry dimensions through arithmetic and conversion."""

    @pytest.mark.parametrize(
        ("source", "expected"),
        [
            ("5 km + 300 m", "5.3 km"),
            ("5 km to m", "5000 m"),
            ("1 mi to km", "1.609344 km"),
            ("100 km / 2 h", "50 km/h"),
            ("3 m * 4 m", "12 m²"),
            ("10 kg * 9.81 m/s^2", "98.1 N"),
            ("100 °C to °F", "212 °F"),
            ("sqrt(16 m^2)", "4 m"),
            ("1 h + 30 min", "1h 30min"),
            ("72 km/h to m/s", "20 m/s"),
            ("2 * 3 kg", "6 kg"),
            ("[1 km, 500 m] to m", "[1000 m, 500 m]"),
            ("5 in to cm", "12.7 cm"),
            ("25.4 cm to in", "10 in"),
            ("12 in + 1 ft", "24 in"),
            ("3 ft in in", "36 in"),
        ],
    )
    def test_expression(self, calc: Calc, source: str, expected: str) -> None:
        assert calc(source) == expected

    def test_incompatible_addition(self, calc: Calc) -> None:
        with pytest.raises(IncompatibleDimensionsError):
            calc("5 m + 3 s")

    def test_bare_unit_is_one(self, calc: Calc) -> None:
        assert calc("km to m") == "1000 m"


class TestCurrency:
    """Currency codes convert through the session's snapshot."""

    def test_convert(self, calc: Calc) -> None:
        assert calc("10 USD to EUR") == "5 EUR"

    def test_mixed_addition_keeps_left(self, calc: Calc) -> None:
        assert calc("10 EUR + 10 USD") == "15 EUR"

    def test_unknown_code(self, calc: Calc) -> None:
        with pytest.raises(UnknownCurrencyError):
            calc("1 JPY to USD")


class TestPercentages:
    @pytest.mark.parametrize(
        ("source", "expected"),
        [
            ("50%", "50%"),
            ("20% of 50", "10"),
            ("100 + 10%", "110"),
            ("200 - 25%", "150"),
            ("50 km + 10%", "55 km"),
        ],
    )
    def test_expression(self, calc: Calc, source: str, expected: str) -> None:
        assert calc(source) == expected

    def test_percent_of_quantity_rejected(self, calc: Calc) -> None:
        calc("dist = 5 km")
        with pytest.raises(InvalidOperandError, match="Only plain numbers"):
            calc("dist%")


class TestBases:
    """Hex and binary literals keep their display base."""

    @pytest.mark.parametrize(
        ("source", "expected"),
        [
            ("0xFF + 1", "0x100"),
            ("255 to hex", "0xFF"),
            ("10 to binary", "0b1010"),
            ("0xFF to decimal", "255"),
            ("0xF0 & 0x3C", "0x30"),
            ("0b1 << 3", "0b1000"),
            ("0b1100 | 0b0011", "0b1111"),
            ("256 >> 4", "16"),
            ("0xFF / 2", "127.5"),
        ],
    )
    def test_expression(self, calc: Calc, source: str, expected: str) -> None:
        assert calc(source) == expected

    def test_fraction_to_hex(self, calc: Calc) -> None:
        with pytest.raises(InvalidOperandError):
            calc("1.5 to hex")

    def test_negative_shift(self, calc: Calc) -> None:
        with pytest.raises(InvalidOperandError, match="Shift count"):
            calc("1 << -1")


# ============================================================================
# Strings, logic, types
# ============================================================================


class TestStrings:
    @pytest.mark.parametrize(
        ("source", "expected"),
        [
            ('"ab" * 3', "ababab"),
            ('3 * "ab"', "ababab"),
            ('"file.txt" - ".txt"', "file"),
            ('"file.txt" - ".csv"', "file.txt"),
            ('"distance: " + 5 km', "distance: 5 km"),
            ('upper("abc")', "ABC"),
            ('len("hello")', "5"),
            ('"hello"[1]', "e"),
            ('"hello"[-1]', "o"),
            ('"hello".length', "5"),
            ('substr("calculator", 2, 3)', "lcu"),
            ("format(1/3, 2)", "0.33"),
            ('format(date("2024-01-31", "UTC"), "dd.MM.yyyy")', "31.01.2024"),
        ],
    )
    def test_expression(self, calc: Calc, source: str, expected: str) -> None:
        assert calc(source) == expected


class TestLogic:
    @pytest.mark.parametrize(
        ("source", "expected"),
        [
            ("true and false", "false"),
            ("0 or 5", "true"),
            ("not 0", "true"),
            ("null ?? 3", "3"),
            ("0 ?? 3", "0"),
            ('if 2 > 1: "yes" else: "no"', "yes"),
            ("1 > 2 ? 1 : 2", "2"),
            ("1 km > 999 m", "true"),
            ("1 km == 1000 m", "true"),
            ('"a" < "b"', "true"),
        ],
    )
    def test_expression(self, calc: Calc, source: str, expected: str) -> None:
        assert calc(source) == expected

    def test_and_short_circuits(self, calc: Calc) -> None:
        assert calc("false and undefined_name") == "false"


class TestTypeChecks:
    @pytest.mark.parametrize(
        ("source", "expected"),
        [
            ("5 km is length", "true"),
            ("5 km is distance", "true"),
            ("5 kg is speed", "false"),
            ("5 is number", "true"),
            ("null is not null", "false"),
            ("type(x => x)", "function"),
            ("type([1])", "array"),
            ("unit(9.81 m/s^2)", "m/s²"),
        ],
    )
    def test_expression(self, calc: Calc, source: str, expected: str) -> None:
        assert calc(source) == expected

    def test_unknown_type(self, calc: Calc) -> None:
        with pytest.raises(InvalidOperandError, match="Unknown type"):
            calc("5 is banana")


# ============================================================================
# Names, functions, pipes
# ============================================================================


class TestVariables:
    def test_assignment_persists(self, calc: Calc) -> None:
        assert calc("price = 12.5") == "12.5"
        assert calc("price * 2") == "25"

    def test_undefined(self, calc: Calc) -> None:
        with pytest.raises(UndefinedVariableError) as exc_info:
            calc("foo + 1")
        assert exc_info.value.name == "foo"

    def test_unknown_function(self, calc: Calc) -> None:
        with pytest.raises(UndefinedVariableError, match="Unknown function"):
            calc("frobnicate(1)")

    def test_variable_shadows_unit(self, calc: Calc) -> None:
        calc("m = 3")
        assert calc("m * 2") == "6"

    def test_constants(self, calc: Calc) -> None:
        assert calc("pi") == "3.1415926536"
        assert calc("e") == "2.7182818285"


class TestCompoundAssignment:
    @pytest.mark.parametrize(
        ("statement", "expected"),
        [
            ("x += 5", "15"),
            ("x -= 8", "2"),
            ("x *= 2", "20"),
            ("x /= 4", "2.5"),
        ],
    )
    def test_numbers(self, calc: Calc, statement: str, expected: str) -> None:
        calc("x = 10")
        assert calc(statement) == expected
        assert calc("x") == expected

    def test_quantities(self, calc: Calc) -> None:
        calc("dist = 1 km")
        assert calc("dist += 250 m") == "1.25 km"

    def test_strings(self, calc: Calc) -> None:
        calc('word = "report.txt"')
        assert calc('word -= ".txt"') == "report"
        assert calc('word += "s"') == "reports"

    def test_arrays(self, calc: Calc) -> None:
        calc("items = [1, 2]")
        assert calc("items += 4") == "[1, 2, 4]"
        assert calc("items -= 1") == "[2, 4]"

    def test_dates(self, calc: Calc) -> None:
        calc("deadline = 15.03.2024")
        assert calc("deadline += 5 d") == "2024-03-20"

    def test_undefined_variable(self, calc: Calc) -> None:
        with pytest.raises(UndefinedVariableError) as exc_info:
            calc("missing += 1")
        assert exc_info.value.name == "missing"


class TestFunctions:
    def test_recursive_definition(self, calc: Calc) -> None:
        assert calc("fib(n) = n < 2 ? n : fib(n - 1) + fib(n - 2)") == "<function fib(n)>"
        assert calc("fib(15)") == "610"

    def test_partial_application(self, calc: Calc) -> None:
        calc("add(a, b) = a + b")
        assert calc("inc = add(1)") == "<partial(b)>"
        assert calc("inc(41)") == "42"

    def test_lambda_closure_is_captured(self, calc: Calc) -> None:
        calc("k = 10")
        calc("addk = x => x + k")
        calc("k = 1")
        assert calc("addk(1)") == "11"

    def test_named_function_sees_current_scope(self, calc: Calc) -> None:
        calc("k = 10")
        calc("addk(x) = x + k")
        calc("k = 1")
        assert calc("addk(1)") == "2"

    def test_recursion_limit(self, snapshot: CurrencySnapshot) -> None:
        config = CalculatorConfig(
            precision=10, recursion_limit=50, currency=CurrencyConfig(enabled=False)
        )
        session = CalculatorSession(config, snapshot=snapshot)
        session.evaluate_line("loop(x) = loop(x + 1)")
        with pytest.raises(RecursionLimitExceededError) as exc_info:
            session.evaluate_line("loop(0)")
        assert exc_info.value.function_name == "loop"
        assert exc_info.value.limit == 50

    def test_default_recursion_limit(self, snapshot: CurrencySnapshot) -> None:
        config = CalculatorConfig(currency=CurrencyConfig(enabled=False))
        session = CalculatorSession(config, snapshot=snapshot)
        session.evaluate_line("loop(x) = loop(x + 1)")
        with pytest.raises(RecursionLimitExceededError) as exc_info:
            session.evaluate_line("loop(0)")
        assert exc_info.value.function_name == "loop"
        assert exc_info.value.limit == 1000

    def test_deep_recursion_within_default_limit(self, snapshot: CurrencySnapshot) -> None:
        config = CalculatorConfig(currency=CurrencyConfig(enabled=False))
        session = CalculatorSession(config, snapshot=snapshot)
        session.evaluate_line("count(n) = n == 0 ? 0 : 1 + count(n - 1)")
        value = session.evaluate_line("count(999)")
        assert value == Number(Decimal(999))

    def test_host_stack_exhaustion_names_function(
        self, snapshot: CurrencySnapshot, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(evaluator, "_stack_headroom", lambda limit: nullcontext())
        config = CalculatorConfig(currency=CurrencyConfig(enabled=False))
        session = CalculatorSession(config, snapshot=snapshot)
        session.evaluate_line("loop(x) = loop(x + 1)")
        with pytest.raises(RecursionLimitExceededError) as exc_info:
            session.evaluate_line("loop(0)")
        assert exc_info.value.function_name == "loop"


class TestPipes:
    @pytest.mark.parametrize(
        ("source", "expected"),
        [
            ("[1, 2, 3] | sum", "6"),
            ("[3, 1, 2] | sort", "[1, 2, 3]"),
            ("5 | x => x + 1", "6"),
            ("16 | sqrt | x => x * 2", "8"),
        ],
    )
    def test_expression(self, calc: Calc, source: str, expected: str) -> None:
        assert calc(source) == expected

    def test_pipe_into_user_function(self, calc: Calc) -> None:
        calc("double(x) = x * 2")
        assert calc("21 | double") == "42"


# ============================================================================
# History and dates
# ============================================================================


class TestAggregates:
    """``total``, ``average`` and ``prev`` read earlier results."""

    def test_total_converts_to_first_unit(self, calc: Calc) -> None:
        calc("10 m")
        calc("2 km")
        assert calc("total in km") == "2.01 km"

    def test_total_skips_incompatible(self, calc: Calc) -> None:
        calc("1 m")
        calc("1 s")
        calc("2 m")
        assert calc("total") == "3 m"

    def test_average(self, calc: Calc) -> None:
        calc("2")
        calc("4")
        assert calc("average") == "3"

    def test_total_of_strings(self, calc: Calc) -> None:
        calc('"a"')
        calc('"b"')
        assert calc("total") == "ab"

    def test_markdown_is_ignored(self, calc: Calc) -> None:
        assert calc("# Costs") == ""
        calc("5")
        assert calc("total") == "5"

    def test_empty_history(self, calc: Calc) -> None:
        with pytest.raises(InvalidOperandError, match="No numeric values to total"):
            calc("total")

    def test_prev(self, calc: Calc) -> None:
        calc("2 + 3")
        assert calc("prev * 2") == "10"

    def test_prev_without_history(self, calc: Calc) -> None:
        with pytest.raises(InvalidOperandError, match="No previous result"):
            calc("prev")


class TestDates:
    """The session clock is frozen at 2024-03-15 14:30 UTC, a Friday."""

    @pytest.mark.parametrize(
        ("source", "expected"),
        [
            ("today", "2024-03-15"),
            ("now", "2024-03-15T14:30"),
            ('date("2024-03-10", "UTC") - date("2024-03-01", "UTC")', "9d"),
            ('date("2024-01-31", "UTC") + 2 d', "2024-02-02@UTC"),
            ('date("2024-01-31T09:30", "UTC") to "Asia/Tokyo"', "2024-01-31T18:30@Asia/Tokyo"),
            ('date("2024-03-15", "UTC").weekday', "5"),
            ("today.year", "2024"),
        ],
    )
    def test_expression(self, calc: Calc, source: str, expected: str) -> None:
        assert calc(source) == expected

    @pytest.mark.parametrize(
        ("source", "expected"),
        [
            ("tomorrow", "2024-03-16"),
            ("yesterday", "2024-03-14"),
            ("monday", "2024-03-11"),
            ("friday", "2024-03-15"),
            ("sunday", "2024-03-17"),
            ("today@UTC", "2024-03-15@UTC"),
            ("now@Asia/Tokyo", "2024-03-15T23:30@Asia/Tokyo"),
            ('today@"America/New_York"', "2024-03-15@America/New_York"),
            ("tomorrow@UTC - yesterday@UTC", "2d"),
        ],
    )
    def test_keywords(self, calc: Calc, source: str, expected: str) -> None:
        assert calc(source) == expected

    def test_variable_shadows_keyword(self, calc: Calc) -> None:
        calc("monday = 3")
        assert calc("monday + 1") == "4"

    @pytest.mark.parametrize(
        ("source", "expected"),
        [
            ("25.12.2024", "2024-12-25"),
            ("25.12.2024 + 10 d", "2025-01-04"),
            ("25/07/2025 - 01.01.2025", "205d"),
            ("(01.02.2024).month", "2"),
            ("15.03.2024@Europe/Berlin", "2024-03-15@Europe/Berlin"),
            ("25.13", "25.13"),
            ("10/2", "5"),
        ],
    )
    def test_literals(self, calc: Calc, source: str, expected: str) -> None:
        assert calc(source) == expected

    def test_invalid_calendar_day_is_not_a_date(self, calc: Calc) -> None:
        with pytest.raises(ParseError):
            calc("31.02.2024")

    @pytest.mark.parametrize(
        ("source", "expected"),
        [
            ('date("2024-01-31", "UTC") + 1 month', "2024-02-29@UTC"),
            ('date("2024-01-31", "UTC") - 1 month', "2023-12-31@UTC"),
            ("31.01.2024 + 1 month", "2024-02-29"),
            ("31.03.2024 + 2 months", "2024-05-31"),
            ("29.02.2024 + 1 year", "2025-02-28"),
            ("15.01.2024 + 1 yr", "2025-01-15"),
            ("15.01.2024 + 1.5 months", "2024-03-01T05:15"),
        ],
    )
    def test_calendar_months_and_years(self, calc: Calc, source: str, expected: str) -> None:
        assert calc(source) == expected

    def test_unknown_timezone(self, calc: Calc) -> None:
        with pytest.raises(InvalidOperandError, match="Unknown timezone"):
            calc('now to "Mars/Olympus"')

    def test_zone_on_non_date(self, calc: Calc) -> None:
        with pytest.raises(InvalidOperandError, match="Only dates"):
            calc("5@UTC")

    def test_shift_by_non_time(self, calc: Calc) -> None:
        with pytest.raises(InvalidOperandError):
            calc("today + 5 kg")
