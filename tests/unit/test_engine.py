"""Tests for the line-by-line calculator session."""

from __future__ import annotations

from decimal import Decimal
from pathlib import Path

import pytest

from tally.core.config import CalculatorConfig, CurrencyConfig
from tally.core.engine import CalculatorSession
from tally.core.errors import ParseError, UndefinedVariableError
from tally.core.units.currency import CurrencySnapshot, save_snapshot
from tally.core.values import Number


class TestEvaluateLine:
    def test_result_recorded_in_history(self, session: CalculatorSession) -> None:
        result = session.evaluate_line("2 + 2")
        assert result == Number(Decimal(4))
        assert session.history == [result]

    @pytest.mark.parametrize("line", ["", "   ", "// just a note"])
    def test_blank_and_comment_lines(self, session: CalculatorSession, line: str) -> None:
        assert session.evaluate_line(line) is None
        assert session.history == []

    def test_failed_line_leaves_history(self, session: CalculatorSession) -> None:
        session.evaluate_line("1")
        with pytest.raises(UndefinedVariableError):
            session.evaluate_line("missing * 2")
        with pytest.raises(ParseError):
            session.evaluate_line("1 +")
        assert session.history == [Number(Decimal(1))]

    def test_variables_persist_between_lines(self, session: CalculatorSession) -> None:
        session.evaluate_line("rate = 3")
        assert session.evaluate_line("rate * 3") == Number(Decimal(9))
        assert "rate" in session.variables

    def test_context_reflects_session(self, session: CalculatorSession) -> None:
        session.evaluate_line("5")
        ctx = session.context()
        assert list(ctx.history) == session.history
        assert ctx.rates["EUR"] == Decimal("0.5")
        assert ctx.recursion_limit == session.config.recursion_limit


class TestFormatting:
    def test_config_precision(self, snapshot: CurrencySnapshot) -> None:
        config = CalculatorConfig(precision=2, currency=CurrencyConfig(enabled=False))
        session = CalculatorSession(config, snapshot=snapshot)
        value = session.evaluate_line("1 / 3")
        assert value is not None
        assert session.format(value) == "0.33"
        assert session.format(value, precision=4) == "0.3333"


class TestReset:
    def test_reset_clears_state(self, session: CalculatorSession) -> None:
        session.evaluate_line("x = 5")
        session.reset()
        assert session.variables == {}
        assert session.history == []
        with pytest.raises(UndefinedVariableError):
            session.evaluate_line("x")

    def test_reset_keeps_rates(self, session: CalculatorSession) -> None:
        session.reset()
        assert session.snapshot.rates["GBP"] == Decimal("0.25")


class TestSnapshotLoading:
    def test_disabled_currency_gives_empty_snapshot(self) -> None:
        config = CalculatorConfig(currency=CurrencyConfig(enabled=False, base="EUR"))
        session = CalculatorSession(config)
        assert session.snapshot.is_empty
        assert session.snapshot.base == "EUR"

    def test_cached_snapshot_is_loaded(self, tmp_path: Path, snapshot: CurrencySnapshot) -> None:
        rates_file = tmp_path / "rates.json"
        save_snapshot(snapshot, rates_file)
        config = CalculatorConfig(precision=4, currency=CurrencyConfig(rates_file=rates_file))
        session = CalculatorSession(config)
        value = session.evaluate_line("4 GBP to USD")
        assert value is not None
        assert session.format(value) == "16 USD"
