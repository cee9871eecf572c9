"""Shared pytest fixtures for tally tests."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime
from decimal import Decimal

import pytest

from tally.core.config import CalculatorConfig, CurrencyConfig
from tally.core.engine import CalculatorSession
from tally.core.units.currency import CurrencySnapshot

FIXED_NOW = datetime(2024, 3, 15, 14, 30, tzinfo=UTC)


@pytest.fixture
def snapshot() -> CurrencySnapshot:
    """A small, round-numbered rate table priced in USD."""
    return CurrencySnapshot(
        date="2024-03-15",
        base="USD",
        rates={"USD": Decimal(1), "EUR": Decimal("0.5"), "GBP": Decimal("0.25")},
    )


@pytest.fixture
def config() -> CalculatorConfig:
    """Full display precision, no snapshot read from disk."""
    return CalculatorConfig(precision=10, currency=CurrencyConfig(enabled=False))


@pytest.fixture
def session(config: CalculatorConfig, snapshot: CurrencySnapshot) -> CalculatorSession:
    """Session with fixed rates and a clock frozen at 2024-03-15 14:30 UTC."""
    return CalculatorSession(config, snapshot=snapshot, clock=lambda: FIXED_NOW)


@pytest.fixture
def calc(session: CalculatorSession) -> Callable[[str], str]:
    """Evaluate a line in the shared session and return its display text."""

    def run(line: str) -> str:
        value = session.evaluate_line(line)
        assert value is not None
        return session.format(value)

    return run
