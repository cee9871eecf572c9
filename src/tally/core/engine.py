"""
Calculator session.

Holds what outlives a single line: variable bindings, the results history
used by ``total``/``average``/``prev``, and the currency snapshot. Each line
is parsed and handed to the evaluator with an explicit context built from
this state.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from tally.core.config import CalculatorConfig
from tally.core.expression_lang.context import EvaluationContext, Scope, local_now
from tally.core.expression_lang.evaluator import evaluate
from tally.core.expression_lang.formatter import format_value
from tally.core.expression_lang.parser import parse_expr
from tally.core.units.currency import CurrencySnapshot, load_snapshot
from tally.core.values import Value

logger = logging.getLogger(__name__)


class CalculatorSession:
    """
    A line-by-line calculator session.

    Example:
        >>> session = CalculatorSession()
        >>> session.format(session.evaluate_line("distance = 5 km"))
        '5 km'
        >>> session.format(session.evaluate_line("distance to m"))
        '5000 m'
    """

    def __init__(
        self,
        config: CalculatorConfig | None = None,
        snapshot: CurrencySnapshot | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.config = config or CalculatorConfig()
        self.snapshot = snapshot if snapshot is not None else self._initial_snapshot()
        self.clock = clock or local_now
        self.variables: Scope = {}
        self.history: list[Value] = []

    def _initial_snapshot(self) -> CurrencySnapshot:
        currency = self.config.currency
        if not currency.enabled:
            return CurrencySnapshot(base=currency.base)
        return load_snapshot(currency.resolved_rates_file, currency.base)

    def context(self) -> EvaluationContext:
        """Build the evaluation context for the next line."""
        return EvaluationContext(
            history=tuple(self.history),
            rates=self.snapshot.rates,
            recursion_limit=self.config.recursion_limit,
            clock=self.clock,
        )

    def evaluate_line(self, text: str) -> Value | None:
        """
        Evaluate one line and record its result in history.

        Returns:
            The result, or ``None`` for a blank or comment-only line.

        Raises:
            TallyError: On parse or evaluation failure. Failed lines leave
                history untouched; bindings made before the failure stay.
        """
        if not _has_content(text):
            return None
        result = evaluate(parse_expr(text), self.variables, self.context())
        self.history.append(result)
        return result

    def format(self, value: Value, precision: int | None = None) -> str:
        return format_value(value, self.config.precision if precision is None else precision)

    def reset(self) -> None:
        """Forget variables and history; keep config and rates."""
        self.variables.clear()
        self.history.clear()
        logger.debug("Session reset")


def _has_content(text: str) -> bool:
    stripped = text.strip()
    return bool(stripped) and not stripped.startswith("//")
