"""
Evaluation context threaded through every interpreter call.

Everything the evaluator needs from outside the expression (previous
results, the currency snapshot, the recursion ceiling, and the clock) comes
in here explicitly, so evaluation never consults global state.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime

from tally.core.config import DEFAULT_RECURSION_LIMIT
from tally.core.units.conversion import EMPTY_RATES, Rates
from tally.core.values import Value

Scope = dict[str, Value]


def local_now() -> datetime:
    return datetime.now().astimezone()


@dataclass
class EvaluationContext:
    """
    Per-evaluation inputs and bookkeeping.

    Attributes:
        history: Previously computed results, oldest first (for aggregates)
        rates: Currency snapshot, units of each code per one base unit
        recursion_limit: Maximum active calls of one named function
        call_depth: Active call count per named function
        clock: Source of the current time for ``today`` and ``now``
    """

    history: Sequence[Value] = ()
    rates: Rates = field(default_factory=lambda: EMPTY_RATES)
    recursion_limit: int = DEFAULT_RECURSION_LIMIT
    call_depth: dict[str, int] = field(default_factory=dict)
    clock: Callable[[], datetime] = local_now


BuiltinFunction = Callable[[list[Value], Scope, EvaluationContext], Value]
