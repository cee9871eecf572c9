"""
tally - a calculator language with units, currencies, dates and functions.

Evaluate a line:

    >>> from tally import CalculatorSession
    >>> session = CalculatorSession()
    >>> session.format(session.evaluate_line("2 h + 30 min"))
    '2h 30min'
"""

from __future__ import annotations

from ._version import get_version
from .core import ir
from .core.engine import CalculatorSession
from .core.errors import EvaluationError, ParseError, TallyError
from .core.expression_lang import evaluate, evaluate_source, format_value, parse_expr
from .core.units import convert

__version__ = get_version()

__all__ = [
    "__version__",
    "ir",
    "CalculatorSession",
    "TallyError",
    "ParseError",
    "EvaluationError",
    "evaluate",
    "evaluate_source",
    "format_value",
    "parse_expr",
    "convert",
]
