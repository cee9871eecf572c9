"""Core tally functionality: values, units, expression language, session."""

from . import ir
from .config import CalculatorConfig, CurrencyConfig, load_config
from .engine import CalculatorSession
from .errors import (
    ArityMismatchError,
    ConfigError,
    CurrencyError,
    DivisionByZeroError,
    ErrorContext,
    EvaluationError,
    IncompatibleDimensionsError,
    IncompatibleUnitsError,
    InvalidOperandError,
    NotCallableError,
    ParseError,
    RecursionLimitExceededError,
    TallyError,
    UndefinedVariableError,
    UnknownCurrencyError,
    UnknownUnitError,
)

__all__ = [
    "ir",
    "CalculatorConfig",
    "CurrencyConfig",
    "load_config",
    "CalculatorSession",
    "TallyError",
    "ParseError",
    "EvaluationError",
    "UnknownUnitError",
    "UnknownCurrencyError",
    "IncompatibleDimensionsError",
    "IncompatibleUnitsError",
    "DivisionByZeroError",
    "ArityMismatchError",
    "RecursionLimitExceededError",
    "NotCallableError",
    "InvalidOperandError",
    "UndefinedVariableError",
    "ConfigError",
    "CurrencyError",
    "ErrorContext",
]
