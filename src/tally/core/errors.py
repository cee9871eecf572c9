"""
Error types for tally parsing, evaluation, and configuration.

Every failure inside the calculator core is a subclass of ``TallyError`` and
is reported to the caller; nothing in the core terminates the process.
"""

from __future__ import annotations

from dataclasses import dataclass


class TallyError(Exception):
    """Base exception for all tally errors."""

    def __init__(self, message: str, context: ErrorContext | None = None):
        self.message = message
        self.context = context
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format error message with context if available."""
        if self.context:
            return f"{self.context.format()}\n{self.message}"
        return self.message


class ParseError(TallyError):
    """
    Raised when expression text cannot be tokenized or parsed.

    Examples:
    - Unexpected characters
    - Unterminated strings
    - Unexpected tokens or trailing input
    """

    def __init__(self, message: str, position: int = 0, source: str | None = None):
        self.position = position
        context = ErrorContext(source=source, position=position) if source is not None else None
        super().__init__(message, context)

    def with_source(self, source: str) -> ParseError:
        """Return a copy of this error that renders the offending source line."""
        return type(self)(self.message, self.position, source)


class EvaluationError(TallyError):
    """
    Raised when a well-formed expression cannot be evaluated.

    Subclasses name the precondition that failed. Evaluation stops at the
    first failure; there is no partial result.
    """

    pass


class UnknownUnitError(EvaluationError):
    """A unit name does not resolve in any conversion table."""

    def __init__(self, unit: str):
        self.unit = unit
        super().__init__(f"Unknown unit: {unit}")


class UnknownCurrencyError(EvaluationError):
    """A currency code has no rate in the current snapshot."""

    def __init__(self, code: str):
        self.code = code
        super().__init__(f"Unknown currency: {code} (no exchange rate available)")


class IncompatibleDimensionsError(EvaluationError):
    """Operands or conversion targets have different dimension signatures."""

    pass


class IncompatibleUnitsError(EvaluationError):
    """Two unit names do not share a base unit."""

    pass


class DivisionByZeroError(EvaluationError):
    """Division or modulo by a zero magnitude."""

    def __init__(self, message: str = "Division by zero"):
        super().__init__(message)


class ArityMismatchError(EvaluationError):
    """Wrong number of arguments for a function, lambda, or predicate."""

    pass


class RecursionLimitExceededError(EvaluationError):
    """Named-function call depth exceeded the configured ceiling."""

    def __init__(self, function_name: str, limit: int):
        self.function_name = function_name
        self.limit = limit
        super().__init__(
            f"Maximum recursion depth ({limit}) exceeded in function '{function_name}'"
        )


class NotCallableError(EvaluationError):
    """Attempted to call a value that is not a function, lambda, or partial."""

    pass


class InvalidOperandError(EvaluationError):
    """An operand has the wrong type or value for the operation."""

    pass


class UndefinedVariableError(EvaluationError):
    """An identifier is neither a bound variable nor a known unit."""

    def __init__(self, name: str, message: str | None = None):
        self.name = name
        super().__init__(message or f"Undefined variable: {name}")


class ConfigError(TallyError):
    """Raised when the configuration file cannot be read or validated."""

    pass


class CurrencyError(TallyError):
    """Raised when a currency rate snapshot cannot be loaded or fetched."""

    pass


@dataclass
class ErrorContext:
    """
    Source location of an error inside a single expression.

    Attributes:
        source: The full expression text
        position: Zero-based character offset of the error
    """

    source: str
    position: int

    @property
    def line(self) -> int:
        """1-indexed line containing the error."""
        return self.source.count("\n", 0, self.position) + 1

    @property
    def column(self) -> int:
        """1-indexed column of the error within its line."""
        line_start = self.source.rfind("\n", 0, self.position) + 1
        return self.position - line_start + 1

    def format(self) -> str:
        """
        Format the offending line with a caret under the error column.

        Returns:
            Two lines: the source line and a ``^`` marker.
        """
        lines = self.source.split("\n")
        text = lines[min(self.line, len(lines)) - 1]
        return f"{text}\n{' ' * (self.column - 1)}^"
