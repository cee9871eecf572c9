"""
Runtime values.

``Value`` is a closed union of frozen dataclasses, one per kind of result.
Consumers dispatch with ``match`` and end with ``assert_never`` so that a
new variant fails type checking everywhere it is not handled.

Values are immutable once built and are shared freely between variables,
closures, and history. A quantity whose signature becomes empty is always
demoted to a plain ``Number``; use ``make_quantity`` to get that for free.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import StrEnum
from types import MappingProxyType
from typing import assert_never

from tally.core.decimal_math import is_integer
from tally.core.ir.expressions import Expr
from tally.core.units.dimensions import Signature


class NumberBase(StrEnum):
    """Integer display bases other than decimal."""

    HEX = "hex"
    BINARY = "binary"


@dataclass(frozen=True)
class Number:
    value: Decimal
    base: NumberBase | None = None

    def __post_init__(self) -> None:
        # A base tag only survives on exact integers.
        if self.base is not None and not is_integer(self.value):
            object.__setattr__(self, "base", None)


@dataclass(frozen=True)
class Quantity:
    value: Decimal
    dimensions: Signature


@dataclass(frozen=True)
class Percentage:
    value: Decimal


@dataclass(frozen=True)
class String:
    value: str


@dataclass(frozen=True)
class Boolean:
    value: bool


@dataclass(frozen=True)
class Null:
    pass


@dataclass(frozen=True)
class Date:
    """An aware instant, optionally pinned to a named IANA timezone."""

    value: datetime
    timezone: str | None = None


@dataclass(frozen=True)
class Array:
    items: tuple[Value, ...] = ()


@dataclass(frozen=True)
class Object:
    entries: Mapping[str, Value] = field(default_factory=lambda: MappingProxyType({}))


@dataclass(frozen=True)
class Function:
    """A named function defined with ``name(params) = body``."""

    name: str
    params: tuple[str, ...]
    body: Expr


@dataclass(frozen=True)
class Lambda:
    """An anonymous function with the scope it was created in."""

    params: tuple[str, ...]
    body: Expr
    closure: Mapping[str, Value] = field(default_factory=lambda: MappingProxyType({}))


@dataclass(frozen=True)
class Partial:
    """A function or lambda with some leading arguments already applied."""

    target: Function | Lambda
    applied: tuple[Value, ...]
    remaining: tuple[str, ...]


@dataclass(frozen=True)
class Markdown:
    """Prose line; rendered elsewhere, empty in results."""

    text: str


Value = (
    Number
    | Quantity
    | Percentage
    | String
    | Boolean
    | Null
    | Date
    | Array
    | Object
    | Function
    | Lambda
    | Partial
    | Markdown
)

NULL = Null()
TRUE = Boolean(True)
FALSE = Boolean(False)


def make_quantity(value: Decimal, dimensions: Signature) -> Number | Quantity:
    """Build a quantity, demoting to ``Number`` when dimensionless."""
    if not dimensions:
        return Number(value)
    return Quantity(value, dimensions)


def make_array(items: list[Value] | tuple[Value, ...]) -> Array:
    return Array(tuple(items))


def make_object(entries: Mapping[str, Value]) -> Object:
    return Object(MappingProxyType(dict(entries)))


def freeze_scope(scope: Mapping[str, Value]) -> Mapping[str, Value]:
    """Snapshot a scope for closure capture."""
    return MappingProxyType(dict(scope))


def is_callable(value: Value) -> bool:
    return isinstance(value, Function | Lambda | Partial)


def remaining_params(value: Value) -> tuple[str, ...]:
    """Parameters a callable still needs before its body runs."""
    match value:
        case Function(params=params) | Lambda(params=params):
            return params
        case Partial(remaining=remaining):
            return remaining
        case _:
            return ()


def is_truthy(value: Value) -> bool:
    match value:
        case Boolean(value=flag):
            return flag
        case Number(value=number) | Percentage(value=number) | Quantity(value=number):
            return number != 0
        case String(value=text):
            return text != ""
        case Null():
            return False
        case Date() | Array() | Object() | Function() | Lambda() | Partial() | Markdown():
            return True
        case _:
            assert_never(value)


def type_name(value: Value) -> str:
    """Name used by ``type()`` and ``is`` checks."""
    match value:
        case Number():
            return "number"
        case Quantity():
            return "quantity"
        case Percentage():
            return "percentage"
        case String():
            return "string"
        case Boolean():
            return "boolean"
        case Null():
            return "null"
        case Date():
            return "date"
        case Array():
            return "array"
        case Object():
            return "object"
        case Function() | Lambda() | Partial():
            return "function"
        case Markdown():
            return "markdown"
        case _:
            assert_never(value)
