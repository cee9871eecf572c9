"""
Arithmetic over numbers, quantities, and percentages.

Operands in different units are reconciled before they are combined:
addition converts the right operand into the left operand's units, and
multiplication converts every kind the two operands share so that
cancelling dimensions never discard a conversion factor. The left
operand's units win in both cases.
"""

from __future__ import annotations

from decimal import Decimal
from fractions import Fraction

from tally.core import decimal_math
from tally.core.decimal_math import HUNDRED, is_integer
from tally.core.errors import (
    DivisionByZeroError,
    IncompatibleDimensionsError,
    InvalidOperandError,
)
from tally.core.units import dimensions as dims
from tally.core.units.conversion import (
    EMPTY_RATES,
    Rates,
    conversion_factor,
    convert_between,
)
from tally.core.units.dimensions import Signature
from tally.core.values import (
    Array,
    Date,
    Number,
    NumberBase,
    Object,
    Percentage,
    Quantity,
    String,
    Value,
    make_quantity,
)
from tally.core.values import type_name as value_type_name

Numeric = Number | Quantity | Percentage


def _require_numeric(value: Value, operation: str) -> Numeric:
    if not isinstance(value, Number | Quantity | Percentage):
        raise InvalidOperandError(f"Cannot {operation} a {value_type_name(value)}")
    return value


def _keep_base(value: Decimal, *sources: Number) -> Number:
    """Plain number carrying the first available base tag of its sources."""
    base: NumberBase | None = None
    for source in sources:
        if source.base is not None:
            base = source.base
            break
    return Number(value, base)


def _describe(signature: Signature) -> str:
    name = dims.describe(signature)
    if name:
        return name
    return "*".join(
        f"{entry.unit or kind}^{entry.exponent}" for kind, entry in signature.items()
    )


def _incompatible(
    left: Signature, right: Signature, operation: str
) -> IncompatibleDimensionsError:
    left_name = _describe(left) if left else "number"
    right_name = _describe(right) if right else "number"
    return IncompatibleDimensionsError(f"Cannot {operation} {left_name} and {right_name}")


# ---------------------------------------------------------------------------
# Addition / subtraction
# ---------------------------------------------------------------------------


def add(left: Value, right: Value, rates: Rates = EMPTY_RATES) -> Value:
    return _add_or_subtract(left, right, 1, rates)


def subtract(left: Value, right: Value, rates: Rates = EMPTY_RATES) -> Value:
    return _add_or_subtract(left, right, -1, rates)


def _add_or_subtract(left: Value, right: Value, sign: int, rates: Rates) -> Value:
    operation = "add" if sign > 0 else "subtract"
    left = _require_numeric(left, operation)
    right = _require_numeric(right, operation)

    match left, right:
        case Percentage(), Percentage():
            return Percentage(left.value + sign * right.value)
        case Number() | Quantity(), Percentage():
            # x ± p% is x scaled by (1 ± p/100); the percentage has no units
            delta = left.value * right.value / HUNDRED
            return _with_magnitude(left, left.value + sign * delta)
        case Percentage(), Number() | Quantity():
            if sign < 0:
                raise InvalidOperandError("Cannot subtract a number from a percentage")
            delta = right.value * left.value / HUNDRED
            return _with_magnitude(right, right.value + delta)
        case Number(), Number():
            return _keep_base(left.value + sign * right.value, left, right)
        case Quantity(), Quantity():
            if not dims.are_compatible(left.dimensions, right.dimensions):
                raise _incompatible(left.dimensions, right.dimensions, operation)
            converted = convert_between(right.value, right.dimensions, left.dimensions, rates)
            return make_quantity(left.value + sign * converted, left.dimensions)
        case Quantity(), Number():
            raise _incompatible(left.dimensions, {}, operation)
        case Number(), Quantity():
            raise _incompatible({}, right.dimensions, operation)
    raise InvalidOperandError(f"Cannot {operation} these values")


def _with_magnitude(template: Number | Quantity, value: Decimal) -> Number | Quantity:
    if isinstance(template, Quantity):
        return make_quantity(value, template.dimensions)
    return Number(value, template.base)


# ---------------------------------------------------------------------------
# Multiplication / division
# ---------------------------------------------------------------------------


def _as_factor(value: Numeric) -> tuple[Decimal, Signature]:
    if isinstance(value, Percentage):
        return value.value / HUNDRED, {}
    if isinstance(value, Quantity):
        return value.value, value.dimensions
    return value.value, {}


def _align_shared_kinds(
    left: Signature, right_value: Decimal, right: Signature, rates: Rates
) -> Decimal:
    """
    Express the right magnitude in the left operand's unit for every kind
    both operands carry, so a kind that cancels keeps its conversion factor.
    """
    for kind, entry in right.items():
        left_entry = left.get(kind)
        if left_entry is None or left_entry.unit == entry.unit:
            continue
        factor = conversion_factor(entry.unit, left_entry.unit, kind, rates)
        right_value *= decimal_math.power(factor, entry.exponent)
    return right_value


def multiply(left: Value, right: Value, rates: Rates = EMPTY_RATES) -> Value:
    left = _require_numeric(left, "multiply")
    right = _require_numeric(right, "multiply")

    match left, right:
        case Percentage(), Percentage():
            return Percentage(left.value * right.value / HUNDRED)
        case Number(), Number():
            return _keep_base(left.value * right.value, left, right)

    left_value, left_dims = _as_factor(left)
    right_value, right_dims = _as_factor(right)
    right_value = _align_shared_kinds(left_dims, right_value, right_dims, rates)
    return make_quantity(left_value * right_value, dims.multiply(left_dims, right_dims))


def divide(left: Value, right: Value, rates: Rates = EMPTY_RATES) -> Value:
    left = _require_numeric(left, "divide")
    right = _require_numeric(right, "divide")
    if right.value == 0:
        raise DivisionByZeroError()

    match left, right:
        case Percentage(), Percentage():
            return Number(left.value / right.value)
        case Percentage(), Number():
            return Percentage(left.value / right.value)
        case Number(), Number():
            return _keep_base(left.value / right.value, left, right)

    left_value, left_dims = _as_factor(left)
    right_value, right_dims = _as_factor(right)
    right_value = _align_shared_kinds(left_dims, right_value, right_dims, rates)
    return make_quantity(left_value / right_value, dims.divide(left_dims, right_dims))


def modulo(left: Value, right: Value, rates: Rates = EMPTY_RATES) -> Value:
    left = _require_numeric(left, "take the remainder of")
    right = _require_numeric(right, "take the remainder of")
    if right.value == 0:
        raise DivisionByZeroError("Modulo by zero")

    match left, right:
        case Number(), Number():
            return _keep_base(_floor_mod(left.value, right.value), left, right)
        case Quantity(), Number():
            return make_quantity(_floor_mod(left.value, right.value), left.dimensions)
        case Quantity(), Quantity():
            if not dims.are_compatible(left.dimensions, right.dimensions):
                raise _incompatible(left.dimensions, right.dimensions, "take the remainder of")
            converted = convert_between(right.value, right.dimensions, left.dimensions, rates)
            return make_quantity(_floor_mod(left.value, converted), left.dimensions)
    raise InvalidOperandError(
        f"Cannot take the remainder of {value_type_name(left)} by {value_type_name(right)}"
    )


def _floor_mod(a: Decimal, b: Decimal) -> Decimal:
    """Remainder with the sign of the divisor, like Python's int %."""
    result = a % b
    if result != 0 and (result < 0) != (b < 0):
        result += b
    return result


# ---------------------------------------------------------------------------
# Power / negation
# ---------------------------------------------------------------------------


def power(base: Value, exponent: Value) -> Value:
    base = _require_numeric(base, "exponentiate")
    if not isinstance(exponent, Number):
        raise InvalidOperandError(
            f"Exponent must be a dimensionless number, not a {value_type_name(exponent)}"
        )
    n = exponent.value
    try:
        match base:
            case Number():
                return _keep_base(decimal_math.power(base.value, n), base)
            case Percentage():
                return Number(decimal_math.power(base.value / HUNDRED, n))
            case Quantity():
                magnitude = decimal_math.power(base.value, n)
                return make_quantity(magnitude, dims.power(base.dimensions, Fraction(n)))
    except ZeroDivisionError as e:
        raise DivisionByZeroError(str(e)) from e
    except ValueError as e:
        raise InvalidOperandError(str(e)) from e
    raise InvalidOperandError("Cannot exponentiate this value")


def negate(value: Value) -> Value:
    value = _require_numeric(value, "negate")
    match value:
        case Number():
            return Number(-value.value, value.base)
        case Quantity():
            return Quantity(-value.value, value.dimensions)
        case Percentage():
            return Percentage(-value.value)
    raise InvalidOperandError("Cannot negate this value")


# ---------------------------------------------------------------------------
# Conversion / comparison
# ---------------------------------------------------------------------------


def convert_to_unit(value: Value, target: str, rates: Rates = EMPTY_RATES) -> Value:
    """
    Convert a quantity into the units of a unit expression.

    Raises:
        UnknownUnitError: If the target expression does not parse.
        IncompatibleDimensionsError: If the value cannot be expressed in it.
    """
    target_dims = dims.parse_unit_expression(target)
    match value:
        case Quantity():
            if not dims.are_compatible(value.dimensions, target_dims):
                raise IncompatibleDimensionsError(
                    f"Cannot convert {_describe(value.dimensions)} to {target}"
                )
            converted = convert_between(value.value, value.dimensions, target_dims, rates)
            return make_quantity(converted, target_dims)
        case Number():
            raise IncompatibleDimensionsError(f"Cannot convert a plain number to {target}")
    raise InvalidOperandError(f"Cannot convert a {value_type_name(value)} to {target}")


def to_common_magnitudes(
    left: Value, right: Value, rates: Rates = EMPTY_RATES
) -> tuple[Decimal, Decimal]:
    """Magnitudes of two comparable operands, the right in the left's units."""
    left = _require_numeric(left, "compare")
    right = _require_numeric(right, "compare")
    match left, right:
        case Quantity(), Quantity():
            if not dims.are_compatible(left.dimensions, right.dimensions):
                raise _incompatible(left.dimensions, right.dimensions, "compare")
            return left.value, convert_between(
                right.value, right.dimensions, left.dimensions, rates
            )
        case Quantity(), _:
            raise _incompatible(left.dimensions, {}, "compare")
        case _, Quantity():
            raise _incompatible({}, right.dimensions, "compare")
    return left.value, right.value


def integer_operands(
    left: Value, right: Value, operation: str
) -> tuple[int, int, NumberBase | None]:
    """Unpack two integer numbers for bitwise operators."""
    if not (isinstance(left, Number) and isinstance(right, Number)):
        raise InvalidOperandError(f"Bitwise {operation} needs two numbers")
    if not (is_integer(left.value) and is_integer(right.value)):
        raise InvalidOperandError(f"Bitwise {operation} needs integers")
    return int(left.value), int(right.value), left.base or right.base



def values_equal(left: Value, right: Value, rates: Rates = EMPTY_RATES) -> bool:
    """
    Structural equality. Quantities compare after unit conversion; values
    of different tags, or quantities of different dimensions, are unequal.
    """
    match left, right:
        case Number() | Quantity(), Number() | Quantity():
            try:
                a, b = to_common_magnitudes(left, right, rates)
            except IncompatibleDimensionsError:
                return False
            return a == b
        case Date(), Date():
            return left.value == right.value
        case Array(), Array():
            return len(left.items) == len(right.items) and all(
                values_equal(a, b, rates) for a, b in zip(left.items, right.items, strict=True)
            )
        case Object(), Object():
            return left.entries.keys() == right.entries.keys() and all(
                values_equal(item, right.entries[key], rates)
                for key, item in left.entries.items()
            )
    if type(left) is not type(right):
        return False
    return left == right


def compare(left: Value, right: Value, rates: Rates = EMPTY_RATES) -> int:
    """
    Order two values: -1, 0 or 1.

    Raises:
        IncompatibleDimensionsError: If quantities measure different things.
        InvalidOperandError: If the values have no ordering.
    """
    match left, right:
        case String(), String():
            a, b = left.value, right.value
            return (a > b) - (a < b)
        case Date(), Date():
            return (left.value > right.value) - (left.value < right.value)
        case Number() | Quantity() | Percentage(), Number() | Quantity() | Percentage():
            x, y = to_common_magnitudes(left, right, rates)
            return (x > y) - (x < y)
    raise InvalidOperandError(
        f"Cannot compare {value_type_name(left)} with {value_type_name(right)}"
    )
