"""
Result formatter.

Renders a value to its display string. Formatting is pure: it never
re-evaluates anything and never changes the value it is given.

    5 m            -> "5 m"
    2.5 h          -> "2h 30min"
    150 min        -> "150min"
    0xFF + 1       -> "0x100"
    9.81 m/s^2     -> "9.81 m/s²"
    10 kg*m/s^2    -> "10 N"
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Context, Decimal
from typing import assert_never

from tally.core.decimal_math import is_integer
from tally.core.units import dimensions as dims
from tally.core.units.dimensions import Exponent, Signature
from tally.core.units.tables import BASE_UNITS, DERIVED_UNITS, UNIT_TABLES, DimensionKind
from tally.core.values import (
    Array,
    Boolean,
    Date,
    Function,
    Lambda,
    Markdown,
    Null,
    Number,
    NumberBase,
    Object,
    Partial,
    Percentage,
    Quantity,
    String,
    Value,
)

DEFAULT_PLACES = 10

# Rounding never has to fight the 40-digit evaluation context here.
_FORMAT_CONTEXT = Context(prec=100, rounding=ROUND_HALF_UP)

_SCIENTIFIC_HIGH = Decimal("1e21")
_SCIENTIFIC_LOW = Decimal("1e-7")

_SUPERSCRIPTS = str.maketrans("0123456789-", "⁰¹²³⁴⁵⁶⁷⁸⁹⁻")

_DERIVED_SIGNATURES: list[tuple[str, Signature]] = [
    (symbol, dims.parse_unit_expression(expansion)) for symbol, expansion in DERIVED_UNITS.items()
]

# Compound duration parts, largest first. Weeks only show when the value is
# already expressed in weeks.
_DURATION_PARTS: list[tuple[str, Decimal]] = [
    ("mo", Decimal(2629800)),
    ("w", Decimal(604800)),
    ("d", Decimal(86400)),
    ("h", Decimal(3600)),
    ("min", Decimal(60)),
]
_MILLISECOND = Decimal("0.001")


def format_value(value: Value, precision: int | None = None) -> str:
    """
    Render a value for display.

    Args:
        value: Any runtime value
        precision: Maximum decimal places; ``None`` shows up to 10 places

    Returns:
        Display string (empty for markdown lines).
    """
    match value:
        case Number():
            return _format_number(value, precision)
        case Quantity():
            return format_quantity(value, precision)
        case Percentage():
            return f"{format_decimal(value.value, precision)}%"
        case String():
            return value.value
        case Boolean():
            return "true" if value.value else "false"
        case Null():
            return "null"
        case Date():
            return format_date(value)
        case Array():
            return "[" + ", ".join(_format_item(item, precision) for item in value.items) + "]"
        case Object():
            entries = (
                f"{key}: {_format_item(item, precision)}" for key, item in value.entries.items()
            )
            return "{" + ", ".join(entries) + "}"
        case Function():
            return f"<function {value.name}({', '.join(value.params)})>"
        case Lambda():
            return f"<lambda({', '.join(value.params)})>"
        case Partial():
            return f"<partial({', '.join(value.remaining)})>"
        case Markdown():
            return ""
        case _:
            assert_never(value)


def _format_item(value: Value, precision: int | None) -> str:
    """Strings are quoted inside arrays and objects."""
    if isinstance(value, String):
        escaped = value.value.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    return format_value(value, precision)


# ---------------------------------------------------------------------------
# Numbers
# ---------------------------------------------------------------------------


def format_decimal(value: Decimal, precision: int | None = None) -> str:
    """
    Render a magnitude with trailing zeros stripped.

    Very large or very small magnitudes use scientific notation (``1.5e+21``).
    """
    if not value.is_finite():
        return str(value)
    if value == 0:
        return "0"

    places = DEFAULT_PLACES if precision is None else precision
    magnitude = abs(value)
    if magnitude >= _SCIENTIFIC_HIGH or magnitude < _SCIENTIFIC_LOW:
        text = format(value, f".{places}e")
        mantissa, _, exponent = text.partition("e")
        return f"{_strip_zeros(mantissa)}e{exponent}"

    rounded = value.quantize(Decimal(1).scaleb(-places), context=_FORMAT_CONTEXT)
    text = _strip_zeros(format(rounded, "f"))
    return "0" if text == "-0" else text


def _strip_zeros(text: str) -> str:
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def _format_number(number: Number, precision: int | None) -> str:
    if number.base is None or not is_integer(number.value):
        return format_decimal(number.value, precision)
    n = int(number.value)
    sign = "-" if n < 0 else ""
    if number.base == NumberBase.HEX:
        return f"{sign}0x{abs(n):X}"
    return f"{sign}0b{abs(n):b}"


# ---------------------------------------------------------------------------
# Quantities
# ---------------------------------------------------------------------------


def _unit_symbol(kind: DimensionKind, unit: str | None) -> str:
    if unit is not None:
        return unit
    return BASE_UNITS.get(kind, str(kind))


def _is_duration(signature: Signature) -> bool:
    entry = signature.get(DimensionKind.TIME)
    return len(signature) == 1 and entry is not None and entry.exponent == 1


def format_quantity(quantity: Quantity, precision: int | None = None) -> str:
    signature = quantity.dimensions
    if _is_duration(signature):
        return _format_duration(quantity.value, signature[DimensionKind.TIME].unit, precision)

    magnitude = format_decimal(quantity.value, precision)
    unit = format_unit(signature)
    if unit.startswith("1/"):
        return f"{magnitude}{unit[1:]}"
    return f"{magnitude} {unit}"


def format_unit(signature: Signature) -> str:
    """
    Render a signature's units.

    Derived units are used only when the signature is exactly their
    expansion in base units, so ``kg*m/s^2`` shows as ``N`` but ``g*cm/s^2``
    keeps its compound form.
    """
    for symbol, derived in _DERIVED_SIGNATURES:
        if dims.same_units(signature, derived):
            return symbol

    positive: list[str] = []
    negative: list[str] = []
    for kind, entry in signature.items():
        symbol = _unit_symbol(kind, entry.unit)
        exponent = entry.exponent
        if exponent > 0:
            positive.append(symbol + _exponent_suffix(exponent))
        else:
            negative.append(symbol + _exponent_suffix(-exponent))

    numerator = "⋅".join(positive) if positive else "1"
    if not negative:
        return numerator
    return f"{numerator}/{'⋅'.join(negative)}"


def _exponent_suffix(exponent: Exponent) -> str:
    if exponent == 1:
        return ""
    if isinstance(exponent, int):
        return str(exponent).translate(_SUPERSCRIPTS)
    # Fractional exponents have no superscript form.
    return "^" + format_decimal(Decimal(exponent.numerator) / Decimal(exponent.denominator))


def _format_duration(value: Decimal, unit: str | None, precision: int | None) -> str:
    symbol = unit or "s"
    if is_integer(value) or symbol == "ms":
        return f"{format_decimal(value, precision)}{symbol}"

    record = UNIT_TABLES[DimensionKind.TIME][symbol]
    seconds = abs(record.to_base(value)).quantize(_MILLISECOND, context=_FORMAT_CONTEXT)

    parts: list[str] = []
    for part, size in _DURATION_PARTS:
        if part == "w" and symbol != "w":
            continue
        count, seconds = divmod(seconds, size)
        if count:
            parts.append(f"{count}{part}")
    if seconds:
        parts.append(f"{format_decimal(seconds)}s")

    if not parts:
        return f"{format_decimal(value, precision)}{symbol}"
    sign = "-" if value < 0 else ""
    return sign + " ".join(parts)


# ---------------------------------------------------------------------------
# Dates
# ---------------------------------------------------------------------------


def format_date(date: Date) -> str:
    moment = date.value
    if moment.hour == moment.minute == moment.second == 0 and not moment.microsecond:
        text = moment.strftime("%Y-%m-%d")
    elif moment.second or moment.microsecond:
        text = moment.strftime("%Y-%m-%dT%H:%M:%S")
    else:
        text = moment.strftime("%Y-%m-%dT%H:%M")
    if date.timezone:
        text += f"@{date.timezone}"
    return text
