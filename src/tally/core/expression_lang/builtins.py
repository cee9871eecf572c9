"""
Built-in functions: math, strings, dates, and value inspection.

Every builtin takes the already-evaluated argument list, the calling scope,
and the evaluation context. ``BUILTINS`` also carries the array and object
functions from ``collections``.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from datetime import datetime, timedelta
from decimal import ROUND_CEILING, ROUND_FLOOR, ROUND_HALF_UP, Decimal
from fractions import Fraction
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dateutil.relativedelta import relativedelta

from tally.core import decimal_math
from tally.core.errors import InvalidOperandError
from tally.core.expression_lang import quantity_ops
from tally.core.expression_lang.collections import (
    COLLECTION_FUNCTIONS,
    expect_args,
    int_arg,
)
from tally.core.expression_lang.context import BuiltinFunction, EvaluationContext, Scope
from tally.core.expression_lang.formatter import format_unit, format_value
from tally.core.units import dimensions as dims
from tally.core.units.conversion import convert_between
from tally.core.units.dimensions import DimensionEntry
from tally.core.units.tables import DimensionKind
from tally.core.values import (
    NULL,
    Array,
    Date,
    Number,
    Percentage,
    Quantity,
    String,
    Value,
    make_quantity,
)
from tally.core.values import type_name as value_type_name

# ---------------------------------------------------------------------------
# Math
# ---------------------------------------------------------------------------

_RADIANS = {DimensionKind.ANGLE: DimensionEntry(1, "rad")}
_SECONDS = {DimensionKind.TIME: DimensionEntry(1, "s")}
_DAYS = {DimensionKind.TIME: DimensionEntry(1, "d")}


def _number_arg(value: Value, name: str) -> Decimal:
    if not isinstance(value, Number):
        raise InvalidOperandError(f"{name}() expects a number, got a {value_type_name(value)}")
    return value.value


def _unary_math(name: str, fn: Callable[[Decimal], Decimal]) -> BuiltinFunction:
    """Builtin over one dimensionless number."""

    def builtin(args: list[Value], scope: Scope, ctx: EvaluationContext) -> Value:
        expect_args(args, name, 1)
        x = _number_arg(args[0], name)
        try:
            return Number(fn(x))
        except (ZeroDivisionError, ValueError) as e:
            raise InvalidOperandError(f"{name}(): {e}") from e

    return builtin


def _trig(name: str, fn: Callable[[Decimal], Decimal]) -> BuiltinFunction:
    """Trig builtin; plain numbers are radians, angle quantities are converted."""

    def builtin(args: list[Value], scope: Scope, ctx: EvaluationContext) -> Value:
        expect_args(args, name, 1)
        arg = args[0]
        if isinstance(arg, Quantity):
            if not dims.are_compatible(arg.dimensions, _RADIANS):
                raise InvalidOperandError(f"{name}() expects an angle or a number")
            radians = convert_between(arg.value, arg.dimensions, _RADIANS)
        else:
            radians = _number_arg(arg, name)
        try:
            return Number(fn(radians))
        except ZeroDivisionError as e:
            raise InvalidOperandError(f"{name}(): {e}") from e

    return builtin


def _root_of(value: Value, degree: int, name: str) -> Value:
    if degree == 0:
        raise InvalidOperandError(f"{name}(): zeroth root is undefined")
    try:
        match value:
            case Number():
                if degree == 3:
                    return Number(decimal_math.cbrt(value.value))
                return Number(decimal_math.power(value.value, Fraction(1, degree)))
            case Quantity():
                magnitude = decimal_math.power(value.value, Fraction(1, degree))
                return make_quantity(magnitude, dims.power(value.dimensions, Fraction(1, degree)))
    except ValueError as e:
        raise InvalidOperandError(f"{name}(): {e}") from e
    raise InvalidOperandError(f"{name}() expects a number, got a {value_type_name(value)}")


def _sqrt(args: list[Value], scope: Scope, ctx: EvaluationContext) -> Value:
    expect_args(args, "sqrt", 1)
    return _root_of(args[0], 2, "sqrt")


def _cbrt(args: list[Value], scope: Scope, ctx: EvaluationContext) -> Value:
    expect_args(args, "cbrt", 1)
    return _root_of(args[0], 3, "cbrt")


def _root(args: list[Value], scope: Scope, ctx: EvaluationContext) -> Value:
    expect_args(args, "root", 2)
    return _root_of(args[0], int_arg(args[1], "root"), "root")


def _abs(args: list[Value], scope: Scope, ctx: EvaluationContext) -> Value:
    expect_args(args, "abs", 1)
    value = args[0]
    match value:
        case Number():
            return Number(abs(value.value), value.base)
        case Quantity():
            return Quantity(abs(value.value), value.dimensions)
        case Percentage():
            return Percentage(abs(value.value))
    raise InvalidOperandError(f"abs() expects a number, got a {value_type_name(value)}")


def _log(args: list[Value], scope: Scope, ctx: EvaluationContext) -> Value:
    """log(x) is base 10; log(x, base) for any other base."""
    expect_args(args, "log", 1, 2)
    x = _number_arg(args[0], "log")
    try:
        if len(args) == 1:
            return Number(decimal_math.log10(x))
        base = _number_arg(args[1], "log")
        if base == 1:
            raise InvalidOperandError("log(): base cannot be 1")
        return Number(decimal_math.ln(x) / decimal_math.ln(base))
    except ValueError as e:
        raise InvalidOperandError(f"log(): {e}") from e


def _rounding(name: str, mode: str) -> BuiltinFunction:
    """round/ceil/floor: optional decimal places, units are kept."""

    def builtin(args: list[Value], scope: Scope, ctx: EvaluationContext) -> Value:
        expect_args(args, name, 1, 2)
        places = int_arg(args[1], name) if len(args) == 2 else 0
        exponent = Decimal(1).scaleb(-places)
        value = args[0]
        match value:
            case Number():
                return Number(value.value.quantize(exponent, rounding=mode), value.base)
            case Quantity():
                return Quantity(value.value.quantize(exponent, rounding=mode), value.dimensions)
            case Percentage():
                return Percentage(value.value.quantize(exponent, rounding=mode))
        raise InvalidOperandError(f"{name}() expects a number, got a {value_type_name(value)}")

    return builtin


def _extreme(name: str, pick: int) -> BuiltinFunction:
    """min/max over arguments, or over a single array argument."""

    def builtin(args: list[Value], scope: Scope, ctx: EvaluationContext) -> Value:
        expect_args(args, name, 1, variadic=True)
        candidates = list(args[0].items) if len(args) == 1 and isinstance(args[0], Array) else args
        if not candidates:
            return NULL
        best = candidates[0]
        for candidate in candidates[1:]:
            if quantity_ops.compare(candidate, best, ctx.rates) == pick:
                best = candidate
        return best

    return builtin


MATH_FUNCTIONS: dict[str, BuiltinFunction] = {
    "sqrt": _sqrt,
    "cbrt": _cbrt,
    "root": _root,
    "abs": _abs,
    "log": _log,
    "ln": _unary_math("ln", decimal_math.ln),
    "exp": _unary_math("exp", decimal_math.exp),
    "fact": _unary_math("fact", decimal_math.factorial),
    "round": _rounding("round", ROUND_HALF_UP),
    "ceil": _rounding("ceil", ROUND_CEILING),
    "floor": _rounding("floor", ROUND_FLOOR),
    "sin": _trig("sin", decimal_math.sin),
    "cos": _trig("cos", decimal_math.cos),
    "tan": _trig("tan", decimal_math.tan),
    "asin": _unary_math("asin", decimal_math.asin),
    "acos": _unary_math("acos", decimal_math.acos),
    "atan": _unary_math("atan", decimal_math.atan),
    "sinh": _unary_math("sinh", decimal_math.sinh),
    "cosh": _unary_math("cosh", decimal_math.cosh),
    "tanh": _unary_math("tanh", decimal_math.tanh),
    "min": _extreme("min", -1),
    "max": _extreme("max", 1),
}


# ---------------------------------------------------------------------------
# Strings
# ---------------------------------------------------------------------------


def _string_arg(value: Value, name: str) -> str:
    if not isinstance(value, String):
        raise InvalidOperandError(f"{name}() expects a string, got a {value_type_name(value)}")
    return value.value


def _string_fn(name: str, fn: Callable[[str], str]) -> BuiltinFunction:
    def builtin(args: list[Value], scope: Scope, ctx: EvaluationContext) -> Value:
        expect_args(args, name, 1)
        return String(fn(_string_arg(args[0], name)))

    return builtin


def _len(args: list[Value], scope: Scope, ctx: EvaluationContext) -> Value:
    expect_args(args, "len", 1)
    if isinstance(args[0], Array):
        return Number(Decimal(len(args[0].items)))
    return Number(Decimal(len(_string_arg(args[0], "len"))))


def _substr(args: list[Value], scope: Scope, ctx: EvaluationContext) -> Value:
    """substr(text, start, length?)"""
    expect_args(args, "substr", 2, 3)
    text = _string_arg(args[0], "substr")
    start = max(int_arg(args[1], "substr"), 0)
    if len(args) == 3:
        length = max(int_arg(args[2], "substr"), 0)
        return String(text[start : start + length])
    return String(text[start:])


def _charat(args: list[Value], scope: Scope, ctx: EvaluationContext) -> Value:
    expect_args(args, "charat", 2)
    text = _string_arg(args[0], "charat")
    index = int_arg(args[1], "charat")
    return String(text[index] if 0 <= index < len(text) else "")


# Date pattern tokens (yyyy-MM-dd HH:mm style), longest first.
_DATE_TOKENS = re.compile(r"yyyy|yy|MMMM|MMM|MM|M|dd|d|EEEE|EEE|HH|H|hh|h|mm|ss|a")

_DATE_FIELDS: dict[str, Callable[[datetime], str]] = {
    "yyyy": lambda d: f"{d.year:04d}",
    "yy": lambda d: f"{d.year % 100:02d}",
    "MMMM": lambda d: d.strftime("%B"),
    "MMM": lambda d: d.strftime("%b"),
    "MM": lambda d: f"{d.month:02d}",
    "M": lambda d: str(d.month),
    "dd": lambda d: f"{d.day:02d}",
    "d": lambda d: str(d.day),
    "EEEE": lambda d: d.strftime("%A"),
    "EEE": lambda d: d.strftime("%a"),
    "HH": lambda d: f"{d.hour:02d}",
    "H": lambda d: str(d.hour),
    "hh": lambda d: f"{(d.hour % 12) or 12:02d}",
    "h": lambda d: str((d.hour % 12) or 12),
    "mm": lambda d: f"{d.minute:02d}",
    "ss": lambda d: f"{d.second:02d}",
    "a": lambda d: "AM" if d.hour < 12 else "PM",
}


def format_date_pattern(moment: datetime, pattern: str) -> str:
    return _DATE_TOKENS.sub(lambda m: _DATE_FIELDS[m.group(0)](moment), pattern)


def _format(args: list[Value], scope: Scope, ctx: EvaluationContext) -> Value:
    """format(date, "yyyy-MM-dd"), format(value, places), or format(value)."""
    expect_args(args, "format", 1, 2)
    value = args[0]
    if len(args) == 1:
        return String(format_value(value))
    option = args[1]
    if isinstance(value, Date):
        return String(format_date_pattern(value.value, _string_arg(option, "format")))
    places = int_arg(option, "format")
    if places < 0:
        raise InvalidOperandError("format() precision cannot be negative")
    return String(format_value(value, places))


STRING_FUNCTIONS: dict[str, BuiltinFunction] = {
    "len": _len,
    "substr": _substr,
    "charat": _charat,
    "trim": _string_fn("trim", str.strip),
    "upper": _string_fn("upper", str.upper),
    "lower": _string_fn("lower", str.lower),
    "format": _format,
}


# ---------------------------------------------------------------------------
# Dates
# ---------------------------------------------------------------------------


def resolve_zone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise InvalidOperandError(f"Unknown timezone: {name}") from e


def _clock(ctx: EvaluationContext, zone: str | None) -> datetime:
    moment = ctx.clock()
    return moment if zone is None else moment.astimezone(resolve_zone(zone))


def _midnight(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def today(ctx: EvaluationContext, zone: str | None = None) -> Date:
    return Date(_midnight(_clock(ctx, zone)), zone)


def now(ctx: EvaluationContext, zone: str | None = None) -> Date:
    return Date(_clock(ctx, zone), zone)


def tomorrow(ctx: EvaluationContext, zone: str | None = None) -> Date:
    return Date(_midnight(_clock(ctx, zone)) + timedelta(days=1), zone)


def yesterday(ctx: EvaluationContext, zone: str | None = None) -> Date:
    return Date(_midnight(_clock(ctx, zone)) - timedelta(days=1), zone)


WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


def weekday(name: str) -> Callable[[EvaluationContext, str | None], Date]:
    """
    Resolver for a weekday keyword: that day of the current week.

    Weeks run Monday to Sunday, except that on a Sunday the weekdays of the
    coming week are meant.
    """
    target = WEEKDAYS.index(name)

    def resolve(ctx: EvaluationContext, zone: str | None = None) -> Date:
        start = _midnight(_clock(ctx, zone))
        offset = target - start.weekday()
        if start.weekday() == 6 and target != 6:
            offset += 7
        return Date(start + timedelta(days=offset), zone)

    return resolve


RELATIVE_DATES: dict[str, Callable[[EvaluationContext, str | None], Date]] = {
    "today": today,
    "now": now,
    "tomorrow": tomorrow,
    "yesterday": yesterday,
    **{name: weekday(name) for name in WEEKDAYS},
}


def calendar_date(
    year: int, month: int, day: int, ctx: EvaluationContext, zone: str | None = None
) -> Date:
    """Midnight of a calendar day, in ``zone`` or else the clock's timezone."""
    tzinfo = resolve_zone(zone) if zone is not None else ctx.clock().tzinfo
    return Date(datetime(year, month, day, tzinfo=tzinfo), zone)


def at_zone(value: Value, zone_name: str) -> Date:
    """The same wall-clock reading, placed in another timezone."""
    if not isinstance(value, Date):
        raise InvalidOperandError(
            f"Only dates can be placed in a timezone, not a {value_type_name(value)}"
        )
    return Date(value.value.replace(tzinfo=resolve_zone(zone_name)), zone_name)


def rezone(value: Value, zone_name: str) -> Date:
    """The same instant seen from another timezone."""
    if not isinstance(value, Date):
        raise InvalidOperandError(
            f"Only dates can be converted to a timezone, not a {value_type_name(value)}"
        )
    return Date(value.value.astimezone(resolve_zone(zone_name)), zone_name)


# Display units that move a date along the calendar rather than by a fixed length
_CALENDAR_UNITS = {"mo": "months", "yr": "years"}


def shift_date(date: Date, amount: Value, sign: int) -> Date:
    """
    Move a date by a time quantity.

    Whole months and years follow the calendar (Jan 31 + 1 month is the last
    day of February); any fraction of one, and every other unit, is added as
    a fixed duration.
    """
    if not (isinstance(amount, Quantity) and dims.are_compatible(amount.dimensions, _SECONDS)):
        raise InvalidOperandError(
            f"Dates can only be shifted by a time quantity, not a {value_type_name(amount)}"
        )
    moment = date.value
    magnitude = amount.value
    calendar_field = _CALENDAR_UNITS.get(amount.dimensions[DimensionKind.TIME].unit or "")
    if calendar_field is not None:
        whole = int(magnitude)
        moment += relativedelta(**{calendar_field: sign * whole})
        magnitude -= whole

    if magnitude:
        seconds = convert_between(magnitude, amount.dimensions, _SECONDS)
        moment += sign * timedelta(seconds=float(seconds))
    return Date(moment, date.timezone)


def date_difference(left: Date, right: Date) -> Value:
    """Elapsed time between two dates, in days."""
    delta = left.value - right.value
    seconds = (
        Decimal(delta.days) * 86400 + delta.seconds + Decimal(delta.microseconds).scaleb(-6)
    )
    return make_quantity(seconds / 86400, _DAYS)


def _date(args: list[Value], scope: Scope, ctx: EvaluationContext) -> Value:
    """date("2024-01-31") or date("2024-01-31T09:30", "Europe/Berlin")"""
    expect_args(args, "date", 1, 2)
    text = _string_arg(args[0], "date")
    zone_name = _string_arg(args[1], "date") if len(args) == 2 else None
    try:
        moment = datetime.fromisoformat(text)
    except ValueError as e:
        raise InvalidOperandError(f"date(): cannot parse {text!r}") from e

    if zone_name is not None:
        zone = resolve_zone(zone_name)
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=zone)
        return Date(moment.astimezone(zone), zone_name)
    if moment.tzinfo is None:
        moment = moment.astimezone()
    return Date(moment)


# ---------------------------------------------------------------------------
# Inspection
# ---------------------------------------------------------------------------


def _type(args: list[Value], scope: Scope, ctx: EvaluationContext) -> Value:
    expect_args(args, "type", 1)
    return String(value_type_name(args[0]))


def _unit(args: list[Value], scope: Scope, ctx: EvaluationContext) -> Value:
    expect_args(args, "unit", 1)
    if isinstance(args[0], Quantity):
        return String(format_unit(args[0].dimensions))
    return NULL


def _timezone(args: list[Value], scope: Scope, ctx: EvaluationContext) -> Value:
    expect_args(args, "timezone", 1)
    if isinstance(args[0], Date):
        return String(args[0].timezone or "local")
    return NULL


BUILTINS: dict[str, BuiltinFunction] = {
    **MATH_FUNCTIONS,
    **STRING_FUNCTIONS,
    **COLLECTION_FUNCTIONS,
    "date": _date,
    "type": _type,
    "unit": _unit,
    "timezone": _timezone,
}
