"""
Decimal arithmetic helpers.

All numeric work in tally is done on ``decimal.Decimal`` under a fixed
context (40 significant digits, half-up rounding). Transcendental functions
that the decimal module does not provide are computed here with series
expansions, so results never round-trip through binary floating point
except where noted.
"""

from __future__ import annotations

import math
from decimal import ROUND_HALF_UP, Context, Decimal, InvalidOperation, localcontext
from fractions import Fraction

PRECISION = 40

DECIMAL_CONTEXT = Context(prec=PRECISION, rounding=ROUND_HALF_UP)

ZERO = Decimal(0)
ONE = Decimal(1)
HUNDRED = Decimal(100)

PI = Decimal("3.141592653589793238462643383279502884197169399375")
E = Decimal("2.718281828459045235360287471352662497757247093700")


def to_decimal(value: int | float | str | Decimal | Fraction) -> Decimal:
    """Coerce a Python number or numeric string to Decimal.

    Floats go through ``repr`` so ``0.1`` becomes ``Decimal("0.1")`` rather
    than its exact binary expansion.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, Fraction):
        return Decimal(value.numerator) / Decimal(value.denominator)
    if isinstance(value, float):
        return Decimal(repr(value))
    try:
        return Decimal(value)
    except InvalidOperation as e:
        raise ValueError(f"Not a number: {value!r}") from e


def is_integer(value: Decimal) -> bool:
    """True when the value has no fractional part."""
    return value.is_finite() and value == value.to_integral_value()


def power(base: Decimal, exponent: Decimal | int | Fraction) -> Decimal:
    """Raise ``base`` to ``exponent``.

    Integer exponents are exact. Fractional exponents need a non-negative
    base; callers turn the ``ValueError`` into an evaluation error.
    """
    if isinstance(exponent, Fraction):
        if exponent.denominator == 1:
            exponent = exponent.numerator
        else:
            exponent = to_decimal(exponent)
    if isinstance(exponent, Decimal) and is_integer(exponent):
        exponent = int(exponent)

    if isinstance(exponent, int):
        if base == 0 and exponent < 0:
            raise ZeroDivisionError("Zero cannot be raised to a negative power")
        return base**exponent

    if base < 0:
        raise ValueError("Fractional power of a negative number")
    if base == 0:
        return ZERO
    return base**exponent


def sqrt(value: Decimal) -> Decimal:
    if value < 0:
        raise ValueError("Square root of a negative number")
    return value.sqrt()


def cbrt(value: Decimal) -> Decimal:
    """Real cube root, defined for negative numbers too."""
    if value == 0:
        return ZERO
    magnitude = power(abs(value), Fraction(1, 3))
    # Snap exact cubes: 27 -> 3, not 3.0000000000000000000000000000000000001
    rounded = magnitude.to_integral_value()
    if rounded**3 == abs(value):
        magnitude = rounded
    return magnitude if value > 0 else -magnitude


def ln(value: Decimal) -> Decimal:
    if value <= 0:
        raise ValueError("Logarithm of a non-positive number")
    return value.ln()


def log10(value: Decimal) -> Decimal:
    if value <= 0:
        raise ValueError("Logarithm of a non-positive number")
    return value.log10()


def exp(value: Decimal) -> Decimal:
    return value.exp()


def factorial(value: Decimal) -> Decimal:
    if not is_integer(value) or value < 0:
        raise ValueError("Factorial is only defined for non-negative integers")
    return Decimal(math.factorial(int(value)))


def sin(x: Decimal) -> Decimal:
    """Sine of ``x`` radians (Taylor series, argument reduced to [-pi, pi])."""
    with localcontext() as ctx:
        ctx.prec += 5
        x = _reduce_angle(x)
        i, lasts, s, fact, num, sign = 1, 0, x, 1, x, 1
        while s != lasts:
            lasts = s
            i += 2
            fact *= i * (i - 1)
            num *= x * x
            sign *= -1
            s += num / fact * sign
    return +s


def cos(x: Decimal) -> Decimal:
    """Cosine of ``x`` radians (Taylor series, argument reduced to [-pi, pi])."""
    with localcontext() as ctx:
        ctx.prec += 5
        x = _reduce_angle(x)
        i, lasts, s, fact, num, sign = 0, 0, ONE, 1, ONE, 1
        while s != lasts:
            lasts = s
            i += 2
            fact *= i * (i - 1)
            num *= x * x
            sign *= -1
            s += num / fact * sign
    return +s


def tan(x: Decimal) -> Decimal:
    c = cos(x)
    if abs(c) < Decimal("1e-35"):
        raise ZeroDivisionError("Tangent is undefined at odd multiples of pi/2")
    return sin(x) / c


def sinh(x: Decimal) -> Decimal:
    return (x.exp() - (-x).exp()) / 2


def cosh(x: Decimal) -> Decimal:
    return (x.exp() + (-x).exp()) / 2


def tanh(x: Decimal) -> Decimal:
    return sinh(x) / cosh(x)


# Inverse trig goes through float; 15-16 significant digits is plenty for display.
def asin(x: Decimal) -> Decimal:
    if abs(x) > 1:
        raise ValueError("asin is only defined on [-1, 1]")
    return to_decimal(math.asin(float(x)))


def acos(x: Decimal) -> Decimal:
    if abs(x) > 1:
        raise ValueError("acos is only defined on [-1, 1]")
    return to_decimal(math.acos(float(x)))


def atan(x: Decimal) -> Decimal:
    return to_decimal(math.atan(float(x)))


def _reduce_angle(x: Decimal) -> Decimal:
    two_pi = 2 * PI
    x = x % two_pi
    if x > PI:
        x -= two_pi
    elif x < -PI:
        x += two_pi
    return x
