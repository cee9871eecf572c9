"""
Dimension algebra.

A dimension signature maps each dimension kind to an exponent and the unit
that kind is displayed in (for currency, the ISO code). Kinds absent from
the mapping have exponent 0; operations never leave a zero exponent behind.

When two operands carry the same kind in different units, the left
operand's unit is kept.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from fractions import Fraction

from tally.core.errors import UnknownUnitError
from tally.core.units.tables import (
    BASE_UNITS,
    DERIVED_ALIASES,
    DERIVED_UNITS,
    DimensionKind,
    lookup_unit,
)

Exponent = int | Fraction


@dataclass(frozen=True)
class DimensionEntry:
    """Exponent and display unit of one dimension kind."""

    exponent: Exponent
    unit: str | None = None


Signature = dict[DimensionKind, DimensionEntry]


def _normalize_exponent(value: Exponent | Decimal) -> Exponent:
    fraction = Fraction(value)
    if fraction.denominator == 1:
        return fraction.numerator
    return fraction


def multiply(a: Signature, b: Signature) -> Signature:
    """Combine two signatures, summing exponents per kind."""
    result: Signature = dict(a)
    for kind, entry in b.items():
        existing = result.get(kind)
        if existing is None:
            result[kind] = entry
            continue
        unit = existing.unit if existing.unit is not None else entry.unit
        result[kind] = DimensionEntry(
            exponent=_normalize_exponent(existing.exponent + entry.exponent),
            unit=unit,
        )
    return {kind: entry for kind, entry in result.items() if entry.exponent != 0}


def invert(a: Signature) -> Signature:
    return {kind: DimensionEntry(-entry.exponent, entry.unit) for kind, entry in a.items()}


def divide(a: Signature, b: Signature) -> Signature:
    return multiply(a, invert(b))


def power(a: Signature, n: int | Fraction | Decimal) -> Signature:
    """Scale every exponent by ``n``."""
    factor = Fraction(n)
    result: Signature = {}
    for kind, entry in a.items():
        exponent = _normalize_exponent(entry.exponent * factor)
        if exponent != 0:
            result[kind] = DimensionEntry(exponent, entry.unit)
    return result


def are_compatible(a: Signature, b: Signature) -> bool:
    """Same kinds with the same exponents; units are irrelevant."""
    if a.keys() != b.keys():
        return False
    return all(a[kind].exponent == b[kind].exponent for kind in a)


def is_dimensionless(a: Signature) -> bool:
    return not a


def same_units(a: Signature, b: Signature) -> bool:
    """Compatible and labelled identically, so no conversion is needed."""
    return are_compatible(a, b) and all(
        (a[kind].unit or BASE_UNITS.get(kind)) == (b[kind].unit or BASE_UNITS.get(kind))
        for kind in a
    )


def is_known_unit(name: str) -> bool:
    return lookup_unit(name) is not None or name in DERIVED_ALIASES


def from_unit(name: str) -> Signature:
    """Signature of a single unit name, expanding derived units."""
    resolved = lookup_unit(name)
    if resolved is not None:
        kind, symbol = resolved
        return {kind: DimensionEntry(1, symbol)}

    derived = DERIVED_ALIASES.get(name)
    if derived is not None:
        return parse_unit_expression(DERIVED_UNITS[derived])

    raise UnknownUnitError(name)


def parse_unit_expression(text: str) -> Signature:
    """
    Parse a compound unit expression such as ``kg*m^-2/s``.

    Every term after a ``/`` is negated, so ``J/kg*K`` reads as
    ``J*kg^-1*K^-1``.

    Raises:
        UnknownUnitError: If any unit name does not resolve.
    """
    signature: Signature = {}
    numerator, *denominators = text.split("/")
    terms = [(term, 1) for term in numerator.split("*")]
    for part in denominators:
        terms.extend((term, -1) for term in part.split("*"))

    if not any(term.strip() for term, _ in terms):
        raise UnknownUnitError(text)

    for term, sign in terms:
        term = term.strip()
        if not term:
            continue
        name, exponent = _parse_unit_term(term)
        signature = multiply(signature, power(from_unit(name), exponent * sign))
    return signature


def _parse_unit_term(term: str) -> tuple[str, Exponent]:
    name, _, exponent_text = term.partition("^")
    name = name.strip()
    if not exponent_text:
        return name, 1
    try:
        exponent = Decimal(exponent_text.strip())
    except InvalidOperation as e:
        raise UnknownUnitError(term) from e
    if not exponent.is_finite():
        raise UnknownUnitError(term)
    return name, _normalize_exponent(exponent)


# ---------------------------------------------------------------------------
# Dimension type names
# ---------------------------------------------------------------------------

_L = DimensionKind.LENGTH
_M = DimensionKind.MASS
_T = DimensionKind.TIME
_I = DimensionKind.CURRENT
_D = DimensionKind.DATA

DIMENSION_TYPES: dict[str, dict[DimensionKind, int]] = {
    "length": {_L: 1},
    "area": {_L: 2},
    "volume": {_L: 3},
    "mass": {_M: 1},
    "time": {_T: 1},
    "current": {_I: 1},
    "temperature": {DimensionKind.TEMPERATURE: 1},
    "amount": {DimensionKind.AMOUNT: 1},
    "luminosity": {DimensionKind.LUMINOSITY: 1},
    "angle": {DimensionKind.ANGLE: 1},
    "data": {_D: 1},
    "currency": {DimensionKind.CURRENCY: 1},
    "speed": {_L: 1, _T: -1},
    "acceleration": {_L: 1, _T: -2},
    "force": {_M: 1, _L: 1, _T: -2},
    "energy": {_M: 1, _L: 2, _T: -2},
    "power": {_M: 1, _L: 2, _T: -3},
    "pressure": {_M: 1, _L: -1, _T: -2},
    "charge": {_I: 1, _T: 1},
    "voltage": {_M: 1, _L: 2, _T: -3, _I: -1},
    "resistance": {_M: 1, _L: 2, _T: -3, _I: -2},
    "frequency": {_T: -1},
    "density": {_M: 1, _L: -3},
    "data rate": {_D: 1, _T: -1},
}

DIMENSION_TYPE_ALIASES = {
    "velocity": "speed",
    "distance": "length",
    "duration": "time",
    "weight": "mass",
    "money": "currency",
}


def describe(a: Signature) -> str | None:
    """Name of the physical quantity a signature measures, if it has one."""
    exponents = {kind: entry.exponent for kind, entry in a.items()}
    if exponents == {DimensionKind.VOLUME: 1}:
        return "volume"
    for name, pattern in DIMENSION_TYPES.items():
        if exponents == pattern:
            return name
    return None


def matches_type(a: Signature, type_name: str) -> bool:
    name = DIMENSION_TYPE_ALIASES.get(type_name, type_name)
    return describe(a) == name
