"""
Unit conversion.

Converts magnitudes between units of one dimension kind, and between
compatible compound signatures. Temperature scales are affine and are only
converted on their own, never inside a compound unit.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from decimal import Decimal
from types import MappingProxyType

from tally.core.decimal_math import power
from tally.core.errors import (
    IncompatibleDimensionsError,
    IncompatibleUnitsError,
    UnknownCurrencyError,
    UnknownUnitError,
)
from tally.core.units.dimensions import Signature, are_compatible
from tally.core.units.tables import (
    BASE_UNITS,
    UNIT_TABLES,
    DimensionKind,
    UnitRecord,
    lookup_unit,
)

logger = logging.getLogger(__name__)

Rates = Mapping[str, Decimal]

EMPTY_RATES: Rates = MappingProxyType({})


def unit_record(unit: str | None, kind: DimensionKind) -> tuple[str, UnitRecord]:
    """
    Resolve a unit spelling within one dimension kind.

    Returns:
        The canonical symbol and its conversion record.

    Raises:
        UnknownUnitError: If the name is not a unit at all.
        IncompatibleUnitsError: If the unit belongs to another kind.
    """
    symbol = unit if unit is not None else BASE_UNITS[kind]
    table = UNIT_TABLES[kind]
    record = table.get(symbol)
    if record is not None:
        return symbol, record

    resolved = lookup_unit(symbol)
    if resolved is None:
        raise UnknownUnitError(symbol)
    resolved_kind, canonical = resolved
    if resolved_kind != kind:
        raise IncompatibleUnitsError(f"Unit '{symbol}' is a {resolved_kind} unit, not {kind}")
    return canonical, table[canonical]


def _currency_rate(code: str | None, rates: Rates) -> Decimal:
    rate = rates.get(code) if code is not None else None
    if rate is None or rate == 0:
        raise UnknownCurrencyError(code or "?")
    return rate


def _infer_kind(from_unit: str, to_unit: str) -> DimensionKind:
    resolved = lookup_unit(from_unit)
    if resolved is None:
        raise UnknownUnitError(from_unit)
    target = lookup_unit(to_unit)
    if target is None:
        raise UnknownUnitError(to_unit)
    if target[0] != resolved[0]:
        raise IncompatibleUnitsError(
            f"Cannot convert {resolved[0]} unit '{from_unit}' to {target[0]} unit '{to_unit}'"
        )
    return resolved[0]


def convert(
    value: Decimal,
    from_unit: str | None,
    to_unit: str | None,
    kind: DimensionKind | None = None,
    rates: Rates = EMPTY_RATES,
) -> Decimal:
    """
    Convert a magnitude between two units of the same dimension kind.

    Args:
        value: Magnitude in ``from_unit``
        from_unit: Source unit (``None`` means the kind's base unit)
        to_unit: Target unit (``None`` means the kind's base unit)
        kind: Dimension kind; inferred from the unit names when omitted
        rates: Currency rates, units of each currency per one base unit

    Returns:
        Magnitude in ``to_unit``.
    """
    if from_unit == to_unit:
        return value
    if kind is None:
        kind = _infer_kind(from_unit or "", to_unit or "")

    if kind == DimensionKind.CURRENCY:
        from_rate = _currency_rate(from_unit, rates)
        to_rate = _currency_rate(to_unit, rates)
        return value * to_rate / from_rate

    from_symbol, source = unit_record(from_unit, kind)
    to_symbol, target = unit_record(to_unit, kind)
    if from_symbol == to_symbol:
        return value

    if kind == DimensionKind.TEMPERATURE:
        return target.from_base(source.to_base(value))

    return value * source.numerator * target.divisor / (source.divisor * target.numerator)


def conversion_factor(
    from_unit: str | None,
    to_unit: str | None,
    kind: DimensionKind,
    rates: Rates = EMPTY_RATES,
) -> Decimal:
    """
    Number of ``to_unit`` in one ``from_unit``.

    For temperature this is the ratio of scale sizes (a temperature
    interval), ignoring the offset.
    """
    if from_unit == to_unit:
        return Decimal(1)
    if kind == DimensionKind.CURRENCY:
        return _currency_rate(to_unit, rates) / _currency_rate(from_unit, rates)
    _, source = unit_record(from_unit, kind)
    _, target = unit_record(to_unit, kind)
    return source.numerator * target.divisor / (source.divisor * target.numerator)


def convert_between(
    value: Decimal,
    source: Signature,
    target: Signature,
    rates: Rates = EMPTY_RATES,
) -> Decimal:
    """
    Convert a magnitude from one signature's units into another's.

    Raises:
        IncompatibleDimensionsError: If the signatures are not compatible.
        IncompatibleUnitsError: If a temperature would need converting inside
            a compound unit.
    """
    if not are_compatible(source, target):
        raise IncompatibleDimensionsError("Cannot convert between incompatible dimensions")

    temperature = source.get(DimensionKind.TEMPERATURE)
    if temperature is not None:
        target_unit = target[DimensionKind.TEMPERATURE].unit
        if temperature.unit != target_unit:
            if len(source) == 1 and temperature.exponent == 1:
                return convert(value, temperature.unit, target_unit, DimensionKind.TEMPERATURE)
            raise IncompatibleUnitsError(
                "Temperature can only be converted on its own, not inside a compound unit"
            )

    result = value
    for kind, entry in source.items():
        to_unit = target[kind].unit
        if entry.unit == to_unit:
            continue
        factor = conversion_factor(entry.unit, to_unit, kind, rates)
        logger.debug(f"Converting {kind} {entry.unit} -> {to_unit} by {factor}^{entry.exponent}")
        result *= power(factor, entry.exponent)
    return result
