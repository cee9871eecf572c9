"""Dimension algebra, unit conversion tables, and currency snapshots."""

from .conversion import EMPTY_RATES, Rates, convert, convert_between
from .currency import CurrencySnapshot, fetch_snapshot, load_snapshot, save_snapshot
from .dimensions import (
    DimensionEntry,
    Signature,
    are_compatible,
    divide,
    is_dimensionless,
    multiply,
    parse_unit_expression,
    power,
)
from .tables import DimensionKind, UnitRecord

__all__ = [
    "EMPTY_RATES",
    "Rates",
    "convert",
    "convert_between",
    "CurrencySnapshot",
    "fetch_snapshot",
    "load_snapshot",
    "save_snapshot",
    "DimensionEntry",
    "DimensionKind",
    "Signature",
    "UnitRecord",
    "are_compatible",
    "divide",
    "is_dimensionless",
    "multiply",
    "parse_unit_expression",
    "power",
]
