"""
Unit conversion tables.

Each dimension kind has one base unit. Every unit record converts into that
base with ``coefficient * 10**power_of_ten / divisor``, plus an additive
``offset`` for temperature scales. Currency has no static table: its
coefficients come from the rate snapshot supplied at evaluation time.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal
from enum import StrEnum

from tally.core.decimal_math import ONE, PI


class DimensionKind(StrEnum):
    """The closed set of tracked dimensions."""

    LENGTH = "length"
    MASS = "mass"
    TIME = "time"
    CURRENT = "current"
    TEMPERATURE = "temperature"
    AMOUNT = "amount"
    LUMINOSITY = "luminosity"
    ANGLE = "angle"
    VOLUME = "volume"
    DATA = "data"
    CURRENCY = "currency"


@dataclass(frozen=True)
class UnitRecord:
    """Transform from one unit into its dimension's base unit."""

    coefficient: Decimal
    power_of_ten: int = 0
    offset: Decimal | None = None
    divisor: Decimal = ONE

    @property
    def numerator(self) -> Decimal:
        return self.coefficient.scaleb(self.power_of_ten)

    def to_base(self, value: Decimal) -> Decimal:
        if self.offset is not None:
            value = value + self.offset
        return value * self.numerator / self.divisor

    def from_base(self, value: Decimal) -> Decimal:
        result = value * self.divisor / self.numerator
        if self.offset is not None:
            result -= self.offset
        return result


def _unit(coefficient: str | Decimal, power_of_ten: int = 0) -> UnitRecord:
    return UnitRecord(coefficient=Decimal(coefficient), power_of_ten=power_of_ten)


BASE_UNITS: dict[DimensionKind, str] = {
    DimensionKind.LENGTH: "m",
    DimensionKind.MASS: "kg",
    DimensionKind.TIME: "s",
    DimensionKind.CURRENT: "A",
    DimensionKind.TEMPERATURE: "K",
    DimensionKind.AMOUNT: "mol",
    DimensionKind.LUMINOSITY: "cd",
    DimensionKind.ANGLE: "rad",
    DimensionKind.VOLUME: "l",
    DimensionKind.DATA: "B",
}

UNIT_TABLES: dict[DimensionKind, dict[str, UnitRecord]] = {
    DimensionKind.LENGTH: {
        "m": _unit("1"),
        "km": _unit("1", 3),
        "cm": _unit("1", -2),
        "mm": _unit("1", -3),
        "μm": _unit("1", -6),
        "nm": _unit("1", -9),
        "in": _unit("0.0254"),
        "ft": _unit("0.3048"),
        "yd": _unit("0.9144"),
        "mi": _unit("1609.344"),
        "nmi": _unit("1852"),
    },
    DimensionKind.MASS: {
        "kg": _unit("1"),
        "g": _unit("1", -3),
        "mg": _unit("1", -6),
        "t": _unit("1", 3),
        "lb": _unit("0.45359237"),
        "oz": _unit("0.028349523125"),
        "st": _unit("6.35029318"),
    },
    DimensionKind.TIME: {
        "s": _unit("1"),
        "ms": _unit("1", -3),
        "min": _unit("60"),
        "h": _unit("3600"),
        "d": _unit("86400"),
        "w": _unit("604800"),
        "mo": _unit("2629800"),
        "yr": _unit("31557600"),
    },
    DimensionKind.CURRENT: {
        "A": _unit("1"),
        "mA": _unit("1", -3),
        "μA": _unit("1", -6),
    },
    DimensionKind.TEMPERATURE: {
        "K": _unit("1"),
        "°C": UnitRecord(coefficient=ONE, offset=Decimal("273.15")),
        "°F": UnitRecord(coefficient=Decimal(5), divisor=Decimal(9), offset=Decimal("459.67")),
    },
    DimensionKind.AMOUNT: {
        "mol": _unit("1"),
        "mmol": _unit("1", -3),
    },
    DimensionKind.LUMINOSITY: {
        "cd": _unit("1"),
    },
    DimensionKind.ANGLE: {
        "rad": _unit("1"),
        "deg": UnitRecord(coefficient=PI, divisor=Decimal(180)),
    },
    DimensionKind.VOLUME: {
        "l": _unit("1"),
        "dl": _unit("1", -1),
        "cl": _unit("1", -2),
        "ml": _unit("1", -3),
        "gal": _unit("3.785411784"),
        "qt": _unit("0.946352946"),
        "pt": _unit("0.473176473"),
        "cup": _unit("0.2365882365"),
        "floz": _unit("0.0295735295625"),
        "tbsp": _unit("0.01478676478125"),
        "tsp": _unit("0.00492892159375"),
    },
    DimensionKind.DATA: {
        "B": _unit("1"),
        "bit": _unit("0.125"),
        "kB": _unit("1", 3),
        "MB": _unit("1", 6),
        "GB": _unit("1", 9),
        "TB": _unit("1", 12),
        "KiB": _unit("1024"),
        "MiB": _unit("1048576"),
        "GiB": _unit("1073741824"),
        "TiB": _unit("1099511627776"),
    },
}

# Spellings accepted in source text, mapped to the canonical symbol.
_SPELLINGS: dict[str, tuple[str, ...]] = {
    "m": ("meter", "meters", "metre", "metres"),
    "km": ("kilometer", "kilometers", "kilometre", "kilometres"),
    "cm": ("centimeter", "centimeters", "centimetre", "centimetres"),
    "mm": ("millimeter", "millimeters", "millimetre", "millimetres"),
    "μm": ("um", "micrometer", "micrometers", "micron", "microns"),
    "nm": ("nanometer", "nanometers"),
    "in": ("inch", "inches"),
    "ft": ("foot", "feet"),
    "yd": ("yard", "yards"),
    "mi": ("mile", "miles"),
    "nmi": ("nautical_mile", "nautical_miles"),
    "kg": ("kilogram", "kilograms", "kilo", "kilos"),
    "g": ("gram", "grams"),
    "mg": ("milligram", "milligrams"),
    "t": ("tonne", "tonnes", "ton", "tons"),
    "lb": ("lbs", "pound", "pounds"),
    "oz": ("ounce", "ounces"),
    "st": ("stone",),
    "s": ("sec", "secs", "second", "seconds"),
    "ms": ("millisecond", "milliseconds"),
    "min": ("mins", "minute", "minutes"),
    "h": ("hr", "hrs", "hour", "hours"),
    "d": ("day", "days"),
    "w": ("wk", "wks", "week", "weeks"),
    "mo": ("month", "months"),
    "yr": ("y", "yrs", "year", "years"),
    "A": ("amp", "amps", "ampere", "amperes"),
    "mA": ("milliamp", "milliamps", "milliampere", "milliamperes"),
    "μA": ("uA", "microamp", "microamps"),
    "K": ("kelvin",),
    "°C": ("C", "degC", "celsius"),
    "°F": ("F", "degF", "fahrenheit"),
    "mol": ("mole", "moles"),
    "mmol": ("millimole", "millimoles"),
    "cd": ("candela", "candelas"),
    "rad": ("radian", "radians"),
    "deg": ("°", "degree", "degrees"),
    "l": ("L", "liter", "liters", "litre", "litres"),
    "dl": ("dL", "deciliter", "deciliters"),
    "cl": ("cL", "centiliter", "centiliters"),
    "ml": ("mL", "milliliter", "milliliters", "millilitre", "millilitres"),
    "gal": ("gallon", "gallons"),
    "qt": ("quart", "quarts"),
    "pt": ("pint", "pints"),
    "cup": ("cups",),
    "floz": ("fl_oz",),
    "tbsp": ("tablespoon", "tablespoons"),
    "tsp": ("teaspoon", "teaspoons"),
    "B": ("byte", "bytes"),
    "bit": ("bits",),
    "kB": ("KB", "kb", "kilobyte", "kilobytes"),
    "MB": ("mb", "megabyte", "megabytes"),
    "GB": ("gb", "gigabyte", "gigabytes"),
    "TB": ("tb", "terabyte", "terabytes"),
    "KiB": ("kib", "kibibyte", "kibibytes"),
    "MiB": ("mib", "mebibyte", "mebibytes"),
    "GiB": ("gib", "gibibyte", "gibibytes"),
    "TiB": ("tib", "tebibyte", "tebibytes"),
}

UNIT_KINDS: dict[str, DimensionKind] = {
    symbol: kind for kind, table in UNIT_TABLES.items() for symbol in table
}

UNIT_ALIASES: dict[str, str] = {symbol: symbol for symbol in UNIT_KINDS}
for _symbol, _spellings in _SPELLINGS.items():
    for _spelling in _spellings:
        UNIT_ALIASES[_spelling] = _symbol

# Derived units expand to compound expressions over base units. The order is
# the order the formatter tries them in.
DERIVED_UNITS: dict[str, str] = {
    "N": "kg*m*s^-2",
    "J": "kg*m^2*s^-2",
    "W": "kg*m^2*s^-3",
    "Pa": "kg*m^-1*s^-2",
    "C": "A*s",
    "V": "kg*m^2*s^-3*A^-1",
    "Ω": "kg*m^2*s^-3*A^-2",
    "Hz": "s^-1",
}

# "C" is taken by Celsius in source text, so coulombs are spelled out.
DERIVED_ALIASES: dict[str, str] = {
    "N": "N",
    "newton": "N",
    "newtons": "N",
    "J": "J",
    "joule": "J",
    "joules": "J",
    "W": "W",
    "watt": "W",
    "watts": "W",
    "Pa": "Pa",
    "pascal": "Pa",
    "pascals": "Pa",
    "coulomb": "C",
    "coulombs": "C",
    "V": "V",
    "volt": "V",
    "volts": "V",
    "Ω": "Ω",
    "ohm": "Ω",
    "ohms": "Ω",
    "Ohm": "Ω",
    "Hz": "Hz",
    "hertz": "Hz",
}

CURRENCY_CODE_RE = re.compile(r"^[A-Z]{3}$")


def lookup_unit(name: str) -> tuple[DimensionKind, str] | None:
    """Resolve a simple (non-derived) unit spelling to its kind and symbol."""
    symbol = UNIT_ALIASES.get(name)
    if symbol is not None:
        return UNIT_KINDS[symbol], symbol
    if CURRENCY_CODE_RE.match(name):
        return DimensionKind.CURRENCY, name
    return None
