"""Quantity and money arithmetic.

Quantities are stored in kilograms (litres are treated the same way) and are
always truncated to three decimals. Money is always rounded *up* to the
paisa. Both policies first round to one extra decimal so that binary float
noise such as ``0.1 + 0.2 == 0.30000000000000004`` cannot tip the result.
"""

from decimal import Decimal, ROUND_CEILING, ROUND_DOWN, ROUND_HALF_UP
from typing import Union

from ..errors import InvalidUnit

Number = Union[Decimal, float, int, str]

GRAMS = "gms"
KILOGRAMS = "kg"
LITERS = "ltr"
UNITS = (GRAMS, KILOGRAMS, LITERS)

QUANTITY_PLACES = 3
MONEY_PLACES = 2
# largest value a Numeric(12, 3) column holds, in any unit a customer may enter
MAX_QUANTITY = Decimal("999999999.999")

_GRAMS_PER_KG = Decimal(1000)


def to_decimal(value: Number) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(repr(value))
    return Decimal(str(value))


def _exponent(decimals: int) -> Decimal:
    return Decimal(1).scaleb(-decimals)


def _neutralize(num: Number, decimals: int) -> Decimal:
    return to_decimal(num).quantize(_exponent(decimals + 1), rounding=ROUND_HALF_UP)


def truncate(num: Number, decimals: int) -> Decimal:
    return _neutralize(num, decimals).quantize(_exponent(decimals), rounding=ROUND_DOWN)


def round_up(num: Number, decimals: int) -> Decimal:
    return _neutralize(num, decimals).quantize(_exponent(decimals), rounding=ROUND_CEILING)


def normalize_unit(unit: str) -> str:
    value = (unit or "").strip().lower()
    if value not in UNITS:
        raise InvalidUnit(unit, list(UNITS))
    return value


def to_canonical(quantity: Number, unit: str) -> Decimal:
    unit = normalize_unit(unit)
    q = to_decimal(quantity)
    if unit == GRAMS:
        q = q / _GRAMS_PER_KG
    return truncate(q, QUANTITY_PLACES)


def from_canonical(quantity: Number, unit: str) -> Decimal:
    unit = normalize_unit(unit)
    q = to_decimal(quantity)
    if unit == GRAMS:
        return q * _GRAMS_PER_KG
    return q


def format_quantity(value: Number) -> str:
    """Render ``Decimal("500.000")`` as ``"500"`` and ``0.250`` as ``"0.25"``."""
    d = to_decimal(value)
    if d == d.to_integral_value():
        return str(d.quantize(Decimal(1)))
    return format(d.normalize(), "f")
