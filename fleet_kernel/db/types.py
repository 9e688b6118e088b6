"""
Module: fleet_kernel.db.types
Responsibility: Money rounding helpers.
    Centralizes precision and rounding so that every model, engine and
    service rounds identically.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, selectors/ and fleet_engines.  Imports nothing from them.

Invariants enforced:
    - round_money() is the ONLY sanctioned rounding function for monetary
      values.  Rounding is half-up; the number of places comes from
      configuration (whole currency units by default).
    - No floats anywhere.  Percentages are Decimal fractions (0.21, not 21).
"""

from decimal import ROUND_HALF_UP, Decimal

DEFAULT_MONEY_PLACES = 0
DEFAULT_ROUNDING = ROUND_HALF_UP

ZERO = Decimal("0")


def round_money(
    value: Decimal,
    decimal_places: int = DEFAULT_MONEY_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value half-up to ``decimal_places``.

    Preconditions: value is a Decimal (ints are accepted and converted).
    Postconditions: Returns value quantized to the requested places.
    """
    return Decimal(value).quantize(Decimal(10) ** -decimal_places, rounding=rounding)


def as_ratio(value: Decimal) -> Decimal:
    """Quantize a fraction-of-one value to the stored Ratio precision."""
    return Decimal(value).quantize(Decimal("0.000001"), rounding=ROUND_HALF_UP)
