"""
Value vocabulary shared by models, engines and services.

Modality and concept codes are plain ``str`` enums so they persist as
their string values and compare equal to them when read back.
"""

from enum import Enum


class Modality(str, Enum):
    """How a driver rents the vehicle."""

    FIXED_FEE = "fixed_fee"  # full-time lease
    SHIFT_BASED = "shift_based"  # shared vehicle, shift rent


class ConceptCode(str, Enum):
    """Tariff concept codes used on billing line details."""

    FIXED_FEE_RENT = "P001"
    SHIFT_RENT = "P002"
    GUARANTEE_QUOTA = "P003"
    TICKET_CREDIT = "P004"
    TOLLS = "P005"
    KM_EXCESS = "P006"
    PENALTY = "P007"
    MORA = "P009"
    FRACTIONAL_DUE = "P010"


RENT_CONCEPT_BY_MODALITY: dict[Modality, ConceptCode] = {
    Modality.FIXED_FEE: ConceptCode.FIXED_FEE_RENT,
    Modality.SHIFT_BASED: ConceptCode.SHIFT_RENT,
}


def period_code(week_number: int, year: int) -> str:
    """Human key for a billing week, e.g. ``2026-W07``."""
    return f"{year}-W{week_number:02d}"


class PeriodStatus(str, Enum):
    """Lifecycle status of a billing period.

    Contract: NOT_GENERATED -> PROCESSING -> OPEN -> CLOSED, with
    CLOSED -> OPEN (reopen) and OPEN -> PROCESSING (regenerate).
    NOT_GENERATED is synthetic: it describes a week with no stored period.
    """

    NOT_GENERATED = "not_generated"
    PROCESSING = "processing"
    OPEN = "open"
    CLOSED = "closed"
