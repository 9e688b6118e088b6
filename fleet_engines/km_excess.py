"""
Kilometer-excess tiered pricing.

Pure functions with deterministic behavior. No I/O.

A driver's weekly kilometers above the base allowance fall into one of an
ordered set of bands.  The band's percentage is applied to the weekly rent
and VAT is added on top:

    km_over     = km_traveled - km_base
    base_amount = round(weekly_rent * percentage)
    tax_amount  = round(base_amount * vat_rate)
    total       = base_amount + tax_amount

Bands are half-open ``[min_km, max_km)``.  An excess beyond the last band
is priced at the last band's percentage and flagged estimated so a person
reviews it.

Usage:
    from fleet_engines.km_excess import KmTier, price_km_excess

    tiers = validate_tiers([KmTier(1, 50, Decimal("0.15")), ...])
    quote = price_km_excess(1900, 1800, Decimal("360000"), tiers, Decimal("0.21"))
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Sequence

from fleet_kernel.db.types import DEFAULT_MONEY_PLACES, round_money
from fleet_kernel.exceptions import KmTierConfigurationError
from fleet_kernel.logging_config import get_logger

logger = get_logger("engines.km_excess")


@dataclass(frozen=True)
class KmTier:
    """One ``[min_km, max_km)`` band."""

    min_km: int
    max_km: int
    percentage: Decimal
    label: str = ""

    def __post_init__(self) -> None:
        if self.max_km <= self.min_km:
            raise KmTierConfigurationError(
                f"band {self.min_km}-{self.max_km} has max_km <= min_km"
            )
        if self.percentage < 0:
            raise KmTierConfigurationError(
                f"band {self.min_km}-{self.max_km} has a negative percentage"
            )

    def contains(self, km_over: int) -> bool:
        return self.min_km <= km_over < self.max_km

    @property
    def display(self) -> str:
        return self.label or f"{self.min_km}-{self.max_km} km"


@dataclass(frozen=True)
class KmExcessQuote:
    """Priced excess for one driver-week."""

    km_traveled: int
    km_base: int
    km_over: int
    tier: KmTier
    percentage: Decimal
    rent_base: Decimal
    base_amount: Decimal
    vat_rate: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    is_estimated: bool


def validate_tiers(tiers: Sequence[KmTier]) -> tuple[KmTier, ...]:
    """
    Check that bands are non-empty, ordered and non-overlapping.

    Raises:
        KmTierConfigurationError: on any violation.
    """
    if not tiers:
        raise KmTierConfigurationError("no km tiers configured")
    ordered = tuple(tiers)
    for previous, current in zip(ordered, ordered[1:]):
        if current.min_km < previous.max_km:
            raise KmTierConfigurationError(
                f"band {current.display} overlaps or precedes {previous.display}"
            )
    return ordered


def select_tier(km_over: int, tiers: Sequence[KmTier]) -> tuple[KmTier, bool]:
    """
    Band for ``km_over`` and whether the choice is an estimate.

    Exact band match -> (band, False).  Beyond the last band, or in a gap
    between bands -> nearest lower band (the first band if below all),
    flagged estimated.
    """
    chosen = tiers[0]
    for tier in tiers:
        if tier.contains(km_over):
            return tier, False
        if tier.min_km <= km_over:
            chosen = tier
    return chosen, True


def price_km_excess(
    km_traveled: int,
    km_base: int,
    weekly_rent: Decimal,
    tiers: Sequence[KmTier],
    vat_rate: Decimal,
    places: int = DEFAULT_MONEY_PLACES,
) -> KmExcessQuote | None:
    """
    Price a week's kilometers.  Returns None when there is no excess.

    Raises:
        KmTierConfigurationError: tiers are invalid.
    """
    km_over = km_traveled - km_base
    if km_over <= 0:
        return None

    ordered = validate_tiers(tiers)
    tier, is_estimated = select_tier(km_over, ordered)

    base_amount = round_money(weekly_rent * tier.percentage, places)
    tax_amount = round_money(base_amount * vat_rate, places)
    total = base_amount + tax_amount

    if is_estimated:
        logger.warning(
            "km_excess_tier_estimated",
            extra={"km_over": km_over, "tier": tier.display},
        )

    return KmExcessQuote(
        km_traveled=km_traveled,
        km_base=km_base,
        km_over=km_over,
        tier=tier,
        percentage=tier.percentage,
        rent_base=weekly_rent,
        base_amount=base_amount,
        vat_rate=vat_rate,
        tax_amount=tax_amount,
        total_amount=total,
        is_estimated=is_estimated,
    )
