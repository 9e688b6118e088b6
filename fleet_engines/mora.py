"""
Mora (late-payment interest) accrual.

Pure functions with deterministic behavior. No I/O.

Interest accrues only on a positive prior balance, at a flat daily rate,
for at most ``max_days`` days:

    mora = round(prior_balance * daily_rate * min(mora_days, max_days))
"""

from __future__ import annotations

from decimal import Decimal

from fleet_kernel.db.types import DEFAULT_MONEY_PLACES, ZERO, round_money


def chargeable_mora_days(mora_days: int, max_days: int) -> int:
    return max(0, min(mora_days, max_days))


def calculate_mora(
    prior_balance: Decimal,
    mora_days: int,
    daily_rate: Decimal,
    max_days: int,
    places: int = DEFAULT_MONEY_PLACES,
) -> Decimal:
    """Mora for one week.  Zero unless the driver owes money and is in arrears."""
    days = chargeable_mora_days(mora_days, max_days)
    if prior_balance <= ZERO or days == 0:
        return round_money(ZERO, places)
    return round_money(prior_balance * daily_rate * days, places)
