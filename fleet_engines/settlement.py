"""
Termination liquidation.

Pure functions with deterministic behavior. No I/O.

A departing driver is billed for the partial week from Monday to the cutoff
date with the regular charge calculator, and the guarantee deposit is
netted against what they owe:

    total_due < 0 and paid > 0      -> refund = min(paid, |total_due|)
    total_due > 0 and paid > total  -> refund = paid - total_due
    otherwise                       -> refund = 0

The refund is never negative and never exceeds the deposit paid.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal

from fleet_kernel.db.types import ZERO, round_money
from fleet_kernel.logging_config import get_logger
from fleet_engines.charge_calculator import (
    ChargeRules,
    DriverWeekCharge,
    DriverWeekFacts,
    TariffSnapshot,
    calculate_driver_week,
)
from fleet_engines.proration import settlement_window

logger = get_logger("engines.settlement")


@dataclass(frozen=True)
class SettlementCalculation:
    charge: DriverWeekCharge
    week_start: date
    cutoff_date: date
    guarantee_amount_paid: Decimal
    guarantee_installments_paid: int
    guarantee_refund: Decimal

    @property
    def total_due(self) -> Decimal:
        return self.charge.total_due


def calculate_guarantee_refund(
    total_due: Decimal,
    amount_paid: Decimal,
    places: int = 0,
) -> Decimal:
    """Deposit returned to the driver given the settlement total."""
    if total_due < ZERO and amount_paid > ZERO:
        refund = min(amount_paid, -total_due)
    elif total_due > ZERO and amount_paid > total_due:
        refund = amount_paid - total_due
    else:
        refund = ZERO
    return round_money(refund, places)


def calculate_settlement(
    facts: DriverWeekFacts,
    tariffs: TariffSnapshot,
    rules: ChargeRules,
    cutoff: date,
) -> SettlementCalculation:
    """
    Price the final partial week ending at ``cutoff``.

    The facts' window is replaced by Monday-of-cutoff .. cutoff, so days
    billed is between 1 and 7 when the assignment covers the cutoff.

    Raises:
        InvalidAssignmentError, ChargeInvariantError: as the calculator.
    """
    t0 = time.monotonic()
    week_start, window_end = settlement_window(cutoff)
    charge = calculate_driver_week(
        replace(facts, window_start=week_start, window_end=window_end),
        tariffs,
        rules,
    )

    state = charge.guarantee_state
    paid = state.amount_paid if facts.guarantee is not None else ZERO
    installments = state.installments_paid if facts.guarantee is not None else 0
    refund = calculate_guarantee_refund(charge.total_due, paid, rules.money_places)

    logger.info(
        "settlement_calculation_completed",
        extra={
            "driver_id": str(facts.driver_id),
            "cutoff_date": cutoff.isoformat(),
            "days_billed": charge.days_billed,
            "total_due": str(charge.total_due),
            "guarantee_refund": str(refund),
            "duration_ms": round((time.monotonic() - t0) * 1000, 2),
        },
    )

    return SettlementCalculation(
        charge=charge,
        week_start=week_start,
        cutoff_date=cutoff,
        guarantee_amount_paid=paid,
        guarantee_installments_paid=installments,
        guarantee_refund=refund,
    )
