"""
Module: fleet_engines
Responsibility:
    Package entrypoint re-exporting the pure billing calculators.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May import fleet_kernel.domain, fleet_kernel.db.types,
    fleet_kernel.exceptions and fleet_kernel.logging_config only.
    MUST NOT import fleet_services or fleet_config.

Invariants enforced:
    - Purity: engines never read the clock; dates are passed in.
    - Decimal-only arithmetic, half-up rounding through round_money().
    - Determinism: identical inputs always produce identical outputs, so a
      preview and a committed run over the same facts agree exactly.
"""

from fleet_engines.charge_calculator import (
    ChargeLine,
    ChargeRules,
    DriverWeekCharge,
    DriverWeekFacts,
    FractionalItem,
    KmExcessItem,
    PenaltyItem,
    TariffSnapshot,
    TicketCreditItem,
    TollItem,
    calculate_driver_week,
)
from fleet_engines.guarantee import (
    GuaranteeCharge,
    GuaranteeState,
    apply_installment,
    open_guarantee,
    plan_installment,
)
from fleet_engines.km_excess import (
    KmExcessQuote,
    KmTier,
    price_km_excess,
    select_tier,
    validate_tiers,
)
from fleet_engines.mora import calculate_mora
from fleet_engines.proration import (
    days_billed,
    iso_week_bounds,
    iso_week_of,
    monday_of,
    preview_window,
    prorate,
    prorated_factor,
    settlement_window,
)
from fleet_engines.settlement import (
    SettlementCalculation,
    calculate_guarantee_refund,
    calculate_settlement,
)

__all__ = [
    "ChargeLine",
    "ChargeRules",
    "DriverWeekCharge",
    "DriverWeekFacts",
    "FractionalItem",
    "GuaranteeCharge",
    "GuaranteeState",
    "KmExcessItem",
    "KmExcessQuote",
    "KmTier",
    "PenaltyItem",
    "SettlementCalculation",
    "TariffSnapshot",
    "TicketCreditItem",
    "TollItem",
    "apply_installment",
    "calculate_driver_week",
    "calculate_guarantee_refund",
    "calculate_mora",
    "calculate_settlement",
    "days_billed",
    "iso_week_bounds",
    "iso_week_of",
    "monday_of",
    "open_guarantee",
    "plan_installment",
    "preview_window",
    "price_km_excess",
    "prorate",
    "prorated_factor",
    "select_tier",
    "settlement_window",
    "validate_tiers",
]
