"""
Config -> Engine Bridges.

Functions that convert ``BillingParameters`` into the inputs of the pure
engines.  They live in fleet_config (the producer) because the kernel and
the engines must never import fleet_config.

Usage:
    from fleet_config import get_active_config
    from fleet_config.bridges import build_charge_rules, build_km_tiers

    params = get_active_config()
    rules = build_charge_rules(params)
"""

from __future__ import annotations

from fleet_config.schema import BillingParameters
from fleet_engines.charge_calculator import ChargeRules
from fleet_engines.km_excess import KmTier, validate_tiers


def build_charge_rules(params: BillingParameters) -> ChargeRules:
    return ChargeRules(
        days_per_week=params.days_per_week,
        money_places=params.money_places,
        mora_daily_rate=params.mora_daily_rate,
        mora_max_days=params.mora_max_days,
        guarantee_installments=dict(params.guarantee_installments),
    )


def build_km_tiers(params: BillingParameters) -> tuple[KmTier, ...]:
    """Validated km bands.

    Raises:
        KmTierConfigurationError: bands are empty, unordered or overlapping.
    """
    return validate_tiers([
        KmTier(
            min_km=tier.min_km,
            max_km=tier.max_km,
            percentage=tier.percentage,
            label=tier.label,
        )
        for tier in params.km_tiers
    ])
