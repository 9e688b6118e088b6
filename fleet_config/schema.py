"""
Billing configuration schema.

The human-authored YAML document is parsed by ``fleet_config.loader`` into
these frozen dataclasses.  ``fleet_config.bridges`` turns them into the
inputs of the pure engines.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal


@dataclass(frozen=True)
class KmTierDef:
    """One kilometer-excess band: ``min_km <= km_over < max_km``."""

    min_km: int
    max_km: int
    percentage: Decimal  # fraction of weekly rent, e.g. 0.15
    label: str = ""


@dataclass(frozen=True)
class BillingParameters:
    """Every tunable constant of the weekly billing engine."""

    config_id: str
    version: int

    money_places: int
    days_per_week: int

    # Used when the tariff catalog lacks a concept; the line is flagged estimated
    fallback_prices: dict[str, Decimal]

    # modality value -> number of guarantee installments
    guarantee_installments: dict[str, int]

    mora_daily_rate: Decimal
    mora_max_days: int

    km_base: int
    km_vat_rate: Decimal
    km_tiers: tuple[KmTierDef, ...]

    driver_week_source: str
    recent_weeks: int

    block_balance_limit: Decimal
    block_mora_days: int

    checksum: str = field(default="", compare=False)
