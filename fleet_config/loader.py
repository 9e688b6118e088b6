"""
Configuration Loader (``fleet_config.loader``).

Responsibility
--------------
Loads the billing YAML document and parses it into a frozen
``BillingParameters``.  Runtime callers go through
``fleet_config.get_active_config()``; this module is the parsing layer
underneath it.

Invariants enforced
-------------------
* Missing required keys raise ``KeyError``; no silent defaults.
* Money and rates are parsed as ``Decimal`` from their string form.
* ``compute_checksum`` produces a deterministic SHA-256 of the parsed
  document, logged with every load.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Out-of-range values  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from fleet_config.schema import BillingParameters, KmTierDef

KNOWN_DRIVER_WEEK_SOURCES = frozenset({"assignments", "roster"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_decimal(value: Any, name: str) -> Decimal:
    """Parse a YAML scalar into an exact Decimal (never via float)."""
    if isinstance(value, bool):
        raise ValueError(f"{name}: expected a number, got {value!r}")
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"{name}: cannot parse {value!r} as a decimal") from exc


def parse_km_tier(data: dict[str, Any]) -> KmTierDef:
    return KmTierDef(
        min_km=int(data["min_km"]),
        max_km=int(data["max_km"]),
        percentage=parse_decimal(data["percentage"], "km_excess.tiers.percentage"),
        label=data.get("label", f"{data['min_km']}-{data['max_km']}"),
    )


def parse_billing_parameters(data: dict[str, Any]) -> BillingParameters:
    """
    Parse the YAML document into ``BillingParameters``.

    Raises:
        KeyError: a required section or key is missing.
        ValueError: a value is out of range.
    """
    money = data["money"]
    billing = data["billing"]
    mora = data["mora"]
    km = data["km_excess"]
    blocking = data["blocking"]

    params = BillingParameters(
        config_id=str(data["config_id"]),
        version=int(data["version"]),
        money_places=int(money["decimal_places"]),
        days_per_week=int(billing["days_per_week"]),
        fallback_prices={
            str(code): parse_decimal(price, f"fallback_prices.{code}")
            for code, price in data["fallback_prices"].items()
        },
        guarantee_installments={
            str(modality): int(count)
            for modality, count in data["guarantee"]["installments"].items()
        },
        mora_daily_rate=parse_decimal(mora["daily_rate"], "mora.daily_rate"),
        mora_max_days=int(mora["max_days"]),
        km_base=int(km["base_km"]),
        km_vat_rate=parse_decimal(km["vat_rate"], "km_excess.vat_rate"),
        km_tiers=tuple(parse_km_tier(t) for t in km["tiers"]),
        driver_week_source=str(billing["driver_week_source"]),
        recent_weeks=int(billing.get("recent_weeks", 12)),
        block_balance_limit=parse_decimal(blocking["balance_limit"], "blocking.balance_limit"),
        block_mora_days=int(blocking["mora_days"]),
        checksum=compute_checksum(data),
    )
    _validate(params)
    return params


def _validate(params: BillingParameters) -> None:
    if params.money_places < 0:
        raise ValueError("money.decimal_places must be >= 0")
    if params.days_per_week <= 0:
        raise ValueError("billing.days_per_week must be positive")
    if params.mora_daily_rate < 0 or params.mora_max_days < 0:
        raise ValueError("mora.daily_rate and mora.max_days must be >= 0")
    if params.km_base < 0:
        raise ValueError("km_excess.base_km must be >= 0")
    if params.driver_week_source not in KNOWN_DRIVER_WEEK_SOURCES:
        raise ValueError(
            f"billing.driver_week_source must be one of "
            f"{sorted(KNOWN_DRIVER_WEEK_SOURCES)}, got {params.driver_week_source!r}"
        )
    for code, price in params.fallback_prices.items():
        if price < 0:
            raise ValueError(f"fallback_prices.{code} must be >= 0")
    for modality, count in params.guarantee_installments.items():
        if count <= 0:
            raise ValueError(f"guarantee.installments.{modality} must be positive")


def compute_checksum(data: dict[str, Any]) -> str:
    """Deterministic SHA-256 over the canonical JSON form of the document."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def load_billing_parameters(path: Path) -> BillingParameters:
    return parse_billing_parameters(load_yaml_file(path))
