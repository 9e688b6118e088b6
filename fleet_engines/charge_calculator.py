"""
Weekly Driver Charge Calculator.

Pure functions with deterministic behavior. No I/O.

Computes one driver's charges for one billing window from explicit facts:
prorated rent, guarantee installment, km excess, tolls, penalties,
fractional dues, ticket credits and mora.  The same function prices a
committed generation run, a read-only preview and a termination settlement;
they differ only in which facts they pass in and what they do with the
result.

Aggregation:
    gross_charges = rent + guarantee + km_excess + tolls + penalties + fractional
    net_charges   = gross_charges - credits
    total_due     = net_charges + prior_balance + mora

Failure modes:
    - Missing tariff concept: the TariffSnapshot carries the configured
      fallback price and marks the code estimated; the result is flagged
      ``is_estimated``.
    - Missing modality: billed at the lower-cost modality, ``needs_review``.
    - Negative fact amount or tariff price: ChargeInvariantError.  The
      caller skips the driver and continues the batch.
    - Assignment end before start: InvalidAssignmentError.

Usage:
    from fleet_engines.charge_calculator import calculate_driver_week

    charge = calculate_driver_week(facts, tariffs, rules)
    charge.total_due, charge.lines
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from fractions import Fraction
from typing import Mapping
from uuid import UUID

from fleet_kernel.db.types import ZERO, round_money
from fleet_kernel.domain.values import (
    RENT_CONCEPT_BY_MODALITY,
    ConceptCode,
    Modality,
)
from fleet_kernel.exceptions import ChargeInvariantError
from fleet_kernel.logging_config import get_logger
from fleet_engines.guarantee import (
    GuaranteeCharge,
    GuaranteeState,
    open_guarantee,
    plan_installment,
)
from fleet_engines.mora import calculate_mora
from fleet_engines.proration import DAYS_PER_WEEK, days_billed, prorate, prorated_factor

logger = get_logger("engines.charge_calculator")

_UNIT_PRICE_PLACES = Decimal("0.01")

_DEFAULT_DESCRIPTIONS: dict[str, str] = {
    ConceptCode.FIXED_FEE_RENT.value: "Weekly rent (fixed fee)",
    ConceptCode.SHIFT_RENT.value: "Weekly rent (shift)",
    ConceptCode.GUARANTEE_QUOTA.value: "Guarantee installment",
    ConceptCode.TICKET_CREDIT.value: "Ticket credit",
    ConceptCode.TOLLS.value: "Tolls",
    ConceptCode.KM_EXCESS.value: "Km excess",
    ConceptCode.PENALTY.value: "Penalty",
    ConceptCode.MORA.value: "Late payment interest",
    ConceptCode.FRACTIONAL_DUE.value: "Fractional due",
}


# ============================================================================
# Inputs
# ============================================================================


@dataclass(frozen=True)
class TariffSnapshot:
    """Prices read from the catalog once per run.

    ``estimated_codes`` lists codes priced from configuration fallbacks
    because the catalog had no active row for them.
    """

    prices: Mapping[str, Decimal]
    descriptions: Mapping[str, str] = field(default_factory=dict)
    estimated_codes: frozenset[str] = frozenset()

    def price(self, code: str) -> Decimal:
        return self.prices[code]

    def is_estimated(self, code: str) -> bool:
        return code in self.estimated_codes

    def describe(self, code: str) -> str:
        return self.descriptions.get(code) or _DEFAULT_DESCRIPTIONS.get(code, code)


@dataclass(frozen=True)
class ChargeRules:
    """Numeric rules of the calculator (built from configuration)."""

    days_per_week: int = DAYS_PER_WEEK
    money_places: int = 0
    mora_daily_rate: Decimal = Decimal("0.01")
    mora_max_days: int = 7
    guarantee_installments: Mapping[str, int] = field(
        default_factory=lambda: {
            Modality.FIXED_FEE.value: 20,
            Modality.SHIFT_BASED.value: 14,
        }
    )

    def installments_for(self, modality: Modality) -> int:
        return self.guarantee_installments[modality.value]


@dataclass(frozen=True)
class KmExcessItem:
    record_id: UUID
    total_amount: Decimal
    base_amount: Decimal
    tax_amount: Decimal
    vat_percentage: Decimal
    km_over: int
    bracket: str
    is_estimated: bool = False


@dataclass(frozen=True)
class TicketCreditItem:
    ticket_id: UUID
    amount: Decimal
    description: str


@dataclass(frozen=True)
class TollItem:
    toll_id: UUID
    amount: Decimal
    occurred_on: date


@dataclass(frozen=True)
class PenaltyItem:
    penalty_id: UUID
    amount: Decimal
    detail: str
    occurred_on: date


@dataclass(frozen=True)
class FractionalItem:
    installment_id: UUID
    amount: Decimal
    installment_number: int
    installment_count: int
    description: str


@dataclass(frozen=True)
class DriverWeekFacts:
    """Everything known about one driver for one billing window.

    ``guarantee`` is None when the driver has no guarantee account yet;
    the calculator then opens one with the catalog quota.
    """

    driver_id: UUID
    driver_name: str
    vehicle_plate: str | None
    modality: Modality | None
    window_start: date
    window_end: date
    assignment_start: date | None = None
    assignment_end: date | None = None
    prior_balance: Decimal = ZERO
    mora_days: int = 0
    guarantee: GuaranteeState | None = None
    km_excess: tuple[KmExcessItem, ...] = ()
    tickets: tuple[TicketCreditItem, ...] = ()
    tolls: tuple[TollItem, ...] = ()
    penalties: tuple[PenaltyItem, ...] = ()
    fractional: tuple[FractionalItem, ...] = ()


# ============================================================================
# Outputs
# ============================================================================


@dataclass(frozen=True)
class ChargeLine:
    """One concept row of the result (becomes a BillingLineDetail)."""

    concept_code: str
    description: str
    quantity: Decimal
    unit_price: Decimal
    subtotal: Decimal
    total: Decimal
    vat_percentage: Decimal = ZERO
    vat_amount: Decimal = ZERO
    is_credit: bool = False
    source_ref_id: UUID | None = None
    source_ref_type: str | None = None


@dataclass(frozen=True)
class DriverWeekCharge:
    driver_id: UUID
    driver_name: str
    vehicle_plate: str | None
    modality: Modality
    window_start: date
    window_end: date

    days_billed: int
    prorated_factor: Fraction

    rent_amount: Decimal
    guarantee_amount: Decimal
    km_excess_amount: Decimal
    toll_amount: Decimal
    penalty_amount: Decimal
    fractional_amount: Decimal

    gross_charges: Decimal
    credits: Decimal
    net_charges: Decimal

    prior_balance: Decimal
    mora_days: int
    mora_amount: Decimal
    total_due: Decimal

    guarantee_state: GuaranteeState
    guarantee_charge: GuaranteeCharge

    lines: tuple[ChargeLine, ...]
    is_estimated: bool = False
    needs_review: bool = False
    review_notes: tuple[str, ...] = ()

    @property
    def balance_delta(self) -> Decimal:
        """Change to the driver's balance head when this charge is committed."""
        return self.net_charges + self.mora_amount


# ============================================================================
# Calculation
# ============================================================================


def calculate_driver_week(
    facts: DriverWeekFacts,
    tariffs: TariffSnapshot,
    rules: ChargeRules,
) -> DriverWeekCharge:
    """
    Price one driver-week.

    Raises:
        InvalidAssignmentError: assignment end before start.
        ChargeInvariantError: a negative amount in the facts or tariffs.
    """
    t0 = time.monotonic()
    driver = str(facts.driver_id)
    places = rules.money_places

    _check_facts(facts)

    days = days_billed(
        facts.window_start,
        facts.window_end,
        facts.assignment_start,
        facts.assignment_end,
        rules.days_per_week,
        driver_id=driver,
    )
    factor = prorated_factor(days, rules.days_per_week)

    notes: list[str] = []
    needs_review = False
    modality = facts.modality
    if modality is None:
        modality = _lower_cost_modality(tariffs)
        needs_review = True
        notes.append(f"Assignment has no modality; billed as {modality.value}")
        logger.warning(
            "modality_missing_fallback",
            extra={"driver_id": driver, "fallback_modality": modality.value},
        )

    # Rent
    rent_code = RENT_CONCEPT_BY_MODALITY[modality].value
    weekly_rent = _tariff_price(tariffs, rent_code, driver)
    is_estimated = tariffs.is_estimated(rent_code)
    rent = prorate(weekly_rent, days, rules.days_per_week, places)

    # Guarantee
    guarantee_code = ConceptCode.GUARANTEE_QUOTA.value
    guarantee_state = facts.guarantee
    if guarantee_state is None:
        quota = _tariff_price(tariffs, guarantee_code, driver)
        is_estimated = is_estimated or tariffs.is_estimated(guarantee_code)
        guarantee_state = open_guarantee(rules.installments_for(modality), quota)
    guarantee = plan_installment(guarantee_state, days, rules.days_per_week, places)

    # Facts
    km_total = _sum(item.total_amount for item in facts.km_excess)
    if any(item.is_estimated for item in facts.km_excess):
        is_estimated = True
        notes.append("Km excess priced beyond the configured bands")
    credits = _sum(item.amount for item in facts.tickets)
    tolls = _sum(item.amount for item in facts.tolls)
    penalties = _sum(item.amount for item in facts.penalties)
    fractional = _sum(item.amount for item in facts.fractional)

    gross = rent + guarantee.amount + km_total + tolls + penalties + fractional
    net = gross - credits

    mora = calculate_mora(
        facts.prior_balance,
        facts.mora_days,
        rules.mora_daily_rate,
        rules.mora_max_days,
        places,
    )
    total_due = net + facts.prior_balance + mora

    lines = _build_lines(
        facts, tariffs, rules, modality, days, weekly_rent, rent, guarantee,
        guarantee_state, mora,
    )

    duration_ms = round((time.monotonic() - t0) * 1000, 2)
    logger.debug(
        "driver_week_calculation_completed",
        extra={
            "driver_id": driver,
            "days_billed": days,
            "gross_charges": str(gross),
            "credits": str(credits),
            "total_due": str(total_due),
            "is_estimated": is_estimated,
            "needs_review": needs_review,
            "duration_ms": duration_ms,
        },
    )

    return DriverWeekCharge(
        driver_id=facts.driver_id,
        driver_name=facts.driver_name,
        vehicle_plate=facts.vehicle_plate,
        modality=modality,
        window_start=facts.window_start,
        window_end=facts.window_end,
        days_billed=days,
        prorated_factor=factor,
        rent_amount=rent,
        guarantee_amount=guarantee.amount,
        km_excess_amount=km_total,
        toll_amount=tolls,
        penalty_amount=penalties,
        fractional_amount=fractional,
        gross_charges=gross,
        credits=credits,
        net_charges=net,
        prior_balance=facts.prior_balance,
        mora_days=facts.mora_days,
        mora_amount=mora,
        total_due=total_due,
        guarantee_state=guarantee_state,
        guarantee_charge=guarantee,
        lines=tuple(lines),
        is_estimated=is_estimated,
        needs_review=needs_review,
        review_notes=tuple(notes),
    )


def _build_lines(
    facts: DriverWeekFacts,
    tariffs: TariffSnapshot,
    rules: ChargeRules,
    modality: Modality,
    days: int,
    weekly_rent: Decimal,
    rent: Decimal,
    guarantee: GuaranteeCharge,
    guarantee_state: GuaranteeState,
    mora: Decimal,
) -> list[ChargeLine]:
    lines: list[ChargeLine] = []

    if rent > ZERO:
        code = RENT_CONCEPT_BY_MODALITY[modality].value
        lines.append(ChargeLine(
            concept_code=code,
            description=f"{tariffs.describe(code)} ({days}/{rules.days_per_week} days)",
            quantity=Decimal(days),
            unit_price=(weekly_rent / Decimal(rules.days_per_week)).quantize(_UNIT_PRICE_PLACES),
            subtotal=rent,
            total=rent,
        ))

    code = ConceptCode.GUARANTEE_QUOTA.value
    if guarantee.account_completed:
        lines.append(ChargeLine(
            concept_code=code,
            description=f"{tariffs.describe(code)} (completed)",
            quantity=Decimal(0),
            unit_price=guarantee_state.quota_amount,
            subtotal=guarantee.amount,
            total=guarantee.amount,
        ))
    elif guarantee.amount > ZERO:
        lines.append(ChargeLine(
            concept_code=code,
            description=(
                f"{tariffs.describe(code)} "
                f"{guarantee.installment_number}/{guarantee_state.total_installments}"
            ),
            quantity=Decimal(1),
            unit_price=guarantee.amount,
            subtotal=guarantee.amount,
            total=guarantee.amount,
        ))

    code = ConceptCode.KM_EXCESS.value
    for item in facts.km_excess:
        lines.append(ChargeLine(
            concept_code=code,
            description=f"{tariffs.describe(code)} +{item.km_over} km ({item.bracket})",
            quantity=Decimal(1),
            unit_price=item.base_amount,
            subtotal=item.base_amount,
            vat_percentage=item.vat_percentage,
            vat_amount=item.tax_amount,
            total=item.total_amount,
            source_ref_id=item.record_id,
            source_ref_type="km_excess",
        ))

    if facts.tolls:
        code = ConceptCode.TOLLS.value
        toll_total = _sum(item.amount for item in facts.tolls)
        lines.append(ChargeLine(
            concept_code=code,
            description=f"{tariffs.describe(code)} ({len(facts.tolls)})",
            quantity=Decimal(len(facts.tolls)),
            unit_price=toll_total,
            subtotal=toll_total,
            total=toll_total,
        ))

    code = ConceptCode.PENALTY.value
    for item in facts.penalties:
        lines.append(ChargeLine(
            concept_code=code,
            description=f"{tariffs.describe(code)}: {item.detail}",
            quantity=Decimal(1),
            unit_price=item.amount,
            subtotal=item.amount,
            total=item.amount,
            source_ref_id=item.penalty_id,
            source_ref_type="penalty",
        ))

    code = ConceptCode.FRACTIONAL_DUE.value
    for item in facts.fractional:
        lines.append(ChargeLine(
            concept_code=code,
            description=(
                f"{item.description} "
                f"{item.installment_number}/{item.installment_count}"
            ),
            quantity=Decimal(1),
            unit_price=item.amount,
            subtotal=item.amount,
            total=item.amount,
            source_ref_id=item.installment_id,
            source_ref_type="fractional_installment",
        ))

    code = ConceptCode.TICKET_CREDIT.value
    for item in facts.tickets:
        lines.append(ChargeLine(
            concept_code=code,
            description=f"{tariffs.describe(code)}: {item.description}",
            quantity=Decimal(1),
            unit_price=item.amount,
            subtotal=item.amount,
            total=item.amount,
            is_credit=True,
            source_ref_id=item.ticket_id,
            source_ref_type="ticket",
        ))

    if mora > ZERO:
        code = ConceptCode.MORA.value
        mora_days = min(facts.mora_days, rules.mora_max_days)
        lines.append(ChargeLine(
            concept_code=code,
            description=f"{tariffs.describe(code)} ({mora_days} days)",
            quantity=Decimal(mora_days),
            unit_price=round_money(facts.prior_balance * rules.mora_daily_rate, 2),
            subtotal=mora,
            total=mora,
        ))

    return lines


def _lower_cost_modality(tariffs: TariffSnapshot) -> Modality:
    fixed = tariffs.price(ConceptCode.FIXED_FEE_RENT.value)
    shift = tariffs.price(ConceptCode.SHIFT_RENT.value)
    return Modality.FIXED_FEE if fixed < shift else Modality.SHIFT_BASED


def _tariff_price(tariffs: TariffSnapshot, code: str, driver: str) -> Decimal:
    price = tariffs.price(code)
    if price < ZERO:
        raise ChargeInvariantError(driver, f"tariff {code}", str(price))
    return price


def _check_facts(facts: DriverWeekFacts) -> None:
    driver = str(facts.driver_id)
    if facts.mora_days < 0:
        raise ChargeInvariantError(driver, "mora_days", str(facts.mora_days))
    checks = (
        ("km_excess", (i.total_amount for i in facts.km_excess)),
        ("ticket_credit", (i.amount for i in facts.tickets)),
        ("toll", (i.amount for i in facts.tolls)),
        ("penalty", (i.amount for i in facts.penalties)),
        ("fractional_due", (i.amount for i in facts.fractional)),
    )
    for name, amounts in checks:
        for amount in amounts:
            if amount < ZERO:
                raise ChargeInvariantError(driver, name, str(amount))


def _sum(values) -> Decimal:
    return sum(values, ZERO)
