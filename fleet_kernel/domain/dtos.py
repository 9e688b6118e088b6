"""
Frozen DTOs returned by kernel services and selectors.

Services and selectors never hand ORM instances to callers; these
immutable snapshots are what crosses the kernel boundary.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from fleet_kernel.domain.values import PeriodStatus, period_code


@dataclass(frozen=True)
class BillingPeriodInfo:
    """A billing week.  ``id`` is None for a synthetic NOT_GENERATED week."""

    id: UUID | None
    week_number: int
    year: int
    start_date: date
    end_date: date
    status: PeriodStatus
    driver_count: int = 0
    total_charges: Decimal = Decimal("0")
    total_credits: Decimal = Decimal("0")
    total_net: Decimal = Decimal("0")
    closed_at: datetime | None = None
    closed_by_id: UUID | None = None

    @property
    def period_code(self) -> str:
        return period_code(self.week_number, self.year)


@dataclass(frozen=True)
class BillingDetailInfo:
    concept_code: str
    description: str
    quantity: Decimal
    unit_price: Decimal
    total: Decimal
    is_credit: bool
    source_ref_id: UUID | None
    source_ref_type: str | None


@dataclass(frozen=True)
class BillingLineInfo:
    id: UUID
    period_id: UUID
    driver_id: UUID
    driver_name: str
    vehicle_plate: str | None
    modality: str
    days_billed: int
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
    status: str
    is_estimated: bool
    needs_review: bool
    details: tuple[BillingDetailInfo, ...]


@dataclass(frozen=True)
class DriverBalanceInfo:
    driver_id: UUID
    current_balance: Decimal
    mora_days: int
    accrued_mora_amount: Decimal
    last_updated: datetime | None


@dataclass(frozen=True)
class BlockCandidate:
    """Driver whose debt or arrears exceed the blocking thresholds."""

    driver_id: UUID
    driver_name: str
    current_balance: Decimal
    mora_days: int
    over_balance_limit: bool
    over_mora_days: bool


@dataclass(frozen=True)
class GuaranteeInfo:
    driver_id: UUID
    modality: str
    total_installments: int
    quota_amount: Decimal
    installments_paid: int
    amount_paid: Decimal
    status: str


@dataclass(frozen=True)
class KmExcessInfo:
    id: UUID
    driver_id: UUID
    week_number: int
    year: int
    km_traveled: int
    km_over: int
    bracket: str
    percentage: Decimal
    base_amount: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    is_estimated: bool
    applied: bool


@dataclass(frozen=True)
class TicketInfo:
    id: UUID
    driver_id: UUID
    ticket_type: str
    description: str
    amount: Decimal
    status: str
    rejection_reason: str | None
    applied_period_id: UUID | None


@dataclass(frozen=True)
class TariffConceptInfo:
    code: str
    description: str
    final_price: Decimal
    vat_percentage: Decimal
    kind: str
