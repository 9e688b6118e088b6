"""
fleet_services._settlement_types -- Request and result objects for
termination settlements.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID


@dataclass(frozen=True)
class SettlementRequest:
    """
    What the operator selected when liquidating a driver.

    ``cutoff_date`` is the driver's last billable day; the settlement bills
    from the Monday of that week up to and including it.
    """

    driver_id: UUID
    cutoff_date: date
    reason: str | None = None
    notes: str | None = None
    settlement_date: date | None = None


@dataclass(frozen=True)
class SettlementInfo:
    id: UUID
    driver_id: UUID
    driver_name: str
    vehicle_plate: str | None
    modality: str
    settlement_date: date
    week_start: date
    cutoff_date: date
    days_billed: int
    rent_amount: Decimal
    guarantee_amount: Decimal
    toll_amount: Decimal
    km_excess_amount: Decimal
    penalty_amount: Decimal
    fractional_amount: Decimal
    credits: Decimal
    gross_charges: Decimal
    prior_balance: Decimal
    mora_days: int
    mora_amount: Decimal
    total_due: Decimal
    guarantee_total_paid: Decimal
    guarantee_installments_paid: int
    guarantee_refund: Decimal
    status: str
    reason: str | None
    is_estimated: bool
    needs_review: bool
    approved_by_id: UUID | None
    approved_at: datetime | None
