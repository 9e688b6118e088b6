"""
Module: fleet_kernel.models.settlement
Responsibility: Termination settlements (final partial-week liquidation of a
    departing driver, with guarantee refund).
Architecture position: Kernel > Models.

Invariants enforced:
    - APPROVED is terminal.  Approved settlements are never deleted.
    - 1 <= days_billed <= 7 (cutoff is inside the week of week_start).
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from fleet_kernel.db.base import TrackedBase, UUIDString
from fleet_kernel.domain.values import Modality


class SettlementStatus(str, Enum):
    CALCULATED = "calculated"
    APPROVED = "approved"
    CANCELLED = "cancelled"


class DriverTerminationSettlement(TrackedBase):
    __tablename__ = "driver_termination_settlements"

    __table_args__ = (Index("idx_settlement_driver", "driver_id"),)

    driver_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("drivers.id"), nullable=False
    )
    driver_name: Mapped[str] = mapped_column(String(200), nullable=False)
    vehicle_plate: Mapped[str | None] = mapped_column(String(20), nullable=True)
    modality: Mapped[Modality] = mapped_column(String(20), nullable=False)

    settlement_date: Mapped[date] = mapped_column(Date, nullable=False)
    week_start: Mapped[date] = mapped_column(Date, nullable=False)
    cutoff_date: Mapped[date] = mapped_column(Date, nullable=False)
    days_billed: Mapped[int] = mapped_column(Integer, nullable=False)

    rent_amount: Mapped[Decimal] = mapped_column(nullable=False)
    guarantee_amount: Mapped[Decimal] = mapped_column(nullable=False)
    toll_amount: Mapped[Decimal] = mapped_column(nullable=False)
    km_excess_amount: Mapped[Decimal] = mapped_column(nullable=False)
    penalty_amount: Mapped[Decimal] = mapped_column(nullable=False)
    fractional_amount: Mapped[Decimal] = mapped_column(nullable=False)
    credits: Mapped[Decimal] = mapped_column(nullable=False)
    gross_charges: Mapped[Decimal] = mapped_column(nullable=False)
    prior_balance: Mapped[Decimal] = mapped_column(nullable=False)
    mora_days: Mapped[int] = mapped_column(Integer, nullable=False)
    mora_amount: Mapped[Decimal] = mapped_column(nullable=False)
    total_due: Mapped[Decimal] = mapped_column(nullable=False)

    guarantee_total_paid: Mapped[Decimal] = mapped_column(nullable=False)
    guarantee_installments_paid: Mapped[int] = mapped_column(Integer, nullable=False)
    guarantee_refund: Mapped[Decimal] = mapped_column(nullable=False)

    status: Mapped[SettlementStatus] = mapped_column(
        String(20), default=SettlementStatus.CALCULATED.value, nullable=False
    )
    reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    notes: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    is_estimated: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    needs_review: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    approved_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
