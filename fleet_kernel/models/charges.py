"""
Module: fleet_kernel.models.charges
Responsibility: Chargeable facts fed into weekly billing by other parts of
    the back office: toll pass-throughs, one-off penalties and fractional
    (installment-split) dues.
Architecture position: Kernel > Models.

Tolls are billed by date window and never consumed.  Penalties and
fractional installments are consumed like km-excess records: an
``applied`` flag flipped by a conditional UPDATE.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from fleet_kernel.db.base import TrackedBase, UUIDString


class TollCharge(TrackedBase):
    """Toll pass-through synced from the ride-hailing platform."""

    __tablename__ = "toll_charges"

    __table_args__ = (Index("idx_toll_driver_date", "driver_id", "occurred_on"),)

    driver_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("drivers.id"), nullable=False
    )
    occurred_on: Mapped[date] = mapped_column(Date, nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    source: Mapped[str] = mapped_column(String(50), default="platform", nullable=False)


class Penalty(TrackedBase):
    """One-off penalty dated inside the week it is billed in."""

    __tablename__ = "penalties"

    __table_args__ = (
        Index("idx_penalty_driver_date", "driver_id", "occurred_on"),
        Index("idx_penalty_applied_period", "applied_period_id"),
    )

    driver_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("drivers.id"), nullable=False
    )
    occurred_on: Mapped[date] = mapped_column(Date, nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    detail: Mapped[str] = mapped_column(String(500), nullable=False)

    applied: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    applied_period_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("billing_periods.id"), nullable=True
    )
    applied_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )


class FractionalCharge(TrackedBase):
    """A debt split into weekly installments (e.g. a repair the driver owes)."""

    __tablename__ = "fractional_charges"

    driver_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("drivers.id"), nullable=False
    )
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(nullable=False)
    installment_count: Mapped[int] = mapped_column(Integer, nullable=False)


class FractionalInstallment(TrackedBase):
    """Installment of a FractionalCharge scheduled for an ISO week."""

    __tablename__ = "fractional_installments"

    __table_args__ = (
        UniqueConstraint("charge_id", "installment_number", name="uq_fractional_installment"),
        Index("idx_fractional_driver_week", "driver_id", "year", "week_number"),
        Index("idx_fractional_applied_period", "applied_period_id"),
    )

    charge_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("fractional_charges.id"), nullable=False
    )
    driver_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("drivers.id"), nullable=False
    )
    installment_number: Mapped[int] = mapped_column(Integer, nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    week_number: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)

    applied: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    applied_period_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("billing_periods.id"), nullable=True
    )
    applied_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
