"""
Module: fleet_kernel.models.km_excess
Responsibility: Priced kilometer-excess records awaiting (or consumed by)
    billing.
Architecture position: Kernel > Models.

Invariants enforced:
    - applied flips false -> true exactly once, by the conditional UPDATE of
      a generation run; only a regeneration of applied_period_id flips it back.
    - Applied records are immutable (KmExcessService).
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from fleet_kernel.db.base import TrackedBase, UUIDString


class KmExcessRecord(TrackedBase):
    __tablename__ = "km_excess_records"

    __table_args__ = (
        Index("idx_km_excess_driver_applied", "driver_id", "applied"),
        Index("idx_km_excess_applied_period", "applied_period_id"),
    )

    driver_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("drivers.id"), nullable=False
    )
    vehicle_plate: Mapped[str | None] = mapped_column(String(20), nullable=True)

    # Week the kilometers were driven
    week_number: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)

    km_traveled: Mapped[int] = mapped_column(Integer, nullable=False)
    km_base: Mapped[int] = mapped_column(Integer, nullable=False)
    km_over: Mapped[int] = mapped_column(Integer, nullable=False)
    bracket: Mapped[str] = mapped_column(String(40), nullable=False)
    percentage: Mapped[Decimal] = mapped_column(Numeric(9, 6), nullable=False)

    rent_base: Mapped[Decimal] = mapped_column(nullable=False)
    base_amount: Mapped[Decimal] = mapped_column(nullable=False)
    vat_percentage: Mapped[Decimal] = mapped_column(Numeric(9, 6), nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(nullable=False)
    is_estimated: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    applied: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    applied_period_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("billing_periods.id"), nullable=True
    )
    applied_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
