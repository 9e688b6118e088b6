"""
Module: fleet_kernel.models.balance
Responsibility: Running driver balances and the append-only movement history
    behind them.
Architecture position: Kernel > Models.

Invariants enforced:
    - One DriverBalance per driver (uq_driver_balance_driver).
    - current_balance > 0 means the driver owes the fleet.
    - current_balance equals the sum of movements, charges positive and
      credits negative (verified by BalanceService.verify_balance).
    - BalanceMovement.amount is strictly positive; direction is the type.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from fleet_kernel.db.base import TrackedBase, UUIDString


class MovementType(str, Enum):
    CHARGE = "charge"
    CREDIT = "credit"


class DriverBalance(TrackedBase):
    """Balance head for one driver."""

    __tablename__ = "driver_balances"

    __table_args__ = (UniqueConstraint("driver_id", name="uq_driver_balance_driver"),)

    driver_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("drivers.id"), nullable=False
    )
    current_balance: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)

    # Days in arrears, maintained by the payments side
    mora_days: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    accrued_mora_amount: Mapped[Decimal] = mapped_column(
        default=Decimal("0"), nullable=False
    )

    last_updated: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )


class BalanceMovement(TrackedBase):
    """One signed change to a driver's balance.  Never updated or deleted."""

    __tablename__ = "balance_movements"

    __table_args__ = (
        Index("idx_movement_driver", "driver_id"),
        Index("idx_movement_period", "period_id"),
    )

    driver_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("drivers.id"), nullable=False
    )
    movement_type: Mapped[MovementType] = mapped_column(String(20), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    concept: Mapped[str] = mapped_column(String(200), nullable=False)
    reference: Mapped[str | None] = mapped_column(String(200), nullable=True)

    week_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    period_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("billing_periods.id"), nullable=True
    )

    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    @property
    def signed_amount(self) -> Decimal:
        if self.movement_type == MovementType.CHARGE:
            return self.amount
        return -self.amount
