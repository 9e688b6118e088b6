"""
Module: fleet_kernel.models.guarantee
Responsibility: Guarantee-deposit accounts and the installments paid into them.
Architecture position: Kernel > Models.

Invariants enforced:
    - amount_paid never exceeds total_installments * quota_amount.
    - One GuaranteePayment per (account, period): a regeneration deletes the
      period's payment before writing a new one.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from fleet_kernel.db.base import TrackedBase, UUIDString
from fleet_kernel.domain.values import Modality


class GuaranteeStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class GuaranteeAccount(TrackedBase):
    """Deposit a driver accumulates in weekly installments."""

    __tablename__ = "guarantee_accounts"

    __table_args__ = (UniqueConstraint("driver_id", name="uq_guarantee_driver"),)

    driver_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("drivers.id"), nullable=False
    )
    modality: Mapped[Modality] = mapped_column(String(20), nullable=False)

    # Fixed by modality when the account opens
    total_installments: Mapped[int] = mapped_column(Integer, nullable=False)
    quota_amount: Mapped[Decimal] = mapped_column(nullable=False)

    installments_paid: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    amount_paid: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)

    status: Mapped[GuaranteeStatus] = mapped_column(
        String(20), default=GuaranteeStatus.IN_PROGRESS.value, nullable=False
    )
    started_on: Mapped[date] = mapped_column(Date, nullable=False)
    completed_on: Mapped[date | None] = mapped_column(Date, nullable=True)

    @property
    def target_amount(self) -> Decimal:
        return self.quota_amount * self.total_installments


class GuaranteePayment(TrackedBase):
    """Installment committed by one billing period."""

    __tablename__ = "guarantee_payments"

    __table_args__ = (
        UniqueConstraint("guarantee_account_id", "period_id", name="uq_guarantee_payment_period"),
    )

    guarantee_account_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("guarantee_accounts.id"), nullable=False
    )
    driver_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("drivers.id"), nullable=False
    )
    period_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("billing_periods.id"), nullable=False
    )
    installment_number: Mapped[int] = mapped_column(Integer, nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    paid_on: Mapped[date] = mapped_column(Date, nullable=False)
