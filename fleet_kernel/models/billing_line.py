"""
Module: fleet_kernel.models.billing_line
Responsibility: Per-driver weekly billing lines and their concept details.
Architecture position: Kernel > Models.

Invariants enforced:
    - (period_id, driver_id) is unique: one line per driver per week.
    - net_charges = gross_charges - credits and
      total_due = net_charges + prior_balance + mora_amount
      (computed by the charge calculator, stored verbatim).
    - Lines of a CLOSED period are immutable (db/immutability.py).
"""

from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fleet_kernel.db.base import TrackedBase, UUIDString
from fleet_kernel.domain.values import Modality


class BillingLineStatus(str, Enum):
    CALCULATED = "calculated"
    CLOSED = "closed"


class BillingLine(TrackedBase):
    """
    One driver's computed charges for one billing period.

    Contract:
        Written only by a generation run.  Regeneration deletes and
        recreates the period's lines inside the run's transaction.
    """

    __tablename__ = "billing_lines"

    __table_args__ = (
        UniqueConstraint("period_id", "driver_id", name="uq_billing_line_driver"),
        Index("idx_billing_line_driver", "driver_id"),
    )

    period_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("billing_periods.id"), nullable=False
    )
    driver_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("drivers.id"), nullable=False
    )

    # Snapshot of the driver at billing time
    driver_name: Mapped[str] = mapped_column(String(200), nullable=False)
    vehicle_plate: Mapped[str | None] = mapped_column(String(20), nullable=True)
    modality: Mapped[Modality] = mapped_column(String(20), nullable=False)

    days_billed: Mapped[int] = mapped_column(Integer, nullable=False)
    prorated_factor: Mapped[Decimal] = mapped_column(Numeric(9, 6), nullable=False)

    rent_amount: Mapped[Decimal] = mapped_column(nullable=False)
    guarantee_amount: Mapped[Decimal] = mapped_column(nullable=False)
    guarantee_installment: Mapped[int | None] = mapped_column(Integer, nullable=True)
    km_excess_amount: Mapped[Decimal] = mapped_column(nullable=False)
    toll_amount: Mapped[Decimal] = mapped_column(nullable=False)
    penalty_amount: Mapped[Decimal] = mapped_column(nullable=False)
    fractional_amount: Mapped[Decimal] = mapped_column(nullable=False)

    gross_charges: Mapped[Decimal] = mapped_column(nullable=False)
    credits: Mapped[Decimal] = mapped_column(nullable=False)
    net_charges: Mapped[Decimal] = mapped_column(nullable=False)

    prior_balance: Mapped[Decimal] = mapped_column(nullable=False)
    mora_days: Mapped[int] = mapped_column(Integer, nullable=False)
    mora_amount: Mapped[Decimal] = mapped_column(nullable=False)
    total_due: Mapped[Decimal] = mapped_column(nullable=False)

    status: Mapped[BillingLineStatus] = mapped_column(
        String(20), default=BillingLineStatus.CALCULATED.value, nullable=False
    )

    is_estimated: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    needs_review: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    review_notes: Mapped[str | None] = mapped_column(String(2000), nullable=True)

    details: Mapped[list["BillingLineDetail"]] = relationship(
        back_populates="line",
        cascade="all, delete-orphan",
        order_by="BillingLineDetail.position",
    )

    def __repr__(self) -> str:
        return f"<BillingLine driver={self.driver_id} total_due={self.total_due}>"


class BillingLineDetail(TrackedBase):
    """One concept row of a billing line (rent, guarantee, a penalty, ...)."""

    __tablename__ = "billing_line_details"

    __table_args__ = (
        Index("idx_billing_detail_line", "billing_line_id"),
        Index("idx_billing_detail_source", "source_ref_type", "source_ref_id"),
    )

    billing_line_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("billing_lines.id"), nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)

    concept_code: Mapped[str] = mapped_column(String(20), nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(nullable=False)
    subtotal: Mapped[Decimal] = mapped_column(nullable=False)
    vat_percentage: Mapped[Decimal] = mapped_column(Numeric(9, 6), nullable=False)
    vat_amount: Mapped[Decimal] = mapped_column(nullable=False)
    total: Mapped[Decimal] = mapped_column(nullable=False)
    is_credit: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Record that produced this row (penalty, ticket, km record, ...)
    source_ref_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    source_ref_type: Mapped[str | None] = mapped_column(String(40), nullable=True)

    line: Mapped[BillingLine] = relationship(back_populates="details")
