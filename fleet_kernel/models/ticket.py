"""
Module: fleet_kernel.models.ticket
Responsibility: Driver ticket credits (receipts the fleet reimburses).
Architecture position: Kernel > Models.

Lifecycle: pending -> approved -> applied, or pending/approved -> rejected.
Only approved tickets are eligible for billing.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from fleet_kernel.db.base import TrackedBase, UUIDString


class TicketStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    APPLIED = "applied"


class TicketCredit(TrackedBase):
    __tablename__ = "ticket_credits"

    __table_args__ = (
        Index("idx_ticket_driver_status", "driver_id", "status"),
        Index("idx_ticket_applied_period", "applied_period_id"),
    )

    driver_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("drivers.id"), nullable=False
    )
    ticket_type: Mapped[str] = mapped_column(String(50), nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)

    status: Mapped[TicketStatus] = mapped_column(
        String(20), default=TicketStatus.PENDING.value, nullable=False
    )
    requested_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    approved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    rejection_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    applied_period_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("billing_periods.id"), nullable=True
    )
    applied_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
