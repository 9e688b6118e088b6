"""
Module: fleet_kernel.models.billing_period
Responsibility: ORM persistence for weekly billing periods and their lifecycle
    status.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/values.py only.

Invariants enforced:
    - (week_number, year) is unique.  A concurrent first generation of the
      same week therefore fails at INSERT for all but one run.
    - Status values: processing, open, closed.  ``not_generated`` is the
      synthetic status of a week with no row and is never stored.
    - closed_at / closed_by_id are set only while CLOSED.

Failure modes:
    - IntegrityError on duplicate (week_number, year).
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Date, DateTime, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from fleet_kernel.db.base import TrackedBase, UUIDString
from fleet_kernel.domain.values import PeriodStatus, period_code


class BillingPeriod(TrackedBase):
    """
    One ISO calendar week (Monday to Sunday) of driver billing.

    Contract:
        Created lazily by the first generation run of the week.  The
        PROCESSING status doubles as the run lock: it is only ever entered
        through an atomic conditional UPDATE or the unique-constrained INSERT.

    Guarantees:
        - Totals reflect the lines written by the last successful run.
        - last_run_id identifies that run in the logs.
    """

    __tablename__ = "billing_periods"

    __table_args__ = (
        UniqueConstraint("week_number", "year", name="uq_billing_period_week"),
        Index("idx_billing_period_status", "status"),
    )

    week_number: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)

    # Monday and Sunday of the ISO week (inclusive)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)

    status: Mapped[PeriodStatus] = mapped_column(
        String(20),
        default=PeriodStatus.PROCESSING.value,
        nullable=False,
    )

    driver_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_charges: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    total_credits: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    total_net: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)

    last_run_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    closed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    closed_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    def __repr__(self) -> str:
        return f"<BillingPeriod {self.period_code}: {self.status}>"

    @property
    def period_code(self) -> str:
        return period_code(self.week_number, self.year)

    @property
    def is_open(self) -> bool:
        return self.status == PeriodStatus.OPEN

    @property
    def is_closed(self) -> bool:
        return self.status == PeriodStatus.CLOSED

    @property
    def is_processing(self) -> bool:
        return self.status == PeriodStatus.PROCESSING

    def close(self, actor_id: UUID, closed_at: datetime) -> None:
        """Move OPEN -> CLOSED.

        Preconditions: status is OPEN (checked by PeriodService).
        Postconditions: closed_at / closed_by_id are populated.
        """
        self.status = PeriodStatus.CLOSED.value
        self.closed_at = closed_at
        self.closed_by_id = actor_id
        self.updated_by_id = actor_id

    def reopen(self, actor_id: UUID) -> None:
        """Move CLOSED -> OPEN and clear the closure stamp."""
        self.status = PeriodStatus.OPEN.value
        self.closed_at = None
        self.closed_by_id = None
        self.updated_by_id = actor_id
