"""
Module: fleet_kernel.models.driver
Responsibility: Drivers, their vehicle assignments, and the weekly roster
    control table.
Architecture position: Kernel > Models.

These rows are owned by the fleet operations side of the back office.  The
billing engine reads them, and writes only when a termination settlement is
approved (driver becomes inactive, assignments become finished).
"""

from datetime import date
from enum import Enum
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from fleet_kernel.db.base import TrackedBase, UUIDString
from fleet_kernel.domain.values import Modality


class DriverStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class AssignmentStatus(str, Enum):
    ACTIVE = "active"
    FINISHED = "finished"


class Driver(TrackedBase):
    """A person renting a vehicle from the fleet."""

    __tablename__ = "drivers"

    __table_args__ = (
        UniqueConstraint("national_id", name="uq_driver_national_id"),
        Index("idx_driver_status", "status"),
    )

    full_name: Mapped[str] = mapped_column(String(200), nullable=False)
    national_id: Mapped[str] = mapped_column(String(30), nullable=False)
    tax_id: Mapped[str | None] = mapped_column(String(30), nullable=True)

    status: Mapped[DriverStatus] = mapped_column(
        String(20), default=DriverStatus.ACTIVE.value, nullable=False
    )

    termination_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    termination_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    def __repr__(self) -> str:
        return f"<Driver {self.full_name} ({self.status})>"


class Assignment(TrackedBase):
    """
    A driver's assignment to a vehicle.

    Contract:
        modality may be NULL when the assignment was captured without it;
        billing then falls back to the lower-cost modality and flags the
        line for review.  A NULL start/end date means unbounded on that side.
    """

    __tablename__ = "assignments"

    __table_args__ = (
        Index("idx_assignment_driver", "driver_id"),
        Index("idx_assignment_status", "status"),
    )

    driver_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("drivers.id"), nullable=False
    )
    vehicle_plate: Mapped[str] = mapped_column(String(20), nullable=False)
    modality: Mapped[Modality | None] = mapped_column(String(20), nullable=True)

    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    status: Mapped[AssignmentStatus] = mapped_column(
        String(20), default=AssignmentStatus.ACTIVE.value, nullable=False
    )


class WeeklyRosterEntry(TrackedBase):
    """Roster-control row: who drove which vehicle in a given ISO week."""

    __tablename__ = "weekly_roster_entries"

    __table_args__ = (
        UniqueConstraint("week_number", "year", "driver_id", name="uq_roster_week_driver"),
    )

    week_number: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    driver_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("drivers.id"), nullable=False
    )
    vehicle_plate: Mapped[str | None] = mapped_column(String(20), nullable=True)
    modality: Mapped[Modality | None] = mapped_column(String(20), nullable=True)
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
