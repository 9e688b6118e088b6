"""
fleet_services.driver_week_source -- Which drivers are billed for a week.

Two strategies exist, chosen by the ``driver_week_source`` configuration key:

    assignments  Live vehicle assignments overlapping the billing window.
                 Active assignments, and finished ones that ended inside
                 or after the window start, qualify.  A driver with several
                 qualifying assignments is billed once, over the union of
                 their ranges, with the vehicle and modality of the latest.
    roster       Rows of the weekly roster-control table for the week.

Drivers with an approved termination settlement are left out of the week
holding the cutoff and every later week: the settlement bills that final
partial week.  Earlier weeks still bill them.
"""

from dataclasses import dataclass
from datetime import date
from typing import Protocol
from uuid import UUID

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session

from fleet_kernel.domain.calendar import iso_week_bounds
from fleet_kernel.domain.values import Modality
from fleet_kernel.models.driver import Assignment, AssignmentStatus, Driver, WeeklyRosterEntry
from fleet_kernel.models.settlement import DriverTerminationSettlement, SettlementStatus


@dataclass(frozen=True)
class DriverWeekSeat:
    """One driver to bill, with the assignment range that drives proration."""

    driver_id: UUID
    driver_name: str
    vehicle_plate: str | None
    modality: Modality | None
    assignment_start: date | None
    assignment_end: date | None


class DriverWeekSource(Protocol):
    """Capability that lists the drivers to bill for a window."""

    name: str

    def seats_for_week(
        self,
        session: Session,
        week_number: int,
        year: int,
        window_start: date,
        window_end: date,
    ) -> list[DriverWeekSeat]: ...


def _modality(value: str | None) -> Modality | None:
    return Modality(value) if value else None


def _settled_driver_ids(session: Session, week_number: int, year: int) -> set[UUID]:
    _, week_end = iso_week_bounds(week_number, year)
    return set(
        session.execute(
            select(DriverTerminationSettlement.driver_id).where(
                DriverTerminationSettlement.status == SettlementStatus.APPROVED.value,
                DriverTerminationSettlement.cutoff_date <= week_end,
            )
        ).scalars()
    )


class AssignmentDriverWeekSource:
    name = "assignments"

    def seats_for_week(
        self,
        session: Session,
        week_number: int,
        year: int,
        window_start: date,
        window_end: date,
    ) -> list[DriverWeekSeat]:
        rows = session.execute(
            select(Assignment, Driver.full_name)
            .join(Driver, Driver.id == Assignment.driver_id)
            .where(
                or_(Assignment.start_date.is_(None), Assignment.start_date <= window_end),
                or_(Assignment.end_date.is_(None), Assignment.end_date >= window_start),
                or_(
                    Assignment.status == AssignmentStatus.ACTIVE.value,
                    and_(
                        Assignment.status == AssignmentStatus.FINISHED.value,
                        Assignment.end_date.is_not(None),
                    ),
                ),
            )
            .order_by(Driver.full_name, Assignment.start_date, Assignment.created_at)
        ).all()

        settled = _settled_driver_ids(session, week_number, year)
        seats: dict[UUID, DriverWeekSeat] = {}
        for assignment, full_name in rows:
            if assignment.driver_id in settled:
                continue
            seat = DriverWeekSeat(
                driver_id=assignment.driver_id,
                driver_name=full_name,
                vehicle_plate=assignment.vehicle_plate,
                modality=_modality(assignment.modality),
                assignment_start=assignment.start_date,
                assignment_end=assignment.end_date,
            )
            previous = seats.get(assignment.driver_id)
            if previous is not None:
                seat = _merge(previous, seat)
            seats[assignment.driver_id] = seat
        return list(seats.values())


def _merge(earlier: DriverWeekSeat, later: DriverWeekSeat) -> DriverWeekSeat:
    """Union of two assignment ranges; the later assignment names the vehicle."""
    start = (
        None
        if earlier.assignment_start is None or later.assignment_start is None
        else min(earlier.assignment_start, later.assignment_start)
    )
    end = (
        None
        if earlier.assignment_end is None or later.assignment_end is None
        else max(earlier.assignment_end, later.assignment_end)
    )
    return DriverWeekSeat(
        driver_id=later.driver_id,
        driver_name=later.driver_name,
        vehicle_plate=later.vehicle_plate,
        modality=later.modality or earlier.modality,
        assignment_start=start,
        assignment_end=end,
    )


class RosterDriverWeekSource:
    name = "roster"

    def seats_for_week(
        self,
        session: Session,
        week_number: int,
        year: int,
        window_start: date,
        window_end: date,
    ) -> list[DriverWeekSeat]:
        rows = session.execute(
            select(WeeklyRosterEntry, Driver.full_name)
            .join(Driver, Driver.id == WeeklyRosterEntry.driver_id)
            .where(
                WeeklyRosterEntry.week_number == week_number,
                WeeklyRosterEntry.year == year,
            )
            .order_by(Driver.full_name)
        ).all()

        settled = _settled_driver_ids(session, week_number, year)
        return [
            DriverWeekSeat(
                driver_id=entry.driver_id,
                driver_name=full_name,
                vehicle_plate=entry.vehicle_plate,
                modality=_modality(entry.modality),
                assignment_start=entry.start_date,
                assignment_end=entry.end_date,
            )
            for entry, full_name in rows
            if entry.driver_id not in settled
        ]


_SOURCES: dict[str, type] = {
    AssignmentDriverWeekSource.name: AssignmentDriverWeekSource,
    RosterDriverWeekSource.name: RosterDriverWeekSource,
}


def build_driver_week_source(name: str) -> DriverWeekSource:
    """
    Strategy for a configuration name.

    Raises:
        ValueError: unknown source name.
    """
    try:
        return _SOURCES[name]()
    except KeyError:
        raise ValueError(
            f"Unknown driver_week_source {name!r}; expected one of {sorted(_SOURCES)}"
        ) from None
