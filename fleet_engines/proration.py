"""
Proration rules for weekly billing.

Pure functions with deterministic behavior. No I/O.

A billing window is an inclusive date range inside one ISO week (Monday to
Sunday).  A driver is billed for the days their assignment overlaps the
window, and weekly prices are prorated by ``days / days_per_week``.

Usage:
    from fleet_engines.proration import iso_week_bounds, days_billed, prorate

    start, end = iso_week_bounds(7, 2026)
    days = days_billed(start, end, assignment_start=date(2026, 2, 12))
    rent = prorate(Decimal("360000"), days)
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from fractions import Fraction

from fleet_kernel.db.types import DEFAULT_MONEY_PLACES, round_money
from fleet_kernel.domain.calendar import iso_week_bounds, iso_week_of, monday_of  # noqa: F401
from fleet_kernel.exceptions import InvalidAssignmentError

DAYS_PER_WEEK = 7


def settlement_window(cutoff: date) -> tuple[date, date]:
    """Window billed by a termination settlement: Monday of the cutoff week to cutoff."""
    return monday_of(cutoff), cutoff


def preview_window(week_start: date, week_end: date, as_of: date | None) -> tuple[date, date]:
    """Clip a week to ``as_of`` when previewing the week in progress."""
    if as_of is not None and week_start <= as_of < week_end:
        return week_start, as_of
    return week_start, week_end


def days_billed(
    window_start: date,
    window_end: date,
    assignment_start: date | None = None,
    assignment_end: date | None = None,
    days_per_week: int = DAYS_PER_WEEK,
    driver_id: str = "",
) -> int:
    """
    Days of the window covered by the assignment, clipped to [0, days_per_week].

    A missing assignment bound means unbounded on that side.

    Raises:
        InvalidAssignmentError: assignment_end is before assignment_start.
    """
    if (
        assignment_start is not None
        and assignment_end is not None
        and assignment_end < assignment_start
    ):
        raise InvalidAssignmentError(
            driver_id,
            f"end date {assignment_end} is before start date {assignment_start}",
        )

    effective_start = max(window_start, assignment_start) if assignment_start else window_start
    effective_end = min(window_end, assignment_end) if assignment_end else window_end

    if effective_end < effective_start:
        return 0
    return min(days_per_week, (effective_end - effective_start).days + 1)


def prorated_factor(days: int, days_per_week: int = DAYS_PER_WEEK) -> Fraction:
    return Fraction(days, days_per_week)


def prorate(
    weekly_amount: Decimal,
    days: int,
    days_per_week: int = DAYS_PER_WEEK,
    places: int = DEFAULT_MONEY_PLACES,
) -> Decimal:
    """``round(weekly_amount * days / days_per_week)``, half-up."""
    if days >= days_per_week:
        return round_money(weekly_amount, places)
    return round_money(weekly_amount * days / Decimal(days_per_week), places)
