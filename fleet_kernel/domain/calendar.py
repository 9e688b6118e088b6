"""ISO week arithmetic.  Billing weeks run Monday to Sunday."""

from datetime import date, timedelta


def iso_week_bounds(week_number: int, year: int) -> tuple[date, date]:
    """Monday and Sunday of ISO week ``week_number`` of ``year``.

    Raises:
        ValueError: the week does not exist in that ISO year.
    """
    monday = date.fromisocalendar(year, week_number, 1)
    return monday, monday + timedelta(days=6)


def iso_week_of(day: date) -> tuple[int, int]:
    """(week_number, year) of the ISO week containing ``day``."""
    iso = day.isocalendar()
    return iso[1], iso[0]


def monday_of(day: date) -> date:
    return day - timedelta(days=day.weekday())


def recent_weeks(as_of: date, count: int) -> list[tuple[int, int]]:
    """The ``count`` ISO weeks ending with the week of ``as_of``, newest first."""
    monday = monday_of(as_of)
    return [iso_week_of(monday - timedelta(weeks=i)) for i in range(count)]
