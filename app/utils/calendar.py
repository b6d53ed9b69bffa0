"""Calendar arithmetic shared by the scheduler, the risk batch and the goal calculator.

Two day-counting conventions live side by side on purpose:

    calendar days  — predecessor chaining (start = predecessor end + 1 day)
    business days  — daily production goals (Mon–Fri only)

They must not be unified: switching either one silently moves stored dates
or goals.

Week labels:
    week_label()      YYYY-WW using the dashboard's historical numbering
                      (days since Jan 1 offset by Jan 1's weekday, Sunday-based).
                      Risk snapshots are keyed by this label.
    iso_week_label()  YYYY-WW from ISO-8601 week numbering.
"""

from __future__ import annotations

import math
from datetime import date, timedelta


def add_calendar_days(d: date, days: int) -> date:
    return d + timedelta(days=days)


def inclusive_days(start: date, end: date) -> int:
    """Number of calendar days covered by [start, end], never less than 1."""
    return max(1, (end - start).days + 1)


def end_for_duration(start: date, duration_days: int) -> date:
    """Last calendar day of a span of *duration_days* starting on *start*."""
    return start + timedelta(days=max(1, duration_days) - 1)


def business_days(start: date | None, end: date | None) -> int:
    """Count Monday–Friday days in [start, end].

    Returns 0 when either bound is missing and at least 1 otherwise, so the
    result is always safe to divide by.
    """
    if not start or not end:
        return 0
    count = 0
    current = start
    while current <= end:
        if current.weekday() < 5:
            count += 1
        current += timedelta(days=1)
    return count if count > 0 else 1


def _js_weekday(d: date) -> int:
    # Sunday=0 … Saturday=6
    return (d.weekday() + 1) % 7


def week_number(d: date) -> int:
    """Week of the year as numbered by the dashboard (Sunday-based, Jan 1 in week 1)."""
    start_of_year = date(d.year, 1, 1)
    days = (d - start_of_year).days
    return math.ceil((days + _js_weekday(start_of_year) + 1) / 7)


def week_label(d: date) -> str:
    return f"{d.year}-{week_number(d):02d}"


def iso_week_label(d: date) -> str:
    iso_year, iso_week, _ = d.isocalendar()
    return f"{iso_year}-{iso_week:02d}"


def parse_week_label(label: str) -> tuple[int, int]:
    """Split ``YYYY-WW`` into ``(year, week)``. Raises ValueError on bad input."""
    year_str, week_str = label.split("-")
    year, week = int(year_str), int(week_str)
    if not 1 <= week <= 53:
        raise ValueError(f"week out of range: {label!r}")
    return year, week


def week_dates(year: int, week: int) -> tuple[date, date]:
    """Monday and Sunday bounding week *week* of *year* (first Monday opens week 1)."""
    first_day = date(year, 1, 1)
    days_to_first_monday = (8 - _js_weekday(first_day)) % 7
    first_monday = first_day + timedelta(days=days_to_first_monday)
    start = first_monday + timedelta(weeks=week - 1)
    return start, start + timedelta(days=6)
