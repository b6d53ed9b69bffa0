"""
Planned progress distribution and daily production goals.

Distribution profiles (cumulative planned quantity over the activity window):
  linear    constant daily quantity, nothing planned on day 0
  s_curve   logistic curve 1 / (1 + e^(-10·(x − 0.5))), slow start and finish
  custom    not modelled yet — falls back to linear

The window length for distributions is the calendar-day difference between
start and end (at least 1). Daily goals instead divide the total quantity by
the number of business days in the window.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, timedelta

from app.utils.calendar import business_days

S_CURVE_STEEPNESS = 10


@dataclass
class ProgressPoint:
    date: date
    planned: float
    cumulative: float
    daily_target: float

    def to_dict(self) -> dict:
        return {
            "date": self.date.isoformat(),
            "planned": self.planned,
            "cumulative": self.cumulative,
            "daily_target": self.daily_target,
        }


@dataclass
class DailyGoal:
    qty: int
    percent: float

    def to_dict(self) -> dict:
        return {"qty": self.qty, "percent": self.percent}


def _window_days(start: date, end: date) -> int:
    return abs((end - start).days) or 1


def _sigmoid(x: float) -> float:
    return 1 / (1 + math.exp(-S_CURVE_STEEPNESS * (x - 0.5)))


def _linear(start: date, total_qty: float, total_days: int) -> list[ProgressPoint]:
    daily = total_qty / total_days
    points = []
    for i in range(total_days + 1):
        planned = 0.0 if i == 0 else daily
        cumulative = min(planned * i, total_qty)
        points.append(ProgressPoint(
            date=start + timedelta(days=i),
            planned=round(planned, 2),
            cumulative=round(cumulative, 2),
            daily_target=round(planned, 2),
        ))
    return points


def _s_curve(start: date, total_qty: float, total_days: int) -> list[ProgressPoint]:
    points: list[ProgressPoint] = []
    cumulative = 0.0
    for i in range(total_days + 1):
        factor = _sigmoid(i / total_days)
        if i > 0:
            factor -= _sigmoid((i - 1) / total_days)
        planned = total_qty * factor
        cumulative += planned
        if i == total_days:
            previous = points[i - 1].cumulative if i > 0 else 0.0
            daily_target = max(0.0, total_qty - previous)
        else:
            daily_target = planned
        points.append(ProgressPoint(
            date=start + timedelta(days=i),
            planned=round(planned, 2),
            cumulative=round(min(cumulative, total_qty), 2),
            daily_target=round(daily_target, 2),
        ))
    return points


def calculate_distribution(
    start: date | None,
    end: date | None,
    total_qty: float | None,
    distribution_type: str = "linear",
) -> list[ProgressPoint]:
    """Planned quantity per day across [start, end]. Empty without dates or quantity."""
    if not start or not end or not total_qty:
        return []
    total_days = _window_days(start, end)
    if distribution_type == "s_curve":
        points = _s_curve(start, total_qty, total_days)
    else:
        points = _linear(start, total_qty, total_days)
    if points:
        points[-1].cumulative = float(total_qty)
    return points


def calculate_daily_target(
    start: date | None,
    end: date | None,
    total_qty: float | None,
    distribution_type: str = "linear",
) -> float:
    """Representative daily target: the constant rate for linear, the mean over days 1..N otherwise."""
    if not start or not end or not total_qty:
        return 0.0
    points = calculate_distribution(start, end, total_qty, distribution_type)
    if len(points) <= 1:
        return float(total_qty)
    if distribution_type == "linear":
        return points[1].daily_target
    return round(sum(p.daily_target for p in points) / (len(points) - 1), 2)


def planned_percent_at(
    start: date | None,
    end: date | None,
    total_qty: float | None,
    on: date,
    distribution_type: str = "linear",
) -> float:
    """Cumulative planned completion (0–100) at *on* according to the distribution."""
    points = calculate_distribution(start, end, total_qty, distribution_type)
    if not points:
        return 0.0
    if on < points[0].date:
        return 0.0
    reached = 0.0
    for point in points:
        if point.date > on:
            break
        reached = point.cumulative
    return round(reached / float(total_qty) * 100, 2)


def calculate_daily_goal(
    start: date | None,
    end: date | None,
    total_qty: float | None,
) -> DailyGoal:
    """Quantity and percentage to produce per business day to finish on time."""
    if not start or not end or not total_qty:
        return DailyGoal(qty=0, percent=0.0)
    days = business_days(start, end)
    return DailyGoal(
        qty=int(math.floor(total_qty / days + 0.5)),
        percent=round(100 / days, 2),
    )
