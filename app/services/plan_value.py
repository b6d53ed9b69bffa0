"""
Plan Value — quantity and percentage arithmetic.

Pure functions, no database access. Entries may be ProgressEntry rows or
plain dicts with ``date``, ``actual_qty`` and ``planned_qty``.

Rules:
  ppc(actual, planned)       0 if planned ≤ 0, else min(100, round(max(0, actual) / planned × 100))
  average_ppc(entries)       ppc(Σ actual, Σ planned) over entries with both values and planned > 0
                             — an aggregate, not the mean of per-entry PPCs
  cumulative_ppc(entries)    average_ppc restricted to [start, end] inclusive
  schedule_variance(a, p)    a - p
  schedule_status(v)         v < -10 → delayed | -10 ≤ v < 0 → at-risk | v ≥ 0 → on-track
  risk_classification(ppc)   ppc < 70 → HIGH | ppc < 85 → MEDIUM | else LOW
"""

from __future__ import annotations

import logging
import math
from datetime import date
from enum import Enum
from typing import Any, Iterable

from app.utils.helpers import parse_date

logger = logging.getLogger(__name__)


class RiskClass(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class ScheduleStatus(str, Enum):
    ON_TRACK = "on-track"
    AT_RISK = "at-risk"
    DELAYED = "delayed"


HIGH_RISK_BELOW = 70
MEDIUM_RISK_BELOW = 85
DELAYED_BELOW = -10


def round_half_up(value: float) -> int:
    """Round to the nearest integer, .5 going up (not banker's rounding)."""
    return int(math.floor(value + 0.5))


def entry_value(entry: Any, name: str):
    """Read *name* from a model row or a dict."""
    if isinstance(entry, dict):
        return entry.get(name)
    return getattr(entry, name, None)


def ppc(actual: float | None, planned: float | None) -> int:
    if planned is None or planned <= 0:
        return 0
    actual = max(0.0, float(actual or 0))
    return min(100, round_half_up(actual / float(planned) * 100))


def progress_pct(actual_total: float | None, total_qty: float | None) -> int:
    """Physical progress against the activity's total quantity (same clamp as PPC)."""
    return ppc(actual_total, total_qty)


def _aggregate(entries: Iterable[Any]) -> tuple[float, float]:
    total_actual = 0.0
    total_planned = 0.0
    for entry in entries:
        actual = entry_value(entry, "actual_qty")
        planned = entry_value(entry, "planned_qty")
        if actual is None or planned is None or planned <= 0:
            continue
        total_actual += float(actual)
        total_planned += float(planned)
    return total_actual, total_planned


def average_ppc(entries: Iterable[Any]) -> int:
    total_actual, total_planned = _aggregate(entries)
    return ppc(total_actual, total_planned)


def cumulative_ppc(
    entries: Iterable[Any],
    start: date | None = None,
    end: date | None = None,
) -> int:
    """Aggregate PPC over entries dated within [start, end]; open bounds are unbounded.

    Entries whose date cannot be parsed are skipped, not fatal.
    """
    selected = []
    for entry in entries:
        raw = entry_value(entry, "date")
        entry_date = parse_date(raw)
        if entry_date is None:
            logger.warning("Skipping progress entry with unparsable date %r", raw)
            continue
        if start is not None and entry_date < start:
            continue
        if end is not None and entry_date > end:
            continue
        selected.append(entry)
    return average_ppc(selected)


def schedule_variance(actual_pct: float, planned_pct: float) -> float:
    return actual_pct - planned_pct


def schedule_status(variance: float) -> ScheduleStatus:
    if variance < DELAYED_BELOW:
        return ScheduleStatus.DELAYED
    if variance < 0:
        return ScheduleStatus.AT_RISK
    return ScheduleStatus.ON_TRACK


def risk_classification(ppc_value: float) -> RiskClass:
    if ppc_value < HIGH_RISK_BELOW:
        return RiskClass.HIGH
    if ppc_value < MEDIUM_RISK_BELOW:
        return RiskClass.MEDIUM
    return RiskClass.LOW
