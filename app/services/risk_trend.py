"""
Risk trend analysis — three-point momentum signal over a variance series.

A series is the chronological list of per-observation variances
(see ``observation_variance``). When the last three observations are each
strictly lower than the one before, the activity is sliding and the delay
risk gets a flat bonus. No regression, no partial credit, no configurable
window.
"""

from __future__ import annotations

from typing import Sequence

TREND_WINDOW = 3
DECLINE_BONUS = 20


def observation_variance(actual: float | None, planned: float | None) -> float:
    """Plan-vs-actual variance of one observation, in percentage points.

    actual/planned × 100 − 100; +100 when nothing was planned but something
    was produced; 0 when both are zero.
    """
    actual = float(actual or 0)
    planned = float(planned or 0)
    if planned == 0:
        return 100.0 if actual != 0 else 0.0
    return actual / planned * 100 - 100


def analyze_trend(variance_history: Sequence[float] | None) -> int:
    if not variance_history or len(variance_history) < TREND_WINDOW:
        return 0
    recent = list(variance_history)[-TREND_WINDOW:]
    declining = all(recent[i] < recent[i - 1] for i in range(1, len(recent)))
    return DECLINE_BONUS if declining else 0
