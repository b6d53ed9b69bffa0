"""
Progress Rollup — schedule item completion → activity aggregate.

Rules:
  - rollup = unweighted mean of children's percent_complete, rounded
  - the value is written to BOTH Activity.schedule_percent_complete and
    Activity.ppc: schedule items carry no separate planned baseline, so in
    rollup mode "plan completed" and "schedule completion" are one number
  - an activity without schedule items gets no rollup write; its
    progress/ppc come from ProgressEntry rows (progress_service)

Usage:
    from app.services.progress_rollup import apply_rollup
    result = apply_rollup(activity_id)
"""

from __future__ import annotations

import logging
from typing import Any, Iterable

from app.core.exceptions import NotFoundError
from app.models import db
from app.models.activity import Activity
from app.models.schedule import ScheduleItem
from app.services.plan_value import round_half_up

logger = logging.getLogger(__name__)


def compute_rollup(items: Iterable[Any]) -> int | None:
    """Mean completion of *items*, or None when there are none."""
    values = [float(item.percent_complete or 0) for item in items]
    if not values:
        return None
    return round_half_up(sum(values) / len(values))


def apply_rollup(activity_id: int, *, commit: bool = True) -> dict:
    """
    Recompute and store the rollup for an activity.

    Returns:
        dict with keys: activity_id, item_count, rollup (None if no write), updated
    """
    activity = db.session.get(Activity, activity_id)
    if not activity:
        raise NotFoundError(resource="Activity", resource_id=activity_id)

    items = ScheduleItem.query.filter_by(activity_id=activity_id).all()
    rollup = compute_rollup(items)
    result = {
        "activity_id": activity_id,
        "item_count": len(items),
        "rollup": rollup,
        "updated": False,
    }
    if rollup is None:
        return result

    changed = activity.schedule_percent_complete != rollup or activity.ppc != rollup
    activity.schedule_percent_complete = rollup
    activity.ppc = rollup
    if commit:
        db.session.commit()
    result["updated"] = changed
    logger.info("Rollup activity=%s items=%d value=%s", activity_id, len(items), rollup)
    return result
