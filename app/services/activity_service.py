"""
Activities — Service Layer.

Business logic for:
    - Activity CRUD (validated dates, quantities, distribution type)
    - Activity summary: progress, PPC, cumulative PPC, schedule status
      against the planned distribution, daily production goal
"""

import logging
from datetime import date

from app.core.exceptions import NotFoundError, ValidationError
from app.models import db
from app.models.activity import DISTRIBUTION_TYPES, Activity
from app.models.schedule import ScheduleItem
from app.services.distribution import calculate_daily_goal, planned_percent_at
from app.services.plan_value import (
    cumulative_ppc,
    schedule_status,
    schedule_variance,
)
from app.services.progress_service import list_entries, recompute_activity_metrics
from app.utils.helpers import parse_date_input, parse_quantity

logger = logging.getLogger(__name__)

_UPDATABLE = (
    "name", "discipline", "responsible", "unit",
    "total_qty", "start_date", "end_date",
    "distribution_type", "has_detailed_schedule",
)
_DATE_FIELDS = {"start_date", "end_date"}


def get_activity(activity_id: int) -> Activity:
    activity = db.session.get(Activity, activity_id)
    if not activity:
        raise NotFoundError(resource="Activity", resource_id=activity_id)
    return activity


def activity_query(discipline: str | None = None):
    """Activities ordered by name, optionally filtered by discipline."""
    q = Activity.query
    if discipline:
        q = q.filter_by(discipline=discipline)
    return q.order_by(Activity.name, Activity.id)


def _clean(data: dict) -> dict:
    cleaned = {}
    for f in _UPDATABLE:
        if f not in data:
            continue
        value = data[f]
        if f in _DATE_FIELDS:
            value = parse_date_input(value, field=f)
        elif f == "total_qty":
            value = parse_quantity(value, field=f)
        elif f == "distribution_type":
            value = value or "linear"
            if value not in DISTRIBUTION_TYPES:
                raise ValidationError(
                    f"distribution_type must be one of {sorted(DISTRIBUTION_TYPES)}",
                    details={"distribution_type": value},
                )
        elif f == "has_detailed_schedule":
            value = bool(value)
        cleaned[f] = value
    return cleaned


def _check_window(start: date | None, end: date | None) -> None:
    if start and end and end < start:
        raise ValidationError(
            "end_date must not be before start_date",
            details={"start_date": start.isoformat(), "end_date": end.isoformat()},
        )


def create_activity(data: dict) -> Activity:
    """Create an activity. ``name`` is required."""
    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError("name is required", details={"name": "required"})
    fields = _clean({**data, "name": name})
    _check_window(fields.get("start_date"), fields.get("end_date"))
    activity = Activity(**fields)
    db.session.add(activity)
    db.session.commit()
    logger.info("Activity created id=%s name=%s", activity.id, activity.name)
    return activity


def update_activity(activity_id: int, data: dict) -> Activity:
    """Update whitelisted fields and refresh derived metrics."""
    activity = get_activity(activity_id)
    fields = _clean(data)
    if "name" in fields and not (fields["name"] or "").strip():
        raise ValidationError("name must not be empty", details={"name": "required"})
    _check_window(
        fields.get("start_date", activity.start_date),
        fields.get("end_date", activity.end_date),
    )
    for f, value in fields.items():
        setattr(activity, f, value)
    db.session.commit()
    logger.info("Activity updated id=%s", activity_id)
    if "total_qty" in fields:
        recompute_activity_metrics(activity_id)
    return activity


def delete_activity(activity_id: int) -> None:
    """Delete an activity with its entries, schedule items and snapshots."""
    activity = get_activity(activity_id)
    # Unlink the chain first so item deletes never trip the predecessor FK.
    ScheduleItem.query.filter_by(activity_id=activity_id).update(
        {ScheduleItem.predecessor_id: None}, synchronize_session=False,
    )
    db.session.flush()
    db.session.expire_all()
    db.session.delete(activity)
    db.session.commit()
    logger.info("Activity deleted id=%s", activity_id)


def activity_summary(activity_id: int, as_of: date | None = None) -> dict:
    """Progress snapshot of an activity at *as_of* (default: today).

    ``schedule_variance`` compares actual progress to the cumulative planned
    percentage of the activity's distribution on that date.
    """
    activity = get_activity(activity_id)
    as_of = as_of or date.today()
    entries = list_entries(activity_id)

    planned_pct = planned_percent_at(
        activity.start_date, activity.end_date, activity.total_qty,
        as_of, activity.distribution_type,
    )
    actual_pct = (
        activity.schedule_percent_complete
        if activity.schedule_percent_complete is not None
        else activity.progress
    )
    variance = schedule_variance(actual_pct, planned_pct)

    return {
        "activity": activity.to_dict(),
        "as_of": as_of.isoformat(),
        "entry_count": len(entries),
        "cumulative_ppc": cumulative_ppc(entries, activity.start_date, as_of),
        "planned_pct": planned_pct,
        "actual_pct": actual_pct,
        "schedule_variance": round(variance, 2),
        "schedule_status": schedule_status(variance).value,
        "daily_goal": calculate_daily_goal(
            activity.start_date, activity.end_date, activity.total_qty,
        ).to_dict(),
    }
