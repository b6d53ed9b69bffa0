"""
Progress Entries — Service Layer.

Business logic for:
    - Daily progress upsert:   one ProgressEntry per (activity, date)
    - Entry listing/removal:   chronological, optional date window
    - Activity metrics:        progress (actual / total) and PPC (actual / planned)
                               from entries, unless a detailed schedule drives
                               the activity through the rollup
"""

import logging
from datetime import date

from app.core.exceptions import NotFoundError, ValidationError
from app.models import db
from app.models.activity import Activity, ProgressEntry
from app.models.schedule import ScheduleItem
from app.services.plan_value import average_ppc, progress_pct
from app.services.progress_rollup import apply_rollup
from app.utils.helpers import parse_date_input, parse_quantity

logger = logging.getLogger(__name__)


def _get_activity(activity_id: int) -> Activity:
    activity = db.session.get(Activity, activity_id)
    if not activity:
        raise NotFoundError(resource="Activity", resource_id=activity_id)
    return activity


# ── ProgressEntry CRUD ───────────────────────────────────────────────────────


def list_entries(
    activity_id: int,
    start: date | None = None,
    end: date | None = None,
) -> list[ProgressEntry]:
    """Return an activity's progress entries in chronological order.

    Args:
        activity_id: Parent Activity primary key.
        start: Optional inclusive lower bound.
        end: Optional inclusive upper bound.
    """
    q = ProgressEntry.query.filter_by(activity_id=activity_id)
    if start is not None:
        q = q.filter(ProgressEntry.date >= start)
    if end is not None:
        q = q.filter(ProgressEntry.date <= end)
    return q.order_by(ProgressEntry.date).all()


def upsert_entry(activity_id: int, data: dict) -> tuple[ProgressEntry, bool]:
    """Record the progress observed on one date.

    A second submission for the same date edits the existing row instead of
    adding another one.

    Args:
        activity_id: Parent Activity primary key.
        data: ``date`` (required), ``actual_qty``, ``planned_qty``, ``notes``.

    Returns:
        (entry, created) — created is False when an existing row was edited.

    Raises:
        NotFoundError: unknown activity.
        ValidationError: missing/invalid date or negative quantity.
    """
    _get_activity(activity_id)
    entry_date = parse_date_input(data.get("date"), field="date")
    if entry_date is None:
        raise ValidationError("date is required", details={"date": "required"})
    actual = parse_quantity(data.get("actual_qty"), field="actual_qty")
    planned = parse_quantity(data.get("planned_qty"), field="planned_qty")

    entry = ProgressEntry.query.filter_by(activity_id=activity_id, date=entry_date).first()
    created = entry is None
    if created:
        entry = ProgressEntry(activity_id=activity_id, date=entry_date)
        db.session.add(entry)
    if "actual_qty" in data or created:
        entry.actual_qty = actual
    if "planned_qty" in data or created:
        entry.planned_qty = planned
    if "notes" in data:
        entry.notes = data.get("notes") or ""
    db.session.commit()
    logger.info(
        "ProgressEntry %s id=%s activity=%s date=%s",
        "created" if created else "updated", entry.id, activity_id, entry_date,
    )
    recompute_activity_metrics(activity_id)
    return entry, created


def delete_entry(entry_id: int) -> None:
    """Remove a progress entry and refresh the parent's metrics."""
    entry = db.session.get(ProgressEntry, entry_id)
    if not entry:
        raise NotFoundError(resource="ProgressEntry", resource_id=entry_id)
    activity_id = entry.activity_id
    db.session.delete(entry)
    db.session.commit()
    logger.info("ProgressEntry deleted id=%s activity=%s", entry_id, activity_id)
    recompute_activity_metrics(activity_id)


# ── Activity metrics ─────────────────────────────────────────────────────────


def recompute_activity_metrics(activity_id: int) -> dict:
    """Refresh the activity's derived progress fields.

    With schedule items the rollup owns ``ppc`` and
    ``schedule_percent_complete``; physical ``progress`` still comes from
    the entries. Without schedule items both come from the entries and
    ``schedule_percent_complete`` is cleared.
    """
    activity = _get_activity(activity_id)
    entries = list_entries(activity_id)
    actual_total = sum(float(e.actual_qty) for e in entries if e.actual_qty is not None)
    activity.progress = progress_pct(actual_total, activity.total_qty)

    has_items = db.session.query(
        ScheduleItem.query.filter_by(activity_id=activity_id).exists()
    ).scalar()
    if has_items:
        db.session.commit()
        rollup = apply_rollup(activity_id)
        source = "rollup"
    else:
        activity.ppc = average_ppc(entries)
        activity.schedule_percent_complete = None
        db.session.commit()
        rollup = None
        source = "entries"

    logger.debug(
        "Activity metrics id=%s progress=%s ppc=%s source=%s",
        activity_id, activity.progress, activity.ppc, source,
    )
    return {
        "activity_id": activity_id,
        "progress": activity.progress,
        "ppc": activity.ppc,
        "schedule_percent_complete": activity.schedule_percent_complete,
        "source": source,
        "rollup": rollup,
    }
