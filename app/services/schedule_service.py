"""
Detailed Schedule — Service Layer.

Business logic for:
    - ScheduleItem CRUD:       create/read/update/delete within an activity
    - Predecessor assignment:  cycle guard before any mutation,
                               anchored ↔ derived transitions
    - Referential guard:       an item named as predecessor cannot be deleted
    - Propagation pass:        plan date changes (dependency_scheduler), write
                               each change on its own, re-run until stable
    - Rollup trigger:          completion edits refresh the activity aggregate

Write semantics:
    Every planned change is committed individually. A failed write is
    reported for that item and rolled back alone; writes already committed
    stay. In cascade mode the dependents of a failed item were planned from
    dates that never reached the database, so their changes are held back
    and reported; the stored chain stays consistent and a later pass (or the
    sweep job) moves them once the failed item is written.

Concurrency:
    ScheduleItem carries a version counter. Writes from a stale read raise
    StaleRecordError instead of overwriting a concurrent edit.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from app.core.exceptions import (
    CyclicDependencyError,
    NotFoundError,
    ReferencedItemError,
    StaleRecordError,
    ValidationError,
)
from app.models import db
from app.models.activity import Activity
from app.models.schedule import ScheduleItem
from app.services.dependency_scheduler import (
    ScheduleChange,
    plan_updates,
    predecessor_map,
    validate_no_cycle,
)
from app.services.progress_rollup import apply_rollup
from app.services.progress_service import recompute_activity_metrics
from app.utils.calendar import end_for_duration, inclusive_days
from app.utils.helpers import parse_date_input

logger = logging.getLogger(__name__)

_SCHEDULE_FIELDS = {"start_date", "end_date", "duration_days", "predecessor_id"}


@dataclass
class PropagationResult:
    """Outcome of ``propagate_schedule`` for one activity."""
    activity_id: int
    passes: int = 0
    applied: list[ScheduleChange] = field(default_factory=list)
    failures: list[dict] = field(default_factory=list)
    skipped: list[dict] = field(default_factory=list)
    held: list[dict] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.failures

    def to_dict(self) -> dict:
        return {
            "activity_id": self.activity_id,
            "success": self.success,
            "passes": self.passes,
            "applied": [c.to_dict() for c in self.applied],
            "applied_count": len(self.applied),
            "failures": list(self.failures),
            "failure_count": len(self.failures),
            "skipped": list(self.skipped),
            "held": list(self.held),
        }


# ── Lookups ──────────────────────────────────────────────────────────────────


def list_items(activity_id: int) -> list[ScheduleItem]:
    """Return an activity's schedule items in display order."""
    return (
        ScheduleItem.query
        .filter_by(activity_id=activity_id)
        .order_by(ScheduleItem.order_index, ScheduleItem.id)
        .all()
    )


def get_item(item_id: int) -> ScheduleItem:
    item = db.session.get(ScheduleItem, item_id)
    if not item:
        raise NotFoundError(resource="ScheduleItem", resource_id=item_id)
    return item


def _get_activity(activity_id: int) -> Activity:
    activity = db.session.get(Activity, activity_id)
    if not activity:
        raise NotFoundError(resource="Activity", resource_id=activity_id)
    return activity


def _cascade_default() -> bool:
    return bool(current_app.config.get("SCHEDULE_CASCADE", True))


# ── Validation ───────────────────────────────────────────────────────────────


def _percent(value) -> int:
    try:
        pct = int(round(float(value)))
    except (TypeError, ValueError) as exc:
        raise ValidationError(
            "percent_complete must be a number", details={"percent_complete": str(value)},
        ) from exc
    if not 0 <= pct <= 100:
        raise ValidationError(
            "percent_complete must be between 0 and 100", details={"percent_complete": pct},
        )
    return pct


def _duration(value) -> int | None:
    if value is None or value == "":
        return None
    try:
        days = int(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(
            "duration_days must be an integer", details={"duration_days": str(value)},
        ) from exc
    if days < 1:
        raise ValidationError("duration_days must be at least 1", details={"duration_days": days})
    return days


def _integer(value, key: str) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise ValidationError(f"{key} must be an integer", details={key: str(value)})
    try:
        return int(value)
    except ValueError as exc:
        raise ValidationError(f"{key} must be an integer", details={key: value}) from exc


def _predecessor_id(value) -> int | None:
    """Normalise a predecessor reference; JSON clients may send ``"12"``."""
    if value is None or value == "":
        return None
    return _integer(value, "predecessor_id")


def _check_predecessor(item_id: int | None, activity_id: int, predecessor_id: int) -> ScheduleItem:
    """Resolve a candidate predecessor and run the cycle guard.

    Raises before anything is written.
    """
    if item_id is not None and item_id == predecessor_id:
        raise CyclicDependencyError(item_id, predecessor_id)

    pred = db.session.get(ScheduleItem, predecessor_id)
    if not pred:
        raise NotFoundError(resource="ScheduleItem", resource_id=predecessor_id)
    if pred.activity_id != activity_id:
        raise ValidationError(
            "Predecessor must belong to the same activity",
            details={"predecessor_id": predecessor_id, "activity_id": activity_id},
        )
    if item_id is not None:
        chain = predecessor_map(list_items(activity_id))
        if not validate_no_cycle(chain, item_id, predecessor_id):
            raise CyclicDependencyError(item_id, predecessor_id)
    return pred


def _resolve_dates(item: ScheduleItem | None, data: dict) -> dict:
    """Validate user-edited dates/duration against the stored ones (if any).

    Returns the consistent start/end/duration triple; writes nothing.
    """
    start = getattr(item, "start_date", None)
    end = getattr(item, "end_date", None)
    duration = getattr(item, "duration_days", None)
    if "start_date" in data:
        start = parse_date_input(data["start_date"], "start_date")
    if "end_date" in data:
        end = parse_date_input(data["end_date"], "end_date")
    if "duration_days" in data:
        duration = _duration(data["duration_days"])

    if start and end and end < start:
        raise ValidationError(
            "end_date must not be before start_date",
            details={"start_date": start.isoformat(), "end_date": end.isoformat()},
        )

    if start and end and ("start_date" in data or "end_date" in data) and "duration_days" not in data:
        duration = inclusive_days(start, end)
    elif start and duration and "end_date" not in data:
        end = end_for_duration(start, duration)
    elif start and end:
        duration = inclusive_days(start, end)

    return {"start_date": start, "end_date": end, "duration_days": duration}


def _commit(item: ScheduleItem) -> None:
    try:
        db.session.commit()
    except StaleDataError as exc:
        db.session.rollback()
        raise StaleRecordError("ScheduleItem", item.id) from exc


# ── ScheduleItem CRUD ────────────────────────────────────────────────────────


def create_item(activity_id: int, data: dict) -> ScheduleItem:
    """Create a schedule item under an activity.

    New items normally start unscheduled without a predecessor. Optional
    dates, duration, completion and predecessor are accepted and validated
    as in ``update_item``.

    Args:
        activity_id: Parent Activity primary key.
        data: Input dict with at least ``name``.

    Returns:
        The persisted ScheduleItem instance.
    """
    activity = _get_activity(activity_id)
    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError("name is required", details={"name": "required"})

    order_index = data.get("order_index")
    if order_index is None:
        current_max = (
            db.session.query(func.max(ScheduleItem.order_index))
            .filter(ScheduleItem.activity_id == activity_id)
            .scalar()
        )
        order_index = 0 if current_max is None else current_max + 1
    else:
        order_index = _integer(order_index, "order_index")

    predecessor_id = _predecessor_id(data.get("predecessor_id"))
    if predecessor_id is not None:
        _check_predecessor(None, activity_id, predecessor_id)

    item = ScheduleItem(
        activity_id=activity_id,
        name=name,
        percent_complete=_percent(data.get("percent_complete", 0)),
        order_index=order_index,
        predecessor_id=predecessor_id,
        **_resolve_dates(None, data),
    )
    db.session.add(item)
    if not activity.has_detailed_schedule:
        activity.has_detailed_schedule = True
    db.session.commit()
    logger.info("ScheduleItem created id=%s activity=%s", item.id, activity_id)

    if predecessor_id is not None:
        propagate_schedule(activity_id)
    apply_rollup(activity_id)
    return item


def update_item(item_id: int, data: dict, *, expected_version: int | None = None) -> ScheduleItem:
    """Apply a user edit to a schedule item.

    Every field is validated before the item is touched. Predecessor
    changes pass the cycle guard first. Date edits on a derived item are
    refused: its start follows the predecessor. Date or predecessor edits
    trigger a propagation pass; completion edits trigger the rollup.

    Args:
        item_id: ScheduleItem primary key.
        data: Field-name → new-value pairs.
        expected_version: Version the caller read; a mismatch raises
                          StaleRecordError before anything is written.
    """
    item = get_item(item_id)
    if expected_version is not None and item.version != expected_version:
        raise StaleRecordError("ScheduleItem", item_id)

    changes: dict = {}
    if "predecessor_id" in data:
        new_pred = _predecessor_id(data["predecessor_id"])
        if new_pred is not None and new_pred != item.predecessor_id:
            _check_predecessor(item.id, item.activity_id, new_pred)
        changes["predecessor_id"] = new_pred

    predecessor_after = changes.get("predecessor_id", item.predecessor_id)
    if predecessor_after is not None and "start_date" in data:
        requested = parse_date_input(data["start_date"], "start_date")
        if requested != item.start_date:
            raise ValidationError(
                "start_date is driven by the predecessor; clear the predecessor to edit it",
                details={"predecessor_id": predecessor_after},
            )

    if "name" in data:
        name = (data.get("name") or "").strip()
        if not name:
            raise ValidationError("name must not be empty", details={"name": "required"})
        changes["name"] = name
    if "order_index" in data:
        changes["order_index"] = _integer(data["order_index"], "order_index")
    if "percent_complete" in data:
        changes["percent_complete"] = _percent(data["percent_complete"])
    if {"start_date", "end_date", "duration_days"} & data.keys():
        changes.update(_resolve_dates(item, data))

    percent_changed = (
        "percent_complete" in changes and changes["percent_complete"] != item.percent_complete
    )
    for f, value in changes.items():
        setattr(item, f, value)

    schedule_touched = bool(_SCHEDULE_FIELDS & data.keys())
    activity_id = item.activity_id
    _commit(item)
    logger.info("ScheduleItem updated id=%s fields=%s", item_id, sorted(data.keys()))

    if schedule_touched:
        propagate_schedule(activity_id)
    if percent_changed:
        apply_rollup(activity_id)
    return item


def set_predecessor(item_id: int, predecessor_id: int) -> ScheduleItem:
    """Make *predecessor_id* drive the item's dates (anchored → derived)."""
    if _predecessor_id(predecessor_id) is None:
        raise ValidationError("predecessor_id is required", details={"predecessor_id": "required"})
    return update_item(item_id, {"predecessor_id": predecessor_id})


def clear_predecessor(item_id: int) -> ScheduleItem:
    """Detach the item from its predecessor (derived → anchored); dates are kept."""
    return update_item(item_id, {"predecessor_id": None})


def delete_item(item_id: int) -> None:
    """Delete a schedule item unless another item names it as predecessor."""
    item = get_item(item_id)
    dependent_ids = [
        row.id for row in
        ScheduleItem.query.filter_by(predecessor_id=item_id).order_by(ScheduleItem.id).all()
    ]
    if dependent_ids:
        raise ReferencedItemError(item_id, dependent_ids)

    activity_id = item.activity_id
    db.session.delete(item)
    _commit(item)
    logger.info("ScheduleItem deleted id=%s activity=%s", item_id, activity_id)
    recompute_activity_metrics(activity_id)


# ── Propagation pass ─────────────────────────────────────────────────────────


def _failed_ancestor(item_id: int, chain: dict[int, int | None], failed_ids: set[int]) -> int | None:
    """Nearest ancestor of *item_id* whose write failed in this run, if any."""
    seen: set[int] = set()
    current = chain.get(item_id)
    while current is not None and current not in seen:
        if current in failed_ids:
            return current
        seen.add(current)
        current = chain.get(current)
    return None


def _write_change(change: ScheduleChange) -> None:
    item = db.session.get(ScheduleItem, change.item_id)
    if not item:
        raise NotFoundError(resource="ScheduleItem", resource_id=change.item_id)
    for f, value in change.values().items():
        setattr(item, f, value)
    _commit(item)


def propagate_schedule(
    activity_id: int,
    cascade: bool | None = None,
    max_passes: int | None = None,
) -> PropagationResult:
    """
    Bring every derived item of an activity in line with its predecessor.

    Plans a pass, writes each change on its own, and re-runs after any
    successful write until a pass plans nothing (or *max_passes* is hit,
    default: item count + 1).

    Args:
        activity_id: The activity whose item set is scheduled.
        cascade: Planning strategy; defaults to ``SCHEDULE_CASCADE`` config.
        max_passes: Upper bound on planning passes.

    Returns:
        PropagationResult with the applied changes, per-item failures and
        the dependents held back behind a failed item.
    """
    if cascade is None:
        cascade = _cascade_default()
    result = PropagationResult(activity_id=activity_id)

    items = list_items(activity_id)
    limit = max_passes if max_passes is not None else len(items) + 1
    failed_ids: set[int] = set()
    held: dict[int, int] = {}

    while result.passes < limit:
        plan = plan_updates(items, cascade=cascade)
        result.passes += 1
        result.skipped = plan.skipped
        pending = [c for c in plan.changes if c.item_id not in failed_ids]
        if not pending:
            break

        chain = predecessor_map(items)
        written = 0
        for change in pending:
            blocker = _failed_ancestor(change.item_id, chain, failed_ids) if cascade else None
            if blocker is not None:
                held.setdefault(change.item_id, blocker)
                continue
            try:
                _write_change(change)
                result.applied.append(change)
                written += 1
            except (StaleRecordError, NotFoundError, SQLAlchemyError) as exc:
                db.session.rollback()
                failed_ids.add(change.item_id)
                result.failures.append({"item_id": change.item_id, "error": str(exc)})
                logger.error(
                    "Schedule write failed item=%s activity=%s: %s",
                    change.item_id, activity_id, exc,
                )

        if written == 0:
            break
        items = list_items(activity_id)

    result.held = [
        {"item_id": item_id, "failed_predecessor_id": blocker}
        for item_id, blocker in held.items()
    ]
    if result.applied or result.failures:
        logger.info(
            "Schedule propagation activity=%s passes=%d applied=%d failed=%d held=%d",
            activity_id, result.passes, len(result.applied), len(result.failures), len(held),
        )
    return result
