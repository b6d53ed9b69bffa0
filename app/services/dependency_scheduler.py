"""
Dependency Graph Scheduler — pure date propagation over a predecessor chain.

No database access: works on ScheduleItem rows or any objects exposing
``id``, ``predecessor_id``, ``start_date``, ``end_date`` and
``duration_days``. The persistence pass lives in ``schedule_service``.

Rules:
  - start = predecessor.end_date + 1 calendar day (never business days)
  - when the computed start differs from the stored one, the end date moves
    so that the span keeps its duration:
        stored duration_days → derived from the previous start/end pair
        → 1 day
  - durations are inclusive: a 1-day item starts and ends on the same date
  - a dangling predecessor reference skips the item for this pass
  - a predecessor without a usable end date (NULL or unparsable) leaves the
    dependent untouched for this pass

Strategies (``cascade``):
  True   visit items in topological order (Kahn). A changed predecessor's
         new end date feeds its dependents in the same pass, so any chain
         converges in one call.
  False  every item reads its predecessor's *stored* dates. One level of
         dependents moves per pass; an N-deep chain needs N-1 passes.
Both strategies are idempotent: a second pass without upstream changes
plans no updates.

Cycle guard (``validate_no_cycle``) runs before a predecessor assignment is
accepted, never during propagation.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Iterable, Mapping

from app.utils.calendar import add_calendar_days, end_for_duration, inclusive_days
from app.utils.helpers import parse_date

logger = logging.getLogger(__name__)

DEFAULT_DURATION_DAYS = 1


# ═════════════════════════════════════════════════════════════════════════════
# Result types
# ═════════════════════════════════════════════════════════════════════════════

@dataclass
class ScheduleChange:
    """New dates for one item, with the values they replace."""
    item_id: int
    start_date: date
    end_date: date
    duration_days: int
    previous_start: date | None = None
    previous_end: date | None = None
    previous_duration: int | None = None

    def values(self) -> dict:
        return {
            "start_date": self.start_date,
            "end_date": self.end_date,
            "duration_days": self.duration_days,
        }

    def to_dict(self) -> dict:
        return {
            "item_id": self.item_id,
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "duration_days": self.duration_days,
            "previous_start": self.previous_start.isoformat() if self.previous_start else None,
            "previous_end": self.previous_end.isoformat() if self.previous_end else None,
            "previous_duration": self.previous_duration,
        }


@dataclass
class SchedulePlan:
    """Outcome of one planning pass: the changes to write and what was skipped."""
    changes: list[ScheduleChange] = field(default_factory=list)
    skipped: list[dict] = field(default_factory=list)

    @property
    def is_stable(self) -> bool:
        return not self.changes

    def to_dict(self) -> dict:
        return {
            "changes": [c.to_dict() for c in self.changes],
            "skipped": list(self.skipped),
        }


@dataclass
class _Span:
    start: date | None
    end: date | None
    duration: int | None


# ═════════════════════════════════════════════════════════════════════════════
# Item inspection
# ═════════════════════════════════════════════════════════════════════════════

def item_state(item: Any) -> str:
    """unscheduled | anchored | derived."""
    if item.predecessor_id is not None:
        return "derived"
    if parse_date(item.start_date) is None and parse_date(item.end_date) is None:
        return "unscheduled"
    return "anchored"


def derive_duration(start: date | None, end: date | None, duration_days: int | None) -> int | None:
    """Duration of a span: stored value first, then the date pair, else None."""
    if duration_days is not None and duration_days >= 1:
        return int(duration_days)
    if start is not None and end is not None:
        return inclusive_days(start, end)
    return None


def _span_of(item: Any) -> _Span:
    return _Span(
        start=parse_date(item.start_date),
        end=parse_date(item.end_date),
        duration=item.duration_days,
    )


# ═════════════════════════════════════════════════════════════════════════════
# Cycle guard
# ═════════════════════════════════════════════════════════════════════════════

def validate_no_cycle(
    predecessor_of: Mapping[int, int | None],
    item_id: int,
    new_predecessor_id: int,
) -> bool:
    """
    Check that making *new_predecessor_id* the predecessor of *item_id*
    keeps the chain acyclic.

    Walks the existing predecessor chain starting at the candidate. Returns
    False on self-reference, when the walk reaches *item_id*, or when it
    revisits a node (an existing loop upstream). Returns True if safe.

    Args:
        predecessor_of: item id → current predecessor id (None for roots).
        item_id: The item receiving a predecessor.
        new_predecessor_id: The candidate predecessor.
    """
    if item_id == new_predecessor_id:
        return False

    visited: set[int] = set()
    current: int | None = new_predecessor_id
    while current is not None:
        if current == item_id or current in visited:
            return False
        visited.add(current)
        current = predecessor_of.get(current)
    return True


def predecessor_map(items: Iterable[Any]) -> dict[int, int | None]:
    return {item.id: item.predecessor_id for item in items}


# ═════════════════════════════════════════════════════════════════════════════
# Ordering
# ═════════════════════════════════════════════════════════════════════════════

def topological_order(items: Iterable[Any]) -> tuple[list[int], list[int]]:
    """
    Kahn's algorithm over predecessor → dependent edges.

    Returns (ordered_ids, cyclic_ids). Dangling predecessor references do
    not count as edges. Items stuck on a loop (only possible with data
    written around the cycle guard) end up in ``cyclic_ids``.
    """
    items = list(items)
    ids = {item.id for item in items}
    dependents: dict[int, list[int]] = {item.id: [] for item in items}
    indegree: dict[int, int] = {item.id: 0 for item in items}

    for item in items:
        pred_id = item.predecessor_id
        if pred_id is not None and pred_id in ids:
            dependents[pred_id].append(item.id)
            indegree[item.id] += 1

    queue = deque(item.id for item in items if indegree[item.id] == 0)
    ordered: list[int] = []
    while queue:
        node = queue.popleft()
        ordered.append(node)
        for dep in dependents[node]:
            indegree[dep] -= 1
            if indegree[dep] == 0:
                queue.append(dep)

    placed = set(ordered)
    cyclic = [item.id for item in items if item.id not in placed]
    return ordered, cyclic


# ═════════════════════════════════════════════════════════════════════════════
# Planning pass
# ═════════════════════════════════════════════════════════════════════════════

def plan_updates(items: Iterable[Any], cascade: bool = True) -> SchedulePlan:
    """
    Compute the date changes needed to make every derived item start the
    day after its predecessor ends.

    Args:
        items: The full item set of one activity.
        cascade: Topological single-pass convergence (True) or one level
                 of dependents per pass (False).

    Returns:
        SchedulePlan with the changes to write and the skipped items.
    """
    items = list(items)
    by_id = {item.id: item for item in items}
    stored = {item.id: _span_of(item) for item in items}
    working = {item_id: _Span(s.start, s.end, s.duration) for item_id, s in stored.items()}
    plan = SchedulePlan()

    if cascade:
        order, cyclic = topological_order(items)
        for item_id in cyclic:
            logger.warning("ScheduleItem %s sits on a predecessor cycle — left unscheduled", item_id)
            plan.skipped.append({"item_id": item_id, "reason": "cycle"})
        source = working
    else:
        order = [item.id for item in items]
        source = stored

    for item_id in order:
        item = by_id[item_id]
        pred_id = item.predecessor_id
        if pred_id is None:
            continue

        if pred_id not in by_id:
            logger.warning(
                "ScheduleItem %s references missing predecessor %s — skipped this pass",
                item_id, pred_id,
            )
            plan.skipped.append({"item_id": item_id, "reason": "dangling_predecessor"})
            continue

        pred_end = source[pred_id].end
        if pred_end is None:
            logger.debug("ScheduleItem %s waits on predecessor %s without end date", item_id, pred_id)
            plan.skipped.append({"item_id": item_id, "reason": "predecessor_unscheduled"})
            continue

        current = working[item_id]
        new_start = add_calendar_days(pred_end, 1)
        if new_start == current.start:
            continue

        duration = derive_duration(current.start, current.end, current.duration) or DEFAULT_DURATION_DAYS
        new_end = end_for_duration(new_start, duration)

        plan.changes.append(ScheduleChange(
            item_id=item_id,
            start_date=new_start,
            end_date=new_end,
            duration_days=duration,
            previous_start=current.start,
            previous_end=current.end,
            previous_duration=current.duration,
        ))
        working[item_id] = _Span(new_start, new_end, duration)

    return plan
