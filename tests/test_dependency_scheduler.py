"""
Tests: pure predecessor-chain scheduling (no database).

Items are SimpleNamespace stand-ins exposing the ScheduleItem attributes
the planner reads.
"""

from datetime import date
from types import SimpleNamespace

from app.services.dependency_scheduler import (
    derive_duration,
    item_state,
    plan_updates,
    predecessor_map,
    topological_order,
    validate_no_cycle,
)


def _item(item_id, pred=None, start=None, end=None, duration=None):
    return SimpleNamespace(
        id=item_id, predecessor_id=pred,
        start_date=start, end_date=end, duration_days=duration,
    )


def _apply(items, plan):
    by_id = {i.id: i for i in items}
    for change in plan.changes:
        for field, value in change.values().items():
            setattr(by_id[change.item_id], field, value)


def _chain():
    """A (anchored, Jan 1–5) → B (3 days) → C (2 days) → D (unscheduled)."""
    return [
        _item(1, start=date(2024, 1, 1), end=date(2024, 1, 5), duration=5),
        _item(2, pred=1, start=date(2024, 1, 1), end=date(2024, 1, 3), duration=3),
        _item(3, pred=2, start=date(2024, 1, 1), end=date(2024, 1, 2)),
        _item(4, pred=3),
    ]


class TestItemState:
    def test_states(self):
        assert item_state(_item(1)) == "unscheduled"
        assert item_state(_item(1, start=date(2024, 1, 1))) == "anchored"
        assert item_state(_item(2, pred=1)) == "derived"


class TestDeriveDuration:
    def test_stored_duration_wins(self):
        assert derive_duration(date(2024, 1, 1), date(2024, 1, 10), 3) == 3

    def test_inclusive_from_dates(self):
        assert derive_duration(date(2024, 1, 1), date(2024, 1, 1), None) == 1
        assert derive_duration(date(2024, 1, 1), date(2024, 1, 3), None) == 3

    def test_unknown(self):
        assert derive_duration(None, date(2024, 1, 3), None) is None


class TestCycleGuard:
    def test_self_reference_rejected(self):
        assert validate_no_cycle({1: None}, 1, 1) is False

    def test_direct_two_cycle_rejected(self):
        # B's predecessor is A; making B A's predecessor closes the loop
        assert validate_no_cycle({1: None, 2: 1}, 1, 2) is False

    def test_transitive_cycle_rejected(self):
        chain = {1: None, 2: 1, 3: 2, 4: 3}
        assert validate_no_cycle(chain, 1, 4) is False

    def test_valid_link_accepted(self):
        chain = {1: None, 2: 1, 3: None}
        assert validate_no_cycle(chain, 3, 2) is True

    def test_existing_upstream_loop_rejected(self):
        chain = {1: 2, 2: 1, 3: None}
        assert validate_no_cycle(chain, 3, 1) is False

    def test_predecessor_map(self):
        assert predecessor_map(_chain()) == {1: None, 2: 1, 3: 2, 4: 3}


class TestTopologicalOrder:
    def test_chain_order(self):
        items = list(reversed(_chain()))
        ordered, cyclic = topological_order(items)
        assert ordered == [1, 2, 3, 4]
        assert cyclic == []

    def test_loop_reported(self):
        items = [_item(1, pred=2), _item(2, pred=1), _item(3)]
        ordered, cyclic = topological_order(items)
        assert ordered == [3]
        assert sorted(cyclic) == [1, 2]


class TestPlanUpdates:
    def test_start_is_day_after_predecessor_end(self):
        items = [_item(1, start=date(2024, 1, 1), end=date(2024, 1, 5)), _item(2, pred=1)]
        plan = plan_updates(items)
        assert len(plan.changes) == 1
        change = plan.changes[0]
        assert change.start_date == date(2024, 1, 6)
        assert change.end_date == date(2024, 1, 6)
        assert change.duration_days == 1

    def test_month_boundary_uses_calendar_days(self):
        # Friday Jan 26 → Saturday Jan 27, weekends are not skipped
        items = [_item(1, start=date(2024, 1, 22), end=date(2024, 1, 26)), _item(2, pred=1, duration=7)]
        change = plan_updates(items).changes[0]
        assert change.start_date == date(2024, 1, 27)
        assert change.end_date == date(2024, 2, 2)

    def test_duration_derived_from_previous_dates(self):
        items = [
            _item(1, start=date(2024, 3, 1), end=date(2024, 3, 10)),
            _item(2, pred=1, start=date(2024, 3, 1), end=date(2024, 3, 4)),
        ]
        change = plan_updates(items).changes[0]
        assert change.start_date == date(2024, 3, 11)
        assert change.end_date == date(2024, 3, 14)
        assert change.duration_days == 4
        assert change.previous_start == date(2024, 3, 1)

    def test_cascade_converges_in_one_pass(self):
        items = _chain()
        plan = plan_updates(items, cascade=True)
        assert [c.item_id for c in plan.changes] == [2, 3, 4]
        _apply(items, plan)
        assert items[1].start_date == date(2024, 1, 6)
        assert items[1].end_date == date(2024, 1, 8)
        assert items[2].start_date == date(2024, 1, 9)
        assert items[2].end_date == date(2024, 1, 10)
        assert items[3].start_date == date(2024, 1, 11)
        assert items[3].end_date == date(2024, 1, 11)
        assert plan_updates(items, cascade=True).is_stable

    def test_level_by_level_converges_eventually(self):
        items = _chain()
        writing_passes = 0
        for _ in range(10):
            plan = plan_updates(items, cascade=False)
            if plan.is_stable:
                break
            _apply(items, plan)
            writing_passes += 1
        assert writing_passes == 3
        assert items[3].start_date == date(2024, 1, 11)

    def test_second_run_is_idempotent(self):
        items = _chain()
        _apply(items, plan_updates(items))
        for cascade in (True, False):
            assert plan_updates(items, cascade=cascade).changes == []

    def test_dangling_predecessor_skipped(self):
        items = [_item(2, pred=99, start=date(2024, 1, 1), end=date(2024, 1, 2))]
        plan = plan_updates(items)
        assert plan.changes == []
        assert plan.skipped == [{"item_id": 2, "reason": "dangling_predecessor"}]

    def test_predecessor_without_end_leaves_item_alone(self):
        items = [_item(1, start=date(2024, 1, 1)), _item(2, pred=1, start=date(2024, 1, 9))]
        plan = plan_updates(items)
        assert plan.changes == []
        assert plan.skipped[0]["reason"] == "predecessor_unscheduled"

    def test_unparsable_predecessor_end_leaves_item_alone(self):
        items = [_item(1, start="2024-01-01", end="garbage"), _item(2, pred=1)]
        assert plan_updates(items).changes == []

    def test_string_dates_accepted(self):
        items = [_item(1, start="2024-01-01", end="2024-01-05"), _item(2, pred=1)]
        assert plan_updates(items).changes[0].start_date == date(2024, 1, 6)

    def test_legacy_loop_does_not_block_other_items(self):
        items = [
            _item(1, pred=2, start=date(2024, 1, 1), end=date(2024, 1, 2)),
            _item(2, pred=1, start=date(2024, 1, 3), end=date(2024, 1, 4)),
            _item(3, start=date(2024, 2, 1), end=date(2024, 2, 3)),
            _item(4, pred=3),
        ]
        plan = plan_updates(items, cascade=True)
        assert [c.item_id for c in plan.changes] == [4]
        assert {s["item_id"] for s in plan.skipped if s["reason"] == "cycle"} == {1, 2}
