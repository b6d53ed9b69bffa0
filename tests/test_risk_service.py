"""
Tests: delay-risk batch and snapshot upsert.

Covers:
    1.  Batch creates one snapshot per activity with entries
    2.  Re-running the batch for the same period updates in place
    3.  Different periods keep separate snapshots
    4.  Activities without entries are skipped
    5.  A failing activity does not abort the batch
    6.  Period labels are validated
    7.  Scheduled job runs the batch for the current week
"""

from __future__ import annotations

from datetime import date

import pytest
from sqlalchemy.exc import OperationalError

import app.services.risk_service as svc
from app.core.exceptions import NotFoundError, ValidationError
from app.models import db as _db
from app.models.activity import Activity, ProgressEntry
from app.models.risk import RiskSnapshot
from app.models.scheduling import ScheduledJob
from app.services.scheduler_service import SchedulerService
from app.utils.calendar import week_label


def _make_activity(name, observations=()):
    a = Activity(name=name, total_qty=100.0)
    _db.session.add(a)
    _db.session.flush()
    for day, (actual, planned) in enumerate(observations, start=1):
        _db.session.add(ProgressEntry(
            activity_id=a.id, date=date(2024, 1, day),
            actual_qty=actual, planned_qty=planned,
        ))
    _db.session.commit()
    return a


class TestRefreshBatch:
    def test_creates_snapshot_per_activity(self):
        slipping = _make_activity("Slipping", [(10, 10), (8, 10), (6, 10)])
        steady = _make_activity("Steady", [(10, 10), (10, 10)])
        result = svc.refresh_risk_snapshots("2024-02")
        assert result.success
        assert sorted(result.updated_ids) == sorted([slipping.id, steady.id])

        snap = RiskSnapshot.query.filter_by(activity_id=slipping.id, period="2024-02").one()
        assert snap.ppc == 80
        assert snap.trend_bonus == 20
        assert snap.risk_pct == 40
        assert snap.classification == "MEDIUM"

        snap = RiskSnapshot.query.filter_by(activity_id=steady.id, period="2024-02").one()
        assert snap.risk_pct == 0
        assert snap.classification == "LOW"

    def test_rerun_updates_in_place(self):
        a = _make_activity("A", [(5, 10)])
        svc.refresh_risk_snapshots("2024-02")
        _db.session.add(ProgressEntry(activity_id=a.id, date=date(2024, 1, 9), actual_qty=15, planned_qty=10))
        _db.session.commit()
        svc.refresh_risk_snapshots("2024-02")

        snaps = RiskSnapshot.query.filter_by(activity_id=a.id).all()
        assert len(snaps) == 1
        assert snaps[0].ppc == 100
        assert snaps[0].risk_pct == 0

    def test_periods_are_separate(self):
        a = _make_activity("A", [(5, 10)])
        svc.refresh_risk_snapshots("2024-02")
        svc.refresh_risk_snapshots("2024-03")
        assert [s.period for s in svc.get_snapshots(a.id)] == ["2024-02", "2024-03"]

    def test_activity_without_entries_skipped(self):
        empty = _make_activity("Empty")
        result = svc.refresh_risk_snapshots("2024-02")
        assert result.skipped_ids == [empty.id]
        assert RiskSnapshot.query.count() == 0

    def test_failing_activity_does_not_abort(self, monkeypatch):
        bad = _make_activity("Bad", [(1, 10)])
        good = _make_activity("Good", [(9, 10)])
        real_score = svc.score_activity

        def _flaky(activity_id):
            if activity_id == bad.id:
                raise OperationalError("SELECT", {}, Exception("database is locked"))
            return real_score(activity_id)

        monkeypatch.setattr(svc, "score_activity", _flaky)
        result = svc.refresh_risk_snapshots("2024-02")

        assert result.success is False
        assert result.updated_ids == [good.id]
        assert [f["activity_id"] for f in result.failures] == [bad.id]
        assert RiskSnapshot.query.filter_by(activity_id=good.id).count() == 1

    def test_invalid_period(self):
        with pytest.raises(ValidationError):
            svc.refresh_risk_snapshots("week 7")
        with pytest.raises(ValidationError):
            svc.refresh_risk_snapshots("2024-60")


class TestReads:
    def test_list_snapshots_highest_risk_first(self):
        _make_activity("Low", [(10, 10)])
        _make_activity("High", [(2, 10)])
        svc.refresh_risk_snapshots("2024-02")
        snaps = svc.list_snapshots(period="2024-02")
        assert [s.classification for s in snaps] == ["HIGH", "LOW"]
        assert [s.classification for s in svc.list_snapshots(classification="high")] == ["HIGH"]

    def test_snapshots_for_unknown_activity(self):
        with pytest.raises(NotFoundError):
            svc.get_snapshots(999)


class TestScheduledJob:
    def test_job_uses_current_week(self, app):
        _make_activity("A", [(5, 10)])
        SchedulerService.ensure_jobs_registered()
        outcome = SchedulerService.run_job("risk_snapshot_refresh")
        assert outcome["status"] == "success"
        assert outcome["result"]["period"] == week_label(date.today())

        _db.session.expire_all()
        assert RiskSnapshot.query.filter_by(period=week_label(date.today())).count() == 1
        job = ScheduledJob.query.filter_by(job_name="risk_snapshot_refresh").one()
        assert job.run_count == 1
        assert job.last_run_status == "success"

    def test_paused_job_is_skipped(self, app):
        _make_activity("A", [(5, 10)])
        SchedulerService.ensure_jobs_registered()
        SchedulerService.toggle_job("risk_snapshot_refresh", False)
        outcome = SchedulerService.run_job("risk_snapshot_refresh")
        assert outcome["status"] == "skipped"
        assert RiskSnapshot.query.count() == 0
