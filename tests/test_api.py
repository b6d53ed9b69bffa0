"""
tests/test_api.py — HTTP round-trips through the Flask test client.

Covers:
    1.  Activity CRUD + validation envelope
    2.  Progress upsert, summary, distribution
    3.  Schedule items: create, predecessor link, cycle → 422, delete guard → 409,
        stale version → 409, on-demand propagation, string ids, 207 on partial failure
    4.  Risk refresh + snapshot listing
    5.  Jobs listing / manual run / toggle, health probes
"""

from sqlalchemy.exc import OperationalError

from app.services import schedule_service
from app.services.scheduler_service import SchedulerService

BASE = "/api/v1"


# ═════════════════════════════════════════════════════════════════════════════
# Helpers
# ═════════════════════════════════════════════════════════════════════════════


def _activity(client, **kw):
    """Create an activity and return its dict."""
    payload = {
        "name": "Masonry block walls",
        "total_qty": 200,
        "start_date": "2024-01-01",
        "end_date": "2024-01-21",
    }
    payload.update(kw)
    rv = client.post(f"{BASE}/activities", json=payload)
    assert rv.status_code == 201
    return rv.get_json()


def _schedule_item(client, activity_id, **kw):
    """Create a schedule item and return its dict."""
    payload = {"name": "Step"}
    payload.update(kw)
    rv = client.post(f"{BASE}/activities/{activity_id}/schedule-items", json=payload)
    assert rv.status_code == 201
    return rv.get_json()["item"]


# ═════════════════════════════════════════════════════════════════════════════
# Activities & progress
# ═════════════════════════════════════════════════════════════════════════════


class TestActivities:
    def test_crud(self, client):
        act = _activity(client)
        assert act["distribution_type"] == "linear"

        rv = client.get(f"{BASE}/activities")
        assert rv.get_json()["total"] == 1

        rv = client.put(f"{BASE}/activities/{act['id']}", json={"responsible": "Ana"})
        assert rv.status_code == 200
        assert rv.get_json()["responsible"] == "Ana"

        rv = client.delete(f"{BASE}/activities/{act['id']}")
        assert rv.status_code == 200
        assert client.get(f"{BASE}/activities/{act['id']}").status_code == 404

    def test_validation_envelope(self, client):
        rv = client.post(f"{BASE}/activities", json={"name": ""})
        assert rv.status_code == 422
        body = rv.get_json()
        assert body["code"] == "ERR_VALIDATION_CONSTRAINT"
        assert body["details"] == {"name": "required"}

    def test_not_found_envelope(self, client):
        rv = client.get(f"{BASE}/activities/999")
        assert rv.status_code == 404
        assert rv.get_json()["code"] == "ERR_NOT_FOUND"

    def test_non_json_body_rejected(self, client):
        rv = client.post(f"{BASE}/activities", data="name=x", content_type="text/plain")
        assert rv.status_code == 415


class TestProgress:
    def test_upsert_and_summary(self, client):
        act = _activity(client)
        url = f"{BASE}/activities/{act['id']}/progress"

        rv = client.post(url, json={"date": "2024-01-02", "actual_qty": 8, "planned_qty": 10})
        assert rv.status_code == 201
        rv = client.post(url, json={"date": "2024-01-03", "actual_qty": 12, "planned_qty": 10})
        assert rv.status_code == 201
        assert rv.get_json()["activity"]["ppc"] == 100

        rv = client.post(url, json={"date": "2024-01-03", "actual_qty": 2})
        assert rv.status_code == 200
        assert rv.get_json()["created"] is False
        assert rv.get_json()["activity"]["ppc"] == 50

        rv = client.get(url)
        assert rv.get_json()["total"] == 2

        rv = client.get(f"{BASE}/activities/{act['id']}/summary?as_of=2024-01-11")
        summary = rv.get_json()
        assert summary["planned_pct"] == 50.0
        assert summary["actual_pct"] == 5
        assert summary["schedule_status"] == "delayed"

    def test_bad_date(self, client):
        act = _activity(client)
        rv = client.post(f"{BASE}/activities/{act['id']}/progress", json={"date": "soon"})
        assert rv.status_code == 422
        assert "date" in rv.get_json()["details"]

    def test_delete_entry(self, client):
        act = _activity(client)
        rv = client.post(
            f"{BASE}/activities/{act['id']}/progress",
            json={"date": "2024-01-02", "actual_qty": 1, "planned_qty": 1},
        )
        entry_id = rv.get_json()["entry"]["id"]
        assert client.delete(f"{BASE}/progress/{entry_id}").status_code == 200
        assert client.delete(f"{BASE}/progress/{entry_id}").status_code == 404

    def test_distribution(self, client):
        act = _activity(client, distribution_type="s_curve")
        rv = client.get(f"{BASE}/activities/{act['id']}/distribution")
        body = rv.get_json()
        assert body["distribution_type"] == "s_curve"
        assert len(body["points"]) == 21
        assert body["points"][-1]["cumulative"] == 200

        rv = client.get(f"{BASE}/activities/{act['id']}/distribution?type=linear")
        assert rv.get_json()["daily_target"] == 10


# ═════════════════════════════════════════════════════════════════════════════
# Schedule items
# ═════════════════════════════════════════════════════════════════════════════


class TestScheduleItems:
    def test_link_propagates_dates(self, client):
        act = _activity(client)
        a = _schedule_item(client, act["id"], name="Layout", start_date="2024-01-01", end_date="2024-01-03")
        b = _schedule_item(client, act["id"], name="Walls", duration_days=4)

        rv = client.put(f"{BASE}/schedule-items/{b['id']}/predecessor", json={"predecessor_id": a["id"]})
        assert rv.status_code == 200
        item = rv.get_json()["item"]
        assert item["state"] == "derived"
        assert item["start_date"] == "2024-01-04"
        assert item["end_date"] == "2024-01-07"

        rv = client.delete(f"{BASE}/schedule-items/{b['id']}/predecessor")
        assert rv.get_json()["item"]["state"] == "anchored"

    def test_cycle_rejected(self, client):
        act = _activity(client)
        a = _schedule_item(client, act["id"], name="A")
        b = _schedule_item(client, act["id"], name="B", predecessor_id=a["id"])
        rv = client.put(f"{BASE}/schedule-items/{a['id']}/predecessor", json={"predecessor_id": b["id"]})
        assert rv.status_code == 422
        assert rv.get_json()["code"] == "SCHEDULE_CYCLE"

        rv = client.put(f"{BASE}/schedule-items/{a['id']}", json={"predecessor_id": a["id"]})
        assert rv.status_code == 422

    def test_predecessor_required(self, client):
        act = _activity(client)
        a = _schedule_item(client, act["id"])
        rv = client.put(f"{BASE}/schedule-items/{a['id']}/predecessor", json={})
        assert rv.status_code == 400

    def test_delete_guard(self, client):
        act = _activity(client)
        a = _schedule_item(client, act["id"], name="A")
        b = _schedule_item(client, act["id"], name="B", predecessor_id=a["id"])
        rv = client.delete(f"{BASE}/schedule-items/{a['id']}")
        assert rv.status_code == 409
        body = rv.get_json()
        assert body["code"] == "SCHEDULE_REFERENCED"
        assert body["details"]["dependent_ids"] == [b["id"]]

    def test_stale_version_conflict(self, client):
        act = _activity(client)
        a = _schedule_item(client, act["id"], name="A")
        rv = client.put(f"{BASE}/schedule-items/{a['id']}", json={"name": "A1", "version": a["version"]})
        assert rv.status_code == 200
        rv = client.put(f"{BASE}/schedule-items/{a['id']}", json={"name": "A2", "version": a["version"]})
        assert rv.status_code == 409
        assert rv.get_json()["code"] == "ERR_CONFLICT_STALE"

    def test_percent_rollup_in_response(self, client):
        act = _activity(client)
        _schedule_item(client, act["id"], name="A", percent_complete=100)
        b = _schedule_item(client, act["id"], name="B")
        rv = client.put(f"{BASE}/schedule-items/{b['id']}", json={"percent_complete": 50})
        assert rv.get_json()["activity"]["schedule_percent_complete"] == 75
        assert rv.get_json()["activity"]["ppc"] == 75

    def test_propagate_endpoint(self, client):
        act = _activity(client)
        _schedule_item(client, act["id"], name="A", start_date="2024-01-01", end_date="2024-01-02")
        rv = client.post(f"{BASE}/activities/{act['id']}/schedule/propagate", json={"cascade": False})
        assert rv.status_code == 200
        body = rv.get_json()
        assert body["success"] is True
        assert body["applied_count"] == 0

    def test_string_predecessor_ids(self, client):
        act = _activity(client)
        a = _schedule_item(client, act["id"], name="A", start_date="2024-01-01", end_date="2024-01-02")
        b = _schedule_item(client, act["id"], name="B", predecessor_id=str(a["id"]))
        assert b["predecessor_id"] == a["id"]

        rv = client.put(f"{BASE}/schedule-items/{a['id']}/predecessor", json={"predecessor_id": str(a["id"])})
        assert rv.status_code == 422
        assert rv.get_json()["code"] == "SCHEDULE_CYCLE"

        rv = client.put(f"{BASE}/schedule-items/{a['id']}/predecessor", json={"predecessor_id": str(b["id"])})
        assert rv.status_code == 422
        assert rv.get_json()["code"] == "SCHEDULE_CYCLE"
        assert client.get(f"{BASE}/schedule-items/{a['id']}").get_json()["predecessor_id"] is None

        rv = client.put(f"{BASE}/schedule-items/{b['id']}", json={"predecessor_id": "first"})
        assert rv.status_code == 422

    def test_propagate_reports_partial_failure(self, client, monkeypatch):
        act = _activity(client)
        a = _schedule_item(client, act["id"], name="A", start_date="2024-01-01", end_date="2024-01-03")
        b = _schedule_item(client, act["id"], name="B", predecessor_id=a["id"], duration_days=2)
        c = _schedule_item(client, act["id"], name="C", predecessor_id=b["id"], duration_days=1)
        real_write = schedule_service._write_change

        def _flaky(change):
            if change.item_id == b["id"]:
                raise OperationalError("UPDATE", {}, Exception("database is locked"))
            return real_write(change)

        monkeypatch.setattr(schedule_service, "_write_change", _flaky)
        rv = client.put(f"{BASE}/schedule-items/{a['id']}", json={"end_date": "2024-01-10"})
        assert rv.status_code == 200

        rv = client.post(f"{BASE}/activities/{act['id']}/schedule/propagate", json={})
        assert rv.status_code == 207
        body = rv.get_json()
        assert body["success"] is False
        assert body["failure_count"] == 1
        assert body["failures"][0]["item_id"] == b["id"]
        assert body["held"] == [{"item_id": c["id"], "failed_predecessor_id": b["id"]}]

        monkeypatch.undo()
        rv = client.post(f"{BASE}/activities/{act['id']}/schedule/propagate", json={})
        assert rv.status_code == 200
        item = client.get(f"{BASE}/schedule-items/{c['id']}").get_json()
        assert item["start_date"] == "2024-01-13"

    def test_list_items_ordered(self, client):
        act = _activity(client)
        _schedule_item(client, act["id"], name="First")
        _schedule_item(client, act["id"], name="Second")
        rv = client.get(f"{BASE}/activities/{act['id']}/schedule-items")
        assert [i["name"] for i in rv.get_json()["items"]] == ["First", "Second"]


# ═════════════════════════════════════════════════════════════════════════════
# Risk, jobs, health
# ═════════════════════════════════════════════════════════════════════════════


class TestRisk:
    def test_refresh_and_list(self, client):
        act = _activity(client)
        url = f"{BASE}/activities/{act['id']}/progress"
        for day, actual in ((2, 10), (3, 8), (4, 6)):
            client.post(url, json={"date": f"2024-01-0{day}", "actual_qty": actual, "planned_qty": 10})

        rv = client.post(f"{BASE}/risk/refresh", json={"period": "2024-02"})
        assert rv.status_code == 200
        assert rv.get_json()["updated_ids"] == [act["id"]]

        rv = client.get(f"{BASE}/risk/snapshots?period=2024-02")
        snap = rv.get_json()["items"][0]
        assert snap["risk_pct"] == 40
        assert snap["classification"] == "MEDIUM"

        rv = client.get(f"{BASE}/activities/{act['id']}/risk")
        body = rv.get_json()
        assert body["current"]["trend_bonus"] == 20
        assert len(body["snapshots"]) == 1

    def test_bad_period(self, client):
        rv = client.post(f"{BASE}/risk/refresh", json={"period": "Feb"})
        assert rv.status_code == 422


class TestJobsAndHealth:
    def test_jobs_listed(self, client):
        rv = client.get(f"{BASE}/jobs")
        names = {j["job_name"] for j in rv.get_json()["items"]}
        assert {"risk_snapshot_refresh", "schedule_consistency_sweep"} <= names

    def test_unknown_job(self, client):
        rv = client.post(f"{BASE}/jobs/nope/run", json={})
        assert rv.status_code == 404

    def test_toggle_job(self, client):
        SchedulerService.ensure_jobs_registered()
        rv = client.post(f"{BASE}/jobs/risk_snapshot_refresh/toggle", json={"enabled": False})
        assert rv.status_code == 200
        assert rv.get_json()["status"] == "paused"
        rv = client.post(f"{BASE}/jobs/risk_snapshot_refresh/run", json={})
        assert rv.get_json()["status"] == "skipped"

        rv = client.post(f"{BASE}/jobs/nope/toggle", json={"enabled": True})
        assert rv.status_code == 404
        assert client.post(f"{BASE}/jobs/nope/toggle", json={}).status_code == 400

    def test_sweep_job_runs(self, client):
        act = _activity(client)
        _schedule_item(client, act["id"], name="A", start_date="2024-01-01", end_date="2024-01-02")
        rv = client.post(f"{BASE}/jobs/schedule_consistency_sweep/run", json={})
        assert rv.status_code == 200
        body = rv.get_json()
        assert body["status"] == "success"
        assert body["result"]["activities_checked"] == 1

    def test_health(self, client):
        assert client.get(f"{BASE}/health/ready").status_code == 200
        rv = client.get(f"{BASE}/health/live")
        assert rv.status_code == 200
        assert rv.get_json()["checks"]["database"]["status"] == "ok"
