"""
Construction Progress Engine
Scheduled Jobs.

Concrete job implementations run through SchedulerService.

Jobs:
    - risk_snapshot_refresh: scores every activity for the current week
    - schedule_consistency_sweep: re-runs the propagation pass for every
      activity with a detailed schedule, healing chains left behind by a
      partially failed pass
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from app.core.exceptions import ConflictError, NotFoundError
from app.models import db
from app.models.schedule import ScheduleItem
from app.services.risk_service import refresh_risk_snapshots
from app.services.schedule_service import propagate_schedule
from app.services.scheduler_service import register_job
from app.utils.calendar import week_label

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
#  Job 1: Risk Snapshot Refresh
# ═══════════════════════════════════════════════════════════════════════════

@register_job(
    "risk_snapshot_refresh",
    cron={"day_of_week": "mon", "hour": "6", "minute": "0"},
    enabled_flag="RISK_JOB_ENABLED",
)
def refresh_weekly_risk(app) -> dict[str, Any]:
    """Upsert this week's delay-risk snapshot for every activity."""
    period = week_label(date.today())
    batch = refresh_risk_snapshots(period)
    logger.info(
        "Risk snapshot refresh: period=%s updated=%d failed=%d",
        period, len(batch.updated_ids), len(batch.failures),
    )
    return batch.to_dict()


# ═══════════════════════════════════════════════════════════════════════════
#  Job 2: Schedule Consistency Sweep
# ═══════════════════════════════════════════════════════════════════════════

@register_job("schedule_consistency_sweep", cron={"hour": "2", "minute": "0"})
def sweep_schedules(app) -> dict[str, Any]:
    """Re-run the propagation pass for every activity with schedule items."""
    results = {"activities_checked": 0, "items_updated": 0, "errors": 0}

    activity_ids = [
        row[0] for row in
        db.session.query(ScheduleItem.activity_id).distinct().order_by(ScheduleItem.activity_id)
    ]
    for activity_id in activity_ids:
        try:
            outcome = propagate_schedule(activity_id)
        except (NotFoundError, ConflictError, SQLAlchemyError) as e:
            db.session.rollback()
            results["errors"] += 1
            logger.error("Schedule sweep failed for activity %s: %s", activity_id, e)
            continue
        results["activities_checked"] += 1
        results["items_updated"] += len(outcome.applied)
        results["errors"] += len(outcome.failures)

    logger.info(
        "Schedule consistency sweep: %d activities, %d items updated",
        results["activities_checked"], results["items_updated"],
    )
    return results
