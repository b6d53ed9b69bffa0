"""
Delay Risk — Service Layer.

Business logic for:
    - Delay-risk scoring:   PPC aggregate + variance-trend bonus → risk_pct,
                            three-tier classification
    - Snapshot upsert:      one RiskSnapshot per (activity, period)
    - Batch refresh:        every activity scored sequentially; a failing
                            activity is rolled back and reported, the rest
                            of the batch continues

The period key is always passed in by the caller (HTTP body, scheduled job)
so a batch is reproducible for any week.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Sequence

from sqlalchemy.exc import SQLAlchemyError

from app.core.exceptions import NotFoundError, ValidationError
from app.models import db
from app.models.activity import Activity, ProgressEntry
from app.models.risk import RiskSnapshot
from app.services.plan_value import average_ppc, entry_value, risk_classification
from app.services.risk_trend import analyze_trend, observation_variance
from app.utils.calendar import parse_week_label
from app.utils.helpers import parse_date

logger = logging.getLogger(__name__)


@dataclass
class RiskScore:
    ppc: int
    risk_pct: int
    classification: str
    trend_bonus: int
    observations: int

    def to_dict(self) -> dict:
        return {
            "ppc": self.ppc,
            "risk_pct": self.risk_pct,
            "classification": self.classification,
            "trend_bonus": self.trend_bonus,
            "observations": self.observations,
        }


@dataclass
class RiskBatchResult:
    period: str
    updated_ids: list[int] = field(default_factory=list)
    skipped_ids: list[int] = field(default_factory=list)
    failures: list[dict] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.failures

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "period": self.period,
            "updated_ids": list(self.updated_ids),
            "updated_count": len(self.updated_ids),
            "skipped_ids": list(self.skipped_ids),
            "failures": list(self.failures),
            "failure_count": len(self.failures),
        }


# ── Scoring (pure) ───────────────────────────────────────────────────────────


def delay_risk(ppc_value: float, variance_history: Sequence[float] | None = None) -> int:
    """Bounded delay risk: (100 − PPC) plus the trend bonus, capped at 100."""
    base = max(0.0, 100 - float(ppc_value))
    bonus = analyze_trend(variance_history)
    return int(round(min(100.0, base + bonus)))


def _chronological(entries: Iterable[Any]) -> list[Any]:
    dated = []
    for entry in entries:
        raw = entry_value(entry, "date")
        entry_date = parse_date(raw)
        if entry_date is None:
            logger.warning("Skipping progress entry with unparsable date %r", raw)
            continue
        dated.append((entry_date, entry))
    dated.sort(key=lambda pair: pair[0])
    return [entry for _, entry in dated]


def variance_history(entries: Iterable[Any]) -> list[float]:
    """Per-entry variances in date order, for entries with both quantities recorded."""
    history = []
    for entry in _chronological(entries):
        actual = entry_value(entry, "actual_qty")
        planned = entry_value(entry, "planned_qty")
        if actual is None or planned is None:
            continue
        history.append(observation_variance(actual, planned))
    return history


def score_entries(entries: Iterable[Any]) -> RiskScore | None:
    """Score a set of progress entries; None when there is nothing to score."""
    ordered = _chronological(entries)
    if not ordered:
        return None
    ppc_value = average_ppc(ordered)
    history = variance_history(ordered)
    return RiskScore(
        ppc=ppc_value,
        risk_pct=delay_risk(ppc_value, history),
        classification=risk_classification(ppc_value).value,
        trend_bonus=analyze_trend(history),
        observations=len(history),
    )


# ── Persistence ──────────────────────────────────────────────────────────────


def _check_period(period: str) -> str:
    try:
        parse_week_label(period)
    except ValueError as exc:
        raise ValidationError(
            "period must be a week label like 2024-07", details={"period": period},
        ) from exc
    return period


def score_activity(activity_id: int) -> RiskScore | None:
    activity = db.session.get(Activity, activity_id)
    if not activity:
        raise NotFoundError(resource="Activity", resource_id=activity_id)
    entries = ProgressEntry.query.filter_by(activity_id=activity_id).all()
    return score_entries(entries)


def upsert_snapshot(activity_id: int, period: str, score: RiskScore) -> tuple[RiskSnapshot, bool]:
    """Insert or update the snapshot for (activity, period). Does not commit.

    Returns:
        (snapshot, created)
    """
    snapshot = RiskSnapshot.query.filter_by(activity_id=activity_id, period=period).first()
    created = snapshot is None
    if created:
        snapshot = RiskSnapshot(activity_id=activity_id, period=period)
        db.session.add(snapshot)
    snapshot.risk_pct = score.risk_pct
    snapshot.classification = score.classification
    snapshot.ppc = score.ppc
    snapshot.trend_bonus = score.trend_bonus
    return snapshot, created


def refresh_activity_risk(activity_id: int, period: str) -> RiskSnapshot | None:
    """Score one activity and store its snapshot for *period*."""
    _check_period(period)
    score = score_activity(activity_id)
    if score is None:
        return None
    snapshot, created = upsert_snapshot(activity_id, period, score)
    db.session.commit()
    logger.info(
        "Risk snapshot %s activity=%s period=%s risk=%s class=%s",
        "created" if created else "updated",
        activity_id, period, score.risk_pct, score.classification,
    )
    return snapshot


def refresh_risk_snapshots(period: str) -> RiskBatchResult:
    """
    Score every activity for *period* and upsert its snapshot.

    Activities are processed one at a time with their own commit. Activities
    without progress entries are skipped. Lookup and write errors are
    logged, rolled back and collected in ``failures``.

    Args:
        period: Week label (``YYYY-WW``) the snapshots are keyed by.
    """
    _check_period(period)
    result = RiskBatchResult(period=period)
    activity_ids = [row.id for row in db.session.query(Activity.id).order_by(Activity.id).all()]

    for activity_id in activity_ids:
        try:
            snapshot = refresh_activity_risk(activity_id, period)
        except (NotFoundError, SQLAlchemyError) as exc:
            db.session.rollback()
            result.failures.append({"activity_id": activity_id, "error": str(exc)})
            logger.error("Risk refresh failed activity=%s period=%s: %s", activity_id, period, exc)
            continue
        if snapshot is None:
            result.skipped_ids.append(activity_id)
        else:
            result.updated_ids.append(activity_id)

    logger.info(
        "Risk refresh period=%s updated=%d skipped=%d failed=%d",
        period, len(result.updated_ids), len(result.skipped_ids), len(result.failures),
    )
    return result


def get_snapshots(activity_id: int) -> list[RiskSnapshot]:
    activity = db.session.get(Activity, activity_id)
    if not activity:
        raise NotFoundError(resource="Activity", resource_id=activity_id)
    return (
        RiskSnapshot.query
        .filter_by(activity_id=activity_id)
        .order_by(RiskSnapshot.period)
        .all()
    )


def list_snapshots(period: str | None = None, classification: str | None = None) -> list[RiskSnapshot]:
    """Snapshots, optionally for one period and/or classification, highest risk first."""
    q = RiskSnapshot.query
    if period:
        q = q.filter_by(period=_check_period(period))
    if classification:
        q = q.filter_by(classification=classification.upper())
    return q.order_by(RiskSnapshot.risk_pct.desc(), RiskSnapshot.activity_id).all()
