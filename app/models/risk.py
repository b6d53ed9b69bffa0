"""
Construction Progress Engine
Delay-risk snapshot model.

Models:
    - RiskSnapshot: delay-risk score + classification for one activity in one period

One row per (activity, period). The risk batch upserts; the engine never
deletes snapshots.
"""

from datetime import datetime, timezone

from app.models import db


# ── Constants ────────────────────────────────────────────────────────────────

RISK_CLASSIFICATIONS = {"LOW", "MEDIUM", "HIGH"}


class RiskSnapshot(db.Model):
    """Periodic delay-risk record for an activity (period = week label YYYY-WW)."""

    __tablename__ = "risk_snapshots"
    __table_args__ = (
        db.UniqueConstraint("activity_id", "period", name="uq_risk_activity_period"),
        db.CheckConstraint(
            "risk_pct >= 0 AND risk_pct <= 100", name="ck_risk_pct_range",
        ),
        db.CheckConstraint(
            "classification IN ('LOW','MEDIUM','HIGH')", name="ck_risk_classification",
        ),
    )

    id = db.Column(db.Integer, primary_key=True)
    activity_id = db.Column(
        db.Integer, db.ForeignKey("activities.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    period = db.Column(db.String(10), nullable=False, index=True, comment="YYYY-WW")
    risk_pct = db.Column(db.Integer, nullable=False, default=0)
    classification = db.Column(db.String(10), nullable=False)
    ppc = db.Column(db.Integer, nullable=True, comment="PPC the score was derived from")
    trend_bonus = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "activity_id": self.activity_id,
            "period": self.period,
            "risk_pct": self.risk_pct,
            "classification": self.classification,
            "ppc": self.ppc,
            "trend_bonus": self.trend_bonus,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<RiskSnapshot {self.activity_id}@{self.period}: {self.risk_pct}% {self.classification}>"
