"""
Construction Progress Engine
Activity domain models.

Models:
    - Activity:       tracked unit of construction work (the parent aggregate)
    - ProgressEntry:  one dated plan-vs-actual observation against an activity

Architecture:
    Activity ──1:N──▶ ProgressEntry   (unique per activity + date)
    Activity ──1:N──▶ ScheduleItem    (see app.models.schedule)
    Activity ──1:N──▶ RiskSnapshot    (see app.models.risk)

Derived fields on Activity:
    progress                   actual / total_qty        (entry based)
    ppc                        actual / planned          (entry based, or rollup)
    schedule_percent_complete  mean of schedule item completion (rollup only)
"""

from datetime import datetime, timezone

from app.models import db


# ── Constants ────────────────────────────────────────────────────────────────

DISTRIBUTION_TYPES = {"linear", "s_curve", "custom"}


class Activity(db.Model):
    """
    Tracked unit of work with a total quantity and a planned window.
    When ``has_detailed_schedule`` is set, progress is driven by its
    ScheduleItem children instead of daily ProgressEntry rows.
    """

    __tablename__ = "activities"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    discipline = db.Column(db.String(100), nullable=True)
    responsible = db.Column(db.String(150), nullable=True)
    unit = db.Column(db.String(30), nullable=True, comment="m², m³, un, ...")

    total_qty = db.Column(db.Float, nullable=True)
    start_date = db.Column(db.Date, nullable=True)
    end_date = db.Column(db.Date, nullable=True)
    distribution_type = db.Column(
        db.String(20), nullable=False, default="linear",
        comment="linear | s_curve | custom",
    )
    has_detailed_schedule = db.Column(db.Boolean, nullable=False, default=False)

    # Derived
    progress = db.Column(db.Integer, nullable=False, default=0)
    ppc = db.Column(db.Integer, nullable=False, default=0)
    schedule_percent_complete = db.Column(
        db.Integer, nullable=True,
        comment="Mean of ScheduleItem.percent_complete; NULL without schedule items",
    )

    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.CheckConstraint(
            "distribution_type IN ('linear','s_curve','custom')",
            name="ck_activity_distribution_type",
        ),
    )

    # ── Relationships ────────────────────────────────────────────────────
    progress_entries = db.relationship(
        "ProgressEntry", backref="activity", lazy="dynamic",
        cascade="all, delete-orphan", order_by="ProgressEntry.date",
    )
    schedule_items = db.relationship(
        "ScheduleItem", backref="activity", lazy="dynamic",
        cascade="all, delete-orphan", order_by="ScheduleItem.order_index",
    )
    risk_snapshots = db.relationship(
        "RiskSnapshot", backref="activity", lazy="dynamic",
        cascade="all, delete-orphan",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "discipline": self.discipline,
            "responsible": self.responsible,
            "unit": self.unit,
            "total_qty": self.total_qty,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "distribution_type": self.distribution_type,
            "has_detailed_schedule": self.has_detailed_schedule,
            "progress": self.progress,
            "ppc": self.ppc,
            "schedule_percent_complete": self.schedule_percent_complete,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Activity {self.id}: {self.name[:40]}>"


class ProgressEntry(db.Model):
    """
    One dated observation of planned vs actual quantity for an activity.
    At most one row per (activity, date); submissions upsert.
    """

    __tablename__ = "progress_entries"
    __table_args__ = (
        db.UniqueConstraint("activity_id", "date", name="uq_progress_activity_date"),
        db.CheckConstraint(
            "actual_qty IS NULL OR actual_qty >= 0", name="ck_progress_actual_non_negative",
        ),
        db.CheckConstraint(
            "planned_qty IS NULL OR planned_qty >= 0", name="ck_progress_planned_non_negative",
        ),
    )

    id = db.Column(db.Integer, primary_key=True)
    activity_id = db.Column(
        db.Integer, db.ForeignKey("activities.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    date = db.Column(db.Date, nullable=False)
    actual_qty = db.Column(db.Float, nullable=True)
    planned_qty = db.Column(db.Float, nullable=True)
    notes = db.Column(db.Text, default="")

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
            "date": self.date.isoformat() if self.date else None,
            "actual_qty": self.actual_qty,
            "planned_qty": self.planned_qty,
            "notes": self.notes,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<ProgressEntry {self.activity_id}@{self.date}: {self.actual_qty}/{self.planned_qty}>"
