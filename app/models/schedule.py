"""
Construction Progress Engine
Detailed schedule model.

Models:
    - ScheduleItem: one node in an activity's predecessor chain

Architecture:
    Activity ──1:N──▶ ScheduleItem
    ScheduleItem ──N:1──▶ ScheduleItem  (predecessor_id, acyclic)

Scheduling states (derived, not stored):
    unscheduled  no start/end date yet
    anchored     dates set directly, no predecessor
    derived      dates driven by predecessor.end_date + 1 day

Concurrency:
    ``version`` is a SQLAlchemy version counter. An UPDATE issued from a stale
    copy of the row matches zero rows and raises StaleDataError, which the
    service layer turns into StaleRecordError instead of losing the update.
"""

from datetime import datetime, timezone

from app.models import db
from app.services.dependency_scheduler import item_state


class ScheduleItem(db.Model):
    """
    Sub-unit of an activity with its own dates and completion percentage.
    ``order_index`` only drives display ordering, never scheduling.
    """

    __tablename__ = "schedule_items"

    id = db.Column(db.Integer, primary_key=True)
    activity_id = db.Column(
        db.Integer, db.ForeignKey("activities.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    name = db.Column(db.String(300), nullable=False)

    start_date = db.Column(db.Date, nullable=True)
    end_date = db.Column(db.Date, nullable=True)
    duration_days = db.Column(
        db.Integer, nullable=True,
        comment="Inclusive calendar days; derived when both dates are present",
    )
    percent_complete = db.Column(db.Integer, nullable=False, default=0)

    predecessor_id = db.Column(
        db.Integer, db.ForeignKey("schedule_items.id", ondelete="RESTRICT"),
        nullable=True, index=True,
    )
    order_index = db.Column(db.Integer, nullable=False, default=0)

    version = db.Column(db.Integer, nullable=False)

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
            "percent_complete >= 0 AND percent_complete <= 100",
            name="ck_schedule_item_percent_range",
        ),
        db.CheckConstraint(
            "duration_days IS NULL OR duration_days >= 1",
            name="ck_schedule_item_duration_positive",
        ),
    )
    __mapper_args__ = {"version_id_col": version}

    # ── Relationships ────────────────────────────────────────────────────
    predecessor = db.relationship(
        "ScheduleItem", remote_side=[id], backref=db.backref("dependents", lazy="dynamic"),
    )

    @property
    def state(self) -> str:
        return item_state(self)

    def to_dict(self):
        return {
            "id": self.id,
            "activity_id": self.activity_id,
            "name": self.name,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "duration_days": self.duration_days,
            "percent_complete": self.percent_complete,
            "predecessor_id": self.predecessor_id,
            "order_index": self.order_index,
            "state": self.state,
            "version": self.version,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<ScheduleItem {self.id}: #{self.order_index} {self.name[:40]}>"
