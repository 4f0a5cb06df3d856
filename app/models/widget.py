"""
Brand Strategy Orchestrator
Cockpit widget result model.

Models:
    - WidgetResult: stored output of one widget for one strategy,
                    unique per (strategy_id, widget_type)

Lifecycle states:
    pending → computing → ready | error   (any → pending on invalidation)
"""

from datetime import datetime, timezone

from app.models import db


def _utcnow():
    return datetime.now(timezone.utc)


WIDGET_STATUSES = {"pending", "computing", "ready", "error"}


class WidgetResult(db.Model):
    """
    Last computed value of a widget. Invalidation flips ``status`` back to
    pending and keeps ``data`` so the last-known value stays readable.
    """

    __tablename__ = "widget_results"
    __table_args__ = (
        db.UniqueConstraint("strategy_id", "widget_type", name="uq_widget_strategy_type"),
    )

    id = db.Column(db.Integer, primary_key=True)
    strategy_id = db.Column(
        db.String(36), db.ForeignKey("strategies.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    widget_type = db.Column(db.String(50), nullable=False)
    status = db.Column(db.String(20), nullable=False, default="pending")
    data = db.Column(db.JSON, nullable=True)
    schema_warning = db.Column(db.Text, nullable=True)
    error_message = db.Column(db.Text, nullable=True)
    computed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "strategy_id": self.strategy_id,
            "widget_type": self.widget_type,
            "status": self.status,
            "data": self.data,
            "schema_warning": self.schema_warning,
            "error_message": self.error_message,
            "computed_at": self.computed_at.isoformat() if self.computed_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<WidgetResult {self.widget_type} [{self.status}] strategy={self.strategy_id}>"
