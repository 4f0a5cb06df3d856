"""
Brand Strategy Orchestrator
Signal & Decision domain models.

Models:
    - Signal:           market/risk observation in one of three layers
    - SignalMutation:   append-only audit row, one per status change
    - Decision:         prioritized action item, at most one per Signal
    - MetricThreshold:  warning/critical bounds that raise METRIC signals

Architecture:
    Strategy ──1:N──▶ Signal ──1:N──▶ SignalMutation
    Strategy ──1:N──▶ Decision ──0..1──▶ Signal  (unique signal_id)
    Strategy ──1:N──▶ MetricThreshold

Lifecycle states:
    Signal.status is scoped by layer (see SIGNAL_STATUSES), never cross-layer.
    Decision:  PENDING → IN_PROGRESS → RESOLVED | DEFERRED
"""

import uuid
from datetime import datetime, timezone

from app.models import db


def _uuid():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


# ── Constants ────────────────────────────────────────────────────────────────

SIGNAL_LAYERS = ("METRIC", "STRONG", "WEAK")

SIGNAL_STATUSES = {
    "METRIC": ["NORMAL", "WARNING", "CRITICAL"],
    "STRONG": ["EMERGING", "ACTIVE", "DECLINING", "ARCHIVED"],
    "WEAK":   ["WATCH", "PROBE", "BET", "DISMISSED"],
}

# Layer → status that spawns a Decision. STRONG never escalates.
CRITICAL_STATUS = {
    "METRIC": "CRITICAL",
    "WEAK": "BET",
}

SIGNAL_CONFIDENCES = {"LOW", "MEDIUM", "HIGH"}

DECISION_PRIORITIES = ("P0", "P1", "P2")

DECISION_STATUSES = {"PENDING", "IN_PROGRESS", "RESOLVED", "DEFERRED"}

DEADLINE_TYPES = {"MARKETING", "INSTITUTIONAL", "STARTUP"}

DECISION_TRANSITIONS = {
    "PENDING":     ["IN_PROGRESS", "RESOLVED", "DEFERRED"],
    "IN_PROGRESS": ["RESOLVED", "DEFERRED"],
    "DEFERRED":    ["PENDING", "IN_PROGRESS"],
    "RESOLVED":    [],
}

THRESHOLD_DIRECTIONS = {"above", "below"}


def is_valid_signal_status(layer: str, status: str) -> bool:
    """Return True if *status* belongs to the status set of *layer*."""
    return status in SIGNAL_STATUSES.get(layer, [])


def validate_decision_transition(old_status, new_status):
    """Return True if Decision status transition is valid."""
    return new_status in DECISION_TRANSITIONS.get(old_status, [])


# ═════════════════════════════════════════════════════════════════════════════
# 1. Signal
# ═════════════════════════════════════════════════════════════════════════════


class Signal(db.Model):
    """
    Observation about the strategy's market or risk context.

    ``status`` is only changed through the audit-tracked mutate operation.
    ``metric_key`` ties METRIC signals raised by threshold evaluation back
    to the threshold that produced them.
    """

    __tablename__ = "signals"
    __table_args__ = (
        db.Index("idx_signal_strategy_layer", "strategy_id", "layer"),
        db.CheckConstraint("layer IN ('METRIC','STRONG','WEAK')", name="ck_signal_layer"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    strategy_id = db.Column(
        db.String(36), db.ForeignKey("strategies.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    layer = db.Column(db.String(10), nullable=False)
    status = db.Column(db.String(20), nullable=False)
    pillar = db.Column(db.String(1), nullable=True, comment="Associated pillar kind")
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, default="")
    source = db.Column(db.String(50), nullable=True, comment="audit_t | audit_r | DEBRIEF | metric | manual")
    confidence = db.Column(db.String(10), nullable=False, default="MEDIUM")
    metric_key = db.Column(db.String(100), nullable=True, index=True)
    metric_value = db.Column(db.Float, nullable=True)
    detected_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    last_checked_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    mutations = db.relationship(
        "SignalMutation", backref="signal", lazy="dynamic",
        cascade="all, delete-orphan", order_by="SignalMutation.created_at",
    )
    decision = db.relationship("Decision", backref="signal", uselist=False)

    def to_dict(self, include_decision=False):
        result = {
            "id": self.id,
            "strategy_id": self.strategy_id,
            "layer": self.layer,
            "status": self.status,
            "pillar": self.pillar,
            "title": self.title,
            "description": self.description,
            "source": self.source,
            "confidence": self.confidence,
            "metric_key": self.metric_key,
            "metric_value": self.metric_value,
            "detected_at": _iso(self.detected_at),
            "last_checked_at": _iso(self.last_checked_at),
            "created_at": _iso(self.created_at),
        }
        if include_decision:
            result["decision"] = self.decision.to_dict() if self.decision else None
        return result

    def __repr__(self):
        return f"<Signal {self.id}: {self.layer}/{self.status} {self.title[:40]!r}>"


# ═════════════════════════════════════════════════════════════════════════════
# 2. SignalMutation
# ═════════════════════════════════════════════════════════════════════════════


class SignalMutation(db.Model):
    """Immutable status-change record. Written in the same transaction as the status."""

    __tablename__ = "signal_mutations"

    id = db.Column(db.Integer, primary_key=True)
    signal_id = db.Column(
        db.String(36), db.ForeignKey("signals.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    from_status = db.Column(db.String(20), nullable=False)
    to_status = db.Column(db.String(20), nullable=False)
    reason = db.Column(db.Text, default="")
    mutated_by = db.Column(db.String(150), nullable=False, default="system")
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "signal_id": self.signal_id,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "reason": self.reason,
            "mutated_by": self.mutated_by,
            "created_at": _iso(self.created_at),
        }


# ═════════════════════════════════════════════════════════════════════════════
# 3. Decision
# ═════════════════════════════════════════════════════════════════════════════


class Decision(db.Model):
    """
    Actionable item in the decision queue.

    ``signal_id`` is unique: escalating the same signal again finds the
    existing row instead of inserting a second one.
    """

    __tablename__ = "decisions"
    __table_args__ = (
        db.CheckConstraint("priority IN ('P0','P1','P2')", name="ck_decision_priority"),
        db.CheckConstraint(
            "status IN ('PENDING','IN_PROGRESS','RESOLVED','DEFERRED')",
            name="ck_decision_status",
        ),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    strategy_id = db.Column(
        db.String(36), db.ForeignKey("strategies.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    signal_id = db.Column(
        db.String(36), db.ForeignKey("signals.id", ondelete="SET NULL"),
        nullable=True, unique=True,
    )
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, default="")
    priority = db.Column(db.String(2), nullable=False, default="P1")
    status = db.Column(db.String(20), nullable=False, default="PENDING")
    deadline_type = db.Column(db.String(20), nullable=True, comment="MARKETING | INSTITUTIONAL | STARTUP")
    deadline = db.Column(db.DateTime(timezone=True), nullable=True)
    resolution = db.Column(db.Text, nullable=True)
    resolved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_by = db.Column(db.String(150), nullable=False, default="system")

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "strategy_id": self.strategy_id,
            "signal_id": self.signal_id,
            "title": self.title,
            "description": self.description,
            "priority": self.priority,
            "status": self.status,
            "deadline_type": self.deadline_type,
            "deadline": _iso(self.deadline),
            "resolution": self.resolution,
            "resolved_at": _iso(self.resolved_at),
            "created_by": self.created_by,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def __repr__(self):
        return f"<Decision {self.id}: {self.priority} [{self.status}] {self.title[:40]!r}>"


# ═════════════════════════════════════════════════════════════════════════════
# 4. MetricThreshold
# ═════════════════════════════════════════════════════════════════════════════


class MetricThreshold(db.Model):
    """Warning/critical bounds for one tracked metric of a strategy."""

    __tablename__ = "metric_thresholds"
    __table_args__ = (
        db.UniqueConstraint("strategy_id", "metric_key", name="uq_threshold_strategy_metric"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    strategy_id = db.Column(
        db.String(36), db.ForeignKey("strategies.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    metric_key = db.Column(db.String(100), nullable=False)
    label = db.Column(db.String(200), nullable=False)
    pillar = db.Column(db.String(1), nullable=True)
    direction = db.Column(db.String(10), nullable=False, default="above")
    warning_value = db.Column(db.Float, nullable=False)
    critical_value = db.Column(db.Float, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def level_for(self, value: float) -> str:
        """Return NORMAL, WARNING or CRITICAL for a measured value."""
        if self.direction == "below":
            if value <= self.critical_value:
                return "CRITICAL"
            if value <= self.warning_value:
                return "WARNING"
            return "NORMAL"
        if value >= self.critical_value:
            return "CRITICAL"
        if value >= self.warning_value:
            return "WARNING"
        return "NORMAL"

    def to_dict(self):
        return {
            "id": self.id,
            "strategy_id": self.strategy_id,
            "metric_key": self.metric_key,
            "label": self.label,
            "pillar": self.pillar,
            "direction": self.direction,
            "warning_value": self.warning_value,
            "critical_value": self.critical_value,
            "created_at": _iso(self.created_at),
        }
