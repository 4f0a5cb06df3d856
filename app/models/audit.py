"""
Brand Strategy Orchestrator
Audit domain model.

Models:
    - AuditLog: immutable, append-only audit trail for lifecycle events
                that have no dedicated history table (phase moves, manual
                pillar edits, decision and mission state changes).
"""

import json
from datetime import UTC, datetime

from app.models import db

# ── Constants ────────────────────────────────────────────────────────────────

AUDIT_ENTITY_TYPES = {"strategy", "pillar", "decision", "mission", "market_study"}

AUDIT_ACTIONS = {
    # Strategy pipeline
    "strategy.create",
    "strategy.archive",
    "strategy.phase_advance",
    "strategy.phase_revert",
    "strategy.fiche_validated",
    "strategy.audit_validated",
    # Pillars
    "pillar.manual_edit",
    "pillar.restore",
    # Market study
    "market_study.complete",
    "market_study.skip",
    # Decisions
    "decision.create",
    "decision.start",
    "decision.resolve",
    "decision.defer",
    "decision.reopen",
    # Missions
    "mission.create",
    "mission.transition",
    "mission.debrief",
}


class AuditLog(db.Model):
    """
    Immutable audit trail for every lifecycle event.

    One row per action.  ``diff_json`` carries the old→new snapshot
    for field-level changes.
    """

    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("idx_audit_entity", "entity_type", "entity_id"),
        db.Index("idx_audit_action", "action"),
        db.Index("idx_audit_ts", "timestamp"),
    )

    id = db.Column(db.Integer, primary_key=True)
    strategy_id = db.Column(
        db.String(36),
        db.ForeignKey("strategies.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )

    # Polymorphic entity reference
    entity_type = db.Column(
        db.String(30), nullable=False,
        comment="strategy | pillar | decision | mission | market_study",
    )
    entity_id = db.Column(db.String(36), nullable=False)

    action = db.Column(
        db.String(60), nullable=False,
        comment="strategy.phase_advance | pillar.manual_edit | mission.transition | …",
    )
    actor = db.Column(db.String(150), nullable=False, default="system")

    diff_json = db.Column(db.Text, default="{}", comment="JSON: {field: {old, new}}")

    timestamp = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(UTC),
    )

    @property
    def diff(self) -> dict:
        """Deserialise *diff_json* to a Python dict."""
        try:
            return json.loads(self.diff_json or "{}")
        except (json.JSONDecodeError, TypeError):
            return {}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "strategy_id": self.strategy_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "action": self.action,
            "actor": self.actor,
            "diff": self.diff,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }

    def __repr__(self):
        return f"<AuditLog {self.id}: {self.action} on {self.entity_type}/{self.entity_id}>"


# ── Convenience writer ───────────────────────────────────────────────────────

def write_audit(
    *,
    entity_type: str,
    entity_id: str,
    action: str,
    actor: str = "system",
    strategy_id: str | None = None,
    diff: dict | None = None,
) -> AuditLog:
    """
    Append a single audit row.  Uses ``flush`` so callers keep
    transaction control.

    Returns the (flushed) AuditLog instance.
    """
    log = AuditLog(
        strategy_id=strategy_id,
        entity_type=entity_type,
        entity_id=str(entity_id),
        action=action,
        actor=actor or "system",
        diff_json=json.dumps(diff or {}, default=str),
    )
    db.session.add(log)
    db.session.flush()
    return log


def list_audit(strategy_id: str, entity_type: str | None = None, limit: int = 100) -> list[dict]:
    """Return the newest audit rows of a strategy."""
    q = AuditLog.query.filter_by(strategy_id=strategy_id)
    if entity_type:
        q = q.filter_by(entity_type=entity_type)
    return [row.to_dict() for row in q.order_by(AuditLog.id.desc()).limit(limit).all()]
