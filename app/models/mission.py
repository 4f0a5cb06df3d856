"""
Brand Strategy Orchestrator
Mission workflow domain models.

Models:
    - Mission:             service-delivery mission attached to a strategy
    - MissionAssignment:   talent staffed on a mission with a day rate
    - MissionDeliverable:  expected output, uploaded then reviewed
    - MissionDebrief:      exactly one per mission (unique mission_id)
    - MarketPricing:       pricing reference keyed by (market, category, subcategory)

Architecture:
    Strategy ──1:N──▶ Mission ──1:N──▶ MissionAssignment
                              ──1:N──▶ MissionDeliverable
                              ──0..1─▶ MissionDebrief

Lifecycle states:
    Mission:  INTAKE → INTELLIGENCE → STAFFING → IN_PROGRESS → REVIEW
              → CLOSED → MAINTENANCE   (REVIEW → IN_PROGRESS loops back)
    Deliverable: PENDING → UPLOADED → APPROVED | REJECTED
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

MISSION_STATUSES = [
    "INTAKE", "INTELLIGENCE", "STAFFING", "IN_PROGRESS",
    "REVIEW", "CLOSED", "MAINTENANCE",
]

MISSION_TRANSITIONS = {
    "INTAKE":       ["INTELLIGENCE"],
    "INTELLIGENCE": ["STAFFING"],
    "STAFFING":     ["IN_PROGRESS"],
    "IN_PROGRESS":  ["REVIEW"],
    "REVIEW":       ["CLOSED", "IN_PROGRESS"],   # back to work if review fails
    "CLOSED":       ["MAINTENANCE"],
    "MAINTENANCE":  [],
}

CLOSING_STATUS = "CLOSED"
REVIEW_STATUS = "REVIEW"

ASSIGNMENT_STATUSES = {"ASSIGNED", "ACTIVE", "COMPLETED", "CANCELLED"}

DELIVERABLE_STATUSES = {"PENDING", "UPLOADED", "APPROVED", "REJECTED"}

PRICING_CONFIDENCES = {"LOW", "MEDIUM", "HIGH"}


def validate_mission_transition(old_status, new_status):
    """Return True if Mission status transition is valid."""
    return new_status in MISSION_TRANSITIONS.get(old_status, [])


# ═════════════════════════════════════════════════════════════════════════════
# 1. Mission
# ═════════════════════════════════════════════════════════════════════════════


class Mission(db.Model):
    """Operational mission; closing requires a debrief."""

    __tablename__ = "missions"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    strategy_id = db.Column(
        db.String(36), db.ForeignKey("strategies.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, default="")
    status = db.Column(db.String(20), nullable=False, default="INTAKE", index=True)
    client_name = db.Column(db.String(200), nullable=True)
    budget = db.Column(db.Float, nullable=True)
    currency = db.Column(db.String(10), nullable=False, default="XAF")
    start_date = db.Column(db.DateTime(timezone=True), nullable=True)
    end_date = db.Column(db.DateTime(timezone=True), nullable=True)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_by = db.Column(db.String(150), nullable=False, default="system")

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    assignments = db.relationship(
        "MissionAssignment", backref="mission", lazy="select",
        cascade="all, delete-orphan", order_by="MissionAssignment.created_at",
    )
    deliverables = db.relationship(
        "MissionDeliverable", backref="mission", lazy="select",
        cascade="all, delete-orphan", order_by="MissionDeliverable.created_at",
    )
    debrief = db.relationship(
        "MissionDebrief", backref="mission", uselist=False,
        cascade="all, delete-orphan",
    )

    def to_dict(self, include_children=False):
        result = {
            "id": self.id,
            "strategy_id": self.strategy_id,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "client_name": self.client_name,
            "budget": self.budget,
            "currency": self.currency,
            "start_date": _iso(self.start_date),
            "end_date": _iso(self.end_date),
            "closed_at": _iso(self.closed_at),
            "created_by": self.created_by,
            "has_debrief": self.debrief is not None,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        if include_children:
            result["assignments"] = [a.to_dict() for a in self.assignments]
            result["deliverables"] = [d.to_dict() for d in self.deliverables]
            result["debrief"] = self.debrief.to_dict() if self.debrief else None
        return result

    def __repr__(self):
        return f"<Mission {self.id}: {self.title[:40]!r} [{self.status}]>"


# ═════════════════════════════════════════════════════════════════════════════
# 2. MissionAssignment
# ═════════════════════════════════════════════════════════════════════════════


class MissionAssignment(db.Model):
    __tablename__ = "mission_assignments"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    mission_id = db.Column(
        db.String(36), db.ForeignKey("missions.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    talent_name = db.Column(db.String(200), nullable=False)
    role = db.Column(db.String(100), nullable=False)
    day_rate = db.Column(db.Float, nullable=True)
    estimated_days = db.Column(db.Float, nullable=True)
    status = db.Column(db.String(20), nullable=False, default="ASSIGNED")
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    @property
    def estimated_charge(self) -> float:
        if self.day_rate is None or self.estimated_days is None:
            return 0.0
        return self.day_rate * self.estimated_days

    def to_dict(self):
        return {
            "id": self.id,
            "mission_id": self.mission_id,
            "talent_name": self.talent_name,
            "role": self.role,
            "day_rate": self.day_rate,
            "estimated_days": self.estimated_days,
            "estimated_charge": self.estimated_charge,
            "status": self.status,
            "created_at": _iso(self.created_at),
        }


# ═════════════════════════════════════════════════════════════════════════════
# 3. MissionDeliverable
# ═════════════════════════════════════════════════════════════════════════════


class MissionDeliverable(db.Model):
    __tablename__ = "mission_deliverables"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    mission_id = db.Column(
        db.String(36), db.ForeignKey("missions.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, default="")
    status = db.Column(db.String(20), nullable=False, default="PENDING")
    file_url = db.Column(db.String(500), nullable=True)
    review_notes = db.Column(db.Text, nullable=True)
    reviewed_by = db.Column(db.String(150), nullable=True)
    uploaded_at = db.Column(db.DateTime(timezone=True), nullable=True)
    reviewed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "mission_id": self.mission_id,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "file_url": self.file_url,
            "review_notes": self.review_notes,
            "reviewed_by": self.reviewed_by,
            "uploaded_at": _iso(self.uploaded_at),
            "reviewed_at": _iso(self.reviewed_at),
            "created_at": _iso(self.created_at),
        }


# ═════════════════════════════════════════════════════════════════════════════
# 4. MissionDebrief
# ═════════════════════════════════════════════════════════════════════════════


class MissionDebrief(db.Model):
    """
    Post-mission debrief. ``mission_id`` is unique so a second insert fails
    at the storage layer instead of through a check-then-insert race.
    """

    __tablename__ = "mission_debriefs"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    mission_id = db.Column(
        db.String(36), db.ForeignKey("missions.id", ondelete="CASCADE"),
        nullable=False, unique=True,
    )
    summary = db.Column(db.Text, nullable=False)
    lessons_learned = db.Column(db.Text, nullable=True)
    client_feedback = db.Column(db.Text, nullable=True)
    quality_score = db.Column(db.Integer, nullable=True)
    on_time = db.Column(db.Boolean, nullable=True)
    on_budget = db.Column(db.Boolean, nullable=True)
    signals_suggested = db.Column(db.JSON, default=list)
    pricing_insights = db.Column(db.JSON, default=list)
    completed_by = db.Column(db.String(150), nullable=False, default="system")
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "mission_id": self.mission_id,
            "summary": self.summary,
            "lessons_learned": self.lessons_learned,
            "client_feedback": self.client_feedback,
            "quality_score": self.quality_score,
            "on_time": self.on_time,
            "on_budget": self.on_budget,
            "signals_suggested": self.signals_suggested or [],
            "pricing_insights": self.pricing_insights or [],
            "completed_by": self.completed_by,
            "created_at": _iso(self.created_at),
        }


# ═════════════════════════════════════════════════════════════════════════════
# 5. MarketPricing
# ═════════════════════════════════════════════════════════════════════════════


class MarketPricing(db.Model):
    """Reference price range; upserted by debrief pricing insights."""

    __tablename__ = "market_pricing"
    __table_args__ = (
        db.UniqueConstraint("market", "category", "subcategory", name="uq_market_pricing_key"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    market = db.Column(db.String(10), nullable=False, default="CM")
    category = db.Column(db.String(50), nullable=False, default="TALENT")
    subcategory = db.Column(db.String(100), nullable=False, default="general")
    label = db.Column(db.String(200), nullable=False)
    min_price = db.Column(db.Float, nullable=False)
    max_price = db.Column(db.Float, nullable=False)
    avg_price = db.Column(db.Float, nullable=False)
    currency = db.Column(db.String(10), nullable=False, default="XAF")
    unit = db.Column(db.String(30), nullable=False, default="per_day")
    source = db.Column(db.String(50), nullable=False, default="manual")
    confidence = db.Column(db.String(10), nullable=False, default="MEDIUM")
    strategy_id = db.Column(
        db.String(36), db.ForeignKey("strategies.id", ondelete="SET NULL"),
        nullable=True, index=True,
        comment="Strategy whose mission debrief last updated this row",
    )

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "market": self.market,
            "category": self.category,
            "subcategory": self.subcategory,
            "label": self.label,
            "min_price": self.min_price,
            "max_price": self.max_price,
            "avg_price": self.avg_price,
            "currency": self.currency,
            "unit": self.unit,
            "source": self.source,
            "confidence": self.confidence,
            "strategy_id": self.strategy_id,
            "updated_at": _iso(self.updated_at),
        }
