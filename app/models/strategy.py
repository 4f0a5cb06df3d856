"""
Brand Strategy Orchestrator
Strategy domain models.

Models:
    - Strategy:       aggregate root; carries the pipeline phase and survey answers
    - Pillar:         one generated section of the strategy (8 fixed kinds)
    - PillarVersion:  immutable prior-value snapshot taken before every overwrite
    - MarketStudy:    market enrichment synthesis consumed by the T/I/S generations
    - ScoreSnapshot:  append-only history of recalculated strategy scores

Architecture:
    Strategy ──1:8──▶ Pillar ──1:N──▶ PillarVersion
    Strategy ──1:1──▶ MarketStudy
    Strategy ──1:N──▶ ScoreSnapshot

Lifecycle states:
    Strategy.phase:   fiche → fiche-review → audit-r → [market-study] → audit-t
                      → audit-review → implementation → cockpit → complete
    Strategy.status:  draft → generating → complete → archived
    Pillar.status:    pending → generating → complete | error  (complete/error → generating)
"""

import uuid
from datetime import datetime, timezone

from app.models import db


# ── Helpers ──────────────────────────────────────────────────────────────────

def _uuid():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


# ── Constants ────────────────────────────────────────────────────────────────

# Generation order is the dict order.
PILLAR_TYPES = {
    "A": "Authenticité",
    "D": "Distinction",
    "V": "Valeur",
    "E": "Engagement",
    "R": "Risk",
    "T": "Track",
    "I": "Implementation",
    "S": "Synthèse",
}

PILLAR_ORDER = {kind: idx for idx, kind in enumerate(PILLAR_TYPES, start=1)}

BASE_PILLARS = ("A", "D", "V", "E")

PHASES = [
    "fiche",
    "fiche-review",
    "audit-r",
    "market-study",
    "audit-t",
    "audit-review",
    "implementation",
    "cockpit",
    "complete",
]

PHASE_RANK = {phase: idx for idx, phase in enumerate(PHASES)}

SKIPPABLE_PHASE = "market-study"

LEGACY_PHASE_MAP = {"audit": "audit-r"}

STRATEGY_STATUSES = {"draft", "generating", "complete", "archived"}

PILLAR_STATUSES = {"pending", "generating", "complete", "error"}

VERSION_SOURCES = {"generation", "regeneration", "manual_edit", "restore"}

MARKET_STUDY_STATUSES = {"pending", "collecting", "complete", "skipped"}


def normalize_phase(phase: str | None) -> str:
    """Map legacy phase names onto the current phase set."""
    if not phase:
        return PHASES[0]
    return LEGACY_PHASE_MAP.get(phase, phase)


# ═════════════════════════════════════════════════════════════════════════════
# 1. Strategy
# ═════════════════════════════════════════════════════════════════════════════


class Strategy(db.Model):
    """
    Aggregate root of one brand strategy.

    ``interview_data`` holds the survey answers; generation treats them as
    immutable input. ``phase`` only moves through the phase machine.
    """

    __tablename__ = "strategies"
    __table_args__ = (
        db.CheckConstraint(
            "status IN ('draft','generating','complete','archived')",
            name="ck_strategy_status",
        ),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    owner = db.Column(db.String(150), nullable=False, default="system", index=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default="")
    sector = db.Column(db.String(100), nullable=True)
    vertical = db.Column(
        db.String(50), nullable=True,
        comment="Freshness threshold key: FMCG | TECH | LUXURY | BANQUE | …",
    )
    phase = db.Column(db.String(30), nullable=False, default="fiche", index=True)
    status = db.Column(db.String(20), nullable=False, default="draft")
    interview_data = db.Column(db.JSON, default=dict)

    coherence_score = db.Column(db.Float, nullable=True)
    scores_updated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    # ── Relationships ────────────────────────────────────────────────────
    pillars = db.relationship(
        "Pillar", backref="strategy", lazy="select",
        cascade="all, delete-orphan", order_by="Pillar.order",
    )
    market_study = db.relationship(
        "MarketStudy", backref="strategy", uselist=False,
        cascade="all, delete-orphan",
    )
    score_snapshots = db.relationship(
        "ScoreSnapshot", backref="strategy", lazy="dynamic",
        cascade="all, delete-orphan", order_by="ScoreSnapshot.created_at.desc()",
    )

    def pillar(self, kind: str):
        """Return this strategy's pillar of the given kind, or None."""
        for p in self.pillars:
            if p.type == kind:
                return p
        return None

    def complete_pillar_types(self) -> set[str]:
        return {p.type for p in self.pillars if p.status == "complete"}

    def to_dict(self, include_pillars=False):
        result = {
            "id": self.id,
            "owner": self.owner,
            "name": self.name,
            "description": self.description,
            "sector": self.sector,
            "vertical": self.vertical,
            "phase": self.phase,
            "status": self.status,
            "interview_data": self.interview_data or {},
            "coherence_score": self.coherence_score,
            "scores_updated_at": _iso(self.scores_updated_at),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        if include_pillars:
            result["pillars"] = [p.to_dict() for p in self.pillars]
            result["market_study"] = self.market_study.to_dict() if self.market_study else None
        return result

    def __repr__(self):
        return f"<Strategy {self.id}: {self.name} [{self.phase}/{self.status}]>"


# ═════════════════════════════════════════════════════════════════════════════
# 2. Pillar
# ═════════════════════════════════════════════════════════════════════════════


class Pillar(db.Model):
    """
    One content unit of a strategy.

    ``version`` increases by exactly one on every content overwrite and each
    overwrite of existing content is preceded by a PillarVersion snapshot.
    ``stale_reason``/``stale_since`` are advisory; content is never dropped.
    """

    __tablename__ = "pillars"
    __table_args__ = (
        db.UniqueConstraint("strategy_id", "type", name="uq_pillar_strategy_type"),
        db.CheckConstraint(
            "status IN ('pending','generating','complete','error')",
            name="ck_pillar_status",
        ),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    strategy_id = db.Column(
        db.String(36), db.ForeignKey("strategies.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    type = db.Column(db.String(1), nullable=False, comment="A | D | V | E | R | T | I | S")
    title = db.Column(db.String(100), nullable=False)
    order = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(20), nullable=False, default="pending")
    content = db.Column(db.JSON, nullable=True)
    summary = db.Column(db.Text, nullable=True)
    version = db.Column(db.Integer, nullable=False, default=0)
    error_message = db.Column(db.Text, nullable=True)
    stale_reason = db.Column(db.Text, nullable=True)
    stale_since = db.Column(db.DateTime(timezone=True), nullable=True)
    generated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    generation_started_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    versions = db.relationship(
        "PillarVersion", backref="pillar", lazy="dynamic",
        cascade="all, delete-orphan", order_by="PillarVersion.version.desc()",
    )

    @property
    def is_stale(self) -> bool:
        return self.stale_since is not None

    def to_dict(self, include_content=True):
        result = {
            "id": self.id,
            "strategy_id": self.strategy_id,
            "type": self.type,
            "title": self.title,
            "order": self.order,
            "status": self.status,
            "summary": self.summary,
            "version": self.version,
            "error_message": self.error_message,
            "stale_reason": self.stale_reason,
            "stale_since": _iso(self.stale_since),
            "generated_at": _iso(self.generated_at),
            "generation_started_at": _iso(self.generation_started_at),
            "updated_at": _iso(self.updated_at),
        }
        if include_content:
            result["content"] = self.content
        return result

    def __repr__(self):
        return f"<Pillar {self.type} v{self.version} [{self.status}] strategy={self.strategy_id}>"


# ═════════════════════════════════════════════════════════════════════════════
# 3. PillarVersion
# ═════════════════════════════════════════════════════════════════════════════


class PillarVersion(db.Model):
    """
    Immutable snapshot of a pillar's content as it was before an overwrite.

    ``version`` is the pillar version the content belonged to.
    Append-only; never updated or deleted by normal flow.
    """

    __tablename__ = "pillar_versions"
    __table_args__ = (
        db.UniqueConstraint("pillar_id", "version", name="uq_pillar_version"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    pillar_id = db.Column(
        db.String(36), db.ForeignKey("pillars.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    version = db.Column(db.Integer, nullable=False)
    content = db.Column(db.JSON, nullable=True)
    summary = db.Column(db.Text, nullable=True)
    source = db.Column(
        db.String(20), nullable=False, default="generation",
        comment="generation | regeneration | manual_edit | restore",
    )
    created_by = db.Column(db.String(150), nullable=False, default="system")
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def to_dict(self, include_content=True):
        result = {
            "id": self.id,
            "pillar_id": self.pillar_id,
            "version": self.version,
            "summary": self.summary,
            "source": self.source,
            "created_by": self.created_by,
            "created_at": _iso(self.created_at),
        }
        if include_content:
            result["content"] = self.content
        return result

    def __repr__(self):
        return f"<PillarVersion {self.pillar_id} v{self.version} ({self.source})>"


# ═════════════════════════════════════════════════════════════════════════════
# 4. MarketStudy
# ═════════════════════════════════════════════════════════════════════════════


class MarketStudy(db.Model):
    """Market enrichment for one strategy; its synthesis feeds T, I and S."""

    __tablename__ = "market_studies"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    strategy_id = db.Column(
        db.String(36), db.ForeignKey("strategies.id", ondelete="CASCADE"),
        nullable=False, unique=True,
    )
    status = db.Column(db.String(20), nullable=False, default="pending")
    source_data = db.Column(db.JSON, default=dict)
    synthesis = db.Column(db.JSON, nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "strategy_id": self.strategy_id,
            "status": self.status,
            "source_data": self.source_data or {},
            "synthesis": self.synthesis,
            "completed_at": _iso(self.completed_at),
            "updated_at": _iso(self.updated_at),
        }


# ═════════════════════════════════════════════════════════════════════════════
# 5. ScoreSnapshot
# ═════════════════════════════════════════════════════════════════════════════


class ScoreSnapshot(db.Model):
    """Point-in-time copy of the strategy scores, one row per recalculation."""

    __tablename__ = "score_snapshots"

    id = db.Column(db.Integer, primary_key=True)
    strategy_id = db.Column(
        db.String(36), db.ForeignKey("strategies.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    coherence_score = db.Column(db.Float, nullable=False)
    risk_score = db.Column(db.Float, nullable=True)
    bmf_score = db.Column(db.Float, nullable=True)
    breakdown = db.Column(db.JSON, default=dict)
    trigger = db.Column(db.String(50), nullable=False, default="manual")
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "strategy_id": self.strategy_id,
            "coherence_score": self.coherence_score,
            "risk_score": self.risk_score,
            "bmf_score": self.bmf_score,
            "breakdown": self.breakdown or {},
            "trigger": self.trigger,
            "created_at": _iso(self.created_at),
        }
