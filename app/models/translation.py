"""
Brand Strategy Orchestrator
Translation document model.

Models:
    - TranslationDocument: brief rendered from one or more pillars by the
                           external translation collaborator

Lifecycle states:
    DRAFT → VALIDATED → ARCHIVED;  DRAFT | VALIDATED → STALE when a source pillar changes
"""

import uuid
from datetime import datetime, timezone

from app.models import db


def _uuid():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


TRANSLATION_STATUSES = {"DRAFT", "VALIDATED", "STALE", "ARCHIVED"}

# Only these are invalidated when a source pillar changes.
INVALIDATABLE_STATUSES = ("DRAFT", "VALIDATED")


class TranslationDocument(db.Model):
    __tablename__ = "translation_documents"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    strategy_id = db.Column(
        db.String(36), db.ForeignKey("strategies.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    type = db.Column(db.String(50), nullable=False, comment="brief_creatif | brief_media | …")
    title = db.Column(db.String(300), nullable=False)
    source_pillars = db.Column(db.JSON, default=list, comment="Pillar kinds the document was rendered from")
    status = db.Column(db.String(20), nullable=False, default="DRAFT")
    stale_reason = db.Column(db.Text, nullable=True)
    stale_since = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "strategy_id": self.strategy_id,
            "type": self.type,
            "title": self.title,
            "source_pillars": self.source_pillars or [],
            "status": self.status,
            "stale_reason": self.stale_reason,
            "stale_since": self.stale_since.isoformat() if self.stale_since else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
