"""
Translation document hook.

Briefs rendered from pillars by the external translation collaborator are
tracked as TranslationDocument rows. When a source pillar changes, the
staleness propagator calls ``invalidate_documents_sourced_from`` so the
collaborator knows which documents to re-render. Rendering itself is out
of scope here.
"""

import logging
from datetime import datetime, timezone

from app.core.exceptions import ValidationError
from app.models import db
from app.models.strategy import PILLAR_TYPES
from app.models.translation import INVALIDATABLE_STATUSES, TranslationDocument

logger = logging.getLogger(__name__)


def register_document(strategy_id: str, doc_type: str, title: str,
                      source_pillars: list[str]) -> dict:
    """Record a document rendered by the collaborator from *source_pillars*."""
    unknown = [k for k in source_pillars or [] if k not in PILLAR_TYPES]
    if not source_pillars or unknown:
        raise ValidationError(
            "source_pillars must list known pillar kinds",
            details={"unknown": unknown, "allowed": list(PILLAR_TYPES)},
        )
    doc = TranslationDocument(
        strategy_id=strategy_id,
        type=doc_type,
        title=title,
        source_pillars=list(dict.fromkeys(source_pillars)),
    )
    db.session.add(doc)
    db.session.commit()
    return doc.to_dict()


def list_documents(strategy_id: str, status: str | None = None) -> list[dict]:
    q = TranslationDocument.query.filter_by(strategy_id=strategy_id)
    if status:
        q = q.filter_by(status=status)
    return [d.to_dict() for d in q.order_by(TranslationDocument.created_at).all()]


def invalidate_documents_sourced_from(strategy_id: str, changed_kinds, reason: str) -> int:
    """
    Mark DRAFT/VALIDATED documents whose source pillars intersect
    *changed_kinds* as STALE. Already-stale documents only get the reason
    refreshed. Uses ``flush``; the propagator commits.

    Returns:
        Number of documents flagged.
    """
    changed = set(changed_kinds)
    docs = TranslationDocument.query.filter(
        TranslationDocument.strategy_id == strategy_id,
        TranslationDocument.status.in_(INVALIDATABLE_STATUSES + ("STALE",)),
    ).all()

    now = datetime.now(timezone.utc)
    flagged = 0
    for doc in docs:
        if not changed.intersection(doc.source_pillars or []):
            continue
        doc.stale_reason = reason
        if doc.status != "STALE":
            doc.status = "STALE"
            doc.stale_since = now
        flagged += 1

    if flagged:
        db.session.flush()
        logger.info(
            "Flagged %d translation document(s) stale", flagged,
            extra={"strategy_id": strategy_id, "event_type": "translation_stale"},
        )
    return flagged
