"""
Decision Queue — Service Layer.

Prioritized action items, resolvable or deferrable. Decisions spawned by
signal escalation are created by the signal engine; this module covers
manual CRUD and the lifecycle actions. Every status change is audited.

Lifecycle:
    PENDING → IN_PROGRESS | RESOLVED | DEFERRED
    IN_PROGRESS → RESOLVED | DEFERRED
    DEFERRED → PENDING | IN_PROGRESS
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import case

from app.core.exceptions import NotFoundError, ValidationError
from app.models import db
from app.models.audit import write_audit
from app.models.signal import (
    DEADLINE_TYPES,
    DECISION_PRIORITIES,
    DECISION_STATUSES,
    DECISION_TRANSITIONS,
    Decision,
    validate_decision_transition,
)
from app.models.strategy import Strategy

logger = logging.getLogger(__name__)

_UPDATABLE_FIELDS = ("title", "description", "priority", "deadline_type", "deadline")

_ACTION_FOR_STATUS = {
    "IN_PROGRESS": "decision.start",
    "RESOLVED": "decision.resolve",
    "DEFERRED": "decision.defer",
    "PENDING": "decision.reopen",
}


def _get_decision(decision_id: str) -> Decision:
    decision = db.session.get(Decision, decision_id)
    if not decision:
        raise NotFoundError(resource="Decision", resource_id=decision_id)
    return decision


def _parse_deadline(value):
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value
    try:
        parsed = datetime.fromisoformat(str(value))
    except ValueError as exc:
        raise ValidationError("deadline must be an ISO-8601 date", details={"deadline": value}) from exc
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _validate_fields(data: dict) -> None:
    if "priority" in data and data["priority"] not in DECISION_PRIORITIES:
        raise ValidationError(
            f"Unknown priority '{data['priority']}'", details={"allowed": list(DECISION_PRIORITIES)},
        )
    if data.get("deadline_type") is not None and data["deadline_type"] not in DEADLINE_TYPES:
        raise ValidationError(
            f"Unknown deadline type '{data['deadline_type']}'",
            details={"allowed": sorted(DEADLINE_TYPES)},
        )


def create_decision(strategy_id: str, data: dict, actor: str = "system") -> dict:
    if not db.session.get(Strategy, strategy_id):
        raise NotFoundError(resource="Strategy", resource_id=strategy_id)
    title = (data.get("title") or "").strip()
    if not title:
        raise ValidationError("Decision title is required", details={"title": "required"})
    _validate_fields(data)

    decision = Decision(
        strategy_id=strategy_id,
        title=title[:300],
        description=data.get("description") or "",
        priority=data.get("priority", "P1"),
        deadline_type=data.get("deadline_type"),
        deadline=_parse_deadline(data.get("deadline")),
        created_by=actor or "system",
    )
    db.session.add(decision)
    db.session.flush()
    write_audit(
        entity_type="decision", entity_id=decision.id, action="decision.create",
        actor=actor, strategy_id=strategy_id,
    )
    db.session.commit()
    return decision.to_dict()


def list_decisions(strategy_id: str, status: str | None = None,
                   priority: str | None = None) -> list[dict]:
    """Decisions of a strategy, most urgent priority first, then newest first."""
    q = Decision.query.filter_by(strategy_id=strategy_id)
    if status:
        if status not in DECISION_STATUSES:
            raise ValidationError(f"Unknown status '{status}'", details={"allowed": sorted(DECISION_STATUSES)})
        q = q.filter_by(status=status)
    if priority:
        q = q.filter_by(priority=priority)
    priority_rank = case(
        {p: idx for idx, p in enumerate(DECISION_PRIORITIES)}, value=Decision.priority,
    )
    return [d.to_dict() for d in q.order_by(priority_rank, Decision.created_at.desc()).all()]


def get_decision(decision_id: str) -> dict:
    return _get_decision(decision_id).to_dict()


def update_decision(decision_id: str, data: dict, actor: str = "system") -> dict:
    """Edit descriptive fields. Status only moves through the lifecycle actions."""
    decision = _get_decision(decision_id)
    if "status" in data:
        raise ValidationError(
            "Use the start/resolve/defer actions to change status",
            details={"status": "read-only"},
        )
    _validate_fields(data)
    for field in _UPDATABLE_FIELDS:
        if field not in data:
            continue
        value = _parse_deadline(data[field]) if field == "deadline" else data[field]
        if field == "title" and not (value or "").strip():
            raise ValidationError("Decision title is required", details={"title": "required"})
        setattr(decision, field, value)
    db.session.commit()
    return decision.to_dict()


def delete_decision(decision_id: str) -> None:
    decision = _get_decision(decision_id)
    db.session.delete(decision)
    db.session.commit()


def _transition(decision_id: str, new_status: str, actor: str, **fields) -> dict:
    decision = _get_decision(decision_id)
    old_status = decision.status
    if not validate_decision_transition(old_status, new_status):
        raise ValidationError(
            f"Invalid decision transition: {old_status} → {new_status}",
            details={"current": old_status, "target": new_status,
                     "allowed": DECISION_TRANSITIONS.get(old_status, [])},
        )
    decision.status = new_status
    for key, value in fields.items():
        setattr(decision, key, value)
    write_audit(
        entity_type="decision", entity_id=decision.id, action=_ACTION_FOR_STATUS[new_status],
        actor=actor, strategy_id=decision.strategy_id,
        diff={"status": {"old": old_status, "new": new_status}},
    )
    db.session.commit()
    logger.info(
        "Decision %s → %s", old_status, new_status,
        extra={"strategy_id": decision.strategy_id, "decision_id": decision.id},
    )
    return decision.to_dict()


def start_decision(decision_id: str, actor: str = "system") -> dict:
    return _transition(decision_id, "IN_PROGRESS", actor)


def resolve_decision(decision_id: str, resolution: str = "", actor: str = "system") -> dict:
    return _transition(
        decision_id, "RESOLVED", actor,
        resolution=resolution or "", resolved_at=datetime.now(timezone.utc),
    )


def defer_decision(decision_id: str, actor: str = "system") -> dict:
    return _transition(decision_id, "DEFERRED", actor)


def reopen_decision(decision_id: str, actor: str = "system") -> dict:
    return _transition(decision_id, "PENDING", actor)
