"""
Mission Workflow — Service Layer.

Missions follow MISSION_TRANSITIONS. Entering CLOSED needs a debrief,
and a debrief can only be written while the mission is in REVIEW. The
unique ``mission_debriefs.mission_id`` constraint makes the debrief
one-per-mission at the storage level.

After a debrief is stored, ``run_feedback_loop`` is dispatched in the
background: suggested signals are created (their pillar flagged stale)
and pricing insights upsert the market pricing table. Each item is
isolated: a failing item is logged and skipped.

Functions:
    - create_mission / get_mission / list_missions / update_mission / delete_mission
    - get_kanban:                 missions grouped by status
    - transition_mission:         table-driven status move
    - complete_debrief:           REVIEW-only, once per mission
    - run_feedback_loop:          debrief → signals + pricing (background)
    - add_assignment / update_assignment_status / calculate_estimated_charge
    - add_deliverable / upload_deliverable / review_deliverable
"""

import logging
from datetime import datetime, timezone

from sqlalchemy.exc import IntegrityError

from app.core.exceptions import (
    DebriefAlreadyExistsError,
    DebriefRequiredError,
    MissionTransitionError,
    NotFoundError,
    ValidationError,
)
from app.models import db
from app.models.audit import write_audit
from app.models.mission import (
    ASSIGNMENT_STATUSES,
    CLOSING_STATUS,
    MISSION_STATUSES,
    MISSION_TRANSITIONS,
    REVIEW_STATUS,
    Mission,
    MissionAssignment,
    MissionDebrief,
    MissionDeliverable,
    validate_mission_transition,
)
from app.models.strategy import PILLAR_TYPES, Strategy
from app.services import market_pricing, signal_engine, staleness
from app.services.background import dispatcher

logger = logging.getLogger(__name__)

# Debrief-suggested signal defaults
DEBRIEF_SIGNAL_LAYER = "STRONG"
DEBRIEF_SIGNAL_PILLAR = "S"
DEBRIEF_DEFAULT_STATUS = {
    "STRONG": "EMERGING",
    "WEAK": "WATCH",
    "METRIC": "WARNING",
}


# ── Helpers ──────────────────────────────────────────────────────────────────


def _get_mission(mission_id: str) -> Mission:
    mission = db.session.get(Mission, mission_id)
    if not mission:
        raise NotFoundError(resource="Mission", resource_id=mission_id)
    return mission


def _parse_date(value, field):
    if value in (None, ""):
        return None
    try:
        parsed = datetime.fromisoformat(str(value))
    except ValueError as exc:
        raise ValidationError(f"{field} must be an ISO-8601 date", details={field: value}) from exc
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _number(value, field):
    if value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{field} must be a number", details={field: value}) from exc
    if number < 0:
        raise ValidationError(f"{field} must not be negative", details={field: number})
    return number


# ═════════════════════════════════════════════════════════════════════════════
# Mission CRUD
# ═════════════════════════════════════════════════════════════════════════════


def create_mission(strategy_id: str, data: dict, actor: str = "system") -> dict:
    if not db.session.get(Strategy, strategy_id):
        raise NotFoundError(resource="Strategy", resource_id=strategy_id)
    title = (data.get("title") or "").strip()
    if not title:
        raise ValidationError("Mission title is required", details={"title": "required"})

    mission = Mission(
        strategy_id=strategy_id,
        title=title[:300],
        description=data.get("description") or "",
        client_name=data.get("client_name"),
        budget=_number(data.get("budget"), "budget"),
        currency=data.get("currency") or "XAF",
        start_date=_parse_date(data.get("start_date"), "start_date"),
        end_date=_parse_date(data.get("end_date"), "end_date"),
        created_by=actor or "system",
    )
    db.session.add(mission)
    db.session.flush()
    write_audit(
        entity_type="mission", entity_id=mission.id, action="mission.create",
        actor=actor, strategy_id=strategy_id,
    )
    db.session.commit()
    logger.info("Mission created: %s", title, extra={"strategy_id": strategy_id, "mission_id": mission.id})
    return mission.to_dict()


def get_mission(mission_id: str) -> dict:
    return _get_mission(mission_id).to_dict(include_children=True)


def list_missions(strategy_id: str, status: str | None = None) -> list[dict]:
    q = Mission.query.filter_by(strategy_id=strategy_id)
    if status:
        if status not in MISSION_STATUSES:
            raise ValidationError(f"Unknown status '{status}'", details={"allowed": MISSION_STATUSES})
        q = q.filter_by(status=status)
    return [m.to_dict() for m in q.order_by(Mission.created_at.desc()).all()]


def update_mission(mission_id: str, data: dict) -> dict:
    """Edit descriptive fields. Status only moves through ``transition_mission``."""
    mission = _get_mission(mission_id)
    if "status" in data:
        raise ValidationError("Use the transition action to change status", details={"status": "read-only"})
    if "title" in data:
        if not (data["title"] or "").strip():
            raise ValidationError("Mission title is required", details={"title": "required"})
        mission.title = data["title"].strip()[:300]
    for field in ("description", "client_name", "currency"):
        if field in data:
            setattr(mission, field, data[field])
    if "budget" in data:
        mission.budget = _number(data["budget"], "budget")
    for field in ("start_date", "end_date"):
        if field in data:
            setattr(mission, field, _parse_date(data[field], field))
    db.session.commit()
    return mission.to_dict()


def delete_mission(mission_id: str) -> None:
    mission = _get_mission(mission_id)
    db.session.delete(mission)
    db.session.commit()


def get_kanban(strategy_id: str) -> dict:
    """Missions grouped by status, every status present as a column."""
    board = {status: [] for status in MISSION_STATUSES}
    for mission in Mission.query.filter_by(strategy_id=strategy_id).order_by(Mission.created_at).all():
        board[mission.status].append(mission.to_dict())
    return {
        "columns": board,
        "counts": {status: len(items) for status, items in board.items()},
    }


# ═════════════════════════════════════════════════════════════════════════════
# Transitions & debrief
# ═════════════════════════════════════════════════════════════════════════════


def transition_mission(mission_id: str, new_status: str, actor: str = "system") -> dict:
    """
    Move a mission along the transition table.

    Raises:
        MissionTransitionError: move not in the table (names the allowed set).
        DebriefRequiredError: entering CLOSED without a debrief.
    """
    mission = _get_mission(mission_id)
    old_status = mission.status
    if not validate_mission_transition(old_status, new_status):
        raise MissionTransitionError(old_status, new_status, MISSION_TRANSITIONS.get(old_status, []))
    if new_status == CLOSING_STATUS and mission.debrief is None:
        raise DebriefRequiredError(mission.id)

    mission.status = new_status
    if new_status == CLOSING_STATUS:
        mission.closed_at = datetime.now(timezone.utc)
    write_audit(
        entity_type="mission", entity_id=mission.id, action="mission.transition",
        actor=actor, strategy_id=mission.strategy_id,
        diff={"status": {"old": old_status, "new": new_status}},
    )
    db.session.commit()
    logger.info(
        "Mission %s → %s", old_status, new_status,
        extra={"strategy_id": mission.strategy_id, "mission_id": mission.id},
    )
    return mission.to_dict()


def _clean_list(value, field) -> list:
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(item, dict) for item in value):
        raise ValidationError(f"{field} must be a list of objects", details={field: "invalid"})
    return value


def complete_debrief(mission_id: str, data: dict, actor: str = "system") -> dict:
    """
    Record the mission debrief.

    The insert relies on the unique mission_id constraint; a duplicate is
    reported as DebriefAlreadyExistsError. The feedback loop is dispatched
    after the debrief is committed and cannot fail this call.

    Raises:
        ValidationError: mission not in REVIEW, or invalid payload.
        DebriefAlreadyExistsError: a debrief was already recorded.
    """
    mission = _get_mission(mission_id)
    if mission.status != REVIEW_STATUS:
        raise ValidationError(
            f"Debrief can only be completed in {REVIEW_STATUS} (current: {mission.status})",
            details={"current": mission.status, "required": REVIEW_STATUS},
        )
    summary = (data.get("summary") or "").strip()
    if not summary:
        raise ValidationError("Debrief summary is required", details={"summary": "required"})
    quality_score = data.get("quality_score")
    if quality_score is not None:
        if isinstance(quality_score, bool) or not isinstance(quality_score, (int, float)) \
                or not 0 <= quality_score <= 100:
            raise ValidationError("quality_score must be between 0 and 100", details={"quality_score": quality_score})
        quality_score = int(quality_score)

    debrief = MissionDebrief(
        mission_id=mission.id,
        summary=summary,
        lessons_learned=data.get("lessons_learned"),
        client_feedback=data.get("client_feedback"),
        quality_score=quality_score,
        on_time=data.get("on_time"),
        on_budget=data.get("on_budget"),
        signals_suggested=_clean_list(data.get("signals_suggested"), "signals_suggested"),
        pricing_insights=_clean_list(data.get("pricing_insights"), "pricing_insights"),
        completed_by=actor or "system",
    )
    db.session.add(debrief)
    try:
        db.session.flush()
    except IntegrityError as exc:
        db.session.rollback()
        raise DebriefAlreadyExistsError(mission_id) from exc

    write_audit(
        entity_type="mission", entity_id=mission.id, action="mission.debrief",
        actor=actor, strategy_id=mission.strategy_id,
        diff={"quality_score": quality_score},
    )
    db.session.commit()
    logger.info(
        "Mission debrief completed", extra={"strategy_id": mission.strategy_id, "mission_id": mission.id,
                                            "event_type": "mission_debrief"},
    )

    dispatcher.submit("missions.feedback_loop", run_feedback_loop, debrief.id)
    return debrief.to_dict()


def _create_debrief_signal(strategy_id: str, suggestion: dict) -> None:
    layer = (suggestion.get("layer") or DEBRIEF_SIGNAL_LAYER).upper()
    status = suggestion.get("status") or DEBRIEF_DEFAULT_STATUS.get(layer)
    pillar = suggestion.get("pillar") or DEBRIEF_SIGNAL_PILLAR
    title = suggestion.get("title")
    signal_engine.create_signal(strategy_id, {
        "layer": layer,
        "status": status,
        "pillar": pillar,
        "title": title,
        "description": suggestion.get("description") or "",
        "source": "DEBRIEF",
        "confidence": suggestion.get("confidence") or "MEDIUM",
    })
    if pillar in PILLAR_TYPES:
        reason = f"Mission debrief signal: {title}"
        staleness.mark_pillar_stale(strategy_id, pillar, reason)
        staleness.propagate(strategy_id, [pillar], reason)


def run_feedback_loop(debrief_id: str) -> dict:
    """
    Push debrief findings back into the strategy.

    Best effort: each suggested signal and each pricing insight is handled
    on its own; failures are logged and the loop moves on.

    Returns:
        {"signals": created, "pricing": upserted, "failures": count}
    """
    debrief = db.session.get(MissionDebrief, debrief_id)
    if debrief is None:
        raise NotFoundError(resource="MissionDebrief", resource_id=debrief_id)
    mission = debrief.mission
    strategy_id = mission.strategy_id
    extra = {"strategy_id": strategy_id, "mission_id": mission.id}
    summary = {"signals": 0, "pricing": 0, "failures": 0}

    for suggestion in debrief.signals_suggested or []:
        try:
            _create_debrief_signal(strategy_id, suggestion)
            summary["signals"] += 1
        except Exception:
            db.session.rollback()
            summary["failures"] += 1
            logger.exception("Debrief signal suggestion failed: %r", suggestion.get("title"), extra=extra)

    for insight in debrief.pricing_insights or []:
        if insight.get("min_price") is None or insight.get("max_price") is None:
            continue
        try:
            market_pricing.upsert_pricing(
                min_price=insight["min_price"],
                max_price=insight["max_price"],
                market=insight.get("market"),
                category=insight.get("category"),
                subcategory=insight.get("subcategory"),
                label=insight.get("label"),
                currency=insight.get("currency"),
                source="mission_debrief",
                confidence="MEDIUM",
                strategy_id=strategy_id,
            )
            summary["pricing"] += 1
        except Exception:
            db.session.rollback()
            summary["failures"] += 1
            logger.exception("Debrief pricing insight failed: %r", insight.get("label"), extra=extra)

    logger.info(
        "Debrief feedback loop: %d signal(s), %d pricing row(s), %d failure(s)",
        summary["signals"], summary["pricing"], summary["failures"],
        extra={**extra, "event_type": "debrief_feedback"},
    )
    return summary


# ═════════════════════════════════════════════════════════════════════════════
# Assignments
# ═════════════════════════════════════════════════════════════════════════════


def add_assignment(mission_id: str, data: dict) -> dict:
    mission = _get_mission(mission_id)
    talent_name = (data.get("talent_name") or "").strip()
    role = (data.get("role") or "").strip()
    if not talent_name or not role:
        raise ValidationError(
            "talent_name and role are required",
            details={"talent_name": talent_name or "required", "role": role or "required"},
        )
    assignment = MissionAssignment(
        mission_id=mission.id,
        talent_name=talent_name,
        role=role,
        day_rate=_number(data.get("day_rate"), "day_rate"),
        estimated_days=_number(data.get("estimated_days"), "estimated_days"),
    )
    db.session.add(assignment)
    db.session.commit()
    return assignment.to_dict()


def update_assignment_status(assignment_id: str, status: str) -> dict:
    assignment = db.session.get(MissionAssignment, assignment_id)
    if not assignment:
        raise NotFoundError(resource="MissionAssignment", resource_id=assignment_id)
    if status not in ASSIGNMENT_STATUSES:
        raise ValidationError(f"Unknown assignment status '{status}'", details={"allowed": sorted(ASSIGNMENT_STATUSES)})
    assignment.status = status
    db.session.commit()
    return assignment.to_dict()


def calculate_estimated_charge(mission_id: str) -> dict:
    """Sum of day_rate × estimated_days over non-cancelled assignments."""
    mission = _get_mission(mission_id)
    lines = [a for a in mission.assignments if a.status != "CANCELLED"]
    total = sum(a.estimated_charge for a in lines)
    return {
        "mission_id": mission.id,
        "currency": mission.currency,
        "total": total,
        "budget": mission.budget,
        "over_budget": mission.budget is not None and total > mission.budget,
        "lines": [
            {"assignment_id": a.id, "talent_name": a.talent_name, "charge": a.estimated_charge}
            for a in lines
        ],
    }


# ═════════════════════════════════════════════════════════════════════════════
# Deliverables
# ═════════════════════════════════════════════════════════════════════════════


def _get_deliverable(deliverable_id: str) -> MissionDeliverable:
    deliverable = db.session.get(MissionDeliverable, deliverable_id)
    if not deliverable:
        raise NotFoundError(resource="MissionDeliverable", resource_id=deliverable_id)
    return deliverable


def add_deliverable(mission_id: str, data: dict) -> dict:
    mission = _get_mission(mission_id)
    title = (data.get("title") or "").strip()
    if not title:
        raise ValidationError("Deliverable title is required", details={"title": "required"})
    deliverable = MissionDeliverable(
        mission_id=mission.id, title=title[:300], description=data.get("description") or "",
    )
    db.session.add(deliverable)
    db.session.commit()
    return deliverable.to_dict()


def upload_deliverable(deliverable_id: str, file_url: str) -> dict:
    deliverable = _get_deliverable(deliverable_id)
    if not file_url:
        raise ValidationError("file_url is required", details={"file_url": "required"})
    if deliverable.status == "APPROVED":
        raise ValidationError("Approved deliverables cannot be replaced", details={"status": deliverable.status})
    deliverable.file_url = file_url
    deliverable.status = "UPLOADED"
    deliverable.uploaded_at = datetime.now(timezone.utc)
    db.session.commit()
    return deliverable.to_dict()


def review_deliverable(deliverable_id: str, approved: bool, notes: str = "",
                       reviewer: str = "system") -> dict:
    deliverable = _get_deliverable(deliverable_id)
    if deliverable.status != "UPLOADED":
        raise ValidationError(
            "Only uploaded deliverables can be reviewed",
            details={"status": deliverable.status, "required": "UPLOADED"},
        )
    deliverable.status = "APPROVED" if approved else "REJECTED"
    deliverable.review_notes = notes or ""
    deliverable.reviewed_by = reviewer
    deliverable.reviewed_at = datetime.now(timezone.utc)
    db.session.commit()
    return deliverable.to_dict()
