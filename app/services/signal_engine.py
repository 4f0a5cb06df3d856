"""
Signal Engine — Service Layer.

Three-layer observation model (METRIC / STRONG / WEAK). A signal's
status always belongs to its layer's status set; it only changes through
``mutate_signal``, which writes the status and its SignalMutation row in
one transaction.

Reaching the layer's critical status (CRITICAL for METRIC, BET for WEAK)
escalates: a Decision is created unless one already exists for the
signal (unique ``Decision.signal_id``), the signal's pillar is flagged
stale and staleness is propagated, then scores are recalculated in the
background.

Functions:
    - create_signal / get_signal / list_signals / delete_signal
    - mutate_signal:            audit-tracked status change (+ escalation)
    - escalate_signal:          idempotent Decision creation for one signal
    - get_mutation_history:     SignalMutation rows, oldest first
    - build_signals_from_audit: pure mapping of T/R audit content to signal dicts
    - bulk_create_from_audit:   persist that mapping
    - seed_signals_after_track: post-T hook, skipped if audit signals exist
"""

import logging
from datetime import datetime, timezone

from sqlalchemy.exc import IntegrityError

from app.core.exceptions import InvalidSignalStatusError, NotFoundError, ValidationError
from app.models import db
from app.models.signal import (
    CRITICAL_STATUS,
    SIGNAL_CONFIDENCES,
    SIGNAL_LAYERS,
    SIGNAL_STATUSES,
    Decision,
    Signal,
    SignalMutation,
    is_valid_signal_status,
)
from app.models.strategy import PILLAR_TYPES, Strategy
from app.services import staleness
from app.services.background import dispatcher

logger = logging.getLogger(__name__)

AUDIT_SOURCES = ("audit_t", "audit_r")

# Escalated decision defaults by layer: (priority, deadline_type)
ESCALATION_DEFAULTS = {
    "METRIC": ("P0", "STARTUP"),
    "WEAK": ("P2", "MARKETING"),
}


# ── Helpers ──────────────────────────────────────────────────────────────────


def _get_strategy(strategy_id: str) -> Strategy:
    strategy = db.session.get(Strategy, strategy_id)
    if not strategy:
        raise NotFoundError(resource="Strategy", resource_id=strategy_id)
    return strategy


def _get_signal(signal_id: str) -> Signal:
    signal = db.session.get(Signal, signal_id)
    if not signal:
        raise NotFoundError(resource="Signal", resource_id=signal_id)
    return signal


def _validate_payload(data: dict) -> tuple[str, str]:
    layer = (data.get("layer") or "").upper()
    if layer not in SIGNAL_LAYERS:
        raise ValidationError(
            f"Unknown signal layer '{data.get('layer')}'",
            details={"allowed": list(SIGNAL_LAYERS)},
        )
    status = (data.get("status") or "").upper()
    if not is_valid_signal_status(layer, status):
        raise InvalidSignalStatusError(layer, status, SIGNAL_STATUSES[layer])
    if not (data.get("title") or "").strip():
        raise ValidationError("Signal title is required", details={"title": "required"})
    pillar = data.get("pillar")
    if pillar is not None and pillar not in PILLAR_TYPES:
        raise ValidationError(
            f"Unknown pillar '{pillar}'", details={"allowed": list(PILLAR_TYPES)},
        )
    confidence = (data.get("confidence") or "MEDIUM").upper()
    if confidence not in SIGNAL_CONFIDENCES:
        raise ValidationError(
            f"Unknown confidence '{confidence}'", details={"allowed": sorted(SIGNAL_CONFIDENCES)},
        )
    return layer, status


def _new_signal(strategy_id: str, data: dict) -> Signal:
    layer, status = _validate_payload(data)
    signal = Signal(
        strategy_id=strategy_id,
        layer=layer,
        status=status,
        pillar=data.get("pillar"),
        title=data["title"].strip()[:300],
        description=data.get("description") or "",
        source=data.get("source") or "manual",
        confidence=(data.get("confidence") or "MEDIUM").upper(),
        metric_key=data.get("metric_key"),
        metric_value=data.get("metric_value"),
    )
    db.session.add(signal)
    return signal


# ═════════════════════════════════════════════════════════════════════════════
# CRUD
# ═════════════════════════════════════════════════════════════════════════════


def create_signal(strategy_id: str, data: dict) -> dict:
    """
    Create a signal after validating its status against its layer.

    A signal created directly in its layer's critical status is escalated
    right away.

    Raises:
        InvalidSignalStatusError: status outside the layer's set.
    """
    _get_strategy(strategy_id)
    signal = _new_signal(strategy_id, data)
    db.session.commit()
    logger.info(
        "Signal created: %s/%s", signal.layer, signal.status,
        extra={"strategy_id": strategy_id, "signal_id": signal.id},
    )
    if CRITICAL_STATUS.get(signal.layer) == signal.status:
        escalate_signal(signal.id)
    return signal.to_dict(include_decision=True)


def get_signal(signal_id: str) -> dict:
    return _get_signal(signal_id).to_dict(include_decision=True)


def list_signals(
    strategy_id: str,
    layer: str | None = None,
    pillar: str | None = None,
    status: str | None = None,
) -> list[dict]:
    q = Signal.query.filter_by(strategy_id=strategy_id)
    if layer:
        q = q.filter_by(layer=layer.upper())
    if pillar:
        q = q.filter_by(pillar=pillar)
    if status:
        q = q.filter_by(status=status.upper())
    return [s.to_dict() for s in q.order_by(Signal.created_at.desc()).all()]


def delete_signal(signal_id: str) -> None:
    """Delete a signal; its mutations go with it, a linked decision stays."""
    signal = _get_signal(signal_id)
    if signal.decision is not None:
        signal.decision.signal_id = None
    db.session.delete(signal)
    db.session.commit()


def get_mutation_history(signal_id: str) -> list[dict]:
    signal = _get_signal(signal_id)
    return [m.to_dict() for m in signal.mutations.order_by(SignalMutation.id).all()]


# ═════════════════════════════════════════════════════════════════════════════
# Mutation & escalation
# ═════════════════════════════════════════════════════════════════════════════


def mutate_signal(signal_id: str, new_status: str, reason: str = "", actor: str = "system") -> dict:
    """
    Change a signal's status and append the SignalMutation row atomically.

    Setting the current status again writes nothing. Either way, a signal
    sitting in its critical status is (idempotently) escalated.

    Raises:
        InvalidSignalStatusError: status outside the signal's layer; the
            signal is left unchanged.
    """
    signal = _get_signal(signal_id)
    new_status = (new_status or "").upper()
    if not is_valid_signal_status(signal.layer, new_status):
        raise InvalidSignalStatusError(signal.layer, new_status, SIGNAL_STATUSES[signal.layer])

    old_status = signal.status
    if new_status != old_status:
        try:
            signal.status = new_status
            signal.last_checked_at = datetime.now(timezone.utc)
            db.session.add(SignalMutation(
                signal_id=signal.id,
                from_status=old_status,
                to_status=new_status,
                reason=reason or "",
                mutated_by=actor or "system",
            ))
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
        logger.info(
            "Signal %s → %s", old_status, new_status,
            extra={"strategy_id": signal.strategy_id, "signal_id": signal.id,
                   "event_type": "signal_mutated"},
        )

    if CRITICAL_STATUS.get(signal.layer) == new_status:
        escalate_signal(signal.id)
    return signal.to_dict(include_decision=True)


def _ensure_decision(signal: Signal) -> tuple[Decision, bool]:
    """Return the signal's decision, inserting it if absent. (decision, created)"""
    existing = Decision.query.filter_by(signal_id=signal.id).first()
    if existing:
        return existing, False

    priority, deadline_type = ESCALATION_DEFAULTS[signal.layer]
    decision = Decision(
        strategy_id=signal.strategy_id,
        signal_id=signal.id,
        title=f"[Auto] {signal.title}"[:300],
        description=signal.description or "",
        priority=priority,
        deadline_type=deadline_type,
        status="PENDING",
        created_by="signal_engine",
    )
    db.session.add(decision)
    try:
        db.session.commit()
    except IntegrityError:
        # A concurrent escalation inserted it first
        db.session.rollback()
        existing = Decision.query.filter_by(signal_id=signal.id).first()
        if existing is None:
            raise
        return existing, False
    return decision, True


def escalate_signal(signal_id: str) -> dict:
    """
    Escalate a signal in its critical status.

    Creates at most one Decision per signal. Every escalation, including
    a signal returning to its critical status, flags the signal's pillar
    stale, propagates, and schedules a score recalculation.

    Returns:
        The linked decision as a dict.
    """
    signal = _get_signal(signal_id)
    if CRITICAL_STATUS.get(signal.layer) != signal.status:
        raise ValidationError(
            f"Signal is not in a critical status ({signal.layer}/{signal.status})",
            details={"critical": CRITICAL_STATUS.get(signal.layer)},
        )

    decision, created = _ensure_decision(signal)

    strategy_id = signal.strategy_id
    logger.info(
        "Signal escalated to %s decision (%s)", decision.priority, "new" if created else "existing",
        extra={"strategy_id": strategy_id, "signal_id": signal.id,
               "decision_id": decision.id, "event_type": "signal_escalated"},
    )
    if signal.pillar:
        reason = f"Signal escalated: {signal.title}"
        staleness.mark_pillar_stale(strategy_id, signal.pillar, reason)
        staleness.propagate(strategy_id, [signal.pillar], reason)

    from app.services.score_engine import recalculate_all_scores
    dispatcher.submit("scores.recalculate", recalculate_all_scores, strategy_id, "signal_escalated")
    return decision.to_dict()


# ═════════════════════════════════════════════════════════════════════════════
# Audit-derived signals
# ═════════════════════════════════════════════════════════════════════════════


def _as_list(value) -> list:
    return value if isinstance(value, list) else []


def _entry_title(entry) -> str:
    if isinstance(entry, str):
        return entry.strip()
    if isinstance(entry, dict):
        for key in ("title", "label", "name", "trend", "signal", "pattern", "recommendation"):
            if entry.get(key):
                return str(entry[key]).strip()
    return ""


def _entry_description(entry) -> str:
    if isinstance(entry, dict):
        return str(entry.get("description") or entry.get("detail") or "")
    return ""


# (track field, layer, status, confidence, pillar)
TRACK_SIGNAL_MAP = (
    ("macroTrends", "STRONG", "ACTIVE", "MEDIUM", "T"),
    ("weakSignals", "WEAK", "WATCH", "LOW", "T"),
    ("emergingPatterns", "WEAK", "PROBE", "LOW", "T"),
    ("strategicRecommendations", "STRONG", "EMERGING", "HIGH", "I"),
)


def build_signals_from_audit(track_result: dict | None, risk_result: dict | None) -> list[dict]:
    """
    Map audit content to signal payloads. Pure: no I/O, no AI call.

    Missing or malformed inputs yield no signals.
    """
    signals = []
    track = track_result if isinstance(track_result, dict) else {}
    risk = risk_result if isinstance(risk_result, dict) else {}

    for field, layer, status, confidence, pillar in TRACK_SIGNAL_MAP:
        for entry in _as_list(track.get(field)):
            title = _entry_title(entry)
            if not title:
                continue
            signals.append({
                "layer": layer, "status": status, "confidence": confidence,
                "pillar": pillar, "title": title,
                "description": _entry_description(entry), "source": "audit_t",
            })

    for swot in _as_list(risk.get("microSwots")):
        if not isinstance(swot, dict) or str(swot.get("riskLevel", "")).lower() != "high":
            continue
        label = swot.get("variableLabel") or swot.get("variableId") or "unknown variable"
        signals.append({
            "layer": "STRONG", "status": "DECLINING", "confidence": "HIGH",
            "pillar": "R", "title": f"High risk: {label}",
            "description": str(swot.get("mitigation") or ""), "source": "audit_r",
        })

    global_swot = risk.get("globalSwot") if isinstance(risk.get("globalSwot"), dict) else {}
    for entry in _as_list(global_swot.get("opportunities")):
        title = _entry_title(entry)
        if not title:
            continue
        signals.append({
            "layer": "WEAK", "status": "PROBE", "confidence": "MEDIUM",
            "pillar": "R", "title": title,
            "description": _entry_description(entry), "source": "audit_r",
        })

    return signals


def bulk_create_from_audit(strategy_id: str, track_result: dict | None,
                           risk_result: dict | None) -> list[dict]:
    """Persist the audit-derived signals in one transaction."""
    _get_strategy(strategy_id)
    payloads = build_signals_from_audit(track_result, risk_result)
    if not payloads:
        return []
    created = [_new_signal(strategy_id, p) for p in payloads]
    db.session.commit()
    logger.info(
        "Created %d signal(s) from audit", len(created),
        extra={"strategy_id": strategy_id, "event_type": "signals_from_audit"},
    )
    return [s.to_dict() for s in created]


def seed_signals_after_track(strategy_id: str) -> int:
    """Post-T hook. Skipped when audit-sourced signals already exist."""
    strategy = _get_strategy(strategy_id)
    exists = Signal.query.filter(
        Signal.strategy_id == strategy_id, Signal.source.in_(AUDIT_SOURCES),
    ).first()
    if exists:
        return 0
    track = strategy.pillar("T")
    risk = strategy.pillar("R")
    created = bulk_create_from_audit(
        strategy_id,
        track.content if track and track.status == "complete" else None,
        risk.content if risk and risk.status == "complete" else None,
    )
    return len(created)
