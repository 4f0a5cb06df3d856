"""
Pillar Generation Orchestrator — Service Layer.

Gathers upstream content for a pillar kind, calls the generation
collaborator, persists the result through the version store, advances
the phase machine and dispatches downstream side effects.

Generation is serialized per (strategy, kind) with a compare-and-swap on
``Pillar.status``: only a pillar that is not already ``generating`` can
be claimed, so a concurrent call is rejected without touching the row.
A claim older than ``GENERATION_CLAIM_TTL_SECONDS`` can be taken over.

Functions:
    - create_strategy / get_strategy / list_strategies / archive_strategy / delete_strategy
    - can_access_strategy:           ownership check used by the route decorator
    - build_generation_context:      per-kind context assembly (CONTEXT_BUILDERS)
    - generate_pillar:               full generate flow for one kind
    - schedule_content_side_effects: fire-and-forget widget/staleness/score work
"""

import copy
import logging
from datetime import datetime, timedelta, timezone

from flask import current_app
from sqlalchemy import or_, update

from app.ai.gateway import get_generation_provider
from app.core.exceptions import (
    GenerationError,
    GenerationInProgressError,
    NotFoundError,
    PillarLockedError,
    ValidationError,
)
from app.models import db
from app.models.audit import write_audit
from app.models.strategy import (
    PILLAR_ORDER,
    PILLAR_TYPES,
    MarketStudy,
    Pillar,
    Strategy,
)
from app.services import phase_machine
from app.services.background import dispatcher
from app.services.pillar_versions import clear_staleness, overwrite_content

logger = logging.getLogger(__name__)


# ═════════════════════════════════════════════════════════════════════════════
# Strategy CRUD
# ═════════════════════════════════════════════════════════════════════════════


def create_strategy(
    name: str,
    interview_data: dict | None = None,
    *,
    sector: str | None = None,
    vertical: str | None = None,
    description: str = "",
    owner: str = "system",
) -> dict:
    """Create a strategy with its eight pending pillars and an empty market study."""
    name = (name or "").strip()
    if not name:
        raise ValidationError("Strategy name is required", details={"name": "required"})
    if interview_data is not None and not isinstance(interview_data, dict):
        raise ValidationError("interview_data must be an object")

    strategy = Strategy(
        name=name,
        description=description or "",
        sector=sector,
        vertical=vertical.upper() if vertical else None,
        owner=owner or "system",
        interview_data=interview_data or {},
    )
    db.session.add(strategy)
    db.session.flush()

    for kind, title in PILLAR_TYPES.items():
        db.session.add(Pillar(
            strategy_id=strategy.id, type=kind, title=title, order=PILLAR_ORDER[kind],
        ))
    db.session.add(MarketStudy(strategy_id=strategy.id))

    write_audit(
        entity_type="strategy", entity_id=strategy.id, action="strategy.create",
        actor=owner, strategy_id=strategy.id,
    )
    db.session.commit()
    logger.info("Strategy created: %s", name, extra={"strategy_id": strategy.id})
    return strategy.to_dict(include_pillars=True)


def _get_strategy(strategy_id: str, user: str | None = None) -> Strategy:
    strategy = db.session.get(Strategy, strategy_id)
    if not strategy or (user is not None and strategy.owner != user):
        raise NotFoundError(resource="Strategy", resource_id=strategy_id)
    return strategy


def get_strategy(strategy_id: str, user: str | None = None) -> dict:
    return _get_strategy(strategy_id, user).to_dict(include_pillars=True)


def can_access_strategy(strategy_id: str, user: str | None) -> bool:
    """True when the strategy exists and ``user`` is None or its owner."""
    strategy = db.session.get(Strategy, strategy_id)
    return strategy is not None and (user is None or strategy.owner == user)


def list_strategies(owner: str | None = None, status: str | None = None) -> list[dict]:
    q = Strategy.query
    if owner:
        q = q.filter_by(owner=owner)
    if status:
        q = q.filter_by(status=status)
    return [s.to_dict() for s in q.order_by(Strategy.created_at.desc()).all()]


def archive_strategy(strategy_id: str, *, actor: str = "system", user: str | None = None) -> dict:
    strategy = _get_strategy(strategy_id, user)
    old = strategy.status
    strategy.status = "archived"
    write_audit(
        entity_type="strategy", entity_id=strategy.id, action="strategy.archive",
        actor=actor, strategy_id=strategy.id, diff={"status": {"old": old, "new": "archived"}},
    )
    db.session.commit()
    return strategy.to_dict()


def delete_strategy(strategy_id: str, user: str | None = None) -> None:
    """Delete a strategy and everything it owns."""
    strategy = _get_strategy(strategy_id, user)
    db.session.delete(strategy)
    db.session.commit()
    logger.info("Strategy deleted", extra={"strategy_id": strategy_id})


# ═════════════════════════════════════════════════════════════════════════════
# Context assembly
# ═════════════════════════════════════════════════════════════════════════════


def _complete_content(strategy: Strategy, kind: str):
    pillar = strategy.pillar(kind)
    if pillar is None or pillar.status != "complete" or pillar.content is None:
        return None
    return copy.deepcopy(pillar.content)


def _base_context(strategy: Strategy, kind: str) -> dict:
    """Survey answers plus every complete pillar earlier in generation order."""
    order = PILLAR_ORDER[kind]
    return {
        "strategy": {
            "id": strategy.id,
            "name": strategy.name,
            "sector": strategy.sector,
            "vertical": strategy.vertical,
        },
        "interview_data": copy.deepcopy(strategy.interview_data or {}),
        "pillars": {
            p.type: copy.deepcopy(p.content)
            for p in strategy.pillars
            if p.status == "complete" and p.order < order and p.content is not None
        },
    }


def _market_synthesis(strategy: Strategy):
    study = strategy.market_study
    if study is None or study.status != "complete":
        return None
    return copy.deepcopy(study.synthesis)


def _track_context(strategy: Strategy, kind: str) -> dict:
    ctx = _base_context(strategy, kind)
    ctx["risk"] = _complete_content(strategy, "R")
    ctx["market_study"] = _market_synthesis(strategy)
    return ctx


def _implementation_context(strategy: Strategy, kind: str) -> dict:
    ctx = _track_context(strategy, kind)
    ctx["track"] = _complete_content(strategy, "T")
    return ctx


def _synthesis_context(strategy: Strategy, kind: str) -> dict:
    ctx = _base_context(strategy, kind)
    ctx["risk"] = _complete_content(strategy, "R")
    ctx["track"] = _complete_content(strategy, "T")
    ctx["implementation"] = _complete_content(strategy, "I")
    return ctx


CONTEXT_BUILDERS = {
    "A": _base_context,
    "D": _base_context,
    "V": _base_context,
    "E": _base_context,
    "R": _base_context,
    "T": _track_context,
    "I": _implementation_context,
    "S": _synthesis_context,
}


def build_generation_context(strategy: Strategy, pillar_type: str) -> dict:
    return CONTEXT_BUILDERS[pillar_type](strategy, pillar_type)


# ═════════════════════════════════════════════════════════════════════════════
# Generation
# ═════════════════════════════════════════════════════════════════════════════


def _claim_pillar(pillar: Pillar) -> bool:
    """
    Atomically move a pillar to ``generating``. False if a live claim holds it.

    A claim older than ``GENERATION_CLAIM_TTL_SECONDS`` (or one without a
    start time) is left over by a worker that died and may be taken over.
    """
    now = datetime.now(timezone.utc)
    ttl = current_app.config.get("GENERATION_CLAIM_TTL_SECONDS", 360.0)
    result = db.session.execute(
        update(Pillar)
        .where(
            Pillar.id == pillar.id,
            or_(
                Pillar.status != "generating",
                Pillar.generation_started_at.is_(None),
                Pillar.generation_started_at < now - timedelta(seconds=ttl),
            ),
        )
        .values(status="generating", error_message=None, generation_started_at=now)
    )
    return result.rowcount == 1


def _mark_failed(pillar_id: str, message: str) -> None:
    pillar = db.session.get(Pillar, pillar_id)
    pillar.status = "error"
    pillar.error_message = message[:2000]
    db.session.commit()


def generate_pillar(
    strategy_id: str,
    pillar_type: str,
    *,
    actor: str = "system",
    user: str | None = None,
) -> dict:
    """
    Generate (or regenerate) one pillar.

    Steps: claim the pillar, assemble context, call the collaborator,
    snapshot + overwrite, advance the phase, then dispatch widget
    invalidation, staleness propagation and score recalculation. After T,
    audit-derived signals are seeded in the background as well.

    Raises:
        ValidationError: unknown pillar kind.
        NotFoundError: strategy missing or owned by someone else.
        PillarLockedError: kind not unlocked at the current phase.
        GenerationInProgressError: the pillar holds a live generation claim.
        GenerationError: the collaborator failed; pillar left in ``error``.
    """
    if pillar_type not in PILLAR_TYPES:
        raise ValidationError(
            f"Unknown pillar type '{pillar_type}'",
            details={"allowed": list(PILLAR_TYPES)},
        )
    strategy = _get_strategy(strategy_id, user)
    if not phase_machine.is_pillar_unlocked(pillar_type, strategy.phase):
        raise PillarLockedError(
            pillar_type, strategy.phase, phase_machine.PILLAR_MIN_PHASE[pillar_type],
        )
    pillar = strategy.pillar(pillar_type)
    if pillar is None:
        raise NotFoundError(resource="Pillar", resource_id=f"{strategy_id}/{pillar_type}")

    taking_over = pillar.status == "generating"
    if not _claim_pillar(pillar):
        db.session.rollback()
        raise GenerationInProgressError(strategy_id, pillar_type)
    db.session.commit()

    log_extra = {"strategy_id": strategy_id, "pillar_type": pillar_type}
    if taking_over:
        logger.warning(
            "Taking over abandoned generation claim on pillar %s", pillar_type,
            extra={**log_extra, "event_type": "generation_claim_expired"},
        )
    logger.info("Generation started for pillar %s", pillar_type, extra=log_extra)

    context = build_generation_context(strategy, pillar_type)
    try:
        result = get_generation_provider().generate(pillar_type, context)
        if not isinstance(result, dict) or not isinstance(result.get("content"), dict):
            raise GenerationError("Generator returned no content object")
    except Exception as exc:
        message = str(exc) or exc.__class__.__name__
        db.session.rollback()
        _mark_failed(pillar.id, message)
        logger.warning(
            "Generation failed for pillar %s: %s", pillar_type, message,
            extra={**log_extra, "event_type": "generation_failed"},
        )
        if isinstance(exc, GenerationError):
            raise
        raise GenerationError(message) from exc

    pillar = db.session.get(Pillar, pillar.id)
    strategy = pillar.strategy
    source = "regeneration" if pillar.content is not None else "generation"
    overwrite_content(
        pillar, result["content"], source=source, actor=actor,
        summary=result.get("summary") or None,
    )
    pillar.status = "complete"
    pillar.error_message = None
    pillar.generated_at = datetime.now(timezone.utc)
    clear_staleness(pillar)

    target = phase_machine.phase_after_generation(
        pillar_type, strategy.phase, strategy.complete_pillar_types(),
    )
    if target:
        phase_machine.set_phase(strategy, target, actor=actor)
    if strategy.complete_pillar_types() == set(PILLAR_TYPES):
        strategy.status = "complete"
    elif strategy.status == "draft":
        strategy.status = "generating"
    db.session.commit()

    logger.info(
        "Pillar %s generated (v%d, %s)", pillar_type, pillar.version, source,
        extra={**log_extra, "event_type": "pillar_generated"},
    )

    schedule_content_side_effects(strategy_id, [pillar_type], trigger="pillar_generated")
    if pillar_type == "T":
        from app.services.signal_engine import seed_signals_after_track
        dispatcher.submit("signals.seed_from_audit", seed_signals_after_track, strategy_id)
    return pillar.to_dict()


def schedule_content_side_effects(strategy_id: str, kinds, trigger: str) -> None:
    """
    Dispatch the non-blocking work that follows a content change:
    widget invalidation per kind, downstream staleness, score recalculation.
    """
    from app.services import score_engine, staleness
    from app.services.widgets import compute_engine

    kinds = list(kinds)
    for kind in kinds:
        dispatcher.submit(f"widgets.invalidate:{kind}", compute_engine.invalidate, strategy_id, kind)
    dispatcher.submit("staleness.propagate", staleness.propagate, strategy_id, kinds)
    dispatcher.submit("scores.recalculate", score_engine.recalculate_all_scores, strategy_id, trigger)
