"""
Phase State Machine — Service Layer.

The strategy pipeline moves through PHASES in order. A move is legal when
the target is the next phase, or when it jumps over the skippable
market-study phase. Phase changes happen as side effects of specific
pillar completions (POST_GENERATION_PHASE) or through the explicit
review/skip actions below; ``revert_phase`` is the only backward move and
keeps all data.

Functions:
    - can_enter_phase:          contract check for a single move
    - allowed_next_phases:      legal targets from a phase
    - is_pillar_unlocked:       pillar kind gate by phase
    - phase_after_generation:   forward-only auto advance after a pillar completes
    - advance_phase:            explicit skip / advance-after-review action
    - validate_fiche_review:    fiche-review → audit-r, merges corrected survey answers
    - validate_audit_review:    audit-review → implementation, applies R/T reviewer edits
    - revert_phase:             backward move, data preserved
    - skip_market_study / save_market_synthesis: enrichment phase actions
"""

import logging
from datetime import datetime, timezone

from app.core.exceptions import NotFoundError, PhaseTransitionError, ValidationError
from app.models import db
from app.models.audit import write_audit
from app.models.strategy import (
    BASE_PILLARS,
    PHASE_RANK,
    PHASES,
    SKIPPABLE_PHASE,
    MarketStudy,
    Strategy,
    normalize_phase,
)

logger = logging.getLogger(__name__)


# ── Phase tables ─────────────────────────────────────────────────────────────

# Earliest phase at which each pillar kind may be generated.
PILLAR_MIN_PHASE = {
    "A": "fiche",
    "D": "fiche",
    "V": "fiche",
    "E": "fiche",
    "R": "fiche-review",
    "T": "market-study",
    "I": "implementation",
    "S": "cockpit",
}

# Phase reached when a pillar of that kind completes. A/D/V/E advance together.
POST_GENERATION_PHASE = {
    "R": "market-study",
    "T": "audit-review",
    "I": "cockpit",
    "S": "complete",
}
BASE_COMPLETION_PHASE = ("fiche", "fiche-review")

# Phases a user may leave by an explicit action.
REVIEW_PHASES = {"fiche-review", "audit-review"}


def phase_rank(phase: str) -> int:
    phase = normalize_phase(phase)
    if phase not in PHASE_RANK:
        raise ValidationError(f"Unknown phase '{phase}'", details={"phases": PHASES})
    return PHASE_RANK[phase]


def next_phase(phase: str) -> str | None:
    rank = phase_rank(phase)
    return PHASES[rank + 1] if rank + 1 < len(PHASES) else None


def _skip_source_and_target() -> tuple[str, str]:
    rank = PHASE_RANK[SKIPPABLE_PHASE]
    return PHASES[rank - 1], PHASES[rank + 1]


def allowed_next_phases(current: str) -> list[str]:
    """Legal targets from *current*: the next phase, plus the skip target if any."""
    current = normalize_phase(current)
    allowed = []
    nxt = next_phase(current)
    if nxt:
        allowed.append(nxt)
    skip_from, skip_to = _skip_source_and_target()
    if current == skip_from:
        allowed.append(skip_to)
    return allowed


def can_enter_phase(current: str, target: str) -> bool:
    current = normalize_phase(current)
    target = normalize_phase(target)
    if current not in PHASE_RANK or target not in PHASE_RANK:
        return False
    return target in allowed_next_phases(current)


def manual_targets(current: str) -> list[str]:
    """Targets reachable from *current* by an explicit user action."""
    current = normalize_phase(current)
    targets = []
    if current in REVIEW_PHASES or current == SKIPPABLE_PHASE:
        targets.append(next_phase(current))
    skip_from, skip_to = _skip_source_and_target()
    if current == skip_from:
        targets.append(skip_to)
    return targets


def is_pillar_unlocked(pillar_type: str, phase: str) -> bool:
    return phase_rank(phase) >= PHASE_RANK[PILLAR_MIN_PHASE[pillar_type]]


def phase_after_generation(pillar_type: str, current: str, complete_types: set[str]) -> str | None:
    """
    Phase the strategy should move to after *pillar_type* completed, or None.

    Only ever moves forward: a regeneration in a later phase never pulls
    the strategy back.
    """
    current = normalize_phase(current)
    if pillar_type in BASE_PILLARS:
        source, target = BASE_COMPLETION_PHASE
        if current == source and set(BASE_PILLARS) <= complete_types:
            return target
        return None
    target = POST_GENERATION_PHASE.get(pillar_type)
    if target and PHASE_RANK[target] > phase_rank(current):
        return target
    return None


# ── Persistence helpers ──────────────────────────────────────────────────────


def _get_strategy(strategy_id: str, user: str | None = None) -> Strategy:
    strategy = db.session.get(Strategy, strategy_id)
    if not strategy or (user is not None and strategy.owner != user):
        raise NotFoundError(resource="Strategy", resource_id=strategy_id)
    return strategy


def set_phase(strategy: Strategy, target: str, *, actor: str = "system",
              action: str = "strategy.phase_advance") -> None:
    """Write the phase change and its audit row. Caller commits."""
    old = strategy.phase
    strategy.phase = target
    if target == "complete":
        strategy.status = "complete"
    elif strategy.status != "archived":
        strategy.status = "generating"
    write_audit(
        entity_type="strategy",
        entity_id=strategy.id,
        action=action,
        actor=actor,
        strategy_id=strategy.id,
        diff={"phase": {"old": old, "new": target}},
    )
    logger.info(
        "Strategy phase %s → %s", old, target,
        extra={"strategy_id": strategy.id, "phase": target, "event_type": action},
    )


# ── Explicit phase actions ───────────────────────────────────────────────────


def advance_phase(strategy_id: str, target: str | None = None, *,
                  actor: str = "system", user: str | None = None) -> dict:
    """
    Move the strategy forward by an explicit action.

    Only the skip across market-study and the advance out of a review (or
    the enrichment) phase are user actions; every other move is a side
    effect of pillar generation.

    Raises:
        PhaseTransitionError: target is out of order or not user-advanceable.
    """
    strategy = _get_strategy(strategy_id, user)
    current = normalize_phase(strategy.phase)
    target = normalize_phase(target) if target else next_phase(current)

    if target is None or not can_enter_phase(current, target):
        raise PhaseTransitionError(current, target or "", allowed_next_phases(current))
    allowed = manual_targets(current)
    if target not in allowed:
        raise PhaseTransitionError(current, target, allowed)

    if current == SKIPPABLE_PHASE or target == _skip_source_and_target()[1]:
        study = strategy.market_study
        if study and study.status not in ("complete", "skipped"):
            study.status = "skipped"

    set_phase(strategy, target, actor=actor)
    db.session.commit()
    return strategy.to_dict()


def revert_phase(strategy_id: str, target: str, *, actor: str = "system",
                 user: str | None = None) -> dict:
    """Move the strategy back to an earlier phase. Pillars and versions are kept."""
    strategy = _get_strategy(strategy_id, user)
    current = normalize_phase(strategy.phase)
    target = normalize_phase(target)
    if target not in PHASE_RANK or PHASE_RANK[target] >= phase_rank(current):
        raise PhaseTransitionError(current, target, PHASES[:phase_rank(current)])

    set_phase(strategy, target, actor=actor, action="strategy.phase_revert")
    db.session.commit()
    return strategy.to_dict()


def validate_fiche_review(strategy_id: str, interview_data: dict | None = None, *,
                          actor: str = "system", user: str | None = None) -> dict:
    """fiche-review → audit-r, optionally merging corrected survey answers."""
    strategy = _get_strategy(strategy_id, user)
    current = normalize_phase(strategy.phase)
    if current != "fiche-review":
        raise PhaseTransitionError(current, "audit-r", allowed_next_phases(current))

    if interview_data:
        merged = dict(strategy.interview_data or {})
        merged.update(interview_data)
        strategy.interview_data = merged

    set_phase(strategy, "audit-r", actor=actor, action="strategy.fiche_validated")
    db.session.commit()
    return strategy.to_dict()


def validate_audit_review(strategy_id: str, r_content: dict | None = None,
                          t_content: dict | None = None, *, actor: str = "system",
                          user: str | None = None) -> dict:
    """
    audit-review → implementation.

    Reviewer edits to R and T are applied as manual edits (snapshot +
    version bump) in the same transaction as the phase move.
    """
    from app.services import pillar_versions

    strategy = _get_strategy(strategy_id, user)
    current = normalize_phase(strategy.phase)
    if current != "audit-review":
        raise PhaseTransitionError(current, "implementation", allowed_next_phases(current))

    edited = []
    for kind, content in (("R", r_content), ("T", t_content)):
        if content is None:
            continue
        pillar = strategy.pillar(kind)
        if pillar is None or pillar.status != "complete":
            raise ValidationError(f"Pillar {kind} must be complete before it can be reviewed")
        pillar_versions.overwrite_content(
            pillar, content, source="manual_edit", actor=actor,
            summary="Audit review edit",
        )
        pillar_versions.clear_staleness(pillar)
        edited.append(kind)

    set_phase(strategy, "implementation", actor=actor, action="strategy.audit_validated")
    db.session.commit()

    if edited:
        from app.services.pipeline_orchestrator import schedule_content_side_effects
        schedule_content_side_effects(strategy.id, edited, trigger="audit_review")
    return strategy.to_dict()


# ── Market study (enrichment phase) ──────────────────────────────────────────


def _get_or_create_study(strategy: Strategy) -> MarketStudy:
    if strategy.market_study is None:
        strategy.market_study = MarketStudy(strategy_id=strategy.id)
        db.session.flush()
    return strategy.market_study


def save_market_synthesis(strategy_id: str, synthesis: dict, source_data: dict | None = None,
                          *, actor: str = "system", user: str | None = None) -> dict:
    """Store the enrichment synthesis consumed by T, I and S generation."""
    if not isinstance(synthesis, dict) or not synthesis:
        raise ValidationError("synthesis must be a non-empty object")
    strategy = _get_strategy(strategy_id, user)
    study = _get_or_create_study(strategy)
    study.synthesis = synthesis
    if source_data is not None:
        study.source_data = source_data
    study.status = "complete"
    study.completed_at = datetime.now(timezone.utc)
    write_audit(
        entity_type="market_study", entity_id=study.id, action="market_study.complete",
        actor=actor, strategy_id=strategy.id,
    )
    db.session.commit()
    return study.to_dict()


def skip_market_study(strategy_id: str, *, actor: str = "system", user: str | None = None) -> dict:
    """Mark the enrichment skipped and jump to audit-t (from audit-r or market-study)."""
    strategy = _get_strategy(strategy_id, user)
    current = normalize_phase(strategy.phase)
    _, skip_to = _skip_source_and_target()
    if skip_to not in manual_targets(current):
        raise PhaseTransitionError(current, skip_to, manual_targets(current))

    study = _get_or_create_study(strategy)
    study.status = "skipped"
    write_audit(
        entity_type="market_study", entity_id=study.id, action="market_study.skip",
        actor=actor, strategy_id=strategy.id,
    )
    set_phase(strategy, skip_to, actor=actor)
    db.session.commit()
    return strategy.to_dict(include_pillars=True)
