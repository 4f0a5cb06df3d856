"""
Staleness Propagator — Service Layer.

When a pillar (or a signal tied to a pillar) changes, every pillar that
depends on it is flagged stale with a human-readable reason, and so is
every translation document rendered from it. Staleness is advisory: the
stored content is never touched.

Propagation is idempotent. Re-running it for the same change only
re-sets the reason string; ``stale_since`` keeps the first timestamp.

Functions:
    - affected_kinds:     transitive dependents of a set of changed kinds
    - mark_stale:         flag one pillar
    - propagate:          flag dependents + translation documents
    - clear_stale:        un-flag one pillar
    - get_stale_pillars:  list flagged pillars
    - check_freshness:    FRESH / AGING / STALE report by pillar age
"""

import logging
from datetime import datetime, timezone

from flask import current_app

from app.core.exceptions import NotFoundError, ValidationError
from app.integrations.translation_docs import invalidate_documents_sourced_from
from app.models import db
from app.models.strategy import PILLAR_ORDER, PILLAR_TYPES, Pillar, Strategy

logger = logging.getLogger(__name__)

# kind → kinds its content is generated from (generation order is acyclic)
PILLAR_DEPENDENCIES = {
    "A": [],
    "D": ["A"],
    "V": ["A", "D"],
    "E": ["A", "D", "V"],
    "R": ["A", "D", "V", "E"],
    "T": ["A", "D", "V", "E", "R"],
    "I": ["A", "D", "V", "E", "R", "T"],
    "S": ["A", "D", "V", "E", "R", "T", "I"],
}


def affected_kinds(changed_kinds) -> set[str]:
    """Kinds whose declared dependencies reach any of *changed_kinds*."""
    changed = set(changed_kinds)
    affected: set[str] = set()
    frontier = set(changed)
    while frontier:
        step = {
            kind for kind, deps in PILLAR_DEPENDENCIES.items()
            if kind not in affected and frontier.intersection(deps)
        }
        affected |= step
        frontier = step
    return affected - changed


def default_reason(changed_kinds) -> str:
    kinds = sorted(set(changed_kinds), key=PILLAR_ORDER.get)
    return f"Upstream pillar(s) {', '.join(kinds)} changed"


def _flag(pillar: Pillar, reason: str, now: datetime) -> None:
    pillar.stale_reason = reason
    if pillar.stale_since is None:
        pillar.stale_since = now


def _get_strategy(strategy_id: str) -> Strategy:
    strategy = db.session.get(Strategy, strategy_id)
    if not strategy:
        raise NotFoundError(resource="Strategy", resource_id=strategy_id)
    return strategy


def mark_stale(pillar_id: str, reason: str) -> dict:
    """Flag a single pillar stale."""
    pillar = db.session.get(Pillar, pillar_id)
    if not pillar:
        raise NotFoundError(resource="Pillar", resource_id=pillar_id)
    _flag(pillar, reason, datetime.now(timezone.utc))
    db.session.commit()
    return pillar.to_dict(include_content=False)


def mark_pillar_stale(strategy_id: str, pillar_type: str, reason: str) -> dict | None:
    """Flag the pillar of *pillar_type*; no-op when it has no content yet."""
    strategy = _get_strategy(strategy_id)
    pillar = strategy.pillar(pillar_type)
    if pillar is None or pillar.content is None:
        return None
    return mark_stale(pillar.id, reason)


def propagate(strategy_id: str, changed_kinds, reason: str | None = None) -> dict:
    """
    Flag every pillar depending on *changed_kinds*, plus translation
    documents sourced from them.

    Pillars without content have nothing to go stale and are skipped.

    Returns:
        {"pillars": [kinds flagged], "documents": int}
    """
    changed = list(dict.fromkeys(changed_kinds or []))
    unknown = [k for k in changed if k not in PILLAR_TYPES]
    if unknown:
        raise ValidationError(f"Unknown pillar kinds: {', '.join(unknown)}")
    if not changed:
        return {"pillars": [], "documents": 0}

    strategy = _get_strategy(strategy_id)
    reason = reason or default_reason(changed)
    targets = affected_kinds(changed)
    now = datetime.now(timezone.utc)

    flagged = []
    for pillar in strategy.pillars:
        if pillar.type in targets and pillar.content is not None:
            _flag(pillar, reason, now)
            flagged.append(pillar.type)

    documents = invalidate_documents_sourced_from(strategy_id, changed, reason)
    db.session.commit()

    if flagged or documents:
        logger.info(
            "Staleness propagated from %s: pillars=%s documents=%d",
            ",".join(changed), ",".join(flagged) or "-", documents,
            extra={"strategy_id": strategy_id, "event_type": "staleness_propagated"},
        )
    return {"pillars": flagged, "documents": documents}


def clear_stale(pillar_id: str) -> dict:
    pillar = db.session.get(Pillar, pillar_id)
    if not pillar:
        raise NotFoundError(resource="Pillar", resource_id=pillar_id)
    pillar.stale_reason = None
    pillar.stale_since = None
    db.session.commit()
    return pillar.to_dict(include_content=False)


def get_stale_pillars(strategy_id: str) -> list[dict]:
    strategy = _get_strategy(strategy_id)
    return [p.to_dict(include_content=False) for p in strategy.pillars if p.is_stale]


# ── Freshness ────────────────────────────────────────────────────────────────


def _aware(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def freshness_thresholds(vertical: str | None) -> tuple[int, int]:
    table = current_app.config.get("FRESHNESS_THRESHOLDS", {})
    default = table.get("default", (30, 90))
    if not vertical:
        return default
    return table.get(vertical.upper(), default)


def check_freshness(strategy_id: str, now: datetime | None = None) -> dict:
    """
    Read-only freshness report for the strategy's complete pillars.

    A pillar already flagged stale is reported STALE whatever its age.
    """
    strategy = _get_strategy(strategy_id)
    fresh_days, aging_days = freshness_thresholds(strategy.vertical)
    now = now or datetime.now(timezone.utc)

    items = []
    counts = {"FRESH": 0, "AGING": 0, "STALE": 0}
    for pillar in strategy.pillars:
        if pillar.status != "complete" or pillar.generated_at is None:
            continue
        age_days = (now - _aware(pillar.generated_at)).days
        if pillar.is_stale or age_days > aging_days:
            level = "STALE"
        elif age_days > fresh_days:
            level = "AGING"
        else:
            level = "FRESH"
        counts[level] += 1
        items.append({
            "pillar_type": pillar.type,
            "age_days": age_days,
            "freshness": level,
            "stale_reason": pillar.stale_reason,
        })

    return {
        "strategy_id": strategy_id,
        "vertical": strategy.vertical,
        "thresholds": {"fresh_days": fresh_days, "aging_days": aging_days},
        "counts": counts,
        "pillars": items,
    }
