"""
Strategy score recalculation.

Coherence (0-100) = pillar completion (max 40)
                  + survey variable coverage (max 30)
                  + content depth (max 30, serialized length normalised to 5000 chars)

Risk and brand-market-fit scores are read from the R and T pillars when
they are complete. Every recalculation appends a ScoreSnapshot tagged
with its trigger; it runs as a fire-and-forget side effect of content
changes and signal escalation.
"""

import json
import logging
from datetime import datetime, timezone

from app.core.exceptions import NotFoundError
from app.models import db
from app.models.strategy import PILLAR_TYPES, ScoreSnapshot, Strategy

logger = logging.getLogger(__name__)

COMPLETION_WEIGHT = 40
COVERAGE_WEIGHT = 30
DEPTH_WEIGHT = 30
DEPTH_NORM_CHARS = 5000


def _numeric(value):
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value).strip().rstrip("%"))
    except (TypeError, ValueError):
        return None


def _filled(value) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (list, dict)):
        return bool(value)
    return True


def compute_scores(strategy: Strategy) -> dict:
    """Pure score computation over the strategy's current state."""
    complete = [p for p in strategy.pillars if p.status == "complete" and p.content is not None]

    completion = COMPLETION_WEIGHT * len(complete) / len(PILLAR_TYPES)

    answers = strategy.interview_data or {}
    coverage = COVERAGE_WEIGHT * (sum(1 for v in answers.values() if _filled(v)) / len(answers)) if answers else 0.0

    if complete:
        ratios = [
            min(len(json.dumps(p.content, ensure_ascii=False, default=str)) / DEPTH_NORM_CHARS, 1.0)
            for p in complete
        ]
        depth = DEPTH_WEIGHT * sum(ratios) / len(PILLAR_TYPES)
    else:
        depth = 0.0

    risk = strategy.pillar("R")
    track = strategy.pillar("T")
    risk_score = _numeric(risk.content.get("riskScore")) if risk in complete else None
    bmf_score = _numeric(track.content.get("brandMarketFitScore")) if track in complete else None

    return {
        "coherence_score": round(completion + coverage + depth, 1),
        "risk_score": risk_score,
        "bmf_score": bmf_score,
        "breakdown": {
            "completion": round(completion, 1),
            "coverage": round(coverage, 1),
            "depth": round(depth, 1),
        },
    }


def recalculate_all_scores(strategy_id: str, trigger: str = "manual") -> dict:
    strategy = db.session.get(Strategy, strategy_id)
    if not strategy:
        raise NotFoundError(resource="Strategy", resource_id=strategy_id)

    scores = compute_scores(strategy)
    strategy.coherence_score = scores["coherence_score"]
    strategy.scores_updated_at = datetime.now(timezone.utc)
    snapshot = ScoreSnapshot(strategy_id=strategy.id, trigger=trigger, **scores)
    db.session.add(snapshot)
    db.session.commit()

    logger.info(
        "Scores recalculated: coherence=%.1f", scores["coherence_score"],
        extra={"strategy_id": strategy_id, "trigger": trigger},
    )
    return snapshot.to_dict()


def get_scores(strategy_id: str, history: int = 10) -> dict:
    strategy = db.session.get(Strategy, strategy_id)
    if not strategy:
        raise NotFoundError(resource="Strategy", resource_id=strategy_id)
    snapshots = strategy.score_snapshots.limit(history).all()
    latest = snapshots[0].to_dict() if snapshots else None
    return {
        "strategy_id": strategy.id,
        "coherence_score": strategy.coherence_score,
        "risk_score": latest["risk_score"] if latest else None,
        "bmf_score": latest["bmf_score"] if latest else None,
        "scores_updated_at": strategy.scores_updated_at.isoformat() if strategy.scores_updated_at else None,
        "history": [s.to_dict() for s in snapshots],
    }
