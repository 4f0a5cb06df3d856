"""Coherence / risk / brand-market-fit score recalculation."""

import pytest

from app.core.exceptions import NotFoundError
from app.models import db
from app.models.strategy import ScoreSnapshot, Strategy
from app.services import pipeline_orchestrator, score_engine


def test_empty_strategy_scores_interview_coverage_only(strategy):
    scores = score_engine.compute_scores(db.session.get(Strategy, strategy["id"]))

    assert scores["breakdown"] == {"completion": 0.0, "coverage": 20.0, "depth": 0.0}
    assert scores["coherence_score"] == 20.0
    assert scores["risk_score"] is None
    assert scores["bmf_score"] is None


def test_strategy_without_interview_answers():
    created = pipeline_orchestrator.create_strategy("Bare", sector="Retail")
    scores = score_engine.compute_scores(db.session.get(Strategy, created["id"]))
    assert scores["coherence_score"] == 0.0


def test_base_pillars_add_completion_and_depth(strategy_with_base_pillars):
    scores = score_engine.compute_scores(db.session.get(Strategy, strategy_with_base_pillars["id"]))

    assert scores["breakdown"]["completion"] == 20.0
    assert scores["breakdown"]["coverage"] == 20.0
    assert 0 < scores["breakdown"]["depth"] <= 15.0
    assert scores["coherence_score"] == pytest.approx(40.0 + scores["breakdown"]["depth"], abs=0.2)


def test_risk_and_fit_read_from_audit_pillars(strategy_with_base_pillars):
    sid = strategy_with_base_pillars["id"]
    pipeline_orchestrator.generate_pillar(sid, "R")
    pipeline_orchestrator.generate_pillar(sid, "T")

    scores = score_engine.compute_scores(db.session.get(Strategy, sid))
    assert scores["risk_score"] == 38.0
    assert scores["bmf_score"] == 71.0


@pytest.mark.parametrize("raw,expected", [
    (42, 42.0),
    ("64%", 64.0),
    (" 12.5 ", 12.5),
    ("high", None),
    (None, None),
    (True, None),
])
def test_numeric_coercion(raw, expected):
    assert score_engine._numeric(raw) == expected


def test_recalculate_stores_snapshot(strategy):
    snapshot = score_engine.recalculate_all_scores(strategy["id"], trigger="manual")

    assert snapshot["trigger"] == "manual"
    assert snapshot["coherence_score"] == 20.0
    row = db.session.get(Strategy, strategy["id"])
    assert row.coherence_score == 20.0
    assert row.scores_updated_at is not None


def test_get_scores_history(strategy):
    sid = strategy["id"]
    assert score_engine.get_scores(sid)["history"] == []

    score_engine.recalculate_all_scores(sid, trigger="manual")
    score_engine.recalculate_all_scores(sid, trigger="signal_escalated")

    result = score_engine.get_scores(sid)
    assert result["coherence_score"] == 20.0
    assert result["scores_updated_at"] is not None
    assert {s["trigger"] for s in result["history"]} == {"manual", "signal_escalated"}
    assert len(score_engine.get_scores(sid, history=1)["history"]) == 1
    assert ScoreSnapshot.query.filter_by(strategy_id=sid).count() == 2


def test_unknown_strategy():
    with pytest.raises(NotFoundError):
        score_engine.recalculate_all_scores("missing")
    with pytest.raises(NotFoundError):
        score_engine.get_scores("missing")
