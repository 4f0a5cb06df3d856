"""
Signal engine tests.

Covers:
    - layer-scoped status validation
    - mutation log (one row per real status change)
    - escalation to a single Decision per signal
    - escalation side effects (pillar staleness, score snapshot)
    - audit-content → signal mapping
"""

import pytest

from app.core.exceptions import InvalidSignalStatusError, NotFoundError, ValidationError
from app.models import db
from app.models.signal import CRITICAL_STATUS, Decision, Signal, SignalMutation
from app.models.strategy import ScoreSnapshot, Strategy
from app.services import signal_engine, staleness


def _weak(strategy_id, **overrides):
    data = {"layer": "WEAK", "status": "WATCH", "title": "Resale groups growing", "pillar": None}
    data.update(overrides)
    return signal_engine.create_signal(strategy_id, data)


# ═════════════════════════════════════════════════════════════════════════════
# Creation
# ═════════════════════════════════════════════════════════════════════════════


def test_create_signal_defaults(strategy):
    result = _weak(strategy["id"], layer="weak", status="watch")
    assert result["layer"] == "WEAK"
    assert result["status"] == "WATCH"
    assert result["source"] == "manual"
    assert result["confidence"] == "MEDIUM"
    assert result["decision"] is None


@pytest.mark.parametrize("layer,status", [
    ("WEAK", "ACTIVE"),
    ("STRONG", "BET"),
    ("METRIC", "WATCH"),
    ("METRIC", ""),
])
def test_create_signal_rejects_cross_layer_status(strategy, layer, status):
    with pytest.raises(InvalidSignalStatusError) as exc_info:
        signal_engine.create_signal(strategy["id"], {"layer": layer, "status": status, "title": "x"})
    assert exc_info.value.details["layer"] == layer
    assert Signal.query.count() == 0


@pytest.mark.parametrize("data", [
    {"status": "WATCH", "title": "no layer"},
    {"layer": "WEAK", "status": "WATCH", "title": "  "},
    {"layer": "WEAK", "status": "WATCH", "title": "x", "pillar": "Q"},
    {"layer": "WEAK", "status": "WATCH", "title": "x", "confidence": "SURE"},
])
def test_create_signal_validation(strategy, data):
    with pytest.raises(ValidationError):
        signal_engine.create_signal(strategy["id"], data)


def test_create_signal_unknown_strategy():
    with pytest.raises(NotFoundError):
        _weak("missing")


def test_signal_created_critical_escalates(strategy):
    result = signal_engine.create_signal(strategy["id"], {
        "layer": "METRIC", "status": "CRITICAL", "title": "Churn above 8%",
    })
    assert result["decision"]["priority"] == "P0"
    assert result["decision"]["deadline_type"] == "STARTUP"


def test_list_signals_filters(strategy):
    _weak(strategy["id"], pillar="T")
    signal_engine.create_signal(strategy["id"], {"layer": "STRONG", "status": "ACTIVE", "title": "Local sourcing"})

    assert len(signal_engine.list_signals(strategy["id"])) == 2
    assert [s["layer"] for s in signal_engine.list_signals(strategy["id"], layer="strong")] == ["STRONG"]
    assert [s["pillar"] for s in signal_engine.list_signals(strategy["id"], pillar="T")] == ["T"]
    assert signal_engine.list_signals(strategy["id"], status="bet") == []


# ═════════════════════════════════════════════════════════════════════════════
# Mutation & escalation
# ═════════════════════════════════════════════════════════════════════════════


def test_weak_signal_to_bet_escalates_once(strategy):
    signal = _weak(strategy["id"])

    result = signal_engine.mutate_signal(signal["id"], "BET", reason="Confirmed by survey", actor="alice")

    assert result["status"] == "BET"
    decision = result["decision"]
    assert decision["title"] == "[Auto] Resale groups growing"
    assert decision["priority"] == "P2"
    assert decision["deadline_type"] == "MARKETING"
    assert decision["status"] == "PENDING"
    assert decision["created_by"] == "signal_engine"

    history = signal_engine.get_mutation_history(signal["id"])
    assert len(history) == 1
    assert (history[0]["from_status"], history[0]["to_status"]) == ("WATCH", "BET")
    assert history[0]["reason"] == "Confirmed by survey"
    assert history[0]["mutated_by"] == "alice"


def test_same_status_writes_nothing(strategy):
    signal = _weak(strategy["id"])
    signal_engine.mutate_signal(signal["id"], "BET")
    signal_engine.mutate_signal(signal["id"], "BET")

    assert SignalMutation.query.count() == 1
    assert Decision.query.filter_by(signal_id=signal["id"]).count() == 1


def test_double_escalation_yields_one_decision(strategy):
    signal = _weak(strategy["id"], status="BET")
    first = signal_engine.escalate_signal(signal["id"])
    second = signal_engine.escalate_signal(signal["id"])
    assert first["id"] == second["id"]
    assert Decision.query.count() == 1


def test_bouncing_back_to_critical_reuses_decision(strategy):
    signal = _weak(strategy["id"])
    signal_engine.mutate_signal(signal["id"], "BET")
    signal_engine.mutate_signal(signal["id"], "PROBE")
    signal_engine.mutate_signal(signal["id"], "BET")

    assert Decision.query.count() == 1
    assert [m["to_status"] for m in signal_engine.get_mutation_history(signal["id"])] == ["BET", "PROBE", "BET"]


def test_bouncing_back_to_critical_flags_pillar_again(strategy_with_base_pillars):
    sid = strategy_with_base_pillars["id"]
    signal = _weak(sid, pillar="D", title="Competitor copies our palette")
    signal_engine.mutate_signal(signal["id"], "BET")

    pillar_id = db.session.get(Strategy, sid).pillar("D").id
    staleness.clear_stale(pillar_id)
    snapshots_before = ScoreSnapshot.query.filter_by(strategy_id=sid).count()

    signal_engine.mutate_signal(signal["id"], "PROBE")
    signal_engine.mutate_signal(signal["id"], "BET")

    pillar = db.session.get(Strategy, sid).pillar("D")
    assert pillar.stale_reason == "Signal escalated: Competitor copies our palette"
    assert Decision.query.count() == 1
    assert ScoreSnapshot.query.filter_by(strategy_id=sid).count() == snapshots_before + 1


def test_invalid_mutation_leaves_signal_unchanged(strategy):
    signal = _weak(strategy["id"])
    with pytest.raises(InvalidSignalStatusError):
        signal_engine.mutate_signal(signal["id"], "ACTIVE")

    assert db.session.get(Signal, signal["id"]).status == "WATCH"
    assert SignalMutation.query.count() == 0


def test_strong_signal_never_escalates(strategy):
    signal = signal_engine.create_signal(strategy["id"], {"layer": "STRONG", "status": "EMERGING", "title": "Trend"})
    result = signal_engine.mutate_signal(signal["id"], "DECLINING")
    assert result["decision"] is None
    with pytest.raises(ValidationError):
        signal_engine.escalate_signal(signal["id"])


def test_escalate_requires_critical_status(strategy):
    signal = _weak(strategy["id"])
    with pytest.raises(ValidationError):
        signal_engine.escalate_signal(signal["id"])
    assert Decision.query.count() == 0


def test_every_escalating_layer_has_decision_defaults():
    assert set(signal_engine.ESCALATION_DEFAULTS) == set(CRITICAL_STATUS)


def test_escalation_flags_pillar_and_dependents(strategy_with_base_pillars):
    sid = strategy_with_base_pillars["id"]
    snapshots_before = ScoreSnapshot.query.filter_by(strategy_id=sid).count()

    _weak(sid, pillar="D", status="BET", title="Competitor copies our palette")

    strategy = db.session.get(Strategy, sid)
    stale = {p.type for p in strategy.pillars if p.is_stale}
    assert stale == {"D", "V", "E"}
    assert strategy.pillar("D").stale_reason == "Signal escalated: Competitor copies our palette"
    latest = ScoreSnapshot.query.filter_by(strategy_id=sid).order_by(ScoreSnapshot.id.desc()).first()
    assert ScoreSnapshot.query.filter_by(strategy_id=sid).count() == snapshots_before + 1
    assert latest.trigger == "signal_escalated"


def test_delete_signal_keeps_decision(strategy):
    signal = _weak(strategy["id"], status="BET")
    decision_id = signal["decision"]["id"]

    signal_engine.delete_signal(signal["id"])

    assert db.session.get(Signal, signal["id"]) is None
    assert SignalMutation.query.count() == 0
    decision = db.session.get(Decision, decision_id)
    assert decision is not None
    assert decision.signal_id is None


# ═════════════════════════════════════════════════════════════════════════════
# Audit-derived signals
# ═════════════════════════════════════════════════════════════════════════════


TRACK = {
    "macroTrends": ["Local sourcing", {"trend": "Mobile money", "description": "90% adoption"}],
    "weakSignals": ["Resale communities"],
    "emergingPatterns": [{"pattern": "Subscription rituals"}],
    "strategicRecommendations": ["Launch a loyalty club", ""],
}

RISK = {
    "microSwots": [
        {"variableLabel": "Pricing power", "riskLevel": "HIGH", "mitigation": "Premium tier"},
        {"variableLabel": "Visual identity", "riskLevel": "low"},
        "not a swot",
    ],
    "globalSwot": {"opportunities": ["Regional expansion", "Export"]},
}


def test_build_signals_from_audit_mapping():
    signals = signal_engine.build_signals_from_audit(TRACK, RISK)

    by_key = {}
    for s in signals:
        by_key.setdefault((s["layer"], s["status"], s["pillar"]), []).append(s)

    assert len(signals) == 8
    assert [s["title"] for s in by_key[("STRONG", "ACTIVE", "T")]] == ["Local sourcing", "Mobile money"]
    assert by_key[("STRONG", "ACTIVE", "T")][1]["description"] == "90% adoption"
    assert len(by_key[("WEAK", "WATCH", "T")]) == 1
    assert len(by_key[("WEAK", "PROBE", "T")]) == 1
    assert by_key[("STRONG", "EMERGING", "I")][0]["confidence"] == "HIGH"
    risk = by_key[("STRONG", "DECLINING", "R")]
    assert [s["title"] for s in risk] == ["High risk: Pricing power"]
    assert risk[0]["description"] == "Premium tier"
    assert [s["title"] for s in by_key[("WEAK", "PROBE", "R")]] == ["Regional expansion", "Export"]
    assert {s["source"] for s in by_key[("WEAK", "PROBE", "R")]} == {"audit_r"}


@pytest.mark.parametrize("track,risk", [
    (None, None),
    ({}, {}),
    ({"macroTrends": "not a list"}, {"globalSwot": ["wrong shape"]}),
    ("garbage", 42),
])
def test_build_signals_from_malformed_audit(track, risk):
    assert signal_engine.build_signals_from_audit(track, risk) == []


def test_bulk_create_from_audit_persists(strategy):
    created = signal_engine.bulk_create_from_audit(strategy["id"], TRACK, None)
    assert len(created) == 5
    assert Signal.query.filter_by(strategy_id=strategy["id"], source="audit_t").count() == 5
    assert Decision.query.count() == 0


def test_bulk_create_with_nothing_to_map(strategy):
    assert signal_engine.bulk_create_from_audit(strategy["id"], None, None) == []
