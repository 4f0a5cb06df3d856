"""
Generation orchestrator tests.

Covers strategy creation, the claim/generate/snapshot/advance flow,
concurrency rejection, failure handling and the post-generation side
effects (phase moves, staleness, score snapshots, signal seeding).
"""

from datetime import datetime, timedelta, timezone

import pytest

from app.core.exceptions import (
    GenerationError,
    GenerationInProgressError,
    NotFoundError,
    PillarLockedError,
    ValidationError,
)
from app.models import db
from app.models.signal import Signal
from app.models.strategy import BASE_PILLARS, PILLAR_TYPES, PillarVersion, ScoreSnapshot, Strategy
from app.services import phase_machine
from app.services.pipeline_orchestrator import (
    CONTEXT_BUILDERS,
    archive_strategy,
    create_strategy,
    delete_strategy,
    generate_pillar,
    get_strategy,
    list_strategies,
)


def _strategy(strategy_id):
    return db.session.get(Strategy, strategy_id)


# ═════════════════════════════════════════════════════════════════════════════
# Strategy CRUD
# ═════════════════════════════════════════════════════════════════════════════


def test_create_strategy_seeds_pillars_and_study():
    result = create_strategy("Kora", {"positioning": "x"}, vertical="fmcg", owner="alice")

    assert result["phase"] == "fiche"
    assert result["status"] == "draft"
    assert result["vertical"] == "FMCG"
    assert [p["type"] for p in result["pillars"]] == list(PILLAR_TYPES)
    assert {p["status"] for p in result["pillars"]} == {"pending"}
    assert {p["version"] for p in result["pillars"]} == {0}
    assert result["market_study"]["status"] == "pending"


@pytest.mark.parametrize("name,interview", [("", None), ("   ", None), ("Ok", ["list"])])
def test_create_strategy_validation(name, interview):
    with pytest.raises(ValidationError):
        create_strategy(name, interview)
    assert Strategy.query.count() == 0


def test_get_strategy_filters_by_owner(strategy):
    assert get_strategy(strategy["id"], "alice")["id"] == strategy["id"]
    with pytest.raises(NotFoundError):
        get_strategy(strategy["id"], "bob")


def test_list_and_archive(strategy):
    create_strategy("Other", owner="bob")
    assert [s["name"] for s in list_strategies(owner="alice")] == ["Maison Test"]

    archived = archive_strategy(strategy["id"], actor="alice")
    assert archived["status"] == "archived"
    assert list_strategies(status="archived")[0]["id"] == strategy["id"]


def test_delete_strategy_cascades(strategy_with_base_pillars):
    sid = strategy_with_base_pillars["id"]
    delete_strategy(sid)
    assert _strategy(sid) is None
    assert ScoreSnapshot.query.filter_by(strategy_id=sid).count() == 0


# ═════════════════════════════════════════════════════════════════════════════
# Generation flow
# ═════════════════════════════════════════════════════════════════════════════


def test_first_generation_has_no_snapshot(strategy, provider):
    result = generate_pillar(strategy["id"], "A", actor="alice")

    assert result["status"] == "complete"
    assert result["version"] == 1
    assert result["content"] == {"kind": "A", "call": 1}
    assert result["summary"] == "A summary"
    assert result["generated_at"] is not None
    assert PillarVersion.query.count() == 0
    row = _strategy(strategy["id"])
    assert row.phase == "fiche"
    assert row.status == "generating"


def test_base_pillars_advance_to_fiche_review(strategy, provider):
    sid = strategy["id"]
    for kind in ("A", "D", "V"):
        generate_pillar(sid, kind)
        assert _strategy(sid).phase == "fiche"
    generate_pillar(sid, "E")
    assert _strategy(sid).phase == "fiche-review"


def test_risk_generation_sees_base_pillars_and_moves_to_market_study(strategy, provider):
    sid = strategy["id"]
    for kind in BASE_PILLARS:
        generate_pillar(sid, kind)

    result = generate_pillar(sid, "R")

    assert result["status"] == "complete"
    assert _strategy(sid).phase == "market-study"
    _, context = provider.calls[-1]
    assert set(context["pillars"]) == {"A", "D", "V", "E"}
    assert context["interview_data"]["positioning"] == "Premium street food"
    assert context["strategy"]["name"] == "Maison Test"


def test_track_context_includes_risk_and_market_synthesis(strategy, provider):
    sid = strategy["id"]
    for kind in BASE_PILLARS:
        generate_pillar(sid, kind)
    generate_pillar(sid, "R")
    phase_machine.save_market_synthesis(sid, {"competitors": ["Brand X"]})

    generate_pillar(sid, "T")

    kind, context = provider.calls[-1]
    assert kind == "T"
    assert context["risk"] == {"kind": "R", "call": 5}
    assert context["market_study"] == {"competitors": ["Brand X"]}
    assert _strategy(sid).phase == "audit-review"


def test_every_pillar_kind_has_a_context_builder():
    assert set(CONTEXT_BUILDERS) == set(PILLAR_TYPES)


def test_context_is_a_copy(strategy, provider):
    sid = strategy["id"]
    generate_pillar(sid, "A")
    generate_pillar(sid, "D")
    _, context = provider.calls[-1]
    context["pillars"]["A"]["kind"] = "tampered"
    assert _strategy(sid).pillar("A").content["kind"] == "A"


def test_regeneration_snapshots_previous_content(strategy, provider):
    sid = strategy["id"]
    generate_pillar(sid, "A")
    result = generate_pillar(sid, "A")

    assert result["version"] == 2
    assert result["content"]["call"] == 2
    snapshot = PillarVersion.query.one()
    assert snapshot.version == 1
    assert snapshot.source == "regeneration"
    assert snapshot.content == {"kind": "A", "call": 1}


def test_regeneration_later_in_pipeline_keeps_phase(strategy_with_base_pillars, set_phase):
    sid = strategy_with_base_pillars["id"]
    set_phase(sid, "implementation")
    generate_pillar(sid, "A")
    assert _strategy(sid).phase == "implementation"


def test_regeneration_clears_own_staleness(strategy_with_base_pillars):
    sid = strategy_with_base_pillars["id"]
    generate_pillar(sid, "A")
    assert _strategy(sid).pillar("D").is_stale

    result = generate_pillar(sid, "D")
    assert result["stale_since"] is None
    assert result["stale_reason"] is None


# ═════════════════════════════════════════════════════════════════════════════
# Rejections
# ═════════════════════════════════════════════════════════════════════════════


def test_unknown_pillar_kind(strategy, provider):
    with pytest.raises(ValidationError):
        generate_pillar(strategy["id"], "Q")
    assert provider.calls == []


def test_locked_pillar(strategy, provider):
    with pytest.raises(PillarLockedError) as exc_info:
        generate_pillar(strategy["id"], "R")
    assert exc_info.value.details["required_phase"] == "fiche-review"
    assert provider.calls == []
    assert _strategy(strategy["id"]).pillar("R").status == "pending"


def test_other_owner_cannot_generate(strategy, provider):
    with pytest.raises(NotFoundError):
        generate_pillar(strategy["id"], "A", user="bob")
    assert provider.calls == []


def test_concurrent_generation_is_rejected(strategy, provider):
    sid = strategy["id"]
    pillar = _strategy(sid).pillar("V")
    pillar.status = "generating"
    pillar.generation_started_at = datetime.now(timezone.utc)
    db.session.commit()

    with pytest.raises(GenerationInProgressError):
        generate_pillar(sid, "V")

    pillar = _strategy(sid).pillar("V")
    assert pillar.status == "generating"
    assert pillar.version == 0
    assert pillar.content is None
    assert provider.calls == []


def test_abandoned_claim_is_taken_over(app, strategy, provider):
    sid = strategy["id"]
    ttl = app.config["GENERATION_CLAIM_TTL_SECONDS"]
    pillar = _strategy(sid).pillar("V")
    pillar.status = "generating"
    pillar.generation_started_at = datetime.now(timezone.utc) - timedelta(seconds=ttl + 60)
    db.session.commit()

    result = generate_pillar(sid, "V")

    assert result["status"] == "complete"
    assert result["version"] == 1
    assert provider.kinds_called() == ["V"]


def test_claim_without_start_time_is_taken_over(strategy, provider):
    sid = strategy["id"]
    _strategy(sid).pillar("E").status = "generating"
    db.session.commit()

    assert generate_pillar(sid, "E")["status"] == "complete"


# ═════════════════════════════════════════════════════════════════════════════
# Failures
# ═════════════════════════════════════════════════════════════════════════════


def test_provider_failure_marks_pillar_error(strategy, provider):
    sid = strategy["id"]
    provider.fail = RuntimeError("upstream timeout")

    with pytest.raises(GenerationError):
        generate_pillar(sid, "A")

    pillar = _strategy(sid).pillar("A")
    assert pillar.status == "error"
    assert pillar.error_message == "upstream timeout"
    assert pillar.version == 0
    assert PillarVersion.query.count() == 0
    assert _strategy(sid).phase == "fiche"


def test_failed_regeneration_keeps_previous_content(strategy, provider):
    sid = strategy["id"]
    generate_pillar(sid, "A")
    provider.fail = RuntimeError("boom")

    with pytest.raises(GenerationError):
        generate_pillar(sid, "A")

    pillar = _strategy(sid).pillar("A")
    assert pillar.status == "error"
    assert pillar.version == 1
    assert pillar.content == {"kind": "A", "call": 1}
    assert PillarVersion.query.count() == 0


def test_retry_after_failure(strategy, provider):
    sid = strategy["id"]
    provider.fail = RuntimeError("boom")
    with pytest.raises(GenerationError):
        generate_pillar(sid, "E")

    provider.fail = None
    result = generate_pillar(sid, "E")
    assert result["status"] == "complete"
    assert result["error_message"] is None


def test_provider_without_content_object(strategy, provider):
    provider.generate = lambda pillar_type, context: {"summary": "no content"}

    with pytest.raises(GenerationError):
        generate_pillar(strategy["id"], "A")
    assert _strategy(strategy["id"]).pillar("A").status == "error"


# ═════════════════════════════════════════════════════════════════════════════
# Side effects
# ═════════════════════════════════════════════════════════════════════════════


def test_generation_records_score_snapshot(strategy, provider):
    generate_pillar(strategy["id"], "A")
    snapshot = ScoreSnapshot.query.filter_by(strategy_id=strategy["id"]).one()
    assert snapshot.trigger == "pillar_generated"


def test_track_generation_seeds_audit_signals(strategy_with_base_pillars):
    sid = strategy_with_base_pillars["id"]
    generate_pillar(sid, "R")
    generate_pillar(sid, "T")

    signals = Signal.query.filter_by(strategy_id=sid).all()
    assert len(signals) == 6
    assert {s.source for s in signals} == {"audit_t", "audit_r"}

    # a regeneration does not seed twice
    generate_pillar(sid, "T")
    assert Signal.query.filter_by(strategy_id=sid).count() == 6


def test_full_pipeline_completes_strategy(strategy_with_base_pillars):
    sid = strategy_with_base_pillars["id"]
    generate_pillar(sid, "R")
    assert _strategy(sid).phase == "market-study"
    generate_pillar(sid, "T")
    assert _strategy(sid).phase == "audit-review"
    phase_machine.validate_audit_review(sid)
    generate_pillar(sid, "I")
    assert _strategy(sid).phase == "cockpit"
    generate_pillar(sid, "S")

    row = _strategy(sid)
    assert row.phase == "complete"
    assert row.status == "complete"
    assert row.complete_pillar_types() == set(PILLAR_TYPES)
