"""
Mission workflow tests.

Covers:
    - transition table and the debrief gate on CLOSED
    - debrief validation (REVIEW-only, once per mission)
    - feedback loop: suggested signals + pricing insights, item isolation
    - assignments / estimated charge
    - deliverable upload + review
    - market pricing reference table
"""

import pytest

from app.core.exceptions import (
    DebriefAlreadyExistsError,
    DebriefRequiredError,
    MissionTransitionError,
    NotFoundError,
    ValidationError,
)
from app.models import db
from app.models.mission import MarketPricing, MissionDebrief
from app.models.signal import SIGNAL_LAYERS, Signal
from app.models.strategy import Strategy
from app.services import market_pricing, mission_service


def _to_review(mission_id):
    for status in ("INTELLIGENCE", "STAFFING", "IN_PROGRESS", "REVIEW"):
        mission_service.transition_mission(mission_id, status)


def _debrief_payload(**overrides):
    data = {
        "summary": "Shoot delivered, client happy",
        "quality_score": 85,
        "on_time": True,
        "on_budget": False,
        "signals_suggested": [{"title": "Clients ask for same-day delivery"}],
        "pricing_insights": [{"subcategory": "photographer", "min_price": 50000, "max_price": 90000}],
    }
    data.update(overrides)
    return data


# ═════════════════════════════════════════════════════════════════════════════
# Missions & transitions
# ═════════════════════════════════════════════════════════════════════════════


def test_create_mission_defaults(mission):
    assert mission["status"] == "INTAKE"
    assert mission["currency"] == "XAF"
    assert mission["budget"] == 3000.0
    assert mission["has_debrief"] is False


@pytest.mark.parametrize("data", [
    {"title": ""},
    {"title": "x", "budget": -5},
    {"title": "x", "budget": "a lot"},
    {"title": "x", "start_date": "tomorrow"},
])
def test_create_mission_validation(strategy, data):
    with pytest.raises(ValidationError):
        mission_service.create_mission(strategy["id"], data)


def test_walk_to_review(mission):
    _to_review(mission["id"])
    assert mission_service.get_mission(mission["id"])["status"] == "REVIEW"


def test_invalid_transition_names_allowed(mission):
    with pytest.raises(MissionTransitionError) as exc_info:
        mission_service.transition_mission(mission["id"], "REVIEW")
    assert exc_info.value.details["allowed"] == ["INTELLIGENCE"]


def test_review_can_go_back_to_work(mission):
    _to_review(mission["id"])
    assert mission_service.transition_mission(mission["id"], "IN_PROGRESS")["status"] == "IN_PROGRESS"


def test_update_mission_cannot_set_status(mission):
    with pytest.raises(ValidationError):
        mission_service.update_mission(mission["id"], {"status": "CLOSED"})
    updated = mission_service.update_mission(mission["id"], {"title": "Reshoot", "budget": 4500})
    assert updated["title"] == "Reshoot"
    assert updated["budget"] == 4500.0


def test_kanban_has_every_column(strategy, mission):
    board = mission_service.get_kanban(strategy["id"])
    assert set(board["columns"]) == {
        "INTAKE", "INTELLIGENCE", "STAFFING", "IN_PROGRESS", "REVIEW", "CLOSED", "MAINTENANCE",
    }
    assert board["counts"]["INTAKE"] == 1
    assert board["columns"]["INTAKE"][0]["id"] == mission["id"]


# ═════════════════════════════════════════════════════════════════════════════
# Debrief gate
# ═════════════════════════════════════════════════════════════════════════════


def test_close_requires_debrief_then_succeeds(mission):
    _to_review(mission["id"])

    with pytest.raises(DebriefRequiredError):
        mission_service.transition_mission(mission["id"], "CLOSED")
    assert mission_service.get_mission(mission["id"])["status"] == "REVIEW"

    debrief = mission_service.complete_debrief(mission["id"], _debrief_payload(), actor="alice")
    assert debrief["quality_score"] == 85
    assert debrief["completed_by"] == "alice"

    closed = mission_service.transition_mission(mission["id"], "CLOSED")
    assert closed["status"] == "CLOSED"
    assert closed["closed_at"] is not None
    assert closed["has_debrief"] is True
    assert mission_service.transition_mission(mission["id"], "MAINTENANCE")["status"] == "MAINTENANCE"


def test_debrief_outside_review(mission):
    with pytest.raises(ValidationError) as exc_info:
        mission_service.complete_debrief(mission["id"], _debrief_payload())
    assert exc_info.value.details["required"] == "REVIEW"
    assert MissionDebrief.query.count() == 0


def test_duplicate_debrief_conflicts(mission):
    _to_review(mission["id"])
    mission_service.complete_debrief(mission["id"], _debrief_payload(signals_suggested=[], pricing_insights=[]))

    with pytest.raises(DebriefAlreadyExistsError):
        mission_service.complete_debrief(mission["id"], _debrief_payload())
    assert MissionDebrief.query.count() == 1


@pytest.mark.parametrize("overrides", [
    {"summary": "  "},
    {"quality_score": 101},
    {"quality_score": -1},
    {"quality_score": "great"},
    {"signals_suggested": "same-day delivery"},
    {"pricing_insights": [["50000", "90000"]]},
])
def test_debrief_validation(mission, overrides):
    _to_review(mission["id"])
    with pytest.raises(ValidationError):
        mission_service.complete_debrief(mission["id"], _debrief_payload(**overrides))
    assert MissionDebrief.query.count() == 0


# ═════════════════════════════════════════════════════════════════════════════
# Feedback loop
# ═════════════════════════════════════════════════════════════════════════════


def test_debrief_default_status_covers_every_layer():
    assert set(mission_service.DEBRIEF_DEFAULT_STATUS) == set(SIGNAL_LAYERS)


def test_debrief_feeds_signals_and_pricing(strategy, mission):
    _to_review(mission["id"])
    mission_service.complete_debrief(mission["id"], _debrief_payload())

    signal = Signal.query.filter_by(strategy_id=strategy["id"]).one()
    assert signal.title == "Clients ask for same-day delivery"
    assert (signal.layer, signal.status, signal.pillar) == ("STRONG", "EMERGING", "S")
    assert signal.source == "DEBRIEF"

    rows = market_pricing.list_market_pricing(market="CM")
    assert len(rows) == 1
    assert rows[0]["subcategory"] == "photographer"
    assert rows[0]["avg_price"] == 70000.0
    assert rows[0]["source"] == "mission_debrief"
    assert rows[0]["strategy_id"] == strategy["id"]


def test_debrief_signal_flags_pillar_stale(strategy_with_base_pillars, mission):
    _to_review(mission["id"])
    mission_service.complete_debrief(mission["id"], _debrief_payload(
        signals_suggested=[{"title": "Tone feels dated", "pillar": "D", "layer": "weak"}],
        pricing_insights=[],
    ))

    strategy = db.session.get(Strategy, strategy_with_base_pillars["id"])
    assert {p.type for p in strategy.pillars if p.is_stale} == {"D", "V", "E"}
    assert Signal.query.one().status == "WATCH"


def test_feedback_loop_isolates_bad_items(strategy, mission):
    _to_review(mission["id"])
    debrief = mission_service.complete_debrief(mission["id"], _debrief_payload(
        signals_suggested=[{"title": ""}, {"title": "Valid insight"}, {"title": "Bad", "layer": "NOPE"}],
        pricing_insights=[
            {"min_price": 100, "max_price": 50},
            {"min_price": 100},
            {"subcategory": "stylist", "min_price": 20000, "max_price": 40000},
        ],
    ))

    assert MissionDebrief.query.count() == 1
    assert [s.title for s in Signal.query.all()] == ["Valid insight"]
    assert [r.subcategory for r in MarketPricing.query.all()] == ["stylist"]

    # re-running reports the per-item outcome
    summary = mission_service.run_feedback_loop(debrief["id"])
    assert summary == {"signals": 1, "pricing": 1, "failures": 3}


def test_feedback_loop_unknown_debrief():
    with pytest.raises(NotFoundError):
        mission_service.run_feedback_loop("missing")


# ═════════════════════════════════════════════════════════════════════════════
# Assignments & charge
# ═════════════════════════════════════════════════════════════════════════════


def test_estimated_charge_excludes_cancelled(mission):
    a1 = mission_service.add_assignment(mission["id"], {"talent_name": "Awa", "role": "Photographer",
                                                         "day_rate": 500, "estimated_days": 3})
    mission_service.add_assignment(mission["id"], {"talent_name": "Ben", "role": "Stylist",
                                                   "day_rate": 1000, "estimated_days": 2})
    cancelled = mission_service.add_assignment(mission["id"], {"talent_name": "Cy", "role": "MUA",
                                                               "day_rate": 800, "estimated_days": 1})
    mission_service.update_assignment_status(cancelled["id"], "CANCELLED")

    charge = mission_service.calculate_estimated_charge(mission["id"])
    assert charge["total"] == 3500.0
    assert charge["budget"] == 3000.0
    assert charge["over_budget"] is True
    assert charge["currency"] == "XAF"
    assert {line["talent_name"] for line in charge["lines"]} == {"Awa", "Ben"}
    assert a1["estimated_charge"] == 1500.0


def test_assignment_validation(mission):
    with pytest.raises(ValidationError):
        mission_service.add_assignment(mission["id"], {"talent_name": "Awa"})
    a = mission_service.add_assignment(mission["id"], {"talent_name": "Awa", "role": "Photographer"})
    with pytest.raises(ValidationError):
        mission_service.update_assignment_status(a["id"], "FIRED")


# ═════════════════════════════════════════════════════════════════════════════
# Deliverables
# ═════════════════════════════════════════════════════════════════════════════


def test_deliverable_upload_then_review(mission):
    deliverable = mission_service.add_deliverable(mission["id"], {"title": "Lookbook"})
    assert deliverable["status"] == "PENDING"

    with pytest.raises(ValidationError):
        mission_service.review_deliverable(deliverable["id"], approved=True)

    uploaded = mission_service.upload_deliverable(deliverable["id"], "https://files.example/lookbook.pdf")
    assert uploaded["status"] == "UPLOADED"

    reviewed = mission_service.review_deliverable(deliverable["id"], approved=False, notes="Cover too dark",
                                                  reviewer="alice")
    assert reviewed["status"] == "REJECTED"
    assert reviewed["review_notes"] == "Cover too dark"
    assert reviewed["reviewed_by"] == "alice"


def test_approved_deliverable_is_final(mission):
    deliverable = mission_service.add_deliverable(mission["id"], {"title": "Lookbook"})
    mission_service.upload_deliverable(deliverable["id"], "https://files.example/v1.pdf")
    mission_service.review_deliverable(deliverable["id"], approved=True)
    with pytest.raises(ValidationError):
        mission_service.upload_deliverable(deliverable["id"], "https://files.example/v2.pdf")


def test_upload_requires_url(mission):
    deliverable = mission_service.add_deliverable(mission["id"], {"title": "Lookbook"})
    with pytest.raises(ValidationError):
        mission_service.upload_deliverable(deliverable["id"], "")


# ═════════════════════════════════════════════════════════════════════════════
# Market pricing
# ═════════════════════════════════════════════════════════════════════════════


def test_upsert_pricing_overwrites_key():
    market_pricing.upsert_pricing(min_price=10, max_price=20)
    row = market_pricing.upsert_pricing(min_price=30, max_price=50, label="Talent day rate")

    assert MarketPricing.query.count() == 1
    assert (row["market"], row["category"], row["subcategory"]) == ("CM", "TALENT", "general")
    assert row["avg_price"] == 40.0
    assert row["label"] == "Talent day rate"


def test_pricing_list_order_and_filters():
    market_pricing.upsert_pricing(min_price=1, max_price=2, market="SN", category="TALENT", subcategory="model")
    market_pricing.upsert_pricing(min_price=1, max_price=2, market="CM", category="MEDIA", subcategory="radio")
    market_pricing.upsert_pricing(min_price=1, max_price=2, market="CM", category="MEDIA", subcategory="ooh")

    keys = [(r["market"], r["subcategory"]) for r in market_pricing.list_market_pricing()]
    assert keys == [("CM", "ooh"), ("CM", "radio"), ("SN", "model")]
    assert len(market_pricing.list_market_pricing(category="TALENT")) == 1


@pytest.mark.parametrize("kwargs", [
    {"min_price": 20, "max_price": 10},
    {"min_price": -1, "max_price": 10},
    {"min_price": "cheap", "max_price": 10},
    {"min_price": 1, "max_price": 10, "confidence": "CERTAIN"},
])
def test_upsert_pricing_validation(kwargs):
    with pytest.raises(ValidationError):
        market_pricing.upsert_pricing(**kwargs)
