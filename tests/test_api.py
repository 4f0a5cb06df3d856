"""
HTTP surface tests: status codes, error codes and ownership through the
blueprints. Service behaviour is covered in the per-service modules.
"""

from datetime import datetime, timezone

import pytest

from app.models import db
from app.models.mission import MissionDeliverable
from app.models.signal import Decision, Signal
from app.models.strategy import Strategy
from app.services import mission_service, signal_engine


def _create(client, **overrides):
    body = {"name": "Maison API", "sector": "Food", "interview_data": {"positioning": "Premium"}}
    body.update(overrides)
    return client.post("/api/v1/strategies", json=body, headers={"X-User": "alice"})


# ── Health & app-level handlers ──────────────────────────────────────────────


def test_health_probes(client):
    assert client.get("/api/v1/health/ready").status_code == 200

    res = client.get("/api/v1/health/live")
    assert res.status_code == 200
    body = res.get_json()
    assert body["status"] == "healthy"
    assert body["checks"]["database"]["status"] == "ok"
    assert body["checks"]["generation"]["provider"] == "local"


def test_unknown_route_is_json_404(client):
    res = client.get("/api/v1/nowhere")
    assert res.status_code == 404
    assert res.get_json()["path"] == "/api/v1/nowhere"


def test_wrong_method(client):
    assert client.delete("/api/v1/widgets").status_code == 405


def test_non_json_body_rejected(client):
    res = client.post("/api/v1/strategies", data="name=x", content_type="text/plain")
    assert res.status_code == 415


# ── Strategies ───────────────────────────────────────────────────────────────


def test_create_strategy(client):
    res = _create(client)
    assert res.status_code == 201
    body = res.get_json()
    assert body["owner"] == "alice"
    assert body["phase"] == "fiche"
    assert len(body["pillars"]) == 8


def test_create_strategy_requires_name(client):
    res = _create(client, name="")
    assert res.status_code == 422
    assert res.get_json()["code"] == "ERR_VALIDATION_CONSTRAINT"


def test_unknown_strategy_is_404(client):
    res = client.get("/api/v1/strategies/missing")
    assert res.status_code == 404
    assert res.get_json()["code"] == "ERR_NOT_FOUND"


def test_other_owner_sees_404(client):
    sid = _create(client).get_json()["id"]

    assert client.get(f"/api/v1/strategies/{sid}", headers={"X-User": "alice"}).status_code == 200
    assert client.get(f"/api/v1/strategies/{sid}", headers={"X-User": "bob"}).status_code == 404
    listed = client.get("/api/v1/strategies", headers={"X-User": "bob"}).get_json()
    assert listed["total"] == 0


def test_advance_from_fiche_is_rejected(client):
    sid = _create(client).get_json()["id"]
    res = client.post(f"/api/v1/strategies/{sid}/phase/advance", json={})
    assert res.status_code == 422
    body = res.get_json()
    assert body["code"] == "PHASE_TRANSITION"
    assert body["details"]["current"] == "fiche"


# ── Generation ───────────────────────────────────────────────────────────────


def test_generate_locked_pillar(client, provider):
    sid = _create(client).get_json()["id"]
    res = client.post(f"/api/v1/strategies/{sid}/pillars/R/generate")
    assert res.status_code == 422
    assert res.get_json()["code"] == "PILLAR_LOCKED"
    assert provider.calls == []


def test_generate_pillar(client, provider):
    sid = _create(client).get_json()["id"]
    res = client.post(f"/api/v1/strategies/{sid}/pillars/A/generate")
    assert res.status_code == 200
    body = res.get_json()
    assert body["status"] == "complete"
    assert body["version"] == 1
    assert provider.kinds_called() == ["A"]


def test_generate_while_generating_is_409(client, provider):
    sid = _create(client).get_json()["id"]
    pillar = db.session.get(Strategy, sid).pillar("D")
    pillar.status = "generating"
    pillar.generation_started_at = datetime.now(timezone.utc)
    db.session.commit()

    res = client.post(f"/api/v1/strategies/{sid}/pillars/D/generate")
    assert res.status_code == 409
    assert res.get_json()["code"] == "GENERATION_IN_PROGRESS"


def test_provider_failure_is_502(client, provider):
    sid = _create(client).get_json()["id"]
    provider.fail = RuntimeError("upstream timeout")

    res = client.post(f"/api/v1/strategies/{sid}/pillars/A/generate")
    assert res.status_code == 502
    assert res.get_json()["code"] == "GENERATION_FAILED"


def test_edit_pillar_requires_content(client):
    sid = _create(client).get_json()["id"]
    res = client.put(f"/api/v1/strategies/{sid}/pillars/A", json={"summary": "x"})
    assert res.status_code == 422


# ── Signals & decisions ──────────────────────────────────────────────────────


def test_signal_status_must_match_layer(client):
    sid = _create(client).get_json()["id"]
    res = client.post(f"/api/v1/strategies/{sid}/signals",
                      json={"layer": "WEAK", "status": "ACTIVE", "title": "x"})
    assert res.status_code == 422
    body = res.get_json()
    assert body["code"] == "INVALID_SIGNAL_STATUS"
    assert "WATCH" in body["details"]["allowed"]


def test_mutate_signal_escalates(client):
    sid = _create(client).get_json()["id"]
    signal = client.post(f"/api/v1/strategies/{sid}/signals",
                         json={"layer": "WEAK", "status": "WATCH", "title": "Resale"}).get_json()

    res = client.post(f"/api/v1/signals/{signal['id']}/mutate", json={"status": "BET", "reason": "survey"})
    assert res.status_code == 200
    assert res.get_json()["decision"]["priority"] == "P2"

    decisions = client.get(f"/api/v1/strategies/{sid}/decisions").get_json()
    assert decisions["total"] == 1


# ── Missions ─────────────────────────────────────────────────────────────────


def test_close_without_debrief(client, mission):
    for status in ("INTELLIGENCE", "STAFFING", "IN_PROGRESS", "REVIEW"):
        mission_service.transition_mission(mission["id"], status)

    res = client.post(f"/api/v1/missions/{mission['id']}/transition", json={"status": "CLOSED"})
    assert res.status_code == 422
    assert res.get_json()["code"] == "DEBRIEF_REQUIRED"

    debrief = {"summary": "Delivered", "quality_score": 80}
    assert client.post(f"/api/v1/missions/{mission['id']}/debrief", json=debrief).status_code == 201
    res = client.post(f"/api/v1/missions/{mission['id']}/debrief", json=debrief)
    assert res.status_code == 409
    assert res.get_json()["code"] == "DEBRIEF_EXISTS"

    res = client.post(f"/api/v1/missions/{mission['id']}/transition", json={"status": "CLOSED"})
    assert res.status_code == 200
    assert res.get_json()["status"] == "CLOSED"


def test_illegal_mission_transition(client, mission):
    res = client.post(f"/api/v1/missions/{mission['id']}/transition", json={"status": "REVIEW"})
    assert res.status_code == 422
    assert res.get_json()["code"] == "MISSION_TRANSITION"


# ── Widgets ──────────────────────────────────────────────────────────────────


def test_widget_catalogue(client):
    res = client.get("/api/v1/widgets")
    assert [w["id"] for w in res.get_json()["items"]][0] == "codb_calculator"


def test_unavailable_widget_is_422(client, strategy):
    res = client.post(f"/api/v1/strategies/{strategy['id']}/widgets/codb_calculator/compute")
    assert res.status_code == 422
    assert res.get_json()["details"]["missing_pillars"] == ["V"]


def test_unknown_widget_is_404(client, strategy):
    res = client.post(f"/api/v1/strategies/{strategy['id']}/widgets/horoscope/compute")
    assert res.status_code == 404


# ── Ownership on nested resources ────────────────────────────────────────────


@pytest.mark.parametrize("path", [
    "/strategies/{sid}/signals",
    "/strategies/{sid}/decisions",
    "/strategies/{sid}/metrics/thresholds",
    "/strategies/{sid}/missions",
    "/strategies/{sid}/missions/kanban",
    "/strategies/{sid}/widgets",
])
def test_strategy_scoped_routes_hide_other_owners(client, strategy, path):
    url = "/api/v1" + path.format(sid=strategy["id"])
    assert client.get(url, headers={"X-User": "alice"}).status_code == 200

    res = client.get(url, headers={"X-User": "bob"})
    assert res.status_code == 404
    assert res.get_json()["code"] == "ERR_NOT_FOUND"


def test_other_owner_cannot_touch_signal(client, strategy):
    signal = signal_engine.create_signal(strategy["id"], {"layer": "WEAK", "status": "WATCH", "title": "Resale"})
    bob = {"X-User": "bob"}

    assert client.get(f"/api/v1/signals/{signal['id']}", headers=bob).status_code == 404
    res = client.post(f"/api/v1/signals/{signal['id']}/mutate", json={"status": "BET"}, headers=bob)
    assert res.status_code == 404
    assert db.session.get(Signal, signal["id"]).status == "WATCH"
    assert Decision.query.count() == 0

    assert client.get(f"/api/v1/signals/{signal['id']}", headers={"X-User": "alice"}).status_code == 200


def test_other_owner_cannot_touch_mission_children(client, mission):
    deliverable = mission_service.add_deliverable(mission["id"], {"title": "Lookbook"})
    bob = {"X-User": "bob"}

    assert client.get(f"/api/v1/missions/{mission['id']}", headers=bob).status_code == 404
    res = client.post(f"/api/v1/deliverables/{deliverable['id']}/upload",
                      json={"file_url": "https://files.example/lookbook.pdf"}, headers=bob)
    assert res.status_code == 404
    assert db.session.get(MissionDeliverable, deliverable["id"]).file_url is None

    res = client.post(f"/api/v1/deliverables/{deliverable['id']}/upload",
                      json={"file_url": "https://files.example/lookbook.pdf"}, headers={"X-User": "alice"})
    assert res.status_code == 200


def test_other_owner_cannot_compute_widgets(client, strategy):
    res = client.post(f"/api/v1/strategies/{strategy['id']}/widgets/compute-all", headers={"X-User": "bob"})
    assert res.status_code == 404
