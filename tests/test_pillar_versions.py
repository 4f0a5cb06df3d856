"""
Pillar version store tests: snapshot-before-overwrite, history, restore.
"""

import pytest

from app.core.exceptions import GenerationInProgressError, NotFoundError, ValidationError
from app.models import db
from app.models.audit import AuditLog
from app.models.strategy import Pillar, PillarVersion, Strategy
from app.services import pillar_versions
from app.services.pipeline_orchestrator import generate_pillar


def _pillar(strategy_id, kind):
    return db.session.get(Strategy, strategy_id).pillar(kind)


# ═════════════════════════════════════════════════════════════════════════════
# overwrite_content
# ═════════════════════════════════════════════════════════════════════════════


def test_first_write_takes_no_snapshot(strategy):
    pillar = _pillar(strategy["id"], "A")
    snapshot = pillar_versions.overwrite_content(pillar, {"origine": "v1"}, source="generation")
    db.session.commit()

    assert snapshot is None
    assert pillar.version == 1
    assert pillar.versions.count() == 0


def test_overwrite_snapshots_prior_content(strategy):
    pillar = _pillar(strategy["id"], "A")
    pillar_versions.overwrite_content(pillar, {"origine": "v1"}, source="generation", summary="first")
    snapshot = pillar_versions.overwrite_content(pillar, {"origine": "v2"}, source="regeneration", actor="bob")
    db.session.commit()

    assert snapshot.version == 1
    assert snapshot.content == {"origine": "v1"}
    assert snapshot.summary == "first"
    assert snapshot.source == "regeneration"
    assert snapshot.created_by == "bob"
    assert pillar.version == 2
    assert pillar.content == {"origine": "v2"}


# ═════════════════════════════════════════════════════════════════════════════
# Manual edits
# ═════════════════════════════════════════════════════════════════════════════


def test_manual_edit_snapshots_and_bumps_version(strategy):
    sid = strategy["id"]
    generate_pillar(sid, "A")
    before = _pillar(sid, "A").content

    result = pillar_versions.update_pillar_content(sid, "A", {"origine": "Edited"}, actor="alice")

    assert result["version"] == 2
    assert result["content"] == {"origine": "Edited"}
    assert result["status"] == "complete"
    history = pillar_versions.list_versions(sid, "A")
    assert len(history) == 1
    assert history[0]["version"] == 1
    assert history[0]["source"] == "manual_edit"
    assert "content" not in history[0]
    assert pillar_versions.get_version(sid, "A", 1)["content"] == before

    audit = AuditLog.query.filter_by(strategy_id=sid, action="pillar.manual_edit").one()
    assert audit.actor == "alice"
    assert audit.diff == {"version": {"old": 1, "new": 2}}


def test_manual_edit_on_empty_pillar_completes_it(strategy):
    result = pillar_versions.update_pillar_content(strategy["id"], "V", {"unitEconomics": {}})
    assert result["version"] == 1
    assert result["status"] == "complete"
    assert pillar_versions.list_versions(strategy["id"], "V") == []


def test_manual_edit_rejected_while_generating(strategy):
    sid = strategy["id"]
    pillar = _pillar(sid, "D")
    pillar.status = "generating"
    db.session.commit()

    with pytest.raises(GenerationInProgressError):
        pillar_versions.update_pillar_content(sid, "D", {"tonDeVoix": {}})

    pillar = _pillar(sid, "D")
    assert pillar.version == 0
    assert pillar.content is None


def test_manual_edit_requires_object(strategy):
    with pytest.raises(ValidationError):
        pillar_versions.update_pillar_content(strategy["id"], "A", ["not", "an", "object"])


def test_manual_edit_unknown_kind(strategy):
    with pytest.raises(ValidationError):
        pillar_versions.update_pillar_content(strategy["id"], "Z", {})


def test_manual_edit_respects_owner(strategy):
    with pytest.raises(NotFoundError):
        pillar_versions.update_pillar_content(strategy["id"], "A", {"origine": "x"}, user="mallory")


def test_manual_edit_flags_downstream_pillars(strategy_with_base_pillars):
    sid = strategy_with_base_pillars["id"]
    pillar_versions.update_pillar_content(sid, "A", {"origine": "Rewritten"})

    strategy = db.session.get(Strategy, sid)
    assert not strategy.pillar("A").is_stale
    for kind in ("D", "V", "E"):
        assert strategy.pillar(kind).is_stale, kind
    assert strategy.pillar("D").stale_reason


# ═════════════════════════════════════════════════════════════════════════════
# History & restore
# ═════════════════════════════════════════════════════════════════════════════


def test_history_is_newest_first(strategy):
    sid = strategy["id"]
    for n in range(1, 4):
        pillar_versions.update_pillar_content(sid, "E", {"touchpoints": [n]})

    versions = [v["version"] for v in pillar_versions.list_versions(sid, "E")]
    assert versions == [2, 1]


def test_get_missing_version(strategy):
    with pytest.raises(NotFoundError):
        pillar_versions.get_version(strategy["id"], "A", 7)


def test_restore_snapshots_current_content(strategy):
    sid = strategy["id"]
    pillar_versions.update_pillar_content(sid, "A", {"origine": "one"})
    pillar_versions.update_pillar_content(sid, "A", {"origine": "two"})

    result = pillar_versions.restore_version(sid, "A", 1, actor="alice")

    assert result["content"] == {"origine": "one"}
    assert result["version"] == 3
    latest = pillar_versions.list_versions(sid, "A")[0]
    assert latest["version"] == 2
    assert latest["source"] == "restore"
    assert pillar_versions.get_version(sid, "A", 2)["content"] == {"origine": "two"}
    assert AuditLog.query.filter_by(strategy_id=sid, action="pillar.restore").count() == 1


def test_version_count_tracks_overwrites(strategy):
    sid = strategy["id"]
    generate_pillar(sid, "V")
    generate_pillar(sid, "V")
    pillar_versions.update_pillar_content(sid, "V", {"unitEconomics": {"cac": "1"}})

    pillar = _pillar(sid, "V")
    assert pillar.version == 3
    assert PillarVersion.query.filter_by(pillar_id=pillar.id).count() == pillar.version - 1
    assert db.session.get(Pillar, pillar.id).status == "complete"
