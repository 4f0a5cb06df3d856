"""
Decision queue tests: manual CRUD, priority ordering and lifecycle.
"""

import pytest

from app.core.exceptions import NotFoundError, ValidationError
from app.models.audit import AuditLog
from app.services import decision_service


def _decision(strategy_id, **overrides):
    data = {"title": "Choose launch city", "priority": "P1", "deadline_type": "MARKETING"}
    data.update(overrides)
    return decision_service.create_decision(strategy_id, data, actor="alice")


class TestDecisionCrud:
    def test_create_decision(self, strategy):
        result = _decision(strategy["id"], deadline="2026-12-01")
        assert result["status"] == "PENDING"
        assert result["priority"] == "P1"
        assert result["created_by"] == "alice"
        assert result["signal_id"] is None
        assert result["deadline"].startswith("2026-12-01")
        assert AuditLog.query.filter_by(entity_id=result["id"], action="decision.create").count() == 1

    @pytest.mark.parametrize("overrides", [
        {"title": ""},
        {"priority": "P9"},
        {"deadline_type": "SOMEDAY"},
        {"deadline": "next tuesday"},
    ])
    def test_create_decision_validation(self, strategy, overrides):
        with pytest.raises(ValidationError):
            _decision(strategy["id"], **overrides)

    def test_create_decision_unknown_strategy(self):
        with pytest.raises(NotFoundError):
            _decision("missing")

    def test_list_orders_by_priority(self, strategy):
        _decision(strategy["id"], title="later", priority="P2")
        _decision(strategy["id"], title="urgent", priority="P0")
        _decision(strategy["id"], title="normal", priority="P1")

        titles = [d["title"] for d in decision_service.list_decisions(strategy["id"])]
        assert titles == ["urgent", "normal", "later"]
        assert [d["title"] for d in decision_service.list_decisions(strategy["id"], priority="P2")] == ["later"]

    def test_list_rejects_unknown_status(self, strategy):
        with pytest.raises(ValidationError):
            decision_service.list_decisions(strategy["id"], status="DONE")

    def test_update_fields(self, strategy):
        decision = _decision(strategy["id"])
        updated = decision_service.update_decision(decision["id"], {"title": "Pick Douala", "priority": "P0"})
        assert updated["title"] == "Pick Douala"
        assert updated["priority"] == "P0"

    def test_update_cannot_touch_status(self, strategy):
        decision = _decision(strategy["id"])
        with pytest.raises(ValidationError):
            decision_service.update_decision(decision["id"], {"status": "RESOLVED"})
        assert decision_service.get_decision(decision["id"])["status"] == "PENDING"

    def test_delete_decision(self, strategy):
        decision = _decision(strategy["id"])
        decision_service.delete_decision(decision["id"])
        with pytest.raises(NotFoundError):
            decision_service.get_decision(decision["id"])


class TestDecisionLifecycle:
    def test_start_then_resolve(self, strategy):
        decision = _decision(strategy["id"])
        started = decision_service.start_decision(decision["id"], actor="alice")
        assert started["status"] == "IN_PROGRESS"

        resolved = decision_service.resolve_decision(decision["id"], "Douala first", actor="alice")
        assert resolved["status"] == "RESOLVED"
        assert resolved["resolution"] == "Douala first"
        assert resolved["resolved_at"] is not None

        actions = [
            row.action for row in
            AuditLog.query.filter_by(entity_id=decision["id"]).order_by(AuditLog.id).all()
        ]
        assert actions == ["decision.create", "decision.start", "decision.resolve"]

    def test_defer_and_reopen(self, strategy):
        decision = _decision(strategy["id"])
        assert decision_service.defer_decision(decision["id"])["status"] == "DEFERRED"
        assert decision_service.reopen_decision(decision["id"])["status"] == "PENDING"

    def test_resolved_is_terminal(self, strategy):
        decision = _decision(strategy["id"])
        decision_service.resolve_decision(decision["id"])

        for action in (decision_service.start_decision, decision_service.defer_decision,
                       decision_service.reopen_decision):
            with pytest.raises(ValidationError) as exc_info:
                action(decision["id"])
            assert exc_info.value.details["allowed"] == []

    def test_in_progress_cannot_reopen(self, strategy):
        decision = _decision(strategy["id"])
        decision_service.start_decision(decision["id"])
        with pytest.raises(ValidationError):
            decision_service.reopen_decision(decision["id"])
