"""Metric thresholds → METRIC-layer signals."""

import pytest

from app.core.exceptions import NotFoundError, ValidationError
from app.models.signal import Decision, MetricThreshold, Signal, SignalMutation
from app.services import metric_monitor


def _churn_threshold(strategy_id, **overrides):
    data = {
        "metric_key": "churn_rate",
        "label": "Monthly churn",
        "direction": "above",
        "warning_value": 5,
        "critical_value": 8,
        "pillar": "E",
    }
    data.update(overrides)
    return metric_monitor.upsert_threshold(strategy_id, data)


# ── Thresholds ───────────────────────────────────────────────────────────────


def test_upsert_threshold_replaces_existing(strategy):
    _churn_threshold(strategy["id"])
    updated = _churn_threshold(strategy["id"], warning_value=4, critical_value=6)

    assert MetricThreshold.query.count() == 1
    assert updated["warning_value"] == 4.0
    assert updated["critical_value"] == 6.0
    assert [t["metric_key"] for t in metric_monitor.list_thresholds(strategy["id"])] == ["churn_rate"]


@pytest.mark.parametrize("overrides", [
    {"metric_key": ""},
    {"direction": "sideways"},
    {"pillar": "Z"},
    {"warning_value": "lots"},
    {"critical_value": None},
    {"warning_value": 10, "critical_value": 8},
    {"direction": "below", "warning_value": 10, "critical_value": 20},
])
def test_upsert_threshold_validation(strategy, overrides):
    with pytest.raises(ValidationError):
        _churn_threshold(strategy["id"], **overrides)


def test_upsert_threshold_unknown_strategy():
    with pytest.raises(NotFoundError):
        _churn_threshold("missing")


# ── Evaluation ───────────────────────────────────────────────────────────────


def test_value_in_range_opens_nothing(strategy):
    _churn_threshold(strategy["id"])
    result = metric_monitor.evaluate_metric(strategy["id"], "churn_rate", 2)
    assert result == {"metric_key": "churn_rate", "value": 2.0, "level": "NORMAL", "signal": None}
    assert Signal.query.count() == 0


def test_warning_opens_metric_signal(strategy):
    _churn_threshold(strategy["id"])
    result = metric_monitor.evaluate_metric(strategy["id"], "churn_rate", 6.5)

    signal = result["signal"]
    assert result["level"] == "WARNING"
    assert signal["layer"] == "METRIC"
    assert signal["status"] == "WARNING"
    assert signal["source"] == "metric"
    assert signal["confidence"] == "HIGH"
    assert signal["title"] == "Monthly churn out of range"
    assert signal["metric_value"] == 6.5
    assert signal["decision"] is None


def test_critical_moves_open_signal_and_escalates(strategy):
    _churn_threshold(strategy["id"])
    first = metric_monitor.evaluate_metric(strategy["id"], "churn_rate", 6)
    second = metric_monitor.evaluate_metric(strategy["id"], "churn_rate", 9)

    assert second["signal"]["id"] == first["signal"]["id"]
    assert second["signal"]["status"] == "CRITICAL"
    assert second["signal"]["metric_value"] == 9.0
    assert second["signal"]["decision"]["priority"] == "P0"
    mutation = SignalMutation.query.one()
    assert (mutation.from_status, mutation.to_status) == ("WARNING", "CRITICAL")
    assert mutation.mutated_by == "metric_monitor"


def test_back_in_range_returns_to_normal(strategy):
    _churn_threshold(strategy["id"])
    metric_monitor.evaluate_metric(strategy["id"], "churn_rate", 12)
    result = metric_monitor.evaluate_metric(strategy["id"], "churn_rate", 1)

    assert result["level"] == "NORMAL"
    assert result["signal"]["status"] == "NORMAL"
    assert Signal.query.count() == 1
    assert Decision.query.count() == 1


def test_below_direction(strategy):
    metric_monitor.upsert_threshold(strategy["id"], {
        "metric_key": "nps", "direction": "below", "warning_value": 30, "critical_value": 10,
    })
    assert metric_monitor.evaluate_metric(strategy["id"], "nps", 50)["level"] == "NORMAL"
    assert metric_monitor.evaluate_metric(strategy["id"], "nps", 25)["level"] == "WARNING"
    assert metric_monitor.evaluate_metric(strategy["id"], "nps", 5)["level"] == "CRITICAL"


def test_evaluate_without_threshold(strategy):
    with pytest.raises(NotFoundError):
        metric_monitor.evaluate_metric(strategy["id"], "unknown", 1)


def test_evaluate_rejects_non_numeric(strategy):
    _churn_threshold(strategy["id"])
    with pytest.raises(ValidationError):
        metric_monitor.evaluate_metric(strategy["id"], "churn_rate", "high")
