"""
Metric monitor: turns measured KPI values into METRIC-layer signals.

A threshold breach opens a METRIC signal (WARNING or CRITICAL) for the
metric key, or moves the open one through ``mutate_signal`` so that a
CRITICAL level escalates like any other mutation. A value back in range
returns the open signal to NORMAL.
"""

import logging
from datetime import datetime, timezone

from app.core.exceptions import NotFoundError, ValidationError
from app.models import db
from app.models.signal import THRESHOLD_DIRECTIONS, MetricThreshold, Signal
from app.models.strategy import PILLAR_TYPES, Strategy
from app.services import signal_engine

logger = logging.getLogger(__name__)


def upsert_threshold(strategy_id: str, data: dict) -> dict:
    """Create or replace the threshold for ``data["metric_key"]``."""
    if not db.session.get(Strategy, strategy_id):
        raise NotFoundError(resource="Strategy", resource_id=strategy_id)

    metric_key = (data.get("metric_key") or "").strip()
    if not metric_key:
        raise ValidationError("metric_key is required", details={"metric_key": "required"})
    direction = data.get("direction", "above")
    if direction not in THRESHOLD_DIRECTIONS:
        raise ValidationError(
            f"Unknown direction '{direction}'", details={"allowed": sorted(THRESHOLD_DIRECTIONS)},
        )
    pillar = data.get("pillar")
    if pillar is not None and pillar not in PILLAR_TYPES:
        raise ValidationError(f"Unknown pillar '{pillar}'", details={"allowed": list(PILLAR_TYPES)})
    try:
        warning = float(data["warning_value"])
        critical = float(data["critical_value"])
    except (KeyError, TypeError, ValueError) as exc:
        raise ValidationError(
            "warning_value and critical_value must be numbers",
            details={"warning_value": data.get("warning_value"), "critical_value": data.get("critical_value")},
        ) from exc
    if (direction == "above" and critical < warning) or (direction == "below" and critical > warning):
        raise ValidationError(
            "critical_value must lie beyond warning_value in the threshold direction",
            details={"direction": direction},
        )

    threshold = MetricThreshold.query.filter_by(strategy_id=strategy_id, metric_key=metric_key).first()
    if threshold is None:
        threshold = MetricThreshold(strategy_id=strategy_id, metric_key=metric_key)
        db.session.add(threshold)
    threshold.label = data.get("label") or metric_key
    threshold.pillar = pillar
    threshold.direction = direction
    threshold.warning_value = warning
    threshold.critical_value = critical
    db.session.commit()
    return threshold.to_dict()


def list_thresholds(strategy_id: str) -> list[dict]:
    rows = MetricThreshold.query.filter_by(strategy_id=strategy_id).order_by(MetricThreshold.metric_key)
    return [t.to_dict() for t in rows.all()]


def _open_signal(strategy_id: str, metric_key: str) -> Signal | None:
    return (
        Signal.query
        .filter_by(strategy_id=strategy_id, layer="METRIC", metric_key=metric_key)
        .order_by(Signal.created_at.desc())
        .first()
    )


def evaluate_metric(strategy_id: str, metric_key: str, value: float, actor: str = "metric_monitor") -> dict:
    """
    Compare *value* with the metric's threshold and open/move its signal.

    Returns:
        {"metric_key", "value", "level", "signal": dict | None}
    """
    threshold = MetricThreshold.query.filter_by(strategy_id=strategy_id, metric_key=metric_key).first()
    if threshold is None:
        raise NotFoundError(resource="MetricThreshold", resource_id=f"{strategy_id}/{metric_key}")
    try:
        value = float(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError("value must be a number", details={"value": value}) from exc

    level = threshold.level_for(value)
    signal = _open_signal(strategy_id, metric_key)
    result = {"metric_key": metric_key, "value": value, "level": level, "signal": None}

    if signal is None:
        if level == "NORMAL":
            return result
        created = signal_engine.create_signal(strategy_id, {
            "layer": "METRIC",
            "status": level,
            "pillar": threshold.pillar,
            "title": f"{threshold.label} out of range",
            "description": f"{threshold.label} = {value:g} ({threshold.direction} "
                           f"{threshold.warning_value:g}/{threshold.critical_value:g})",
            "source": "metric",
            "confidence": "HIGH",
            "metric_key": metric_key,
            "metric_value": value,
        })
        result["signal"] = created
    else:
        signal.metric_value = value
        signal.last_checked_at = datetime.now(timezone.utc)
        db.session.commit()
        result["signal"] = signal_engine.mutate_signal(
            signal.id, level, reason=f"{threshold.label} = {value:g}", actor=actor,
        )

    logger.info(
        "Metric %s evaluated: %s", metric_key, level,
        extra={"strategy_id": strategy_id, "event_type": "metric_evaluated"},
    )
    return result
