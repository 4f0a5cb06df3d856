"""
Brand Strategy Orchestrator
Signal blueprint — signals, metric thresholds and the decision queue.

Endpoints summary:
    SIGNAL    /api/v1/strategies/<sid>/signals                     GET, POST
              /api/v1/strategies/<sid>/signals/from-audit          POST  {track?, risk?}
              /api/v1/signals/<id>                                 GET, DELETE
              /api/v1/signals/<id>/mutate                          POST  {status, reason?}
              /api/v1/signals/<id>/mutations                       GET
              /api/v1/signals/<id>/escalate                        POST

    METRIC    /api/v1/strategies/<sid>/metrics/thresholds          GET, PUT
              /api/v1/strategies/<sid>/metrics/<key>/evaluate      POST  {value}

    DECISION  /api/v1/strategies/<sid>/decisions                   GET, POST
              /api/v1/decisions/<id>                               GET, PUT, DELETE
              /api/v1/decisions/<id>/start                         POST
              /api/v1/decisions/<id>/resolve                       POST  {resolution?}
              /api/v1/decisions/<id>/defer                         POST
              /api/v1/decisions/<id>/reopen                        POST
"""

from flask import Blueprint, jsonify, request

from app.blueprints import current_actor, json_body
from app.core.exceptions import ValidationError
from app.middleware.strategy_access import require_strategy_access
from app.models.signal import Decision, Signal
from app.services import decision_service, metric_monitor, signal_engine
from app.utils.errors import register_error_handlers

signal_bp = Blueprint("signal", __name__, url_prefix="/api/v1")
register_error_handlers(signal_bp)


# ═════════════════════════════════════════════════════════════════════════════
# SIGNALS
# ═════════════════════════════════════════════════════════════════════════════

@signal_bp.route("/strategies/<sid>/signals", methods=["GET"])
@require_strategy_access()
def list_signals(sid):
    items = signal_engine.list_signals(
        sid,
        layer=request.args.get("layer"),
        pillar=request.args.get("pillar"),
        status=request.args.get("status"),
    )
    return jsonify({"items": items, "total": len(items)})


@signal_bp.route("/strategies/<sid>/signals", methods=["POST"])
@require_strategy_access()
def create_signal(sid):
    return jsonify(signal_engine.create_signal(sid, json_body())), 201


@signal_bp.route("/strategies/<sid>/signals/from-audit", methods=["POST"])
@require_strategy_access()
def signals_from_audit(sid):
    data = json_body()
    items = signal_engine.bulk_create_from_audit(sid, data.get("track"), data.get("risk"))
    return jsonify({"items": items, "total": len(items)}), 201


@signal_bp.route("/signals/<signal_id>", methods=["GET"])
@require_strategy_access("signal_id", Signal)
def get_signal(signal_id):
    return jsonify(signal_engine.get_signal(signal_id))


@signal_bp.route("/signals/<signal_id>", methods=["DELETE"])
@require_strategy_access("signal_id", Signal)
def delete_signal(signal_id):
    signal_engine.delete_signal(signal_id)
    return jsonify({"deleted": True}), 200


@signal_bp.route("/signals/<signal_id>/mutate", methods=["POST"])
@require_strategy_access("signal_id", Signal)
def mutate_signal(signal_id):
    data = json_body()
    if not data.get("status"):
        raise ValidationError("status is required", details={"status": "required"})
    return jsonify(signal_engine.mutate_signal(
        signal_id, data["status"], data.get("reason", ""), actor=current_actor(),
    ))


@signal_bp.route("/signals/<signal_id>/mutations", methods=["GET"])
@require_strategy_access("signal_id", Signal)
def signal_mutations(signal_id):
    items = signal_engine.get_mutation_history(signal_id)
    return jsonify({"items": items, "total": len(items)})


@signal_bp.route("/signals/<signal_id>/escalate", methods=["POST"])
@require_strategy_access("signal_id", Signal)
def escalate_signal(signal_id):
    return jsonify(signal_engine.escalate_signal(signal_id))


# ═════════════════════════════════════════════════════════════════════════════
# METRIC THRESHOLDS
# ═════════════════════════════════════════════════════════════════════════════

@signal_bp.route("/strategies/<sid>/metrics/thresholds", methods=["GET"])
@require_strategy_access()
def list_thresholds(sid):
    return jsonify({"items": metric_monitor.list_thresholds(sid)})


@signal_bp.route("/strategies/<sid>/metrics/thresholds", methods=["PUT"])
@require_strategy_access()
def upsert_threshold(sid):
    return jsonify(metric_monitor.upsert_threshold(sid, json_body()))


@signal_bp.route("/strategies/<sid>/metrics/<metric_key>/evaluate", methods=["POST"])
@require_strategy_access()
def evaluate_metric(sid, metric_key):
    data = json_body()
    try:
        value = float(data["value"])
    except (KeyError, TypeError, ValueError):
        raise ValidationError("value must be a number", details={"value": data.get("value")})
    return jsonify(metric_monitor.evaluate_metric(sid, metric_key, value, actor=current_actor()))


# ═════════════════════════════════════════════════════════════════════════════
# DECISIONS
# ═════════════════════════════════════════════════════════════════════════════

@signal_bp.route("/strategies/<sid>/decisions", methods=["GET"])
@require_strategy_access()
def list_decisions(sid):
    items = decision_service.list_decisions(
        sid, status=request.args.get("status"), priority=request.args.get("priority"),
    )
    return jsonify({"items": items, "total": len(items)})


@signal_bp.route("/strategies/<sid>/decisions", methods=["POST"])
@require_strategy_access()
def create_decision(sid):
    return jsonify(decision_service.create_decision(sid, json_body(), actor=current_actor())), 201


@signal_bp.route("/decisions/<decision_id>", methods=["GET"])
@require_strategy_access("decision_id", Decision)
def get_decision(decision_id):
    return jsonify(decision_service.get_decision(decision_id))


@signal_bp.route("/decisions/<decision_id>", methods=["PUT"])
@require_strategy_access("decision_id", Decision)
def update_decision(decision_id):
    return jsonify(decision_service.update_decision(decision_id, json_body(), actor=current_actor()))


@signal_bp.route("/decisions/<decision_id>", methods=["DELETE"])
@require_strategy_access("decision_id", Decision)
def delete_decision(decision_id):
    decision_service.delete_decision(decision_id)
    return jsonify({"deleted": True}), 200


@signal_bp.route("/decisions/<decision_id>/start", methods=["POST"])
@require_strategy_access("decision_id", Decision)
def start_decision(decision_id):
    return jsonify(decision_service.start_decision(decision_id, actor=current_actor()))


@signal_bp.route("/decisions/<decision_id>/resolve", methods=["POST"])
@require_strategy_access("decision_id", Decision)
def resolve_decision(decision_id):
    data = json_body()
    return jsonify(decision_service.resolve_decision(
        decision_id, data.get("resolution", ""), actor=current_actor(),
    ))


@signal_bp.route("/decisions/<decision_id>/defer", methods=["POST"])
@require_strategy_access("decision_id", Decision)
def defer_decision(decision_id):
    return jsonify(decision_service.defer_decision(decision_id, actor=current_actor()))


@signal_bp.route("/decisions/<decision_id>/reopen", methods=["POST"])
@require_strategy_access("decision_id", Decision)
def reopen_decision(decision_id):
    return jsonify(decision_service.reopen_decision(decision_id, actor=current_actor()))
