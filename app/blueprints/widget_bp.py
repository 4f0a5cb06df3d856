"""
Brand Strategy Orchestrator
Widget blueprint — cockpit widget catalogue and computation.

Endpoints:
    GET   /api/v1/widgets                                    — catalogue
    GET   /api/v1/strategies/<sid>/widgets                   — available + stored results
    POST  /api/v1/strategies/<sid>/widgets/<widget_id>/compute
    POST  /api/v1/strategies/<sid>/widgets/compute-all
"""

from flask import Blueprint, jsonify

from app.middleware.strategy_access import require_strategy_access
from app.services.widgets import compute_engine
from app.utils.errors import register_error_handlers

widget_bp = Blueprint("widget", __name__, url_prefix="/api/v1")
register_error_handlers(widget_bp)


@widget_bp.route("/widgets", methods=["GET"])
def list_widgets():
    return jsonify({"items": compute_engine.list_widgets()})


@widget_bp.route("/strategies/<sid>/widgets", methods=["GET"])
@require_strategy_access()
def strategy_widgets(sid):
    return jsonify({
        "available": compute_engine.compute_available(sid),
        "results": compute_engine.get_widget_results(sid),
    })


@widget_bp.route("/strategies/<sid>/widgets/compute-all", methods=["POST"])
@require_strategy_access()
def compute_all(sid):
    return jsonify(compute_engine.compute_all_available(sid))


@widget_bp.route("/strategies/<sid>/widgets/<widget_id>/compute", methods=["POST"])
@require_strategy_access()
def compute_widget(sid, widget_id):
    return jsonify(compute_engine.compute_widget(sid, widget_id))
