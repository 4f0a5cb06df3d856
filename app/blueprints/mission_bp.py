"""
Brand Strategy Orchestrator
Mission blueprint — missions, debriefs, assignments, deliverables, market pricing.

Endpoints summary:
    MISSION      /api/v1/strategies/<sid>/missions                    GET, POST
                 /api/v1/strategies/<sid>/missions/kanban             GET
                 /api/v1/missions/<id>                                GET, PUT, DELETE
                 /api/v1/missions/<id>/transition                     POST  {status}
                 /api/v1/missions/<id>/debrief                        POST
                 /api/v1/missions/<id>/charge                         GET

    ASSIGNMENT   /api/v1/missions/<id>/assignments                    POST
                 /api/v1/assignments/<id>/status                      POST  {status}

    DELIVERABLE  /api/v1/missions/<id>/deliverables                   POST
                 /api/v1/deliverables/<id>/upload                     POST  {file_url}
                 /api/v1/deliverables/<id>/review                     POST  {approved, notes?}

    PRICING      /api/v1/market-pricing                               GET, PUT
"""

from flask import Blueprint, jsonify, request

from app.blueprints import current_actor, json_body
from app.core.exceptions import ValidationError
from app.middleware.strategy_access import require_strategy_access
from app.models.mission import Mission, MissionAssignment, MissionDeliverable
from app.services import market_pricing, mission_service
from app.utils.errors import register_error_handlers

mission_bp = Blueprint("mission", __name__, url_prefix="/api/v1")
register_error_handlers(mission_bp)


# ═════════════════════════════════════════════════════════════════════════════
# MISSIONS
# ═════════════════════════════════════════════════════════════════════════════

@mission_bp.route("/strategies/<sid>/missions", methods=["GET"])
@require_strategy_access()
def list_missions(sid):
    items = mission_service.list_missions(sid, status=request.args.get("status"))
    return jsonify({"items": items, "total": len(items)})


@mission_bp.route("/strategies/<sid>/missions", methods=["POST"])
@require_strategy_access()
def create_mission(sid):
    return jsonify(mission_service.create_mission(sid, json_body(), actor=current_actor())), 201


@mission_bp.route("/strategies/<sid>/missions/kanban", methods=["GET"])
@require_strategy_access()
def mission_kanban(sid):
    return jsonify(mission_service.get_kanban(sid))


@mission_bp.route("/missions/<mission_id>", methods=["GET"])
@require_strategy_access("mission_id", Mission)
def get_mission(mission_id):
    return jsonify(mission_service.get_mission(mission_id))


@mission_bp.route("/missions/<mission_id>", methods=["PUT"])
@require_strategy_access("mission_id", Mission)
def update_mission(mission_id):
    return jsonify(mission_service.update_mission(mission_id, json_body()))


@mission_bp.route("/missions/<mission_id>", methods=["DELETE"])
@require_strategy_access("mission_id", Mission)
def delete_mission(mission_id):
    mission_service.delete_mission(mission_id)
    return jsonify({"deleted": True}), 200


@mission_bp.route("/missions/<mission_id>/transition", methods=["POST"])
@require_strategy_access("mission_id", Mission)
def transition_mission(mission_id):
    data = json_body()
    if not data.get("status"):
        raise ValidationError("status is required", details={"status": "required"})
    return jsonify(mission_service.transition_mission(mission_id, data["status"], actor=current_actor()))


@mission_bp.route("/missions/<mission_id>/debrief", methods=["POST"])
@require_strategy_access("mission_id", Mission)
def complete_debrief(mission_id):
    return jsonify(mission_service.complete_debrief(mission_id, json_body(), actor=current_actor())), 201


@mission_bp.route("/missions/<mission_id>/charge", methods=["GET"])
@require_strategy_access("mission_id", Mission)
def estimated_charge(mission_id):
    return jsonify(mission_service.calculate_estimated_charge(mission_id))


# ═════════════════════════════════════════════════════════════════════════════
# ASSIGNMENTS & DELIVERABLES
# ═════════════════════════════════════════════════════════════════════════════

@mission_bp.route("/missions/<mission_id>/assignments", methods=["POST"])
@require_strategy_access("mission_id", Mission)
def add_assignment(mission_id):
    return jsonify(mission_service.add_assignment(mission_id, json_body())), 201


@mission_bp.route("/assignments/<assignment_id>/status", methods=["POST"])
@require_strategy_access("assignment_id", MissionAssignment)
def assignment_status(assignment_id):
    data = json_body()
    return jsonify(mission_service.update_assignment_status(assignment_id, data.get("status")))


@mission_bp.route("/missions/<mission_id>/deliverables", methods=["POST"])
@require_strategy_access("mission_id", Mission)
def add_deliverable(mission_id):
    return jsonify(mission_service.add_deliverable(mission_id, json_body())), 201


@mission_bp.route("/deliverables/<deliverable_id>/upload", methods=["POST"])
@require_strategy_access("deliverable_id", MissionDeliverable)
def upload_deliverable(deliverable_id):
    data = json_body()
    return jsonify(mission_service.upload_deliverable(deliverable_id, data.get("file_url")))


@mission_bp.route("/deliverables/<deliverable_id>/review", methods=["POST"])
@require_strategy_access("deliverable_id", MissionDeliverable)
def review_deliverable(deliverable_id):
    data = json_body()
    if not isinstance(data.get("approved"), bool):
        raise ValidationError("approved must be a boolean", details={"approved": data.get("approved")})
    return jsonify(mission_service.review_deliverable(
        deliverable_id, data["approved"], data.get("notes", ""), reviewer=current_actor(),
    ))


# ═════════════════════════════════════════════════════════════════════════════
# MARKET PRICING
# ═════════════════════════════════════════════════════════════════════════════

@mission_bp.route("/market-pricing", methods=["GET"])
def list_market_pricing():
    items = market_pricing.list_market_pricing(
        market=request.args.get("market"), category=request.args.get("category"),
    )
    return jsonify({"items": items, "total": len(items)})


@mission_bp.route("/market-pricing", methods=["PUT"])
def upsert_market_pricing():
    data = json_body()
    fields = ("market", "category", "subcategory", "label", "currency", "unit", "confidence", "strategy_id")
    return jsonify(market_pricing.upsert_pricing(
        min_price=data.get("min_price"),
        max_price=data.get("max_price"),
        source="manual",
        **{f: data[f] for f in fields if data.get(f) is not None},
    ))
