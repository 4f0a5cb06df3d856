"""
Brand Strategy Orchestrator
Strategy blueprint — strategies, phase actions, pillars and versions.

Endpoints summary:
    STRATEGY  /api/v1/strategies                                    GET, POST
              /api/v1/strategies/<sid>                              GET, DELETE
              /api/v1/strategies/<sid>/archive                      POST

    PHASE     /api/v1/strategies/<sid>/phase/advance                POST  {target?}
              /api/v1/strategies/<sid>/phase/revert                 POST  {target}
              /api/v1/strategies/<sid>/phase/validate-fiche         POST  {interview_data?}
              /api/v1/strategies/<sid>/phase/validate-audit         POST  {r_content?, t_content?}

    MARKET    /api/v1/strategies/<sid>/market-study                 GET, PUT {synthesis, source_data?}
              /api/v1/strategies/<sid>/market-study/skip            POST

    PILLAR    /api/v1/strategies/<sid>/pillars/<kind>               GET, PUT {content, summary?}
              /api/v1/strategies/<sid>/pillars/<kind>/generate      POST
              /api/v1/strategies/<sid>/pillars/<kind>/versions      GET
              /api/v1/strategies/<sid>/pillars/<kind>/versions/<n>  GET
              /api/v1/strategies/<sid>/pillars/<kind>/versions/<n>/restore  POST

    STALE     /api/v1/strategies/<sid>/stale                        GET
              /api/v1/strategies/<sid>/freshness                    GET
              /api/v1/strategies/<sid>/propagate                    POST  {changed_kinds, reason?}

    DOCS      /api/v1/strategies/<sid>/translation-documents        GET, POST

    SCORES    /api/v1/strategies/<sid>/scores                       GET
              /api/v1/strategies/<sid>/scores/recalculate           POST
    AUDIT     /api/v1/strategies/<sid>/audit                        GET
"""

import logging

from flask import Blueprint, jsonify, request

from app.blueprints import current_actor, current_user, int_arg, json_body
from app.core.exceptions import ValidationError
from app.integrations import translation_docs
from app.models.audit import list_audit
from app.services import phase_machine, pillar_versions, pipeline_orchestrator, score_engine, staleness
from app.utils.errors import register_error_handlers

logger = logging.getLogger(__name__)

strategy_bp = Blueprint("strategy", __name__, url_prefix="/api/v1/strategies")
register_error_handlers(strategy_bp)


def _owned(sid):
    """404 unless the strategy exists and belongs to the caller."""
    return pipeline_orchestrator.get_strategy(sid, current_user())


# ═══════════════════════════════════════════════════════════════════════════
#  STRATEGY CRUD
# ═══════════════════════════════════════════════════════════════════════════

@strategy_bp.route("", methods=["GET"])
def list_strategies():
    items = pipeline_orchestrator.list_strategies(
        owner=current_user(), status=request.args.get("status"),
    )
    return jsonify({"items": items, "total": len(items)})


@strategy_bp.route("", methods=["POST"])
def create_strategy():
    data = json_body()
    strategy = pipeline_orchestrator.create_strategy(
        data.get("name"),
        data.get("interview_data"),
        sector=data.get("sector"),
        vertical=data.get("vertical"),
        description=data.get("description", ""),
        owner=current_actor(),
    )
    return jsonify(strategy), 201


@strategy_bp.route("/<sid>", methods=["GET"])
def get_strategy(sid):
    return jsonify(_owned(sid))


@strategy_bp.route("/<sid>", methods=["DELETE"])
def delete_strategy(sid):
    pipeline_orchestrator.delete_strategy(sid, user=current_user())
    return jsonify({"deleted": True}), 200


@strategy_bp.route("/<sid>/archive", methods=["POST"])
def archive_strategy(sid):
    return jsonify(pipeline_orchestrator.archive_strategy(sid, actor=current_actor(), user=current_user()))


# ═══════════════════════════════════════════════════════════════════════════
#  PHASE ACTIONS
# ═══════════════════════════════════════════════════════════════════════════

@strategy_bp.route("/<sid>/phase/advance", methods=["POST"])
def advance_phase(sid):
    data = json_body()
    return jsonify(phase_machine.advance_phase(
        sid, data.get("target"), actor=current_actor(), user=current_user(),
    ))


@strategy_bp.route("/<sid>/phase/revert", methods=["POST"])
def revert_phase(sid):
    data = json_body()
    if not data.get("target"):
        raise ValidationError("target is required", details={"target": "required"})
    return jsonify(phase_machine.revert_phase(
        sid, data["target"], actor=current_actor(), user=current_user(),
    ))


@strategy_bp.route("/<sid>/phase/validate-fiche", methods=["POST"])
def validate_fiche(sid):
    data = json_body()
    return jsonify(phase_machine.validate_fiche_review(
        sid, data.get("interview_data"), actor=current_actor(), user=current_user(),
    ))


@strategy_bp.route("/<sid>/phase/validate-audit", methods=["POST"])
def validate_audit(sid):
    data = json_body()
    return jsonify(phase_machine.validate_audit_review(
        sid, data.get("r_content"), data.get("t_content"),
        actor=current_actor(), user=current_user(),
    ))


# ═══════════════════════════════════════════════════════════════════════════
#  MARKET STUDY
# ═══════════════════════════════════════════════════════════════════════════

@strategy_bp.route("/<sid>/market-study", methods=["GET"])
def get_market_study(sid):
    return jsonify(_owned(sid)["market_study"])


@strategy_bp.route("/<sid>/market-study", methods=["PUT"])
def save_market_study(sid):
    data = json_body()
    return jsonify(phase_machine.save_market_synthesis(
        sid, data.get("synthesis"), data.get("source_data"),
        actor=current_actor(), user=current_user(),
    ))


@strategy_bp.route("/<sid>/market-study/skip", methods=["POST"])
def skip_market_study(sid):
    return jsonify(phase_machine.skip_market_study(sid, actor=current_actor(), user=current_user()))


# ═══════════════════════════════════════════════════════════════════════════
#  PILLARS & VERSIONS
# ═══════════════════════════════════════════════════════════════════════════

@strategy_bp.route("/<sid>/pillars/<kind>", methods=["GET"])
def get_pillar(sid, kind):
    return jsonify(pillar_versions.get_pillar(sid, kind, current_user()).to_dict())


@strategy_bp.route("/<sid>/pillars/<kind>/generate", methods=["POST"])
def generate_pillar(sid, kind):
    return jsonify(pipeline_orchestrator.generate_pillar(
        sid, kind, actor=current_actor(), user=current_user(),
    ))


@strategy_bp.route("/<sid>/pillars/<kind>", methods=["PUT"])
def edit_pillar(sid, kind):
    data = json_body()
    if "content" not in data:
        raise ValidationError("content is required", details={"content": "required"})
    return jsonify(pillar_versions.update_pillar_content(
        sid, kind, data["content"], actor=current_actor(),
        summary=data.get("summary"), user=current_user(),
    ))


@strategy_bp.route("/<sid>/pillars/<kind>/versions", methods=["GET"])
def list_versions(sid, kind):
    items = pillar_versions.list_versions(sid, kind, current_user())
    return jsonify({"items": items, "total": len(items)})


@strategy_bp.route("/<sid>/pillars/<kind>/versions/<int:version>", methods=["GET"])
def get_version(sid, kind, version):
    return jsonify(pillar_versions.get_version(sid, kind, version, current_user()))


@strategy_bp.route("/<sid>/pillars/<kind>/versions/<int:version>/restore", methods=["POST"])
def restore_version(sid, kind, version):
    return jsonify(pillar_versions.restore_version(
        sid, kind, version, actor=current_actor(), user=current_user(),
    ))


# ═══════════════════════════════════════════════════════════════════════════
#  STALENESS & TRANSLATION DOCUMENTS
# ═══════════════════════════════════════════════════════════════════════════

@strategy_bp.route("/<sid>/stale", methods=["GET"])
def stale_pillars(sid):
    _owned(sid)
    return jsonify({"items": staleness.get_stale_pillars(sid)})


@strategy_bp.route("/<sid>/freshness", methods=["GET"])
def freshness(sid):
    _owned(sid)
    return jsonify(staleness.check_freshness(sid))


@strategy_bp.route("/<sid>/propagate", methods=["POST"])
def propagate(sid):
    _owned(sid)
    data = json_body()
    return jsonify(staleness.propagate(sid, data.get("changed_kinds") or [], data.get("reason")))


@strategy_bp.route("/<sid>/translation-documents", methods=["GET"])
def list_translation_documents(sid):
    _owned(sid)
    return jsonify({"items": translation_docs.list_documents(sid, request.args.get("status"))})


@strategy_bp.route("/<sid>/translation-documents", methods=["POST"])
def register_translation_document(sid):
    _owned(sid)
    data = json_body()
    if not data.get("type") or not data.get("title"):
        raise ValidationError("type and title are required", details={"type": "required", "title": "required"})
    return jsonify(translation_docs.register_document(
        sid, data["type"], data["title"], data.get("source_pillars") or [],
    )), 201


# ═══════════════════════════════════════════════════════════════════════════
#  SCORES & AUDIT
# ═══════════════════════════════════════════════════════════════════════════

@strategy_bp.route("/<sid>/scores", methods=["GET"])
def get_scores(sid):
    _owned(sid)
    return jsonify(score_engine.get_scores(sid, history=int_arg("history", 10, maximum=100)))


@strategy_bp.route("/<sid>/scores/recalculate", methods=["POST"])
def recalculate_scores(sid):
    _owned(sid)
    return jsonify(score_engine.recalculate_all_scores(sid, trigger="manual"))


@strategy_bp.route("/<sid>/audit", methods=["GET"])
def strategy_audit(sid):
    _owned(sid)
    items = list_audit(sid, request.args.get("entity_type"), limit=int_arg("limit", 100, maximum=500))
    return jsonify({"items": items, "total": len(items)})
