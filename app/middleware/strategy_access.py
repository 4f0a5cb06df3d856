"""
Strategy access middleware: scopes routes to the strategy's owner.

Provides the ``@require_strategy_access`` decorator. The owning strategy is
read from a route parameter, either directly (``sid``) or through the
entity it identifies (signal, decision, mission, assignment, deliverable).

Usage:
    @bp.route("/api/v1/strategies/<sid>/signals")
    @require_strategy_access()
    def list_signals(sid):
        ...

    @bp.route("/api/v1/signals/<signal_id>")
    @require_strategy_access("signal_id", Signal)
    def get_signal(signal_id):
        ...

Without an ``X-User`` header the check is skipped. A strategy owned by
someone else is reported as missing (404), as for the strategy routes.
"""

import functools
import logging

from flask import request

from app.blueprints import current_user
from app.core.exceptions import NotFoundError
from app.models import db
from app.services.pipeline_orchestrator import can_access_strategy

logger = logging.getLogger(__name__)


def _owning_strategy_id(model, pk):
    entity = db.session.get(model, pk)
    if entity is None:
        return None
    if hasattr(entity, "strategy_id"):
        return entity.strategy_id
    # Assignments and deliverables hang off a mission
    return entity.mission.strategy_id


def require_strategy_access(param_name: str = "sid", model=None):
    """
    Decorator: 404 unless the caller owns the strategy behind the route.

    Args:
        param_name: Route parameter holding the strategy id, or the entity id
                    when ``model`` is given.
        model: Entity looked up by ``param_name``; its strategy is checked.
               An unknown entity id is left to the view's own 404.
    """
    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            user = current_user()
            if user is None:
                return f(*args, **kwargs)

            pk = kwargs.get(param_name)
            if pk is None:
                pk = (request.view_args or {}).get(param_name)

            strategy_id = pk if model is None else _owning_strategy_id(model, pk)
            if strategy_id is not None and not can_access_strategy(strategy_id, user):
                logger.warning(
                    "User %s denied access to strategy %s", user, strategy_id,
                    extra={"strategy_id": strategy_id, "event_type": "access_denied"},
                )
                raise NotFoundError(
                    resource="Strategy" if model is None else model.__name__,
                    resource_id=pk,
                )
            return f(*args, **kwargs)
        return decorated
    return decorator
