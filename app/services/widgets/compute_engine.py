"""
Widget Compute Engine — Service Layer.

A widget is available when all its required pillars are complete and the
strategy has reached its minimum phase. ``compute_widget`` runs the pure
compute function on a read-only view of the strategy's pillar content,
validates the output against the widget's pydantic model and upserts the
WidgetResult for (strategy, widget):

    pending → computing → ready | error

A schema mismatch is logged and recorded as ``schema_warning``; the value
is still stored. ``invalidate`` flips dependent results back to pending
and keeps their last data.
"""

import copy
import logging
from datetime import datetime, timezone
from types import MappingProxyType

import pydantic
from sqlalchemy.exc import IntegrityError

from app.core.exceptions import NotFoundError, ValidationError
from app.models import db
from app.models.strategy import PILLAR_TYPES, Strategy
from app.models.widget import WidgetResult
from app.services.phase_machine import phase_rank
from app.services.widgets.base import WidgetComputeError, WidgetDescriptor, WidgetInput
from app.services.widgets.registry import WIDGETS, get_handler, handlers_depending_on

logger = logging.getLogger(__name__)


def _get_strategy(strategy_id: str) -> Strategy:
    strategy = db.session.get(Strategy, strategy_id)
    if not strategy:
        raise NotFoundError(resource="Strategy", resource_id=strategy_id)
    return strategy


def list_widgets() -> list[dict]:
    return [h.descriptor.to_dict() for h in WIDGETS.values()]


def missing_requirements(descriptor: WidgetDescriptor, strategy: Strategy) -> dict:
    """Empty dict when the widget can run for *strategy*."""
    complete = strategy.complete_pillar_types()
    missing = [k for k in descriptor.required_pillars if k not in complete]
    reasons = {}
    if missing:
        reasons["missing_pillars"] = missing
    if phase_rank(strategy.phase) < phase_rank(descriptor.minimum_phase):
        reasons["minimum_phase"] = descriptor.minimum_phase
    return reasons


def compute_available(strategy_id: str) -> list[dict]:
    """Descriptors of the widgets that can run for the strategy right now."""
    strategy = _get_strategy(strategy_id)
    return [
        h.descriptor.to_dict()
        for h in WIDGETS.values()
        if not missing_requirements(h.descriptor, strategy)
    ]


def build_input(strategy: Strategy) -> WidgetInput:
    pillars = {
        p.type: copy.deepcopy(p.content)
        for p in strategy.pillars
        if p.status == "complete" and p.content is not None
    }
    return WidgetInput(
        strategy_id=strategy.id,
        phase=strategy.phase,
        pillars=MappingProxyType(pillars),
        vertical=strategy.vertical,
    )


def _get_or_create_result(strategy_id: str, widget_id: str) -> WidgetResult:
    row = WidgetResult.query.filter_by(strategy_id=strategy_id, widget_type=widget_id).first()
    if row is not None:
        return row
    row = WidgetResult(strategy_id=strategy_id, widget_type=widget_id, status="pending")
    db.session.add(row)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        row = WidgetResult.query.filter_by(strategy_id=strategy_id, widget_type=widget_id).first()
        if row is None:
            raise
    return row


def compute_widget(strategy_id: str, widget_id: str) -> dict:
    """
    Compute one widget and store its result.

    Raises:
        NotFoundError: unknown widget or strategy.
        ValidationError: widget not available (details name what is missing).
    """
    handler = get_handler(widget_id)
    if handler is None:
        raise NotFoundError(resource="Widget", resource_id=widget_id)
    strategy = _get_strategy(strategy_id)
    missing = missing_requirements(handler.descriptor, strategy)
    if missing:
        raise ValidationError(f"Widget '{widget_id}' is not available yet", details=missing)

    row = _get_or_create_result(strategy_id, widget_id)
    row.status = "computing"
    db.session.commit()

    log_extra = {"strategy_id": strategy_id, "widget_id": widget_id}
    try:
        data = handler.compute(build_input(strategy))
    except Exception as exc:
        row.status = "error"
        row.error_message = str(exc) or exc.__class__.__name__
        db.session.commit()
        if isinstance(exc, WidgetComputeError):
            logger.warning("Widget %s could not compute: %s", widget_id, exc, extra=log_extra)
        else:
            logger.exception("Widget %s crashed", widget_id, extra=log_extra)
        return row.to_dict()

    try:
        handler.descriptor.output_schema.model_validate(data)
        row.schema_warning = None
    except pydantic.ValidationError as exc:
        row.schema_warning = str(exc)[:2000]
        logger.warning(
            "Widget %s output failed schema validation (%d error(s))", widget_id, exc.error_count(),
            extra=log_extra,
        )

    row.data = data
    row.status = "ready"
    row.error_message = None
    row.computed_at = datetime.now(timezone.utc)
    db.session.commit()
    logger.info("Widget %s computed", widget_id, extra=log_extra)
    return row.to_dict()


def compute_all_available(strategy_id: str) -> dict:
    """Compute every available widget in registry order."""
    strategy = _get_strategy(strategy_id)
    summary = {"computed": 0, "errors": 0, "skipped": 0, "results": []}
    for widget_id, handler in WIDGETS.items():
        if missing_requirements(handler.descriptor, strategy):
            summary["skipped"] += 1
            continue
        result = compute_widget(strategy_id, widget_id)
        summary["results"].append(result)
        if result["status"] == "ready":
            summary["computed"] += 1
        else:
            summary["errors"] += 1
    return summary


def invalidate(strategy_id: str, changed_kind: str) -> int:
    """Set results of widgets depending on *changed_kind* back to pending."""
    if changed_kind not in PILLAR_TYPES:
        raise ValidationError(f"Unknown pillar kind '{changed_kind}'", details={"allowed": list(PILLAR_TYPES)})
    widget_ids = [h.descriptor.id for h in handlers_depending_on(changed_kind)]
    if not widget_ids:
        return 0
    rows = WidgetResult.query.filter(
        WidgetResult.strategy_id == strategy_id,
        WidgetResult.widget_type.in_(widget_ids),
        WidgetResult.status != "pending",
    ).all()
    for row in rows:
        row.status = "pending"
    db.session.commit()
    if rows:
        logger.info(
            "Invalidated %d widget result(s) after %s changed", len(rows), changed_kind,
            extra={"strategy_id": strategy_id, "pillar_type": changed_kind},
        )
    return len(rows)


def get_widget_results(strategy_id: str) -> list[dict]:
    _get_strategy(strategy_id)
    rows = WidgetResult.query.filter_by(strategy_id=strategy_id).order_by(WidgetResult.widget_type)
    return [r.to_dict() for r in rows.all()]
