"""
Widget registry: explicit id → handler map, built once at import.

Listing order is the compute order used by ``compute_all_available``.
"""

from app.services.widgets import campaign_tracker, codb_calculator, da_visual_identity, superfan_tracker
from app.services.widgets.base import WidgetHandler

WIDGETS: dict[str, WidgetHandler] = {
    h.descriptor.id: h
    for h in (
        codb_calculator.HANDLER,
        da_visual_identity.HANDLER,
        superfan_tracker.HANDLER,
        campaign_tracker.HANDLER,
    )
}


def get_handler(widget_id: str) -> WidgetHandler | None:
    return WIDGETS.get(widget_id)


def handlers_depending_on(pillar_type: str) -> list[WidgetHandler]:
    return [h for h in WIDGETS.values() if pillar_type in h.descriptor.required_pillars]
