"""
Brand Strategy Orchestrator
Blueprint helpers.
"""

from flask import request

from app.core.exceptions import ValidationError

USER_HEADER = "X-User"


def current_user():
    """Acting user from the ``X-User`` header, or None (no ownership filter)."""
    user = (request.headers.get(USER_HEADER) or "").strip()
    return user or None


def current_actor() -> str:
    return current_user() or "system"


def json_body() -> dict:
    """Request JSON object; empty dict when there is no body."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def int_arg(name: str, default: int, maximum: int | None = None) -> int:
    try:
        value = int(request.args.get(name, default))
    except (TypeError, ValueError):
        value = default
    if maximum is not None:
        value = min(value, maximum)
    return max(value, 0)
