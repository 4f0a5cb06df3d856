"""Standardised API error responses.

Usage
-----
    from app.utils.errors import api_error, E

    return api_error(E.NOT_FOUND, "Strategy not found")
    return api_error(E.VALIDATION_REQUIRED, "name is required")
    return api_error(E.PHASE_TRANSITION, "Cannot advance", details={"allowed": [...]})
"""

from __future__ import annotations

import logging

from flask import jsonify, request
from werkzeug.exceptions import HTTPException

from app.models import db
from app.core.exceptions import (
    ConflictError,
    DebriefAlreadyExistsError,
    DebriefRequiredError,
    GenerationError,
    GenerationInProgressError,
    InvalidSignalStatusError,
    MissionTransitionError,
    NotFoundError,
    PhaseTransitionError,
    PillarLockedError,
    ValidationError,
)

logger = logging.getLogger(__name__)


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants.

    Convention:
     • ERR_  prefix for standard application errors
     • domain codes name the rule that rejected the call
    """

    # Validation – HTTP 400 (malformed) / 422 (business rule)
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"
    VALIDATION_CONSTRAINT = "ERR_VALIDATION_CONSTRAINT"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # Conflict / duplicate – HTTP 409
    CONFLICT_DUPLICATE = "ERR_CONFLICT_DUPLICATE"
    CONFLICT_STATE = "ERR_CONFLICT_STATE"

    # Server – HTTP 500
    DATABASE = "ERR_DATABASE"
    INTERNAL = "ERR_INTERNAL"

    # Domain rules – HTTP 422 / 409
    PHASE_TRANSITION = "PHASE_TRANSITION"
    PILLAR_LOCKED = "PILLAR_LOCKED"
    GENERATION_IN_PROGRESS = "GENERATION_IN_PROGRESS"
    INVALID_SIGNAL_STATUS = "INVALID_SIGNAL_STATUS"
    MISSION_TRANSITION = "MISSION_TRANSITION"
    DEBRIEF_REQUIRED = "DEBRIEF_REQUIRED"
    DEBRIEF_EXISTS = "DEBRIEF_EXISTS"

    # Upstream – HTTP 502
    GENERATION_FAILED = "GENERATION_FAILED"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.VALIDATION_CONSTRAINT: 422,
    E.NOT_FOUND: 404,
    E.CONFLICT_DUPLICATE: 409,
    E.CONFLICT_STATE: 409,
    E.DATABASE: 500,
    E.INTERNAL: 500,
    E.PHASE_TRANSITION: 422,
    E.PILLAR_LOCKED: 422,
    E.GENERATION_IN_PROGRESS: 409,
    E.INVALID_SIGNAL_STATUS: 422,
    E.MISSION_TRANSITION: 422,
    E.DEBRIEF_REQUIRED: 422,
    E.DEBRIEF_EXISTS: 409,
    E.GENERATION_FAILED: 502,
}

# Most specific first; the first isinstance match wins.
_EXCEPTION_CODES: list[tuple[type, str]] = [
    (PhaseTransitionError, E.PHASE_TRANSITION),
    (PillarLockedError, E.PILLAR_LOCKED),
    (InvalidSignalStatusError, E.INVALID_SIGNAL_STATUS),
    (MissionTransitionError, E.MISSION_TRANSITION),
    (DebriefRequiredError, E.DEBRIEF_REQUIRED),
    (GenerationInProgressError, E.GENERATION_IN_PROGRESS),
    (DebriefAlreadyExistsError, E.DEBRIEF_EXISTS),
    (ValidationError, E.VALIDATION_CONSTRAINT),
    (ConflictError, E.CONFLICT_DUPLICATE),
]


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
):
    """Return a standard JSON error response.

    Parameters
    ----------
    code : str
        Machine-readable error code (use ``E.*`` constants).
    message : str
        Human-readable explanation for developers / UI.
    status : int, optional
        HTTP status override.  Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``400``.
    details : dict, optional
        Extra structured payload (legal alternatives, offending field, etc.).

    Returns
    -------
    tuple[Response, int]
        ``(jsonify(body), http_status)`` – drop-in for Flask views.
    """

    http_status = status or _DEFAULT_STATUS.get(code, 400)

    body: dict = {
        "error": message,
        "code": code,
    }
    if details:
        body["details"] = details

    return jsonify(body), http_status


def error_code_for(exc: Exception) -> str:
    """Map a service exception onto its ``E`` code."""
    for exc_type, code in _EXCEPTION_CODES:
        if isinstance(exc, exc_type):
            return code
    return E.INTERNAL


def register_error_handlers(bp) -> None:
    """Attach the shared service-exception handlers to a blueprint."""

    @bp.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        return api_error(E.NOT_FOUND, str(error))

    @bp.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        return api_error(error_code_for(error), str(error), details=error.details)

    @bp.errorhandler(ConflictError)
    def _handle_conflict(error: ConflictError):
        return api_error(
            error_code_for(error), str(error),
            details={"resource": error.resource, "field": error.field},
        )

    @bp.errorhandler(GenerationError)
    def _handle_generation(error: GenerationError):
        return api_error(E.GENERATION_FAILED, str(error) or "Generation failed")

    @bp.errorhandler(Exception)
    def _handle_unexpected(error: Exception):
        if isinstance(error, HTTPException):
            return error
        db.session.rollback()
        logger.exception("Unexpected error in %s endpoint=%s", bp.name, request.endpoint)
        return api_error(E.INTERNAL, "Internal server error")
