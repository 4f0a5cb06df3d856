"""
Orchestrator-wide exception hierarchy.

Services raise these types; blueprints register handlers against them
once and turn them into structured ``api_error`` bodies. Nothing leaves
the HTTP boundary as an opaque error.

Usage:
    from app.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Strategy", resource_id=strategy_id)
    raise ValidationError("Title is required", details={"title": "required"})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist within the caller's scope.

    Used for BOTH genuinely missing records AND strategies owned by
    someone else; a 403 would confirm the resource exists.

    Args:
        resource: Human-readable model/entity name (e.g. "Strategy", "Signal").
        resource_id: The PK that was looked up. Included in logs, not in HTTP response.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input fails business-rule validation in the service layer.

    The data was well-formed but violated a rule (invalid state transition,
    out-of-layer status, locked pillar). Maps to HTTP 422.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional structured breakdown (e.g. the legal alternatives).
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation collides with a unique key or an in-flight state.

    Maps to HTTP 409.

    Args:
        resource: Model name.
        field: The unique field (or state column) in conflict.
        value: The conflicting value.
    """

    def __init__(
        self,
        resource: str,
        field: str,
        value: str | None = None,
        message: str | None = None,
    ) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = message or f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)


# ── Phase / pipeline ─────────────────────────────────────────────────────────


class PhaseTransitionError(ValidationError):
    """Out-of-order phase transition. ``allowed`` lists the legal targets."""

    def __init__(self, current: str, target: str, allowed: list[str]) -> None:
        self.current = current
        self.target = target
        self.allowed = list(allowed)
        super().__init__(
            f"Cannot move phase from '{current}' to '{target}'. "
            f"Allowed: {', '.join(self.allowed) or 'none'}",
            details={"current": current, "target": target, "allowed": self.allowed},
        )


class PillarLockedError(ValidationError):
    """The pillar kind is not unlocked at the strategy's current phase."""

    def __init__(self, pillar_type: str, phase: str, required_phase: str) -> None:
        self.pillar_type = pillar_type
        self.phase = phase
        self.required_phase = required_phase
        super().__init__(
            f"Pillar {pillar_type} is locked until phase '{required_phase}' (current: '{phase}')",
            details={"pillar_type": pillar_type, "phase": phase, "required_phase": required_phase},
        )


class GenerationInProgressError(ConflictError):
    """A generate call for the same (strategy, pillar) is already in flight."""

    def __init__(self, strategy_id: str, pillar_type: str) -> None:
        self.strategy_id = strategy_id
        self.pillar_type = pillar_type
        super().__init__(
            "Pillar", "status", "generating",
            message=f"Pillar {pillar_type} of strategy {strategy_id} is already generating",
        )


class GenerationError(Exception):
    """The external generation collaborator failed or timed out."""


# ── Signals ──────────────────────────────────────────────────────────────────


class InvalidSignalStatusError(ValidationError):
    """Status is not a member of the layer's status set."""

    def __init__(self, layer: str, status: str, allowed: list[str]) -> None:
        self.layer = layer
        self.status = status
        self.allowed = list(allowed)
        super().__init__(
            f"Status '{status}' is not valid for layer {layer}. "
            f"Allowed: {', '.join(self.allowed)}",
            details={"layer": layer, "status": status, "allowed": self.allowed},
        )


# ── Missions ─────────────────────────────────────────────────────────────────


class MissionTransitionError(ValidationError):
    """Mission status move that is not in the transition table."""

    def __init__(self, current: str, target: str, allowed: list[str]) -> None:
        self.current = current
        self.target = target
        self.allowed = list(allowed)
        super().__init__(
            f"Invalid mission transition: {current} → {target}. "
            f"Allowed: {', '.join(self.allowed) or 'none'}",
            details={"current": current, "target": target, "allowed": self.allowed},
        )


class DebriefRequiredError(ValidationError):
    """Closing a mission needs a completed debrief first."""

    def __init__(self, mission_id: str) -> None:
        self.mission_id = mission_id
        super().__init__(
            "A completed debrief is required before closing the mission",
            details={"mission_id": mission_id, "required": "debrief"},
        )


class DebriefAlreadyExistsError(ConflictError):
    """A debrief was already recorded for this mission."""

    def __init__(self, mission_id: str) -> None:
        super().__init__("MissionDebrief", "mission_id", mission_id)
