"""
Pillar Version Store — Service Layer.

Every content overwrite of a pillar is preceded by an immutable
PillarVersion snapshot of the prior value (when there is one), and
bumps ``Pillar.version`` by exactly one. Generation, regeneration,
manual edits and restores all go through ``overwrite_content``.

Functions:
    - overwrite_content:      snapshot + overwrite + version bump (caller commits)
    - clear_staleness:        drop the advisory stale flag
    - get_pillar:             pillar of a strategy by kind
    - update_pillar_content:  manual edit (source="manual_edit")
    - list_versions:          snapshot history, newest first
    - get_version:            one snapshot by version number
    - restore_version:        copy a snapshot back (source="restore")
"""

import logging

from app.core.exceptions import GenerationInProgressError, NotFoundError, ValidationError
from app.models import db
from app.models.audit import write_audit
from app.models.strategy import PILLAR_TYPES, Pillar, PillarVersion, Strategy

logger = logging.getLogger(__name__)


def overwrite_content(
    pillar: Pillar,
    content,
    *,
    source: str,
    actor: str = "system",
    summary: str | None = None,
) -> PillarVersion | None:
    """
    Snapshot the current content, then overwrite it and bump the version.

    No snapshot is taken when the pillar has no prior content (first
    generation). Uses ``flush`` so callers keep transaction control.

    Returns:
        The new PillarVersion, or None when nothing was snapshotted.
    """
    snapshot = None
    if pillar.content is not None:
        snapshot = PillarVersion(
            pillar_id=pillar.id,
            version=pillar.version,
            content=pillar.content,
            summary=pillar.summary,
            source=source,
            created_by=actor or "system",
        )
        db.session.add(snapshot)

    pillar.content = content
    pillar.version = (pillar.version or 0) + 1
    if summary is not None:
        pillar.summary = summary
    db.session.flush()
    return snapshot


def clear_staleness(pillar: Pillar) -> None:
    pillar.stale_reason = None
    pillar.stale_since = None


def get_pillar(strategy_id: str, pillar_type: str, user: str | None = None) -> Pillar:
    if pillar_type not in PILLAR_TYPES:
        raise ValidationError(
            f"Unknown pillar type '{pillar_type}'",
            details={"allowed": list(PILLAR_TYPES)},
        )
    strategy = db.session.get(Strategy, strategy_id)
    if not strategy or (user is not None and strategy.owner != user):
        raise NotFoundError(resource="Strategy", resource_id=strategy_id)
    pillar = strategy.pillar(pillar_type)
    if pillar is None:
        raise NotFoundError(resource="Pillar", resource_id=f"{strategy_id}/{pillar_type}")
    return pillar


def update_pillar_content(
    strategy_id: str,
    pillar_type: str,
    content: dict,
    *,
    actor: str = "system",
    summary: str | None = None,
    user: str | None = None,
) -> dict:
    """
    Manual edit of a pillar's content.

    Snapshots the prior value, bumps the version, clears the pillar's own
    staleness, then schedules widget invalidation, downstream staleness
    propagation and a score recalculation.

    Raises:
        GenerationInProgressError: the pillar is currently generating.
    """
    if not isinstance(content, dict):
        raise ValidationError("content must be an object")
    pillar = get_pillar(strategy_id, pillar_type, user)
    if pillar.status == "generating":
        raise GenerationInProgressError(strategy_id, pillar_type)

    old_version = pillar.version
    overwrite_content(pillar, content, source="manual_edit", actor=actor, summary=summary)
    clear_staleness(pillar)
    pillar.status = "complete"
    pillar.error_message = None
    write_audit(
        entity_type="pillar",
        entity_id=pillar.id,
        action="pillar.manual_edit",
        actor=actor,
        strategy_id=strategy_id,
        diff={"version": {"old": old_version, "new": pillar.version}},
    )
    db.session.commit()
    logger.info(
        "Pillar %s edited manually (v%d)", pillar_type, pillar.version,
        extra={"strategy_id": strategy_id, "pillar_type": pillar_type},
    )

    from app.services.pipeline_orchestrator import schedule_content_side_effects
    schedule_content_side_effects(strategy_id, [pillar_type], trigger="manual_edit")
    return pillar.to_dict()


def list_versions(strategy_id: str, pillar_type: str, user: str | None = None) -> list[dict]:
    """Snapshot history of a pillar, newest first (content omitted)."""
    pillar = get_pillar(strategy_id, pillar_type, user)
    return [v.to_dict(include_content=False) for v in pillar.versions.all()]


def get_version(strategy_id: str, pillar_type: str, version: int, user: str | None = None) -> dict:
    pillar = get_pillar(strategy_id, pillar_type, user)
    snapshot = pillar.versions.filter(PillarVersion.version == version).first()
    if snapshot is None:
        raise NotFoundError(resource="PillarVersion", resource_id=f"{pillar.id}/v{version}")
    return snapshot.to_dict()


def restore_version(
    strategy_id: str,
    pillar_type: str,
    version: int,
    *,
    actor: str = "system",
    user: str | None = None,
) -> dict:
    """
    Bring back the content of snapshot *version*.

    The current content is snapshotted first (source="restore"), so a
    restore is itself reversible.
    """
    pillar = get_pillar(strategy_id, pillar_type, user)
    if pillar.status == "generating":
        raise GenerationInProgressError(strategy_id, pillar_type)
    snapshot = pillar.versions.filter(PillarVersion.version == version).first()
    if snapshot is None:
        raise NotFoundError(resource="PillarVersion", resource_id=f"{pillar.id}/v{version}")

    old_version = pillar.version
    overwrite_content(
        pillar, snapshot.content, source="restore", actor=actor,
        summary=snapshot.summary,
    )
    clear_staleness(pillar)
    pillar.status = "complete"
    pillar.error_message = None
    write_audit(
        entity_type="pillar",
        entity_id=pillar.id,
        action="pillar.restore",
        actor=actor,
        strategy_id=strategy_id,
        diff={"version": {"old": old_version, "new": pillar.version}, "restored_from": version},
    )
    db.session.commit()

    from app.services.pipeline_orchestrator import schedule_content_side_effects
    schedule_content_side_effects(strategy_id, [pillar_type], trigger="restore")
    return pillar.to_dict()
