"""Wave-cascade filtering.

Given a cutoff wave, a change is visible when one of its milestones targets a
wave at or after the cutoff. A requirement is visible when a visible change
satisfies or supersedes it, or when a requirement refining or implementing it
is visible. Waves compare by ``(year, quarter)`` with a missing quarter
treated as 0.

Each function computes the whole accepted-id set in a fixed number of
queries. The hierarchy ascent runs in memory over the loaded
child -> parents map, with no depth limit.
"""
import logging
from collections import defaultdict
from typing import Optional

from sqlalchemy import and_, func, or_, select, union
from sqlalchemy.orm import Session

from . import models
from .errors import NotFoundError
from .hierarchy import ascend

logger = logging.getLogger("odp-core.wave_filter")


def wave_key(wave) -> tuple[int, int]:
    """Sort key of a wave model or wave reference."""
    return (wave.year, wave.quarter or 0)


def wave_passes(target, cutoff) -> bool:
    """True if ``target`` is at or after ``cutoff``."""
    return wave_key(target) >= wave_key(cutoff)


def at_or_after(cutoff: models.Wave):
    """SQL predicate on models.Wave matching waves at or after ``cutoff``."""
    year, quarter = wave_key(cutoff)
    return or_(
        models.Wave.year > year,
        and_(models.Wave.year == year, func.coalesce(models.Wave.quarter, 0) >= quarter),
    )


def get_wave(db: Session, wave_id: int) -> models.Wave:
    """
    Load a wave used as a cutoff.

    Raises:
        NotFoundError: If the wave does not exist
    """
    wave = db.get(models.Wave, wave_id)
    if wave is None:
        raise NotFoundError(f"Wave {wave_id} not found")
    return wave


def context_version_ids(kind: models.ItemKind, baseline_id: Optional[int] = None):
    """
    Select the version ids that represent ``kind`` items in a context.

    Without a baseline this is every item's latest version; with one it is
    the versions the baseline captured.
    """
    if baseline_id is None:
        return select(models.Item.latest_version_id).where(
            models.Item.kind == kind,
            models.Item.latest_version_id.is_not(None),
        )
    captures = models.baseline_captures
    return (
        select(captures.c.version_id)
        .join(models.ItemVersion, models.ItemVersion.id == captures.c.version_id)
        .join(models.Item, models.Item.id == models.ItemVersion.item_id)
        .where(captures.c.baseline_id == baseline_id, models.Item.kind == kind)
    )


def _passing_change_version_ids(cutoff: models.Wave, baseline_id: Optional[int]):
    return (
        select(models.Milestone.version_id)
        .join(models.Wave, models.Wave.id == models.Milestone.wave_id)
        .where(
            models.Milestone.version_id.in_(context_version_ids(models.ItemKind.CHANGE, baseline_id)),
            at_or_after(cutoff),
        )
    )


def visible_change_ids(db: Session, cutoff: models.Wave, baseline_id: Optional[int] = None) -> set[int]:
    """
    Ids of changes with a milestone at or after ``cutoff``.

    Args:
        db: Database session
        cutoff: Cutoff wave
        baseline_id: Baseline context, or None for latest versions

    Returns:
        Set of change item ids
    """
    rows = db.execute(
        select(models.ItemVersion.item_id)
        .where(models.ItemVersion.id.in_(_passing_change_version_ids(cutoff, baseline_id)))
        .distinct()
    ).scalars()
    accepted = set(rows)
    logger.debug(f"{len(accepted)} change(s) visible from wave {cutoff.name} (baseline={baseline_id})")
    return accepted


def _hierarchy_parents(db: Session, baseline_id: Optional[int]) -> dict[int, set[int]]:
    """Child requirement id -> parent requirement ids, read from context versions."""
    context = context_version_ids(models.ItemKind.REQUIREMENT, baseline_id)
    parents: dict[int, set[int]] = defaultdict(set)
    for table in (models.version_refines, models.version_implements):
        rows = db.execute(
            select(models.ItemVersion.item_id, table.c.target_item_id)
            .join(table, table.c.version_id == models.ItemVersion.id)
            .where(models.ItemVersion.id.in_(context))
        )
        for child_id, parent_id in rows:
            parents[child_id].add(parent_id)
    return parents


def visible_requirement_ids(db: Session, cutoff: models.Wave, baseline_id: Optional[int] = None) -> set[int]:
    """
    Ids of requirements that stay visible at or after ``cutoff``.

    Starts from the requirements fulfilled (satisfied or superseded) by a
    visible change and ascends the refines/implements hierarchy.

    Args:
        db: Database session
        cutoff: Cutoff wave
        baseline_id: Baseline context, or None for latest versions

    Returns:
        Set of requirement item ids
    """
    passing = _passing_change_version_ids(cutoff, baseline_id)
    fulfilled = set(db.execute(union(
        select(models.version_satisfies.c.target_item_id)
        .where(models.version_satisfies.c.version_id.in_(passing)),
        select(models.version_supersedes.c.target_item_id)
        .where(models.version_supersedes.c.version_id.in_(passing)),
    )).scalars())

    accepted = ascend(fulfilled, _hierarchy_parents(db, baseline_id)) if fulfilled else set()
    logger.debug(
        f"{len(accepted)} requirement(s) visible from wave {cutoff.name} "
        f"({len(fulfilled)} fulfilled directly, baseline={baseline_id})"
    )
    return accepted


def accepted_ids(
    db: Session,
    kind: models.ItemKind,
    cutoff: models.Wave,
    baseline_id: Optional[int] = None,
) -> set[int]:
    """Accepted-id set for items of ``kind``."""
    if kind == models.ItemKind.CHANGE:
        return visible_change_ids(db, cutoff, baseline_id)
    return visible_requirement_ids(db, cutoff, baseline_id)
