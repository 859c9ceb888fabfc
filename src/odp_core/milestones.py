"""Milestones of operational changes.

Milestones belong to one change version. When a change gets a new version its
milestones are inserted again as new rows; ``milestone_key`` is copied across
so a milestone can be followed through the versions of its change.
"""
import logging
from typing import Optional, Sequence
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from . import models, schemas
from .errors import ValidationError, storage_errors
from .wave_filter import context_version_ids, get_wave, wave_passes

logger = logging.getLogger("odp-core.milestones")


def generate_milestone_key() -> str:
    """New stable milestone key."""
    return f"ms_{uuid4()}"


def _to_response(milestone: models.Milestone) -> schemas.MilestoneResponse:
    return schemas.MilestoneResponse.model_validate(milestone)


class MilestoneStore:
    """Version-scoped milestone rows, used by the change adapter and store."""

    def create_milestones(
        self,
        db: Session,
        version_id: int,
        milestones: Sequence[schemas.MilestoneInput],
    ) -> list[models.Milestone]:
        """
        Insert fresh milestone rows for a change version.

        Args:
            db: Database session
            version_id: Owning change version
            milestones: Milestone data; missing keys are generated

        Returns:
            The inserted rows

        Raises:
            ValidationError: On a duplicate key or an unknown wave
        """
        wave_ids = {m.wave_id for m in milestones if m.wave_id is not None}
        if wave_ids:
            found = set(db.scalars(select(models.Wave.id).where(models.Wave.id.in_(wave_ids))))
            missing = sorted(wave_ids - found)
            if missing:
                logger.warning(f"Milestone targets unknown wave(s) {missing}")
                raise ValidationError(f"Wave not found: {missing}")

        rows = []
        seen_keys = set()
        for data in milestones:
            key = data.milestone_key or generate_milestone_key()
            if key in seen_keys:
                raise ValidationError(f"Duplicate milestone key '{key}'")
            seen_keys.add(key)
            rows.append(models.Milestone(
                milestone_key=key,
                version_id=version_id,
                title=data.title,
                description=data.description,
                event_types=[models.MilestoneEventType(e).value for e in data.event_types],
                wave_id=data.wave_id,
            ))
        db.add_all(rows)
        db.flush()
        return rows

    def _version_milestones(self, db: Session, version_id: int) -> Sequence[models.Milestone]:
        return db.scalars(
            select(models.Milestone)
            .options(selectinload(models.Milestone.wave))
            .where(models.Milestone.version_id == version_id)
            .order_by(models.Milestone.id)
        ).all()

    def milestone_data_from_version(self, db: Session, version_id: int) -> tuple[schemas.MilestoneInput, ...]:
        """Read a version's milestones back as input data, keys included."""
        return tuple(
            schemas.MilestoneInput(
                milestone_key=m.milestone_key,
                title=m.title,
                description=m.description,
                event_types=m.event_types or [],
                wave_id=m.wave_id,
            )
            for m in self._version_milestones(db, version_id)
        )

    def milestones_with_references(self, db: Session, version_id: int) -> list[schemas.MilestoneResponse]:
        """A version's milestones with their target waves resolved."""
        return [_to_response(m) for m in self._version_milestones(db, version_id)]

    def find_milestones_by_wave(
        self,
        db: Session,
        wave_id: int,
        baseline_id: Optional[int] = None,
        from_wave_id: Optional[int] = None,
    ) -> list[schemas.WaveMilestoneResponse]:
        """
        Milestones of changes in a context that target a wave.

        Args:
            db: Database session
            wave_id: Target wave
            baseline_id: Baseline context, or None for latest versions
            from_wave_id: Cutoff wave; a target wave before it yields nothing

        Raises:
            NotFoundError: If the wave or the cutoff wave does not exist
        """
        with storage_errors(f"find milestones targeting wave {wave_id}"):
            wave = get_wave(db, wave_id)
            if from_wave_id is not None and not wave_passes(wave, get_wave(db, from_wave_id)):
                return []
            rows = db.execute(
                select(models.Milestone, models.Item)
                .join(models.ItemVersion, models.ItemVersion.id == models.Milestone.version_id)
                .join(models.Item, models.Item.id == models.ItemVersion.item_id)
                .where(
                    models.Milestone.wave_id == wave_id,
                    models.Milestone.version_id.in_(context_version_ids(models.ItemKind.CHANGE, baseline_id)),
                )
                .order_by(models.Item.title, models.Milestone.id)
            ).all()
            return [
                schemas.WaveMilestoneResponse(
                    **_to_response(milestone).model_dump(),
                    change=schemas.Reference(id=item.id, title=item.title, code=item.code),
                    change_version_id=milestone.version_id,
                )
                for milestone, item in rows
            ]
