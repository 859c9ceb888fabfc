"""Baselines: frozen captures of every item's latest version."""
import logging
from typing import Optional

from sqlalchemy import func, insert, literal, select
from sqlalchemy.orm import Session

from . import models, schemas
from .errors import ImmutableEntityError, NotFoundError, ValidationError, storage_errors

logger = logging.getLogger("odp-core.baselines")


def _captured_counts(db: Session, baseline_ids: list[int]) -> dict[int, int]:
    if not baseline_ids:
        return {}
    rows = db.execute(
        select(models.baseline_captures.c.baseline_id, func.count())
        .where(models.baseline_captures.c.baseline_id.in_(baseline_ids))
        .group_by(models.baseline_captures.c.baseline_id)
    )
    return {baseline_id: count for baseline_id, count in rows}


def _to_response(baseline: models.Baseline, captured: int) -> schemas.BaselineResponse:
    return schemas.BaselineResponse(
        id=baseline.id,
        title=baseline.title,
        created_at=baseline.created_at,
        created_by=baseline.created_by,
        starts_from_wave=(
            schemas.WaveReference.model_validate(baseline.starts_from_wave)
            if baseline.starts_from_wave else None
        ),
        captured_item_count=captured,
    )


class BaselineStore:
    """Create and read baselines. Baselines never change once created."""

    def create(self, db: Session, data: schemas.BaselineCreate, actor: str) -> schemas.BaselineResponse:
        """
        Create a baseline capturing the latest version of every item.

        Args:
            db: Database session
            data: Title and optional starts-from wave
            actor: User id stamped as creator

        Returns:
            The baseline with ``captured_item_count``

        Raises:
            ValidationError: If the starts-from wave does not exist
        """
        with storage_errors("create baseline"):
            if data.starts_from_wave_id is not None and db.get(models.Wave, data.starts_from_wave_id) is None:
                logger.warning(f"Baseline references unknown wave {data.starts_from_wave_id}")
                raise ValidationError(f"Invalid wave reference: {data.starts_from_wave_id}")

            baseline = models.Baseline(
                title=data.title,
                starts_from_wave_id=data.starts_from_wave_id,
                created_by=actor,
            )
            db.add(baseline)
            db.flush()

            db.execute(
                insert(models.baseline_captures).from_select(
                    ["baseline_id", "version_id"],
                    select(literal(baseline.id), models.Item.latest_version_id)
                    .where(models.Item.latest_version_id.is_not(None)),
                )
            )
            captured = _captured_counts(db, [baseline.id]).get(baseline.id, 0)

            logger.info(f"Created baseline {baseline.id} '{baseline.title}' capturing {captured} item(s) by {actor}")
            return _to_response(baseline, captured)

    def find_by_id(self, db: Session, baseline_id: int) -> Optional[schemas.BaselineResponse]:
        with storage_errors(f"find baseline {baseline_id}"):
            baseline = db.get(models.Baseline, baseline_id)
            if baseline is None:
                return None
            return _to_response(baseline, _captured_counts(db, [baseline.id]).get(baseline.id, 0))

    def find_all(self, db: Session) -> list[schemas.BaselineResponse]:
        """All baselines, newest first."""
        with storage_errors("list baselines"):
            baselines = db.scalars(
                select(models.Baseline).order_by(models.Baseline.created_at.desc(), models.Baseline.id.desc())
            ).all()
            counts = _captured_counts(db, [b.id for b in baselines])
            return [_to_response(b, counts.get(b.id, 0)) for b in baselines]

    def get_baseline_items(self, db: Session, baseline_id: int) -> list[schemas.BaselineItem]:
        """
        The versions a baseline captured, ordered by kind and title.

        Raises:
            NotFoundError: If the baseline does not exist
        """
        with storage_errors(f"list items of baseline {baseline_id}"):
            if db.get(models.Baseline, baseline_id) is None:
                raise NotFoundError(f"Baseline {baseline_id} not found")
            rows = db.execute(
                select(models.Item, models.ItemVersion)
                .join(models.ItemVersion, models.ItemVersion.item_id == models.Item.id)
                .join(models.baseline_captures, models.baseline_captures.c.version_id == models.ItemVersion.id)
                .where(models.baseline_captures.c.baseline_id == baseline_id)
                .order_by(models.Item.kind, models.Item.title, models.Item.id)
            ).all()
            return [
                schemas.BaselineItem(
                    item_id=item.id,
                    kind=item.kind.value,
                    title=item.title,
                    code=item.code,
                    version_id=version.id,
                    version=version.version,
                )
                for item, version in rows
            ]

    def update(self, db: Session, baseline_id: int, *args, **kwargs):
        raise ImmutableEntityError("Baselines", "update")

    def delete(self, db: Session, baseline_id: int):
        raise ImmutableEntityError("Baselines", "delete")
