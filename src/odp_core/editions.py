"""Editions: named (baseline, wave cutoff) publication points."""
import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from . import models, schemas
from .errors import ImmutableEntityError, NotFoundError, ValidationError, storage_errors

logger = logging.getLogger("odp-core.editions")


def _to_response(edition: models.Edition) -> schemas.EditionResponse:
    return schemas.EditionResponse(
        id=edition.id,
        title=edition.title,
        type=edition.type,
        created_at=edition.created_at,
        created_by=edition.created_by,
        baseline=schemas.Reference(id=edition.baseline.id, title=edition.baseline.title),
        starts_from_wave=schemas.WaveReference.model_validate(edition.starts_from_wave),
    )


class EditionStore:
    """Create, read and resolve editions. Editions never change once created."""

    def create(self, db: Session, data: schemas.EditionCreate, actor: str) -> schemas.EditionResponse:
        """
        Create an edition bound to a baseline and a starts-from wave.

        Raises:
            ValidationError: If the baseline or the wave does not exist
        """
        with storage_errors("create edition"):
            if db.get(models.Baseline, data.baseline_id) is None:
                logger.warning(f"Edition references unknown baseline {data.baseline_id}")
                raise ValidationError(f"Invalid baseline reference: {data.baseline_id}")
            if db.get(models.Wave, data.starts_from_wave_id) is None:
                logger.warning(f"Edition references unknown wave {data.starts_from_wave_id}")
                raise ValidationError(f"Invalid wave reference: {data.starts_from_wave_id}")

            edition = models.Edition(
                title=data.title,
                type=data.type,
                baseline_id=data.baseline_id,
                starts_from_wave_id=data.starts_from_wave_id,
                created_by=actor,
            )
            db.add(edition)
            db.flush()
            logger.info(f"Created {models.EditionType(edition.type).value} edition {edition.id} '{edition.title}' by {actor}")
            return _to_response(edition)

    def find_by_id(self, db: Session, edition_id: int) -> Optional[schemas.EditionResponse]:
        with storage_errors(f"find edition {edition_id}"):
            edition = db.get(models.Edition, edition_id)
            return _to_response(edition) if edition else None

    def find_all(self, db: Session, edition_type: Optional[models.EditionType] = None) -> list[schemas.EditionResponse]:
        """Editions, newest first, optionally of one type."""
        with storage_errors("list editions"):
            stmt = select(models.Edition).order_by(models.Edition.created_at.desc(), models.Edition.id.desc())
            if edition_type is not None:
                stmt = stmt.where(models.Edition.type == edition_type)
            return [_to_response(e) for e in db.scalars(stmt).all()]

    def resolve_context(self, db: Session, edition_id: int) -> schemas.EditionContext:
        """
        The baseline and cutoff wave an edition stands for.

        Raises:
            NotFoundError: If the edition does not exist
        """
        with storage_errors(f"resolve edition {edition_id}"):
            edition = db.get(models.Edition, edition_id)
            if edition is None:
                raise NotFoundError(f"Edition {edition_id} not found")
            return schemas.EditionContext(
                baseline_id=edition.baseline_id,
                from_wave_id=edition.starts_from_wave_id,
            )

    def update(self, db: Session, edition_id: int, *args, **kwargs):
        raise ImmutableEntityError("Editions", "update")

    def delete(self, db: Session, edition_id: int):
        raise ImmutableEntityError("Editions", "delete")
