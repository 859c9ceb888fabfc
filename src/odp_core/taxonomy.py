"""Setup data: taxonomy entities, waves and documents.

These entities are not versioned. Taxonomy entities form single-parent trees
per kind; requirement versions point at them through impact edges.
"""
import logging
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from . import models, schemas
from .errors import NotFoundError, ValidationError, storage_errors
from .hierarchy import validate_no_cycle

logger = logging.getLogger("odp-core.taxonomy")


class TaxonomyStore:
    """CRUD and single-parent hierarchy for one taxonomy kind."""

    def __init__(self, kind: models.TaxonomyKind):
        self.kind = kind
        self.label = kind.value.replace("_", " ")

    def _get(self, db: Session, entity_id: int) -> Optional[models.TaxonomyEntity]:
        entity = db.get(models.TaxonomyEntity, entity_id)
        if entity is None or entity.kind != self.kind:
            return None
        return entity

    def _require(self, db: Session, entity_id: int) -> models.TaxonomyEntity:
        entity = self._get(db, entity_id)
        if entity is None:
            raise NotFoundError(f"{self.label.capitalize()} {entity_id} not found")
        return entity

    def _parent_of(self, db: Session, entity_id: int) -> list[int]:
        parent_id = db.scalar(
            select(models.TaxonomyEntity.parent_id).where(models.TaxonomyEntity.id == entity_id)
        )
        return [parent_id] if parent_id is not None else []

    def _validate_parent(self, db: Session, entity_id: Optional[int], parent_id: Optional[int]) -> None:
        """
        Raises:
            ValidationError: If the parent is missing, of another kind, the
                entity itself, or one of its descendants
        """
        if parent_id is None:
            return
        if self._get(db, parent_id) is None:
            logger.warning(f"Invalid parent {parent_id} for {self.label}")
            raise ValidationError(f"Invalid parent reference: {parent_id} is not a {self.label}")
        if entity_id is not None:
            validate_no_cycle(entity_id, [parent_id], lambda node: self._parent_of(db, node))

    def create(self, db: Session, data: schemas.TaxonomyEntityCreate, actor: str) -> schemas.TaxonomyEntityResponse:
        with storage_errors(f"create {self.label}"):
            self._validate_parent(db, None, data.parent_id)
            entity = models.TaxonomyEntity(
                kind=self.kind,
                name=data.name,
                description=data.description,
                parent_id=data.parent_id,
                created_by=actor,
            )
            db.add(entity)
            db.flush()
            logger.info(f"Created {self.label} {entity.id} '{entity.name}' by {actor}")
            return schemas.TaxonomyEntityResponse.model_validate(entity)

    def update(
        self, db: Session, entity_id: int, data: schemas.TaxonomyEntityCreate
    ) -> schemas.TaxonomyEntityResponse:
        """Replace name, description and parent."""
        with storage_errors(f"update {self.label} {entity_id}"):
            entity = self._require(db, entity_id)
            self._validate_parent(db, entity_id, data.parent_id)
            entity.name = data.name
            entity.description = data.description
            entity.parent_id = data.parent_id
            db.flush()
            return schemas.TaxonomyEntityResponse.model_validate(entity)

    def delete(self, db: Session, entity_id: int) -> None:
        """
        Raises:
            NotFoundError: If the entity does not exist
            ValidationError: If it has children or a version impacts it
        """
        with storage_errors(f"delete {self.label} {entity_id}"):
            entity = self._require(db, entity_id)
            children = db.scalar(
                select(func.count()).select_from(models.TaxonomyEntity)
                .where(models.TaxonomyEntity.parent_id == entity_id)
            )
            if children:
                raise ValidationError(f"Cannot delete {self.label} {entity_id}: it has {children} child(ren)")
            impacted = db.scalar(
                select(func.count()).select_from(models.version_impacts)
                .where(models.version_impacts.c.taxonomy_entity_id == entity_id)
            )
            if impacted:
                raise ValidationError(f"Cannot delete {self.label} {entity_id}: it is referenced by requirements")
            db.delete(entity)
            db.flush()
            logger.info(f"Deleted {self.label} {entity_id}")

    def find_by_id(self, db: Session, entity_id: int) -> Optional[schemas.TaxonomyEntityResponse]:
        with storage_errors(f"find {self.label} {entity_id}"):
            entity = self._get(db, entity_id)
            return schemas.TaxonomyEntityResponse.model_validate(entity) if entity else None

    def find_all(self, db: Session) -> list[schemas.TaxonomyEntityResponse]:
        with storage_errors(f"list {self.label}s"):
            entities = db.scalars(
                select(models.TaxonomyEntity)
                .where(models.TaxonomyEntity.kind == self.kind)
                .order_by(models.TaxonomyEntity.name, models.TaxonomyEntity.id)
            ).all()
            return [schemas.TaxonomyEntityResponse.model_validate(e) for e in entities]

    def set_parent(self, db: Session, entity_id: int, parent_id: Optional[int]) -> schemas.TaxonomyEntityResponse:
        """Replace the entity's parent; None makes it a root."""
        with storage_errors(f"set parent of {self.label} {entity_id}"):
            entity = self._require(db, entity_id)
            self._validate_parent(db, entity_id, parent_id)
            entity.parent_id = parent_id
            db.flush()
            return schemas.TaxonomyEntityResponse.model_validate(entity)

    def find_children(self, db: Session, entity_id: int) -> list[schemas.TaxonomyEntityResponse]:
        with storage_errors(f"find children of {self.label} {entity_id}"):
            self._require(db, entity_id)
            children = db.scalars(
                select(models.TaxonomyEntity)
                .where(models.TaxonomyEntity.parent_id == entity_id)
                .order_by(models.TaxonomyEntity.name, models.TaxonomyEntity.id)
            ).all()
            return [schemas.TaxonomyEntityResponse.model_validate(e) for e in children]

    def find_parent(self, db: Session, entity_id: int) -> Optional[schemas.TaxonomyEntityResponse]:
        with storage_errors(f"find parent of {self.label} {entity_id}"):
            entity = self._require(db, entity_id)
            if entity.parent_id is None:
                return None
            return schemas.TaxonomyEntityResponse.model_validate(db.get(models.TaxonomyEntity, entity.parent_id))

    def find_roots(self, db: Session) -> list[schemas.TaxonomyEntityResponse]:
        with storage_errors(f"find root {self.label}s"):
            roots = db.scalars(
                select(models.TaxonomyEntity)
                .where(models.TaxonomyEntity.kind == self.kind, models.TaxonomyEntity.parent_id.is_(None))
                .order_by(models.TaxonomyEntity.name, models.TaxonomyEntity.id)
            ).all()
            return [schemas.TaxonomyEntityResponse.model_validate(e) for e in roots]


def wave_name(year: int, quarter: Optional[int]) -> str:
    """Display name of a wave, e.g. ``2027.2``."""
    return f"{year}.{quarter}" if quarter else str(year)


class WaveStore:
    """CRUD for delivery waves."""

    def create(self, db: Session, data: schemas.WaveCreate, actor: str) -> schemas.WaveResponse:
        with storage_errors("create wave"):
            wave = models.Wave(
                year=data.year,
                quarter=data.quarter,
                date=data.date,
                name=data.name or wave_name(data.year, data.quarter),
                created_by=actor,
            )
            db.add(wave)
            db.flush()
            logger.info(f"Created wave {wave.id} '{wave.name}' by {actor}")
            return schemas.WaveResponse.model_validate(wave)

    def update(self, db: Session, wave_id: int, data: schemas.WaveCreate) -> schemas.WaveResponse:
        with storage_errors(f"update wave {wave_id}"):
            wave = db.get(models.Wave, wave_id)
            if wave is None:
                raise NotFoundError(f"Wave {wave_id} not found")
            wave.year = data.year
            wave.quarter = data.quarter
            wave.date = data.date
            wave.name = data.name or wave_name(data.year, data.quarter)
            db.flush()
            return schemas.WaveResponse.model_validate(wave)

    def delete(self, db: Session, wave_id: int) -> None:
        """
        Raises:
            NotFoundError: If the wave does not exist
            ValidationError: If a milestone, baseline or edition references it
        """
        with storage_errors(f"delete wave {wave_id}"):
            wave = db.get(models.Wave, wave_id)
            if wave is None:
                raise NotFoundError(f"Wave {wave_id} not found")
            for model, column in (
                (models.Milestone, models.Milestone.wave_id),
                (models.Baseline, models.Baseline.starts_from_wave_id),
                (models.Edition, models.Edition.starts_from_wave_id),
            ):
                if db.scalar(select(func.count()).select_from(model).where(column == wave_id)):
                    raise ValidationError(f"Cannot delete wave {wave_id}: it is referenced by {model.__tablename__}")
            db.delete(wave)
            db.flush()
            logger.info(f"Deleted wave {wave_id}")

    def find_by_id(self, db: Session, wave_id: int) -> Optional[schemas.WaveResponse]:
        with storage_errors(f"find wave {wave_id}"):
            wave = db.get(models.Wave, wave_id)
            return schemas.WaveResponse.model_validate(wave) if wave else None

    def find_all(self, db: Session) -> list[schemas.WaveResponse]:
        """Waves in timeline order."""
        with storage_errors("list waves"):
            waves = db.scalars(
                select(models.Wave).order_by(
                    models.Wave.year,
                    func.coalesce(models.Wave.quarter, 0),
                    models.Wave.date,
                )
            ).all()
            return [schemas.WaveResponse.model_validate(w) for w in waves]


class DocumentStore:
    """CRUD for reference documents."""

    def create(self, db: Session, data: schemas.DocumentCreate, actor: str) -> schemas.DocumentResponse:
        with storage_errors("create document"):
            document = models.Document(**data.model_dump(), created_by=actor)
            db.add(document)
            db.flush()
            logger.info(f"Created document {document.id} '{document.name}' by {actor}")
            return schemas.DocumentResponse.model_validate(document)

    def update(self, db: Session, document_id: int, data: schemas.DocumentCreate) -> schemas.DocumentResponse:
        with storage_errors(f"update document {document_id}"):
            document = db.get(models.Document, document_id)
            if document is None:
                raise NotFoundError(f"Document {document_id} not found")
            for field, value in data.model_dump().items():
                setattr(document, field, value)
            db.flush()
            return schemas.DocumentResponse.model_validate(document)

    def delete(self, db: Session, document_id: int) -> None:
        with storage_errors(f"delete document {document_id}"):
            document = db.get(models.Document, document_id)
            if document is None:
                raise NotFoundError(f"Document {document_id} not found")
            referenced = db.scalar(
                select(func.count()).select_from(models.version_references)
                .where(models.version_references.c.document_id == document_id)
            )
            if referenced:
                raise ValidationError(f"Cannot delete document {document_id}: it is referenced by {referenced} version(s)")
            db.delete(document)
            db.flush()
            logger.info(f"Deleted document {document_id}")

    def find_by_id(self, db: Session, document_id: int) -> Optional[schemas.DocumentResponse]:
        with storage_errors(f"find document {document_id}"):
            document = db.get(models.Document, document_id)
            return schemas.DocumentResponse.model_validate(document) if document else None

    def find_all(self, db: Session) -> list[schemas.DocumentResponse]:
        with storage_errors("list documents"):
            documents = db.scalars(select(models.Document).order_by(models.Document.name, models.Document.id)).all()
            return [schemas.DocumentResponse.model_validate(d) for d in documents]
