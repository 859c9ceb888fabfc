"""Generic item/version engine.

Every content change creates a new immutable ItemVersion and repoints the
item's ``latest_version_id``. Writes are guarded by optimistic concurrency:
the caller names the version it expects to be current, and the update is
refused with ConflictError when another write got there first.

Per-type behaviour (which fields are content, how relationships are stored
and read back) is supplied by a RelationshipAdapter. Relationships live on
versions, never on items: each new version gets freshly inserted edges,
either copied from the expected version (inherit) or taken from the request
(replace).

Key concepts:
- Item.latest_version_id: the single "latest" pointer per item
- Item.revision: mapper version counter; a concurrent writer fails the flush
- ItemVersion.version: 1, 2, 3... per item, unique, never reused
"""
import logging
from abc import ABC, abstractmethod
from typing import Any, Iterable, Optional, Sequence

from pydantic import BaseModel
from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from . import models, schemas
from .codes import generate_code
from .errors import (
    ConflictError,
    DataIntegrityError,
    NotFoundError,
    ValidationError,
    storage_errors,
)
from .relationships import RelationshipPatch
from .wave_filter import accepted_ids, context_version_ids, get_wave

logger = logging.getLogger("odp-core.versioning")


def get_baseline(db: Session, baseline_id: int) -> models.Baseline:
    """
    Load a baseline used as a read context.

    Raises:
        NotFoundError: If the baseline does not exist
    """
    baseline = db.get(models.Baseline, baseline_id)
    if baseline is None:
        raise NotFoundError(f"Baseline {baseline_id} not found")
    return baseline


class RelationshipAdapter(ABC):
    """
    Translates between request relationship fields and version-scoped edges.

    Concrete adapters declare their content fields and relationship
    categories and implement the four abstract operations. The protected
    helpers below cover validation and edge I/O shared by every adapter.
    """

    #: ItemVersion columns holding this type's content (title lives on Item)
    content_fields: tuple[str, ...] = ()
    #: Relationship category names, matching the request/response fields
    categories: tuple[str, ...] = ()
    #: Fields that can never be cleared by a partial update
    required_fields: tuple[str, ...] = ("title",)

    @abstractmethod
    def extract_from_input(self, payload: BaseModel) -> tuple[dict, RelationshipPatch]:
        """Split a create/update payload into content and a relationship patch."""

    @abstractmethod
    def build_references(self, db: Session, version_id: int) -> dict[str, list]:
        """Read a version's edges as display-ready references per category."""

    @abstractmethod
    def extract_from_version(self, db: Session, version_id: int) -> dict[str, tuple]:
        """Read a version's edges back into value sets per category."""

    @abstractmethod
    def create_from_ids(self, db: Session, item_id: int, version_id: int, relationships: dict[str, tuple]) -> None:
        """Validate the value sets and insert edges for a new version."""

    @abstractmethod
    def code_type_tag(self, content: dict) -> str:
        """Type tag used in generated codes (ON, OR, OC)."""

    def content_filter_clauses(self, filters: Optional[BaseModel]) -> list:
        """SQL predicates for list filters; none by default."""
        return []

    def extract_from_partial_input(self, payload: BaseModel) -> tuple[dict, RelationshipPatch]:
        """Split a partial payload: only explicitly supplied fields are returned."""
        supplied = payload.model_fields_set
        content = {
            field: getattr(payload, field)
            for field in ("title",) + self.content_fields
            if field in supplied
        }
        return content, RelationshipPatch.from_partial_payload(payload, self.categories)

    # Shared helpers

    def _content_from_payload(self, payload: BaseModel) -> dict:
        return {field: getattr(payload, field) for field in ("title",) + self.content_fields}

    def _reject_self_reference(self, item_id: int, ids: Iterable[int], label: str) -> None:
        if item_id in set(ids):
            logger.warning(f"Rejected self-referencing {label} on item {item_id}")
            raise ValidationError(f"Item {item_id} cannot reference itself in {label}")

    def _require_items(
        self,
        db: Session,
        ids: Sequence[int],
        kind: models.ItemKind,
        label: str,
    ) -> dict[int, models.Item]:
        """
        Load referenced items of ``kind``.

        Raises:
            ValidationError: If any id does not name an existing item of ``kind``
        """
        ids = list(dict.fromkeys(ids))
        if not ids:
            return {}
        items = db.scalars(
            select(models.Item).where(models.Item.id.in_(ids), models.Item.kind == kind)
        ).all()
        found = {item.id: item for item in items}
        missing = [i for i in ids if i not in found]
        if missing:
            logger.warning(f"Invalid {label} reference(s): {missing}")
            raise ValidationError(f"Invalid {label} reference(s): {missing}")
        return found

    def _require_taxonomy(self, db: Session, ids: Sequence[int], kind: models.TaxonomyKind, label: str) -> None:
        ids = list(dict.fromkeys(ids))
        if not ids:
            return
        found = set(db.scalars(
            select(models.TaxonomyEntity.id).where(
                models.TaxonomyEntity.id.in_(ids),
                models.TaxonomyEntity.kind == kind,
            )
        ))
        missing = [i for i in ids if i not in found]
        if missing:
            logger.warning(f"Invalid {label} reference(s): {missing}")
            raise ValidationError(f"Invalid {label} reference(s): {missing}")

    def _require_documents(self, db: Session, refs: Sequence[schemas.DocumentReferenceInput]) -> None:
        ids = list(dict.fromkeys(ref.document_id for ref in refs))
        if not ids:
            return
        found = set(db.scalars(select(models.Document.id).where(models.Document.id.in_(ids))))
        missing = [i for i in ids if i not in found]
        if missing:
            logger.warning(f"Invalid document reference(s): {missing}")
            raise ValidationError(f"Invalid document reference(s): {missing}")

    def _insert_item_edges(self, db: Session, table, version_id: int, ids: Iterable[int]) -> None:
        rows = [{"version_id": version_id, "target_item_id": i} for i in dict.fromkeys(ids)]
        if rows:
            db.execute(table.insert(), rows)

    def _insert_impacts(self, db: Session, version_id: int, ids: Iterable[int]) -> None:
        rows = [{"version_id": version_id, "taxonomy_entity_id": i} for i in dict.fromkeys(ids)]
        if rows:
            db.execute(models.version_impacts.insert(), rows)

    def _insert_document_references(
        self, db: Session, version_id: int, refs: Sequence[schemas.DocumentReferenceInput]
    ) -> None:
        rows = {}
        for ref in refs:
            rows[ref.document_id] = {"version_id": version_id, "document_id": ref.document_id, "note": ref.note}
        if rows:
            db.execute(models.version_references.insert(), list(rows.values()))

    def _item_edge_ids(self, db: Session, table, version_id: int) -> tuple[int, ...]:
        return tuple(db.scalars(
            select(table.c.target_item_id)
            .where(table.c.version_id == version_id)
            .order_by(table.c.target_item_id)
        ))

    def _impact_ids(self, db: Session, version_id: int, kind: models.TaxonomyKind) -> tuple[int, ...]:
        return tuple(db.scalars(
            select(models.version_impacts.c.taxonomy_entity_id)
            .join(models.TaxonomyEntity, models.TaxonomyEntity.id == models.version_impacts.c.taxonomy_entity_id)
            .where(models.version_impacts.c.version_id == version_id, models.TaxonomyEntity.kind == kind)
            .order_by(models.version_impacts.c.taxonomy_entity_id)
        ))

    def _document_reference_inputs(self, db: Session, version_id: int) -> tuple:
        rows = db.execute(
            select(models.version_references.c.document_id, models.version_references.c.note)
            .where(models.version_references.c.version_id == version_id)
            .order_by(models.version_references.c.document_id)
        )
        return tuple(schemas.DocumentReferenceInput(document_id=doc_id, note=note) for doc_id, note in rows)

    def _item_references(self, db: Session, table, version_id: int) -> list[schemas.Reference]:
        """References to target items, typed with the target's latest requirement type."""
        latest = models.ItemVersion
        rows = db.execute(
            select(models.Item.id, models.Item.title, models.Item.code, latest.type)
            .join(table, table.c.target_item_id == models.Item.id)
            .outerjoin(latest, latest.id == models.Item.latest_version_id)
            .where(table.c.version_id == version_id)
            .order_by(models.Item.title, models.Item.id)
        )
        return [
            schemas.Reference(id=item_id, title=title, code=code, type=req_type.value if req_type else None)
            for item_id, title, code, req_type in rows
        ]

    def _impact_references(self, db: Session, version_id: int, kind: models.TaxonomyKind) -> list[schemas.Reference]:
        rows = db.execute(
            select(models.TaxonomyEntity.id, models.TaxonomyEntity.name)
            .join(models.version_impacts, models.version_impacts.c.taxonomy_entity_id == models.TaxonomyEntity.id)
            .where(models.version_impacts.c.version_id == version_id, models.TaxonomyEntity.kind == kind)
            .order_by(models.TaxonomyEntity.name, models.TaxonomyEntity.id)
        )
        return [schemas.Reference(id=entity_id, title=name) for entity_id, name in rows]

    def _document_references(self, db: Session, version_id: int) -> list[schemas.Reference]:
        rows = db.execute(
            select(models.Document.id, models.Document.name, models.version_references.c.note)
            .join(models.version_references, models.version_references.c.document_id == models.Document.id)
            .where(models.version_references.c.version_id == version_id)
            .order_by(models.Document.name, models.Document.id)
        )
        return [schemas.Reference(id=doc_id, title=name, note=note) for doc_id, name, note in rows]


class VersionedItemStore:
    """
    Item + version lifecycle for one item kind.

    Methods take the caller's Session and never commit; the caller owns the
    transaction and rolls it back on any raised error.
    """

    def __init__(
        self,
        adapter: RelationshipAdapter,
        kind: models.ItemKind,
        label: str,
        response_model: type,
    ):
        self.adapter = adapter
        self.kind = kind
        self.label = label
        self.response_model = response_model

    # Reads

    def _get_item(self, db: Session, item_id: int) -> Optional[models.Item]:
        item = db.get(models.Item, item_id)
        if item is None or item.kind != self.kind:
            return None
        return item

    def _require_item(self, db: Session, item_id: int) -> models.Item:
        item = self._get_item(db, item_id)
        if item is None:
            logger.warning(f"{self.label.capitalize()} {item_id} not found")
            raise NotFoundError(f"{self.label.capitalize()} {item_id} not found")
        return item

    def exists(self, db: Session, item_id: int) -> bool:
        return self._get_item(db, item_id) is not None

    def _hydrate(self, db: Session, item: models.Item, version: models.ItemVersion):
        data: dict[str, Any] = {
            "item_id": item.id,
            "title": item.title,
            "code": item.code,
            "created_at": item.created_at,
            "created_by": item.created_by,
            "version_id": version.id,
            "version": version.version,
            "version_created_at": version.created_at,
            "version_created_by": version.created_by,
        }
        for field in self.adapter.content_fields:
            data[field] = getattr(version, field)
        data.update(self.adapter.build_references(db, version.id))
        return self.response_model(**data)

    def _context_version(
        self, db: Session, item: models.Item, baseline_id: Optional[int]
    ) -> Optional[models.ItemVersion]:
        if baseline_id is None:
            return db.get(models.ItemVersion, item.latest_version_id)
        return db.scalars(
            select(models.ItemVersion)
            .join(models.baseline_captures, models.baseline_captures.c.version_id == models.ItemVersion.id)
            .where(
                models.baseline_captures.c.baseline_id == baseline_id,
                models.ItemVersion.item_id == item.id,
            )
        ).first()

    def find_by_id(
        self,
        db: Session,
        item_id: int,
        baseline_id: Optional[int] = None,
        from_wave_id: Optional[int] = None,
    ):
        """
        Get an item resolved in a context.

        Args:
            db: Database session
            item_id: Item id
            baseline_id: Resolve the version captured by this baseline instead
                of the latest version
            from_wave_id: Only return the item if it is visible at or after
                this wave

        Returns:
            Hydrated response model, or None if the item does not exist in
            the context

        Raises:
            NotFoundError: If the baseline or wave does not exist
        """
        with storage_errors(f"find {self.label} {item_id}"):
            if baseline_id is not None:
                get_baseline(db, baseline_id)
            cutoff = get_wave(db, from_wave_id) if from_wave_id is not None else None

            item = self._get_item(db, item_id)
            if item is None:
                return None
            version = self._context_version(db, item, baseline_id)
            if version is None:
                return None
            if cutoff is not None and item.id not in accepted_ids(db, self.kind, cutoff, baseline_id):
                return None
            return self._hydrate(db, item, version)

    def find_by_id_and_version(self, db: Session, item_id: int, version: int):
        """Get a specific historical version, or None."""
        with storage_errors(f"find {self.label} {item_id} version {version}"):
            item = self._get_item(db, item_id)
            if item is None:
                return None
            row = db.scalars(
                select(models.ItemVersion).where(
                    models.ItemVersion.item_id == item_id,
                    models.ItemVersion.version == version,
                )
            ).first()
            if row is None:
                return None
            return self._hydrate(db, item, row)

    def find_version_history(self, db: Session, item_id: int) -> list[schemas.VersionSummary]:
        """
        List an item's versions, newest first.

        Raises:
            NotFoundError: If the item does not exist
            DataIntegrityError: If the item exists without any version
        """
        with storage_errors(f"find version history of {self.label} {item_id}"):
            self._require_item(db, item_id)
            versions = db.scalars(
                select(models.ItemVersion)
                .where(models.ItemVersion.item_id == item_id)
                .order_by(models.ItemVersion.version.desc())
            ).all()
            if not versions:
                logger.error(f"{self.label.capitalize()} {item_id} has no versions")
                raise DataIntegrityError("Item exists but has no versions")
            return [
                schemas.VersionSummary(
                    version_id=v.id,
                    version=v.version,
                    created_at=v.created_at,
                    created_by=v.created_by,
                )
                for v in versions
            ]

    def find_all(
        self,
        db: Session,
        baseline_id: Optional[int] = None,
        from_wave_id: Optional[int] = None,
        filters: Optional[BaseModel] = None,
    ) -> list:
        """
        List items in a context, ordered by title.

        Args:
            db: Database session
            baseline_id: List the versions captured by this baseline
            from_wave_id: Keep only items visible at or after this wave
            filters: Type-specific content filters, combined with AND

        Returns:
            List of hydrated response models

        Raises:
            NotFoundError: If the baseline or wave does not exist
        """
        with storage_errors(f"list {self.label}s"):
            stmt = (
                select(models.Item, models.ItemVersion)
                .join(models.ItemVersion, models.ItemVersion.item_id == models.Item.id)
                .where(models.Item.kind == self.kind)
            )
            if baseline_id is None:
                stmt = stmt.where(models.ItemVersion.id == models.Item.latest_version_id)
            else:
                get_baseline(db, baseline_id)
                stmt = stmt.join(
                    models.baseline_captures,
                    models.baseline_captures.c.version_id == models.ItemVersion.id,
                ).where(models.baseline_captures.c.baseline_id == baseline_id)

            clauses = self.adapter.content_filter_clauses(filters)
            if clauses:
                stmt = stmt.where(*clauses)

            if from_wave_id is not None:
                cutoff = get_wave(db, from_wave_id)
                visible = accepted_ids(db, self.kind, cutoff, baseline_id)
                stmt = stmt.where(models.Item.id.in_(visible))

            rows = db.execute(stmt.order_by(models.Item.title, models.Item.id)).all()
            return [self._hydrate(db, item, version) for item, version in rows]

    def _find_by_edge(
        self,
        db: Session,
        table,
        target_column: str,
        target_id: int,
        baseline_id: Optional[int] = None,
    ) -> list:
        """Items whose context version has an edge in ``table`` pointing at ``target_id``."""
        if baseline_id is not None:
            get_baseline(db, baseline_id)
        rows = db.execute(
            select(models.Item, models.ItemVersion)
            .join(models.ItemVersion, models.ItemVersion.item_id == models.Item.id)
            .join(table, table.c.version_id == models.ItemVersion.id)
            .where(
                models.Item.kind == self.kind,
                table.c[target_column] == target_id,
                models.ItemVersion.id.in_(context_version_ids(self.kind, baseline_id)),
            )
            .order_by(models.Item.title, models.Item.id)
        ).all()
        return [self._hydrate(db, item, version) for item, version in rows]

    # Writes

    def _new_version(self, item: models.Item, number: int, content: dict, actor: str) -> models.ItemVersion:
        values = {field: content.get(field) for field in self.adapter.content_fields}
        values["path"] = list(values.get("path") or [])
        return models.ItemVersion(item_id=item.id, version=number, created_by=actor, **values)

    def create(self, db: Session, payload: BaseModel, actor: str):
        """
        Create an item with version 1 and its relationships.

        Args:
            db: Database session
            payload: Validated create payload
            actor: User id stamped as creator

        Returns:
            Hydrated response model

        Raises:
            ValidationError: If a relationship target is missing or invalid,
                or the drafting group is unknown
        """
        with storage_errors(f"create {self.label}"):
            content, patch = self.adapter.extract_from_input(payload)
            title = content.pop("title")

            code = None
            if content.get("drg"):
                code = generate_code(db, self.adapter.code_type_tag(content), content["drg"])

            item = models.Item(kind=self.kind, title=title, code=code, created_by=actor)
            db.add(item)
            db.flush()

            version = self._new_version(item, 1, content, actor)
            db.add(version)
            db.flush()

            item.latest_version_id = version.id
            db.flush()

            self.adapter.create_from_ids(db, item.id, version.id, patch.resolve({}))
            db.flush()

            logger.info(f"Created {self.label} {item.id} ({code or 'no code'}) by {actor}")
            return self._hydrate(db, item, version)

    def _check_expected_version(self, item: models.Item, expected_version_id: int) -> None:
        if item.latest_version_id != expected_version_id:
            logger.warning(
                f"Outdated version for {self.label} {item.id}: "
                f"expected {expected_version_id}, current {item.latest_version_id}"
            )
            raise ConflictError(
                "Outdated item version",
                expected_version_id=expected_version_id,
                current_version_id=item.latest_version_id,
            )

    def _current_content(self, db: Session, item: models.Item) -> dict:
        """Title and content fields of the latest version, as a content dict."""
        current = db.get(models.ItemVersion, item.latest_version_id)
        content = {"title": item.title}
        for field in self.adapter.content_fields:
            content[field] = getattr(current, field)
        return content

    def _write_version(
        self,
        db: Session,
        item: models.Item,
        expected_version_id: int,
        content: dict,
        patch: RelationshipPatch,
        actor: str,
    ):
        """Create version N+1 from content and patch, then repoint latest."""
        self._check_expected_version(item, expected_version_id)

        current = db.get(models.ItemVersion, expected_version_id)
        if current is None:
            raise DataIntegrityError(f"Latest version {expected_version_id} of item {item.id} is missing")

        inherited = self.adapter.extract_from_version(db, current.id) if patch.inherits_anything else {}
        relationships = patch.resolve(inherited)

        title = content.pop("title")
        if title != item.title:
            item.title = title
        if item.code is None and content.get("drg"):
            item.code = generate_code(db, self.adapter.code_type_tag(content), content["drg"])

        version = self._new_version(item, current.version + 1, content, actor)
        try:
            db.add(version)
            db.flush()
            item.latest_version_id = version.id
            db.flush()
        except (StaleDataError, IntegrityError) as e:
            logger.warning(f"Concurrent update detected on {self.label} {item.id}: {e}")
            raise ConflictError(
                "Outdated item version",
                expected_version_id=expected_version_id,
            ) from e

        self.adapter.create_from_ids(db, item.id, version.id, relationships)
        db.flush()

        logger.info(f"Created version {version.version} of {self.label} {item.id} by {actor}")
        return self._hydrate(db, item, version)

    def update(self, db: Session, item_id: int, payload: BaseModel, expected_version_id: int, actor: str):
        """
        Replace an item's content, creating a new version.

        If the payload sets none of the relationship fields, the new version
        inherits every relationship of ``expected_version_id``. If it sets
        any, all relationships are replaced by the supplied ones and omitted
        categories become empty.

        Args:
            db: Database session
            item_id: Item id
            payload: Validated update payload
            expected_version_id: Version id the caller believes is latest
            actor: User id stamped as version creator

        Returns:
            Hydrated response model of the new version

        Raises:
            NotFoundError: If the item does not exist
            ConflictError: If ``expected_version_id`` is not the latest version
            ValidationError: If a relationship target is missing or invalid
        """
        with storage_errors(f"update {self.label} {item_id}"):
            item = self._require_item(db, item_id)
            content, patch = self.adapter.extract_from_input(payload)
            return self._write_version(db, item, expected_version_id, content, patch, actor)

    def patch(self, db: Session, item_id: int, payload: BaseModel, expected_version_id: int, actor: str):
        """
        Partially update an item, creating a new version.

        Content fields not supplied keep their current value; relationship
        categories not supplied are inherited one by one.

        Raises:
            NotFoundError: If the item does not exist
            ConflictError: If ``expected_version_id`` is not the latest version
            ValidationError: If a relationship target is missing or invalid
        """
        with storage_errors(f"patch {self.label} {item_id}"):
            item = self._require_item(db, item_id)
            content = self._current_content(db, item)
            supplied, relationship_patch = self.adapter.extract_from_partial_input(payload)
            # An explicit null on a required field keeps the current value
            for field in self.adapter.required_fields:
                if supplied.get(field) is None:
                    supplied.pop(field, None)
            content.update(supplied)
            return self._write_version(db, item, expected_version_id, content, relationship_patch, actor)

    def delete(self, db: Session, item_id: int) -> None:
        """
        Delete an item with all its versions, edges and milestones.

        Raises:
            NotFoundError: If the item does not exist
            ValidationError: If a baseline captured one of its versions or
                another version still references it
        """
        with storage_errors(f"delete {self.label} {item_id}"):
            item = self._require_item(db, item_id)
            version_ids = list(db.scalars(
                select(models.ItemVersion.id).where(models.ItemVersion.item_id == item_id)
            ))

            captured = db.scalar(
                select(func.count())
                .select_from(models.baseline_captures)
                .where(models.baseline_captures.c.version_id.in_(version_ids))
            )
            if captured:
                logger.warning(f"Refused to delete {self.label} {item_id}: captured by a baseline")
                raise ValidationError(
                    f"Cannot delete {self.label} {item_id}: it is captured by {captured} baseline(s)"
                )

            for table in models.ITEM_EDGE_TABLES:
                referrers = db.scalar(
                    select(func.count())
                    .select_from(table)
                    .where(table.c.target_item_id == item_id, table.c.version_id.not_in(version_ids))
                )
                if referrers:
                    logger.warning(f"Refused to delete {self.label} {item_id}: referenced via {table.name}")
                    raise ValidationError(
                        f"Cannot delete {self.label} {item_id}: it is still referenced by other items"
                    )

            item.latest_version_id = None
            db.flush()
            for table in models.ITEM_EDGE_TABLES + (models.version_impacts, models.version_references):
                db.execute(delete(table).where(table.c.version_id.in_(version_ids)))
            db.execute(delete(models.Milestone).where(models.Milestone.version_id.in_(version_ids)))
            db.execute(delete(models.ItemVersion).where(models.ItemVersion.item_id == item_id))
            db.execute(delete(models.Item).where(models.Item.id == item_id))
            logger.info(f"Deleted {self.label} {item_id} with {len(version_ids)} version(s)")
