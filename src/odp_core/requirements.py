"""Operational requirements (ON/OR): relationship adapter and store."""
import logging
from typing import Optional

from sqlalchemy import exists, or_, select
from sqlalchemy.orm import Session

from . import models, schemas
from .errors import ValidationError, storage_errors
from .hierarchy import validate_no_cycle
from .relationships import RelationshipPatch
from .versioning import RelationshipAdapter, VersionedItemStore

logger = logging.getLogger("odp-core.requirements")

# Requirement -> item edges
ITEM_CATEGORIES = {
    "refines_parents": models.version_refines,
    "implemented_ons": models.version_implements,
    "depends_on_requirements": models.version_depends_on,
}

# Requirement -> taxonomy edges, all stored in version_impacts
IMPACT_CATEGORIES = {
    "impacts_stakeholder_categories": models.TaxonomyKind.STAKEHOLDER_CATEGORY,
    "impacts_data": models.TaxonomyKind.DATA_CATEGORY,
    "impacts_services": models.TaxonomyKind.SERVICE,
    "impacts_regulatory_aspects": models.TaxonomyKind.REGULATORY_ASPECT,
}

HIERARCHY_TABLES = (models.version_refines, models.version_implements)


def latest_hierarchy_parents(db: Session, item_id: int) -> list[int]:
    """Parents (refined or implemented) named by a requirement's latest version."""
    parents = []
    for table in HIERARCHY_TABLES:
        parents.extend(db.scalars(
            select(table.c.target_item_id)
            .join(models.Item, models.Item.latest_version_id == table.c.version_id)
            .where(models.Item.id == item_id)
        ))
    return parents


def latest_types(db: Session, item_ids) -> dict[int, models.RequirementType]:
    """Requirement type of each item's latest version."""
    if not item_ids:
        return {}
    rows = db.execute(
        select(models.Item.id, models.ItemVersion.type)
        .join(models.ItemVersion, models.ItemVersion.id == models.Item.latest_version_id)
        .where(models.Item.id.in_(list(item_ids)))
    )
    return {item_id: req_type for item_id, req_type in rows}


class RequirementAdapter(RelationshipAdapter):
    """Maps requirement relationship fields to version edges."""

    content_fields = ("type", "statement", "rationale", "flows", "private_notes", "path", "drg")
    categories = tuple(ITEM_CATEGORIES) + tuple(IMPACT_CATEGORIES) + ("references_documents",)
    required_fields = ("title", "type")

    def code_type_tag(self, content: dict) -> str:
        return models.RequirementType(content["type"]).value

    def extract_from_input(self, payload) -> tuple[dict, RelationshipPatch]:
        return self._content_from_payload(payload), RelationshipPatch.from_payload(payload, self.categories)

    def build_references(self, db: Session, version_id: int) -> dict[str, list]:
        references = {
            category: self._item_references(db, table, version_id)
            for category, table in ITEM_CATEGORIES.items()
        }
        for category, kind in IMPACT_CATEGORIES.items():
            references[category] = self._impact_references(db, version_id, kind)
        references["references_documents"] = self._document_references(db, version_id)
        return references

    def extract_from_version(self, db: Session, version_id: int) -> dict[str, tuple]:
        relationships = {
            category: self._item_edge_ids(db, table, version_id)
            for category, table in ITEM_CATEGORIES.items()
        }
        for category, kind in IMPACT_CATEGORIES.items():
            relationships[category] = self._impact_ids(db, version_id, kind)
        relationships["references_documents"] = self._document_reference_inputs(db, version_id)
        return relationships

    def _validate_hierarchy(
        self,
        db: Session,
        item_id: int,
        req_type: models.RequirementType,
        refines: tuple,
        implements: tuple,
    ) -> None:
        self._reject_self_reference(item_id, refines, "refines")
        self._reject_self_reference(item_id, implements, "implements")

        self._require_items(db, refines, models.ItemKind.REQUIREMENT, "refines parent")
        if req_type == models.RequirementType.ON:
            parent_types = latest_types(db, refines)
            refined_ors = [i for i in refines if parent_types.get(i) == models.RequirementType.OR]
            if refined_ors:
                raise ValidationError(f"An ON cannot refine an OR: {refined_ors}")

        if implements:
            if req_type != models.RequirementType.OR:
                raise ValidationError("Only an OR can implement ONs")
            self._require_items(db, implements, models.ItemKind.REQUIREMENT, "implemented ON")
            target_types = latest_types(db, implements)
            not_ons = [i for i in implements if target_types.get(i) != models.RequirementType.ON]
            if not_ons:
                raise ValidationError(f"Implemented requirements must be ONs: {not_ons}")

        validate_no_cycle(
            item_id,
            list(refines) + list(implements),
            lambda node: latest_hierarchy_parents(db, node),
        )

    def create_from_ids(self, db: Session, item_id: int, version_id: int, relationships: dict[str, tuple]) -> None:
        """
        Validate and insert the edges of a new requirement version.

        Raises:
            ValidationError: On missing targets, self-reference, a hierarchy
                cycle, an ON refining an OR, or implements on a non-OR
        """
        version = db.get(models.ItemVersion, version_id)
        refines = relationships.get("refines_parents", ())
        implements = relationships.get("implemented_ons", ())
        depends = relationships.get("depends_on_requirements", ())
        documents = relationships.get("references_documents", ())

        self._validate_hierarchy(db, item_id, models.RequirementType(version.type), refines, implements)
        self._reject_self_reference(item_id, depends, "depends on")
        self._require_items(db, depends, models.ItemKind.REQUIREMENT, "dependency")
        for category, kind in IMPACT_CATEGORIES.items():
            self._require_taxonomy(db, relationships.get(category, ()), kind, category.replace("_", " "))
        self._require_documents(db, documents)

        for category, table in ITEM_CATEGORIES.items():
            self._insert_item_edges(db, table, version_id, relationships.get(category, ()))
        for category in IMPACT_CATEGORIES:
            self._insert_impacts(db, version_id, relationships.get(category, ()))
        self._insert_document_references(db, version_id, documents)

    def content_filter_clauses(self, filters: Optional[schemas.RequirementFilter]) -> list:
        if filters is None:
            return []
        version = models.ItemVersion
        clauses = []
        if filters.type is not None:
            clauses.append(version.type == filters.type)
        if filters.drg is not None:
            clauses.append(version.drg == filters.drg)
        if filters.title:
            clauses.append(models.Item.title.icontains(filters.title, autoescape=True))
        if filters.text:
            clauses.append(or_(
                version.statement.icontains(filters.text, autoescape=True),
                version.rationale.icontains(filters.text, autoescape=True),
                version.flows.icontains(filters.text, autoescape=True),
            ))
        for ids in (
            filters.stakeholder_categories,
            filters.data_categories,
            filters.services,
            filters.regulatory_aspects,
        ):
            if ids:
                clauses.append(exists().where(
                    models.version_impacts.c.version_id == version.id,
                    models.version_impacts.c.taxonomy_entity_id.in_(ids),
                ))
        return clauses


class RequirementStore(VersionedItemStore):
    """Versioned operational requirements plus inverse lookups."""

    def __init__(self):
        super().__init__(
            RequirementAdapter(),
            models.ItemKind.REQUIREMENT,
            "operational requirement",
            schemas.RequirementResponse,
        )

    def find_children(self, db: Session, item_id: int, baseline_id: Optional[int] = None) -> list:
        """Requirements whose version refines ``item_id``."""
        with storage_errors(f"find children of requirement {item_id}"):
            return self._find_by_edge(db, models.version_refines, "target_item_id", item_id, baseline_id)

    def find_implemented_by(self, db: Session, item_id: int, baseline_id: Optional[int] = None) -> list:
        """ORs whose version implements the ON ``item_id``."""
        with storage_errors(f"find implementers of requirement {item_id}"):
            return self._find_by_edge(db, models.version_implements, "target_item_id", item_id, baseline_id)

    def find_dependents(self, db: Session, item_id: int, baseline_id: Optional[int] = None) -> list:
        """Requirements whose version depends on ``item_id``."""
        with storage_errors(f"find dependents of requirement {item_id}"):
            return self._find_by_edge(db, models.version_depends_on, "target_item_id", item_id, baseline_id)

    def find_requirements_that_impact(
        self,
        db: Session,
        kind: models.TaxonomyKind,
        entity_id: int,
        baseline_id: Optional[int] = None,
    ) -> list:
        """
        Requirements whose version impacts a taxonomy entity.

        Args:
            db: Database session
            kind: Kind the entity must have
            entity_id: Taxonomy entity id
            baseline_id: Baseline context, or None for latest versions

        Returns:
            Hydrated requirements; empty if the entity is not of ``kind``
        """
        with storage_errors(f"find requirements impacting {kind.value} {entity_id}"):
            entity = db.get(models.TaxonomyEntity, entity_id)
            if entity is None or entity.kind != kind:
                return []
            return self._find_by_edge(db, models.version_impacts, "taxonomy_entity_id", entity_id, baseline_id)
