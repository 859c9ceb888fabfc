"""Operational changes: relationship adapter, store and milestone operations."""
import logging
from typing import Optional

from sqlalchemy import exists, or_
from sqlalchemy.orm import Session

from . import models, schemas
from .errors import NotFoundError, ValidationError, storage_errors
from .milestones import MilestoneStore
from .relationships import INHERIT, RelationshipPatch, Replace
from .versioning import RelationshipAdapter, VersionedItemStore
from .wave_filter import get_wave, wave_passes

logger = logging.getLogger("odp-core.changes")

# Change -> item edges with the kind of item each must target
ITEM_CATEGORIES = {
    "satisfies_requirements": (models.version_satisfies, models.ItemKind.REQUIREMENT),
    "supersedes_requirements": (models.version_supersedes, models.ItemKind.REQUIREMENT),
    "depends_on_changes": (models.version_depends_on, models.ItemKind.CHANGE),
}


class ChangeAdapter(RelationshipAdapter):
    """Maps change relationship fields, milestones included, to version edges."""

    content_fields = (
        "purpose", "initial_state", "final_state", "details",
        "private_notes", "path", "visibility", "drg",
    )
    categories = tuple(ITEM_CATEGORIES) + ("references_documents", "milestones")

    def __init__(self, milestones: MilestoneStore):
        self.milestones = milestones

    def code_type_tag(self, content: dict) -> str:
        return "OC"

    def extract_from_input(self, payload) -> tuple[dict, RelationshipPatch]:
        return self._content_from_payload(payload), RelationshipPatch.from_payload(payload, self.categories)

    def build_references(self, db: Session, version_id: int) -> dict[str, list]:
        references = {
            category: self._item_references(db, table, version_id)
            for category, (table, _) in ITEM_CATEGORIES.items()
        }
        references["references_documents"] = self._document_references(db, version_id)
        references["milestones"] = self.milestones.milestones_with_references(db, version_id)
        return references

    def extract_from_version(self, db: Session, version_id: int) -> dict[str, tuple]:
        relationships = {
            category: self._item_edge_ids(db, table, version_id)
            for category, (table, _) in ITEM_CATEGORIES.items()
        }
        relationships["references_documents"] = self._document_reference_inputs(db, version_id)
        relationships["milestones"] = self.milestones.milestone_data_from_version(db, version_id)
        return relationships

    def create_from_ids(self, db: Session, item_id: int, version_id: int, relationships: dict[str, tuple]) -> None:
        """
        Validate and insert the edges and milestones of a new change version.

        Raises:
            ValidationError: On missing targets, a self dependency, an unknown
                wave or a duplicate milestone key
        """
        self._reject_self_reference(item_id, relationships.get("depends_on_changes", ()), "depends on")
        for category, (table, kind) in ITEM_CATEGORIES.items():
            self._require_items(db, relationships.get(category, ()), kind, category.replace("_", " "))
        documents = relationships.get("references_documents", ())
        self._require_documents(db, documents)

        for category, (table, _) in ITEM_CATEGORIES.items():
            self._insert_item_edges(db, table, version_id, relationships.get(category, ()))
        self._insert_document_references(db, version_id, documents)
        self.milestones.create_milestones(db, version_id, relationships.get("milestones", ()))

    def content_filter_clauses(self, filters: Optional[schemas.ChangeFilter]) -> list:
        if filters is None:
            return []
        version = models.ItemVersion
        clauses = []
        if filters.drg is not None:
            clauses.append(version.drg == filters.drg)
        if filters.visibility is not None:
            clauses.append(version.visibility == filters.visibility)
        if filters.title:
            clauses.append(models.Item.title.icontains(filters.title, autoescape=True))
        if filters.text:
            clauses.append(or_(
                version.purpose.icontains(filters.text, autoescape=True),
                version.initial_state.icontains(filters.text, autoescape=True),
                version.final_state.icontains(filters.text, autoescape=True),
                version.details.icontains(filters.text, autoescape=True),
            ))
        for table, ids in (
            (models.version_satisfies, filters.satisfies_requirements),
            (models.version_supersedes, filters.supersedes_requirements),
        ):
            if ids:
                clauses.append(exists().where(
                    table.c.version_id == version.id,
                    table.c.target_item_id.in_(ids),
                ))
        return clauses


class ChangeStore(VersionedItemStore):
    """Versioned operational changes, inverse lookups and milestone operations."""

    def __init__(self, milestones: Optional[MilestoneStore] = None):
        self.milestones = milestones or MilestoneStore()
        super().__init__(
            ChangeAdapter(self.milestones),
            models.ItemKind.CHANGE,
            "operational change",
            schemas.ChangeResponse,
        )

    def find_changes_that_satisfy_requirement(
        self, db: Session, requirement_id: int, baseline_id: Optional[int] = None
    ) -> list:
        """Changes whose version satisfies ``requirement_id``."""
        with storage_errors(f"find changes satisfying requirement {requirement_id}"):
            return self._find_by_edge(db, models.version_satisfies, "target_item_id", requirement_id, baseline_id)

    def find_changes_that_supersede_requirement(
        self, db: Session, requirement_id: int, baseline_id: Optional[int] = None
    ) -> list:
        """Changes whose version supersedes ``requirement_id``."""
        with storage_errors(f"find changes superseding requirement {requirement_id}"):
            return self._find_by_edge(db, models.version_supersedes, "target_item_id", requirement_id, baseline_id)

    def find_dependents(self, db: Session, change_id: int, baseline_id: Optional[int] = None) -> list:
        """Changes whose version depends on ``change_id``."""
        with storage_errors(f"find dependents of change {change_id}"):
            return self._find_by_edge(db, models.version_depends_on, "target_item_id", change_id, baseline_id)

    # Milestones

    def _require_change_in_context(
        self,
        db: Session,
        change_id: int,
        baseline_id: Optional[int],
        from_wave_id: Optional[int],
    ) -> schemas.ChangeResponse:
        change = self.find_by_id(db, change_id, baseline_id, from_wave_id)
        if change is None:
            raise NotFoundError(f"Operational change {change_id} not found")
        return change

    def _milestones_in_context(
        self,
        db: Session,
        change_id: int,
        baseline_id: Optional[int],
        from_wave_id: Optional[int],
    ) -> list[schemas.MilestoneResponse]:
        """Milestones of the change; with a cutoff, only those targeting a wave at or after it."""
        milestones = self._require_change_in_context(db, change_id, baseline_id, from_wave_id).milestones
        if from_wave_id is None:
            return milestones
        cutoff = get_wave(db, from_wave_id)
        return [m for m in milestones if m.wave is not None and wave_passes(m.wave, cutoff)]

    def find_milestones_by_change(
        self,
        db: Session,
        change_id: int,
        baseline_id: Optional[int] = None,
        from_wave_id: Optional[int] = None,
    ) -> list[schemas.MilestoneResponse]:
        """
        Milestones of a change in a context.

        With ``from_wave_id`` only milestones whose own wave is at or after
        the cutoff are returned; milestones without a wave never pass.

        Raises:
            NotFoundError: If the change does not exist in the context
        """
        return self._milestones_in_context(db, change_id, baseline_id, from_wave_id)

    def find_milestone_by_key(
        self,
        db: Session,
        change_id: int,
        milestone_key: str,
        baseline_id: Optional[int] = None,
        from_wave_id: Optional[int] = None,
    ) -> schemas.MilestoneResponse:
        """
        One milestone of a change, by its stable key.

        Raises:
            NotFoundError: If the change or the milestone key does not exist,
                or the milestone falls before the cutoff wave
        """
        for milestone in self._milestones_in_context(db, change_id, baseline_id, from_wave_id):
            if milestone.milestone_key == milestone_key:
                return milestone
        raise NotFoundError(f"Milestone {milestone_key} not found on change {change_id}")

    def _write_milestones(
        self,
        db: Session,
        item: models.Item,
        expected_version_id: int,
        milestones: list[schemas.MilestoneInput],
        actor: str,
    ) -> schemas.ChangeResponse:
        """New change version with the same content and relationships but new milestones."""
        patch = RelationshipPatch({
            category: Replace(tuple(milestones)) if category == "milestones" else INHERIT
            for category in self.adapter.categories
        })
        content = self._current_content(db, item)
        return self._write_version(db, item, expected_version_id, content, patch, actor)

    def _current_milestones(self, db: Session, item: models.Item) -> list[schemas.MilestoneInput]:
        return list(self.milestones.milestone_data_from_version(db, item.latest_version_id))

    def add_milestone(
        self,
        db: Session,
        change_id: int,
        data: schemas.MilestoneInput,
        expected_version_id: int,
        actor: str,
    ) -> schemas.ChangeResponse:
        """
        Add a milestone, creating a new change version.

        Raises:
            NotFoundError: If the change does not exist
            ConflictError: If ``expected_version_id`` is not the latest version
            ValidationError: If the key is already used or the wave is unknown
        """
        with storage_errors(f"add milestone to change {change_id}"):
            item = self._require_item(db, change_id)
            self._check_expected_version(item, expected_version_id)
            milestones = self._current_milestones(db, item)
            if data.milestone_key and any(m.milestone_key == data.milestone_key for m in milestones):
                raise ValidationError(f"Milestone key '{data.milestone_key}' already exists on change {change_id}")
            milestones.append(schemas.MilestoneInput(**data.model_dump(include=set(schemas.MilestoneInput.model_fields))))
            return self._write_milestones(db, item, expected_version_id, milestones, actor)

    def update_milestone(
        self,
        db: Session,
        change_id: int,
        milestone_key: str,
        data: schemas.MilestoneUpdate,
        actor: str,
    ) -> schemas.ChangeResponse:
        """
        Change one milestone, keeping its key, in a new change version.

        Only fields set on ``data`` change.

        Raises:
            NotFoundError: If the change or the milestone key does not exist
            ConflictError: If ``data.expected_version_id`` is not the latest version
        """
        with storage_errors(f"update milestone {milestone_key} of change {change_id}"):
            item = self._require_item(db, change_id)
            self._check_expected_version(item, data.expected_version_id)
            milestones = self._current_milestones(db, item)
            changes = data.model_dump(exclude_unset=True, exclude={"expected_version_id"})
            for index, milestone in enumerate(milestones):
                if milestone.milestone_key == milestone_key:
                    milestones[index] = milestone.model_copy(update=changes)
                    break
            else:
                raise NotFoundError(f"Milestone {milestone_key} not found on change {change_id}")
            return self._write_milestones(db, item, data.expected_version_id, milestones, actor)

    def delete_milestone(
        self,
        db: Session,
        change_id: int,
        milestone_key: str,
        expected_version_id: int,
        actor: str,
    ) -> schemas.ChangeResponse:
        """
        Remove one milestone in a new change version.

        Raises:
            NotFoundError: If the change or the milestone key does not exist
            ConflictError: If ``expected_version_id`` is not the latest version
        """
        with storage_errors(f"delete milestone {milestone_key} of change {change_id}"):
            item = self._require_item(db, change_id)
            self._check_expected_version(item, expected_version_id)
            milestones = self._current_milestones(db, item)
            remaining = [m for m in milestones if m.milestone_key != milestone_key]
            if len(remaining) == len(milestones):
                raise NotFoundError(f"Milestone {milestone_key} not found on change {change_id}")
            return self._write_milestones(db, item, expected_version_id, remaining, actor)
