"""Tests for the item/version engine: history, concurrency and relationship inheritance."""
import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import sessionmaker

from odp_core import models, schemas
from odp_core.context import build_store_context
from odp_core.database import Base, enable_sqlite_foreign_keys
from odp_core.errors import ConflictError, NotFoundError, ValidationError

ACTOR = "tester"


def _update(stores, db, requirement, **fields):
    payload = schemas.RequirementUpdate(
        title=fields.pop("title", requirement.title),
        type=fields.pop("type", requirement.type),
        expected_version_id=fields.pop("expected_version_id", requirement.version_id),
        **fields,
    )
    updated = stores.requirements.update(db, requirement.item_id, payload, payload.expected_version_id, ACTOR)
    db.commit()
    return updated


class TestVersionHistory:
    """Version numbers and the latest-version pointer."""

    def test_create_starts_at_version_one(self, make_requirement):
        requirement = make_requirement("Flight Plan Processing")

        assert requirement.version == 1
        assert requirement.created_by == ACTOR
        assert requirement.version_created_by == ACTOR

    def test_history_is_contiguous_newest_first(self, db, stores, make_requirement):
        requirement = make_requirement("Flight Plan Processing")
        for i in range(3):
            requirement = _update(stores, db, requirement, statement=f"Revision {i}")

        history = stores.requirements.find_version_history(db, requirement.item_id)

        assert [v.version for v in history] == [4, 3, 2, 1]
        assert history[0].version_id == requirement.version_id

    def test_old_versions_keep_their_content(self, db, stores, make_requirement):
        requirement = make_requirement("Flight Plan Processing", statement="Original")
        _update(stores, db, requirement, title="Flight Plan Handling", statement="Changed")

        first = stores.requirements.find_by_id_and_version(db, requirement.item_id, 1)
        latest = stores.requirements.find_by_id(db, requirement.item_id)

        assert first.statement == "Original"
        assert latest.statement == "Changed"
        assert latest.title == "Flight Plan Handling"
        assert latest.version == 2

    def test_missing_version_returns_none(self, db, stores, make_requirement):
        requirement = make_requirement("Flight Plan Processing")

        assert stores.requirements.find_by_id_and_version(db, requirement.item_id, 5) is None

    def test_history_of_unknown_item(self, db, stores):
        with pytest.raises(NotFoundError):
            stores.requirements.find_version_history(db, 999)

    def test_kinds_are_not_mixed(self, db, stores, make_change):
        change = make_change("Reroute Calc")

        assert stores.requirements.find_by_id(db, change.item_id) is None
        assert not stores.requirements.exists(db, change.item_id)
        assert stores.changes.exists(db, change.item_id)


class TestOptimisticConcurrency:
    """Writes are refused when the caller's expected version is outdated."""

    def test_stale_expected_version_conflicts(self, db, stores, make_requirement):
        requirement = make_requirement("Flight Plan Processing")
        second = _update(stores, db, requirement, statement="First writer")

        with pytest.raises(ConflictError) as exc_info:
            _update(stores, db, requirement, statement="Second writer")

        assert exc_info.value.expected_version_id == requirement.version_id
        assert exc_info.value.current_version_id == second.version_id
        db.rollback()
        history = stores.requirements.find_version_history(db, requirement.item_id)
        assert [v.version for v in history] == [2, 1]

    def test_update_of_unknown_item(self, db, stores):
        payload = schemas.RequirementUpdate(title="Ghost", type="OR", expected_version_id=1)

        with pytest.raises(NotFoundError):
            stores.requirements.update(db, 999, payload, 1, ACTOR)

    def test_concurrent_sessions_one_wins(self, tmp_path):
        engine = create_engine(f"sqlite:///{tmp_path / 'race.db'}")
        enable_sqlite_foreign_keys(engine)
        Base.metadata.create_all(engine)
        Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)
        stores = build_store_context()

        with Session() as setup:
            created = stores.requirements.create(
                setup, schemas.RequirementCreate(title="Flight Plan Processing", type="OR"), ACTOR
            )
            setup.commit()

        first, second = Session(), Session()
        try:
            # Both writers read version 1 before either writes
            stores.requirements.find_by_id(first, created.item_id)
            stores.requirements.find_by_id(second, created.item_id)

            payload = schemas.RequirementUpdate(
                title="Flight Plan Processing", type="OR", statement="winner",
                expected_version_id=created.version_id,
            )
            stores.requirements.update(second, created.item_id, payload, created.version_id, ACTOR)
            second.commit()

            payload = payload.model_copy(update={"statement": "loser"})
            with pytest.raises(ConflictError):
                stores.requirements.update(first, created.item_id, payload, created.version_id, ACTOR)
            first.rollback()
        finally:
            first.close()
            second.close()

        with Session() as check:
            history = stores.requirements.find_version_history(check, created.item_id)
            latest = stores.requirements.find_by_id(check, created.item_id)
        engine.dispose()

        assert [v.version for v in history] == [2, 1]
        assert latest.statement == "winner"


class TestRelationshipInheritance:
    """A new version inherits or replaces the expected version's relationships."""

    @pytest.fixture
    def linked(self, db, stores, make_requirement, make_taxonomy):
        parent = make_requirement("Network Operations", type="ON")
        service = make_taxonomy(models.TaxonomyKind.SERVICE, "Flight Planning")
        document = stores.documents.create(db, schemas.DocumentCreate(name="ConOps"), ACTOR)
        db.commit()
        child = make_requirement(
            "Flight Plan Processing",
            refines_parents=[parent.item_id],
            impacts_services=[service.id],
            references_documents=[{"document_id": document.id, "note": "section 2"}],
        )
        return parent, service, document, child

    def test_no_relationship_fields_inherits_all(self, db, stores, linked):
        parent, service, document, child = linked

        updated = _update(stores, db, child, statement="New wording")

        assert [r.id for r in updated.refines_parents] == [parent.item_id]
        assert [r.id for r in updated.impacts_services] == [service.id]
        assert [(r.id, r.note) for r in updated.references_documents] == [(document.id, "section 2")]

    def test_inherited_edges_are_fresh_rows(self, db, stores, linked):
        _, _, _, child = linked

        updated = _update(stores, db, child, statement="New wording")

        rows = db.scalars(
            select(models.version_refines.c.version_id)
            .where(models.version_refines.c.version_id.in_([child.version_id, updated.version_id]))
        ).all()
        assert sorted(rows) == sorted([child.version_id, updated.version_id])

    def test_any_relationship_field_replaces_all(self, db, stores, linked):
        _, _, _, child = linked

        updated = _update(stores, db, child, refines_parents=[])

        assert updated.refines_parents == []
        assert updated.impacts_services == []
        assert updated.references_documents == []

    def test_previous_version_keeps_relationships(self, db, stores, linked):
        parent, _, _, child = linked
        _update(stores, db, child, refines_parents=[])

        first = stores.requirements.find_by_id_and_version(db, child.item_id, 1)

        assert [r.id for r in first.refines_parents] == [parent.item_id]

    def test_patch_replaces_only_supplied_categories(self, db, stores, linked, make_taxonomy):
        parent, _, document, child = linked
        other = make_taxonomy(models.TaxonomyKind.SERVICE, "Airspace Data")

        payload = schemas.RequirementPatch(expected_version_id=child.version_id, impacts_services=[other.id])
        patched = stores.requirements.patch(db, child.item_id, payload, child.version_id, ACTOR)
        db.commit()

        assert [r.id for r in patched.impacts_services] == [other.id]
        assert [r.id for r in patched.refines_parents] == [parent.item_id]
        assert [r.id for r in patched.references_documents] == [document.id]
        assert patched.statement == child.statement
        assert patched.version == 2

    def test_patch_keeps_unsupplied_content(self, db, stores, make_requirement):
        requirement = make_requirement("Flight Plan Processing", statement="Keep me", rationale="Old")

        payload = schemas.RequirementPatch(expected_version_id=requirement.version_id, rationale="New")
        patched = stores.requirements.patch(db, requirement.item_id, payload, requirement.version_id, ACTOR)

        assert patched.statement == "Keep me"
        assert patched.rationale == "New"
        assert patched.title == "Flight Plan Processing"

    def test_patch_null_title_keeps_title(self, db, stores, make_requirement):
        requirement = make_requirement("Flight Plan Processing")

        payload = schemas.RequirementPatch(expected_version_id=requirement.version_id, title=None)
        patched = stores.requirements.patch(db, requirement.item_id, payload, requirement.version_id, ACTOR)

        assert patched.title == "Flight Plan Processing"


class TestDelete:
    """Deleting items with their history."""

    def test_delete_removes_item_and_versions(self, db, stores, make_requirement):
        requirement = make_requirement("Flight Plan Processing")
        _update(stores, db, requirement, statement="v2")

        stores.requirements.delete(db, requirement.item_id)
        db.commit()

        assert stores.requirements.find_by_id(db, requirement.item_id) is None
        assert db.scalar(select(func.count()).select_from(models.ItemVersion)) == 0

    def test_delete_refused_while_referenced(self, db, stores, make_requirement):
        parent = make_requirement("Network Operations", type="ON")
        make_requirement("Flight Plan Processing", refines_parents=[parent.item_id])

        with pytest.raises(ValidationError):
            stores.requirements.delete(db, parent.item_id)

    def test_delete_refused_when_captured_by_baseline(self, db, stores, make_requirement):
        requirement = make_requirement("Flight Plan Processing")
        stores.baselines.create(db, schemas.BaselineCreate(title="Q1"), ACTOR)
        db.commit()

        with pytest.raises(ValidationError):
            stores.requirements.delete(db, requirement.item_id)

    def test_delete_unknown_item(self, db, stores):
        with pytest.raises(NotFoundError):
            stores.changes.delete(db, 999)

    def test_delete_change_removes_milestones(self, db, stores, waves, make_change):
        change = make_change("Reroute Calc", milestones=[{"title": "Go live", "wave_id": waves["2027.2"].id}])

        stores.changes.delete(db, change.item_id)
        db.commit()

        assert db.scalar(select(func.count()).select_from(models.Milestone)) == 0
