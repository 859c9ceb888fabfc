"""Tests for baselines and editions."""
import pytest

from odp_core import schemas
from odp_core.errors import ImmutableEntityError, NotFoundError, ValidationError

ACTOR = "tester"


@pytest.fixture
def baseline(db, stores, waves, make_requirement, make_change):
    requirement = make_requirement("Flight Plan Processing", statement="Captured wording")
    change = make_change("Reroute Calc", satisfies_requirements=[requirement.item_id])
    created = stores.baselines.create(
        db, schemas.BaselineCreate(title="2027 Q1 baseline", starts_from_wave_id=waves["2027.1"].id), ACTOR
    )
    db.commit()
    return created, requirement, change


class TestBaselines:
    """Baselines freeze the latest version of every item."""

    def test_captures_every_item(self, baseline):
        created, _, _ = baseline

        assert created.captured_item_count == 2
        assert created.starts_from_wave.name == "2027.1"
        assert created.created_by == ACTOR

    def test_baseline_items(self, db, stores, baseline):
        created, requirement, change = baseline

        items = stores.baselines.get_baseline_items(db, created.id)

        assert {(i.item_id, i.version) for i in items} == {(requirement.item_id, 1), (change.item_id, 1)}
        assert {i.kind for i in items} == {"requirement", "change"}

    def test_captured_versions_survive_updates(self, db, stores, baseline, make_requirement):
        created, requirement, _ = baseline
        payload = schemas.RequirementPatch(expected_version_id=requirement.version_id, statement="New wording")
        stores.requirements.patch(db, requirement.item_id, payload, requirement.version_id, ACTOR)
        make_requirement("Added later")
        db.commit()

        in_baseline = stores.requirements.find_by_id(db, requirement.item_id, baseline_id=created.id)
        listed = stores.requirements.find_all(db, baseline_id=created.id)

        assert in_baseline.version == 1
        assert in_baseline.statement == "Captured wording"
        assert [r.item_id for r in listed] == [requirement.item_id]
        assert stores.baselines.find_by_id(db, created.id).captured_item_count == 2

    def test_item_created_after_baseline_is_absent(self, db, stores, baseline, make_requirement):
        created, _, _ = baseline
        later = make_requirement("Added later")

        assert stores.requirements.find_by_id(db, later.item_id, baseline_id=created.id) is None

    def test_relationship_lookups_in_baseline(self, db, stores, baseline):
        created, requirement, change = baseline
        payload = schemas.ChangePatch(expected_version_id=change.version_id, satisfies_requirements=[])
        stores.changes.patch(db, change.item_id, payload, change.version_id, ACTOR)
        db.commit()

        now = stores.changes.find_changes_that_satisfy_requirement(db, requirement.item_id)
        then = stores.changes.find_changes_that_satisfy_requirement(db, requirement.item_id, created.id)

        assert now == []
        assert [c.item_id for c in then] == [change.item_id]

    def test_update_and_delete_are_refused(self, db, stores, baseline):
        created, _, _ = baseline

        with pytest.raises(ImmutableEntityError, match="Baselines are immutable - update"):
            stores.baselines.update(db, created.id)
        with pytest.raises(ImmutableEntityError, match="delete operation not supported"):
            stores.baselines.delete(db, created.id)

    def test_unknown_wave_rejected(self, db, stores):
        with pytest.raises(ValidationError):
            stores.baselines.create(db, schemas.BaselineCreate(title="Broken", starts_from_wave_id=999), ACTOR)

    def test_unknown_baseline_context(self, db, stores, make_requirement):
        requirement = make_requirement("Flight Plan Processing")

        with pytest.raises(NotFoundError):
            stores.requirements.find_by_id(db, requirement.item_id, baseline_id=999)
        with pytest.raises(NotFoundError):
            stores.baselines.get_baseline_items(db, 999)

    def test_find_all_newest_first(self, db, stores, baseline):
        created, _, _ = baseline
        second = stores.baselines.create(db, schemas.BaselineCreate(title="Second"), ACTOR)
        db.commit()

        assert [b.id for b in stores.baselines.find_all(db)] == [second.id, created.id]


class TestEditions:
    """Editions bind a baseline to a wave cutoff."""

    @pytest.fixture
    def edition(self, db, stores, waves, baseline):
        created, _, _ = baseline
        edition = stores.editions.create(
            db,
            schemas.EditionCreate(
                title="Edition 1", type="DRAFT", baseline_id=created.id, starts_from_wave_id=waves["2027.2"].id
            ),
            ACTOR,
        )
        db.commit()
        return edition

    def test_create(self, edition, baseline):
        created, _, _ = baseline

        assert edition.type == "DRAFT"
        assert edition.baseline.id == created.id
        assert edition.starts_from_wave.name == "2027.2"

    def test_resolve_context(self, db, stores, edition, waves, baseline):
        created, _, _ = baseline

        context = stores.editions.resolve_context(db, edition.id)

        assert context.baseline_id == created.id
        assert context.from_wave_id == waves["2027.2"].id

    def test_resolve_unknown(self, db, stores):
        with pytest.raises(NotFoundError):
            stores.editions.resolve_context(db, 999)

    def test_invalid_references(self, db, stores, waves, baseline):
        created, _, _ = baseline

        with pytest.raises(ValidationError, match="baseline"):
            stores.editions.create(
                db,
                schemas.EditionCreate(title="X", type="DRAFT", baseline_id=999, starts_from_wave_id=waves["2027.1"].id),
                ACTOR,
            )
        with pytest.raises(ValidationError, match="wave"):
            stores.editions.create(
                db,
                schemas.EditionCreate(title="X", type="DRAFT", baseline_id=created.id, starts_from_wave_id=999),
                ACTOR,
            )

    def test_filter_by_type(self, db, stores, edition, waves, baseline):
        created, _, _ = baseline
        official = stores.editions.create(
            db,
            schemas.EditionCreate(
                title="Edition 2", type="OFFICIAL", baseline_id=created.id, starts_from_wave_id=waves["2027.1"].id
            ),
            ACTOR,
        )
        db.commit()

        assert [e.id for e in stores.editions.find_all(db, "OFFICIAL")] == [official.id]
        assert [e.id for e in stores.editions.find_all(db)] == [official.id, edition.id]

    def test_update_and_delete_are_refused(self, db, stores, edition):
        with pytest.raises(ImmutableEntityError):
            stores.editions.update(db, edition.id)
        with pytest.raises(ImmutableEntityError):
            stores.editions.delete(db, edition.id)
