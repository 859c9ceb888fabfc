"""Tests for operational changes and their version-scoped milestones."""
import pytest

from odp_core import schemas
from odp_core.errors import ConflictError, NotFoundError, ValidationError

ACTOR = "tester"


@pytest.fixture
def change(waves, make_change):
    return make_change(
        "Reroute Calc",
        purpose="Compute reroutes",
        milestones=[
            {"title": "API published", "event_types": ["API_PUBLICATION"], "wave_id": waves["2027.1"].id},
            {"title": "Go live", "event_types": ["SERVICE_ACTIVATION"], "wave_id": waves["2027.2"].id},
        ],
    )


class TestChangeLifecycle:
    """Create, update and relationship rules for changes."""

    def test_create_with_milestones(self, change, waves):
        assert change.version == 1
        assert change.visibility == "NETWORK"
        assert [m.title for m in change.milestones] == ["API published", "Go live"]
        assert all(m.milestone_key.startswith("ms_") for m in change.milestones)
        assert change.milestones[1].wave.name == "2027.2"
        assert change.milestones[0].event_types == ["API_PUBLICATION"]

    def test_update_carries_milestones_forward(self, db, stores, change):
        payload = schemas.ChangeUpdate(
            title=change.title, purpose="Compute reroutes faster", expected_version_id=change.version_id
        )
        updated = stores.changes.update(db, change.item_id, payload, change.version_id, ACTOR)
        db.commit()

        old_keys = [m.milestone_key for m in change.milestones]
        assert [m.milestone_key for m in updated.milestones] == old_keys
        # Fresh rows per version
        assert {m.id for m in updated.milestones}.isdisjoint({m.id for m in change.milestones})
        assert updated.purpose == "Compute reroutes faster"

    def test_replacing_relationships_clears_milestones(self, db, stores, change, make_requirement):
        requirement = make_requirement("Flight Plan Processing")
        payload = schemas.ChangeUpdate(
            title=change.title,
            satisfies_requirements=[requirement.item_id],
            expected_version_id=change.version_id,
        )
        updated = stores.changes.update(db, change.item_id, payload, change.version_id, ACTOR)

        assert [r.id for r in updated.satisfies_requirements] == [requirement.item_id]
        assert updated.milestones == []

    def test_unknown_wave_rejected(self, make_change):
        with pytest.raises(ValidationError, match="Wave not found"):
            make_change("Reroute Calc", milestones=[{"title": "Go live", "wave_id": 999}])

    def test_duplicate_milestone_key_rejected(self, make_change):
        with pytest.raises(ValidationError, match="Duplicate milestone key"):
            make_change(
                "Reroute Calc",
                milestones=[
                    {"milestone_key": "ms_fixed", "title": "One"},
                    {"milestone_key": "ms_fixed", "title": "Two"},
                ],
            )

    def test_satisfies_must_target_requirements(self, make_change):
        other = make_change("Other Change")

        with pytest.raises(ValidationError):
            make_change("Reroute Calc", satisfies_requirements=[other.item_id])

    def test_depends_on_changes(self, db, stores, make_change):
        base = make_change("Reroute Calc")
        dependent = make_change("Reroute UI", depends_on_changes=[base.item_id])

        assert [c.item_id for c in stores.changes.find_dependents(db, base.item_id)] == [dependent.item_id]

    def test_self_dependency_rejected(self, db, stores, make_change):
        change = make_change("Reroute Calc")
        payload = schemas.ChangePatch(expected_version_id=change.version_id, depends_on_changes=[change.item_id])

        with pytest.raises(ValidationError):
            stores.changes.patch(db, change.item_id, payload, change.version_id, ACTOR)

    def test_filter_by_visibility_and_satisfies(self, db, stores, make_change, make_requirement):
        requirement = make_requirement("Flight Plan Processing")
        public = make_change("Reroute Calc", satisfies_requirements=[requirement.item_id])
        make_change("Internal Tooling", visibility="NM")

        network = stores.changes.find_all(db, filters=schemas.ChangeFilter(visibility="NETWORK"))
        satisfying = stores.changes.find_all(
            db, filters=schemas.ChangeFilter(satisfies_requirements=[requirement.item_id])
        )

        assert [c.item_id for c in network] == [public.item_id]
        assert [c.item_id for c in satisfying] == [public.item_id]


class TestMilestoneOperations:
    """Milestone operations each create a new change version."""

    def test_find_by_key(self, db, stores, change):
        key = change.milestones[1].milestone_key

        milestone = stores.changes.find_milestone_by_key(db, change.item_id, key)

        assert milestone.title == "Go live"

    def test_find_by_change_in_context(self, db, stores, change, waves):
        milestones = stores.changes.find_milestones_by_change(db, change.item_id)

        assert [m.title for m in milestones] == ["API published", "Go live"]
        with pytest.raises(NotFoundError):
            stores.changes.find_milestones_by_change(db, change.item_id, from_wave_id=waves["2027.3"].id)

    def test_find_unknown_key(self, db, stores, change):
        with pytest.raises(NotFoundError):
            stores.changes.find_milestone_by_key(db, change.item_id, "ms_missing")

    def test_add_milestone(self, db, stores, change, waves):
        data = schemas.MilestoneCreate(
            title="Decommission", wave_id=waves["2027.3"].id, expected_version_id=change.version_id
        )

        updated = stores.changes.add_milestone(db, change.item_id, data, change.version_id, ACTOR)

        assert updated.version == 2
        assert [m.title for m in updated.milestones] == ["API published", "Go live", "Decommission"]

    def test_add_milestone_with_taken_key(self, db, stores, change):
        data = schemas.MilestoneCreate(
            milestone_key=change.milestones[0].milestone_key,
            title="Clash",
            expected_version_id=change.version_id,
        )

        with pytest.raises(ValidationError):
            stores.changes.add_milestone(db, change.item_id, data, change.version_id, ACTOR)

    def test_update_milestone_keeps_key(self, db, stores, change, waves):
        key = change.milestones[1].milestone_key
        data = schemas.MilestoneUpdate(expected_version_id=change.version_id, wave_id=waves["2027.3"].id)

        updated = stores.changes.update_milestone(db, change.item_id, key, data, ACTOR)
        milestone = next(m for m in updated.milestones if m.milestone_key == key)

        assert milestone.wave.name == "2027.3"
        assert milestone.title == "Go live"
        assert updated.purpose == "Compute reroutes"

    def test_update_unknown_milestone(self, db, stores, change):
        data = schemas.MilestoneUpdate(expected_version_id=change.version_id, title="Nope")

        with pytest.raises(NotFoundError):
            stores.changes.update_milestone(db, change.item_id, "ms_missing", data, ACTOR)

    def test_delete_milestone(self, db, stores, change):
        key = change.milestones[0].milestone_key

        updated = stores.changes.delete_milestone(db, change.item_id, key, change.version_id, ACTOR)

        assert [m.title for m in updated.milestones] == ["Go live"]
        assert len(stores.changes.find_by_id_and_version(db, change.item_id, 1).milestones) == 2

    def test_milestone_write_with_stale_version(self, db, stores, change):
        key = change.milestones[0].milestone_key
        stores.changes.delete_milestone(db, change.item_id, key, change.version_id, ACTOR)
        db.commit()

        with pytest.raises(ConflictError):
            stores.changes.delete_milestone(
                db, change.item_id, change.milestones[1].milestone_key, change.version_id, ACTOR
            )

    def test_milestones_by_wave(self, db, stores, change, waves):
        found = stores.milestones.find_milestones_by_wave(db, waves["2027.2"].id)

        assert [m.title for m in found] == ["Go live"]
        assert found[0].change.id == change.item_id
        assert found[0].change_version_id == change.version_id

    def test_milestones_by_unknown_wave(self, db, stores):
        with pytest.raises(NotFoundError):
            stores.milestones.find_milestones_by_wave(db, 999)


class TestMilestoneCutoff:
    """With a cutoff wave only milestones at or after it are returned."""

    @pytest.fixture
    def planned(self, waves, make_change):
        return make_change(
            "Reroute Calc",
            milestones=[
                {"title": "Early", "wave_id": waves["2027.1"].id},
                {"title": "Late", "wave_id": waves["2027.3"].id},
                {"title": "Unplanned"},
            ],
        )

    def test_milestones_filtered_per_wave(self, db, stores, waves, planned):
        cutoff = waves["2027.2"].id

        milestones = stores.changes.find_milestones_by_change(db, planned.item_id, from_wave_id=cutoff)

        assert [m.title for m in milestones] == ["Late"]
        assert len(stores.changes.find_milestones_by_change(db, planned.item_id)) == 3

    def test_key_before_cutoff_not_found(self, db, stores, waves, planned):
        early, late, unplanned = (m.milestone_key for m in planned.milestones)
        cutoff = waves["2027.2"].id

        assert stores.changes.find_milestone_by_key(db, planned.item_id, late, from_wave_id=cutoff).title == "Late"
        with pytest.raises(NotFoundError):
            stores.changes.find_milestone_by_key(db, planned.item_id, early, from_wave_id=cutoff)
        with pytest.raises(NotFoundError):
            stores.changes.find_milestone_by_key(db, planned.item_id, unplanned, from_wave_id=cutoff)

    def test_by_wave_before_cutoff_is_empty(self, db, stores, waves, planned):
        early_wave, late_wave, cutoff = waves["2027.1"].id, waves["2027.3"].id, waves["2027.2"].id

        assert stores.milestones.find_milestones_by_wave(db, early_wave, from_wave_id=cutoff) == []
        assert [m.title for m in stores.milestones.find_milestones_by_wave(db, late_wave, from_wave_id=cutoff)] == [
            "Late"
        ]
        assert [m.title for m in stores.milestones.find_milestones_by_wave(db, early_wave)] == ["Early"]

    def test_by_wave_unknown_cutoff(self, db, stores, waves, planned):
        with pytest.raises(NotFoundError):
            stores.milestones.find_milestones_by_wave(db, waves["2027.1"].id, from_wave_id=999)
