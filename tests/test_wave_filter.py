"""Tests for wave-cascade filtering of changes and requirements."""
from datetime import date

import pytest

from odp_core import models, schemas
from odp_core.errors import NotFoundError
from odp_core.wave_filter import visible_requirement_ids, wave_key, wave_passes

ACTOR = "tester"


def _milestone(wave):
    return [{"title": f"Delivery {wave.name}", "event_types": ["SERVICE_ACTIVATION"], "wave_id": wave.id}]


def _ids(items):
    return [i.item_id for i in items]


class TestWaveOrdering:
    """Waves compare by (year, quarter) with a missing quarter as 0."""

    def test_wave_key(self):
        assert wave_key(models.Wave(year=2027, quarter=2)) == (2027, 2)
        assert wave_key(models.Wave(year=2028, quarter=None)) == (2028, 0)

    def test_wave_passes(self):
        q2 = models.Wave(year=2027, quarter=2)

        assert wave_passes(q2, models.Wave(year=2027, quarter=1))
        assert wave_passes(q2, q2)
        assert not wave_passes(q2, models.Wave(year=2027, quarter=3))
        assert wave_passes(models.Wave(year=2028, quarter=None), models.Wave(year=2027, quarter=4))


class TestChangeVisibility:
    """A change is visible when a milestone targets a wave at or after the cutoff."""

    def test_milestone_wave_against_cutoffs(self, db, stores, waves, make_change):
        change = make_change("Reroute Calc", milestones=_milestone(waves["2027.2"]))

        assert _ids(stores.changes.find_all(db, from_wave_id=waves["2027.1"].id)) == [change.item_id]
        assert _ids(stores.changes.find_all(db, from_wave_id=waves["2027.2"].id)) == [change.item_id]
        assert stores.changes.find_all(db, from_wave_id=waves["2027.3"].id) == []

    def test_change_without_wave_is_hidden(self, db, stores, waves, make_change):
        make_change("Reroute Calc", milestones=[{"title": "Someday"}])
        make_change("No Milestones")

        assert stores.changes.find_all(db, from_wave_id=waves["2027.1"].id) == []
        assert len(stores.changes.find_all(db)) == 2

    def test_any_milestone_is_enough(self, db, stores, waves, make_change):
        change = make_change(
            "Reroute Calc", milestones=_milestone(waves["2027.1"]) + [
                {"title": "Late", "wave_id": waves["2027.3"].id},
            ]
        )

        assert _ids(stores.changes.find_all(db, from_wave_id=waves["2027.3"].id)) == [change.item_id]

    def test_year_without_quarter(self, db, stores, waves, make_change):
        later = stores.waves.create(db, schemas.WaveCreate(year=2028, date=date(2028, 1, 1)), ACTOR)
        db.commit()
        change = make_change("Reroute Calc", milestones=_milestone(later))

        assert later.name == "2028"
        assert _ids(stores.changes.find_all(db, from_wave_id=waves["2027.3"].id)) == [change.item_id]

    def test_find_by_id_respects_cutoff(self, db, stores, waves, make_change):
        change = make_change("Reroute Calc", milestones=_milestone(waves["2027.2"]))

        assert stores.changes.find_by_id(db, change.item_id, from_wave_id=waves["2027.1"].id) is not None
        assert stores.changes.find_by_id(db, change.item_id, from_wave_id=waves["2027.3"].id) is None

    def test_unknown_cutoff(self, db, stores, waves):
        with pytest.raises(NotFoundError):
            stores.changes.find_all(db, from_wave_id=999)


class TestRequirementVisibility:
    """Requirements follow the changes that fulfil them and ascend the hierarchy."""

    def test_satisfied_requirement_follows_change(self, db, stores, waves, make_requirement, make_change):
        requirement = make_requirement("Flight Plan Processing")
        make_change(
            "Reroute Calc",
            satisfies_requirements=[requirement.item_id],
            milestones=_milestone(waves["2027.2"]),
        )

        assert _ids(stores.requirements.find_all(db, from_wave_id=waves["2027.1"].id)) == [requirement.item_id]
        assert stores.requirements.find_all(db, from_wave_id=waves["2027.3"].id) == []

    def test_no_false_positive_through_fulfilment(self, db, stores, waves, make_requirement, make_change):
        early = make_requirement("Early Requirement")
        late = make_requirement("Late Requirement")
        make_change("Early Change", satisfies_requirements=[early.item_id], milestones=_milestone(waves["2027.1"]))
        make_change("Late Change", supersedes_requirements=[late.item_id], milestones=_milestone(waves["2027.3"]))

        visible = stores.requirements.find_all(db, from_wave_id=waves["2027.2"].id)

        assert _ids(visible) == [late.item_id]

    def test_unfulfilled_requirement_is_hidden(self, db, stores, waves, make_requirement):
        make_requirement("Flight Plan Processing")

        assert stores.requirements.find_all(db, from_wave_id=waves["2027.1"].id) == []

    def test_ascends_refines_and_implements(self, db, stores, waves, make_requirement, make_change):
        root = make_requirement("Network Operations", type="ON")
        level1 = make_requirement("Flow Management", type="ON", refines_parents=[root.item_id])
        level2 = make_requirement("Capacity Planning", type="ON", refines_parents=[level1.item_id])
        level3 = make_requirement("Demand Forecasting", type="ON", refines_parents=[level2.item_id])
        leaf = make_requirement("Forecast Feed", type="OR", implemented_ons=[level3.item_id])
        unrelated = make_requirement("Unrelated Need", type="ON")
        make_change("Forecast Service", satisfies_requirements=[leaf.item_id], milestones=_milestone(waves["2027.2"]))

        visible = {r.item_id for r in stores.requirements.find_all(db, from_wave_id=waves["2027.1"].id)}

        assert visible == {root.item_id, level1.item_id, level2.item_id, level3.item_id, leaf.item_id}
        assert unrelated.item_id not in visible

    def test_ascent_does_not_descend(self, db, stores, waves, make_requirement, make_change):
        parent = make_requirement("Network Operations", type="ON")
        child = make_requirement("Flight Plan Processing", refines_parents=[parent.item_id])
        make_change("Ops Change", satisfies_requirements=[parent.item_id], milestones=_milestone(waves["2027.2"]))

        visible = visible_requirement_ids(db, db.get(models.Wave, waves["2027.1"].id))

        assert visible == {parent.item_id}
        assert child.item_id not in visible


class TestBaselineContext:
    """Filtering reads the versions a baseline captured."""

    def test_cutoff_uses_captured_milestones(self, db, stores, waves, make_requirement, make_change):
        requirement = make_requirement("Flight Plan Processing")
        change = make_change(
            "Reroute Calc",
            satisfies_requirements=[requirement.item_id],
            milestones=_milestone(waves["2027.3"]),
        )
        baseline = stores.baselines.create(db, schemas.BaselineCreate(title="Before replanning"), ACTOR)
        db.commit()

        key = change.milestones[0].milestone_key
        data = schemas.MilestoneUpdate(expected_version_id=change.version_id, wave_id=waves["2027.1"].id)
        stores.changes.update_milestone(db, change.item_id, key, data, ACTOR)
        db.commit()

        cutoff = waves["2027.2"].id
        assert stores.changes.find_all(db, from_wave_id=cutoff) == []
        assert _ids(stores.changes.find_all(db, baseline_id=baseline.id, from_wave_id=cutoff)) == [change.item_id]
        assert _ids(stores.requirements.find_all(db, baseline_id=baseline.id, from_wave_id=cutoff)) == [
            requirement.item_id
        ]
        assert stores.requirements.find_all(db, from_wave_id=cutoff) == []
