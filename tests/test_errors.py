"""Tests for how store errors are raised and propagated."""
import pytest
from sqlalchemy import delete, update
from sqlalchemy.exc import OperationalError

from odp_core import models, schemas
from odp_core.errors import (
    ConflictError,
    DataIntegrityError,
    NotFoundError,
    StoreFault,
    ValidationError,
    storage_errors,
)
from odp_core.requirements import RequirementStore

ACTOR = "tester"
API = "/api/v1"


def _patch(expected_version_id, statement):
    return schemas.RequirementPatch(expected_version_id=expected_version_id, statement=statement)


def _failing_execute(*args, **kwargs):
    raise OperationalError("SELECT", {}, Exception("disk I/O error"))


class TestStorageErrors:
    """Storage failures are wrapped; domain errors pass through."""

    def test_sqlalchemy_error_becomes_store_fault(self, db, stores, monkeypatch):
        monkeypatch.setattr(db, "execute", _failing_execute)

        with pytest.raises(StoreFault, match="Failed to list operational requirements") as excinfo:
            stores.requirements.find_all(db)

        assert excinfo.value.operation == "list operational requirements"
        assert isinstance(excinfo.value.cause, OperationalError)
        assert isinstance(excinfo.value.__cause__, OperationalError)

    @pytest.mark.parametrize("error", [
        NotFoundError("Operational requirement 7 not found"),
        ConflictError("Outdated item version", expected_version_id=1, current_version_id=2),
        ValidationError("Invalid refines parent reference(s): [9]"),
    ])
    def test_domain_errors_are_not_wrapped(self, error):
        with pytest.raises(type(error)) as excinfo:
            with storage_errors("update operational requirement 7"):
                raise error

        assert excinfo.value is error

    def test_conflict_from_store_is_not_wrapped(self, db, stores, make_requirement):
        requirement = make_requirement("Flight Plan Processing")
        stores.requirements.patch(
            db, requirement.item_id,
            _patch(requirement.version_id, "v2"), requirement.version_id, ACTOR,
        )
        db.commit()

        with pytest.raises(ConflictError) as excinfo:
            stores.requirements.patch(
                db, requirement.item_id,
                _patch(requirement.version_id, "stale"), requirement.version_id, ACTOR,
            )

        assert not isinstance(excinfo.value, StoreFault)
        assert excinfo.value.expected_version_id == requirement.version_id


class TestDataIntegrity:
    """Stored data that breaks the item/version invariant."""

    def test_item_without_versions(self, db, stores, make_requirement):
        requirement = make_requirement("Flight Plan Processing")
        db.execute(
            update(models.Item)
            .where(models.Item.id == requirement.item_id)
            .values(latest_version_id=None)
        )
        db.execute(delete(models.ItemVersion).where(models.ItemVersion.item_id == requirement.item_id))
        db.commit()
        db.expire_all()

        with pytest.raises(DataIntegrityError, match="Item exists but has no versions") as excinfo:
            stores.requirements.find_version_history(db, requirement.item_id)

        assert isinstance(excinfo.value, StoreFault)


class TestStoreFaultResponse:
    """Storage failures reach HTTP clients as 500."""

    def test_store_fault_maps_to_500(self, client, monkeypatch):
        def failing_find_all(self, db, *args, **kwargs):
            raise StoreFault("list operational requirements", OperationalError("SELECT", {}, Exception("gone")))

        monkeypatch.setattr(RequirementStore, "find_all", failing_find_all)

        response = client.get(f"{API}/requirements/")

        assert response.status_code == 500
        assert response.json()["error"] == "StoreFault"
        assert response.json()["detail"].startswith("Failed to list operational requirements")
