"""Operational requirement API endpoints."""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy.orm import Session

from ... import schemas
from ...context import StoreContext
from ...database import get_db
from ...models import DraftingGroup, RequirementType, TaxonomyKind
from ..dependencies import get_actor, get_stores, resolve_read_context

logger = logging.getLogger("odp-core.api.requirements")

router = APIRouter(tags=["requirements"])


@router.get("/", response_model=List[schemas.RequirementResponse])
def list_requirements(
    baseline: Optional[int] = Query(None, description="Baseline id; list the captured versions"),
    from_wave: Optional[int] = Query(None, description="Only requirements still relevant from this wave"),
    edition: Optional[int] = Query(None, description="Edition id; replaces baseline and from_wave"),
    type: Optional[RequirementType] = Query(None),
    drg: Optional[DraftingGroup] = Query(None),
    title: Optional[str] = Query(None, description="Substring of the title"),
    text: Optional[str] = Query(None, description="Substring of statement, rationale or flows"),
    stakeholder_category: List[int] = Query([]),
    data_category: List[int] = Query([]),
    service: List[int] = Query([]),
    regulatory_aspect: List[int] = Query([]),
    db: Session = Depends(get_db),
    stores: StoreContext = Depends(get_stores),
):
    """
    List requirements ordered by title.

    - **baseline** / **from_wave**: read context
    - **edition**: shorthand for the edition's baseline and wave
    - remaining parameters filter content; all must match
    """
    baseline_id, from_wave_id = resolve_read_context(db, stores, baseline, from_wave, edition)
    filters = schemas.RequirementFilter(
        type=type,
        drg=drg,
        title=title,
        text=text,
        stakeholder_categories=stakeholder_category,
        data_categories=data_category,
        services=service,
        regulatory_aspects=regulatory_aspect,
    )
    return stores.requirements.find_all(db, baseline_id, from_wave_id, filters)


@router.post("/", response_model=schemas.RequirementResponse, status_code=201)
def create_requirement(
    payload: schemas.RequirementCreate,
    db: Session = Depends(get_db),
    stores: StoreContext = Depends(get_stores),
    actor: str = Depends(get_actor),
):
    """
    Create a requirement with version 1.

    - **title**, **type**: required
    - **drg**: drafting group; when given a code like ``OR-FLOW-0001`` is allocated
    - relationship fields: ids of the related entities
    """
    requirement = stores.requirements.create(db, payload, actor)
    db.commit()
    return requirement


@router.get("/impacted-by/{kind}/{entity_id}", response_model=List[schemas.RequirementResponse])
def list_requirements_impacting(
    kind: TaxonomyKind,
    entity_id: int,
    baseline: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    stores: StoreContext = Depends(get_stores),
):
    """Requirements that impact a stakeholder category, data category, service or regulatory aspect."""
    return stores.requirements.find_requirements_that_impact(db, kind, entity_id, baseline)


@router.get("/{item_id}", response_model=schemas.RequirementResponse)
def get_requirement(
    item_id: int,
    baseline: Optional[int] = Query(None),
    from_wave: Optional[int] = Query(None),
    edition: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    stores: StoreContext = Depends(get_stores),
):
    """Get a requirement in its latest version, or as captured by a baseline/edition."""
    baseline_id, from_wave_id = resolve_read_context(db, stores, baseline, from_wave, edition)
    requirement = stores.requirements.find_by_id(db, item_id, baseline_id, from_wave_id)
    if requirement is None:
        raise HTTPException(status_code=404, detail=f"Operational requirement not found: {item_id}")
    return requirement


@router.put("/{item_id}", response_model=schemas.RequirementResponse)
def update_requirement(
    item_id: int,
    payload: schemas.RequirementUpdate,
    db: Session = Depends(get_db),
    stores: StoreContext = Depends(get_stores),
    actor: str = Depends(get_actor),
):
    """
    Replace a requirement's content, creating a new version.

    - **expected_version_id**: the version id last read; 409 if it is outdated
    - omit every relationship field to keep the current relationships
    """
    requirement = stores.requirements.update(db, item_id, payload, payload.expected_version_id, actor)
    db.commit()
    return requirement


@router.patch("/{item_id}", response_model=schemas.RequirementResponse)
def patch_requirement(
    item_id: int,
    payload: schemas.RequirementPatch,
    db: Session = Depends(get_db),
    stores: StoreContext = Depends(get_stores),
    actor: str = Depends(get_actor),
):
    """Change only the supplied fields, creating a new version."""
    requirement = stores.requirements.patch(db, item_id, payload, payload.expected_version_id, actor)
    db.commit()
    return requirement


@router.delete("/{item_id}", status_code=204)
def delete_requirement(
    item_id: int,
    db: Session = Depends(get_db),
    stores: StoreContext = Depends(get_stores),
):
    """Delete a requirement and its whole history."""
    stores.requirements.delete(db, item_id)
    db.commit()
    logger.info(f"Requirement {item_id} deleted")
    return Response(status_code=204)


@router.get("/{item_id}/versions", response_model=List[schemas.VersionSummary])
def get_requirement_history(
    item_id: int,
    db: Session = Depends(get_db),
    stores: StoreContext = Depends(get_stores),
):
    """Version history, newest first."""
    return stores.requirements.find_version_history(db, item_id)


@router.get("/{item_id}/versions/{version}", response_model=schemas.RequirementResponse)
def get_requirement_version(
    item_id: int,
    version: int,
    db: Session = Depends(get_db),
    stores: StoreContext = Depends(get_stores),
):
    """A specific historical version."""
    requirement = stores.requirements.find_by_id_and_version(db, item_id, version)
    if requirement is None:
        raise HTTPException(status_code=404, detail=f"Version {version} of requirement {item_id} not found")
    return requirement


@router.get("/{item_id}/children", response_model=List[schemas.RequirementResponse])
def get_requirement_children(
    item_id: int,
    baseline: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    stores: StoreContext = Depends(get_stores),
):
    """Requirements that refine this one."""
    return stores.requirements.find_children(db, item_id, baseline)


@router.get("/{item_id}/implemented-by", response_model=List[schemas.RequirementResponse])
def get_requirement_implementers(
    item_id: int,
    baseline: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    stores: StoreContext = Depends(get_stores),
):
    """ORs that implement this ON."""
    return stores.requirements.find_implemented_by(db, item_id, baseline)


@router.get("/{item_id}/dependents", response_model=List[schemas.RequirementResponse])
def get_requirement_dependents(
    item_id: int,
    baseline: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    stores: StoreContext = Depends(get_stores),
):
    """Requirements that depend on this one."""
    return stores.requirements.find_dependents(db, item_id, baseline)


@router.get("/{item_id}/satisfied-by", response_model=List[schemas.ChangeResponse])
def get_satisfying_changes(
    item_id: int,
    baseline: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    stores: StoreContext = Depends(get_stores),
):
    """Changes that satisfy this requirement."""
    return stores.changes.find_changes_that_satisfy_requirement(db, item_id, baseline)


@router.get("/{item_id}/superseded-by", response_model=List[schemas.ChangeResponse])
def get_superseding_changes(
    item_id: int,
    baseline: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    stores: StoreContext = Depends(get_stores),
):
    """Changes that supersede this requirement."""
    return stores.changes.find_changes_that_supersede_requirement(db, item_id, baseline)
