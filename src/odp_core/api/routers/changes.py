"""Operational change API endpoints, milestones included."""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy.orm import Session

from ... import schemas
from ...context import StoreContext
from ...database import get_db
from ...models import DraftingGroup, Visibility
from ..dependencies import get_actor, get_stores, resolve_read_context

logger = logging.getLogger("odp-core.api.changes")

router = APIRouter(tags=["changes"])


@router.get("/", response_model=List[schemas.ChangeResponse])
def list_changes(
    baseline: Optional[int] = Query(None, description="Baseline id; list the captured versions"),
    from_wave: Optional[int] = Query(None, description="Only changes with a milestone from this wave on"),
    edition: Optional[int] = Query(None, description="Edition id; replaces baseline and from_wave"),
    drg: Optional[DraftingGroup] = Query(None),
    visibility: Optional[Visibility] = Query(None),
    title: Optional[str] = Query(None, description="Substring of the title"),
    text: Optional[str] = Query(None, description="Substring of purpose, states or details"),
    satisfies: List[int] = Query([], description="Satisfies any of these requirement ids"),
    supersedes: List[int] = Query([], description="Supersedes any of these requirement ids"),
    db: Session = Depends(get_db),
    stores: StoreContext = Depends(get_stores),
):
    """List changes ordered by title."""
    baseline_id, from_wave_id = resolve_read_context(db, stores, baseline, from_wave, edition)
    filters = schemas.ChangeFilter(
        drg=drg,
        visibility=visibility,
        title=title,
        text=text,
        satisfies_requirements=satisfies,
        supersedes_requirements=supersedes,
    )
    return stores.changes.find_all(db, baseline_id, from_wave_id, filters)


@router.post("/", response_model=schemas.ChangeResponse, status_code=201)
def create_change(
    payload: schemas.ChangeCreate,
    db: Session = Depends(get_db),
    stores: StoreContext = Depends(get_stores),
    actor: str = Depends(get_actor),
):
    """
    Create a change with version 1.

    - **milestones**: each may target a wave; keys are generated when absent
    - **drg**: drafting group; when given a code like ``OC-IDL-0001`` is allocated
    """
    change = stores.changes.create(db, payload, actor)
    db.commit()
    return change


@router.get("/{item_id}", response_model=schemas.ChangeResponse)
def get_change(
    item_id: int,
    baseline: Optional[int] = Query(None),
    from_wave: Optional[int] = Query(None),
    edition: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    stores: StoreContext = Depends(get_stores),
):
    """Get a change in its latest version, or as captured by a baseline/edition."""
    baseline_id, from_wave_id = resolve_read_context(db, stores, baseline, from_wave, edition)
    change = stores.changes.find_by_id(db, item_id, baseline_id, from_wave_id)
    if change is None:
        raise HTTPException(status_code=404, detail=f"Operational change not found: {item_id}")
    return change


@router.put("/{item_id}", response_model=schemas.ChangeResponse)
def update_change(
    item_id: int,
    payload: schemas.ChangeUpdate,
    db: Session = Depends(get_db),
    stores: StoreContext = Depends(get_stores),
    actor: str = Depends(get_actor),
):
    """
    Replace a change's content, creating a new version.

    - **expected_version_id**: the version id last read; 409 if it is outdated
    - omit every relationship field (milestones too) to keep the current ones
    """
    change = stores.changes.update(db, item_id, payload, payload.expected_version_id, actor)
    db.commit()
    return change


@router.patch("/{item_id}", response_model=schemas.ChangeResponse)
def patch_change(
    item_id: int,
    payload: schemas.ChangePatch,
    db: Session = Depends(get_db),
    stores: StoreContext = Depends(get_stores),
    actor: str = Depends(get_actor),
):
    """Change only the supplied fields, creating a new version."""
    change = stores.changes.patch(db, item_id, payload, payload.expected_version_id, actor)
    db.commit()
    return change


@router.delete("/{item_id}", status_code=204)
def delete_change(
    item_id: int,
    db: Session = Depends(get_db),
    stores: StoreContext = Depends(get_stores),
):
    """Delete a change and its whole history."""
    stores.changes.delete(db, item_id)
    db.commit()
    logger.info(f"Change {item_id} deleted")
    return Response(status_code=204)


@router.get("/{item_id}/versions", response_model=List[schemas.VersionSummary])
def get_change_history(
    item_id: int,
    db: Session = Depends(get_db),
    stores: StoreContext = Depends(get_stores),
):
    """Version history, newest first."""
    return stores.changes.find_version_history(db, item_id)


@router.get("/{item_id}/versions/{version}", response_model=schemas.ChangeResponse)
def get_change_version(
    item_id: int,
    version: int,
    db: Session = Depends(get_db),
    stores: StoreContext = Depends(get_stores),
):
    """A specific historical version."""
    change = stores.changes.find_by_id_and_version(db, item_id, version)
    if change is None:
        raise HTTPException(status_code=404, detail=f"Version {version} of change {item_id} not found")
    return change


@router.get("/{item_id}/dependents", response_model=List[schemas.ChangeResponse])
def get_change_dependents(
    item_id: int,
    baseline: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    stores: StoreContext = Depends(get_stores),
):
    """Changes that depend on this one."""
    return stores.changes.find_dependents(db, item_id, baseline)


# Milestones

@router.get("/{item_id}/milestones", response_model=List[schemas.MilestoneResponse])
def list_change_milestones(
    item_id: int,
    baseline: Optional[int] = Query(None),
    from_wave: Optional[int] = Query(None),
    edition: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    stores: StoreContext = Depends(get_stores),
):
    """Milestones of a change in a read context."""
    baseline_id, from_wave_id = resolve_read_context(db, stores, baseline, from_wave, edition)
    return stores.changes.find_milestones_by_change(db, item_id, baseline_id, from_wave_id)


@router.get("/{item_id}/milestones/{milestone_key}", response_model=schemas.MilestoneResponse)
def get_change_milestone(
    item_id: int,
    milestone_key: str,
    baseline: Optional[int] = Query(None),
    from_wave: Optional[int] = Query(None),
    edition: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    stores: StoreContext = Depends(get_stores),
):
    """One milestone by its stable key."""
    baseline_id, from_wave_id = resolve_read_context(db, stores, baseline, from_wave, edition)
    return stores.changes.find_milestone_by_key(db, item_id, milestone_key, baseline_id, from_wave_id)


@router.post("/{item_id}/milestones", response_model=schemas.ChangeResponse, status_code=201)
def add_change_milestone(
    item_id: int,
    payload: schemas.MilestoneCreate,
    db: Session = Depends(get_db),
    stores: StoreContext = Depends(get_stores),
    actor: str = Depends(get_actor),
):
    """Add a milestone; returns the new change version."""
    change = stores.changes.add_milestone(db, item_id, payload, payload.expected_version_id, actor)
    db.commit()
    return change


@router.put("/{item_id}/milestones/{milestone_key}", response_model=schemas.ChangeResponse)
def update_change_milestone(
    item_id: int,
    milestone_key: str,
    payload: schemas.MilestoneUpdate,
    db: Session = Depends(get_db),
    stores: StoreContext = Depends(get_stores),
    actor: str = Depends(get_actor),
):
    """Change a milestone; returns the new change version."""
    change = stores.changes.update_milestone(db, item_id, milestone_key, payload, actor)
    db.commit()
    return change


@router.delete("/{item_id}/milestones/{milestone_key}", response_model=schemas.ChangeResponse)
def delete_change_milestone(
    item_id: int,
    milestone_key: str,
    expected_version_id: int = Query(..., description="Version id last read"),
    db: Session = Depends(get_db),
    stores: StoreContext = Depends(get_stores),
    actor: str = Depends(get_actor),
):
    """Remove a milestone; returns the new change version."""
    change = stores.changes.delete_milestone(db, item_id, milestone_key, expected_version_id, actor)
    db.commit()
    return change
