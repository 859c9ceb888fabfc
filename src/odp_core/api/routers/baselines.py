"""Baseline API endpoints."""
import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ... import schemas
from ...context import StoreContext
from ...database import get_db
from ..dependencies import get_actor, get_stores

logger = logging.getLogger("odp-core.api.baselines")

router = APIRouter(tags=["baselines"])


@router.get("/", response_model=List[schemas.BaselineResponse])
def list_baselines(
    db: Session = Depends(get_db),
    stores: StoreContext = Depends(get_stores),
):
    """Baselines, newest first."""
    return stores.baselines.find_all(db)


@router.post("/", response_model=schemas.BaselineResponse, status_code=201)
def create_baseline(
    payload: schemas.BaselineCreate,
    db: Session = Depends(get_db),
    stores: StoreContext = Depends(get_stores),
    actor: str = Depends(get_actor),
):
    """
    Capture the latest version of every requirement and change.

    - **title**: baseline title
    - **starts_from_wave_id**: optional wave the baseline is anchored to
    """
    baseline = stores.baselines.create(db, payload, actor)
    db.commit()
    return baseline


@router.get("/{baseline_id}", response_model=schemas.BaselineResponse)
def get_baseline(
    baseline_id: int,
    db: Session = Depends(get_db),
    stores: StoreContext = Depends(get_stores),
):
    baseline = stores.baselines.find_by_id(db, baseline_id)
    if baseline is None:
        raise HTTPException(status_code=404, detail=f"Baseline not found: {baseline_id}")
    return baseline


@router.get("/{baseline_id}/items", response_model=List[schemas.BaselineItem])
def get_baseline_items(
    baseline_id: int,
    db: Session = Depends(get_db),
    stores: StoreContext = Depends(get_stores),
):
    """Versions captured by the baseline."""
    return stores.baselines.get_baseline_items(db, baseline_id)


@router.put("/{baseline_id}")
def update_baseline(baseline_id: int, db: Session = Depends(get_db), stores: StoreContext = Depends(get_stores)):
    """Always rejected: baselines are immutable."""
    stores.baselines.update(db, baseline_id)


@router.delete("/{baseline_id}")
def delete_baseline(baseline_id: int, db: Session = Depends(get_db), stores: StoreContext = Depends(get_stores)):
    """Always rejected: baselines are immutable."""
    stores.baselines.delete(db, baseline_id)
