"""Wave API endpoints."""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy.orm import Session

from ... import schemas
from ...context import StoreContext
from ...database import get_db
from ..dependencies import get_actor, get_stores, resolve_read_context

logger = logging.getLogger("odp-core.api.waves")

router = APIRouter(tags=["waves"])


@router.get("/", response_model=List[schemas.WaveResponse])
def list_waves(db: Session = Depends(get_db), stores: StoreContext = Depends(get_stores)):
    """Waves in timeline order."""
    return stores.waves.find_all(db)


@router.post("/", response_model=schemas.WaveResponse, status_code=201)
def create_wave(
    payload: schemas.WaveCreate,
    db: Session = Depends(get_db),
    stores: StoreContext = Depends(get_stores),
    actor: str = Depends(get_actor),
):
    """
    Create a wave.

    - **year**: 2025 to 2123
    - **quarter**: 1 to 4, optional
    - **date**: YYYY-MM-DD
    - **name**: defaults to ``year.quarter``
    """
    wave = stores.waves.create(db, payload, actor)
    db.commit()
    return wave


@router.get("/{wave_id}", response_model=schemas.WaveResponse)
def get_wave(wave_id: int, db: Session = Depends(get_db), stores: StoreContext = Depends(get_stores)):
    wave = stores.waves.find_by_id(db, wave_id)
    if wave is None:
        raise HTTPException(status_code=404, detail=f"Wave not found: {wave_id}")
    return wave


@router.put("/{wave_id}", response_model=schemas.WaveResponse)
def update_wave(
    wave_id: int,
    payload: schemas.WaveCreate,
    db: Session = Depends(get_db),
    stores: StoreContext = Depends(get_stores),
):
    wave = stores.waves.update(db, wave_id, payload)
    db.commit()
    return wave


@router.delete("/{wave_id}", status_code=204)
def delete_wave(wave_id: int, db: Session = Depends(get_db), stores: StoreContext = Depends(get_stores)):
    stores.waves.delete(db, wave_id)
    db.commit()
    return Response(status_code=204)


@router.get("/{wave_id}/milestones", response_model=List[schemas.WaveMilestoneResponse])
def list_wave_milestones(
    wave_id: int,
    baseline: Optional[int] = Query(None),
    from_wave: Optional[int] = Query(None, description="Cutoff wave; nothing is returned before it"),
    edition: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    stores: StoreContext = Depends(get_stores),
):
    """Milestones of changes that target this wave."""
    baseline_id, from_wave_id = resolve_read_context(db, stores, baseline, from_wave, edition)
    return stores.milestones.find_milestones_by_wave(db, wave_id, baseline_id, from_wave_id)
