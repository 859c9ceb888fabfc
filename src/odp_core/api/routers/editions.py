"""Edition API endpoints."""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ... import schemas
from ...context import StoreContext
from ...database import get_db
from ...models import EditionType
from ..dependencies import get_actor, get_stores

logger = logging.getLogger("odp-core.api.editions")

router = APIRouter(tags=["editions"])


@router.get("/", response_model=List[schemas.EditionResponse])
def list_editions(
    type: Optional[EditionType] = Query(None),
    db: Session = Depends(get_db),
    stores: StoreContext = Depends(get_stores),
):
    """Editions, newest first."""
    return stores.editions.find_all(db, type)


@router.post("/", response_model=schemas.EditionResponse, status_code=201)
def create_edition(
    payload: schemas.EditionCreate,
    db: Session = Depends(get_db),
    stores: StoreContext = Depends(get_stores),
    actor: str = Depends(get_actor),
):
    """
    Create an edition.

    - **type**: DRAFT or OFFICIAL
    - **baseline_id**, **starts_from_wave_id**: must exist
    """
    edition = stores.editions.create(db, payload, actor)
    db.commit()
    return edition


@router.get("/{edition_id}", response_model=schemas.EditionResponse)
def get_edition(
    edition_id: int,
    db: Session = Depends(get_db),
    stores: StoreContext = Depends(get_stores),
):
    edition = stores.editions.find_by_id(db, edition_id)
    if edition is None:
        raise HTTPException(status_code=404, detail=f"Edition not found: {edition_id}")
    return edition


@router.get("/{edition_id}/context", response_model=schemas.EditionContext)
def get_edition_context(
    edition_id: int,
    db: Session = Depends(get_db),
    stores: StoreContext = Depends(get_stores),
):
    """The baseline and wave cutoff the edition stands for."""
    return stores.editions.resolve_context(db, edition_id)


@router.put("/{edition_id}")
def update_edition(edition_id: int, db: Session = Depends(get_db), stores: StoreContext = Depends(get_stores)):
    """Always rejected: editions are immutable."""
    stores.editions.update(db, edition_id)


@router.delete("/{edition_id}")
def delete_edition(edition_id: int, db: Session = Depends(get_db), stores: StoreContext = Depends(get_stores)):
    """Always rejected: editions are immutable."""
    stores.editions.delete(db, edition_id)
