"""Taxonomy API endpoints.

One router per taxonomy kind; all four share the same routes.
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.orm import Session

from ... import schemas
from ...context import StoreContext
from ...database import get_db
from ...models import TaxonomyKind
from ..dependencies import get_actor, get_stores

logger = logging.getLogger("odp-core.api.taxonomy")


def _build_router(kind: TaxonomyKind) -> APIRouter:
    router = APIRouter(tags=[kind.value.replace("_", "-")])
    label = kind.value.replace("_", " ")

    @router.get("/", response_model=List[schemas.TaxonomyEntityResponse])
    def list_entities(db: Session = Depends(get_db), stores: StoreContext = Depends(get_stores)):
        return stores.taxonomy(kind).find_all(db)

    @router.post("/", response_model=schemas.TaxonomyEntityResponse, status_code=201)
    def create_entity(
        payload: schemas.TaxonomyEntityCreate,
        db: Session = Depends(get_db),
        stores: StoreContext = Depends(get_stores),
        actor: str = Depends(get_actor),
    ):
        entity = stores.taxonomy(kind).create(db, payload, actor)
        db.commit()
        return entity

    @router.get("/roots", response_model=List[schemas.TaxonomyEntityResponse])
    def list_roots(db: Session = Depends(get_db), stores: StoreContext = Depends(get_stores)):
        """Entities without a parent."""
        return stores.taxonomy(kind).find_roots(db)

    @router.get("/{entity_id}", response_model=schemas.TaxonomyEntityResponse)
    def get_entity(entity_id: int, db: Session = Depends(get_db), stores: StoreContext = Depends(get_stores)):
        entity = stores.taxonomy(kind).find_by_id(db, entity_id)
        if entity is None:
            raise HTTPException(status_code=404, detail=f"{label.capitalize()} not found: {entity_id}")
        return entity

    @router.put("/{entity_id}", response_model=schemas.TaxonomyEntityResponse)
    def update_entity(
        entity_id: int,
        payload: schemas.TaxonomyEntityCreate,
        db: Session = Depends(get_db),
        stores: StoreContext = Depends(get_stores),
    ):
        entity = stores.taxonomy(kind).update(db, entity_id, payload)
        db.commit()
        return entity

    @router.delete("/{entity_id}", status_code=204)
    def delete_entity(entity_id: int, db: Session = Depends(get_db), stores: StoreContext = Depends(get_stores)):
        stores.taxonomy(kind).delete(db, entity_id)
        db.commit()
        return Response(status_code=204)

    @router.get("/{entity_id}/children", response_model=List[schemas.TaxonomyEntityResponse])
    def list_children(entity_id: int, db: Session = Depends(get_db), stores: StoreContext = Depends(get_stores)):
        return stores.taxonomy(kind).find_children(db, entity_id)

    @router.get("/{entity_id}/parent", response_model=Optional[schemas.TaxonomyEntityResponse])
    def get_parent(entity_id: int, db: Session = Depends(get_db), stores: StoreContext = Depends(get_stores)):
        """The parent, or null for a root."""
        return stores.taxonomy(kind).find_parent(db, entity_id)

    @router.put("/{entity_id}/parent", response_model=schemas.TaxonomyEntityResponse)
    def set_parent(
        entity_id: int,
        payload: schemas.TaxonomyParentUpdate,
        db: Session = Depends(get_db),
        stores: StoreContext = Depends(get_stores),
    ):
        """Move the entity under another parent, or make it a root."""
        entity = stores.taxonomy(kind).set_parent(db, entity_id, payload.parent_id)
        db.commit()
        logger.info(f"{label.capitalize()} {entity_id} moved under {payload.parent_id}")
        return entity

    return router


stakeholder_categories = _build_router(TaxonomyKind.STAKEHOLDER_CATEGORY)
data_categories = _build_router(TaxonomyKind.DATA_CATEGORY)
services = _build_router(TaxonomyKind.SERVICE)
regulatory_aspects = _build_router(TaxonomyKind.REGULATORY_ASPECT)
