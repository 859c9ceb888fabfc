"""Reference document API endpoints."""
import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.orm import Session

from ... import schemas
from ...context import StoreContext
from ...database import get_db
from ..dependencies import get_actor, get_stores

logger = logging.getLogger("odp-core.api.documents")

router = APIRouter(tags=["documents"])


@router.get("/", response_model=List[schemas.DocumentResponse])
def list_documents(db: Session = Depends(get_db), stores: StoreContext = Depends(get_stores)):
    return stores.documents.find_all(db)


@router.post("/", response_model=schemas.DocumentResponse, status_code=201)
def create_document(
    payload: schemas.DocumentCreate,
    db: Session = Depends(get_db),
    stores: StoreContext = Depends(get_stores),
    actor: str = Depends(get_actor),
):
    document = stores.documents.create(db, payload, actor)
    db.commit()
    return document


@router.get("/{document_id}", response_model=schemas.DocumentResponse)
def get_document(document_id: int, db: Session = Depends(get_db), stores: StoreContext = Depends(get_stores)):
    document = stores.documents.find_by_id(db, document_id)
    if document is None:
        raise HTTPException(status_code=404, detail=f"Document not found: {document_id}")
    return document


@router.put("/{document_id}", response_model=schemas.DocumentResponse)
def update_document(
    document_id: int,
    payload: schemas.DocumentCreate,
    db: Session = Depends(get_db),
    stores: StoreContext = Depends(get_stores),
):
    document = stores.documents.update(db, document_id, payload)
    db.commit()
    return document


@router.delete("/{document_id}", status_code=204)
def delete_document(document_id: int, db: Session = Depends(get_db), stores: StoreContext = Depends(get_stores)):
    stores.documents.delete(db, document_id)
    db.commit()
    return Response(status_code=204)
