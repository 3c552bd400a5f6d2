from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from stockledger.database import get_db
from stockledger.schemas.catalog import StoreCreate, StoreOut, StoreUpdate
from stockledger.services import catalog_service

router = APIRouter(prefix="/stores", tags=["Stores"])


@router.post("", response_model=StoreOut, status_code=201)
def create_store(data: StoreCreate, db: Session = Depends(get_db)):
    return catalog_service.create_store(db, data)


@router.get("", response_model=list[StoreOut])
def list_stores(skip: int = 0, limit: int = 100, db: Session = Depends(get_db)):
    return catalog_service.list_stores(db, skip=skip, limit=limit)


@router.get("/{store_id}", response_model=StoreOut)
def get_store(store_id: int, db: Session = Depends(get_db)):
    return catalog_service.require_store(db, store_id)


@router.put("/{store_id}", response_model=StoreOut)
def update_store(store_id: int, data: StoreUpdate, db: Session = Depends(get_db)):
    return catalog_service.update_store(db, store_id, data)


@router.delete("/{store_id}", status_code=204)
def delete_store(store_id: int, db: Session = Depends(get_db)):
    catalog_service.delete_store(db, store_id)
    return Response(status_code=204)
