from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from stockledger.database import get_db
from stockledger.schemas.catalog import ProductCreate, ProductOut, ProductUpdate
from stockledger.services import catalog_service

router = APIRouter(prefix="/products", tags=["Products"])


@router.post("", response_model=ProductOut, status_code=201)
def create_product(data: ProductCreate, db: Session = Depends(get_db)):
    return catalog_service.create_product(db, data)


@router.get("", response_model=list[ProductOut])
def list_products(skip: int = 0, limit: int = 100, category: str | None = None, db: Session = Depends(get_db)):
    return catalog_service.list_products(db, skip=skip, limit=limit, category=category)


@router.get("/{product_id}", response_model=ProductOut)
def get_product(product_id: int, db: Session = Depends(get_db)):
    return catalog_service.require_product(db, product_id)


@router.put("/{product_id}", response_model=ProductOut)
def update_product(product_id: int, data: ProductUpdate, db: Session = Depends(get_db)):
    return catalog_service.update_product(db, product_id, data)


@router.delete("/{product_id}", status_code=204)
def delete_product(product_id: int, db: Session = Depends(get_db)):
    catalog_service.delete_product(db, product_id)
    return Response(status_code=204)
