from datetime import datetime

from fastapi import APIRouter, Depends, Header
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from stockledger.database import get_db
from stockledger.exceptions import ValidationError
from stockledger.models.movement import MovementType
from stockledger.schemas.movement import (
    InventoryChange,
    MovementCreate,
    MovementFilter,
    MovementOut,
    MovementPage,
    MovementResultOut,
)
from stockledger.services import catalog_service, ledger, movement_service

router = APIRouter(tags=["Stock Movements"])


def get_actor(x_actor: str | None = Header(default=None)) -> str | None:
    """Caller identity forwarded by the auth layer; used only for attribution notes."""
    return x_actor.strip() if x_actor and x_actor.strip() else None


def parse_query(model: type[BaseModel], **values) -> BaseModel:
    try:
        return model(**{k: v for k, v in values.items() if v is not None})
    except PydanticValidationError as exc:
        errors = [{"field": ".".join(str(p) for p in e["loc"]), "message": e["msg"]} for e in exc.errors()]
        raise ValidationError("Invalid query parameters", errors=errors) from exc


def _page(items, total: int, criteria) -> dict:
    return {
        "items": items,
        "total": total,
        "page": criteria.page,
        "limit": criteria.limit,
        "total_pages": (total + criteria.limit - 1) // criteria.limit,
    }


def _list_movements(db: Session, **filters) -> MovementPage:
    criteria = parse_query(MovementFilter, **filters)
    items, total = ledger.list_by(db, criteria)
    return MovementPage(**_page([MovementOut.model_validate(m) for m in items], total, criteria))


@router.post("/movements", response_model=MovementResultOut, status_code=201)
def create_movement(data: MovementCreate, db: Session = Depends(get_db), actor: str | None = Depends(get_actor)):
    result = movement_service.apply_movement(db, data, actor=actor)
    out = MovementResultOut(
        movement=MovementOut.model_validate(result.movement),
        inventory=InventoryChange(
            store_id=result.inventory.store_id,
            product_id=result.inventory.product_id,
            new_quantity=result.inventory.quantity,
        ),
        replayed=result.replayed,
    )
    if result.transfer_in is not None:
        out.transfer_in = MovementOut.model_validate(result.transfer_in)
        out.destination_inventory = InventoryChange(
            store_id=result.destination_inventory.store_id,
            product_id=result.destination_inventory.product_id,
            new_quantity=result.destination_inventory.quantity,
        )
    return out


@router.get("/movements", response_model=MovementPage)
def list_movements(
    store_id: int | None = None,
    product_id: int | None = None,
    type: MovementType | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    sort_by: str | None = None,
    sort_order: str | None = None,
    page: int | None = None,
    limit: int | None = None,
    db: Session = Depends(get_db),
):
    return _list_movements(
        db, store_id=store_id, product_id=product_id, type=type, start_date=start_date, end_date=end_date,
        sort_by=sort_by, sort_order=sort_order, page=page, limit=limit,
    )


@router.get("/stores/{store_id}/movements", response_model=MovementPage)
def list_store_movements(
    store_id: int,
    type: MovementType | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    page: int | None = None,
    limit: int | None = None,
    db: Session = Depends(get_db),
):
    catalog_service.require_store(db, store_id)
    return _list_movements(
        db, store_id=store_id, type=type, start_date=start_date, end_date=end_date, page=page, limit=limit
    )


@router.get("/products/{product_id}/movements", response_model=MovementPage)
def list_product_movements(
    product_id: int,
    type: MovementType | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    page: int | None = None,
    limit: int | None = None,
    db: Session = Depends(get_db),
):
    catalog_service.require_product(db, product_id)
    return _list_movements(
        db, product_id=product_id, type=type, start_date=start_date, end_date=end_date, page=page, limit=limit
    )
