from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from stockledger.api.movements import get_actor, parse_query
from stockledger.config import settings
from stockledger.database import get_db
from stockledger.exceptions import NotFoundError
from stockledger.schemas.inventory import (
    AdjustmentOut,
    InventoryFilter,
    InventoryOut,
    InventoryUpdate,
    ProductInventoryOut,
    ProductStockItem,
    StoreInventoryItem,
    StoreInventoryPage,
    StoreInventorySummary,
)
from stockledger.schemas.movement import MovementOut
from stockledger.services import catalog_service, inventory_store, movement_service

router = APIRouter(tags=["Inventory"])


@router.get("/inventory/{store_id}/{product_id}", response_model=InventoryOut)
def get_inventory(store_id: int, product_id: int, db: Session = Depends(get_db)):
    inventory = inventory_store.get(db, store_id, product_id)
    if inventory is None:
        raise NotFoundError("Inventory", f"{store_id}/{product_id}")
    return inventory


@router.put("/inventory/{store_id}/{product_id}", response_model=AdjustmentOut)
def update_inventory(
    store_id: int,
    product_id: int,
    data: InventoryUpdate,
    db: Session = Depends(get_db),
    actor: str | None = Depends(get_actor),
):
    result = movement_service.adjust_inventory(db, store_id, product_id, data, actor=actor)
    return AdjustmentOut(
        inventory=InventoryOut.model_validate(result.inventory),
        movement=MovementOut.model_validate(result.movement) if result.movement else None,
    )


@router.get("/stores/{store_id}/inventory", response_model=StoreInventoryPage)
def get_store_inventory(
    store_id: int,
    min_quantity: int | None = None,
    max_quantity: int | None = None,
    category: str | None = None,
    page: int | None = None,
    limit: int | None = None,
    db: Session = Depends(get_db),
):
    store = catalog_service.require_store(db, store_id)
    criteria = parse_query(
        InventoryFilter, min_quantity=min_quantity, max_quantity=max_quantity,
        category=category, page=page, limit=limit,
    )
    rows, total = inventory_store.list_for_store(db, store_id, criteria)

    items = [
        StoreInventoryItem(
            inventory_id=inv.id,
            product_id=inv.product_id,
            product_name=inv.product.name,
            sku=inv.product.sku,
            category=inv.product.category,
            quantity=inv.quantity,
            price=inv.price,
            base_price=inv.product.base_price,
            effective_price=inv.effective_price,
        )
        for inv in rows
    ]
    return StoreInventoryPage(
        store_id=store.id,
        store_name=store.name,
        items=items,
        summary=StoreInventorySummary(
            total_items=total,
            total_value=round(sum(inv.value for inv in rows), 2),
            low_stock_count=sum(1 for inv in rows if inv.quantity <= settings.LOW_STOCK_THRESHOLD),
        ),
        total=total,
        page=criteria.page,
        limit=criteria.limit,
        total_pages=(total + criteria.limit - 1) // criteria.limit,
    )


@router.get("/products/{product_id}/inventory", response_model=ProductInventoryOut)
def get_product_inventory(product_id: int, db: Session = Depends(get_db)):
    product = catalog_service.require_product(db, product_id)
    rows = inventory_store.list_for_product(db, product_id)
    total_stores = len(rows)
    return ProductInventoryOut(
        product_id=product.id,
        product_name=product.name,
        items=[
            ProductStockItem(
                inventory_id=inv.id,
                store_id=inv.store_id,
                store_name=inv.store.name,
                quantity=inv.quantity,
                price=inv.price,
                effective_price=inv.effective_price,
                updated_at=inv.updated_at,
            )
            for inv in rows
        ],
        total_quantity=sum(inv.quantity for inv in rows),
        total_stores=total_stores,
        average_price=(
            round(sum(inv.effective_price for inv in rows) / total_stores, 2) if total_stores else product.base_price
        ),
    )
