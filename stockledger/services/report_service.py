from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from stockledger.config import settings
from stockledger.models.inventory import StoreInventory
from stockledger.models.movement import MovementType, StockMovement
from stockledger.services import inventory_store, ledger


def inventory_report(
    db: Session,
    store_id: int | None = None,
    category: str | None = None,
    low_stock_threshold: int | None = None,
) -> dict:
    threshold = settings.LOW_STOCK_THRESHOLD if low_stock_threshold is None else low_stock_threshold
    rows = inventory_store.list_all(db, store_id=store_id, category=category)

    total_units = sum(inv.quantity for inv in rows)
    total_value = sum(inv.value for inv in rows)
    low_stock = [inv for inv in rows if inv.quantity <= threshold]

    return {
        "total_items": len(rows),
        "total_units": total_units,
        "total_value": round(total_value, 2),
        "low_stock_threshold": threshold,
        "low_stock_count": len(low_stock),
        "low_stock_items": [
            {
                "store_id": inv.store_id,
                "store_name": inv.store.name,
                "product_id": inv.product_id,
                "product_name": inv.product.name,
                "sku": inv.product.sku,
                "quantity": inv.quantity,
            }
            for inv in low_stock
        ],
        "by_store": _group_by_store(rows),
        "by_category": _group_by_category(rows),
    }


def _group_by_store(rows: list[StoreInventory]) -> list[dict]:
    stores: dict[int, dict] = {}
    for inv in rows:
        if inv.store_id not in stores:
            stores[inv.store_id] = {
                "store_id": inv.store_id,
                "store_name": inv.store.name,
                "product_count": 0,
                "total_units": 0,
                "total_value": 0.0,
            }
        stores[inv.store_id]["product_count"] += 1
        stores[inv.store_id]["total_units"] += inv.quantity
        stores[inv.store_id]["total_value"] += inv.value
    for v in stores.values():
        v["total_value"] = round(v["total_value"], 2)
    return list(stores.values())


def _group_by_category(rows: list[StoreInventory]) -> list[dict]:
    cats: dict[str, dict] = {}
    for inv in rows:
        cat = inv.product.category or "Uncategorized"
        if cat not in cats:
            cats[cat] = {"category": cat, "product_count": 0, "total_units": 0, "total_value": 0.0}
        cats[cat]["product_count"] += 1
        cats[cat]["total_units"] += inv.quantity
        cats[cat]["total_value"] += inv.value
    for v in cats.values():
        v["total_value"] = round(v["total_value"], 2)
    return list(cats.values())


def movement_report(
    db: Session,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    store_id: int | None = None,
) -> dict:
    q = select(
        StockMovement.type,
        func.count(StockMovement.id),
        func.coalesce(func.sum(StockMovement.quantity), 0),
    ).group_by(StockMovement.type)
    if start_date:
        q = q.where(StockMovement.created_at >= start_date)
    if end_date:
        q = q.where(StockMovement.created_at <= end_date)
    if store_id is not None:
        q = q.where(StockMovement.store_id == store_id)

    by_type = {t.value: {"count": 0, "quantity": 0} for t in MovementType}
    for movement_type, count, quantity in db.execute(q):
        by_type[MovementType(movement_type).value] = {"count": count, "quantity": int(quantity)}

    inbound = by_type["STOCK_IN"]["quantity"] + by_type["TRANSFER_IN"]["quantity"]
    outbound = sum(by_type[t]["quantity"] for t in ("SALE", "REMOVAL", "TRANSFER_OUT"))
    return {
        "start_date": start_date.isoformat() if start_date else None,
        "end_date": end_date.isoformat() if end_date else None,
        "store_id": store_id,
        "total_movements": sum(v["count"] for v in by_type.values()),
        "units_in": inbound,
        "units_out": outbound,
        "net_change": inbound - outbound,
        "by_type": by_type,
    }


def consistency_report(db: Session, store_id: int | None = None) -> dict:
    """Replay the ledger and compare it with every inventory row."""
    expected = ledger.balances(db, store_id=store_id)
    q = select(StoreInventory.store_id, StoreInventory.product_id, StoreInventory.quantity)
    if store_id is not None:
        q = q.where(StoreInventory.store_id == store_id)
    actual = {(s, p): qty for s, p, qty in db.execute(q)}

    drift = []
    for key in sorted(set(expected) | set(actual)):
        ledger_qty = expected.get(key, 0)
        aggregate_qty = actual.get(key)
        if aggregate_qty != ledger_qty and not (aggregate_qty is None and ledger_qty == 0):
            drift.append({
                "store_id": key[0],
                "product_id": key[1],
                "ledger_quantity": ledger_qty,
                "aggregate_quantity": aggregate_qty,
            })

    return {
        "checked_pairs": len(set(expected) | set(actual)),
        "consistent": not drift,
        "drift": drift,
    }
