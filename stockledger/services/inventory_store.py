"""Inventory aggregate store: one mutable row per (store, product)."""

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload
from sqlalchemy.orm.attributes import set_committed_value

from stockledger.models.catalog import Product, Store
from stockledger.models.inventory import StoreInventory
from stockledger.models.movement import utcnow
from stockledger.schemas.inventory import InventoryFilter


def _select(store_id: int, product_id: int, lock: bool):
    stmt = (
        select(StoreInventory)
        .where(StoreInventory.store_id == store_id, StoreInventory.product_id == product_id)
        .execution_options(populate_existing=True)
    )
    if lock:
        # Row-level lock on engines that have one
        stmt = stmt.with_for_update()
    return stmt


def get(db: Session, store_id: int, product_id: int) -> StoreInventory | None:
    return db.scalars(_select(store_id, product_id, lock=False)).first()


def get_or_create(db: Session, store_id: int, product_id: int, lock: bool = False) -> StoreInventory:
    """Return the aggregate row, inserting it with quantity 0 when the pair has none."""
    inventory = db.scalars(_select(store_id, product_id, lock)).first()
    if inventory is not None:
        return inventory

    # Another writer may insert the same pair first; the savepoint keeps our
    # transaction usable so the winner's row can be read back.
    try:
        with db.begin_nested():
            inventory = StoreInventory(store_id=store_id, product_id=product_id, quantity=0, version=0)
            db.add(inventory)
    except IntegrityError:
        inventory = db.scalars(_select(store_id, product_id, lock=True)).one()
    return inventory


def compare_and_swap(
    db: Session, inventory: StoreInventory, expected_version: int, new_quantity: int, **changes
) -> bool:
    """Write ``new_quantity`` only if the row is still at ``expected_version``.

    ``changes`` carries other columns (the price override) written in the
    same versioned UPDATE. Returns False when another writer changed the row
    in between.
    """
    values = {**changes, "quantity": new_quantity, "version": expected_version + 1, "updated_at": utcnow()}
    result = db.execute(
        update(StoreInventory)
        .where(StoreInventory.id == inventory.id, StoreInventory.version == expected_version)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        return False
    for key, value in values.items():
        set_committed_value(inventory, key, value)
    return True


def _filtered(stmt, store_id: int, criteria: InventoryFilter):
    stmt = stmt.join(Product, StoreInventory.product_id == Product.id).where(StoreInventory.store_id == store_id)
    if criteria.min_quantity is not None:
        stmt = stmt.where(StoreInventory.quantity >= criteria.min_quantity)
    if criteria.max_quantity is not None:
        stmt = stmt.where(StoreInventory.quantity <= criteria.max_quantity)
    if criteria.category:
        stmt = stmt.where(Product.category == criteria.category)
    return stmt


def list_for_store(db: Session, store_id: int, criteria: InventoryFilter) -> tuple[list[StoreInventory], int]:
    total = db.scalar(_filtered(select(func.count(StoreInventory.id)), store_id, criteria)) or 0
    stmt = (
        _filtered(select(StoreInventory), store_id, criteria)
        .options(joinedload(StoreInventory.product))
        .order_by(Product.name, StoreInventory.id)
        .offset((criteria.page - 1) * criteria.limit)
        .limit(criteria.limit)
    )
    return list(db.scalars(stmt)), total


def list_for_product(db: Session, product_id: int) -> list[StoreInventory]:
    stmt = (
        select(StoreInventory)
        .join(Store, StoreInventory.store_id == Store.id)
        .options(joinedload(StoreInventory.store), joinedload(StoreInventory.product))
        .where(StoreInventory.product_id == product_id)
        .order_by(Store.name, StoreInventory.id)
    )
    return list(db.scalars(stmt))


def list_all(db: Session, store_id: int | None = None, category: str | None = None) -> list[StoreInventory]:
    stmt = (
        select(StoreInventory)
        .join(Product, StoreInventory.product_id == Product.id)
        .options(joinedload(StoreInventory.store), joinedload(StoreInventory.product))
        .order_by(StoreInventory.store_id, Product.name, StoreInventory.id)
    )
    if store_id is not None:
        stmt = stmt.where(StoreInventory.store_id == store_id)
    if category:
        stmt = stmt.where(Product.category == category)
    return list(db.scalars(stmt))
