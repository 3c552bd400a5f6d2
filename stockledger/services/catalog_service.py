"""Store and product metadata.

The movement engine only needs existence lookups from here; the rest is the
thin CRUD the HTTP layer exposes.
"""

from sqlalchemy import delete
from sqlalchemy.orm import Session

from stockledger.exceptions import NotFoundError, ReferencedEntityError, ValidationError
from stockledger.models.catalog import Product, Store
from stockledger.models.inventory import StoreInventory
from stockledger.schemas.catalog import ProductCreate, ProductUpdate, StoreCreate, StoreUpdate
from stockledger.services import ledger


# --- Stores ---

def create_store(db: Session, data: StoreCreate) -> Store:
    store = Store(name=data.name, address=data.address, phone=data.phone)
    db.add(store)
    db.commit()
    db.refresh(store)
    return store


def get_store(db: Session, store_id: int) -> Store | None:
    return db.get(Store, store_id)


def require_store(db: Session, store_id: int, label: str = "Store") -> Store:
    store = get_store(db, store_id)
    if store is None:
        raise NotFoundError(label, store_id)
    return store


def list_stores(db: Session, skip: int = 0, limit: int = 100) -> list[Store]:
    return db.query(Store).order_by(Store.name, Store.id).offset(skip).limit(limit).all()


def update_store(db: Session, store_id: int, data: StoreUpdate) -> Store:
    store = require_store(db, store_id)
    for field, value in data.model_dump(exclude_unset=True).items():
        setattr(store, field, value)
    db.commit()
    db.refresh(store)
    return store


def delete_store(db: Session, store_id: int) -> None:
    store = require_store(db, store_id)
    if ledger.has_references(db, store_id=store_id):
        raise ReferencedEntityError("Store", store_id)
    # Rows left here never saw a movement (e.g. a price override only)
    db.execute(delete(StoreInventory).where(StoreInventory.store_id == store_id))
    db.delete(store)
    db.commit()


# --- Products ---

def _check_sku_free(db: Session, sku: str | None, product_id: int | None = None) -> None:
    if not sku:
        return
    existing = db.query(Product).filter(Product.sku == sku).first()
    if existing and existing.id != product_id:
        raise ValidationError(f"Product with SKU {sku} already exists")


def create_product(db: Session, data: ProductCreate) -> Product:
    _check_sku_free(db, data.sku)
    product = Product(
        name=data.name,
        sku=data.sku or None,
        description=data.description,
        base_price=data.base_price,
        category=data.category,
    )
    db.add(product)
    db.commit()
    db.refresh(product)
    return product


def get_product(db: Session, product_id: int) -> Product | None:
    return db.get(Product, product_id)


def require_product(db: Session, product_id: int) -> Product:
    product = get_product(db, product_id)
    if product is None:
        raise NotFoundError("Product", product_id)
    return product


def list_products(db: Session, skip: int = 0, limit: int = 100, category: str | None = None) -> list[Product]:
    q = db.query(Product)
    if category:
        q = q.filter(Product.category == category)
    return q.order_by(Product.name, Product.id).offset(skip).limit(limit).all()


def update_product(db: Session, product_id: int, data: ProductUpdate) -> Product:
    product = require_product(db, product_id)
    update_data = data.model_dump(exclude_unset=True)
    if "sku" in update_data:
        _check_sku_free(db, update_data["sku"], product_id)
        update_data["sku"] = update_data["sku"] or None
    for field, value in update_data.items():
        setattr(product, field, value)
    db.commit()
    db.refresh(product)
    return product


def delete_product(db: Session, product_id: int) -> None:
    product = require_product(db, product_id)
    if ledger.has_references(db, product_id=product_id):
        raise ReferencedEntityError("Product", product_id)
    db.execute(delete(StoreInventory).where(StoreInventory.product_id == product_id))
    db.delete(product)
    db.commit()
