from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Float, ForeignKey, Integer, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stockledger.database import Base
from stockledger.models.catalog import Product, Store


class StoreInventory(Base):
    """Current quantity of one product in one store.

    Materialized from the stock movement ledger; only the movement engine
    changes ``quantity``, and every change bumps ``version``.
    """

    __tablename__ = "store_inventory"
    __table_args__ = (
        UniqueConstraint("store_id", "product_id", name="uq_store_inventory_store_product"),
        CheckConstraint("quantity >= 0", name="ck_store_inventory_quantity_non_negative"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    store_id: Mapped[int] = mapped_column(Integer, ForeignKey("stores.id", ondelete="RESTRICT"), nullable=False, index=True)
    product_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("products.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Override the product's base price for this store (NULL = use base price)
    price: Mapped[float | None] = mapped_column(Float, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime, server_default=func.now(), onupdate=func.now())

    store: Mapped["Store"] = relationship("Store")
    product: Mapped["Product"] = relationship("Product")

    @property
    def effective_price(self) -> float:
        return self.price if self.price is not None else self.product.base_price

    @property
    def value(self) -> float:
        return self.effective_price * self.quantity
