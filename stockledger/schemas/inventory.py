from datetime import datetime

from pydantic import BaseModel, Field, field_validator, model_validator

from stockledger.config import settings
from stockledger.models.movement import MAX_QUANTITY
from stockledger.schemas.movement import MovementOut


class InventoryOut(BaseModel):
    id: int
    store_id: int
    product_id: int
    quantity: int
    price: float | None = None
    effective_price: float
    version: int
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


class InventoryUpdate(BaseModel):
    """Manual correction of a store's stock level and/or price override."""

    quantity: int | None = Field(default=None, ge=0, le=MAX_QUANTITY)
    price: float | None = Field(default=None, ge=0)
    clear_price: bool = False  # drop the override and fall back to the base price

    model_config = {"extra": "forbid"}

    @model_validator(mode="after")
    def check_something_to_do(self):
        if self.quantity is None and self.price is None and not self.clear_price:
            raise ValueError("quantity, price or clear_price is required")
        if self.price is not None and self.clear_price:
            raise ValueError("price and clear_price are mutually exclusive")
        return self


class AdjustmentOut(BaseModel):
    inventory: InventoryOut
    movement: MovementOut | None = None


class InventoryFilter(BaseModel):
    min_quantity: int | None = Field(default=None, ge=0)
    max_quantity: int | None = Field(default=None, ge=0)
    category: str | None = None
    page: int = Field(default=1, ge=1)
    limit: int = Field(default_factory=lambda: settings.DEFAULT_PAGE_SIZE, ge=1)

    @field_validator("limit")
    @classmethod
    def cap_limit(cls, v: int) -> int:
        if v > settings.MAX_PAGE_SIZE:
            raise ValueError(f"limit must be at most {settings.MAX_PAGE_SIZE}")
        return v


class StoreInventoryItem(BaseModel):
    inventory_id: int
    product_id: int
    product_name: str
    sku: str | None = None
    category: str = ""
    quantity: int
    price: float | None = None
    base_price: float
    effective_price: float


class StoreInventorySummary(BaseModel):
    total_items: int
    total_value: float
    low_stock_count: int


class StoreInventoryPage(BaseModel):
    store_id: int
    store_name: str
    items: list[StoreInventoryItem]
    summary: StoreInventorySummary
    total: int
    page: int
    limit: int
    total_pages: int


class ProductStockItem(BaseModel):
    inventory_id: int
    store_id: int
    store_name: str
    quantity: int
    price: float | None = None
    effective_price: float
    updated_at: datetime | None = None


class ProductInventoryOut(BaseModel):
    product_id: int
    product_name: str
    items: list[ProductStockItem]
    total_quantity: int
    total_stores: int
    average_price: float
