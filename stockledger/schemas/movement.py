from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from stockledger.config import settings
from stockledger.models.movement import MAX_QUANTITY, MovementType


class RequestedMovementType(str, Enum):
    """Kinds a caller may request; TRANSFER expands into TRANSFER_OUT + TRANSFER_IN."""

    STOCK_IN = "STOCK_IN"
    SALE = "SALE"
    REMOVAL = "REMOVAL"
    TRANSFER = "TRANSFER"


class MovementCreate(BaseModel):
    store_id: int
    product_id: int
    quantity: int = Field(gt=0, le=MAX_QUANTITY)
    type: RequestedMovementType
    reference_id: str | None = Field(default=None, min_length=1, max_length=64)
    notes: str | None = None
    destination_store_id: int | None = None  # required iff type == TRANSFER

    model_config = {"extra": "forbid"}

    @field_validator("quantity", mode="before")
    @classmethod
    def reject_non_integer_quantity(cls, v):
        # 2.0 would coerce to 2; bools are ints to Python
        if isinstance(v, bool) or not isinstance(v, int):
            raise ValueError("quantity must be an integer")
        return v

    @model_validator(mode="after")
    def check_destination(self):
        if self.type == RequestedMovementType.TRANSFER:
            if self.destination_store_id is None:
                raise ValueError("destination_store_id is required for transfers")
            if self.destination_store_id == self.store_id:
                raise ValueError("destination_store_id must differ from store_id")
        elif self.destination_store_id is not None:
            raise ValueError("destination_store_id is only allowed for transfers")
        return self


class MovementFilter(BaseModel):
    store_id: int | None = None
    product_id: int | None = None
    type: MovementType | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    sort_by: Literal["created_at", "quantity", "id"] = "created_at"
    sort_order: Literal["asc", "desc"] = "desc"
    page: int = Field(default=1, ge=1)
    limit: int = Field(default_factory=lambda: settings.DEFAULT_PAGE_SIZE, ge=1)

    @field_validator("limit")
    @classmethod
    def cap_limit(cls, v: int) -> int:
        if v > settings.MAX_PAGE_SIZE:
            raise ValueError(f"limit must be at most {settings.MAX_PAGE_SIZE}")
        return v

    @model_validator(mode="after")
    def check_date_range(self):
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class MovementOut(BaseModel):
    id: int
    store_id: int
    product_id: int
    quantity: int
    type: MovementType
    reference_id: str | None = None
    notes: str | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class InventoryChange(BaseModel):
    store_id: int
    product_id: int
    new_quantity: int


class MovementResultOut(BaseModel):
    movement: MovementOut
    inventory: InventoryChange
    transfer_in: MovementOut | None = None
    destination_inventory: InventoryChange | None = None
    replayed: bool = False


class MovementPage(BaseModel):
    items: list[MovementOut]
    total: int
    page: int
    limit: int
    total_pages: int
