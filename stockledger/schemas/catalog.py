from datetime import datetime

from pydantic import BaseModel, Field


class StoreCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    address: str = ""
    phone: str = Field(default="", max_length=20)


class StoreUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    address: str | None = None
    phone: str | None = Field(default=None, max_length=20)


class StoreOut(BaseModel):
    id: int
    name: str
    address: str
    phone: str
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ProductCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    sku: str | None = Field(default=None, max_length=50)
    description: str = ""
    base_price: float = Field(default=0.0, ge=0)
    category: str = Field(default="", max_length=50)


class ProductUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    sku: str | None = Field(default=None, max_length=50)
    description: str | None = None
    base_price: float | None = Field(default=None, ge=0)
    category: str | None = Field(default=None, max_length=50)


class ProductOut(BaseModel):
    id: int
    name: str
    sku: str | None = None
    description: str
    base_price: float
    category: str
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
