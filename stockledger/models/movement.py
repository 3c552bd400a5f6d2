from datetime import datetime, timezone
from enum import Enum as PyEnum

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import Mapped, mapped_column

from stockledger.database import Base
from stockledger.exceptions import ImmutableLedgerError


class MovementType(str, PyEnum):
    STOCK_IN = "STOCK_IN"
    SALE = "SALE"
    REMOVAL = "REMOVAL"
    TRANSFER_OUT = "TRANSFER_OUT"
    TRANSFER_IN = "TRANSFER_IN"


INBOUND_TYPES = frozenset({MovementType.STOCK_IN, MovementType.TRANSFER_IN})

REFERENCE_CONSTRAINT = "uq_stock_movements_reference"

# Largest value a 32-bit INTEGER quantity column holds
MAX_QUANTITY = 2**31 - 1


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class StockMovement(Base):
    """One ledger record. Append-only: never updated or deleted once flushed."""

    __tablename__ = "stock_movements"
    __table_args__ = (
        UniqueConstraint("store_id", "product_id", "type", "reference_id", name=REFERENCE_CONSTRAINT),
        CheckConstraint("quantity > 0", name="ck_stock_movements_quantity_positive"),
        Index("ix_stock_movements_store_product", "store_id", "product_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    store_id: Mapped[int] = mapped_column(Integer, ForeignKey("stores.id", ondelete="RESTRICT"), nullable=False)
    product_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("products.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)  # always positive, sign comes from type
    type: Mapped[MovementType] = mapped_column(
        Enum(MovementType, name="movement_type", values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        index=True,
    )
    reference_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, index=True)

    @property
    def signed_quantity(self) -> int:
        return self.quantity if self.type in INBOUND_TYPES else -self.quantity


@event.listens_for(StockMovement, "before_update")
def _block_movement_update(mapper, connection, target):
    raise ImmutableLedgerError(target.id, "update")


@event.listens_for(StockMovement, "before_delete")
def _block_movement_delete(mapper, connection, target):
    raise ImmutableLedgerError(target.id, "delete")
