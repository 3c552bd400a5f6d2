"""Ledger store: the append-only stock movement record.

No update or delete is offered, and the ORM listeners on ``StockMovement``
reject both. The inventory aggregate must always equal ``balance`` for its
(store, product) pair.
"""

from datetime import datetime

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from stockledger.models.movement import INBOUND_TYPES, MovementType, StockMovement
from stockledger.schemas.movement import MovementFilter

_SORTABLE = {
    "created_at": StockMovement.created_at,
    "quantity": StockMovement.quantity,
    "id": StockMovement.id,
}


def signed_quantity_expr():
    return case(
        (StockMovement.type.in_(list(INBOUND_TYPES)), StockMovement.quantity),
        else_=-StockMovement.quantity,
    )


def append(db: Session, movement: StockMovement) -> StockMovement:
    db.add(movement)
    db.flush()
    return movement


def _apply_filter(stmt, criteria: MovementFilter):
    if criteria.store_id is not None:
        stmt = stmt.where(StockMovement.store_id == criteria.store_id)
    if criteria.product_id is not None:
        stmt = stmt.where(StockMovement.product_id == criteria.product_id)
    if criteria.type is not None:
        stmt = stmt.where(StockMovement.type == criteria.type)
    if criteria.start_date is not None:
        stmt = stmt.where(StockMovement.created_at >= criteria.start_date)
    if criteria.end_date is not None:
        stmt = stmt.where(StockMovement.created_at <= criteria.end_date)
    return stmt


def list_by(db: Session, criteria: MovementFilter) -> tuple[list[StockMovement], int]:
    """Return one page of movements matching ``criteria`` and the total match count."""
    total = db.scalar(_apply_filter(select(func.count(StockMovement.id)), criteria)) or 0

    column = _SORTABLE[criteria.sort_by]
    if criteria.sort_order == "desc":
        order = [column.desc(), StockMovement.id.desc()]
    else:
        order = [column.asc(), StockMovement.id.asc()]

    stmt = (
        _apply_filter(select(StockMovement), criteria)
        .order_by(*order)
        .offset((criteria.page - 1) * criteria.limit)
        .limit(criteria.limit)
    )
    return list(db.scalars(stmt)), total


def find_by_reference(
    db: Session, store_id: int, product_id: int, type: MovementType, reference_id: str
) -> StockMovement | None:
    return db.scalars(
        select(StockMovement).where(
            StockMovement.store_id == store_id,
            StockMovement.product_id == product_id,
            StockMovement.type == type,
            StockMovement.reference_id == reference_id,
        )
    ).first()


def find_transfer_leg(db: Session, product_id: int, reference_id: str, type: MovementType) -> StockMovement | None:
    return db.scalars(
        select(StockMovement)
        .where(
            StockMovement.product_id == product_id,
            StockMovement.type == type,
            StockMovement.reference_id == reference_id,
        )
        .order_by(StockMovement.id)
    ).first()


def balance(db: Session, store_id: int, product_id: int, until: datetime | None = None) -> int:
    """Replay the ledger for one (store, product) pair."""
    stmt = select(func.coalesce(func.sum(signed_quantity_expr()), 0)).where(
        StockMovement.store_id == store_id,
        StockMovement.product_id == product_id,
    )
    if until is not None:
        stmt = stmt.where(StockMovement.created_at <= until)
    return int(db.scalar(stmt))


def balances(db: Session, store_id: int | None = None) -> dict[tuple[int, int], int]:
    stmt = select(
        StockMovement.store_id,
        StockMovement.product_id,
        func.sum(signed_quantity_expr()),
    ).group_by(StockMovement.store_id, StockMovement.product_id)
    if store_id is not None:
        stmt = stmt.where(StockMovement.store_id == store_id)
    return {(s, p): int(total) for s, p, total in db.execute(stmt)}


def has_references(db: Session, store_id: int | None = None, product_id: int | None = None) -> bool:
    stmt = select(StockMovement.id)
    if store_id is not None:
        stmt = stmt.where(StockMovement.store_id == store_id)
    if product_id is not None:
        stmt = stmt.where(StockMovement.product_id == product_id)
    return db.scalar(stmt.limit(1)) is not None
