"""Movement engine: validates one stock event and applies it to ledger and aggregate.

A request becomes one atomic unit (see ``consistency``):

1. existence checks for store, product and transfer destination
2. lock or version-read the affected inventory rows, ascending store id
3. stock guard for outgoing movements, capacity guard for incoming ones
4. append the ledger record(s) and swap the aggregate quantity(ies)

A TRANSFER writes TRANSFER_OUT at the source and TRANSFER_IN at the
destination under one reference id; both legs commit or neither does.

Caller-supplied reference ids double as idempotency keys per
(store, product, ledger type): resubmitting an identical request returns the
stored result with ``replayed=True`` instead of applying it twice.
"""

import logging
import uuid
from collections.abc import Mapping
from dataclasses import dataclass

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from stockledger.exceptions import DuplicateReferenceError, InsufficientStockError, ValidationError
from stockledger.models.inventory import StoreInventory
from stockledger.models.movement import INBOUND_TYPES, MAX_QUANTITY, MovementType, StockMovement
from stockledger.schemas.inventory import InventoryUpdate
from stockledger.schemas.movement import MovementCreate, RequestedMovementType
from stockledger.services import catalog_service, consistency, inventory_store, ledger

logger = logging.getLogger(__name__)

_LEDGER_TYPE = {
    RequestedMovementType.STOCK_IN: MovementType.STOCK_IN,
    RequestedMovementType.SALE: MovementType.SALE,
    RequestedMovementType.REMOVAL: MovementType.REMOVAL,
    RequestedMovementType.TRANSFER: MovementType.TRANSFER_OUT,
}


@dataclass
class MovementResult:
    movement: StockMovement
    inventory: StoreInventory
    transfer_in: StockMovement | None = None
    destination_inventory: StoreInventory | None = None
    replayed: bool = False


@dataclass
class AdjustmentResult:
    inventory: StoreInventory
    movement: StockMovement | None = None


def signed_quantity(type: MovementType, quantity: int) -> int:
    return quantity if type in INBOUND_TYPES else -quantity


def parse_request(payload: MovementCreate | Mapping) -> MovementCreate:
    if isinstance(payload, MovementCreate):
        return payload
    try:
        return MovementCreate.model_validate(payload)
    except PydanticValidationError as exc:
        errors = [{"field": ".".join(str(p) for p in e["loc"]), "message": e["msg"]} for e in exc.errors()]
        raise ValidationError("Invalid movement request", errors=errors) from exc


def _attribute(notes: str | None, actor: str | None) -> str | None:
    if not actor:
        return notes
    return f"{notes} (by {actor})" if notes else f"(by {actor})"


def _find_replay(db: Session, data: MovementCreate) -> MovementResult | None:
    ledger_type = _LEDGER_TYPE[data.type]
    existing = ledger.find_by_reference(db, data.store_id, data.product_id, ledger_type, data.reference_id)
    if existing is None:
        if data.type == RequestedMovementType.TRANSFER:
            _check_incoming_reference_free(db, data)
        return None
    if existing.quantity != data.quantity:
        raise DuplicateReferenceError(
            data.reference_id,
            f"Reference {data.reference_id} was already used for a {ledger_type.value} "
            f"of {existing.quantity} units",
        )

    transfer_in = destination = None
    if data.type == RequestedMovementType.TRANSFER:
        transfer_in = ledger.find_transfer_leg(db, data.product_id, data.reference_id, MovementType.TRANSFER_IN)
        if transfer_in is None or transfer_in.store_id != data.destination_store_id:
            raise DuplicateReferenceError(
                data.reference_id,
                f"Reference {data.reference_id} was already used for a transfer to another store",
            )
        destination = inventory_store.get(db, data.destination_store_id, data.product_id)

    return MovementResult(
        movement=existing,
        inventory=inventory_store.get(db, data.store_id, data.product_id),
        transfer_in=transfer_in,
        destination_inventory=destination,
        replayed=True,
    )


def _check_incoming_reference_free(db: Session, data: MovementCreate) -> None:
    # The source leg is new, so an incoming leg under this key came from another store
    incoming = ledger.find_by_reference(
        db, data.destination_store_id, data.product_id, MovementType.TRANSFER_IN, data.reference_id
    )
    if incoming is not None:
        raise DuplicateReferenceError(
            data.reference_id,
            f"Reference {data.reference_id} was already used for a transfer into store "
            f"{data.destination_store_id} from another store",
        )


def _check_capacity(store_id: int, product_id: int, current: int, quantity: int) -> None:
    if current + quantity > MAX_QUANTITY:
        raise ValidationError(
            f"Stock of product {product_id} in store {store_id} would exceed {MAX_QUANTITY}",
            errors=[{"field": "quantity", "message": f"{current} on hand plus {quantity} exceeds {MAX_QUANTITY}"}],
        )


def _apply_once(db: Session, data: MovementCreate, reference_id: str | None, notes: str | None) -> MovementResult:
    catalog_service.require_store(db, data.store_id)
    catalog_service.require_product(db, data.product_id)
    is_transfer = data.type == RequestedMovementType.TRANSFER
    if is_transfer:
        catalog_service.require_store(db, data.destination_store_id, label="Destination store")

    if data.reference_id:
        replay = _find_replay(db, data)
        if replay is not None:
            return replay

    store_ids = [data.store_id, data.destination_store_id] if is_transfer else [data.store_id]
    rows = consistency.acquire(db, data.product_id, store_ids)

    source = rows[data.store_id]
    ledger_type = _LEDGER_TYPE[data.type]
    current, expected_version = source.quantity, source.version
    delta = signed_quantity(ledger_type, data.quantity)
    if delta < 0 and current + delta < 0:
        raise InsufficientStockError(data.store_id, data.product_id, available=current, requested=data.quantity)
    if delta > 0:
        _check_capacity(data.store_id, data.product_id, current, delta)
    if is_transfer:
        destination = rows[data.destination_store_id]
        _check_capacity(data.destination_store_id, data.product_id, destination.quantity, data.quantity)

    movement = ledger.append(
        db,
        StockMovement(
            store_id=data.store_id,
            product_id=data.product_id,
            quantity=data.quantity,
            type=ledger_type,
            reference_id=reference_id,
            notes=notes,
        ),
    )
    consistency.swap(db, source, expected_version, current + delta)
    result = MovementResult(movement=movement, inventory=source)

    if is_transfer:
        dest_current, dest_version = destination.quantity, destination.version
        in_note = f"Transfer from store #{data.store_id}"
        result.transfer_in = ledger.append(
            db,
            StockMovement(
                store_id=data.destination_store_id,
                product_id=data.product_id,
                quantity=data.quantity,
                type=MovementType.TRANSFER_IN,
                reference_id=reference_id,
                notes=f"{in_note} - {notes}" if notes else in_note,
            ),
        )
        consistency.swap(db, destination, dest_version, dest_current + data.quantity)
        result.destination_inventory = destination

    return result


def apply_movement(db: Session, request: MovementCreate | Mapping, actor: str | None = None) -> MovementResult:
    """Apply one stock movement and return the ledger record(s) with the new aggregate state.

    Raises ValidationError, NotFoundError, InsufficientStockError,
    ConflictError (after retries) or StorageError; nothing is written on failure.
    """
    data = parse_request(request)
    reference_id = data.reference_id
    if reference_id is None and data.type == RequestedMovementType.TRANSFER:
        reference_id = f"TRF-{uuid.uuid4().hex}"
    notes = _attribute(data.notes, actor)

    result = consistency.run_atomic(
        db,
        lambda session: _apply_once(session, data, reference_id, notes),
        store_id=data.store_id,
        product_id=data.product_id,
    )
    if result.replayed:
        logger.info("Replayed %s reference=%s for store=%s product=%s",
                    data.type.value, data.reference_id, data.store_id, data.product_id)
    else:
        logger.info(
            "Applied %s of %d for store=%s product=%s -> %d (movement %s)",
            data.type.value, data.quantity, data.store_id, data.product_id,
            result.inventory.quantity, result.movement.id,
        )
    return result


def adjust_inventory(
    db: Session, store_id: int, product_id: int, update: InventoryUpdate, actor: str | None = None
) -> AdjustmentResult:
    """Set stock level and/or price override directly.

    A quantity change is booked as an implicit STOCK_IN or REMOVAL of the
    difference so the ledger still sums to the aggregate. Quantity and price
    are written together in one versioned UPDATE.
    """

    def work(session: Session) -> AdjustmentResult:
        catalog_service.require_store(session, store_id)
        catalog_service.require_product(session, product_id)
        inventory = consistency.acquire(session, product_id, [store_id])[store_id]
        result = AdjustmentResult(inventory=inventory)
        current, expected_version = inventory.quantity, inventory.version
        new_quantity = current

        if update.quantity is not None and update.quantity != current:
            new_quantity = update.quantity
            change = new_quantity - current
            result.movement = ledger.append(
                session,
                StockMovement(
                    store_id=store_id,
                    product_id=product_id,
                    quantity=abs(change),
                    type=MovementType.STOCK_IN if change > 0 else MovementType.REMOVAL,
                    notes=f"Manual inventory adjustment by {actor or 'system'}",
                ),
            )

        changes = {}
        if update.clear_price:
            changes["price"] = None
        elif update.price is not None:
            changes["price"] = update.price
        if result.movement is not None or changes.get("price", inventory.price) != inventory.price:
            consistency.swap(session, inventory, expected_version, new_quantity, **changes)
        return result

    result = consistency.run_atomic(db, work, store_id=store_id, product_id=product_id)
    if result.movement is not None:
        logger.info(
            "Manual adjustment for store=%s product=%s: %s %d",
            store_id, product_id, result.movement.type.value, result.movement.quantity,
        )
    return result
