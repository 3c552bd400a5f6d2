"""Consistency guard: transaction boundary, lock ordering and conflict retries.

Every read-compute-write on an inventory row runs inside ``atomic``. With the
pessimistic strategy the rows are locked (``SELECT ... FOR UPDATE``) for the
whole unit; with the optimistic strategy they are read unlocked and the write
is a version compare-and-swap. Either way a lost race surfaces as
``ConflictError`` and ``run_atomic`` replays the whole unit.
"""

import logging
import time
from collections.abc import Callable, Iterable
from contextlib import contextmanager
from typing import TypeVar

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from stockledger.config import settings
from stockledger.exceptions import ConflictError, StockLedgerError, StorageError
from stockledger.models.inventory import StoreInventory
from stockledger.models.movement import REFERENCE_CONSTRAINT
from stockledger.services import inventory_store

logger = logging.getLogger(__name__)

T = TypeVar("T")

# lock_not_available, serialization_failure, deadlock_detected
_RETRYABLE_SQLSTATES = {"55P03", "40001", "40P01"}


def _sqlstate(exc: DBAPIError) -> str | None:
    orig = exc.orig
    return getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)


def _is_retryable(exc: DBAPIError) -> bool:
    if _sqlstate(exc) in _RETRYABLE_SQLSTATES:
        return True
    message = str(exc.orig)
    if "database is locked" in message:
        return True
    # Two submissions with the same reference id raced; the replay check wins on retry
    if isinstance(exc, IntegrityError):
        return REFERENCE_CONSTRAINT in message or "UNIQUE constraint failed: stock_movements." in message
    return False


def _set_lock_timeout(db: Session) -> None:
    if db.get_bind().dialect.name == "postgresql" and settings.LOCK_TIMEOUT_MS > 0:
        db.execute(text(f"SET LOCAL lock_timeout = {int(settings.LOCK_TIMEOUT_MS)}"))


@contextmanager
def atomic(db: Session):
    """One atomic unit: commit on success, roll back on every failure path."""
    try:
        _set_lock_timeout(db)
        yield db
        db.commit()
    except StockLedgerError:
        db.rollback()
        raise
    except DBAPIError as exc:
        db.rollback()
        if _is_retryable(exc):
            raise ConflictError(f"Concurrent write detected: {exc.orig}") from exc
        logger.error("Storage failure, unit rolled back: %s", exc)
        raise StorageError(f"Storage failure: {exc.orig}") from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Storage failure, unit rolled back: %s", exc)
        raise StorageError(f"Storage failure: {exc}") from exc
    except BaseException:
        # Cancellation, timeouts and bugs alike leave nothing behind
        db.rollback()
        raise


def acquire(db: Session, product_id: int, store_ids: Iterable[int]) -> dict[int, StoreInventory]:
    """Get (or create) the inventory rows for ``product_id`` in each store.

    Rows are taken in ascending store id so two transfers between the same
    stores in opposite directions cannot deadlock.
    """
    lock = settings.LOCK_STRATEGY == "pessimistic"
    return {
        store_id: inventory_store.get_or_create(db, store_id, product_id, lock=lock)
        for store_id in sorted(set(store_ids))
    }


def swap(db: Session, inventory: StoreInventory, expected_version: int, new_quantity: int, **changes) -> None:
    if not inventory_store.compare_and_swap(db, inventory, expected_version, new_quantity, **changes):
        raise ConflictError(
            f"Inventory for product {inventory.product_id} in store {inventory.store_id} changed concurrently",
            store_id=inventory.store_id,
            product_id=inventory.product_id,
        )


def run_atomic(db: Session, work: Callable[[Session], T], store_id: int, product_id: int) -> T:
    """Run ``work`` in an atomic unit, replaying it on conflict up to the retry limit."""
    attempts = max(1, settings.MAX_CONFLICT_RETRIES)
    last_error: ConflictError | None = None
    for attempt in range(1, attempts + 1):
        try:
            with atomic(db):
                return work(db)
        except ConflictError as exc:
            last_error = exc
            logger.warning(
                "Conflict on store=%s product=%s (attempt %d/%d): %s",
                store_id, product_id, attempt, attempts, exc.message,
            )
            if attempt < attempts and settings.CONFLICT_BACKOFF_MS > 0:
                time.sleep(settings.CONFLICT_BACKOFF_MS * attempt / 1000)

    logger.error("Giving up on store=%s product=%s after %d attempts", store_id, product_id, attempts)
    raise ConflictError(
        f"Inventory for product {product_id} in store {store_id} is busy; retry later",
        store_id=store_id,
        product_id=product_id,
        attempts=attempts,
    ) from last_error
