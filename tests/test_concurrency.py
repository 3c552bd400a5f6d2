"""
Concurrent writers against one database.

Each worker uses its own session, as separate requests would. The shared
``db`` session is closed before the workers start so it holds no
transaction of its own.
"""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from stockledger.config import settings
from stockledger.exceptions import InsufficientStockError
from stockledger.services import inventory_store, ledger, movement_service

STRATEGIES = ["pessimistic", "optimistic"]


@pytest.fixture(params=STRATEGIES)
def strategy(request, monkeypatch):
    monkeypatch.setattr(settings, "LOCK_STRATEGY", request.param)
    monkeypatch.setattr(settings, "MAX_CONFLICT_RETRIES", 20)
    return request.param


def run_concurrently(session_factory, payloads):
    """Submit every payload at once; return (results, errors) in payload order."""
    barrier = threading.Barrier(len(payloads))

    def worker(payload):
        session = session_factory()
        try:
            barrier.wait()
            return movement_service.apply_movement(session, payload), None
        except Exception as exc:
            return None, exc
        finally:
            session.close()

    with ThreadPoolExecutor(max_workers=len(payloads)) as pool:
        outcomes = list(pool.map(worker, payloads))
    return [r for r, _ in outcomes], [e for _, e in outcomes]


def check_pair(session_factory, store_id, product_id) -> int:
    session = session_factory()
    try:
        inventory = inventory_store.get(session, store_id, product_id)
        assert inventory.quantity >= 0
        assert inventory.quantity == ledger.balance(session, store_id, product_id)
        return inventory.quantity
    finally:
        session.close()


def test_competing_sales_never_oversell(strategy, db, session_factory, make_store, make_product, stock):
    store_id, product_id = make_store().id, make_product().id
    stock(store_id, product_id, 10)
    db.close()

    payloads = [
        {"store_id": store_id, "product_id": product_id, "quantity": 6, "type": "SALE"},
        {"store_id": store_id, "product_id": product_id, "quantity": 7, "type": "SALE"},
    ]
    results, errors = run_concurrently(session_factory, payloads)

    winners = [r for r in results if r is not None]
    assert len(winners) == 1
    assert len([e for e in errors if isinstance(e, InsufficientStockError)]) == 1
    assert check_pair(session_factory, store_id, product_id) == 10 - winners[0].movement.quantity


def test_opposite_transfers_do_not_deadlock(strategy, db, session_factory, make_store, make_product, stock):
    a, b, product_id = make_store("A").id, make_store("B").id, make_product().id
    stock(a, product_id, 50)
    stock(b, product_id, 50)
    db.close()

    payloads = [
        {"store_id": a, "product_id": product_id, "quantity": 5, "type": "TRANSFER", "destination_store_id": b},
        {"store_id": b, "product_id": product_id, "quantity": 3, "type": "TRANSFER", "destination_store_id": a},
    ] * 4
    results, errors = run_concurrently(session_factory, payloads)

    assert errors == [None] * len(payloads)
    assert all(r.transfer_in is not None for r in results)
    assert check_pair(session_factory, a, product_id) == 50 - 4 * 5 + 4 * 3
    assert check_pair(session_factory, b, product_id) == 50 + 4 * 5 - 4 * 3


def test_many_sales_drain_exactly_to_zero(strategy, db, session_factory, make_store, make_product, stock):
    store_id, product_id = make_store().id, make_product().id
    stock(store_id, product_id, 12)
    db.close()

    payloads = [{"store_id": store_id, "product_id": product_id, "quantity": 1, "type": "SALE"}] * 16
    results, errors = run_concurrently(session_factory, payloads)

    assert len([r for r in results if r is not None]) == 12
    rejected = [e for e in errors if e is not None]
    assert len(rejected) == 4
    assert all(isinstance(e, InsufficientStockError) for e in rejected)
    assert check_pair(session_factory, store_id, product_id) == 0


def test_first_movement_for_a_new_pair(strategy, db, session_factory, make_store, make_product):
    store_id, product_id = make_store().id, make_product().id
    db.close()

    payloads = [{"store_id": store_id, "product_id": product_id, "quantity": 2, "type": "STOCK_IN"}] * 6
    results, errors = run_concurrently(session_factory, payloads)

    assert errors == [None] * 6
    assert check_pair(session_factory, store_id, product_id) == 12


def test_same_reference_applies_once(strategy, db, session_factory, make_store, make_product):
    store_id, product_id = make_store().id, make_product().id
    db.close()

    payload = {
        "store_id": store_id,
        "product_id": product_id,
        "quantity": 9,
        "type": "STOCK_IN",
        "reference_id": "PO-1001",
    }
    results, errors = run_concurrently(session_factory, [payload] * 4)

    assert errors == [None] * 4
    assert len([r for r in results if not r.replayed]) == 1
    assert check_pair(session_factory, store_id, product_id) == 9
