"""
Pytest fixtures for the stock ledger test suite.

Each test gets its own file-backed SQLite database built with the same
engine factory as production, so the BEGIN IMMEDIATE writer lock and the
foreign key pragma are in force. A file (not :memory:) is used so threads
in the concurrency tests get independent connections.
"""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session, sessionmaker

from stockledger.config import settings
from stockledger.database import create_db_engine, get_db, init_db
from stockledger.main import app
from stockledger.models.catalog import Product, Store
from stockledger.schemas.catalog import ProductCreate, StoreCreate
from stockledger.services import catalog_service, movement_service


@pytest.fixture(autouse=True)
def _fast_retries(monkeypatch):
    monkeypatch.setattr(settings, "CONFLICT_BACKOFF_MS", 0)
    monkeypatch.setattr(settings, "LOCK_STRATEGY", "pessimistic")


@pytest.fixture
def engine(tmp_path):
    engine = create_db_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory) -> Session:
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def make_store(db):
    def _make(name: str = "Store") -> Store:
        return catalog_service.create_store(db, StoreCreate(name=name))

    return _make


@pytest.fixture
def make_product(db):
    def _make(name: str = "Widget", base_price: float = 2.5, category: str = "General", sku: str | None = None) -> Product:
        return catalog_service.create_product(
            db, ProductCreate(name=name, base_price=base_price, category=category, sku=sku)
        )

    return _make


@pytest.fixture
def stock(db):
    """Receive ``quantity`` units so a test starts from a known level."""

    def _stock(store_id: int, product_id: int, quantity: int):
        return movement_service.apply_movement(
            db,
            {"store_id": store_id, "product_id": product_id, "quantity": quantity, "type": "STOCK_IN"},
        )

    return _stock


@pytest.fixture
def client(session_factory):
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    # Not used as a context manager: the lifespan would create the default database
    yield TestClient(app)
    app.dependency_overrides.clear()
