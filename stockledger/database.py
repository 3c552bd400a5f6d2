from sqlalchemy import Engine, create_engine, event, inspect, text
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from stockledger.config import settings


class Base(DeclarativeBase):
    pass


def create_db_engine(url: str, echo: bool = False) -> Engine:
    """Build an engine for the ledger database.

    SQLite has no row locks, so every transaction is opened with
    ``BEGIN IMMEDIATE``: writers queue on the database lock instead of
    racing between read and write. Taking over BEGIN from pysqlite also
    makes savepoints work.
    """
    if not url.startswith("sqlite"):
        return create_engine(url, echo=echo, pool_pre_ping=True)

    connect_args = {"check_same_thread": False, "timeout": settings.SQLITE_BUSY_TIMEOUT_S}
    engine = create_engine(url, echo=echo, connect_args=connect_args)

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


engine = create_db_engine(settings.DATABASE_URL, echo=settings.DATABASE_ECHO)
# Results of a committed movement stay readable without opening another transaction
SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _migrate_add_columns(bind: Engine):
    """Add aggregate columns missing from store_inventory tables created before versioning."""
    inspector = inspect(bind)
    tables = inspector.get_table_names()

    if "store_inventory" in tables:
        existing = {col["name"] for col in inspector.get_columns("store_inventory")}
        new_cols = {
            "version": "INTEGER NOT NULL DEFAULT 0",
            "updated_at": "TIMESTAMP",
        }
        with bind.begin() as conn:
            for col_name, col_type in new_cols.items():
                if col_name not in existing:
                    conn.execute(text(f"ALTER TABLE store_inventory ADD COLUMN {col_name} {col_type}"))


def init_db(bind: Engine | None = None):
    # Import all models so Base.metadata knows about them
    import stockledger.models.catalog  # noqa: F401
    import stockledger.models.inventory  # noqa: F401
    import stockledger.models.movement  # noqa: F401

    bind = bind or engine
    _migrate_add_columns(bind)
    Base.metadata.create_all(bind=bind)
