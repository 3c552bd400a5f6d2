import logging
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from stockledger.api import inventory, movements, products, reports, stores
from stockledger.config import settings
from stockledger.database import init_db
from stockledger.exceptions import (
    ConflictError,
    InsufficientStockError,
    NotFoundError,
    ReferencedEntityError,
    StockLedgerError,
    StorageError,
    ValidationError,
)

logger = logging.getLogger(__name__)

# Checked in order; subclasses before their bases
ERROR_STATUS = [
    (ValidationError, 400),
    (NotFoundError, 404),
    (ConflictError, 409),
    (ReferencedEntityError, 409),
    (InsufficientStockError, 422),
    (StorageError, 503),
]


def configure_logging():
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    init_db()
    logger.info("%s started (lock strategy: %s)", settings.APP_NAME, settings.LOCK_STRATEGY)
    yield


app = FastAPI(
    title="Stock Ledger API",
    description="Per-store inventory derived from an append-only stock movement ledger",
    version="1.0.0",
    lifespan=lifespan,
)


def status_for(exc: StockLedgerError) -> int:
    for error_type, status in ERROR_STATUS:
        if isinstance(exc, error_type):
            return status
    return 500


@app.exception_handler(StockLedgerError)
async def stock_ledger_exception_handler(request: Request, exc: StockLedgerError):
    status = status_for(exc)
    headers = {"Retry-After": "1"} if isinstance(exc, ConflictError) else None
    if status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status, content=exc.to_dict(), headers=headers)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = [{"field": ".".join(str(p) for p in e["loc"]), "message": e["msg"]} for e in exc.errors()]
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request", "code": ValidationError.code, "errors": errors},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Return JSON for unhandled exceptions so clients can parse the error."""
    logger.error("Unhandled error: %s\n%s", exc, traceback.format_exc())
    return JSONResponse(status_code=500, content={"error": "Internal server error", "code": "INTERNAL_ERROR"})


app.include_router(stores.router, prefix="/api/v1")
app.include_router(products.router, prefix="/api/v1")
app.include_router(movements.router, prefix="/api/v1")
app.include_router(inventory.router, prefix="/api/v1")
app.include_router(reports.router, prefix="/api/v1")


@app.get("/api/v1/config")
def get_config():
    """Expose the non-secret engine settings."""
    return {
        "lock_strategy": settings.LOCK_STRATEGY,
        "max_conflict_retries": settings.MAX_CONFLICT_RETRIES,
        "default_page_size": settings.DEFAULT_PAGE_SIZE,
        "max_page_size": settings.MAX_PAGE_SIZE,
    }


@app.get("/health")
def health():
    return {"status": "ok"}
