"""Typed errors raised by the movement engine and its stores.

Every error carries a machine-readable ``code`` and the structured data a
caller needs, so the HTTP layer can map each kind to its own response:

    StockLedgerError
    +-- ValidationError            fix your input
    |   +-- DuplicateReferenceError
    +-- NotFoundError              fix your input
    +-- InsufficientStockError     business rule
    +-- ReferencedEntityError      business rule
    +-- ConflictError              try again (retried internally first)
    +-- StorageError               our fault
        +-- ImmutableLedgerError
"""


class StockLedgerError(Exception):
    code: str = "STOCK_LEDGER_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code}


class ValidationError(StockLedgerError):
    """Missing or invalid request fields; raised before any write."""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, errors: list[dict] | None = None):
        self.errors = errors or []
        super().__init__(message)

    def to_dict(self) -> dict:
        data = super().to_dict()
        if self.errors:
            data["errors"] = self.errors
        return data


class DuplicateReferenceError(ValidationError):
    """A reference id was reused for a different movement."""

    code = "DUPLICATE_REFERENCE"

    def __init__(self, reference_id: str, message: str):
        self.reference_id = reference_id
        super().__init__(message)

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["reference_id"] = self.reference_id
        return data


class NotFoundError(StockLedgerError):
    code = "NOT_FOUND"

    def __init__(self, entity: str, entity_id):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")


class InsufficientStockError(StockLedgerError):
    code = "INSUFFICIENT_STOCK"

    def __init__(self, store_id: int, product_id: int, available: int, requested: int):
        self.store_id = store_id
        self.product_id = product_id
        self.available = available
        self.requested = requested
        super().__init__(
            f"Insufficient stock for product {product_id} in store {store_id}: "
            f"available {available}, requested {requested}"
        )

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update(available=self.available, requested=self.requested)
        return data


class ReferencedEntityError(StockLedgerError):
    """Store or product deletion blocked by ledger records that reference it."""

    code = "ENTITY_REFERENCED"

    def __init__(self, entity: str, entity_id):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} is referenced by stock movements and cannot be deleted")


class ConflictError(StockLedgerError):
    code = "CONFLICT"

    def __init__(
        self,
        message: str = "Concurrent modification detected",
        store_id: int | None = None,
        product_id: int | None = None,
        attempts: int | None = None,
    ):
        self.store_id = store_id
        self.product_id = product_id
        self.attempts = attempts
        super().__init__(message)

    def to_dict(self) -> dict:
        data = super().to_dict()
        if self.attempts is not None:
            data["attempts"] = self.attempts
        return data


class StorageError(StockLedgerError):
    code = "STORAGE_ERROR"


class ImmutableLedgerError(StorageError):
    code = "LEDGER_IMMUTABLE"

    def __init__(self, movement_id, operation: str):
        self.movement_id = movement_id
        self.operation = operation
        super().__init__(f"Stock movement {movement_id} is immutable; {operation} is not allowed")
