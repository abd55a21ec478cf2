"""Inventory error taxonomy.

`InsufficientStock` and `UnknownProduct` are deterministic outcomes of the
request and the current ledger. `StorageFailure` is an infrastructure fault:
it is retryable, but the engine itself never retries.
"""

from uuid import UUID

from .units import Milliliters


class InventoryError(Exception):
    """Base class for inventory domain errors"""


class InsufficientStock(InventoryError):
    def __init__(
        self,
        product_id: UUID,
        product_name: str,
        required_ml: Milliliters,
        available_ml: Milliliters,
    ):
        self.product_id = product_id
        self.product_name = product_name
        self.required_ml = required_ml
        self.available_ml = available_ml
        super().__init__(
            f"Insufficient stock for {product_name or product_id}. "
            f"Available: {available_ml}ml, Required: {required_ml}ml"
        )


class UnknownProduct(InventoryError):
    def __init__(self, product_id: UUID):
        self.product_id = product_id
        super().__init__(f"Product not found: {product_id}")


class DuplicateProduct(InventoryError):
    def __init__(self, product_id: UUID):
        self.product_id = product_id
        super().__init__(f"Product already provisioned: {product_id}")


class StorageFailure(InventoryError):
    """Ledger read/write or log append failed at the storage level."""

    retryable = True

    def __init__(self, operation: str, cause: Exception | None = None):
        self.operation = operation
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Storage failure during {operation}{detail}")
