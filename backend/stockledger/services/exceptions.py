# Overview: Exception taxonomy shared by the stock services and mapped to HTTP status by the routes.

from __future__ import annotations


class StockError(Exception):
    """Base class for stock business errors; carries structured details for the API."""
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class NotFoundError(StockError):
    """Referenced record (product, customer, assignment, ...) does not exist."""
    status_code = 404


class ProductNotFoundError(NotFoundError):
    def __init__(self, product_id):
        super().__init__(f"Product not found: {product_id}", details={"product_id": product_id})
        self.product_id = product_id


class InsufficientStockError(StockError):
    """A deduction would drive stock below zero."""
    status_code = 400


class StockStateError(StockError):
    """Operation is invalid for the record's current lifecycle state."""
    status_code = 409


class LedgerImmutableError(RuntimeError):
    """Raised when code tries to update or delete a ledger event."""
