"""
Error taxonomy for stock, snapshot, sale and order operations.

Every service raises a subclass of LedgerError. Routes turn them into JSON
bodies of the form {"error": message, "details": {...}} with the class status.
"""
from __future__ import annotations


class LedgerError(Exception):
    """Base class for all domain errors."""
    status_code = 500

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": self.message, "details": self.details}


class ValidationError(LedgerError):
    """400-level input problem, raised before any write."""
    status_code = 400


class InvalidQuantity(ValidationError):
    """Carton count that is not a non-negative (or positive) integer."""


class NotFound(LedgerError):
    status_code = 404


class InsufficientStock(LedgerError):
    """Requested cartons exceed the live count at the location."""
    status_code = 409

    def __init__(self, product_id: int, available: int, requested: int | None = None, product_name: str | None = None):
        label = product_name or f"product {product_id}"
        super().__init__(
            f"Not enough stock for {label}. Only {available} available",
            details={
                "product_id": product_id,
                "available": available,
                "requested": requested,
            },
        )
        self.product_id = product_id
        self.available = available
        self.requested = requested


class InvalidTransition(LedgerError):
    """Order lifecycle transition not allowed from the current status."""
    status_code = 409


class ConcurrencyConflict(LedgerError):
    """Retries exhausted on a lock or optimistic version conflict."""
    status_code = 503


class PermissionDenied(LedgerError):
    status_code = 403
