# Overview: Typed error taxonomy shared by services and routes.

"""
Stock ledger error taxonomy.

Every failure that leaves the service layer is one of these, so callers can
tell "fix your input" apart from "try again later":

- ValidationError (400): bad input shape/range, raised before any lookup.
- NotFoundError (404): product/shelf missing or inactive, raised before mutation.
- ConflictError (409): duplicate identity (SKU, zone code, ...).
- InsufficientStock (409): business-rule violation, carries the available quantity.
- ImmutableRecordError (409): attempt to edit/delete a committed purchase or sale.
- LedgerUnavailable (503): storage failure after retries. Nothing was written,
  so the whole operation may be retried.
"""

from __future__ import annotations

from flask import jsonify


class LedgerError(Exception):
    """Base for all typed stockroom errors."""

    code = "LEDGER_ERROR"
    http_status = 400
    retryable = False

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"error": str(self), "code": self.code}
        if self.retryable:
            body["retryable"] = True
        body.update(self.details)
        return body


class ValidationError(LedgerError, ValueError):
    """400-level input problem."""

    code = "VALIDATION_ERROR"


class InvalidQuantity(ValidationError):
    code = "INVALID_QUANTITY"


class InvalidCost(ValidationError):
    code = "INVALID_COST"


class InvalidPrice(ValidationError):
    code = "INVALID_PRICE"


class NotFoundError(LedgerError, LookupError):
    code = "NOT_FOUND"
    http_status = 404


class ProductNotFound(NotFoundError):
    code = "PRODUCT_NOT_FOUND"

    def __init__(self, product_id, reason: str = "not found"):
        super().__init__(f"Product {reason}", details={"product_id": product_id})


class ShelfNotFound(NotFoundError):
    code = "SHELF_NOT_FOUND"

    def __init__(self, shelf_id, reason: str = "not found"):
        super().__init__(f"Shelf location {reason}", details={"shelf_id": shelf_id})


class ConflictError(LedgerError, ValueError):
    """409-level business rule conflict (e.g., duplicate SKU)."""

    code = "CONFLICT"
    http_status = 409


class InsufficientStock(LedgerError):
    code = "INSUFFICIENT_STOCK"
    http_status = 409

    def __init__(self, *, product_id, available: int, requested: int):
        super().__init__(
            f"Insufficient stock. Available: {available}",
            details={"product_id": product_id, "available": available, "requested": requested},
        )
        self.available = available
        self.requested = requested


class ImmutableRecordError(LedgerError):
    code = "IMMUTABLE_RECORD"
    http_status = 409


class LedgerUnavailable(LedgerError):
    code = "LEDGER_UNAVAILABLE"
    http_status = 503
    retryable = True


def error_response(exc: LedgerError):
    """JSON body + status for a typed error."""
    return jsonify(exc.to_dict()), exc.http_status
