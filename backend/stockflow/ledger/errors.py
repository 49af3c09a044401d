# Overview: Error kinds raised by the inventory ledger engine.

from __future__ import annotations


class LedgerError(ValueError):
    """Base class for ledger failures. Mutations raising it leave no partial effect."""

    kind = "ledger_error"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": self.message, "kind": self.kind, "details": self.details}


class NotFoundError(LedgerError):
    """Unknown product, SKU or bill id."""

    kind = "not_found"


class InvalidInputError(LedgerError):
    """Missing required fields or out-of-range values."""

    kind = "invalid_input"


class InsufficientStockError(LedgerError):
    """FIFO consumption would shortfall."""

    kind = "insufficient_stock"


class UnsupportedOperationError(LedgerError):
    """Operation not allowed for this product/bill (e.g. purchasing a non-tracked product)."""

    kind = "unsupported_operation"
