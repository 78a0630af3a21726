# Overview: Error taxonomy shared by the ledger services.
"""
Every service failure is a LedgerError carrying a message and a details dict.

- NotFound / InvalidState / ValidationFailed: surfaced, never retried.
- InsufficientStock / InsufficientBalance: business-rule rejections that
  carry the available and required amounts.
- ConcurrencyConflict: nothing was committed; the whole call may be retried.
- PersistenceFailure: store unreachable or broken; not retried.
"""
from __future__ import annotations

from decimal import Decimal

from ..money import format_eur, format_quantity


class LedgerError(Exception):
    """Base class for ledger operation errors."""
    code = "LEDGER_ERROR"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NotFound(LedgerError):
    code = "NOT_FOUND"


class InvalidState(LedgerError):
    code = "INVALID_STATE"


class ValidationFailed(LedgerError):
    code = "VALIDATION_FAILED"


class InsufficientStock(LedgerError):
    code = "INSUFFICIENT_STOCK"

    def __init__(self, article_id: int, article_name: str, available: Decimal, required: Decimal):
        super().__init__(
            f"Insufficient stock for {article_name}: "
            f"available {format_quantity(available)}, required {format_quantity(required)}",
            details={
                "article_id": article_id,
                "available": str(available),
                "required": str(required),
            },
        )
        self.available = available
        self.required = required


class InsufficientBalance(LedgerError):
    code = "INSUFFICIENT_BALANCE"

    def __init__(self, customer_id: int, available: Decimal, required: Decimal):
        super().__init__(
            f"Insufficient balance: available {format_eur(available)}, required {format_eur(required)}",
            details={
                "customer_id": customer_id,
                "available": str(available),
                "required": str(required),
            },
        )
        self.available = available
        self.required = required


class ConcurrencyConflict(LedgerError):
    code = "CONCURRENCY_CONFLICT"

    def __init__(self, message: str = "The operation collided with another update, please retry"):
        super().__init__(message)


class PersistenceFailure(LedgerError):
    code = "PERSISTENCE_FAILURE"
