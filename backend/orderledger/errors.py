"""
Domain errors for orderledger.

Every business rule violation raised by a service is a subclass of
OrderLedgerError. Each class carries:
- code: machine-readable identifier (class attribute)
- status_code: the HTTP status the API layer answers with
- details: structured context (what was requested, what was available, ...)

All of these are recoverable: the caller surfaces the message and lets the
user retry with corrected input. Services roll back the surrounding
transaction before the error reaches the caller.
"""

from __future__ import annotations


class OrderLedgerError(Exception):
    """Base class for all domain errors."""

    code: str = "ORDER_LEDGER_ERROR"
    status_code: int = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "code": self.code,
            "details": self.details,
        }


class ValidationError(OrderLedgerError):
    """400-level input problem."""

    code = "VALIDATION_ERROR"


class EntityNotFound(OrderLedgerError):
    code = "ENTITY_NOT_FOUND"
    status_code = 404


class OrderNotFound(EntityNotFound):
    code = "ORDER_NOT_FOUND"

    def __init__(self, order_id):
        super().__init__(f"Order {order_id} not found", details={"order_id": order_id})


class InsufficientInventory(OrderLedgerError):
    """Attempted deduction exceeds the available balance. Always raised before any mutation."""

    code = "INSUFFICIENT_INVENTORY"
    status_code = 409


class InvalidMovementQuantity(OrderLedgerError):
    code = "INVALID_MOVEMENT_QUANTITY"


class OrderLocked(OrderLedgerError):
    """A mutation was attempted on a locked order."""

    code = "ORDER_LOCKED"
    status_code = 409


class AlreadyLocked(OrderLedgerError):
    code = "ALREADY_LOCKED"
    status_code = 409


class OrderNotCompleted(OrderLedgerError):
    code = "ORDER_NOT_COMPLETED"
    status_code = 409


class NotLocked(OrderLedgerError):
    code = "NOT_LOCKED"
    status_code = 409


class UnlockWindowExpired(OrderLedgerError):
    code = "UNLOCK_WINDOW_EXPIRED"
    status_code = 409


class ReasonRequired(OrderLedgerError):
    code = "REASON_REQUIRED"


class ImmutableRecordError(OrderLedgerError):
    """An UPDATE or DELETE reached an append-only table."""

    code = "IMMUTABLE_RECORD"
    status_code = 409

    def __init__(self, entity_type: str, entity_id, operation: str):
        super().__init__(
            f"{entity_type} records are append-only ({operation} rejected)",
            details={"entity_type": entity_type, "entity_id": entity_id, "operation": operation},
        )
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.operation = operation
