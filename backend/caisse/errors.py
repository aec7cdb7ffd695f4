# Overview: Error kinds raised by the ledger services.

"""
Ledger error taxonomy.

Every error carries a machine-readable ``code`` and a ``details`` mapping so
that any transport can surface it unchanged. Atomic units always roll back
before one of these leaves the service layer.
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for all ledger errors."""

    code = "LEDGER_ERROR"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code, "details": self.details}


class NotFoundError(LedgerError):
    code = "NOT_FOUND"

    def __init__(self, resource: str, identifier=None):
        message = f"{resource} {identifier} not found" if identifier is not None else f"{resource} not found"
        super().__init__(message, details={"resource": resource, "id": identifier})
        self.resource = resource
        self.identifier = identifier


class ValidationError(LedgerError):
    code = "VALIDATION_ERROR"


class InvalidPaymentReferenceError(ValidationError):
    code = "INVALID_PAYMENT_REFERENCE"


class InsufficientStockError(LedgerError):
    code = "INSUFFICIENT_STOCK"

    def __init__(self, product_id: int, product_name: str | None, available: int, requested: int):
        super().__init__(
            f"Insufficient stock for {product_name or product_id}. "
            f"Available: {available}, requested: {requested}",
            details={
                "product_id": product_id,
                "product_name": product_name,
                "available": available,
                "requested": requested,
            },
        )
        self.product_id = product_id
        self.available = available
        self.requested = requested


class InvalidStateTransitionError(LedgerError):
    code = "INVALID_STATE_TRANSITION"

    def __init__(self, entity: str, current: str, attempted: str):
        super().__init__(
            f"Cannot {attempted} {entity} in status {current}",
            details={"entity": entity, "current": current, "attempted": attempted},
        )
        self.current = current


class AlreadyCancelledError(LedgerError):
    code = "ALREADY_CANCELLED"


class AuthorizationError(LedgerError):
    code = "AUTHORIZATION_ERROR"


class NotAssignedError(AuthorizationError):
    """The actor is not the user a cash session is assigned to."""
    code = "NOT_ASSIGNED"


class PermissionDeniedError(AuthorizationError):
    code = "PERMISSION_DENIED"


class ConflictError(LedgerError):
    code = "CONFLICT"


class ActiveSessionExistsError(ConflictError):
    code = "ACTIVE_SESSION_EXISTS"


class ProductInUseError(ConflictError):
    code = "PRODUCT_IN_USE"


class DatabaseError(LedgerError):
    """Lock timeout or connectivity failure. The unit was rolled back."""
    code = "DATABASE_ERROR"
