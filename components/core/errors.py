"""Typed errors raised by the ledger components.

Every error carries a machine-readable ``code`` and the HTTP status the API
layer answers with, so endpoints never have to parse messages.

    LedgerError
    +-- ValidationError           400  bad input, amount out of bounds
    +-- NotFoundError             404  unknown remittance/transaction/payment
    +-- ConcurrencyConflictError  409  optimistic version check failed
    +-- ImmutableRecordError      409  update/delete of an append-only record
    +-- TransactionLockedError    423  mutation of a finalized transaction

Only ConcurrencyConflictError is ever retried, and only by batch operations.
"""

from typing import Any, Dict, Optional


class LedgerError(Exception):
    """Base class for all ledger errors."""

    code = "LEDGER_ERROR"
    status_code = 500

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = details

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message}


class ValidationError(LedgerError):
    code = "VALIDATION_ERROR"
    status_code = 400


class NotFoundError(LedgerError):
    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, entity: str, entity_id: Optional[Any] = None) -> None:
        message = f"{entity} not found" if entity_id is None else f"{entity} {entity_id} not found"
        super().__init__(message, entity=entity, entity_id=entity_id)


class ConcurrencyConflictError(LedgerError):
    code = "CONCURRENCY_CONFLICT"
    status_code = 409


class ImmutableRecordError(LedgerError):
    code = "IMMUTABLE_RECORD"
    status_code = 409


class TransactionLockedError(LedgerError):
    code = "TRANSACTION_LOCKED"
    status_code = 423
