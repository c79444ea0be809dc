"""Ledger error taxonomy.

Every domain failure raised by the ledger services is a ``LedgerError``. The API
layer renders them through one exception handler into the error envelope::

    {"ok": false, "code": "...", "message": "...", "details": {"validation": {...}}}
"""

from __future__ import annotations

from typing import Any


class LedgerError(Exception):
    status_code: int = 400
    code: str = "LEDGER_ERROR"
    default_message: str = "Request could not be processed"

    def __init__(
        self,
        message: str | None = None,
        *,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message or self.default_message
        if code is not None:
            self.code = code
        self.details = details
        super().__init__(self.message)

    def to_envelope(self) -> dict[str, Any]:
        body: dict[str, Any] = {"ok": False, "code": self.code, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationFailed(LedgerError):
    status_code = 422
    code = "VALIDATION_FAILED"
    default_message = "The given data was invalid"

    @classmethod
    def for_field(cls, field: str, message: str, *, code: str | None = None) -> "ValidationFailed":
        return cls(message, code=code, details={"validation": {field: [message]}})


class PermissionDenied(LedgerError):
    status_code = 403
    code = "TENANT_PERMISSION_DENIED"
    default_message = "You do not have permission to perform this action"


class NotFound(LedgerError):
    """Missing, cross-tenant and soft-deleted records all look the same."""

    status_code = 404
    code = "NOT_FOUND"
    default_message = "Resource not found"


class InvariantViolation(LedgerError):
    status_code = 422
    code = "INVARIANT_VIOLATION"
    default_message = "The change would break a ledger invariant"


class PaymentTotalExceeded(InvariantViolation):
    code = "PAYMENT_TOTAL_EXCEEDED"
    default_message = "Total scheduled payments would exceed the contract value"


class InvalidStatusTransition(LedgerError):
    status_code = 422
    code = "INVALID_STATUS_TRANSITION"
    default_message = "Status transition is not allowed"


class TransientConflict(LedgerError):
    """Lock wait, statement timeout or concurrent duplicate: safe to retry."""

    status_code = 503
    code = "TRANSIENT_CONFLICT"
    default_message = "The request conflicted with a concurrent operation. Retry shortly."
    retry_after_seconds = 1


class IdempotencyInProgress(TransientConflict):
    status_code = 409
    code = "IDEMPOTENCY_IN_PROGRESS"
    default_message = "A request with this Idempotency-Key is still being processed"
