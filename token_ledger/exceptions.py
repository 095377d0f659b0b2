"""
Exception taxonomy for the token engine.

Business and validation errors derive from LedgerError and carry
enough context (balances, statuses) for the caller to explain the
refusal. InvariantViolation is deliberately NOT a LedgerError: it
signals a bug, and callers must never turn it into a business
message.
"""

from typing import Any


class LedgerError(Exception):
    """Base class for errors that are safe to show to the caller."""

    status_code: int = 400
    error_code: str = "ERR_LEDGER"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_detail(self) -> dict[str, Any]:
        return {
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class LedgerValidationError(LedgerError):
    """Bad input rejected before any write happens."""

    status_code = 400
    error_code = "ERR_VALIDATION"


class SubjectNotFound(LedgerError):
    status_code = 404
    error_code = "ERR_NOT_FOUND"

    def __init__(self, resource: str, resource_id: Any):
        super().__init__(
            f"{resource} {resource_id} not found",
            {"resource": resource, "id": resource_id},
        )


class DuplicateRecord(LedgerError):
    status_code = 409
    error_code = "ERR_DUPLICATE"


class InsufficientBalance(LedgerError):
    status_code = 409
    error_code = "ERR_INSUFFICIENT_BALANCE"

    def __init__(self, available: int, requested: int, subject: str):
        super().__init__(
            f"Insufficient balance: available={available}, "
            f"requested={requested}",
            {
                "subject": subject,
                "available_balance": available,
                "requested_amount": requested,
            },
        )


class InvalidTransition(LedgerError):
    status_code = 409
    error_code = "ERR_INVALID_TRANSITION"

    def __init__(self, current_status: str, target_status: str):
        super().__init__(
            f"Cannot transition from {current_status} to {target_status}",
            {
                "current_status": current_status,
                "target_status": target_status,
            },
        )


class MinimumWithdrawalNotMet(LedgerError):
    status_code = 400
    error_code = "ERR_MIN_WITHDRAWAL"

    def __init__(self, minimum: int, requested: int):
        super().__init__(
            f"Minimum withdrawal amount is {minimum} tokens",
            {"min_withdrawal_tokens": minimum, "requested_amount": requested},
        )


class InvariantViolation(RuntimeError):
    """
    Ledger arithmetic no longer adds up.

    Raised after the context has been logged. The operation aborts and
    the transaction must be rolled back; nothing is corrected in place.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        self.context = context or {}
        super().__init__(message)
