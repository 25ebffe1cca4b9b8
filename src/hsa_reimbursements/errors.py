"""Typed errors for the reimbursement ledger.

Every error carries a machine-readable ``code`` and the HTTP status the API
renders it with. ``to_dict()`` is the response body.
"""

from decimal import Decimal
from typing import Any


class LedgerError(Exception):
    code = "LEDGER_ERROR"
    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.code, "message": self.message}


class ValidationError(LedgerError):
    """Bad input shape or range. User-correctable."""

    code = "VALIDATION_ERROR"
    status_code = 400


class OverLimitError(LedgerError):
    """A reimbursement would push the expense's reimbursed total past its amount."""

    code = "OVER_LIMIT"
    status_code = 409

    def __init__(self, expense_amount: Decimal, current_total: Decimal, attempted_amount: Decimal) -> None:
        super().__init__("Reimbursement amount exceeds original expense amount")
        self.expense_amount = expense_amount
        self.current_total = current_total
        self.attempted_amount = attempted_amount

    def to_dict(self) -> dict[str, Any]:
        return {
            **super().to_dict(),
            "expenseAmount": f"{self.expense_amount:.2f}",
            "currentTotal": f"{self.current_total:.2f}",
            "attemptedAmount": f"{self.attempted_amount:.2f}",
        }


class NotFoundError(LedgerError):
    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, kind: str, record_id: str) -> None:
        super().__init__(f"{kind} not found")
        self.kind = kind
        self.record_id = record_id


class AuthError(LedgerError):
    """Missing, malformed or expired bearer token."""

    code = "AUTH_ERROR"
    status_code = 401


class UnsupportedMediaError(LedgerError):
    code = "UNSUPPORTED_MEDIA"
    status_code = 415

    def __init__(self, content_type: str, message: str | None = None) -> None:
        super().__init__(message or f"Unsupported file type: {content_type}")
        self.content_type = content_type
