"""
Loan Ledger Errors

Exception hierarchy for the loan lifecycle. Every error carries a
machine-readable ``kind`` so callers (and the HTTP adapter) can tell them apart
without parsing messages.
"""

from typing import List, Optional


class LoanLedgerError(Exception):
    """Base exception for all loan ledger errors"""
    kind = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.kind, "detail": self.message}


class NotFoundError(LoanLedgerError):
    """Raised when a loan or ledger record does not exist"""
    kind = "not_found"


class InvalidStateError(LoanLedgerError):
    """Raised when an action is attempted outside its legal loan status"""
    kind = "invalid_state"


class LoanValidationError(LoanLedgerError):
    """Raised when request data or a ledger rule is violated"""
    kind = "validation"

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = errors or [message]

    def to_dict(self) -> dict:
        result = super().to_dict()
        result["errors"] = list(self.errors)
        return result


class ConflictError(LoanLedgerError):
    """Raised when a ledger record already exists (duplicate payment number)"""
    kind = "conflict"
