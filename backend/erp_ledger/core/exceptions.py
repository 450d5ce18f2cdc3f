"""
Settlement Engine Errors

Every failure the engine reports is one of these. The route layer maps
them to HTTP responses through a single exception handler.
"""
from decimal import Decimal
from typing import Optional


class SettlementError(Exception):
    """Base exception for all settlement engine failures."""

    status_code = 400
    code = "SETTLEMENT_ERROR"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field

    def to_dict(self) -> dict:
        body = {"detail": self.message, "code": self.code}
        if self.field:
            body["field"] = self.field
        return body


class ValidationError(SettlementError):
    """Missing or invalid input. Raised before anything is written."""

    status_code = 422
    code = "VALIDATION_ERROR"


class NotFoundError(SettlementError):
    status_code = 404
    code = "NOT_FOUND"


class OverAllocationError(SettlementError):
    """An allocation exceeds the payment amount or a document's balance due."""

    status_code = 422
    code = "OVER_ALLOCATION"


class InsufficientBalanceError(SettlementError):
    """A transfer, refund or credit-line draw exceeds what is available."""

    status_code = 422
    code = "INSUFFICIENT_BALANCE"

    def __init__(self, message: str, available: Decimal, field: Optional[str] = None):
        super().__init__(message, field)
        self.available = available

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["available"] = str(self.available)
        return body


class AlreadyReversedError(SettlementError):
    status_code = 409
    code = "ALREADY_REVERSED"


class UnbalancedTransactionError(SettlementError):
    """Debits and credits of a posting do not match. Always a programming error."""

    status_code = 500
    code = "UNBALANCED_TRANSACTION"
