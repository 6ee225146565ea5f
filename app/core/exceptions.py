# app/core/exceptions.py
"""
Ledger error taxonomy.

Every error carries a human readable ``detail``, the ``field`` (or
invariant) that failed when there is one, and the HTTP status the API
layer maps it to.
"""
from typing import Optional
from fastapi import status


class LedgerError(Exception):
    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail: str, field: Optional[str] = None):
        super().__init__(detail)
        self.detail = detail
        self.field = field

    def to_dict(self) -> dict:
        return {
            "detail": self.detail,
            "error": type(self).__name__,
            "field": self.field,
        }


class ValidationError(LedgerError):
    """Bad input shape or value (amount <= 0, missing recipient name, ...)."""
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class AllocationConfigError(LedgerError):
    """Budget percentages that do not sum to 100."""
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class InvalidAllocation(AllocationConfigError):
    """Raised by the distribution calculator itself."""


class NotEditableError(LedgerError):
    status_code = status.HTTP_403_FORBIDDEN


class NotDeletableError(LedgerError):
    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(LedgerError):
    status_code = status.HTTP_404_NOT_FOUND


class StoreUnavailable(LedgerError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
