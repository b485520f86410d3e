"""
Domain errors raised by the ledger core.

The core never translates these into user messages. Each error carries a
stable ``code`` so the calling layer (HTTP, UI) can map it to its own
presentation.
"""


class LedgerError(Exception):
    """Base exception for ledger operations."""

    code = "ledger_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(LedgerError):
    """Entity does not exist."""

    code = "not_found"


class AccessDeniedError(LedgerError):
    """Entity exists but belongs to another owner."""

    code = "access_denied"


class ForbiddenError(LedgerError):
    """Operation is forbidden by a business rule (e.g. removing the carry-over account)."""

    code = "forbidden"


class InvalidArgumentError(LedgerError):
    """Request values are inconsistent with the operation."""

    code = "invalid_argument"


class ConflictError(LedgerError):
    """Operation conflicts with the current state (e.g. re-splitting an entry)."""

    code = "conflict"
