"""
Data Models Package

This package contains all Pydantic models used in the Personal Ledger system.
All data flowing through the system must conform to these schemas.
"""

from ledger.models.account import (
    Account,
    AccountCreate,
    AccountType,
    AccountUpdate,
    DeleteOutcome,
)
from ledger.models.entry import (
    CarryOverRequest,
    EntryCreate,
    EntryUpdate,
    EntryWithAccount,
    InstallmentCreate,
    LedgerEntry,
    PartialPaymentRequest,
)
from ledger.models.summary import (
    AccountSummary,
    AccountSummaryEntry,
    InstallmentProjection,
    MonthlySummary,
    PartialPaymentResult,
    ScheduledInstallment,
)
from ledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from ledger.models.validation import (
    ValidationIssue,
    ValidationResult,
)

__all__ = [
    # Account models
    "Account",
    "AccountCreate",
    "AccountType",
    "AccountUpdate",
    "DeleteOutcome",
    # Entry models
    "CarryOverRequest",
    "EntryCreate",
    "EntryUpdate",
    "EntryWithAccount",
    "InstallmentCreate",
    "LedgerEntry",
    "PartialPaymentRequest",
    # Summary models
    "AccountSummary",
    "AccountSummaryEntry",
    "InstallmentProjection",
    "MonthlySummary",
    "PartialPaymentResult",
    "ScheduledInstallment",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
    # Validation models
    "ValidationIssue",
    "ValidationResult",
]
