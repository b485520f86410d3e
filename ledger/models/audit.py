"""
Audit Models for Personal Ledger

Every write in the ledger is logged for audit purposes.
This provides:
1. Complete traceability of how a month's numbers came about
2. Debugging information when things go wrong
3. Ability to reconstruct history (carry-overs, splits, deletes)

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Every posting operation and every account mutation has its own event type.
    """
    # Accounts
    ACCOUNT_CREATED = "account_created"
    ACCOUNT_UPDATED = "account_updated"
    ACCOUNT_DEACTIVATED = "account_deactivated"
    ACCOUNT_DELETED = "account_deleted"
    ACCOUNTS_REORDERED = "accounts_reordered"
    ACCOUNTS_SEEDED = "accounts_seeded"

    # Postings
    ENTRY_CREATED = "entry_created"
    ENTRY_UPDATED = "entry_updated"
    ENTRY_DELETED = "entry_deleted"
    INSTALLMENT_PLAN_CREATED = "installment_plan_created"
    INSTALLMENT_GROUP_DELETED = "installment_group_deleted"
    CARRY_OVER_POSTED = "carry_over_posted"
    PARTIAL_PAYMENT_POSTED = "partial_payment_posted"

    # Validation
    VALIDATION_WARNING = "validation_warning"

    # Failures
    OPERATION_REJECTED = "operation_rejected"
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every ledger write creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Who
    owner_id: Optional[str] = Field(
        default=None,
        description="Owner the operation was performed for"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'account', 'entry', 'installment_group')"
    )
    entity_id: Optional[UUID] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., all events of one request)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )

    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "owner_id": self.owner_id,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, owner_id, entity_type,
         entity_id, correlation_id, description, details_json, error_code,
         error_message]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.owner_id or "",
            self.entity_type or "",
            str(self.entity_id) if self.entity_id else "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details) if self.details else "",
            self.error_code or "",
            self.error_message or "",
        ]


def _money(amount: Decimal) -> str:
    return str(amount)


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.entry_created(owner_id, entry_id, ...)
        event = AuditEventBuilder.carry_over_posted(owner_id, entry_id, ...)
    """

    @staticmethod
    def account_created(
        owner_id: str,
        account_id: UUID,
        name: str,
        account_type: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_CREATED,
            owner_id=owner_id,
            entity_type="account",
            entity_id=account_id,
            correlation_id=correlation_id,
            description=f"Account created: {name} ({account_type})",
            details={
                "name": name,
                "type": account_type,
            },
        )

    @staticmethod
    def account_updated(
        owner_id: str,
        account_id: UUID,
        changes: dict,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_UPDATED,
            owner_id=owner_id,
            entity_type="account",
            entity_id=account_id,
            correlation_id=correlation_id,
            description=f"Account updated: {', '.join(sorted(changes)) or 'no changes'}",
            details={"changes": changes},
        )

    @staticmethod
    def account_removed(
        owner_id: str,
        account_id: UUID,
        hard: bool,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        if hard:
            return AuditEvent(
                event_type=AuditEventType.ACCOUNT_DELETED,
                owner_id=owner_id,
                entity_type="account",
                entity_id=account_id,
                correlation_id=correlation_id,
                description="Account deleted (no entries referenced it)",
            )
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_DEACTIVATED,
            owner_id=owner_id,
            entity_type="account",
            entity_id=account_id,
            correlation_id=correlation_id,
            description="Account deactivated (entries still reference it)",
        )

    @staticmethod
    def accounts_reordered(
        owner_id: str,
        ordered_ids: list[UUID],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNTS_REORDERED,
            owner_id=owner_id,
            entity_type="account",
            correlation_id=correlation_id,
            description=f"Accounts reordered ({len(ordered_ids)} requested)",
            details={"ordered_ids": [str(i) for i in ordered_ids]},
        )

    @staticmethod
    def accounts_seeded(
        owner_id: str,
        created: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNTS_SEEDED,
            owner_id=owner_id,
            entity_type="account",
            correlation_id=correlation_id,
            description=f"Default accounts seeded: {created} created",
            details={"created": created},
        )

    @staticmethod
    def entry_created(
        owner_id: str,
        entry_id: UUID,
        account_id: UUID,
        amount: Decimal,
        period: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTRY_CREATED,
            owner_id=owner_id,
            entity_type="entry",
            entity_id=entry_id,
            correlation_id=correlation_id,
            description=f"Entry posted to {period}: {_money(amount)}",
            details={
                "account_id": str(account_id),
                "amount": _money(amount),
                "period": period,
            },
        )

    @staticmethod
    def entry_updated(
        owner_id: str,
        entry_id: UUID,
        changes: dict,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTRY_UPDATED,
            owner_id=owner_id,
            entity_type="entry",
            entity_id=entry_id,
            correlation_id=correlation_id,
            description=f"Entry updated: {', '.join(sorted(changes)) or 'no changes'}",
            details={"changes": changes},
        )

    @staticmethod
    def entry_deleted(
        owner_id: str,
        entry_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTRY_DELETED,
            owner_id=owner_id,
            entity_type="entry",
            entity_id=entry_id,
            correlation_id=correlation_id,
            description="Entry deleted",
        )

    @staticmethod
    def installment_plan_created(
        owner_id: str,
        group_id: UUID,
        installments: int,
        amount: Decimal,
        first_period: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INSTALLMENT_PLAN_CREATED,
            owner_id=owner_id,
            entity_type="installment_group",
            entity_id=group_id,
            correlation_id=correlation_id,
            description=(
                f"Installment plan created: {installments} x {_money(amount)} "
                f"starting {first_period}"
            ),
            details={
                "installments": installments,
                "amount": _money(amount),
                "first_period": first_period,
            },
        )

    @staticmethod
    def installment_group_deleted(
        owner_id: str,
        group_id: UUID,
        deleted: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INSTALLMENT_GROUP_DELETED,
            owner_id=owner_id,
            entity_type="installment_group",
            entity_id=group_id,
            correlation_id=correlation_id,
            description=f"Installment group deleted ({deleted} entries)",
            details={"deleted": deleted},
        )

    @staticmethod
    def carry_over_posted(
        owner_id: str,
        entry_id: UUID,
        from_period: str,
        to_period: str,
        amount: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CARRY_OVER_POSTED,
            owner_id=owner_id,
            entity_type="entry",
            entity_id=entry_id,
            correlation_id=correlation_id,
            description=f"Carried {_money(amount)} from {from_period} to {to_period}",
            details={
                "from_period": from_period,
                "to_period": to_period,
                "amount": _money(amount),
            },
        )

    @staticmethod
    def partial_payment_posted(
        owner_id: str,
        entry_id: UUID,
        paid_amount: Decimal,
        remaining_amount: Decimal,
        interest_amount: Decimal,
        next_period: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PARTIAL_PAYMENT_POSTED,
            owner_id=owner_id,
            entity_type="entry",
            entity_id=entry_id,
            correlation_id=correlation_id,
            description=(
                f"Partial payment: paid {_money(paid_amount)}, "
                f"{_money(remaining_amount + interest_amount)} moved to {next_period}"
            ),
            details={
                "paid_amount": _money(paid_amount),
                "remaining_amount": _money(remaining_amount),
                "interest_amount": _money(interest_amount),
                "next_period": next_period,
            },
        )

    @staticmethod
    def validation_warnings(
        operation: str,
        issues: list[dict],
        owner_id: Optional[str] = None,
        entity_type: Optional[str] = None,
        entity_id: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_WARNING,
            severity=AuditSeverity.WARNING,
            owner_id=owner_id,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"{operation} passed validation with {len(issues)} warnings",
            details={
                "operation": operation,
                "issues": issues,
            },
        )

    @staticmethod
    def operation_rejected(
        operation: str,
        error_code: str,
        error_message: str,
        owner_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.OPERATION_REJECTED,
            severity=AuditSeverity.WARNING,
            owner_id=owner_id,
            correlation_id=correlation_id,
            description=f"Operation rejected: {operation}",
            error_code=error_code,
            error_message=error_message,
            details={"operation": operation},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        owner_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            owner_id=owner_id,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
